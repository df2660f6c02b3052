"""A small persistent key-value store with typed integer and blob entries."""

from __future__ import annotations

import json
import logging
import os
import threading
from pathlib import Path
from typing import Optional, Union

logger = logging.getLogger(__name__)

PARTITION_NAME = "wt_nvs"
NAMESPACE_MAX_LEN = 15

_INT_KINDS = {1: "u8", 2: "u16", 4: "u32", 8: "u64"}
_KIND_BYTES = {kind: size for size, kind in _INT_KINDS.items()}

Value = Union[int, bytes]


class NvsNotFoundError(KeyError):
    """Raised when a key of the requested type is not stored."""


def _kind(size: int) -> str:
    if size < 0:
        raise ValueError(f"size must not be negative, got {size}")
    if size == 0:
        return "u8"
    return _INT_KINDS.get(size, "blob")


def _check_key(key: int) -> int:
    key = int(key)
    if not 0 <= key <= 0xFFFFFFFF:
        raise ValueError(f"key must be a 32-bit unsigned integer, got {key}")
    return key


class NvsStore:
    """All namespaces of the store, optionally persisted to a JSON file."""

    def __init__(self, path: Union[str, os.PathLike, None] = None) -> None:
        self.path: Optional[Path] = Path(path) if path is not None else None
        self._lock = threading.RLock()
        self._data: dict[str, dict[int, tuple[str, Value]]] = {}
        if self.path is not None and self.path.exists():
            self._data = self._load(self.path)

    @staticmethod
    def _load(path: Path) -> dict[str, dict[int, tuple[str, Value]]]:
        try:
            raw = json.loads(path.read_text(encoding="utf-8"))
            data: dict[str, dict[int, tuple[str, Value]]] = {}
            for namespace, entries in raw.items():
                table: dict[int, tuple[str, Value]] = {}
                for key, (kind, value) in entries.items():
                    if kind == "blob":
                        table[int(key)] = (kind, bytes.fromhex(value))
                    elif kind in _KIND_BYTES:
                        table[int(key)] = (kind, int(value))
                    else:
                        raise ValueError(f"unknown entry type {kind!r}")
                data[str(namespace)] = table
            return data
        except (OSError, ValueError, TypeError, AttributeError):
            logger.warning("storage file %s is unreadable, erasing it", path)
            return {}

    def _save(self) -> None:
        if self.path is None:
            return
        with self._lock:
            raw = {
                namespace: {
                    str(key): [kind, value.hex() if isinstance(value, bytes) else value]
                    for key, (kind, value) in entries.items()
                }
                for namespace, entries in self._data.items()
            }
        tmp = self.path.with_name(self.path.name + ".tmp")
        tmp.write_text(json.dumps(raw, sort_keys=True), encoding="utf-8")
        os.replace(tmp, self.path)

    def _entry(self, namespace: str, key: int) -> Optional[tuple[str, Value]]:
        with self._lock:
            return self._data.get(namespace, {}).get(key)

    def _put(self, namespace: str, key: int, kind: str, value: Value) -> None:
        with self._lock:
            self._data.setdefault(namespace, {})[key] = (kind, value)

    def open(self, namespace: str) -> "NvsNamespace":
        """Open a namespace for reading and writing."""
        if not namespace or len(namespace) > NAMESPACE_MAX_LEN:
            raise ValueError(
                f"namespace must have 1 to {NAMESPACE_MAX_LEN} characters: {namespace!r}")
        return NvsNamespace(self, namespace)


class NvsNamespace:
    """An open namespace; closing it as a context manager commits changes."""

    def __init__(self, store: NvsStore, name: str) -> None:
        self.store = store
        self.name = name

    def __enter__(self) -> "NvsNamespace":
        return self

    def __exit__(self, *exc: object) -> None:
        self.commit()

    def get(self, key: int, size: int) -> Value:
        """Read ``key`` as an unsigned integer of ``size`` bytes (1, 2, 4, 8), or a blob.

        A size of 0 reads the one-byte marker stored by ``set`` with size 0.
        """
        key = _check_key(key)
        kind = _kind(size)
        entry = self.store._entry(self.name, key)
        if entry is None or entry[0] != kind:
            raise NvsNotFoundError(key)
        value = entry[1]
        if kind == "blob":
            assert isinstance(value, bytes)
            if len(value) > size:
                raise ValueError(
                    f"stored blob of {len(value)} bytes does not fit in {size} bytes")
        return value

    def set(self, key: int, value: Value, size: int) -> None:
        """Store ``value`` under ``key`` with the type chosen by ``size``."""
        key = _check_key(key)
        kind = _kind(size)
        if size == 0:
            self.store._put(self.name, key, kind, 0xFF)
        elif kind == "blob":
            data = bytes(value)  # type: ignore[arg-type]
            if len(data) < size:
                raise ValueError(f"blob has {len(data)} bytes, {size} requested")
            self.store._put(self.name, key, kind, data[:size])
        else:
            number = int(value)  # type: ignore[arg-type]
            if not 0 <= number < 1 << (8 * _KIND_BYTES[kind]):
                raise ValueError(f"{number} does not fit in {kind}")
            self.store._put(self.name, key, kind, number)

    def commit(self) -> None:
        """Write all changes to the backing file."""
        self.store._save()


def get_once(store: NvsStore, namespace: str, key: int, size: int) -> Value:
    """Open ``namespace``, read one key and close it again."""
    with store.open(namespace) as handle:
        return handle.get(key, size)