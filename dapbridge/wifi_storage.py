"""Persistence of the last Wi-Fi station credential."""

from __future__ import annotations

import enum
from dataclasses import dataclass
from typing import Optional

from .nvs import NvsNotFoundError, NvsStore

NAMESPACE = "wt_wifi"
MAX_AP_CRED_RECORD = 1
SSID_SIZE = 32
PASSWORD_SIZE = 64
CREDENTIAL_SIZE = SSID_SIZE + PASSWORD_SIZE
_ENCODING = "utf-8"
_ERRORS = "surrogateescape"


class WifiKey(enum.IntEnum):
    """Storage keys of the Wi-Fi namespace."""

    RESERVED = 0x000
    AP_SSID = 1
    AP_PASSWORD = 2
    STA_USE_STATIC = 3
    STA_STATIC_IP = 4
    STA_STATIC_MASK = 5
    STA_STATIC_GATEWAY = 6
    STA_STATIC_DNS = 7
    STA_LAST_AP_CRED = 8
    STA_AP_BITMAP = 9


def _field(value: str, size: int, name: str) -> bytes:
    raw = value.encode(_ENCODING, _ERRORS)
    if len(raw) > size:
        raise ValueError(f"{name} is longer than {size} bytes")
    return raw.ljust(size, b"\0")


def _text(raw: bytes) -> str:
    return raw.split(b"\0", 1)[0].decode(_ENCODING, _ERRORS)


@dataclass(frozen=True)
class WifiCredential:
    """An SSID and its password."""

    ssid: str
    password: str

    def to_bytes(self) -> bytes:
        """Fixed-size record: 32-byte SSID then 64-byte password, NUL padded."""
        return (_field(self.ssid, SSID_SIZE, "ssid")
                + _field(self.password, PASSWORD_SIZE, "password"))

    @classmethod
    def from_bytes(cls, data: bytes) -> "WifiCredential":
        """Decode a record produced by :meth:`to_bytes`."""
        if len(data) != CREDENTIAL_SIZE:
            raise ValueError(f"credential record must be {CREDENTIAL_SIZE} bytes")
        return cls(_text(data[:SSID_SIZE]), _text(data[SSID_SIZE:]))


def load_last_credential(store: NvsStore) -> Optional[WifiCredential]:
    """Return the last saved credential, or None if none was ever saved."""
    with store.open(NAMESPACE) as handle:
        try:
            bitmap = handle.get(WifiKey.STA_AP_BITMAP, 4)
        except NvsNotFoundError:
            return None
        if bitmap == 0:
            return None
        data = handle.get(WifiKey.STA_LAST_AP_CRED, CREDENTIAL_SIZE)
    assert isinstance(data, bytes)
    return WifiCredential.from_bytes(data)


def save_credential(store: NvsStore, credential: WifiCredential) -> None:
    """Store ``credential`` as the last successfully connected access point."""
    record = credential.to_bytes()
    with store.open(NAMESPACE) as handle:
        try:
            bitmap = handle.get(WifiKey.STA_AP_BITMAP, 4)
        except NvsNotFoundError:
            bitmap = 0
        if bitmap == 0:
            handle.set(WifiKey.STA_AP_BITMAP, 1, 4)
        handle.set(WifiKey.STA_LAST_AP_CRED, record, CREDENTIAL_SIZE)