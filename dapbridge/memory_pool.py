"""A fixed pool of reusable byte buffers shared between request handlers."""

from __future__ import annotations

import queue
import threading
from contextlib import contextmanager
from typing import Iterator, Optional

BUFFER_COUNT = 8
BUFFER_SIZE = 2048


class PoolExhausted(Exception):
    """Raised when no buffer became free within the allowed time."""


class MemoryPool:
    """A set of equally sized buffers handed out and returned in FIFO order."""

    def __init__(self, count: int = BUFFER_COUNT, size: int = BUFFER_SIZE) -> None:
        if count <= 0 or size <= 0:
            raise ValueError("pool needs a positive buffer count and size")
        self._size = size
        self._count = count
        self._buffers = [bytearray(size) for _ in range(count)]
        self._owned = {id(buf) for buf in self._buffers}
        self._outstanding: set[int] = set()
        self._lock = threading.Lock()
        self._free: queue.Queue[bytearray] = queue.Queue(maxsize=count)
        for buf in self._buffers:
            self._free.put_nowait(buf)

    @property
    def buffer_size(self) -> int:
        """Size in bytes of every buffer in the pool."""
        return self._size

    @property
    def capacity(self) -> int:
        """Total number of buffers in the pool."""
        return self._count

    @property
    def available(self) -> int:
        """Number of buffers currently free."""
        return self._free.qsize()

    def acquire(self, timeout: Optional[float] = None) -> bytearray:
        """Take a buffer, waiting up to ``timeout`` seconds (None waits forever)."""
        try:
            if timeout is not None and timeout <= 0:
                buf = self._free.get_nowait()
            else:
                buf = self._free.get(timeout=timeout)
        except queue.Empty:
            raise PoolExhausted("no free buffer in the pool") from None
        with self._lock:
            self._outstanding.add(id(buf))
        return buf

    def release(self, buf: bytearray) -> None:
        """Return a buffer previously obtained from :meth:`acquire`."""
        key = id(buf)
        with self._lock:
            if key not in self._owned:
                raise ValueError("buffer does not belong to this pool")
            if key not in self._outstanding:
                raise ValueError("buffer was already released")
            self._outstanding.discard(key)
        self._free.put_nowait(buf)

    @contextmanager
    def borrow(self, timeout: Optional[float] = None) -> Iterator[bytearray]:
        """Context manager that acquires a buffer and releases it on exit."""
        buf = self.acquire(timeout)
        try:
            yield buf
        finally:
            self.release(buf)