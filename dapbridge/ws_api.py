"""Text-frame JSON API over WebSocket and the set of connected clients."""

from __future__ import annotations

import json
import logging
import math
import threading
from typing import Any, Callable, Optional, Union

from .api_router import ApiModuleRegistry, ApiRequest, ApiStatus, AsyncCall

logger = logging.getLogger(__name__)

WS_MODULE_ID = 3
MAX_SOCKETS = 10
HEARTBEAT_INTERVAL = 1.5

MSG_BAD_REQUEST_ERROR = '{"error":"Bad json request", "code":2}'
MSG_JSON_ERROR = '{"error":"JSON parse error", "code":3}'
MSG_SEND_JSON_ERROR = '{"error":"JSON generation error", "code":3}'
MSG_INTERNAL_ERROR = '{"error":"Internal error", "code":3}'
MSG_UNSUPPORTED_CMD = '{"error":"Unsupported cmd", "code":4}'
MSG_PROPERTY_ERROR = '{"error":"Property error", "code":5}'
MSG_BUSY_ERROR = '{"error":"Resource busy", "code":6}'

_ERRORS = {
    ApiStatus.BAD_REQUEST: MSG_BAD_REQUEST_ERROR,
    ApiStatus.BUSY: MSG_BUSY_ERROR,
    ApiStatus.UNSUPPORTED_CMD: MSG_UNSUPPORTED_CMD,
    ApiStatus.PROPERTY_ERR: MSG_PROPERTY_ERROR,
}

_INT_MIN = -(2**31)
_INT_MAX = 2**31 - 1
_PRINT_RESERVE = 5


def error_message(status: int) -> str:
    """JSON error text sent back for a failed request status."""
    return _ERRORS.get(status, MSG_INTERNAL_ERROR)


# -- JSON text ------------------------------------------------------------

def _reject_constant(name: str) -> Any:
    raise ValueError(f"invalid JSON constant {name}")


_DECODER = json.JSONDecoder(parse_constant=_reject_constant)


def _parse(raw: bytes) -> Any:
    """Parse one JSON value; leading and trailing data outside it is allowed."""
    text = raw.decode("utf-8").lstrip(" \t\r\n")
    value, _ = _DECODER.raw_decode(text)
    return value


def _number(value: Union[int, float]) -> str:
    if isinstance(value, float):
        if math.isnan(value) or math.isinf(value):
            return "null"
        if value.is_integer() and _INT_MIN <= value <= _INT_MAX:
            return str(int(value))
        text = format(value, ".15g")
        if float(text) != value:
            text = format(value, ".17g")
        return text
    if _INT_MIN <= value <= _INT_MAX:
        return str(value)
    return _number(float(value))


def _dumps(value: Any) -> str:
    if value is None:
        return "null"
    if value is True:
        return "true"
    if value is False:
        return "false"
    if isinstance(value, (int, float)):
        return _number(value)
    if isinstance(value, str):
        return json.dumps(value, ensure_ascii=False)
    if isinstance(value, (list, tuple)):
        return "[" + ",".join(_dumps(item) for item in value) + "]"
    if isinstance(value, dict):
        return "{" + ",".join(f"{json.dumps(str(key), ensure_ascii=False)}:{_dumps(item)}"
                              for key, item in value.items()) + "}"
    raise TypeError(f"cannot encode {type(value).__name__} as JSON")


def _render(document: Any, limit: Optional[int]) -> Optional[str]:
    """Compact JSON text of ``document``, or None if it is absent or does not fit."""
    if document is None:
        return None
    try:
        text = _dumps(document)
    except TypeError:
        return None
    if limit is not None and len(text.encode("utf-8")) + 1 > limit - _PRINT_RESERVE:
        return None
    return text


def json_to_text(document: Any, limit: Optional[int] = None) -> str:
    """Compact JSON text of a reply, or the generation error message.

    ``limit`` is the size of the output buffer in bytes; None means unbounded.
    """
    text = _render(document, limit)
    return MSG_SEND_JSON_ERROR if text is None else text


def _run_async(call: AsyncCall) -> int:
    try:
        return call.run()
    except Exception:
        logger.exception("deferred request failed")
        return -1


def handle_text(registry: ApiModuleRegistry, payload: Union[bytes, str]) -> str:
    """Answer one text frame holding a JSON request.

    A deferred module call is run before answering. A successful request
    without a reply document is answered with the request text itself.
    """
    raw = payload.encode("utf-8") if isinstance(payload, str) else bytes(payload)
    try:
        document = _parse(raw)
    except (UnicodeDecodeError, ValueError):
        return MSG_JSON_ERROR

    request = ApiRequest(input=document)
    async_call = AsyncCall()
    status = registry.route(request, async_call)
    if status == ApiStatus.ASYNC:
        status = _run_async(async_call)
        logger.info("send out %d", status)
        if status != ApiStatus.OK:
            return error_message(status)
        target = async_call.request if async_call.request is not None else request
        return json_to_text(target.output)
    if status != ApiStatus.OK:
        return error_message(status)
    if request.output is None:
        return raw.decode("utf-8")
    return json_to_text(request.output)


# -- connected clients ----------------------------------------------------

class WebSocketClients:
    """Connected WebSocket clients, each with its own send lock."""

    def __init__(self, max_clients: int = MAX_SOCKETS) -> None:
        self._max = max_clients
        self._order: list[int] = []
        self._handles: dict[int, Any] = {}
        self._locks: dict[int, threading.Lock] = {}
        self._guard = threading.Lock()

    def __len__(self) -> int:
        return len(self._order)

    def __contains__(self, fd: object) -> bool:
        return fd in self._order

    @property
    def fds(self) -> list[int]:
        """Descriptors of connected clients in their current order."""
        with self._guard:
            return list(self._order)

    def handle(self, fd: int) -> Any:
        """Server handle recorded for ``fd``."""
        with self._guard:
            return self._handles[fd]

    def add(self, fd: int, handle: Any) -> None:
        """Record a newly opened client."""
        with self._guard:
            if len(self._order) >= self._max:
                raise RuntimeError(f"too many websocket clients, at most {self._max}")
            self._handles[fd] = handle
            self._order.append(fd)
            self._locks.setdefault(fd, threading.Lock())

    def remove(self, fd: int) -> None:
        """Forget a client; the last client takes its place in the order."""
        with self._guard:
            try:
                index = self._order.index(fd)
            except ValueError:
                return
            self._order[index] = self._order[-1]
            self._order.pop()
            if fd not in self._order:
                self._handles.pop(fd, None)

    def _lock(self, fd: int) -> threading.Lock:
        with self._guard:
            return self._locks.setdefault(fd, threading.Lock())

    def send(self, fd: int, sender: Callable[[Any, int], Any]) -> Any:
        """Call ``sender(handle, fd)`` while holding the lock of ``fd``."""
        handle = self.handle(fd)
        with self._lock(fd):
            return sender(handle, fd)

    def broadcast(self, sender: Callable[[Any, int], Any],
                  close: Callable[[Any, int], Any]) -> list[int]:
        """Send to every client; clients whose send fails are removed and closed.

        Returns the descriptors that were dropped.
        """
        dropped: list[int] = []
        for fd in self.fds:
            try:
                handle = self.handle(fd)
            except KeyError:
                continue
            try:
                with self._lock(fd):
                    sender(handle, fd)
            except Exception as exc:
                logger.error("hb send err: %s", exc)
                self.remove(fd)
                close(handle, fd)
                dropped.append(fd)
        return dropped