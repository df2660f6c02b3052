"""Routing of JSON API requests to registered modules by module id."""

from __future__ import annotations

import enum
import logging
import math
from dataclasses import dataclass
from typing import Any, Callable, Optional

from .request_runner import RequestTask

logger = logging.getLogger(__name__)

MAX_MODULES = 10

_INT_MAX = 2**31 - 1
_INT_MIN = -(2**31)


class ApiStatus(enum.IntEnum):
    """Result of handling an API request."""

    OK = 0
    ASYNC = 1
    BAD_REQUEST = 2
    INTERNAL_ERR = 3
    UNSUPPORTED_CMD = 4
    PROPERTY_ERR = 5
    BUSY = 6


@dataclass
class ApiRequest:
    """A decoded JSON request and the JSON document produced in reply."""

    input: Any
    output: Any = None
    big_buffer: bool = False


@dataclass
class AsyncCall:
    """A deferred handler call, filled in by a module that answers later."""

    func: Optional[Callable[[ApiRequest], int]] = None
    request: Optional[ApiRequest] = None

    def schedule(self, request: ApiRequest, func: Callable[[ApiRequest], int]) -> ApiStatus:
        """Record ``func`` to be run on ``request`` later and report ASYNC."""
        self.func = func
        self.request = request
        return ApiStatus.ASYNC

    def run(self) -> int:
        """Run the deferred handler and return its status."""
        if self.func is None or self.request is None:
            raise RuntimeError("no deferred call scheduled")
        return self.func(self.request)

    def to_task(self, send_out: Callable[[int], None]) -> RequestTask:
        """Wrap the deferred call as a task for a request runner."""
        return RequestTask(work=self.run, send_out=send_out)


Handler = Callable[[int, ApiRequest, AsyncCall], int]


class ModuleRegistrationError(Exception):
    """Raised when a module cannot be registered."""


def _is_number(value: Any) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool)


def _valueint(value: float) -> int:
    if isinstance(value, float):
        if math.isnan(value):
            raise ValueError("NaN is not a valid integer")
        if value >= _INT_MAX:
            return _INT_MAX
        if value <= _INT_MIN:
            return _INT_MIN
        return int(value)
    return max(min(value, _INT_MAX), _INT_MIN)


class ApiModuleRegistry:
    """A table of request handlers indexed by module id."""

    def __init__(self) -> None:
        self._handlers: list[Optional[Handler]] = [None] * MAX_MODULES

    def register(self, module_id: int, handler: Handler) -> None:
        """Install ``handler`` for ``module_id``."""
        if not 0 <= module_id < MAX_MODULES:
            raise ModuleRegistrationError(
                f"module ID should be smaller than {MAX_MODULES}, got {module_id}")
        if self._handlers[module_id] is not None:
            raise ModuleRegistrationError(f"module ID {module_id} is already in use")
        self._handlers[module_id] = handler
        logger.info("module %d is added", module_id)

    def call(self, module_id: int, cmd: int, request: ApiRequest,
             async_call: AsyncCall) -> int:
        """Pass a request to the handler of ``module_id``."""
        if not 0 <= module_id < MAX_MODULES or self._handlers[module_id] is None:
            return ApiStatus.BAD_REQUEST
        handler = self._handlers[module_id]
        assert handler is not None
        return handler(cmd, request, async_call)

    def route(self, request: Optional[ApiRequest],
              async_call: Optional[AsyncCall] = None) -> int:
        """Dispatch by the numeric ``cmd`` and ``module`` members of the request."""
        if request is None or not isinstance(request.input, dict):
            return ApiStatus.BAD_REQUEST
        cmd_value = request.input.get("cmd")
        module_value = request.input.get("module")
        if not _is_number(cmd_value) or not _is_number(module_value):
            return ApiStatus.BAD_REQUEST
        try:
            cmd = _valueint(cmd_value) & 0xFFFF
            module_id = _valueint(module_value) & 0xFF
        except ValueError:
            return ApiStatus.BAD_REQUEST
        logger.info("cmd %d received", cmd)
        if async_call is None:
            async_call = AsyncCall()
        return self.call(module_id, cmd, request, async_call)

    def dump(self) -> str:
        """One line per slot showing the installed handler."""
        return "\n".join(f"{index} = {handler!r}"
                         for index, handler in enumerate(self._handlers))