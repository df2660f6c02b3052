"""Registry of web URI modules, initialised in priority order."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Callable, Iterator, Optional

logger = logging.getLogger(__name__)

MAX_MODULES = 8


@dataclass(frozen=True)
class UriHandler:
    """Description of one URI served by the web server."""

    uri: str
    method: str
    handler: Callable[..., Any]
    is_websocket: bool = False
    handle_ws_control_frames: bool = False
    user_ctx: Any = None


ModuleFunc = Callable[[], UriHandler]
RegisterFunc = Callable[[UriHandler], object]


@dataclass(frozen=True)
class _Module:
    priority: int
    init: ModuleFunc
    exit: Optional[ModuleFunc]


class UriModuleRegistry:
    """Ordered list of URI modules; each module yields one handler on init."""

    def __init__(self, max_modules: int = MAX_MODULES) -> None:
        self._max = max_modules
        self._modules: list[_Module] = []

    def __len__(self) -> int:
        return len(self._modules)

    def __iter__(self) -> Iterator[tuple[int, ModuleFunc, Optional[ModuleFunc]]]:
        for module in self._modules:
            yield module.priority, module.init, module.exit

    @property
    def priorities(self) -> list[int]:
        """Priorities of the modules in the order they are initialised."""
        return [module.priority for module in self._modules]

    def add(self, priority: int, init: ModuleFunc,
            exit: Optional[ModuleFunc] = None) -> None:
        """Add a module.

        The module is placed right after the first module whose priority is
        not greater than ``priority``, or at the front if there is none.
        """
        if not 0 <= priority <= 0xFF:
            raise ValueError(f"priority must fit in one byte, got {priority}")
        if len(self._modules) >= self._max:
            raise RuntimeError(f"too many modules, at most {self._max}")
        logger.info("adding module %r", init)
        module = _Module(priority, init, exit)
        position = 0
        for index, item in enumerate(self._modules):
            if item.priority <= priority:
                position = index + 1
                break
        self._modules.insert(position, module)

    def init_all(self, register: RegisterFunc) -> list[UriHandler]:
        """Initialise every module and pass its handler to ``register``.

        A module that fails to initialise or register is logged and skipped.
        Returns the handlers that were registered.
        """
        registered: list[UriHandler] = []
        for index, module in enumerate(self._modules):
            try:
                handler = module.init()
            except Exception:
                logger.exception("%d init error", index)
                continue
            logger.info("uri %s init", handler.uri)
            try:
                register(handler)
            except Exception as exc:
                logger.error("%d %s", index, exc)
                continue
            registered.append(handler)
        return registered