"""System API module: firmware information and reboot."""

from __future__ import annotations

import enum
import threading
from dataclasses import dataclass
from typing import Any, Callable

from .api_router import ApiModuleRegistry, ApiRequest, ApiStatus, AsyncCall

SYSTEM_MODULE_ID = 0
FM_VER_MAX_BYTES = 31
UPD_DATE_LEN = 10
REBOOT_DELAY = 2.0


class SystemCommand(enum.IntEnum):
    """Command numbers of the system API module."""

    GET_FM_INFO = 1
    REBOOT = 2


@dataclass(frozen=True)
class FirmwareInfo:
    """Firmware version and date of the last update."""

    fm_ver: str
    upd_date: str


def serialize_firmware_info(info: FirmwareInfo) -> dict[str, Any]:
    """Reply document describing the firmware."""
    return {
        "cmd": int(SystemCommand.GET_FM_INFO),
        "module": SYSTEM_MODULE_ID,
        "fm_ver": info.fm_ver,
        "upd_date": info.upd_date,
    }


def delayed(action: Callable[[], object], delay: float = REBOOT_DELAY) -> Callable[[], None]:
    """Wrap ``action`` so that calling the result runs it after ``delay`` seconds."""
    def trigger() -> None:
        timer = threading.Timer(delay, action)
        timer.daemon = True
        timer.start()
    return trigger


class SystemModule:
    """Handler of system API requests."""

    def __init__(self, version: str, update_date: str,
                 reboot: Callable[[], object]) -> None:
        if len(version.encode("utf-8")) > FM_VER_MAX_BYTES:
            raise ValueError(f"version is longer than {FM_VER_MAX_BYTES} bytes")
        self._version = version
        self._update_date = update_date[:UPD_DATE_LEN]
        self._reboot = reboot

    def firmware_info(self) -> FirmwareInfo:
        """Current firmware version and update date."""
        return FirmwareInfo(self._version, self._update_date)

    def handle(self, cmd: int, request: ApiRequest, async_call: AsyncCall) -> int:
        """Answer one request addressed to the system module."""
        if cmd == SystemCommand.GET_FM_INFO:
            request.output = serialize_firmware_info(self.firmware_info())
            return ApiStatus.OK
        if cmd == SystemCommand.REBOOT:
            self._reboot()
            return ApiStatus.OK
        return ApiStatus.UNSUPPORTED_CMD

    def register(self, registry: ApiModuleRegistry) -> None:
        """Install this module in ``registry`` under the system module id."""
        registry.register(SYSTEM_MODULE_ID, self.handle)