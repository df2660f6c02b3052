import threading

import pytest

from dapbridge.api_router import ApiModuleRegistry, ApiRequest, ApiStatus, AsyncCall, ModuleRegistrationError
from dapbridge.system_api import (
    SYSTEM_MODULE_ID,
    FirmwareInfo,
    SystemCommand,
    SystemModule,
    delayed,
    serialize_firmware_info,
)


def make_module(calls=None):
    calls = [] if calls is None else calls
    return SystemModule("v1.2.3", "2024-05-01", lambda: calls.append("reboot"))


def test_serialize_firmware_info():
    doc = serialize_firmware_info(FirmwareInfo("v9", "2023-01-02"))
    assert doc == {"cmd": SystemCommand.GET_FM_INFO, "module": SYSTEM_MODULE_ID,
                   "fm_ver": "v9", "upd_date": "2023-01-02"}


def test_update_date_is_truncated():
    module = SystemModule("v1", "2024-05-01T10:00", lambda: None)
    assert module.firmware_info() == FirmwareInfo("v1", "2024-05-01")


def test_version_too_long():
    with pytest.raises(ValueError):
        SystemModule("v" * 32, "2024-05-01", lambda: None)


def test_get_fm_info_sets_output():
    module = make_module()
    request = ApiRequest(input={})
    status = module.handle(SystemCommand.GET_FM_INFO, request, AsyncCall())
    assert status == ApiStatus.OK
    assert request.output["fm_ver"] == "v1.2.3"
    assert request.output["upd_date"] == "2024-05-01"


def test_reboot_calls_callback():
    calls = []
    module = make_module(calls)
    request = ApiRequest(input={})
    assert module.handle(SystemCommand.REBOOT, request, AsyncCall()) == ApiStatus.OK
    assert calls == ["reboot"]
    assert request.output is None


def test_unsupported_command():
    module = make_module()
    assert module.handle(99, ApiRequest(input={}), AsyncCall()) == ApiStatus.UNSUPPORTED_CMD


def test_register_and_route():
    registry = ApiModuleRegistry()
    make_module().register(registry)
    request = ApiRequest(input={"cmd": 1, "module": 0})
    assert registry.route(request) == ApiStatus.OK
    assert request.output["fm_ver"] == "v1.2.3"


def test_register_twice_fails():
    registry = ApiModuleRegistry()
    make_module().register(registry)
    with pytest.raises(ModuleRegistrationError):
        make_module().register(registry)


def test_delayed_runs_later():
    fired = threading.Event()
    trigger = delayed(fired.set, 0.01)
    assert not fired.is_set()
    trigger()
    assert fired.wait(2.0)