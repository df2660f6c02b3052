import pytest

from dapbridge.api_router import (
    MAX_MODULES,
    ApiModuleRegistry,
    ApiRequest,
    ApiStatus,
    AsyncCall,
    ModuleRegistrationError,
)


def echo_handler(cmd, request, async_call):
    request.output = {"cmd": cmd}
    return ApiStatus.OK


@pytest.fixture
def registry():
    reg = ApiModuleRegistry()
    reg.register(1, echo_handler)
    return reg


def test_route_dispatches_to_module(registry):
    req = ApiRequest({"cmd": 5, "module": 1})
    assert registry.route(req, AsyncCall()) == ApiStatus.OK
    assert req.output == {"cmd": 5}


def test_route_truncates_float_command(registry):
    req = ApiRequest({"cmd": 5.9, "module": 1})
    assert registry.route(req, AsyncCall()) == ApiStatus.OK
    assert req.output == {"cmd": 5}


@pytest.mark.parametrize("payload", [
    {"module": 1},
    {"cmd": 1},
    {"cmd": "1", "module": 1},
    {"cmd": True, "module": 1},
    [1, 2],
])
def test_route_rejects_malformed(registry, payload):
    assert registry.route(ApiRequest(payload), AsyncCall()) == ApiStatus.BAD_REQUEST


def test_route_none_request(registry):
    assert registry.route(None) == ApiStatus.BAD_REQUEST


def test_unknown_module_is_bad_request(registry):
    req = ApiRequest({"cmd": 1, "module": 2})
    assert registry.route(req) == ApiStatus.BAD_REQUEST
    assert registry.call(MAX_MODULES, 1, req, AsyncCall()) == ApiStatus.BAD_REQUEST


def test_register_out_of_range(registry):
    with pytest.raises(ModuleRegistrationError):
        registry.register(MAX_MODULES, echo_handler)


def test_register_duplicate(registry):
    with pytest.raises(ModuleRegistrationError):
        registry.register(1, echo_handler)


def test_async_call_runs_deferred_handler(registry):
    def deferred(request):
        request.output = {"done": True}
        return ApiStatus.OK

    def handler(cmd, request, async_call):
        return async_call.schedule(request, deferred)

    registry.register(2, handler)
    call = AsyncCall()
    req = ApiRequest({"cmd": 1, "module": 2})
    assert registry.route(req, call) == ApiStatus.ASYNC
    statuses = []
    task = call.to_task(statuses.append)
    task.send_out(task.work())
    assert statuses == [ApiStatus.OK]
    assert req.output == {"done": True}


def test_run_without_schedule_raises():
    with pytest.raises(RuntimeError):
        AsyncCall().run()


def test_dump_lists_every_slot(registry):
    lines = registry.dump().splitlines()
    assert len(lines) == MAX_MODULES
    assert "echo_handler" in lines[1]
    assert lines[0].endswith("None")