import json

import pytest

from dapbridge.api_router import ApiModuleRegistry, ApiStatus
from dapbridge.http_api import HTTP_200, HTTP_400, HTTP_500, TYPE_JSON, handle_post


def _registry(handler, module_id=0):
    registry = ApiModuleRegistry()
    registry.register(module_id, handler)
    return registry


def _ok_with(output):
    def handler(cmd, req, call):
        req.output = output
        return ApiStatus.OK
    return handler


def test_invalid_json_is_bad_request():
    response = handle_post(_registry(_ok_with(None)), b"{oops")
    assert response.status == "400 Bad Request"
    assert response.body == b""


def test_empty_body_raises():
    with pytest.raises(ValueError):
        handle_post(_registry(_ok_with(None)), b"")


def test_body_over_limit_raises():
    with pytest.raises(ValueError):
        handle_post(_registry(_ok_with(None)), b'{"cmd":1,"module":0}', limit=5)


def test_output_is_sent_as_json():
    output = {"cmd": 1, "module": 0, "fm_ver": "v1"}
    response = handle_post(_registry(_ok_with(output)), '{"cmd": 1, "module": 0}')
    assert response.status == HTTP_200
    assert response.content_type == TYPE_JSON
    assert json.loads(response.body) == output
    assert response.close is False


def test_ok_without_output_is_empty():
    response = handle_post(_registry(_ok_with(None)), '{"cmd": 2, "module": 0}')
    assert response.status == HTTP_200
    assert response.body == b""


def test_error_status_is_bad_request():
    registry = _registry(lambda cmd, req, call: ApiStatus.UNSUPPORTED_CMD)
    assert handle_post(registry, '{"cmd": 9, "module": 0}').status == HTTP_400


def test_unknown_module_is_bad_request():
    registry = _registry(_ok_with(None))
    assert handle_post(registry, '{"cmd": 1, "module": 4}').status == HTTP_400


def test_async_success():
    def work(req):
        req.output = {"done": True}
        return ApiStatus.OK

    registry = _registry(lambda cmd, req, call: call.schedule(req, work))
    response = handle_post(registry, '{"cmd": 3, "module": 0}')
    assert json.loads(response.body) == {"done": True}
    assert response.close is False


def test_async_failure_without_output_closes():
    registry = _registry(lambda cmd, req, call: call.schedule(req, lambda r: ApiStatus.BUSY))
    response = handle_post(registry, '{"cmd": 3, "module": 0}')
    assert response.status == HTTP_500
    assert response.close is True


def test_async_failure_with_output_still_sends_it():
    def work(req):
        req.output = {"msg": "Wi-Fi scan busy"}
        return 1

    registry = _registry(lambda cmd, req, call: call.schedule(req, work))
    response = handle_post(registry, '{"cmd": 3, "module": 0}')
    assert json.loads(response.body) == {"msg": "Wi-Fi scan busy"}
    assert response.close is True


def test_async_success_without_output_echoes_body():
    registry = _registry(lambda cmd, req, call: call.schedule(req, lambda r: ApiStatus.OK))
    body = b'{"cmd": 3, "module": 0}'
    assert handle_post(registry, body).body == body


def test_output_too_large_for_limit():
    output = {"data": "x" * 100}
    body = '{"cmd": 1, "module": 0}'
    response = handle_post(_registry(_ok_with(output)), body, limit=len(body) + 10)
    assert response.status == HTTP_500
    assert response.body == b""