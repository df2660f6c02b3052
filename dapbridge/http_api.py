"""HTTP POST endpoint of the JSON API."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Optional, Union

from .api_router import ApiModuleRegistry, ApiRequest, ApiStatus, AsyncCall
from .ws_api import _parse, _render

logger = logging.getLogger(__name__)

HTTP_200 = "200 OK"
HTTP_400 = "400 Bad Request"
HTTP_500 = "500 Internal Server Error"
HTTP_503 = "503 Busy"
TYPE_JSON = "application/json"
TYPE_TEXT = "text/html"


@dataclass
class HttpResponse:
    """Status line, body and headers of a reply to a POST request."""

    status: str = HTTP_200
    body: bytes = b""
    content_type: str = TYPE_TEXT
    close: bool = False


def _send_out(request: ApiRequest, data: bytes, status: int,
              limit: Optional[int]) -> HttpResponse:
    if request.output is not None:
        text = _render(request.output, limit)
        if text is None:
            return HttpResponse(HTTP_500, content_type=TYPE_JSON)
        return HttpResponse(HTTP_200, text.encode("utf-8"), TYPE_JSON)
    if status != ApiStatus.OK:
        return HttpResponse(HTTP_500)
    return HttpResponse(HTTP_200, data.split(b"\0", 1)[0])


def handle_post(registry: ApiModuleRegistry, body: Union[bytes, str],
                limit: Optional[int] = None) -> HttpResponse:
    """Answer a POST request whose body holds a JSON API request.

    Raises ValueError when the body is empty or larger than ``limit`` bytes.
    A deferred module call is run before answering; when it fails the
    response asks for the connection to be closed.
    """
    data = body.encode("utf-8") if isinstance(body, str) else bytes(body)
    if limit is not None and len(data) > limit:
        raise ValueError(f"request of {len(data)} bytes exceeds {limit}")
    if not data:
        raise ValueError("empty request body")

    try:
        document = _parse(data)
    except (UnicodeDecodeError, ValueError):
        return HttpResponse(HTTP_400)

    request = ApiRequest(input=document)
    async_call = AsyncCall()
    status = registry.route(request, async_call)

    if status == ApiStatus.ASYNC:
        try:
            status = async_call.run()
        except Exception:
            logger.exception("deferred request failed")
            status = -1
        target = async_call.request if async_call.request is not None else request
        response = _send_out(target, data, status, limit)
        response.close = status != ApiStatus.OK
        return response
    if status != ApiStatus.OK:
        return HttpResponse(HTTP_400)
    if request.output is None:
        return HttpResponse(HTTP_200)
    return _send_out(request, data, ApiStatus.OK, limit)