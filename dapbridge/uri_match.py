"""URI matching rule used by the embedded web server."""

from __future__ import annotations

import logging

logger = logging.getLogger(__name__)

_WS_HEAD = b"/ws\0"


def _head(raw: bytes) -> bytes:
    return (raw + b"\0" * 4)[:4]


def uri_match(reference: str, uri: str, match_upto: int) -> bool:
    """Decide whether the registered ``reference`` URI serves ``uri``.

    ``match_upto`` is the length of ``uri`` without its query string.
    ``/ws`` matches only itself; ``/entry`` matches exactly; ``/dir/``
    matches itself and everything below it; ``/`` matches everything.
    """
    ref = reference.encode()
    target = uri.encode() + b"\0"

    if match_upto == 3 and _head(ref + b"\0") == _WS_HEAD:
        return _head(target) == _WS_HEAD

    ref_length = len(ref)
    if ref_length > match_upto:
        logger.debug("no match length ref %s t: %s", reference, uri)
        return False

    if ref_length == match_upto and target[:ref_length] == ref:
        logger.debug("strict match %s", reference)
        return True

    if ref.endswith(b"/") and ref_length > 1:
        return target[:ref_length] == ref

    if ref.endswith(b"/"):
        return True

    logger.debug("fall back false %s t: %s", reference, uri)
    return False