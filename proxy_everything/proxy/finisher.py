from typing import Any, Iterable, Optional

from fastapi.responses import JSONResponse, Response
from starlette.datastructures import MutableHeaders

from proxy_everything.proxy.headers import HOP_BY_HOP_HEADERS, header_bytes

NO_CACHE_HEADERS = {
    "Cache-Control": "no-store",
    "Pragma": "no-cache",
    "Expires": "0",
}

CORS_HEADERS = {
    "Access-Control-Allow-Origin": "*",
    "Access-Control-Allow-Methods": "GET, POST, PUT, DELETE, OPTIONS",
    "Access-Control-Allow-Headers": "*",
}

JSON_MEDIA_TYPE = "application/json; charset=utf-8"


def set_no_cache_headers(headers: MutableHeaders) -> None:
    for name, value in NO_CACHE_HEADERS.items():
        headers[name] = value


def set_cors_headers(headers: MutableHeaders) -> None:
    for name, value in CORS_HEADERS.items():
        headers[name] = value


def finish(response: Response) -> Response:
    """Stamp the no-cache and CORS headers onto ``response``, replacing same-named ones."""
    set_no_cache_headers(response.headers)
    set_cors_headers(response.headers)
    return response


def copy_upstream_headers(
    response: Response,
    headers: Iterable[tuple],
    skip: Optional[Iterable[str]] = None,
) -> Response:
    """
    Append the upstream headers to ``response``.

    Hop-by-hop headers are never relayed; repeated names such as
    ``Set-Cookie`` are kept as separate entries. Values go out as the
    bytes the target sent, whatever their charset.
    """
    skipped = {header_bytes(name) for name in HOP_BY_HOP_HEADERS}
    if skip:
        skipped.update(header_bytes(s.lower()) for s in skip)
    for name, value in headers:
        raw_name = header_bytes(name).lower()
        if raw_name in skipped:
            continue
        response.raw_headers.append((raw_name, header_bytes(value)))
    return response


def json_error(message: Any, status_code: int = 500) -> JSONResponse:
    return finish(
        JSONResponse({"error": str(message)}, status_code=status_code, media_type=JSON_MEDIA_TYPE)
    )
