import logging
import os
from typing import Optional

from fastapi import APIRouter, Depends, Request
from fastapi.responses import Response
from prometheus_client import CONTENT_TYPE_LATEST, REGISTRY, generate_latest

from proxy_everything.auth import authorize
from proxy_everything.landing import landing_response
from proxy_everything.proxy import (
    Forwarder,
    HtmlRewriter,
    InboundRequest,
    ProxyPipeline,
    RootRelativeAttributeRewriter,
)
from proxy_everything.proxy.forwarder import BODYLESS_METHODS
from proxy_everything.proxy.finisher import finish
from proxy_everything.proxy.headers import header_text
from proxy_everything.vars import PASSWORD_ENV_NAME

router = APIRouter()
logger = logging.getLogger("uvicorn.error")

PROXY_METHODS = ["GET", "POST", "PUT", "DELETE", "PATCH", "HEAD", "OPTIONS"]


def get_proxy_password() -> Optional[str]:
    """Read the shared secret for this request."""
    return os.environ.get(PASSWORD_ENV_NAME)


def get_forwarder() -> Forwarder:
    return Forwarder()


def get_html_rewriter() -> HtmlRewriter:
    return RootRelativeAttributeRewriter()


async def build_inbound_request(request: Request) -> InboundRequest:
    """Capture what the pipeline needs from the ASGI request, path still encoded."""
    raw_path = request.scope.get("raw_path")
    if raw_path:
        path = raw_path.split(b"?", 1)[0].decode("utf-8", "surrogateescape")
    else:
        path = request.url.path

    method = request.method.upper()
    body = b"" if method in BODYLESS_METHODS else await request.body()

    return InboundRequest(
        method=method,
        raw_path=path,
        query=request.url.query,
        scheme=f"{request.url.scheme}:",
        host=request.headers.get("host") or request.url.netloc,
        headers=[
            (header_text(name), header_text(value))
            for name, value in request.headers.raw
        ],
        body=body,
    )


@router.api_route("/", methods=PROXY_METHODS)
async def landing(
    request: Request,
    password: Optional[str] = Depends(get_proxy_password),
) -> Response:
    denied = authorize(password, request.headers.get("authorization"))
    if denied is not None:
        return denied
    return landing_response()


async def metrics(
    request: Request,
    password: Optional[str] = Depends(get_proxy_password),
) -> Response:
    """Prometheus scrape endpoint, behind the same gate as everything else."""
    denied = authorize(password, request.headers.get("authorization"))
    if denied is not None:
        return denied
    return finish(Response(generate_latest(REGISTRY), media_type=CONTENT_TYPE_LATEST))


@router.api_route("/{target:path}", methods=PROXY_METHODS)
async def proxy_all(
    request: Request,
    target: str,
    password: Optional[str] = Depends(get_proxy_password),
    forwarder: Forwarder = Depends(get_forwarder),
    html_rewriter: HtmlRewriter = Depends(get_html_rewriter),
) -> Response:
    """Catch-all route that forwards to the URL encoded in the path."""
    denied = authorize(password, request.headers.get("authorization"))
    if denied is not None:
        return denied

    inbound = await build_inbound_request(request)
    pipeline = ProxyPipeline(forwarder, html_rewriter)
    return await pipeline.handle(inbound)
