import logging
from typing import Optional

import httpx
from fastapi.responses import Response, StreamingResponse
from opentelemetry import trace

from proxy_everything.proxy.finisher import copy_upstream_headers, finish, json_error
from proxy_everything.proxy.forwarder import Forwarder, UpstreamResponse
from proxy_everything.proxy.headers import filter_headers
from proxy_everything.proxy.html_rewriter import (
    HtmlRewriter,
    RootRelativeAttributeRewriter,
    is_html,
)
from proxy_everything.proxy.models import (
    InboundRequest,
    ProxyError,
    ProxyErrorKind,
    TargetDescriptor,
)
from proxy_everything.proxy.redirects import (
    find_location,
    is_redirect,
    rewrite_redirect_headers,
)
from proxy_everything.proxy.target import resolve_target
from proxy_everything.utils.exception_logging import (
    format_exception_message,
    log_exception_with_details,
)
from proxy_everything.utils.traced_requests import traced_request
from proxy_everything.vars import REWRITE_HTML_URLS, RESOLVE_RELATIVE_REDIRECTS

logger = logging.getLogger("uvicorn.error")
tracer = trace.get_tracer(__name__)


def error_response(error: ProxyError) -> Response:
    return json_error(error.message, status_code=500)


class ProxyPipeline:
    """
    Target Resolver -> Header Filter -> Forwarder -> rewrite -> finish.

    Every stage returns either its value or a ProxyError; the first error
    ends the pipeline with a JSON error response.
    """

    def __init__(
        self,
        forwarder: Forwarder,
        html_rewriter: Optional[HtmlRewriter] = None,
        rewrite_html: bool = REWRITE_HTML_URLS,
        resolve_relative_redirects: bool = RESOLVE_RELATIVE_REDIRECTS,
    ):
        self.forwarder = forwarder
        self.html_rewriter = html_rewriter or RootRelativeAttributeRewriter()
        self.rewrite_html = rewrite_html
        self.resolve_relative_redirects = resolve_relative_redirects

    async def handle(self, inbound: InboundRequest) -> Response:
        with traced_request(
            tracer,
            operation="proxy_request",
            method=inbound.method,
            target=None,
            start_message=f"[Proxy] {inbound.method} {inbound.raw_path}",
        ) as span:
            target = resolve_target(inbound.raw_path, inbound.query, inbound.scheme)
            if isinstance(target, ProxyError):
                span.set_attribute("proxy.error", target.kind.value)
                return error_response(target)
            span.set_attribute("proxy.target_url", target.url)

            headers = filter_headers(inbound.headers)
            logger.debug(
                f"[Proxy] Forwarding {len(headers)} of {len(inbound.headers)} headers to {target.url}"
            )

            upstream = await self.forwarder.forward(
                target, inbound.method, headers, inbound.body
            )
            if isinstance(upstream, ProxyError):
                span.set_attribute("proxy.error", upstream.kind.value)
                return error_response(upstream)
            span.set_attribute("proxy.status_code", upstream.status_code)

            if is_redirect(upstream.status_code):
                span.set_attribute("proxy.rewrite", "redirect")
                return self.redirect_response(upstream, target)

            if (
                self.rewrite_html
                and inbound.method.upper() != "HEAD"
                and is_html(upstream.content_type)
            ):
                span.set_attribute("proxy.rewrite", "html")
                return await self.html_response(upstream, inbound, target)

            span.set_attribute("proxy.rewrite", "none")
            return self.passthrough_response(upstream)

    def passthrough_response(
        self, upstream: UpstreamResponse, headers=None
    ) -> Response:
        response = StreamingResponse(upstream.relay(), status_code=upstream.status_code)
        copy_upstream_headers(
            response, upstream.headers if headers is None else headers
        )
        return finish(response)

    def redirect_response(
        self, upstream: UpstreamResponse, target: TargetDescriptor
    ) -> Response:
        headers = upstream.headers
        location = find_location(headers)
        if not location:
            return self.passthrough_response(upstream)

        base = target.url if self.resolve_relative_redirects else None
        rewritten = rewrite_redirect_headers(headers, base)
        logger.info(
            f"[Proxy] {upstream.status_code} redirect {location!r} -> {find_location(rewritten)!r}"
        )
        return self.passthrough_response(upstream, rewritten)

    async def html_response(
        self,
        upstream: UpstreamResponse,
        inbound: InboundRequest,
        target: TargetDescriptor,
    ) -> Response:
        try:
            text = await upstream.read_text()
        except httpx.HTTPError as e:
            log_exception_with_details(logger, f"[Proxy] Reading {target.url}", e)
            return error_response(
                ProxyError(ProxyErrorKind.FETCH_ERROR, format_exception_message(e))
            )

        rewritten = self.html_rewriter.rewrite(
            text, inbound.scheme, inbound.host, target.origin
        )
        body = rewritten.encode(upstream.encoding, errors="xmlcharrefreplace")

        response = Response(content=body, status_code=upstream.status_code)
        # The body was decoded and changed, the upstream framing no longer applies
        copy_upstream_headers(
            response, upstream.headers, skip=("content-length", "content-encoding")
        )
        return finish(response)
