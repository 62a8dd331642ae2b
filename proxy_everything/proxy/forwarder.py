import logging
from typing import AsyncIterator, Iterable, List, Optional, Tuple, Union

import httpx

from proxy_everything.proxy.headers import (
    HOP_BY_HOP_HEADERS,
    drop_headers,
    header_bytes,
    header_text,
)
from proxy_everything.proxy.models import (
    HeaderList,
    ProxyError,
    ProxyErrorKind,
    TargetDescriptor,
)
from proxy_everything.utils.exception_logging import (
    format_exception_message,
    log_exception_with_details,
)
from proxy_everything.vars import PROXY_TIMEOUT, UPSTREAM_ACCEPT_ENCODING

logger = logging.getLogger("uvicorn.error")

BODYLESS_METHODS = {"GET", "HEAD"}

# Set by the transport itself, or addressed to this proxy rather than the target
TRANSPORT_MANAGED_HEADERS = {"host", "content-length", "authorization"}


def negotiate_accept_encoding(
    client_value: Optional[str], decodable: Iterable[str]
) -> str:
    """
    Narrow the client's ``Accept-Encoding`` to the codings this proxy can
    decode.

    Entries keep their ``q`` parameters. ``*`` expands to the decodable
    codings. A client that sent nothing, or nothing usable, gets
    ``identity`` so no coding it never asked for comes back.
    """
    supported = [c.strip().lower() for c in decodable if c.strip()]
    accepted = []
    for entry in (client_value or "").split(","):
        coding, sep, params = entry.strip().partition(";")
        coding = coding.strip().lower()
        suffix = f";{params.strip()}" if sep else ""
        if coding == "*":
            accepted.extend(f"{c}{suffix}" for c in supported if c not in accepted)
        elif coding == "identity" or coding in supported:
            accepted.append(f"{coding}{suffix}")
    return ", ".join(accepted) or "identity"


class UpstreamResponse:
    """
    An upstream response opened in streaming mode.

    Owns the client that produced it; whoever consumes the body (``relay``
    or ``read_text``) also closes both.
    """

    def __init__(self, response: httpx.Response, client: httpx.AsyncClient):
        self.response = response
        self.client = client

    @property
    def status_code(self) -> int:
        return self.response.status_code

    @property
    def headers(self) -> HeaderList:
        """Response headers as latin-1 views of the bytes the target sent."""
        return [(header_text(k), header_text(v)) for k, v in self.response.headers.raw]

    @property
    def content_type(self) -> str:
        return self.response.headers.get("content-type", "")

    @property
    def encoding(self) -> str:
        return self.response.encoding or "utf-8"

    async def relay(self) -> AsyncIterator[bytes]:
        """Yield the body exactly as received, content-encoding intact."""
        try:
            async for chunk in self.response.aiter_raw():
                yield chunk
        finally:
            await self.aclose()

    async def read_text(self) -> str:
        """Buffer and decode the whole body."""
        try:
            await self.response.aread()
            return self.response.text
        finally:
            await self.aclose()

    async def aclose(self) -> None:
        await self.response.aclose()
        await self.client.aclose()


class Forwarder:
    """Issues the outbound request. Redirects are never followed here."""

    def __init__(
        self,
        timeout: float = PROXY_TIMEOUT,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        decodable_encodings: Iterable[str] = UPSTREAM_ACCEPT_ENCODING,
    ):
        self.timeout = timeout
        self.transport = transport
        self.decodable_encodings = list(decodable_encodings)

    def prepare_headers(self, headers: HeaderList) -> HeaderList:
        client_encoding = ", ".join(
            value for name, value in headers if name.lower() == "accept-encoding"
        )
        outbound = drop_headers(
            headers,
            HOP_BY_HOP_HEADERS | TRANSPORT_MANAGED_HEADERS | {"accept-encoding"},
        )
        outbound.append(
            (
                "accept-encoding",
                negotiate_accept_encoding(client_encoding, self.decodable_encodings),
            )
        )
        return outbound

    def _client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(
            timeout=httpx.Timeout(self.timeout),
            follow_redirects=False,  # Redirects are rewritten, not followed
            transport=self.transport,
        )

    def _wire_headers(self, headers: HeaderList) -> List[Tuple[bytes, bytes]]:
        # Byte pairs go out untouched, httpx would ASCII-encode str values
        return [
            (header_bytes(name), header_bytes(value))
            for name, value in self.prepare_headers(headers)
        ]

    async def forward(
        self,
        target: TargetDescriptor,
        method: str,
        headers: HeaderList,
        body: Optional[bytes] = None,
    ) -> Union[UpstreamResponse, ProxyError]:
        method = (method or "GET").upper()
        content = None if method in BODYLESS_METHODS else (body or b"")

        client = self._client()
        try:
            request = client.build_request(
                method,
                target.request_url,
                headers=self._wire_headers(headers),
                content=content,
            )
            response = await client.send(request, stream=True)
        except httpx.HTTPError as e:
            await client.aclose()
            log_exception_with_details(logger, f"[Forward] {method} {target.url}", e)
            return ProxyError(ProxyErrorKind.FETCH_ERROR, format_exception_message(e))
        except BaseException:
            await client.aclose()
            raise

        logger.info(f"[Forward] {method} {target.url} -> {response.status_code}")
        return UpstreamResponse(response, client)
