from typing import Iterable, Optional, Sequence, Union

from proxy_everything.proxy.models import HeaderList
from proxy_everything.vars import RESERVED_HEADER_PREFIXES

# Hop-by-hop headers that should NOT be forwarded (RFC 2616)
HOP_BY_HOP_HEADERS = {
    "connection",
    "keep-alive",
    "proxy-authenticate",
    "proxy-authorization",
    "te",
    "trailers",
    "transfer-encoding",
    "upgrade",
}


def is_reserved_header(name: str, prefixes: Optional[Sequence[str]] = None) -> bool:
    """True when the header was injected by the hosting edge."""
    if prefixes is None:
        prefixes = RESERVED_HEADER_PREFIXES
    lowered = str(name or "").lower()
    return any(lowered.startswith(prefix) for prefix in prefixes)


def filter_headers(
    headers: Iterable[tuple], prefixes: Optional[Sequence[str]] = None
) -> HeaderList:
    """
    Return a copy of ``headers`` without edge-injected entries.

    Order and repeated names of the remaining entries are preserved, so the
    function is idempotent.
    """
    return [
        (name, value)
        for name, value in headers
        if not is_reserved_header(name, prefixes)
    ]


def drop_headers(headers: Iterable[tuple], names: Iterable[str]) -> HeaderList:
    dropped = {n.lower() for n in names}
    return [(name, value) for name, value in headers if name.lower() not in dropped]


def header_text(raw: bytes) -> str:
    """Lossless str view of a raw header name or value."""
    return raw.decode("latin-1")


def header_bytes(value: Union[str, bytes]) -> bytes:
    """
    Back to the wire form of ``value``.

    Values built by ``header_text`` round-trip exactly; text outside
    latin-1 is sent as UTF-8.
    """
    if isinstance(value, bytes):
        return value
    try:
        return value.encode("latin-1")
    except UnicodeEncodeError:
        return value.encode("utf-8")
