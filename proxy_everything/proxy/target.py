import logging
import re
from typing import Union
from urllib.parse import unquote_to_bytes

import httpx

from proxy_everything.proxy.models import ProxyError, ProxyErrorKind, TargetDescriptor

logger = logging.getLogger("uvicorn.error")

SUPPORTED_SCHEMES = ("http", "https")

# A "%" that is not followed by two hex digits
_INVALID_ESCAPE = re.compile(r"%(?![0-9A-Fa-f]{2})")


class MalformedTargetError(ValueError):
    pass


def strict_unquote(value: str) -> str:
    """
    Percent-decode ``value`` as UTF-8, refusing what a browser's
    ``decodeURIComponent`` refuses: stray ``%`` signs and escape sequences
    that do not form valid UTF-8.
    """
    if _INVALID_ESCAPE.search(value):
        raise MalformedTargetError("URI malformed: invalid percent-escape")
    try:
        return unquote_to_bytes(value).decode("utf-8")
    except UnicodeError as e:
        raise MalformedTargetError(f"URI malformed: {e}") from e


def normalize_scheme(scheme: str) -> str:
    """Return ``scheme`` in ``https:`` form."""
    return scheme.rstrip(":").lower() + ":"


def ensure_scheme(url: str, default_scheme: str) -> str:
    if url.lower().startswith(("http://", "https://")):
        return url
    return f"{normalize_scheme(default_scheme)}//{url}"


def resolve_target(
    raw_path: str, query: str, request_scheme: str
) -> Union[TargetDescriptor, ProxyError]:
    """
    Turn ``/<encoded-target-url>`` plus the inbound query string into a
    TargetDescriptor.

    The query string is appended verbatim, it is never decoded or
    re-encoded.
    """
    encoded = raw_path[1:] if raw_path.startswith("/") else raw_path

    try:
        decoded = strict_unquote(encoded)
    except MalformedTargetError as e:
        logger.warning(f"[Target] Cannot decode target path {raw_path!r}: {e}")
        return ProxyError(ProxyErrorKind.MALFORMED_TARGET, str(e))

    candidate = ensure_scheme(decoded, request_scheme)
    if query:
        candidate = f"{candidate}?{query}"

    try:
        url = httpx.URL(candidate)
    except httpx.InvalidURL as e:
        logger.warning(f"[Target] Invalid target URL {candidate!r}: {e}")
        return ProxyError(ProxyErrorKind.MALFORMED_TARGET, f"Invalid URL: {e}")

    if url.scheme not in SUPPORTED_SCHEMES or not url.host:
        logger.warning(f"[Target] Target URL without usable host: {candidate!r}")
        return ProxyError(ProxyErrorKind.MALFORMED_TARGET, f"Invalid URL: {candidate}")

    path, _, target_query = url.raw_path.decode("ascii").partition("?")
    return TargetDescriptor(
        scheme=url.scheme,
        authority=url.netloc.decode("ascii"),
        path=path or "/",
        query=target_query,
        userinfo=url.userinfo.decode("ascii"),
    )
