import logging
from typing import Optional
from urllib.parse import quote, urljoin, urlsplit, urlunsplit

from proxy_everything.proxy.models import HeaderList

logger = logging.getLogger("uvicorn.error")

REDIRECT_STATUS_CODES = {301, 302, 303, 307, 308}

# Characters encodeURIComponent leaves alone besides alphanumerics
_URI_COMPONENT_SAFE = "-_.!~*'()"


def encode_uri_component(value: str) -> str:
    return quote(value, safe=_URI_COMPONENT_SAFE)


def is_redirect(status_code: int) -> bool:
    return status_code in REDIRECT_STATUS_CODES


def parse_absolute_location(location: str) -> Optional[str]:
    """
    Return the normalized form of ``location`` when it is an absolute URL,
    None when it is a relative reference.
    """
    try:
        parts = urlsplit(location.strip())
    except ValueError:
        return None
    if not parts.scheme:
        return None

    scheme = parts.scheme.lower()
    path = parts.path
    if scheme in ("http", "https"):
        if not parts.netloc:
            return None
        path = path or "/"
    return urlunsplit((scheme, parts.netloc, path, parts.query, parts.fragment))


def rewrite_location(location: str, target_url: Optional[str] = None) -> str:
    """
    Rewrite a ``Location`` value into a proxy-relative path.

    Absolute locations are encoded as a whole. A relative reference is
    resolved against ``target_url`` first when one is given, otherwise it
    is encoded as-is.
    """
    absolute = parse_absolute_location(location)
    if absolute is not None:
        return "/" + encode_uri_component(absolute)

    if target_url:
        resolved = urljoin(target_url, location)
        logger.debug(f"[Redirect] Resolved relative location {location!r} -> {resolved!r}")
        return "/" + encode_uri_component(resolved)

    return "/" + encode_uri_component(location)


def location_text(value: str) -> str:
    """
    Header values are latin-1 views of the raw bytes; a non-ASCII
    ``Location`` is almost always UTF-8.
    """
    try:
        return value.encode("latin-1").decode("utf-8")
    except UnicodeError:
        return value


def rewrite_redirect_headers(
    headers: HeaderList, target_url: Optional[str] = None
) -> HeaderList:
    """
    Return a copy of ``headers`` with the ``Location`` entry rewritten.

    Headers without a ``Location`` come back unchanged.
    """
    rewritten = []
    for name, value in headers:
        if name.lower() == "location" and value:
            value = rewrite_location(location_text(value), target_url)
        rewritten.append((name, value))
    return rewritten


def find_location(headers: HeaderList) -> Optional[str]:
    for name, value in headers:
        if name.lower() == "location":
            return value
    return None
