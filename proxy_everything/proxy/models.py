"""
Per-request value objects flowing through the proxy pipeline.

Nothing here is persisted or shared between requests. Each stage of the
pipeline takes one of these and produces a new one.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import List, Tuple

HeaderList = List[Tuple[str, str]]


@dataclass(frozen=True)
class InboundRequest:
    """The caller's request as handed over by the routing layer.

    ``raw_path`` is the undecoded request path, ``query`` the undecoded
    query string without its leading ``?``. ``scheme`` carries a trailing
    colon (``https:``), ``host`` includes the port when one was sent.
    """

    method: str
    raw_path: str
    query: str
    scheme: str
    host: str
    headers: HeaderList = field(default_factory=list)
    body: bytes = b""


@dataclass(frozen=True)
class TargetDescriptor:
    """Where a request goes. ``authority`` is host[:port], ``userinfo`` stays raw."""

    scheme: str
    authority: str
    path: str
    query: str = ""
    userinfo: str = ""

    @property
    def origin(self) -> str:
        return f"{self.scheme}://{self.authority}"

    @property
    def url(self) -> str:
        query = f"?{self.query}" if self.query else ""
        return f"{self.origin}{self.path}{query}"

    @property
    def request_url(self) -> str:
        """``url`` plus any ``user:pass@``. Only the outbound request sees it."""
        if not self.userinfo:
            return self.url
        return self.url.replace("//", f"//{self.userinfo}@", 1)


class ProxyErrorKind(str, Enum):
    CONFIG_MISSING = "config_missing"
    UNAUTHORIZED = "unauthorized"
    MALFORMED_TARGET = "malformed_target"
    FETCH_ERROR = "fetch_error"


@dataclass(frozen=True)
class ProxyError:
    kind: ProxyErrorKind
    message: str
