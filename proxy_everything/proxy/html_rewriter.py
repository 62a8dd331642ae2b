"""
Rewriting of root-relative references in proxied HTML documents.

The rewrite is a textual pass over the fully buffered document, not a DOM
transform. Only ``href``, ``src`` and ``action`` attribute values are
handled; CSS ``url(...)``, script literals, ``srcset`` and meta refresh
targets stay untouched.
"""

import re
from typing import Iterable, Protocol

DEFAULT_ATTRIBUTES = ("href", "src", "action")


def is_html(content_type: str) -> bool:
    return "text/html" in (content_type or "")


class HtmlRewriter(Protocol):
    def rewrite(
        self, text: str, request_scheme: str, request_host: str, target_origin: str
    ) -> str: ...


class RootRelativeAttributeRewriter:
    """
    Re-roots ``attr="/path"`` references through the proxy.

    ``<a href="/x">`` on a page fetched from ``https://site.test`` becomes
    ``<a href="https://proxy.host/https://site.test/x">``. Protocol-relative
    references (``//cdn.test/x``) never match.
    """

    def __init__(self, attributes: Iterable[str] = DEFAULT_ATTRIBUTES):
        names = "|".join(re.escape(a) for a in attributes)
        self.pattern = re.compile(f"""((?:{names})=["'])/(?!/)""")

    def rewrite(
        self, text: str, request_scheme: str, request_host: str, target_origin: str
    ) -> str:
        scheme = request_scheme.rstrip(":") + ":"
        prefix = f"{scheme}//{request_host}/{target_origin}/"
        return self.pattern.sub(lambda m: m.group(1) + prefix, text)
