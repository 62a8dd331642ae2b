import os

SERVICE_NAME = os.getenv("SERVICE_NAME", "proxy-everything")

# Name of the environment variable holding the shared secret. The secret
# itself is read per request, see routes.get_proxy_password.
PASSWORD_ENV_NAME = os.getenv("PASSWORD_ENV_NAME", "PASSWORD")
AUTH_USERNAME = "admin"
AUTH_REALM = "Protected"

PROXY_TIMEOUT = float(os.getenv("PROXY_TIMEOUT", "300"))
RESERVED_HEADER_PREFIXES = [
    p.strip().lower()
    for p in os.getenv("RESERVED_HEADER_PREFIXES", "cf-").split(",")
    if p.strip()
]
REWRITE_HTML_URLS = os.getenv("REWRITE_HTML_URLS", "true").lower() == "true"
RESOLVE_RELATIVE_REDIRECTS = (
    os.getenv("RESOLVE_RELATIVE_REDIRECTS", "true").lower() == "true"
)
# Content codings httpx decodes without extra packages. The client's own
# Accept-Encoding is narrowed to these so HTML can always be decoded.
UPSTREAM_ACCEPT_ENCODING = [
    c.strip().lower()
    for c in os.getenv("UPSTREAM_ACCEPT_ENCODING", "gzip, deflate").split(",")
    if c.strip()
]

ENABLE_METRICS = os.getenv("ENABLE_METRICS", "true").lower() == "true"
METRICS_PATH = os.getenv("METRICS_PATH", "/-/metrics")

OTLP_ENDPOINT = os.getenv("OTLP_ENDPOINT")


def _parse_key_value_list(raw: str) -> dict:
    mapping: dict = {}
    if not raw:
        return mapping
    for entry in raw.split(","):
        entry = entry.strip()
        if "=" in entry:
            key, val = entry.split("=", 1)
            key = key.strip()
            val = val.strip()
            if key and val:
                mapping[key] = val
    return mapping


OTLP_HEADERS = _parse_key_value_list(os.getenv("OTLP_HEADERS", ""))
