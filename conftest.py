# Make `import proxy_everything` work when pytest is run from the repository
# root without an editable install.
import os
import sys

import httpx
import pytest

SERVICE_ROOT = os.path.dirname(__file__)
if SERVICE_ROOT not in sys.path:
    sys.path.insert(0, SERVICE_ROOT)

from proxy_everything.auth.gate import expected_authorization  # noqa: E402
from proxy_everything.proxy.forwarder import Forwarder  # noqa: E402
from proxy_everything.vars import PASSWORD_ENV_NAME  # noqa: E402

TEST_PASSWORD = "s3cret"


class CannedStream(httpx.AsyncByteStream):
    """An unread response body, the way a real transport hands it over."""

    def __init__(self, content: bytes):
        self.content = content

    async def __aiter__(self):
        if self.content:
            yield self.content


@pytest.fixture
def proxy_password(monkeypatch):
    """Configure the shared secret for the duration of a test."""
    monkeypatch.setenv(PASSWORD_ENV_NAME, TEST_PASSWORD)
    return TEST_PASSWORD


@pytest.fixture
def auth_headers(proxy_password):
    return {"Authorization": expected_authorization(proxy_password)}


@pytest.fixture
def upstream():
    """
    Fake upstream built on httpx.MockTransport.

    ``upstream.respond(...)`` sets the canned response (or an exception to
    raise), ``upstream.requests`` records what reached the target and
    ``upstream.forwarder()`` returns a Forwarder wired to it.
    """

    class _Upstream:
        def __init__(self):
            self.requests = []
            self._canned = (200, {"content-type": "text/plain"}, b"ok")
            self._error = None

        def respond(self, status_code=200, headers=None, content=b"", error=None):
            self._canned = (status_code, headers or {}, content)
            self._error = error

        def handler(self, request: httpx.Request) -> httpx.Response:
            self.requests.append(request)
            if self._error is not None:
                raise self._error
            status_code, headers, content = self._canned
            return httpx.Response(
                status_code, headers=headers, stream=CannedStream(content)
            )

        def forwarder(self, **kwargs) -> Forwarder:
            return Forwarder(transport=httpx.MockTransport(self.handler), **kwargs)

    return _Upstream()
