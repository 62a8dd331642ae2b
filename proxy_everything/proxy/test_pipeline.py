import gzip
import json

import httpx
import pytest
from fastapi.responses import StreamingResponse

from proxy_everything.proxy.models import InboundRequest
from proxy_everything.proxy.pipeline import ProxyPipeline
from proxy_everything.proxy.redirects import encode_uri_component


def _inbound(target="https://example.com/", method="GET", query="", headers=None, body=b""):
    return InboundRequest(
        method=method,
        raw_path="/" + encode_uri_component(target),
        query=query,
        scheme="https:",
        host="proxy.test",
        headers=headers if headers is not None else [("accept", "*/*")],
        body=body,
    )


async def _body(response):
    if isinstance(response, StreamingResponse):
        return b"".join([chunk async for chunk in response.body_iterator])
    return response.body


def _assert_finished(response):
    assert response.headers["cache-control"] == "no-store"
    assert response.headers["pragma"] == "no-cache"
    assert response.headers["expires"] == "0"
    assert response.headers["access-control-allow-origin"] == "*"
    assert (
        response.headers["access-control-allow-methods"]
        == "GET, POST, PUT, DELETE, OPTIONS"
    )
    assert response.headers["access-control-allow-headers"] == "*"


class TestPassthrough:
    @pytest.mark.asyncio
    async def test_plain_forward(self, upstream):
        upstream.respond(200, {"content-type": "text/plain"}, b"Hello, World!")
        pipeline = ProxyPipeline(upstream.forwarder())

        response = await pipeline.handle(
            _inbound(headers=[("cf-connecting-ip", "1.1.1.1"), ("accept", "*/*")])
        )

        assert response.status_code == 200
        assert await _body(response) == b"Hello, World!"
        assert response.headers["content-type"] == "text/plain"
        _assert_finished(response)

        sent = upstream.requests[0]
        assert str(sent.url) == "https://example.com/"
        assert "cf-connecting-ip" not in sent.headers
        assert sent.headers["accept"] == "*/*"

    @pytest.mark.asyncio
    async def test_query_string_forwarded(self, upstream):
        pipeline = ProxyPipeline(upstream.forwarder())

        response = await pipeline.handle(
            _inbound("https://example.com/search", query="q=a%20b&n=1")
        )
        await _body(response)

        assert str(upstream.requests[0].url) == "https://example.com/search?q=a%20b&n=1"

    @pytest.mark.asyncio
    async def test_post_body_and_status(self, upstream):
        upstream.respond(201, {"content-type": "application/json"}, b'{"id": 7}')
        pipeline = ProxyPipeline(upstream.forwarder())

        response = await pipeline.handle(
            _inbound("https://api.test/items", method="POST", body=b'{"a": 1}')
        )

        assert response.status_code == 201
        assert json.loads(await _body(response)) == {"id": 7}
        assert upstream.requests[0].content == b'{"a": 1}'

    @pytest.mark.asyncio
    async def test_upstream_cache_headers_overridden(self, upstream):
        upstream.respond(
            200,
            {
                "content-type": "text/plain",
                "cache-control": "public, max-age=3600",
                "access-control-allow-origin": "https://site.test",
            },
            b"x",
        )
        pipeline = ProxyPipeline(upstream.forwarder())

        response = await pipeline.handle(_inbound())
        await _body(response)

        assert response.headers.getlist("cache-control") == ["no-store"]
        assert response.headers.getlist("access-control-allow-origin") == ["*"]

    @pytest.mark.asyncio
    async def test_set_cookie_multiplicity(self, upstream):
        upstream.respond(
            200,
            [("content-type", "text/plain"), ("set-cookie", "a=1"), ("set-cookie", "b=2")],
            b"x",
        )
        pipeline = ProxyPipeline(upstream.forwarder())

        response = await pipeline.handle(_inbound())
        await _body(response)

        assert response.headers.getlist("set-cookie") == ["a=1", "b=2"]

    @pytest.mark.asyncio
    async def test_non_ascii_headers_in_both_directions(self, upstream):
        cookie = "name=café".encode("utf-8")
        disposition = 'attachment; filename="中.txt"'.encode("utf-8")
        upstream.respond(
            200,
            [
                (b"content-type", b"application/octet-stream"),
                (b"content-disposition", disposition),
            ],
            b"data",
        )
        pipeline = ProxyPipeline(upstream.forwarder())

        response = await pipeline.handle(
            _inbound(headers=[("cookie", cookie.decode("latin-1"))])
        )

        assert response.status_code == 200
        assert await _body(response) == b"data"
        assert (b"content-disposition", disposition) in response.raw_headers
        sent = upstream.requests[0].headers.raw
        assert [v for k, v in sent if k.lower() == b"cookie"] == [cookie]

    @pytest.mark.asyncio
    async def test_client_accept_encoding_respected(self, upstream):
        pipeline = ProxyPipeline(upstream.forwarder())

        response = await pipeline.handle(
            _inbound(headers=[("accept-encoding", "identity")])
        )
        await _body(response)

        assert upstream.requests[0].headers["accept-encoding"] == "identity"

    @pytest.mark.asyncio
    async def test_no_client_accept_encoding_means_identity(self, upstream):
        pipeline = ProxyPipeline(upstream.forwarder())

        response = await pipeline.handle(_inbound(headers=[]))
        await _body(response)

        assert upstream.requests[0].headers["accept-encoding"] == "identity"


class TestRedirects:
    @pytest.mark.asyncio
    async def test_absolute_location(self, upstream):
        upstream.respond(
            302, {"location": "https://example.com/new"}, b"Redirecting..."
        )
        pipeline = ProxyPipeline(upstream.forwarder())

        response = await pipeline.handle(_inbound())

        assert response.status_code == 302
        assert response.headers["location"] == "/https%3A%2F%2Fexample.com%2Fnew"
        assert await _body(response) == b"Redirecting..."
        _assert_finished(response)

    @pytest.mark.asyncio
    async def test_html_redirect_body_not_rewritten(self, upstream):
        upstream.respond(
            301,
            {"location": "https://example.com/new", "content-type": "text/html"},
            b'<a href="/new">moved</a>',
        )
        pipeline = ProxyPipeline(upstream.forwarder())

        response = await pipeline.handle(_inbound())

        assert await _body(response) == b'<a href="/new">moved</a>'

    @pytest.mark.asyncio
    async def test_relative_location_resolved(self, upstream):
        upstream.respond(303, {"location": "/login"})
        pipeline = ProxyPipeline(upstream.forwarder(), resolve_relative_redirects=True)

        response = await pipeline.handle(_inbound("https://example.com/app/page"))
        await _body(response)

        assert response.headers["location"] == "/https%3A%2F%2Fexample.com%2Flogin"

    @pytest.mark.asyncio
    async def test_relative_location_encoded_raw(self, upstream):
        upstream.respond(307, {"location": "/login"})
        pipeline = ProxyPipeline(upstream.forwarder(), resolve_relative_redirects=False)

        response = await pipeline.handle(_inbound("https://example.com/app/page"))
        await _body(response)

        assert response.headers["location"] == "/%2Flogin"

    @pytest.mark.asyncio
    async def test_without_location(self, upstream):
        upstream.respond(302, {"content-type": "text/plain"}, b"no location")
        pipeline = ProxyPipeline(upstream.forwarder())

        response = await pipeline.handle(_inbound())

        assert response.status_code == 302
        assert "location" not in response.headers
        assert await _body(response) == b"no location"
        _assert_finished(response)

    @pytest.mark.asyncio
    async def test_utf8_location(self, upstream):
        upstream.respond(302, [(b"location", "https://example.com/café".encode("utf-8"))])
        pipeline = ProxyPipeline(upstream.forwarder())

        response = await pipeline.handle(_inbound())
        await _body(response)

        assert response.headers["location"] == "/https%3A%2F%2Fexample.com%2Fcaf%C3%A9"


class TestHtml:
    @pytest.mark.asyncio
    async def test_root_relative_references_rewritten(self, upstream):
        upstream.respond(
            200,
            {"content-type": "text/html; charset=utf-8"},
            b'<a href="/x">x</a><img src="//cdn.test/i.png">',
        )
        pipeline = ProxyPipeline(upstream.forwarder(), rewrite_html=True)

        response = await pipeline.handle(_inbound("https://site.test/page"))
        body = await _body(response)

        assert body == (
            b'<a href="https://proxy.test/https://site.test/x">x</a>'
            b'<img src="//cdn.test/i.png">'
        )
        assert response.headers["content-length"] == str(len(body))
        assert response.headers["content-type"] == "text/html; charset=utf-8"
        _assert_finished(response)

    @pytest.mark.asyncio
    async def test_compressed_html_decoded(self, upstream):
        upstream.respond(
            200,
            {"content-type": "text/html", "content-encoding": "gzip"},
            gzip.compress(b'<form action="/login"></form>'),
        )
        pipeline = ProxyPipeline(upstream.forwarder(), rewrite_html=True)

        response = await pipeline.handle(_inbound("https://site.test/"))

        assert "content-encoding" not in response.headers
        assert await _body(response) == (
            b'<form action="https://proxy.test/https://site.test/login"></form>'
        )

    @pytest.mark.asyncio
    async def test_origin_keeps_port(self, upstream):
        upstream.respond(200, {"content-type": "text/html"}, b'<a href="/a">')
        pipeline = ProxyPipeline(upstream.forwarder(), rewrite_html=True)

        response = await pipeline.handle(_inbound("http://localhost:8080/deep/page"))

        assert await _body(response) == (
            b'<a href="https://proxy.test/http://localhost:8080/a">'
        )

    @pytest.mark.asyncio
    async def test_rewrite_disabled(self, upstream):
        upstream.respond(200, {"content-type": "text/html"}, b'<a href="/x">')
        pipeline = ProxyPipeline(upstream.forwarder(), rewrite_html=False)

        response = await pipeline.handle(_inbound())

        assert isinstance(response, StreamingResponse)
        assert await _body(response) == b'<a href="/x">'

    @pytest.mark.asyncio
    async def test_head_not_buffered(self, upstream):
        upstream.respond(200, {"content-type": "text/html"}, b"")
        pipeline = ProxyPipeline(upstream.forwarder(), rewrite_html=True)

        response = await pipeline.handle(_inbound(method="HEAD"))

        assert isinstance(response, StreamingResponse)

    @pytest.mark.asyncio
    async def test_non_ascii_upstream_header(self, upstream):
        disposition = 'inline; filename="中.html"'.encode("utf-8")
        upstream.respond(
            200,
            [(b"content-type", b"text/html"), (b"content-disposition", disposition)],
            b'<a href="/x">',
        )
        pipeline = ProxyPipeline(upstream.forwarder(), rewrite_html=True)

        response = await pipeline.handle(_inbound("https://site.test/"))

        assert response.body == b'<a href="https://proxy.test/https://site.test/x">'
        assert (b"content-disposition", disposition) in response.raw_headers


class TestErrors:
    @pytest.mark.asyncio
    async def test_malformed_target(self, upstream):
        pipeline = ProxyPipeline(upstream.forwarder())
        inbound = InboundRequest(
            method="GET",
            raw_path="/%E0%A4%A",
            query="",
            scheme="https:",
            host="proxy.test",
        )

        response = await pipeline.handle(inbound)

        assert response.status_code == 500
        assert "error" in json.loads(response.body)
        assert response.headers["content-type"] == "application/json; charset=utf-8"
        _assert_finished(response)
        assert upstream.requests == []

    @pytest.mark.asyncio
    async def test_fetch_error(self, upstream):
        upstream.respond(error=httpx.ConnectError("connection refused"))
        pipeline = ProxyPipeline(upstream.forwarder())

        response = await pipeline.handle(_inbound())

        assert response.status_code == 500
        assert json.loads(response.body) == {"error": "connection refused"}
        _assert_finished(response)
