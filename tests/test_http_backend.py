"""
Tests for the httpx-backed recommendation adapter, driven through
httpx.MockTransport so no socket is opened.
"""

import json

import httpx
import pytest

from app.adapters.http_backend import HttpRecommendationBackend
from app.core.errors import BackendUnavailableError, StreamInterruptedError, UpstreamError
from app.stream.relay import SearchRelay


def make_backend(handler):
    client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    return HttpRecommendationBackend(base_url="http://backend.test/", client=client)


async def byte_chunks(*parts):
    for part in parts:
        yield part


# ── Recommendations ────────────────────────────────────────────────────────────

@pytest.mark.asyncio
async def test_posts_query_to_recommendations_endpoint():
    seen = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        return httpx.Response(200, headers={"content-type": "application/x-ndjson"}, content=b"")

    backend = make_backend(handler)
    response = await backend.open_recommendations("space westerns")
    await response.aclose()
    await backend.aclose()

    assert len(seen) == 1
    assert seen[0].method == "POST"
    assert str(seen[0].url) == "http://backend.test/api/movies/recommendations"
    assert json.loads(seen[0].content) == {"query": "space westerns"}


@pytest.mark.asyncio
async def test_content_type_selects_response_shape():
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, json={"recommendations": []})

    backend = make_backend(handler)
    response = await backend.open_recommendations("q")

    assert response.is_streaming is False
    assert await response.read_json() == {"recommendations": []}
    await response.aclose()


@pytest.mark.asyncio
async def test_streamed_body_is_relayed_incrementally():
    lines = [
        b'{"type": "init", "query": "q"}\n{"type": "mo',
        b'vie", "data": {"id": 1, "title": "Am\xc3',
        b'\xa9lie"}}\n',
    ]

    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(
            200,
            headers={"content-type": "application/x-ndjson"},
            content=byte_chunks(*lines),
        )

    stream = await SearchRelay(make_backend(handler)).open("q")
    snaps = [json.loads(c) async for c in stream.body()]

    assert [len(s["recommendations"]) for s in snaps] == [0, 1, 1]
    assert snaps[-1]["recommendations"][0]["title"] == "Amélie"


@pytest.mark.asyncio
async def test_read_error_mid_stream_becomes_stream_interrupted():
    async def broken():
        yield b'{"type": "movie", "data": {"id": 1}}\n'
        raise httpx.ReadError("connection reset")

    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, headers={"content-type": "application/x-ndjson"}, content=broken())

    response = await make_backend(handler).open_recommendations("q")

    with pytest.raises(StreamInterruptedError):
        async for _ in response.iter_text():
            pass
    await response.aclose()


@pytest.mark.asyncio
async def test_connect_error_becomes_backend_unavailable():
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("refused", request=request)

    with pytest.raises(BackendUnavailableError) as exc_info:
        await make_backend(handler).open_recommendations("q")

    assert exc_info.value.status_code == 502


@pytest.mark.asyncio
async def test_error_status_passes_through_relay():
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(503, json={"detail": "overloaded"})

    with pytest.raises(UpstreamError) as exc_info:
        await SearchRelay(make_backend(handler)).open("q")

    assert exc_info.value.status_code == 503
    assert exc_info.value.message == "overloaded"


# ── Providers ──────────────────────────────────────────────────────────────────

@pytest.mark.asyncio
async def test_providers_returns_backend_json():
    def handler(request: httpx.Request) -> httpx.Response:
        assert str(request.url) == "http://backend.test/api/providers/"
        assert json.loads(request.content) == {"movie_id": 603, "region": "US"}
        return httpx.Response(200, json={"flatrate": [{"provider_name": "Max"}]})

    data = await make_backend(handler).get_providers(603, "US")

    assert data == {"flatrate": [{"provider_name": "Max"}]}


@pytest.mark.asyncio
async def test_providers_error_uses_detail_or_generic_message():
    def detail_handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(404, json={"detail": "Movie not found"})

    def html_handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(500, text="<html>boom</html>")

    with pytest.raises(UpstreamError) as detail_exc:
        await make_backend(detail_handler).get_providers(1, "US")
    with pytest.raises(UpstreamError) as html_exc:
        await make_backend(html_handler).get_providers(1, "US")

    assert (detail_exc.value.status_code, detail_exc.value.message) == (404, "Movie not found")
    assert (html_exc.value.status_code, html_exc.value.message) == (500, "Failed to fetch providers")
