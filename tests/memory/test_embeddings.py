"""Tests for the embedding client and vector helpers."""

import json

import httpx
import pytest

from cynicalclaw.memory.embeddings import EmbeddingClient, cosine_distance, cosine_similarity


def _client(handler, dimension=3) -> EmbeddingClient:
    client = EmbeddingClient("http://embed.test/", model="tiny", dimension=dimension)
    client._http = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    return client


def test_cosine_similarity():
    assert cosine_similarity([1, 0], [1, 0]) == pytest.approx(1.0)
    assert cosine_similarity([1, 0], [0, 1]) == pytest.approx(0.0)
    assert cosine_similarity([1, 0], [-1, 0]) == pytest.approx(-1.0)


def test_cosine_zero_vector():
    assert cosine_similarity([0, 0], [1, 1]) == 0.0
    assert cosine_distance([0, 0], [1, 1]) == 1.0


@pytest.mark.asyncio
async def test_embed_returns_vector():
    seen = {}

    def handler(request):
        seen["url"] = str(request.url)
        seen["body"] = json.loads(request.content)
        return httpx.Response(200, json={"embedding": [1, 2, 3]})

    client = _client(handler)
    assert await client.embed("hello") == [1.0, 2.0, 3.0]
    assert seen["url"] == "http://embed.test/api/embeddings"
    assert seen["body"] == {"model": "tiny", "prompt": "hello"}
    await client.close()


@pytest.mark.asyncio
async def test_embed_wrong_dimension_returns_none():
    client = _client(lambda r: httpx.Response(200, json={"embedding": [1, 2]}))
    assert await client.embed("hello") is None


@pytest.mark.asyncio
async def test_embed_server_error_returns_none():
    client = _client(lambda r: httpx.Response(503))
    assert await client.embed("hello") is None


@pytest.mark.asyncio
async def test_embed_unreachable_returns_none():
    def handler(request):
        raise httpx.ConnectError("refused")

    assert await _client(handler).embed("hello") is None
