"""Tests for the Ollama embedding client against a mocked HTTP transport."""

import json

import httpx
import pytest

from localctx.embedder import OllamaEmbedder
from localctx.errors import EmbeddingError


def _embedder(handler) -> OllamaEmbedder:
    return OllamaEmbedder("http://ollama.test/", "nomic-embed-text", transport=httpx.MockTransport(handler))


class TestOllamaEmbedder:
    @pytest.mark.asyncio
    async def test_embed_posts_model_and_input(self):
        seen = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append((request.url.path, json.loads(request.content)))
            return httpx.Response(200, json={"embeddings": [[0.1, 0.2, 0.3]]})

        emb = _embedder(handler)
        try:
            assert await emb.embed("hello") == [0.1, 0.2, 0.3]
        finally:
            await emb.aclose()
        assert seen == [("/api/embed", {"model": "nomic-embed-text", "input": ["hello"]})]

    @pytest.mark.asyncio
    async def test_dimension_is_probed_once(self):
        calls = []

        def handler(request):
            calls.append(request)
            return httpx.Response(200, json={"embeddings": [[0.0] * 768]})

        emb = _embedder(handler)
        try:
            assert await emb.get_dimension() == 768
            assert await emb.get_dimension() == 768
        finally:
            await emb.aclose()
        assert len(calls) == 1

    @pytest.mark.asyncio
    async def test_http_error_is_wrapped(self):
        emb = _embedder(lambda request: httpx.Response(500, text="model not loaded"))
        try:
            with pytest.raises(EmbeddingError, match="request failed"):
                await emb.embed("hello")
        finally:
            await emb.aclose()

    @pytest.mark.asyncio
    async def test_connection_error_is_wrapped(self):
        def handler(request):
            raise httpx.ConnectError("connection refused", request=request)

        emb = _embedder(handler)
        try:
            with pytest.raises(EmbeddingError):
                await emb.embed("hello")
        finally:
            await emb.aclose()

    @pytest.mark.asyncio
    async def test_missing_embeddings_key(self):
        emb = _embedder(lambda request: httpx.Response(200, json={"error": "nope"}))
        try:
            with pytest.raises(EmbeddingError, match="Invalid"):
                await emb.embed("hello")
        finally:
            await emb.aclose()

    @pytest.mark.asyncio
    async def test_count_mismatch(self):
        emb = _embedder(lambda request: httpx.Response(200, json={"embeddings": []}))
        try:
            with pytest.raises(EmbeddingError, match="0 embeddings"):
                await emb.embed("hello")
        finally:
            await emb.aclose()
