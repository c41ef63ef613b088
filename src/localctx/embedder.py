"""Embedding providers: protocol plus an Ollama /api/embed client."""

import logging
from typing import Optional, Protocol

import httpx

from .errors import EmbeddingError

log = logging.getLogger("localctx.embedder")


class EmbeddingProvider(Protocol):
    """Anything that turns text into a fixed-length vector.

    Implementations are expected to be deterministic for identical input.
    """

    async def embed(self, text: str) -> list[float]:
        ...


class OllamaEmbedder:
    """Generate embeddings via Ollama's /api/embed endpoint."""

    def __init__(
        self,
        base_url: str,
        model: str,
        timeout: float = 120.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.base_url = base_url.rstrip("/")
        self.model = model
        self._client = httpx.AsyncClient(base_url=self.base_url, timeout=timeout, transport=transport)
        self._dim: Optional[int] = None

    async def _embed_request(self, texts: list[str]) -> list[list[float]]:
        try:
            resp = await self._client.post(
                "/api/embed",
                json={"model": self.model, "input": texts},
            )
            resp.raise_for_status()
            data = resp.json()
            vectors = data["embeddings"]
        except httpx.HTTPError as e:
            raise EmbeddingError(f"Ollama embed request failed: {e}") from e
        except (KeyError, ValueError, TypeError) as e:
            raise EmbeddingError(f"Invalid Ollama embed response: {e}") from e

        if len(vectors) != len(texts):
            raise EmbeddingError(f"Ollama returned {len(vectors)} embeddings for {len(texts)} inputs")
        return [[float(x) for x in vec] for vec in vectors]

    async def get_dimension(self) -> int:
        if self._dim is None:
            vecs = await self._embed_request(["dimension probe"])
            self._dim = len(vecs[0])
            log.info("Embedding dimension: %d (model: %s)", self._dim, self.model)
        return self._dim

    async def embed(self, text: str) -> list[float]:
        vecs = await self._embed_request([text])
        return vecs[0]

    async def aclose(self):
        await self._client.aclose()
