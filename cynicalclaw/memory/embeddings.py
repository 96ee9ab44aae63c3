"""Embedding client and vector helpers.

Embeddings come from an Ollama-compatible ``/api/embeddings`` endpoint. When
the endpoint is down the client returns None and retrieval falls back to
lexical search only.
"""

from __future__ import annotations

import math
from typing import Optional, Sequence

import httpx
from loguru import logger

EMBEDDING_DIMENSION = 384


def cosine_similarity(a: Sequence[float], b: Sequence[float]) -> float:
    dot = sum(x * y for x, y in zip(a, b))
    norm_a = math.sqrt(sum(x * x for x in a))
    norm_b = math.sqrt(sum(y * y for y in b))
    if norm_a == 0 or norm_b == 0:
        return 0.0
    return dot / (norm_a * norm_b)


def cosine_distance(a: Sequence[float], b: Sequence[float]) -> float:
    return 1.0 - cosine_similarity(a, b)


class EmbeddingClient:
    """Fetch fixed-dimension text embeddings over HTTP."""

    def __init__(
        self,
        base_url: str = "http://localhost:11434",
        model: str = "nomic-embed-text",
        dimension: int = EMBEDDING_DIMENSION,
        timeout: float = 10.0,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self.model = model
        self.dimension = dimension
        self._http = httpx.AsyncClient(timeout=timeout)

    async def embed(self, text: str) -> Optional[list[float]]:
        """Return the embedding for ``text``, or None if unavailable or off-dimension."""
        try:
            resp = await self._http.post(
                f"{self.base_url}/api/embeddings",
                json={"model": self.model, "prompt": text},
            )
            resp.raise_for_status()
            embedding = resp.json().get("embedding")
        except (httpx.HTTPError, ValueError) as e:
            logger.warning(f"Embedding failed, text will be stored without semantic search: {e}")
            return None

        if not embedding or len(embedding) != self.dimension:
            logger.warning(
                f"Embedding model returned {len(embedding or [])} dims, expected {self.dimension}"
            )
            return None
        return [float(x) for x in embedding]

    async def close(self) -> None:
        await self._http.aclose()
