"""Text embedding providers for the vector store."""

import math
import re
from typing import Protocol

import httpx
import structlog

logger = structlog.get_logger(__name__)


class Embedder(Protocol):
    """Protocol for text embedding providers."""

    dimension: int

    async def embed(self, text: str) -> list[float]:
        """Embed text into a fixed-size vector."""
        ...


class HashEmbedder:
    """Deterministic character-trigram hashing embedder.

    Needs no model; useful when no embedding endpoint is available.
    """

    def __init__(self, dimension: int = 1024):
        self.dimension = dimension

    async def embed(self, text: str) -> list[float]:
        return self.embed_sync(text)

    def embed_sync(self, text: str) -> list[float]:
        vector = [0.0] * self.dimension
        normalized = re.sub(r"\s+", " ", text.lower()).strip()

        for i in range(len(normalized) - 2):
            h = 0
            for ch in normalized[i : i + 3]:
                h = (h * 31 + ord(ch)) & 0x7FFFFFFF
            vector[h % self.dimension] += 1.0

        norm = math.sqrt(sum(v * v for v in vector)) or 1.0
        return [v / norm for v in vector]


class OllamaEmbedder:
    """Embeddings from a local Ollama server."""

    def __init__(
        self,
        base_url: str = "http://localhost:11434",
        model: str = "mxbai-embed-large",
        dimension: int = 1024,
        timeout: float = 30.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self.base_url = base_url.rstrip("/")
        self.model = model
        self.dimension = dimension
        self.timeout = timeout
        self._transport = transport

    async def embed(self, text: str) -> list[float]:
        async with httpx.AsyncClient(timeout=self.timeout, transport=self._transport) as client:
            response = await client.post(
                f"{self.base_url}/api/embeddings",
                json={"model": self.model, "prompt": text},
            )
            response.raise_for_status()
            embedding = response.json().get("embedding") or []

        if len(embedding) != self.dimension:
            raise ValueError(
                f"Embedding dimension mismatch: expected {self.dimension}, got {len(embedding)}"
            )
        return embedding


def create_embedder(backend: str, ollama_url: str, model: str, dimension: int) -> Embedder:
    """Build the embedder named by configuration."""
    if backend == "ollama":
        logger.info("Using Ollama embeddings", url=ollama_url, model=model)
        return OllamaEmbedder(base_url=ollama_url, model=model, dimension=dimension)
    return HashEmbedder(dimension=dimension)
