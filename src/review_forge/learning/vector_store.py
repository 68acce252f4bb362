"""
Vector store for review interactions (Qdrant).

Stores each interaction's diff context and comment as an embedding so
similar past reviews can be recalled. Every operation degrades to an
empty result or a logged no-op when Qdrant is unreachable.
"""

from __future__ import annotations

from typing import Any, Optional

import structlog
from qdrant_client import AsyncQdrantClient, models

from review_forge.learning.embeddings import Embedder, HashEmbedder
from review_forge.models import RetrievedPattern, ReviewInteraction

logger = structlog.get_logger(__name__)

MAX_DIFF_CONTEXT = 2000


class VectorStore:
    """Semantic index of review interactions."""

    name = "qdrant"

    def __init__(
        self,
        url: str = "http://localhost:6333",
        collection: str = "review_interactions",
        embedder: Optional[Embedder] = None,
        api_key: Optional[str] = None,
        client: Optional[AsyncQdrantClient] = None,
    ):
        """
        Initialize the vector store.

        Args:
            url: Qdrant URL
            collection: Collection holding interactions
            embedder: Embedding provider (default HashEmbedder)
            api_key: Optional Qdrant API key
            client: Pre-built client, mainly for tests
        """
        self.url = url
        self.collection = collection
        self.embedder = embedder or HashEmbedder()
        self._api_key = api_key
        self._client: Optional[AsyncQdrantClient] = client

    async def connect(self) -> bool:
        """Connect and ensure the collection exists.

        Returns:
            True if the store is usable
        """
        try:
            if self._client is None:
                self._client = AsyncQdrantClient(url=self.url, api_key=self._api_key)

            existing = await self._client.get_collections()
            if not any(c.name == self.collection for c in existing.collections):
                await self._client.create_collection(
                    collection_name=self.collection,
                    vectors_config=models.VectorParams(
                        size=self.embedder.dimension,
                        distance=models.Distance.COSINE,
                    ),
                )
                logger.info("Created Qdrant collection", collection=self.collection)

            logger.info("Connected to Qdrant", url=self.url, collection=self.collection)
            return True
        except Exception as e:
            logger.error("Failed to initialize Qdrant", url=self.url, error=str(e))
            self._client = None
            return False

    async def close(self) -> None:
        """Close the Qdrant connection."""
        if self._client:
            await self._client.close()
            self._client = None

    async def __aenter__(self):
        await self.connect()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.close()

    @property
    def available(self) -> bool:
        return self._client is not None

    # =========================================================================
    # KnowledgeSink
    # =========================================================================

    async def store_interaction(self, interaction: ReviewInteraction) -> bool:
        """Embed and insert an interaction.

        Create-only: a point that already exists keeps its payload, so a
        replayed write cannot reset a recorded approval.
        """
        if not self._client:
            return False

        try:
            existing = await self._client.retrieve(
                collection_name=self.collection,
                ids=[interaction.id],
                with_payload=False,
            )
            if existing:
                logger.debug("Interaction already in Qdrant", id=interaction.id)
                return True

            vector = await self.embedder.embed(
                f"REVIEW: {interaction.diff_context}\nCOMMENT: {interaction.review_comment}"
            )
            await self._client.upsert(
                collection_name=self.collection,
                points=[
                    models.PointStruct(
                        id=interaction.id,
                        vector=vector,
                        payload=self._to_payload(interaction),
                    )
                ],
                wait=True,
            )
            return True
        except Exception as e:
            logger.warning("Failed to store interaction in Qdrant", id=interaction.id, error=str(e))
            return False

    async def update_approval(self, interaction_id: str, approved: bool) -> bool:
        """Record approval if the interaction is still undecided."""
        if not self._client:
            return False

        try:
            points = await self._client.retrieve(
                collection_name=self.collection,
                ids=[interaction_id],
                with_payload=True,
            )
            if not points:
                logger.debug("Interaction not in Qdrant", id=interaction_id)
                return False
            if (points[0].payload or {}).get("approved") is not None:
                return False

            await self._client.set_payload(
                collection_name=self.collection,
                payload={"approved": approved},
                points=[interaction_id],
                wait=True,
            )
            return True
        except Exception as e:
            logger.warning("Failed to update approval in Qdrant", id=interaction_id, error=str(e))
            return False

    # =========================================================================
    # SemanticIndex
    # =========================================================================

    async def search_similar(self, query: str, repo: str, limit: int = 10) -> list[RetrievedPattern]:
        """Nearest interactions to ``query`` within a repo."""
        if not self._client:
            return []

        try:
            vector = await self.embedder.embed(query)
            response = await self._client.query_points(
                collection_name=self.collection,
                query=vector,
                limit=limit,
                query_filter=self._repo_filter(repo),
                with_payload=True,
            )
            return [self._to_pattern(point.payload or {}, point.score) for point in response.points]
        except Exception as e:
            logger.warning("Failed to search Qdrant", repo=repo, error=str(e))
            return []

    # =========================================================================
    # Maintenance
    # =========================================================================

    async def clear_repo(self, repo: str) -> bool:
        """Delete every interaction stored for a repo."""
        if not self._client:
            return False

        try:
            await self._client.delete(
                collection_name=self.collection,
                points_selector=models.FilterSelector(filter=self._repo_filter(repo)),
                wait=True,
            )
            logger.info("Cleared repo from Qdrant", repo=repo)
            return True
        except Exception as e:
            logger.warning("Failed to clear repo in Qdrant", repo=repo, error=str(e))
            return False

    async def count(self, repo: Optional[str] = None) -> int:
        """Number of stored interactions, optionally for one repo."""
        if not self._client:
            return 0

        try:
            result = await self._client.count(
                collection_name=self.collection,
                count_filter=self._repo_filter(repo) if repo else None,
                exact=True,
            )
            return result.count
        except Exception as e:
            logger.warning("Failed to count Qdrant points", error=str(e))
            return 0

    # =========================================================================
    # Helpers
    # =========================================================================

    @staticmethod
    def _repo_filter(repo: str) -> models.Filter:
        return models.Filter(
            must=[models.FieldCondition(key="repo", match=models.MatchValue(value=repo))]
        )

    @staticmethod
    def _to_payload(interaction: ReviewInteraction) -> dict[str, Any]:
        return {
            "repo": interaction.repo,
            "pull_number": interaction.pull_number,
            "diff_context": interaction.diff_context[:MAX_DIFF_CONTEXT],
            "review_comment": interaction.review_comment,
            "file_path": interaction.file_path,
            "line": interaction.line,
            "category": interaction.category,
            "approved": interaction.approved,
            "concepts": interaction.concepts,
            "source": interaction.source.value,
            "severity": interaction.severity.value,
            "timestamp": interaction.timestamp.isoformat(),
        }

    @staticmethod
    def _to_pattern(payload: dict[str, Any], score: float) -> RetrievedPattern:
        return RetrievedPattern(
            diff_snippet=payload.get("diff_context", ""),
            review_comment=payload.get("review_comment", ""),
            file_path=payload.get("file_path", ""),
            category=payload.get("category", ""),
            score=score,
            approved=payload.get("approved"),
            pull_number=payload.get("pull_number"),
            source=payload.get("source"),
        )
