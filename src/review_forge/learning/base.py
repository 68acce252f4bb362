"""Interfaces shared by the knowledge stores."""

from typing import Protocol

from review_forge.models import ConceptStat, RetrievedPattern, ReviewInteraction


class KnowledgeSink(Protocol):
    """A store that records interactions and their approval state.

    Both the vector store and the graph store implement this, so the
    feedback pipeline writes approval through one interface.
    """

    name: str

    async def store_interaction(self, interaction: ReviewInteraction) -> bool:
        """Persist an interaction.

        Returns:
            True if stored, False if the store is unavailable
        """
        ...

    async def update_approval(self, interaction_id: str, approved: bool) -> bool:
        """Set approval on an interaction whose approval is still unset.

        Returns:
            True if this call changed the record, False if it was already
            decided, missing, or the store is unavailable
        """
        ...


class SemanticIndex(Protocol):
    """Similarity search over stored interactions."""

    async def search_similar(self, query: str, repo: str, limit: int = 10) -> list[RetrievedPattern]:
        """Search for interactions similar to ``query`` within a repo."""
        ...


class InteractionGraph(Protocol):
    """Structural lookups over stored interactions."""

    async def get_related_interactions(
        self, concepts: list[str], repo: str, limit: int = 5
    ) -> list[RetrievedPattern]:
        """Decided interactions sharing concepts, most related first."""
        ...

    async def get_file_history(self, file_path: str, repo: str, limit: int = 5) -> list[RetrievedPattern]:
        """Interactions on a file, newest first."""
        ...

    async def get_concept_approval_rates(self, repo: str) -> list[ConceptStat]:
        """Approval rates for concepts with enough decided interactions."""
        ...
