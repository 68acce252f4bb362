"""In-memory knowledge store for local runs and tests."""

from review_forge.learning.concepts import file_stem
from review_forge.models import ConceptStat, RetrievedPattern, ReviewInteraction

MIN_CONCEPT_SAMPLES = 3


class InMemoryKnowledgeStore:
    """Knowledge store using dicts.

    Implements the sink, semantic and graph interfaces with keyword
    overlap standing in for vector similarity.
    """

    name = "inmemory"

    def __init__(self) -> None:
        """Initialize in-memory storage."""
        self.interactions: dict[str, ReviewInteraction] = {}

    def _calculate_match_score(self, query_words: list[str], text: str) -> float:
        """Score from 0.0 to 1.0 based on query word overlap."""
        if not query_words:
            return 0.0
        text_lower = text.lower()
        text_words = set(text_lower.split())
        matches = sum(1 for word in query_words if word in text_words)
        return matches / len(query_words)

    async def store_interaction(self, interaction: ReviewInteraction) -> bool:
        self.interactions.setdefault(interaction.id, interaction)
        return True

    async def update_approval(self, interaction_id: str, approved: bool) -> bool:
        interaction = self.interactions.get(interaction_id)
        if interaction is None or interaction.approved is not None:
            return False
        interaction.approved = approved
        return True

    async def search_similar(self, query: str, repo: str, limit: int = 10) -> list[RetrievedPattern]:
        query_words = query.lower().split()
        scored = []
        for interaction in self._for_repo(repo):
            text = f"{interaction.diff_context} {interaction.review_comment}"
            score = self._calculate_match_score(query_words, text)
            if score > 0:
                scored.append((score, interaction))

        scored.sort(key=lambda pair: pair[0], reverse=True)
        return [self._to_pattern(i, score) for score, i in scored[:limit]]

    async def get_related_interactions(
        self, concepts: list[str], repo: str, limit: int = 5
    ) -> list[RetrievedPattern]:
        wanted = set(concepts)
        scored = []
        for interaction in self._for_repo(repo):
            if interaction.approved is None:
                continue
            relevance = len(wanted.intersection(interaction.concepts))
            if relevance:
                scored.append((relevance, interaction))

        scored.sort(key=lambda pair: pair[0], reverse=True)
        return [self._to_pattern(i, float(relevance)) for relevance, i in scored[:limit]]

    async def get_file_history(self, file_path: str, repo: str, limit: int = 5) -> list[RetrievedPattern]:
        stem = file_stem(file_path)
        keys = {f"file:{file_path}"}
        if stem:
            keys.add(f"stem:{stem}")

        matches = [
            i
            for i in self._for_repo(repo)
            if i.approved is not None and (i.file_path == file_path or keys.intersection(i.concepts))
        ]
        matches.sort(key=lambda i: i.timestamp, reverse=True)
        return [self._to_pattern(i, 1.0) for i in matches[:limit]]

    async def get_concept_approval_rates(self, repo: str) -> list[ConceptStat]:
        totals: dict[str, list[int]] = {}
        for interaction in self._for_repo(repo):
            if interaction.approved is None:
                continue
            for concept in interaction.concepts:
                counts = totals.setdefault(concept, [0, 0])
                counts[0] += 1
                counts[1] += 1 if interaction.approved else 0

        stats = [
            ConceptStat(concept=c, total=t, approved=a, rate=a / t)
            for c, (t, a) in totals.items()
            if t >= MIN_CONCEPT_SAMPLES
        ]
        stats.sort(key=lambda s: s.rate, reverse=True)
        return stats

    def _for_repo(self, repo: str) -> list[ReviewInteraction]:
        return [i for i in self.interactions.values() if i.repo == repo]

    @staticmethod
    def _to_pattern(interaction: ReviewInteraction, score: float) -> RetrievedPattern:
        return RetrievedPattern(
            diff_snippet=interaction.diff_context,
            review_comment=interaction.review_comment,
            file_path=interaction.file_path,
            category=interaction.category,
            score=score,
            approved=interaction.approved,
            pull_number=interaction.pull_number,
            source=interaction.source.value,
        )
