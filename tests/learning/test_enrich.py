"""Tests for finding enrichment from the interaction graph."""

from unittest.mock import AsyncMock

import pytest

from review_forge.learning.enrich import Enricher, build_graph_context
from review_forge.learning.inmemory import InMemoryKnowledgeStore
from review_forge.models import FindingSource, RetrievedPattern


def pattern(approved: bool | None, pull_number: int = 3, source: str = "llm") -> RetrievedPattern:
    return RetrievedPattern(
        diff_snippet="",
        review_comment="c",
        file_path="src/app.py",
        category="bugs",
        score=1.0,
        approved=approved,
        pull_number=pull_number,
        source=source,
    )


# =============================================================================
# UNIT TESTS: build_graph_context()
# =============================================================================


class TestGraphContext:
    """Tests for citation text."""

    def test_approved_related(self):
        text = build_graph_context([pattern(True)], [])
        assert text == "Past reviews: Similar issues in `src/app.py` in PR #3 were flagged and fixed."

    def test_human_source_marked(self):
        text = build_graph_context([pattern(True, source=FindingSource.HUMAN.value)], [])
        assert "(human comment)" in text

    def test_rejected_related(self):
        text = build_graph_context([pattern(False, 4), pattern(False, 4), pattern(False, 9)], [])
        assert text == "Note: Similar comments were dismissed in #4, #9."

    def test_approved_and_rejected_combined(self):
        text = build_graph_context([pattern(True), pattern(False, 8)], [])
        assert text.startswith("Past reviews:")
        assert text.endswith("dismissed in #8.")

    def test_history_only_when_nothing_else(self):
        history = [pattern(True, 1), pattern(True, 2, source="human")]
        assert build_graph_context([], history) == (
            "This file has 2 past review(s) with accepted feedback from #1, #2 (1 from human reviewers)."
        )
        assert build_graph_context([pattern(False, 5)], history) == "Note: Similar comments were dismissed in #5."

    def test_nothing_applies(self):
        assert build_graph_context([pattern(None)], [pattern(False)]) is None


# =============================================================================
# UNIT TESTS: Enricher
# =============================================================================


class TestEnricher:
    """Tests for per-finding enrichment."""

    @pytest.mark.asyncio
    async def test_enriches_from_graph(self, make_finding, make_file, make_interaction):
        store = InMemoryKnowledgeStore()
        await store.store_interaction(make_interaction(approved=True, pull_number=11))
        finding = make_finding(body="Value may be None here")

        enriched = await Enricher(store).enrich([finding], "acme/widgets", [make_file("src/app.py")])

        assert "PR #11" in enriched[0].graph_context
        assert finding.graph_context is None

    @pytest.mark.asyncio
    async def test_no_graph_returns_copy(self, make_finding):
        findings = [make_finding()]
        result = await Enricher(None).enrich(findings, "acme/widgets", [])
        assert result == findings
        assert result is not findings

    @pytest.mark.asyncio
    async def test_failure_leaves_finding_unchanged(self, make_finding):
        graph = AsyncMock()
        graph.get_related_interactions.side_effect = RuntimeError("neo4j down")
        graph.get_file_history.return_value = []
        finding = make_finding()

        result = await Enricher(graph).enrich([finding], "acme/widgets", [])

        assert result == [finding]
        assert result[0].graph_context is None

    @pytest.mark.asyncio
    async def test_order_preserved(self, make_finding):
        graph = AsyncMock()
        graph.get_related_interactions.return_value = []
        graph.get_file_history.return_value = []
        findings = [make_finding(line=n) for n in range(4)]

        result = await Enricher(graph).enrich(findings, "acme/widgets", [])

        assert [f.line for f in result] == [0, 1, 2, 3]
