"""
Tests for LearningRecall.

Uses the in-memory knowledge store for both the semantic and graph sides,
and AsyncMock stores to simulate outages.
"""

from unittest.mock import AsyncMock

import pytest
import pytest_asyncio

from review_forge.learning.inmemory import InMemoryKnowledgeStore
from review_forge.learning.recall import (
    LearningRecall,
    build_query,
    deduplicate_patterns,
    format_learning_context,
)
from review_forge.models import LearningContext, RetrievedPattern


def pattern(comment: str, approved: bool | None, path: str = "src/app.py") -> RetrievedPattern:
    return RetrievedPattern(
        diff_snippet="",
        review_comment=comment,
        file_path=path,
        category="bugs",
        score=0.9,
        approved=approved,
        pull_number=3,
    )


@pytest_asyncio.fixture
async def store(make_interaction) -> InMemoryKnowledgeStore:
    s = InMemoryKnowledgeStore()
    await s.store_interaction(make_interaction(id="a", approved=True))
    await s.store_interaction(
        make_interaction(id="r", approved=False, review_comment="Rename value to something descriptive")
    )
    await s.store_interaction(make_interaction(id="u", approved=None, review_comment="Unresolved value note"))
    return s


# =============================================================================
# UNIT TESTS: retrieve()
# =============================================================================


class TestRetrieve:
    """Tests for two-store retrieval."""

    @pytest.mark.asyncio
    async def test_splits_approved_and_rejected(self, store, make_file):
        recall = LearningRecall(semantic=store, graph=store)
        files = [make_file("src/app.py", ["value = fetch()"])]

        ctx = await recall.retrieve(files, "acme/widgets")

        assert [p.review_comment for p in ctx.approved_patterns] == [
            "Check for None before using the fetched value"
        ]
        assert [p.review_comment for p in ctx.rejected_patterns] == ["Rename value to something descriptive"]

    @pytest.mark.asyncio
    async def test_other_repos_are_invisible(self, store, make_file):
        recall = LearningRecall(semantic=store, graph=store)
        ctx = await recall.retrieve([make_file("src/app.py", ["value"])], "other/repo")
        assert ctx.is_empty

    @pytest.mark.asyncio
    async def test_failing_stage_yields_partial_results(self, store, make_file):
        broken = AsyncMock()
        broken.search_similar.side_effect = ConnectionError("qdrant down")
        recall = LearningRecall(semantic=broken, graph=store)

        ctx = await recall.retrieve([make_file("src/app.py", ["value"])], "acme/widgets")

        assert ctx.approved_patterns
        assert ctx.rejected_patterns

    @pytest.mark.asyncio
    async def test_both_stores_down(self, make_file):
        broken = AsyncMock()
        broken.search_similar.side_effect = ConnectionError("down")
        broken.get_related_interactions.side_effect = ConnectionError("down")
        broken.get_file_history.side_effect = ConnectionError("down")
        recall = LearningRecall(semantic=broken, graph=broken)

        ctx = await recall.retrieve([make_file("src/app.py", ["value"])], "acme/widgets")

        assert ctx.is_empty

    @pytest.mark.asyncio
    async def test_no_stores(self, make_file):
        ctx = await LearningRecall().retrieve([make_file()], "acme/widgets")
        assert ctx.is_empty

    @pytest.mark.asyncio
    async def test_history_limited_to_first_files(self, make_file):
        graph = AsyncMock()
        graph.get_related_interactions.return_value = []
        graph.get_file_history.return_value = []
        files = [make_file(f"src/f{n}.py") for n in range(5)]

        await LearningRecall(graph=graph).retrieve(files, "acme/widgets")

        assert graph.get_file_history.await_count == 3

    @pytest.mark.asyncio
    async def test_each_side_capped_at_five(self, make_file):
        semantic = AsyncMock()
        semantic.search_similar.return_value = [pattern(f"approved comment {n}", True) for n in range(8)]

        ctx = await LearningRecall(semantic=semantic).retrieve([make_file()], "acme/widgets")

        assert len(ctx.approved_patterns) == 5


# =============================================================================
# UNIT TESTS: helpers
# =============================================================================


class TestHelpers:
    def test_build_query(self, make_file):
        query = build_query([make_file("src/a.py", ["alpha", "beta"]), make_file("src/b.py", ["gamma"])])
        assert query.split("\n") == ["src/a.py", "src/b.py", "alpha", "beta", "gamma"]

    def test_build_query_capped(self, make_file):
        query = build_query([make_file("src/a.py", ["x" * 200] * 20)])
        assert len(query) == 3000

    def test_deduplicate_by_path_and_prefix(self):
        patterns = [
            pattern("Same comment prefix " * 5 + "A", True),
            pattern("Same comment prefix " * 5 + "B", False),
            pattern("Same comment prefix " * 5, True, path="src/other.py"),
        ]
        unique = deduplicate_patterns(patterns)
        assert [p.file_path for p in unique] == ["src/app.py", "src/other.py"]
        assert unique[0].approved is True


class TestFormat:
    def test_empty_context_renders_nothing(self):
        assert format_learning_context(LearningContext()) is None

    def test_sections(self):
        ctx = LearningContext(
            approved_patterns=[pattern("Guard the None case", True)],
            rejected_patterns=[pattern("Use tabs", False)],
        )
        text = format_learning_context(ctx)
        assert "well-received" in text
        assert "dismissed" in text
        assert "- **bugs** on `src/app.py`: Guard the None case" in text

    def test_only_rejected(self):
        text = format_learning_context(LearningContext(rejected_patterns=[pattern("Use tabs", False)]))
        assert "well-received" not in text
        assert "Use tabs" in text
