"""
Tests for GraphStore.

The Cypher layer is mocked at ``execute``; these tests cover parameter
building, result mapping and degraded operation.
"""

from unittest.mock import AsyncMock, MagicMock

import pytest

from review_forge.learning.graph_store import GraphStore, QueryResult


def result(*records: dict) -> QueryResult:
    return QueryResult(records=list(records), count=len(records), query="")


@pytest.fixture
def store() -> GraphStore:
    s = GraphStore()
    s._driver = MagicMock()
    s.execute = AsyncMock(return_value=result())
    return s


class TestWrites:
    """Tests for storing interactions and approvals."""

    @pytest.mark.asyncio
    async def test_store_interaction_params(self, store, make_interaction):
        interaction = make_interaction(diff_context="+" * 3000)

        assert await store.store_interaction(interaction) is True

        query, params = store.execute.await_args.args
        assert "MERGE (i:Interaction {id: $id})" in query
        assert params["repo"] == "acme/widgets"
        assert params["filePath"] == "src/app.py"
        assert params["concepts"] == ["file:src/app.py", "stem:app", "null-safety"]
        assert len(params["diffContext"]) == 2000
        assert params["approved"] is None

    @pytest.mark.asyncio
    async def test_update_approval_only_when_unset(self, store):
        store.execute.return_value = result({"id": "int-1"})
        assert await store.update_approval("int-1", True) is True
        assert "i.approved IS NULL" in store.execute.await_args.args[0]

        store.execute.return_value = result()
        assert await store.update_approval("int-1", False) is False

    @pytest.mark.asyncio
    async def test_write_errors_are_swallowed(self, store, make_interaction):
        store.execute.side_effect = RuntimeError("ServiceUnavailable")
        assert await store.store_interaction(make_interaction()) is False
        assert await store.update_approval("int-1", True) is False


class TestQueries:
    """Tests for graph lookups."""

    @pytest.mark.asyncio
    async def test_related_maps_records(self, store):
        store.execute.return_value = result(
            {
                "reviewComment": "Guard None",
                "diffContext": "+ x",
                "approved": True,
                "category": "bugs",
                "filePath": "src/app.py",
                "pullNumber": 4,
                "source": "human",
                "relevance": 2,
            }
        )

        patterns = await store.get_related_interactions(["null-safety"], "acme/widgets", limit=3)

        assert len(patterns) == 1
        assert patterns[0].score == 2.0
        assert patterns[0].pull_number == 4
        assert patterns[0].source == "human"
        assert store.execute.await_args.args[1] == {"concepts": ["null-safety"], "repo": "acme/widgets", "limit": 3}

    @pytest.mark.asyncio
    async def test_related_without_concepts_skips_query(self, store):
        assert await store.get_related_interactions([], "acme/widgets") == []
        store.execute.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_file_history_matches_by_stem(self, store):
        await store.get_file_history("src/handler.py", "acme/widgets")

        query, params = store.execute.await_args.args
        assert query.count("UNION") == 2
        assert params["stemConcept"] == "stem:handler"
        assert params["fileConcept"] == "file:src/handler.py"

    @pytest.mark.asyncio
    async def test_file_history_short_name_has_no_stem_branch(self, store):
        await store.get_file_history("x.py", "acme/widgets")

        query, params = store.execute.await_args.args
        assert query.count("UNION") == 1
        assert "stemConcept" not in params

    @pytest.mark.asyncio
    async def test_concept_rates(self, store):
        store.execute.return_value = result({"concept": "security", "total": 4, "approved": 3, "rate": 0.75})

        stats = await store.get_concept_approval_rates("acme/widgets")

        assert [(s.concept, s.total, s.approved, s.rate) for s in stats] == [("security", 4, 3, 0.75)]
        assert store.execute.await_args.args[1]["minSamples"] == 3

    @pytest.mark.asyncio
    async def test_stats(self, store):
        store.execute.return_value = result({"total": 5, "approved": 2, "rejected": 1, "pending": 2})
        stats = await store.get_stats("acme/widgets")
        assert (stats.total, stats.approved, stats.rejected, stats.pending) == (5, 2, 1, 2)

    @pytest.mark.asyncio
    async def test_query_errors_yield_empty(self, store):
        store.execute.side_effect = RuntimeError("ServiceUnavailable")
        assert await store.get_related_interactions(["a"], "acme/widgets") == []
        assert await store.get_file_history("src/app.py", "acme/widgets") == []
        assert await store.get_concept_approval_rates("acme/widgets") == []


class TestDisconnected:
    @pytest.mark.asyncio
    async def test_noops(self, make_interaction):
        store = GraphStore()
        assert store.available is False
        assert await store.store_interaction(make_interaction()) is False
        assert await store.get_file_history("src/app.py", "acme/widgets") == []
        assert (await store.get_stats()).total == 0

    @pytest.mark.asyncio
    async def test_execute_requires_driver(self):
        with pytest.raises(RuntimeError):
            await GraphStore().execute("RETURN 1")
