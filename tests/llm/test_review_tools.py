"""Unit tests for review tool definitions and execution."""

import json
from unittest.mock import AsyncMock

import pytest
from pydantic import ValidationError

from review_forge.learning.inmemory import InMemoryKnowledgeStore
from review_forge.llm.tools import (
    TOOL_FAILED,
    ReviewTool,
    SubmitReviewPayload,
    ToolExecutor,
    tool_definitions,
)
from review_forge.models import Severity


# =============================================================================
# UNIT TESTS: tool_definitions()
# =============================================================================


class TestToolDefinitions:
    def test_all_tools_when_learning(self):
        names = [t["name"] for t in tool_definitions(include_lookup=True)]
        assert names == [
            "search_past_reviews",
            "get_file_history",
            "get_concept_stats",
            "submit_review",
        ]

    def test_terminal_only(self):
        assert [t["name"] for t in tool_definitions(True, terminal_only=True)] == ["submit_review"]
        assert [t["name"] for t in tool_definitions(False)] == ["submit_review"]


class TestSubmitPayload:
    def test_accepts_camel_case_fix(self):
        payload = SubmitReviewPayload.model_validate(
            {
                "summary": "ok",
                "comments": [
                    {
                        "path": "a.py",
                        "line": 3,
                        "body": "b",
                        "severity": "warning",
                        "category": "bugs",
                        "confidence": 0.8,
                        "suggestedFix": "x = 1",
                    }
                ],
            }
        )
        assert payload.comments[0].suggested_fix == "x = 1"
        assert payload.comments[0].severity == Severity.WARNING

    def test_rejects_bad_severity(self):
        with pytest.raises(ValidationError):
            SubmitReviewPayload.model_validate(
                {
                    "summary": "ok",
                    "comments": [
                        {"path": "a.py", "line": 1, "body": "b", "severity": "fatal", "category": "x", "confidence": 1}
                    ],
                }
            )

    def test_requires_comments(self):
        with pytest.raises(ValidationError):
            SubmitReviewPayload.model_validate({"summary": "ok"})


# =============================================================================
# UNIT TESTS: ToolExecutor
# =============================================================================


class TestToolExecutor:
    """Tests for lookup tool execution."""

    @pytest.mark.asyncio
    async def test_search_past_reviews(self, make_interaction):
        store = InMemoryKnowledgeStore()
        await store.store_interaction(make_interaction(approved=True))
        executor = ToolExecutor("acme/widgets", semantic=store, graph=store)

        result = json.loads(
            await executor.execute(ReviewTool.SEARCH_PAST_REVIEWS.value, {"query": "check none fetched"})
        )

        assert len(result) == 1
        assert result[0]["filePath"] == "src/app.py"
        assert result[0]["approved"] is True

    @pytest.mark.asyncio
    async def test_file_history(self, make_interaction):
        store = InMemoryKnowledgeStore()
        await store.store_interaction(make_interaction(approved=False))
        executor = ToolExecutor("acme/widgets", semantic=store, graph=store)

        result = json.loads(await executor.execute("get_file_history", {"file_path": "src/app.py"}))

        assert result[0]["approved"] is False
        assert result[0]["pullNumber"] == 7

    @pytest.mark.asyncio
    async def test_concept_stats(self, make_interaction):
        store = InMemoryKnowledgeStore()
        for n, approved in enumerate([True, True, False]):
            await store.store_interaction(make_interaction(id=f"i{n}", approved=approved))
        executor = ToolExecutor("acme/widgets", graph=store)

        result = json.loads(await executor.execute("get_concept_stats", {}))

        null_safety = next(r for r in result if r["concept"] == "null-safety")
        assert null_safety == {"concept": "null-safety", "total": 3, "approved": 2, "rejected": 1, "rate": 0.67}

    @pytest.mark.asyncio
    async def test_missing_store_returns_empty(self):
        executor = ToolExecutor("acme/widgets")
        assert json.loads(await executor.execute("search_past_reviews", {"query": "x"})) == []
        assert json.loads(await executor.execute("get_concept_stats", None)) == []

    @pytest.mark.asyncio
    async def test_failure_becomes_error_result(self):
        semantic = AsyncMock()
        semantic.search_similar.side_effect = RuntimeError("qdrant down")
        executor = ToolExecutor("acme/widgets", semantic=semantic)

        result = json.loads(await executor.execute("search_past_reviews", {"query": "x"}))

        assert result == TOOL_FAILED

    @pytest.mark.asyncio
    async def test_unknown_tool(self):
        result = json.loads(await ToolExecutor("acme/widgets").execute("rm_rf", {}))
        assert "Unknown tool" in result["error"]

    @pytest.mark.asyncio
    async def test_limit_is_clamped(self):
        semantic = AsyncMock()
        semantic.search_similar.return_value = []
        executor = ToolExecutor("acme/widgets", semantic=semantic)

        await executor.execute("search_past_reviews", {"query": "x", "limit": 500})
        assert semantic.search_similar.call_args.args[2] == 10

        await executor.execute("search_past_reviews", {"query": "x", "limit": "lots"})
        assert semantic.search_similar.call_args.args[2] == 5
