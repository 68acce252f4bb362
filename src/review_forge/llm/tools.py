"""
Review tools offered to the model.

Lookup tools query the knowledge stores; ``submit_review`` is the only
terminal tool and ends the conversation. Tool results are JSON strings.
"""

import json
from enum import Enum
from typing import Any

import structlog
from pydantic import BaseModel, ConfigDict, Field

from review_forge.learning.base import InteractionGraph, SemanticIndex
from review_forge.models import Severity

logger = structlog.get_logger(__name__)

MAX_RESULTS = 10
DEFAULT_LIMIT = 5
COMMENT_TRUNCATE = 200
MAX_CONCEPT_STATS = 20
TOOL_FAILED = {"error": "Tool execution failed, proceed without this data"}


class ReviewTool(str, Enum):
    """Tools the reviewer model may call."""

    SEARCH_PAST_REVIEWS = "search_past_reviews"
    GET_FILE_HISTORY = "get_file_history"
    GET_CONCEPT_STATS = "get_concept_stats"
    SUBMIT_REVIEW = "submit_review"


LOOKUP_TOOLS = (
    ReviewTool.SEARCH_PAST_REVIEWS,
    ReviewTool.GET_FILE_HISTORY,
    ReviewTool.GET_CONCEPT_STATS,
)
TERMINAL_TOOL = ReviewTool.SUBMIT_REVIEW


TOOL_DEFINITIONS: dict[ReviewTool, dict[str, Any]] = {
    ReviewTool.SEARCH_PAST_REVIEWS: {
        "name": ReviewTool.SEARCH_PAST_REVIEWS.value,
        "description": (
            "Semantic search across past code review comments. Use this when you spot a pattern "
            "in the diff and want to know how similar code was reviewed before. Returns matching "
            "review comments with approval status."
        ),
        "input_schema": {
            "type": "object",
            "properties": {
                "query": {
                    "type": "string",
                    "description": "Natural-language description of the pattern or code construct to search for",
                },
                "limit": {"type": "number", "description": "Max results to return (default 5, max 10)"},
            },
            "required": ["query"],
        },
    },
    ReviewTool.GET_FILE_HISTORY: {
        "name": ReviewTool.GET_FILE_HISTORY.value,
        "description": (
            "Get past review comments for a specific file, including whether they were accepted "
            "or dismissed."
        ),
        "input_schema": {
            "type": "object",
            "properties": {
                "file_path": {"type": "string", "description": "Relative file path (e.g. src/utils/auth.py)"},
                "limit": {"type": "number", "description": "Max results to return (default 5, max 10)"},
            },
            "required": ["file_path"],
        },
    },
    ReviewTool.GET_CONCEPT_STATS: {
        "name": ReviewTool.GET_CONCEPT_STATS.value,
        "description": (
            "Get approval/rejection rates for review concepts in this repo. If a kind of feedback "
            "is frequently dismissed, lower your confidence or skip it."
        ),
        "input_schema": {"type": "object", "properties": {}, "required": []},
    },
    ReviewTool.SUBMIT_REVIEW: {
        "name": ReviewTool.SUBMIT_REVIEW.value,
        "description": (
            "Submit the final review. This is the ONLY way to complete the review."
        ),
        "input_schema": {
            "type": "object",
            "properties": {
                "summary": {
                    "type": "string",
                    "description": "Overall assessment of the PR changes and key observations",
                },
                "comments": {
                    "type": "array",
                    "description": "Review findings. Empty array if no issues found.",
                    "items": {
                        "type": "object",
                        "properties": {
                            "path": {"type": "string", "description": "Relative file path"},
                            "line": {"type": "number", "description": "Line number in the NEW version of the file"},
                            "body": {"type": "string", "description": "Why the issue matters and how to fix it"},
                            "severity": {
                                "type": "string",
                                "enum": [s.value for s in Severity],
                                "description": "error = must fix, warning = should fix, info = suggestion",
                            },
                            "category": {
                                "type": "string",
                                "description": "bugs, security, performance, readability, maintainability",
                            },
                            "confidence": {"type": "number", "description": "0.0-1.0, how confident this is a real issue"},
                            "suggestedFix": {
                                "type": "string",
                                "description": "Optional replacement code (only the corrected lines)",
                            },
                        },
                        "required": ["path", "line", "body", "severity", "category", "confidence"],
                    },
                },
            },
            "required": ["summary", "comments"],
        },
    },
}


def tool_definitions(include_lookup: bool, terminal_only: bool = False) -> list[dict[str, Any]]:
    """Tool definitions for one model call."""
    if terminal_only or not include_lookup:
        return [TOOL_DEFINITIONS[TERMINAL_TOOL]]
    return [TOOL_DEFINITIONS[tool] for tool in (*LOOKUP_TOOLS, TERMINAL_TOOL)]


# =============================================================================
# submit_review payload
# =============================================================================


class SubmittedComment(BaseModel):
    """One finding as submitted by the model."""

    model_config = ConfigDict(populate_by_name=True)

    path: str
    line: int
    body: str
    severity: Severity
    category: str
    confidence: float = Field(default=0.7, ge=0.0, le=1.0)
    suggested_fix: str | None = Field(default=None, alias="suggestedFix")


class SubmitReviewPayload(BaseModel):
    """Validated input of the terminal tool."""

    summary: str
    comments: list[SubmittedComment]


# =============================================================================
# Lookup execution
# =============================================================================


class ToolExecutor:
    """Runs lookup tools against the knowledge stores for one repo."""

    def __init__(self, repo: str, semantic: SemanticIndex | None = None, graph: InteractionGraph | None = None):
        self.repo = repo
        self.semantic = semantic
        self.graph = graph

    async def execute(self, name: str, tool_input: dict[str, Any] | None) -> str:
        """Execute a lookup tool; failures become an error JSON string."""
        tool_input = tool_input or {}
        try:
            if name == ReviewTool.SEARCH_PAST_REVIEWS.value:
                return await self._search_past_reviews(tool_input)
            if name == ReviewTool.GET_FILE_HISTORY.value:
                return await self._get_file_history(tool_input)
            if name == ReviewTool.GET_CONCEPT_STATS.value:
                return await self._get_concept_stats()
            return json.dumps({"error": f"Unknown tool: {name}"})
        except Exception as e:
            logger.warning("Tool execution failed", tool=name, error=str(e))
            return json.dumps(TOOL_FAILED)

    async def _search_past_reviews(self, tool_input: dict[str, Any]) -> str:
        if self.semantic is None:
            return json.dumps([])
        query = str(tool_input.get("query") or "")
        results = await self.semantic.search_similar(query, self.repo, _limit(tool_input))
        return json.dumps(
            [
                {
                    "filePath": r.file_path,
                    "reviewComment": r.review_comment[:COMMENT_TRUNCATE],
                    "category": r.category,
                    "approved": r.approved,
                    "pullNumber": r.pull_number,
                    "score": round(r.score or 0.0, 2),
                }
                for r in results
            ]
        )

    async def _get_file_history(self, tool_input: dict[str, Any]) -> str:
        if self.graph is None:
            return json.dumps([])
        file_path = str(tool_input.get("file_path") or "")
        results = await self.graph.get_file_history(file_path, self.repo, _limit(tool_input))
        return json.dumps(
            [
                {
                    "reviewComment": r.review_comment[:COMMENT_TRUNCATE],
                    "category": r.category,
                    "approved": r.approved,
                    "pullNumber": r.pull_number,
                }
                for r in results
            ]
        )

    async def _get_concept_stats(self) -> str:
        if self.graph is None:
            return json.dumps([])
        stats = await self.graph.get_concept_approval_rates(self.repo)
        return json.dumps(
            [
                {
                    "concept": s.concept,
                    "total": s.total,
                    "approved": s.approved,
                    "rejected": s.total - s.approved,
                    "rate": round(s.rate, 2),
                }
                for s in stats[:MAX_CONCEPT_STATS]
            ]
        )


def _limit(tool_input: dict[str, Any]) -> int:
    try:
        limit = int(tool_input.get("limit") or DEFAULT_LIMIT)
    except (TypeError, ValueError):
        limit = DEFAULT_LIMIT
    return max(1, min(limit, MAX_RESULTS))
