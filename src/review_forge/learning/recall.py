"""
Learning Recall

Pulls past review patterns relevant to a pull request. Semantic search,
concept lookup and file history run concurrently; each stage fails on
its own into an empty list so recall never blocks a review.
"""

import asyncio
from collections.abc import Awaitable

import structlog

from review_forge.learning.base import InteractionGraph, SemanticIndex
from review_forge.learning.concepts import ConceptExtractor
from review_forge.models import LearningContext, ParsedFile, RetrievedPattern

logger = structlog.get_logger(__name__)

MAX_QUERY_CHARS = 3000
QUERY_FILES = 5
QUERY_LINES_PER_FILE = 20
SEMANTIC_LIMIT = 10
CONCEPT_LIMIT = 5
HISTORY_FILES = 3
HISTORY_LIMIT = 3
MAX_PATTERNS_PER_SIDE = 5
DEDUP_PREFIX = 50
FORMAT_COMMENT_CHARS = 200


class LearningRecall:
    """Two-store retrieval of approved and rejected past patterns."""

    def __init__(
        self,
        semantic: SemanticIndex | None = None,
        graph: InteractionGraph | None = None,
        concepts: ConceptExtractor | None = None,
    ):
        """
        Initialize recall.

        Args:
            semantic: Vector similarity index (skipped when None)
            graph: Interaction graph (skipped when None)
            concepts: Concept extractor for the graph lookup
        """
        self.semantic = semantic
        self.graph = graph
        self.concepts = concepts or ConceptExtractor()

    async def retrieve(self, files: list[ParsedFile], repo: str) -> LearningContext:
        """Gather past patterns for the files under review."""
        query = build_query(files)

        semantic, concept, *histories = await asyncio.gather(
            self._guard("semantic", self._semantic(query, repo)),
            self._guard("concept", self._concept(files, query, repo)),
            *(
                self._guard("file_history", self._history(f.filename, repo))
                for f in files[:HISTORY_FILES]
            ),
        )
        history = [p for h in histories for p in h]

        merged = deduplicate_patterns([*semantic, *concept, *history])
        approved = [p for p in merged if p.approved is True][:MAX_PATTERNS_PER_SIDE]
        rejected = [p for p in merged if p.approved is False][:MAX_PATTERNS_PER_SIDE]

        logger.info(
            "Retrieved learning context",
            repo=repo,
            semantic=len(semantic),
            concept=len(concept),
            file_history=len(history),
            approved=len(approved),
            rejected=len(rejected),
        )
        return LearningContext(approved_patterns=approved, rejected_patterns=rejected)

    async def _semantic(self, query: str, repo: str) -> list[RetrievedPattern]:
        if self.semantic is None or not query:
            return []
        return await self.semantic.search_similar(query, repo, SEMANTIC_LIMIT)

    async def _concept(self, files: list[ParsedFile], query: str, repo: str) -> list[RetrievedPattern]:
        if self.graph is None:
            return []
        concepts = await self.concepts.extract(files, query)
        return await self.graph.get_related_interactions(concepts, repo, CONCEPT_LIMIT)

    async def _history(self, file_path: str, repo: str) -> list[RetrievedPattern]:
        if self.graph is None:
            return []
        return await self.graph.get_file_history(file_path, repo, HISTORY_LIMIT)

    @staticmethod
    async def _guard(stage: str, call: Awaitable[list[RetrievedPattern]]) -> list[RetrievedPattern]:
        try:
            return await call
        except Exception as e:
            logger.warning("Recall stage failed", stage=stage, error=str(e))
            return []


def build_query(files: list[ParsedFile]) -> str:
    """Filenames plus the first added lines of the leading files."""
    parts = [f.filename for f in files]
    for file in files[:QUERY_FILES]:
        parts.extend(line.content for line in file.added_lines()[:QUERY_LINES_PER_FILE])
    return "\n".join(parts)[:MAX_QUERY_CHARS]


def deduplicate_patterns(patterns: list[RetrievedPattern]) -> list[RetrievedPattern]:
    """Keep the first pattern per (file, comment prefix)."""
    seen: set[tuple[str, str]] = set()
    unique = []
    for pattern in patterns:
        key = (pattern.file_path, pattern.review_comment[:DEDUP_PREFIX])
        if key in seen:
            continue
        seen.add(key)
        unique.append(pattern)
    return unique


def format_learning_context(ctx: LearningContext) -> str | None:
    """Render recalled patterns as a prompt section, or None when empty."""
    if ctx.is_empty:
        return None

    parts = [
        "## Learning from Past Reviews",
        "Use these patterns from past reviews to improve your feedback quality.\n",
    ]

    if ctx.approved_patterns:
        parts.append("### Patterns that were well-received (do more like these):")
        parts.extend(_pattern_line(p) for p in ctx.approved_patterns)
        parts.append("")

    if ctx.rejected_patterns:
        parts.append("### Patterns that were dismissed (avoid these approaches):")
        parts.extend(_pattern_line(p) for p in ctx.rejected_patterns)
        parts.append("")

    return "\n".join(parts)


def _pattern_line(pattern: RetrievedPattern) -> str:
    return f"- **{pattern.category}** on `{pattern.file_path}`: {pattern.review_comment[:FORMAT_COMMENT_CHARS]}"
