"""
Feedback pipeline.

``FeedbackRecorder`` turns reviewer reactions to our comments into
approval updates in every knowledge store plus one metric row.
``HumanCommentIngestor`` stores comments written by people as accepted
interactions so later reviews can learn from them.
"""

import asyncio
import re
from typing import Union

import structlog

from review_forge.cache import ExpiringCache
from review_forge.events import CommentDeleted, CommentResolved, HumanComment, ReviewDismissed
from review_forge.learning.base import KnowledgeSink
from review_forge.learning.concepts import ConceptExtractor
from review_forge.models import (
    INTERACTION_MARKER_PREFIX,
    REVIEW_TAG,
    FindingSource,
    ReviewInteraction,
    Severity,
    stable_interaction_id,
)
from review_forge.review.gate import ReviewGate

logger = structlog.get_logger(__name__)

Signal = Union[CommentResolved, CommentDeleted, ReviewDismissed]

# kind -> (positive, feedback type)
SIGNAL_OUTCOMES: dict[str, tuple[bool, str]] = {
    "comment_resolved": (True, "resolved"),
    "comment_deleted": (False, "dismissed"),
    "review_dismissed": (False, "dismissed"),
}

MIN_HUMAN_COMMENT_LENGTH = 15

_CATEGORY_PATTERNS = [
    ("security", re.compile(r"\b(security|secret|credential|auth|token|password|xss|injection|cve)\b")),
    ("bugs", re.compile(r"\b(bug|error|crash|null|none|undefined|typo|wrong|broken|fix)\b")),
    ("performance", re.compile(r"\b(performance|slow|memory|leak|optimi[sz]e|cache|latency)\b")),
    ("testing", re.compile(r"\b(test|tests|coverage|spec|assert|mock|stub)\b")),
    ("readability", re.compile(r"\b(refactor|clean|readab\w*|naming|pattern|structure|architect\w*)\b")),
]


def categorize_comment(body: str) -> str:
    """Keyword category for a free-form comment."""
    lower = body.lower()
    for category, pattern in _CATEGORY_PATTERNS:
        if pattern.search(lower):
            return category
    return "general"


class FeedbackRecorder:
    """Record approval signals in every knowledge sink."""

    def __init__(self, sinks: list[KnowledgeSink], gate: ReviewGate | None = None):
        """
        Initialize recorder.

        Args:
            sinks: Stores that hold interactions
            gate: Where feedback metric rows are appended
        """
        self.sinks = sinks
        self.gate = gate

    async def record(self, signal: Signal) -> bool:
        """Apply a signal.

        Returns:
            True if any store recorded the approval for the first time
        """
        positive, feedback_type = SIGNAL_OUTCOMES[signal.kind]

        results = await asyncio.gather(
            *(sink.update_approval(signal.interaction_id, positive) for sink in self.sinks),
            return_exceptions=True,
        )
        updated = False
        for sink, result in zip(self.sinks, results):
            if isinstance(result, BaseException):
                logger.warning(
                    "Approval update failed",
                    store=getattr(sink, "name", type(sink).__name__),
                    interaction_id=signal.interaction_id,
                    error=str(result),
                )
            elif result:
                updated = True

        if not updated:
            logger.info("Feedback already recorded or interaction unknown", interaction_id=signal.interaction_id)
            return False

        if self.gate is not None:
            await self.gate.record_feedback_metric(
                repo=signal.repo,
                pull_number=signal.pull_number,
                interaction_id=signal.interaction_id,
                feedback_type=feedback_type,
                positive=positive,
                comment_source=signal.comment_source,
                category=signal.category,
            )

        logger.info(
            "Recorded feedback",
            interaction_id=signal.interaction_id,
            positive=positive,
            feedback_type=feedback_type,
        )
        return True


class HumanCommentIngestor:
    """Store human pull request comments as accepted interactions."""

    def __init__(
        self,
        sinks: list[KnowledgeSink],
        concepts: ConceptExtractor | None = None,
        recent: ExpiringCache | None = None,
    ):
        """
        Initialize ingestor.

        Args:
            sinks: Stores to write interactions to
            concepts: Concept extractor
            recent: Cache of recently processed comment ids
        """
        self.sinks = sinks
        self.concepts = concepts or ConceptExtractor()
        self.recent = recent or ExpiringCache(ttl_seconds=60.0)

    def should_ingest(self, event: HumanComment) -> bool:
        if event.author_type == "Bot":
            return False
        if REVIEW_TAG in event.body or INTERACTION_MARKER_PREFIX in event.body:
            return False
        return len(event.body.strip()) >= MIN_HUMAN_COMMENT_LENGTH

    async def ingest(self, event: HumanComment) -> ReviewInteraction | None:
        """Store the comment; None when skipped."""
        if not self.should_ingest(event):
            return None
        if self.recent.seen(event.comment_id):
            logger.debug("Duplicate comment delivery", comment_id=event.comment_id)
            return None

        interaction_id = stable_interaction_id(event.repo, event.pull_number, "human", event.comment_id)
        interaction = await self.store_comment(event, interaction_id)
        logger.info(
            "Stored human comment",
            repo=event.repo,
            pr=event.pull_number,
            author=event.author,
            category=interaction.category,
        )
        return interaction

    async def store_comment(
        self, event: HumanComment, interaction_id: str, concepts: list[str] | None = None
    ) -> ReviewInteraction:
        """Write ``event`` to every sink as an accepted interaction.

        Concepts are extracted when not supplied. Store failures are logged
        per sink and do not raise.
        """
        files = [event.path] if event.path else []
        interaction = ReviewInteraction(
            id=interaction_id,
            repo=event.repo,
            pull_number=event.pull_number,
            diff_context=event.diff_hunk,
            review_comment=event.body,
            file_path=event.path,
            line=event.line,
            category=categorize_comment(event.body),
            approved=True,
            concepts=concepts if concepts is not None else await self.concepts.extract(files, event.body),
            source=FindingSource.HUMAN,
            severity=Severity.INFO,
        )

        results = await asyncio.gather(
            *(sink.store_interaction(interaction) for sink in self.sinks),
            return_exceptions=True,
        )
        for sink, result in zip(self.sinks, results):
            if isinstance(result, BaseException):
                logger.warning(
                    "Failed to store human comment",
                    store=getattr(sink, "name", type(sink).__name__),
                    error=str(result),
                )
        return interaction
