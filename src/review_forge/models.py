"""
Data models for Review Forge.

Defines the types that flow through the review pipeline: parsed diffs,
chunks, findings, learned interactions and the records held by the gate.
"""

import hashlib
import re
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any

from pydantic import BaseModel, Field


class Severity(str, Enum):
    """How severe a finding is."""

    ERROR = "error"  # Blocks merge (REQUEST_CHANGES)
    WARNING = "warning"
    INFO = "info"

    @property
    def rank(self) -> int:
        return _SEVERITY_RANK[self]


_SEVERITY_RANK = {Severity.ERROR: 3, Severity.WARNING: 2, Severity.INFO: 1}


class FindingSource(str, Enum):
    """Where a finding or interaction came from."""

    RULE = "rule"
    LLM = "llm"
    HUMAN = "human"


class FileStatus(str, Enum):
    """Change status of a file in a pull request."""

    ADDED = "added"
    REMOVED = "removed"
    MODIFIED = "modified"
    RENAMED = "renamed"


class LineType(str, Enum):
    """Kind of line inside a hunk."""

    ADD = "add"
    DEL = "del"
    CONTEXT = "context"


class ReviewEvent(str, Enum):
    """Review verdict posted to the source-control host."""

    COMMENT = "COMMENT"
    REQUEST_CHANGES = "REQUEST_CHANGES"


class PendingStatus(str, Enum):
    """Lifecycle of a review held by the gate."""

    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"


# =============================================================================
# Diff types
# =============================================================================


@dataclass
class DiffLine:
    """A single line inside a hunk."""

    type: LineType
    content: str
    old_line: int | None = None  # Absent for added lines
    new_line: int | None = None  # Absent for deleted lines


@dataclass
class DiffHunk:
    """A contiguous region of change."""

    old_start: int
    old_count: int
    new_start: int
    new_count: int
    lines: list[DiffLine] = field(default_factory=list)

    @property
    def header(self) -> str:
        return f"@@ -{self.old_start},{self.old_count} +{self.new_start},{self.new_count} @@"


@dataclass
class ParsedFile:
    """Parsed diff for a single file."""

    filename: str
    status: FileStatus = FileStatus.MODIFIED
    hunks: list[DiffHunk] = field(default_factory=list)
    additions: int = 0
    deletions: int = 0

    def added_lines(self) -> list[DiffLine]:
        """All added lines across hunks, in order."""
        return [line for hunk in self.hunks for line in hunk.lines if line.type == LineType.ADD]


@dataclass
class FileChunk:
    """A group of files reviewed together in one model conversation."""

    files: list[ParsedFile]
    estimated_tokens: int = 0


@dataclass
class PRFile:
    """A changed file as reported by the source-control host."""

    filename: str
    status: str = "modified"
    additions: int = 0
    deletions: int = 0
    changes: int = 0
    patch: str | None = None


@dataclass
class PRContext:
    """Identity of the pull request under review."""

    owner: str
    repo: str
    pull_number: int
    head_sha: str
    head_ref: str = ""
    base_ref: str = ""
    installation_id: int = 0
    pr_author: str | None = None

    @property
    def full_name(self) -> str:
        return f"{self.owner}/{self.repo}"


# =============================================================================
# Findings and learning
# =============================================================================


@dataclass
class ReviewFinding:
    """A single issue found during review."""

    path: str
    line: int
    body: str
    source: FindingSource
    severity: Severity
    category: str
    confidence: float = 0.7
    suggested_fix: str | None = None
    rule_id: str | None = None
    graph_context: str | None = None  # Citation of past reviews


class ReviewInteraction(BaseModel):
    """A finding or human comment recorded in the knowledge stores."""

    id: str
    repo: str
    pull_number: int
    diff_context: str
    review_comment: str
    file_path: str
    line: int
    category: str
    approved: bool | None = None  # None until a feedback signal arrives
    concepts: list[str] = Field(default_factory=list)
    timestamp: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    source: FindingSource = FindingSource.LLM
    severity: Severity = Severity.INFO


@dataclass
class RetrievedPattern:
    """A past interaction surfaced by recall."""

    diff_snippet: str
    review_comment: str
    file_path: str
    category: str
    score: float
    approved: bool | None
    pull_number: int | None = None
    source: str | None = None


@dataclass
class LearningContext:
    """Past patterns split by how reviewers received them."""

    approved_patterns: list[RetrievedPattern] = field(default_factory=list)
    rejected_patterns: list[RetrievedPattern] = field(default_factory=list)

    @property
    def is_empty(self) -> bool:
        return not self.approved_patterns and not self.rejected_patterns


@dataclass
class ConceptStat:
    """Approval statistics for a concept."""

    concept: str
    total: int
    approved: int
    rate: float


# =============================================================================
# Review output and gate records
# =============================================================================


class InlineComment(BaseModel):
    """An annotation attached to a specific line."""

    path: str
    line: int
    body: str
    side: str = "RIGHT"


class ReviewResult(BaseModel):
    """The assembled review, ready to post or hold."""

    body: str
    comments: list[InlineComment] = Field(default_factory=list)
    event: ReviewEvent = ReviewEvent.COMMENT
    summary: str = ""
    metadata: dict[str, Any] = Field(default_factory=dict)
    # Stored in the knowledge stores once the review is posted
    interactions: list[ReviewInteraction] = Field(default_factory=list)


class PendingReview(BaseModel):
    """A review held by the gate awaiting approval."""

    id: str
    repo: str
    owner: str
    pull_number: int
    head_sha: str
    installation_id: int = 0
    result: ReviewResult
    status: PendingStatus = PendingStatus.PENDING
    created_at: datetime
    resolved_at: datetime | None = None


class FeatureFlag(BaseModel):
    """A named boolean switch."""

    key: str
    enabled: bool = False
    updated_at: datetime | None = None


# =============================================================================
# Interaction identity
# =============================================================================

INTERACTION_MARKER_PREFIX = "<!-- review-forge-id:"
INTERACTION_ID_PATTERN = re.compile(re.escape(INTERACTION_MARKER_PREFIX) + r"(\S+) -->")
REVIEW_TAG = "<!-- review-forge -->"


def stable_interaction_id(*parts: Any) -> str:
    """Derive a UUID-shaped id from a stable key so re-ingestion is idempotent."""
    digest = hashlib.sha256(":".join(str(p) for p in parts).encode()).hexdigest()
    return f"{digest[:8]}-{digest[8:12]}-{digest[12:16]}-{digest[16:20]}-{digest[20:32]}"


def interaction_marker(interaction_id: str) -> str:
    """Hidden marker embedded in posted comment bodies."""
    return f"{INTERACTION_MARKER_PREFIX}{interaction_id} -->"


def extract_interaction_id(body: str | None) -> str | None:
    """Recover the interaction id from a posted comment body."""
    if not body:
        return None
    match = INTERACTION_ID_PATTERN.search(body)
    return match.group(1) if match else None
