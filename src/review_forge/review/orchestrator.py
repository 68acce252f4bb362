"""
Review Orchestrator

Coordinates one pull request review end to end:

1. Load repo config (stop if disabled)
2. Dismiss earlier reviews on resync
3. Fetch, filter and parse changed files
4. Run static rules
5. Recall past patterns
6. Run the agentic model review
7. Merge, filter and enrich findings; assemble the review
8. Hold behind the gate, or post and record learning data
"""

import re
import time
from collections.abc import Iterable
from dataclasses import dataclass
from enum import Enum
from typing import Protocol

import structlog

from review_forge.config import FilterConfig, RepoConfig
from review_forge.learning.background import BackgroundWriter
from review_forge.learning.base import KnowledgeSink
from review_forge.learning.concepts import ConceptExtractor
from review_forge.learning.enrich import Enricher
from review_forge.learning.recall import LearningRecall, format_learning_context
from review_forge.llm.reviewer import AgenticReviewer, LLMReviewOutcome
from review_forge.models import (
    FindingSource,
    InlineComment,
    LineType,
    ParsedFile,
    PendingReview,
    PRContext,
    PRFile,
    ReviewEvent,
    ReviewFinding,
    ReviewInteraction,
    ReviewResult,
    Severity,
    interaction_marker,
    stable_interaction_id,
)
from review_forge.review.diff_parser import parse_files
from review_forge.review.filter import partition_findings
from review_forge.review.formatter import BodyMetadata, build_review_body, format_inline_comment
from review_forge.review.gate import ReviewGate
from review_forge.rules.engine import RuleEngine

logger = structlog.get_logger(__name__)

DIFF_CONTEXT_RADIUS = 5
SUMMARY_CATEGORY = "summary"


class SourceControl(Protocol):
    """Source-control host operations used by the orchestrator."""

    async def fetch_files(self, ctx: PRContext) -> list[PRFile]:
        ...

    async def post_review(self, ctx: PRContext, result: ReviewResult) -> int:
        """Post the review; returns the host's review id."""
        ...

    async def dismiss_previous_reviews(self, ctx: PRContext) -> None:
        ...


class ConfigLoader(Protocol):
    """Loads a repository's review configuration."""

    async def load(self, ctx: PRContext) -> RepoConfig:
        ...


class RunStatus(str, Enum):
    """How a review run ended."""

    DISABLED = "disabled"
    NO_FILES = "no_files"
    HELD = "held"
    POSTED = "posted"


@dataclass
class ReviewRun:
    """Outcome of ``Orchestrator.run_review``."""

    status: RunStatus
    result: ReviewResult | None = None
    review_id: int | None = None
    pending_id: str | None = None


class Orchestrator:
    """Run reviews and publish or hold their results."""

    def __init__(
        self,
        source_control: SourceControl,
        config_loader: ConfigLoader,
        gate: ReviewGate,
        reviewer: AgenticReviewer | None = None,
        recall: LearningRecall | None = None,
        enricher: Enricher | None = None,
        sinks: list[KnowledgeSink] | None = None,
        writer: BackgroundWriter | None = None,
        rule_engine: RuleEngine | None = None,
        concepts: ConceptExtractor | None = None,
    ):
        self.source_control = source_control
        self.config_loader = config_loader
        self.gate = gate
        self.reviewer = reviewer
        self.recall = recall
        self.enricher = enricher
        self.sinks = sinks or []
        self.writer = writer or BackgroundWriter()
        self.rule_engine = rule_engine or RuleEngine()
        self.concepts = concepts or ConceptExtractor()

    @property
    def learning_available(self) -> bool:
        return self.recall is not None or bool(self.sinks)

    async def run_review(self, ctx: PRContext, is_resync: bool = False) -> ReviewRun:
        """Review a pull request."""
        started = time.monotonic()
        log = logger.bind(repo=ctx.full_name, pr=ctx.pull_number)

        config = await self.config_loader.load(ctx)
        if not config.enabled:
            log.info("Review disabled for this repo")
            return ReviewRun(status=RunStatus.DISABLED)

        if is_resync and config.review.dismiss_on_update:
            await self.source_control.dismiss_previous_reviews(ctx)

        raw_files = await self.source_control.fetch_files(ctx)
        files = parse_files(filter_files(raw_files, config.filters))
        if not files:
            log.info("No reviewable files in PR")
            return ReviewRun(status=RunStatus.NO_FILES)

        rule_run = self.rule_engine.run(files, config)

        learning_on = config.learning.enabled and self.learning_available
        learning_prompt = None
        if learning_on and self.recall is not None:
            learning_ctx = await self.recall.retrieve(files, ctx.full_name)
            learning_prompt = format_learning_context(learning_ctx)

        llm = LLMReviewOutcome(findings=[], summary="", chunks_used=0)
        if config.llm.enabled and self.reviewer is not None:
            llm = await self.reviewer.review(
                files,
                config,
                repo=ctx.full_name,
                learning_context=learning_prompt,
                learning_enabled=learning_on,
            )

        findings = deduplicate_findings([*rule_run.findings, *llm.findings])
        filtered = partition_findings(
            findings,
            inline_threshold=config.review.inline_threshold,
            max_inline=config.review.max_inline_comments,
        )
        inline = filtered.inline
        if learning_on and self.enricher is not None:
            inline = await self.enricher.enrich(inline, ctx.full_name, files)

        result = self._assemble(ctx, files, inline, findings, llm, rule_run.rules_run, config, started)

        if await self.gate.is_enabled():
            pending = await self.gate.hold(ctx, result)
            log.info("Review held by gate", pending_id=pending.id)
            return ReviewRun(status=RunStatus.HELD, result=result, pending_id=pending.id)

        review_id = await self._publish(ctx, result, learning_on)
        log.info(
            "Review complete",
            review_id=review_id,
            rule_findings=len(rule_run.findings),
            llm_findings=len(llm.findings),
            inline=len(result.comments),
            duration_ms=result.metadata["duration_ms"],
        )
        return ReviewRun(status=RunStatus.POSTED, result=result, review_id=review_id)

    async def publish_pending(self, pending: PendingReview) -> int:
        """Post a review the gate approved.

        The repo config is reloaded so a learning opt-out made while the
        review was held still applies.
        """
        ctx = PRContext(
            owner=pending.owner,
            repo=pending.repo,
            pull_number=pending.pull_number,
            head_sha=pending.head_sha,
            installation_id=pending.installation_id,
        )
        config = await self.config_loader.load(ctx)
        learning_on = config.learning.enabled and bool(self.sinks)
        return await self._publish(ctx, pending.result, learning_on=learning_on)

    async def _publish(self, ctx: PRContext, result: ReviewResult, learning_on: bool) -> int:
        review_id = await self.source_control.post_review(ctx, result)

        meta = result.metadata
        await self.gate.record_review_metric(
            ctx,
            files_reviewed=meta.get("files_reviewed", 0),
            rule_findings=meta.get("rule_findings", 0),
            llm_findings=meta.get("llm_findings", 0),
            inline_comments=len(result.comments),
            tool_calls=meta.get("tool_calls", 0),
            chunks_used=meta.get("chunks_used", 0),
            duration_ms=meta.get("duration_ms", 0),
            event=result.event.value,
        )

        if learning_on:
            for interaction in result.interactions:
                for sink in self.sinks:
                    self.writer.submit(
                        f"{sink.name}:{interaction.id}",
                        lambda s=sink, i=interaction: s.store_interaction(i),
                    )
        return review_id

    def _assemble(
        self,
        ctx: PRContext,
        files: list[ParsedFile],
        inline: list[ReviewFinding],
        findings: list[ReviewFinding],
        llm: LLMReviewOutcome,
        rules_run: int,
        config: RepoConfig,
        started: float,
    ) -> ReviewResult:
        by_path = {f.filename: f for f in files}
        interactions: list[ReviewInteraction] = []
        comments: list[InlineComment] = []

        for finding in inline:
            interaction = self._interaction_for(ctx, finding, by_path.get(finding.path))
            interactions.append(interaction)
            comments.append(
                InlineComment(
                    path=finding.path,
                    line=finding.line,
                    body=format_inline_comment(finding, interaction.id),
                )
            )

        rule_count = sum(1 for f in findings if f.source == FindingSource.RULE)
        summary = llm.summary if config.review.post_summary else ""
        body = build_review_body(
            summary,
            findings,
            BodyMetadata(
                files_reviewed=len(files),
                rule_findings=rule_count,
                llm_findings=len(findings) - rule_count,
                inline_count=len(comments),
            ),
        )

        if llm.summary:
            summary_interaction = ReviewInteraction(
                id=stable_interaction_id(ctx.full_name, ctx.pull_number, ctx.head_sha, SUMMARY_CATEGORY),
                repo=ctx.full_name,
                pull_number=ctx.pull_number,
                diff_context="",
                review_comment=llm.summary,
                file_path="",
                line=0,
                category=SUMMARY_CATEGORY,
                concepts=self.concepts.extract_deterministic([], llm.summary),
                source=FindingSource.LLM,
                severity=Severity.INFO,
            )
            interactions.append(summary_interaction)
            body = f"{body}\n{interaction_marker(summary_interaction.id)}"

        has_errors = any(f.severity == Severity.ERROR for f in findings)
        return ReviewResult(
            body=body,
            comments=comments,
            event=ReviewEvent.REQUEST_CHANGES if has_errors else ReviewEvent.COMMENT,
            summary=llm.summary,
            metadata={
                "files_reviewed": len(files),
                "rules_run": rules_run,
                "rule_findings": rule_count,
                "llm_findings": len(findings) - rule_count,
                "chunks_used": llm.chunks_used,
                "failed_chunks": llm.failed_chunks,
                "tool_calls": llm.tool_calls,
                "duration_ms": int((time.monotonic() - started) * 1000),
            },
            interactions=interactions,
        )

    def _interaction_for(
        self, ctx: PRContext, finding: ReviewFinding, file: ParsedFile | None
    ) -> ReviewInteraction:
        return ReviewInteraction(
            id=stable_interaction_id(
                ctx.full_name, ctx.pull_number, ctx.head_sha, finding.path, finding.line, finding.body
            ),
            repo=ctx.full_name,
            pull_number=ctx.pull_number,
            diff_context=diff_context(file, finding.line) if file else "",
            review_comment=finding.body,
            file_path=finding.path,
            line=finding.line,
            category=finding.category or finding.rule_id or "general",
            approved=None,
            concepts=self.concepts.extract_deterministic([file] if file else [finding.path], finding.body),
            source=finding.source,
            severity=finding.severity,
        )


# =============================================================================
# Helpers
# =============================================================================


def match_glob(path: str, pattern: str) -> bool:
    """Glob match where ``*`` stays within a segment and ``**`` spans segments."""
    regex = re.escape(pattern).replace(r"\*\*", "\0").replace(r"\*", "[^/]*").replace("\0", ".*")
    return re.fullmatch(regex, path) is not None


def filter_files(files: Iterable[PRFile], filters: FilterConfig) -> list[PRFile]:
    """Apply exclude/include globs, the patch size limit and the file cap."""
    kept = []
    for f in files:
        if any(match_glob(f.filename, p) for p in filters.exclude_paths):
            continue
        if filters.include_paths and not any(match_glob(f.filename, p) for p in filters.include_paths):
            continue
        if len(f.patch or "") / 1024 > filters.max_file_size_kb:
            continue
        kept.append(f)
    return kept[: filters.max_files]


def deduplicate_findings(findings: list[ReviewFinding]) -> list[ReviewFinding]:
    """One finding per (path, line), keeping the most severe; first wins ties."""
    kept: dict[tuple[str, int], ReviewFinding] = {}
    for finding in findings:
        key = (finding.path, finding.line)
        existing = kept.get(key)
        if existing is None or finding.severity.rank > existing.severity.rank:
            kept[key] = finding
    return list(kept.values())


def diff_context(file: ParsedFile, line: int, radius: int = DIFF_CONTEXT_RADIUS) -> str:
    """Diff lines within ``radius`` of ``line`` on the new side."""
    prefix = {LineType.ADD: "+", LineType.DEL: "-", LineType.CONTEXT: " "}
    return "\n".join(
        f"{prefix[l.type]} {l.content}"
        for hunk in file.hunks
        for l in hunk.lines
        if l.new_line is not None and abs(l.new_line - line) <= radius
    )
