"""
Finding enrichment.

Attaches a short citation of past reviews to inline findings: similar
issues that were accepted, similar comments that were dismissed, or the
file's accepted review history.
"""

import asyncio
from dataclasses import replace

import structlog

from review_forge.learning.base import InteractionGraph
from review_forge.learning.concepts import ConceptExtractor
from review_forge.models import FindingSource, ParsedFile, RetrievedPattern, ReviewFinding

logger = structlog.get_logger(__name__)

RELATED_LIMIT = 3
HISTORY_LIMIT = 3


class Enricher:
    """Cite graph knowledge on findings."""

    def __init__(self, graph: InteractionGraph | None, concepts: ConceptExtractor | None = None):
        self.graph = graph
        self.concepts = concepts or ConceptExtractor()

    async def enrich(self, findings: list[ReviewFinding], repo: str, files: list[ParsedFile]) -> list[ReviewFinding]:
        """Return copies of ``findings`` with ``graph_context`` filled where known."""
        if self.graph is None or not findings:
            return list(findings)
        by_path = {f.filename: f for f in files}
        return list(await asyncio.gather(*(self._enrich_one(f, repo, by_path) for f in findings)))

    async def _enrich_one(
        self, finding: ReviewFinding, repo: str, by_path: dict[str, ParsedFile]
    ) -> ReviewFinding:
        try:
            file = by_path.get(finding.path)
            concepts = self.concepts.extract_deterministic([file] if file else [finding.path], finding.body)
            related, history = await asyncio.gather(
                self.graph.get_related_interactions(concepts, repo, RELATED_LIMIT),
                self.graph.get_file_history(finding.path, repo, HISTORY_LIMIT),
            )
        except Exception as e:
            logger.warning("Failed to enrich finding, using as-is", path=finding.path, error=str(e))
            return finding

        context = build_graph_context(related, history)
        return replace(finding, graph_context=context) if context else finding


def build_graph_context(related: list[RetrievedPattern], history: list[RetrievedPattern]) -> str | None:
    """Compose the citation text, or None when nothing applies."""
    parts = []

    approved = [r for r in related if r.approved is True]
    if approved:
        parts.append(_approved_context(approved))

    rejected = [r for r in related if r.approved is False]
    if rejected:
        parts.append(_rejected_context(rejected))

    accepted_history = [h for h in history if h.approved is True]
    if accepted_history and not parts:
        parts.append(_history_context(accepted_history))

    return " ".join(parts) if parts else None


def _unique(values: list[str]) -> list[str]:
    return list(dict.fromkeys(values))


def _approved_context(patterns: list[RetrievedPattern]) -> str:
    refs = []
    for p in patterns:
        ref = f"`{p.file_path}`"
        if p.pull_number:
            ref += f" in PR #{p.pull_number}"
        if p.source == FindingSource.HUMAN.value:
            ref += " (human comment)"
        refs.append(ref)
    return f"Past reviews: Similar issues in {', '.join(_unique(refs))} were flagged and fixed."


def _rejected_context(patterns: list[RetrievedPattern]) -> str:
    prs = _unique([f"#{p.pull_number}" for p in patterns if p.pull_number])
    if prs:
        return f"Note: Similar comments were dismissed in {', '.join(prs)}."
    return "Note: Similar comments were previously dismissed in past reviews."


def _history_context(patterns: list[RetrievedPattern]) -> str:
    prs = _unique([f"#{p.pull_number}" for p in patterns if p.pull_number])
    human = sum(1 for p in patterns if p.source == FindingSource.HUMAN.value)

    text = f"This file has {len(patterns)} past review(s) with accepted feedback"
    if prs:
        text += f" from {', '.join(prs)}"
    if human:
        text += f" ({human} from human reviewers)"
    return text + "."
