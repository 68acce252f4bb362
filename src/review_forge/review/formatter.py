"""
Review formatting.

Renders inline comment bodies and the markdown review body. Repeated
findings of one rule on one file collapse into a single body line.
"""

import re
from dataclasses import dataclass

from review_forge.models import REVIEW_TAG, ReviewFinding, Severity, interaction_marker

SEVERITY_EMOJI = {
    Severity.ERROR: "\U0001F534",
    Severity.WARNING: "\U0001F7E1",
    Severity.INFO: "ℹ️",
}

COMPACT_THRESHOLD = 3
COMPACT_SHOWN_LINES = 6
SIGNATURE_CHARS = 80


@dataclass
class BodyMetadata:
    """Counters shown in the body footer."""

    files_reviewed: int
    rule_findings: int
    llm_findings: int
    inline_count: int


def format_inline_comment(finding: ReviewFinding, interaction_id: str | None = None) -> str:
    """Inline annotation: severity header, body, suggestion and citation."""
    label = finding.severity.value.capitalize()
    parts = [
        f"**{SEVERITY_EMOJI[finding.severity]} {label}** - {finding.category} "
        f"(confidence: {finding.confidence:.2f})",
        "",
        finding.body,
    ]

    if finding.suggested_fix:
        parts.extend(["", "```suggestion", finding.suggested_fix, "```"])

    if finding.graph_context:
        parts.extend(["", f"> \U0001F4DA *{finding.graph_context}*"])

    if interaction_id:
        parts.extend(["", interaction_marker(interaction_id)])

    return "\n".join(parts)


def build_review_body(summary: str, findings: list[ReviewFinding], metadata: BodyMetadata) -> str:
    """Markdown body of the review, grouped by severity."""
    parts = [REVIEW_TAG, "## Review Forge\n"]

    if summary:
        parts.extend([summary, ""])

    sections = [
        (Severity.ERROR, "### Errors\n"),
        (Severity.WARNING, "### Warnings\n"),
        (Severity.INFO, "### Suggestions\n"),
    ]
    for severity, heading in sections:
        group = [f for f in findings if f.severity == severity]
        if group:
            parts.append(heading)
            parts.extend(format_finding_group(group))
            parts.append("")

    if not findings:
        parts.append("No issues found.\n")

    total = metadata.rule_findings + metadata.llm_findings
    parts.append("---")
    parts.append(f"{metadata.files_reviewed} files | {total} findings | {metadata.inline_count} inline")
    return "\n".join(parts)


def format_finding_group(findings: list[ReviewFinding]) -> list[str]:
    """One line per finding, compacting repeats on the same file."""
    groups: dict[tuple[str, str], list[ReviewFinding]] = {}
    for finding in findings:
        signature = finding.rule_id or finding.body[:SIGNATURE_CHARS]
        groups.setdefault((finding.path, signature), []).append(finding)

    lines = []
    for group in groups.values():
        if len(group) >= COMPACT_THRESHOLD:
            first = group[0]
            numbers = [f"L{f.line}" for f in group]
            shown = ", ".join(numbers[:COMPACT_SHOWN_LINES])
            extra = len(numbers) - COMPACT_SHOWN_LINES
            suffix = f", +{extra} more" if extra > 0 else ""
            label = first.rule_id or first.category or "issue"
            lines.append(f"- **`{first.path}`** - {len(group)}× {label} ({shown}{suffix})")
        else:
            lines.extend(f"- **`{f.path}`** L{f.line} - {_strip_leading_bold(f.body)}" for f in group)
    return lines


def _strip_leading_bold(text: str) -> str:
    return re.sub(r"^\*\*.*?\*\*:?\s*", "", text).replace("\n", " ")
