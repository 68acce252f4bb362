"""
Finding Filter

Decides which findings are posted as inline annotations and which are
listed only in the review body. Nothing is dropped: findings over the
inline cap move to the body.
"""

from dataclasses import dataclass, field

from review_forge.models import ReviewFinding, Severity

ALWAYS_INLINE_CATEGORIES = {"security", "bugs"}


@dataclass
class FilteredFindings:
    """Findings split by where they are shown."""

    inline: list[ReviewFinding] = field(default_factory=list)
    body_only: list[ReviewFinding] = field(default_factory=list)


def is_inline_worthy(finding: ReviewFinding, threshold: float) -> bool:
    """Errors, security/bug findings and confident warnings go inline."""
    if finding.severity == Severity.ERROR:
        return True
    if finding.category in ALWAYS_INLINE_CATEGORIES:
        return True
    return finding.severity == Severity.WARNING and finding.confidence >= threshold


def partition_findings(
    findings: list[ReviewFinding],
    inline_threshold: float = 0.7,
    max_inline: int = 5,
) -> FilteredFindings:
    """Split findings into capped inline candidates and body-only notes.

    Candidates are ordered by severity then confidence, both descending;
    ties keep their input order.
    """
    candidates = []
    body_only = []
    for finding in findings:
        if is_inline_worthy(finding, inline_threshold):
            candidates.append(finding)
        else:
            body_only.append(finding)

    candidates.sort(key=lambda f: (f.severity.rank, f.confidence), reverse=True)

    limit = max(0, max_inline)
    body_only.extend(candidates[limit:])
    return FilteredFindings(inline=candidates[:limit], body_only=body_only)
