"""Pytest configuration and fixtures for Review Forge tests."""

from collections.abc import Callable
from typing import Any

import pytest

from review_forge.models import (
    FindingSource,
    PRContext,
    ParsedFile,
    ReviewFinding,
    ReviewInteraction,
    Severity,
)
from review_forge.review.diff_parser import parse_patch


def build_patch(added: list[str], start: int = 1) -> str:
    """A single-hunk patch adding ``added`` lines from ``start``."""
    header = f"@@ -{start},0 +{start},{len(added)} @@"
    return "\n".join([header, *(f"+{line}" for line in added)])


@pytest.fixture
def make_file() -> Callable[..., ParsedFile]:
    """Factory for a parsed file with only added lines."""

    def _make(filename: str = "src/app.py", added: list[str] | None = None, status: str = "modified", start: int = 1):
        lines = added if added is not None else ["x = 1"]
        return parse_patch(filename, build_patch(lines, start) if lines else "", status)

    return _make


@pytest.fixture
def make_finding() -> Callable[..., ReviewFinding]:
    """Factory for review findings with sensible defaults."""

    def _make(**overrides: Any) -> ReviewFinding:
        values: dict[str, Any] = {
            "path": "src/app.py",
            "line": 1,
            "body": "Possible None dereference",
            "source": FindingSource.LLM,
            "severity": Severity.WARNING,
            "category": "bugs",
            "confidence": 0.8,
        }
        values.update(overrides)
        return ReviewFinding(**values)

    return _make


@pytest.fixture
def make_interaction() -> Callable[..., ReviewInteraction]:
    """Factory for stored review interactions."""

    def _make(**overrides: Any) -> ReviewInteraction:
        values: dict[str, Any] = {
            "id": "int-1",
            "repo": "acme/widgets",
            "pull_number": 7,
            "diff_context": "+ value = fetch()",
            "review_comment": "Check for None before using the fetched value",
            "file_path": "src/app.py",
            "line": 3,
            "category": "bugs",
            "concepts": ["file:src/app.py", "stem:app", "null-safety"],
        }
        values.update(overrides)
        return ReviewInteraction(**values)

    return _make


@pytest.fixture
def pr_context() -> PRContext:
    """Pull request under review."""
    return PRContext(
        owner="acme",
        repo="widgets",
        pull_number=42,
        head_sha="abc123",
        head_ref="feature",
        base_ref="main",
        installation_id=99,
    )
