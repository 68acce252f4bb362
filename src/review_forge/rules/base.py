"""Static rule interface."""

from dataclasses import dataclass, field
from typing import Protocol

from review_forge.config import RuleConfig
from review_forge.models import ParsedFile, ReviewFinding


@dataclass
class RuleContext:
    """What a rule sees for one file."""

    file: ParsedFile
    config: RuleConfig
    # Every file in the pull request, for cross-file rules
    all_files: list[ParsedFile] = field(default_factory=list)


class Rule(Protocol):
    """A deterministic check over one file's added lines."""

    id: str
    name: str
    description: str

    def run(self, ctx: RuleContext) -> list[ReviewFinding]:
        """Return findings for ``ctx.file``."""
        ...
