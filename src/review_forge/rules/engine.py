"""Runs the enabled static rules over a pull request."""

from dataclasses import dataclass

import structlog

from review_forge.config import RepoConfig, RuleConfig
from review_forge.models import ParsedFile, ReviewFinding
from review_forge.rules.base import Rule, RuleContext
from review_forge.rules.builtin import BUILTIN_RULES

logger = structlog.get_logger(__name__)


@dataclass
class RuleRun:
    """Findings from one rule-engine pass."""

    findings: list[ReviewFinding]
    rules_run: int


class RuleEngine:
    """Apply rules file by file; a failing rule is skipped, not fatal."""

    def __init__(self, rules: list[Rule] | None = None):
        self.rules = rules if rules is not None else list(BUILTIN_RULES)

    def run(self, files: list[ParsedFile], config: RepoConfig) -> RuleRun:
        enabled = [
            rule for rule in self.rules if config.rules.get(rule.id, RuleConfig()).enabled
        ]

        findings: list[ReviewFinding] = []
        rules_run = 0
        for file in files:
            for rule in enabled:
                ctx = RuleContext(file=file, config=config.rules.get(rule.id, RuleConfig()), all_files=files)
                try:
                    findings.extend(rule.run(ctx))
                    rules_run += 1
                except Exception as e:
                    logger.warning("Rule execution failed", rule=rule.id, file=file.filename, error=str(e))

        logger.info("Rule engine complete", rules_run=rules_run, findings=len(findings), files=len(files))
        return RuleRun(findings=findings, rules_run=rules_run)
