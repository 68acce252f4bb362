"""Built-in static rules."""

import re

from review_forge.models import DiffLine, FileStatus, FindingSource, ReviewFinding, Severity
from review_forge.review.file_classifier import FileClassifier
from review_forge.rules.base import RuleContext

_classifier = FileClassifier()


def _finding(
    ctx: RuleContext,
    rule_id: str,
    line: DiffLine,
    message: str,
    category: str,
    severity: Severity | None = None,
) -> ReviewFinding:
    return ReviewFinding(
        path=ctx.file.filename,
        line=line.new_line or 0,
        body=f"**{rule_id}**: {message}",
        source=FindingSource.RULE,
        severity=severity or ctx.config.severity,
        category=category,
        confidence=1.0,
        rule_id=rule_id,
    )


def _added(ctx: RuleContext) -> list[DiffLine]:
    return [line for line in ctx.file.added_lines() if line.new_line is not None]


class NoConsoleLog:
    id = "no-console-log"
    name = "No Console Log"
    description = "Flags console/print debugging statements in added lines"

    PATTERN = re.compile(r"\bconsole\.(log|debug|info|warn|error)\b|^\s*print\(")

    def run(self, ctx: RuleContext) -> list[ReviewFinding]:
        return [
            _finding(
                ctx,
                self.id,
                line,
                "Debug output statement detected. Consider removing it or using a proper logger.",
                "style",
            )
            for line in _added(ctx)
            if self.PATTERN.search(line.content)
        ]


class MaxFileSize:
    id = "max-file-size"
    name = "Max File Size"
    description = "Warns when a file adds too many lines"

    DEFAULT_MAX_LINES = 500

    def run(self, ctx: RuleContext) -> list[ReviewFinding]:
        max_lines = ctx.config.max_lines or self.DEFAULT_MAX_LINES
        added = _added(ctx)
        if ctx.file.additions <= max_lines or not added:
            return []
        return [
            _finding(
                ctx,
                self.id,
                added[0],
                f"This file adds {ctx.file.additions} lines (threshold: {max_lines}). "
                "Large files are harder to review; consider splitting.",
                "maintainability",
            )
        ]


class NoSecrets:
    id = "no-secrets"
    name = "No Secrets"
    description = "Detects potential credentials in added lines"

    PATTERNS = [
        (re.compile(r"(?:api[_-]?key|apikey)\s*[:=]\s*[\"'][^\"']{8,}[\"']", re.I), "API key"),
        (re.compile(r"(?:secret|password|passwd|pwd)\s*[:=]\s*[\"'][^\"']{6,}[\"']", re.I), "Secret/password"),
        (re.compile(r"(?:token)\s*[:=]\s*[\"'][^\"']{10,}[\"']", re.I), "Token"),
        (re.compile(r"-----BEGIN (?:RSA |EC |DSA )?PRIVATE KEY-----"), "Private key"),
        (re.compile(r"(?:AKIA|ABIA|ACCA|ASIA)[0-9A-Z]{16}"), "AWS access key"),
        (re.compile(r"ghp_[A-Za-z0-9_]{36}"), "GitHub personal access token"),
        (re.compile(r"sk-[A-Za-z0-9]{20,}"), "API secret key"),
    ]

    def run(self, ctx: RuleContext) -> list[ReviewFinding]:
        findings = []
        for line in _added(ctx):
            for pattern, label in self.PATTERNS:
                if pattern.search(line.content):
                    findings.append(
                        _finding(
                            ctx,
                            self.id,
                            line,
                            f"Potential {label} detected. Never commit secrets; "
                            "use environment variables or a secrets manager.",
                            "security",
                            severity=Severity.ERROR,
                        )
                    )
                    break  # One finding per line
        return findings


class RequireTests:
    id = "require-tests"
    name = "Require Tests"
    description = "Warns when source files change without any test changes"

    def run(self, ctx: RuleContext) -> list[ReviewFinding]:
        filename = ctx.file.filename
        if ctx.file.status == FileStatus.REMOVED:
            return []
        if not _classifier.is_source(filename) or _classifier.is_test(filename):
            return []
        if any(_classifier.is_test(f.filename) for f in ctx.all_files):
            return []

        added = _added(ctx)
        if not added:
            return []
        return [
            _finding(
                ctx,
                self.id,
                added[0],
                "Source file modified without test changes; ensure coverage exists for these changes.",
                "testing",
            )
        ]


class NoTodo:
    id = "no-todo"
    name = "No TODO"
    description = "Flags TODO/FIXME/HACK markers in added lines"

    PATTERN = re.compile(r"\b(TODO|FIXME|HACK|XXX|TEMP)\b")

    def run(self, ctx: RuleContext) -> list[ReviewFinding]:
        findings = []
        for line in _added(ctx):
            match = self.PATTERN.search(line.content)
            if match:
                findings.append(
                    _finding(
                        ctx,
                        self.id,
                        line,
                        f"`{match.group(1)}` comment found. Track this in an issue instead of leaving it in code.",
                        "maintainability",
                    )
                )
        return findings


BUILTIN_RULES = [NoConsoleLog(), MaxFileSize(), NoSecrets(), RequireTests(), NoTodo()]
