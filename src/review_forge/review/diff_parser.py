"""
Diff Parser

Parses unified-diff patches into structured hunks with per-line numbering.
Parsing is permissive: anything that is not a recognised header or marker
inside a hunk is treated as context.
"""

import re
from collections.abc import Iterable

from review_forge.models import DiffHunk, DiffLine, FileStatus, LineType, ParsedFile, PRFile

HUNK_HEADER = re.compile(r"^@@\s+-(\d+)(?:,(\d+))?\s+\+(\d+)(?:,(\d+))?\s+@@")

_STATUS_MAP = {
    "added": FileStatus.ADDED,
    "removed": FileStatus.REMOVED,
    "deleted": FileStatus.REMOVED,
    "renamed": FileStatus.RENAMED,
}


def normalize_status(status: str | None) -> FileStatus:
    """Map a host-reported status onto the four known statuses."""
    return _STATUS_MAP.get((status or "").lower(), FileStatus.MODIFIED)


def parse_patch(filename: str, patch: str | None, status: str | None = "modified") -> ParsedFile:
    """Parse the patch text of a single file.

    Lines before the first hunk header are ignored. ``\\`` markers
    ("No newline at end of file") are skipped.
    """
    parsed = ParsedFile(filename=filename, status=normalize_status(status))
    if not patch:
        return parsed

    current: DiffHunk | None = None
    old_line = 0
    new_line = 0

    for raw in patch.rstrip("\n").split("\n"):
        header = HUNK_HEADER.match(raw)
        if header:
            current = DiffHunk(
                old_start=int(header.group(1)),
                old_count=int(header.group(2) or "1"),
                new_start=int(header.group(3)),
                new_count=int(header.group(4) or "1"),
            )
            parsed.hunks.append(current)
            old_line = current.old_start
            new_line = current.new_start
            continue

        if current is None or raw.startswith("\\"):
            continue

        if raw.startswith("+"):
            current.lines.append(DiffLine(LineType.ADD, raw[1:], None, new_line))
            parsed.additions += 1
            new_line += 1
        elif raw.startswith("-"):
            current.lines.append(DiffLine(LineType.DEL, raw[1:], old_line, None))
            parsed.deletions += 1
            old_line += 1
        else:
            content = raw[1:] if raw.startswith(" ") else raw
            current.lines.append(DiffLine(LineType.CONTEXT, content, old_line, new_line))
            old_line += 1
            new_line += 1

    return parsed


def parse_files(files: Iterable[PRFile]) -> list[ParsedFile]:
    """Parse every changed file reported for a pull request."""
    return [parse_patch(f.filename, f.patch, f.status) for f in files]


def added_line_numbers(file: ParsedFile) -> list[int]:
    """New-side line numbers of every added line."""
    return [line.new_line for line in file.added_lines() if line.new_line is not None]


class GitDiffParser:
    """Split multi-file ``git diff`` output into per-file patches."""

    FILE_HEADER = re.compile(r"^diff --git a/(.+) b/(.+)$")
    NEW_FILE = re.compile(r"^new file mode")
    DELETED_FILE = re.compile(r"^deleted file mode")
    RENAME_FROM = re.compile(r"^rename from (.+)$")

    def parse_diff(self, diff_output: str) -> list[ParsedFile]:
        """Parse full diff output into ParsedFile objects."""
        files: list[ParsedFile] = []
        path: str | None = None
        status = "modified"
        body: list[str] = []
        in_hunks = False

        def flush() -> None:
            if path is not None:
                # Blank separator lines between files are not context
                while body and body[-1] == "":
                    body.pop()
                files.append(parse_patch(path, "\n".join(body), status))

        for line in diff_output.split("\n"):
            file_match = self.FILE_HEADER.match(line)
            if file_match:
                flush()
                path = file_match.group(2)
                status = "modified"
                body = []
                in_hunks = False
                continue

            if path is None:
                continue

            if not in_hunks:
                if self.NEW_FILE.match(line):
                    status = "added"
                elif self.DELETED_FILE.match(line):
                    status = "removed"
                elif self.RENAME_FROM.match(line):
                    status = "renamed"
                elif HUNK_HEADER.match(line):
                    in_hunks = True
                    body.append(line)
                continue

            body.append(line)

        flush()
        return files
