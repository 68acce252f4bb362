"""
Unit tests for the diff parser.

Covers single-file patches from the host API and multi-file ``git diff``
output, without requiring a real git repository.
"""

from review_forge.models import FileStatus, LineType, PRFile
from review_forge.review.diff_parser import (
    GitDiffParser,
    added_line_numbers,
    normalize_status,
    parse_files,
    parse_patch,
)


# =============================================================================
# FIXTURES: Sample diffs
# =============================================================================

SIMPLE_PATCH = """\
@@ -10,4 +10,5 @@ def helper():
     pass
-    old()
+    new()
+    print("hello")
     return True"""

MULTI_FILE_DIFF = """\
diff --git a/src/auth.py b/src/auth.py
index 1234567..abcdefg 100644
--- a/src/auth.py
+++ b/src/auth.py
@@ -1,2 +1,4 @@
 def authenticate(user):
+    # Security check
+    validate(user)
     return True

diff --git a/tests/test_auth.py b/tests/test_auth.py
new file mode 100644
index 0000000..1234567
--- /dev/null
+++ b/tests/test_auth.py
@@ -0,0 +1,2 @@
+import pytest
+from src.auth import authenticate
diff --git a/old.py b/old.py
deleted file mode 100644
index 1234567..0000000
--- a/old.py
+++ /dev/null
@@ -1,1 +0,0 @@
-print("bye")
diff --git a/a.py b/b.py
similarity index 90%
rename from a.py
rename to b.py
"""


# =============================================================================
# UNIT TESTS: parse_patch()
# =============================================================================


class TestParsePatch:
    """Tests for single-file patch parsing."""

    def test_line_numbers_follow_hunk_header(self):
        """Old and new line counters advance per line type."""
        parsed = parse_patch("src/utils.py", SIMPLE_PATCH)

        assert len(parsed.hunks) == 1
        lines = parsed.hunks[0].lines
        assert [l.type for l in lines] == [
            LineType.CONTEXT,
            LineType.DEL,
            LineType.ADD,
            LineType.ADD,
            LineType.CONTEXT,
        ]
        assert (lines[0].old_line, lines[0].new_line) == (10, 10)
        assert (lines[1].old_line, lines[1].new_line) == (11, None)
        assert (lines[2].old_line, lines[2].new_line) == (None, 11)
        assert (lines[3].old_line, lines[3].new_line) == (None, 12)
        assert (lines[4].old_line, lines[4].new_line) == (12, 13)

    def test_counts_additions_and_deletions(self):
        parsed = parse_patch("src/utils.py", SIMPLE_PATCH)
        assert parsed.additions == 2
        assert parsed.deletions == 1

    def test_strips_diff_prefix_from_content(self):
        parsed = parse_patch("src/utils.py", SIMPLE_PATCH)
        assert parsed.hunks[0].lines[2].content == "    new()"
        assert parsed.hunks[0].lines[0].content == "    pass"

    def test_header_without_counts_defaults_to_one(self):
        parsed = parse_patch("f.py", "@@ -3 +3 @@\n-a\n+b")
        hunk = parsed.hunks[0]
        assert (hunk.old_start, hunk.old_count, hunk.new_start, hunk.new_count) == (3, 1, 3, 1)

    def test_empty_patch_has_no_hunks(self):
        """Binary or empty patches still produce a file."""
        parsed = parse_patch("image.png", None, "added")
        assert parsed.hunks == []
        assert parsed.status == FileStatus.ADDED

    def test_lines_before_first_hunk_are_ignored(self):
        parsed = parse_patch("f.py", "garbage line\n+not in a hunk\n@@ -1,1 +1,1 @@\n+kept")
        assert parsed.additions == 1
        assert parsed.hunks[0].lines[0].content == "kept"

    def test_no_newline_marker_is_skipped(self):
        parsed = parse_patch("f.py", "@@ -1,1 +1,1 @@\n-a\n\\ No newline at end of file\n+b")
        assert [l.content for l in parsed.hunks[0].lines] == ["a", "b"]

    def test_trailing_newline_adds_no_context_line(self):
        parsed = parse_patch("f.py", "@@ -1,0 +1,1 @@\n+only\n")
        assert len(parsed.hunks[0].lines) == 1

    def test_unrecognized_line_is_treated_as_context(self):
        """Permissive parsing: unknown lines inside a hunk become context."""
        parsed = parse_patch("f.py", "@@ -1,2 +1,2 @@\nweird\n+x")
        first = parsed.hunks[0].lines[0]
        assert first.type == LineType.CONTEXT
        assert first.content == "weird"

    def test_multiple_hunks(self):
        patch = "@@ -1,1 +1,1 @@\n+a\n@@ -20,1 +20,2 @@\n ctx\n+b"
        parsed = parse_patch("f.py", patch)
        assert len(parsed.hunks) == 2
        assert added_line_numbers(parsed) == [1, 21]


class TestStatus:
    """Tests for status normalization."""

    def test_known_statuses(self):
        assert normalize_status("added") == FileStatus.ADDED
        assert normalize_status("removed") == FileStatus.REMOVED
        assert normalize_status("renamed") == FileStatus.RENAMED

    def test_unknown_status_is_modified(self):
        assert normalize_status("copied") == FileStatus.MODIFIED
        assert normalize_status(None) == FileStatus.MODIFIED

    def test_parse_files_uses_reported_status(self):
        files = parse_files([PRFile(filename="a.py", status="added", patch="@@ -0,0 +1,1 @@\n+x")])
        assert files[0].status == FileStatus.ADDED
        assert files[0].additions == 1


# =============================================================================
# UNIT TESTS: GitDiffParser
# =============================================================================


class TestGitDiffParser:
    """Tests for multi-file git diff parsing."""

    def test_splits_files(self):
        files = GitDiffParser().parse_diff(MULTI_FILE_DIFF)
        assert [f.filename for f in files] == ["src/auth.py", "tests/test_auth.py", "old.py", "b.py"]

    def test_detects_file_status(self):
        files = {f.filename: f for f in GitDiffParser().parse_diff(MULTI_FILE_DIFF)}
        assert files["src/auth.py"].status == FileStatus.MODIFIED
        assert files["tests/test_auth.py"].status == FileStatus.ADDED
        assert files["old.py"].status == FileStatus.REMOVED
        assert files["b.py"].status == FileStatus.RENAMED

    def test_blank_separator_is_not_context(self):
        files = GitDiffParser().parse_diff(MULTI_FILE_DIFF)
        auth = files[0]
        assert auth.additions == 2
        assert len(auth.hunks[0].lines) == 4

    def test_rename_without_hunks(self):
        files = GitDiffParser().parse_diff(MULTI_FILE_DIFF)
        assert files[-1].hunks == []

    def test_empty_output(self):
        assert GitDiffParser().parse_diff("") == []
