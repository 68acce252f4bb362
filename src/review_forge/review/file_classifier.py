"""
File Classifier

Ranks changed files for review ordering. Source code is reviewed first,
then config, tests, unknown files and finally documentation.
"""

import re
from pathlib import PurePosixPath


class FileClassifier:
    """Classify files for review prioritization."""

    SOURCE_PRIORITY = 10
    CONFIG_PRIORITY = 5
    TEST_PRIORITY = 4
    DEFAULT_PRIORITY = 3
    DOC_PRIORITY = 2

    SOURCE_EXTENSIONS = {
        ".ts", ".tsx", ".js", ".jsx",
        ".py", ".go", ".rs", ".java",
        ".rb", ".kt", ".swift", ".cs",
    }

    CONFIG_EXTENSIONS = {".json", ".yml", ".yaml", ".toml", ".env", ".ini"}

    DOC_EXTENSIONS = {".md", ".txt", ".rst"}

    # Test patterns take precedence over the extension
    TEST_PATTERNS = [
        r"\.(test|spec)\.(ts|tsx|js|jsx)$",
        r"(^|/)__tests__/",
        r"(^|/)tests?/.+\.(py|ts|tsx|js|jsx|go|rs|java|rb)$",
        r"(^|/)test_[^/]*\.py$",
        r"_test\.(py|go)$",
    ]

    def __init__(self):
        """Initialize classifier."""
        self._tests = [re.compile(p, re.I) for p in self.TEST_PATTERNS]

    def is_test(self, filename: str) -> bool:
        """Check whether a path looks like a test file."""
        return any(pattern.search(filename) for pattern in self._tests)

    def is_source(self, filename: str) -> bool:
        """Check whether a path is source code (tests included)."""
        return self._extension(filename) in self.SOURCE_EXTENSIONS

    def priority(self, filename: str) -> int:
        """Review priority; higher is reviewed first."""
        if self.is_test(filename):
            return self.TEST_PRIORITY

        ext = self._extension(filename)
        if ext in self.SOURCE_EXTENSIONS:
            return self.SOURCE_PRIORITY
        if ext in self.CONFIG_EXTENSIONS:
            return self.CONFIG_PRIORITY
        if ext in self.DOC_EXTENSIONS:
            return self.DOC_PRIORITY
        return self.DEFAULT_PRIORITY

    @staticmethod
    def _extension(filename: str) -> str:
        name = PurePosixPath(filename).name
        # Dotfiles like ".env" are their own extension
        if name.startswith(".") and name.count(".") == 1:
            return name.lower()
        return PurePosixPath(name).suffix.lower()
