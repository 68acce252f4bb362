"""
Diff Chunker

Packs parsed files into chunks that fit the model's token budget.
Higher-priority files go first; oversized files are truncated rather
than dropped.
"""

import math
from dataclasses import replace

from review_forge.models import DiffHunk, FileChunk, LineType, ParsedFile
from review_forge.review.file_classifier import FileClassifier


class DiffChunker:
    """Split a pull request's files into reviewable chunks."""

    # Approximate characters per token (conservative estimate)
    CHARS_PER_TOKEN = 4

    # Per-file header overhead and per-line prefix overhead, in characters
    FILE_OVERHEAD = 20
    LINE_OVERHEAD = 5

    # A file above this share of the budget is truncated to TRUNCATE_RATIO
    SOLO_RATIO = 0.8
    TRUNCATE_RATIO = 0.7

    def __init__(self, token_budget: int = 80000, classifier: FileClassifier | None = None):
        """
        Initialize chunker.

        Args:
            token_budget: Maximum estimated tokens per chunk
            classifier: Priority classifier (default FileClassifier)
        """
        self.token_budget = token_budget
        self.classifier = classifier or FileClassifier()

    def estimate_file_tokens(self, file: ParsedFile) -> int:
        """Estimate tokens needed to present a file to the model."""
        chars = len(file.filename) + self.FILE_OVERHEAD
        for hunk in file.hunks:
            for line in hunk.lines:
                chars += len(line.content) + self.LINE_OVERHEAD
        return math.ceil(chars / self.CHARS_PER_TOKEN)

    def chunk(self, files: list[ParsedFile]) -> list[FileChunk]:
        """Pack files into chunks, highest priority first."""
        ordered = sorted(
            files,
            key=lambda f: (-self.classifier.priority(f.filename), self.estimate_file_tokens(f)),
        )

        chunks: list[FileChunk] = []
        current = FileChunk(files=[], estimated_tokens=0)

        for file in ordered:
            tokens = self.estimate_file_tokens(file)

            if tokens > self.token_budget * self.SOLO_RATIO:
                truncated = self.truncate_file(file, math.floor(self.token_budget * self.TRUNCATE_RATIO))
                if current.files:
                    chunks.append(current)
                    current = FileChunk(files=[], estimated_tokens=0)
                chunks.append(FileChunk(files=[truncated], estimated_tokens=self.estimate_file_tokens(truncated)))
                continue

            if current.estimated_tokens + tokens > self.token_budget and current.files:
                chunks.append(current)
                current = FileChunk(files=[], estimated_tokens=0)

            current.files.append(file)
            current.estimated_tokens += tokens

        if current.files:
            chunks.append(current)

        return chunks

    def truncate_file(self, file: ParsedFile, max_tokens: int) -> ParsedFile:
        """Drop trailing lines until the file fits ``max_tokens``.

        Additions, deletions and each kept hunk's line counts are recomputed
        from the lines retained; hunks left empty are dropped.
        """
        tokens = math.ceil((len(file.filename) + self.FILE_OVERHEAD) / self.CHARS_PER_TOKEN)
        hunks: list[DiffHunk] = []
        full = False

        for hunk in file.hunks:
            kept = []
            for line in hunk.lines:
                line_tokens = math.ceil((len(line.content) + self.LINE_OVERHEAD) / self.CHARS_PER_TOKEN)
                if tokens + line_tokens > max_tokens:
                    full = True
                    break
                kept.append(line)
                tokens += line_tokens

            if kept:
                hunks.append(
                    replace(
                        hunk,
                        lines=kept,
                        old_count=sum(1 for l in kept if l.type != LineType.ADD),
                        new_count=sum(1 for l in kept if l.type != LineType.DEL),
                    )
                )
            if full or tokens >= max_tokens:
                break

        return replace(
            file,
            hunks=hunks,
            additions=sum(1 for h in hunks for l in h.lines if l.type == LineType.ADD),
            deletions=sum(1 for h in hunks for l in h.lines if l.type == LineType.DEL),
        )


def chunk_files(files: list[ParsedFile], token_budget: int) -> list[FileChunk]:
    """Convenience wrapper around DiffChunker."""
    return DiffChunker(token_budget=token_budget).chunk(files)
