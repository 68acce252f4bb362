"""
Review pipeline.

Diff parsing, file prioritisation and chunking, finding filtering and
formatting, the approval gate and the orchestrator that ties them together.
"""

from .chunker import DiffChunker, chunk_files
from .diff_parser import GitDiffParser, parse_files, parse_patch
from .file_classifier import FileClassifier

__all__ = [
    "DiffChunker",
    "chunk_files",
    "GitDiffParser",
    "parse_files",
    "parse_patch",
    "FileClassifier",
]
