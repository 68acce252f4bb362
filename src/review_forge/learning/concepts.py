"""
Concept Extractor

Derives the tags used to index interactions in the graph store. Every
file contributes a ``file:`` and ``stem:`` concept; review text adds a
handful of semantic tags, from the model when one is configured and from
keyword heuristics otherwise.
"""

import json
import re
from collections.abc import Iterable
from pathlib import PurePosixPath

import structlog

from review_forge.llm.client import ReviewLLMClient
from review_forge.models import ParsedFile

logger = structlog.get_logger(__name__)

MAX_CONCEPTS = 15
MIN_SEMANTIC_TAGS = 3
MAX_SEMANTIC_TAGS = 7
MIN_TEXT_LENGTH = 10

TAXONOMY = {
    "patterns": [
        "null-safety", "error-handling", "async-patterns", "resource-cleanup",
        "immutability", "dependency-injection", "caching", "retry-logic",
    ],
    "architecture": [
        "separation-of-concerns", "api-design", "data-modeling", "state-management",
        "modularity", "coupling", "layering",
    ],
    "quality": [
        "naming", "readability", "testing", "type-safety", "validation",
        "documentation", "duplication", "complexity", "structure",
    ],
    "domain": [
        "security", "performance", "authentication", "authorization", "database",
        "concurrency", "logging", "configuration", "networking",
    ],
}

KEYWORD_TAGS: list[tuple[str, re.Pattern[str]]] = [
    ("null-safety", re.compile(r"\b(null|undefined|none|optional|nullable|npe)\b", re.I)),
    ("error-handling", re.compile(r"\b(error|exception|catch|throw|raise|try)\b", re.I)),
    ("security", re.compile(r"\b(secur\w*|inject\w*|xss|csrf|secret|password|token|auth\w*|sanitiz\w*)\b", re.I)),
    ("performance", re.compile(r"\b(perf\w*|slow|latency|cache|n\+1|memory|optimi[sz]\w*|loop)\b", re.I)),
    ("testing", re.compile(r"\b(test\w*|mock\w*|assert\w*|coverage|fixture)\b", re.I)),
    ("type-safety", re.compile(r"\b(types?|typing|cast|any|generic\w*|annotation)\b", re.I)),
    ("async-patterns", re.compile(r"\b(async|await|promise|concurren\w*|race|deadlock|thread)\b", re.I)),
    ("naming", re.compile(r"\b(nam(e|es|ing)|rename|identifier)\b", re.I)),
    ("structure", re.compile(r"\b(refactor\w*|structure|duplicat\w*|extract|modular\w*|complex\w*)\b", re.I)),
    ("validation", re.compile(r"\b(validat\w*|check|verify|sanit\w*|input)\b", re.I)),
]

FALLBACK_TAG = "general-review"

_TAG_SHAPE = re.compile(r"^[a-z][a-z0-9]*(-[a-z0-9]+)*$")


class ConceptExtractor:
    """Extract graph concepts from files and review text."""

    SYSTEM_PROMPT = (
        "You tag code review comments with concepts from a fixed taxonomy. "
        "Respond with a JSON array of lowercase kebab-case tags and nothing else."
    )

    def __init__(self, llm: ReviewLLMClient | None = None, model: str = "claude-3-5-haiku-latest"):
        """
        Initialize extractor.

        Args:
            llm: Model client used for semantic tagging; keyword
                heuristics are used when absent
            model: Model used for tagging
        """
        self.llm = llm
        self.model = model

    async def extract(self, files: Iterable[ParsedFile | str], text: str) -> list[str]:
        """Extract concepts, using the model for semantic tags when available."""
        concepts = file_concepts(files)
        if len(text.strip()) > MIN_TEXT_LENGTH:
            tags = await self._semantic_tags(text)
            concepts = _merge(concepts, tags)
        return concepts[:MAX_CONCEPTS]

    def extract_deterministic(self, files: Iterable[ParsedFile | str], text: str) -> list[str]:
        """Extract concepts without calling the model."""
        concepts = file_concepts(files)
        if len(text.strip()) > MIN_TEXT_LENGTH:
            concepts = _merge(concepts, keyword_tags(text))
        return concepts[:MAX_CONCEPTS]

    async def _semantic_tags(self, text: str) -> list[str]:
        if self.llm is None:
            return keyword_tags(text)

        try:
            raw = await self.llm.complete_text(
                system=self.SYSTEM_PROMPT,
                prompt=self._build_prompt(text),
                model=self.model,
                max_tokens=200,
            )
            tags = parse_tag_response(raw)
        except Exception as e:
            logger.warning("Semantic tagging failed, using keywords", error=str(e))
            return keyword_tags(text)

        if len(tags) < MIN_SEMANTIC_TAGS:
            logger.debug("Too few semantic tags, using keywords", tags=tags)
            return keyword_tags(text)
        return tags[:MAX_SEMANTIC_TAGS]

    @staticmethod
    def _build_prompt(text: str) -> str:
        taxonomy = "\n".join(f"- {group}: {', '.join(tags)}" for group, tags in TAXONOMY.items())
        return (
            f"Pick {MIN_SEMANTIC_TAGS}-{MAX_SEMANTIC_TAGS} concepts that describe this review text.\n"
            f"Prefer tags from this taxonomy:\n{taxonomy}\n\n"
            f"Text:\n{text[:2000]}"
        )


def file_concepts(files: Iterable[ParsedFile | str]) -> list[str]:
    """``file:<path>`` and ``stem:<name>`` concepts, in input order."""
    concepts: list[str] = []
    for item in files:
        path = item.filename if isinstance(item, ParsedFile) else item
        concepts = _merge(concepts, [f"file:{path}"])
        stem = file_stem(path)
        if stem:
            concepts = _merge(concepts, [f"stem:{stem}"])
    return concepts


def file_stem(path: str) -> str | None:
    """Lowercased basename without its extension, if longer than 2 chars."""
    stem = PurePosixPath(path).stem.lower()
    return stem if len(stem) > 2 else None


def keyword_tags(text: str) -> list[str]:
    """Heuristic tags for review text."""
    tags = [tag for tag, pattern in KEYWORD_TAGS if pattern.search(text)]
    return tags[:MAX_SEMANTIC_TAGS] or [FALLBACK_TAG]


def parse_tag_response(raw: str) -> list[str]:
    """Pull a list of well-formed tags out of a model response."""
    match = re.search(r"\[.*?\]", raw, re.S)
    if not match:
        return []
    try:
        values = json.loads(match.group(0))
    except json.JSONDecodeError:
        return []
    if not isinstance(values, list):
        return []
    tags = [v.strip().lower() for v in values if isinstance(v, str)]
    return _merge([], [t for t in tags if _TAG_SHAPE.match(t)])


def _merge(existing: list[str], new: Iterable[str]) -> list[str]:
    merged = list(existing)
    for item in new:
        if item not in merged:
            merged.append(item)
    return merged
