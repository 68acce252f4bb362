"""
Agentic Reviewer

Reviews each chunk in a bounded tool-use conversation with the model.
A chunk moves through explicit states:

    AWAIT_MODEL -> (EXECUTE_TOOLS -> AWAIT_MODEL)* -> SUBMITTED | FAILED

The loop is bounded by an iteration ceiling and a soft token ceiling;
near either limit the model is restricted to the terminal submit tool.
"""

import json
import math
from dataclasses import dataclass, field
from enum import Enum
from typing import Any

import structlog
from pydantic import ValidationError

from review_forge.config import RepoConfig
from review_forge.errors import LLMUnavailableError
from review_forge.learning.base import InteractionGraph, SemanticIndex
from review_forge.llm.client import ReviewLLMClient
from review_forge.llm.prompts import build_system_prompt, build_user_prompt
from review_forge.llm.tools import (
    LOOKUP_TOOLS,
    TERMINAL_TOOL,
    SubmitReviewPayload,
    ToolExecutor,
    tool_definitions,
)
from review_forge.models import FileChunk, FindingSource, ParsedFile, ReviewFinding
from review_forge.review.chunker import DiffChunker

logger = structlog.get_logger(__name__)

CHARS_PER_TOKEN = 4
FORCE_SUBMIT_RATIO = 0.85
MAX_OUTPUT_TOKENS = 4096


class ReviewState(str, Enum):
    """States of a single chunk's conversation."""

    AWAIT_MODEL = "await_model"
    EXECUTE_TOOLS = "execute_tools"
    SUBMITTED = "submitted"
    FAILED = "failed"


@dataclass
class ChunkOutcome:
    """Result of reviewing one chunk."""

    state: ReviewState
    summary: str
    findings: list[ReviewFinding] = field(default_factory=list)
    tool_calls: int = 0
    iterations: int = 0


@dataclass
class LLMReviewOutcome:
    """Combined result across all chunks."""

    findings: list[ReviewFinding]
    summary: str
    chunks_used: int
    tool_calls: int = 0
    failed_chunks: int = 0


class AgenticReviewer:
    """Run the model review over a pull request's files."""

    def __init__(
        self,
        llm: ReviewLLMClient,
        semantic: SemanticIndex | None = None,
        graph: InteractionGraph | None = None,
    ):
        """
        Initialize reviewer.

        Args:
            llm: Model client
            semantic: Vector index backing search_past_reviews
            graph: Interaction graph backing the history and stats tools
        """
        self.llm = llm
        self.semantic = semantic
        self.graph = graph

    async def review(
        self,
        files: list[ParsedFile],
        config: RepoConfig,
        repo: str,
        learning_context: str | None = None,
        learning_enabled: bool = True,
    ) -> LLMReviewOutcome:
        """Chunk the files and review each chunk in turn."""
        chunks = DiffChunker(token_budget=config.llm.max_token_budget).chunk(files)
        logger.info("Starting LLM review", chunk_count=len(chunks), file_count=len(files))

        use_tools = learning_enabled and (self.semantic is not None or self.graph is not None)
        system_prompt = build_system_prompt(config, use_tools, learning_context)
        executor = ToolExecutor(repo, self.semantic, self.graph)

        findings: list[ReviewFinding] = []
        summaries: list[str] = []
        tool_calls = 0
        failed = 0

        for index, chunk in enumerate(chunks):
            outcome = await self.review_chunk(chunk, system_prompt, config, executor, use_tools)
            findings.extend(outcome.findings)
            summaries.append(outcome.summary)
            tool_calls += outcome.tool_calls
            if outcome.state == ReviewState.FAILED:
                failed += 1
            logger.info(
                "Chunk reviewed",
                chunk=index + 1,
                state=outcome.state.value,
                findings=len(outcome.findings),
                tool_calls=outcome.tool_calls,
                iterations=outcome.iterations,
            )

        return LLMReviewOutcome(
            findings=findings,
            summary=combine_summaries(summaries),
            chunks_used=len(chunks),
            tool_calls=tool_calls,
            failed_chunks=failed,
        )

    async def review_chunk(
        self,
        chunk: FileChunk,
        system_prompt: str,
        config: RepoConfig,
        executor: ToolExecutor,
        use_tools: bool = True,
    ) -> ChunkOutcome:
        """Drive one chunk's conversation to a terminal state."""
        user_prompt = build_user_prompt(chunk.files)
        allowed_paths = {f.filename for f in chunk.files}
        messages: list[dict[str, Any]] = [{"role": "user", "content": user_prompt}]

        max_iterations = max(1, config.llm.max_tool_iterations)
        budget = config.llm.max_token_budget
        base_chars = len(system_prompt) + len(user_prompt)
        tool_result_chars = 0

        state = ReviewState.AWAIT_MODEL
        outcome = ChunkOutcome(state=state, summary="")
        pending_calls: list[Any] = []

        while state not in (ReviewState.SUBMITTED, ReviewState.FAILED):
            if state == ReviewState.AWAIT_MODEL:
                if outcome.iterations >= max_iterations:
                    logger.warning("Tool-use iteration ceiling reached", iterations=outcome.iterations)
                    outcome.summary = failure_summary(chunk)
                    state = ReviewState.FAILED
                    continue

                used_tokens = math.ceil((base_chars + tool_result_chars) / CHARS_PER_TOKEN)
                force_submit = (
                    not use_tools
                    or used_tokens > budget * FORCE_SUBMIT_RATIO
                    or outcome.iterations == max_iterations - 1
                )

                try:
                    response = await self.llm.create_message(
                        model=config.llm.model,
                        max_tokens=MAX_OUTPUT_TOKENS,
                        temperature=config.llm.temperature,
                        system=system_prompt,
                        messages=messages,
                        tools=tool_definitions(include_lookup=use_tools, terminal_only=force_submit),
                        tool_choice=(
                            {"type": "tool", "name": TERMINAL_TOOL.value} if force_submit else {"type": "auto"}
                        ),
                    )
                except LLMUnavailableError as e:
                    logger.error("LLM review chunk failed", error=str(e))
                    outcome.summary = failure_summary(chunk)
                    state = ReviewState.FAILED
                    continue

                outcome.iterations += 1
                tool_uses = [b for b in response.content if getattr(b, "type", None) == "tool_use"]
                submit = next((b for b in tool_uses if b.name == TERMINAL_TOOL.value), None)

                if submit is not None:
                    outcome.tool_calls += 1
                    outcome.summary, outcome.findings = self._accept_submission(
                        submit.input, allowed_paths, _response_text(response)
                    )
                    state = ReviewState.SUBMITTED
                elif not tool_uses:
                    logger.warning(
                        "Model ended without submit_review, treating as empty review",
                        iterations=outcome.iterations,
                    )
                    outcome.summary = _response_text(response)
                    state = ReviewState.SUBMITTED
                else:
                    messages.append({"role": "assistant", "content": _content_params(response.content)})
                    pending_calls = tool_uses
                    state = ReviewState.EXECUTE_TOOLS

            elif state == ReviewState.EXECUTE_TOOLS:
                results = []
                for call in pending_calls:
                    if call.name in {t.value for t in LOOKUP_TOOLS}:
                        content = await executor.execute(call.name, call.input)
                    else:
                        content = json.dumps({"error": f"Unknown tool: {call.name}"})
                    outcome.tool_calls += 1
                    tool_result_chars += len(content)
                    results.append({"type": "tool_result", "tool_use_id": call.id, "content": content})
                    logger.debug("Tool executed", tool=call.name, result_chars=len(content))

                messages.append({"role": "user", "content": results})
                pending_calls = []
                state = ReviewState.AWAIT_MODEL

        outcome.state = state
        return outcome

    @staticmethod
    def _accept_submission(
        tool_input: Any, allowed_paths: set[str], fallback_text: str
    ) -> tuple[str, list[ReviewFinding]]:
        """Validate a submit_review payload into findings for known paths."""
        try:
            payload = SubmitReviewPayload.model_validate(tool_input)
        except ValidationError as e:
            logger.warning("Invalid submit_review payload", errors=e.error_count())
            summary = tool_input.get("summary") if isinstance(tool_input, dict) else None
            return (summary if isinstance(summary, str) else fallback_text), []

        findings = []
        for comment in payload.comments:
            if comment.path not in allowed_paths:
                logger.warning("Dropping finding for unknown path", path=comment.path)
                continue
            findings.append(
                ReviewFinding(
                    path=comment.path,
                    line=comment.line,
                    body=comment.body,
                    source=FindingSource.LLM,
                    severity=comment.severity,
                    category=comment.category.lower(),
                    confidence=comment.confidence,
                    suggested_fix=comment.suggested_fix,
                )
            )
        return payload.summary, findings


def combine_summaries(summaries: list[str]) -> str:
    """Join chunk summaries, labelling parts when there is more than one."""
    if not summaries:
        return ""
    if len(summaries) == 1:
        return summaries[0]
    return "\n\n".join(f"**Part {i + 1}:** {s}" for i, s in enumerate(summaries))


def failure_summary(chunk: FileChunk) -> str:
    names = ", ".join(f"`{f.filename}`" for f in chunk.files)
    return f"Automated review could not be completed for {names}."


def _response_text(response: Any) -> str:
    return "".join(
        b.text for b in response.content if getattr(b, "type", None) == "text"
    ).strip()


def _content_params(blocks: list[Any]) -> list[dict[str, Any]]:
    """Convert response blocks to request params for the next turn."""
    params = []
    for block in blocks:
        if block.type == "text":
            # Empty text blocks are rejected by the API
            if block.text:
                params.append({"type": "text", "text": block.text})
        elif block.type == "tool_use":
            params.append({"type": "tool_use", "id": block.id, "name": block.name, "input": block.input})
    return params
