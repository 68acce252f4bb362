"""
Anthropic client wrapper.

Each model call is a single attempt in ``_call_api``; ``create_message``
wraps it with bounded exponential backoff for transient provider errors.
"""

import asyncio
import random
from collections.abc import Awaitable, Callable
from typing import Any

import anthropic
import structlog

from review_forge.errors import LLMUnavailableError

logger = structlog.get_logger(__name__)


class ReviewLLMClient:
    """Thin async wrapper over the Anthropic Messages API."""

    MAX_ATTEMPTS = 2
    BASE_DELAY = 1.0
    MAX_DELAY = 30.0

    # Internal error and overloaded; rate limits are handled separately
    RETRYABLE_STATUS = {500, 529}

    def __init__(
        self,
        api_key: str | None = None,
        client: anthropic.AsyncAnthropic | None = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        """
        Initialize the client.

        Args:
            api_key: Anthropic API key (ignored when ``client`` is given)
            client: Pre-built AsyncAnthropic client
            sleep: Awaitable used between retries
        """
        self.client = client or anthropic.AsyncAnthropic(api_key=api_key)
        self._sleep = sleep

    async def create_message(self, **kwargs: Any) -> Any:
        """Call ``messages.create`` with retry on transient failures.

        Raises:
            LLMUnavailableError: When attempts are exhausted or the error
                is not transient.
        """
        last_error: Exception | None = None

        for attempt in range(self.MAX_ATTEMPTS):
            try:
                return await self._call_api(**kwargs)
            except Exception as e:
                last_error = e
                if not self.is_retryable(e) or attempt == self.MAX_ATTEMPTS - 1:
                    break
                delay = self.backoff_delay(attempt)
                logger.warning(
                    "Model call failed, retrying",
                    attempt=attempt + 1,
                    delay=round(delay, 2),
                    error=str(e),
                )
                await self._sleep(delay)

        status = getattr(last_error, "status_code", None)
        logger.error("Model call failed", status=status, error=str(last_error))
        raise LLMUnavailableError(str(last_error), status_code=status) from last_error

    async def complete_text(
        self,
        system: str,
        prompt: str,
        model: str,
        max_tokens: int = 512,
        temperature: float = 0.0,
    ) -> str:
        """Single-turn completion returning the concatenated text blocks."""
        response = await self.create_message(
            model=model,
            system=system,
            messages=[{"role": "user", "content": prompt}],
            max_tokens=max_tokens,
            temperature=temperature,
        )
        return "".join(
            block.text for block in response.content if getattr(block, "type", None) == "text"
        ).strip()

    async def _call_api(self, **kwargs: Any) -> Any:
        return await self.client.messages.create(**kwargs)

    def is_retryable(self, error: Exception) -> bool:
        """Transient provider errors worth another attempt."""
        if isinstance(error, (anthropic.RateLimitError, anthropic.APIConnectionError)):
            return True
        if isinstance(error, anthropic.APIStatusError):
            return error.status_code in self.RETRYABLE_STATUS
        return False

    def backoff_delay(self, attempt: int) -> float:
        """Exponential delay with jitter, capped at MAX_DELAY."""
        delay = min(self.BASE_DELAY * (2**attempt), self.MAX_DELAY)
        return delay + random.uniform(0, delay * 0.25)
