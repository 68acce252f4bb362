"""
Background interaction writes.

Interaction storage after a posted review must not delay or fail the
review. Writes run as tasks bounded by a semaphore; writes that raise or
return False land in a dead-letter list instead of propagating.
"""

import asyncio
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from datetime import datetime, timezone

import structlog

logger = structlog.get_logger(__name__)


@dataclass
class DeadLetter:
    """A background write that raised or reported failure."""

    label: str
    error: str
    failed_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))


class BackgroundWriter:
    """Run fire-and-forget writes with bounded concurrency."""

    def __init__(self, max_concurrency: int = 4, max_dead_letters: int = 1000):
        self._semaphore = asyncio.Semaphore(max(1, max_concurrency))
        self._tasks: set[asyncio.Task] = set()
        self.max_dead_letters = max_dead_letters
        self.dead_letters: list[DeadLetter] = []

    def submit(self, label: str, write: Callable[[], Awaitable[object]]) -> asyncio.Task:
        """Schedule ``write``; returns immediately."""
        task = asyncio.create_task(self._run(label, write))
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return task

    async def _run(self, label: str, write: Callable[[], Awaitable[object]]) -> None:
        async with self._semaphore:
            try:
                result = await write()
            except Exception as e:
                logger.warning("Background write failed", label=label, error=str(e))
                self._dead_letter(label, str(e))
                return

            # Sinks report soft failures as False instead of raising.
            if result is False:
                logger.warning("Background write reported failure", label=label)
                self._dead_letter(label, "write returned False")

    def _dead_letter(self, label: str, error: str) -> None:
        self.dead_letters.append(DeadLetter(label=label, error=error))
        del self.dead_letters[: -self.max_dead_letters]

    @property
    def pending(self) -> int:
        return len(self._tasks)

    async def drain(self) -> None:
        """Wait for every scheduled write to finish."""
        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)
