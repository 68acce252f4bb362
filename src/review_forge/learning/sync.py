"""
History sync.

Backfills the knowledge stores from a repository's existing pull request
comments, so the learning loop has material before the first review. One
sync runs at a time; its progress is readable while it runs.
"""

from dataclasses import dataclass
from datetime import datetime, timezone
from enum import Enum
from typing import Protocol

import structlog

from review_forge.errors import SyncInProgressError
from review_forge.events import HumanComment
from review_forge.learning.feedback import HumanCommentIngestor
from review_forge.models import stable_interaction_id

logger = structlog.get_logger(__name__)

MAX_SYNC_PRS = 200
MAX_SYNC_DIFF_CONTEXT = 2000


class HistorySource(Protocol):
    """Read access to a repository's past pull requests."""

    async def list_pull_numbers(self, owner: str, repo: str, installation_id: int, limit: int) -> list[int]:
        """Most recently updated pull requests, any state."""
        ...

    async def list_review_comments(
        self, owner: str, repo: str, pull_number: int, installation_id: int
    ) -> list[HumanComment]:
        ...

    async def list_issue_comments(
        self, owner: str, repo: str, pull_number: int, installation_id: int
    ) -> list[HumanComment]:
        ...


class SyncStatus(str, Enum):
    IDLE = "idle"
    RUNNING = "running"
    DONE = "done"
    ERROR = "error"


@dataclass
class SyncProgress:
    """Snapshot of the current or last sync."""

    status: SyncStatus = SyncStatus.IDLE
    repo: str = ""
    total_prs: int = 0
    processed_prs: int = 0
    comments_ingested: int = 0
    started_at: datetime | None = None
    error: str | None = None


class HistorySync:
    """Ingest human comments from past pull requests."""

    def __init__(self, source: HistorySource, ingestor: HumanCommentIngestor, max_prs: int = MAX_SYNC_PRS):
        self.source = source
        self.ingestor = ingestor
        self.max_prs = max_prs
        self.progress = SyncProgress()

    @property
    def running(self) -> bool:
        return self.progress.status == SyncStatus.RUNNING

    def begin(self, repo: str) -> None:
        """Claim the sync slot for ``repo``.

        Raises:
            SyncInProgressError: another sync is running
        """
        if self.running:
            raise SyncInProgressError(f"Sync already in progress for {self.progress.repo}")
        self.progress = SyncProgress(
            status=SyncStatus.RUNNING,
            repo=repo,
            started_at=datetime.now(timezone.utc),
        )

    async def run(self, repo: str, installation_id: int) -> SyncProgress:
        """Claim the slot and sync ``repo`` ("owner/name")."""
        self.begin(repo)
        return await self.execute(repo, installation_id)

    async def execute(self, repo: str, installation_id: int) -> SyncProgress:
        """Sync a repo whose slot was claimed with ``begin``.

        Never raises; failures end in ``SyncStatus.ERROR``.
        """
        progress = self.progress
        log = logger.bind(repo=repo)

        owner, _, name = repo.partition("/")
        if not owner or not name or "/" in name:
            progress.status = SyncStatus.ERROR
            progress.error = f"Invalid repo format: {repo}"
            log.warning("History sync rejected", error=progress.error)
            return progress

        try:
            pull_numbers = await self.source.list_pull_numbers(owner, name, installation_id, self.max_prs)
            progress.total_prs = len(pull_numbers)
            log.info("History sync started", prs=progress.total_prs)

            for pull_number in pull_numbers:
                try:
                    progress.comments_ingested += await self._sync_pull(owner, name, pull_number, installation_id)
                except Exception as e:
                    log.warning("Failed to sync PR", pr=pull_number, error=str(e))
                progress.processed_prs += 1

            progress.status = SyncStatus.DONE
            log.info("History sync complete", prs=progress.processed_prs, comments=progress.comments_ingested)
        except Exception as e:
            progress.status = SyncStatus.ERROR
            progress.error = str(e)
            log.error("History sync failed", error=str(e))
        return progress

    async def _sync_pull(self, owner: str, name: str, pull_number: int, installation_id: int) -> int:
        repo = f"{owner}/{name}"
        review_comments = await self.source.list_review_comments(owner, name, pull_number, installation_id)
        issue_comments = await self.source.list_issue_comments(owner, name, pull_number, installation_id)

        ingested = 0
        for kind, comments in (("review", review_comments), ("issue", issue_comments)):
            for comment in comments:
                if not self.ingestor.should_ingest(comment):
                    continue
                event = comment.model_copy(
                    update={
                        "repo": repo,
                        "pull_number": pull_number,
                        "diff_hunk": comment.diff_hunk[:MAX_SYNC_DIFF_CONTEXT],
                    }
                )
                files = [event.path] if event.path else []
                await self.ingestor.store_comment(
                    event,
                    stable_interaction_id("sync", repo, kind, comment.comment_id),
                    concepts=self.ingestor.concepts.extract_deterministic(files, event.body),
                )
                ingested += 1
        return ingested
