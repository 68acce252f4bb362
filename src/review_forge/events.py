"""
Webhook event models.

Feedback signals and human comments are validated at the boundary into
a tagged union; handlers dispatch on the ``kind`` field. Pull request
open/update deliveries become ``PullRequestEvent`` and trigger a review.
"""

from typing import Annotated, Any, Literal, Optional, Union

import structlog
from pydantic import BaseModel, Field, TypeAdapter

from review_forge.models import REVIEW_TAG, PRContext, extract_interaction_id

logger = structlog.get_logger(__name__)

REVIEWABLE_ACTIONS = frozenset({"opened", "synchronize", "reopened"})


class _Signal(BaseModel):
    interaction_id: str
    repo: str
    pull_number: int = 0
    comment_source: str = "llm"
    category: str = "general"


class CommentResolved(_Signal):
    """A reviewer resolved one of our inline comments."""

    kind: Literal["comment_resolved"] = "comment_resolved"


class CommentDeleted(_Signal):
    """A reviewer deleted one of our inline comments."""

    kind: Literal["comment_deleted"] = "comment_deleted"


class ReviewDismissed(_Signal):
    """A reviewer dismissed our whole review."""

    kind: Literal["review_dismissed"] = "review_dismissed"


class HumanComment(BaseModel):
    """A comment written by a person on a pull request."""

    kind: Literal["human_comment"] = "human_comment"
    comment_id: int
    repo: str
    pull_number: int
    body: str
    author: str = ""
    author_type: str = "User"
    path: str = ""
    line: int = 0
    diff_hunk: str = ""


class PullRequestEvent(BaseModel):
    """A pull request was opened, updated or reopened."""

    kind: Literal["pull_request"] = "pull_request"
    action: str
    owner: str
    repo: str
    pull_number: int
    head_sha: str
    head_ref: str = ""
    base_ref: str = ""
    installation_id: int
    pr_author: Optional[str] = None

    @property
    def is_resync(self) -> bool:
        return self.action == "synchronize"

    def to_context(self) -> PRContext:
        return PRContext(
            owner=self.owner,
            repo=self.repo,
            pull_number=self.pull_number,
            head_sha=self.head_sha,
            head_ref=self.head_ref,
            base_ref=self.base_ref,
            installation_id=self.installation_id,
            pr_author=self.pr_author,
        )


FeedbackSignal = Annotated[
    Union[CommentResolved, CommentDeleted, ReviewDismissed],
    Field(discriminator="kind"),
]

WebhookEvent = Annotated[
    Union[CommentResolved, CommentDeleted, ReviewDismissed, HumanComment],
    Field(discriminator="kind"),
]

feedback_signal_adapter: TypeAdapter = TypeAdapter(FeedbackSignal)
webhook_event_adapter: TypeAdapter = TypeAdapter(WebhookEvent)


def parse_github_event(event_name: str, payload: dict[str, Any]) -> Optional[BaseModel]:
    """
    Translate a GitHub webhook delivery into an event model.

    Args:
        event_name: X-GitHub-Event header value
        payload: Decoded JSON body

    Returns:
        The event, or None when the delivery carries no signal
    """
    action = payload.get("action")
    repo = (payload.get("repository") or {}).get("full_name", "")
    pull_number = (payload.get("pull_request") or payload.get("issue") or {}).get("number", 0)

    if event_name == "pull_request":
        return _pull_request_event(action, payload)

    if event_name == "pull_request_review" and action == "dismissed":
        body = (payload.get("review") or {}).get("body") or ""
        interaction_id = extract_interaction_id(body)
        if REVIEW_TAG not in body or not interaction_id:
            return None
        return ReviewDismissed(interaction_id=interaction_id, repo=repo, pull_number=pull_number)

    if event_name == "pull_request_review_thread" and action == "resolved":
        comments = (payload.get("thread") or {}).get("comments") or []
        body = comments[0].get("body") if comments else None
        interaction_id = extract_interaction_id(body)
        if not interaction_id:
            return None
        return CommentResolved(interaction_id=interaction_id, repo=repo, pull_number=pull_number)

    comment = payload.get("comment") or {}
    if event_name == "pull_request_review_comment" and action in ("resolved", "deleted"):
        interaction_id = extract_interaction_id(comment.get("body"))
        if not interaction_id:
            return None
        cls = CommentResolved if action == "resolved" else CommentDeleted
        return cls(interaction_id=interaction_id, repo=repo, pull_number=pull_number)

    if event_name in ("issue_comment", "pull_request_review_comment") and action == "created":
        if event_name == "issue_comment" and not (payload.get("issue") or {}).get("pull_request"):
            return None
        user = comment.get("user") or {}
        return HumanComment(
            comment_id=comment.get("id", 0),
            repo=repo,
            pull_number=pull_number,
            body=comment.get("body") or "",
            author=user.get("login", ""),
            author_type=user.get("type", "User"),
            path=comment.get("path") or "",
            line=comment.get("line") or comment.get("original_line") or 0,
            diff_hunk=comment.get("diff_hunk") or "",
        )

    return None


def _pull_request_event(action: Optional[str], payload: dict[str, Any]) -> Optional[PullRequestEvent]:
    pr = payload.get("pull_request") or {}
    if action not in REVIEWABLE_ACTIONS:
        logger.debug("Skipping non-reviewable PR action", action=action, pr=pr.get("number"))
        return None
    if pr.get("draft"):
        logger.info("Skipping draft PR", pr=pr.get("number"))
        return None

    installation_id = (payload.get("installation") or {}).get("id")
    if not installation_id:
        logger.error("No installation ID in webhook payload", pr=pr.get("number"))
        return None

    base = pr.get("base") or {}
    head = pr.get("head") or {}
    base_repo = base.get("repo") or payload.get("repository") or {}
    return PullRequestEvent(
        action=action,
        owner=(base_repo.get("owner") or {}).get("login", ""),
        repo=base_repo.get("name", ""),
        pull_number=pr.get("number", 0),
        head_sha=head.get("sha", ""),
        head_ref=head.get("ref", ""),
        base_ref=base.get("ref", ""),
        installation_id=installation_id,
        pr_author=(pr.get("user") or {}).get("login"),
    )
