"""API route definitions for the review gate, webhooks, feedback and history sync."""

import time
from typing import Any

import structlog
from fastapi import APIRouter, BackgroundTasks, Body, Header, HTTPException, Request
from pydantic import ValidationError

from review_forge.api.models import (
    ApprovalResponse,
    FeedbackResponse,
    FlagList,
    FlagUpdate,
    PendingReviewList,
    SyncRequest,
)
from review_forge.api.services import Services
from review_forge.errors import SyncInProgressError
from review_forge.events import HumanComment, PullRequestEvent, parse_github_event, webhook_event_adapter
from review_forge.learning.sync import SyncProgress
from review_forge.models import FeatureFlag, PendingReview, PendingStatus, PRContext
from review_forge.review.gate import SYNC_FLAG
from review_forge.review.orchestrator import Orchestrator

logger = structlog.get_logger(__name__)
router = APIRouter()


def get_services(request: Request) -> Services:
    """Services attached to the app at startup."""
    services = getattr(request.app.state, "services", None)
    if services is None:
        raise HTTPException(status_code=503, detail="Service not initialized")
    return services


@router.get("/health")
async def health_check() -> dict[str, Any]:
    """Health check endpoint."""
    return {
        "status": "healthy",
        "service": "review-forge",
        "timestamp": int(time.time()),
    }


# =============================================================================
# FEATURE FLAGS
# =============================================================================


@router.get("/api/flags")
async def list_flags(request: Request) -> FlagList:
    services = get_services(request)
    return FlagList(flags=await services.gate.list_flags())


@router.get("/api/flags/{key}")
async def get_flag(key: str, request: Request) -> FeatureFlag:
    """Read a flag; an unknown flag reads as disabled."""
    services = get_services(request)
    flag = await services.gate.get_feature_flag(key)
    return flag or FeatureFlag(key=key, enabled=False)


@router.post("/api/flags/{key}")
async def set_flag(key: str, update: FlagUpdate, request: Request) -> FeatureFlag:
    services = get_services(request)
    flag = await services.gate.set_flag(key, update.enabled)
    logger.info("Flag updated", key=key, enabled=update.enabled)
    return flag


# =============================================================================
# PENDING REVIEWS
# =============================================================================


@router.get("/api/pending-reviews")
async def list_pending_reviews(
    request: Request,
    status: PendingStatus | None = None,
    limit: int = 50,
) -> PendingReviewList:
    """List held reviews, newest first.

    Args:
        status: Optional status filter
        limit: Maximum rows
    """
    services = get_services(request)
    return PendingReviewList(reviews=await services.gate.list_pending(status, limit))


@router.post("/api/pending-reviews/{review_id}/approve")
async def approve_pending_review(review_id: str, request: Request) -> ApprovalResponse:
    """Approve a held review and publish it.

    Only a review still pending can be approved; anything else is 404.
    """
    services = get_services(request)
    pending = await services.gate.approve(review_id)
    if pending is None:
        raise HTTPException(status_code=404, detail=f"No pending review: {review_id}")

    if services.orchestrator is None:
        logger.warning("Approved review not posted; no source control configured", pending_id=review_id)
        return ApprovalResponse(review=pending)

    posted_id = await services.orchestrator.publish_pending(pending)
    logger.info("Published approved review", pending_id=review_id, review_id=posted_id)
    return ApprovalResponse(review=pending, posted=True, review_id=posted_id)


@router.post("/api/pending-reviews/{review_id}/reject")
async def reject_pending_review(review_id: str, request: Request) -> PendingReview:
    services = get_services(request)
    pending = await services.gate.reject(review_id)
    if pending is None:
        raise HTTPException(status_code=404, detail=f"No pending review: {review_id}")
    logger.info("Rejected held review", pending_id=review_id)
    return pending


# =============================================================================
# FEEDBACK
# =============================================================================


async def _dispatch(services: Services, event: Any) -> FeedbackResponse:
    if isinstance(event, HumanComment):
        stored = await services.ingestor.ingest(event)
        return FeedbackResponse(kind=event.kind, recorded=stored is not None)
    recorded = await services.recorder.record(event)
    return FeedbackResponse(kind=event.kind, recorded=recorded)


@router.post("/api/feedback")
async def post_feedback(request: Request, payload: dict[str, Any] = Body(...)) -> FeedbackResponse:
    """Record a feedback signal or human comment.

    The body is a tagged event whose ``kind`` selects the shape.
    """
    services = get_services(request)
    try:
        event = webhook_event_adapter.validate_python(payload)
    except ValidationError as e:
        raise HTTPException(status_code=422, detail=e.errors(include_url=False, include_context=False)) from e
    return await _dispatch(services, event)


async def _run_review(orchestrator: Orchestrator, ctx: PRContext, is_resync: bool) -> None:
    try:
        await orchestrator.run_review(ctx, is_resync=is_resync)
    except Exception as e:
        logger.error("Review orchestration failed", repo=ctx.full_name, pr=ctx.pull_number, error=str(e))


@router.post("/api/webhooks/github")
async def github_webhook(
    request: Request,
    background_tasks: BackgroundTasks,
    payload: dict[str, Any] = Body(...),
    x_github_event: str = Header(default=""),
) -> dict[str, Any]:
    """Translate a GitHub delivery and act on it.

    Pull request events schedule a review after the response is sent;
    feedback events are recorded inline.
    """
    services = get_services(request)
    event = parse_github_event(x_github_event, payload)
    if event is None:
        return {"handled": False}

    if isinstance(event, PullRequestEvent):
        if services.orchestrator is None:
            logger.warning("PR event ignored; no source control configured", pr=event.pull_number)
            return {"handled": True, "kind": event.kind, "scheduled": False}
        ctx = event.to_context()
        logger.info("Processing PR event", repo=ctx.full_name, pr=ctx.pull_number, action=event.action)
        background_tasks.add_task(_run_review, services.orchestrator, ctx, event.is_resync)
        return {"handled": True, "kind": event.kind, "scheduled": True}

    result = await _dispatch(services, event)
    return {"handled": True, "kind": result.kind, "recorded": result.recorded}


# =============================================================================
# HISTORY SYNC
# =============================================================================


@router.post("/api/sync", status_code=202)
async def start_sync(body: SyncRequest, request: Request, background_tasks: BackgroundTasks) -> SyncProgress:
    """Backfill learning data from a repo's past pull requests.

    Gated by the ``sync_enabled`` flag; the sync runs after the response
    is sent and its progress is read from ``GET /api/sync/status``.
    """
    services = get_services(request)
    if not await services.gate.get_flag(SYNC_FLAG):
        raise HTTPException(status_code=403, detail="History sync is disabled")
    if services.history_sync is None:
        raise HTTPException(status_code=503, detail="History sync not configured")

    try:
        services.history_sync.begin(body.repo)
    except SyncInProgressError as e:
        raise HTTPException(status_code=409, detail=str(e)) from e

    background_tasks.add_task(services.history_sync.execute, body.repo, body.installation_id)
    logger.info("History sync scheduled", repo=body.repo)
    return services.history_sync.progress


@router.get("/api/sync/status")
async def sync_status(request: Request) -> SyncProgress:
    services = get_services(request)
    if services.history_sync is None:
        return SyncProgress()
    return services.history_sync.progress
