"""API request and response models."""

from pydantic import BaseModel

from review_forge.models import FeatureFlag, PendingReview


class FlagUpdate(BaseModel):
    """Body of ``POST /api/flags/{key}``."""

    enabled: bool


class PendingReviewList(BaseModel):
    reviews: list[PendingReview]


class ApprovalResponse(BaseModel):
    """Outcome of approving a held review."""

    review: PendingReview
    posted: bool = False
    review_id: int | None = None


class FeedbackResponse(BaseModel):
    kind: str
    recorded: bool


class FlagList(BaseModel):
    flags: list[FeatureFlag]


class SyncRequest(BaseModel):
    """Body of ``POST /api/sync``."""

    repo: str
    installation_id: int
