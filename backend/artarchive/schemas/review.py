from __future__ import annotations
from pydantic import BaseModel, Field
from typing import Any, Literal
from uuid import UUID
from artarchive.schemas.submission import PhotoReport, SimilarityContext, SubmissionPublic

ApproveAction = Literal["create_new", "link_existing"]


class ApproveRequest(BaseModel):
    action: ApproveAction = "create_new"
    artwork_id: UUID | None = None  # required for link_existing
    # Moderator corrections applied on top of the submission (title/description/lat/lon/tags)
    overrides: dict[str, Any] = Field(default_factory=dict)
    notes: str | None = Field(default=None, max_length=500)


class RejectRequest(BaseModel):
    reason: str | None = Field(default=None, max_length=500)
    cleanup_photos: bool = True


class ApprovalResult(BaseModel):
    submission: SubmissionPublic
    action: str
    artwork_id: UUID | None = None
    artist_id: UUID | None = None
    photos: PhotoReport


class RejectionResult(BaseModel):
    submission: SubmissionPublic
    photos: PhotoReport | None = None


class BatchItem(BaseModel):
    submission_id: UUID
    action: Literal["approve", "reject"]
    reason: str | None = Field(default=None, max_length=500)


class BatchRequest(BaseModel):
    items: list[BatchItem]
    cleanup_photos: bool = True


class BatchError(BaseModel):
    submission_id: UUID
    error: str
    detail: str | None = None


class BatchResult(BaseModel):
    approved: int = 0
    rejected: int = 0
    errors: list[BatchError] = Field(default_factory=list)


class QueuePage(BaseModel):
    items: list[SubmissionPublic]
    total: int
    limit: int
    offset: int
    has_more: bool


class SubmissionReview(BaseModel):
    submission: SubmissionPublic
    similarity: SimilarityContext | None = None


class ReviewStats(BaseModel):
    pending: int = 0
    approved: int = 0
    rejected: int = 0
    total: int = 0
