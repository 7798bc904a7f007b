from __future__ import annotations
from typing import Literal
from uuid import UUID
from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession
from artarchive.auth_deps import require_moderator
from artarchive.config import settings
from artarchive.db import get_session
from artarchive.models.artwork import Artwork
from artarchive.models.submission import Submission
from artarchive.schemas.review import (
    ApprovalResult, ApproveRequest, BatchRequest, BatchResult, QueuePage, RejectRequest,
    RejectionResult, ReviewStats, SubmissionReview,
)
from artarchive.schemas.submission import ArtworkCreatePayload, SimilarityContext, load_payload
from artarchive.security import Identity
from artarchive.services import submissions
from artarchive.services.moderation import ModerationEngine
from artarchive.services.photos import PhotoLifecycleManager, get_photo_manager
from artarchive.services.similarity import find_similar

router = APIRouter(prefix="/review", tags=["review"])

TypeFilter = Literal["new_artwork", "edit_artwork", "additional_info", "bulk_artwork", "bulk_artist"]


def get_engine(
    session: AsyncSession = Depends(get_session),
    photo_manager: PhotoLifecycleManager = Depends(get_photo_manager),
) -> ModerationEngine:
    return ModerationEngine(session, photo_manager)


async def _similarity_for(session: AsyncSession, s: Submission) -> SimilarityContext | None:
    payload = load_payload(s.payload)
    if isinstance(payload, ArtworkCreatePayload):
        return await find_similar(session, payload.lat, payload.lon, payload.title)
    if s.target_artwork_id is not None:
        artwork = await session.get(Artwork, s.target_artwork_id)
        if artwork:
            return await find_similar(session, artwork.lat, artwork.lon, artwork.title, exclude_id=artwork.id)
    return None


@router.get("/queue", response_model=QueuePage)
async def pending_queue(
    limit: int = Query(default=20, ge=1, le=settings.max_review_page_size),
    offset: int = Query(default=0, ge=0),
    submission_type: TypeFilter | None = Query(default=None),
    session: AsyncSession = Depends(get_session),
    moderator: Identity = Depends(require_moderator),
):
    rows, total = await submissions.list_pending(session, limit, offset, submission_type)
    return QueuePage(
        items=[submissions.to_public(s) for s in rows],
        total=total, limit=limit, offset=offset, has_more=offset + len(rows) < total,
    )


@router.get("/stats", response_model=ReviewStats)
async def review_stats(
    session: AsyncSession = Depends(get_session),
    moderator: Identity = Depends(require_moderator),
):
    return ReviewStats(**await submissions.status_counts(session))


@router.get("/submissions/{submission_id}", response_model=SubmissionReview)
async def get_submission(
    submission_id: UUID,
    session: AsyncSession = Depends(get_session),
    moderator: Identity = Depends(require_moderator),
):
    s = await submissions.get(session, submission_id)
    return SubmissionReview(submission=submissions.to_public(s), similarity=await _similarity_for(session, s))


@router.post("/submissions/{submission_id}/approve", response_model=ApprovalResult)
async def approve_submission(
    submission_id: UUID,
    payload: ApproveRequest | None = None,
    engine: ModerationEngine = Depends(get_engine),
    moderator: Identity = Depends(require_moderator),
):
    payload = payload or ApproveRequest()
    return await engine.approve(
        submission_id, moderator.subject, action=payload.action, artwork_id=payload.artwork_id,
        overrides=payload.overrides, notes=payload.notes,
    )


@router.post("/submissions/{submission_id}/reject", response_model=RejectionResult)
async def reject_submission(
    submission_id: UUID,
    payload: RejectRequest | None = None,
    engine: ModerationEngine = Depends(get_engine),
    moderator: Identity = Depends(require_moderator),
):
    payload = payload or RejectRequest()
    return await engine.reject(submission_id, moderator.subject, reason=payload.reason, cleanup_photos=payload.cleanup_photos)


@router.post("/batch", response_model=BatchResult)
async def batch_review(
    payload: BatchRequest,
    engine: ModerationEngine = Depends(get_engine),
    moderator: Identity = Depends(require_moderator),
):
    return await engine.batch(payload.items, moderator.subject, cleanup_photos=payload.cleanup_photos)
