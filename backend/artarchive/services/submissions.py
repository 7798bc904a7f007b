from __future__ import annotations
import uuid
from uuid import UUID
import structlog
from sqlalchemy import select, func
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession
from artarchive.errors import ConflictError, NotFoundError
from artarchive.models.submission import Submission, STATUSES
from artarchive.schemas.submission import CanonicalSubmission, SubmissionPublic, dump_payload, load_payload
from artarchive.services.storage import public_url

log = structlog.get_logger()


async def pending_edit_exists(session: AsyncSession, submitter_id: str, artwork_id: UUID) -> bool:
    found = await session.scalar(
        select(Submission.id)
        .where(Submission.submitter_id == submitter_id)
        .where(Submission.target_artwork_id == artwork_id)
        .where(Submission.submission_type == "edit_artwork")
        .where(Submission.status == "pending")
        .limit(1)
    )
    return found is not None


def pending_edit_conflict(artwork_id: UUID) -> ConflictError:
    return ConflictError("You already have a pending edit for this artwork", {"artwork_id": str(artwork_id)})


async def create(session: AsyncSession, sub: CanonicalSubmission, submission_id: UUID | None = None) -> Submission:
    """
    Insert a validated submission as pending and flush it. The caller commits.
    Raises ConflictError when the submitter already has a pending edit of the artwork.
    """
    if sub.submission_type == "edit_artwork" and await pending_edit_exists(session, sub.submitter_id, sub.target_artwork_id):
        raise pending_edit_conflict(sub.target_artwork_id)
    s = Submission(
        id=submission_id or uuid.uuid4(),
        submission_type=sub.submission_type,
        submitter_id=sub.submitter_id,
        submitter_kind=sub.submitter_kind,
        target_artwork_id=sub.target_artwork_id,
        payload=dump_payload(sub.payload),
        status="pending",
    )
    session.add(s)
    try:
        await session.flush()
    except IntegrityError:
        await session.rollback()
        if sub.submission_type != "edit_artwork":
            raise
        # Lost the race against a concurrent edit from the same submitter
        raise pending_edit_conflict(sub.target_artwork_id)
    log.info("submission_created", submission_id=str(s.id), submission_type=s.submission_type)
    return s


async def get(session: AsyncSession, submission_id: UUID, for_update: bool = False) -> Submission:
    q = select(Submission).where(Submission.id == submission_id)
    if for_update:
        q = q.with_for_update()
    s = await session.scalar(q)
    if not s:
        raise NotFoundError("submission", submission_id)
    return s


async def list_pending(
    session: AsyncSession,
    limit: int,
    offset: int = 0,
    submission_type: str | None = None,
) -> tuple[list[Submission], int]:
    q = select(Submission).where(Submission.status == "pending")
    count_q = select(func.count()).select_from(Submission).where(Submission.status == "pending")
    if submission_type:
        q = q.where(Submission.submission_type == submission_type)
        count_q = count_q.where(Submission.submission_type == submission_type)
    # Oldest first so the queue drains in arrival order
    q = q.order_by(Submission.created_at.asc(), Submission.id.asc()).limit(limit).offset(offset)
    rows = (await session.execute(q)).scalars().all()
    total = await session.scalar(count_q) or 0
    return list(rows), int(total)


async def status_counts(session: AsyncSession) -> dict[str, int]:
    rows = (await session.execute(
        select(Submission.status, func.count()).group_by(Submission.status)
    )).all()
    counts = {s: 0 for s in STATUSES}
    for status, n in rows:
        counts[status] = int(n)
    counts["total"] = sum(counts[s] for s in STATUSES)
    return counts


def photo_urls(s: Submission) -> list[str]:
    payload = load_payload(s.payload)
    refs = getattr(payload, "photos", [])
    return [public_url(r.key) for r in refs if r.key]


def to_public(s: Submission) -> SubmissionPublic:
    return SubmissionPublic(
        id=s.id,
        submission_type=s.submission_type,
        submitter_id=s.submitter_id,
        target_artwork_id=s.target_artwork_id,
        status=s.status,
        payload=s.payload or {},
        photo_urls=photo_urls(s),
        moderator_id=s.moderator_id,
        moderator_notes=s.moderator_notes,
        reviewed_at=s.reviewed_at,
        resolved_artwork_id=s.resolved_artwork_id,
        resolved_artist_id=s.resolved_artist_id,
        created_at=s.created_at,
    )
