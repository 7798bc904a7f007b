from __future__ import annotations
import hashlib
from dataclasses import dataclass
from uuid import UUID
import structlog
from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession
from artarchive.config import settings
from artarchive.models.consent import ConsentRecord

log = structlog.get_logger()


@dataclass(frozen=True)
class ConsentSubject:
    """Exactly one of user_id / anonymous_token is set."""
    user_id: str | None = None
    anonymous_token: str | None = None

    def __post_init__(self):
        if (self.user_id is None) == (self.anonymous_token is None):
            raise ValueError("consent subject needs exactly one of user_id or anonymous_token")

    @classmethod
    def for_submitter(cls, submitter_id: str, submitter_kind: str) -> "ConsentSubject":
        if submitter_kind == "user":
            return cls(user_id=submitter_id)
        return cls(anonymous_token=submitter_id)


def consent_text_hash(version: str | None = None, text: str | None = None) -> str:
    version = version or settings.consent_version
    text = text if text is not None else settings.consent_text
    return hashlib.sha256(f"{version}\n{text}".encode("utf-8")).hexdigest()


def content_type_for(submission_type: str) -> str:
    if submission_type in ("new_artwork", "bulk_artwork"):
        return "artwork"
    if submission_type == "bulk_artist":
        return "artist"
    return "submission"


async def record(
    session: AsyncSession,
    subject: ConsentSubject,
    content_type: str,
    content_id: str,
    consent_version: str,
    ip_address: str,
    text_hash: str,
) -> ConsentRecord:
    """Append a consent record; re-recording the same subject/content/version returns the existing one."""
    q = select(ConsentRecord).where(
        ConsentRecord.content_type == content_type,
        ConsentRecord.content_id == content_id,
        ConsentRecord.consent_version == consent_version,
    )
    if subject.user_id is not None:
        q = q.where(ConsentRecord.user_id == subject.user_id)
    else:
        q = q.where(ConsentRecord.anonymous_token == subject.anonymous_token)
    existing = await session.scalar(q)
    if existing:
        return existing

    rec = ConsentRecord(
        user_id=subject.user_id,
        anonymous_token=subject.anonymous_token,
        content_type=content_type,
        content_id=content_id,
        consent_version=consent_version,
        ip_address=ip_address,
        consent_text_hash=text_hash,
    )
    session.add(rec)
    await session.flush()
    log.info("consent_recorded", consent_id=str(rec.id), content_type=content_type, content_id=content_id)
    return rec


async def repoint(session: AsyncSession, consent_id: UUID, new_content_id: str) -> None:
    await session.execute(
        update(ConsentRecord).where(ConsentRecord.id == consent_id).values(content_id=new_content_id)
    )


async def repoint_for_submission(session: AsyncSession, submission_id: UUID, new_content_id: UUID) -> int:
    """Move every consent recorded against a submission onto the record its approval produced."""
    ids = (await session.execute(
        select(ConsentRecord.id).where(ConsentRecord.content_id == str(submission_id))
    )).scalars().all()
    for cid in ids:
        await repoint(session, cid, str(new_content_id))
    return len(ids)
