from __future__ import annotations
import uuid
from datetime import datetime, timezone
from sqlalchemy.orm import Mapped, mapped_column
from sqlalchemy import String, Text, DateTime, Uuid, CheckConstraint, Index, func, text
from artarchive.db import Base, JSONType

SUBMISSION_TYPES = ("new_artwork", "edit_artwork", "additional_info", "bulk_artwork", "bulk_artist")
CREATING_TYPES = ("new_artwork", "bulk_artwork", "bulk_artist")
TARGETED_TYPES = ("edit_artwork", "additional_info")
STATUSES = ("pending", "approved", "rejected")


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class Submission(Base):
    """
    One proposal to create or modify an artwork/artist.
    Status is monotonic: pending -> approved | rejected, never back.
    `payload` holds the canonical tagged union (see schemas.submission).
    """
    __tablename__ = "submissions"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    submission_type: Mapped[str] = mapped_column(String(24), nullable=False, index=True)

    submitter_id: Mapped[str] = mapped_column(String(128), nullable=False, index=True)
    submitter_kind: Mapped[str] = mapped_column(String(16), nullable=False, default="anonymous")  # user|anonymous

    # Set iff the submission edits/extends an existing artwork
    target_artwork_id: Mapped[uuid.UUID | None] = mapped_column(Uuid, index=True, nullable=True)

    payload: Mapped[dict] = mapped_column(JSONType, nullable=False, default=dict)

    status: Mapped[str] = mapped_column(String(16), nullable=False, default="pending", index=True)
    moderator_id: Mapped[str | None] = mapped_column(String(128), nullable=True)
    moderator_notes: Mapped[str | None] = mapped_column(Text(), nullable=True)
    reviewed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)

    # What an approval created or touched
    resolved_artwork_id: Mapped[uuid.UUID | None] = mapped_column(Uuid, nullable=True)
    resolved_artist_id: Mapped[uuid.UUID | None] = mapped_column(Uuid, nullable=True)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=_utcnow, server_default=func.now(), nullable=False
    )

    __table_args__ = (
        CheckConstraint(
            "submission_type IN ('new_artwork','edit_artwork','additional_info','bulk_artwork','bulk_artist')",
            name="ck_submission_type",
        ),
        CheckConstraint("status IN ('pending','approved','rejected')", name="ck_submission_status"),
        CheckConstraint(
            "(target_artwork_id IS NOT NULL) = (submission_type IN ('edit_artwork','additional_info'))",
            name="ck_submission_target_matches_type",
        ),
        # One pending edit per (submitter, artwork); the race between two inserts is settled here
        Index(
            "uq_submission_one_pending_edit",
            "submitter_id",
            "target_artwork_id",
            unique=True,
            postgresql_where=text("status = 'pending' AND submission_type = 'edit_artwork'"),
            sqlite_where=text("status = 'pending' AND submission_type = 'edit_artwork'"),
        ),
    )
