from __future__ import annotations
import uuid
from datetime import datetime
from sqlalchemy.orm import Mapped, mapped_column
from sqlalchemy import String, DateTime, Uuid, CheckConstraint, func
from artarchive.db import Base
from artarchive.models.submission import _utcnow


class ConsentRecord(Base):
    """
    Append-only legal consent tied to a piece of content.
    Subject is exactly one of user_id / anonymous_token.
    The only permitted update is re-pointing content_id from a submission to the
    record its approval produced.
    """
    __tablename__ = "consent_records"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    user_id: Mapped[str | None] = mapped_column(String(128), nullable=True, index=True)
    anonymous_token: Mapped[str | None] = mapped_column(String(128), nullable=True, index=True)
    content_type: Mapped[str] = mapped_column(String(16), nullable=False)  # artwork|artist|submission
    content_id: Mapped[str] = mapped_column(String(64), nullable=False, index=True)
    consent_version: Mapped[str] = mapped_column(String(32), nullable=False)
    ip_address: Mapped[str] = mapped_column(String(64), nullable=False)
    consent_text_hash: Mapped[str] = mapped_column(String(64), nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=_utcnow, server_default=func.now(), nullable=False)

    __table_args__ = (
        CheckConstraint("(user_id IS NULL) <> (anonymous_token IS NULL)", name="ck_consent_one_subject"),
        CheckConstraint("content_type IN ('artwork','artist','submission')", name="ck_consent_content_type"),
    )
