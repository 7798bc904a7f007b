from __future__ import annotations
import uuid
from datetime import datetime
from sqlalchemy.orm import Mapped, mapped_column
from sqlalchemy import String, Text, DateTime, Uuid, CheckConstraint, func
from artarchive.db import Base, JSONType
from artarchive.models.submission import _utcnow


class AuditLogEntry(Base):
    """Write-once trail of moderation decisions. Never updated or deleted."""
    __tablename__ = "audit_log"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    moderator_id: Mapped[str] = mapped_column(String(128), nullable=False, index=True)
    decision: Mapped[str] = mapped_column(String(16), nullable=False)  # approved|rejected
    target_id: Mapped[uuid.UUID] = mapped_column(Uuid, nullable=False, index=True)
    reason: Mapped[str | None] = mapped_column(Text(), nullable=True)
    meta_json: Mapped[dict] = mapped_column("metadata", JSONType, nullable=False, default=dict)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=_utcnow, server_default=func.now(), nullable=False)

    __table_args__ = (
        CheckConstraint("decision IN ('approved','rejected')", name="ck_audit_decision"),
    )
