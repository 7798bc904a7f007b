from __future__ import annotations
from uuid import UUID
from sqlalchemy.ext.asyncio import AsyncSession
from artarchive.models.audit import AuditLogEntry


async def write_entry(
    session: AsyncSession,
    moderator_id: str,
    decision: str,
    target_id: UUID,
    reason: str | None = None,
    metadata: dict | None = None,
) -> AuditLogEntry:
    # Joins the caller's transaction. Entries are never updated or deleted.
    entry = AuditLogEntry(
        moderator_id=moderator_id,
        decision=decision,
        target_id=target_id,
        reason=reason,
        meta_json=metadata or {},
    )
    session.add(entry)
    await session.flush()
    return entry
