from __future__ import annotations
from typing import Any
from fastapi import APIRouter, Body, Depends, Query, Request
from sqlalchemy.ext.asyncio import AsyncSession
from artarchive.auth_deps import require_moderator
from artarchive.db import get_session
from artarchive.routes.submissions import client_ip
from artarchive.security import Identity
from artarchive.services.intake import BulkImportResult, IntakeService
from artarchive.services.photos import PhotoLifecycleManager, get_photo_manager

router = APIRouter(prefix="/mass-import", tags=["mass-import"])


@router.post("", response_model=BulkImportResult, status_code=201)
async def mass_import(
    request: Request,
    body: Any = Body(..., description="GeoJSON Feature (artwork) or Artist object"),
    auto_approve: bool | None = Query(default=None, description="override the configured auto-approve"),
    session: AsyncSession = Depends(get_session),
    photo_manager: PhotoLifecycleManager = Depends(get_photo_manager),
    identity: Identity = Depends(require_moderator),
):
    """
    One record per request. The body is parsed here rather than by FastAPI so
    shape problems come back in the same field-error format as everything else.
    """
    return await IntakeService(session, photo_manager).submit_bulk(
        body, identity, client_ip(request), auto_approve=auto_approve
    )
