from __future__ import annotations
from fastapi import APIRouter, Depends, Form, Request, UploadFile, File
from sqlalchemy.ext.asyncio import AsyncSession
from artarchive.auth_deps import get_identity
from artarchive.config import settings
from artarchive.db import get_session
from artarchive.schemas.submission import PhotoRef, SubmissionCreated
from artarchive.security import Identity
from artarchive.services.intake import IntakeService, form_to_canonical
from artarchive.services.photos import PhotoLifecycleManager, get_photo_manager

router = APIRouter(prefix="/submissions", tags=["submissions"])


def client_ip(request: Request) -> str:
    forwarded = request.headers.get("x-forwarded-for")
    if forwarded:
        return forwarded.split(",")[0].strip()
    return request.client.host if request.client else "unknown"


@router.post("", response_model=SubmissionCreated, status_code=201)
async def create_submission(
    request: Request,
    submission_type: str = Form(default="new_artwork"),
    artwork_id: str | None = Form(default=None),
    lat: str | None = Form(default=None),
    lon: str | None = Form(default=None),
    title: str | None = Form(default=None),
    description: str | None = Form(default=None),
    note: str | None = Form(default=None),
    tags: str | None = Form(default=None, description="JSON object of tag key -> value"),
    diff: str | None = Form(default=None, description="JSON object of field -> {old, new} for edits"),
    consent_version: str | None = Form(default=None),
    photos: list[UploadFile] = File(default=[], description="up to 10 JPEG/PNG/WebP photos"),
    session: AsyncSession = Depends(get_session),
    photo_manager: PhotoLifecycleManager = Depends(get_photo_manager),
    identity: Identity = Depends(get_identity),
):
    form = {
        "submission_type": submission_type, "artwork_id": artwork_id, "lat": lat, "lon": lon,
        "title": title, "description": description, "note": note, "tags": tags, "diff": diff,
    }
    # Count is checked before any file is read
    sub = form_to_canonical(identity, form, photo_count=len(photos))
    uploads = []
    for f in photos:
        data = await f.read(settings.max_photo_bytes + 1)
        uploads.append((data, PhotoRef(source_url=f.filename)))
    return await IntakeService(session, photo_manager).submit_form(sub, uploads, consent_version, client_ip(request))
