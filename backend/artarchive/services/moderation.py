from __future__ import annotations
import uuid
from datetime import datetime, timezone
from typing import Any
from uuid import UUID
import structlog
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession
from artarchive.config import settings
from artarchive.errors import ArchiveError, ConflictError, FieldError, NotFoundError, ValidationError
from artarchive.models.artwork import Artist, Artwork, ArtworkArtist
from artarchive.models.submission import Submission
from artarchive.schemas.review import (
    ApprovalResult, BatchError, BatchItem, BatchResult, RejectionResult,
)
from artarchive.schemas.submission import (
    AdditionalInfoPayload, ArtistCreatePayload, ArtworkCreatePayload, ArtworkEditPayload,
    PhotoRef, PhotoReport, dump_payload, load_payload,
)
from artarchive.services import audit, consent, submissions
from artarchive.services.photos import PhotoLifecycleManager
from artarchive.services.validation import EDITABLE_FIELDS, check_coordinates, check_field_values

log = structlog.get_logger()

# Approval ids derive from the submission id, so a retried approval writes to the same paths
_ARTWORK_NS = uuid.uuid5(uuid.NAMESPACE_URL, "urn:artarchive:artwork")
_ARTIST_NS = uuid.uuid5(uuid.NAMESPACE_URL, "urn:artarchive:artist")


def artwork_id_for(submission_id: UUID) -> UUID:
    return uuid.uuid5(_ARTWORK_NS, str(submission_id))


def artist_id_for(submission_id: UUID) -> UUID:
    return uuid.uuid5(_ARTIST_NS, str(submission_id))


def _now() -> datetime:
    return datetime.now(timezone.utc)


def _validate_overrides(overrides: dict[str, Any]) -> dict[str, Any]:
    unknown = [k for k in overrides if k not in EDITABLE_FIELDS]
    errors = [FieldError(f"overrides.{k}", "not_editable", f"field '{k}' cannot be overridden") for k in unknown]
    values, field_errors = check_field_values(
        {k: v for k, v in overrides.items() if k in EDITABLE_FIELDS}, prefix="overrides."
    )
    errors.extend(field_errors)
    if errors:
        raise ValidationError(errors)
    return values


def _check_location(lat: float, lon: float, prefix: str) -> None:
    _, errors = check_coordinates(lat, lon, prefix=prefix)
    if errors:
        raise ValidationError(errors)


class _Outcome:
    def __init__(self, action: str, photos: PhotoReport | None = None):
        self.action = action
        self.artwork_id: UUID | None = None
        self.artist_id: UUID | None = None
        self.photos = photos or PhotoReport()
        self.promoted: list[PhotoRef] = []


class ModerationEngine:
    """
    Owns the unit of work for moderator decisions: pending -> approved | rejected.
    Each approve/reject either commits fully or rolls back and leaves the
    submission pending.
    """

    def __init__(self, session: AsyncSession, photos: PhotoLifecycleManager):
        self.session = session
        self.photos = photos

    async def _load_pending(self, submission_id: UUID) -> Submission:
        s = await submissions.get(self.session, submission_id, for_update=True)
        if s.status != "pending":
            raise ConflictError(
                f"Submission already {s.status}",
                {"submission_id": str(s.id), "status": s.status},
            )
        return s

    async def _load_artwork(self, artwork_id: UUID) -> Artwork:
        artwork = await self.session.scalar(
            select(Artwork).where(Artwork.id == artwork_id).with_for_update()
        )
        if not artwork:
            raise NotFoundError("artwork", artwork_id)
        return artwork

    async def approve(
        self,
        submission_id: UUID,
        moderator_id: str,
        action: str = "create_new",
        artwork_id: UUID | None = None,
        overrides: dict[str, Any] | None = None,
        notes: str | None = None,
    ) -> ApprovalResult:
        try:
            s = await self._load_pending(submission_id)
            outcome = await self._apply(s, action, artwork_id, _validate_overrides(overrides or {}))

            s.status = "approved"
            s.moderator_id = moderator_id
            s.moderator_notes = notes
            s.reviewed_at = _now()
            s.resolved_artwork_id = outcome.artwork_id
            s.resolved_artist_id = outcome.artist_id
            if outcome.promoted:
                s.payload = _with_photos(s.payload, outcome.promoted)

            await audit.write_entry(
                self.session, moderator_id, "approved", s.id, reason=notes,
                metadata={
                    "action": outcome.action,
                    "submission_type": s.submission_type,
                    "artwork_id": str(outcome.artwork_id) if outcome.artwork_id else None,
                    "artist_id": str(outcome.artist_id) if outcome.artist_id else None,
                    "photos": {"total": outcome.photos.total, "succeeded": outcome.photos.succeeded, "failed": outcome.photos.failed},
                },
            )
            await self.session.commit()
        except Exception:
            await self.session.rollback()
            raise

        log.info(
            "submission_approved", submission_id=str(s.id), moderator_id=moderator_id,
            action=outcome.action, artwork_id=str(outcome.artwork_id) if outcome.artwork_id else None,
            photos_failed=outcome.photos.failed,
        )
        return ApprovalResult(
            submission=submissions.to_public(s), action=outcome.action,
            artwork_id=outcome.artwork_id, artist_id=outcome.artist_id, photos=outcome.photos,
        )

    async def _apply(self, s: Submission, action: str, artwork_id: UUID | None, overrides: dict[str, Any]) -> _Outcome:
        payload = load_payload(s.payload)
        if isinstance(payload, ArtworkCreatePayload):
            if action == "link_existing":
                if artwork_id is None:
                    raise ValidationError.single("artwork_id", "required", "artwork_id is required for link_existing")
                return await self._merge_into(s, payload.tags, payload.photos, artwork_id, "link_existing")
            return await self._create_artwork(s, payload, overrides)
        if isinstance(payload, ArtworkEditPayload):
            return await self._apply_edit(s, payload, overrides)
        if isinstance(payload, AdditionalInfoPayload):
            return await self._merge_into(s, payload.tags, payload.photos, s.target_artwork_id, "merge_info")
        return await self._create_artist(s, payload)

    async def _create_artwork(self, s: Submission, p: ArtworkCreatePayload, overrides: dict[str, Any]) -> _Outcome:
        fields = {"title": p.title, "description": p.description, "lat": p.lat, "lon": p.lon, "tags": dict(p.tags)}
        fields.update(overrides)
        _check_location(fields["lat"], fields["lon"], prefix="overrides.")
        tags = fields["tags"] or {}
        for key in ("source", "source_url", "source_id"):
            if getattr(p, key) and key not in tags:
                tags[key] = getattr(p, key)

        new_id = artwork_id_for(s.id)
        if await self.session.get(Artwork, new_id):
            raise ConflictError("Artwork for this submission already exists", {"artwork_id": str(new_id)})

        keys, report = await self.photos.promote(p.photos, new_id, [])
        artwork = Artwork(
            id=new_id, lat=fields["lat"], lon=fields["lon"], title=fields["title"],
            description=fields["description"], created_by=s.submitter_id, tags=tags, photos=keys,
            status="approved",
        )
        self.session.add(artwork)
        await self.session.flush()

        for name in dict.fromkeys(p.artists):
            artist = await self._artist_by_name(name)
            if artist is None:
                artist = Artist(name=name, status="approved")
                self.session.add(artist)
                await self.session.flush()
            existing_link = await self.session.get(ArtworkArtist, (new_id, artist.id))
            if existing_link is None:
                self.session.add(ArtworkArtist(artwork_id=new_id, artist_id=artist.id, role="primary"))
        await consent.repoint_for_submission(self.session, s.id, new_id)

        outcome = _Outcome("create_new", report)
        outcome.artwork_id = new_id
        outcome.promoted = report.photos
        return outcome

    async def _merge_into(self, s: Submission, tags: dict, photos: list[PhotoRef], artwork_id: UUID, action: str) -> _Outcome:
        artwork = await self._load_artwork(artwork_id)
        keys, report = await self.photos.promote(photos, artwork.id, artwork.photos or [])
        # The submission's value wins for keys present on both sides
        artwork.tags = {**(artwork.tags or {}), **tags}
        artwork.photos = keys
        artwork.updated_at = _now()
        if s.submission_type in ("new_artwork", "bulk_artwork"):
            await consent.repoint_for_submission(self.session, s.id, artwork.id)

        outcome = _Outcome(action, report)
        outcome.artwork_id = artwork.id
        outcome.promoted = report.photos
        return outcome

    async def _apply_edit(self, s: Submission, p: ArtworkEditPayload, overrides: dict[str, Any]) -> _Outcome:
        artwork = await self._load_artwork(s.target_artwork_id)
        proposed = {field: change.new for field, change in p.diff.items()}
        proposed.update(overrides)
        values, errors = check_field_values(proposed, prefix="diff.")
        if errors:
            raise ValidationError(errors)
        _check_location(values.get("lat", artwork.lat), values.get("lon", artwork.lon), prefix="diff.")

        keys, report = await self.photos.promote(p.photos, artwork.id, artwork.photos or [])
        for field, value in values.items():
            setattr(artwork, field, value)
        artwork.photos = keys
        artwork.updated_at = _now()

        outcome = _Outcome("apply_edit", report)
        outcome.artwork_id = artwork.id
        outcome.promoted = report.photos
        return outcome

    async def _artist_by_name(self, name: str) -> Artist | None:
        return await self.session.scalar(select(Artist).where(Artist.name == name).limit(1))

    async def _create_artist(self, s: Submission, p: ArtistCreatePayload) -> _Outcome:
        artist = await self._artist_by_name(p.name)
        action = "link_existing"
        if artist is None:
            action = "create_new"
            artist = Artist(id=artist_id_for(s.id), name=p.name, description=p.description, status="approved")
            self.session.add(artist)
        tags = dict(p.tags)
        for key in ("source", "source_url", "source_id"):
            if getattr(p, key) and key not in tags:
                tags[key] = getattr(p, key)
        artist.tags = {**(artist.tags or {}), **tags}
        if not artist.description and p.description:
            artist.description = p.description
        await self.session.flush()
        await consent.repoint_for_submission(self.session, s.id, artist.id)

        outcome = _Outcome(action)
        outcome.artist_id = artist.id
        return outcome

    async def reject(
        self,
        submission_id: UUID,
        moderator_id: str,
        reason: str | None = None,
        cleanup_photos: bool = True,
    ) -> RejectionResult:
        try:
            s = await self._load_pending(submission_id)
            s.status = "rejected"
            s.moderator_id = moderator_id
            s.moderator_notes = reason
            s.reviewed_at = _now()
            await audit.write_entry(
                self.session, moderator_id, "rejected", s.id, reason=reason,
                metadata={"submission_type": s.submission_type, "cleanup_photos": cleanup_photos},
            )
            await self.session.commit()
        except Exception:
            await self.session.rollback()
            raise
        log.info("submission_rejected", submission_id=str(s.id), moderator_id=moderator_id)

        report = None
        if cleanup_photos:
            refs = getattr(load_payload(s.payload), "photos", [])
            report = await self.photos.purge(refs)
        return RejectionResult(submission=submissions.to_public(s), photos=report)

    async def batch(self, items: list[BatchItem], moderator_id: str, cleanup_photos: bool = True) -> BatchResult:
        """Each item is its own unit of work; one failure never undoes another item."""
        if not items:
            raise ValidationError.single("items", "required", "batch must contain at least one item")
        if len(items) > settings.max_review_batch_size:
            raise ValidationError.single(
                "items", "too_many_items", f"batch is limited to {settings.max_review_batch_size} items"
            )
        result = BatchResult()
        for item in items:
            try:
                if item.action == "approve":
                    await self.approve(item.submission_id, moderator_id, notes=item.reason)
                    result.approved += 1
                else:
                    await self.reject(item.submission_id, moderator_id, reason=item.reason, cleanup_photos=cleanup_photos)
                    result.rejected += 1
            except ArchiveError as e:
                result.errors.append(BatchError(submission_id=item.submission_id, error=e.reason, detail=e.message))
            except Exception as e:
                log.exception("batch_item_failed", submission_id=str(item.submission_id))
                result.errors.append(BatchError(submission_id=item.submission_id, error="internal error", detail=str(e)))
        log.info("batch_reviewed", approved=result.approved, rejected=result.rejected, errors=len(result.errors))
        return result


def _with_photos(raw: dict, promoted: list[PhotoRef]) -> dict:
    """Point the submission's photo references at their permanent keys."""
    payload = load_payload(raw)
    by_name = {r.key.rsplit("/", 1)[-1]: r.key for r in promoted if r.key}
    photos = [
        r.model_copy(update={"key": by_name.get(r.key.rsplit("/", 1)[-1], r.key)}) if r.key else r
        for r in getattr(payload, "photos", [])
    ]
    return dump_payload(payload.model_copy(update={"photos": photos}))
