from __future__ import annotations
import json
import math
import uuid
from typing import Any, Literal, Union
from uuid import UUID
import structlog
from pydantic import BaseModel, Field, ConfigDict, ValidationError as ShapeError
from sqlalchemy.ext.asyncio import AsyncSession
from artarchive.config import settings
from artarchive.errors import ArchiveError, FieldError, NotFoundError, ValidationError
from artarchive.models.artwork import Artwork
from artarchive.schemas.submission import (
    AdditionalInfoPayload, ArtistCreatePayload, ArtworkCreatePayload, ArtworkEditPayload,
    CanonicalSubmission, FieldChange, PhotoRef, PhotoReport, SubmissionCreated,
)
from artarchive.security import Identity
from artarchive.services import consent, submissions
from artarchive.services.moderation import ModerationEngine
from artarchive.services.photos import PhotoLifecycleManager
from artarchive.services.similarity import find_similar
from artarchive.services.tags import TAG_DEFINITIONS, custom_key
from artarchive.services.validation import check_photo_count, validate_submission

log = structlog.get_logger()


# ---- bulk shapes -------------------------------------------------------------

class BulkPhoto(BaseModel):
    url: str
    caption: str | None = None
    credit: str | None = None


class PointGeometry(BaseModel):
    type: Literal["Point"]
    # GeoJSON order: [lon, lat]
    coordinates: list[float] = Field(min_length=2, max_length=2)


class FeatureProperties(BaseModel):
    model_config = ConfigDict(extra="allow")

    source: str = Field(min_length=1)
    source_url: str
    title: str = Field(min_length=1)
    description: str | None = None
    artist: str | None = None
    artists: list[str] = Field(default_factory=list)
    photos: list[Union[str, BulkPhoto]] = Field(default_factory=list)


class BulkFeature(BaseModel):
    type: Literal["Feature"]
    id: str = Field(min_length=1)
    geometry: PointGeometry
    properties: FeatureProperties


class ArtistProperties(BaseModel):
    model_config = ConfigDict(extra="allow")

    source: str = Field(min_length=1)
    source_url: str


class BulkArtist(BaseModel):
    type: Literal["Artist"]
    id: str = Field(min_length=1)
    name: str = Field(min_length=1)
    description: str | None = None
    properties: ArtistProperties


def _shape_errors(e: ShapeError) -> list[FieldError]:
    return [
        FieldError(".".join(str(p) for p in err["loc"]) or "body", err["type"], err["msg"])
        for err in e.errors()
    ]


def parse_bulk(raw: Any) -> BulkFeature | BulkArtist:
    if not isinstance(raw, dict):
        raise ValidationError.single("body", "invalid", "expected a JSON object")
    kind = raw.get("type")
    model = {"Feature": BulkFeature, "Artist": BulkArtist}.get(kind)
    if model is None:
        raise ValidationError.single("type", "invalid", "type must be 'Feature' or 'Artist'")
    # The cap is checked on the raw list so an oversized import is refused before any parsing or probing
    if kind == "Feature":
        photos = (raw.get("properties") or {}).get("photos") if isinstance(raw.get("properties"), dict) else None
        if isinstance(photos, list):
            errors = check_photo_count(len(photos))
            if errors:
                raise ValidationError([FieldError("properties.photos", e.code, e.message) for e in errors])
    try:
        return model.model_validate(raw)
    except ShapeError as e:
        raise ValidationError(_shape_errors(e))


def parse_artist_field(value: str | None) -> list[str]:
    """
    Split a free-text artist credit into names.
      "Jane Doe, John Roe"   -> two artists (tokens contain spaces)
      "Doe, Jane"            -> one artist written "Last, First"
      "Doe, Jane, Roe, John" -> pairs of "Last, First"
    """
    if not value:
        return []
    tokens = [t.strip() for t in value.split(",") if t.strip()]
    if len(tokens) <= 1:
        return tokens
    any_space = any(" " in t for t in tokens)
    if len(tokens) == 2:
        return tokens if any_space else [f"{tokens[0]}, {tokens[1]}"]
    if not any_space and len(tokens) % 2 == 0:
        return [f"{tokens[i]}, {tokens[i + 1]}" for i in range(0, len(tokens), 2)]
    return tokens


def _tag_value(value: Any) -> Any:
    if isinstance(value, bool):
        return "yes" if value else "no"
    if isinstance(value, (int, float, str)):
        return value
    if isinstance(value, list) and all(isinstance(v, (str, int, float)) for v in value):
        return ", ".join(str(v) for v in value)
    return json.dumps(value, sort_keys=True)


def _extra_tags(extra: dict[str, Any]) -> dict[str, Any]:
    tags: dict[str, Any] = {}
    for key, value in extra.items():
        if value is None:
            continue
        tags[key if key in TAG_DEFINITIONS else custom_key(key)] = _tag_value(value)
    return tags


def feature_to_canonical(feature: BulkFeature, identity: Identity) -> CanonicalSubmission:
    props = feature.properties
    lon, lat = feature.geometry.coordinates
    artists = list(props.artists) or parse_artist_field(props.artist)
    photos = [
        PhotoRef(source_url=p) if isinstance(p, str) else PhotoRef(source_url=p.url, caption=p.caption, credit=p.credit)
        for p in props.photos
    ]
    payload = ArtworkCreatePayload(
        kind="bulk_artwork", lat=lat, lon=lon, title=props.title, description=props.description,
        tags=_extra_tags(props.model_extra or {}), photos=photos, artists=artists,
        source=props.source, source_url=props.source_url, source_id=feature.id,
    )
    return CanonicalSubmission(
        submission_type="bulk_artwork", submitter_id=identity.subject,
        submitter_kind=identity.kind, payload=payload,
    )


def artist_to_canonical(artist: BulkArtist, identity: Identity) -> CanonicalSubmission:
    props = artist.properties
    payload = ArtistCreatePayload(
        name=artist.name, description=artist.description, tags=_extra_tags(props.model_extra or {}),
        source=props.source, source_url=props.source_url, source_id=artist.id,
    )
    return CanonicalSubmission(
        submission_type="bulk_artist", submitter_id=identity.subject,
        submitter_kind=identity.kind, payload=payload,
    )


# ---- interactive form ----------------------------------------------------------

def _parse_number(raw: str | None, field: str, errors: list[FieldError]) -> float | None:
    if raw is None or raw == "":
        return None
    try:
        value = float(raw)
    except ValueError:
        errors.append(FieldError(field, "invalid", f"{field} must be a number"))
        return None
    if not math.isfinite(value):
        errors.append(FieldError(field, "invalid", f"{field} must be a finite number"))
        return None
    return value


def _parse_json_object(raw: str | None, field: str, errors: list[FieldError]) -> dict:
    if raw is None or raw == "":
        return {}
    try:
        value = json.loads(raw)
    except json.JSONDecodeError:
        errors.append(FieldError(field, "invalid", f"{field} must be a JSON object"))
        return {}
    if not isinstance(value, dict):
        errors.append(FieldError(field, "invalid", f"{field} must be a JSON object"))
        return {}
    return value


def form_to_canonical(identity: Identity, form: dict[str, Any], photo_count: int) -> CanonicalSubmission:
    """Map the multipart form onto a canonical submission; shape problems are collected, not raised one by one."""
    errors: list[FieldError] = []
    submission_type = form.get("submission_type") or "new_artwork"
    if submission_type not in ("new_artwork", "edit_artwork", "additional_info"):
        raise ValidationError.single("submission_type", "invalid", "must be new_artwork, edit_artwork or additional_info")
    errors.extend(check_photo_count(photo_count))

    target = None
    if form.get("artwork_id"):
        try:
            target = UUID(form["artwork_id"])
        except ValueError:
            errors.append(FieldError("artwork_id", "invalid", "artwork_id must be a UUID"))

    lat = _parse_number(form.get("lat"), "lat", errors)
    lon = _parse_number(form.get("lon"), "lon", errors)
    tags = _parse_json_object(form.get("tags"), "tags", errors)

    payload = None
    if submission_type == "new_artwork":
        if lat is None and not form.get("lat"):
            errors.append(FieldError("lat", "required", "lat is required"))
        if lon is None and not form.get("lon"):
            errors.append(FieldError("lon", "required", "lon is required"))
        if not errors:
            payload = ArtworkCreatePayload(
                kind="new_artwork", lat=lat, lon=lon, title=form.get("title"),
                description=form.get("description"), note=form.get("note"), tags=tags,
            )
    elif submission_type == "edit_artwork":
        diff = _parse_json_object(form.get("diff"), "diff", errors)
        if tags:
            errors.append(FieldError("tags", "not_allowed", "edits change tags through diff.tags"))
        if not errors:
            payload = ArtworkEditPayload(
                diff={k: v if isinstance(v, dict) and "new" in v else {"new": v} for k, v in diff.items()},
                note=form.get("note"),
            )
    else:
        if not ((form.get("note") or "").strip() or tags or photo_count):
            errors.append(FieldError("note", "required", "provide at least a note, a tag or a photo"))
        if not errors:
            payload = AdditionalInfoPayload(note=form.get("note"), tags=tags, lat=lat, lon=lon)

    if errors:
        raise ValidationError(errors)
    return CanonicalSubmission(
        submission_type=submission_type, submitter_id=identity.subject,
        submitter_kind=identity.kind, target_artwork_id=target, payload=payload,
    )


# ---- shared pipeline -----------------------------------------------------------

def _check_consent_version(version: str | None) -> str:
    if not version:
        raise ValidationError.single("consent_version", "required", "consent is required to submit")
    if version != settings.consent_version:
        raise ValidationError.single(
            "consent_version", "outdated", f"current consent version is {settings.consent_version}"
        )
    return version


class BulkImportResult(SubmissionCreated):
    artwork_id: UUID | None = None
    artist_id: UUID | None = None
    # Set when auto-approval was attempted and refused; the submission then stays pending
    approval_error: dict | None = None


class IntakeService:
    def __init__(self, session: AsyncSession, photos: PhotoLifecycleManager):
        self.session = session
        self.photos = photos

    async def _fill_edit_baseline(self, sub: CanonicalSubmission) -> CanonicalSubmission:
        """Targets must exist; edits record the value they replace."""
        if sub.target_artwork_id is None:
            return sub
        artwork = await self.session.get(Artwork, sub.target_artwork_id)
        if artwork is None:
            raise NotFoundError("artwork", sub.target_artwork_id)
        if not isinstance(sub.payload, ArtworkEditPayload):
            return sub
        diff = {
            field: FieldChange(old=getattr(artwork, field), new=change.new)
            for field, change in sub.payload.diff.items()
        }
        return sub.model_copy(update={"payload": sub.payload.model_copy(update={"diff": diff})})

    async def _store(
        self,
        sub: CanonicalSubmission,
        submission_id: UUID,
        staged: PhotoReport,
        consent_version: str,
        ip_address: str,
    ):
        if staged.photos:
            sub = sub.model_copy(update={"payload": sub.payload.model_copy(update={"photos": staged.photos})})
        try:
            s = await submissions.create(self.session, sub, submission_id=submission_id)
            await consent.record(
                self.session,
                consent.ConsentSubject.for_submitter(sub.submitter_id, sub.submitter_kind),
                consent.content_type_for(sub.submission_type),
                str(s.id),
                consent_version,
                ip_address,
                consent.consent_text_hash(consent_version),
            )
            await self.session.commit()
        except Exception:
            await self.session.rollback()
            # Nothing references the staged copies any more
            await self.photos.purge(staged.photos)
            raise
        return s

    async def submit_form(
        self,
        sub: CanonicalSubmission,
        uploads: list[tuple[bytes, PhotoRef]],
        consent_version: str | None,
        ip_address: str,
    ) -> SubmissionCreated:
        consent_version = _check_consent_version(consent_version)
        sub = validate_submission(sub)
        sub = await self._fill_edit_baseline(sub)
        if sub.submission_type == "edit_artwork" and await submissions.pending_edit_exists(
            self.session, sub.submitter_id, sub.target_artwork_id
        ):
            raise submissions.pending_edit_conflict(sub.target_artwork_id)

        similarity = None
        if isinstance(sub.payload, ArtworkCreatePayload):
            similarity = await find_similar(self.session, sub.payload.lat, sub.payload.lon, sub.payload.title)

        submission_id = uuid.uuid4()
        staged = await self.photos.stage(uploads, submission_id)
        s = await self._store(sub, submission_id, staged, consent_version, ip_address)
        log.info(
            "submission_received", submission_id=str(s.id), submission_type=s.submission_type,
            photos=staged.succeeded, similarity=similarity.classification if similarity else None,
        )
        return SubmissionCreated(submission=submissions.to_public(s), photos=staged, similarity=similarity)

    async def submit_bulk(self, raw: Any, identity: Identity, ip_address: str, auto_approve: bool | None = None) -> BulkImportResult:
        record = parse_bulk(raw)
        if isinstance(record, BulkFeature):
            sub = feature_to_canonical(record, identity)
        else:
            sub = artist_to_canonical(record, identity)
        sub = validate_submission(sub)

        similarity = None
        staged = PhotoReport()
        submission_id = uuid.uuid4()
        if isinstance(sub.payload, ArtworkCreatePayload):
            similarity = await find_similar(self.session, sub.payload.lat, sub.payload.lon, sub.payload.title)
            staged = await self.photos.stage_remote(sub.payload.photos, submission_id)
            # Photos that failed to import are reported and left out of the stored payload
            sub = sub.model_copy(update={"payload": sub.payload.model_copy(update={"photos": staged.photos})})

        s = await self._store(sub, submission_id, staged, settings.consent_version, ip_address)
        result = BulkImportResult(
            submission=submissions.to_public(s), photos=staged, similarity=similarity,
        )

        if settings.bulk_auto_approve if auto_approve is None else auto_approve:
            engine = ModerationEngine(self.session, self.photos)
            try:
                approval = await engine.approve(s.id, identity.subject, action="create_new", notes="bulk import")
            except ArchiveError as e:
                log.warning("bulk_auto_approve_failed", submission_id=str(s.id), error=e.message)
                result.approval_error = e.to_dict()
            else:
                result.submission = approval.submission
                result.artwork_id = approval.artwork_id
                result.artist_id = approval.artist_id
        log.info("bulk_import", submission_id=str(s.id), submission_type=s.submission_type, source=sub.payload.source)
        return result
