from __future__ import annotations
import math
import re
from typing import Any
from urllib.parse import urlsplit
from artarchive.config import settings
from artarchive.errors import FieldError, ValidationError
from artarchive.models.submission import CREATING_TYPES, TARGETED_TYPES
from artarchive.schemas.submission import (
    CanonicalSubmission, ArtworkCreatePayload, ArtworkEditPayload, AdditionalInfoPayload,
    ArtistCreatePayload, PhotoRef,
)
from artarchive.services.tags import normalize_tags

EDITABLE_FIELDS = ("title", "description", "lat", "lon", "tags")

# Executable markup. Markdown structure (#, *, -, links) is left alone.
_DANGEROUS_BLOCKS = re.compile(
    r"<(script|iframe|object|style)\b[^>]*>.*?</\1\s*>", re.IGNORECASE | re.DOTALL
)
_DANGEROUS_OPEN_TAGS = re.compile(r"</?(script|iframe|object|embed|style)\b[^>]*>", re.IGNORECASE)
_HTML_TAG = re.compile(r"<[a-z][^>]*>", re.IGNORECASE)
_EVENT_HANDLERS = re.compile(r"[\s/]+on[a-z]+\s*=\s*(\"[^\"]*\"|'[^']*'|[^\s>]+)", re.IGNORECASE)
_JS_URLS = re.compile(r"(javascript|vbscript)\s*:", re.IGNORECASE)


def _strip_handlers(match: re.Match) -> str:
    return _EVENT_HANDLERS.sub("", match.group(0))


def sanitize_markdown(content: str | None) -> str:
    if not content:
        return ""
    # Repeat until stable: removing one tag can join the pieces of another ("<scr<script>ipt>")
    text, previous = content, None
    while text != previous:
        previous = text
        text = _DANGEROUS_BLOCKS.sub("", text)
        text = _DANGEROUS_OPEN_TAGS.sub("", text)
        text = _HTML_TAG.sub(_strip_handlers, text)
        text = _JS_URLS.sub("", text)
    return text.strip()


def is_http_url(value: Any) -> bool:
    if not isinstance(value, str) or not value or any(c.isspace() for c in value):
        return False
    try:
        parts = urlsplit(value)
    except ValueError:
        return False
    return parts.scheme.lower() in ("http", "https") and bool(parts.hostname)


def check_url(value: Any, field: str, required: bool = False) -> tuple[str | None, list[FieldError]]:
    if value is None or (isinstance(value, str) and not value.strip()):
        if required:
            return None, [FieldError(field, "required", f"{field} is required")]
        return None, []
    if not is_http_url(value):
        return None, [FieldError(field, "invalid_url", "must be a valid http or https URL")]
    return value, []


def _as_float(value: Any) -> float | None:
    if isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        return float(value)
    if isinstance(value, str):
        try:
            return float(value.strip())
        except ValueError:
            return None
    return None


def check_coordinates(lat: Any, lon: Any, prefix: str = "") -> tuple[tuple[float, float] | None, list[FieldError]]:
    """
    Both values finite, lat in [-90, 90], lon in [-180, 180].
    (0, 0) is in range but means "no location" in most feeds, so it has its own code.
    """
    errors: list[FieldError] = []
    lat_f, lon_f = _as_float(lat), _as_float(lon)
    if lat_f is None or not math.isfinite(lat_f):
        errors.append(FieldError(f"{prefix}lat", "invalid", "latitude must be a finite number"))
    elif not -90 <= lat_f <= 90:
        errors.append(FieldError(f"{prefix}lat", "out_of_range", "latitude must be between -90 and 90"))
    if lon_f is None or not math.isfinite(lon_f):
        errors.append(FieldError(f"{prefix}lon", "invalid", "longitude must be a finite number"))
    elif not -180 <= lon_f <= 180:
        errors.append(FieldError(f"{prefix}lon", "out_of_range", "longitude must be between -180 and 180"))
    if errors:
        return None, errors
    if lat_f == 0 and lon_f == 0:
        return None, [FieldError(f"{prefix}location", "null_island", "coordinates (0, 0) are treated as missing location data")]
    return (lat_f, lon_f), []


def check_text(value: Any, field: str, max_length: int, required: bool = False) -> tuple[str | None, list[FieldError]]:
    if value is None:
        text = ""
    elif isinstance(value, str):
        text = sanitize_markdown(value)
    else:
        return None, [FieldError(field, "invalid", f"{field} must be a string")]
    if not text:
        if required:
            return None, [FieldError(field, "required", f"{field} is required")]
        return None, []
    if len(text) > max_length:
        return None, [FieldError(field, "too_long", f"{field} exceeds {max_length} characters")]
    return text, []


def check_photo_count(count: int) -> list[FieldError]:
    limit = settings.max_photos_per_submission
    if count > limit:
        return [FieldError("photos", "too_many_photos", f"at most {limit} photos per submission (got {count})")]
    return []


def check_photos(photos: list[PhotoRef]) -> tuple[list[PhotoRef], list[FieldError]]:
    errors = check_photo_count(len(photos))
    if errors:
        return [], errors
    out: list[PhotoRef] = []
    for i, ref in enumerate(photos):
        if ref.key is None:
            url, url_errors = check_url(ref.source_url, f"photos.{i}.url", required=True)
            errors.extend(url_errors)
            if url_errors:
                continue
        caption, e1 = check_text(ref.caption, f"photos.{i}.caption", settings.max_note_length)
        credit, e2 = check_text(ref.credit, f"photos.{i}.credit", settings.max_note_length)
        errors.extend(e1 + e2)
        out.append(PhotoRef(key=ref.key, source_url=ref.source_url, caption=caption, credit=credit))
    return out, errors


def check_field_value(field: str, value: Any, prefix: str = "") -> tuple[Any, list[FieldError]]:
    """Validate one editable artwork field; shared by edits and moderator overrides."""
    path = f"{prefix}{field}"
    if field == "title":
        return check_text(value, path, settings.max_title_length)
    if field == "description":
        return check_text(value, path, settings.max_description_length)
    if field in ("lat", "lon"):
        num = _as_float(value)
        if num is None or not math.isfinite(num):
            return None, [FieldError(path, "invalid", f"{field} must be a finite number")]
        bound = 90 if field == "lat" else 180
        if not -bound <= num <= bound:
            return None, [FieldError(path, "out_of_range", f"{field} must be between -{bound} and {bound}")]
        return num, []
    if field == "tags":
        return normalize_tags(value, path, url_check=is_http_url)
    return None, [FieldError(path, "not_editable", f"field '{field}' cannot be edited")]


def check_field_values(values: dict[str, Any], prefix: str = "") -> tuple[dict[str, Any], list[FieldError]]:
    """All-or-nothing check of a field map; a moved pin is re-checked as a pair."""
    errors: list[FieldError] = []
    out: dict[str, Any] = {}
    for field, value in values.items():
        normalized, field_errors = check_field_value(field, value, prefix)
        errors.extend(field_errors)
        if not field_errors:
            out[field] = normalized
    return out, errors


def _artwork_create(p: ArtworkCreatePayload, errors: list[FieldError]) -> ArtworkCreatePayload:
    coords, e = check_coordinates(p.lat, p.lon)
    errors.extend(e)
    bulk = p.kind == "bulk_artwork"
    title, e = check_text(p.title, "title", settings.max_title_length, required=bulk)
    errors.extend(e)
    description, e = check_text(p.description, "description", settings.max_description_length)
    errors.extend(e)
    note, e = check_text(p.note, "note", settings.max_note_length)
    errors.extend(e)
    tags, e = normalize_tags(p.tags, url_check=is_http_url)
    errors.extend(e)
    photos, e = check_photos(p.photos)
    errors.extend(e)
    source_url, e = check_url(p.source_url, "source_url", required=bulk)
    errors.extend(e)
    if bulk and not (p.source or "").strip():
        errors.append(FieldError("source", "required", "source is required"))
    artists = []
    for i, name in enumerate(p.artists):
        clean, e = check_text(name, f"artists.{i}", settings.max_title_length)
        errors.extend(e)
        if clean:
            artists.append(clean)
    lat, lon = coords if coords else (p.lat, p.lon)
    return p.model_copy(update=dict(
        lat=lat, lon=lon, title=title, description=description, note=note, tags=tags,
        photos=photos, artists=artists, source_url=source_url,
        source=(p.source or "").strip() or None,
    ))


def _artwork_edit(p: ArtworkEditPayload, errors: list[FieldError]) -> ArtworkEditPayload:
    if not p.diff:
        errors.append(FieldError("diff", "required", "an edit must change at least one field"))
    diff = {}
    for field, change in p.diff.items():
        if field not in EDITABLE_FIELDS:
            errors.append(FieldError(f"diff.{field}", "not_editable", f"field '{field}' cannot be edited"))
            continue
        value, e = check_field_value(field, change.new, prefix="diff.")
        errors.extend(e)
        if not e:
            diff[field] = change.model_copy(update={"new": value})
    new_lat = diff["lat"].new if "lat" in diff else None
    new_lon = diff["lon"].new if "lon" in diff else None
    if new_lat is not None and new_lon is not None and new_lat == 0 and new_lon == 0:
        errors.append(FieldError("diff.location", "null_island", "coordinates (0, 0) are treated as missing location data"))
    note, e = check_text(p.note, "note", settings.max_note_length)
    errors.extend(e)
    photos, e = check_photos(p.photos)
    errors.extend(e)
    return p.model_copy(update=dict(diff=diff, note=note, photos=photos))


def _additional_info(p: AdditionalInfoPayload, errors: list[FieldError]) -> AdditionalInfoPayload:
    lat, lon = p.lat, p.lon
    if p.lat is not None or p.lon is not None:
        coords, e = check_coordinates(p.lat, p.lon)
        errors.extend(e)
        if coords:
            lat, lon = coords
    note, e = check_text(p.note, "note", settings.max_note_length)
    errors.extend(e)
    tags, e = normalize_tags(p.tags, url_check=is_http_url)
    errors.extend(e)
    photos, e = check_photos(p.photos)
    errors.extend(e)
    return p.model_copy(update=dict(lat=lat, lon=lon, note=note, tags=tags, photos=photos))


def _artist_create(p: ArtistCreatePayload, errors: list[FieldError]) -> ArtistCreatePayload:
    name, e = check_text(p.name, "name", settings.max_title_length, required=True)
    errors.extend(e)
    description, e = check_text(p.description, "description", settings.max_description_length)
    errors.extend(e)
    tags, e = normalize_tags(p.tags, url_check=is_http_url)
    errors.extend(e)
    source_url, e = check_url(p.source_url, "source_url", required=True)
    errors.extend(e)
    if not (p.source or "").strip():
        errors.append(FieldError("source", "required", "source is required"))
    return p.model_copy(update=dict(name=name, description=description, tags=tags, source_url=source_url))


def validate_submission(sub: CanonicalSubmission) -> CanonicalSubmission:
    """
    Normalize a canonical submission or raise ValidationError listing every
    offending field. Returns a new object; the input is never half-updated.
    """
    errors: list[FieldError] = []
    if sub.submission_type != sub.payload.kind:
        errors.append(FieldError("submission_type", "mismatch", "payload does not match submission type"))
    if sub.submission_type in TARGETED_TYPES and sub.target_artwork_id is None:
        errors.append(FieldError("artwork_id", "required", "artwork_id is required for this submission type"))
    if sub.submission_type in CREATING_TYPES and sub.target_artwork_id is not None:
        errors.append(FieldError("artwork_id", "not_allowed", "artwork_id must be omitted when creating a record"))

    p = sub.payload
    if isinstance(p, ArtworkCreatePayload):
        payload = _artwork_create(p, errors)
    elif isinstance(p, ArtworkEditPayload):
        payload = _artwork_edit(p, errors)
    elif isinstance(p, AdditionalInfoPayload):
        payload = _additional_info(p, errors)
    else:
        payload = _artist_create(p, errors)

    if errors:
        raise ValidationError(errors)
    return sub.model_copy(update={"payload": payload})
