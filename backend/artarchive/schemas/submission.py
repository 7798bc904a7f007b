from __future__ import annotations
from typing import Annotated, Any, Literal, Union
from pydantic import BaseModel, Field, TypeAdapter
from uuid import UUID
from datetime import datetime

TagValue = Union[str, int, float]


class PhotoRef(BaseModel):
    # Storage key once staged/promoted; None while only a remote URL is known
    key: str | None = None
    source_url: str | None = None
    caption: str | None = None
    credit: str | None = None


class FieldChange(BaseModel):
    old: Any = None
    new: Any = None


class ArtworkCreatePayload(BaseModel):
    kind: Literal["new_artwork", "bulk_artwork"]
    lat: float
    lon: float
    title: str | None = None
    description: str | None = None
    note: str | None = None
    tags: dict[str, TagValue] = Field(default_factory=dict)
    photos: list[PhotoRef] = Field(default_factory=list)
    artists: list[str] = Field(default_factory=list)
    source: str | None = None
    source_url: str | None = None
    source_id: str | None = None


class ArtworkEditPayload(BaseModel):
    kind: Literal["edit_artwork"] = "edit_artwork"
    diff: dict[str, FieldChange] = Field(default_factory=dict)
    note: str | None = None
    photos: list[PhotoRef] = Field(default_factory=list)


class AdditionalInfoPayload(BaseModel):
    kind: Literal["additional_info"] = "additional_info"
    note: str | None = None
    tags: dict[str, TagValue] = Field(default_factory=dict)
    photos: list[PhotoRef] = Field(default_factory=list)
    lat: float | None = None
    lon: float | None = None


class ArtistCreatePayload(BaseModel):
    kind: Literal["bulk_artist"] = "bulk_artist"
    name: str
    description: str | None = None
    tags: dict[str, TagValue] = Field(default_factory=dict)
    source: str | None = None
    source_url: str | None = None
    source_id: str | None = None


SubmissionPayload = Annotated[
    Union[ArtworkCreatePayload, ArtworkEditPayload, AdditionalInfoPayload, ArtistCreatePayload],
    Field(discriminator="kind"),
]

_payload_adapter: TypeAdapter = TypeAdapter(SubmissionPayload)


def load_payload(raw: dict) -> ArtworkCreatePayload | ArtworkEditPayload | AdditionalInfoPayload | ArtistCreatePayload:
    return _payload_adapter.validate_python(raw)


def dump_payload(payload: BaseModel) -> dict:
    return payload.model_dump(mode="json")


class CanonicalSubmission(BaseModel):
    """What every intake adapter produces, before it is stored."""
    submission_type: Literal["new_artwork", "edit_artwork", "additional_info", "bulk_artwork", "bulk_artist"]
    submitter_id: str
    submitter_kind: Literal["user", "anonymous"] = "anonymous"
    target_artwork_id: UUID | None = None
    payload: SubmissionPayload


class PhotoError(BaseModel):
    index: int
    source: str | None = None
    error: str


class PhotoReport(BaseModel):
    total: int = 0
    succeeded: int = 0
    failed: int = 0
    photos: list[PhotoRef] = Field(default_factory=list)
    errors: list[PhotoError] = Field(default_factory=list)


class SimilarArtwork(BaseModel):
    artwork_id: UUID
    title: str | None = None
    lat: float
    lon: float
    distance_meters: float
    title_similarity: float | None = None
    classification: Literal["none", "warning", "high"]


class SimilarityContext(BaseModel):
    classification: Literal["none", "warning", "high"] = "none"
    radius_meters: float
    matches: list[SimilarArtwork] = Field(default_factory=list)


class SubmissionPublic(BaseModel):
    id: UUID
    submission_type: str
    submitter_id: str
    target_artwork_id: UUID | None = None
    status: str
    payload: dict = Field(default_factory=dict)
    photo_urls: list[str] = Field(default_factory=list)
    moderator_id: str | None = None
    moderator_notes: str | None = None
    reviewed_at: datetime | None = None
    resolved_artwork_id: UUID | None = None
    resolved_artist_id: UUID | None = None
    created_at: datetime


class SubmissionCreated(BaseModel):
    submission: SubmissionPublic
    photos: PhotoReport
    similarity: SimilarityContext | None = None
