from __future__ import annotations
import uuid
from datetime import datetime
from sqlalchemy.orm import Mapped, mapped_column
from sqlalchemy import String, Text, Float, DateTime, ForeignKey, Uuid, CheckConstraint, func
from artarchive.db import Base, JSONType
from artarchive.models.submission import _utcnow


class Artwork(Base):
    __tablename__ = "artworks"
    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    lat: Mapped[float] = mapped_column(Float, nullable=False, index=True)
    lon: Mapped[float] = mapped_column(Float, nullable=False, index=True)
    title: Mapped[str | None] = mapped_column(String(200), nullable=True)
    description: Mapped[str | None] = mapped_column(Text(), nullable=True)
    created_by: Mapped[str | None] = mapped_column(String(128), nullable=True)
    tags: Mapped[dict] = mapped_column(JSONType, nullable=False, default=dict)
    photos: Mapped[list] = mapped_column(JSONType, nullable=False, default=list)  # permanent storage keys, ordered
    status: Mapped[str] = mapped_column(String(16), nullable=False, default="approved")  # pending|approved|rejected
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=_utcnow, server_default=func.now(), nullable=False)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=_utcnow, server_default=func.now(), nullable=False)

    __table_args__ = (
        CheckConstraint("lat >= -90 AND lat <= 90 AND lon >= -180 AND lon <= 180", name="ck_artwork_coordinates"),
        CheckConstraint("NOT (lat = 0 AND lon = 0)", name="ck_artwork_not_null_island"),
    )


class Artist(Base):
    __tablename__ = "artists"
    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    name: Mapped[str] = mapped_column(String(200), nullable=False, index=True)
    description: Mapped[str | None] = mapped_column(Text(), nullable=True)
    tags: Mapped[dict] = mapped_column(JSONType, nullable=False, default=dict)
    status: Mapped[str] = mapped_column(String(16), nullable=False, default="approved")
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=_utcnow, server_default=func.now(), nullable=False)


class ArtworkArtist(Base):
    __tablename__ = "artwork_artists"
    artwork_id: Mapped[uuid.UUID] = mapped_column(Uuid, ForeignKey("artworks.id", ondelete="CASCADE"), primary_key=True)
    artist_id: Mapped[uuid.UUID] = mapped_column(Uuid, ForeignKey("artists.id", ondelete="CASCADE"), primary_key=True)
    role: Mapped[str] = mapped_column(String(16), nullable=False, default="primary")  # primary|collaborator|credited
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=_utcnow, server_default=func.now(), nullable=False)

    __table_args__ = (
        CheckConstraint("role IN ('primary','collaborator','credited')", name="ck_artwork_artist_role"),
    )
