from __future__ import annotations
import math
import re
from rapidfuzz.distance import Levenshtein
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession
from artarchive.config import settings
from artarchive.models.artwork import Artwork
from artarchive.schemas.submission import SimilarArtwork, SimilarityContext

EARTH_RADIUS_M = 6371008.8
_RANK = {"high": 2, "warning": 1, "none": 0}
_PUNCTUATION = re.compile(r"[^\w\s]", re.UNICODE)
_WHITESPACE = re.compile(r"\s+")


def haversine_m(lat1: float, lon1: float, lat2: float, lon2: float) -> float:
    p1, p2 = math.radians(lat1), math.radians(lat2)
    dp = p2 - p1
    dl = math.radians(lon2 - lon1)
    a = math.sin(dp / 2) ** 2 + math.cos(p1) * math.cos(p2) * math.sin(dl / 2) ** 2
    return 2 * EARTH_RADIUS_M * math.asin(min(1.0, math.sqrt(a)))


def normalize_title(title: str | None) -> str:
    if not title:
        return ""
    text = _PUNCTUATION.sub("", title.lower())
    return _WHITESPACE.sub(" ", text).strip()


def title_similarity(a: str | None, b: str | None) -> float | None:
    """Normalized Levenshtein similarity in [0, 1]; None when either title is missing."""
    na, nb = normalize_title(a), normalize_title(b)
    if not na or not nb:
        return None
    return float(Levenshtein.normalized_similarity(na, nb))


def classify(distance_m: float, similarity: float | None) -> str:
    if distance_m > settings.similarity_radius_m:
        return "none"
    near = distance_m <= settings.similarity_near_m
    if similarity is not None:
        if similarity >= settings.similarity_high and near:
            return "high"
        if similarity >= settings.similarity_warn:
            return "warning"
    if near:
        return "warning"
    return "none"


def _bounding_box(lat: float, lon: float, radius_m: float) -> tuple[float, float, float, float]:
    dlat = math.degrees(radius_m / EARTH_RADIUS_M)
    cos_lat = math.cos(math.radians(lat))
    # near the poles every longitude is within reach
    dlon = 180.0 if cos_lat < 1e-6 else min(180.0, math.degrees(radius_m / (EARTH_RADIUS_M * cos_lat)))
    return lat - dlat, lat + dlat, lon - dlon, lon + dlon


async def find_similar(
    session: AsyncSession,
    lat: float,
    lon: float,
    title: str | None = None,
    exclude_id=None,
) -> SimilarityContext:
    radius = settings.similarity_radius_m
    min_lat, max_lat, min_lon, max_lon = _bounding_box(lat, lon, radius)
    q = select(Artwork).where(
        Artwork.lat >= min_lat, Artwork.lat <= max_lat, Artwork.status == "approved"
    )
    if min_lon >= -180 and max_lon <= 180:
        q = q.where(Artwork.lon >= min_lon, Artwork.lon <= max_lon)
    if exclude_id is not None:
        q = q.where(Artwork.id != exclude_id)
    rows = (await session.execute(q)).scalars().all()

    matches: list[SimilarArtwork] = []
    for a in rows:
        dist = haversine_m(lat, lon, a.lat, a.lon)
        if dist > radius:
            continue
        sim = title_similarity(title, a.title)
        matches.append(SimilarArtwork(
            artwork_id=a.id, title=a.title, lat=a.lat, lon=a.lon,
            distance_meters=round(dist, 2), title_similarity=sim,
            classification=classify(dist, sim),
        ))
    matches.sort(key=lambda m: (-_RANK[m.classification], -(m.title_similarity or 0.0), m.distance_meters))
    overall = matches[0].classification if matches else "none"
    return SimilarityContext(classification=overall, radius_meters=radius, matches=matches)
