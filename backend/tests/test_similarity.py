from __future__ import annotations
import pytest
from artarchive.services.similarity import classify, find_similar, haversine_m, normalize_title, title_similarity
from conftest import make_artwork


def test_case_only_difference_is_identical():
    assert title_similarity("Solo", "solo") == 1.0


def test_punctuation_and_spacing_are_ignored():
    assert normalize_title("  Orca   mural. ") == "orca mural"
    assert title_similarity("Orca Mural", "Orca mural.") == 1.0


def test_missing_title_gives_no_signal():
    assert title_similarity(None, "Orca") is None
    assert title_similarity("!!!", "Orca") is None


def test_haversine_is_metres():
    d = haversine_m(49.2827, -123.1207, 49.28279, -123.12069)
    assert 5 < d < 15
    # one degree of latitude is roughly 111 km
    assert 110_000 < haversine_m(0, 10, 1, 10) < 112_000


@pytest.mark.parametrize("distance,similarity,expected", [
    (10, 1.0, "high"),
    (10, 0.7, "warning"),
    (60, 0.9, "warning"),
    (10, None, "warning"),
    (10, 0.1, "warning"),
    (60, 0.2, "none"),
    (60, None, "none"),
    (150, 1.0, "none"),
])
def test_classify(distance, similarity, expected):
    assert classify(distance, similarity) == expected


@pytest.mark.asyncio
async def test_find_similar_ranks_nearby_match_first(session):
    orca = await make_artwork(session, 49.2827, -123.1207, "Orca Mural")
    other = await make_artwork(session, 49.2831, -123.1207, "Bench")  # ~35 m away
    await make_artwork(session, 49.2927, -123.1207, "Orca Mural")  # ~1.1 km away

    ctx = await find_similar(session, 49.28279, -123.12069, "Orca mural.")
    assert ctx.classification == "high"
    assert [m.artwork_id for m in ctx.matches] == [orca.id, other.id]
    assert ctx.matches[0].title_similarity == 1.0
    assert ctx.matches[1].classification == "none"


@pytest.mark.asyncio
async def test_find_similar_empty_area(session):
    ctx = await find_similar(session, -33.86, 151.21, "Anything")
    assert ctx.classification == "none"
    assert ctx.matches == []
    assert ctx.radius_meters == 100
