from __future__ import annotations
import uuid
import pytest
from sqlalchemy import select, func
from artarchive.config import settings
from artarchive.errors import ConflictError, NotFoundError, ValidationError
from artarchive.models.artwork import Artist, Artwork, ArtworkArtist
from artarchive.models.audit import AuditLogEntry
from artarchive.models.consent import ConsentRecord
from artarchive.schemas.review import BatchItem
from artarchive.schemas.submission import (
    AdditionalInfoPayload, ArtistCreatePayload, ArtworkEditPayload, CanonicalSubmission, PhotoRef,
)
from artarchive.security import Identity
from artarchive.services import audit, submissions
from artarchive.services.intake import IntakeService, form_to_canonical
from artarchive.services.moderation import ModerationEngine, artwork_id_for
from conftest import make_artwork, png_bytes

ANON = Identity(subject="anon-token-1")


async def submit_new(session, photo_manager, n_photos=0, title="Orca Mural", lat=49.2827, lon=-123.1207, who=ANON):
    sub = form_to_canonical(who, {"submission_type": "new_artwork", "lat": str(lat), "lon": str(lon), "title": title}, n_photos)
    uploads = [(png_bytes(i), PhotoRef()) for i in range(n_photos)]
    created = await IntakeService(session, photo_manager).submit_form(sub, uploads, settings.consent_version, "127.0.0.1")
    return created.submission.id


async def store_directly(session, sub: CanonicalSubmission):
    s = await submissions.create(session, sub)
    await session.commit()
    return s.id


async def reload(session, submission_id):
    session.expire_all()
    return await submissions.get(session, submission_id)


@pytest.mark.asyncio
async def test_approve_new_artwork_promotes_every_photo(session, photo_manager, blob_store):
    sid = await submit_new(session, photo_manager, n_photos=3)
    assert len(blob_store.keys("staging/")) == 3

    result = await ModerationEngine(session, photo_manager).approve(sid, "mod-1")

    assert result.artwork_id == artwork_id_for(sid)
    artwork = await session.get(Artwork, result.artwork_id)
    assert artwork.title == "Orca Mural"
    assert len(artwork.photos) == 3
    assert all(k.startswith(f"artworks/{artwork.id}/") for k in artwork.photos)
    assert blob_store.keys("staging/") == []
    assert blob_store.keys(f"artworks/{artwork.id}/") == sorted(artwork.photos)

    s = await reload(session, sid)
    assert s.status == "approved"
    assert s.moderator_id == "mod-1"
    assert s.reviewed_at is not None
    assert s.resolved_artwork_id == artwork.id
    assert all(p["key"].startswith("artworks/") for p in s.payload["photos"])

    entries = (await session.execute(select(AuditLogEntry))).scalars().all()
    assert [(e.decision, e.target_id) for e in entries] == [("approved", sid)]
    assert entries[0].meta_json["photos"] == {"total": 3, "succeeded": 3, "failed": 0}

    consent = (await session.execute(select(ConsentRecord))).scalars().one()
    assert consent.content_id == str(artwork.id)
    assert consent.content_type == "artwork"
    assert consent.anonymous_token == "anon-token-1" and consent.user_id is None


@pytest.mark.asyncio
async def test_terminal_submissions_do_not_move(session, photo_manager):
    engine = ModerationEngine(session, photo_manager)
    approved = await submit_new(session, photo_manager)
    rejected = await submit_new(session, photo_manager, title="Other", lat=10, lon=10)
    await engine.approve(approved, "mod-1")
    await engine.reject(rejected, "mod-1", reason="duplicate")

    for sid in (approved, rejected):
        with pytest.raises(ConflictError):
            await engine.approve(sid, "mod-2")
        with pytest.raises(ConflictError):
            await engine.reject(sid, "mod-2")

    assert (await reload(session, approved)).status == "approved"
    s = await reload(session, rejected)
    assert s.status == "rejected" and s.moderator_notes == "duplicate"


@pytest.mark.asyncio
async def test_reject_with_cleanup_removes_staged_photos(session, photo_manager, blob_store):
    sid = await submit_new(session, photo_manager, n_photos=2)
    result = await ModerationEngine(session, photo_manager).reject(sid, "mod-1", reason="blurry")
    assert result.photos.succeeded == 2
    assert blob_store.keys("staging/") == []
    entry = (await session.execute(select(AuditLogEntry))).scalars().one()
    assert (entry.decision, entry.reason) == ("rejected", "blurry")


@pytest.mark.asyncio
async def test_reject_without_cleanup_keeps_staged_photos(session, photo_manager, blob_store):
    sid = await submit_new(session, photo_manager, n_photos=2)
    before = blob_store.keys("staging/")
    result = await ModerationEngine(session, photo_manager).reject(sid, "mod-1", cleanup_photos=False)
    assert result.photos is None
    assert blob_store.keys("staging/") == before


@pytest.mark.asyncio
async def test_failed_approval_stays_pending_and_retries_cleanly(session, photo_manager, blob_store, monkeypatch):
    sid = await submit_new(session, photo_manager, n_photos=2)
    real_write = audit.write_entry
    calls = {"n": 0}

    async def flaky_write(*args, **kwargs):
        calls["n"] += 1
        if calls["n"] == 1:
            raise RuntimeError("audit table unavailable")
        return await real_write(*args, **kwargs)

    monkeypatch.setattr(audit, "write_entry", flaky_write)
    engine = ModerationEngine(session, photo_manager)
    with pytest.raises(RuntimeError):
        await engine.approve(sid, "mod-1")

    assert (await reload(session, sid)).status == "pending"
    assert await session.scalar(select(func.count()).select_from(Artwork)) == 0

    result = await engine.approve(sid, "mod-1")
    artwork = await session.get(Artwork, result.artwork_id)
    assert len(artwork.photos) == 2 == len(set(artwork.photos))
    assert result.photos.failed == 0
    assert blob_store.keys("staging/") == []


@pytest.mark.asyncio
async def test_overrides_are_validated_and_applied(session, photo_manager):
    engine = ModerationEngine(session, photo_manager)
    sid = await submit_new(session, photo_manager, title="orca murl")
    with pytest.raises(ValidationError) as exc:
        await engine.approve(sid, "mod-1", overrides={"lat": 0, "lon": 0})
    assert exc.value.errors[0].code == "null_island"
    assert (await reload(session, sid)).status == "pending"

    result = await engine.approve(sid, "mod-1", overrides={"title": "Orca Mural", "tags": {"year": "2004"}})
    artwork = await session.get(Artwork, result.artwork_id)
    assert artwork.title == "Orca Mural"
    assert artwork.tags == {"year": 2004}


@pytest.mark.asyncio
async def test_link_existing_merges_into_target(session, photo_manager):
    target = await make_artwork(session, 49.2827, -123.1207, "Orca Mural", tags={"material": "paint"})
    engine = ModerationEngine(session, photo_manager)
    sid = await submit_new(session, photo_manager, n_photos=1)

    with pytest.raises(ValidationError):
        await engine.approve(sid, "mod-1", action="link_existing")
    with pytest.raises(NotFoundError):
        await engine.approve(sid, "mod-1", action="link_existing", artwork_id=uuid.uuid4())

    result = await engine.approve(sid, "mod-1", action="link_existing", artwork_id=target.id)
    assert result.artwork_id == target.id
    await session.refresh(target)
    assert len(target.photos) == 1
    assert await session.scalar(select(func.count()).select_from(Artwork)) == 1


@pytest.mark.asyncio
async def test_edit_with_invalid_value_is_not_applied(session, photo_manager):
    artwork = await make_artwork(session, 49.2827, -123.1207, "Orca Mural")
    sid = await store_directly(session, CanonicalSubmission(
        submission_type="edit_artwork", submitter_id="u-1", submitter_kind="user",
        target_artwork_id=artwork.id,
        payload=ArtworkEditPayload(diff={"title": {"old": "Orca Mural", "new": "Orca"}, "lat": {"old": 49.2827, "new": 999}}),
    ))
    with pytest.raises(ValidationError) as exc:
        await ModerationEngine(session, photo_manager).approve(sid, "mod-1")
    assert [(e.field, e.code) for e in exc.value.errors] == [("diff.lat", "out_of_range")]

    assert (await reload(session, sid)).status == "pending"
    await session.refresh(artwork)
    assert artwork.title == "Orca Mural" and artwork.lat == 49.2827


@pytest.mark.asyncio
async def test_edit_applies_all_fields(session, photo_manager):
    artwork = await make_artwork(session, 49.2827, -123.1207, "Orca Mural", tags={"material": "paint"})
    sid = await store_directly(session, CanonicalSubmission(
        submission_type="edit_artwork", submitter_id="u-1", submitter_kind="user",
        target_artwork_id=artwork.id,
        payload=ArtworkEditPayload(diff={
            "title": {"old": "Orca Mural", "new": "The Orca"},
            "tags": {"old": {"material": "paint"}, "new": {"material": "aerosol paint", "year": 2019}},
        }),
    ))
    result = await ModerationEngine(session, photo_manager).approve(sid, "mod-1")
    assert result.action == "apply_edit"
    await session.refresh(artwork)
    assert artwork.title == "The Orca"
    assert artwork.tags == {"material": "aerosol paint", "year": 2019}


@pytest.mark.asyncio
async def test_additional_info_merges_tags(session, photo_manager):
    artwork = await make_artwork(session, 49.2827, -123.1207, "Orca Mural", tags={"material": "steel", "style": "modern"})
    sid = await store_directly(session, CanonicalSubmission(
        submission_type="additional_info", submitter_id="u-2", submitter_kind="user",
        target_artwork_id=artwork.id,
        payload=AdditionalInfoPayload(note="Plaque on the north side", tags={"material": "bronze", "condition": "good"}),
    ))
    await ModerationEngine(session, photo_manager).approve(sid, "mod-1")
    await session.refresh(artwork)
    assert artwork.tags == {"material": "bronze", "style": "modern", "condition": "good"}
    assert artwork.title == "Orca Mural"


@pytest.mark.asyncio
async def test_bulk_artist_creates_then_links_by_name(session, photo_manager):
    engine = ModerationEngine(session, photo_manager)

    def artist_sub(source_id):
        return CanonicalSubmission(
            submission_type="bulk_artist", submitter_id="importer", submitter_kind="user",
            payload=ArtistCreatePayload(name="Jane Doe", source="city", source_url="https://city.example.org", source_id=source_id),
        )

    first = await engine.approve(await store_directly(session, artist_sub("a-1")), "importer")
    second = await engine.approve(await store_directly(session, artist_sub("a-2")), "importer")
    assert first.action == "create_new" and second.action == "link_existing"
    assert first.artist_id == second.artist_id
    assert await session.scalar(select(func.count()).select_from(Artist)) == 1


@pytest.mark.asyncio
async def test_bulk_artwork_links_named_artists(session, photo_manager):
    sid = await store_directly(session, CanonicalSubmission(
        submission_type="bulk_artwork", submitter_id="importer", submitter_kind="user",
        payload={
            "kind": "bulk_artwork", "lat": 49.28, "lon": -123.12, "title": "Gate",
            "artists": ["Doe, Jane", "John Roe", "Doe, Jane"],
            "source": "city", "source_url": "https://city.example.org/gate", "source_id": "g-1",
        },
    ))
    result = await ModerationEngine(session, photo_manager).approve(sid, "importer")
    links = (await session.execute(select(ArtworkArtist).where(ArtworkArtist.artwork_id == result.artwork_id))).scalars().all()
    assert len(links) == 2 and {l.role for l in links} == {"primary"}
    artwork = await session.get(Artwork, result.artwork_id)
    assert artwork.tags["source_id"] == "g-1"


@pytest.mark.asyncio
async def test_batch_isolates_failures(session, photo_manager):
    first = await submit_new(session, photo_manager, title="One", lat=1, lon=1)
    third = await submit_new(session, photo_manager, title="Three", lat=3, lon=3)
    missing = uuid.uuid4()
    items = [
        BatchItem(submission_id=first, action="approve"),
        BatchItem(submission_id=missing, action="approve"),
        BatchItem(submission_id=third, action="approve"),
    ]
    result = await ModerationEngine(session, photo_manager).batch(items, "mod-1")
    assert result.approved == 2 and result.rejected == 0
    assert [(e.submission_id, e.error) for e in result.errors] == [(missing, "not found")]


@pytest.mark.asyncio
async def test_batch_size_is_capped(session, photo_manager):
    items = [BatchItem(submission_id=uuid.uuid4(), action="reject") for _ in range(settings.max_review_batch_size + 1)]
    with pytest.raises(ValidationError):
        await ModerationEngine(session, photo_manager).batch(items, "mod-1")
