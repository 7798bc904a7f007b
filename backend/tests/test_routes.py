from __future__ import annotations
import jwt
import pytest
from artarchive.config import settings
from conftest import anon_headers, auth_headers, make_artwork, png_bytes


def _form(**extra):
    data = {"lat": "49.2827", "lon": "-123.1207", "title": "Orca Mural", "consent_version": settings.consent_version}
    data.update(extra)
    return data


def _files(n: int):
    return [("photos", (f"p{i}.png", png_bytes(i), "image/png")) for i in range(n)]


@pytest.mark.asyncio
async def test_anonymous_submission_through_approval(client, blob_store):
    r = await client.post("/submissions", data=_form(tags='{"year": "2015"}'), files=_files(2), headers=anon_headers())
    assert r.status_code == 201, r.text
    body = r.json()
    sid = body["submission"]["id"]
    assert body["submission"]["status"] == "pending"
    assert body["submission"]["submitter_id"] == "anon-token-1"
    assert body["submission"]["payload"]["tags"] == {"year": 2015}
    assert body["photos"]["succeeded"] == 2
    assert len(body["submission"]["photo_urls"]) == 2
    assert body["similarity"]["classification"] == "none"

    r = await client.get("/review/queue", headers=auth_headers())
    assert r.status_code == 200
    page = r.json()
    assert page["total"] == 1 and page["has_more"] is False
    assert page["items"][0]["id"] == sid

    r = await client.post(f"/review/submissions/{sid}/approve", json={"notes": "looks right"}, headers=auth_headers())
    assert r.status_code == 200, r.text
    result = r.json()
    assert result["action"] == "create_new"
    assert result["submission"]["status"] == "approved"
    assert result["submission"]["moderator_id"] == "mod-1"
    assert result["photos"]["succeeded"] == 2
    assert len(blob_store.keys(f"artworks/{result['artwork_id']}/")) == 2

    r = await client.get("/review/stats", headers=auth_headers())
    assert r.json() == {"pending": 0, "approved": 1, "rejected": 0, "total": 1}

    r = await client.post(f"/review/submissions/{sid}/reject", headers=auth_headers())
    assert r.status_code == 409
    assert r.json()["error"]["code"] == "CONFLICT"


@pytest.mark.asyncio
async def test_identity_is_required(client):
    r = await client.post("/submissions", data=_form())
    assert r.status_code == 401
    assert r.json()["error"]["code"] == "UNAUTHORIZED"

    r = await client.get("/review/queue", headers={"Authorization": "Bearer not-a-jwt"})
    assert r.status_code == 401


@pytest.mark.asyncio
async def test_review_needs_moderator(client):
    for headers in (anon_headers(), auth_headers("user-3", moderator=False)):
        r = await client.get("/review/queue", headers=headers)
        assert r.status_code == 403
        assert r.json()["error"]["code"] == "INSUFFICIENT_PERMISSIONS"


@pytest.mark.asyncio
async def test_legacy_role_claims_grant_review(client):
    token = jwt.encode({"sub": "old-mod", "type": "access", "roles": ["reviewer"]}, settings.jwt_secret, algorithm="HS256")
    r = await client.get("/review/stats", headers={"Authorization": f"Bearer {token}"})
    assert r.status_code == 200


@pytest.mark.asyncio
async def test_null_island_is_a_field_error(client):
    r = await client.post("/submissions", data=_form(lat="0", lon="0"), headers=anon_headers())
    assert r.status_code == 422
    error = r.json()["error"]
    assert error["code"] == "VALIDATION_ERROR"
    assert error["details"]["errors"] == [
        {"field": "location", "code": "null_island", "message": error["details"]["errors"][0]["message"]}
    ]


@pytest.mark.asyncio
async def test_photo_cap_is_enforced(client, blob_store):
    r = await client.post("/submissions", data=_form(), files=_files(11), headers=anon_headers())
    assert r.status_code == 422
    assert r.json()["error"]["details"]["errors"][0]["code"] == "too_many_photos"
    assert blob_store.keys() == []


@pytest.mark.asyncio
async def test_nearby_duplicate_is_flagged(client, session):
    orca = await make_artwork(session, 49.2827, -123.1207, "Orca Mural")
    r = await client.post(
        "/submissions", data=_form(lat="49.28279", lon="-123.12069", title="orca mural"), headers=anon_headers()
    )
    assert r.status_code == 201
    similarity = r.json()["similarity"]
    assert similarity["classification"] == "high"
    assert similarity["matches"][0]["artwork_id"] == str(orca.id)

    sid = r.json()["submission"]["id"]
    r = await client.get(f"/review/submissions/{sid}", headers=auth_headers())
    assert r.json()["similarity"]["classification"] == "high"

    r = await client.post(
        f"/review/submissions/{sid}/approve",
        json={"action": "link_existing", "artwork_id": str(orca.id)},
        headers=auth_headers(),
    )
    assert r.status_code == 200
    assert r.json()["artwork_id"] == str(orca.id)


@pytest.mark.asyncio
async def test_second_pending_edit_conflicts(client, session):
    artwork = await make_artwork(session, 49.2827, -123.1207, "Orca Mural")
    data = {
        "submission_type": "edit_artwork", "artwork_id": str(artwork.id),
        "diff": '{"title": "The Orca"}', "consent_version": settings.consent_version,
    }
    headers = auth_headers("user-5", moderator=False)
    r = await client.post("/submissions", data=data, headers=headers)
    assert r.status_code == 201, r.text
    r = await client.post("/submissions", data=data, headers=headers)
    assert r.status_code == 409
    assert r.json()["error"]["code"] == "CONFLICT"


@pytest.mark.asyncio
async def test_mass_import(client, remote):
    remote.add("https://img.example.org/orca.png", png_bytes(9))
    feature = {
        "type": "Feature",
        "id": "van-17",
        "geometry": {"type": "Point", "coordinates": [-123.1207, 49.2827]},
        "properties": {
            "source": "vancouver-open-data",
            "source_url": "https://opendata.vancouver.ca/artworks/17",
            "title": "Orca Mural",
            "artist": "Jane Doe, John Roe",
            "photos": ["https://img.example.org/orca.png"],
        },
    }
    r = await client.post("/mass-import", json=feature, headers=auth_headers("user-3", moderator=False))
    assert r.status_code == 403

    r = await client.post("/mass-import", json=feature, headers=auth_headers())
    assert r.status_code == 201, r.text
    body = r.json()
    assert body["artwork_id"] is not None
    assert body["approval_error"] is None
    assert body["submission"]["status"] == "approved"
    assert body["photos"]["succeeded"] == 1

    r = await client.post("/mass-import", json={"type": "Feature"}, headers=auth_headers())
    assert r.status_code == 422
    fields = {e["field"] for e in r.json()["error"]["details"]["errors"]}
    assert {"id", "geometry", "properties"} <= fields


@pytest.mark.asyncio
async def test_batch_review(client):
    ids = []
    for i in range(2):
        r = await client.post(
            "/submissions", data=_form(lat=str(10 + i), lon="20", title=f"Piece {i}"), headers=anon_headers()
        )
        ids.append(r.json()["submission"]["id"])

    r = await client.post("/review/batch", json={"items": [
        {"submission_id": ids[0], "action": "approve"},
        {"submission_id": ids[1], "action": "reject", "reason": "blurry"},
        {"submission_id": ids[0], "action": "reject"},
    ]}, headers=auth_headers())
    assert r.status_code == 200, r.text
    result = r.json()
    assert (result["approved"], result["rejected"]) == (1, 1)
    assert [e["submission_id"] for e in result["errors"]] == [ids[0]]

    r = await client.get("/review/queue", headers=auth_headers())
    assert r.json()["total"] == 0

    r = await client.post("/review/batch", json={"items": []}, headers=auth_headers())
    assert r.status_code == 422
