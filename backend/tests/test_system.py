import pytest
from artarchive.config import settings


@pytest.mark.asyncio
async def test_health_ok(client):
    r = await client.get("/health", headers={"X-Request-ID": "req-42"})
    assert r.status_code == 200
    data = r.json()
    assert data["status"] == "ok"
    assert data["request_id"] == "req-42"
    assert r.headers["X-Request-ID"] == "req-42"


@pytest.mark.asyncio
async def test_version_ok(client):
    r = await client.get("/version")
    assert r.status_code == 200
    data = r.json()
    assert "version" in data and "git_sha" in data
    assert data["consent_version"] == settings.consent_version
