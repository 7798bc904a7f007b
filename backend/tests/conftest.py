from __future__ import annotations
import io
import httpx
import pytest
import pytest_asyncio
from httpx import AsyncClient
from PIL import Image
from sqlalchemy.ext.asyncio import create_async_engine, async_sessionmaker
from sqlalchemy.pool import StaticPool
from artarchive.config import settings
from artarchive.db import Base, get_session
from artarchive.main import app
from artarchive.models.artwork import Artwork
from artarchive.security import make_access_token
from artarchive.services.photos import PhotoLifecycleManager, get_photo_manager
import artarchive.models.submission  # register tables
import artarchive.models.consent
import artarchive.models.audit


class FakeBlobStore:
    """In-memory BlobStore. `fail_next[op] = n` makes the next n calls of op raise."""

    def __init__(self):
        self.objects: dict[str, tuple[bytes, str]] = {}
        self.fail_next: dict[str, int] = {}

    def _maybe_fail(self, op: str):
        if self.fail_next.get(op):
            self.fail_next[op] -= 1
            raise ConnectionError(f"{op} unavailable")

    def put(self, key, data, content_type):
        self._maybe_fail("put")
        self.objects[key] = (data, content_type)

    def get(self, key):
        self._maybe_fail("get")
        if key not in self.objects:
            raise FileNotFoundError(key)
        return self.objects[key]

    def delete(self, key):
        self._maybe_fail("delete")
        self.objects.pop(key, None)

    def copy(self, src, dst):
        self._maybe_fail("copy")
        if src not in self.objects:
            raise FileNotFoundError(src)
        self.objects[dst] = self.objects[src]

    def exists(self, key):
        self._maybe_fail("exists")
        return key in self.objects

    def keys(self, prefix: str = "") -> list[str]:
        return sorted(k for k in self.objects if k.startswith(prefix))


class FakeRemote:
    """Stand-in for third-party photo hosts, served through httpx.MockTransport."""

    def __init__(self):
        self.routes: dict[str, tuple[int, str, bytes]] = {}
        self.calls: list[tuple[str, str]] = []

    def add(self, url: str, body: bytes = b"", content_type: str = "image/png", status: int = 200):
        self.routes[url] = (status, content_type, body)

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.calls.append((request.method, str(request.url)))
        status, content_type, body = self.routes.get(str(request.url), (404, "text/plain", b"missing"))
        return httpx.Response(status, headers={"content-type": content_type}, content=b"" if request.method == "HEAD" else body)


def png_bytes(seed: int = 0) -> bytes:
    buf = io.BytesIO()
    Image.new("RGB", (4, 4), (seed % 256, (seed * 7) % 256, 90)).save(buf, format="PNG")
    return buf.getvalue()


def auth_headers(sub: str = "mod-1", moderator: bool = True) -> dict[str, str]:
    return {"Authorization": f"Bearer {make_access_token(sub, moderator=moderator)}"}


def anon_headers(token: str = "anon-token-1") -> dict[str, str]:
    return {"X-Anonymous-Token": token}


@pytest.fixture(autouse=True)
def fast_retries(monkeypatch):
    monkeypatch.setattr(settings, "photo_retry_wait_s", 0)
    monkeypatch.setattr(settings, "bulk_auto_approve", True)


@pytest_asyncio.fixture
async def db_engine():
    engine = create_async_engine(
        "sqlite+aiosqlite://", poolclass=StaticPool, connect_args={"check_same_thread": False}
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(db_engine):
    return async_sessionmaker(db_engine, expire_on_commit=False)


@pytest_asyncio.fixture
async def session(session_factory):
    async with session_factory() as s:
        yield s


@pytest.fixture
def blob_store():
    return FakeBlobStore()


@pytest.fixture
def remote():
    return FakeRemote()


@pytest_asyncio.fixture
async def photo_manager(blob_store, remote):
    async with httpx.AsyncClient(transport=httpx.MockTransport(remote.handler)) as http:
        yield PhotoLifecycleManager(blob_store, http=http)


@pytest_asyncio.fixture
async def client(session_factory, photo_manager):
    async def _session():
        async with session_factory() as s:
            yield s

    app.dependency_overrides[get_session] = _session
    app.dependency_overrides[get_photo_manager] = lambda: photo_manager
    async with AsyncClient(transport=httpx.ASGITransport(app=app), base_url="http://test") as ac:
        yield ac
    app.dependency_overrides.clear()


async def make_artwork(session, lat: float, lon: float, title: str | None = None, **kw) -> Artwork:
    artwork = Artwork(lat=lat, lon=lon, title=title, tags=kw.pop("tags", {}), photos=kw.pop("photos", []), **kw)
    session.add(artwork)
    await session.commit()
    return artwork
