from __future__ import annotations
import asyncio
from uuid import UUID
import httpx
import structlog
from tenacity import AsyncRetrying, retry_if_exception_type, stop_after_attempt, wait_exponential
from artarchive.config import settings
from artarchive.errors import ExternalResourceError
from artarchive.schemas.submission import PhotoError, PhotoRef, PhotoReport
from artarchive.services.media import ext_for_mime, inspect_image
from artarchive.services.storage import BlobStore, get_blob_store

log = structlog.get_logger()

STAGING_PREFIX = "staging/"
PERMANENT_PREFIX = "artworks/"


def staged_key(submission_id: UUID, sha256: str, ext: str) -> str:
    return f"{STAGING_PREFIX}{submission_id}/{sha256}.{ext}"


def permanent_key(artwork_id: UUID, staged: str) -> str:
    # Content-addressed file name carries over, so identical bytes land on one key
    return f"{PERMANENT_PREFIX}{artwork_id}/{staged.rsplit('/', 1)[-1]}"


def is_staged(key: str | None) -> bool:
    return bool(key) and key.startswith(STAGING_PREFIX)


def union_keys(existing: list[str], added: list[str]) -> list[str]:
    out: list[str] = []
    for key in [*existing, *added]:
        if key not in out:
            out.append(key)
    return out


class PhotoLifecycleManager:
    """
    Moves photos staging -> permanent storage on behalf of the moderation engine
    and the intake adapters. Every public method returns a PhotoReport; single
    photo failures are recorded there and never raised.
    """

    def __init__(self, store: BlobStore, http: httpx.AsyncClient | None = None):
        self.store = store
        self._http = http

    def _retrying(self) -> AsyncRetrying:
        return AsyncRetrying(
            stop=stop_after_attempt(settings.photo_retry_attempts),
            wait=wait_exponential(multiplier=settings.photo_retry_wait_s, max=5),
            retry=retry_if_exception_type(ExternalResourceError),
            reraise=True,
        )

    async def _with_retry(self, fn, *args):
        async for attempt in self._retrying():
            with attempt:
                return await fn(*args)

    async def _blob(self, fn, *args):
        # Blob client is synchronous; keep it off the event loop
        try:
            return await asyncio.to_thread(fn, *args)
        except FileNotFoundError:
            raise
        except Exception as e:
            raise ExternalResourceError(f"blob store failure: {e}") from e

    async def _request(self, method: str, url: str) -> httpx.Response:
        timeout = httpx.Timeout(settings.photo_probe_timeout_s)
        try:
            if self._http is not None:
                return await self._http.request(method, url, timeout=timeout, follow_redirects=True)
            async with httpx.AsyncClient(timeout=timeout, follow_redirects=True) as client:
                return await client.request(method, url)
        except httpx.TimeoutException as e:
            raise ExternalResourceError(f"timed out fetching {url}") from e
        except httpx.HTTPError as e:
            raise ExternalResourceError(f"could not fetch {url}: {e}") from e

    async def validate_remote(self, url: str) -> str:
        """HEAD probe; returns the advertised content type or raises ExternalResourceError."""
        resp = await self._request("HEAD", url)
        if resp.status_code >= 500:
            raise ExternalResourceError(f"HTTP {resp.status_code}")
        if not 200 <= resp.status_code < 300:
            # Client errors are final
            raise _FinalPhotoError(f"HTTP {resp.status_code}")
        content_type = resp.headers.get("content-type", "").split(";")[0].strip().lower()
        if not content_type.startswith("image/"):
            raise _FinalPhotoError(f"not an image (content-type: {content_type or 'missing'})")
        return content_type

    async def _download(self, url: str) -> bytes:
        resp = await self._request("GET", url)
        if resp.status_code >= 500:
            raise ExternalResourceError(f"HTTP {resp.status_code}")
        if not 200 <= resp.status_code < 300:
            raise _FinalPhotoError(f"HTTP {resp.status_code}")
        return resp.content

    async def _put(self, submission_id: UUID, data: bytes) -> str:
        try:
            mime, digest = inspect_image(data)
        except ValueError as e:
            raise _FinalPhotoError(str(e)) from e
        key = staged_key(submission_id, digest, ext_for_mime(mime))
        await self._with_retry(self._blob, self.store.put, key, data, mime)
        return key

    async def stage(self, uploads: list[tuple[bytes, PhotoRef]], submission_id: UUID) -> PhotoReport:
        report = PhotoReport(total=len(uploads))
        for i, (data, ref) in enumerate(uploads):
            try:
                key = await self._put(submission_id, data)
            except (ExternalResourceError, _FinalPhotoError) as e:
                _fail(report, i, ref.source_url, str(e))
                log.warning("photo_stage_failed", submission_id=str(submission_id), index=i, error=str(e))
                continue
            report.photos.append(ref.model_copy(update={"key": key}))
            report.succeeded += 1
        return report

    async def stage_remote(self, refs: list[PhotoRef], submission_id: UUID) -> PhotoReport:
        """Probe, download and stage remote photos in order."""
        report = PhotoReport(total=len(refs))
        for i, ref in enumerate(refs):
            url = ref.source_url or ""
            try:
                await self._with_retry(self.validate_remote, url)
                data = await self._with_retry(self._download, url)
                key = await self._put(submission_id, data)
            except (ExternalResourceError, _FinalPhotoError) as e:
                _fail(report, i, url, str(e))
                log.warning("photo_import_failed", submission_id=str(submission_id), url=url, error=str(e))
                continue
            report.photos.append(ref.model_copy(update={"key": key}))
            report.succeeded += 1
        return report

    async def _promote_one(self, src: str, dst: str) -> None:
        if await self._blob(self.store.exists, dst):
            # Already promoted by an earlier attempt; only the staged copy may be left
            if await self._blob(self.store.exists, src):
                await self._blob(self.store.delete, src)
            return
        try:
            await self._blob(self.store.copy, src, dst)
        except FileNotFoundError as e:
            raise _FinalPhotoError("staged photo missing") from e
        await self._blob(self.store.delete, src)

    async def promote(self, refs: list[PhotoRef], artwork_id: UUID, existing: list[str] | None = None) -> tuple[list[str], PhotoReport]:
        """
        Returns (union of existing and promoted permanent keys, report).
        Safe to call again with the same refs.
        """
        existing = list(existing or [])
        report = PhotoReport(total=len(refs))
        promoted: list[str] = []
        for i, ref in enumerate(refs):
            key = ref.key
            if not key:
                _fail(report, i, ref.source_url, "photo was never staged")
                continue
            if not is_staged(key):
                promoted.append(key)
                report.photos.append(ref)
                report.succeeded += 1
                continue
            dst = permanent_key(artwork_id, key)
            try:
                await self._with_retry(self._promote_one, key, dst)
            except (ExternalResourceError, _FinalPhotoError) as e:
                _fail(report, i, key, str(e))
                log.warning("photo_promote_failed", artwork_id=str(artwork_id), key=key, error=str(e))
                continue
            promoted.append(dst)
            report.photos.append(ref.model_copy(update={"key": dst}))
            report.succeeded += 1
        return union_keys(existing, promoted), report

    async def purge(self, refs: list[PhotoRef]) -> PhotoReport:
        staged = [r for r in refs if is_staged(r.key)]
        report = PhotoReport(total=len(staged))
        for i, ref in enumerate(staged):
            try:
                await self._with_retry(self._blob, self.store.delete, ref.key)
            except (ExternalResourceError, FileNotFoundError) as e:
                _fail(report, i, ref.key, str(e))
                log.warning("photo_purge_failed", key=ref.key, error=str(e))
                continue
            report.photos.append(ref)
            report.succeeded += 1
        return report

class _FinalPhotoError(Exception):
    """A per-photo failure that retrying cannot fix."""


def _fail(report: PhotoReport, index: int, source: str | None, error: str) -> None:
    report.errors.append(PhotoError(index=index, source=source, error=error))
    report.failed += 1


def get_photo_manager() -> PhotoLifecycleManager:
    return PhotoLifecycleManager(get_blob_store())
