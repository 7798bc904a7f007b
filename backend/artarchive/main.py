from __future__ import annotations
import uuid
from contextlib import asynccontextmanager
from fastapi import FastAPI, Request, Response
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from artarchive.config import settings
from artarchive.errors import ArchiveError
from artarchive.logging_setup import configure_logging
from artarchive.routes.system import router as system_router
from artarchive.routes.submissions import router as submissions_router
from artarchive.routes.mass_import import router as mass_import_router
from artarchive.routes.review import router as review_router
import structlog

configure_logging()
log = structlog.get_logger()

@asynccontextmanager
async def lifespan(app: FastAPI):
    # Startup
    log.info("startup", env=settings.environment, version=settings.app_version, git_sha=settings.git_sha)
    yield
    # Shutdown
    log.info("shutdown")

app = FastAPI(
    title=f"{settings.app_display_name} API",
    version=settings.app_version,
    lifespan=lifespan,
    description=f"{settings.app_display_name} API for artwork submissions and moderation"
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"] if settings.environment == "dev" else settings.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Include routers
app.include_router(system_router)
app.include_router(submissions_router)
app.include_router(mass_import_router)
app.include_router(review_router)

@app.exception_handler(ArchiveError)
async def archive_error_handler(request: Request, exc: ArchiveError):
    level = log.error if exc.status_code >= 500 else log.info
    level("request_failed", path=request.url.path, status=exc.status_code, code=exc.code, error=exc.message)
    return JSONResponse(status_code=exc.status_code, content={"error": exc.to_dict()})

@app.middleware("http")
async def add_request_id(request: Request, call_next):
    rid = request.headers.get("x-request-id") or str(uuid.uuid4())
    request.state.request_id = rid
    structlog.contextvars.bind_contextvars(request_id=rid)
    response: Response = await call_next(request)
    response.headers["X-Request-ID"] = rid
    structlog.contextvars.clear_contextvars()
    return response
