"""
memeboard.api.main — FastAPI application entry point
=====================================================

Run with::

    uvicorn memeboard.api.main:app --reload --port 8000
"""

from __future__ import annotations

import logging
import os
from contextlib import asynccontextmanager

from dotenv import load_dotenv
from fastapi import Depends, FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import FileResponse, JSONResponse
from sqlalchemy.exc import IntegrityError, OperationalError

load_dotenv()

from memeboard.api.deps import get_cache, get_config, get_engine, get_store  # noqa: E402
from memeboard.api.routes.admin import router as admin_router  # noqa: E402
from memeboard.api.routes.leaderboard import router as leaderboard_router  # noqa: E402
from memeboard.api.routes.posts import router as posts_router  # noqa: E402
from memeboard.api.routes.profiles import router as profiles_router  # noqa: E402
from memeboard.database.engine import init_db  # noqa: E402
from memeboard.errors import ConflictError, MemeboardError, TransientError  # noqa: E402
from memeboard.services.scheduler import build_scheduler  # noqa: E402
from memeboard.services.storage_service import BlobStore  # noqa: E402

logger = logging.getLogger(__name__)


def _cors_origins() -> list[str]:
    """Resolve allowed CORS origins from env with safe defaults.

    Priority:
      1) CORS_ALLOW_ORIGINS (comma-separated)
      2) FRONTEND_URL (single origin)
    """
    raw = os.getenv("CORS_ALLOW_ORIGINS", "").strip()
    if raw:
        return [origin.strip().rstrip("/") for origin in raw.split(",") if origin.strip()]

    frontend_url = os.getenv("FRONTEND_URL", "").strip()
    if frontend_url:
        return [frontend_url.rstrip("/")]

    return []


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Startup/shutdown: schema, settings cache, buckets, background jobs."""
    cfg = get_config()
    engine = get_engine()
    init_db(engine)

    cache = get_cache()
    cache.load_all()
    get_store().ensure_buckets()

    scheduler = build_scheduler(engine, cache, cfg)
    scheduler.start()
    logger.info("Memeboard API started (%s), database %s",
                cfg.community_name, engine.url.database)
    yield
    scheduler.shutdown(wait=False)
    logger.info("Memeboard API shutting down")


app = FastAPI(
    title="Memeboard API",
    version="0.1.0",
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=_cors_origins(),
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


# ---------------------------------------------------------------------------
# Error mapping
# ---------------------------------------------------------------------------
@app.exception_handler(MemeboardError)
async def _memeboard_error(request: Request, exc: MemeboardError):
    return JSONResponse(status_code=exc.status_code, content=exc.to_dict())


@app.exception_handler(IntegrityError)
async def _integrity_error(request: Request, exc: IntegrityError):
    logger.warning("Integrity error on %s %s: %s", request.method, request.url.path, exc.orig)
    err = ConflictError("Duplicate record")
    return JSONResponse(status_code=err.status_code, content=err.to_dict())


@app.exception_handler(OperationalError)
async def _operational_error(request: Request, exc: OperationalError):
    logger.error("Database unavailable on %s %s: %s", request.method, request.url.path, exc.orig)
    err = TransientError("Database unavailable, please retry")
    return JSONResponse(status_code=err.status_code, content=err.to_dict())


# Mount routers
app.include_router(posts_router, prefix="/api")
app.include_router(profiles_router, prefix="/api")
app.include_router(leaderboard_router, prefix="/api")
app.include_router(admin_router, prefix="/api")


@app.get("/api/health")
def health():
    return {"status": "ok"}


@app.get("/api/storage/{bucket}/{path:path}")
def serve_blob(bucket: str, path: str, store: BlobStore = Depends(get_store)):
    """Public URL target for uploaded images."""
    return FileResponse(
        store.open_path(bucket, path),
        headers={"Cache-Control": "public, max-age=86400"},
    )
