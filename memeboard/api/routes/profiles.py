"""
memeboard.api.routes.profiles — Registration, profile pages & edits
====================================================================
"""

from __future__ import annotations

from fastapi import APIRouter, Depends, File, Query, UploadFile, status
from pydantic import BaseModel
from sqlalchemy import Engine

from memeboard.api.deps import CurrentUser, OptionalUser, get_engine, get_store
from memeboard.database.engine import run_db
from memeboard.services import experience_service, post_service, profile_service
from memeboard.services.storage_service import BlobStore

router = APIRouter(prefix="/profiles", tags=["profiles"])


# ---------------------------------------------------------------------------
# Pydantic schemas
# ---------------------------------------------------------------------------
class ProfileCreate(BaseModel):
    username: str


class ProfileUpdate(BaseModel):
    username: str | None = None
    bio: str | None = None


# ---------------------------------------------------------------------------
# Own profile
# ---------------------------------------------------------------------------
@router.post("", status_code=status.HTTP_201_CREATED)
def register_profile(
    body: ProfileCreate,
    user_id: CurrentUser,
    engine: Engine = Depends(get_engine),
):
    """Claim a username for the authenticated identity."""
    return profile_service.register_profile(engine, user_id, body.username)


@router.get("/me")
def get_my_profile(user_id: CurrentUser, engine: Engine = Depends(get_engine)):
    return profile_service.get_profile(engine, user_id)


@router.patch("/me")
def update_my_profile(
    body: ProfileUpdate,
    user_id: CurrentUser,
    engine: Engine = Depends(get_engine),
):
    return profile_service.update_profile(
        engine, user_id, username=body.username, bio=body.bio,
    )


@router.post("/me/avatar")
async def upload_avatar(
    user_id: CurrentUser,
    file: UploadFile = File(...),
    engine: Engine = Depends(get_engine),
    store: BlobStore = Depends(get_store),
):
    content = await file.read()
    return await run_db(
        profile_service.set_avatar,
        engine, store, user_id,
        filename=file.filename or "",
        content=content,
        content_type=file.content_type,
    )


# ---------------------------------------------------------------------------
# Public profile pages
# ---------------------------------------------------------------------------
@router.get("/{profile_id}")
def get_profile(profile_id: str, engine: Engine = Depends(get_engine)):
    """Profile plus aggregate stats for the profile page."""
    profile = profile_service.get_profile(engine, profile_id)
    profile["stats"] = profile_service.get_profile_stats(engine, profile_id)
    return profile


@router.get("/{profile_id}/posts")
def list_profile_posts(
    profile_id: str,
    viewer_id: OptionalUser,
    engine: Engine = Depends(get_engine),
):
    profile_service.get_profile(engine, profile_id)
    return {"posts": post_service.list_user_posts(engine, profile_id, viewer_id)}


@router.get("/{profile_id}/ledger")
def get_profile_ledger(
    profile_id: str,
    limit: int = Query(50, ge=1, le=200),
    engine: Engine = Depends(get_engine),
):
    """Recent experience awards and reversals."""
    profile_service.get_profile(engine, profile_id)
    return {"entries": experience_service.ledger_for(engine, profile_id, limit)}
