"""
memeboard.api.routes.posts — Feed, upload, likes & comments
============================================================
"""

from __future__ import annotations

import asyncio
import json
import logging

from fastapi import APIRouter, Depends, File, Form, Query, Request, UploadFile, status
from fastapi.responses import StreamingResponse
from pydantic import BaseModel
from sqlalchemy import Engine

from memeboard.api.deps import (
    CurrentUser,
    OptionalUser,
    get_cache,
    get_config,
    get_engine,
    get_feed,
    get_store,
)
from memeboard.config import MemeboardConfig
from memeboard.database.engine import run_db
from memeboard.engine.cache import ConfigCache
from memeboard.services import engagement_service, post_service
from memeboard.services.change_feed import Change, ChangeFeed
from memeboard.services.storage_service import BlobStore

router = APIRouter(tags=["posts"])
logger = logging.getLogger(__name__)

KEEPALIVE_SECONDS = 15.0


# ---------------------------------------------------------------------------
# Pydantic schemas
# ---------------------------------------------------------------------------
class CommentCreate(BaseModel):
    content: str


# ---------------------------------------------------------------------------
# Feed & posts
# ---------------------------------------------------------------------------
@router.get("/posts")
def list_feed(
    viewer_id: OptionalUser,
    page: int = Query(0, ge=0),
    page_size: int | None = Query(None, ge=1, le=post_service.MAX_PAGE_SIZE),
    engine: Engine = Depends(get_engine),
    cfg: MemeboardConfig = Depends(get_config),
):
    """Home feed, newest first."""
    return post_service.list_feed(
        engine, viewer_id, page=page, page_size=page_size or cfg.feed_page_size,
    )


@router.post("/posts", status_code=status.HTTP_201_CREATED)
async def create_post(
    user_id: CurrentUser,
    file: UploadFile = File(...),
    caption: str | None = Form(None),
    engine: Engine = Depends(get_engine),
    cache: ConfigCache = Depends(get_cache),
    store: BlobStore = Depends(get_store),
    feed: ChangeFeed = Depends(get_feed),
):
    """Upload an image as a new post."""
    content = await file.read()
    return await run_db(
        post_service.create_post,
        engine, cache, store, user_id,
        filename=file.filename or "",
        content=content,
        content_type=file.content_type,
        caption=caption,
        feed=feed,
    )


@router.get("/posts/{post_id}")
def get_post(post_id: str, viewer_id: OptionalUser, engine: Engine = Depends(get_engine)):
    return post_service.get_post(engine, post_id, viewer_id)


@router.delete("/posts/{post_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_post(
    post_id: str,
    user_id: CurrentUser,
    engine: Engine = Depends(get_engine),
    cache: ConfigCache = Depends(get_cache),
    store: BlobStore = Depends(get_store),
    feed: ChangeFeed = Depends(get_feed),
):
    post_service.delete_post(engine, cache, store, user_id, post_id, feed=feed)


# ---------------------------------------------------------------------------
# Likes
# ---------------------------------------------------------------------------
@router.post("/posts/{post_id}/like")
def like_post(
    post_id: str,
    user_id: CurrentUser,
    engine: Engine = Depends(get_engine),
    cache: ConfigCache = Depends(get_cache),
):
    return engagement_service.like_post(engine, cache, user_id, post_id)


@router.delete("/posts/{post_id}/like")
def unlike_post(
    post_id: str,
    user_id: CurrentUser,
    engine: Engine = Depends(get_engine),
    cache: ConfigCache = Depends(get_cache),
):
    return engagement_service.unlike_post(engine, cache, user_id, post_id)


# ---------------------------------------------------------------------------
# Comments
# ---------------------------------------------------------------------------
@router.get("/posts/{post_id}/comments")
def list_comments(post_id: str, engine: Engine = Depends(get_engine)):
    return {"comments": engagement_service.list_comments(engine, post_id)}


@router.post("/posts/{post_id}/comments", status_code=status.HTTP_201_CREATED)
def add_comment(
    post_id: str,
    body: CommentCreate,
    user_id: CurrentUser,
    engine: Engine = Depends(get_engine),
    cache: ConfigCache = Depends(get_cache),
    feed: ChangeFeed = Depends(get_feed),
):
    return engagement_service.add_comment(
        engine, cache, user_id, post_id, body.content, feed=feed,
    )


@router.delete("/comments/{comment_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_comment(
    comment_id: str,
    user_id: CurrentUser,
    engine: Engine = Depends(get_engine),
    cache: ConfigCache = Depends(get_cache),
    feed: ChangeFeed = Depends(get_feed),
):
    engagement_service.delete_comment(engine, cache, user_id, comment_id, feed=feed)


@router.get("/posts/{post_id}/comments/events")
async def comment_events(
    post_id: str,
    request: Request,
    engine: Engine = Depends(get_engine),
    feed: ChangeFeed = Depends(get_feed),
):
    """Server-sent events: one ``change`` event per comment mutation on the post.

    The payload only says *that* something changed; clients refetch the
    comment list.  The stream ends after the change that deleted the post
    (``record.cascade``).
    """
    await run_db(post_service.get_post, engine, post_id)

    loop = asyncio.get_running_loop()
    queue: asyncio.Queue[dict] = asyncio.Queue()

    def _on_change(change: Change) -> None:
        # Called from whichever thread committed the mutation
        loop.call_soon_threadsafe(queue.put_nowait, change.to_dict())

    async def _stream():
        sub = feed.subscribe(
            "comments", _on_change,
            predicate=lambda c: c.record.get("post_id") == post_id,
        )
        try:
            yield ": subscribed\n\n"
            while not await request.is_disconnected():
                try:
                    change = await asyncio.wait_for(queue.get(), timeout=KEEPALIVE_SECONDS)
                except asyncio.TimeoutError:
                    yield ": keepalive\n\n"
                    continue
                yield f"event: change\ndata: {json.dumps(change)}\n\n"
                if change["record"].get("cascade"):
                    # Post deleted; no further changes can follow
                    break
        finally:
            feed.unsubscribe(sub)
            logger.debug("Comment stream for post %s closed", post_id)

    return StreamingResponse(
        _stream(),
        media_type="text/event-stream",
        headers={"Cache-Control": "no-cache"},
    )
