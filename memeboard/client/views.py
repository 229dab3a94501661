"""
memeboard.client.views — Optimistic client-side view models
============================================================

Local mirrors of server state for the feed, a profile page, a post's
comment thread and the leaderboard.  All mutation happens on the event
loop that owns the view, so no locking is needed.

Like/unlike is optimistic: the count and flag change immediately, then
settle to the server-confirmed count or roll back to the snapshot taken
before the action.  Per post::

    IDLE ──like──▶ PENDING_LIKE ──ok──▶ LIKED
      ▲                 └─fail──▶ IDLE (error surfaced)
      │
      └──ok── PENDING_UNLIKE ◀──unlike── LIKED
                    └─fail──▶ LIKED (error surfaced)

The view tracks the user's latest intent per post.  Repeating the action
already shown (a second like while the like is pending) sends nothing;
reversing it while a request is in flight shows the reversal at once and
sends the opposite request when the first one settles, so a quick
like-then-unlike ends unliked at the original count.  Deletes are
not optimistic: the post leaves the list only after the server confirms.
Responses that arrive after :meth:`close` are discarded.
"""

from __future__ import annotations

import asyncio
import enum
import logging
from collections.abc import Callable
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any

from memeboard.errors import ConflictError, MemeboardError, NotFoundError, UnauthorizedError

if TYPE_CHECKING:
    from memeboard.client.api import MemeboardClient

logger = logging.getLogger(__name__)

ErrorHandler = Callable[[MemeboardError], Any]


class PostState(enum.Enum):
    IDLE = "idle"
    PENDING_LIKE = "pending_like"
    LIKED = "liked"
    PENDING_UNLIKE = "pending_unlike"


@dataclass
class PostView:
    id: str
    user_id: str
    image_url: str
    caption: str | None
    like_count: int
    comment_count: int
    created_at: str | None
    author: dict | None = None
    state: PostState = PostState.IDLE

    @classmethod
    def from_dict(cls, data: dict) -> PostView:
        return cls(
            id=data["id"],
            user_id=data["user_id"],
            image_url=data["image_url"],
            caption=data.get("caption"),
            like_count=data.get("like_count", 0),
            comment_count=data.get("comment_count", 0),
            created_at=data.get("created_at"),
            author=data.get("author"),
            state=PostState.LIKED if data.get("liked_by_me") else PostState.IDLE,
        )

    @property
    def liked_by_me(self) -> bool:
        return self.state in (PostState.LIKED, PostState.PENDING_LIKE)

    @property
    def pending(self) -> bool:
        return self.state in (PostState.PENDING_LIKE, PostState.PENDING_UNLIKE)


class _View:
    """Shared error surfacing and teardown."""

    def __init__(self, on_error: ErrorHandler | None = None) -> None:
        self.errors: list[MemeboardError] = []
        self.closed = False
        self._on_error = on_error

    def _surface(self, exc: MemeboardError) -> None:
        logger.warning("%s: %s", type(self).__name__, exc)
        self.errors.append(exc)
        if self._on_error is not None:
            self._on_error(exc)

    def close(self) -> None:
        self.closed = True


# ---------------------------------------------------------------------------
# Feed (home feed; ProfileView reuses it for a profile's posts)
# ---------------------------------------------------------------------------
class FeedView(_View):
    """Paged home feed with optimistic likes."""

    def __init__(
        self,
        client: MemeboardClient,
        *,
        page_size: int = 10,
        on_error: ErrorHandler | None = None,
    ) -> None:
        super().__init__(on_error)
        self._client = client
        self.page_size = page_size
        self.posts: list[PostView] = []
        self.page = 0
        self.has_more = True
        # post id → (liked, like_count) last confirmed by the server, only
        # while a like/unlike request for that post is in flight
        self._confirmed: dict[str, tuple[bool, int]] = {}

    def get(self, post_id: str) -> PostView | None:
        return next((p for p in self.posts if p.id == post_id), None)

    # -------------------------------------------------------------------
    # Paging
    # -------------------------------------------------------------------
    async def _fetch_page(self, page: int) -> dict:
        return await self._client.list_feed(page=page, page_size=self.page_size)

    async def refresh(self) -> bool:
        """Fetch page zero and replace everything."""
        try:
            body = await self._fetch_page(0)
        except MemeboardError as exc:
            if not self.closed:
                self._surface(exc)
            return False
        if self.closed:
            return False
        self.posts = [PostView.from_dict(p) for p in body["posts"]]
        self.page = 0
        self.has_more = body["has_more"]
        return True

    async def load_more(self) -> int:
        """Append the next page.  Returns the number of new posts."""
        if not self.has_more:
            return 0
        next_page = self.page + 1
        try:
            body = await self._fetch_page(next_page)
        except MemeboardError as exc:
            if not self.closed:
                self._surface(exc)
            return 0
        if self.closed:
            return 0

        known = {p.id for p in self.posts}
        fresh = [PostView.from_dict(p) for p in body["posts"] if p["id"] not in known]
        self.posts.extend(fresh)
        self.page = next_page
        self.has_more = body["has_more"]
        return len(fresh)

    # -------------------------------------------------------------------
    # Likes
    # -------------------------------------------------------------------
    async def like(self, post_id: str) -> bool:
        return await self._set_liked(post_id, True)

    async def unlike(self, post_id: str) -> bool:
        return await self._set_liked(post_id, False)

    async def toggle_like(self, post_id: str) -> bool:
        post = self.get(post_id)
        if post is None:
            return False
        return await self._set_liked(post_id, not post.liked_by_me)

    async def _set_liked(self, post_id: str, liked: bool) -> bool:
        """Show *liked* immediately and bring the server in line with it.

        Returns False when *liked* is already what the post shows, so a
        repeated like never sends a second request.  While a request for
        the post is in flight the new intent is only recorded (and True
        returned at once); the in-flight call sends the follow-up request.
        """
        post = self.get(post_id)
        if post is None or post.liked_by_me == liked:
            return False
        if post_id in self._confirmed:
            self._show(post, liked)
            return True

        self._confirmed[post_id] = (post.liked_by_me, post.like_count)
        try:
            return await self._settle_like(post)
        finally:
            self._confirmed.pop(post_id, None)

    def _show(self, post: PostView, liked: bool) -> None:
        confirmed_liked, confirmed_count = self._confirmed[post.id]
        post.state = PostState.PENDING_LIKE if liked else PostState.PENDING_UNLIKE
        post.like_count = max(confirmed_count + int(liked) - int(confirmed_liked), 0)

    async def _settle_like(self, post: PostView) -> bool:
        want = not self._confirmed[post.id][0]
        while True:
            confirmed_liked, confirmed_count = self._confirmed[post.id]
            if want == confirmed_liked:
                break
            self._show(post, want)
            try:
                if want:
                    result = await self._client.like_post(post.id)
                else:
                    result = await self._client.unlike_post(post.id)
            except MemeboardError as exc:
                if self.closed:
                    return False
                if want and isinstance(exc, ConflictError):
                    # Already liked on the server; our increment never landed
                    self._confirmed[post.id] = (True, confirmed_count)
                elif not want and isinstance(exc, NotFoundError):
                    # Nothing to unlike on the server
                    self._confirmed[post.id] = (False, confirmed_count)
                else:
                    post.state = PostState.LIKED if confirmed_liked else PostState.IDLE
                    post.like_count = confirmed_count
                    self._surface(exc)
                    return False
            else:
                if self.closed:
                    return False
                self._confirmed[post.id] = (want, result["like_count"])
            # The user may have changed their mind while the request ran
            want = post.liked_by_me

        post.state = PostState.LIKED if confirmed_liked else PostState.IDLE
        post.like_count = confirmed_count
        return True

    # -------------------------------------------------------------------
    # Delete
    # -------------------------------------------------------------------
    async def delete_post(self, post_id: str) -> bool:
        """Delete on the server, then drop the post locally."""
        try:
            await self._client.delete_post(post_id)
        except MemeboardError as exc:
            if not self.closed:
                self._surface(exc)
            return False
        if not self.closed:
            self.posts = [p for p in self.posts if p.id != post_id]
        return True


# ---------------------------------------------------------------------------
# Profile page
# ---------------------------------------------------------------------------
class ProfileView(FeedView):
    """One profile: header with stats, its posts, and edits by the owner.

    Likes and deletes behave exactly as in :class:`FeedView`.  The posts
    arrive in one page.
    """

    def __init__(
        self,
        client: MemeboardClient,
        profile_id: str,
        *,
        viewer_id: str | None = None,
        on_error: ErrorHandler | None = None,
    ) -> None:
        super().__init__(client, on_error=on_error)
        self.profile_id = profile_id
        self.viewer_id = viewer_id
        self.profile: dict | None = None

    @classmethod
    async def mine(
        cls,
        client: MemeboardClient,
        *,
        on_error: ErrorHandler | None = None,
    ) -> ProfileView:
        """View of the caller's own profile.  Raises if not registered yet."""
        me = await client.get_my_profile()
        return cls(client, me["id"], viewer_id=me["id"], on_error=on_error)

    @property
    def is_own(self) -> bool:
        return self.viewer_id is not None and self.viewer_id == self.profile_id

    async def _fetch_page(self, page: int) -> dict:
        posts = await self._client.list_profile_posts(self.profile_id)
        return {"posts": posts, "has_more": False}

    async def refresh(self) -> bool:
        """Reload the profile header, then its posts."""
        try:
            profile = await self._client.get_profile(self.profile_id)
        except MemeboardError as exc:
            if not self.closed:
                self._surface(exc)
            return False
        if self.closed:
            return False
        self.profile = profile
        return await super().refresh()

    async def edit(self, *, username: str | None = None, bio: str | None = None) -> bool:
        """Save username/bio changes; the header updates once the server confirms."""
        if not self.is_own:
            self._surface(UnauthorizedError("You can only edit your own profile"))
            return False
        try:
            updated = await self._client.update_profile(username=username, bio=bio)
        except MemeboardError as exc:
            if not self.closed:
                self._surface(exc)
            return False
        if self.closed:
            return False
        stats = (self.profile or {}).get("stats")
        self.profile = {**updated, "stats": stats} if stats is not None else updated
        return True

    async def delete_post(self, post_id: str) -> bool:
        deleted = await super().delete_post(post_id)
        if deleted and not self.closed and self.profile and "stats" in self.profile:
            stats = self.profile["stats"]
            stats["posts"] = max(stats.get("posts", 0) - 1, 0)
        return deleted


# ---------------------------------------------------------------------------
# Comment thread
# ---------------------------------------------------------------------------
class CommentThreadView(_View):
    """Comments on one post, always refetched after a change.

    While :meth:`watch` is running, a submitted comment settles when the
    change stream has triggered a refetch; otherwise (or if the stream is
    slow) the view refetches directly.
    Deleting the post ends the watch without surfacing an error; the view
    then reports ``post_deleted``.
    """

    def __init__(
        self,
        client: MemeboardClient,
        post_id: str,
        *,
        settle_timeout: float = 5.0,
        reconnect_delay: float = 2.0,
        on_error: ErrorHandler | None = None,
    ) -> None:
        super().__init__(on_error)
        self._client = client
        self.post_id = post_id
        self.comments: list[dict] = []
        self.pending = False
        self.settle_timeout = settle_timeout
        self.reconnect_delay = reconnect_delay
        self.post_deleted = False
        self._refetched = asyncio.Event()
        self._watch_task: asyncio.Task | None = None

    @property
    def watching(self) -> bool:
        return self._watch_task is not None and not self._watch_task.done()

    async def refresh(self) -> bool:
        try:
            comments = await self._client.list_comments(self.post_id)
        except MemeboardError as exc:
            if not self.closed:
                self._surface(exc)
            return False
        if self.closed:
            return False
        self.comments = comments
        self._refetched.set()
        return True

    async def _settle(self) -> None:
        if self.watching:
            try:
                await asyncio.wait_for(self._refetched.wait(), timeout=self.settle_timeout)
                return
            except asyncio.TimeoutError:
                logger.debug("No change event for post %s; refetching directly", self.post_id)
        await self.refresh()

    async def submit(self, content: str) -> dict | None:
        """Post a comment; returns it once the thread has been refetched."""
        if self.pending:
            return None
        self.pending = True
        self._refetched.clear()
        try:
            created = await self._client.add_comment(self.post_id, content)
            if self.closed:
                return None
            await self._settle()
            return created
        except MemeboardError as exc:
            if not self.closed:
                self._surface(exc)
            return None
        finally:
            self.pending = False

    async def delete(self, comment_id: str) -> bool:
        self._refetched.clear()
        try:
            await self._client.delete_comment(comment_id)
        except MemeboardError as exc:
            if not self.closed:
                self._surface(exc)
            return False
        if not self.closed:
            await self._settle()
        return True

    # -------------------------------------------------------------------
    # Change subscription
    # -------------------------------------------------------------------
    def watch(self) -> asyncio.Task:
        """Start refetching on every change event for this post."""
        if not self.watching:
            self._watch_task = asyncio.get_running_loop().create_task(self._watch_loop())
        return self._watch_task

    async def _watch_loop(self) -> None:
        while not self.closed:
            try:
                async for change in self._client.comment_changes(self.post_id):
                    if self.closed:
                        return
                    if change.get("record", {}).get("cascade"):
                        self._post_gone()
                        return
                    await self.refresh()
            except NotFoundError:
                self._post_gone()
                return
            except MemeboardError as exc:
                logger.warning("Comment stream for post %s dropped: %s", self.post_id, exc)
            if not self.closed:
                await asyncio.sleep(self.reconnect_delay)

    def _post_gone(self) -> None:
        self.post_deleted = True
        self.comments = []
        logger.info("Post %s is gone; comment watch stopped", self.post_id)

    def close(self) -> None:
        super().close()
        if self._watch_task is not None and not self._watch_task.done():
            self._watch_task.cancel()


# ---------------------------------------------------------------------------
# Leaderboard
# ---------------------------------------------------------------------------
class LeaderboardView(_View):
    """Read-only view of the latest ranks; the server does the ranking."""

    def __init__(
        self,
        client: MemeboardClient,
        *,
        limit: int | None = None,
        on_error: ErrorHandler | None = None,
    ) -> None:
        super().__init__(on_error)
        self._client = client
        self.limit = limit
        self.profiles: list[dict] = []
        self._poll_task: asyncio.Task | None = None

    async def refresh(self) -> bool:
        try:
            body = await self._client.get_leaderboard(self.limit)
        except MemeboardError as exc:
            if not self.closed:
                self._surface(exc)
            return False
        if self.closed:
            return False
        self.profiles = body["profiles"]
        return True

    def start_polling(self, interval: float = 30.0) -> asyncio.Task:
        async def _poll() -> None:
            while not self.closed:
                await self.refresh()
                await asyncio.sleep(interval)

        if self._poll_task is None or self._poll_task.done():
            self._poll_task = asyncio.get_running_loop().create_task(_poll())
        return self._poll_task

    def close(self) -> None:
        super().close()
        if self._poll_task is not None and not self._poll_task.done():
            self._poll_task.cancel()
