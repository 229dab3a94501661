"""
memeboard.client.api — Async HTTP client for the Memeboard API
===============================================================

Thin wrapper over :class:`httpx.AsyncClient`.  Error responses are turned
back into the :mod:`memeboard.errors` classes the server raised, and
network failures become :class:`~memeboard.errors.TransientError`.
Nothing is retried automatically.

Usage::

    async with MemeboardClient("http://localhost:8000", token=jwt) as api:
        feed = await api.list_feed()
        await api.like_post(feed["posts"][0]["id"])
"""

from __future__ import annotations

import json
import logging
from collections.abc import AsyncIterator
from typing import Any

import httpx

from memeboard.errors import (
    ERRORS_BY_STATUS,
    MemeboardError,
    TransientError,
    UnauthorizedError,
    ValidationError,
)

logger = logging.getLogger(__name__)


def _error_from_response(resp: httpx.Response) -> MemeboardError:
    """Map an error response onto the matching error class."""
    try:
        body = resp.json()
    except ValueError:
        body = {}
    detail = body.get("detail") if isinstance(body, dict) else None
    if not isinstance(detail, str):
        # FastAPI request validation returns a list of problems
        detail = json.dumps(detail) if detail is not None else resp.reason_phrase

    cls = ERRORS_BY_STATUS.get(resp.status_code)
    if cls is None:
        if resp.status_code == 401:
            cls = UnauthorizedError
        elif resp.status_code == 422:
            cls = ValidationError
        elif resp.status_code >= 500:
            cls = TransientError
        else:
            cls = MemeboardError
    return cls(detail)


class MemeboardClient:
    """One authenticated session against the API."""

    def __init__(
        self,
        base_url: str,
        token: str | None = None,
        *,
        timeout: float = 10.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        headers = {"Authorization": f"Bearer {token}"} if token else {}
        self._http = httpx.AsyncClient(
            base_url=base_url.rstrip("/"),
            headers=headers,
            timeout=timeout,
            transport=transport,
        )

    async def aclose(self) -> None:
        await self._http.aclose()

    async def __aenter__(self) -> MemeboardClient:
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.aclose()

    # -------------------------------------------------------------------
    # Transport
    # -------------------------------------------------------------------
    async def _request(self, method: str, path: str, **kwargs: Any) -> Any:
        try:
            resp = await self._http.request(method, path, **kwargs)
        except httpx.TransportError as exc:
            logger.warning("%s %s failed: %s", method, path, exc)
            raise TransientError(f"Could not reach the server: {exc}") from exc

        if resp.status_code >= 400:
            raise _error_from_response(resp)
        if resp.status_code == 204 or not resp.content:
            return None
        return resp.json()

    # -------------------------------------------------------------------
    # Feed & posts
    # -------------------------------------------------------------------
    async def list_feed(self, page: int = 0, page_size: int | None = None) -> dict:
        params: dict[str, int] = {"page": page}
        if page_size is not None:
            params["page_size"] = page_size
        return await self._request("GET", "/api/posts", params=params)

    async def get_post(self, post_id: str) -> dict:
        return await self._request("GET", f"/api/posts/{post_id}")

    async def create_post(
        self,
        filename: str,
        content: bytes,
        content_type: str,
        caption: str | None = None,
    ) -> dict:
        data = {"caption": caption} if caption is not None else {}
        return await self._request(
            "POST", "/api/posts",
            files={"file": (filename, content, content_type)},
            data=data,
        )

    async def delete_post(self, post_id: str) -> None:
        await self._request("DELETE", f"/api/posts/{post_id}")

    async def like_post(self, post_id: str) -> dict:
        return await self._request("POST", f"/api/posts/{post_id}/like")

    async def unlike_post(self, post_id: str) -> dict:
        return await self._request("DELETE", f"/api/posts/{post_id}/like")

    # -------------------------------------------------------------------
    # Comments
    # -------------------------------------------------------------------
    async def list_comments(self, post_id: str) -> list[dict]:
        body = await self._request("GET", f"/api/posts/{post_id}/comments")
        return body["comments"]

    async def add_comment(self, post_id: str, content: str) -> dict:
        return await self._request(
            "POST", f"/api/posts/{post_id}/comments", json={"content": content},
        )

    async def delete_comment(self, comment_id: str) -> None:
        await self._request("DELETE", f"/api/comments/{comment_id}")

    async def comment_changes(self, post_id: str) -> AsyncIterator[dict]:
        """Yield one dict per comment change on *post_id* until the stream ends."""
        path = f"/api/posts/{post_id}/comments/events"
        try:
            async with self._http.stream("GET", path, timeout=None) as resp:
                if resp.status_code >= 400:
                    await resp.aread()
                    raise _error_from_response(resp)
                event = None
                async for line in resp.aiter_lines():
                    if line.startswith("event:"):
                        event = line[len("event:"):].strip()
                    elif line.startswith("data:") and event == "change":
                        yield json.loads(line[len("data:"):].strip())
                    elif not line:
                        event = None
        except httpx.TransportError as exc:
            raise TransientError(f"Change stream interrupted: {exc}") from exc

    # -------------------------------------------------------------------
    # Profiles & leaderboard
    # -------------------------------------------------------------------
    async def register_profile(self, username: str) -> dict:
        return await self._request("POST", "/api/profiles", json={"username": username})

    async def get_my_profile(self) -> dict:
        return await self._request("GET", "/api/profiles/me")

    async def update_profile(self, *, username: str | None = None, bio: str | None = None) -> dict:
        body = {k: v for k, v in (("username", username), ("bio", bio)) if v is not None}
        return await self._request("PATCH", "/api/profiles/me", json=body)

    async def get_profile(self, profile_id: str) -> dict:
        return await self._request("GET", f"/api/profiles/{profile_id}")

    async def list_profile_posts(self, profile_id: str) -> list[dict]:
        body = await self._request("GET", f"/api/profiles/{profile_id}/posts")
        return body["posts"]

    async def get_leaderboard(self, limit: int | None = None) -> dict:
        params = {"limit": limit} if limit is not None else None
        return await self._request("GET", "/api/leaderboard", params=params)
