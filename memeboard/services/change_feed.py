"""
memeboard.services.change_feed — Publish/Subscribe Change Notifications
=========================================================================

Services publish a :class:`Change` after a mutation commits; subscribers
register per table with an optional predicate (e.g. "comments on post X")
and are called once per matching change.  Handlers are expected to refetch
rather than patch local state, so receiving a change twice is harmless.

Callbacks may be plain functions or coroutine functions.  Coroutines are
scheduled on the event loop given at subscribe time, which lets a service
running on a worker thread wake up an async HTTP stream.
"""

from __future__ import annotations

import asyncio
import inspect
import itertools
import logging
import threading
from collections.abc import Callable
from dataclasses import dataclass, field
from typing import Any

logger = logging.getLogger(__name__)

__all__ = ["Change", "ChangeFeed", "Subscription"]


@dataclass(frozen=True, slots=True)
class Change:
    """One committed mutation."""

    table: str
    event: str  # INSERT | UPDATE | DELETE
    record: dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        return {"table": self.table, "event": self.event, "record": self.record}


@dataclass(eq=False)
class Subscription:
    id: int
    table: str
    callback: Callable[[Change], Any]
    predicate: Callable[[Change], bool] | None = None
    loop: asyncio.AbstractEventLoop | None = None

    def matches(self, change: Change) -> bool:
        if change.table != self.table:
            return False
        return self.predicate is None or bool(self.predicate(change))


class ChangeFeed:
    """In-process change broker shared by the API's services and streams."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._subscriptions: dict[int, Subscription] = {}
        self._ids = itertools.count(1)

    def subscribe(
        self,
        table: str,
        callback: Callable[[Change], Any],
        *,
        predicate: Callable[[Change], bool] | None = None,
        loop: asyncio.AbstractEventLoop | None = None,
    ) -> Subscription:
        sub = Subscription(
            id=next(self._ids),
            table=table,
            callback=callback,
            predicate=predicate,
            loop=loop,
        )
        with self._lock:
            self._subscriptions[sub.id] = sub
        logger.debug("Subscription %d on '%s' registered", sub.id, table)
        return sub

    def unsubscribe(self, sub: Subscription) -> bool:
        """Drop *sub*.  Returns False if it was already gone."""
        with self._lock:
            removed = self._subscriptions.pop(sub.id, None)
        return removed is not None

    @property
    def subscriber_count(self) -> int:
        with self._lock:
            return len(self._subscriptions)

    def publish(self, change: Change) -> int:
        """Deliver *change* to every matching subscriber.

        A failing subscriber is logged and skipped.  Returns the number of
        subscribers the change was handed to.
        """
        with self._lock:
            targets = list(self._subscriptions.values())

        delivered = 0
        for sub in targets:
            try:
                if not sub.matches(change):
                    continue
                self._dispatch(sub, change)
                delivered += 1
            except Exception:
                logger.exception(
                    "Change subscriber %d failed on %s %s", sub.id, change.table, change.event,
                )
        return delivered

    def publish_event(self, table: str, event: str, **record: Any) -> int:
        return self.publish(Change(table=table, event=event, record=record))

    @staticmethod
    def _dispatch(sub: Subscription, change: Change) -> None:
        if not inspect.iscoroutinefunction(sub.callback):
            sub.callback(change)
            return

        loop = sub.loop
        if loop is None:
            # Publisher is on the loop already; raises RuntimeError otherwise
            asyncio.get_running_loop().create_task(sub.callback(change))
            return
        if loop.is_closed():
            raise RuntimeError(f"Event loop for subscriber {sub.id} is closed")
        asyncio.run_coroutine_threadsafe(sub.callback(change), loop)
