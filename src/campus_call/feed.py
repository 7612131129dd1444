"""Polled feed of a user's general notifications."""

from __future__ import annotations

import asyncio
import dataclasses
import logging
from typing import Protocol

from campus_call.models import Notification

logger = logging.getLogger(__name__)

POLL_INTERVAL_SECONDS = 30.0


class FeedStore(Protocol):
    async def list_notifications(
        self, user_id: str, limit: int = 50, only_unread: bool = False
    ) -> list[Notification]: ...

    async def unread_count(self, user_id: str) -> int: ...

    async def mark_read(self, notification_id: str, user_id: str) -> None: ...

    async def mark_all_read(self, user_id: str) -> int: ...


class NotificationFeed:
    """Latest notifications plus the unread badge count, refreshed every 30s.

    Poll failures are logged and the previous state is kept.
    """

    def __init__(
        self,
        store: FeedStore,
        user_id: str,
        *,
        interval: float = POLL_INTERVAL_SECONDS,
        limit: int = 10,
    ) -> None:
        self._store = store
        self._user_id = user_id
        self._interval = interval
        self._limit = limit
        self._task: asyncio.Task[None] | None = None
        self.notifications: list[Notification] = []
        self.unread_count = 0

    async def refresh(self) -> None:
        try:
            notifications, count = await asyncio.gather(
                self._store.list_notifications(self._user_id, self._limit),
                self._store.unread_count(self._user_id),
            )
        except Exception:
            logger.exception("Error fetching notifications for %s", self._user_id)
            return
        self.notifications = notifications
        self.unread_count = count

    def start(self) -> None:
        if self._task is None:
            self._task = asyncio.get_running_loop().create_task(self._poll_loop())

    async def stop(self) -> None:
        task, self._task = self._task, None
        if task is not None:
            task.cancel()
            try:
                await task
            except asyncio.CancelledError:
                pass

    async def _poll_loop(self) -> None:
        while True:
            await self.refresh()
            await asyncio.sleep(self._interval)

    async def mark_read(self, notification_id: str) -> None:
        await self._store.mark_read(notification_id, self._user_id)
        was_unread = False
        updated = []
        for n in self.notifications:
            if n.id == notification_id and not n.read:
                was_unread = True
                n = dataclasses.replace(n, read=True)
            updated.append(n)
        self.notifications = updated
        if was_unread:
            self.unread_count = max(0, self.unread_count - 1)

    async def mark_all_read(self) -> None:
        await self._store.mark_all_read(self._user_id)
        self.notifications = [dataclasses.replace(n, read=True) for n in self.notifications]
        self.unread_count = 0
