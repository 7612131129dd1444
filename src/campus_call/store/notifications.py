"""PostgreSQL notification store with LISTEN/NOTIFY push."""

from __future__ import annotations

import asyncio
import json
import logging
import time
from collections.abc import AsyncIterator
from typing import Any

import asyncpg

from campus_call.errors import NotificationNotFound
from campus_call.models import CallPayload, Notification, NotificationKind

logger = logging.getLogger(__name__)

NOTIFY_CHANNEL = "notifications"

_COLUMNS = "id, user_id, kind, read, title, content, created_at, call_data"


def _row_to_notification(row: asyncpg.Record) -> Notification:
    call_data = row["call_data"]
    payload = None
    if call_data is not None:
        payload = CallPayload.from_json(json.loads(call_data))
    return Notification(
        id=row["id"],
        recipient_user_id=row["user_id"],
        kind=NotificationKind(row["kind"]),
        read=row["read"],
        created_at=row["created_at"],
        title=row["title"],
        content=row["content"],
        payload=payload,
    )


def _affected_rows(status: str) -> int:
    # asyncpg returns the command tag, e.g. "UPDATE 3"
    try:
        return int(status.rsplit(" ", 1)[1])
    except (IndexError, ValueError):
        return 0


class PgNotificationStore:
    def __init__(self, pool: asyncpg.Pool) -> None:
        self._pool = pool

    async def insert(
        self,
        recipient_user_id: str,
        kind: NotificationKind,
        *,
        title: str,
        content: str,
        payload: CallPayload | None = None,
    ) -> Notification:
        call_data = json.dumps(payload.to_json()) if payload is not None else None
        row = await self._pool.fetchrow(
            f"INSERT INTO notifications (user_id, kind, title, content, created_at, call_data)"
            f" VALUES ($1, $2, $3, $4, $5, $6::jsonb) RETURNING {_COLUMNS}",
            recipient_user_id,
            str(kind),
            title,
            content,
            int(time.time() * 1000),
            call_data,
        )
        assert row is not None
        return _row_to_notification(row)

    async def list_notifications(
        self, user_id: str, limit: int = 50, only_unread: bool = False
    ) -> list[Notification]:
        query = f"SELECT {_COLUMNS} FROM notifications WHERE user_id = $1"
        if only_unread:
            query += " AND NOT read"
        query += " ORDER BY created_at DESC LIMIT $2"
        rows = await self._pool.fetch(query, user_id, limit)
        return [_row_to_notification(r) for r in rows]

    async def list_unread(self, user_id: str, limit: int = 50) -> list[Notification]:
        return await self.list_notifications(user_id, limit, only_unread=True)

    async def unread_count(self, user_id: str) -> int:
        count = await self._pool.fetchval(
            "SELECT count(*) FROM notifications WHERE user_id = $1 AND NOT read",
            user_id,
        )
        return int(count or 0)

    async def mark_read(self, notification_id: str, user_id: str) -> None:
        """Mark one of ``user_id``'s notifications read.

        Raises ``NotificationNotFound`` if it does not exist or belongs to
        someone else.
        """
        row = await self._pool.fetchrow(
            "UPDATE notifications SET read = true"
            " WHERE id = $1 AND user_id = $2 RETURNING id",
            notification_id,
            user_id,
        )
        if row is None:
            raise NotificationNotFound()

    async def mark_all_read(self, user_id: str) -> int:
        status = await self._pool.execute(
            "UPDATE notifications SET read = true WHERE user_id = $1 AND NOT read",
            user_id,
        )
        return _affected_rows(status)

    async def subscribe(
        self, user_id: str, limit: int = 10
    ) -> AsyncIterator[list[Notification]]:
        """Yield the unread list now and again after every change for ``user_id``.

        Bursts of changes that arrive while a snapshot is being read are
        coalesced into one refresh.
        """
        wakeups: asyncio.Queue[None] = asyncio.Queue()

        def _listener(_conn: Any, _pid: int, _channel: str, payload: str) -> None:
            if payload == user_id:
                wakeups.put_nowait(None)

        async with self._pool.acquire() as conn:
            await conn.add_listener(NOTIFY_CHANNEL, _listener)
            logger.debug("Subscribed to notifications for %s", user_id)
            try:
                wakeups.put_nowait(None)
                while True:
                    await wakeups.get()
                    while not wakeups.empty():
                        wakeups.get_nowait()
                    yield await self.list_unread(user_id, limit)
            finally:
                await conn.remove_listener(NOTIFY_CHANNEL, _listener)
