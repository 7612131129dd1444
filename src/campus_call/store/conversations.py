"""PostgreSQL conversation and message store."""

from __future__ import annotations

import time

import asyncpg

MESSAGE_TYPES = ("text", "image", "video", "audio")


def direct_key(user_id: str, other_user_id: str) -> str:
    first, second = sorted((user_id, other_user_id))
    return f"{first}:{second}"


class PgConversationStore:
    def __init__(self, pool: asyncpg.Pool) -> None:
        self._pool = pool

    async def create_or_get_direct_conversation(
        self, user_id: str, other_user_id: str
    ) -> str:
        """Return the direct conversation between two users, creating it once."""
        key = direct_key(user_id, other_user_id)
        async with self._pool.acquire() as conn, conn.transaction():
            conversation_id = await conn.fetchval(
                "INSERT INTO conversations (type, members, direct_key)"
                " VALUES ('direct', $1, $2)"
                " ON CONFLICT (direct_key) DO NOTHING RETURNING id",
                sorted((user_id, other_user_id)),
                key,
            )
            if conversation_id is None:
                conversation_id = await conn.fetchval(
                    "SELECT id FROM conversations WHERE direct_key = $1", key
                )
        return conversation_id

    async def conversation_for_subchannel(self, subchannel_id: str) -> str | None:
        return await self._pool.fetchval(
            "SELECT conversation_id FROM subchannels WHERE id = $1", subchannel_id
        )

    async def send_message(
        self, conversation_id: str, sender_id: str, content: str, type: str = "text"
    ) -> str:
        if type not in MESSAGE_TYPES:
            raise ValueError(f"unsupported message type {type!r}")
        now = int(time.time() * 1000)
        async with self._pool.acquire() as conn, conn.transaction():
            message_id = await conn.fetchval(
                "INSERT INTO messages (conversation_id, sender_id, content, type, created_at)"
                " VALUES ($1, $2, $3, $4, $5) RETURNING id",
                conversation_id,
                sender_id,
                content,
                type,
                now,
            )
            await conn.execute(
                "UPDATE conversations SET last_message_at = $2 WHERE id = $1",
                conversation_id,
                now,
            )
        return message_id
