"""PostgreSQL channel directory."""

from __future__ import annotations

import asyncpg

from campus_call.calls.ports import Channel, Subchannel


class PgChannelDirectory:
    def __init__(self, pool: asyncpg.Pool) -> None:
        self._pool = pool

    async def get_subchannel(self, subchannel_id: str) -> Subchannel | None:
        row = await self._pool.fetchrow(
            "SELECT id, channel_id, name, conversation_id FROM subchannels WHERE id = $1",
            subchannel_id,
        )
        if row is None:
            return None
        return Subchannel(
            id=row["id"],
            channel_id=row["channel_id"],
            name=row["name"],
            conversation_id=row["conversation_id"],
        )

    async def get_channel(self, channel_id: str) -> Channel | None:
        row = await self._pool.fetchrow(
            "SELECT id, name, owner_id, members FROM channels WHERE id = $1",
            channel_id,
        )
        if row is None:
            return None
        return Channel(
            id=row["id"],
            name=row["name"],
            owner_id=row["owner_id"],
            members=tuple(row["members"]),
        )
