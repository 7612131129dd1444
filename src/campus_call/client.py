"""Per-user call stack: session manager, invite dispatcher, incoming calls, feed."""

from __future__ import annotations

import asyncio
import logging
from typing import Any

import aiohttp
import asyncpg

from campus_call.calls.dispatcher import CallInvitationDispatcher
from campus_call.calls.notifier import CALL_RING_SECONDS, IncomingCallNotifier
from campus_call.calls.ports import (
    ChannelDirectory,
    ConversationStore,
    RoomConnector,
    TokenProvider,
)
from campus_call.calls.session import CallSessionManager, SessionCallback
from campus_call.feed import NotificationFeed
from campus_call.models import LocalUser
from campus_call.rtc.livekit_room import LiveKitConnector
from campus_call.rtc.tokens import HttpTokenProvider
from campus_call.store.channels import PgChannelDirectory
from campus_call.store.conversations import PgConversationStore
from campus_call.store.notifications import PgNotificationStore

logger = logging.getLogger(__name__)


class CallClient:
    def __init__(
        self,
        *,
        user: LocalUser,
        notifications: Any,
        channels: ChannelDirectory,
        conversations: ConversationStore,
        tokens: TokenProvider,
        connector: RoomConnector,
        server_url: str,
        on_call_started: SessionCallback | None = None,
        on_call_ended: SessionCallback | None = None,
        ring_timeout: int = CALL_RING_SECONDS,
        tick: float = 1.0,
    ) -> None:
        self.user = user
        self.dispatcher = CallInvitationDispatcher(notifications, channels, conversations)
        self.sessions = CallSessionManager(
            user=user,
            tokens=tokens,
            connector=connector,
            dispatcher=self.dispatcher,
            server_url=server_url,
            on_call_started=on_call_started,
            on_call_ended=on_call_ended,
        )
        self.incoming = IncomingCallNotifier(
            user_id=user.id,
            store=notifications,
            sessions=self.sessions,
            timeout=ring_timeout,
            tick=tick,
        )
        self.feed = NotificationFeed(notifications, user.id)
        self._listen_task: asyncio.Task[None] | None = None

    @classmethod
    def connect(
        cls,
        pool: asyncpg.Pool,
        http: aiohttp.ClientSession,
        user: LocalUser,
        *,
        token_url: str,
        server_url: str,
        **kwargs: Any,
    ) -> CallClient:
        """Build a client backed by PostgreSQL, the token service and LiveKit."""
        return cls(
            user=user,
            notifications=PgNotificationStore(pool),
            channels=PgChannelDirectory(pool),
            conversations=PgConversationStore(pool),
            tokens=HttpTokenProvider(http, token_url),
            connector=LiveKitConnector(),
            server_url=server_url,
            **kwargs,
        )

    def start(self) -> None:
        if self._listen_task is not None:
            return
        self._listen_task = asyncio.get_running_loop().create_task(self.incoming.run())
        self._listen_task.add_done_callback(self._listen_done)
        self.feed.start()
        logger.info("Call client started for %s", self.user.id)

    def _listen_done(self, task: asyncio.Task[None]) -> None:
        if not task.cancelled() and task.exception() is not None:
            logger.error(
                "Incoming call listener for %s stopped",
                self.user.id,
                exc_info=task.exception(),
            )

    async def close(self) -> None:
        task, self._listen_task = self._listen_task, None
        if task is not None and not task.done():
            task.cancel()
            try:
                await task
            except asyncio.CancelledError:
                pass
        self.incoming.close()
        await self.feed.stop()
        await self.sessions.close()
