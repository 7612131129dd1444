"""Collaborator interfaces consumed by the call core.

The PostgreSQL stores in ``campus_call.store`` and the adapters in
``campus_call.rtc`` implement these; tests substitute in-memory fakes.
"""

from __future__ import annotations

import dataclasses
from collections.abc import AsyncIterator, Callable
from typing import Protocol

from campus_call.models import CallPayload, Notification, NotificationKind
from campus_call.rtc.tokens import TokenRequest


@dataclasses.dataclass(frozen=True)
class Subchannel:
    id: str
    channel_id: str
    name: str
    conversation_id: str | None = None


@dataclasses.dataclass(frozen=True)
class Channel:
    id: str
    name: str
    owner_id: str
    members: tuple[str, ...] = ()


class NotificationStore(Protocol):
    async def insert(
        self,
        recipient_user_id: str,
        kind: NotificationKind,
        *,
        title: str,
        content: str,
        payload: CallPayload | None = None,
    ) -> Notification: ...

    async def list_unread(self, user_id: str, limit: int = 50) -> list[Notification]: ...

    async def mark_read(self, notification_id: str, user_id: str) -> None: ...

    async def mark_all_read(self, user_id: str) -> int: ...

    def subscribe(self, user_id: str) -> AsyncIterator[list[Notification]]: ...


class ChannelDirectory(Protocol):
    async def get_subchannel(self, subchannel_id: str) -> Subchannel | None: ...

    async def get_channel(self, channel_id: str) -> Channel | None: ...


class ConversationStore(Protocol):
    async def create_or_get_direct_conversation(
        self, user_id: str, other_user_id: str
    ) -> str: ...

    async def conversation_for_subchannel(self, subchannel_id: str) -> str | None: ...

    async def send_message(
        self, conversation_id: str, sender_id: str, content: str, type: str = "text"
    ) -> str: ...


class TokenProvider(Protocol):
    async def get_token(self, request: TokenRequest) -> str: ...


class RoomHandle(Protocol):
    async def disconnect(self) -> None: ...


class RoomConnector(Protocol):
    async def connect(
        self,
        url: str,
        token: str,
        *,
        audio: bool,
        video: bool,
        on_disconnected: Callable[[], None],
    ) -> RoomHandle: ...
