"""Notification and call value types shared by the stores and the call core."""

from __future__ import annotations

import dataclasses
from enum import StrEnum


class CallType(StrEnum):
    AUDIO = "audio"
    VIDEO = "video"


class NotificationKind(StrEnum):
    """Notification kinds stored per user.

    Only the two call kinds are interpreted by the call core; the rest are
    listed by the general notification feed.
    """

    MESSAGE = "message"
    MENTION = "mention"
    GROUP_INVITE = "group_invite"
    ANNOUNCEMENT = "announcement"
    GROUP_JOIN_REQUEST = "group_join_request"
    GROUP_JOIN_APPROVED = "group_join_approved"
    DIRECT_CALL = "direct_call"
    GROUP_CALL = "group_call"


CALL_KINDS = frozenset({NotificationKind.DIRECT_CALL, NotificationKind.GROUP_CALL})


@dataclasses.dataclass(frozen=True)
class CallPayload:
    call_type: CallType
    room_id: str
    caller_name: str
    channel_name: str | None = None
    is_group_call: bool = False

    def to_json(self) -> dict[str, object]:
        data: dict[str, object] = {
            "callType": str(self.call_type),
            "roomId": self.room_id,
            "callerName": self.caller_name,
        }
        if self.channel_name is not None:
            data["channelName"] = self.channel_name
        if self.is_group_call:
            data["isGroupCall"] = True
        return data

    @classmethod
    def from_json(cls, data: dict[str, object]) -> CallPayload:
        channel_name = data.get("channelName")
        return cls(
            call_type=CallType(str(data["callType"])),
            room_id=str(data["roomId"]),
            caller_name=str(data["callerName"]),
            channel_name=str(channel_name) if channel_name is not None else None,
            is_group_call=bool(data.get("isGroupCall", False)),
        )


@dataclasses.dataclass(frozen=True)
class Notification:
    id: str
    recipient_user_id: str
    kind: NotificationKind
    read: bool
    created_at: int  # epoch milliseconds
    title: str
    content: str
    payload: CallPayload | None = None

    @property
    def is_call(self) -> bool:
        return self.kind in CALL_KINDS and self.payload is not None

    def to_json(self) -> dict[str, object]:
        return {
            "id": self.id,
            "userId": self.recipient_user_id,
            "kind": str(self.kind),
            "read": self.read,
            "createdAt": self.created_at,
            "title": self.title,
            "content": self.content,
            "callData": self.payload.to_json() if self.payload is not None else None,
        }


@dataclasses.dataclass(frozen=True)
class LocalUser:
    """Identity of the user driving a client-side call stack."""

    id: str
    name: str
