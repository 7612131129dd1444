"""Room identifiers and join links."""

from __future__ import annotations

import time

from campus_call.models import CallType


def direct_room_id(user_id: str, other_user_id: str) -> str:
    """Room id for a 1:1 call, identical from either participant's side.

    Repeated calls between the same pair reuse the room.
    """
    first, second = sorted((user_id, other_user_id))
    return f"call_{first}_{second}"


def group_room_id(
    channel_id: str, subchannel_id: str, created_at_ms: int | None = None
) -> str:
    """Room id for a subchannel call; unique per call start."""
    if created_at_ms is None:
        created_at_ms = int(time.time() * 1000)
    return f"channel_{channel_id}_{subchannel_id}_{created_at_ms}"


def join_link(room_id: str, call_type: CallType) -> str:
    return f"/call/{room_id}?type={call_type}"


def call_link_message(caller_name: str, room_id: str, call_type: CallType) -> str:
    """Chat message body announcing a call with a clickable join link."""
    return (
        f"{caller_name} started a {call_type} call. "
        f"[Join Call]({join_link(room_id, call_type)})"
    )
