"""Call invitation fan-out.

Turns a call start into persisted notifications the callee(s) can discover,
plus a best-effort chat message carrying the join link.
"""

from __future__ import annotations

import logging

from campus_call.calls.ports import ChannelDirectory, ConversationStore, NotificationStore
from campus_call.calls.rooms import call_link_message
from campus_call.errors import ChannelNotFound, DispatchFailed, SubchannelNotFound
from campus_call.models import CallPayload, CallType, LocalUser, NotificationKind

logger = logging.getLogger(__name__)


class CallInvitationDispatcher:
    def __init__(
        self,
        notifications: NotificationStore,
        channels: ChannelDirectory,
        conversations: ConversationStore,
    ) -> None:
        self._notifications = notifications
        self._channels = channels
        self._conversations = conversations

    async def send_direct_invite(
        self,
        recipient_user_id: str,
        room_id: str,
        call_type: CallType,
        caller_name: str,
    ) -> None:
        """Insert the single ``direct_call`` notification for the recipient."""
        payload = CallPayload(call_type=call_type, room_id=room_id, caller_name=caller_name)
        try:
            await self._notifications.insert(
                recipient_user_id,
                NotificationKind.DIRECT_CALL,
                title="Incoming Call",
                content=f"{caller_name} is calling you",
                payload=payload,
            )
        except Exception as exc:
            logger.error("Call invite to %s failed: %s", recipient_user_id, exc)
            raise DispatchFailed() from exc
        logger.info("Sent %s call invite to %s for room %s", call_type, recipient_user_id, room_id)

    async def send_group_invite(
        self,
        subchannel_id: str,
        room_id: str,
        call_type: CallType,
        caller_name: str,
        caller_id: str,
    ) -> int:
        """Notify every member of the subchannel's channel except the caller.

        A failed insert for one member is logged and skipped; the return value
        is the number of notifications actually created.
        """
        subchannel = await self._channels.get_subchannel(subchannel_id)
        if subchannel is None:
            raise SubchannelNotFound()
        channel = await self._channels.get_channel(subchannel.channel_id)
        if channel is None:
            raise ChannelNotFound()

        recipients = [m for m in dict.fromkeys(channel.members) if m != caller_id]
        payload = CallPayload(
            call_type=call_type,
            room_id=room_id,
            caller_name=caller_name,
            channel_name=subchannel.name,
            is_group_call=True,
        )
        content = f"{caller_name} started a {call_type} call in {subchannel.name}"

        sent = 0
        for recipient_id in recipients:
            try:
                await self._notifications.insert(
                    recipient_id,
                    NotificationKind.GROUP_CALL,
                    title="Group Call Started",
                    content=content,
                    payload=payload,
                )
            except Exception:
                logger.exception("Group call invite to %s failed", recipient_id)
                continue
            sent += 1

        logger.info(
            "Group call %s in %s: notified %d of %d member(s)",
            room_id,
            subchannel.name,
            sent,
            len(recipients),
        )
        return sent

    async def post_direct_call_link(
        self,
        caller: LocalUser,
        recipient_id: str,
        room_id: str,
        call_type: CallType,
    ) -> bool:
        """Append a join-link message to the caller/recipient conversation."""
        try:
            conversation_id = await self._conversations.create_or_get_direct_conversation(
                caller.id, recipient_id
            )
            await self._conversations.send_message(
                conversation_id,
                caller.id,
                call_link_message(caller.name, room_id, call_type),
            )
        except Exception:
            logger.exception("Could not post call link for room %s", room_id)
            return False
        return True

    async def post_group_call_link(
        self,
        caller: LocalUser,
        subchannel_id: str,
        room_id: str,
        call_type: CallType,
    ) -> bool:
        """Append a join-link message to the subchannel's conversation."""
        try:
            conversation_id = await self._conversations.conversation_for_subchannel(
                subchannel_id
            )
            if conversation_id is None:
                logger.warning("Subchannel %s has no conversation", subchannel_id)
                return False
            await self._conversations.send_message(
                conversation_id,
                caller.id,
                call_link_message(caller.name, room_id, call_type),
            )
        except Exception:
            logger.exception("Could not post call link for room %s", room_id)
            return False
        return True
