"""Call session lifecycle: idle → connecting → active → idle.

The manager owns the only local call session. Each join attempt is tagged
with a generation number; results that come back for an older generation
(after a newer join or an explicit end) are discarded, and a room connected
for such an attempt is released immediately.
"""

from __future__ import annotations

import asyncio
import dataclasses
import functools
import logging
from collections.abc import Callable
from enum import StrEnum

from campus_call.calls.dispatcher import CallInvitationDispatcher
from campus_call.calls.ports import RoomConnector, RoomHandle, TokenProvider
from campus_call.calls.rooms import direct_room_id, group_room_id, join_link
from campus_call.errors import (
    InvalidRecipient,
    InvalidRoom,
    NotAuthenticated,
    SdkConnectError,
    TokenUnavailable,
)
from campus_call.models import CallType, LocalUser
from campus_call.rtc.tokens import TokenRequest

logger = logging.getLogger(__name__)

SessionCallback = Callable[["CallSession"], None]


class CallState(StrEnum):
    IDLE = "idle"
    CONNECTING = "connecting"
    ACTIVE = "active"


@dataclasses.dataclass
class CallSession:
    room_id: str
    variant: CallType
    participant_id: str
    participant_name: str
    generation: int
    state: CallState = CallState.CONNECTING
    room: RoomHandle | None = None

    @property
    def is_active(self) -> bool:
        return self.state == CallState.ACTIVE

    @property
    def link(self) -> str:
        return join_link(self.room_id, self.variant)


class CallSessionManager:
    """Mediates between call intents, the token service and the room SDK.

    ``on_call_started`` fires once a room is joined (the caller should show the
    call view at ``session.link``); ``on_call_ended`` fires when an active
    session ends, whether locally or by an SDK disconnect.
    """

    def __init__(
        self,
        *,
        user: LocalUser | None,
        tokens: TokenProvider,
        connector: RoomConnector,
        dispatcher: CallInvitationDispatcher,
        server_url: str,
        on_call_started: SessionCallback | None = None,
        on_call_ended: SessionCallback | None = None,
    ) -> None:
        self.user = user
        self._tokens = tokens
        self._connector = connector
        self._dispatcher = dispatcher
        self._server_url = server_url
        self._on_call_started = on_call_started
        self._on_call_ended = on_call_ended
        self._session: CallSession | None = None
        self._generation = 0
        self._teardown_lock = asyncio.Lock()

    @property
    def session(self) -> CallSession | None:
        return self._session

    @property
    def state(self) -> CallState:
        return self._session.state if self._session is not None else CallState.IDLE

    @property
    def is_in_call(self) -> bool:
        return self._session is not None and self._session.is_active

    @property
    def current_call_id(self) -> str | None:
        if self._session is not None and self._session.is_active:
            return self._session.room_id
        return None

    def _require_user(self) -> LocalUser:
        if self.user is None:
            raise NotAuthenticated()
        return self.user

    def _is_current(self, session: CallSession) -> bool:
        return self._session is session and session.generation == self._generation

    async def init_call(
        self, recipient_id: str, recipient_name: str, variant: CallType
    ) -> CallSession | None:
        """Invite ``recipient_id`` to a 1:1 call and join its room.

        The invitation is persisted before the session starts connecting; if
        it cannot be persisted, ``DispatchFailed`` propagates and no session
        is started.
        """
        user = self._require_user()
        if not recipient_id or not recipient_id.strip():
            raise InvalidRecipient()

        room_id = direct_room_id(user.id, recipient_id)
        await self._dispatcher.send_direct_invite(recipient_id, room_id, variant, user.name)
        await self._dispatcher.post_direct_call_link(user, recipient_id, room_id, variant)
        logger.info("Calling %s (%s) in room %s", recipient_name, recipient_id, room_id)
        return await self.join_call(room_id, variant)

    async def start_group_call(
        self, channel_id: str, subchannel_id: str, variant: CallType
    ) -> CallSession | None:
        """Start a subchannel call, notify the channel members and join it."""
        user = self._require_user()
        room_id = group_room_id(channel_id, subchannel_id)
        await self._dispatcher.send_group_invite(
            subchannel_id, room_id, variant, user.name, user.id
        )
        await self._dispatcher.post_group_call_link(user, subchannel_id, room_id, variant)
        return await self.join_call(room_id, variant)

    async def join_call(self, room_id: str, variant: CallType) -> CallSession | None:
        """Join ``room_id``, replacing any current session.

        Returns the active session, or ``None`` if a later ``join_call`` or
        ``end_current_call`` superseded this attempt while it was in flight.
        """
        user = self._require_user()
        if not room_id:
            raise InvalidRoom()

        self._generation += 1
        generation = self._generation
        ended = await self._teardown()
        if ended is not None:
            self._emit(self._on_call_ended, ended)
        if generation != self._generation:
            logger.debug("Join of %s superseded during teardown", room_id)
            return None

        session = CallSession(
            room_id=room_id,
            variant=variant,
            participant_id=user.id,
            participant_name=user.name,
            generation=generation,
        )
        self._session = session
        request = TokenRequest(
            room_id=room_id,
            user_id=user.id,
            user_name=user.name,
            audio=True,
            video=variant == CallType.VIDEO,
        )

        try:
            token = await self._tokens.get_token(request)
            if not token:
                raise TokenUnavailable("Token service returned no token")
        except Exception as exc:
            if not self._is_current(session):
                logger.debug("Discarding token failure for superseded join of %s", room_id)
                return None
            self._rollback(session)
            logger.warning("No token for room %s: %s", room_id, exc)
            if isinstance(exc, TokenUnavailable):
                raise
            raise TokenUnavailable() from exc

        if not self._is_current(session):
            logger.debug("Discarding token for superseded join of %s", room_id)
            return None

        try:
            room = await self._connector.connect(
                self._server_url,
                token,
                audio=request.audio,
                video=request.video,
                on_disconnected=functools.partial(self._handle_disconnected, generation),
            )
        except Exception as exc:
            if not self._is_current(session):
                logger.debug("Discarding connect failure for superseded join of %s", room_id)
                return None
            self._rollback(session)
            logger.warning("Could not connect to room %s: %s", room_id, exc)
            raise SdkConnectError() from exc

        if not self._is_current(session):
            logger.debug("Releasing room %s joined by a superseded attempt", room_id)
            async with self._teardown_lock:
                await self._release(room)
            return None

        session.room = room
        session.state = CallState.ACTIVE
        logger.info("Call active in room %s (%s)", room_id, variant)
        self._emit(self._on_call_started, session)
        return session

    async def end_current_call(self) -> None:
        """End the current session; a no-op when idle.

        Also cancels an attempt that is still connecting, including one that
        is still waiting for the previous room to be released.
        """
        self._generation += 1
        if self._session is None:
            return
        ended = await self._teardown()
        if ended is not None:
            logger.info("Ended call in room %s", ended.room_id)
            self._emit(self._on_call_ended, ended)

    async def close(self) -> None:
        await self.end_current_call()

    def _rollback(self, session: CallSession) -> None:
        if self._session is session:
            self._session = None
        session.state = CallState.IDLE

    async def _teardown(self) -> CallSession | None:
        """Clear the session and release its room.

        Returns the session if it had been active. The room reference is
        dropped in the same step as the state so no disconnect event or
        later call can reach it.
        """
        async with self._teardown_lock:
            session = self._session
            if session is None:
                return None
            was_active = session.is_active
            self._session = None
            room, session.room = session.room, None
            session.state = CallState.IDLE
            if room is not None:
                await self._release(room)
            return session if was_active else None

    async def _release(self, room: RoomHandle) -> None:
        try:
            await room.disconnect()
        except Exception:
            logger.exception("Room disconnect failed")

    def _handle_disconnected(self, generation: int) -> None:
        session = self._session
        if session is None or session.generation != generation or not session.is_active:
            return
        self._session = None
        session.room = None
        session.state = CallState.IDLE
        logger.info("Room %s disconnected", session.room_id)
        self._emit(self._on_call_ended, session)

    @staticmethod
    def _emit(callback: SessionCallback | None, session: CallSession) -> None:
        if callback is not None:
            callback(session)
