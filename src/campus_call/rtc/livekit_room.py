"""Communication SDK adapter over the LiveKit realtime client."""

from __future__ import annotations

import logging
from collections.abc import Callable

from livekit import rtc

logger = logging.getLogger(__name__)


class LiveKitRoom:
    """Handle for one connected room; ``disconnect`` releases it."""

    def __init__(self, room: rtc.Room, *, audio: bool, video: bool) -> None:
        self._room = room
        self.audio = audio
        self.video = video
        self._closed = False

    @property
    def name(self) -> str:
        return self._room.name

    async def disconnect(self) -> None:
        if self._closed:
            return
        self._closed = True
        await self._room.disconnect()
        logger.info("Left room %s", self._room.name)


class LiveKitConnector:
    """Joins LiveKit rooms and reports remote disconnects."""

    def __init__(self, *, auto_subscribe: bool = True) -> None:
        self._auto_subscribe = auto_subscribe

    async def connect(
        self,
        url: str,
        token: str,
        *,
        audio: bool,
        video: bool,
        on_disconnected: Callable[[], None],
    ) -> LiveKitRoom:
        room = rtc.Room()
        room.on("disconnected", lambda *_args: on_disconnected())
        try:
            await room.connect(
                url, token, options=rtc.RoomOptions(auto_subscribe=self._auto_subscribe)
            )
        except Exception:
            # Release whatever the partial connect acquired before reporting
            await room.disconnect()
            raise
        logger.info("Joined room %s (audio=%s video=%s)", room.name, audio, video)
        return LiveKitRoom(room, audio=audio, video=video)
