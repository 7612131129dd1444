"""Incoming call presentation.

Shows at most one incoming call at a time and resolves every prompt within
``timeout`` seconds: accept, decline, dismiss, or an automatic decline when
the countdown runs out.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable, Iterable

from campus_call.calls.ports import NotificationStore
from campus_call.calls.session import CallSession, CallSessionManager
from campus_call.models import Notification, NotificationKind

logger = logging.getLogger(__name__)

CALL_RING_SECONDS = 30


def select_incoming_call(
    notifications: Iterable[Notification], dismissed: set[str]
) -> Notification | None:
    """Most recent unread call notification that was not dismissed."""
    candidates = [
        n
        for n in notifications
        if n.is_call and not n.read and n.id not in dismissed
    ]
    if not candidates:
        return None
    return max(candidates, key=lambda n: n.created_at)


def describe_call(notification: Notification) -> str:
    payload = notification.payload
    if payload is None:
        raise ValueError(f"notification {notification.id} carries no call data")
    if notification.kind == NotificationKind.DIRECT_CALL:
        return f"Incoming {payload.call_type} call from {payload.caller_name}"
    if notification.kind == NotificationKind.GROUP_CALL:
        return (
            f"{payload.caller_name} started a {payload.call_type} call"
            f" in {payload.channel_name or 'a channel'}"
        )
    raise ValueError(f"not a call notification: {notification.kind}")


class IncomingCallNotifier:
    def __init__(
        self,
        *,
        user_id: str,
        store: NotificationStore,
        sessions: CallSessionManager,
        timeout: int = CALL_RING_SECONDS,
        tick: float = 1.0,
        on_change: Callable[[IncomingCallNotifier], None] | None = None,
    ) -> None:
        self._user_id = user_id
        self._store = store
        self._sessions = sessions
        self._timeout = timeout
        self._tick = tick
        self._on_change = on_change
        self.current: Notification | None = None
        self.remaining_seconds = 0
        self.dismissed: set[str] = set()
        self._resolved: set[str] = set()
        self._countdown: asyncio.Task[None] | None = None

    def update(self, unread: Iterable[Notification]) -> None:
        """Apply a fresh snapshot of the user's unread notifications.

        The snapshot is authoritative: a displayed call that is now read,
        superseded or missing stops being displayed immediately.
        """
        candidate = select_incoming_call(unread, self.dismissed | self._resolved)
        if candidate is not None:
            if self.current is None or self.current.id != candidate.id:
                self._present(candidate)
        elif self.current is not None:
            logger.debug("Call %s no longer pending", self.current.id)
            self._clear()

    async def run(self) -> None:
        """Follow the store's push stream of unread notifications."""
        async for unread in self._store.subscribe(self._user_id):
            self.update(unread)

    async def accept(self) -> CallSession | None:
        notification = self.current
        if notification is None or notification.payload is None:
            return None
        payload = notification.payload
        await self._resolve(notification)
        logger.info("Accepted call %s", notification.id)
        return await self._sessions.join_call(payload.room_id, payload.call_type)

    async def decline(self) -> None:
        notification = self.current
        if notification is None:
            return
        await self._resolve(notification)
        logger.info("Declined call %s", notification.id)

    def dismiss(self) -> None:
        """Hide the current call without marking it read."""
        notification = self.current
        if notification is None:
            return
        self.dismissed.add(notification.id)
        self._clear()

    def close(self) -> None:
        self._cancel_countdown()
        self.current = None
        self.remaining_seconds = 0

    def _present(self, notification: Notification) -> None:
        self._cancel_countdown()
        self.current = notification
        self.remaining_seconds = self._timeout
        logger.info("%s (%s)", describe_call(notification), notification.id)
        self._countdown = asyncio.get_running_loop().create_task(
            self._run_countdown(notification)
        )
        self._changed()

    def _clear(self) -> None:
        self._cancel_countdown()
        self.current = None
        self.remaining_seconds = 0
        self._changed()

    def _cancel_countdown(self) -> None:
        task, self._countdown = self._countdown, None
        if task is not None and task is not asyncio.current_task():
            task.cancel()

    async def _run_countdown(self, notification: Notification) -> None:
        while self.remaining_seconds > 0:
            await asyncio.sleep(self._tick)
            if self.current is not notification:
                return
            self.remaining_seconds -= 1
            self._changed()
        logger.info("Call %s unanswered, declining", notification.id)
        await self._resolve(notification)

    async def _resolve(self, notification: Notification) -> None:
        """Stop presenting the call, then mark it read.

        The call leaves the prompt before the store is awaited, so a second
        accept or decline for it is a no-op. If the store rejects the update
        the call is dismissed locally instead.
        """
        self._resolved.add(notification.id)
        if self.current is notification:
            self._clear()
        try:
            await self._store.mark_read(notification.id, self._user_id)
        except Exception:
            logger.exception("Could not mark call %s read", notification.id)
            self.dismissed.add(notification.id)

    def _changed(self) -> None:
        if self._on_change is not None:
            self._on_change(self)
