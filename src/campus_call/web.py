"""HTTP service: token issuing, notifications and call invites."""

from __future__ import annotations

import json
from typing import Any

from aiohttp import web

from campus_call.calls.dispatcher import CallInvitationDispatcher
from campus_call.errors import (
    CallError,
    ChannelNotFound,
    DispatchFailed,
    InvalidRecipient,
    InvalidRoom,
    NotAuthenticated,
    NotificationNotFound,
    SdkConnectError,
    SubchannelNotFound,
    TokenUnavailable,
)
from campus_call.models import CallType
from campus_call.rtc.tokens import TokenIssuer, TokenRequest
from campus_call.store.notifications import PgNotificationStore

_notifications_key = web.AppKey("notifications", PgNotificationStore)
_dispatcher_key = web.AppKey("dispatcher", CallInvitationDispatcher)
_tokens_key = web.AppKey("tokens", TokenIssuer)

MAX_LIST_LIMIT = 100

_ERROR_STATUS: dict[type[CallError], int] = {
    NotAuthenticated: 401,
    InvalidRecipient: 400,
    InvalidRoom: 400,
    SubchannelNotFound: 404,
    ChannelNotFound: 404,
    NotificationNotFound: 404,
    DispatchFailed: 502,
    SdkConnectError: 502,
    TokenUnavailable: 503,
}


def _error(code: str, status: int, detail: str | None = None) -> web.Response:
    body: dict[str, Any] = {"error": code}
    if detail:
        body["detail"] = detail
    return web.json_response(body, status=status)


@web.middleware
async def _call_error_middleware(request: web.Request, handler: Any) -> web.StreamResponse:
    try:
        return await handler(request)
    except CallError as exc:
        return _error(exc.code, _ERROR_STATUS.get(type(exc), 500), exc.detail)


async def _json_body(request: web.Request) -> dict[str, Any]:
    try:
        data = await request.json()
    except json.JSONDecodeError:
        raise web.HTTPBadRequest(
            text=json.dumps({"error": "invalid_json"}), content_type="application/json"
        ) from None
    if not isinstance(data, dict):
        raise web.HTTPBadRequest(
            text=json.dumps({"error": "invalid_json"}), content_type="application/json"
        )
    return data


def _current_user(request: web.Request) -> str:
    user_id = request.headers.get("X-User-Id", "").strip()
    if not user_id:
        raise NotAuthenticated()
    return user_id


def _call_type(value: Any) -> CallType | None:
    try:
        return CallType(str(value))
    except ValueError:
        return None


async def _token_handler(request: web.Request) -> web.Response:
    issuer = request.app[_tokens_key]
    data = await _json_body(request)

    room_id = data.get("roomId")
    user_id = data.get("userId")
    if not room_id or not user_id:
        return _error("missing_room_or_user", 400)

    token_request = TokenRequest(
        room_id=str(room_id),
        user_id=str(user_id),
        user_name=str(data.get("userName") or user_id),
        audio=bool(data.get("audio", True)),
        video=bool(data.get("video", False)),
    )
    return web.json_response({"token": issuer.issue(token_request)})


async def _list_handler(request: web.Request) -> web.Response:
    store = request.app[_notifications_key]
    user_id = _current_user(request)
    try:
        limit = int(request.query.get("limit", "50"))
    except ValueError:
        return _error("invalid_limit", 400)
    if limit < 1:
        return _error("invalid_limit", 400)
    limit = min(limit, MAX_LIST_LIMIT)
    only_unread = request.query.get("onlyUnread", "").lower() in ("1", "true")
    notifications = await store.list_notifications(user_id, limit, only_unread)
    return web.json_response([n.to_json() for n in notifications])


async def _unread_count_handler(request: web.Request) -> web.Response:
    store = request.app[_notifications_key]
    count = await store.unread_count(_current_user(request))
    return web.json_response({"count": count})


async def _mark_read_handler(request: web.Request) -> web.Response:
    store = request.app[_notifications_key]
    user_id = _current_user(request)
    await store.mark_read(request.match_info["notification_id"], user_id)
    return web.json_response({"success": True})


async def _mark_all_read_handler(request: web.Request) -> web.Response:
    store = request.app[_notifications_key]
    updated = await store.mark_all_read(_current_user(request))
    return web.json_response({"success": True, "updated": updated})


async def _invite_handler(request: web.Request) -> web.Response:
    dispatcher = request.app[_dispatcher_key]
    data = await _json_body(request)

    recipient_id = str(data.get("recipientId") or "").strip()
    room_id = str(data.get("roomId") or "")
    call_type = _call_type(data.get("callType"))
    if not recipient_id:
        raise InvalidRecipient()
    if not room_id:
        raise InvalidRoom()
    if call_type is None:
        return _error("invalid_call_type", 400)

    await dispatcher.send_direct_invite(
        recipient_id, room_id, call_type, str(data.get("callerName") or "")
    )
    return web.json_response({"success": True}, status=201)


async def _group_invite_handler(request: web.Request) -> web.Response:
    dispatcher = request.app[_dispatcher_key]
    data = await _json_body(request)

    subchannel_id = str(data.get("subchannelId") or "")
    room_id = str(data.get("roomId") or "")
    caller_id = str(data.get("callerId") or "")
    call_type = _call_type(data.get("callType"))
    if not subchannel_id or not caller_id:
        return _error("missing_subchannel_or_caller", 400)
    if not room_id:
        raise InvalidRoom()
    if call_type is None:
        return _error("invalid_call_type", 400)

    sent = await dispatcher.send_group_invite(
        subchannel_id, room_id, call_type, str(data.get("callerName") or ""), caller_id
    )
    return web.json_response({"notificationsSent": sent}, status=201)


def create_app(
    notifications: PgNotificationStore,
    dispatcher: CallInvitationDispatcher,
    tokens: TokenIssuer,
) -> web.Application:
    app = web.Application(middlewares=[_call_error_middleware])
    app[_notifications_key] = notifications
    app[_dispatcher_key] = dispatcher
    app[_tokens_key] = tokens
    app.router.add_post("/token", _token_handler)
    app.router.add_get("/notifications", _list_handler)
    app.router.add_get("/notifications/unread-count", _unread_count_handler)
    app.router.add_post("/notifications/read-all", _mark_all_read_handler)
    app.router.add_post("/notifications/{notification_id}/read", _mark_read_handler)
    app.router.add_post("/calls/invite", _invite_handler)
    app.router.add_post("/calls/group-invite", _group_invite_handler)
    return app


async def start_webapp(app: web.Application, host: str, port: int) -> web.AppRunner:
    runner = web.AppRunner(app)
    await runner.setup()
    site = web.TCPSite(runner, host, port)
    await site.start()
    return runner


async def stop_webapp(runner: web.AppRunner) -> None:
    await runner.cleanup()
