"""Room access tokens.

``TokenIssuer`` signs LiveKit-compatible access tokens (HS256 JWT with a
``video`` grant) on the service side. ``HttpTokenProvider`` is the client
side: it asks the service's ``POST /token`` endpoint for one.
"""

from __future__ import annotations

import dataclasses
import logging
import time

import aiohttp
import jwt

from campus_call.errors import TokenUnavailable

logger = logging.getLogger(__name__)

DEFAULT_TOKEN_TTL_SECONDS = 3600


@dataclasses.dataclass(frozen=True)
class TokenRequest:
    room_id: str
    user_id: str
    user_name: str
    audio: bool
    video: bool


def build_video_grant(request: TokenRequest) -> dict[str, object]:
    """Room grant: join + subscribe always, publish sources per call type."""
    sources: list[str] = []
    if request.audio:
        sources.append("microphone")
    if request.video:
        sources.append("camera")
    return {
        "roomJoin": True,
        "room": request.room_id,
        "canPublish": bool(sources),
        "canPublishData": True,
        "canPublishSources": sources,
        "canSubscribe": True,
    }


class TokenIssuer:
    """Signs room tokens with the deployment's API key and secret."""

    def __init__(
        self,
        api_key: str | None,
        api_secret: str | None,
        *,
        ttl: int = DEFAULT_TOKEN_TTL_SECONDS,
    ) -> None:
        self._api_key = api_key or ""
        self._api_secret = api_secret or ""
        self._ttl = ttl

    def is_configured(self) -> bool:
        return bool(self._api_key and self._api_secret)

    def issue(self, request: TokenRequest, *, now: int | None = None) -> str:
        if not self.is_configured():
            raise TokenUnavailable("Room credentials are not configured")
        if now is None:
            now = int(time.time())
        claims = {
            "iss": self._api_key,
            "sub": request.user_id,
            "name": request.user_name,
            "nbf": now,
            "exp": now + self._ttl,
            "video": build_video_grant(request),
        }
        token = jwt.encode(claims, self._api_secret, algorithm="HS256")
        logger.info(
            "Issued token for %s in room %s (video=%s)",
            request.user_id,
            request.room_id,
            request.video,
        )
        return token

    async def get_token(self, request: TokenRequest) -> str:
        return self.issue(request)


class HttpTokenProvider:
    """Fetches tokens from the service's ``POST /token`` endpoint."""

    def __init__(self, session: aiohttp.ClientSession, url: str) -> None:
        self._session = session
        self._url = url

    async def get_token(self, request: TokenRequest) -> str:
        body = {
            "roomId": request.room_id,
            "userId": request.user_id,
            "userName": request.user_name,
            "audio": request.audio,
            "video": request.video,
        }
        try:
            async with self._session.post(self._url, json=body) as resp:
                if resp.status != 200:
                    raise TokenUnavailable(f"Token service returned {resp.status}")
                data = await resp.json()
        except aiohttp.ClientError as exc:
            raise TokenUnavailable("Token service unreachable") from exc

        token = data.get("token") if isinstance(data, dict) else None
        if not token:
            raise TokenUnavailable("Token service returned no token")
        return str(token)
