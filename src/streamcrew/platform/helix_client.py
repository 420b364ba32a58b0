"""
Twitch Helix API client used for moderation actions and stream status.

Only the three endpoints the crew needs are wrapped:

- ``GET /users?login=`` resolves a username to its user id.
- ``POST /moderation/bans`` with a ``duration`` issues a timeout.
- ``GET /streams?user_id=`` reports whether the channel is live.

Requests are authorized with the moderator persona's user token.
"""

from __future__ import annotations

from typing import Any, Dict

import aiohttp

from streamcrew.configuration.twitch_settings import TwitchSettings
from streamcrew.errors import TimeoutApiError, UserResolutionFailed
from streamcrew.util.logger import get_logger

logger = get_logger("helix_client")


class HelixModerationClient:
    """Helix implementation of the moderation API.

    Args:
        settings: Twitch ids, base URL and request timeout.
        token: OAuth user token of the moderating account.
        session: Optional externally managed ``aiohttp.ClientSession``.
    """

    def __init__(
        self,
        settings: TwitchSettings,
        token: str,
        session: aiohttp.ClientSession | None = None,
    ) -> None:
        self._settings = settings
        self._token = token
        self._session = session
        self._owns_session = session is None
        self._user_ids: Dict[str, str] = {}

    def _headers(self) -> Dict[str, str]:
        return {
            "Authorization": f"Bearer {self._token}",
            "Client-Id": self._settings.client_id,
        }

    def _get_session(self) -> aiohttp.ClientSession:
        if self._session is None or self._session.closed:
            timeout = aiohttp.ClientTimeout(total=self._settings.request_timeout_seconds)
            self._session = aiohttp.ClientSession(timeout=timeout)
            self._owns_session = True
        return self._session

    async def close(self) -> None:
        if self._owns_session and self._session is not None and not self._session.closed:
            await self._session.close()
        self._session = None

    async def resolve_user_id(self, username: str) -> str:
        login = username.strip().lstrip("@").lower()
        cached = self._user_ids.get(login)
        if cached:
            return cached

        url = f"{self._settings.helix_url}/users"
        try:
            async with self._get_session().get(url, params={"login": login}, headers=self._headers()) as resp:
                if resp.status != 200:
                    body = await resp.text()
                    raise UserResolutionFailed(username, f"HTTP {resp.status}: {body[:200]}")
                payload: Dict[str, Any] = await resp.json()
        except aiohttp.ClientError as exc:
            raise UserResolutionFailed(username, str(exc)) from exc

        data = payload.get("data") or []
        if not data or not data[0].get("id"):
            raise UserResolutionFailed(username)

        user_id = str(data[0]["id"])
        self._user_ids[login] = user_id
        logger.debug("[HELIX] Resolved %s -> %s", login, user_id)
        return user_id

    async def timeout_user(self, channel_id: str, user_id: str, duration_seconds: int, reason: str) -> None:
        url = f"{self._settings.helix_url}/moderation/bans"
        params = {"broadcaster_id": channel_id, "moderator_id": self._settings.moderator_id}
        body = {"data": {"user_id": user_id, "duration": int(duration_seconds), "reason": reason}}
        try:
            async with self._get_session().post(url, params=params, json=body, headers=self._headers()) as resp:
                if resp.status != 200:
                    detail = await resp.text()
                    raise TimeoutApiError(f"Helix rejected timeout of {user_id} (HTTP {resp.status}): {detail[:200]}")
        except aiohttp.ClientError as exc:
            raise TimeoutApiError(f"Helix timeout request for {user_id} failed: {exc}") from exc

        logger.debug("[HELIX] Timeout of %s for %ds accepted", user_id, duration_seconds)

    async def is_stream_online(self) -> bool:
        """Return True when the channel has a live stream.

        Raises:
            aiohttp.ClientError: On transport failures; callers keep their last known state.
        """
        url = f"{self._settings.helix_url}/streams"
        async with self._get_session().get(
            url,
            params={"user_id": self._settings.channel_id},
            headers=self._headers(),
        ) as resp:
            resp.raise_for_status()
            payload: Dict[str, Any] = await resp.json()

        streams = payload.get("data") or []
        return any(stream.get("type") == "live" for stream in streams)
