"""Twitch Helix client for clip lookup, listing and chat notices.

Every request runs through the retry policy. A 401 triggers one token refresh;
if the refresh yields no new token the request fails with
``CredentialExpiredError``.
"""

import asyncio
import logging
import time
from datetime import datetime, timezone
from typing import Any, Protocol

import httpx

from clipstage.config import Settings
from clipstage.exceptions import (
    CredentialExpiredError,
    TransientUpstreamError,
    UpstreamRequestError,
)
from clipstage.schemas.clip import ClipDescriptor, ClipPage
from clipstage.services.resilience import BackoffPolicy, retry_async
from clipstage.services.state_store import StateStore

logger = logging.getLogger(__name__)

PAGE_SIZE = 100


class CatalogApi(Protocol):
    """Clip catalog capability consumed by the resolver."""

    async def get_clip(self, clip_id: str) -> ClipDescriptor | None: ...

    async def get_broadcaster_id(self, login: str) -> str | None: ...

    async def list_clips(
        self,
        broadcaster_id: str,
        started_at: datetime | None = None,
        ended_at: datetime | None = None,
        cursor: str | None = None,
    ) -> ClipPage: ...

    async def get_game_name(self, game_id: str) -> str | None: ...


def _format_rfc3339(value: datetime) -> str:
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc).strftime("%Y-%m-%dT%H:%M:%SZ")


def clip_from_helix(data: dict[str, Any]) -> ClipDescriptor:
    return ClipDescriptor(
        id=data["id"],
        url=data.get("url") or f"https://clips.twitch.tv/{data['id']}",
        title=data.get("title", ""),
        broadcaster_name=data.get("broadcaster_name", ""),
        broadcaster_id=data.get("broadcaster_id", ""),
        creator_name=data.get("creator_name", ""),
        game_id=data.get("game_id", ""),
        duration=float(data.get("duration") or 0.0),
        is_featured=bool(data.get("is_featured", False)),
        created_at=data.get("created_at") or None,
        thumbnail_url=data.get("thumbnail_url", ""),
    )


class TokenManager:
    """Holds the current user token and refreshes it on demand."""

    def __init__(
        self,
        settings: Settings,
        state_store: StateStore | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._settings = settings
        self._state_store = state_store
        self._transport = transport
        self._access_token = settings.twitch_access_token
        self._refresh_token = settings.twitch_refresh_token
        self._lock = asyncio.Lock()

    @property
    def access_token(self) -> str:
        return self._access_token

    async def load(self) -> None:
        """Prefer tokens persisted by an earlier refresh over the configured ones."""
        if self._state_store is None:
            return
        access_token, refresh_token = await self._state_store.get_tokens()
        if access_token:
            self._access_token = access_token
        if refresh_token:
            self._refresh_token = refresh_token

    async def refresh(self, stale_token: str) -> str:
        """Exchange the refresh token for a new access token.

        Raises:
            CredentialExpiredError: refresh impossible or no new token issued
        """
        async with self._lock:
            if self._access_token != stale_token:
                # Another request already refreshed while we waited
                return self._access_token
            if not self._refresh_token:
                raise CredentialExpiredError("Access token rejected and no refresh token configured")

            try:
                async with httpx.AsyncClient(
                    timeout=self._settings.http_timeout_seconds, transport=self._transport
                ) as client:
                    resp = await client.post(
                        self._settings.twitch_token_url,
                        data={
                            "grant_type": "refresh_token",
                            "refresh_token": self._refresh_token,
                            "client_id": self._settings.twitch_client_id,
                            "client_secret": self._settings.twitch_client_secret,
                        },
                    )
            except httpx.TransportError as e:
                raise CredentialExpiredError(f"Token refresh failed: {e}") from e

            if resp.status_code != 200:
                raise CredentialExpiredError(f"Token refresh rejected with HTTP {resp.status_code}")
            try:
                body = resp.json()
            except ValueError as e:
                raise CredentialExpiredError(f"Token refresh returned a malformed body: {e}") from e
            new_token = body.get("access_token") if isinstance(body, dict) else None
            if not new_token or new_token == stale_token:
                raise CredentialExpiredError("Token refresh did not yield a new access token")

            self._access_token = new_token
            self._refresh_token = body.get("refresh_token") or self._refresh_token
            logger.info("Twitch access token refreshed")
            if self._state_store is not None:
                await self._state_store.save_tokens(self._access_token, self._refresh_token)
            return new_token


class HelixClient:
    """Implements ``CatalogApi`` against the Twitch Helix API."""

    def __init__(
        self,
        settings: Settings,
        tokens: TokenManager,
        policy: BackoffPolicy | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._settings = settings
        self._tokens = tokens
        self._policy = policy or BackoffPolicy.from_settings(settings)
        self._transport = transport

    def _client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(
            base_url=self._settings.twitch_api_base_url,
            timeout=self._settings.http_timeout_seconds,
            transport=self._transport,
        )

    def _headers(self, token: str) -> dict[str, str]:
        return {
            "Client-Id": self._settings.twitch_client_id,
            "Authorization": f"Bearer {token}",
        }

    def _retry_after(self, resp: httpx.Response) -> float:
        retry_after = resp.headers.get("Retry-After")
        if retry_after:
            try:
                return max(0.0, float(retry_after))
            except ValueError:
                pass
        reset = resp.headers.get("Ratelimit-Reset")
        if reset:
            try:
                return max(0.0, float(reset) - time.time())
            except ValueError:
                pass
        return self._settings.rate_limit_default_wait_seconds

    async def _send(
        self,
        client: httpx.AsyncClient,
        method: str,
        path: str,
        token: str,
        params: dict[str, Any] | None,
        json: dict[str, Any] | None,
    ) -> httpx.Response:
        try:
            return await client.request(method, path, params=params, json=json, headers=self._headers(token))
        except httpx.TimeoutException as e:
            raise TransientUpstreamError(f"{method} {path} timed out") from e
        except httpx.TransportError as e:
            raise TransientUpstreamError(f"{method} {path} transport error: {e}") from e

    async def _request_once(
        self,
        method: str,
        path: str,
        params: dict[str, Any] | None,
        json: dict[str, Any] | None,
    ) -> dict[str, Any]:
        async with self._client() as client:
            token = self._tokens.access_token
            resp = await self._send(client, method, path, token, params, json)
            if resp.status_code == 401:
                logger.info(f"{method} {path} returned 401, refreshing access token")
                token = await self._tokens.refresh(token)
                resp = await self._send(client, method, path, token, params, json)
                if resp.status_code == 401:
                    raise CredentialExpiredError(f"{method} {path} rejected the refreshed token")

        if resp.status_code == 429:
            raise TransientUpstreamError(
                f"{method} {path} rate limited", retry_after=self._retry_after(resp)
            )
        if resp.status_code >= 500:
            raise TransientUpstreamError(f"{method} {path} returned HTTP {resp.status_code}")
        if resp.status_code >= 400:
            raise UpstreamRequestError(f"{method} {path} returned HTTP {resp.status_code}: {resp.text}")
        if not resp.content:
            return {}
        return resp.json()

    async def _request(
        self,
        method: str,
        path: str,
        *,
        op_name: str,
        params: dict[str, Any] | None = None,
        json: dict[str, Any] | None = None,
    ) -> dict[str, Any]:
        if params:
            params = {k: v for k, v in params.items() if v is not None}
        return await retry_async(
            lambda: self._request_once(method, path, params, json),
            op_name=op_name,
            policy=self._policy,
        )

    async def get_clip(self, clip_id: str) -> ClipDescriptor | None:
        body = await self._request("GET", "/clips", op_name=f"get_clip({clip_id})", params={"id": clip_id})
        data = body.get("data") or []
        return clip_from_helix(data[0]) if data else None

    async def get_broadcaster_id(self, login: str) -> str | None:
        body = await self._request(
            "GET", "/users", op_name=f"get_broadcaster_id({login})", params={"login": login}
        )
        data = body.get("data") or []
        return data[0]["id"] if data else None

    async def get_authenticated_user_id(self) -> str | None:
        body = await self._request("GET", "/users", op_name="get_authenticated_user_id")
        data = body.get("data") or []
        return data[0]["id"] if data else None

    async def list_clips(
        self,
        broadcaster_id: str,
        started_at: datetime | None = None,
        ended_at: datetime | None = None,
        cursor: str | None = None,
    ) -> ClipPage:
        params = {
            "broadcaster_id": broadcaster_id,
            "first": PAGE_SIZE,
            "started_at": _format_rfc3339(started_at) if started_at else None,
            "ended_at": _format_rfc3339(ended_at) if ended_at else None,
            "after": cursor,
        }
        body = await self._request(
            "GET", "/clips", op_name=f"list_clips({broadcaster_id})", params=params
        )
        clips = [clip_from_helix(item) for item in body.get("data") or []]
        next_cursor = (body.get("pagination") or {}).get("cursor") or None
        return ClipPage(clips=clips, cursor=next_cursor)

    async def get_game_name(self, game_id: str) -> str | None:
        if not game_id:
            return None
        body = await self._request("GET", "/games", op_name=f"get_game_name({game_id})", params={"id": game_id})
        data = body.get("data") or []
        return data[0].get("name") if data else None

    async def send_chat_message(self, broadcaster_id: str, sender_id: str, message: str) -> None:
        await self._request(
            "POST",
            "/chat/messages",
            op_name=f"send_chat_message({broadcaster_id})",
            json={"broadcaster_id": broadcaster_id, "sender_id": sender_id, "message": message},
        )
