"""Durable key/value state backed by the SQLite state database."""

import asyncio
import logging

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from clipstage.models.app_state import AppState
from clipstage.models.database import session_scope

logger = logging.getLogger(__name__)

LAST_CLIP_URL_KEY = "last_clip_url"
TWITCH_ACCESS_TOKEN_KEY = "twitch_access_token"
TWITCH_REFRESH_TOKEN_KEY = "twitch_refresh_token"


class StateStore:
    """Process-wide key/value store.

    Guarded by its own lock so reads and writes never wait on the playback
    lock.
    """

    def __init__(self, session_maker: async_sessionmaker[AsyncSession]) -> None:
        self._session_maker = session_maker
        self._lock = asyncio.Lock()

    async def get(self, key: str) -> str | None:
        async with self._lock:
            async with session_scope(self._session_maker) as session:
                result = await session.execute(select(AppState.value).where(AppState.key == key))
                return result.scalar_one_or_none()

    async def set(self, key: str, value: str) -> None:
        async with self._lock:
            async with session_scope(self._session_maker) as session:
                row = await session.get(AppState, key)
                if row is None:
                    session.add(AppState(key=key, value=value))
                else:
                    row.value = value
        logger.debug(f"Stored state key {key}")

    async def get_last_clip_url(self) -> str | None:
        return await self.get(LAST_CLIP_URL_KEY)

    async def set_last_clip_url(self, url: str) -> None:
        await self.set(LAST_CLIP_URL_KEY, url)

    async def get_tokens(self) -> tuple[str | None, str | None]:
        return await self.get(TWITCH_ACCESS_TOKEN_KEY), await self.get(TWITCH_REFRESH_TOKEN_KEY)

    async def save_tokens(self, access_token: str, refresh_token: str | None) -> None:
        await self.set(TWITCH_ACCESS_TOKEN_KEY, access_token)
        if refresh_token:
            await self.set(TWITCH_REFRESH_TOKEN_KEY, refresh_token)
