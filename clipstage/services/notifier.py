"""User-visible notices sent to the broadcaster's chat."""

import logging
from typing import Protocol

from clipstage.exceptions import ClipstageError
from clipstage.services.twitch_client import HelixClient

logger = logging.getLogger(__name__)


class ChatNotifier(Protocol):
    async def send(self, message: str) -> None: ...


class LoggingNotifier:
    """Used when no chat channel is configured."""

    async def send(self, message: str) -> None:
        logger.info(f"Chat notice: {message}")


class HelixChatNotifier:
    """Posts notices through Helix as the authenticated user.

    Delivery failures are logged and never interrupt playback.
    """

    def __init__(self, helix: HelixClient, broadcaster_login: str) -> None:
        self._helix = helix
        self._broadcaster_login = broadcaster_login
        self._broadcaster_id: str | None = None
        self._sender_id: str | None = None

    async def send(self, message: str) -> None:
        try:
            if self._broadcaster_id is None:
                self._broadcaster_id = await self._helix.get_broadcaster_id(self._broadcaster_login)
            if self._sender_id is None:
                self._sender_id = await self._helix.get_authenticated_user_id()
            if not (self._broadcaster_id and self._sender_id):
                logger.warning(f"Chat notice not sent, channel {self._broadcaster_login} unknown: {message}")
                return
            await self._helix.send_chat_message(self._broadcaster_id, self._sender_id, message)
        except ClipstageError as e:
            logger.warning(f"Chat notice not sent to {self._broadcaster_login}: {e}")
