"""Listener binding and the clip currently offered to the embed page."""

import errno
import logging
import socket

from clipstage.config import Settings
from clipstage.exceptions import HostingError
from clipstage.schemas.clip import ClipDescriptor

logger = logging.getLogger(__name__)

_ADDRESS_IN_USE = {errno.EADDRINUSE, getattr(errno, "WSAEADDRINUSE", errno.EADDRINUSE)}


def bind_listener(host: str, preferred_port: int, attempts: int) -> socket.socket:
    """Bind the first free port in ``preferred_port .. preferred_port + attempts - 1``.

    Raises:
        HostingError: every port was taken, or a bind failed for another reason
    """
    for offset in range(max(1, attempts)):
        port = preferred_port + offset
        sock = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
        try:
            sock.bind((host, port))
        except OSError as e:
            sock.close()
            if e.errno in _ADDRESS_IN_USE:
                logger.warning(f"Port {port} is in use, trying {port + 1}")
                continue
            logger.error(f"Failed to bind {host}:{port}: {e}")
            raise HostingError(f"Failed to bind {host}:{port}: {e}") from e
        logger.info(f"Embed listener bound to {host}:{port}")
        return sock
    raise HostingError(
        f"No free port between {preferred_port} and {preferred_port + max(1, attempts) - 1}"
    )


class EmbedHost:
    """Owns the listening socket and the clip the page should render.

    ``current_clip`` is None while the page is blank.
    """

    def __init__(self, settings: Settings) -> None:
        self._settings = settings
        self._socket: socket.socket | None = None
        self._clip: ClipDescriptor | None = None
        self._game_name: str | None = None

    @property
    def current_clip(self) -> ClipDescriptor | None:
        return self._clip

    @property
    def game_name(self) -> str | None:
        return self._game_name

    @property
    def port(self) -> int:
        if self._socket is not None:
            return self._socket.getsockname()[1]
        return self._settings.preferred_port

    @property
    def page_url(self) -> str:
        return f"http://localhost:{self.port}/index.html"

    @property
    def listener(self) -> socket.socket | None:
        return self._socket

    def bind(self) -> socket.socket:
        if self._socket is None:
            self._socket = bind_listener(
                self._settings.host, self._settings.preferred_port, self._settings.max_port_attempts
            )
        return self._socket

    def rebind(self) -> socket.socket:
        """Drop the current listener and bind again, e.g. after a listener fault."""
        self.close()
        return self.bind()

    def close(self) -> None:
        if self._socket is not None:
            self._socket.close()
            self._socket = None

    def host_clip(self, clip: ClipDescriptor, game_name: str | None = None) -> None:
        self._clip = clip
        self._game_name = game_name
        logger.info(f"Hosting clip {clip.id} at {self.page_url}")

    def revert_to_blank(self) -> None:
        if self._clip is not None:
            logger.info(f"Embed page reverted to blank (was {self._clip.id})")
        self._clip = None
        self._game_name = None
