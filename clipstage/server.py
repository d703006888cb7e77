"""Console entry point: bind the embed listener and serve the app."""

import asyncio
import logging
import sys
from collections.abc import Callable
from typing import Any

import uvicorn

from clipstage.config import get_settings
from clipstage.exceptions import HostingError
from clipstage.logging_config import configure_logging
from clipstage.main import app
from clipstage.services.container import ServiceContainer

logger = logging.getLogger(__name__)


async def serve_embed(services: ServiceContainer, server_factory: Callable[[], Any]) -> None:
    """Serve on the embed listener until shutdown, rebinding after listener faults.

    ``server_factory`` returns a fresh server exposing ``serve(sockets=...)``.
    After a rebind the player source is pointed at the new page URL when a
    clip is on screen.

    Raises:
        HostingError: no port could be bound, or faults exceeded ``max_listener_restarts``
    """
    settings = services.settings
    host = services.host
    sock = host.bind()
    restarts = 0
    while True:
        logger.info(f"{settings.app_name} {settings.app_version} serving on {host.page_url}")
        try:
            await server_factory().serve(sockets=[sock])
            return
        except OSError as e:
            restarts += 1
            if restarts > settings.max_listener_restarts:
                raise HostingError(f"Embed listener failed {restarts} times, last error: {e}") from e
            logger.error(f"Embed listener on port {host.port} failed: {e}, rebinding")
            sock = host.rebind()
        if host.current_clip is not None and not await services.adapter.set_url(host.page_url):
            logger.error(f"Player source could not be moved to {host.page_url}")


async def serve() -> None:
    settings = get_settings()
    services: ServiceContainer = app.state.services
    # Services outlive each uvicorn server across listener restarts
    config = uvicorn.Config(app, log_level=settings.log_level.lower(), log_config=None, lifespan="off")
    services.host.bind()
    await services.startup()
    try:
        await serve_embed(services, lambda: uvicorn.Server(config))
    finally:
        await services.shutdown()
        services.host.close()


def main() -> None:
    configure_logging(get_settings())
    try:
        asyncio.run(serve())
    except HostingError as e:
        logger.critical(f"Cannot run the embed server: {e}")
        sys.exit(1)
    except KeyboardInterrupt:
        pass


if __name__ == "__main__":
    main()
