"""
QuoteGuard main entry point.
Starts the resilient quote client, background maintenance and the HTTP API.
"""

import asyncio
import sys

import uvicorn
from loguru import logger

from quoteguard.api.server import create_app
from quoteguard.app import QuoteApplication
from quoteguard.settings import global_settings


async def main() -> None:
    """Run until interrupted."""
    logger.remove()
    logger.add(sys.stderr, level=global_settings.log_level)

    logger.info("Starting QuoteGuard...")
    application = QuoteApplication(global_settings)

    try:
        await application.start()

        app = create_app(application.client, application.health_registry)
        config = uvicorn.Config(
            app,
            host=global_settings.http_host,
            port=global_settings.http_port,
            log_level=global_settings.log_level.lower(),
        )
        server = uvicorn.Server(config)

        logger.info(
            f"QuoteGuard is serving on "
            f"http://{global_settings.http_host}:{global_settings.http_port}"
        )
        await server.serve()

    except KeyboardInterrupt:
        logger.info("Received interrupt signal, shutting down...")
    except Exception as e:
        logger.error(f"Error in main loop: {e}")
        raise
    finally:
        await application.stop()
        logger.info("QuoteGuard stopped")


if __name__ == "__main__":
    asyncio.run(main())
