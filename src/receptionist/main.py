"""
AI Receptionist webhook server - main entry point.

Loads ``RECEPTIONIST_*`` settings, builds a ``Receptionist`` and serves its
provider webhooks under uvicorn. The receptionist is initialized on startup
and disposed on shutdown by the app's lifespan.
"""

import argparse
import asyncio
import dataclasses
import logging

import uvicorn

from receptionist.config import Settings, get_settings
from receptionist.receptionist import Receptionist
from receptionist.server import create_webhook_app

logger = logging.getLogger(__name__)


async def serve(settings: Settings, debug: bool = False) -> None:
    """Run the webhook server until interrupted.

    Args:
        settings: Loaded settings.
        debug: Enable debug logging for the receptionist package.
    """
    config = settings.to_config()
    if debug:
        config = dataclasses.replace(config, debug=True)
    receptionist = Receptionist(config)
    app = create_webhook_app(receptionist)

    server = uvicorn.Server(
        uvicorn.Config(
            app,
            host=settings.host,
            port=settings.port,
            log_level=settings.log_level.lower(),
        )
    )
    logger.info(
        "Starting webhook server for %r on %s:%d (webhooks at %s)",
        config.agent.name,
        settings.host,
        settings.port,
        config.webhook_base_url,
    )
    try:
        await server.serve()
    except Exception as e:
        logger.error("Server error: %s", e, exc_info=True)
        raise
    logger.info("Server shutdown complete")


def run() -> None:
    """Entry point for the receptionist-server console script."""
    settings = get_settings()
    parser = argparse.ArgumentParser(description="AI Receptionist webhook server")
    parser.add_argument("--debug", action="store_true", help="Enable debug logging")
    parser.add_argument("--host", default=settings.host, help=f"Bind host (default: {settings.host})")
    parser.add_argument(
        "--port", type=int, default=settings.port, help=f"Bind port (default: {settings.port})"
    )
    args = parser.parse_args()

    settings.host = args.host
    settings.port = args.port

    logging.basicConfig(
        level="DEBUG" if args.debug else settings.log_level,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )

    try:
        asyncio.run(serve(settings, debug=args.debug))
    except KeyboardInterrupt:
        logger.info("Interrupted")


if __name__ == "__main__":
    run()
