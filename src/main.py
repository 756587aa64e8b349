"""Zoxaa API server entry point."""

import asyncio
import logging
import sys

from src.config import settings

logging.basicConfig(
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    level=getattr(logging, settings.log_level),
)
logger = logging.getLogger(__name__)


async def _serve() -> None:
    from src.api.server import ApiServer

    server = ApiServer()
    await server.start()
    try:
        await asyncio.Event().wait()
    finally:
        await server.stop()


def main() -> None:
    """Start the API server, refusing to run without an OpenAI key."""
    if not settings.openai_api_key:
        logger.error("OPENAI_API_KEY environment variable is not set; refusing to start")
        sys.exit(1)

    logger.info(
        "Starting Zoxaa on port %d with model %s (key %s)",
        settings.port,
        settings.chat_model,
        settings.masked_api_key(),
    )
    try:
        asyncio.run(_serve())
    except KeyboardInterrupt:
        logger.info("Shutting down")


if __name__ == "__main__":
    main()
