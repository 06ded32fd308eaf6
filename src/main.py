"""Chat server entry point."""

import logging

from aiohttp import web

from src.config import settings
from src.web.server import create_app

logging.basicConfig(
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    level=getattr(logging, settings.log_level),
)
logger = logging.getLogger(__name__)


def main() -> None:
    """Start the HTTP server."""
    if not settings.anthropic_api_key:
        logger.warning("ANTHROPIC_API_KEY is empty; chat requests will fail")

    logger.info(
        "Starting chat server on %s:%d with model %s (memory: %s)...",
        settings.http_host,
        settings.http_port,
        settings.claude_model,
        settings.memory_backend,
    )
    web.run_app(create_app(), host=settings.http_host, port=settings.http_port, print=None)


if __name__ == "__main__":
    main()
