"""Main entry point - runs the settlement API."""

import logging

import uvicorn

from txtchain.api.app import create_app
from txtchain.config import get_settings

logger = logging.getLogger(__name__)


def configure_logging(debug: bool) -> None:
    """Configure root logging."""
    logging.basicConfig(
        level=logging.DEBUG if debug else logging.INFO,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )
    # Request logs include RPC URLs with API keys
    logging.getLogger("httpx").setLevel(logging.WARNING)


def main():
    """Main entry point."""
    settings = get_settings()
    configure_logging(settings.debug)

    logger.info("Starting TextToChain settlement API...")
    logger.info(f"Environment: {settings.environment}")
    logger.info(f"Home chain: {settings.home_chain}")
    if settings.dry_run:
        logger.warning("DRY_RUN enabled - chain and aggregator calls are simulated")

    config = uvicorn.Config(
        create_app(),
        host=settings.api_host,
        port=settings.api_port,
        log_level="debug" if settings.debug else "info",
    )
    server = uvicorn.Server(config)
    logger.info(f"Starting API server on {settings.api_host}:{settings.api_port}")
    server.run()


if __name__ == "__main__":
    main()
