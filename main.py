import sys

import uvicorn
from dotenv import load_dotenv
from loguru import logger

from api.server import create_app
from core.config import Settings, load_settings
from core.errors import ConfigError


def configure_logging(settings: Settings):
    logger.remove()
    logger.add(sys.stdout, level=settings.log_level.upper(), serialize=settings.log_json)


def main():
    load_dotenv()

    try:
        settings = load_settings()
    except ConfigError as e:
        logger.error(f"failed to parse config: {e}")
        sys.exit(1)

    configure_logging(settings)
    app = create_app(settings)

    # uvicorn traps SIGINT/SIGTERM and drains connections for at most
    # shutdown_timeout seconds
    uvicorn.run(
        app,
        host="0.0.0.0",  # nosec
        port=settings.http_port,
        timeout_graceful_shutdown=settings.shutdown_timeout,
    )
    logger.info("Server stopped")


if __name__ == "__main__":
    main()
