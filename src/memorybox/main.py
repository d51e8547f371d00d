"""
Main entry point for Memorybox.

This module provides the main function and CLI interface
for running the Memorybox server.
"""

import logging

import uvicorn

from .api import create_app
from .config import get_settings

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s"
)

logger = logging.getLogger(__name__)


def main():
    """Main application entry point."""
    try:
        settings = get_settings()
        logging.getLogger().setLevel(settings.log_level.upper())

        app = create_app(settings)

        logger.info("Starting Memorybox server...")
        uvicorn.run(
            app,
            host=settings.server_host,
            port=settings.server_port,
            log_level=settings.log_level.lower(),
        )

    except Exception as e:
        logger.error(f"Failed to start server: {e}")
        raise


if __name__ == "__main__":
    main()
