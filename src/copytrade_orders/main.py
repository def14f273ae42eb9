"""Order-history service entry point."""

import asyncio
import logging
import os
import signal
import sys
from typing import Optional

from .config.settings import load_config
from .server import OrderProxyServer
from .utils.logging import setup_logging


logger = logging.getLogger(__name__)


class OrderProxyService:
    """Runs the HTTP server until a shutdown signal arrives."""

    def __init__(self, config_file: Optional[str] = None):
        self.config = load_config(config_file)
        self.server: Optional[OrderProxyServer] = None
        self._shutdown_event = asyncio.Event()

        setup_logging(self.config.logging)
        logger.info("Order proxy service initialized")

    async def start(self):
        """Start serving and block until shutdown."""
        logger.info("Starting order proxy service")

        self.server = OrderProxyServer(self.config)
        self._setup_signal_handlers()
        await self.server.start()

        await self._shutdown_event.wait()

        logger.info("Shutting down order proxy service")
        await self.server.stop()
        logger.info("Order proxy service stopped")

    def _setup_signal_handlers(self):
        """Setup signal handlers for graceful shutdown."""
        def signal_handler(signum, frame):
            logger.info(f"Received signal {signum}, initiating shutdown")
            self._shutdown_event.set()

        signal.signal(signal.SIGINT, signal_handler)
        signal.signal(signal.SIGTERM, signal_handler)


async def main():
    """Main entry point."""
    config_file = os.getenv("CONFIG_FILE") or None
    service = OrderProxyService(config_file)

    try:
        await service.start()
    except Exception as e:
        logger.error(f"Service failed: {e}", exc_info=True)
        sys.exit(1)


def run():
    asyncio.run(main())


if __name__ == "__main__":
    run()
