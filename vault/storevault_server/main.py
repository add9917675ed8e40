"""
StoreVault Server - Main entry point.

This module starts the StoreVault server with all components:
- Document store connection
- Artifact store (filesystem or S3)
- Backup engine with the cron scheduler
- HTTP control surface

Usage:
    python -m vault.storevault_server.main

Configuration is entirely via environment variables.
See config.py for all available settings.

Invariants:
    - The store is connected before the scheduler or the API start
    - An invalid persisted schedule disables scheduling but not the server
    - Shutdown stops the scheduler before closing the store

How to change safely:
    - Add new components with enable/disable flags
    - Test shutdown sequence thoroughly
"""

from __future__ import annotations

import asyncio
import logging
import signal
import sys

import json_log_formatter
from aiohttp import web

from .api import create_http_app
from .artifacts import create_artifact_store
from .config import ServerConfig
from .engine import BackupEngine
from .errors import ValidationError
from .schedule.scheduler import local_now, utc_now
from .store import DocumentStore, create_document_store

logger = logging.getLogger(__name__)


def setup_logging(config: ServerConfig) -> None:
    """Configure logging based on configuration.

    Args:
        config: Server configuration
    """
    level = getattr(logging, config.observability.log_level.upper(), logging.INFO)

    if config.observability.log_format == "json":
        formatter = json_log_formatter.VerboseJSONFormatter()
    else:
        formatter = logging.Formatter("%(asctime)s - %(name)s - %(levelname)s - %(message)s")

    handler = logging.StreamHandler()
    handler.setFormatter(formatter)

    root_logger = logging.getLogger()
    root_logger.setLevel(level)
    root_logger.handlers = [handler]

    # Reduce noise from libraries
    logging.getLogger("aiohttp.access").setLevel(logging.WARNING)
    logging.getLogger("botocore").setLevel(logging.WARNING)
    logging.getLogger("aiobotocore").setLevel(logging.WARNING)


class Server:
    """StoreVault server orchestrator.

    Manages the lifecycle of all server components.

    Attributes:
        config: Server configuration
        store: Document store
        engine: Backup engine

    Example:
        >>> server = Server()
        >>> await server.start()
        >>> # Server is running
        >>> await server.stop()
    """

    def __init__(self, config: ServerConfig | None = None) -> None:
        """Initialize the server.

        Args:
            config: Optional server configuration (loaded from env if not provided)
        """
        self.config = config or ServerConfig.from_env()
        self._running = False
        self._shutdown_event = asyncio.Event()

        # Components (initialized in start())
        self.store: DocumentStore | None = None
        self.engine: BackupEngine | None = None
        self._runner: web.AppRunner | None = None

    async def start(self) -> None:
        """Start the server and all components."""
        if self._running:
            logger.warning("Server already running")
            return

        logger.info("Starting StoreVault server")
        self.config.log_config()

        try:
            self.store = create_document_store(self.config.storage)
            await self.store.connect()

            artifacts = create_artifact_store(self.config.artifacts, self.config.s3)
            await artifacts.ensure_ready()

            clock = utc_now if self.config.schedule.timezone == "utc" else local_now
            self.engine = BackupEngine(
                self.store,
                artifacts,
                default_expression=self.config.schedule.default_expression,
                clock=clock,
            )

            try:
                await self.engine.init_schedule()
            except ValidationError as e:
                logger.error(f"Scheduled backups disabled: {e.message}")

            app = create_http_app(self.engine, self.config.http)
            self._runner = web.AppRunner(app)
            await self._runner.setup()
            site = web.TCPSite(self._runner, self.config.http.host, self.config.http.port)
            await site.start()
            logger.info(f"HTTP API listening on {self.config.http.host}:{self.config.http.port}")

            self._running = True
            logger.info("StoreVault server started successfully")

            # Wait for shutdown signal
            await self._shutdown_event.wait()

        except Exception as e:
            logger.error(f"Server startup failed: {e}", exc_info=True)
            self._running = True
            await self.stop()
            raise

    async def stop(self) -> None:
        """Stop the server gracefully."""
        if not self._running:
            return

        logger.info("Stopping StoreVault server")

        if self.engine:
            await self.engine.shutdown()

        if self._runner:
            await self._runner.cleanup()
            self._runner = None

        if self.store:
            await self.store.close()

        self._running = False
        logger.info("StoreVault server stopped")

    def request_shutdown(self) -> None:
        """Request graceful shutdown."""
        self._shutdown_event.set()


def main() -> None:
    """Main entry point."""
    try:
        config = ServerConfig.from_env()
    except ValueError as e:
        print(f"Configuration error: {e}", file=sys.stderr)
        sys.exit(1)

    setup_logging(config)

    loop = asyncio.new_event_loop()
    asyncio.set_event_loop(loop)

    server = Server(config)

    def handle_signal(sig: int) -> None:
        logger.info(f"Received signal {sig}, initiating shutdown")
        server.request_shutdown()

    for sig in (signal.SIGTERM, signal.SIGINT):
        loop.add_signal_handler(sig, handle_signal, sig)

    try:
        loop.run_until_complete(server.start())
    except KeyboardInterrupt:
        pass
    finally:
        loop.run_until_complete(server.stop())
        loop.close()


if __name__ == "__main__":
    main()
