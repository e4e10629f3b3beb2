"""Main application entry point."""

import asyncio
import signal
import sys
from datetime import datetime, timezone
from typing import Optional

from aiohttp import web, web_runner

from .config.settings import AppSettings, get_settings
from .core import FieldSyncEngine, OfflineSyncRequested
from .storage import StorageFailure
from .utils.logging import setup_logging, get_logger


class FieldSyncApp:
    """Hosts a field sync engine behind a small status/sync HTTP API."""

    def __init__(self, settings: Optional[AppSettings] = None, engine: Optional[FieldSyncEngine] = None):
        self.settings = settings or get_settings()
        self.logger = get_logger("FieldSync")
        self.running = False
        self.engine = engine
        self.web_runner: Optional[web_runner.AppRunner] = None

    def create_web_app(self) -> web.Application:
        """Build the aiohttp application with all routes."""
        app = web.Application()
        app.router.add_get('/health', self._health_handler)
        app.router.add_get('/status', self._status_handler)
        app.router.add_post('/connect', self._connect_handler)
        app.router.add_post('/sync', self._sync_handler)
        return app

    async def startup(self):
        """Application startup."""
        self.logger.info(
            "Starting Field Sync",
            version=self.settings.version,
            environment=self.settings.environment
        )

        if self.engine is None:
            self.engine = FieldSyncEngine(self.settings)
        await self.engine.start()

        self.web_runner = web_runner.AppRunner(self.create_web_app())
        await self.web_runner.setup()
        site = web_runner.TCPSite(self.web_runner, self.settings.server.host, self.settings.server.port)
        await site.start()

        self.running = True
        self.logger.info(
            "Field Sync started",
            host=self.settings.server.host,
            port=self.settings.server.port,
            online=self.engine.get_status().is_online
        )

    async def shutdown(self):
        """Application shutdown."""
        self.logger.info("Shutting down Field Sync")
        self.running = False

        if self.web_runner:
            await self.web_runner.cleanup()
            self.web_runner = None

        if self.engine:
            await self.engine.close()

        self.logger.info("Field Sync stopped")

    async def run(self):
        """Run until a shutdown signal clears ``running``."""
        await self.startup()

        try:
            while self.running:
                await asyncio.sleep(1)
        finally:
            await self.shutdown()

    async def _health_handler(self, request):
        """Health check endpoint."""
        storage_ok = self.engine is not None and self.engine.db_manager.test_connection()
        healthy = self.running and storage_ok
        health_data = {
            "status": "healthy" if healthy else "unhealthy",
            "storage": "ok" if storage_ok else "error",
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "version": self.settings.version,
            "environment": self.settings.environment
        }

        return web.json_response(health_data, status=200 if healthy else 503)

    async def _status_handler(self, request):
        """Connectivity, pending work and the last sync pass."""
        history = self.engine.get_sync_history(limit=1)
        status_data = {
            **self.engine.get_status().to_dict(),
            "unsynced": await self.engine.get_unsynced_count(),
            "last_sync": history[0].model_dump(mode="json") if history else None,
            "timestamp": datetime.now(timezone.utc).isoformat()
        }

        return web.json_response(status_data)

    async def _connect_handler(self, request):
        """Explicit connectivity re-probe."""
        is_online = await self.engine.connect()
        return web.json_response(self.engine.get_status().to_dict(), status=200 if is_online else 503)

    async def _sync_handler(self, request):
        """Run a manual sync pass."""
        try:
            result = await self.engine.manual_sync()
        except OfflineSyncRequested as e:
            return web.json_response({"success": False, "error": str(e)}, status=503)
        except StorageFailure as e:
            return web.json_response({"success": False, "error": str(e)}, status=500)

        return web.json_response(result.to_dict())


def setup_signal_handlers(app: FieldSyncApp):
    """Set up signal handlers for graceful shutdown."""
    def signal_handler(signum, frame):
        app.logger.info("Received signal", signal=signum)
        app.running = False

    signal.signal(signal.SIGINT, signal_handler)
    signal.signal(signal.SIGTERM, signal_handler)


async def main():
    """Main entry point."""
    setup_logging()

    app = FieldSyncApp()
    setup_signal_handlers(app)

    await app.run()


def run():
    """Console script entry point."""
    try:
        asyncio.run(main())
    except KeyboardInterrupt:
        print("\nShutdown requested by user")
        sys.exit(0)
    except Exception as e:
        print(f"Application failed with error: {e}")
        sys.exit(1)


if __name__ == "__main__":
    run()
