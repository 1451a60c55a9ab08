"""
Main entry point for the station sync service
Wires the sync engine together and serves the local Station API
"""

import logging
import sys
from contextlib import asynccontextmanager
from typing import Any, Dict, Optional

import uvicorn
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from station_sync import __version__
from station_sync.api import routes
from station_sync.api.dependencies import init_api_dependencies
from station_sync.api.error_handling import register_error_handlers
from station_sync.config.config_loader import load_config, cache_path
from station_sync.core.api_client import RemoteApiClient
from station_sync.core.local_store import LocalStore
from station_sync.core.logging_manager import configure_logging
from station_sync.core.status import StatusBroadcaster
from station_sync.core.sync_coordinator import SyncCoordinator

logger = logging.getLogger(__name__)


def build_coordinator(config: Dict[str, Any]) -> SyncCoordinator:
    """Create store, HTTP client and coordinator from a loaded config"""
    api_config = config.get('api', {})
    store_config = config.get('store', {})

    store = LocalStore(
        path=cache_path(config),
        autosave_interval=float(store_config.get('autosave_interval_seconds', 5.0))
    )
    api_client = RemoteApiClient(
        base_url=api_config.get('base_url'),
        timeout_seconds=float(api_config.get('timeout_seconds', 30.0))
    )
    return SyncCoordinator(
        store=store,
        api_client=api_client,
        broadcaster=StatusBroadcaster(),
        settings=config.get('sync', {})
    )


@asynccontextmanager
async def lifespan(app: FastAPI):
    """FastAPI lifespan context manager for startup and shutdown"""
    station: StationApp = app.state.station

    logger.info(f"Starting station sync v{__version__}...")
    await station.startup()

    yield

    logger.info("Shutting down station sync...")
    await station.shutdown()
    logger.info("Station sync shutdown complete")


class StationApp:
    """Station sync application: engine plus local API"""

    def __init__(self, config: Dict[str, Any], coordinator: Optional[SyncCoordinator] = None):
        self.config = config
        self.coordinator = coordinator or build_coordinator(config)

        self.app = FastAPI(
            title="Laundry Station Sync",
            description="Offline-first RFID item cache for laundry stations",
            version=__version__,
            lifespan=lifespan
        )
        self.app.state.station = self

        self.app.add_middleware(
            CORSMiddleware,
            allow_origins=config.get('server', {}).get('cors_origins', ["*"]),
            allow_credentials=True,
            allow_methods=["*"],
            allow_headers=["*"]
        )

        init_api_dependencies(self.coordinator)
        register_error_handlers(self.app)
        self.app.include_router(routes.router, prefix="/api", tags=["Station"])

    async def startup(self):
        token = self.config.get('api', {}).get('token')
        stats = await self.coordinator.initialize(token)
        logger.info(f"Station sync started ({stats.items_count} items cached)")

    async def shutdown(self):
        await self.coordinator.shutdown()


def create_app(config: Optional[Dict[str, Any]] = None,
               coordinator: Optional[SyncCoordinator] = None) -> FastAPI:
    """Create and configure the FastAPI application"""
    if config is None:
        config = load_config()

    return StationApp(config, coordinator).app


def main(config: Optional[Dict[str, Any]] = None):
    """Main entry point"""
    try:
        if config is None:
            config = load_config()
        configure_logging(config.get('logging', {}))

        app = create_app(config)

        server_config = config.get('server', {})
        host = server_config.get('host', '127.0.0.1')
        port = int(server_config.get('port', 8765))

        logger.info(f"Starting Station API on {host}:{port}")
        uvicorn.run(app, host=host, port=port, log_level="info", log_config=None)

    except KeyboardInterrupt:
        logger.info("Received shutdown signal")
    except Exception as e:
        logger.error(f"Failed to start station sync: {e}")
        sys.exit(1)


if __name__ == "__main__":
    main()
