"""
MeuCuidador real-time companion

Runs the notification socket client inside a small FastAPI process:
1. Connects to the backend's /ws endpoint on behalf of the configured viewer
2. Re-authenticates and reconnects after transient failures
3. Logs pushed notifications and the cache keys they invalidate
4. Exposes /realtime/status, /realtime/reconnect and /realtime/disconnect

Architecture:
┌──────────────────────────────────────────────────────────┐
│                       server.py                          │
├──────────────────────────────────────────────────────────┤
│  /realtime/*  ←── status and explicit connect/disconnect │
│  /health                                                 │
│                                                          │
│  ┌──────────────────┐      ┌──────────────────┐          │
│  │ RealtimeBinding  │ ───► │ ConnectionManager│ ──► /ws  │
│  │ (gate: route +   │      │ (handshake,      │          │
│  │  user)           │      │  backoff)        │          │
│  └──────────────────┘      └────────┬─────────┘          │
│                                     ▼                    │
│  ┌──────────────────┐      ┌──────────────────┐          │
│  │ NotificationFeed │ ◄─── │ EventBus         │          │
│  └──────────────────┘      └──────────────────┘          │
└──────────────────────────────────────────────────────────┘
"""

import logging
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI

from meucuidador.realtime import (
    Config,
    ConnectionManager,
    NotificationFeed,
    RealtimeBinding,
    get_connection_manager,
    get_event_bus,
    reset_connection_manager,
    setup_logging,
)
from meucuidador.routes import create_realtime_router


logger = logging.getLogger("meucuidador")


# =============================================================================
# Global Configuration
# =============================================================================

config = Config.from_env()


# =============================================================================
# Global Instances
# =============================================================================

binding: Optional[RealtimeBinding] = None
feed: Optional[NotificationFeed] = None


def log_invalidation(key: str) -> None:
    logger.info(f"Cache invalidated: {key}")


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan - startup and shutdown."""
    global binding, feed

    setup_logging(
        level=getattr(logging, config.log.level, logging.INFO),
        use_colors=config.log.use_colors,
    )

    manager = get_connection_manager()

    feed = NotificationFeed(get_event_bus(), log_invalidation)
    feed.start()

    user = {"id": config.viewer.user_id} if config.viewer.user_id is not None else None
    binding = RealtimeBinding(manager, route=config.viewer.route, user=user)
    binding.start()

    logger.info(f"Realtime client ready, endpoint {manager.url}")

    yield

    # Shutdown
    logger.info("Shutting down...")
    binding.close()
    feed.close()
    await manager.aclose()
    reset_connection_manager()
    logger.info("Goodbye!")


app = FastAPI(
    title="MeuCuidador Realtime Client",
    description="Notification socket client for the MeuCuidador backend",
    lifespan=lifespan
)

app.include_router(create_realtime_router())


# =============================================================================
# Health Endpoints
# =============================================================================

@app.get("/health")
async def health():
    """Health check endpoint."""
    manager: ConnectionManager = get_connection_manager()
    return {
        "status": "healthy",
        "realtime_connected": manager.is_connected(),
        "last_notification": feed.last_notification if feed else None,
    }


# =============================================================================
# Main Entry Point
# =============================================================================

def main() -> None:
    import uvicorn

    uvicorn.run(
        app,
        host=config.server.host,
        port=config.server.port,
        log_level="warning",  # our logger handles it
        access_log=False,
    )


if __name__ == "__main__":
    main()
