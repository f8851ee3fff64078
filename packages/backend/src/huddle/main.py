"""FastAPI application factory.

Learn: App factory pattern — create_app() returns a configured FastAPI
instance. Lifespan owns the realtime service: it decides once, at startup,
whether a Redis broker is reachable (clustered) or not (single-instance),
and the rest of the process never checks again.
"""

from contextlib import asynccontextmanager
from typing import Optional

import structlog
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from huddle import __version__
from huddle.api import api_router
from huddle.config import settings
from huddle.realtime.handlers import EventHandlers
from huddle.realtime.pubsub import RedisBroker
from huddle.realtime.service import RealtimeService
from huddle.realtime.storage import DatabaseStorage

logger = structlog.get_logger()


async def connect_broker() -> Optional[RedisBroker]:
    """Return a live broker, or None for single-instance mode."""
    if not settings.redis_url:
        logger.info("huddle.single_instance", reason="HUDDLE_REDIS_URL not set")
        return None

    broker = RedisBroker.from_url(settings.redis_url)
    try:
        await broker.ping()
    except Exception as e:
        logger.warning("huddle.redis_unavailable", error=str(e))
        await broker.close()
        return None
    logger.info("huddle.redis_connected", url=settings.redis_url)
    return broker


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Startup and shutdown lifecycle."""
    logger.info(
        "huddle.starting",
        version=__version__,
        environment=settings.environment,
        port=settings.port,
    )

    from huddle.db.engine import async_session_factory, engine

    broker = await connect_broker()
    service = RealtimeService.build(
        broker,
        channel=settings.broadcast_channel,
        max_rooms_per_connection=settings.max_rooms_per_connection,
        outbox_size=settings.outbox_size,
    )
    app.state.realtime = service
    app.state.handlers = EventHandlers(service, DatabaseStorage(async_session_factory))
    await service.start()

    yield

    logger.info("huddle.shutdown")
    await service.stop()
    if broker is not None:
        await broker.close()
    await engine.dispose()


def create_app() -> FastAPI:
    """Build and return the FastAPI application."""
    app = FastAPI(
        title="Huddle",
        description="Team collaboration backend — real-time chat, documents, tasks and notifications",
        version=__version__,
        lifespan=lifespan,
    )

    from huddle.middleware.request_id import RequestIdMiddleware

    app.add_middleware(RequestIdMiddleware)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.include_router(api_router)

    from huddle.realtime.websocket import router as ws_router
    app.include_router(ws_router)

    return app


# Default app instance (used by uvicorn: huddle.main:app)
app = create_app()


def run():
    """CLI entry point: `huddle` serves the app with uvicorn."""
    import uvicorn

    uvicorn.run(
        "huddle.main:app",
        host=settings.host,
        port=settings.port,
        reload=settings.debug,
    )
