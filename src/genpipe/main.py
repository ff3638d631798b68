"""FastAPI application factory and lifespan management."""

import logging
import os
from contextlib import asynccontextmanager

from fastapi import FastAPI

from genpipe.config import settings
from genpipe.logging_config import configure_logging

# Configure logging at import time
_json_logs = os.environ.get("GENPIPE_LOCAL_MODE", "0") != "1"
configure_logging(log_level=settings.log_level, json_output=_json_logs)

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Manage application startup and shutdown resources."""
    from genpipe.db.engine import create_db_engine, create_session_factory, create_tables
    from genpipe.services.dispatcher import Dispatcher
    from genpipe.services.result_store import ResultStore
    from genpipe.workers.consumer import JobWorker
    from genpipe.workers.queue import InProcessEventBus, RedisEventBus
    from genpipe.workers.scheduler import RetentionSweeper

    db_url = settings.effective_database_url
    engine = create_db_engine(db_url)

    # Two tables, no migration history: create any that are missing
    await create_tables(engine)

    app.state.db_engine = engine
    app.state.db_session_factory = create_session_factory(engine)
    store = ResultStore(app.state.db_session_factory)
    app.state.result_store = store

    # Local mode keeps the job bus and a worker inside this process
    worker = None
    if settings.local_mode:
        app.state.redis = None
        bus = InProcessEventBus()
        worker = JobWorker(bus, store)
    else:
        import redis.asyncio as aioredis
        app.state.redis = aioredis.from_url(settings.redis_url, decode_responses=True)
        bus = RedisEventBus(app.state.redis)
    app.state.event_bus = bus
    app.state.dispatcher = Dispatcher(store, bus)

    sweeper = RetentionSweeper(store)
    sweeper.start()
    app.state.sweeper = sweeper
    if worker is not None:
        worker.start()

    logger.info("genpipe API started (db=%s, bus=%s)", "sqlite" if "sqlite" in db_url else "postgresql", type(bus).__name__)
    yield

    # Shutdown
    if worker is not None:
        await worker.stop()
    await sweeper.stop()
    if app.state.redis:
        await app.state.redis.aclose()
    await engine.dispose()
    logger.info("genpipe API shutdown complete")


def create_app() -> FastAPI:
    """Create and configure the FastAPI application."""
    app = FastAPI(
        title="genpipe API",
        version="0.1.0",
        description="Asynchronous generation pipeline: dispatch, step execution and result polling.",
        lifespan=lifespan,
    )

    from genpipe.api.middleware.trace_id import TraceIdMiddleware
    app.add_middleware(TraceIdMiddleware)

    # Register error handlers
    from genpipe.errors.handlers import register_exception_handlers
    register_exception_handlers(app)

    # Import and mount routers
    from genpipe.api.router import api_router
    app.include_router(api_router)

    return app


app = create_app()
