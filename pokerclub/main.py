"""FastAPI application for the tournament engine."""

import time
import uuid
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from starlette.middleware.base import BaseHTTPMiddleware

from pokerclub.config import Settings, get_settings
from pokerclub.logging_config import bind_context, clear_context, configure_logging, get_logger
from pokerclub.models import Base
from pokerclub.tournament.api import (
    register_exception_handlers,
    router as tournament_router,
    set_lifecycle,
)
from pokerclub.tournament.engine import TournamentLifecycle
from pokerclub.tournament.sql_store import SqlAlchemyTournamentStore
from pokerclub.utils.db import create_engine, create_session_factory
from pokerclub.utils.redis_client import close_redis, get_redis_client, init_redis

logger = get_logger(__name__)


class RequestContextMiddleware(BaseHTTPMiddleware):
    """Tag every log record of a request with its request ID and desk actor."""

    async def dispatch(self, request: Request, call_next):
        request_id = request.headers.get("X-Request-ID") or str(uuid.uuid4())
        clear_context()
        bind_context(
            request_id=request_id,
            actor_id=request.headers.get("X-Actor-Id"),
        )
        started = time.perf_counter()
        try:
            response = await call_next(request)
            response.headers["X-Request-ID"] = request_id
            logger.info(
                "request_completed",
                method=request.method,
                path=request.url.path,
                status_code=response.status_code,
                duration_ms=round((time.perf_counter() - started) * 1000, 2),
            )
            return response
        finally:
            clear_context()


def create_app(settings: Settings | None = None) -> FastAPI:
    settings = settings or get_settings()
    configure_logging(
        log_level=settings.log_level,
        json_logs=settings.json_logs,
        app_env=settings.app_env,
    )

    @asynccontextmanager
    async def lifespan(_app: FastAPI):
        """Open database and Redis, wire the lifecycle; close on shutdown."""
        logger.info("starting_application", app_env=settings.app_env)

        engine = create_engine(settings)
        async with engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)

        if settings.redis_url:
            await init_redis(settings)
            logger.info("redis_connected")

        lifecycle = TournamentLifecycle.from_settings(
            SqlAlchemyTournamentStore(create_session_factory(engine)),
            settings=settings,
            redis_client=get_redis_client(),
        )
        set_lifecycle(lifecycle)

        try:
            yield
        finally:
            set_lifecycle(None)
            await lifecycle.lock_manager.cleanup_all()
            await close_redis()
            await engine.dispose()
            logger.info("application_stopped")

    app = FastAPI(title="Pokerclub Tournament Engine", lifespan=lifespan)
    app.add_middleware(RequestContextMiddleware)
    register_exception_handlers(app)
    app.include_router(tournament_router)

    @app.get("/health")
    async def health():
        return {"status": "healthy"}

    return app
