from __future__ import annotations

import logging
import time

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from stats_api.api.deps import DatabaseNotConfigured, get_request_id
from stats_api.api.routes.stats import router as stats_router
from stats_api.core.config import Settings, get_settings
from stats_api.core.logging import setup_logging
from stats_api.core.middleware import RequestContextMiddleware
from stats_api.db.backend import create_backend_engine, resolve_dialect
from stats_api.db.executor import QueryExecutionFailed, QueryExecutor
from stats_api.queries.builder import Intent, build
from stats_api.schemas.common import SetupRequiredError, SetupStatus

logger = logging.getLogger(__name__)


def create_app(settings: Settings | None = None) -> FastAPI:
    settings = settings or get_settings()

    app = FastAPI(title=settings.app_name, version=settings.app_version)
    app.state.settings = settings
    app.state.engine = None
    app.state.executor = None
    app.add_middleware(RequestContextMiddleware)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["GET", "OPTIONS"],
        allow_headers=["Content-Type", "X-Request-ID"],
        max_age=3600,
    )

    app_start_time = time.time()

    @app.on_event("startup")
    async def on_startup() -> None:
        database_url = settings.resolved_database_url
        if not database_url:
            logger.warning("No database configuration found. Starting in setup mode.")
            return

        dialect = resolve_dialect(database_url)
        engine = create_backend_engine(database_url, settings)
        app.state.engine = engine
        app.state.executor = QueryExecutor(engine, dialect)
        logger.info("Application startup complete", extra={"dialect": dialect.value})

    @app.on_event("shutdown")
    async def on_shutdown() -> None:
        if app.state.engine is not None:
            await app.state.engine.dispose()
            app.state.engine = None
            app.state.executor = None

    @app.exception_handler(QueryExecutionFailed)
    async def query_failed_handler(request: Request, exc: QueryExecutionFailed):
        logger.error("Query execution failed: %s", exc, extra={"request_id": get_request_id(request)})
        return JSONResponse(status_code=500, content={"error": str(exc)})

    @app.exception_handler(DatabaseNotConfigured)
    async def setup_required_handler(request: Request, exc: DatabaseNotConfigured):
        return JSONResponse(
            status_code=503,
            content=SetupRequiredError(error=str(exc)).model_dump(by_alias=True),
        )

    @app.exception_handler(Exception)
    async def unhandled_exception_handler(request: Request, exc: Exception):
        request_id = get_request_id(request)
        logger.exception("Unhandled exception", extra={"request_id": request_id})
        # Runs outside RequestContextMiddleware, so the header is set here.
        return JSONResponse(
            status_code=500,
            content={"error": "Unexpected server error", "request_id": request_id},
            headers={"X-Request-ID": request_id} if request_id else None,
        )

    @app.get("/health")
    async def health() -> dict:
        executor: QueryExecutor | None = app.state.executor
        return {
            "status": "healthy",
            "version": settings.app_version,
            "uptime_seconds": int(time.time() - app_start_time),
            "checks": {
                "application": {"status": "healthy"},
                "database": {
                    "configured": executor is not None,
                    "dialect": executor.dialect.value if executor else None,
                },
            },
        }

    @app.get("/health/ready")
    async def health_ready() -> JSONResponse:
        executor: QueryExecutor | None = app.state.executor
        http_status = 200
        db_status = "healthy"
        db_latency_ms = 0

        if executor is None:
            db_status = "not_configured"
            http_status = 503
        else:
            db_start = time.time()
            try:
                await executor.execute_single(build(Intent.PING, executor.dialect))
                db_latency_ms = int((time.time() - db_start) * 1000)
            except QueryExecutionFailed:
                db_status = "unhealthy"
                http_status = 503

        return JSONResponse(
            status_code=http_status,
            content={
                "status": "healthy" if http_status == 200 else "unhealthy",
                "version": settings.app_version,
                "uptime_seconds": int(time.time() - app_start_time),
                "checks": {"database": {"status": db_status, "latency_ms": db_latency_ms}},
            },
        )

    @app.get("/setup", response_model=SetupStatus)
    async def setup_status() -> SetupStatus:
        return SetupStatus(setup_required=app.state.executor is None)

    app.include_router(stats_router, prefix=settings.api_prefix)
    return app


setup_logging(get_settings().log_level)
app = create_app()
