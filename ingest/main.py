"""
Telemetry Ingest - validates structured log/event records and stores them in SQLite.

Features:
- Single and batched event intake with all-or-nothing batches
- Time-ordered event identifiers
- Structured logging with correlation IDs
- Prometheus metrics
- Health checks (liveness, store liveness, readiness)
"""
from contextlib import asynccontextmanager

from fastapi import FastAPI
from prometheus_client import make_asgi_app

from . import __version__
from .api.router import router
from .config import Settings, get_settings
from .errors import SchemaBootstrapError
from .health import HealthChecker
from .logging import get_logger, setup_logging
from .metrics import Metrics
from .middleware.correlation import CorrelationMiddleware
from .middleware.error_handler import ErrorHandlerMiddleware, install_error_handlers
from .middleware.metrics import MetricsMiddleware
from .store import EventStore

SERVICE_NAME = "telemetry-ingest"

logger = get_logger()


def create_app(settings: Settings | None = None) -> FastAPI:
    """
    Build the application.

    The event store is opened and bootstrapped in the lifespan; a bootstrap
    failure aborts startup so no traffic is accepted against an unverified
    schema.
    """
    settings = settings or get_settings()
    metrics = Metrics(service_name=SERVICE_NAME, version=__version__)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        store = EventStore(settings.DB_PATH)
        try:
            await store.bootstrap(timeout=settings.BOOTSTRAP_TIMEOUT_SECONDS)
        except SchemaBootstrapError:
            logger.critical("service_start_aborted", db_path=settings.DB_PATH)
            await store.close()
            raise
        app.state.store = store
        app.state.health_checker = HealthChecker(
            store,
            service_name=SERVICE_NAME,
            version=__version__,
            timeout=settings.HEALTH_TIMEOUT_SECONDS,
        )
        logger.info("service_starting", version=__version__, env=settings.ENV, db_path=settings.DB_PATH)
        try:
            yield
        finally:
            logger.info("service_stopping")
            metrics.app_up.labels(service=SERVICE_NAME, version=__version__).set(0)
            await store.close()

    app = FastAPI(
        title="Telemetry Ingest API",
        version=__version__,
        description="Accepts structured log/event records and persists them durably",
        lifespan=lifespan,
    )
    app.state.settings = settings
    app.state.metrics = metrics

    # Last added runs first: correlation id, then metrics, then error handling
    app.add_middleware(ErrorHandlerMiddleware)
    app.add_middleware(MetricsMiddleware, metrics=metrics)
    app.add_middleware(CorrelationMiddleware)
    install_error_handlers(app)

    app.include_router(router)
    app.mount("/metrics", make_asgi_app(registry=metrics.registry))

    return app


def run() -> None:
    """Console entry point: serve the app with uvicorn on INGEST_ADDR."""
    import uvicorn

    settings = get_settings()
    setup_logging(json_output=settings.LOG_JSON, service_name=SERVICE_NAME, level=settings.LOG_LEVEL)
    logger.info("ingest_listening", addr=settings.INGEST_ADDR, db_path=settings.DB_PATH)
    uvicorn.run(
        create_app(settings),
        host=settings.listen_host,
        port=settings.listen_port,
        log_config=None,
    )


if __name__ == "__main__":
    run()
