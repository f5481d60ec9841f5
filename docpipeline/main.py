# File: docpipeline/main.py
import time
import uuid
from contextlib import asynccontextmanager
from typing import Optional

import structlog
from dotenv import load_dotenv
load_dotenv()

from fastapi import FastAPI, Request, status as fastapi_status
from fastapi.responses import JSONResponse
from prometheus_client import make_asgi_app

from docpipeline.core.logging_config import setup_logging
setup_logging()

from docpipeline import __version__
from docpipeline.core.config import settings
from docpipeline.core.errors import StoreUnavailableError
from docpipeline.core.metrics import REQUEST_PROCESSING_DURATION_SECONDS
from docpipeline.api.v1.endpoints import documents
from docpipeline.dependencies import ServiceContainer, build_services
from docpipeline.services.kafka_clients import KafkaProducerClient

log = structlog.get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    log.info("DocPipeline API startup sequence initiated...")
    owns_services = getattr(app.state, "services", None) is None
    if owns_services:
        app.state.services = build_services()
        log.info("Dependencies (S3, PostgreSQL, Kafka Producer) initialized.")
    yield
    log.info("DocPipeline API shutdown sequence initiated...")
    services: ServiceContainer = app.state.services
    if isinstance(services.queue, KafkaProducerClient):
        services.queue.flush()
    if owns_services and services.engine is not None:
        services.engine.dispose()
    log.info("Shutdown sequence complete.")


def create_app(services: Optional[ServiceContainer] = None) -> FastAPI:
    app = FastAPI(
        title=settings.PROJECT_NAME,
        openapi_url=f"{settings.API_V1_STR}/openapi.json",
        version=__version__,
        description="DocPipeline API. Stores uploaded documents, records their metadata and queues them for processing.",
        lifespan=lifespan,
    )
    if services is not None:
        app.state.services = services

    app.mount("/metrics", make_asgi_app())

    @app.middleware("http")
    async def add_request_context_and_metrics(request: Request, call_next):
        start_time = time.perf_counter()
        request_id = request.headers.get("x-request-id", str(uuid.uuid4()))

        if request.url.path.startswith("/metrics"):
            return await call_next(request)

        structlog.contextvars.clear_contextvars()
        structlog.contextvars.bind_contextvars(request_id=request_id)

        response = await call_next(request)

        process_time = time.perf_counter() - start_time
        REQUEST_PROCESSING_DURATION_SECONDS.labels(method=request.method, path=request.url.path).observe(process_time)

        log.info("Request processed", method=request.method, path=request.url.path, status_code=response.status_code, duration_ms=round(process_time * 1000, 2))
        response.headers["X-Request-ID"] = request_id
        return response

    @app.exception_handler(StoreUnavailableError)
    async def store_unavailable_handler(request: Request, exc: StoreUnavailableError):
        log.error("Backing store unavailable", path=request.url.path, error=str(exc))
        return JSONResponse(
            status_code=fastapi_status.HTTP_503_SERVICE_UNAVAILABLE,
            content={"detail": "A backing store is temporarily unavailable."},
        )

    app.include_router(documents.router, prefix=settings.API_V1_STR, tags=["Documents"])

    @app.get("/health", tags=["Health Check"])
    async def health_check():
        return {"status": "healthy"}

    return app


app = create_app()
