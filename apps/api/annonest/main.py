import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI
from opentelemetry.instrumentation.fastapi import FastAPIInstrumentor

from annonest.api.errors import app_error_handler
from annonest.api.routes import router as api_router
from annonest.core.config import get_settings
from annonest.core.errors import AppError
from annonest.logging import configure_logging
from annonest.middleware.correlation_id import CorrelationIdMiddleware
from annonest.middleware.request_logging import RequestLoggingMiddleware
from annonest.otel import get_fastapi_server_request_hook, setup_otel


configure_logging()
logger = logging.getLogger("annonest.lifecycle")


@asynccontextmanager
async def lifespan(app: FastAPI):
    settings = get_settings()
    logger.info("system.started", extra={"action": "startup", "outcome": settings.app_env})
    yield


app = FastAPI(title="AnnoNest API", version="0.1.0", lifespan=lifespan)
app.add_middleware(RequestLoggingMiddleware)
app.add_middleware(CorrelationIdMiddleware)
app.add_exception_handler(AppError, app_error_handler)
app.include_router(api_router)

settings = get_settings()
if settings.otel_enabled:
    setup_otel("annonest-api", True)

if not getattr(app, "_is_instrumented_by_opentelemetry", False):
    FastAPIInstrumentor().instrument_app(app, server_request_hook=get_fastapi_server_request_hook())
