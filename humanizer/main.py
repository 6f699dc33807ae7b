import logging
import os
from contextlib import asynccontextmanager

from dotenv import load_dotenv
from fastapi import FastAPI
from starlette.exceptions import HTTPException as StarletteHTTPException
from fastapi.exceptions import RequestValidationError

# Load env from humanizer/.env before settings are read
package_dir = os.path.dirname(os.path.abspath(__file__))
if "PYTEST_CURRENT_TEST" not in os.environ:
    load_dotenv(dotenv_path=os.path.join(package_dir, ".env"))

from humanizer.core.config import settings, validate_config  # noqa: E402
from humanizer.core.database import create_all_tables  # noqa: E402
from humanizer.core.errors import (  # noqa: E402
    AppError,
    app_error_handler,
    http_error_handler,
    request_validation_handler,
    unhandled_exception_handler,
)
from humanizer.core.logging import configure_logging  # noqa: E402
from humanizer.core.middleware.metrics import MetricsMiddleware  # noqa: E402
from humanizer.core.middleware.request_id import RequestIdMiddleware  # noqa: E402
from humanizer.core.middleware.tracing import TracingMiddleware  # noqa: E402
from humanizer.core.tracing import setup_tracing  # noqa: E402
from humanizer.core.validation import validate_env  # noqa: E402
from humanizer.features.transform.engine import close_engine, get_engine  # noqa: E402
from humanizer.api import credits, health, metrics, plans, statistics, text  # noqa: E402

configure_logging(settings.ENV)
validate_env()
validate_config(strict=getattr(settings, "CONFIG_STRICT", False))
setup_tracing(enabled=settings.OTEL_ENABLED)


@asynccontextmanager
async def lifespan(app: FastAPI):
    logger = logging.getLogger("humanizer")
    logger.info("Starting humanizer service...")
    create_all_tables()
    logger.info("transform.strategies", extra={"strategies": get_engine().strategy_names})
    try:
        yield
    finally:
        logger.info("Stopping humanizer service...")
        close_engine()


app = FastAPI(title="Humanizer", lifespan=lifespan)

# Middlewares (last added runs first)
app.add_middleware(TracingMiddleware)
app.add_middleware(MetricsMiddleware)
app.add_middleware(RequestIdMiddleware)

app.add_exception_handler(AppError, app_error_handler)
app.add_exception_handler(StarletteHTTPException, http_error_handler)
app.add_exception_handler(RequestValidationError, request_validation_handler)
app.add_exception_handler(Exception, unhandled_exception_handler)

app.include_router(text.router)
app.include_router(credits.router)
app.include_router(statistics.router)
app.include_router(plans.router)
app.include_router(health.router)
app.include_router(metrics.router)


if __name__ == "__main__":
    import uvicorn

    uvicorn.run("humanizer.main:app", host="0.0.0.0", port=int(os.getenv("PORT", "8000")))
