# backend/icetime/main.py
from __future__ import annotations

from contextlib import asynccontextmanager
import logging
from typing import AsyncGenerator, Dict

from fastapi import APIRouter, FastAPI, Request, Response
from fastapi.responses import JSONResponse
from fastapi.routing import APIRoute

from .core.config import settings
from .core.constants import API_DESCRIPTION, API_TITLE, API_VERSION, BRAND_NAME
from .core.exceptions import RepositoryException
from .database import SessionLocal
from .events.listeners import register_default_listeners
from .middleware.prometheus_middleware import METRICS_PATH, PrometheusMiddleware
from .monitoring.prometheus_metrics import prometheus_metrics
from .routes.v1 import availability as availability_v1
from .routes.v1 import bookings as bookings_v1
from .routes.v1 import credits as credits_v1
from .routes.v1 import pairing as pairing_v1
from .routes.v1 import recurring as recurring_v1
from .routes.v1 import schedule_changes as schedule_changes_v1
from .services.capacity_pool_service import CapacityPoolService

logger = logging.getLogger(__name__)


def _seed_slot_catalog() -> None:
    db = SessionLocal()
    try:
        created = CapacityPoolService(db).sync_catalog()
        logger.info("Slot catalog synchronized (%s new slots)", created)
    finally:
        db.close()


@asynccontextmanager
async def app_lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Handle application startup/shutdown."""
    logger.info(f"{BRAND_NAME} API starting up...")
    logger.info(f"Environment: {settings.environment}")

    _seed_slot_catalog()
    register_default_listeners()

    yield

    logger.info(f"{BRAND_NAME} API shutting down...")


def _unique_operation_id(route: APIRoute) -> str:
    methods = "_".join(sorted(m.lower() for m in route.methods or []))
    path = route.path_format.replace("/", "_").replace("{", "").replace("}", "").strip("_")
    name = (route.name or "operation").lower().replace(" ", "_")
    return f"{methods}__{path}__{name}".strip("_")


app = FastAPI(
    title=API_TITLE,
    description=API_DESCRIPTION,
    version=API_VERSION,
    docs_url="/docs",
    redoc_url="/redoc",
    lifespan=app_lifespan,
    generate_unique_id_function=_unique_operation_id,
)

app.add_middleware(PrometheusMiddleware)


@app.exception_handler(RepositoryException)
async def repository_exception_handler(request: Request, exc: RepositoryException) -> JSONResponse:
    logger.error("Repository failure on %s: %s", request.url.path, exc)
    return JSONResponse(
        status_code=500,
        content={"detail": {"message": "Database operation failed", "code": "REPOSITORY_ERROR"}},
    )


# API v1 router
api_v1 = APIRouter(prefix="/api/v1")
api_v1.include_router(bookings_v1.router, prefix="/bookings")
api_v1.include_router(availability_v1.router, prefix="/availability")
api_v1.include_router(credits_v1.router, prefix="/credits")
api_v1.include_router(recurring_v1.router, prefix="/recurring")
api_v1.include_router(pairing_v1.router, prefix="/pairing")
api_v1.include_router(schedule_changes_v1.router, prefix="/schedule-changes")

app.include_router(api_v1)


@app.get("/health", tags=["health"])
async def health_check() -> Dict[str, str]:
    return {"status": "healthy", "service": f"{BRAND_NAME.lower()}-api"}


@app.get(METRICS_PATH, include_in_schema=False)
async def prometheus_scrape() -> Response:
    return Response(
        content=prometheus_metrics.get_metrics(),
        media_type=prometheus_metrics.get_content_type(),
    )
