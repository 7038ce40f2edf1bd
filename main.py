import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request, Response
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from prometheus_client import generate_latest, CONTENT_TYPE_LATEST, REGISTRY
from starlette.exceptions import HTTPException as StarletteHTTPException

from textile_dashboard.api.v1.api import api_router
from textile_dashboard.core.db.mongodb import connect_to_mongo, close_mongo_connection
from textile_dashboard.core.exceptions import DashboardError
from textile_dashboard.core.monitoring.prometheus_middleware import PrometheusMiddleware
from textile_dashboard.core.setting import config

__version__ = "0.1.0"

logging.basicConfig(
    level=config.LOG_LEVEL,
    format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    logger.info(f"Starting {config.PROJECT_NAME} ({config.ENVIRONMENT})")
    await connect_to_mongo()
    yield
    await close_mongo_connection()
    logger.info(f"{config.PROJECT_NAME} stopped")


app = FastAPI(
    title=config.PROJECT_NAME,
    version=__version__,
    openapi_url=f"{config.API_V1_STR}/openapi.json",
    lifespan=lifespan,
)

# ============================================================================
# Middleware (CORS, then request metrics)
# ============================================================================
app.add_middleware(
    CORSMiddleware,
    allow_origins=config.CORS_ORIGINS,
    allow_methods=["*"],
    allow_headers=["*"],
    allow_credentials=True,
)
app.middleware("http")(PrometheusMiddleware())


# ============================================================================
# Error envelope: {"success": false, "message": ..., "error": ...}
# ============================================================================
def _error_response(status_code: int, message: str, error=None, headers=None) -> JSONResponse:
    body = {"success": False, "message": message, "error": error}
    return JSONResponse(status_code=status_code, content=jsonable_encoder(body), headers=headers)


@app.exception_handler(DashboardError)
async def dashboard_error_handler(request: Request, exc: DashboardError):
    return _error_response(exc.status_code, exc.message, exc.error)


@app.exception_handler(RequestValidationError)
async def validation_error_handler(request: Request, exc: RequestValidationError):
    logger.warning(f"Validation failed on {request.method} {request.url.path}: {exc.errors()}")
    return _error_response(422, "Validation failed", exc.errors())


@app.exception_handler(StarletteHTTPException)
async def http_error_handler(request: Request, exc: StarletteHTTPException):
    return _error_response(exc.status_code, str(exc.detail), exc.detail, getattr(exc, "headers", None))


@app.exception_handler(Exception)
async def unhandled_error_handler(request: Request, exc: Exception):
    logger.exception(f"Unhandled error on {request.method} {request.url.path}")
    return _error_response(500, "Internal server error", str(exc))


# ============================================================================
# Service endpoints (registered ahead of the API router)
# ============================================================================
@app.get("/metrics", include_in_schema=False)
async def metrics():
    """Prometheus scrape target."""
    return Response(content=generate_latest(REGISTRY), media_type=CONTENT_TYPE_LATEST)


@app.get("/health")
async def health_check():
    return {
        "status": "healthy",
        "service": config.PROJECT_NAME,
        "environment": config.ENVIRONMENT,
        "version": __version__,
    }


@app.get("/")
async def root():
    return {
        "message": f"{config.PROJECT_NAME} API",
        "docs": "/docs",
        "dashboard": f"{config.API_V1_STR}/production-dashboard",
        "metrics": "/metrics",
        "health": "/health",
    }


app.include_router(api_router, prefix=config.API_V1_STR)
