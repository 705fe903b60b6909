from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from contextlib import asynccontextmanager
import uuid
from sqlalchemy import text
from sqlalchemy.exc import InterfaceError, OperationalError
import structlog
import uvicorn

from careernet.core.config import settings
from careernet.core.database import AsyncSessionLocal, engine, init_models
from careernet.core.logging import configure_logging
from careernet.api.v1.router import api_router
from careernet.services.graph import ConnectionGraph
from careernet.utils.exceptions import CareerNetException, TransientStoreError

configure_logging(
    level=settings.LOG_LEVEL,
    log_json=settings.LOG_JSON,
    service=settings.APP_NAME,
    environment=settings.ENVIRONMENT
)
logger = structlog.get_logger("careernet.api")

IDEMPOTENT_METHODS = {"GET", "HEAD", "OPTIONS"}


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Manage application lifecycle"""
    # Startup
    logger.info("starting_up", app=settings.APP_NAME, environment=settings.ENVIRONMENT)
    await init_models()

    if settings.RECONCILE_COUNTERS_ON_STARTUP:
        async with AsyncSessionLocal() as session:
            await ConnectionGraph(session).reconcile_counters()

    yield

    # Shutdown
    logger.info("shutting_down")
    await engine.dispose()


# Create FastAPI app
app = FastAPI(
    title=settings.APP_NAME,
    version=settings.APP_VERSION,
    openapi_url="/api/v1/openapi.json",
    docs_url="/api/docs",
    redoc_url="/api/redoc",
    lifespan=lifespan
)

# Set up CORS
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.BACKEND_CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.middleware("http")
async def bind_request_context(request: Request, call_next):
    """Tag every log line emitted while serving the request"""
    request_id = request.headers.get("X-Request-ID") or uuid.uuid4().hex
    structlog.contextvars.clear_contextvars()
    structlog.contextvars.bind_contextvars(
        request_id=request_id,
        method=request.method,
        path=request.url.path
    )
    response = await call_next(request)
    response.headers["X-Request-ID"] = request_id
    return response


@app.exception_handler(CareerNetException)
async def careernet_exception_handler(request: Request, exc: CareerNetException):
    log = logger.warning if exc.status_code < 500 else logger.error
    log(
        "request_failed",
        error=type(exc).__name__,
        detail=exc.detail
    )
    content = {"detail": exc.detail}
    if isinstance(exc, TransientStoreError):
        content["retryable"] = exc.retryable
    return JSONResponse(status_code=exc.status_code, content=content)


@app.exception_handler(OperationalError)
@app.exception_handler(InterfaceError)
async def store_unavailable_handler(request: Request, exc: Exception):
    # Mutations have an unknown outcome after a store failure; only reads are safe to retry
    error = TransientStoreError(
        "Database temporarily unavailable",
        retryable=request.method in IDEMPOTENT_METHODS
    )
    return await careernet_exception_handler(request, error)


# Include API router
app.include_router(api_router, prefix="/api/v1")


# Root endpoint
@app.get("/")
async def root():
    return {
        "app": settings.APP_NAME,
        "version": settings.APP_VERSION,
        "docs": "/api/docs",
        "redoc": "/api/redoc",
        "health": "/health",
        "api": "/api/v1"
    }


# Health check endpoint
@app.get("/health")
async def health_check():
    # Check database connection
    database_status = "healthy"
    try:
        async with engine.connect() as conn:
            await conn.execute(text("SELECT 1"))
    except (OperationalError, InterfaceError, OSError):
        logger.warning("health_check_failed", service="database", exc_info=True)
        database_status = "unhealthy"

    return {
        "status": "healthy" if database_status == "healthy" else "degraded",
        "services": {
            "database": database_status
        }
    }


def run() -> None:
    """Serve the API with uvicorn"""
    uvicorn.run(
        "careernet.main:app",
        host=settings.HOST,
        port=settings.PORT,
        reload=settings.DEBUG,
        log_config=None,
    )


if __name__ == "__main__":
    run()
