"""FastAPI application entry point."""

import logging
import traceback
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from sqlalchemy.exc import TimeoutError as SQLAlchemyTimeoutError

from .config import settings
from .database import check_database, warmup_connection_pool
from .routers import (
    index_documents_router,
    index_queue_router,
    index_search_router,
    indexes_router,
)
from .services.indexing_dispatcher import indexing_dispatcher
from .services.job_queue import close_arq_pool
from .services.redis_service import redis_service
from .services.search_store import search_store

# Configure logging to show errors
logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan manager for startup/shutdown tasks."""
    # Startup
    logger.info("Warming up database connection pool...")
    await warmup_connection_pool()
    logger.info("Database connection pool ready")

    logger.info("Connecting to Redis...")
    try:
        await redis_service.connect()
        logger.info("Redis connected")
    except Exception as e:
        if settings.redis_required:
            logger.error(f"Redis connection failed and REDIS_REQUIRED=true: {e}")
            raise RuntimeError(
                f"Redis is required for rebuild locks but connection failed: {e}"
            )
        logger.warning(f"Redis connection failed, rebuilds will run without locks: {e}")

    logger.info("Starting indexing dispatcher...")
    await indexing_dispatcher.start()
    logger.info("Indexing dispatcher started")

    yield

    # Shutdown
    logger.info("Stopping indexing dispatcher...")
    await indexing_dispatcher.stop()
    logger.info("Indexing dispatcher stopped")

    await close_arq_pool()

    logger.info("Disconnecting from Redis...")
    await redis_service.disconnect()
    logger.info("Redis disconnected")


# Create FastAPI application
app = FastAPI(
    title="flatindex",
    description="Character-level full-text index kept in sync with a document store",
    version="1.0.0",
    docs_url="/docs",
    redoc_url="/redoc",
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


# Database pool exhaustion handler - return 503 so clients can retry
@app.exception_handler(SQLAlchemyTimeoutError)
async def db_pool_exhausted_handler(request: Request, exc: SQLAlchemyTimeoutError):
    """Handle database connection pool exhaustion with 503 Service Unavailable."""
    logger.warning(
        f"Database pool exhausted on {request.method} {request.url}: {exc}"
    )
    return JSONResponse(
        status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
        content={
            "detail": "Service temporarily unavailable. Please retry.",
            "retry_after": 5,
        },
        headers={"Retry-After": "5"},
    )


# Global exception handler to log errors
@app.exception_handler(Exception)
async def global_exception_handler(request: Request, exc: Exception):
    """Log all unhandled exceptions with full traceback."""
    logger.error(f"Unhandled exception on {request.method} {request.url}:")
    logger.error(f"Exception type: {type(exc).__name__}")
    logger.error(f"Exception message: {str(exc)}")
    logger.error(f"Traceback:\n{traceback.format_exc()}")
    return JSONResponse(
        status_code=500,
        content={"detail": "Internal server error"},
    )

# Include API routers
app.include_router(indexes_router)
app.include_router(index_documents_router)
app.include_router(index_search_router)
app.include_router(index_queue_router)


@app.get("/")
async def root():
    """Root endpoint - health check."""
    return {
        "status": "healthy",
        "service": "flatindex",
        "version": "1.0.0",
    }


@app.get("/health")
async def health_check():
    """Health check endpoint for monitoring."""
    database = await check_database()
    search = await search_store.health_check()
    redis_health = await redis_service.health_check()
    degraded = database != "healthy" or search["status"] != "healthy"
    return {
        "status": "degraded" if degraded else "healthy",
        "database": database,
        "search_store": search,
        "redis": redis_health,
        "dispatcher": {
            "running": indexing_dispatcher.is_running,
            **indexing_dispatcher.stats,
        },
    }
