# Main application entry point

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Response
import uvicorn

from src.api.routes import router
from src.catalog.database import check_database_connection, init_db
from src.common.logging_config import setup_logging
from src.common.metrics import get_metrics, get_metrics_content_type
from src.config.settings import get_settings

settings = get_settings()
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Manage application lifespan - startup and shutdown."""
    setup_logging(settings.log_level, settings.log_json)
    logger.info("Creating catalog tables...")
    init_db()
    yield
    logger.info("Shutting down")


app = FastAPI(
    title="Loose Ingest API",
    description="Convert and profile loosely-typed record files",
    version="0.1.0",
    lifespan=lifespan,
)

app.include_router(router, prefix="/api/v1")


@app.get("/")
async def root():
    """Root endpoint"""
    return {
        "service": "Loose Ingest API",
        "version": "0.1.0",
        "status": "running",
        "docs": "/docs",
    }


@app.get("/health")
async def health():
    """Health check endpoint"""
    return {"status": "healthy"}


@app.get("/ready")
async def readiness():
    """Readiness check endpoint"""
    db_healthy = check_database_connection()

    return {
        "status": "ready" if db_healthy else "not_ready",
        "database": "connected" if db_healthy else "disconnected",
    }


@app.get("/metrics")
async def metrics():
    """Prometheus metrics endpoint"""
    if not settings.metrics_enabled:
        return Response(status_code=404)
    return Response(content=get_metrics(), media_type=get_metrics_content_type())


if __name__ == "__main__":
    uvicorn.run(
        "src.main:app",
        host=settings.app_host,
        port=settings.app_port,
        reload=settings.debug,
    )
