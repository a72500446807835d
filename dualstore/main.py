# Main application entry point

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Response
from fastapi.middleware.cors import CORSMiddleware
from sqlalchemy.exc import SQLAlchemyError
import uvicorn

from dualstore import __version__
from dualstore.api.routes import router
from dualstore.common.logging_config import setup_logging
from dualstore.common.metrics import get_metrics, get_metrics_content_type
from dualstore.common.middleware import RequestTrackingMiddleware
from dualstore.config.settings import get_settings

settings = get_settings()
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Manage application lifespan - startup and shutdown."""
    setup_logging(settings.log_level, json_format=settings.log_json)

    if settings.auto_create_catalog:
        from dualstore.catalog.database import init_db
        try:
            init_db()
            logger.info("Catalog tables ready")
        except SQLAlchemyError as e:
            logger.error(f"Catalog initialization failed: {e}")

    logger.info(f"dualstore {__version__} started (document backend: {settings.document_backend})")

    yield

    from dualstore.catalog.database import reset_engine
    from dualstore.storage.factory import reset_stores
    reset_engine()
    reset_stores()
    logger.info("dualstore stopped")


app = FastAPI(
    title="Dual-Store JSON Ingestion API",
    description="Schema inference and SQL/NoSQL routing for JSON datasets",
    version=__version__,
    lifespan=lifespan
)

# CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.allowed_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.add_middleware(RequestTrackingMiddleware)

# Include API routes
app.include_router(router, prefix="/api/v1")


@app.get("/")
async def root():
    """Root endpoint"""
    return {
        "service": "Dual-Store JSON Ingestion API",
        "version": __version__,
        "status": "running",
        "docs": "/docs"
    }


@app.get("/health")
async def health():
    """Health check endpoint (alias for /live)"""
    return {"status": "healthy"}


@app.get("/live")
async def liveness():
    """Liveness check endpoint"""
    return {"status": "alive"}


@app.get("/ready")
def readiness():
    """Readiness check endpoint"""
    from dualstore.catalog.database import check_database_connection
    from dualstore.storage.factory import get_document_store, get_relational_store

    checks = {
        "catalog": check_database_connection(),
        "relational": get_relational_store().ping(),
        "documents": get_document_store().ping(),
    }
    ready = all(checks.values())

    return {
        "status": "ready" if ready else "not_ready",
        **{name: "connected" if ok else "disconnected" for name, ok in checks.items()},
    }


@app.get("/metrics")
def metrics():
    """Prometheus metrics endpoint"""
    if not settings.metrics_enabled:
        return Response(status_code=404)
    return Response(content=get_metrics(), media_type=get_metrics_content_type())


if __name__ == "__main__":
    uvicorn.run(
        "dualstore.main:app",
        host=settings.app_host,
        port=settings.app_port,
        reload=settings.debug
    )
