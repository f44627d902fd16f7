"""
Asset Hierarchy Service - FastAPI application.

Endpoints:
- GET  /health                          → Health check
- GET  /api/v1/hierarchy/tree           → Assembled node/asset forest
- GET  /api/v1/hierarchy/stats          → Hierarchy statistics
- GET  /api/v1/hierarchy/nodes/{id}/breadcrumb
- POST/PATCH/DELETE /api/v1/hierarchy/{nodes,assets,levels}
"""

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from hierarchy_service.app.config import get_settings
from hierarchy_service.app.middleware.cors import setup_cors
from hierarchy_service.app.middleware.logging import RequestLoggingMiddleware
from hierarchy_service.app.routers import hierarchy
from hierarchy_service.core.exceptions import HierarchyServiceError
from hierarchy_service.core.observability.logging import error_log_extra, setup_logging

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    setup_logging()
    settings = get_settings()
    logger.info(f"Starting {settings.app_name} v{settings.app_version} on port {settings.api_port}")
    yield
    logger.info("Shutting down hierarchy service")


app = FastAPI(
    title="Asset Hierarchy Service",
    version=get_settings().app_version,
    lifespan=lifespan,
)

setup_cors(app)
app.add_middleware(RequestLoggingMiddleware)


# ============================================
# Error handling
# ============================================

@app.exception_handler(HierarchyServiceError)
async def hierarchy_error_handler(request: Request, exc: HierarchyServiceError):
    """Render structured service errors with their own status code."""
    extra = error_log_extra(exc, organization_id=request.headers.get("X-Organization-Id"))
    level = logging.ERROR if exc.http_status >= 500 else logging.INFO
    logger.log(level, f"{exc.error_code.value} on {request.method} {request.url.path}: {exc.message}", extra=extra)

    return JSONResponse(status_code=exc.http_status, content=exc.to_dict())


# ============================================
# Health
# ============================================

@app.get("/health")
async def health():
    settings = get_settings()
    return {
        "status": "healthy",
        "service": settings.app_name,
        "version": settings.app_version,
    }


app.include_router(hierarchy.router, prefix="/api/v1/hierarchy", tags=["Hierarchy"])


if __name__ == "__main__":
    import uvicorn

    settings = get_settings()
    uvicorn.run(
        "hierarchy_service.app.main:app",
        host=settings.api_host,
        port=settings.api_port,
        reload=settings.api_reload,
        log_level=settings.log_level.lower(),
    )
