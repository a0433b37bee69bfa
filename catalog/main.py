"""
Main FastAPI application for the bilingual dataset catalog.

This module creates and configures the FastAPI application: lifecycle of the
database and upload directory, middleware, routes and error rendering.
"""

import time
import uuid
from contextlib import asynccontextmanager
from typing import Any, Dict, Optional

from fastapi import FastAPI, Request, status
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from catalog.core.config import settings
from catalog.core.dependencies import get_dispatcher, get_storage
from catalog.core.exceptions import CatalogError
from catalog.core.logging import bind_log_context, setup_logging, logger
from catalog.api.v1.router import api_router
from catalog.db.session import check_database_connection, close_db, init_db


# ==========================================
# Application Metadata
# ==========================================
APP_METADATA = {
    "title": settings.name,
    "description": """
    ## Dataset Catalog

    Upload CSV and Excel datasets, get bilingual (English/Arabic) metadata
    generated for them, and route that metadata through editor and admin review.
    """,
    "version": settings.version,
}


def error_response(
    status_code: int,
    message: str,
    details: Optional[Dict[str, Any]] = None,
    request: Optional[Request] = None,
) -> JSONResponse:
    content: Dict[str, Any] = {"success": False, "error": {"message": message}}
    if details:
        content["error"]["details"] = details
    if request is not None:
        content["request_id"] = getattr(request.state, "request_id", None)
    return JSONResponse(status_code=status_code, content=jsonable_encoder(content))


# ==========================================
# Lifespan Management
# ==========================================
@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Manage application lifecycle: database, upload directory, background jobs.
    """
    # ========== STARTUP ==========
    logger.info(
        "Starting application",
        tier=settings.deployment_tier.value,
        dispatch_mode=settings.metadata_dispatch_mode.value,
    )

    await init_db()
    get_storage().ensure_root()

    logger.info("Application startup complete")

    yield

    # ========== SHUTDOWN ==========
    logger.info("Shutting down application")

    await get_dispatcher().drain()
    await close_db()

    logger.info("Application shutdown complete")


# ==========================================
# Application Factory
# ==========================================
def create_application() -> FastAPI:
    """
    Create FastAPI application.

    Returns:
        FastAPI: Configured application instance
    """
    # Setup logging
    setup_logging()

    # Create app with conditional documentation
    app = FastAPI(
        **APP_METADATA,
        docs_url="/docs" if settings.docs_enabled else None,
        redoc_url="/redoc" if settings.docs_enabled else None,
        openapi_url="/openapi.json" if settings.docs_enabled else None,
        lifespan=lifespan,
    )

    # ==========================================
    # Middleware Configuration
    # ==========================================
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # Request ID middleware
    @app.middleware("http")
    async def add_request_id(request: Request, call_next):
        """Add unique request ID to each request."""
        request_id = request.headers.get("X-Request-ID") or str(uuid.uuid4())
        request.state.request_id = request_id
        bind_log_context(request_id=request_id, method=request.method, path=request.url.path)
        start = time.perf_counter()
        response = await call_next(request)
        response.headers["X-Request-ID"] = request_id
        logger.debug(
            "Request handled",
            status_code=response.status_code,
            duration_ms=round((time.perf_counter() - start) * 1000, 2),
        )
        return response

    # ==========================================
    # Routes Configuration
    # ==========================================
    @app.get(
        "/health",
        tags=["Health"],
        summary="Health Check",
        response_model=Dict[str, Any]
    )
    async def health_check():
        """
        Check application health.
        """
        return {
            "status": "healthy",
            "tier": settings.deployment_tier.value,
            "version": settings.version,
            "timestamp": time.time()
        }

    # Ready check endpoint (Kubernetes readiness probe)
    @app.get(
        "/ready",
        tags=["Health"],
        summary="Readiness Check"
    )
    async def readiness_check():
        """
        Check if application is ready to serve requests.
        """
        checks = {
            "app": True,
            "database": await check_database_connection(),
            "storage": settings.upload_dir.is_dir(),
        }
        all_ready = all(checks.values())

        return JSONResponse(
            status_code=status.HTTP_200_OK if all_ready else status.HTTP_503_SERVICE_UNAVAILABLE,
            content={
                "ready": all_ready,
                "checks": checks,
                "timestamp": time.time()
            }
        )

    # API routes
    app.include_router(
        api_router,
        prefix=settings.api_v1_prefix
    )

    # Root endpoint
    @app.get("/", tags=["Root"])
    async def root():
        """
        Root endpoint with API information.
        """
        return {
            "message": f"Welcome to {settings.name}",
            "version": settings.version,
            "docs": "/docs" if settings.docs_enabled else None,
            "health": "/health",
            "api": settings.api_v1_prefix
        }

    # ==========================================
    # Exception Handlers
    # ==========================================
    @app.exception_handler(CatalogError)
    async def catalog_error_handler(request: Request, exc: CatalogError):
        """Render domain errors with their mapped status code."""
        if exc.status_code >= 500:
            logger.error(
                "Request failed",
                error_type=type(exc).__name__,
                message=exc.message,
                path=request.url.path,
                method=request.method,
            )
        else:
            logger.info(
                "Request rejected",
                error_type=type(exc).__name__,
                message=exc.message,
                path=request.url.path,
            )

        message = exc.message
        details = exc.details
        if exc.status_code == 500 and settings.is_production:
            message = "An internal error occurred. Please try again later."
            details = None
        return error_response(exc.status_code, message, details, request)

    @app.exception_handler(RequestValidationError)
    async def validation_error_handler(request: Request, exc: RequestValidationError):
        """Invalid requests are reported as 400 with the field errors."""
        errors = [
            {"loc": list(error.get("loc", ())), "msg": error.get("msg"), "type": error.get("type")}
            for error in exc.errors()
        ]
        message = errors[0]["msg"] if errors else "Invalid request"
        return error_response(status.HTTP_400_BAD_REQUEST, message, {"errors": errors}, request)

    @app.exception_handler(404)
    async def not_found_handler(request: Request, exc):
        """Handle 404 errors."""
        return error_response(
            status.HTTP_404_NOT_FOUND,
            f"The requested URL {request.url.path} was not found.",
            request=request,
        )

    @app.exception_handler(500)
    async def internal_error_handler(request: Request, exc):
        """Handle 500 errors."""
        logger.error(
            "Internal server error",
            exc_info=exc,
            path=request.url.path,
            method=request.method
        )

        # Don't expose internal details in production
        if settings.is_production:
            message = "An internal error occurred. Please try again later."
        else:
            message = str(exc)

        return error_response(status.HTTP_500_INTERNAL_SERVER_ERROR, message, request=request)

    return app


# ==========================================
# Create Application Instance
# ==========================================
app = create_application()


# ==========================================
# Main Entry Point
# ==========================================
if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "catalog.main:app",
        host=settings.host,
        port=settings.port,
        reload=settings.debug,
        log_level=settings.log_level.value.lower(),
        access_log=settings.debug,
    )
