"""
e-Residency Backend - FastAPI Application
Main entry point for the e-Residency service.
Handles residency applications, identity documents, NFT minting and public verification.
"""

import asyncio
import time
from contextlib import asynccontextmanager, suppress

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.middleware.trustedhost import TrustedHostMiddleware
from fastapi.responses import JSONResponse
from fastapi.staticfiles import StaticFiles

from eresidency.api.services.minting_coordinator import minting_coordinator
from eresidency.api.services.reconciliation_service import reconciliation_service
from eresidency.core.config import is_production, settings
from eresidency.core.exceptions import ResidencyException, get_exception_status_code
from eresidency.core.logging import get_logger, log_request, setup_logging
from eresidency.domain.repositories.mongo import mongodb
from eresidency.infrastructure.cache import redis_client
from eresidency.infrastructure.storage.file_storage import certificate_storage, document_storage

logger = get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Application lifespan manager.
    Handles startup and shutdown events.
    """
    # Startup
    setup_logging()
    await mongodb.connect()
    await mongodb.create_all_indexes()
    document_storage.ensure_directory()
    certificate_storage.ensure_directory()

    maintenance_task = None
    if settings.RECONCILE_INTERVAL_SECONDS > 0:
        maintenance_task = asyncio.create_task(
            reconciliation_service.maintenance_loop(settings.RECONCILE_INTERVAL_SECONDS)
        )

    yield

    # Shutdown
    if maintenance_task:
        maintenance_task.cancel()
        with suppress(asyncio.CancelledError):
            await maintenance_task
    await minting_coordinator.drain(timeout=settings.MINT_TIMEOUT_SECONDS)
    await redis_client.disconnect()
    await mongodb.disconnect()


async def residency_exception_handler(request: Request, exc: ResidencyException) -> JSONResponse:
    """Render domain errors as ``{"success": false, "error": ...}``."""
    status_code = get_exception_status_code(exc)
    if status_code >= 500:
        logger.error(f"{exc.error_code} on {request.method} {request.url.path}: {exc.message}")
    return JSONResponse(
        status_code=status_code,
        content={
            "success": False,
            "error": exc.message,
            "error_code": exc.error_code,
            "details": exc.details,
        },
    )


async def request_validation_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    """Malformed requests are answered with 400."""
    return JSONResponse(
        status_code=400,
        content={
            "success": False,
            "error": "Request validation failed",
            "error_code": "VALIDATION_ERROR",
            "details": {"errors": _validation_errors(exc)},
        },
    )


def _validation_errors(exc: RequestValidationError):
    return [
        {"loc": list(error.get("loc", ())), "msg": error.get("msg"), "type": error.get("type")}
        for error in exc.errors()
    ]


def create_app() -> FastAPI:
    """
    Create and configure the FastAPI application.

    Returns:
        FastAPI: Configured FastAPI application instance
    """
    app = FastAPI(
        title="e-Residency Backend",
        description="e-Residency API - applications, identity documents, residency NFT minting and public verification",
        version="1.0.0",
        docs_url="/docs" if not is_production() else None,
        redoc_url="/redoc" if not is_production() else None,
        openapi_url="/openapi.json" if not is_production() else None,
        lifespan=lifespan,
    )

    app.add_exception_handler(ResidencyException, residency_exception_handler)
    app.add_exception_handler(RequestValidationError, request_validation_handler)

    logger.info(f"CORS configured with origins: {settings.ALLOWED_ORIGINS}")
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.ALLOWED_ORIGINS,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # Only validates the Host header; CORS handles Origin
    if is_production():
        logger.info(f"TrustedHost middleware enabled with hosts: {settings.ALLOWED_HOSTS}")
        app.add_middleware(TrustedHostMiddleware, allowed_hosts=settings.ALLOWED_HOSTS)

    @app.middleware("http")
    async def request_logging(request: Request, call_next):
        started = time.perf_counter()
        response = await call_next(request)
        log_request(
            request.method,
            request.url.path,
            response.status_code,
            round(time.perf_counter() - started, 4),
        )
        return response

    from eresidency.api.routers import (
        admin_router,
        application_router,
        certificate_router,
        document_router,
        residency_router,
        user_router,
        verify_router,
    )

    app.include_router(user_router.router, prefix="/api/users", tags=["Users"])
    app.include_router(
        application_router.router, prefix="/api/applications", tags=["Applications"]
    )
    app.include_router(document_router.router, prefix="/api/documents", tags=["Documents"])
    app.include_router(residency_router.router, prefix="/api/residency", tags=["Residency NFT"])
    app.include_router(
        certificate_router.router, prefix="/api/certificates", tags=["Certificates"]
    )
    app.include_router(verify_router.router, prefix="/api/verify", tags=["Public Verification"])
    app.include_router(admin_router.router, prefix="/api/admin", tags=["Maintenance"])

    # Mount static files; directories are provisioned in the lifespan
    app.mount(
        settings.UPLOAD_URL_PREFIX,
        StaticFiles(directory=settings.UPLOAD_DIR, check_dir=False),
        name="uploads",
    )
    app.mount(
        settings.CERTIFICATE_URL_PREFIX,
        StaticFiles(directory=settings.CERTIFICATE_DIR, check_dir=False),
        name="certificates",
    )

    @app.get("/")
    async def root():
        """Root endpoint for health check."""
        return {
            "message": "e-Residency Backend API",
            "version": "1.0.0",
            "status": "healthy",
            "features": [
                "Residency Applications",
                "Identity Document Ingestion",
                "Residency NFT Minting",
                "QR Certificates",
                "Public Verification",
            ],
        }

    @app.get("/health")
    async def health_check():
        """Health check endpoint."""
        return {
            "status": "healthy",
            "environment": settings.ENVIRONMENT,
            "chain": settings.get_evm_config(),
            "database_connected": mongodb.is_connected,
            "features_enabled": {
                "minting": bool(settings.RESIDENCY_NFT_CONTRACT_ADDRESS),
                "maintenance_loop": settings.RECONCILE_INTERVAL_SECONDS > 0,
            },
        }

    return app


# Create the FastAPI app instance
app = create_app()


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "eresidency.main:app",
        host=settings.HOST,
        port=settings.PORT,
        reload=settings.ENVIRONMENT == "development",
        log_level="info",
    )
