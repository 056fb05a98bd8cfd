"""
StemVault - Audio Project Version Control
FastAPI backend for stem commits, branches and clone export
"""

from contextlib import asynccontextmanager
from typing import Any, Dict

import uvicorn
from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.middleware.gzip import GZipMiddleware
from fastapi.responses import JSONResponse
from starlette.types import Receive, Scope, Send

from .api.routes import branches, commits, repositories
from .core.config import get_settings
from .core.errors import InvalidRequestError, VersionControlError
from .core.logging import setup_logging
from .database.connection import database_manager
from .services.authorization import AllowAllAuthorizer
from .services.blob_store import create_blob_store

CLONE_PATH_SUFFIX = "/clone"


class ArchiveAwareGZipMiddleware(GZipMiddleware):
    """GZip responses except clone archives, which are already deflated"""

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        if scope["type"] == "http" and scope["path"].rstrip("/").endswith(CLONE_PATH_SUFFIX):
            await self.app(scope, receive, send)
            return
        await super().__call__(scope, receive, send)


# Global settings
settings = get_settings()

# Setup logging
logger = setup_logging()


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan manager for startup and shutdown events"""

    # Startup
    logger.info("Starting StemVault server...")

    try:
        # Initialize database connections
        await database_manager.initialize()
        if settings.is_sqlite:
            await database_manager.create_all()
        logger.info("Database connections initialized")

        # Blob store and authorization collaborators
        app.state.blob_store = create_blob_store()
        app.state.authorizer = AllowAllAuthorizer()
        logger.info(f"Blob store ready: {settings.BLOB_STORE_BACKEND}/{settings.BLOB_STORE_BUCKET}")

        logger.info("StemVault started successfully")

    except Exception as e:
        logger.error(f"Failed to start StemVault: {e}")
        raise

    yield

    # Shutdown
    logger.info("Shutting down StemVault...")
    await database_manager.close()
    logger.info("Database connections closed")


# Create FastAPI application
app = FastAPI(
    title="StemVault API",
    description="Git-like version control for multitrack audio projects",
    version=settings.APP_VERSION,
    docs_url="/api/docs",
    redoc_url="/api/redoc",
    openapi_url="/api/openapi.json",
    lifespan=lifespan
)

# Add middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.ALLOWED_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
    expose_headers=["Content-Disposition", "X-Archive-Status", "X-Archive-Missing-Files"],
)

app.add_middleware(ArchiveAwareGZipMiddleware, minimum_size=1000)


# Exception handlers
@app.exception_handler(VersionControlError)
async def version_control_exception_handler(request: Request, exc: VersionControlError):
    """Map engine errors to their status code and stable error code"""
    if exc.status_code >= 500:
        logger.error(f"{exc.code}: {exc.message}")
    return JSONResponse(status_code=exc.status_code, content=exc.to_dict())


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError):
    """Malformed request bodies and parameters are InvalidRequest"""
    return JSONResponse(
        status_code=InvalidRequestError.status_code,
        content={
            "success": False,
            "error": InvalidRequestError.code,
            "detail": exc.errors()
        }
    )


@app.exception_handler(Exception)
async def global_exception_handler(request: Request, exc: Exception):
    """Global exception handler for unhandled exceptions"""
    logger.error(f"Unhandled exception: {exc}", exc_info=True)
    return JSONResponse(
        status_code=500,
        content={"success": False, "error": "InternalError", "detail": "Internal server error"}
    )


# Health check endpoint
@app.get("/health")
async def health_check() -> Dict[str, Any]:
    """Health check endpoint"""
    db_status = await database_manager.check_health()

    body = {
        "status": "healthy" if db_status else "unhealthy",
        "version": settings.APP_VERSION,
        "services": {
            "database": "healthy" if db_status else "unhealthy",
            "blob_store": settings.BLOB_STORE_BACKEND
        }
    }
    if not db_status:
        return JSONResponse(status_code=503, content=body)
    return body


# API Routes
app.include_router(repositories.router, prefix="/api/repositories", tags=["Repositories"])
app.include_router(branches.router, prefix="/api/branches", tags=["Branches"])
app.include_router(commits.router, prefix="/api/commits", tags=["Commits"])


if __name__ == "__main__":
    # Development server
    uvicorn.run(
        "stemvault.main:app",
        host="127.0.0.1",
        port=8000,
        reload=True,
        log_level="info"
    )
