"""
FastAPI application entry point.
"""

import logging
from contextlib import asynccontextmanager

from fastapi import Depends, FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from config import Settings, settings
from models.database import init_db
from services.blob_store import BlobStore, get_blob_store
from utils.exceptions import AppError

logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s %(levelname)s %(name)s: %(message)s',
    force=True  # Override any existing config
)

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Application lifespan manager.
    Creates tables and scratch directories on startup.
    """
    logger.info("Starting application...")

    await init_db()
    get_blob_store().ensure_directories()

    logger.info("Application ready")

    yield

    logger.info("Shutdown complete")


app = FastAPI(
    title=settings.app_name,
    description="Screen recording upload, trimming and sharing service",
    version="1.0.0",
    lifespan=lifespan
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.exception_handler(AppError)
async def app_error_handler(request: Request, exc: AppError):
    """Global handler for custom application errors."""
    content = {"error": exc.code, "message": exc.message}
    if exc.detail and exc.detail != exc.message:
        content["detail"] = exc.detail
    return JSONResponse(status_code=exc.status_code, content=content, headers=exc.headers)


@app.exception_handler(RequestValidationError)
async def request_validation_handler(request: Request, exc: RequestValidationError):
    """Malformed bodies are client errors, reported in the same shape as AppError."""
    return JSONResponse(
        status_code=400,
        content={"error": "invalid_request", "message": "Request body is malformed"},
    )


@app.exception_handler(Exception)
async def unhandled_error_handler(request: Request, exc: Exception):
    logger.exception(f"Unhandled error on {request.method} {request.url.path}: {exc}")
    return JSONResponse(
        status_code=500,
        content={"error": "server_error", "message": "An unexpected error occurred"},
    )


# Include routers
from routers import videos, uploads, watch  # noqa: E402


def include_routers(application: FastAPI, config: Settings) -> None:
    application.include_router(videos.router, prefix="/api/videos", tags=["Videos"])
    # Object storage serves its own public URLs; local scratch stays private
    if not config.use_object_storage:
        application.include_router(uploads.router, prefix="/api/uploads", tags=["Uploads"])
    application.include_router(watch.router, tags=["Watch"])


include_routers(app, settings)


@app.get("/health")
async def health_check(blob_store: BlobStore = Depends(get_blob_store)):
    """Health check endpoint."""
    return {
        "status": "healthy",
        "app": settings.app_name,
        "storage": blob_store.backend_name,
    }


if __name__ == "__main__":
    import uvicorn

    logger.info(f"Starting server on {settings.host}:{settings.port}")
    uvicorn.run(app, host=settings.host, port=settings.port)
