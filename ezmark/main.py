"""
FastAPI Backend for the exam scan grading pipeline
"""
import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.staticfiles import StaticFiles
from fastapi.responses import JSONResponse

from ezmark.routes import grading, recognition, references, schedules
from ezmark.config import settings
from ezmark.core import BaseAPIException
from ezmark.services import pipeline_service

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s"
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan handler for startup/shutdown events"""
    # Startup
    logger.info("Starting EzMark Pipeline API...")
    logger.info(f"Environment: {'development' if settings.DEBUG else 'production'}")

    recovered = await pipeline_service.recover_interrupted_jobs()
    if recovered:
        logger.warning(f"Marked {recovered} interrupted stage jobs as failed")

    yield

    # Shutdown
    logger.info("Shutting down EzMark Pipeline API...")


app = FastAPI(
    title="EzMark Pipeline API",
    description="Scan decomposition, identity matching and AI-assisted grading of paper exams",
    version="1.0.0",
    docs_url="/docs",
    redoc_url="/redoc",
    lifespan=lifespan
)

# CORS configuration for the grading frontend
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


# Global exception handlers
@app.exception_handler(BaseAPIException)
async def api_exception_handler(request: Request, exc: BaseAPIException):
    """Handle custom API exceptions"""
    return JSONResponse(
        status_code=exc.status_code,
        content={
            "success": False,
            "error": exc.detail,
            "error_code": exc.error_code
        }
    )


@app.exception_handler(Exception)
async def general_exception_handler(request: Request, exc: Exception):
    """Handle unexpected exceptions"""
    logger.error(f"Unexpected error: {exc}", exc_info=True)
    return JSONResponse(
        status_code=500,
        content={
            "success": False,
            "error": "An unexpected error occurred",
            "error_code": "INTERNAL_ERROR"
        }
    )


# Include routers
app.include_router(references.router, prefix="/api", tags=["References"])
app.include_router(schedules.router, prefix="/api/schedules", tags=["Schedules"])
app.include_router(grading.router, prefix="/api/schedules", tags=["Grading"])
app.include_router(recognition.router, prefix="/api/recognition", tags=["Recognition"])

# Serve page images, crops and exports
app.mount("/static/pipeline", StaticFiles(directory=str(settings.ASSETS_DIR)), name="pipeline")
app.mount("/static/exports", StaticFiles(directory=str(settings.EXPORTS_DIR)), name="exports")


@app.get("/")
async def root():
    """API root endpoint"""
    return {
        "name": "EzMark Pipeline API",
        "version": "1.0.0",
        "status": "running",
        "docs": "/docs",
        "redoc": "/redoc"
    }


@app.get("/health")
async def health_check():
    """Health check endpoint for monitoring"""
    return {
        "status": "healthy",
        "version": "1.0.0"
    }


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(
        "ezmark.main:app",
        host=settings.HOST,
        port=settings.PORT,
        reload=settings.DEBUG,
        log_level="info"
    )
