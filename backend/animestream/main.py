"""FastAPI application entry point for Anime Stream"""

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
import logging

from animestream.api.routes import router
from animestream.core.config import settings

# Configure logging
logging.basicConfig(
    level=getattr(logging, settings.log_level.upper(), logging.INFO),
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s"
)

logger = logging.getLogger(__name__)

# Create FastAPI application
app = FastAPI(
    title="Anime Stream",
    description="Anime catalog and episode playback backend",
    version="0.1.0",
    docs_url="/docs",
    redoc_url="/redoc"
)

# Configure CORS
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
    expose_headers=["Content-Range", "Accept-Ranges", "Content-Length"],
)

app.include_router(router)


@app.get("/")
async def root():
    """Root endpoint with API information"""
    return {
        "name": "Anime Stream",
        "version": "0.1.0",
        "description": "Anime catalog and episode playback backend",
        "docs": "/docs"
    }


@app.get("/health")
async def health_check():
    """Health check endpoint"""
    return {"status": "ok"}


@app.on_event("startup")
async def startup_event():
    """Application startup tasks"""
    logger.info("Starting Anime Stream...")
    logger.info(f"Data directory: {settings.get_data_path().resolve()}")
    logger.info(f"Content root: {settings.get_content_root()}")
    logger.info(f"Upload directory: {settings.get_upload_path().resolve()}")

    try:
        settings.get_upload_path().resolve().relative_to(settings.get_content_root())
    except ValueError:
        logger.warning("=" * 80)
        logger.warning("Upload directory is outside the content root")
        logger.warning("Uploaded episodes will not be playable until UPLOAD_DIR")
        logger.warning("is moved under CONTENT_ROOT")
        logger.warning("=" * 80)

    logger.info("Anime Stream started successfully")


@app.on_event("shutdown")
async def shutdown_event():
    """Application shutdown tasks"""
    logger.info("Shutting down Anime Stream...")


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(
        "animestream.main:app",
        host=settings.api_host,
        port=settings.api_port,
        reload=True
    )
