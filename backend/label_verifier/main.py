"""FastAPI application entry point."""

import logging
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from .api import router, ping_router
from .config import get_settings
from .services import VerificationLogStore, VerificationPipeline
from . import __version__

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s"
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan manager - handles startup and shutdown."""
    logger.info("Starting Label Verification API...")
    
    # Warm the OCR engine on startup
    if app.state.pipeline.ocr_service.initialize():
        logger.info("OCR engine initialized and ready")
    else:
        logger.warning("OCR engine failed to initialize - will retry on first request")
    
    logger.info(f"API ready - Version {__version__}")
    
    yield
    
    logger.info("Shutting down Label Verification API...")


def create_app(pipeline: Optional[VerificationPipeline] = None) -> FastAPI:
    """
    Create and configure FastAPI application.
    
    Args:
        pipeline: Pre-built pipeline; built from settings when omitted
    """
    settings = get_settings()
    pipeline = pipeline or VerificationPipeline.from_settings(settings)
    
    app = FastAPI(
        title=settings.app_name,
        description="""
## Beverage Label Verification API

Checks that the brand name, class, alcohol content, net contents and
manufacturer printed on a label image match the values on an application.

### Pipeline
1. **Preprocessing**: eight binarized variants of the upload
2. **OCR**: best of four segmentation configurations, normalized
3. **Verification**: fuzzy word/phrase matching per field (match above 70%)

### Logs
Every verification is appended to a JSON log, readable at `/api/verification-logs`.
        """,
        version=__version__,
        lifespan=lifespan,
        docs_url="/docs",
        redoc_url="/redoc",
    )
    app.state.pipeline = pipeline
    app.state.log_store = pipeline.log_store or VerificationLogStore(settings.log_file)
    
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["GET", "POST", "DELETE", "OPTIONS"],
        allow_headers=["*"],
    )
    
    app.include_router(router, prefix="/api")
    app.include_router(ping_router)
    
    # Root redirect to docs
    @app.get("/", include_in_schema=False)
    async def root():
        return {
            "message": "Label Verification API",
            "version": __version__,
            "docs": "/docs"
        }
    
    return app


# Create app instance
app = create_app()
