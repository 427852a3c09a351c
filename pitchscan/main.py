"""FastAPI application entry point."""

import logging
from contextlib import asynccontextmanager
from typing import AsyncIterator

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from pitchscan import __version__
from pitchscan.api import analysis
from pitchscan.config import settings, setup_logging
from pitchscan.services.analysis_pipeline import AnalysisPipeline, create_http_client

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    """Create the shared HTTP client and pipeline for the app's lifetime."""
    setup_logging()
    async with create_http_client() as http:
        app.state.pipeline = AnalysisPipeline.from_http(http)
        logger.info(f"{settings.app_name} {__version__} using model {settings.gemini_model}")
        yield
    logger.info("HTTP client closed")


app = FastAPI(
    title=settings.app_name,
    description="API for detecting players and scoring player performance in football match videos",
    version=__version__,
    docs_url="/docs",
    redoc_url="/redoc",
    lifespan=lifespan,
)

# Configure CORS
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(analysis.router, prefix="/api")


@app.get("/")
async def root() -> dict[str, str]:
    """Root endpoint returning API information."""
    return {
        "name": settings.app_name,
        "version": __version__,
        "status": "running",
    }


@app.get("/health")
async def health_check() -> dict[str, str]:
    """Health check endpoint."""
    return {"status": "healthy"}
