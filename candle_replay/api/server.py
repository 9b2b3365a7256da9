"""
FastAPI main application server.
"""

from contextlib import asynccontextmanager
from fastapi import FastAPI
from loguru import logger
import sys

from candle_replay import __version__
from candle_replay.config import LOG_FORMAT, settings
from candle_replay.database.connection import init_db, close_db
from candle_replay.api.routes import candles_router, meta_router


# Configure logging
logger.remove()
logger.add(
    sys.stdout,
    format=LOG_FORMAT,
    level=settings.log_level
)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan events."""
    # Startup
    logger.info("Starting Candle Replay API...")
    await init_db()
    logger.info("Database initialized")
    
    yield
    
    # Shutdown
    logger.info("Shutting down...")
    await close_db()


# Create FastAPI app
app = FastAPI(
    title="Candle Replay",
    description="Candle store queries for the replay trainer",
    version=__version__,
    debug=settings.debug,
    lifespan=lifespan
)

# Include API routers
app.include_router(candles_router, prefix=settings.api_prefix)
app.include_router(meta_router, prefix=settings.api_prefix)


@app.get("/health")
async def health_check():
    """Health check endpoint."""
    return {"status": "healthy"}
