"""
FastAPI application entry point for the Pacing Engine API.

Configures logging and CORS, opens the BigQuery client and the plan store
pool on startup, and registers the pacing router.
"""

import logging
from contextlib import asynccontextmanager
from typing import AsyncGenerator

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from pacing_engine import __version__
from pacing_engine.api import pacing_router
from pacing_engine.core.config import get_settings
from pacing_engine.core.database import init_db, close_db
from pacing_engine.core.warehouse import init_warehouse, close_warehouse

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """
    Startup and shutdown of shared clients.

    On startup:
        - Create the BigQuery client
        - Open the plan store connection pool

    Either can fail without stopping the app; endpoints that need the missing
    collaborator report a pacing error instead.
    """
    logger.info("Pacing Engine API starting")
    try:
        await init_warehouse()
        logger.info("BigQuery client initialized")
    except Exception as e:
        logger.error(f"Failed to initialize BigQuery client: {e}")

    try:
        await init_db()
        logger.info("Plan store connection pool initialized")
    except Exception as e:
        logger.error(f"Failed to initialize plan store: {e}")

    yield

    logger.info("Pacing Engine API shutting down")
    try:
        await close_db()
        logger.info("Plan store connection pool closed")
    except Exception as e:
        logger.error(f"Error closing plan store pool: {e}")

    try:
        await close_warehouse()
        logger.info("BigQuery client closed")
    except Exception as e:
        logger.error(f"Error closing BigQuery client: {e}")


app = FastAPI(
    title="Pacing Engine API",
    version=__version__,
    description=(
        "Reconciles planned media delivery with warehouse actuals and "
        "classifies line items, campaigns and clients as under, on or over pace."
    ),
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=get_settings().cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(pacing_router, prefix="/pacing", tags=["pacing"])


@app.get("/health")
async def health_check():
    """Health check endpoint for monitoring and load balancer probes."""
    return {"status": "healthy"}


@app.get("/")
async def root():
    return {
        "name": "Pacing Engine API",
        "version": __version__,
        "docs": "/docs",
        "openapi": "/openapi.json",
    }


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "pacing_engine.main:app",
        host="0.0.0.0",
        port=8000,
        reload=True,
    )
