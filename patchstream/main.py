"""
FastAPI main application for patchstream.

Exposes the streaming file-generation engine (integrity scan, deterministic
self-heal, stream decoding, constraint validation) as a small REST API for
tooling and debugging.
"""

import logging
import os

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware

from ._version import __version__
from .api import engine, system

logger = logging.getLogger(__name__)

app = FastAPI(
    title="patchstream API",
    description="Streaming file-generation protocol engine: decode, heal, validate",
    version=__version__
)


# Add request logging middleware
@app.middleware("http")
async def log_requests(request: Request, call_next):
    logger.info(f"🌐 HTTP {request.method} {request.url.path}")
    response = await call_next(request)
    logger.info(f"🌐 Response: {response.status_code}")
    return response


# Allow all origins if CORS_ORIGINS is "*", otherwise a comma-separated list
cors_origins_env = os.getenv("CORS_ORIGINS", "*")
allowed_origins = ["*"] if cors_origins_env == "*" else cors_origins_env.split(",")

app.add_middleware(
    CORSMiddleware,
    allow_origins=allowed_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Include API routers
app.include_router(system.router, prefix="/api/system", tags=["system"])
app.include_router(engine.router, prefix="/api/engine", tags=["engine"])


@app.get("/")
async def root():
    """Health check endpoint with version info."""
    return {"message": "patchstream API", "status": "running", "version": __version__}


@app.get("/health")
async def health_check():
    """Health check endpoint for monitoring."""
    return {"status": "healthy", "version": __version__}
