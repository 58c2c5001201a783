"""
FastAPI application entry point.
Serves the object gateway plus health and metrics endpoints.
"""
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import Response
from prometheus_client import CONTENT_TYPE_LATEST, generate_latest

from quickdrop import __version__
from quickdrop.api import gateway
from quickdrop.api.router import api_router
from quickdrop.config import settings
from quickdrop.middleware.metrics_middleware import MetricsMiddleware
from quickdrop.storage import build_object_store
from quickdrop.utils.logging import configure_logging


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Lifespan context manager for startup/shutdown events.
    - Startup: configure logging and build the object store
    """
    configure_logging('quickdrop-api', settings.log_level)

    if getattr(app.state, "object_store", None) is None:
        app.state.object_store = build_object_store(settings)

    yield


app = FastAPI(
    title="QuickDrop Gateway",
    description="Ephemeral image links backed by Cloudflare R2",
    version=__version__,
    lifespan=lifespan
)

# The uploading client PUTs straight to R2 from the browser
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_methods=["GET", "PUT", "OPTIONS"],
    allow_headers=["Content-Type", "X-Amz-Date", "X-Amz-Content-SHA256", "Authorization"],
    max_age=86400,
)

# Metrics middleware (must be after CORS to track all requests)
app.add_middleware(MetricsMiddleware)

app.include_router(api_router, prefix="/api")


@app.get("/metrics")
async def metrics():
    """Prometheus metrics endpoint."""
    return Response(
        content=generate_latest(),
        media_type=CONTENT_TYPE_LATEST
    )


# Catch-all object routes go last
app.include_router(gateway.router)
