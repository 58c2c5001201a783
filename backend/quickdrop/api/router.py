"""
API router aggregator.
The gateway router is mounted separately in main.py, after everything
else, because its catch-all path would shadow these routes.
"""
from fastapi import APIRouter

from quickdrop.api import health

api_router = APIRouter()

api_router.include_router(health.router, prefix="/health", tags=["health"])
