"""
PageLoad API package initialization.

This package contains FastAPI router modules for the PageLoad service:
- pageload: GET /api/pageload audit + diagnosis endpoint
"""

from fastapi import APIRouter

from pageload.api.pageload import router as pageload_router

# Create main API router
api_router = APIRouter()

api_router.include_router(pageload_router, prefix="/api", tags=["pageload"])

__all__ = [
    "api_router",
    "pageload_router",
]
