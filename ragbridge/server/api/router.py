"""
Main API router that aggregates all route modules.
"""

from fastapi import APIRouter

from .routes import chat, models


def get_api_router() -> APIRouter:
    """Get the API router with all /v1 routes."""
    api_router = APIRouter()

    api_router.include_router(chat.router)
    api_router.include_router(models.router)

    return api_router
