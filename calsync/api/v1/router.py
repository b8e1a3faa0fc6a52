"""
API v1 router setup
"""
from fastapi import APIRouter

from calsync.api.v1 import calendar

api_v1_router = APIRouter()

api_v1_router.include_router(
    calendar.router,
    prefix="/calendar",
    tags=["Calendar"]
)


@api_v1_router.get("/", tags=["Info"])
async def api_info():
    """API information and available route groups."""
    return {
        "version": "1.0",
        "routes": {
            "calendar": "/api/v1/calendar",
            "health": "/health",
        }
    }
