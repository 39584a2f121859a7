"""
Central API router that aggregates all route modules.
"""

from fastapi import APIRouter

from society_booking.api.routes import reservations, resources

api_router = APIRouter(prefix="/api/v1")
api_router.include_router(resources.router)
api_router.include_router(reservations.router)
