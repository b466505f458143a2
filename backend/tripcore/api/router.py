"""
Main API router that includes all route modules.
"""
from fastapi import APIRouter
from tripcore.api.routes import trips, members, expenses, notifications, stream

api_router = APIRouter()

# Include all route modules
api_router.include_router(trips.router)
api_router.include_router(members.router)
api_router.include_router(expenses.router)
api_router.include_router(notifications.router)
api_router.include_router(stream.router)
