from fastapi import APIRouter
from app.api.v1.endpoints import auth, bookings, slots, availability, system_config, users, notifications

api_router = APIRouter()

api_router.include_router(auth.router, prefix="/auth", tags=["auth"])
api_router.include_router(bookings.router, prefix="/bookings", tags=["bookings"])
api_router.include_router(slots.router, prefix="/slots", tags=["slots"])
api_router.include_router(availability.router, prefix="/availability", tags=["availability"])
api_router.include_router(system_config.router, prefix="/config", tags=["config"])
api_router.include_router(users.router, prefix="/users", tags=["users"])
api_router.include_router(notifications.router, prefix="/notifications", tags=["notifications"])
