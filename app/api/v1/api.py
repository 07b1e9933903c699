from fastapi import APIRouter

# Import routers from modules
from app.api.v1.endpoints import availability, bookings, classes, recurring_bookings, waitlist

api_router = APIRouter()

# Class catalog (read-only)
api_router.include_router(classes.router, prefix="/classes", tags=["classes"])

# Session availability
api_router.include_router(availability.router, prefix="/availability", tags=["availability"])

# Bookings
api_router.include_router(bookings.router, prefix="/bookings", tags=["bookings"])

# Waitlist
api_router.include_router(waitlist.router, prefix="/waitlist", tags=["waitlist"])

# Recurring bookings
api_router.include_router(recurring_bookings.router, prefix="/recurring-bookings", tags=["recurring-bookings"])
