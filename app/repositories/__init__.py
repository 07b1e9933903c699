# Inicializador del paquete repositories
from app.repositories.base import BaseRepository
from app.repositories.schedule import class_repository
from app.repositories.booking import (
    booking_slot_repository,
    booking_repository,
    waitlist_repository,
    recurring_booking_repository,
)

__all__ = [
    "BaseRepository",
    "class_repository",
    "booking_slot_repository",
    "booking_repository",
    "waitlist_repository",
    "recurring_booking_repository",
]
