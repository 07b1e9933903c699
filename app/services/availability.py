from datetime import date, datetime, time
from typing import Optional
import logging

from sqlalchemy.orm import Session

from app.core.clock import ensure_utc
from app.repositories.booking import booking_repository, waitlist_repository
from app.schemas.booking import Availability
from app.schemas.schedule import SessionSlot
from app.services.catalog import catalog_service
from app.services import slot_resolver

logger = logging.getLogger(__name__)


class AvailabilityService:
    """
    Conteo de plazas por sesión.

    Una plaza está ocupada por una reserva confirmada o retenida por una oferta
    de lista de espera que aún no ha caducado. Las decisiones de reserva deben
    hacer estos conteos dentro de la unidad bloqueada de la sesión.
    """

    def count_confirmed(self, db: Session, slot: SessionSlot) -> int:
        return booking_repository.count_confirmed(
            db, class_id=slot.class_id, booking_date=slot.booking_date, start_time=slot.start_time
        )

    def count_offered(self, db: Session, slot: SessionSlot, now: datetime) -> int:
        return waitlist_repository.count_outstanding_offers(
            db, class_id=slot.class_id, booking_date=slot.booking_date,
            start_time=slot.start_time, now=ensure_utc(now)
        )

    def count_held(self, db: Session, slot: SessionSlot, now: datetime) -> int:
        """Reservas confirmadas + ofertas pendientes"""
        return self.count_confirmed(db, slot) + self.count_offered(db, slot, now)

    def free_seats(self, db: Session, slot: SessionSlot, capacity: int, now: datetime) -> int:
        return max(capacity - self.count_held(db, slot, now), 0)

    def is_full(self, db: Session, slot: SessionSlot, capacity: int, now: datetime) -> bool:
        return self.count_held(db, slot, now) >= capacity

    def get_availability(
        self,
        db: Session,
        class_id: int,
        booking_date: date,
        now: datetime,
        start_time: Optional[time] = None,
    ) -> Availability:
        """
        Disponibilidad de una sesión.

        Raises:
            NotFound: Si la clase no existe
            InvalidSlot: Si la fecha/hora no es una sesión futura de la clase
        """
        class_obj = catalog_service.get_class(db, class_id)
        slot = slot_resolver.resolve(class_obj, booking_date, now, start_time=start_time)

        booked = self.count_confirmed(db, slot)
        offered = self.count_offered(db, slot, now)
        waiting = waitlist_repository.count_waiting(
            db, class_id=slot.class_id, booking_date=slot.booking_date, start_time=slot.start_time
        )
        available = max(class_obj.capacity - booked - offered, 0)
        is_full = available == 0

        return Availability(
            class_id=class_id,
            date=booking_date,
            start_time=slot.start_time,
            capacity=class_obj.capacity,
            booked_count=booked,
            offered_count=offered,
            available_spots=available,
            waitlist_count=waiting,
            is_full=is_full,
            # Las plazas libres se ofrecen primero a quien ya está en la cola
            can_book=available > waiting,
            can_join_waitlist=available <= waiting,
        )


availability_service = AvailabilityService()
