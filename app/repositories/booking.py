from typing import List, Optional
from datetime import date, datetime, time
import logging

from sqlalchemy.orm import Session
from sqlalchemy.exc import IntegrityError
from sqlalchemy import func, update

from app.repositories.base import BaseRepository
from app.models.booking import (
    BookingSlot,
    Booking,
    BookingStatus,
    WaitlistEntry,
    WaitlistStatus,
    RecurringBooking,
    RecurringBookingStatus,
)
from app.schemas.booking import BookingCreate, RecurringBookingCreate, WaitlistJoin

logger = logging.getLogger(__name__)


def _same_session(model, class_id: int, booking_date: date, start_time: time):
    """Filtro de identidad de sesión (clase, fecha, hora de inicio)."""
    return (
        model.class_id == class_id,
        model.booking_date == booking_date,
        model.start_time == start_time,
    )


class BookingSlotRepository:
    """Filas de bloqueo por sesión."""

    def get(self, db: Session, *, class_id: int, booking_date: date, start_time: time) -> Optional[BookingSlot]:
        return db.query(BookingSlot).filter(
            *_same_session(BookingSlot, class_id, booking_date, start_time)
        ).first()

    def get_or_create(
        self, db: Session, *, class_id: int, booking_date: date, start_time: time
    ) -> BookingSlot:
        """
        Obtener la fila de la sesión o crearla.

        La creación se confirma en su propia transacción. Si otra petición creó
        la misma fila a la vez, la restricción única falla y se relee la fila
        existente.
        """
        slot = self.get(db, class_id=class_id, booking_date=booking_date, start_time=start_time)
        if slot:
            return slot

        slot = BookingSlot(class_id=class_id, booking_date=booking_date, start_time=start_time, version=0)
        db.add(slot)
        try:
            db.commit()
        except IntegrityError:
            db.rollback()
            logger.info(
                f"Slot de sesión creado concurrentemente (clase {class_id}, {booking_date} {start_time}), releyendo"
            )
            slot = db.query(BookingSlot).filter(
                *_same_session(BookingSlot, class_id, booking_date, start_time)
            ).one()
        return slot

    def lock(self, db: Session, *, slot_id: int) -> None:
        """
        Tomar el bloqueo de escritura de la sesión hasta el commit/rollback.

        Es la primera escritura de la unidad: en PostgreSQL bloquea la fila, en
        SQLite la transacción ya tiene el bloqueo de escritura de la base.
        """
        db.execute(
            update(BookingSlot)
            .where(BookingSlot.id == slot_id)
            .values(version=BookingSlot.version + 1)
            .execution_options(synchronize_session=False)
        )


class BookingRepository(BaseRepository[Booking, BookingCreate, BookingCreate]):
    def count_confirmed(self, db: Session, *, class_id: int, booking_date: date, start_time: time) -> int:
        """Número de reservas confirmadas de la sesión"""
        return db.query(func.count(Booking.id)).filter(
            *_same_session(Booking, class_id, booking_date, start_time),
            Booking.status == BookingStatus.CONFIRMED,
        ).scalar() or 0

    def get_member_confirmed(
        self, db: Session, *, member_id: int, class_id: int, booking_date: date, start_time: time
    ) -> Optional[Booking]:
        """Reserva confirmada del miembro para la sesión, si existe"""
        return db.query(Booking).filter(
            Booking.member_id == member_id,
            *_same_session(Booking, class_id, booking_date, start_time),
            Booking.status == BookingStatus.CONFIRMED,
        ).first()

    def get_by_member(self, db: Session, *, member_id: int) -> List[Booking]:
        """Todas las reservas del miembro ordenadas por fecha de sesión"""
        return db.query(Booking).filter(
            Booking.member_id == member_id
        ).order_by(Booking.booking_date, Booking.start_time, Booking.id).all()

    def get_filtered(
        self,
        db: Session,
        *,
        class_id: Optional[int] = None,
        booking_date: Optional[date] = None,
        status: Optional[BookingStatus] = None,
        member_id: Optional[int] = None,
        skip: int = 0,
        limit: int = 100
    ) -> List[Booking]:
        """Listado para staff con filtros opcionales"""
        query = db.query(Booking)
        if class_id is not None:
            query = query.filter(Booking.class_id == class_id)
        if booking_date is not None:
            query = query.filter(Booking.booking_date == booking_date)
        if status is not None:
            query = query.filter(Booking.status == status)
        if member_id is not None:
            query = query.filter(Booking.member_id == member_id)
        return query.order_by(
            Booking.booking_date.desc(), Booking.start_time.desc(), Booking.id
        ).offset(skip).limit(limit).all()

    def get_confirmed_until(self, db: Session, *, until_date: date) -> List[Booking]:
        """Reservas confirmadas con fecha de sesión hasta `until_date` (candidatas a completarse)"""
        return db.query(Booking).filter(
            Booking.status == BookingStatus.CONFIRMED,
            Booking.booking_date <= until_date,
        ).order_by(Booking.booking_date, Booking.start_time).all()


class WaitlistRepository(BaseRepository[WaitlistEntry, WaitlistJoin, WaitlistJoin]):
    def get_max_position(self, db: Session, *, class_id: int, booking_date: date, start_time: time) -> int:
        """Mayor posición entre las entradas en espera (0 si la cola está vacía)"""
        return db.query(func.max(WaitlistEntry.position)).filter(
            *_same_session(WaitlistEntry, class_id, booking_date, start_time),
            WaitlistEntry.status == WaitlistStatus.WAITING,
        ).scalar() or 0

    def count_waiting(self, db: Session, *, class_id: int, booking_date: date, start_time: time) -> int:
        return db.query(func.count(WaitlistEntry.id)).filter(
            *_same_session(WaitlistEntry, class_id, booking_date, start_time),
            WaitlistEntry.status == WaitlistStatus.WAITING,
        ).scalar() or 0

    def count_outstanding_offers(
        self, db: Session, *, class_id: int, booking_date: date, start_time: time, now: datetime
    ) -> int:
        """Ofertas pendientes (no caducadas) que retienen plaza en la sesión"""
        return db.query(func.count(WaitlistEntry.id)).filter(
            *_same_session(WaitlistEntry, class_id, booking_date, start_time),
            WaitlistEntry.status == WaitlistStatus.OFFERED,
            WaitlistEntry.expires_at > now,
        ).scalar() or 0

    def get_head(self, db: Session, *, class_id: int, booking_date: date, start_time: time) -> Optional[WaitlistEntry]:
        """Entrada en espera con la menor posición"""
        return db.query(WaitlistEntry).filter(
            *_same_session(WaitlistEntry, class_id, booking_date, start_time),
            WaitlistEntry.status == WaitlistStatus.WAITING,
        ).order_by(WaitlistEntry.position, WaitlistEntry.id).first()

    def shift_down_after(
        self, db: Session, *, class_id: int, booking_date: date, start_time: time, position: int
    ) -> int:
        """
        Restar 1 a la posición de todas las entradas en espera por detrás de `position`.

        Se hace en un único UPDATE para que la cola no quede con huecos a mitad
        de la operación.
        """
        result = db.execute(
            update(WaitlistEntry)
            .where(
                *_same_session(WaitlistEntry, class_id, booking_date, start_time),
                WaitlistEntry.status == WaitlistStatus.WAITING,
                WaitlistEntry.position > position,
            )
            .values(position=WaitlistEntry.position - 1)
            .execution_options(synchronize_session="fetch")
        )
        return result.rowcount or 0

    def get_member_entry(
        self, db: Session, *, member_id: int, class_id: int, booking_date: date, start_time: time
    ) -> Optional[WaitlistEntry]:
        """Entrada del miembro para la sesión, en cualquier estado (única por sesión)"""
        return db.query(WaitlistEntry).filter(
            WaitlistEntry.member_id == member_id,
            *_same_session(WaitlistEntry, class_id, booking_date, start_time),
        ).first()

    def get_member_active(self, db: Session, *, member_id: int) -> List[WaitlistEntry]:
        """Entradas en espera u ofrecidas del miembro"""
        return db.query(WaitlistEntry).filter(
            WaitlistEntry.member_id == member_id,
            WaitlistEntry.status.in_([WaitlistStatus.WAITING, WaitlistStatus.OFFERED]),
        ).order_by(WaitlistEntry.booking_date, WaitlistEntry.start_time, WaitlistEntry.id).all()

    def get_expired_offers(
        self,
        db: Session,
        *,
        now: datetime,
        member_id: Optional[int] = None,
        class_id: Optional[int] = None,
        booking_date: Optional[date] = None,
        start_time: Optional[time] = None
    ) -> List[WaitlistEntry]:
        """Ofertas cuya ventana de aceptación ya terminó, opcionalmente de un miembro o una sesión"""
        query = db.query(WaitlistEntry).filter(
            WaitlistEntry.status == WaitlistStatus.OFFERED,
            WaitlistEntry.expires_at <= now,
        )
        if member_id is not None:
            query = query.filter(WaitlistEntry.member_id == member_id)
        if class_id is not None:
            query = query.filter(*_same_session(WaitlistEntry, class_id, booking_date, start_time))
        return query.order_by(WaitlistEntry.expires_at, WaitlistEntry.id).all()


class RecurringBookingRepository(BaseRepository[RecurringBooking, RecurringBookingCreate, RecurringBookingCreate]):
    def get_by_member(self, db: Session, *, member_id: int) -> List[RecurringBooking]:
        return db.query(RecurringBooking).filter(
            RecurringBooking.member_id == member_id
        ).order_by(RecurringBooking.created_at.desc(), RecurringBooking.id.desc()).all()

    def get_active_ended_before(self, db: Session, *, before_date: date) -> List[RecurringBooking]:
        """Plantillas activas cuyo rango ya terminó"""
        return db.query(RecurringBooking).filter(
            RecurringBooking.status == RecurringBookingStatus.ACTIVE,
            RecurringBooking.end_date < before_date,
        ).all()


# Instantiate repositories
booking_slot_repository = BookingSlotRepository()
booking_repository = BookingRepository(Booking)
waitlist_repository = WaitlistRepository(WaitlistEntry)
recurring_booking_repository = RecurringBookingRepository(RecurringBooking)
