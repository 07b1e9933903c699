from datetime import date, datetime, time
from typing import List, Optional, Union
import logging

from redis.asyncio import Redis
from sqlalchemy.orm import Session

from app.core.clock import ensure_utc
from app.core.config import get_settings
from app.core.deps import Actor
from app.core.exceptions import (
    AlreadyBooked,
    AlreadyCancelled,
    CancellationWindowClosed,
    Forbidden,
    InvalidState,
    NotFound,
    SessionFull,
)
from app.core.timezone_utils import hours_until, local_date, session_datetime_utc
from app.models.booking import (
    Booking,
    BookingStatus,
    BookingType,
    RecurringBookingStatus,
    WaitlistStatus,
)
from app.repositories.booking import (
    booking_repository,
    recurring_booking_repository,
    waitlist_repository,
)
from app.schemas.booking import BookedOutcome, MemberBookings, WaitlistedOutcome
from app.schemas.booking import Booking as BookingSchema
from app.schemas.booking import WaitlistEntry as WaitlistEntrySchema
from app.services import slot_resolver
from app.services.availability import availability_service
from app.services.catalog import catalog_service
from app.services.session_lock import UnitResult, emit, run_locked
from app.services.waitlist import waitlist_service

logger = logging.getLogger(__name__)


class BookingService:

    async def request_booking(
        self,
        db: Session,
        member_id: int,
        class_id: int,
        booking_date: date,
        start_time: Optional[time] = None,
        notes: Optional[str] = None,
        now: Optional[datetime] = None,
        redis_client: Optional[Redis] = None,
        waitlist_if_full: bool = True,
        recurring_booking_id: Optional[int] = None,
    ) -> Union[BookedOutcome, WaitlistedOutcome]:
        """
        Reservar plaza o, si la sesión está llena, entrar en la lista de espera.

        Conteo, decisión y escritura se hacen dentro del bloqueo de la sesión,
        así dos peticiones simultáneas nunca superan la capacidad. Si hay
        plazas libres y cola de espera, las plazas se ofrecen antes a la cola.
        Si el miembro tiene una oferta vigente para la sesión, la petición la
        acepta.

        Raises:
            NotFound: La clase no existe
            InvalidSlot: La fecha/hora no es una sesión futura de la clase
            AlreadyBooked: El miembro ya tiene reserva confirmada para la sesión
            DuplicateWaitlist: El miembro ya está en la lista de espera
            SessionFull: Sesión llena y `waitlist_if_full` es False
        """
        now = ensure_utc(now)
        class_obj = catalog_service.get_class(db, class_id)
        slot = slot_resolver.resolve(class_obj, booking_date, now, start_time=start_time)

        def work() -> UnitResult:
            if booking_repository.get_member_confirmed(
                db, member_id=member_id, class_id=slot.class_id,
                booking_date=slot.booking_date, start_time=slot.start_time
            ):
                raise AlreadyBooked(f"El miembro {member_id} ya tiene reserva para esta sesión")

            result = UnitResult()
            result.offered = waitlist_service.promote_locked(db, slot, class_obj.capacity, now)

            entry = waitlist_repository.get_member_entry(
                db, member_id=member_id, class_id=slot.class_id,
                booking_date=slot.booking_date, start_time=slot.start_time
            )
            if entry and entry.status == WaitlistStatus.OFFERED and ensure_utc(entry.expires_at) > now:
                booking = waitlist_service.convert_locked(db, entry, class_obj, slot.end_time)
                result.offered = [e for e in result.offered if e.id != entry.id]
                result.value = BookedOutcome(booking=BookingSchema.model_validate(booking))
                result.confirmed.append(booking)
                return result

            if not availability_service.is_full(db, slot, class_obj.capacity, now):
                booking = booking_repository.create(db, obj_in={
                    "member_id": member_id,
                    "class_id": slot.class_id,
                    "class_name": class_obj.name,
                    "booking_date": slot.booking_date,
                    "start_time": slot.start_time,
                    "end_time": slot.end_time,
                    "location": class_obj.location,
                    "status": BookingStatus.CONFIRMED,
                    "booking_type": BookingType.RECURRING if recurring_booking_id else BookingType.SINGLE,
                    "recurring_booking_id": recurring_booking_id,
                    "notes": notes,
                })
                logger.info(
                    f"Reserva {booking.id} confirmada: miembro {member_id}, clase {slot.class_id} "
                    f"{slot.booking_date} {slot.start_time}"
                )
                result.value = BookedOutcome(booking=BookingSchema.model_validate(booking))
                result.confirmed.append(booking)
                return result

            if not waitlist_if_full:
                result.error = SessionFull(
                    f"La sesión del {slot.booking_date} a las {slot.start_time:%H:%M} está llena"
                )
                return result

            entry = waitlist_service.join_locked(
                db, slot, class_obj, member_id, notes=notes, recurring_booking_id=recurring_booking_id
            )
            result.value = WaitlistedOutcome(
                position=entry.position, waitlist_entry=WaitlistEntrySchema.model_validate(entry)
            )
            return result

        result = run_locked(
            db, class_id=slot.class_id, booking_date=slot.booking_date, start_time=slot.start_time, work=work
        )
        return await emit(result, redis_client)

    async def create_booking(
        self,
        db: Session,
        member_id: int,
        class_id: int,
        booking_date: date,
        start_time: Optional[time] = None,
        notes: Optional[str] = None,
        now: Optional[datetime] = None,
        redis_client: Optional[Redis] = None,
    ) -> Booking:
        """Reservar sin lista de espera. Lanza SessionFull si no hay plaza."""
        outcome = await self.request_booking(
            db, member_id, class_id, booking_date, start_time=start_time, notes=notes,
            now=now, redis_client=redis_client, waitlist_if_full=False
        )
        return outcome.booking

    async def cancel_booking(
        self,
        db: Session,
        booking_id: int,
        actor: Actor,
        now: Optional[datetime] = None,
        reason: Optional[str] = None,
        redis_client: Optional[Redis] = None,
    ) -> Booking:
        """
        Cancelar una reserva confirmada y ofrecer la plaza a la lista de espera.

        La cancelación se confirma primero; la promoción corre después como
        una segunda unidad bloqueada que ya ve la plaza libre.

        Raises:
            NotFound, Forbidden, AlreadyCancelled, InvalidState, CancellationWindowClosed
        """
        now = ensure_utc(now)
        settings = get_settings()
        booking = booking_repository.get(db, id=booking_id)
        if not booking:
            raise NotFound(f"Reserva {booking_id} no encontrada")
        if booking.member_id != actor.member_id and not actor.is_admin:
            raise Forbidden("Solo el titular o un administrador pueden cancelar la reserva")
        self._check_cancellable(booking)

        cutoff = settings.CANCELLATION_CUTOFF_HOURS
        if cutoff > 0 and not actor.is_admin:
            remaining = hours_until(booking.booking_date, booking.start_time, settings.GYM_TIMEZONE, now)
            if remaining < cutoff:
                raise CancellationWindowClosed(
                    f"No se puede cancelar con menos de {cutoff} horas de antelación"
                )

        def work() -> UnitResult:
            db.refresh(booking)
            self._check_cancellable(booking)
            booking.status = BookingStatus.CANCELLED
            booking.cancelled_at = now
            booking.cancelled_by = actor.member_id
            booking.cancellation_reason = reason
            db.flush()
            logger.info(f"Reserva {booking.id} cancelada por {actor.member_id} ({actor.role.value})")
            return UnitResult(value=booking, cancelled=[booking])

        result = run_locked(
            db, class_id=booking.class_id, booking_date=booking.booking_date,
            start_time=booking.start_time, work=work
        )
        await emit(result, redis_client)

        await waitlist_service.promote(
            db, booking.class_id, booking.booking_date, booking.start_time, now=now, redis_client=redis_client
        )
        return booking

    def get_booking(self, db: Session, booking_id: int, actor: Actor) -> Booking:
        booking = booking_repository.get(db, id=booking_id)
        if not booking:
            raise NotFound(f"Reserva {booking_id} no encontrada")
        if booking.member_id != actor.member_id and not actor.is_staff:
            raise Forbidden("No puede ver reservas de otros miembros")
        return booking

    def get_member_bookings(self, db: Session, member_id: int, now: Optional[datetime] = None) -> MemberBookings:
        """Reservas del miembro separadas en próximas (confirmadas sin empezar) y pasadas."""
        now = ensure_utc(now)
        tz = get_settings().GYM_TIMEZONE
        upcoming: List[BookingSchema] = []
        past: List[BookingSchema] = []
        for booking in booking_repository.get_by_member(db, member_id=member_id):
            if booking.status == BookingStatus.CONFIRMED and hours_until(
                booking.booking_date, booking.start_time, tz, now
            ) > 0:
                upcoming.append(BookingSchema.model_validate(booking))
            else:
                past.append(BookingSchema.model_validate(booking))
        past.reverse()
        return MemberBookings(upcoming=upcoming, past=past, total=len(upcoming) + len(past))

    def list_bookings(
        self,
        db: Session,
        actor: Actor,
        class_id: Optional[int] = None,
        booking_date: Optional[date] = None,
        status: Optional[BookingStatus] = None,
        member_id: Optional[int] = None,
        skip: int = 0,
        limit: int = 100,
    ) -> List[Booking]:
        if not actor.is_staff:
            raise Forbidden("Solo entrenadores y administradores pueden listar todas las reservas")
        return booking_repository.get_filtered(
            db, class_id=class_id, booking_date=booking_date, status=status,
            member_id=member_id, skip=skip, limit=limit
        )

    def complete_finished_bookings(self, db: Session, now: Optional[datetime] = None) -> int:
        """
        Marcar como `completed` las reservas confirmadas cuya sesión ya terminó.

        Actualiza `completed_sessions` de la reserva recurrente asociada y
        cierra las plantillas recurrentes cuyo rango terminó.

        Returns:
            Número de reservas completadas
        """
        now = ensure_utc(now)
        tz = get_settings().GYM_TIMEZONE
        today = local_date(now, tz)

        completed = 0
        for booking in booking_repository.get_confirmed_until(db, until_date=today):
            if session_datetime_utc(booking.booking_date, booking.end_time, tz) > now:
                continue

            booking.status = BookingStatus.COMPLETED
            booking.completed_at = now
            if booking.recurring_booking is not None:
                booking.recurring_booking.completed_sessions += 1
            completed += 1

        for template in recurring_booking_repository.get_active_ended_before(db, before_date=today):
            template.status = RecurringBookingStatus.COMPLETED
            logger.info(f"Reserva recurrente {template.id} completada")

        db.commit()
        if completed:
            logger.info(f"{completed} reservas marcadas como completadas")
        return completed

    @staticmethod
    def _check_cancellable(booking: Booking) -> None:
        if booking.status == BookingStatus.CANCELLED:
            raise AlreadyCancelled(f"La reserva {booking.id} ya está cancelada")
        if booking.status != BookingStatus.CONFIRMED:
            raise InvalidState(f"La reserva {booking.id} no se puede cancelar ({booking.status.value})")


booking_service = BookingService()
