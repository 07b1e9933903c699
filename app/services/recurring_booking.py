from calendar import monthrange
from datetime import date, datetime, time, timedelta
from typing import List, Optional
import logging

from redis.asyncio import Redis
from sqlalchemy.exc import IntegrityError, OperationalError
from sqlalchemy.orm import Session

from app.core.clock import ensure_utc
from app.core.config import get_settings
from app.core.deps import Actor
from app.core.exceptions import BookingError, Forbidden, InvalidRequest, InvalidState, NotFound
from app.models.booking import RecurrenceType, RecurringBooking, RecurringBookingStatus
from app.models.schedule import DayOfWeek
from app.repositories.booking import recurring_booking_repository
from app.schemas.booking import (
    BookedOutcome,
    OccurrenceOutcome,
    RecurringBookingResult,
)
from app.schemas.booking import RecurringBooking as RecurringBookingSchema
from app.services.booking import booking_service
from app.services.catalog import catalog_service

logger = logging.getLogger(__name__)

# Código de las ocurrencias que no se pudieron escribir por un conflicto de la BD
CONFLICT_CODE = "conflict"


def generate_occurrences(
    recurrence_type: RecurrenceType,
    recurrence_day: str,
    start_date: date,
    end_date: date,
) -> List[date]:
    """
    Fechas de las ocurrencias entre start_date y end_date (ambas incluidas).

    Semanal: el primer `recurrence_day` a partir de start_date y después
    cada 7 días. Mensual: el mismo día del mes que start_date, mes a mes,
    saltando los meses en los que ese día no existe; solo cuentan las
    fechas que caen en `recurrence_day`.
    """
    if end_date < start_date:
        return []

    weekday = DayOfWeek.from_label(recurrence_day).value
    first = start_date + timedelta(days=(weekday - start_date.weekday()) % 7)
    if first > end_date:
        return []

    occurrences: List[date] = []
    if RecurrenceType(recurrence_type) == RecurrenceType.WEEKLY:
        current = first
        while current <= end_date:
            occurrences.append(current)
            current += timedelta(days=7)
        return occurrences

    year, month, day = start_date.year, start_date.month, start_date.day
    while date(year, month, 1) <= end_date:
        if day <= monthrange(year, month)[1]:
            current = date(year, month, day)
            if current > end_date:
                break
            if current.weekday() == weekday:
                occurrences.append(current)
        month += 1
        if month > 12:
            month = 1
            year += 1
    return occurrences


class RecurringBookingService:

    async def create_recurring(
        self,
        db: Session,
        member_id: int,
        class_id: int,
        recurrence_type: RecurrenceType,
        recurrence_day: str,
        start_date: date,
        end_date: date,
        start_time: time,
        end_time: time,
        notes: Optional[str] = None,
        now: Optional[datetime] = None,
        redis_client: Optional[Redis] = None,
    ) -> RecurringBookingResult:
        """
        Crear una reserva recurrente y materializar cada ocurrencia.

        Cada fecha pasa por el mismo flujo que una reserva individual y su
        resultado (reservada, en lista de espera u omitida con el código de
        error) es independiente del resto. La plantilla se guarda antes de
        procesar las ocurrencias y nunca se deshace.

        Raises:
            NotFound: La clase no existe
            InvalidRequest: Rango de fechas inválido, sin ocurrencias o con demasiadas
        """
        now = ensure_utc(now)
        class_obj = catalog_service.get_class(db, class_id)

        if end_date < start_date:
            raise InvalidRequest("end_date debe ser igual o posterior a start_date")
        try:
            day_label = DayOfWeek.from_label(recurrence_day).label
        except ValueError as e:
            raise InvalidRequest(str(e))
        weekday = DayOfWeek.from_label(day_label).value
        schedule = next(
            (s for s in class_obj.schedules if s.day_of_week == weekday and s.start_time == start_time),
            None,
        )
        if schedule is not None and schedule.end_time != end_time:
            raise InvalidRequest(
                f"La sesión de {class_obj.name} del {day_label} a las {start_time:%H:%M} "
                f"termina a las {schedule.end_time:%H:%M}, no a las {end_time:%H:%M}"
            )
        dates = generate_occurrences(recurrence_type, day_label, start_date, end_date)
        if not dates:
            raise InvalidRequest(f"No hay ningún {day_label} entre {start_date} y {end_date}")
        max_occurrences = get_settings().RECURRING_MAX_OCCURRENCES
        if len(dates) > max_occurrences:
            raise InvalidRequest(
                f"La reserva recurrente genera {len(dates)} sesiones (máximo {max_occurrences})"
            )

        template = recurring_booking_repository.create(db, obj_in={
            "member_id": member_id,
            "class_id": class_id,
            "class_name": class_obj.name,
            "recurrence_type": RecurrenceType(recurrence_type),
            "recurrence_day": day_label,
            "start_date": start_date,
            "end_date": end_date,
            "start_time": start_time,
            "end_time": end_time,
            "status": RecurringBookingStatus.ACTIVE,
            "total_sessions": len(dates),
            "completed_sessions": 0,
            "notes": notes,
        }, commit=True)
        template_id = template.id
        logger.info(
            f"Reserva recurrente {template_id} creada para miembro {member_id}: "
            f"{RecurrenceType(recurrence_type).value} {day_label} {start_date}..{end_date} ({len(dates)} sesiones)"
        )

        occurrences: List[OccurrenceOutcome] = []
        for occurrence_date in dates:
            try:
                outcome = await booking_service.request_booking(
                    db, member_id, class_id, occurrence_date, start_time=start_time, notes=notes,
                    now=now, redis_client=redis_client, recurring_booking_id=template_id
                )
            except BookingError as e:
                logger.info(f"Ocurrencia {occurrence_date} de la reserva recurrente {template_id} omitida: {e.code}")
                occurrences.append(OccurrenceOutcome(date=occurrence_date, status="skipped", error=e.code))
                continue
            except (IntegrityError, OperationalError) as e:
                # El conflicto persistió tras el reintento de la sesión
                logger.warning(
                    f"Ocurrencia {occurrence_date} de la reserva recurrente {template_id} omitida por conflicto: {e}"
                )
                occurrences.append(OccurrenceOutcome(date=occurrence_date, status="skipped", error=CONFLICT_CODE))
                continue

            if isinstance(outcome, BookedOutcome):
                occurrences.append(OccurrenceOutcome(
                    date=occurrence_date, status="booked", booking_id=outcome.booking.id
                ))
            else:
                occurrences.append(OccurrenceOutcome(
                    date=occurrence_date, status="waitlisted",
                    waitlist_entry_id=outcome.waitlist_entry.id, position=outcome.position
                ))

        template = recurring_booking_repository.get(db, id=template_id)
        return RecurringBookingResult(
            recurring_booking=RecurringBookingSchema.model_validate(template),
            occurrences=occurrences,
            booked_count=sum(1 for o in occurrences if o.status == "booked"),
            waitlisted_count=sum(1 for o in occurrences if o.status == "waitlisted"),
            skipped_count=sum(1 for o in occurrences if o.status == "skipped"),
        )

    def get_member_recurring(self, db: Session, member_id: int) -> List[RecurringBooking]:
        return recurring_booking_repository.get_by_member(db, member_id=member_id)

    def cancel_recurring(self, db: Session, recurring_booking_id: int, actor: Actor) -> RecurringBooking:
        """
        Cancelar la plantilla. Las reservas y entradas ya creadas no se tocan:
        cada una se cancela por separado.
        """
        template = recurring_booking_repository.get(db, id=recurring_booking_id)
        if not template:
            raise NotFound(f"Reserva recurrente {recurring_booking_id} no encontrada")
        if template.member_id != actor.member_id and not actor.is_admin:
            raise Forbidden("Solo el titular o un administrador pueden cancelar la reserva recurrente")
        if template.status != RecurringBookingStatus.ACTIVE:
            raise InvalidState(f"La reserva recurrente {template.id} no está activa ({template.status.value})")

        template = recurring_booking_repository.update(
            db, db_obj=template, obj_in={"status": RecurringBookingStatus.CANCELLED}, commit=True
        )
        logger.info(f"Reserva recurrente {template.id} cancelada por {actor.member_id}")
        return template


recurring_booking_service = RecurringBookingService()
