"""
Resolución de sesiones.

Una sesión no existe como fila propia: es la combinación de una clase, una
fecha de calendario y una entrada del horario semanal de la clase para el día
de la semana de esa fecha. Este módulo valida esa combinación y calcula los
instantes UTC de inicio y fin. No accede a la base de datos.
"""
from datetime import date, datetime, time, timedelta
from typing import Optional

from app.core.clock import ensure_utc
from app.core.config import get_settings
from app.core.exceptions import InvalidSlot
from app.core.timezone_utils import session_datetime_utc
from app.models.schedule import Class, DayOfWeek
from app.schemas.schedule import SessionSlot


def resolve(
    class_obj: Class,
    booking_date: date,
    now: datetime,
    start_time: Optional[time] = None,
    tz: Optional[str] = None,
) -> SessionSlot:
    """
    Resolver la sesión de `class_obj` en `booking_date`.

    Args:
        class_obj: Clase con su horario semanal cargado
        booking_date: Fecha de la sesión (calendario del gimnasio)
        now: Hora actual
        start_time: Hora de inicio; obligatoria si la clase tiene varias sesiones ese día
        tz: Zona horaria del horario (por defecto GYM_TIMEZONE)

    Raises:
        InvalidSlot: Si no hay sesión ese día/hora, si el día es ambiguo o si la sesión ya empezó
    """
    tz = tz or get_settings().GYM_TIMEZONE
    weekday = booking_date.weekday()
    day_label = DayOfWeek(weekday).label

    candidates = [s for s in class_obj.schedules if s.day_of_week == weekday]
    if start_time is not None:
        candidates = [s for s in candidates if s.start_time == start_time]

    if not candidates:
        if start_time is not None:
            raise InvalidSlot(
                f"La clase '{class_obj.name}' no tiene sesión el {day_label} {booking_date} a las {start_time:%H:%M}"
            )
        raise InvalidSlot(f"La clase '{class_obj.name}' no tiene sesión el {day_label} {booking_date}")

    if len(candidates) > 1:
        raise InvalidSlot(
            f"La clase '{class_obj.name}' tiene varias sesiones el {day_label}; indique start_time"
        )

    schedule = candidates[0]
    starts_at = session_datetime_utc(booking_date, schedule.start_time, tz)
    if starts_at <= ensure_utc(now):
        raise InvalidSlot(f"La sesión del {booking_date} a las {schedule.start_time:%H:%M} ya ha comenzado")

    return SessionSlot(
        class_id=class_obj.id,
        booking_date=booking_date,
        start_time=schedule.start_time,
        end_time=schedule.end_time,
        starts_at=starts_at,
        ends_at=session_datetime_utc(booking_date, schedule.end_time, tz),
    )


def session_for(
    class_obj: Class, booking_date: date, start_time: time, tz: Optional[str] = None
) -> SessionSlot:
    """
    Sesión de una reserva o entrada de lista de espera ya existente.

    No valida contra "ahora". Si la entrada del horario ya no existe, el fin
    se calcula con la duración de la clase.
    """
    tz = tz or get_settings().GYM_TIMEZONE
    end_time = next(
        (s.end_time for s in class_obj.schedules
         if s.day_of_week == booking_date.weekday() and s.start_time == start_time),
        None,
    )
    if end_time is None:
        end_time = (datetime.combine(booking_date, start_time) + timedelta(minutes=class_obj.duration)).time()

    return SessionSlot(
        class_id=class_obj.id,
        booking_date=booking_date,
        start_time=start_time,
        end_time=end_time,
        starts_at=session_datetime_utc(booking_date, start_time, tz),
        ends_at=session_datetime_utc(booking_date, end_time, tz),
    )
