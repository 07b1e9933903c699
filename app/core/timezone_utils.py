"""
Utilidades para el manejo de zonas horarias en el sistema.

Los horarios de las clases (día + hora de inicio/fin) se expresan en la hora
local del gimnasio. Las comparaciones con "ahora" se hacen siempre en UTC.
"""
from datetime import date, datetime, time, timezone
import pytz


def convert_naive_to_gym_timezone(naive_dt: datetime, gym_timezone: str) -> datetime:
    """
    Convierte un datetime naive (sin timezone) interpretándolo como hora local del gimnasio
    y lo convierte a un datetime aware en la zona horaria del gimnasio.

    Args:
        naive_dt: Datetime naive que representa la hora local del gimnasio
        gym_timezone: Zona horaria del gimnasio (ej: 'America/Mexico_City')

    Returns:
        Datetime aware en la zona horaria del gimnasio
    """
    if naive_dt.tzinfo is not None:
        raise ValueError("El datetime debe ser naive (sin timezone)")

    tz = pytz.timezone(gym_timezone)
    return tz.localize(naive_dt)


def convert_gym_time_to_utc(naive_dt: datetime, gym_timezone: str) -> datetime:
    """Convierte un datetime naive (hora local del gimnasio) a UTC."""
    gym_aware = convert_naive_to_gym_timezone(naive_dt, gym_timezone)
    return gym_aware.astimezone(timezone.utc)


def convert_utc_to_local(utc_dt: datetime, gym_timezone: str) -> datetime:
    """
    Convierte un datetime UTC a hora local del gimnasio.

    Si es naive, se asume que es UTC.
    """
    if utc_dt.tzinfo is None:
        utc_dt = utc_dt.replace(tzinfo=timezone.utc)

    tz = pytz.timezone(gym_timezone)
    return utc_dt.astimezone(tz)


def session_datetime_utc(session_date: date, session_time: time, gym_timezone: str) -> datetime:
    """
    Combina la fecha de una sesión con una hora del horario de la clase
    (hora local del gimnasio) y devuelve el instante en UTC.
    """
    return convert_gym_time_to_utc(datetime.combine(session_date, session_time), gym_timezone)


def local_date(now: datetime, gym_timezone: str) -> date:
    """Fecha de calendario actual en el gimnasio para el instante `now`."""
    return convert_utc_to_local(now, gym_timezone).date()


def hours_until(
    session_date: date, session_time: time, gym_timezone: str, now: datetime
) -> float:
    """Horas que faltan desde `now` hasta el inicio de la sesión (negativo si ya empezó)."""
    if now.tzinfo is None:
        now = now.replace(tzinfo=timezone.utc)
    delta = session_datetime_utc(session_date, session_time, gym_timezone) - now
    return delta.total_seconds() / 3600
