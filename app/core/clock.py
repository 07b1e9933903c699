"""
Reloj inyectable.

Todas las decisiones de reservas (validez del slot, ventana de cancelación,
caducidad de ofertas) reciben la hora actual como parámetro. Los endpoints la
obtienen con la dependencia `get_now`, que los tests sobrescriben.
"""
from datetime import datetime, timezone
from typing import Optional


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def ensure_utc(dt: Optional[datetime]) -> datetime:
    """Devuelve `dt` como datetime aware en UTC (naive se interpreta como UTC)."""
    if dt is None:
        return utcnow()
    if dt.tzinfo is None:
        return dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc)


async def get_now() -> datetime:
    """Dependencia FastAPI con la hora actual en UTC."""
    return utcnow()
