"""
Unidad de trabajo bloqueada por sesión de clase.

Toda decisión que lee conteos de una sesión y escribe en función de ellos
(reservar, entrar en la cola, promover, cancelar, aceptar ofertas) se ejecuta
así:

1. obtener o crear la fila BookingSlot de la sesión
2. incrementar su `version` (primera escritura de la transacción: bloqueo)
3. leer conteos, decidir y escribir
4. commit
5. publicar eventos

Sesiones distintas usan filas distintas y no se bloquean entre sí. Un
conflicto detectado por la base de datos se reintenta una vez.
"""
from dataclasses import dataclass, field
from datetime import date, time
from typing import Any, Callable, List, Optional
import logging

from redis.asyncio import Redis
from sqlalchemy.exc import IntegrityError, OperationalError
from sqlalchemy.orm import Session

from app.core.exceptions import BookingError
from app.models.booking import Booking, WaitlistEntry
from app.repositories.booking import booking_slot_repository
from app.services.booking_events import booking_event_publisher

logger = logging.getLogger(__name__)

MAX_CONFLICT_RETRIES = 1


@dataclass
class UnitResult:
    """Resultado de una unidad bloqueada: valor, eventos a emitir y error diferido."""
    value: Any = None
    confirmed: List[Booking] = field(default_factory=list)
    cancelled: List[Booking] = field(default_factory=list)
    offered: List[WaitlistEntry] = field(default_factory=list)
    # Error que se lanza después del commit (la unidad sí tuvo efectos)
    error: Optional[BookingError] = None


def run_locked(
    db: Session,
    *,
    class_id: int,
    booking_date: date,
    start_time: time,
    work: Callable[[], UnitResult],
) -> UnitResult:
    """
    Ejecutar `work` dentro del bloqueo de la sesión y confirmar.

    Los errores de dominio hacen rollback y se propagan. IntegrityError y
    OperationalError se reintentan una vez desde el principio (releyendo los
    conteos); si vuelven a fallar se propagan.
    """
    attempt = 0
    while True:
        try:
            slot = booking_slot_repository.get_or_create(
                db, class_id=class_id, booking_date=booking_date, start_time=start_time
            )
            booking_slot_repository.lock(db, slot_id=slot.id)
            result = work()
            db.commit()
            return result
        except BookingError:
            db.rollback()
            raise
        except (IntegrityError, OperationalError) as e:
            db.rollback()
            if attempt >= MAX_CONFLICT_RETRIES:
                logger.error(
                    f"Conflicto persistente en sesión (clase {class_id}, {booking_date} {start_time}): {e}",
                    exc_info=True
                )
                raise
            attempt += 1
            logger.warning(
                f"Conflicto de escritura en sesión (clase {class_id}, {booking_date} {start_time}), "
                f"reintento {attempt}/{MAX_CONFLICT_RETRIES}: {e}"
            )
        except Exception:
            db.rollback()
            raise


async def emit(result: UnitResult, redis_client: Optional[Redis] = None) -> Any:
    """Publicar los eventos de una unidad ya confirmada y lanzar su error diferido."""
    for booking in result.cancelled:
        await booking_event_publisher.booking_cancelled(booking, redis_client)
    for booking in result.confirmed:
        await booking_event_publisher.booking_confirmed(booking, redis_client)
    if result.offered:
        await booking_event_publisher.waitlist_offered(result.offered, redis_client)
    if result.error is not None:
        raise result.error
    return result.value
