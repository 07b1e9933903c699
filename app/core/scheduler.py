from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.cron import CronTrigger
from apscheduler.triggers.interval import IntervalTrigger
from sqlalchemy.exc import OperationalError, DBAPIError
from datetime import timezone
from functools import wraps
import asyncio
import logging
import time

from app.core.clock import utcnow
from app.core.config import get_settings
from app.db.redis_client import get_redis_for_jobs
from app.db.session import SessionLocal
from app.services.booking import booking_service
from app.services.waitlist import waitlist_service

logger = logging.getLogger(__name__)

# Variable global para mantener referencia al scheduler
_scheduler = None


def retry_on_db_error(max_retries=3, delay=2):
    """
    Decorator para reintentar tareas programadas en caso de errores de BD.

    Útil para scheduled tasks que pueden fallar por conexiones cerradas
    o bloqueos transitorios. Admite funciones síncronas y corrutinas.

    Args:
        max_retries: Número máximo de intentos (default: 3)
        delay: Tiempo base de espera entre reintentos en segundos (default: 2)
               Se aplica backoff lineal: delay * (attempt + 1)
    """
    def decorator(func):
        def _should_retry(attempt, e):
            if attempt < max_retries - 1:
                logger.warning(
                    f"DB error in {func.__name__}, retry {attempt + 1}/{max_retries} "
                    f"after {delay * (attempt + 1)}s: {str(e)}"
                )
                return True
            logger.error(
                f"Max retries ({max_retries}) reached for {func.__name__}: {str(e)}",
                exc_info=True
            )
            return False

        if asyncio.iscoroutinefunction(func):
            @wraps(func)
            async def async_wrapper(*args, **kwargs):
                for attempt in range(max_retries):
                    try:
                        return await func(*args, **kwargs)
                    except (OperationalError, DBAPIError) as e:
                        if not _should_retry(attempt, e):
                            raise
                        await asyncio.sleep(delay * (attempt + 1))
            return async_wrapper

        @wraps(func)
        def wrapper(*args, **kwargs):
            for attempt in range(max_retries):
                try:
                    return func(*args, **kwargs)
                except (OperationalError, DBAPIError) as e:
                    if not _should_retry(attempt, e):
                        raise
                    time.sleep(delay * (attempt + 1))
        return wrapper
    return decorator


@retry_on_db_error(max_retries=3, delay=2)
async def expire_waitlist_offers():
    """
    Caduca las ofertas de lista de espera vencidas y ofrece cada plaza al
    siguiente de la cola.
    """
    logger.debug("Running scheduled task: expire_waitlist_offers")
    db = SessionLocal()
    try:
        async with get_redis_for_jobs() as redis_client:
            expired = await waitlist_service.expire_offers(db, now=utcnow(), redis_client=redis_client)
        if expired:
            logger.info(f"expire_waitlist_offers: {expired} ofertas caducadas")
        return expired
    finally:
        db.close()


@retry_on_db_error(max_retries=3, delay=2)
def complete_finished_bookings():
    """Marca como completadas las reservas cuya sesión ya terminó."""
    logger.debug("Running scheduled task: complete_finished_bookings")
    db = SessionLocal()
    try:
        return booking_service.complete_finished_bookings(db, now=utcnow())
    except Exception:
        db.rollback()
        raise
    finally:
        db.close()


def _every_minutes(minutes: int):
    if 0 < minutes < 60 and 60 % minutes == 0:
        return CronTrigger(minute=f'*/{minutes}')
    return IntervalTrigger(minutes=minutes)


def init_scheduler():
    """
    Inicializa el programador de tareas
    """
    global _scheduler
    settings = get_settings()

    logger.info("Initializing scheduler with UTC timezone")
    _scheduler = AsyncIOScheduler(timezone=timezone.utc)

    # Caducidad de ofertas de lista de espera
    _scheduler.add_job(
        expire_waitlist_offers,
        trigger=_every_minutes(settings.OFFER_EXPIRY_SWEEP_MINUTES),
        id='expire_waitlist_offers',
        replace_existing=True,
        max_instances=1,
        coalesce=True
    )

    # Reservas de sesiones terminadas
    _scheduler.add_job(
        complete_finished_bookings,
        trigger=_every_minutes(settings.BOOKING_COMPLETION_SWEEP_MINUTES),
        id='complete_finished_bookings',
        replace_existing=True,
        max_instances=1,
        coalesce=True
    )

    return _scheduler


# Función para obtener el scheduler (útil para pruebas y otros módulos)
def get_scheduler():
    global _scheduler
    return _scheduler
