"""
Cliente Redis con connection pooling (redis.asyncio).

Redis se usa para publicar los eventos del motor de reservas
(`booking.confirmed`, `booking.cancelled`, `waitlist.offered`) que consume el
notificador externo. Es opcional: con `REDIS_URL` vacío las dependencias
devuelven `None` y los servicios solo registran los eventos en el log.

Para usar en endpoints:
```python
@router.post("/bookings")
async def create(redis_client: Optional[Redis] = Depends(get_redis_client)):
    ...
```
"""

from contextlib import asynccontextmanager
from typing import AsyncIterator, Optional
import logging

from redis.asyncio import ConnectionPool, Redis

from app.core.config import get_settings

logger = logging.getLogger(__name__)

# Declaración global del pool de conexiones
REDIS_POOL: Optional[ConnectionPool] = None


async def initialize_redis_pool() -> Optional[ConnectionPool]:
    """
    Inicializa el pool de conexiones a Redis.
    Debe llamarse una sola vez al iniciar la aplicación.
    """
    global REDIS_POOL
    if REDIS_POOL is not None:
        return REDIS_POOL

    settings = get_settings()
    redis_url = settings.REDIS_URL
    if not redis_url:
        logger.info("REDIS_URL no configurada: publicación de eventos deshabilitada.")
        return None

    try:
        REDIS_POOL = ConnectionPool.from_url(
            redis_url,
            encoding="utf-8",
            decode_responses=True,
            max_connections=settings.REDIS_POOL_MAX_CONNECTIONS,
            socket_timeout=settings.REDIS_POOL_SOCKET_TIMEOUT,
            health_check_interval=settings.REDIS_POOL_HEALTH_CHECK_INTERVAL,
        )
        logger.info(
            f"Connection pool de Redis inicializado correctamente "
            f"(max_connections={settings.REDIS_POOL_MAX_CONNECTIONS})."
        )
    except Exception as e:
        logger.error(f"Error al inicializar connection pool de Redis: {e}", exc_info=True)
        REDIS_POOL = None
        raise
    return REDIS_POOL


async def get_redis_client() -> AsyncIterator[Optional[Redis]]:
    """
    Dependencia FastAPI para obtener un cliente Redis asíncrono usando el pool.

    Crea un cliente por request; el pool se reutiliza. Devuelve `None` si Redis
    no está configurado.
    """
    pool = REDIS_POOL or await initialize_redis_pool()
    if pool is None:
        yield None
        return

    client = Redis(connection_pool=pool)
    try:
        yield client
    finally:
        # Cerrar cliente para devolver la conexión al pool
        try:
            await client.aclose()
        except Exception as e:
            logger.warning(f"Error cerrando cliente Redis: {e}")


@asynccontextmanager
async def get_redis_for_jobs() -> AsyncIterator[Optional[Redis]]:
    """
    Context manager para obtener cliente Redis en background jobs (APScheduler).
    Para endpoints FastAPI usar get_redis_client() con Depends().
    """
    pool = REDIS_POOL or await initialize_redis_pool()
    if pool is None:
        yield None
        return

    client = Redis(connection_pool=pool)
    try:
        yield client
    finally:
        try:
            await client.aclose()
            logger.debug("Cliente Redis cerrado correctamente en background job")
        except Exception as e:
            logger.warning(f"Error cerrando cliente Redis en background job: {e}")


async def close_redis_client():
    """Cierra el pool de conexiones Redis al finalizar la aplicación."""
    global REDIS_POOL

    if REDIS_POOL:
        logger.info("Cerrando connection pool de Redis...")
        await REDIS_POOL.disconnect()
        REDIS_POOL = None
        logger.info("Connection pool de Redis cerrado.")
