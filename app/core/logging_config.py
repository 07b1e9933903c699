import logging
import sys
import os
from datetime import datetime
from app.core.config import get_settings

LOG_FORMAT = "%(asctime)s | %(levelname)-8s | %(name)-20s | %(filename)s:%(lineno)d | %(message)s"
LOG_DATE_FORMAT = "%Y-%m-%d %H:%M:%S"

# Loggers del motor de reservas (decisiones de reserva, cola y barridos)
BOOKING_LOGGERS = (
    "app.services",
    "app.core.scheduler",
    "member_identity",
)

# Ruidosos: se quedan en WARNING salvo que se pida otra cosa
QUIET_LOGGERS = {
    "uvicorn": logging.INFO,
    "uvicorn.access": logging.INFO,
    "apscheduler": logging.WARNING,
    "redis": logging.WARNING,
    "sqlalchemy.engine": logging.WARNING,
}


def log_file_path(log_dir: str, prefix: str, now: datetime = None) -> str:
    """Ruta del fichero de log diario: <log_dir>/<prefix>_YYYYMMDD.log"""
    now = now or datetime.now()
    return os.path.join(log_dir, f"{prefix}_{now.strftime('%Y%m%d')}.log")


def setup_logging():
    """
    Configura el logger raíz según Settings.

    Consola siempre; fichero diario en LOG_DIR si está definido. Los loggers
    del motor de reservas pueden ir a un nivel propio (BOOKING_LOG_LEVEL) sin
    subir el de todo el servicio, y SQL_ECHO muestra las sentencias SQL, útil
    para ver el UPDATE de bloqueo de cada sesión.
    """
    settings = get_settings()
    log = logging.getLogger()
    level = logging.DEBUG if settings.DEBUG_MODE else logging.INFO
    log.setLevel(level)

    formatter = logging.Formatter(fmt=LOG_FORMAT, datefmt=LOG_DATE_FORMAT)
    handlers = []

    console_handler = logging.StreamHandler(sys.stdout)
    handlers.append(console_handler)

    log_file = None
    if settings.LOG_DIR:
        os.makedirs(settings.LOG_DIR, exist_ok=True)
        log_file = log_file_path(settings.LOG_DIR, settings.LOG_FILE_PREFIX)
        handlers.append(logging.FileHandler(log_file))

    # Limpiar handlers existentes si Uvicorn/otro añadió alguno antes
    if log.hasHandlers():
        log.handlers.clear()
    for handler in handlers:
        # El filtrado lo hace cada logger, así BOOKING_LOG_LEVEL=DEBUG llega a los handlers
        handler.setLevel(logging.DEBUG)
        handler.setFormatter(formatter)
        log.addHandler(handler)

    for name, quiet_level in QUIET_LOGGERS.items():
        logging.getLogger(name).setLevel(quiet_level)
    if settings.SQL_ECHO:
        logging.getLogger("sqlalchemy.engine").setLevel(logging.INFO)

    booking_level = getattr(logging, settings.BOOKING_LOG_LEVEL) if settings.BOOKING_LOG_LEVEL else level
    for name in BOOKING_LOGGERS:
        logging.getLogger(name).setLevel(booking_level)

    log.info(
        "Configuración de logging aplicada. Nivel %s, reservas %s, fichero %s.",
        logging.getLevelName(level), logging.getLevelName(booking_level), log_file or "-"
    )
