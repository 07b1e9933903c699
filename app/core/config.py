import os
from typing import Any, List, Optional, Union
from functools import lru_cache
import logging

from pydantic import AnyHttpUrl, Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

# Configurar el logger
logger = logging.getLogger(__name__)

class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=True,
        extra="ignore"  # Permitir campos extra en .env
    )

    # Configuración básica
    API_V1_STR: str = "/api/v1"

    # Información del proyecto
    PROJECT_NAME: str = "GymBookingAPI"
    PROJECT_DESCRIPTION: str = "API con FastAPI para reservas de clases, lista de espera y reservas recurrentes"
    VERSION: str = "0.1.0"

    # Debug mode
    DEBUG_MODE: bool = os.getenv("DEBUG_MODE", "False").lower() in ("true", "1", "t")

    # Logging
    # LOG_DIR vacío = solo consola
    LOG_DIR: str = "logs"
    LOG_FILE_PREFIX: str = "gym_booking"
    # Nivel de los loggers del motor de reservas (services, scheduler, lock)
    BOOKING_LOG_LEVEL: Optional[str] = None
    SQL_ECHO: bool = False

    @field_validator("BOOKING_LOG_LEVEL", mode="before")
    def check_log_level(cls, v: Optional[str]) -> Optional[str]:
        if not v:
            return None
        level = str(v).strip().upper()
        if level not in ("CRITICAL", "ERROR", "WARNING", "INFO", "DEBUG"):
            raise ValueError(f"Nivel de log desconocido: {v}")
        return level

    # CORS
    BACKEND_CORS_ORIGINS: List[AnyHttpUrl] = []

    @field_validator("BACKEND_CORS_ORIGINS", mode='before')
    def assemble_cors_origins(cls, v: Union[str, List[str]]) -> List[str]:
        if isinstance(v, str) and not v.startswith("["):
            return [i.strip() for i in v.split(",") if i.strip()]
        elif isinstance(v, (list, str)):
            return v
        raise ValueError(v)

    DATABASE_URL: str = "sqlite:///./gym_booking.db"
    SQLALCHEMY_DATABASE_URI: Optional[str] = Field(default=None, validate_default=True)

    @field_validator("DATABASE_URL", mode="before")
    def ensure_proper_url_format(cls, v: Optional[str]) -> str:
        """Asegura que DATABASE_URL esté en el formato correcto."""
        # No loguear el valor completo por seguridad
        logger.info("DATABASE_URL detectado en configuración")
        if not v:
            return "sqlite:///./gym_booking.db"
        # Asegurar formato postgresql://
        if v.startswith('postgres://'):
            logger.info("Corrigiendo formato de postgres:// a postgresql://")
            return 'postgresql://' + v[len('postgres://'):]
        return v

    @field_validator("SQLALCHEMY_DATABASE_URI", mode="before")
    def assemble_db_connection(cls, v: Optional[str], info) -> Any:
        """Configura la URI de SQLAlchemy basada en DATABASE_URL si no se indica explícitamente."""
        if v:
            return v
        return info.data.get("DATABASE_URL")

    # Configuración de Redis (publicación de eventos de reservas)
    # Vacío = deshabilitado, los eventos solo se registran en el log
    REDIS_URL: str = ""
    REDIS_POOL_MAX_CONNECTIONS: int = int(os.getenv("REDIS_POOL_MAX_CONNECTIONS", "50"))
    REDIS_POOL_SOCKET_TIMEOUT: int = int(os.getenv("REDIS_POOL_SOCKET_TIMEOUT", "5"))
    REDIS_POOL_HEALTH_CHECK_INTERVAL: int = int(os.getenv("REDIS_POOL_HEALTH_CHECK_INTERVAL", "30"))
    BOOKING_EVENTS_CHANNEL: str = "booking-events"

    @field_validator("REDIS_URL", mode="before")
    def clean_redis_url(cls, v: Optional[str]) -> str:
        if not v:
            return ""
        # Eliminar comentarios (todo lo que sigue a #) y espacios
        if '#' in v:
            v = v.split('#')[0]
            logger.info("REDIS_URL: eliminados comentarios en configuración")
        return v.strip()

    # Zona horaria en la que se expresan los horarios de las clases
    GYM_TIMEZONE: str = "UTC"

    # Lista de espera
    WAITLIST_OFFER_WINDOW_HOURS: int = 24
    OFFER_EXPIRY_SWEEP_MINUTES: int = 5

    # Reservas
    BOOKING_COMPLETION_SWEEP_MINUTES: int = 15
    # Horas mínimas de antelación para que un miembro cancele (0 = sin límite)
    CANCELLATION_CUTOFF_HOURS: int = 2
    RECURRING_MAX_OCCURRENCES: int = 104

    # Scheduler de tareas en segundo plano
    SCHEDULER_ENABLED: bool = True

    @field_validator("WAITLIST_OFFER_WINDOW_HOURS", "RECURRING_MAX_OCCURRENCES")
    def validate_positive(cls, v: int) -> int:
        if v <= 0:
            raise ValueError("El valor debe ser mayor que 0")
        return v

    @field_validator("GYM_TIMEZONE")
    def validate_timezone(cls, v: str) -> str:
        import pytz
        if v not in pytz.all_timezones_set:
            raise ValueError(f"Zona horaria desconocida: {v}")
        return v


# Usar una función con caché para obtener la configuración
@lru_cache()
def get_settings() -> Settings:
    settings = Settings()
    logger.info("Configuración cargada correctamente")
    return settings
