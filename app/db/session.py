from sqlalchemy import create_engine
from sqlalchemy.engine import Engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.exc import SQLAlchemyError
import logging

from app.core.config import get_settings

logger = logging.getLogger(__name__)

# Obtener la instancia de configuración
settings_instance = get_settings()

# Obtener la URL directamente de la instancia de configuración
db_url = str(settings_instance.SQLALCHEMY_DATABASE_URI)


def _display_url(url: str) -> str:
    """Oculta las credenciales de la URL para poder loguearla."""
    if '@' in url:
        scheme = url.split('://')[0]
        host_info = url.split('@', 1)[1]
        return f"{scheme}://***@{host_info}"
    return url


def create_db_engine(url: str, **engine_kwargs) -> Engine:
    """
    Crea el engine de SQLAlchemy.

    SQLite se acepta para desarrollo y tests: se comparte la conexión entre
    hilos y se amplía el timeout de bloqueo para que las escrituras
    concurrentes sobre la misma sesión de clase esperen en lugar de fallar.
    pysqlite solo abre transacción antes de una escritura, por eso las
    operaciones de reservas empiezan siempre escribiendo en su BookingSlot.
    """
    if url.startswith("sqlite"):
        return create_engine(
            url,
            echo=False,
            connect_args={"check_same_thread": False, "timeout": 30},
            **engine_kwargs
        )

    return create_engine(
        url,
        echo=False,  # SIEMPRE False en producción para mejor rendimiento
        pool_pre_ping=True,
        pool_size=10,
        max_overflow=20,
        pool_timeout=30,
        pool_recycle=180,
        connect_args={
            "connect_timeout": 10,
            "options": "-c statement_timeout=30000",
        },
        execution_options={
            "isolation_level": "READ COMMITTED",
        }
    )


display_url = _display_url(db_url)

try:
    engine = create_db_engine(db_url)
    logger.info(f"Engine de base de datos creado: {display_url}")
except Exception as e:
    logger.critical(f"¡¡¡FALLO CRÍTICO AL CREAR ENGINE CON URL: {display_url}!!! Error: {e}", exc_info=True)
    raise

# Crear clase de sesión
SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)


# Dependencia para obtener la sesión de DB
def get_db():
    db = SessionLocal()
    try:
        yield db
    except SQLAlchemyError as e:
        logger.error(f"Error de SQLAlchemy en la sesión: {e}", exc_info=True)
        db.rollback()  # Hacer rollback en caso de error
        raise  # Relanzar la excepción para que FastAPI la maneje
    finally:
        # Asegurarse siempre de cerrar la sesión
        db.close()
