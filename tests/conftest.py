import os

# Entorno de pruebas: se fija antes de importar la app (get_settings está cacheado)
os.environ["DATABASE_URL"] = "sqlite://"
os.environ["REDIS_URL"] = ""
os.environ["SCHEDULER_ENABLED"] = "false"
os.environ["GYM_TIMEZONE"] = "UTC"
os.environ["WAITLIST_OFFER_WINDOW_HOURS"] = "24"
os.environ["CANCELLATION_CUTOFF_HOURS"] = "2"
os.environ["LOG_DIR"] = ""

from datetime import datetime, timezone

import pytest
from fastapi.testclient import TestClient
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from app.core.clock import get_now
from app.core.deps import Actor, MemberRole
from app.db.base import Base
from app.db.redis_client import get_redis_client
from app.db.session import create_db_engine, get_db
from app.main import app
from app.repositories.schedule import class_repository

# Lunes 2 de junio de 2025, 08:00 UTC
NOW = datetime(2025, 6, 2, 8, 0, tzinfo=timezone.utc)


@pytest.fixture(scope="function")
def db_engine():
    """Base de datos SQLite en memoria, nueva para cada test."""
    engine = create_db_engine("sqlite://", poolclass=StaticPool)
    Base.metadata.create_all(bind=engine)
    yield engine
    Base.metadata.drop_all(bind=engine)
    engine.dispose()


@pytest.fixture(scope="function")
def db(db_engine):
    """
    Crea una sesión de base de datos fresca para cada test y la cierra al finalizar.
    """
    TestingSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=db_engine)
    session = TestingSessionLocal()
    yield session
    session.close()


@pytest.fixture
def now():
    return NOW


@pytest.fixture(scope="function")
def client(db):
    """
    Crea un cliente de prueba con la sesión de test, sin Redis y con el reloj fijo.
    """
    def override_get_db():
        try:
            yield db
        finally:
            pass

    async def override_get_now():
        return NOW

    async def override_get_redis_client():
        yield None

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_now] = override_get_now
    app.dependency_overrides[get_redis_client] = override_get_redis_client
    with TestClient(app) as c:
        yield c
    app.dependency_overrides.clear()


@pytest.fixture
def class_factory(db):
    """Crea clases del catálogo con su horario semanal."""
    def _create(name="Spinning", capacity=2, duration=60, schedules=None, **kwargs):
        if schedules is None:
            schedules = [
                {"day_of_week": "Monday", "start_time": "18:00", "end_time": "19:00"},
                {"day_of_week": "Wednesday", "start_time": "18:00", "end_time": "19:00"},
            ]
        return class_repository.create_with_schedules(db, obj_in={
            "name": name,
            "capacity": capacity,
            "duration": duration,
            "schedules": schedules,
            **kwargs,
        })
    return _create


@pytest.fixture
def spin_class(class_factory):
    """Spinning, 2 plazas, lunes y miércoles 18:00-19:00."""
    return class_factory()


@pytest.fixture
def member_actor():
    return Actor(member_id=1, role=MemberRole.MEMBER)


@pytest.fixture
def admin_actor():
    return Actor(member_id=900, role=MemberRole.ADMIN)


@pytest.fixture
def trainer_actor():
    return Actor(member_id=800, role=MemberRole.TRAINER)


def member_headers(member_id: int, role: str = "member"):
    return {"X-Member-ID": str(member_id), "X-Member-Role": role}


@pytest.fixture
def headers():
    """Cabeceras de identidad tal como las reenvía el gateway."""
    return member_headers
