"""
Tests de la configuración de logging.
"""

import logging
from datetime import datetime

import pytest
from pydantic import ValidationError

from app.core.config import Settings, get_settings
from app.core.logging_config import BOOKING_LOGGERS, log_file_path, setup_logging


@pytest.fixture
def restore_logging():
    root = logging.getLogger()
    previous_handlers = list(root.handlers)
    previous_level = root.level
    yield
    for handler in root.handlers:
        if handler not in previous_handlers:
            handler.close()
    root.handlers[:] = previous_handlers
    root.setLevel(previous_level)
    for name in BOOKING_LOGGERS:
        logging.getLogger(name).setLevel(logging.NOTSET)


def test_log_file_path():
    path = log_file_path("var/log", "reservas", now=datetime(2025, 6, 2, 8, 0))
    assert path.replace("\\", "/") == "var/log/reservas_20250602.log"


def test_daily_file_in_configured_dir(monkeypatch, tmp_path, restore_logging):
    settings = get_settings()
    monkeypatch.setattr(settings, "LOG_DIR", str(tmp_path / "logs"))
    monkeypatch.setattr(settings, "LOG_FILE_PREFIX", "reservas")

    setup_logging()
    logging.getLogger("app.services.booking").info("reserva confirmada")

    files = list((tmp_path / "logs").glob("reservas_*.log"))
    assert len(files) == 1
    for handler in logging.getLogger().handlers:
        handler.flush()
    assert "reserva confirmada" in files[0].read_text()


def test_console_only_without_log_dir(monkeypatch, restore_logging):
    monkeypatch.setattr(get_settings(), "LOG_DIR", "")

    setup_logging()

    assert not any(isinstance(h, logging.FileHandler) for h in logging.getLogger().handlers)


def test_booking_loggers_have_their_own_level(monkeypatch, restore_logging):
    settings = get_settings()
    monkeypatch.setattr(settings, "LOG_DIR", "")
    monkeypatch.setattr(settings, "DEBUG_MODE", False)
    monkeypatch.setattr(settings, "BOOKING_LOG_LEVEL", "DEBUG")

    setup_logging()

    assert logging.getLogger().level == logging.INFO
    assert logging.getLogger("app.services.waitlist").isEnabledFor(logging.DEBUG)
    assert logging.getLogger("app.core.scheduler").isEnabledFor(logging.DEBUG)
    assert not logging.getLogger("app.main").isEnabledFor(logging.DEBUG)
    assert logging.getLogger("apscheduler").level == logging.WARNING


def test_sql_echo_enables_engine_logger(monkeypatch, restore_logging):
    settings = get_settings()
    monkeypatch.setattr(settings, "LOG_DIR", "")
    monkeypatch.setattr(settings, "SQL_ECHO", True)

    setup_logging()

    assert logging.getLogger("sqlalchemy.engine").level == logging.INFO
    logging.getLogger("sqlalchemy.engine").setLevel(logging.WARNING)


def test_unknown_booking_log_level():
    with pytest.raises(ValidationError):
        Settings(BOOKING_LOG_LEVEL="loud")
    assert Settings(BOOKING_LOG_LEVEL="debug").BOOKING_LOG_LEVEL == "DEBUG"
