"""
Tests de resolución de sesiones (clase + fecha + hora) sin base de datos.
"""

from datetime import date, datetime, time, timezone

import pytest

from app.core.exceptions import InvalidSlot
from app.models.schedule import Class, ClassSchedule
from app.services import slot_resolver

NOW = datetime(2025, 6, 2, 8, 0, tzinfo=timezone.utc)
NEXT_MONDAY = date(2025, 6, 9)
NEXT_FRIDAY = date(2025, 6, 6)


@pytest.fixture
def spin_class():
    return Class(
        id=1,
        name="Spinning",
        capacity=10,
        duration=45,
        location="Sala 1",
        schedules=[
            ClassSchedule(day_of_week=0, start_time=time(18, 0), end_time=time(19, 0)),
            ClassSchedule(day_of_week=4, start_time=time(7, 0), end_time=time(8, 0)),
            ClassSchedule(day_of_week=4, start_time=time(19, 0), end_time=time(20, 0)),
        ],
    )


class TestResolve:

    def test_single_session_day(self, spin_class):
        slot = slot_resolver.resolve(spin_class, NEXT_MONDAY, NOW, tz="UTC")

        assert slot.class_id == 1
        assert slot.start_time == time(18, 0)
        assert slot.end_time == time(19, 0)
        assert slot.starts_at == datetime(2025, 6, 9, 18, 0, tzinfo=timezone.utc)
        assert slot.ends_at == datetime(2025, 6, 9, 19, 0, tzinfo=timezone.utc)
        assert slot.identity == (1, NEXT_MONDAY, time(18, 0))

    def test_day_without_session(self, spin_class):
        with pytest.raises(InvalidSlot):
            slot_resolver.resolve(spin_class, date(2025, 6, 10), NOW, tz="UTC")  # martes

    def test_wrong_start_time(self, spin_class):
        with pytest.raises(InvalidSlot):
            slot_resolver.resolve(spin_class, NEXT_MONDAY, NOW, start_time=time(9, 0), tz="UTC")

    def test_ambiguous_day_requires_start_time(self, spin_class):
        with pytest.raises(InvalidSlot) as exc_info:
            slot_resolver.resolve(spin_class, NEXT_FRIDAY, NOW, tz="UTC")
        assert "start_time" in exc_info.value.message

        slot = slot_resolver.resolve(spin_class, NEXT_FRIDAY, NOW, start_time=time(19, 0), tz="UTC")
        assert slot.end_time == time(20, 0)

    def test_session_already_started(self, spin_class):
        started = datetime(2025, 6, 2, 18, 0, tzinfo=timezone.utc)
        with pytest.raises(InvalidSlot):
            slot_resolver.resolve(spin_class, date(2025, 6, 2), started, tz="UTC")

        # Un minuto antes sigue siendo reservable
        just_before = datetime(2025, 6, 2, 17, 59, tzinfo=timezone.utc)
        slot = slot_resolver.resolve(spin_class, date(2025, 6, 2), just_before, tz="UTC")
        assert slot.booking_date == date(2025, 6, 2)

    def test_schedule_is_local_gym_time(self, spin_class):
        # 18:00 en Nueva York (EDT, UTC-4) son las 22:00 UTC
        slot = slot_resolver.resolve(spin_class, NEXT_MONDAY, NOW, tz="America/New_York")
        assert slot.starts_at == datetime(2025, 6, 9, 22, 0, tzinfo=timezone.utc)

    def test_naive_now_is_utc(self, spin_class):
        slot = slot_resolver.resolve(spin_class, NEXT_MONDAY, NOW.replace(tzinfo=None), tz="UTC")
        assert slot.start_time == time(18, 0)


class TestSessionFor:

    def test_uses_schedule_end_time(self, spin_class):
        slot = slot_resolver.session_for(spin_class, NEXT_MONDAY, time(18, 0), tz="UTC")
        assert slot.end_time == time(19, 0)

    def test_falls_back_to_duration_when_schedule_removed(self, spin_class):
        slot = slot_resolver.session_for(spin_class, NEXT_MONDAY, time(10, 0), tz="UTC")
        assert slot.end_time == time(10, 45)

    def test_does_not_validate_against_now(self, spin_class):
        slot = slot_resolver.session_for(spin_class, date(2025, 5, 26), time(18, 0), tz="UTC")
        assert slot.starts_at < NOW
