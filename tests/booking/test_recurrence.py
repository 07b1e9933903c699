"""
Tests de reservas recurrentes: generación de fechas y materialización de ocurrencias.
"""

from datetime import date, datetime, time, timezone

import pytest
from sqlalchemy.exc import OperationalError

from app.core.config import get_settings
from app.core.deps import Actor
from app.core.exceptions import Forbidden, InvalidRequest, InvalidState, NotFound
from app.models.booking import (
    Booking,
    BookingStatus,
    BookingType,
    RecurrenceType,
    RecurringBooking,
    RecurringBookingStatus,
)
from app.services.booking import booking_service
from app.services.recurring_booking import generate_occurrences, recurring_booking_service

NOW = datetime(2025, 6, 2, 8, 0, tzinfo=timezone.utc)


class TestGenerateOccurrences:

    def test_weekly_starts_on_first_matching_day(self):
        dates = generate_occurrences(RecurrenceType.WEEKLY, "Monday", date(2025, 6, 1), date(2025, 6, 30))
        assert dates == [date(2025, 6, 2), date(2025, 6, 9), date(2025, 6, 16), date(2025, 6, 23), date(2025, 6, 30)]

    def test_weekly_includes_start_date(self):
        dates = generate_occurrences(RecurrenceType.WEEKLY, "wednesday", date(2025, 6, 4), date(2025, 6, 11))
        assert dates == [date(2025, 6, 4), date(2025, 6, 11)]

    def test_no_matching_day_in_range(self):
        assert generate_occurrences(RecurrenceType.WEEKLY, "Sunday", date(2025, 6, 2), date(2025, 6, 7)) == []

    def test_end_before_start(self):
        assert generate_occurrences(RecurrenceType.WEEKLY, "Monday", date(2025, 6, 9), date(2025, 6, 2)) == []

    def test_monthly_keeps_day_of_month_on_recurrence_day(self):
        # Los días 27 de 2025 solo caen en lunes en enero y octubre
        dates = generate_occurrences(RecurrenceType.MONTHLY, "Monday", date(2025, 1, 27), date(2025, 12, 31))
        assert dates == [date(2025, 1, 27), date(2025, 10, 27)]

    def test_monthly_steps_from_start_date(self):
        # 2025-06-01 es domingo; los días 1 que caen en lunes son septiembre y diciembre
        dates = generate_occurrences(RecurrenceType.MONTHLY, "Monday", date(2025, 6, 1), date(2025, 12, 31))
        assert dates == [date(2025, 9, 1), date(2025, 12, 1)]

    def test_monthly_skips_short_months(self):
        dates = generate_occurrences(RecurrenceType.MONTHLY, "Monday", date(2025, 3, 31), date(2026, 8, 31))
        assert dates == [date(2025, 3, 31), date(2026, 8, 31)]
        assert all(d.weekday() == 0 for d in dates)

    def test_unknown_day(self):
        with pytest.raises(ValueError):
            generate_occurrences(RecurrenceType.WEEKLY, "Funday", date(2025, 6, 1), date(2025, 6, 30))


class TestCreateRecurring:

    async def _create(
        self, db, class_id, member_id=1, day="Monday", start=date(2025, 6, 2), end=date(2025, 6, 23),
        recurrence_type=RecurrenceType.WEEKLY, end_time=time(19, 0),
    ):
        return await recurring_booking_service.create_recurring(
            db,
            member_id=member_id,
            class_id=class_id,
            recurrence_type=recurrence_type,
            recurrence_day=day,
            start_date=start,
            end_date=end,
            start_time=time(18, 0),
            end_time=end_time,
            now=NOW,
        )

    @pytest.mark.asyncio
    async def test_every_occurrence_is_booked(self, db, spin_class):
        result = await self._create(db, spin_class.id)

        assert result.booked_count == 4
        assert result.waitlisted_count == 0
        assert result.skipped_count == 0
        assert result.recurring_booking.total_sessions == 4
        assert result.recurring_booking.status == RecurringBookingStatus.ACTIVE
        assert [o.date for o in result.occurrences] == [
            date(2025, 6, 2), date(2025, 6, 9), date(2025, 6, 16), date(2025, 6, 23)
        ]

        bookings = db.query(Booking).all()
        assert len(bookings) == 4
        assert all(b.booking_type == BookingType.RECURRING for b in bookings)
        assert all(b.recurring_booking_id == result.recurring_booking.id for b in bookings)

    @pytest.mark.asyncio
    async def test_outcomes_are_independent(self, db, class_factory):
        small = class_factory(name="Boxeo", capacity=1)
        await booking_service.request_booking(db, 7, small.id, date(2025, 6, 16), now=NOW)
        await booking_service.request_booking(db, 1, small.id, date(2025, 6, 23), now=NOW)

        result = await self._create(db, small.id)

        statuses = {o.date: o for o in result.occurrences}
        assert statuses[date(2025, 6, 2)].status == "booked"
        assert statuses[date(2025, 6, 9)].status == "booked"
        assert statuses[date(2025, 6, 16)].status == "waitlisted"
        assert statuses[date(2025, 6, 16)].position == 1
        assert statuses[date(2025, 6, 23)].status == "skipped"
        assert statuses[date(2025, 6, 23)].error == "already_booked"
        assert (result.booked_count, result.waitlisted_count, result.skipped_count) == (2, 1, 1)

    @pytest.mark.asyncio
    async def test_days_without_session_are_skipped(self, db, spin_class):
        result = await self._create(db, spin_class.id, day="Tuesday")

        # Martes 3, 10 y 17 de junio
        assert result.skipped_count == 3
        assert {o.error for o in result.occurrences} == {"invalid_slot"}
        # La plantilla se guarda aunque no se reserve nada
        assert db.query(RecurringBooking).count() == 1

    @pytest.mark.asyncio
    async def test_monthly_books_only_recurrence_day(self, db, class_factory):
        daily = class_factory(name="Funcional", schedules=[
            {"day_of_week": day, "start_time": "18:00", "end_time": "19:00"}
            for day in ("Monday", "Tuesday", "Wednesday", "Thursday", "Friday", "Saturday", "Sunday")
        ])

        result = await self._create(
            db, daily.id, recurrence_type=RecurrenceType.MONTHLY,
            start=date(2025, 6, 2), end=date(2026, 2, 28),
        )

        assert [o.date for o in result.occurrences] == [date(2025, 6, 2), date(2026, 2, 2)]
        assert result.booked_count == 2
        assert result.recurring_booking.total_sessions == 2
        assert all(b.booking_date.weekday() == 0 for b in db.query(Booking).all())

    @pytest.mark.asyncio
    async def test_end_time_must_match_schedule(self, db, spin_class):
        with pytest.raises(InvalidRequest):
            await self._create(db, spin_class.id, end_time=time(19, 30))
        assert db.query(RecurringBooking).count() == 0

    @pytest.mark.asyncio
    async def test_persistent_conflict_skips_occurrence(self, db, spin_class, monkeypatch):
        original = booking_service.request_booking

        async def flaky_request_booking(db, member_id, class_id, booking_date, **kwargs):
            if booking_date == date(2025, 6, 9):
                raise OperationalError("UPDATE booking_slot", {}, Exception("database is locked"))
            return await original(db, member_id, class_id, booking_date, **kwargs)

        monkeypatch.setattr(booking_service, "request_booking", flaky_request_booking)

        result = await self._create(db, spin_class.id)

        statuses = {o.date: o for o in result.occurrences}
        assert statuses[date(2025, 6, 9)].status == "skipped"
        assert statuses[date(2025, 6, 9)].error == "conflict"
        assert result.booked_count == 3
        assert db.query(Booking).count() == 3

    @pytest.mark.asyncio
    async def test_past_occurrences_are_skipped(self, db, spin_class):
        result = await self._create(db, spin_class.id, start=date(2025, 5, 26), end=date(2025, 6, 9))

        assert [o.status for o in result.occurrences] == ["skipped", "booked", "booked"]

    @pytest.mark.asyncio
    async def test_invalid_ranges(self, db, spin_class):
        with pytest.raises(InvalidRequest):
            await self._create(db, spin_class.id, start=date(2025, 6, 9), end=date(2025, 6, 2))
        with pytest.raises(InvalidRequest):
            await self._create(db, spin_class.id, day="Sunday", start=date(2025, 6, 2), end=date(2025, 6, 7))
        with pytest.raises(InvalidRequest):
            await self._create(db, spin_class.id, day="Funday")
        with pytest.raises(NotFound):
            await self._create(db, 999)
        assert db.query(RecurringBooking).count() == 0

    @pytest.mark.asyncio
    async def test_too_many_occurrences(self, db, spin_class, monkeypatch):
        monkeypatch.setattr(get_settings(), "RECURRING_MAX_OCCURRENCES", 3)

        with pytest.raises(InvalidRequest):
            await self._create(db, spin_class.id)
        assert db.query(Booking).count() == 0


class TestRecurringLifecycle:

    async def _template(self, db, class_id):
        result = await recurring_booking_service.create_recurring(
            db, member_id=1, class_id=class_id, recurrence_type=RecurrenceType.WEEKLY,
            recurrence_day="Monday", start_date=date(2025, 6, 2), end_date=date(2025, 6, 9),
            start_time=time(18, 0), end_time=time(19, 0), now=NOW,
        )
        return result.recurring_booking

    @pytest.mark.asyncio
    async def test_cancel_template_keeps_bookings(self, db, spin_class):
        template = await self._template(db, spin_class.id)

        cancelled = recurring_booking_service.cancel_recurring(db, template.id, Actor(member_id=1))

        assert cancelled.status == RecurringBookingStatus.CANCELLED
        assert db.query(Booking).filter(Booking.status == BookingStatus.CONFIRMED).count() == 2
        with pytest.raises(InvalidState):
            recurring_booking_service.cancel_recurring(db, template.id, Actor(member_id=1))

    @pytest.mark.asyncio
    async def test_cancel_template_permissions(self, db, spin_class, admin_actor):
        template = await self._template(db, spin_class.id)

        with pytest.raises(Forbidden):
            recurring_booking_service.cancel_recurring(db, template.id, Actor(member_id=2))
        with pytest.raises(NotFound):
            recurring_booking_service.cancel_recurring(db, 999, admin_actor)
        assert recurring_booking_service.cancel_recurring(db, template.id, admin_actor).status == RecurringBookingStatus.CANCELLED

    @pytest.mark.asyncio
    async def test_completion_updates_template(self, db, spin_class):
        template = await self._template(db, spin_class.id)

        booking_service.complete_finished_bookings(db, now=datetime(2025, 6, 2, 20, 0, tzinfo=timezone.utc))
        assert db.get(RecurringBooking, template.id).completed_sessions == 1
        assert db.get(RecurringBooking, template.id).status == RecurringBookingStatus.ACTIVE

        booking_service.complete_finished_bookings(db, now=datetime(2025, 6, 10, 8, 0, tzinfo=timezone.utc))
        refreshed = db.get(RecurringBooking, template.id)
        assert refreshed.completed_sessions == 2
        assert refreshed.status == RecurringBookingStatus.COMPLETED

    @pytest.mark.asyncio
    async def test_member_templates(self, db, spin_class):
        await self._template(db, spin_class.id)

        assert len(recurring_booking_service.get_member_recurring(db, 1)) == 1
        assert recurring_booking_service.get_member_recurring(db, 2) == []
