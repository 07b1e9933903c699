from typing import Optional, List, Literal, Union
from typing_extensions import Annotated
from datetime import datetime, time, date
from pydantic import BaseModel, Field, field_validator, model_validator

from app.models.booking import (
    BookingStatus,
    BookingType,
    WaitlistStatus,
    RecurrenceType,
    RecurringBookingStatus,
)
from app.models.schedule import DayOfWeek
from app.schemas.schedule import parse_time_value


# Booking schemas
class BookingCreate(BaseModel):
    class_id: int
    date: date
    start_time: Optional[time] = Field(
        None, description="Hora de inicio (HH:MM). Opcional si la clase tiene una sola sesión ese día"
    )
    notes: Optional[str] = Field(None, max_length=500)
    waitlist_if_full: bool = Field(True, description="Entrar en lista de espera si la sesión está llena")

    @field_validator('start_time', mode='before')
    @classmethod
    def parse_time_string(cls, value):
        return parse_time_value(value)


class Booking(BaseModel):
    id: int
    member_id: int
    class_id: int
    class_name: str
    booking_date: date
    start_time: time
    end_time: time
    location: Optional[str] = None
    status: BookingStatus
    booking_type: BookingType
    recurring_booking_id: Optional[int] = None
    waitlist_entry_id: Optional[int] = None
    notes: Optional[str] = None
    cancelled_at: Optional[datetime] = None
    cancelled_by: Optional[int] = None
    cancellation_reason: Optional[str] = None
    completed_at: Optional[datetime] = None
    created_at: Optional[datetime] = None

    model_config = {"from_attributes": True}


class MemberBookings(BaseModel):
    upcoming: List[Booking] = []
    past: List[Booking] = []
    total: int = 0


# Waitlist schemas
class WaitlistJoin(BaseModel):
    class_id: int
    date: date
    start_time: Optional[time] = None
    notes: Optional[str] = Field(None, max_length=500)

    @field_validator('start_time', mode='before')
    @classmethod
    def parse_time_string(cls, value):
        return parse_time_value(value)


class WaitlistEntry(BaseModel):
    id: int
    member_id: int
    class_id: int
    class_name: str
    booking_date: date
    start_time: time
    position: Optional[int] = Field(None, description="Posición en la cola; solo mientras status es waiting")
    status: WaitlistStatus
    notified_at: Optional[datetime] = None
    expires_at: Optional[datetime] = None
    notes: Optional[str] = None
    recurring_booking_id: Optional[int] = None
    created_at: Optional[datetime] = None

    model_config = {"from_attributes": True}


class WaitlistPosition(BaseModel):
    entry_id: int
    status: WaitlistStatus
    position: Optional[int] = None


# Resultado de una petición de reserva: reserva confirmada o entrada en lista de espera
class BookedOutcome(BaseModel):
    type: Literal["booking"] = "booking"
    booking: Booking


class WaitlistedOutcome(BaseModel):
    type: Literal["waitlist"] = "waitlist"
    position: int
    waitlist_entry: WaitlistEntry


BookingOutcome = Annotated[Union[BookedOutcome, WaitlistedOutcome], Field(discriminator="type")]


# Availability
class Availability(BaseModel):
    class_id: int
    date: date
    start_time: time
    capacity: int
    booked_count: int
    offered_count: int = Field(0, description="Plazas retenidas por ofertas de lista de espera pendientes")
    available_spots: int
    waitlist_count: int
    is_full: bool
    can_book: bool
    can_join_waitlist: bool


# Recurring booking schemas
class RecurringBookingCreate(BaseModel):
    class_id: int
    recurrence_type: RecurrenceType = RecurrenceType.WEEKLY
    recurrence_day: str = Field(..., description="Día de la semana (Monday ... Sunday)")
    start_date: date
    end_date: date
    start_time: time
    end_time: time
    notes: Optional[str] = Field(None, max_length=500)

    @field_validator('recurrence_day', mode='before')
    @classmethod
    def normalize_day(cls, value):
        if isinstance(value, int):
            return DayOfWeek(value).label
        return DayOfWeek.from_label(str(value)).label

    @field_validator('start_time', 'end_time', mode='before')
    @classmethod
    def parse_time_string(cls, value):
        return parse_time_value(value)

    @model_validator(mode='after')
    def check_times(self):
        if self.end_time <= self.start_time:
            raise ValueError('end_time debe ser posterior a start_time')
        return self


class RecurringBooking(BaseModel):
    id: int
    member_id: int
    class_id: int
    class_name: str
    recurrence_type: RecurrenceType
    recurrence_day: str
    start_date: date
    end_date: date
    start_time: time
    end_time: time
    status: RecurringBookingStatus
    total_sessions: int
    completed_sessions: int
    notes: Optional[str] = None
    created_at: Optional[datetime] = None

    model_config = {"from_attributes": True}


class OccurrenceOutcome(BaseModel):
    date: date
    status: Literal["booked", "waitlisted", "skipped"]
    booking_id: Optional[int] = None
    waitlist_entry_id: Optional[int] = None
    position: Optional[int] = None
    error: Optional[str] = Field(None, description="Código del error cuando la ocurrencia se omite")


class RecurringBookingResult(BaseModel):
    recurring_booking: RecurringBooking
    occurrences: List[OccurrenceOutcome] = []
    booked_count: int = 0
    waitlisted_count: int = 0
    skipped_count: int = 0
