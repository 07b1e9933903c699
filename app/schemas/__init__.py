from app.schemas.schedule import (
    ClassScheduleEntry,
    ClassSchedule,
    ClassCreate,
    Class,
    SessionSlot,
)
from app.schemas.booking import (
    BookingCreate,
    Booking,
    MemberBookings,
    WaitlistJoin,
    WaitlistEntry,
    WaitlistPosition,
    BookedOutcome,
    WaitlistedOutcome,
    BookingOutcome,
    Availability,
    RecurringBookingCreate,
    RecurringBooking,
    OccurrenceOutcome,
    RecurringBookingResult,
)
