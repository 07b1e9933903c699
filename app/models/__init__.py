from app.models.schedule import DayOfWeek, Class, ClassSchedule
from app.models.booking import (
    BookingStatus, BookingType, WaitlistStatus, RecurrenceType, RecurringBookingStatus,
    BookingSlot, Booking, WaitlistEntry, RecurringBooking
)
