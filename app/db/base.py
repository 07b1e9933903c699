# Importar todos los modelos para que Alembic y create_all los detecten
from app.db.base_class import Base  # noqa
from app.models.schedule import Class, ClassSchedule  # noqa
from app.models.booking import (  # noqa
    BookingSlot,
    Booking,
    WaitlistEntry,
    RecurringBooking,
)
