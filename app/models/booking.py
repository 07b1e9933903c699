from sqlalchemy import (
    Column, Integer, String, ForeignKey, Time, Date, DateTime, Text, Enum, Index, UniqueConstraint, CheckConstraint
)
from sqlalchemy.sql import func
from sqlalchemy.orm import relationship
import enum

from app.db.base_class import Base


class BookingStatus(str, enum.Enum):
    CONFIRMED = "confirmed"
    CANCELLED = "cancelled"
    COMPLETED = "completed"


class BookingType(str, enum.Enum):
    SINGLE = "single"
    RECURRING = "recurring"


class WaitlistStatus(str, enum.Enum):
    WAITING = "waiting"      # En cola, con posición asignada
    OFFERED = "offered"      # Plaza ofrecida, pendiente de aceptar antes de expires_at
    EXPIRED = "expired"      # Oferta caducada o el miembro abandonó la lista
    CONVERTED = "converted"  # Oferta aceptada, convertida en reserva


class RecurrenceType(str, enum.Enum):
    WEEKLY = "weekly"
    MONTHLY = "monthly"


class RecurringBookingStatus(str, enum.Enum):
    ACTIVE = "active"
    CANCELLED = "cancelled"
    COMPLETED = "completed"


class BookingSlot(Base):
    """
    Identidad de sesión (clase + fecha + hora de inicio).

    Una fila por sesión con reservas o lista de espera. Cada operación que
    modifica la sesión incrementa `version` antes de decidir, lo que serializa
    las decisiones sobre la misma sesión sin bloquear a las demás.
    """
    __tablename__ = "booking_slot"

    id = Column(Integer, primary_key=True, index=True)
    class_id = Column(Integer, ForeignKey("class.id"), nullable=False)
    booking_date = Column(Date, nullable=False)
    start_time = Column(Time, nullable=False)
    version = Column(Integer, nullable=False, default=0)

    created_at = Column(DateTime(timezone=True), server_default=func.now())

    __table_args__ = (
        UniqueConstraint('class_id', 'booking_date', 'start_time', name='uq_booking_slot_session'),
    )


class Booking(Base):
    """Reserva confirmada de un miembro en una sesión. Nunca se borra (historial)."""
    __tablename__ = "booking"

    id = Column(Integer, primary_key=True, index=True)
    member_id = Column(Integer, nullable=False, index=True)
    class_id = Column(Integer, ForeignKey("class.id"), nullable=False)
    class_name = Column(String, nullable=False)  # Desnormalizado para el historial
    booking_date = Column(Date, nullable=False)
    start_time = Column(Time, nullable=False)
    end_time = Column(Time, nullable=False)
    location = Column(String, nullable=True)
    status = Column(Enum(BookingStatus), nullable=False, default=BookingStatus.CONFIRMED)
    booking_type = Column(Enum(BookingType), nullable=False, default=BookingType.SINGLE)
    recurring_booking_id = Column(Integer, ForeignKey("recurring_booking.id"), nullable=True, index=True)
    waitlist_entry_id = Column(Integer, ForeignKey("waitlist_entry.id"), nullable=True)
    notes = Column(Text, nullable=True)

    cancelled_at = Column(DateTime(timezone=True), nullable=True)
    cancelled_by = Column(Integer, nullable=True)
    cancellation_reason = Column(String, nullable=True)
    completed_at = Column(DateTime(timezone=True), nullable=True)

    recurring_booking = relationship("RecurringBooking", back_populates="bookings")

    # Campos de auditoría
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), onupdate=func.now())

    __table_args__ = (
        # Conteo de confirmadas por sesión
        Index('ix_booking_session_status', 'class_id', 'booking_date', 'start_time', 'status'),
    )


class WaitlistEntry(Base):
    """Entrada en la lista de espera de una sesión llena."""
    __tablename__ = "waitlist_entry"

    id = Column(Integer, primary_key=True, index=True)
    member_id = Column(Integer, nullable=False, index=True)
    class_id = Column(Integer, ForeignKey("class.id"), nullable=False)
    class_name = Column(String, nullable=False)
    booking_date = Column(Date, nullable=False)
    start_time = Column(Time, nullable=False)
    # Solo tiene valor mientras status == waiting: 1..N sin huecos por sesión
    position = Column(Integer, nullable=True)
    status = Column(Enum(WaitlistStatus), nullable=False, default=WaitlistStatus.WAITING)
    notified_at = Column(DateTime(timezone=True), nullable=True)
    expires_at = Column(DateTime(timezone=True), nullable=True)
    notes = Column(Text, nullable=True)
    recurring_booking_id = Column(Integer, ForeignKey("recurring_booking.id"), nullable=True)

    # Campos de auditoría
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), onupdate=func.now())

    __table_args__ = (
        UniqueConstraint('member_id', 'class_id', 'booking_date', 'start_time', name='uq_waitlist_member_session'),
        Index('ix_waitlist_session_status', 'class_id', 'booking_date', 'start_time', 'status'),
        Index('ix_waitlist_status_expires', 'status', 'expires_at'),
        CheckConstraint('position IS NULL OR position >= 1', name='check_position_positive'),
    )


class RecurringBooking(Base):
    """Plantilla de reserva recurrente; cada ocurrencia se materializa como Booking o WaitlistEntry."""
    __tablename__ = "recurring_booking"

    id = Column(Integer, primary_key=True, index=True)
    member_id = Column(Integer, nullable=False, index=True)
    class_id = Column(Integer, ForeignKey("class.id"), nullable=False)
    class_name = Column(String, nullable=False)
    recurrence_type = Column(Enum(RecurrenceType), nullable=False)
    recurrence_day = Column(String(9), nullable=False)  # "Monday" ... "Sunday"
    start_date = Column(Date, nullable=False)
    end_date = Column(Date, nullable=False)
    start_time = Column(Time, nullable=False)
    end_time = Column(Time, nullable=False)
    status = Column(Enum(RecurringBookingStatus), nullable=False, default=RecurringBookingStatus.ACTIVE)
    total_sessions = Column(Integer, nullable=False, default=0)
    completed_sessions = Column(Integer, nullable=False, default=0)
    notes = Column(Text, nullable=True)

    bookings = relationship("Booking", back_populates="recurring_booking")

    # Campos de auditoría
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), onupdate=func.now())

    __table_args__ = (
        CheckConstraint('end_date >= start_date', name='check_recurring_range'),
    )
