from sqlalchemy import Column, Integer, String, Boolean, ForeignKey, Time, DateTime, Text, CheckConstraint
from sqlalchemy.sql import func
from sqlalchemy.orm import relationship
import enum

from app.db.base_class import Base


class DayOfWeek(int, enum.Enum):
    MONDAY = 0
    TUESDAY = 1
    WEDNESDAY = 2
    THURSDAY = 3
    FRIDAY = 4
    SATURDAY = 5
    SUNDAY = 6

    @property
    def label(self) -> str:
        """Nombre del día tal como lo muestra la UI ("Monday")."""
        return self.name.capitalize()

    @classmethod
    def from_label(cls, value: str) -> "DayOfWeek":
        try:
            return cls[value.strip().upper()]
        except KeyError:
            raise ValueError(f"Día de la semana inválido: {value}")


class Class(Base):
    """Definición de clases que se ofrecen (catálogo, solo lectura para las reservas)"""
    __tablename__ = "class"

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String, nullable=False)
    description = Column(Text, nullable=True)
    duration = Column(Integer, nullable=False, default=60)  # Duración en minutos
    capacity = Column(Integer, nullable=False, default=20)
    location = Column(String, nullable=False, default="Main Studio")
    is_active = Column(Boolean, default=True)

    # Relaciones
    schedules = relationship(
        "ClassSchedule",
        back_populates="class_definition",
        cascade="all, delete-orphan",
        order_by=lambda: (ClassSchedule.day_of_week, ClassSchedule.start_time),
        lazy="selectin",
    )

    # Campos de auditoría
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), onupdate=func.now())

    __table_args__ = (
        CheckConstraint('capacity > 0', name='check_positive_capacity'),
    )


class ClassSchedule(Base):
    """Entrada del horario semanal de una clase (día + hora de inicio y fin, hora local del gimnasio)"""
    __tablename__ = "class_schedule"

    id = Column(Integer, primary_key=True, index=True)
    class_id = Column(Integer, ForeignKey("class.id", ondelete="CASCADE"), nullable=False, index=True)
    day_of_week = Column(Integer, nullable=False)
    start_time = Column(Time, nullable=False)
    end_time = Column(Time, nullable=False)

    class_definition = relationship("Class", back_populates="schedules")

    __table_args__ = (
        CheckConstraint('day_of_week >= 0 AND day_of_week <= 6',
                        name='check_valid_day_of_week'),
        CheckConstraint('end_time > start_time', name='check_end_after_start'),
    )
