from typing import Optional, List, Union
from pydantic import BaseModel, Field, field_validator, model_validator
from datetime import datetime, time, date

from app.models.schedule import DayOfWeek


def parse_time_value(value):
    """Validar y convertir strings de tiempo en formato HH:MM a objetos time"""
    if value is None:
        return None

    # Si ya es un objeto time, simplemente devolverlo
    if isinstance(value, time):
        return value

    # Si es una cadena, intentar convertirla desde formato HH:MM (se admite HH:MM:SS)
    if isinstance(value, str):
        try:
            parts = [int(p) for p in value.strip().split(':')]
            if len(parts) == 2:
                return time(hour=parts[0], minute=parts[1])
            if len(parts) == 3:
                return time(hour=parts[0], minute=parts[1], second=parts[2])
        except (ValueError, TypeError):
            pass
        raise ValueError('El formato de tiempo debe ser HH:MM (ejemplo: 09:30)')

    return value


class ClassScheduleEntry(BaseModel):
    """Entrada del horario semanal. Acepta el día como nombre ("Monday") o número (0-6)."""
    day_of_week: Union[int, str]
    start_time: time
    end_time: time

    @field_validator('day_of_week', mode='before')
    def parse_day(cls, value):
        if isinstance(value, str):
            if not value.strip().isdigit():
                return int(DayOfWeek.from_label(value))
            value = int(value)
        if isinstance(value, int):
            if not 0 <= value <= 6:
                raise ValueError('day_of_week debe estar entre 0 (lunes) y 6 (domingo)')
            return int(value)
        raise ValueError(f'Día de la semana inválido: {value}')

    @field_validator('start_time', 'end_time', mode='before')
    def parse_time_string(cls, value):
        return parse_time_value(value)

    @model_validator(mode='after')
    def check_end_after_start(self):
        if self.end_time <= self.start_time:
            raise ValueError('end_time debe ser posterior a start_time')
        return self


class ClassSchedule(BaseModel):
    id: int
    day_of_week: int
    start_time: time
    end_time: time

    model_config = {"from_attributes": True}

    @property
    def day_name(self) -> str:
        return DayOfWeek(self.day_of_week).label


class ClassCreate(BaseModel):
    name: str = Field(..., min_length=1, max_length=100)
    description: Optional[str] = None
    duration: int = Field(60, gt=0, le=1440)
    capacity: int = Field(20, gt=0)
    location: str = "Main Studio"
    is_active: bool = True
    schedules: List[ClassScheduleEntry] = []


class Class(BaseModel):
    id: int
    name: str
    description: Optional[str] = None
    duration: int
    capacity: int
    location: str
    is_active: bool
    schedules: List[ClassSchedule] = []
    created_at: Optional[datetime] = None

    model_config = {"from_attributes": True}


class SessionSlot(BaseModel):
    """Sesión concreta de una clase: identidad (clase, fecha, hora) más sus instantes en UTC."""
    class_id: int
    booking_date: date
    start_time: time
    end_time: time
    starts_at: datetime
    ends_at: datetime

    @property
    def identity(self):
        return (self.class_id, self.booking_date, self.start_time)
