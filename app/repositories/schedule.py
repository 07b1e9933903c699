from typing import List, Optional, Dict, Any, Union
from sqlalchemy.orm import Session
from sqlalchemy import or_

from app.repositories.base import BaseRepository
from app.models.schedule import Class, ClassSchedule
from app.schemas.schedule import ClassCreate, ClassScheduleEntry


class ClassRepository(BaseRepository[Class, ClassCreate, ClassCreate]):
    def get_active(self, db: Session, *, class_id: int) -> Optional[Class]:
        """Obtener una clase activa con su horario"""
        return db.query(Class).filter(Class.id == class_id, Class.is_active == True).first()

    def get_active_classes(self, db: Session, *, skip: int = 0, limit: int = 100) -> List[Class]:
        """Obtener todas las clases activas"""
        return db.query(Class).filter(
            Class.is_active == True
        ).order_by(Class.name, Class.id).offset(skip).limit(limit).all()

    def search_classes(
        self, db: Session, *, search: str, skip: int = 0, limit: int = 100
    ) -> List[Class]:
        """Buscar clases por nombre o descripción"""
        search_pattern = f"%{search}%"
        return db.query(Class).filter(
            or_(
                Class.name.ilike(search_pattern),
                Class.description.ilike(search_pattern)
            ),
            Class.is_active == True
        ).order_by(Class.name, Class.id).offset(skip).limit(limit).all()

    def create_with_schedules(
        self, db: Session, *, obj_in: Union[ClassCreate, Dict[str, Any]], commit: bool = True
    ) -> Class:
        """
        Crear una clase junto con su horario semanal.

        Solo se usa para cargar el catálogo (seeds y tests); la API no expone
        escritura del catálogo.
        """
        if isinstance(obj_in, dict):
            obj_in = ClassCreate(**obj_in)

        data = obj_in.model_dump(exclude={"schedules"})
        db_obj = Class(**data)
        for entry in obj_in.schedules:
            db_obj.schedules.append(self._build_schedule(entry))

        db.add(db_obj)
        db.flush()
        if commit:
            db.commit()
            db.refresh(db_obj)
        return db_obj

    @staticmethod
    def _build_schedule(entry: ClassScheduleEntry) -> ClassSchedule:
        return ClassSchedule(
            day_of_week=entry.day_of_week,
            start_time=entry.start_time,
            end_time=entry.end_time,
        )


# Instantiate repositories
class_repository = ClassRepository(Class)
