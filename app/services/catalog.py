from typing import List, Optional
import logging

from sqlalchemy.orm import Session

from app.core.exceptions import NotFound
from app.models.schedule import Class
from app.repositories.schedule import class_repository

logger = logging.getLogger(__name__)


class CatalogService:
    """Lectura del catálogo de clases. El motor de reservas no lo modifica."""

    def get_class(self, db: Session, class_id: int) -> Class:
        class_obj = class_repository.get_active(db, class_id=class_id)
        if not class_obj:
            logger.debug(f"Clase {class_id} no encontrada o inactiva")
            raise NotFound(f"Clase {class_id} no encontrada")
        return class_obj

    def list_classes(
        self, db: Session, search: Optional[str] = None, skip: int = 0, limit: int = 100
    ) -> List[Class]:
        if search:
            return class_repository.search_classes(db, search=search, skip=skip, limit=limit)
        return class_repository.get_active_classes(db, skip=skip, limit=limit)


catalog_service = CatalogService()
