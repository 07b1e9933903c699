from typing import Any, List, Optional

from fastapi import APIRouter, Depends, Path, Query
from sqlalchemy.orm import Session

from app.db.session import get_db
from app.schemas.schedule import Class as ClassSchema
from app.services.catalog import catalog_service

router = APIRouter()


@router.get("", response_model=List[ClassSchema])
async def list_classes(
    search: Optional[str] = Query(None, description="Filter by class name or description"),
    skip: int = Query(0, ge=0),
    limit: int = Query(100, ge=1, le=500),
    db: Session = Depends(get_db),
) -> Any:
    """
    List active classes together with their weekly schedule.

    The catalog is read-only through the API; classes are managed by the
    gym back office.
    """
    return catalog_service.list_classes(db, search=search, skip=skip, limit=limit)


@router.get("/{class_id}", response_model=ClassSchema)
async def get_class(
    class_id: int = Path(..., description="ID of the class"),
    db: Session = Depends(get_db),
) -> Any:
    """Get an active class by ID. Returns 404 when it does not exist or is inactive."""
    return catalog_service.get_class(db, class_id)
