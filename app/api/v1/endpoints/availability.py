from datetime import date, datetime, time
from typing import Any, Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from app.core.clock import get_now
from app.db.session import get_db
from app.schemas.booking import Availability
from app.services.availability import availability_service

router = APIRouter()


@router.get("", response_model=Availability)
async def get_availability(
    class_id: int = Query(..., description="ID of the class"),
    session_date: date = Query(..., alias="date", description="Session date (YYYY-MM-DD)"),
    start_time: Optional[time] = Query(None, description="Session start time; required if the class runs more than once that day"),
    db: Session = Depends(get_db),
    now: datetime = Depends(get_now),
) -> Any:
    """
    Get the availability of a concrete class session.

    `booked_count` counts confirmed bookings and `offered_count` the seats
    held by pending waitlist offers; `available_spots` is what remains of the
    capacity after both. `can_book` is only true when there are more free
    seats than people already waiting, because free seats go to the waitlist
    first.

    Raises:
        HTTPException 404: Class not found.
        HTTPException 400: The date/time is not a future session of the class.
    """
    return availability_service.get_availability(db, class_id, session_date, now, start_time=start_time)
