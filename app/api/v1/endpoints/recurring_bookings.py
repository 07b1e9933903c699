from datetime import datetime
from typing import Any, List, Optional

from fastapi import APIRouter, Body, Depends, Path, status
from redis.asyncio import Redis
from sqlalchemy.orm import Session

from app.core.clock import get_now
from app.core.deps import Actor, get_current_actor
from app.db.redis_client import get_redis_client
from app.db.session import get_db
from app.schemas.booking import RecurringBooking, RecurringBookingCreate, RecurringBookingResult
from app.services.recurring_booking import recurring_booking_service

router = APIRouter()


@router.post("", response_model=RecurringBookingResult, status_code=status.HTTP_201_CREATED)
async def create_recurring_booking(
    recurring_in: RecurringBookingCreate = Body(...),
    db: Session = Depends(get_db),
    actor: Actor = Depends(get_current_actor),
    now: datetime = Depends(get_now),
    redis_client: Optional[Redis] = Depends(get_redis_client),
) -> Any:
    """
    Create a recurring booking and book every occurrence in the date range.

    Each occurrence is booked independently: it can be booked, put on the
    waitlist, or skipped with an error code (for example `invalid_slot`
    when the class does not run that day, or `already_booked`). A skipped
    occurrence never undoes the others.

    Raises:
        HTTPException 404: Class not found.
        HTTPException 400: Empty or too large date range, or unknown weekday.
    """
    return await recurring_booking_service.create_recurring(
        db,
        member_id=actor.member_id,
        class_id=recurring_in.class_id,
        recurrence_type=recurring_in.recurrence_type,
        recurrence_day=recurring_in.recurrence_day,
        start_date=recurring_in.start_date,
        end_date=recurring_in.end_date,
        start_time=recurring_in.start_time,
        end_time=recurring_in.end_time,
        notes=recurring_in.notes,
        now=now,
        redis_client=redis_client,
    )


@router.get("", response_model=List[RecurringBooking])
async def get_my_recurring_bookings(
    db: Session = Depends(get_db),
    actor: Actor = Depends(get_current_actor),
) -> Any:
    """List the current member's recurring bookings."""
    return recurring_booking_service.get_member_recurring(db, actor.member_id)


@router.delete("/{recurring_booking_id}", response_model=RecurringBooking)
async def cancel_recurring_booking(
    recurring_booking_id: int = Path(..., description="ID of the recurring booking"),
    db: Session = Depends(get_db),
    actor: Actor = Depends(get_current_actor),
) -> Any:
    """
    Cancel a recurring booking. Bookings already created from it stay as
    they are and are cancelled one by one.
    """
    return recurring_booking_service.cancel_recurring(db, recurring_booking_id, actor)
