from datetime import date, datetime
from typing import Any, List, Optional

from fastapi import APIRouter, Body, Depends, Path, Query, status
from redis.asyncio import Redis
from sqlalchemy.orm import Session

from app.core.clock import get_now
from app.core.deps import Actor, get_current_actor
from app.db.redis_client import get_redis_client
from app.db.session import get_db
from app.models.booking import BookingStatus
from app.schemas.booking import Booking, BookingCreate, BookingOutcome, MemberBookings
from app.services.booking import booking_service

router = APIRouter()


@router.post("", response_model=BookingOutcome, status_code=status.HTTP_201_CREATED)
async def create_booking(
    booking_in: BookingCreate = Body(...),
    db: Session = Depends(get_db),
    actor: Actor = Depends(get_current_actor),
    now: datetime = Depends(get_now),
    redis_client: Optional[Redis] = Depends(get_redis_client),
) -> Any:
    """
    Book a class session for the current member.

    If the session has a free seat the response is
    `{"type": "booking", "booking": {...}}`. If it is full the member joins
    the waitlist and the response is
    `{"type": "waitlist", "position": n, "waitlist_entry": {...}}`. Send
    `waitlist_if_full: false` to get a 409 `session_full` instead.

    If the member holds a pending offer for the session, this request
    accepts it.

    Raises:
        HTTPException 404: Class not found.
        HTTPException 409: Already booked, already on the waitlist, or session full.
        HTTPException 400: The date/time is not a future session of the class.
    """
    return await booking_service.request_booking(
        db,
        member_id=actor.member_id,
        class_id=booking_in.class_id,
        booking_date=booking_in.date,
        start_time=booking_in.start_time,
        notes=booking_in.notes,
        now=now,
        redis_client=redis_client,
        waitlist_if_full=booking_in.waitlist_if_full,
    )


@router.get("/my-bookings", response_model=MemberBookings)
async def get_my_bookings(
    db: Session = Depends(get_db),
    actor: Actor = Depends(get_current_actor),
    now: datetime = Depends(get_now),
) -> Any:
    """
    Get the current member's bookings.

    `upcoming` holds confirmed bookings whose session has not started, in
    chronological order. `past` holds everything else, most recent first.
    """
    return booking_service.get_member_bookings(db, actor.member_id, now=now)


@router.get("", response_model=List[Booking])
async def list_bookings(
    class_id: Optional[int] = Query(None),
    booking_date: Optional[date] = Query(None, alias="date"),
    status_filter: Optional[BookingStatus] = Query(None, alias="status"),
    member_id: Optional[int] = Query(None),
    skip: int = Query(0, ge=0),
    limit: int = Query(100, ge=1, le=500),
    db: Session = Depends(get_db),
    actor: Actor = Depends(get_current_actor),
) -> Any:
    """List bookings across members. Trainers and admins only."""
    return booking_service.list_bookings(
        db, actor, class_id=class_id, booking_date=booking_date, status=status_filter,
        member_id=member_id, skip=skip, limit=limit
    )


@router.get("/{booking_id}", response_model=Booking)
async def get_booking(
    booking_id: int = Path(..., description="ID of the booking"),
    db: Session = Depends(get_db),
    actor: Actor = Depends(get_current_actor),
) -> Any:
    """Get a booking. Members see their own; trainers and admins see any."""
    return booking_service.get_booking(db, booking_id, actor)


@router.delete("/{booking_id}", response_model=Booking)
async def cancel_booking(
    booking_id: int = Path(..., description="ID of the booking"),
    reason: Optional[str] = Query(None, max_length=500),
    db: Session = Depends(get_db),
    actor: Actor = Depends(get_current_actor),
    now: datetime = Depends(get_now),
    redis_client: Optional[Redis] = Depends(get_redis_client),
) -> Any:
    """
    Cancel a confirmed booking.

    The freed seat is offered to the head of the session's waitlist.
    Members cannot cancel within `CANCELLATION_CUTOFF_HOURS` of the session
    start; admins can cancel any booking at any time.

    Raises:
        HTTPException 403: Not the owner and not an admin.
        HTTPException 404: Booking not found.
        HTTPException 400: Inside the cancellation window.
        HTTPException 409: Already cancelled or completed.
    """
    return await booking_service.cancel_booking(
        db, booking_id, actor, now=now, reason=reason, redis_client=redis_client
    )
