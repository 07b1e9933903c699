from datetime import datetime
from typing import Any, List, Optional

from fastapi import APIRouter, Body, Depends, Path, status
from redis.asyncio import Redis
from sqlalchemy.orm import Session

from app.core.clock import get_now
from app.core.deps import Actor, get_current_actor
from app.db.redis_client import get_redis_client
from app.db.session import get_db
from app.schemas.booking import Booking, WaitlistEntry, WaitlistJoin, WaitlistPosition
from app.services.waitlist import waitlist_service

router = APIRouter()


@router.post("/join", response_model=WaitlistEntry, status_code=status.HTTP_201_CREATED)
async def join_waitlist(
    join_in: WaitlistJoin = Body(...),
    db: Session = Depends(get_db),
    actor: Actor = Depends(get_current_actor),
    now: datetime = Depends(get_now),
    redis_client: Optional[Redis] = Depends(get_redis_client),
) -> Any:
    """
    Join the waitlist of a full session.

    Raises:
        HTTPException 404: Class not found.
        HTTPException 409: Already booked, already waiting, or the session still has free seats.
        HTTPException 400: The date/time is not a future session of the class.
    """
    return await waitlist_service.join(
        db,
        member_id=actor.member_id,
        class_id=join_in.class_id,
        booking_date=join_in.date,
        start_time=join_in.start_time,
        notes=join_in.notes,
        now=now,
        redis_client=redis_client,
    )


@router.get("", response_model=List[WaitlistEntry])
async def get_my_waitlist(
    db: Session = Depends(get_db),
    actor: Actor = Depends(get_current_actor),
    now: datetime = Depends(get_now),
    redis_client: Optional[Redis] = Depends(get_redis_client),
) -> Any:
    """
    Get the current member's waiting and offered entries.

    Offers of this member that have run out are expired before reading, so
    an offer is never shown past its `expires_at`.
    """
    await waitlist_service.expire_offers(db, now=now, member_id=actor.member_id, redis_client=redis_client)
    return waitlist_service.get_member_waitlist(db, actor.member_id)


@router.get("/{entry_id}/position", response_model=WaitlistPosition)
async def get_waitlist_position(
    entry_id: int = Path(..., description="ID of the waitlist entry"),
    db: Session = Depends(get_db),
    actor: Actor = Depends(get_current_actor),
) -> Any:
    """Get the current queue position of an entry. `position` is null unless the entry is waiting."""
    entry, position = waitlist_service.get_position(db, entry_id, actor)
    return WaitlistPosition(entry_id=entry.id, status=entry.status, position=position)


@router.post("/{entry_id}/accept", response_model=Booking, status_code=status.HTTP_201_CREATED)
async def accept_offer(
    entry_id: int = Path(..., description="ID of the waitlist entry"),
    db: Session = Depends(get_db),
    actor: Actor = Depends(get_current_actor),
    now: datetime = Depends(get_now),
    redis_client: Optional[Redis] = Depends(get_redis_client),
) -> Any:
    """
    Accept a pending waitlist offer and turn it into a confirmed booking.

    Raises:
        HTTPException 403: The entry belongs to another member.
        HTTPException 404: Entry not found.
        HTTPException 409: The entry has no pending offer.
        HTTPException 410: The offer expired; the seat has moved on to the next member.
    """
    return await waitlist_service.accept_offer(db, entry_id, actor, now=now, redis_client=redis_client)


@router.delete("/{entry_id}", response_model=WaitlistEntry)
async def leave_waitlist(
    entry_id: int = Path(..., description="ID of the waitlist entry"),
    db: Session = Depends(get_db),
    actor: Actor = Depends(get_current_actor),
    now: datetime = Depends(get_now),
    redis_client: Optional[Redis] = Depends(get_redis_client),
) -> Any:
    """
    Leave the waitlist. Members behind move up one position; a declined
    offer passes to the next member in line.
    """
    return await waitlist_service.remove(db, entry_id, actor, now=now, redis_client=redis_client)
