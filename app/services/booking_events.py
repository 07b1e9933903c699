"""
Eventos del motor de reservas para consumidores externos (notificaciones).

Se publican en el canal Redis `BOOKING_EVENTS_CHANNEL` con el formato:

    {"type": "booking.confirmed", "occurred_at": "...", "data": {...}}

Solo se emiten después de confirmar la transacción que los produjo. Un fallo
al publicar se registra pero nunca deshace la decisión ya confirmada.
"""
from datetime import datetime
from typing import Any, Dict, List, Optional
import json
import logging

from redis.asyncio import Redis

from app.core.clock import utcnow
from app.core.config import get_settings
from app.models.booking import Booking, WaitlistEntry
from app.schemas.booking import Booking as BookingSchema
from app.schemas.booking import WaitlistEntry as WaitlistEntrySchema

logger = logging.getLogger(__name__)

BOOKING_CONFIRMED = "booking.confirmed"
BOOKING_CANCELLED = "booking.cancelled"
WAITLIST_OFFERED = "waitlist.offered"


class BookingEventPublisher:

    def __init__(self, channel: Optional[str] = None):
        self._channel = channel

    @property
    def channel(self) -> str:
        return self._channel or get_settings().BOOKING_EVENTS_CHANNEL

    async def publish(
        self,
        event_type: str,
        payload: Dict[str, Any],
        redis_client: Optional[Redis] = None,
        occurred_at: Optional[datetime] = None,
    ) -> Dict[str, Any]:
        """
        Publicar un evento.

        Args:
            event_type: Tipo de evento (booking.confirmed, booking.cancelled, waitlist.offered)
            payload: Datos serializables del evento
            redis_client: Cliente Redis; si es None el evento solo se registra en el log
            occurred_at: Momento del evento (por defecto ahora)

        Returns:
            El mensaje construido
        """
        message = {
            "type": event_type,
            "occurred_at": (occurred_at or utcnow()).isoformat(),
            "data": payload,
        }
        logger.info(f"Evento {event_type}: {payload.get('id')}")

        if redis_client is None:
            return message

        try:
            await redis_client.publish(self.channel, json.dumps(message, default=str))
        except Exception as e:
            logger.error(f"Error publicando evento {event_type} en Redis: {e}", exc_info=True)
        return message

    async def booking_confirmed(self, booking: Booking, redis_client: Optional[Redis] = None) -> Dict[str, Any]:
        return await self.publish(
            BOOKING_CONFIRMED, BookingSchema.model_validate(booking).model_dump(mode="json"), redis_client
        )

    async def booking_cancelled(self, booking: Booking, redis_client: Optional[Redis] = None) -> Dict[str, Any]:
        return await self.publish(
            BOOKING_CANCELLED, BookingSchema.model_validate(booking).model_dump(mode="json"), redis_client
        )

    async def waitlist_offered(
        self, entries: List[WaitlistEntry], redis_client: Optional[Redis] = None
    ) -> List[Dict[str, Any]]:
        messages = []
        for entry in entries:
            messages.append(await self.publish(
                WAITLIST_OFFERED, WaitlistEntrySchema.model_validate(entry).model_dump(mode="json"), redis_client
            ))
        return messages


booking_event_publisher = BookingEventPublisher()
