"""
Errores de dominio del motor de reservas.

Todos son recuperables y se devuelven al cliente como respuestas 4xx mediante
`booking_error_handler`, registrado en la aplicación FastAPI.
"""
import logging

from fastapi import Request, status
from fastapi.responses import JSONResponse

logger = logging.getLogger(__name__)


class BookingError(Exception):
    """Base de los errores de reservas."""
    status_code: int = status.HTTP_400_BAD_REQUEST
    code: str = "booking_error"

    def __init__(self, message: str = ""):
        self.message = message or self.__class__.__doc__ or self.code
        super().__init__(self.message)


class InvalidSlot(BookingError):
    """La fecha/hora no corresponde a una sesión válida de la clase."""
    status_code = status.HTTP_400_BAD_REQUEST
    code = "invalid_slot"


class InvalidRequest(BookingError):
    """La petición no es válida."""
    status_code = status.HTTP_400_BAD_REQUEST
    code = "invalid_request"


class CancellationWindowClosed(BookingError):
    """La reserva ya no se puede cancelar."""
    status_code = status.HTTP_400_BAD_REQUEST
    code = "cancellation_window_closed"


class SessionFull(BookingError):
    """La sesión está llena."""
    status_code = status.HTTP_409_CONFLICT
    code = "session_full"


class DuplicateWaitlist(BookingError):
    """El miembro ya está en la lista de espera de esta sesión."""
    status_code = status.HTTP_409_CONFLICT
    code = "duplicate_waitlist"


class InvalidState(BookingError):
    """La operación no es válida en el estado actual."""
    status_code = status.HTTP_409_CONFLICT
    code = "invalid_state"


class AlreadyBooked(InvalidState):
    """El miembro ya tiene una reserva confirmada para esta sesión."""
    code = "already_booked"


class AlreadyCancelled(InvalidState):
    """La reserva ya está cancelada."""
    code = "already_cancelled"


class OfferExpired(BookingError):
    """La oferta de plaza ha caducado."""
    status_code = status.HTTP_410_GONE
    code = "offer_expired"


class NotFound(BookingError):
    """Recurso no encontrado."""
    status_code = status.HTTP_404_NOT_FOUND
    code = "not_found"


class Forbidden(BookingError):
    """No autorizado para esta operación."""
    status_code = status.HTTP_403_FORBIDDEN
    code = "forbidden"


async def booking_error_handler(request: Request, exc: BookingError) -> JSONResponse:
    logger.info(f"{exc.code} en {request.method} {request.url.path}: {exc.message}")
    return JSONResponse(
        status_code=exc.status_code,
        content={"detail": exc.message, "code": exc.code},
    )
