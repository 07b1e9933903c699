import time
from fastapi import Request, Response
from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.types import ASGIApp
import logging

logger = logging.getLogger("timing_middleware")

# Operaciones que toman el bloqueo de una sesión de clase
LOCKING_PATH_MARKERS = ("/bookings", "/waitlist", "/recurring-bookings")


class TimingMiddleware(BaseHTTPMiddleware):
    """
    Middleware que mide el tiempo de respuesta de cada solicitud y añade
    información de diagnóstico en cabeceras.
    """

    def __init__(self, app: ASGIApp, slow_threshold_ms: float = 700):
        super().__init__(app)
        self.slow_threshold_ms = slow_threshold_ms
        # Mantener estadísticas para operaciones lentas específicas
        self.endpoint_stats = {}

    async def dispatch(
        self, request: Request, call_next: RequestResponseEndpoint
    ) -> Response:
        start_time = time.time()
        method = request.method
        path = request.url.path

        response = await call_next(request)

        process_time = (time.time() - start_time) * 1000  # En milisegundos

        # Categorizar respuesta por velocidad
        speed_category = "FAST"
        if process_time > 300:
            speed_category = "MEDIUM"
        if process_time > self.slow_threshold_ms:
            speed_category = "SLOW"
            endpoint_key = f"{method}:{path}"
            stats = self.endpoint_stats.setdefault(
                endpoint_key, {"count": 0, "total_time": 0.0, "max_time": 0.0}
            )
            stats["count"] += 1
            stats["total_time"] += process_time
            stats["max_time"] = max(stats["max_time"], process_time)

            is_locking = method != "GET" and any(marker in path for marker in LOCKING_PATH_MARKERS)
            logger.warning(
                f"Petición lenta {method} {path}: {process_time:.2f}ms"
                f"{' (posible espera por bloqueo de sesión)' if is_locking else ''}"
            )

        response.headers["X-Process-Time"] = f"{process_time:.2f}ms"
        response.headers["X-Process-Speed"] = speed_category
        return response
