"""
middleware/logging.py — Middleware de logging estructurado.

Registra cada request HTTP con structlog en formato JSON:
  - request_id (el X-Request-Id entrante o un UUID nuevo)
  - method, path, status_code, duration_ms, client
  - action de /api/training cuando viene en la query

Los logs stdlib de los servicios (logging.getLogger) salen por el mismo
handler, así que comparten formato y nivel (settings.LOG_LEVEL).
Las peticiones a /assets (imágenes estáticas) se registran en DEBUG.
"""

import logging
import sys
import time
import uuid

import structlog
from fastapi import Request
from starlette.middleware.base import BaseHTTPMiddleware

from config import settings

REQUEST_ID_HEADER = "X-Request-Id"
STATIC_PREFIX = "/assets"


# ── Configuración de structlog ────────────────────────────────────────────────


def configure_structlog(log_level: str = settings.LOG_LEVEL) -> None:
    """Configura structlog para salida JSON. Idempotente."""
    logging.basicConfig(
        format="%(message)s",
        stream=sys.stdout,
        level=getattr(logging, log_level.upper(), logging.INFO),
    )

    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.stdlib.add_log_level,
            structlog.stdlib.add_logger_name,
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            structlog.processors.JSONRenderer(ensure_ascii=False),
        ],
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )


configure_structlog()

logger = structlog.get_logger(__name__)


# ── Middleware ────────────────────────────────────────────────────────────────


class LoggingMiddleware(BaseHTTPMiddleware):
    async def dispatch(self, request: Request, call_next):
        request_id = request.headers.get(REQUEST_ID_HEADER) or str(uuid.uuid4())
        structlog.contextvars.clear_contextvars()
        structlog.contextvars.bind_contextvars(request_id=request_id)

        start = time.perf_counter()
        try:
            response = await call_next(request)
        except Exception:
            logger.exception(
                "unhandled_exception",
                method=request.method,
                path=request.url.path,
            )
            raise
        finally:
            duration_ms = round((time.perf_counter() - start) * 1000, 1)

        fields = {
            "method": request.method,
            "path": request.url.path,
            "status_code": response.status_code,
            "duration_ms": duration_ms,
            "client": request.client.host if request.client else "unknown",
        }
        if "action" in request.query_params:
            fields["action"] = request.query_params["action"]

        if request.url.path.startswith(STATIC_PREFIX):
            logger.debug("http_request", **fields)
        elif response.status_code >= 500:
            logger.warning("http_request", **fields)
        else:
            logger.info("http_request", **fields)

        response.headers[REQUEST_ID_HEADER] = request_id
        return response
