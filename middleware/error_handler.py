"""
middleware/error_handler.py — Handler global de excepciones y taxonomía de errores.

Convierte excepciones al formato de error estándar:
  { error, error_code, message, details, recoverable, retry_after, timestamp }

Tipos mapeados:
  - RequestValidationError  → 422 VALIDATION_ERROR
  - HTTPException           → código HTTP del error original
  - AppError (y subclases)  → status_code / error_code de la subclase
  - Exception               → 500 INTERNAL_ERROR

`message` es siempre un texto pensado para el usuario. El detalle interno de un
AppError (respuesta del upstream, ruta del fichero, traza) solo va al log: en el
cuerpo `details` queda a null. Solo los errores de validación describen en
`details` qué campo de la propia petición falló.
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone

from fastapi import Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException

logger = logging.getLogger(__name__)


# ── Excepciones de dominio personalizadas ─────────────────────────────────────


class AppError(Exception):
    """Clase base para errores de dominio del backend."""

    status_code: int = 500
    error_code: str = "INTERNAL_ERROR"
    message: str = "Error interno del servidor"
    recoverable: bool = False
    retry_after: int | None = None

    def __init__(self, message: str | None = None, details: str | None = None) -> None:
        self.message = message or self.__class__.message
        self.details = details
        super().__init__(self.message)

    def __str__(self) -> str:
        if self.details:
            return f"{self.message}: {self.details}"
        return self.message


class NotFoundError(AppError):
    status_code = 404
    error_code = "NOT_FOUND"
    message = "Recurso no encontrado"


class InvalidParameterError(AppError):
    """Edad o género fuera de los buckets válidos. Nunca se reintenta."""

    status_code = 422
    error_code = "INVALID_PARAMETER"
    message = "Parámetros inválidos: la edad o el género no son válidos"


class UpstreamExhaustedError(AppError):
    """Todos los intentos contra la API de generación fallaron."""

    status_code = 503
    error_code = "UPSTREAM_EXHAUSTED"
    message = "El servicio de generación de imágenes no está disponible"
    recoverable = True
    retry_after = 5


class NoImageDataError(AppError):
    """La respuesta del upstream no contiene ningún payload de imagen reconocible."""

    status_code = 502
    error_code = "NO_IMAGE_DATA"
    message = "El servicio de generación no devolvió ninguna imagen"


class ImageDecodeError(AppError):
    """El payload localizado no es base64 decodificable."""

    status_code = 502
    error_code = "IMAGE_DECODE_ERROR"
    message = "La imagen generada no se pudo decodificar"


class StorageWriteError(AppError):
    """Fallo al escribir en disco o en la base de datos."""

    status_code = 500
    error_code = "STORAGE_WRITE_ERROR"
    message = "No se pudo guardar la cara generada"


class ResourceMissingError(AppError):
    """Falta una lista de nombres."""

    status_code = 500
    error_code = "RESOURCE_MISSING"
    message = "No se encontró la lista de nombres necesaria"


class ResourceEmptyError(AppError):
    """La lista de nombres existe pero no tiene ninguna línea utilizable."""

    status_code = 500
    error_code = "RESOURCE_EMPTY"
    message = "La lista de nombres está vacía"


class QuizStateError(AppError):
    """Operación no permitida en el estado actual del test."""

    status_code = 409
    error_code = "QUIZ_STATE_ERROR"
    message = "Operación no permitida en el estado actual del test"


# ── Helpers ───────────────────────────────────────────────────────────────────


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


def _error_body(
    error_code: str,
    message: str,
    details: str | None = None,
    recoverable: bool = False,
    retry_after: int | None = None,
) -> dict:
    return {
        "error": True,
        "error_code": error_code,
        "message": message,
        "details": details,
        "recoverable": recoverable,
        "retry_after": retry_after,
        "timestamp": _now(),
    }


# ── Handlers ──────────────────────────────────────────────────────────────────


async def validation_exception_handler(
    request: Request, exc: RequestValidationError
) -> JSONResponse:
    details = "; ".join(
        f"{'.'.join(str(l) for l in e['loc'])}: {e['msg']}" for e in exc.errors()
    )
    return JSONResponse(
        status_code=422,
        content=_error_body(
            error_code="VALIDATION_ERROR",
            message="Error de validación en la petición",
            details=details,
        ),
    )


async def http_exception_handler(request: Request, exc: HTTPException) -> JSONResponse:
    code_map = {
        404: ("NOT_FOUND", False, None),
        405: ("METHOD_NOT_ALLOWED", False, None),
        429: ("RATE_LIMITED", True, 60),
        503: ("SERVICE_UNAVAILABLE", True, 5),
    }
    error_code, recoverable, retry_after = code_map.get(
        exc.status_code, ("HTTP_ERROR", False, None)
    )
    return JSONResponse(
        status_code=exc.status_code,
        content=_error_body(
            error_code=error_code,
            message=str(exc.detail),
            recoverable=recoverable,
            retry_after=retry_after,
        ),
    )


async def app_error_handler(request: Request, exc: AppError) -> JSONResponse:
    logger.warning(
        "error_handler: %s %s → %s: %s",
        request.method,
        request.url.path,
        exc.error_code,
        exc,
    )
    return JSONResponse(
        status_code=exc.status_code,
        content=_error_body(
            error_code=exc.error_code,
            message=exc.message,
            recoverable=exc.recoverable,
            retry_after=exc.retry_after,
        ),
    )


async def generic_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    logger.error(
        "error_handler: excepción no controlada en %s %s",
        request.method,
        request.url.path,
        exc_info=exc,
    )
    return JSONResponse(
        status_code=500,
        content=_error_body(
            error_code="INTERNAL_ERROR",
            message="Error interno del servidor",
        ),
    )


def register_error_handlers(app) -> None:
    """Registrar todos los handlers en la instancia FastAPI."""
    app.add_exception_handler(RequestValidationError, validation_exception_handler)  # type: ignore[arg-type]
    app.add_exception_handler(HTTPException, http_exception_handler)  # type: ignore[arg-type]
    app.add_exception_handler(AppError, app_error_handler)  # type: ignore[arg-type]
    app.add_exception_handler(Exception, generic_exception_handler)
