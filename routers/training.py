"""
routers/training.py — Superficie de consulta de pares para el modo entrenamiento.

GET /api/training?action=generate_pairs&count=&age=&gender=
GET /api/training?action=get_random_pairs&count=&age=&gender=
GET /api/training?action=get_pair_by_id&id=

Responde siempre con el sobre {success, data} o {success: false, error, error_code};
el status HTTP de un fallo es el del AppError correspondiente, y 500 con
error_code INTERNAL_ERROR para cualquier otra excepción. Los detalles internos
solo van al log.
`count` por defecto DEFAULT_PAIR_COUNT, acotado a [1, MAX_PAIR_COUNT].
"""

import logging

from fastapi import APIRouter, Depends, Query
from fastapi.responses import JSONResponse

from config import settings
from dependencies import get_face_name_service
from middleware.error_handler import AppError, InvalidParameterError, NotFoundError
from models.responses import FacePairResponse, TrainingResponse
from services.pairing import FaceNameService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api", tags=["training"])

ACTIONS = ("generate_pairs", "get_random_pairs", "get_pair_by_id")


def bound_count(count: int | None) -> int:
    if count is None:
        return settings.DEFAULT_PAIR_COUNT
    return max(1, min(count, settings.MAX_PAIR_COUNT))


@router.get("/training", response_model=TrainingResponse, response_model_exclude_none=True)
async def training(
    action: str = "",
    count: int | None = None,
    age: str | None = None,
    gender: str | None = None,
    pair_id: str | None = Query(default=None, alias="id"),
    service: FaceNameService = Depends(get_face_name_service),
):
    conditions = {"age": age or None, "gender": gender or None}
    try:
        if action == "generate_pairs":
            pairs = await service.generate_multiple(bound_count(count), conditions)
            data = [FacePairResponse.from_entity(p) for p in pairs]
        elif action == "get_random_pairs":
            pairs = await service.get_random_pairs(bound_count(count), conditions)
            data = [FacePairResponse.from_entity(p) for p in pairs]
        elif action == "get_pair_by_id":
            if not pair_id:
                raise InvalidParameterError("No se ha indicado ningún ID")
            pair = await service.get_pair_by_id(pair_id)
            if pair is None:
                raise NotFoundError("No existe ningún par con el ID indicado", details=pair_id)
            data = FacePairResponse.from_entity(pair)
        else:
            raise InvalidParameterError(
                f"Acción desconocida: {action}",
                details=f"Acciones válidas: {', '.join(ACTIONS)}",
            )
    except AppError as exc:
        logger.warning("training: %s falló: %s", action or "<vacía>", exc)
        body = TrainingResponse(success=False, error=exc.message, error_code=exc.error_code)
        return JSONResponse(status_code=exc.status_code, content=body.model_dump(exclude_none=True))
    except Exception:
        logger.exception("training: excepción no controlada en %s", action or "<vacía>")
        body = TrainingResponse(
            success=False, error="Error interno del servidor", error_code="INTERNAL_ERROR"
        )
        return JSONResponse(status_code=500, content=body.model_dump(exclude_none=True))

    return TrainingResponse(success=True, data=data)
