"""
routers/monitoring.py — Consulta y ejecución de la monitorización de generación.

GET  /api/monitoring/records?limit=   → registros del almacén, más reciente primero
POST /api/monitoring/batch            → lote secuencial monitorizado + estadísticas
"""

from fastapi import APIRouter, Depends, Query

from config import settings
from dependencies import get_image_client, get_monitor, get_store
from middleware.error_handler import AppError
from models.requests import BatchRequest
from models.responses import (
    BatchErrorResponse,
    BatchResponse,
    BatchStatsResponse,
    MonitoringRecordResponse,
    MonitoringRecordsResponse,
)
from repositories.store import Store
from services.image_client import ImageGenerationClient
from services.monitor import GenerationMonitor
from services.pairing import normalize_conditions

router = APIRouter(prefix="/api/monitoring", tags=["monitoring"])


@router.get("/records", response_model=MonitoringRecordsResponse)
async def list_records(
    limit: int = Query(default=settings.MONITORING_HISTORY_LIMIT, ge=1, le=1000),
    store: Store = Depends(get_store),
) -> MonitoringRecordsResponse:
    records = await store.list_monitoring(limit)
    return MonitoringRecordsResponse(
        records=[MonitoringRecordResponse.from_entity(r) for r in records]
    )


@router.post("/batch", response_model=BatchResponse)
async def run_batch(
    body: BatchRequest,
    monitor: GenerationMonitor = Depends(get_monitor),
    client: ImageGenerationClient = Depends(get_image_client),
) -> BatchResponse:
    """
    Genera `count` imágenes una detrás de otra. Los fallos individuales no
    cortan el lote: se devuelven en `errors` (código y mensaje, sin detalles
    internos) y cuentan en `errorRate`.
    """
    options = normalize_conditions({"age": body.age, "gender": body.gender})
    batch = await monitor.monitor_batch(client.generate_face_image, body.count, options)
    return BatchResponse(
        results=[r.result.metadata.to_dict() for r in batch.results],
        errors=[_batch_error(e) for e in batch.errors],
        stats=BatchStatsResponse(**batch.stats.to_dict()),
    )


def _batch_error(exc: Exception) -> BatchErrorResponse:
    if isinstance(exc, AppError):
        return BatchErrorResponse(error_code=exc.error_code, message=exc.message)
    return BatchErrorResponse(error_code="INTERNAL_ERROR", message="Error interno del servidor")
