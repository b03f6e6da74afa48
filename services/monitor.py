"""
services/monitor.py — Monitorización de la generación de imágenes.

monitor() envuelve una llamada de generación, mide la latencia y persiste
exactamente un MonitoringRecord por llamada (éxito o fallo). Es observacional:
nunca se traga un error de generación, lo registra y lo vuelve a lanzar.
Un fallo al persistir el propio registro se loguea y se descarta.

monitor_batch() encadena `count` generaciones de forma estrictamente secuencial,
sigue adelante tras fallos individuales y calcula estadísticas del lote.

Las métricas de `quality` son placeholders sintéticos (qualityScore ∈ [0.85, 1.0),
promptCompliance ∈ [0.9, 1.0)): no salen de ningún análisis real de la imagen.

Uso:
    monitor = GenerationMonitor(store, history_limit=settings.MONITORING_HISTORY_LIMIT)
    monitored = await monitor.monitor(client.generate_face_image, {"age": 30, "gender": "male"})
    batch = await monitor.monitor_batch(client.generate_face_image, 10, {"gender": "female"})
"""

import logging
import random
import time
import traceback
import uuid
from collections import deque
from collections.abc import Awaitable, Callable, Mapping
from dataclasses import dataclass, field
from typing import Any

from middleware.error_handler import InvalidParameterError
from models.entities import MonitoringRecord, now_iso
from repositories.store import Store
from services.buckets import AGE_DISTRIBUTION, GENDER_DISTRIBUTION, draw_request_params

logger = logging.getLogger(__name__)

GenerateFn = Callable[..., Awaitable[Any]]


@dataclass(frozen=True)
class MonitoredResult:
    """Resultado original de la generación más su registro de monitorización."""

    result: Any
    monitoring: MonitoringRecord


@dataclass(frozen=True)
class BatchStats:
    total_time_ms: float
    average_response_time_ms: float  # media sobre éxitos, 0 si no hay
    error_rate: float  # errores / count
    success_count: int
    error_count: int

    def to_dict(self) -> dict[str, float | int]:
        return {
            "totalTime": self.total_time_ms,
            "averageResponseTime": self.average_response_time_ms,
            "errorRate": self.error_rate,
            "successCount": self.success_count,
            "errorCount": self.error_count,
        }


@dataclass
class BatchResult:
    results: list[MonitoredResult] = field(default_factory=list)
    errors: list[Exception] = field(default_factory=list)
    stats: BatchStats | None = None


class GenerationMonitor:
    def __init__(
        self,
        store: Store,
        history_limit: int = 100,
        age_distribution: Mapping[int, float] = AGE_DISTRIBUTION,
        gender_distribution: Mapping[str, float] = GENDER_DISTRIBUTION,
        rng: random.Random | None = None,
    ) -> None:
        self._store = store
        self._history: deque[MonitoringRecord] = deque(maxlen=history_limit)
        self._age_distribution = age_distribution
        self._gender_distribution = gender_distribution
        self._rng = rng or random.Random()

    @property
    def recent_records(self) -> list[MonitoringRecord]:
        """Últimos `history_limit` registros de este proceso, más antiguo primero."""
        return list(self._history)

    # ── Llamada individual ────────────────────────────────────────────────────

    async def monitor(
        self, generate_fn: GenerateFn, params: Mapping[str, Any]
    ) -> MonitoredResult:
        params = dict(params)
        start = time.perf_counter()
        try:
            result = await generate_fn(**params)
        except Exception as exc:
            elapsed_ms = (time.perf_counter() - start) * 1000
            record = self._build_record(
                params,
                elapsed_ms,
                success=False,
                errors={
                    "message": str(exc),
                    "stack": traceback.format_exc(),
                },
            )
            await self._persist(record)
            raise

        elapsed_ms = (time.perf_counter() - start) * 1000
        record = self._build_record(
            params,
            elapsed_ms,
            success=True,
            quality=self.quality_metrics(),
        )
        await self._persist(record)
        return MonitoredResult(result=result, monitoring=record)

    # ── Lote ──────────────────────────────────────────────────────────────────

    async def monitor_batch(
        self,
        generate_fn: GenerateFn,
        count: int,
        options: Mapping[str, Any] | None = None,
    ) -> BatchResult:
        """
        `count` generaciones secuenciales. Edad/género fijos si vienen en
        `options`, si no sorteados por distribución en cada iteración.
        """
        if count < 1:
            raise InvalidParameterError(details=f"count debe ser >= 1: {count}")

        batch = BatchResult()
        start = time.perf_counter()

        for i in range(count):
            params = draw_request_params(
                options,
                self._age_distribution,
                self._gender_distribution,
                self._rng,
            )
            try:
                batch.results.append(await self.monitor(generate_fn, params))
            except Exception as exc:
                batch.errors.append(exc)
                logger.warning(
                    "monitor: error en generación por lotes (%d/%d): %s",
                    i + 1,
                    count,
                    exc,
                )

        total_ms = (time.perf_counter() - start) * 1000
        success_count = len(batch.results)
        average = (
            sum(r.monitoring.response_time_ms for r in batch.results) / success_count
            if success_count
            else 0.0
        )
        batch.stats = BatchStats(
            total_time_ms=total_ms,
            average_response_time_ms=average,
            error_rate=len(batch.errors) / count,
            success_count=success_count,
            error_count=len(batch.errors),
        )
        return batch

    # ── Helpers ───────────────────────────────────────────────────────────────

    def quality_metrics(self) -> dict[str, float]:
        """Placeholder sintético, no semántico."""
        return {
            "qualityScore": 0.85 + self._rng.random() * 0.15,
            "promptCompliance": 0.9 + self._rng.random() * 0.1,
        }

    def _build_record(
        self,
        params: dict[str, Any],
        elapsed_ms: float,
        success: bool,
        quality: dict[str, float] | None = None,
        errors: dict[str, str] | None = None,
    ) -> MonitoringRecord:
        return MonitoringRecord(
            id=f"mon_{uuid.uuid4().hex}",
            timestamp=now_iso(),
            request_params=params,
            performance={"responseTimeMs": elapsed_ms, "success": success},
            quality=quality,
            errors=errors,
        )

    async def _persist(self, record: MonitoringRecord) -> None:
        self._history.append(record)
        try:
            await self._store.save_monitoring(record)
        except Exception:
            logger.exception("monitor: error guardando monitorización %s", record.id)
        else:
            logger.debug("monitor: monitorización guardada %s", record.id)
