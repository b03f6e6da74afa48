"""
MonitoringRepository — acceso asíncrono a la tabla `monitoring_data`.

request_params, performance, quality y errors se guardan como JSON en texto.
"""

import json

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from db import MonitoringRow
from models.entities import MonitoringRecord, now_iso


def _row_to_entity(row: MonitoringRow) -> MonitoringRecord:
    return MonitoringRecord(
        id=row.id,
        timestamp=row.timestamp,
        request_params=json.loads(row.request_params) if row.request_params else {},
        performance=json.loads(row.performance) if row.performance else {},
        quality=json.loads(row.quality) if row.quality else None,
        errors=json.loads(row.errors) if row.errors else None,
        created_at=row.created_at,
    )


class MonitoringRepository:
    def __init__(self, session: AsyncSession) -> None:
        self._session = session

    async def save(self, record: MonitoringRecord) -> None:
        row = MonitoringRow(
            id=record.id,
            timestamp=record.timestamp,
            request_params=json.dumps(record.request_params, ensure_ascii=False),
            performance=json.dumps(record.performance),
            quality=json.dumps(record.quality),
            errors=json.dumps(record.errors, ensure_ascii=False),
            created_at=record.created_at or now_iso(),
        )
        self._session.add(row)
        await self._session.flush()

    async def list_recent(self, limit: int = 100) -> list[MonitoringRecord]:
        """Registros más recientes primero."""
        result = await self._session.execute(
            select(MonitoringRow)
            .order_by(MonitoringRow.created_at.desc(), MonitoringRow.timestamp.desc())
            .limit(limit)
        )
        return [_row_to_entity(r) for r in result.scalars().all()]

    async def count(self) -> int:
        result = await self._session.execute(select(func.count(MonitoringRow.id)))
        return int(result.scalar_one())
