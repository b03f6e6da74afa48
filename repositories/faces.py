"""
FacePairRepository — acceso asíncrono a la tabla `faces`.

Los pares son inmutables: solo hay inserción y lectura.

Uso:
    async with AsyncSessionLocal() as session:
        repo = FacePairRepository(session)
        await repo.save(pair)
        pairs = await repo.get_random({"age": 30}, limit=5)
"""

from collections.abc import Mapping
from typing import Any

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from db import FacePairRow
from models.entities import FacePair


# ── Helpers ───────────────────────────────────────────────────────────────────


def _row_to_entity(row: FacePairRow) -> FacePair:
    return FacePair(
        id=row.id,
        image_uri=row.image_uri,
        age=row.age,
        gender=row.gender,
        family_name=row.family_name,
        given_name=row.given_name,
        ethnicity=row.ethnicity,
        seed=row.seed,
        created_at=row.created_at,
    )


# ── Repositorio ───────────────────────────────────────────────────────────────


class FacePairRepository:
    def __init__(self, session: AsyncSession) -> None:
        self._session = session

    async def save(self, pair: FacePair) -> FacePair:
        """Inserta el par. El id lo asigna el generador de imágenes, no la BD."""
        row = FacePairRow(
            id=pair.id,
            image_uri=pair.image_uri,
            age=pair.age,
            gender=pair.gender,
            family_name=pair.family_name,
            given_name=pair.given_name,
            ethnicity=pair.ethnicity,
            seed=pair.seed,
            created_at=pair.created_at,
        )
        self._session.add(row)
        await self._session.flush()
        return _row_to_entity(row)

    async def get_by_id(self, pair_id: str) -> FacePair | None:
        result = await self._session.execute(
            select(FacePairRow).where(FacePairRow.id == pair_id)
        )
        row = result.scalar_one_or_none()
        return _row_to_entity(row) if row else None

    async def get_random(
        self,
        conditions: Mapping[str, Any] | None = None,
        limit: int = 5,
    ) -> list[FacePair]:
        """
        Hasta `limit` pares en orden aleatorio uniforme (ORDER BY RANDOM()),
        filtrando por `age` y/o `gender` si vienen en `conditions`.
        """
        conditions = conditions or {}
        stmt = select(FacePairRow)
        if conditions.get("age") is not None:
            stmt = stmt.where(FacePairRow.age == int(conditions["age"]))
        if conditions.get("gender") is not None:
            stmt = stmt.where(FacePairRow.gender == conditions["gender"])
        stmt = stmt.order_by(func.random()).limit(limit)

        result = await self._session.execute(stmt)
        return [_row_to_entity(r) for r in result.scalars().all()]

    async def count(self) -> int:
        result = await self._session.execute(select(func.count(FacePairRow.id)))
        return int(result.scalar_one())
