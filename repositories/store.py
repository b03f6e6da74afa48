"""
Store — capacidad de almacenamiento de pares y registros de monitorización.

Dos backends intercambiables detrás de la misma interfaz, elegidos en el startup
según settings.STORE_BACKEND:
  - "sql"  → SqlStore (SQLAlchemy async + aiosqlite), una transacción por operación
  - "file" → JsonFileStore (un documento JSON por registro, ver file_store.py)

Uso:
    store = build_store(settings)
    await store.save_pair(pair)
    pairs = await store.get_random_pairs({"age": 30}, limit=5)
"""

from collections.abc import Mapping
from typing import Any, Protocol

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from middleware.error_handler import StorageWriteError
from models.entities import FacePair, MonitoringRecord
from repositories.faces import FacePairRepository
from repositories.monitoring import MonitoringRepository


class Store(Protocol):
    async def save_pair(self, pair: FacePair) -> FacePair: ...

    async def get_pair(self, pair_id: str) -> FacePair | None: ...

    async def get_random_pairs(
        self, conditions: Mapping[str, Any] | None, limit: int
    ) -> list[FacePair]: ...

    async def save_monitoring(self, record: MonitoringRecord) -> None: ...

    async def list_monitoring(self, limit: int = 100) -> list[MonitoringRecord]: ...


# ── Backend SQL ───────────────────────────────────────────────────────────────


class SqlStore:
    def __init__(self, session_factory: async_sessionmaker[AsyncSession]) -> None:
        self._session_factory = session_factory

    async def save_pair(self, pair: FacePair) -> FacePair:
        try:
            async with self._session_factory() as session, session.begin():
                return await FacePairRepository(session).save(pair)
        except SQLAlchemyError as exc:
            raise StorageWriteError(details=f"Error guardando par {pair.id}: {exc}") from exc

    async def get_pair(self, pair_id: str) -> FacePair | None:
        async with self._session_factory() as session:
            return await FacePairRepository(session).get_by_id(pair_id)

    async def get_random_pairs(
        self, conditions: Mapping[str, Any] | None, limit: int
    ) -> list[FacePair]:
        async with self._session_factory() as session:
            return await FacePairRepository(session).get_random(conditions, limit)

    async def save_monitoring(self, record: MonitoringRecord) -> None:
        try:
            async with self._session_factory() as session, session.begin():
                await MonitoringRepository(session).save(record)
        except SQLAlchemyError as exc:
            raise StorageWriteError(
                details=f"Error guardando monitorización {record.id}: {exc}"
            ) from exc

    async def list_monitoring(self, limit: int = 100) -> list[MonitoringRecord]:
        async with self._session_factory() as session:
            return await MonitoringRepository(session).list_recent(limit)


# ── Selección de backend ──────────────────────────────────────────────────────


def build_store(settings) -> Store:
    """
    Construye el backend configurado. Para "sql" requiere init_db() previo.
    """
    backend = settings.STORE_BACKEND.lower()
    if backend == "file":
        from repositories.file_store import JsonFileStore

        return JsonFileStore(settings.FILE_STORE_DIR)
    if backend == "sql":
        import db as db_module

        assert db_module.AsyncSessionLocal is not None, (
            "init_db() debe ejecutarse antes de build_store()"
        )
        return SqlStore(db_module.AsyncSessionLocal)
    raise ValueError(f"STORE_BACKEND desconocido: {settings.STORE_BACKEND!r}. Usa 'sql' o 'file'")
