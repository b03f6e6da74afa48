"""
Base de datos — SQLAlchemy async con aiosqlite.

Tablas:
  faces            — pares cara-nombre generados (inmutables una vez guardados)
  monitoring_data  — un registro por intento de generación de imagen

Uso:
    from db import engine, AsyncSessionLocal, create_all_tables

    # Crear tablas (normalmente en el startup de FastAPI):
    await create_all_tables()

    # Sesión en un endpoint / repositorio:
    async with AsyncSessionLocal() as session:
        ...
"""

from pathlib import Path

from sqlalchemy import BigInteger, Index, Integer, String, Text
from sqlalchemy.engine import make_url
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column


# ── Motor y sesión ────────────────────────────────────────────────────────────


def _ensure_sqlite_dir(database_url: str) -> None:
    """Crea el directorio padre del fichero SQLite si la URL apunta a disco."""
    url = make_url(database_url)
    if url.get_backend_name() != "sqlite":
        return
    database = url.database
    if not database or database == ":memory:":
        return
    Path(database).parent.mkdir(parents=True, exist_ok=True)


def _make_engine(database_url: str):
    """Crea el motor async. Acepta la URL desde config para facilitar los tests."""
    _ensure_sqlite_dir(database_url)
    return create_async_engine(
        database_url,
        echo=False,
        connect_args={"check_same_thread": False},
    )


def _make_session_factory(engine) -> async_sessionmaker[AsyncSession]:
    return async_sessionmaker(engine, expire_on_commit=False)


# Se inicializan en init_db() para no importar config en tiempo de módulo
# (facilita tests que sobreescriben la URL)
engine: AsyncEngine | None = None
AsyncSessionLocal: async_sessionmaker[AsyncSession] | None = None


def init_db(database_url: str | None = None) -> None:
    """
    Inicializa el motor y la fábrica de sesiones.
    Llamar una vez en el startup de FastAPI o al inicio de los tests.
    """
    global engine, AsyncSessionLocal
    if database_url is None:
        from config import settings

        database_url = settings.DATABASE_URL
    engine = _make_engine(database_url)
    AsyncSessionLocal = _make_session_factory(engine)


# ── ORM base ──────────────────────────────────────────────────────────────────


class Base(DeclarativeBase):
    pass


# ── Tablas ────────────────────────────────────────────────────────────────────


class FacePairRow(Base):
    __tablename__ = "faces"

    id: Mapped[str] = mapped_column(String(64), primary_key=True)  # "img_<hex>"
    image_uri: Mapped[str] = mapped_column(Text, nullable=False)
    age: Mapped[int] = mapped_column(Integer, nullable=False)  # 20..70
    gender: Mapped[str] = mapped_column(String(10), nullable=False)  # male | female
    family_name: Mapped[str] = mapped_column(String(50), nullable=False)
    given_name: Mapped[str] = mapped_column(String(50), nullable=False)
    ethnicity: Mapped[str] = mapped_column(
        String(30), nullable=False, default="japanese"
    )
    seed: Mapped[int | None] = mapped_column(BigInteger, nullable=True)
    created_at: Mapped[str] = mapped_column(String(40), nullable=False)  # ISO-8601

    __table_args__ = (Index("ix_faces_age_gender", "age", "gender"),)


class MonitoringRow(Base):
    __tablename__ = "monitoring_data"

    id: Mapped[str] = mapped_column(String(64), primary_key=True)  # "mon_<hex>"
    timestamp: Mapped[str] = mapped_column(String(40), nullable=False)
    # Columnas JSON serializadas como texto (null → "null")
    request_params: Mapped[str] = mapped_column(Text, nullable=False, default="{}")
    performance: Mapped[str] = mapped_column(Text, nullable=False, default="{}")
    quality: Mapped[str] = mapped_column(Text, nullable=False, default="null")
    errors: Mapped[str] = mapped_column(Text, nullable=False, default="null")
    created_at: Mapped[str] = mapped_column(String(40), nullable=False)

    __table_args__ = (Index("ix_monitoring_created", "created_at"),)


# ── Helpers ───────────────────────────────────────────────────────────────────


async def create_all_tables() -> None:
    """Crea todas las tablas si no existen. Llamar en el lifespan de FastAPI."""
    if engine is None:
        init_db()
    assert engine is not None
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)


async def drop_all_tables() -> None:
    """Elimina todas las tablas. Solo para tests."""
    if engine is None:
        init_db()
    assert engine is not None
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)
