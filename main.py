"""
main.py — Punto de entrada de la aplicación FastAPI.

Registra middlewares, routers, manejadores de error y el mount estático /assets
(imágenes generadas). Los servicios se construyen una vez en el lifespan y se
guardan en `app.state` (ver dependencies.py).

Uso (desarrollo):
    uvicorn main:app --reload

Uso (producción):
    uvicorn main:app --host 0.0.0.0 --port 8080
"""

import asyncio
import logging
from contextlib import asynccontextmanager
from pathlib import Path

import httpx
import uvicorn
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from fastapi.staticfiles import StaticFiles

import db as db_module
from config import Settings, settings
from db import create_all_tables, init_db
from middleware.error_handler import register_error_handlers
from middleware.logging import LoggingMiddleware
from repositories.media import FaceImageRepository
from repositories.store import build_store
from routers.health import router as health_router
from routers.monitoring import router as monitoring_router
from routers.quiz import router as quiz_router
from routers.training import router as training_router
from services.image_client import GenerationConfig, ImageGenerationClient
from services.monitor import GenerationMonitor
from services.names import NameGenerator
from services.pairing import FaceNameService
from services.quiz import SessionStorage

logger = logging.getLogger(__name__)


# ── Servicios ─────────────────────────────────────────────────────────────────


def init_services(
    app: FastAPI,
    cfg: Settings,
    http_client: httpx.AsyncClient | None = None,
    sleep=asyncio.sleep,
) -> None:
    """
    Construye el grafo de servicios sobre el almacén configurado y lo deja en
    app.state. Con STORE_BACKEND="sql" requiere init_db() previo.
    """
    store = build_store(cfg)
    config = GenerationConfig.from_settings(cfg)
    image_client = ImageGenerationClient(
        api_key=cfg.STABILITY_API_KEY,
        config=config,
        media_repo=FaceImageRepository(cfg.APP_ROOT, cfg.FACES_DIR),
        http_client=http_client,
        sleep=sleep,
    )
    monitor = GenerationMonitor(
        store,
        history_limit=cfg.MONITORING_HISTORY_LIMIT,
        age_distribution=config.age_distribution,
        gender_distribution=config.gender_distribution,
    )

    app.state.store = store
    app.state.image_client = image_client
    app.state.monitor = monitor
    app.state.face_name_service = FaceNameService(
        image_client, monitor, NameGenerator(cfg.NAMES_DIR), store
    )
    app.state.quiz_storage = SessionStorage()


# ── Lifespan ──────────────────────────────────────────────────────────────────


@asynccontextmanager
async def lifespan(app: FastAPI):
    # Startup
    if settings.STORE_BACKEND.lower() == "sql":
        init_db()
        await create_all_tables()
    init_services(app, settings)
    logger.info("startup: almacén=%s", settings.STORE_BACKEND)
    yield
    # Shutdown
    await app.state.image_client.aclose()
    if db_module.engine is not None:
        await db_module.engine.dispose()


# ── Aplicación ────────────────────────────────────────────────────────────────


app = FastAPI(
    title="Face Name Trainer",
    version="1.0",
    description="Entrenamiento de memoria cara-nombre | FastAPI + Stability AI",
    lifespan=lifespan,
    docs_url="/docs" if not settings.is_production else None,
    redoc_url="/redoc" if not settings.is_production else None,
)

# ── Middlewares (orden: el último en añadirse es el primero en ejecutarse) ────

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.allowed_origins_list,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.add_middleware(LoggingMiddleware)

# ── Manejadores de error ──────────────────────────────────────────────────────

register_error_handlers(app)

# ── Routers ───────────────────────────────────────────────────────────────────

app.include_router(health_router)
app.include_router(training_router)
app.include_router(monitoring_router)
app.include_router(quiz_router)

# ── Imágenes generadas ────────────────────────────────────────────────────────

_assets_dir = Path(settings.APP_ROOT) / "assets"
_assets_dir.mkdir(parents=True, exist_ok=True)
app.mount("/assets", StaticFiles(directory=_assets_dir), name="assets")


# ── Arranque directo ──────────────────────────────────────────────────────────

if __name__ == "__main__":
    uvicorn.run(
        "main:app",
        host=settings.HOST,
        port=settings.PORT,
        reload=not settings.is_production,
        log_level=settings.LOG_LEVEL.lower(),
    )
