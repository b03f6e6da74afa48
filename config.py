from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=True,
        extra="ignore",
    )

    # ── Servidor ──────────────────────────────────────────────
    HOST: str = "0.0.0.0"
    PORT: int = 8080
    ENVIRONMENT: str = "development"
    ALLOWED_ORIGINS: str = "http://localhost:8080"

    # ── Generación de imágenes — Stability AI ─────────────────
    STABILITY_API_KEY: str
    STABILITY_API_ENDPOINT: str = (
        "https://api.stability.ai/v2beta/stable-image/generate/core"
    )
    IMAGE_WIDTH: int = 512
    IMAGE_HEIGHT: int = 512
    CFG_SCALE: float = 7.5
    GENERATION_MAX_ATTEMPTS: int = 3
    GENERATION_TIMEOUT_S: float = 60.0
    ETHNICITY: str = "japanese"

    # ── Almacenamiento ────────────────────────────────────────
    STORE_BACKEND: str = "sql"  # sql | file
    DATABASE_URL: str = "sqlite+aiosqlite:///./assets/data/faces.db"
    FILE_STORE_DIR: str = "./assets/data/store"
    APP_ROOT: str = "."
    FACES_DIR: str = "assets/faces"  # relativo a APP_ROOT
    NAMES_DIR: str = "./assets/names"

    # ── Monitorización ────────────────────────────────────────
    MONITORING_HISTORY_LIMIT: int = 100

    # ── Entrenamiento / test ──────────────────────────────────
    DEFAULT_PAIR_COUNT: int = 5
    MAX_PAIR_COUNT: int = 50
    DEFAULT_DISPLAY_TIME_S: int = 10

    # ── Logging ───────────────────────────────────────────────
    LOG_LEVEL: str = "INFO"

    # ── Propiedades derivadas ─────────────────────────────────
    @property
    def allowed_origins_list(self) -> list[str]:
        """Devuelve ALLOWED_ORIGINS como lista, soportando valores separados por comas."""
        return [o.strip() for o in self.ALLOWED_ORIGINS.split(",")]

    @property
    def is_production(self) -> bool:
        return self.ENVIRONMENT == "production"


# Instancia singleton — importar desde cualquier módulo con:
#   from config import settings
# Sin STABILITY_API_KEY la app no arranca (error de configuración en el startup).
settings = Settings()  # type: ignore[call-arg]
