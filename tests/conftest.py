"""
tests/conftest.py — Variables de entorno mínimas y fixtures compartidas.

Se ejecuta antes de cualquier módulo de test, garantizando que
`Settings()` no falle por falta de STABILITY_API_KEY.

Fixtures:
  - in_memory_db   — SQLite en memoria (init_db + create_all_tables)
  - png_bytes      — imagen de prueba; el upstream la devuelve en base64
  - sleeps         — lista donde fake_sleep registra los backoffs (sin esperar)
  - upstream       — fábrica de FakeUpstream (httpx.MockTransport con respuestas en cola)
  - make_client    — fábrica de ImageGenerationClient contra un FakeUpstream
"""

import os

# Valores de prueba — nunca usados en producción
os.environ.setdefault("STABILITY_API_KEY", "test-stability-key-not-used-in-unit-tests")
os.environ.setdefault("ENVIRONMENT", "development")

import base64  # noqa: E402
import random  # noqa: E402

import httpx  # noqa: E402
import pytest  # noqa: E402

import db as db_module  # noqa: E402
from db import create_all_tables, drop_all_tables  # noqa: E402
from repositories.media import FaceImageRepository  # noqa: E402
from services.image_client import GenerationConfig, ImageGenerationClient  # noqa: E402

PNG_BYTES = b"\x89PNG\r\n\x1a\n" + bytes(range(256))


class FakeUpstream:
    """
    Sirve respuestas en cola desde un httpx.MockTransport y registra cada request.
    Un elemento Exception se lanza en vez de responder; el último elemento se
    repite cuando la cola se agota.
    """

    def __init__(self, responses: list) -> None:
        self._responses = list(responses)
        self.requests: list[httpx.Request] = []

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        item = self._responses.pop(0) if len(self._responses) > 1 else self._responses[0]
        if isinstance(item, Exception):
            raise item
        return item

    def client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(transport=httpx.MockTransport(self.handler))


@pytest.fixture
async def in_memory_db():
    """BD SQLite en memoria, creada y destruida por cada test."""
    db_module.init_db("sqlite+aiosqlite:///:memory:")
    await create_all_tables()
    yield
    await drop_all_tables()
    if db_module.engine is not None:
        await db_module.engine.dispose()


@pytest.fixture
def png_bytes() -> bytes:
    return PNG_BYTES


@pytest.fixture
def png_b64(png_bytes) -> str:
    return base64.b64encode(png_bytes).decode()


@pytest.fixture
def sleeps() -> list[float]:
    return []


@pytest.fixture
def fake_sleep(sleeps):
    async def _sleep(seconds: float) -> None:
        sleeps.append(seconds)

    return _sleep


@pytest.fixture
def upstream(png_b64):
    """upstream() → respuesta 200 con el PNG; upstream([...]) → cola explícita."""

    def _make(responses: list | None = None) -> FakeUpstream:
        if responses is None:
            responses = [httpx.Response(200, json={"artifacts": [{"base64": png_b64}]})]
        return FakeUpstream(responses)

    return _make


@pytest.fixture
def make_client(tmp_path, fake_sleep):
    def _make(fake: FakeUpstream, **config) -> ImageGenerationClient:
        return ImageGenerationClient(
            api_key="test-key",
            config=GenerationConfig(**config),
            media_repo=FaceImageRepository(app_root=tmp_path),
            http_client=fake.client(),
            sleep=fake_sleep,
            rng=random.Random(42),
        )

    return _make
