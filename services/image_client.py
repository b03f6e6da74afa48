"""
services/image_client.py — Cliente de generación de caras sobre la API de Stability AI.

Flujo de generate_face_image():
  1. Valida edad y género (antes de cualquier I/O de red o disco).
  2. Construye el prompt "<age>-year-old <gender> <ethnicity> wearing a suit, photorealistic".
  3. POST multipart al endpoint con reintentos: hasta `max_attempts` intentos,
     espera 2^(n-1) s entre intentos (1 s, 2 s), sin espera tras el último.
     Un status != 200, un error de transporte o un cuerpo no-JSON cuentan como fallo.
  4. Localiza el payload base64 (services/payload.py) y lo decodifica.
  5. Guarda "<age>-<gender>-<10 dígitos>-face.jpeg" vía FaceImageRepository.

Los intentos son estrictamente secuenciales: no hay fan-out ni cancelación de un
intento en curso.

Uso:
    client = ImageGenerationClient(
        api_key=settings.STABILITY_API_KEY,
        config=GenerationConfig.from_settings(settings),
        media_repo=FaceImageRepository(settings.APP_ROOT, settings.FACES_DIR),
    )
    image = await client.generate_face_image(age=30, gender="female")
    await client.aclose()
"""

import asyncio
import logging
import random
import time
import uuid
from collections.abc import Awaitable, Callable, Mapping
from dataclasses import dataclass, field
from typing import Any

import httpx

from middleware.error_handler import InvalidParameterError, UpstreamExhaustedError
from models.entities import GeneratedImage, ImageMetadata
from repositories.media import FaceImageRepository
from services.buckets import (
    AGE_DISTRIBUTION,
    GENDER_DISTRIBUTION,
    validate_age,
    validate_gender,
)
from services.payload import decode_image_payload, extract_image_payload

logger = logging.getLogger(__name__)

DEFAULT_ENDPOINT = "https://api.stability.ai/v2beta/stable-image/generate/core"
SEED_UPPER_BOUND = 1_000_000_000  # seed ∈ [0, 1e9)
FILE_ID_UPPER_BOUND = 10_000_000_000  # id de fichero de 10 dígitos

SleepFn = Callable[[float], Awaitable[Any]]


# ── Configuración ─────────────────────────────────────────────────────────────


@dataclass(frozen=True)
class GenerationConfig:
    """Parámetros de generación inyectados en cada componente (sin estado global)."""

    endpoint: str = DEFAULT_ENDPOINT
    width: int = 512
    height: int = 512
    cfg_scale: float = 7.5
    samples: int = 1
    max_attempts: int = 3
    timeout_s: float = 60.0
    ethnicity: str = "japanese"
    age_distribution: Mapping[int, float] = field(
        default_factory=lambda: dict(AGE_DISTRIBUTION)
    )
    gender_distribution: Mapping[str, float] = field(
        default_factory=lambda: dict(GENDER_DISTRIBUTION)
    )

    @classmethod
    def from_settings(cls, settings) -> "GenerationConfig":
        return cls(
            endpoint=settings.STABILITY_API_ENDPOINT,
            width=settings.IMAGE_WIDTH,
            height=settings.IMAGE_HEIGHT,
            cfg_scale=settings.CFG_SCALE,
            max_attempts=settings.GENERATION_MAX_ATTEMPTS,
            timeout_s=settings.GENERATION_TIMEOUT_S,
            ethnicity=settings.ETHNICITY,
        )


class UpstreamAttemptError(Exception):
    """Fallo de un único intento (status != 200 o cuerpo ilegible)."""


# ── Cliente ───────────────────────────────────────────────────────────────────


class ImageGenerationClient:
    def __init__(
        self,
        api_key: str,
        config: GenerationConfig,
        media_repo: FaceImageRepository,
        http_client: httpx.AsyncClient | None = None,
        sleep: SleepFn = asyncio.sleep,
        rng: random.Random | None = None,
    ) -> None:
        if not api_key:
            raise ValueError("STABILITY_API_KEY no está configurada")
        self._api_key = api_key
        self._config = config
        self._media = media_repo
        self._owns_client = http_client is None
        self._http = http_client or httpx.AsyncClient(timeout=config.timeout_s)
        self._sleep = sleep
        self._rng = rng or random.Random()

    @property
    def config(self) -> GenerationConfig:
        return self._config

    async def aclose(self) -> None:
        if self._owns_client:
            await self._http.aclose()

    # ── Prompt / formulario ───────────────────────────────────────────────────

    def build_prompt(self, age: int, gender: str) -> str:
        return (
            f"{age}-year-old {gender} {self._config.ethnicity} "
            "wearing a suit, photorealistic"
        )

    def build_form_fields(self, prompt: str, seed: int) -> dict[str, str]:
        return {
            "width": str(self._config.width),
            "height": str(self._config.height),
            "seed": str(seed),
            "cfg_scale": str(self._config.cfg_scale),
            "samples": str(self._config.samples),
            "prompt": prompt,
            "text_prompts[0][text]": prompt,
            "text_prompts[0][weight]": "1.0",
        }

    def _resolve_seed(self, seed: Any) -> int:
        if seed is None:
            return self._rng.randrange(SEED_UPPER_BOUND)
        if isinstance(seed, bool) or not isinstance(seed, int):
            raise InvalidParameterError(details=f"Seed inválida: {seed!r}")
        if not 0 <= seed < SEED_UPPER_BOUND:
            raise InvalidParameterError(
                details=f"Seed fuera de rango [0, {SEED_UPPER_BOUND}): {seed}"
            )
        return seed

    # ── Generación ────────────────────────────────────────────────────────────

    async def generate_face_image(
        self,
        age: int | str | None = None,
        gender: str | None = None,
        seed: int | None = None,
    ) -> GeneratedImage:
        """
        Genera, decodifica y guarda una cara.

        Reutilizar una seed sesga el modelo hacia una imagen parecida,
        no garantiza una imagen idéntica.
        """
        start = time.perf_counter()

        age = validate_age(age)
        gender = validate_gender(gender)
        seed = self._resolve_seed(seed)
        prompt = self.build_prompt(age, gender)

        body = await self._request_with_retry(prompt, seed)

        extracted = extract_image_payload(body)
        image_bytes = decode_image_payload(extracted.payload)

        file_id = f"{self._rng.randrange(FILE_ID_UPPER_BOUND):010d}"
        filename = f"{age}-{gender}-{file_id}-face.jpeg"
        image_uri = await self._media.save(image_bytes, filename)

        metadata = ImageMetadata(
            id=f"img_{uuid.uuid4().hex}",
            filename=filename,
            image_uri=image_uri,
            age=age,
            gender=gender,
            ethnicity=self._config.ethnicity,
            seed=seed,
            finish_reason=extracted.finish_reason,
        )
        elapsed_ms = (time.perf_counter() - start) * 1000
        return GeneratedImage(
            image_bytes=image_bytes,
            metadata=metadata,
            response_time_ms=elapsed_ms,
        )

    # ── HTTP con reintentos ───────────────────────────────────────────────────

    async def _request_with_retry(self, prompt: str, seed: int) -> Any:
        max_attempts = self._config.max_attempts
        last_error: Exception | None = None

        for attempt in range(1, max_attempts + 1):
            try:
                return await self._request_once(prompt, seed)
            except (httpx.HTTPError, UpstreamAttemptError) as exc:
                last_error = exc
                logger.warning(
                    "image_client: intento %d/%d fallido: %s",
                    attempt,
                    max_attempts,
                    exc,
                )
                if attempt < max_attempts:
                    await self._sleep(2 ** (attempt - 1))

        logger.error(
            "image_client: generación agotada tras %d intentos: %s",
            max_attempts,
            last_error,
        )
        raise UpstreamExhaustedError(
            details=f"Fallo tras {max_attempts} intentos: {last_error}"
        )

    async def _request_once(self, prompt: str, seed: int) -> Any:
        # Campos de formulario como partes multipart sin nombre de fichero
        files = {
            name: (None, value)
            for name, value in self.build_form_fields(prompt, seed).items()
        }
        response = await self._http.post(
            self._config.endpoint,
            files=files,
            headers={
                "Accept": "application/json",
                "Authorization": f"Bearer {self._api_key}",
            },
        )
        if response.status_code != 200:
            try:
                detail: Any = response.json()
            except ValueError:
                detail = response.text[:500]
            raise UpstreamAttemptError(f"API error: {response.status_code} - {detail}")

        try:
            return response.json()
        except ValueError as exc:
            raise UpstreamAttemptError(f"Respuesta no es JSON válido: {exc}") from exc
