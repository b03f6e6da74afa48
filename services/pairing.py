"""
services/pairing.py — Servicio de pares cara-nombre.

Combina la imagen generada (vía GenerationMonitor → ImageGenerationClient) con
un nombre del NameGenerator, compone el FacePair y lo persiste en el Store.

Uso:
    service = FaceNameService(image_client, monitor, name_generator, store)
    pair = await service.generate_pair(age=30, gender="female")
    pairs = await service.get_random_pairs(5, {"age": 30})
"""

import logging
import random
from collections.abc import Mapping
from typing import Any

from middleware.error_handler import InvalidParameterError
from models.entities import FacePair, GeneratedImage
from repositories.store import Store
from services.buckets import draw_request_params, validate_age, validate_gender
from services.image_client import ImageGenerationClient
from services.monitor import GenerationMonitor
from services.names import NameGenerator

logger = logging.getLogger(__name__)


def normalize_conditions(conditions: Mapping[str, Any] | None) -> dict[str, Any]:
    """Filtros {age, gender} validados; las claves a None se descartan."""
    normalized: dict[str, Any] = {}
    conditions = conditions or {}
    if conditions.get("age") is not None:
        normalized["age"] = validate_age(conditions["age"])
    if conditions.get("gender") is not None:
        normalized["gender"] = validate_gender(conditions["gender"])
    return normalized


class FaceNameService:
    def __init__(
        self,
        image_client: ImageGenerationClient,
        monitor: GenerationMonitor,
        name_generator: NameGenerator,
        store: Store,
        rng: random.Random | None = None,
    ) -> None:
        self._image_client = image_client
        self._monitor = monitor
        self._names = name_generator
        self._store = store
        self._rng = rng or random.Random()

    # ── Generación ────────────────────────────────────────────────────────────

    async def generate_pair(
        self, age: int | str | None = None, gender: str | None = None
    ) -> FacePair:
        """
        Genera y persiste un par. Edad/género sin fijar se sortean por distribución.
        El nombre usa la edad/género reales de los metadatos de la imagen.
        """
        config = self._image_client.config
        # Validar antes de monitorizar: un bucket inválido no llega a generar
        age = validate_age(age) if age is not None else None
        gender = validate_gender(gender) if gender is not None else None
        params = draw_request_params(
            {"age": age, "gender": gender},
            config.age_distribution,
            config.gender_distribution,
            self._rng,
        )
        monitored = await self._monitor.monitor(
            self._image_client.generate_face_image, params
        )
        image: GeneratedImage = monitored.result
        metadata = image.metadata

        name = self._names.generate_name(metadata.age, metadata.gender)

        pair = FacePair(
            id=metadata.id,
            image_uri=metadata.image_uri,
            age=metadata.age,
            gender=metadata.gender,
            family_name=name.family_name,
            given_name=name.given_name,
            ethnicity=metadata.ethnicity,
            seed=metadata.seed,
        )
        saved = await self._store.save_pair(pair)
        logger.info(
            "pairing: par generado id=%s age=%s gender=%s",
            saved.id,
            saved.age,
            saved.gender,
        )
        return saved

    async def generate_multiple(
        self, count: int, options: Mapping[str, Any] | None = None
    ) -> list[FacePair]:
        """`count` pares, uno detrás de otro. Un fallo corta y se propaga."""
        if count < 0:
            raise InvalidParameterError(details=f"count debe ser >= 0: {count}")
        options = normalize_conditions(options)
        pairs: list[FacePair] = []
        for _ in range(count):
            pairs.append(
                await self.generate_pair(options.get("age"), options.get("gender"))
            )
        return pairs

    # ── Lectura ───────────────────────────────────────────────────────────────

    async def get_random_pairs(
        self, count: int, conditions: Mapping[str, Any] | None = None
    ) -> list[FacePair]:
        """
        Hasta `count` pares existentes en orden aleatorio; el déficit se genera
        con las mismas condiciones y se añade al final. Los errores de esa
        generación se propagan al llamante. No se deduplica.
        """
        conditions = normalize_conditions(conditions)
        pairs = await self._store.get_random_pairs(conditions, count)

        shortfall = count - len(pairs)
        if shortfall > 0:
            logger.info(
                "pairing: %d pares en el almacén, generando %d más", len(pairs), shortfall
            )
            pairs.extend(await self.generate_multiple(shortfall, conditions))
        return pairs

    async def get_pair_by_id(self, pair_id: str) -> FacePair | None:
        return await self._store.get_pair(pair_id)
