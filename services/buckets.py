"""
services/buckets.py — Buckets de edad/género y sorteo ponderado.

Validación compartida por el generador de nombres y el cliente de imágenes:
ambos fallan con InvalidParameterError antes de cualquier I/O.

Uso:
    from services.buckets import validate_age, validate_gender, draw_request_params

    age = validate_age("30")           # → 30
    params = draw_request_params({"gender": "female"})  # edad sorteada 25/25/20/15/10/5
"""

import random
from collections.abc import Mapping
from typing import Any

from middleware.error_handler import InvalidParameterError

VALID_AGES: tuple[int, ...] = (20, 30, 40, 50, 60, 70)
VALID_GENDERS: tuple[str, ...] = ("male", "female")

# Orden de iteración fijo: el sorteo acumula en este orden
AGE_DISTRIBUTION: dict[int, float] = {
    20: 0.25,
    30: 0.25,
    40: 0.20,
    50: 0.15,
    60: 0.10,
    70: 0.05,
}

GENDER_DISTRIBUTION: dict[str, float] = {
    "male": 0.5,
    "female": 0.5,
}


# ── Validación ────────────────────────────────────────────────────────────────


def validate_age(age: Any) -> int:
    """Devuelve la edad como int. Acepta enteros y strings numéricos ("30")."""
    parsed: int | None = None
    if isinstance(age, bool):
        parsed = None
    elif isinstance(age, int):
        parsed = age
    elif isinstance(age, str):
        # solo dígitos ASCII: isdigit() acepta "²", que int() rechaza
        text = age.strip()
        if text.isascii() and text.removeprefix("-").isdigit():
            parsed = int(text)

    if parsed not in VALID_AGES:
        raise InvalidParameterError(
            details=f"Edad inválida: {age!r}. Valores válidos: "
            + ", ".join(str(a) for a in VALID_AGES)
        )
    return parsed  # type: ignore[return-value]


def validate_gender(gender: Any) -> str:
    if gender not in VALID_GENDERS:
        raise InvalidParameterError(
            details=f"Género inválido: {gender!r}. Valores válidos: "
            + ", ".join(VALID_GENDERS)
        )
    return gender


# ── Sorteo ponderado ──────────────────────────────────────────────────────────


def select_by_distribution(
    distribution: Mapping[Any, float],
    rng: random.Random | None = None,
) -> Any:
    """
    Sortea una clave según su probabilidad.

    Acumula la probabilidad en el orden de iteración del mapping y devuelve la
    primera clave cuya suma acumulada supera r ∈ [0, 1). Si la deriva de coma
    flotante deja r sin asignar, devuelve la primera clave.
    """
    r = (rng or random).random()
    cumulative = 0.0
    for key, probability in distribution.items():
        cumulative += probability
        if r < cumulative:
            return key
    return next(iter(distribution))


def draw_request_params(
    options: Mapping[str, Any] | None = None,
    age_distribution: Mapping[int, float] = AGE_DISTRIBUTION,
    gender_distribution: Mapping[str, float] = GENDER_DISTRIBUTION,
    rng: random.Random | None = None,
) -> dict[str, Any]:
    """
    Devuelve {"age", "gender"}: el valor fijado por el llamante si existe,
    si no uno sorteado de la distribución correspondiente.
    """
    options = options or {}
    age = options.get("age")
    gender = options.get("gender")
    if age is None:
        age = select_by_distribution(age_distribution, rng)
    if gender is None:
        gender = select_by_distribution(gender_distribution, rng)
    return {"age": age, "gender": gender}
