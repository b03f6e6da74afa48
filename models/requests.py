"""
Modelos Pydantic para payloads de entrada en la REST API.
Sin `from typing import` — tipos nativos Python 3.12.

Edad y género se validan contra los buckets en el servicio (InvalidParameterError),
no aquí: así el error sale con el código INVALID_PARAMETER y no VALIDATION_ERROR.
"""

from pydantic import BaseModel, Field


# ── Monitorización ────────────────────────────────────────────────────────────


class BatchRequest(BaseModel):
    """POST /api/monitoring/batch — lote secuencial de generaciones monitorizadas."""

    count: int = Field(..., ge=1, le=50)
    age: int | None = None
    gender: str | None = None


# ── Test ──────────────────────────────────────────────────────────────────────


class MemorizationRequest(BaseModel):
    """POST /api/quiz/memorization — preparar una ronda de memorización."""

    count: int | None = Field(default=None, ge=1)
    age: int | None = None
    gender: str | None = None
    display_time: int | None = Field(default=None, ge=1, le=60)
    session_id: str | None = None


class QuizCreateRequest(BaseModel):
    """
    POST /api/quiz/sessions — configurar y comenzar un test.
    Sin face_ids se usan las caras de la última memorización de la sesión.
    """

    course: str = Field(..., pattern="^(a|b|A|B)$")
    question_count: int | None = Field(default=None, ge=1)
    face_ids: list[str] | None = None
    session_id: str | None = None


class QuizAnswerRequest(BaseModel):
    """POST /api/quiz/sessions/{id}/answer — option_index (curso A) o answer (curso B)."""

    option_index: int | None = Field(default=None, ge=0)
    answer: str | None = Field(default=None, max_length=100)
