"""
Modelos Pydantic para respuestas de la REST API.

  - GET  /api/health                      → HealthResponse
  - GET  /api/training?action=...         → TrainingResponse
  - GET  /api/monitoring/records          → MonitoringRecordsResponse
  - POST /api/monitoring/batch            → BatchResponse
  - /api/quiz/...                         → QuizSessionResponse, AnswerResponse,
                                            QuizResultsResponse, MemorizationResponse
"""

from typing import Any

from pydantic import BaseModel, Field

from models.entities import FacePair, MonitoringRecord


# ── Salud ─────────────────────────────────────────────────────────────────────


class HealthResponse(BaseModel):
    status: str = "ok"
    version: str = "1.0"


# ── Error estándar ─────────────────────────────────────────────────────────────


class ErrorResponse(BaseModel):
    error: bool = True
    error_code: str
    message: str
    details: str | None = None
    recoverable: bool = False
    retry_after: int | None = None  # segundos; None si no aplica
    timestamp: str  # ISO-8601


# ── Pares cara-nombre ─────────────────────────────────────────────────────────


class FacePairResponse(BaseModel):
    id: str
    image_uri: str
    age: int
    gender: str
    family_name: str
    given_name: str
    full_name: str
    ethnicity: str
    seed: int | None = None
    created_at: str

    @classmethod
    def from_entity(cls, pair: FacePair) -> "FacePairResponse":
        return cls(full_name=pair.full_name, **pair.to_dict())


class TrainingResponse(BaseModel):
    """
    Sobre de GET /api/training:
      éxito → {"success": true, "data": ...}
      fallo → {"success": false, "error": "...", "error_code": "..."}
    """

    success: bool
    data: list[FacePairResponse] | FacePairResponse | None = None
    error: str | None = None
    error_code: str | None = None


# ── Monitorización ────────────────────────────────────────────────────────────


class MonitoringRecordResponse(BaseModel):
    id: str
    timestamp: str
    request_params: dict[str, Any]
    performance: dict[str, Any]
    quality: dict[str, float] | None = None
    errors: dict[str, str] | None = None
    created_at: str

    @classmethod
    def from_entity(cls, record: MonitoringRecord) -> "MonitoringRecordResponse":
        return cls(**record.to_dict())


class MonitoringRecordsResponse(BaseModel):
    records: list[MonitoringRecordResponse] = Field(default_factory=list)


class BatchStatsResponse(BaseModel):
    totalTime: float
    averageResponseTime: float
    errorRate: float
    successCount: int
    errorCount: int


class BatchErrorResponse(BaseModel):
    """Fallo de un elemento del lote: solo el texto para el usuario y el código."""

    error_code: str
    message: str


class BatchResponse(BaseModel):
    results: list[dict[str, Any]] = Field(
        default_factory=list, description="Metadatos de cada imagen generada"
    )
    errors: list[BatchErrorResponse] = Field(default_factory=list)
    stats: BatchStatsResponse


# ── Test ──────────────────────────────────────────────────────────────────────


class MemorizationResponse(BaseModel):
    session_id: str
    display_time: int
    pairs: list[FacePairResponse]


class QuizOptionResponse(BaseModel):
    """Opción del curso A. No revela cuál es la correcta."""

    index: int
    face_id: str
    image_uri: str


class QuizQuestionResponse(BaseModel):
    index: int
    total: int
    progress: float
    face_id: str | None = None  # curso B: la cara a nombrar
    image_uri: str | None = None  # curso B
    target_name: str | None = None  # curso A: el nombre a emparejar
    options: list[QuizOptionResponse] | None = None  # curso A


class AnswerResponse(BaseModel):
    question_index: int
    face_id: str
    correct_answer: str
    user_answer: str
    is_correct: bool
    match_level: str | None = None
    correct_option_index: int | None = None  # curso A, para resaltar tras responder
    state: str


class QuizSessionResponse(BaseModel):
    session_id: str
    course: str
    question_count: int
    state: str
    question: QuizQuestionResponse | None = None
    answer: AnswerResponse | None = None


class QuizResultAnswerResponse(BaseModel):
    face_id: str
    image_uri: str | None = None
    correct_answer: str
    user_answer: str
    is_correct: bool
    match_level: str | None = None


class QuizResultsResponse(BaseModel):
    session_id: str
    course: str
    question_count: int
    correct_count: int
    accuracy: int
    answers: list[QuizResultAnswerResponse] = Field(default_factory=list)
