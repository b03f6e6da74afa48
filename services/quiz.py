"""
services/quiz.py — Máquina de estados de memorización y test.

Estados:
  loading → memorizing ⇄ paused → completed
  → idle (curso A | B) → answering → reviewed → (siguiente pregunta | finished) → results

  - MemorizationSession: pase de diapositivas con cuenta atrás de `display_time`
    segundos por par. tick() es un decremento de 1 s; al llegar a 0 avanza o
    completa. Pausar congela la cuenta sin reiniciarla; navegar a mano la reinicia.
  - CourseAQuiz (nombre → cara): 1 opción correcta + hasta 2 distractores de las
    demás caras memorizadas, barajadas. El primer clic bloquea la respuesta.
  - CourseBQuiz (cara → nombre): texto libre clasificado por classify_name_answer().
    Solo exact y normalized cuentan como acierto.
  - SessionStorage: estado efímero por sesión (faceIds, testSettings, testResults),
    solo en memoria del proceso, sobrescrito en cada nueva ronda.

Uso:
    session = MemorizationSession(pairs, display_time=10)
    session.start()
    await run_countdown(session)

    settings = build_test_settings(session.face_ids, course="b", question_count=5)
    quiz = CourseBQuiz(pairs[: settings.question_count])
    quiz.start()
    quiz.submit("佐藤 陽菜")
"""

import asyncio
import random
import re
import uuid
from collections import OrderedDict
from collections.abc import Awaitable, Callable, Sequence
from dataclasses import dataclass, field
from enum import Enum
from typing import Any

from middleware.error_handler import InvalidParameterError, QuizStateError
from models.entities import FacePair

DEFAULT_DISPLAY_TIME_S = 10
DISTRACTOR_COUNT = 2

_WHITESPACE_RE = re.compile(r"\s+")


class QuizState(str, Enum):
    LOADING = "loading"
    MEMORIZING = "memorizing"
    PAUSED = "paused"
    COMPLETED = "completed"
    IDLE = "idle"
    ANSWERING = "answering"
    REVIEWED = "reviewed"
    FINISHED = "finished"
    RESULTS = "results"


class Course(str, Enum):
    A = "a"  # nombre → cara (opción múltiple)
    B = "b"  # cara → nombre (texto libre)


class MatchLevel(str, Enum):
    EXACT = "exact"
    NORMALIZED = "normalized"
    FAMILY_ONLY = "family_only"
    GIVEN_ONLY = "given_only"
    NONE = "none"


# ── Memorización ──────────────────────────────────────────────────────────────


class MemorizationSession:
    def __init__(
        self,
        pairs: Sequence[FacePair],
        display_time: int = DEFAULT_DISPLAY_TIME_S,
    ) -> None:
        if display_time < 1:
            raise InvalidParameterError(
                details=f"display_time debe ser >= 1: {display_time}"
            )
        self._pairs = list(pairs)
        self.display_time = display_time
        self.index = 0
        self.time_remaining = display_time
        self.state = QuizState.LOADING

    @property
    def pairs(self) -> list[FacePair]:
        return list(self._pairs)

    @property
    def total(self) -> int:
        return len(self._pairs)

    @property
    def current(self) -> FacePair | None:
        if self.state in (QuizState.MEMORIZING, QuizState.PAUSED):
            return self._pairs[self.index]
        return None

    @property
    def progress(self) -> float:
        if not self._pairs:
            return 0.0
        return (self.index + 1) / len(self._pairs)

    @property
    def is_paused(self) -> bool:
        return self.state is QuizState.PAUSED

    @property
    def face_ids(self) -> list[str]:
        """IDs memorizados en orden, para el reparto al configurar el test."""
        return [p.id for p in self._pairs]

    def start(self) -> None:
        if not self._pairs:
            raise QuizStateError("No hay caras para memorizar")
        self.index = 0
        self._reset_timer()
        self.state = QuizState.MEMORIZING

    def tick(self) -> QuizState:
        """Un segundo de cuenta atrás. En pausa no hace nada."""
        if self.state is not QuizState.MEMORIZING:
            return self.state
        self.time_remaining -= 1
        if self.time_remaining <= 0:
            if self.index >= len(self._pairs) - 1:
                self.complete()
            else:
                self.index += 1
                self._reset_timer()
        return self.state

    def pause(self) -> None:
        self._require_active()
        self.state = QuizState.PAUSED

    def resume(self) -> None:
        self._require_active()
        self.state = QuizState.MEMORIZING

    def toggle_pause(self) -> bool:
        """Alterna pausa/reanudar. Devuelve True si queda en pausa."""
        if self.is_paused:
            self.resume()
        else:
            self.pause()
        return self.is_paused

    def next(self) -> None:
        self._require_active()
        if self.index < len(self._pairs) - 1:
            self.index += 1
            self._reset_timer()
        else:
            self.complete()

    def prev(self) -> None:
        self._require_active()
        if self.index > 0:
            self.index -= 1
            self._reset_timer()

    def complete(self) -> None:
        self.state = QuizState.COMPLETED

    def review(self) -> None:
        """Repasar desde el primer par tras completar."""
        if self.state is not QuizState.COMPLETED:
            raise QuizStateError("Solo se puede repasar tras completar la memorización")
        self.start()

    def _reset_timer(self) -> None:
        self.time_remaining = self.display_time

    def _require_active(self) -> None:
        if self.state not in (QuizState.MEMORIZING, QuizState.PAUSED):
            raise QuizStateError(
                f"La memorización no está en curso (estado: {self.state.value})"
            )


async def run_countdown(
    session: MemorizationSession,
    sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    on_tick: Callable[[MemorizationSession], None] | None = None,
) -> None:
    """Llama a tick() cada segundo hasta que la sesión se completa."""
    while session.state in (QuizState.MEMORIZING, QuizState.PAUSED):
        await sleep(1)
        session.tick()
        if on_tick is not None:
            on_tick(session)


# ── Configuración del test ────────────────────────────────────────────────────


@dataclass(frozen=True)
class TestSettings:
    course: Course
    question_count: int
    face_ids: list[str]

    def to_dict(self) -> dict[str, Any]:
        return {
            "course": self.course.value,
            "questionCount": self.question_count,
            "faceIds": list(self.face_ids),
        }


def build_test_settings(
    face_ids: Sequence[str],
    course: Course | str,
    question_count: int | None = None,
) -> TestSettings:
    """El número de preguntas se limita al de caras memorizadas (primeras N)."""
    if not face_ids:
        raise QuizStateError("No hay caras memorizadas para el test")
    try:
        course = Course(str(getattr(course, "value", course)).lower())
    except ValueError as exc:
        raise InvalidParameterError(details=f"Curso inválido: {course!r}") from exc

    count = len(face_ids) if question_count is None else question_count
    if count < 1:
        raise InvalidParameterError(details=f"question_count debe ser >= 1: {count}")
    count = min(count, len(face_ids))
    return TestSettings(course=course, question_count=count, face_ids=list(face_ids[:count]))


# ── Respuestas ────────────────────────────────────────────────────────────────


@dataclass(frozen=True)
class AnswerOption:
    face: FacePair
    is_correct: bool


@dataclass(frozen=True)
class AnswerRecord:
    question_index: int
    face_id: str
    correct_answer: str
    user_answer: str
    is_correct: bool
    match_level: MatchLevel | None = None  # solo curso B
    selected_option: int | None = None  # solo curso A

    def to_dict(self) -> dict[str, Any]:
        return {
            "questionIndex": self.question_index,
            "faceId": self.face_id,
            "correctAnswer": self.correct_answer,
            "userAnswer": self.user_answer,
            "isCorrect": self.is_correct,
            "matchLevel": self.match_level.value if self.match_level else None,
        }


def classify_name_answer(user_input: str, correct_answer: str) -> tuple[bool, MatchLevel]:
    """
    exact       — idéntico
    normalized  — idéntico tras quitar todo el espacio en blanco (incluido "　")
    family_only — solo el apellido (incorrecto)
    given_only  — solo el nombre propio (incorrecto)
    none        — nada de lo anterior
    """
    if user_input == correct_answer:
        return True, MatchLevel.EXACT

    if _WHITESPACE_RE.sub("", user_input) == _WHITESPACE_RE.sub("", correct_answer):
        return True, MatchLevel.NORMALIZED

    parts = correct_answer.split(" ")
    if len(parts) == 2:
        family, given = parts
        if user_input == family:
            return False, MatchLevel.FAMILY_ONLY
        if user_input == given:
            return False, MatchLevel.GIVEN_ONLY

    return False, MatchLevel.NONE


@dataclass
class QuizResults:
    course: Course
    question_count: int
    correct_count: int
    answers: list[AnswerRecord] = field(default_factory=list)

    @property
    def accuracy(self) -> int:
        """Porcentaje de aciertos redondeado."""
        if not self.question_count:
            return 0
        return round(self.correct_count / self.question_count * 100)

    def to_dict(self) -> dict[str, Any]:
        return {
            "course": self.course.value,
            "questionCount": self.question_count,
            "correctCount": self.correct_count,
            "accuracy": self.accuracy,
            "answers": [a.to_dict() for a in self.answers],
        }


# ── Cursos ────────────────────────────────────────────────────────────────────


class _QuizBase:
    course: Course

    def __init__(self, pairs: Sequence[FacePair]) -> None:
        if not pairs:
            raise QuizStateError("No hay caras para el test")
        self._pairs = list(pairs)
        self.index = 0
        self.state = QuizState.IDLE
        self._answers: dict[int, AnswerRecord] = {}

    @property
    def pairs(self) -> list[FacePair]:
        return list(self._pairs)

    @property
    def total(self) -> int:
        return len(self._pairs)

    @property
    def current(self) -> FacePair:
        return self._pairs[self.index]

    @property
    def progress(self) -> float:
        return (self.index + 1) / len(self._pairs)

    @property
    def answers(self) -> list[AnswerRecord]:
        return [self._answers[i] for i in sorted(self._answers)]

    @property
    def current_answer(self) -> AnswerRecord | None:
        return self._answers.get(self.index)

    def start(self) -> None:
        if self.state is not QuizState.IDLE:
            raise QuizStateError("El test ya ha comenzado")
        self.index = 0
        self.state = QuizState.ANSWERING

    def next(self) -> QuizState:
        if self.state is not QuizState.REVIEWED:
            raise QuizStateError("Responde la pregunta actual antes de continuar")
        if self.index >= len(self._pairs) - 1:
            self.state = QuizState.FINISHED
        else:
            self.index += 1
            self.state = QuizState.ANSWERING
        return self.state

    def results(self) -> QuizResults:
        if self.state not in (QuizState.FINISHED, QuizState.RESULTS):
            raise QuizStateError("El test todavía no ha terminado")
        self.state = QuizState.RESULTS
        answers = self.answers
        return QuizResults(
            course=self.course,
            question_count=len(self._pairs),
            correct_count=sum(1 for a in answers if a.is_correct),
            answers=answers,
        )

    def _record(self, answer: AnswerRecord) -> AnswerRecord:
        self._answers[self.index] = answer
        self.state = QuizState.REVIEWED
        return answer

    def _require_answering(self) -> None:
        if self.state is not QuizState.ANSWERING:
            raise QuizStateError("La pregunta actual ya está respondida")


class CourseAQuiz(_QuizBase):
    """Nombre → cara. Las opciones se fijan al crear el test."""

    course = Course.A

    def __init__(
        self, pairs: Sequence[FacePair], rng: random.Random | None = None
    ) -> None:
        super().__init__(pairs)
        self._rng = rng or random.Random()
        self.options: list[list[AnswerOption]] = [
            self._build_options(i) for i in range(len(self._pairs))
        ]

    def _build_options(self, index: int) -> list[AnswerOption]:
        others = [p for j, p in enumerate(self._pairs) if j != index]
        distractors = self._rng.sample(others, min(DISTRACTOR_COUNT, len(others)))
        options = [AnswerOption(face=self._pairs[index], is_correct=True)]
        options += [AnswerOption(face=face, is_correct=False) for face in distractors]
        self._rng.shuffle(options)
        return options

    @property
    def current_options(self) -> list[AnswerOption]:
        return self.options[self.index]

    @property
    def correct_option_index(self) -> int:
        return next(i for i, o in enumerate(self.current_options) if o.is_correct)

    def select(self, option_index: int) -> AnswerRecord:
        """Primer clic: bloquea la respuesta. Solo puntúa la opción correcta."""
        self._require_answering()
        options = self.current_options
        if not 0 <= option_index < len(options):
            raise InvalidParameterError(details=f"Opción inválida: {option_index}")
        selected = options[option_index]
        return self._record(
            AnswerRecord(
                question_index=self.index,
                face_id=self.current.id,
                correct_answer=self.current.full_name,
                user_answer=selected.face.full_name,
                is_correct=selected.is_correct,
                selected_option=option_index,
            )
        )


class CourseBQuiz(_QuizBase):
    """Cara → nombre en texto libre."""

    course = Course.B

    def submit(self, user_input: str) -> AnswerRecord:
        self._require_answering()
        text = (user_input or "").strip()
        if not text:
            raise InvalidParameterError("Introduce un nombre", details="Respuesta vacía")
        correct = self.current.full_name
        is_correct, level = classify_name_answer(text, correct)
        return self._record(
            AnswerRecord(
                question_index=self.index,
                face_id=self.current.id,
                correct_answer=correct,
                user_answer=text,
                is_correct=is_correct,
                match_level=level,
            )
        )


def build_quiz(
    settings: TestSettings,
    pairs: Sequence[FacePair],
    rng: random.Random | None = None,
) -> CourseAQuiz | CourseBQuiz:
    if settings.course is Course.A:
        return CourseAQuiz(pairs, rng=rng)
    return CourseBQuiz(pairs)


# ── Almacenamiento efímero de sesión ──────────────────────────────────────────

FACE_IDS_KEY = "faceIds"
TEST_SETTINGS_KEY = "testSettings"
TEST_RESULTS_KEY = "testResults"
QUIZ_KEY = "quiz"


class SessionStorage:
    """
    Estado por sesión solo en memoria del proceso (equivalente a sessionStorage
    del navegador): no sobrevive a un reinicio y nunca toca el almacén duradero.
    Cada escritura sobrescribe la clave completa, sin mezclar.
    Las sesiones más antiguas se descartan al superar `max_sessions`.
    """

    def __init__(self, max_sessions: int = 1000) -> None:
        self._sessions: OrderedDict[str, dict[str, Any]] = OrderedDict()
        self._max_sessions = max_sessions

    @staticmethod
    def new_session_id() -> str:
        return str(uuid.uuid4())

    def __contains__(self, session_id: str) -> bool:
        return session_id in self._sessions

    def set(self, session_id: str, key: str, value: Any) -> None:
        data = self._sessions.setdefault(session_id, {})
        self._sessions.move_to_end(session_id)
        data[key] = value
        while len(self._sessions) > self._max_sessions:
            self._sessions.popitem(last=False)

    def get(self, session_id: str, key: str, default: Any = None) -> Any:
        return self._sessions.get(session_id, {}).get(key, default)

    def remove(self, session_id: str, key: str) -> None:
        self._sessions.get(session_id, {}).pop(key, None)

    def clear(self, session_id: str) -> bool:
        """Descarta la sesión completa. Devuelve True si existía."""
        return self._sessions.pop(session_id, None) is not None
