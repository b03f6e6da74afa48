"""
routers/quiz.py — Memorización y test sobre pares cara-nombre.

POST   /api/quiz/memorization            → pares para memorizar + session_id
POST   /api/quiz/sessions                → configura y comienza un test (curso A | B)
GET    /api/quiz/sessions/{id}           → pregunta actual (o respuesta revisada)
POST   /api/quiz/sessions/{id}/answer    → option_index (A) | answer (B)
POST   /api/quiz/sessions/{id}/next      → siguiente pregunta o fin del test
GET    /api/quiz/sessions/{id}/results   → aciertos, % y detalle por pregunta
DELETE /api/quiz/sessions/{id}           → volver al inicio: descarta la sesión

El estado vive en SessionStorage (memoria del proceso): faceIds, testSettings,
testResults y el test en curso.

La fase de memorización (cuenta atrás, pausa/reanudación, anterior/siguiente y
fin anticipado) corre entera en el cliente y no tiene endpoints: el servidor
solo fija los pares, su orden y el tiempo por cara. MemorizationSession y
run_countdown reproducen esa máquina de estados en el servidor; aquí solo se usa
para validar display_time y fijar los faceIds del test.
"""

from fastapi import APIRouter, Depends, Response

from config import settings
from dependencies import get_face_name_service, get_quiz_storage, get_store
from middleware.error_handler import InvalidParameterError, NotFoundError
from models.requests import MemorizationRequest, QuizAnswerRequest, QuizCreateRequest
from models.responses import (
    AnswerResponse,
    FacePairResponse,
    MemorizationResponse,
    QuizOptionResponse,
    QuizQuestionResponse,
    QuizResultAnswerResponse,
    QuizResultsResponse,
    QuizSessionResponse,
)
from repositories.store import Store
from services.pairing import FaceNameService
from services.quiz import (
    FACE_IDS_KEY,
    QUIZ_KEY,
    TEST_RESULTS_KEY,
    TEST_SETTINGS_KEY,
    CourseAQuiz,
    CourseBQuiz,
    MemorizationSession,
    QuizState,
    SessionStorage,
    build_quiz,
    build_test_settings,
)

router = APIRouter(prefix="/api/quiz", tags=["quiz"])

Quiz = CourseAQuiz | CourseBQuiz


# ── Helpers ───────────────────────────────────────────────────────────────────


def _get_quiz(storage: SessionStorage, session_id: str) -> Quiz:
    quiz = storage.get(session_id, QUIZ_KEY)
    if quiz is None:
        raise NotFoundError("No hay ningún test en curso", details=session_id)
    return quiz


def _question_view(quiz: Quiz) -> QuizQuestionResponse | None:
    if quiz.state in (QuizState.FINISHED, QuizState.RESULTS):
        return None
    pair = quiz.current
    view = QuizQuestionResponse(index=quiz.index, total=quiz.total, progress=quiz.progress)
    if isinstance(quiz, CourseAQuiz):
        view.target_name = pair.full_name
        view.options = [
            QuizOptionResponse(index=i, face_id=o.face.id, image_uri=o.face.image_uri)
            for i, o in enumerate(quiz.current_options)
        ]
    else:
        view.face_id = pair.id
        view.image_uri = pair.image_uri
    return view


def _answer_view(quiz: Quiz) -> AnswerResponse | None:
    answer = quiz.current_answer
    if answer is None:
        return None
    return AnswerResponse(
        question_index=answer.question_index,
        face_id=answer.face_id,
        correct_answer=answer.correct_answer,
        user_answer=answer.user_answer,
        is_correct=answer.is_correct,
        match_level=answer.match_level.value if answer.match_level else None,
        correct_option_index=(
            quiz.correct_option_index if isinstance(quiz, CourseAQuiz) else None
        ),
        state=quiz.state.value,
    )


def _session_view(session_id: str, quiz: Quiz) -> QuizSessionResponse:
    return QuizSessionResponse(
        session_id=session_id,
        course=quiz.course.value,
        question_count=quiz.total,
        state=quiz.state.value,
        question=_question_view(quiz),
        answer=_answer_view(quiz) if quiz.state is QuizState.REVIEWED else None,
    )


# ── Memorización ──────────────────────────────────────────────────────────────


@router.post("/memorization", response_model=MemorizationResponse)
async def start_memorization(
    body: MemorizationRequest,
    service: FaceNameService = Depends(get_face_name_service),
    storage: SessionStorage = Depends(get_quiz_storage),
) -> MemorizationResponse:
    count = min(body.count or settings.DEFAULT_PAIR_COUNT, settings.MAX_PAIR_COUNT)
    pairs = await service.get_random_pairs(count, {"age": body.age, "gender": body.gender})

    session = MemorizationSession(
        pairs, display_time=body.display_time or settings.DEFAULT_DISPLAY_TIME_S
    )
    session_id = body.session_id or storage.new_session_id()
    storage.set(session_id, FACE_IDS_KEY, session.face_ids)

    return MemorizationResponse(
        session_id=session_id,
        display_time=session.display_time,
        pairs=[FacePairResponse.from_entity(p) for p in session.pairs],
    )


# ── Test ──────────────────────────────────────────────────────────────────────


@router.post("/sessions", response_model=QuizSessionResponse, status_code=201)
async def create_quiz(
    body: QuizCreateRequest,
    store: Store = Depends(get_store),
    storage: SessionStorage = Depends(get_quiz_storage),
) -> QuizSessionResponse:
    session_id = body.session_id or storage.new_session_id()
    face_ids = body.face_ids or storage.get(session_id, FACE_IDS_KEY) or []

    test_settings = build_test_settings(face_ids, body.course, body.question_count)

    pairs = []
    for face_id in test_settings.face_ids:
        pair = await store.get_pair(face_id)
        if pair is None:
            raise NotFoundError("Una de las caras memorizadas ya no existe", details=face_id)
        pairs.append(pair)

    quiz = build_quiz(test_settings, pairs)
    quiz.start()

    # Cada ronda sobrescribe el estado anterior de la sesión
    storage.set(session_id, FACE_IDS_KEY, list(face_ids))
    storage.set(session_id, TEST_SETTINGS_KEY, test_settings.to_dict())
    storage.set(session_id, QUIZ_KEY, quiz)
    storage.remove(session_id, TEST_RESULTS_KEY)

    return _session_view(session_id, quiz)


@router.get("/sessions/{session_id}", response_model=QuizSessionResponse)
async def get_quiz(
    session_id: str,
    storage: SessionStorage = Depends(get_quiz_storage),
) -> QuizSessionResponse:
    return _session_view(session_id, _get_quiz(storage, session_id))


@router.post("/sessions/{session_id}/answer", response_model=AnswerResponse)
async def answer_question(
    session_id: str,
    body: QuizAnswerRequest,
    storage: SessionStorage = Depends(get_quiz_storage),
) -> AnswerResponse:
    quiz = _get_quiz(storage, session_id)
    if isinstance(quiz, CourseAQuiz):
        if body.option_index is None:
            raise InvalidParameterError("Selecciona una opción", details="option_index requerido")
        quiz.select(body.option_index)
    else:
        quiz.submit(body.answer or "")
    return _answer_view(quiz)


@router.post("/sessions/{session_id}/next", response_model=QuizSessionResponse)
async def next_question(
    session_id: str,
    storage: SessionStorage = Depends(get_quiz_storage),
) -> QuizSessionResponse:
    quiz = _get_quiz(storage, session_id)
    quiz.next()
    return _session_view(session_id, quiz)


@router.get("/sessions/{session_id}/results", response_model=QuizResultsResponse)
async def quiz_results(
    session_id: str,
    storage: SessionStorage = Depends(get_quiz_storage),
) -> QuizResultsResponse:
    quiz = _get_quiz(storage, session_id)
    results = quiz.results()
    storage.set(session_id, TEST_RESULTS_KEY, results.to_dict())

    images = {p.id: p.image_uri for p in quiz.pairs}
    return QuizResultsResponse(
        session_id=session_id,
        course=results.course.value,
        question_count=results.question_count,
        correct_count=results.correct_count,
        accuracy=results.accuracy,
        answers=[
            QuizResultAnswerResponse(
                face_id=a.face_id,
                image_uri=images.get(a.face_id),
                correct_answer=a.correct_answer,
                user_answer=a.user_answer,
                is_correct=a.is_correct,
                match_level=a.match_level.value if a.match_level else None,
            )
            for a in results.answers
        ],
    )


@router.delete("/sessions/{session_id}", status_code=204)
async def discard_session(
    session_id: str,
    storage: SessionStorage = Depends(get_quiz_storage),
) -> Response:
    if not storage.clear(session_id):
        raise NotFoundError("La sesión no existe", details=session_id)
    return Response(status_code=204)
