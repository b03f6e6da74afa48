"""
Tests unitarios — Routers REST

Estrategia:
  - SQLite in-memory vía init_db() + create_all_tables()
  - init_services() con el upstream simulado (httpx.MockTransport) y APP_ROOT en tmp_path
  - httpx.AsyncClient con ASGITransport levanta la app sin red ni lifespan.

Endpoints cubiertos:
  - GET /api/health
  - GET /api/training
  - GET /api/monitoring/records, POST /api/monitoring/batch
  - /api/quiz/...
  - Cuerpos de error sin detalles internos (upstream, lote, excepción inesperada)
"""

from pathlib import Path

import httpx
import pytest
from httpx import ASGITransport, AsyncClient

from config import settings
from dependencies import get_face_name_service
from main import app, init_services
from models.entities import FacePair

ASSET_NAMES_DIR = Path(__file__).resolve().parents[2] / "assets" / "names"


# ── Fixtures ──────────────────────────────────────────────────────────────────


@pytest.fixture
def configure(in_memory_db, tmp_path, fake_sleep):
    """configure(fake) → inicializa app.state contra ese upstream."""

    def _configure(fake) -> None:
        cfg = settings.model_copy(
            update={
                "STORE_BACKEND": "sql",
                "APP_ROOT": str(tmp_path),
                "NAMES_DIR": str(ASSET_NAMES_DIR),
            }
        )
        init_services(app, cfg, http_client=fake.client(), sleep=fake_sleep)

    return _configure


@pytest.fixture
def fake(upstream, configure):
    fake = upstream()
    configure(fake)
    return fake


@pytest.fixture
async def client(fake):
    """Cliente HTTP apuntando a la app FastAPI via ASGI (sin red)."""
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as c:
        yield c


async def seed_pairs(count: int, age: int = 30, gender: str = "female") -> list[FacePair]:
    pairs = [
        FacePair(
            id=f"img_seed{i}",
            image_uri=f"assets/faces/seed{i}.jpeg",
            age=age,
            gender=gender,
            family_name=["佐藤", "鈴木", "高橋", "田中", "伊藤"][i % 5],
            given_name=["陽菜", "結衣", "美咲", "葵", "凛"][i % 5],
        )
        for i in range(count)
    ]
    for pair in pairs:
        await app.state.store.save_pair(pair)
    return pairs


# ── GET /api/health ────────────────────────────────────────────────────────────


class TestHealth:
    async def test_health_returns_ok(self, client):
        resp = await client.get("/api/health")
        assert resp.status_code == 200
        assert resp.json() == {"status": "ok", "version": "1.0"}


# ── GET /api/training ──────────────────────────────────────────────────────────


class TestTraining:
    async def test_generate_pairs(self, client, fake):
        resp = await client.get(
            "/api/training",
            params={"action": "generate_pairs", "count": 2, "age": 30, "gender": "male"},
        )
        assert resp.status_code == 200
        body = resp.json()
        assert body["success"] is True
        assert len(body["data"]) == 2
        pair = body["data"][0]
        assert pair["age"] == 30
        assert pair["gender"] == "male"
        assert pair["full_name"] == f"{pair['family_name']} {pair['given_name']}"
        assert pair["image_uri"].startswith("assets/faces/30-male-")
        assert len(fake.requests) == 2

    async def test_get_random_pairs_from_store(self, client, fake):
        await seed_pairs(3)
        resp = await client.get(
            "/api/training", params={"action": "get_random_pairs", "count": 3, "age": 30}
        )
        body = resp.json()
        assert body["success"] is True
        assert {p["id"] for p in body["data"]} == {"img_seed0", "img_seed1", "img_seed2"}
        assert fake.requests == []

    async def test_get_random_pairs_count_defaults(self, client, fake):
        await seed_pairs(settings.DEFAULT_PAIR_COUNT + 2)
        resp = await client.get("/api/training", params={"action": "get_random_pairs"})
        assert len(resp.json()["data"]) == settings.DEFAULT_PAIR_COUNT

    async def test_count_is_bounded(self, client, fake):
        await seed_pairs(2)
        resp = await client.get(
            "/api/training", params={"action": "get_random_pairs", "count": 0}
        )
        assert len(resp.json()["data"]) == 1

    async def test_get_pair_by_id(self, client):
        await seed_pairs(1)
        resp = await client.get(
            "/api/training", params={"action": "get_pair_by_id", "id": "img_seed0"}
        )
        body = resp.json()
        assert body["success"] is True
        assert body["data"]["full_name"] == "佐藤 陽菜"

    async def test_get_pair_by_id_not_found(self, client):
        resp = await client.get(
            "/api/training", params={"action": "get_pair_by_id", "id": "img_nope"}
        )
        assert resp.status_code == 404
        body = resp.json()
        assert body["success"] is False
        assert body["error_code"] == "NOT_FOUND"
        assert "data" not in body

    async def test_get_pair_by_id_missing_id(self, client):
        resp = await client.get("/api/training", params={"action": "get_pair_by_id"})
        assert resp.json()["error_code"] == "INVALID_PARAMETER"

    @pytest.mark.parametrize("params", [{}, {"action": "delete_everything"}])
    async def test_unknown_action(self, client, params):
        resp = await client.get("/api/training", params=params)
        assert resp.status_code == 422
        body = resp.json()
        assert body["success"] is False
        assert body["error_code"] == "INVALID_PARAMETER"

    async def test_invalid_age(self, client, fake):
        resp = await client.get(
            "/api/training", params={"action": "generate_pairs", "age": "35"}
        )
        assert resp.json()["error_code"] == "INVALID_PARAMETER"
        assert fake.requests == []

    async def test_upstream_exhausted(self, upstream, configure):
        configure(upstream([httpx.Response(500)]))
        async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as c:
            resp = await c.get(
                "/api/training", params={"action": "generate_pairs", "count": 1}
            )
        assert resp.status_code == 503
        assert resp.json() == {
            "success": False,
            "error": "El servicio de generación de imágenes no está disponible",
            "error_code": "UPSTREAM_EXHAUSTED",
        }


# ── /api/monitoring ────────────────────────────────────────────────────────────


class TestMonitoring:
    async def test_records_after_generation(self, client):
        await client.get("/api/training", params={"action": "generate_pairs", "count": 2})
        resp = await client.get("/api/monitoring/records")
        assert resp.status_code == 200
        records = resp.json()["records"]
        assert len(records) == 2
        assert all(r["performance"]["success"] for r in records)

    async def test_batch(self, client, fake):
        resp = await client.post(
            "/api/monitoring/batch", json={"count": 3, "gender": "female"}
        )
        assert resp.status_code == 200
        body = resp.json()
        assert len(body["results"]) == 3
        assert all(r["gender"] == "female" for r in body["results"])
        assert body["results"][0]["finishReason"] == "SUCCESS"
        assert body["errors"] == []
        assert body["stats"]["successCount"] == 3
        assert body["stats"]["errorRate"] == 0
        assert len(fake.requests) == 3

    async def test_batch_invalid_count(self, client):
        resp = await client.post("/api/monitoring/batch", json={"count": 0})
        assert resp.status_code == 422
        assert resp.json()["error_code"] == "VALIDATION_ERROR"

    async def test_batch_invalid_gender(self, client):
        resp = await client.post("/api/monitoring/batch", json={"count": 1, "gender": "x"})
        assert resp.status_code == 422
        assert resp.json()["error_code"] == "INVALID_PARAMETER"


# ── /api/quiz ──────────────────────────────────────────────────────────────────


class TestQuiz:
    async def test_memorization_then_course_b(self, client):
        await seed_pairs(3)
        resp = await client.post("/api/quiz/memorization", json={"count": 3, "age": 30})
        assert resp.status_code == 200
        memo = resp.json()
        assert memo["display_time"] == settings.DEFAULT_DISPLAY_TIME_S
        session_id = memo["session_id"]
        names = {p["id"]: p["full_name"] for p in memo["pairs"]}

        resp = await client.post(
            "/api/quiz/sessions",
            json={"course": "b", "question_count": 2, "session_id": session_id},
        )
        assert resp.status_code == 201
        quiz = resp.json()
        assert quiz["question_count"] == 2
        assert quiz["state"] == "answering"
        question = quiz["question"]
        assert question["image_uri"]
        assert question["options"] is None

        first = question["face_id"]
        resp = await client.post(
            f"/api/quiz/sessions/{session_id}/answer",
            json={"answer": names[first].replace(" ", "")},
        )
        answer = resp.json()
        assert answer["is_correct"] is True
        assert answer["match_level"] == "normalized"
        assert answer["state"] == "reviewed"

        resp = await client.post(f"/api/quiz/sessions/{session_id}/next")
        second = resp.json()["question"]["face_id"]
        await client.post(
            f"/api/quiz/sessions/{session_id}/answer",
            json={"answer": names[second].split(" ")[0]},
        )
        resp = await client.post(f"/api/quiz/sessions/{session_id}/next")
        assert resp.json()["state"] == "finished"
        assert resp.json()["question"] is None

        resp = await client.get(f"/api/quiz/sessions/{session_id}/results")
        results = resp.json()
        assert results["correct_count"] == 1
        assert results["accuracy"] == 50
        assert results["answers"][1]["match_level"] == "family_only"
        assert results["answers"][0]["image_uri"].startswith("assets/faces/")

    async def test_course_a_hides_correctness(self, client):
        pairs = await seed_pairs(3)
        resp = await client.post(
            "/api/quiz/sessions",
            json={"course": "a", "face_ids": [p.id for p in pairs]},
        )
        quiz = resp.json()
        session_id = quiz["session_id"]
        question = quiz["question"]
        assert question["target_name"] == "佐藤 陽菜"
        assert len(question["options"]) == 3
        assert all("is_correct" not in o for o in question["options"])

        correct_index = next(
            o["index"] for o in question["options"] if o["face_id"] == "img_seed0"
        )
        resp = await client.post(
            f"/api/quiz/sessions/{session_id}/answer", json={"option_index": correct_index}
        )
        body = resp.json()
        assert body["is_correct"] is True
        assert body["correct_option_index"] == correct_index

        resp = await client.post(
            f"/api/quiz/sessions/{session_id}/answer", json={"option_index": correct_index}
        )
        assert resp.status_code == 409
        assert resp.json()["error_code"] == "QUIZ_STATE_ERROR"

    async def test_course_a_requires_option(self, client):
        pairs = await seed_pairs(2)
        quiz = (
            await client.post(
                "/api/quiz/sessions", json={"course": "a", "face_ids": [p.id for p in pairs]}
            )
        ).json()
        resp = await client.post(
            f"/api/quiz/sessions/{quiz['session_id']}/answer", json={"answer": "佐藤"}
        )
        assert resp.json()["error_code"] == "INVALID_PARAMETER"

    async def test_results_before_finish(self, client):
        pairs = await seed_pairs(2)
        quiz = (
            await client.post(
                "/api/quiz/sessions", json={"course": "b", "face_ids": [p.id for p in pairs]}
            )
        ).json()
        resp = await client.get(f"/api/quiz/sessions/{quiz['session_id']}/results")
        assert resp.status_code == 409

    async def test_no_memorized_faces(self, client):
        resp = await client.post("/api/quiz/sessions", json={"course": "a"})
        assert resp.status_code == 409
        assert resp.json()["error_code"] == "QUIZ_STATE_ERROR"

    async def test_unknown_face_id(self, client):
        resp = await client.post(
            "/api/quiz/sessions", json={"course": "b", "face_ids": ["img_ghost"]}
        )
        assert resp.status_code == 404

    async def test_invalid_course(self, client):
        resp = await client.post(
            "/api/quiz/sessions", json={"course": "c", "face_ids": ["img_seed0"]}
        )
        assert resp.status_code == 422

    async def test_get_and_discard(self, client):
        pairs = await seed_pairs(1)
        quiz = (
            await client.post(
                "/api/quiz/sessions", json={"course": "b", "face_ids": [pairs[0].id]}
            )
        ).json()
        session_id = quiz["session_id"]

        resp = await client.get(f"/api/quiz/sessions/{session_id}")
        assert resp.json()["question"]["face_id"] == "img_seed0"

        resp = await client.delete(f"/api/quiz/sessions/{session_id}")
        assert resp.status_code == 204
        resp = await client.get(f"/api/quiz/sessions/{session_id}")
        assert resp.status_code == 404
        resp = await client.delete(f"/api/quiz/sessions/{session_id}")
        assert resp.status_code == 404


# ── Errores internos fuera de la respuesta ─────────────────────────────────────

SECRET_BODY = {"message": "bad key sk-SECRET"}


class _BrokenService:
    async def get_random_pairs(self, count, conditions):
        raise RuntimeError("fallo inesperado en el almacén")


class TestErrorBodies:
    async def test_training_hides_upstream_body(self, upstream, configure):
        configure(upstream([httpx.Response(401, json=SECRET_BODY)]))
        async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as c:
            resp = await c.get(
                "/api/training", params={"action": "generate_pairs", "count": 1}
            )
        assert resp.status_code == 503
        assert resp.json()["error_code"] == "UPSTREAM_EXHAUSTED"
        assert "bad key" not in resp.text
        assert "sk-SECRET" not in resp.text

    async def test_memorization_hides_upstream_body(self, upstream, configure):
        configure(upstream([httpx.Response(401, json=SECRET_BODY)]))
        async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as c:
            resp = await c.post("/api/quiz/memorization", json={"count": 1})
        assert resp.status_code == 503
        body = resp.json()
        assert body["error_code"] == "UPSTREAM_EXHAUSTED"
        assert body["details"] is None
        assert "bad key" not in resp.text

    async def test_batch_errors_carry_code_and_message(self, upstream, configure):
        configure(upstream([httpx.Response(401, json=SECRET_BODY)]))
        async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as c:
            resp = await c.post("/api/monitoring/batch", json={"count": 2})
        assert resp.status_code == 200
        body = resp.json()
        assert body["results"] == []
        assert body["errors"] == [
            {
                "error_code": "UPSTREAM_EXHAUSTED",
                "message": "El servicio de generación de imágenes no está disponible",
            }
        ] * 2
        assert body["stats"]["errorCount"] == 2
        assert "bad key" not in resp.text

    async def test_non_ascii_digit_age_is_invalid(self, client, fake):
        resp = await client.get(
            "/api/training", params={"action": "get_random_pairs", "age": "²"}
        )
        assert resp.status_code == 422
        assert resp.json()["error_code"] == "INVALID_PARAMETER"
        assert fake.requests == []

    async def test_unexpected_error_keeps_training_envelope(self, client):
        app.dependency_overrides[get_face_name_service] = lambda: _BrokenService()
        try:
            resp = await client.get("/api/training", params={"action": "get_random_pairs"})
        finally:
            app.dependency_overrides.clear()
        assert resp.status_code == 500
        assert resp.json() == {
            "success": False,
            "error": "Error interno del servidor",
            "error_code": "INTERNAL_ERROR",
        }
        assert "almacén" not in resp.text
