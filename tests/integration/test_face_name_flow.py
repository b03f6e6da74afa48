"""
Test de integración — flujo completo cara-nombre sobre la app FastAPI.

  1. generate_pairs (age=30, female) contra un upstream simulado que devuelve un PNG
  2. La imagen queda en disco con los mismos bytes y el par en el almacén
  3. get_pair_by_id devuelve el mismo par
  4. Memorización → test curso A → resultados
  5. Monitorización: un registro por generación

El upstream es httpx.MockTransport; la BD es SQLite en un fichero bajo tmp_path
para ejercitar el mismo camino que en producción.
"""

from pathlib import Path

import httpx
import pytest
from httpx import ASGITransport, AsyncClient

import db as db_module
from config import settings
from db import create_all_tables
from main import app, init_services

ASSET_NAMES_DIR = Path(__file__).resolve().parents[2] / "assets" / "names"


@pytest.fixture
async def client(tmp_path, upstream, fake_sleep):
    db_module.init_db(f"sqlite+aiosqlite:///{tmp_path / 'data' / 'faces.db'}")
    await create_all_tables()
    cfg = settings.model_copy(
        update={
            "STORE_BACKEND": "sql",
            "APP_ROOT": str(tmp_path),
            "NAMES_DIR": str(ASSET_NAMES_DIR),
        }
    )
    fake = upstream()
    init_services(app, cfg, http_client=fake.client(), sleep=fake_sleep)

    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as c:
        yield c

    await db_module.engine.dispose()


async def test_generate_memorize_and_quiz(client, tmp_path, png_bytes):
    # 1. Generación
    resp = await client.get(
        "/api/training",
        params={"action": "generate_pairs", "count": 1, "age": 30, "gender": "female"},
    )
    assert resp.status_code == 200
    [pair] = resp.json()["data"]
    assert pair["age"] == 30
    assert pair["gender"] == "female"
    assert pair["ethnicity"] == "japanese"
    assert pair["family_name"]
    assert pair["given_name"]

    # 2. Imagen en disco
    assert (tmp_path / pair["image_uri"]).read_bytes() == png_bytes

    # 3. Lectura por id
    resp = await client.get(
        "/api/training", params={"action": "get_pair_by_id", "id": pair["id"]}
    )
    assert resp.json()["data"] == pair

    # 4. Memorización (completa el déficit) → curso A
    resp = await client.post(
        "/api/quiz/memorization", json={"count": 3, "age": 30, "gender": "female"}
    )
    memo = resp.json()
    assert len(memo["pairs"]) == 3
    assert pair["id"] in {p["id"] for p in memo["pairs"]}
    session_id = memo["session_id"]

    resp = await client.post(
        "/api/quiz/sessions", json={"course": "a", "session_id": session_id}
    )
    quiz = resp.json()
    assert quiz["question_count"] == 3
    for memorized in memo["pairs"]:
        question = quiz["question"]
        assert question["target_name"] == memorized["full_name"]
        target = memorized["id"]
        index = next(o["index"] for o in question["options"] if o["face_id"] == target)
        resp = await client.post(
            f"/api/quiz/sessions/{session_id}/answer", json={"option_index": index}
        )
        assert resp.json()["is_correct"] is True
        quiz = (await client.post(f"/api/quiz/sessions/{session_id}/next")).json()

    assert quiz["state"] == "finished"
    results = (await client.get(f"/api/quiz/sessions/{session_id}/results")).json()
    assert results["accuracy"] == 100
    assert results["correct_count"] == 3

    # 5. Monitorización
    records = (await client.get("/api/monitoring/records")).json()["records"]
    assert len(records) == 3
    assert all(r["performance"]["success"] for r in records)


async def test_upstream_down_leaves_no_pair(tmp_path, upstream, fake_sleep, sleeps):
    db_module.init_db(f"sqlite+aiosqlite:///{tmp_path / 'faces.db'}")
    await create_all_tables()
    cfg = settings.model_copy(
        update={"APP_ROOT": str(tmp_path), "NAMES_DIR": str(ASSET_NAMES_DIR)}
    )
    fake = upstream([httpx.Response(503, text="down")])
    init_services(app, cfg, http_client=fake.client(), sleep=fake_sleep)

    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as c:
        resp = await c.get(
            "/api/training",
            params={"action": "generate_pairs", "count": 1, "age": 30, "gender": "female"},
        )
        assert resp.status_code == 503
        assert len(fake.requests) == 3
        assert sleeps == [1, 2]

        records = (await c.get("/api/monitoring/records")).json()["records"]
        assert len(records) == 1
        assert records[0]["performance"]["success"] is False

        resp = await c.get(
            "/api/training", params={"action": "get_random_pairs", "count": 1, "age": 30}
        )
        assert resp.status_code == 503

    assert not (tmp_path / "assets" / "faces").exists()
    await db_module.engine.dispose()
