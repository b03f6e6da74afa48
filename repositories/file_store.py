"""
JsonFileStore — backend de almacenamiento en ficheros planos.

Un documento JSON por registro:
  <base_dir>/faces/<id>.json
  <base_dir>/monitoring/<id>.json

Pensado para entornos sin SQLite disponible; misma interfaz que SqlStore.
"""

import asyncio
import json
import random
from collections.abc import Mapping
from pathlib import Path
from typing import Any

from middleware.error_handler import StorageWriteError
from models.entities import FacePair, MonitoringRecord


class JsonFileStore:
    def __init__(
        self,
        base_dir: str | Path = "./assets/data/store",
        rng: random.Random | None = None,
    ) -> None:
        self._base = Path(base_dir)
        self._rng = rng or random.Random()

    # ── Helpers ───────────────────────────────────────────────────────────────

    def _subdir(self, kind: str) -> Path:
        return self._base / kind

    async def _write(self, kind: str, record_id: str, data: dict[str, Any]) -> None:
        dest = self._subdir(kind) / f"{record_id}.json"

        def _do_write() -> None:
            dest.parent.mkdir(parents=True, exist_ok=True)
            tmp = dest.with_suffix(".json.tmp")
            tmp.write_text(json.dumps(data, ensure_ascii=False), encoding="utf-8")
            tmp.replace(dest)

        loop = asyncio.get_running_loop()
        try:
            await loop.run_in_executor(None, _do_write)
        except OSError as exc:
            raise StorageWriteError(details=f"No se pudo escribir {dest}: {exc}") from exc

    async def _read_all(self, kind: str) -> list[dict[str, Any]]:
        subdir = self._subdir(kind)

        def _scan() -> list[dict[str, Any]]:
            if not subdir.exists():
                return []
            return [
                json.loads(entry.read_text(encoding="utf-8"))
                for entry in sorted(subdir.glob("*.json"))
            ]

        loop = asyncio.get_running_loop()
        return await loop.run_in_executor(None, _scan)

    # ── Pares ─────────────────────────────────────────────────────────────────

    async def save_pair(self, pair: FacePair) -> FacePair:
        await self._write("faces", pair.id, pair.to_dict())
        return pair

    async def get_pair(self, pair_id: str) -> FacePair | None:
        path = self._subdir("faces") / f"{pair_id}.json"
        # el id llega del cliente: no permitir salir del directorio
        if path.parent != self._subdir("faces") or not path.is_file():
            return None
        data = json.loads(path.read_text(encoding="utf-8"))
        return FacePair.from_dict(data)

    async def get_random_pairs(
        self, conditions: Mapping[str, Any] | None, limit: int
    ) -> list[FacePair]:
        conditions = conditions or {}
        pairs = [FacePair.from_dict(d) for d in await self._read_all("faces")]
        if conditions.get("age") is not None:
            pairs = [p for p in pairs if p.age == int(conditions["age"])]
        if conditions.get("gender") is not None:
            pairs = [p for p in pairs if p.gender == conditions["gender"]]
        self._rng.shuffle(pairs)
        return pairs[:limit]

    # ── Monitorización ────────────────────────────────────────────────────────

    async def save_monitoring(self, record: MonitoringRecord) -> None:
        await self._write("monitoring", record.id, record.to_dict())

    async def list_monitoring(self, limit: int = 100) -> list[MonitoringRecord]:
        records = [
            MonitoringRecord.from_dict(d) for d in await self._read_all("monitoring")
        ]
        records.sort(key=lambda r: (r.created_at, r.timestamp), reverse=True)
        return records[:limit]
