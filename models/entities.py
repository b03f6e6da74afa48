"""
Entidades de dominio — representación en memoria (no SQLAlchemy).
Usadas como DTOs entre repositorios, servicios y routers.

  - FacePair            — par cara-nombre persistido
  - ImageMetadata       — metadatos de una imagen generada
  - GeneratedImage      — resultado del cliente de generación (bytes + metadatos)
  - MonitoringRecord    — registro de un intento de generación (éxito o fallo)
"""

from dataclasses import asdict, dataclass, field
from datetime import datetime, timezone
from typing import Any


def now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


# ── Pares cara-nombre ─────────────────────────────────────────────────────────


@dataclass(frozen=True)
class GeneratedName:
    family_name: str
    given_name: str

    @property
    def full_name(self) -> str:
        # Formato "姓 名" con un espacio, igual que en la pantalla de memorización
        return f"{self.family_name} {self.given_name}"


@dataclass(frozen=True)
class FacePair:
    """Asociación persistida de una cara generada con un nombre generado."""

    id: str  # "img_<hex>", único global
    image_uri: str  # relativo a la raíz de la app, p.ej. "assets/faces/30-female-...jpeg"
    age: int  # 20 | 30 | 40 | 50 | 60 | 70
    gender: str  # male | female
    family_name: str
    given_name: str
    ethnicity: str = "japanese"
    seed: int | None = None
    created_at: str = field(default_factory=now_iso)

    @property
    def full_name(self) -> str:
        return f"{self.family_name} {self.given_name}"

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "FacePair":
        return cls(
            id=data["id"],
            image_uri=data["image_uri"],
            age=int(data["age"]),
            gender=data["gender"],
            family_name=data["family_name"],
            given_name=data["given_name"],
            ethnicity=data.get("ethnicity") or "japanese",
            seed=data.get("seed"),
            created_at=data.get("created_at") or now_iso(),
        )


# ── Generación de imágenes ────────────────────────────────────────────────────


@dataclass(frozen=True)
class ImageMetadata:
    id: str
    filename: str  # "<age>-<gender>-<10 dígitos>-face.jpeg"
    image_uri: str
    age: int
    gender: str
    ethnicity: str
    seed: int
    finish_reason: str = "SUCCESS"
    created_at: str = field(default_factory=now_iso)

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "filename": self.filename,
            "image_uri": self.image_uri,
            "age": self.age,
            "gender": self.gender,
            "ethnicity": self.ethnicity,
            "seed": self.seed,
            "finishReason": self.finish_reason,
            "created_at": self.created_at,
        }


@dataclass(frozen=True)
class GeneratedImage:
    """Resultado del cliente de generación. response_time_ms no forma parte de metadata."""

    image_bytes: bytes
    metadata: ImageMetadata
    response_time_ms: float = 0.0


# ── Monitorización ────────────────────────────────────────────────────────────


@dataclass(frozen=True)
class MonitoringRecord:
    """
    Registro write-once de un intento de generación.

    quality es un placeholder sintético (no deriva de ningún análisis de la imagen);
    es None cuando el intento falla.
    """

    id: str  # "mon_<hex>"
    timestamp: str
    request_params: dict[str, Any]
    performance: dict[str, Any]  # {"responseTimeMs": float, "success": bool}
    quality: dict[str, float] | None = None  # {"qualityScore", "promptCompliance"}
    errors: dict[str, str] | None = None  # {"message", "stack"}
    created_at: str = field(default_factory=now_iso)

    @property
    def success(self) -> bool:
        return bool(self.performance.get("success"))

    @property
    def response_time_ms(self) -> float:
        return float(self.performance.get("responseTimeMs", 0.0))

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "MonitoringRecord":
        return cls(
            id=data["id"],
            timestamp=data["timestamp"],
            request_params=data.get("request_params") or {},
            performance=data.get("performance") or {},
            quality=data.get("quality"),
            errors=data.get("errors"),
            created_at=data.get("created_at") or now_iso(),
        )
