"""
services/payload.py — Localiza y decodifica el payload base64 de la respuesta del upstream.

La API de generación devuelve la imagen en formas distintas según versión:
  {"base64": "...", "finish_reason": "SUCCESS"}
  {"artifacts": [{"base64": "...", "finishReason": "SUCCESS"}]}
  {"data": {"result": {"image": {"base64": "..."}}}}   (profundidad desconocida)

Estrategias, en orden, hasta encontrar un payload plausible
(string de más de MIN_PAYLOAD_LENGTH caracteres del alfabeto base64):
  1. campo directo `base64`
  2. primer elemento de la lista `artifacts`
  3. búsqueda recursiva del campo `base64`
  4. búsqueda recursiva del string base64 más largo

Las búsquedas recursivas se cortan a MAX_SEARCH_DEPTH niveles de anidamiento,
de modo que una respuesta arbitrariamente profunda no agota la pila.
"""

import base64
import binascii
import logging
import re
from dataclasses import dataclass
from typing import Any

from middleware.error_handler import ImageDecodeError, NoImageDataError

logger = logging.getLogger(__name__)

PAYLOAD_FIELD = "base64"
ARTIFACTS_FIELD = "artifacts"
MIN_PAYLOAD_LENGTH = 100
MAX_SEARCH_DEPTH = 20

_BASE64_RE = re.compile(r"^[A-Za-z0-9+/=]+$")


@dataclass(frozen=True)
class ExtractedPayload:
    payload: str
    finish_reason: str
    strategy: str  # direct | artifacts | named_search | longest_string


# ── Helpers ───────────────────────────────────────────────────────────────────


def _strip_data_uri(value: str) -> str:
    # "data:image/png;base64,iVBOR..." → "iVBOR..."
    if value.startswith("data:") and "," in value:
        return value.split(",", 1)[1]
    return value


def _plausible(value: Any) -> str | None:
    """Devuelve el payload normalizado si parece base64, si no None."""
    if not isinstance(value, str):
        return None
    candidate = _strip_data_uri(value.strip())
    if len(candidate) > MIN_PAYLOAD_LENGTH and _BASE64_RE.match(candidate):
        return candidate
    return None


def _finish_reason(container: Any) -> str:
    if isinstance(container, dict):
        return (
            container.get("finish_reason")
            or container.get("finishReason")
            or "SUCCESS"
        )
    return "SUCCESS"


def _children(node: Any) -> list[tuple[Any, Any]]:
    if isinstance(node, dict):
        return list(node.items())
    if isinstance(node, list):
        return list(enumerate(node))
    return []


def find_named_payload(
    node: Any, field: str = PAYLOAD_FIELD, depth: int = 0
) -> tuple[str, Any] | None:
    """
    Primer valor plausible bajo la clave `field`, en orden de documento.
    Devuelve (payload, contenedor) o None.
    """
    if depth > MAX_SEARCH_DEPTH:
        return None
    for key, value in _children(node):
        if key == field:
            payload = _plausible(value)
            if payload is not None:
                return payload, node
        if isinstance(value, (dict, list)):
            found = find_named_payload(value, field, depth + 1)
            if found is not None:
                return found
    return None


def find_longest_base64(node: Any, depth: int = 0) -> str | None:
    """El string plausible más largo en cualquier posición del árbol."""
    if depth > MAX_SEARCH_DEPTH:
        return None
    best: str | None = None
    for _, value in _children(node):
        if isinstance(value, (dict, list)):
            candidate = find_longest_base64(value, depth + 1)
        else:
            candidate = _plausible(value)
        if candidate is not None and (best is None or len(candidate) > len(best)):
            best = candidate
    return best


# ── API pública ───────────────────────────────────────────────────────────────


def extract_image_payload(body: Any) -> ExtractedPayload:
    """
    Aplica las cuatro estrategias en orden. Lanza NoImageDataError si ninguna
    encuentra un payload plausible.
    """
    if isinstance(body, dict):
        payload = _plausible(body.get(PAYLOAD_FIELD))
        if payload is not None:
            logger.debug("payload: encontrado en campo directo")
            return ExtractedPayload(payload, _finish_reason(body), "direct")

        artifacts = body.get(ARTIFACTS_FIELD)
        if isinstance(artifacts, list) and artifacts:
            first = artifacts[0]
            if isinstance(first, dict):
                payload = _plausible(first.get(PAYLOAD_FIELD))
                if payload is not None:
                    logger.debug("payload: encontrado en artifacts[0]")
                    return ExtractedPayload(payload, _finish_reason(first), "artifacts")

    found = find_named_payload(body)
    if found is not None:
        payload, container = found
        logger.debug("payload: encontrado por búsqueda recursiva del campo")
        return ExtractedPayload(payload, _finish_reason(container), "named_search")

    longest = find_longest_base64(body)
    if longest is not None:
        logger.debug("payload: usando el string base64 más largo (%d chars)", len(longest))
        return ExtractedPayload(longest, "SUCCESS", "longest_string")

    raise NoImageDataError(details="Respuesta sin payload de imagen reconocible")


def decode_image_payload(payload: str) -> bytes:
    """Decodifica el payload base64. Lanza ImageDecodeError si no es válido."""
    try:
        data = base64.b64decode(_strip_data_uri(payload), validate=True)
    except (binascii.Error, ValueError) as exc:
        raise ImageDecodeError(details=f"base64 inválido: {exc}") from exc
    if not data:
        raise ImageDecodeError(details="El payload decodificado está vacío")
    return data
