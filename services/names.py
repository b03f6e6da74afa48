"""
services/names.py — Generador de nombres japoneses por bucket de edad y género.

Listas estáticas (una entrada por línea) en NAMES_DIR:
  familyNames.txt              — apellidos, comunes a todos los buckets
  <age>-<gender>-Names.txt     — nombres propios, p.ej. "30-female-Names.txt"

Uso:
    generator = NameGenerator(names_dir=settings.NAMES_DIR)
    name = generator.generate_name(30, "female")
    name.family_name, name.given_name
"""

import logging
import random
from pathlib import Path

from middleware.error_handler import ResourceEmptyError, ResourceMissingError
from models.entities import GeneratedName
from services.buckets import validate_age, validate_gender

logger = logging.getLogger(__name__)

FAMILY_NAMES_FILE = "familyNames.txt"


def given_names_filename(age: int, gender: str) -> str:
    return f"{age}-{gender}-Names.txt"


class NameGenerator:
    def __init__(
        self,
        names_dir: str | Path = "./assets/names",
        rng: random.Random | None = None,
    ) -> None:
        self._dir = Path(names_dir)
        self._rng = rng or random.Random()

    def generate_name(self, age: int | str, gender: str) -> GeneratedName:
        """
        Devuelve un apellido y un nombre propio elegidos uniformemente.

        Lanza InvalidParameterError (bucket inválido), ResourceMissingError
        (falta la lista) o ResourceEmptyError (lista sin líneas utilizables).
        """
        age = validate_age(age)
        gender = validate_gender(gender)

        family_name = self._random_line(self._dir / FAMILY_NAMES_FILE)
        given_name = self._random_line(self._dir / given_names_filename(age, gender))
        return GeneratedName(family_name=family_name, given_name=given_name)

    def load_names(self, path: Path) -> list[str]:
        """Líneas no vacías de la lista, sin espacios alrededor."""
        if not path.is_file():
            raise ResourceMissingError(details=f"Lista de nombres no encontrada: {path}")
        lines = [
            line.strip()
            for line in path.read_text(encoding="utf-8").splitlines()
            if line.strip()
        ]
        if not lines:
            raise ResourceEmptyError(details=f"Lista de nombres vacía: {path}")
        return lines

    def _random_line(self, path: Path) -> str:
        return self._rng.choice(self.load_names(path))
