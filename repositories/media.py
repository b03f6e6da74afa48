"""
FaceImageRepository — ficheros de imagen de caras en `assets/faces/`.

Las imágenes nunca se borran: viven tanto como el almacén de la aplicación.
`image_uri` es siempre la ruta relativa a la raíz de la app
("assets/faces/30-female-0123456789-face.jpeg"), servida por el mount estático
/assets de main.py.

Uso:
    media_repo = FaceImageRepository(app_root=settings.APP_ROOT, faces_dir=settings.FACES_DIR)
    image_uri = await media_repo.save(data=image_bytes, filename="30-female-0123456789-face.jpeg")
    data = await media_repo.read(image_uri)
"""

import asyncio
import logging
from pathlib import Path, PurePosixPath

from middleware.error_handler import NotFoundError, StorageWriteError

logger = logging.getLogger(__name__)


class FaceImageRepository:
    def __init__(
        self,
        app_root: str | Path = ".",
        faces_dir: str = "assets/faces",
    ) -> None:
        self._root = Path(app_root)
        self._faces_dir = PurePosixPath(faces_dir)

    @property
    def directory(self) -> Path:
        return self._root / self._faces_dir

    # ── Guardar ───────────────────────────────────────────────────────────────

    async def save(self, data: bytes, filename: str) -> str:
        """
        Escribe `data` en `<app_root>/<faces_dir>/<filename>` y devuelve el image_uri.
        El directorio se crea en el primer uso. Lanza StorageWriteError si falla.
        """
        dest = self.directory / filename

        def _write() -> None:
            dest.parent.mkdir(parents=True, exist_ok=True)
            dest.write_bytes(data)

        loop = asyncio.get_running_loop()
        try:
            await loop.run_in_executor(None, _write)
        except OSError as exc:
            raise StorageWriteError(details=f"No se pudo escribir {dest}: {exc}") from exc

        logger.info("media: imagen guardada %s (%d bytes)", dest, len(data))
        return str(self._faces_dir / filename)

    # ── Leer ──────────────────────────────────────────────────────────────────

    def path_for(self, image_uri: str) -> Path:
        return self._root / image_uri

    async def read(self, image_uri: str) -> bytes:
        """Devuelve los bytes guardados para `image_uri`."""
        path = self.path_for(image_uri)
        if not path.is_file():
            raise NotFoundError("Imagen no encontrada", details=str(path))
        loop = asyncio.get_running_loop()
        return await loop.run_in_executor(None, path.read_bytes)
