"""
Dependencias FastAPI compartidas por todos los routers.

Los servicios se construyen una sola vez en el lifespan de main.py y viven en
`app.state`; aquí solo se exponen para Depends(). Los tests pueden sustituirlos
con `app.dependency_overrides`.

Uso:
    from dependencies import get_face_name_service
    from services.pairing import FaceNameService

    @router.get(...)
    async def endpoint(
        service: FaceNameService = Depends(get_face_name_service),
    ):
        ...
"""

from fastapi import Request

from repositories.store import Store
from services.image_client import ImageGenerationClient
from services.monitor import GenerationMonitor
from services.pairing import FaceNameService
from services.quiz import SessionStorage


def get_store(request: Request) -> Store:
    """Backend de almacenamiento activo (sql | file)."""
    return request.app.state.store


def get_image_client(request: Request) -> ImageGenerationClient:
    return request.app.state.image_client


def get_monitor(request: Request) -> GenerationMonitor:
    return request.app.state.monitor


def get_face_name_service(request: Request) -> FaceNameService:
    return request.app.state.face_name_service


def get_quiz_storage(request: Request) -> SessionStorage:
    """Estado efímero de memorización/test por sesión."""
    return request.app.state.quiz_storage
