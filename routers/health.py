"""
routers/health.py — Health check público.

GET /api/health → {"status": "ok", "version": "1.0"}
"""

from fastapi import APIRouter, Request

from models.responses import HealthResponse

router = APIRouter(prefix="/api", tags=["health"])


@router.get("/health", response_model=HealthResponse)
async def health(request: Request) -> HealthResponse:
    return HealthResponse(version=request.app.version)
