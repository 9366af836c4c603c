# app/routers/health.py
from fastapi import APIRouter, Request

from .. import schemas

router = APIRouter(
    tags=["Health Checks"],
)

@router.get("/health", response_model=schemas.HealthResponse)
def health(request: Request) -> schemas.HealthResponse:
    """Liveness probe; does not touch the record store or the identity provider."""
    settings = request.app.state.settings
    return schemas.HealthResponse(status="ok", environment=settings.environment, version=settings.app_version)
