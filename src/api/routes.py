"""FastAPI routes exposing service status."""

from __future__ import annotations

from fastapi import APIRouter, Depends

from api.dependencies import get_registry
from api.schemas import HealthResponse
from api.twilio_routes import router as twilio_router
from calls.registry import SessionRegistry

router = APIRouter()
router.include_router(twilio_router)


@router.get("/health", response_model=HealthResponse)
async def health(registry: SessionRegistry = Depends(get_registry)) -> HealthResponse:
    return HealthResponse(active_calls=len(registry))
