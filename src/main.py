"""Entry point for the telephony voice-agent bridge service."""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI

from api.dependencies import get_registry
from api.routes import router as api_router
from config.settings import get_settings


@asynccontextmanager
async def lifespan(app: FastAPI):
    yield
    await get_registry().close_all()


settings = get_settings()

logging.basicConfig(
    level=settings.log_level,
    format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
)

app = FastAPI(
    title="Telephony Voice Agent Bridge",
    description="Bridges phone calls to speech recognition, an LLM and speech synthesis.",
    lifespan=lifespan,
)
app.include_router(api_router, prefix="/api")
