import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI

from app.api.v1.router import router as v1_router
from app.core.config import settings
from app.core.db import engine
from app.core.redis import close_redis
from app.core.telemetry import setup_telemetry
from app.services.media import get_media_uploader

logging.basicConfig(level=settings.log_level.upper())


@asynccontextmanager
async def lifespan(app: FastAPI):
    yield
    await get_media_uploader().aclose()
    await close_redis()
    await engine.dispose()


app = FastAPI(title="Adoption Hub API", version="0.1.0", lifespan=lifespan)

setup_telemetry(app)
app.include_router(v1_router)
