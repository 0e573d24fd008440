import logging

import redis.asyncio as redis
from fastapi import APIRouter, Depends
from fastapi.responses import JSONResponse
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.db import get_db
from app.core.redis import get_redis

log = logging.getLogger(__name__)
router = APIRouter()


@router.get("/health")
async def health() -> dict:
    return {"status": "ok"}


@router.get("/health/ready")
async def ready(
    db: AsyncSession = Depends(get_db),
    r: redis.Redis = Depends(get_redis),
):
    checks: dict[str, str] = {}

    try:
        await db.execute(text("SELECT 1"))
        checks["document_store"] = "ok"
    except SQLAlchemyError:
        log.exception("readiness: document store unreachable")
        checks["document_store"] = "down"

    try:
        await r.ping()
        checks["realtime_store"] = "ok"
    except redis.RedisError:
        log.exception("readiness: realtime store unreachable")
        checks["realtime_store"] = "down"

    ok = all(v == "ok" for v in checks.values())
    return JSONResponse(
        status_code=200 if ok else 503,
        content={"status": "ok" if ok else "degraded", "checks": checks},
    )
