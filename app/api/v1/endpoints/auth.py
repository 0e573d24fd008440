import logging

import redis.asyncio as redis
from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.config import settings
from app.core.db import get_db
from app.core.redis import get_redis
from app.schemas.common import StatusResponse
from app.schemas.me import SessionOut, SignInIn, SignUpIn
from app.services import identities
from app.services.auth import Identity, get_identity
from app.services.rate_limit import FixedWindowLimiter, enforce_signin_limit


log = logging.getLogger(__name__)
router = APIRouter(prefix="/auth")


@router.post("/sign-up", response_model=SessionOut, status_code=201)
async def sign_up(payload: SignUpIn, db: AsyncSession = Depends(get_db)) -> SessionOut:
    try:
        return await identities.sign_up(db, payload)
    except SQLAlchemyError:
        await db.rollback()
        log.exception("sign-up failed")
        raise HTTPException(status_code=503, detail="Failed to create account. Please try again.")


@router.post("/sign-in", response_model=SessionOut)
async def sign_in(
    payload: SignInIn,
    db: AsyncSession = Depends(get_db),
    r: redis.Redis = Depends(get_redis),
) -> SessionOut:
    try:
        await enforce_signin_limit(
            FixedWindowLimiter(r),
            email=str(payload.email),
            limit=settings.signin_rate_limit,
            window_seconds=settings.signin_rate_window_seconds,
        )
    except redis.RedisError:
        # limiter unavailable: sign-in still works, unthrottled
        log.warning("sign-in rate limiter unavailable", exc_info=True)

    try:
        return await identities.sign_in(db, payload)
    except SQLAlchemyError:
        await db.rollback()
        log.exception("sign-in failed")
        raise HTTPException(status_code=503, detail="Failed to sign in. Please try again.")


@router.post("/sign-out", response_model=StatusResponse)
async def sign_out(
    identity: Identity = Depends(get_identity),
    db: AsyncSession = Depends(get_db),
) -> StatusResponse:
    try:
        await identities.sign_out(db, identity)
    except SQLAlchemyError:
        await db.rollback()
        log.exception("sign-out failed for session %s", identity.session_id)
        raise HTTPException(status_code=503, detail="Failed to sign out. Please try again.")
    return StatusResponse(status="signed_out")
