import logging
from typing import Literal

import redis.asyncio as redis
from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.db import get_db
from app.core.redis import get_redis
from app.schemas.adoption_request import (
    AdoptionDecisionOut,
    AdoptionRequestCreate,
    AdoptionRequestOut,
    ContactOut,
)
from app.services import adoption_requests as requests_svc
from app.services.auth import Identity, get_identity

log = logging.getLogger(__name__)
router = APIRouter()

StatusFilter = Literal["pending", "approved", "rejected"]

LOAD_FAILED = "Could not load adoption requests right now. Please try again."
DECISION_FAILED = "Failed to save your decision. Please try again."


@router.post(
    "/listings/{listing_id}/requests",
    response_model=AdoptionRequestOut,
    status_code=201,
)
async def create_adoption_request(
    listing_id: str,
    payload: AdoptionRequestCreate,
    identity: Identity = Depends(get_identity),
    db: AsyncSession = Depends(get_db),
) -> AdoptionRequestOut:
    try:
        req = await requests_svc.create_request(
            db,
            identity=identity,
            listing_id=listing_id,
            message=payload.message,
        )
        resp = AdoptionRequestOut.model_validate(req)
        await db.commit()
    except SQLAlchemyError:
        await db.rollback()
        log.exception("saving adoption request failed")
        raise HTTPException(status_code=503, detail="Failed to send adoption request. Please try again.")
    return resp


@router.get("/requests/incoming", response_model=list[AdoptionRequestOut])
async def incoming_requests(
    status: StatusFilter | None = Query(default=None),
    identity: Identity = Depends(get_identity),
    db: AsyncSession = Depends(get_db),
) -> list[AdoptionRequestOut]:
    try:
        rows = await requests_svc.list_incoming(db, identity.user_id, status)
    except SQLAlchemyError:
        log.exception("incoming requests query failed for %s", identity.user_id)
        raise HTTPException(status_code=503, detail=LOAD_FAILED)
    return [AdoptionRequestOut.model_validate(r) for r in rows]


@router.get("/requests/outgoing", response_model=list[AdoptionRequestOut])
async def outgoing_requests(
    status: StatusFilter | None = Query(default=None),
    identity: Identity = Depends(get_identity),
    db: AsyncSession = Depends(get_db),
) -> list[AdoptionRequestOut]:
    try:
        rows = await requests_svc.list_outgoing(db, identity.user_id, status)
    except SQLAlchemyError:
        log.exception("outgoing requests query failed for %s", identity.user_id)
        raise HTTPException(status_code=503, detail=LOAD_FAILED)
    return [AdoptionRequestOut.model_validate(r) for r in rows]


@router.get("/requests/contacts", response_model=list[ContactOut])
async def contacts(
    identity: Identity = Depends(get_identity),
    db: AsyncSession = Depends(get_db),
    r: redis.Redis = Depends(get_redis),
) -> list[ContactOut]:
    try:
        found = await requests_svc.list_contacts(db, identity.user_id)
    except SQLAlchemyError:
        log.exception("contacts query failed for %s", identity.user_id)
        raise HTTPException(status_code=503, detail="Could not load contacts right now. Please try again.")

    try:
        return await requests_svc.attach_open_conversations(r, found)
    except redis.RedisError:
        # contacts still list; no thread can be opened until the store is back
        log.warning("could not check conversations for %s", identity.user_id, exc_info=True)
        for c in found:
            c.conversation_id = None
        return found


async def _decide(db: AsyncSession, identity: Identity, request_id: str, target: str):
    try:
        req = await requests_svc.resolve_request(db, identity=identity, request_id=request_id, target=target)
        resp = AdoptionRequestOut.model_validate(req)
        await db.commit()
    except SQLAlchemyError:
        await db.rollback()
        log.exception("saving %s decision on %s failed", target, request_id)
        raise HTTPException(status_code=503, detail=DECISION_FAILED)
    return req, resp


@router.post("/requests/{request_id}/approve", response_model=AdoptionDecisionOut)
async def approve_request(
    request_id: str,
    identity: Identity = Depends(get_identity),
    db: AsyncSession = Depends(get_db),
    r: redis.Redis = Depends(get_redis),
) -> AdoptionDecisionOut:
    req, resp = await _decide(db, identity, request_id, requests_svc.APPROVED)

    # The approval stands even if the conversation cannot be opened now;
    # the first message between the pair creates it later.
    try:
        conv = await requests_svc.open_conversation_for(r, req)
    except redis.RedisError:
        log.exception("approved %s but could not open its conversation", req.id)
        return AdoptionDecisionOut(
            request=resp,
            notice="Request approved, but the conversation could not be opened yet.",
        )

    return AdoptionDecisionOut(request=resp, conversation_id=conv.id)


@router.post("/requests/{request_id}/reject", response_model=AdoptionDecisionOut)
async def reject_request(
    request_id: str,
    identity: Identity = Depends(get_identity),
    db: AsyncSession = Depends(get_db),
) -> AdoptionDecisionOut:
    _, resp = await _decide(db, identity, request_id, requests_svc.REJECTED)
    return AdoptionDecisionOut(request=resp)
