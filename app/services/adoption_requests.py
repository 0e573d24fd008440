from __future__ import annotations

import logging

import redis.asyncio as redis
from fastapi import HTTPException
from sqlalchemy import or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.ids import pair_id
from app.models.adoption_request import AdoptionRequest
from app.models.base import utcnow
from app.schemas.adoption_request import ContactOut
from app.services.audit import audit
from app.services.auth import Identity
from app.services.conversations import Conversation, Participant, ensure_conversation, get_conversation
from app.services.listings import get_listing_or_404


log = logging.getLogger(__name__)

PENDING = "pending"
APPROVED = "approved"
REJECTED = "rejected"

# Resolved requests are terminal: no re-open, no pending -> pending.
ALLOWED_TRANSITIONS: dict[str, frozenset[str]] = {
    PENDING: frozenset({APPROVED, REJECTED}),
    APPROVED: frozenset(),
    REJECTED: frozenset(),
}


def can_transition(current: str, target: str) -> bool:
    return target in ALLOWED_TRANSITIONS.get(current, frozenset())


def assert_transition(current: str, target: str) -> None:
    if not can_transition(current, target):
        raise HTTPException(
            status_code=409,
            detail=f"Cannot move a {current} request to {target}",
        )


async def create_request(
    db: AsyncSession,
    *,
    identity: Identity,
    listing_id: str,
    message: str,
) -> AdoptionRequest:
    listing = await get_listing_or_404(db, listing_id)
    if listing.owner_id == identity.user_id:
        raise HTTPException(status_code=400, detail="You cannot request to adopt your own pet")
    if not listing.is_available:
        raise HTTPException(status_code=409, detail="This pet is no longer available")

    req = AdoptionRequest(
        listing_id=listing.id,
        requester_id=identity.user_id,
        owner_id=listing.owner_id,
        requester_name=identity.display_name,
        owner_name=listing.owner_name,
        listing_name=listing.name,
        message=message.strip(),
        status=PENDING,
        created_by=identity.user_id,
        updated_by=identity.user_id,
    )
    db.add(req)
    await db.flush()
    return req


async def get_request_or_404(db: AsyncSession, request_id: str) -> AdoptionRequest:
    req = (
        await db.execute(select(AdoptionRequest).where(AdoptionRequest.id == request_id))
    ).scalar_one_or_none()
    if not req:
        raise HTTPException(status_code=404, detail="Adoption request not found")
    return req


async def list_incoming(db: AsyncSession, owner_id: str, status: str | None = None) -> list[AdoptionRequest]:
    stmt = select(AdoptionRequest).where(AdoptionRequest.owner_id == owner_id)
    if status:
        stmt = stmt.where(AdoptionRequest.status == status)
    stmt = stmt.order_by(AdoptionRequest.created_at.desc())
    return list((await db.execute(stmt)).scalars().all())


async def list_outgoing(db: AsyncSession, requester_id: str, status: str | None = None) -> list[AdoptionRequest]:
    stmt = select(AdoptionRequest).where(AdoptionRequest.requester_id == requester_id)
    if status:
        stmt = stmt.where(AdoptionRequest.status == status)
    stmt = stmt.order_by(AdoptionRequest.created_at.desc())
    return list((await db.execute(stmt)).scalars().all())


async def resolve_request(
    db: AsyncSession,
    *,
    identity: Identity,
    request_id: str,
    target: str,
) -> AdoptionRequest:
    """Owner decision on a pending request. Flushes; the caller commits."""
    req = await get_request_or_404(db, request_id)
    if req.owner_id != identity.user_id:
        raise HTTPException(status_code=403, detail="Only the pet owner can decide on this request")

    assert_transition(req.status, target)

    previous = req.status
    req.status = target
    req.resolved_at = utcnow()
    req.updated_by = identity.user_id

    await audit(
        db,
        actor_user_id=identity.user_id,
        action=f"adoption_request.{target}",
        target_type="adoption_request",
        target_id=req.id,
        detail={"from": previous, "to": target, "listing_id": req.listing_id},
    )
    await db.flush()
    return req


async def open_conversation_for(r: redis.Redis, req: AdoptionRequest) -> Conversation:
    conv = await ensure_conversation(
        r,
        a=Participant(user_id=req.owner_id, name=req.owner_name),
        b=Participant(user_id=req.requester_id, name=req.requester_name),
        listing_id=req.listing_id,
        listing_name=req.listing_name,
    )
    if not conv.created:
        log.info("approval of %s re-used conversation %s", req.id, conv.id)
    return conv


async def list_contacts(db: AsyncSession, user_id: str) -> list[ContactOut]:
    """Counterparts from approved requests on either side, one entry per identity."""
    stmt = (
        select(AdoptionRequest)
        .where(
            AdoptionRequest.status == APPROVED,
            or_(AdoptionRequest.owner_id == user_id, AdoptionRequest.requester_id == user_id),
        )
        .order_by(AdoptionRequest.resolved_at.desc())
    )
    rows = (await db.execute(stmt)).scalars().all()

    contacts: dict[str, ContactOut] = {}
    for r in rows:
        if r.owner_id == user_id:
            other_id, other_name = r.requester_id, r.requester_name
        else:
            other_id, other_name = r.owner_id, r.owner_name
        if other_id in contacts:
            continue
        contacts[other_id] = ContactOut(
            user_id=other_id,
            name=other_name,
            listing_id=r.listing_id,
            listing_name=r.listing_name,
            conversation_id=pair_id(user_id, other_id),
        )
    return list(contacts.values())


async def attach_open_conversations(r: redis.Redis, contacts: list[ContactOut]) -> list[ContactOut]:
    """Clear the conversation id of contacts whose pair thread was never opened."""
    for c in contacts:
        if c.conversation_id and await get_conversation(r, c.conversation_id) is None:
            c.conversation_id = None
    return contacts
