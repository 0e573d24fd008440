import asyncio
import logging

import redis.asyncio as redis
from fastapi import APIRouter, Depends, HTTPException, Query, WebSocket, WebSocketDisconnect, status
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.db import get_db
from app.core.redis import get_redis
from app.schemas.conversation import ConversationOut, ConversationStart, MessageIn, MessageOut
from app.services import conversations as conv_svc
from app.services.auth import Identity, get_identity, resolve_identity
from app.services.identities import get_user_or_404
from app.services.listings import get_listing_or_404

log = logging.getLogger(__name__)
router = APIRouter(prefix="/conversations")

REALTIME_DOWN = "Messaging is unavailable right now. Please try again."


def _me(identity: Identity) -> conv_svc.Participant:
    return conv_svc.Participant(user_id=identity.user_id, name=identity.display_name)


@router.post("", response_model=ConversationOut, status_code=201)
async def start_conversation(
    payload: ConversationStart,
    identity: Identity = Depends(get_identity),
    db: AsyncSession = Depends(get_db),
    r: redis.Redis = Depends(get_redis),
) -> ConversationOut:
    """Open (or re-open) the thread with another identity and send the first message."""
    if payload.recipient_id == identity.user_id:
        raise HTTPException(status_code=400, detail="Cannot start a conversation with yourself")
    text = conv_svc.clean_text(payload.text)

    try:
        recipient = await get_user_or_404(db, payload.recipient_id)
        listing_name = None
        if payload.listing_id:
            listing_name = (await get_listing_or_404(db, payload.listing_id)).name
    except SQLAlchemyError:
        log.exception("loading recipient %s failed", payload.recipient_id)
        raise HTTPException(status_code=503, detail="Could not start the conversation right now. Please try again.")

    try:
        conv = await conv_svc.ensure_conversation(
            r,
            a=_me(identity),
            b=conv_svc.Participant(user_id=recipient.id, name=recipient.display_name),
            listing_id=payload.listing_id,
            listing_name=listing_name,
        )
        await conv_svc.send_message(r, conversation=conv, sender=_me(identity), text=text)
    except redis.RedisError:
        log.exception("starting conversation with %s failed", recipient.id)
        raise HTTPException(status_code=503, detail=REALTIME_DOWN)

    return conv.to_out()


@router.get("", response_model=list[ConversationOut])
async def list_conversations(
    identity: Identity = Depends(get_identity),
    r: redis.Redis = Depends(get_redis),
) -> list[ConversationOut]:
    try:
        convs = await conv_svc.list_conversations(r, identity.user_id)
    except redis.RedisError:
        log.exception("listing conversations failed")
        raise HTTPException(status_code=503, detail=REALTIME_DOWN)
    return [c.to_out() for c in convs]


@router.get("/{conversation_id}", response_model=ConversationOut)
async def get_conversation(
    conversation_id: str,
    identity: Identity = Depends(get_identity),
    r: redis.Redis = Depends(get_redis),
) -> ConversationOut:
    try:
        conv = await conv_svc.get_conversation_for(r, conversation_id, identity.user_id)
    except redis.RedisError:
        log.exception("loading conversation %s failed", conversation_id)
        raise HTTPException(status_code=503, detail=REALTIME_DOWN)
    return conv.to_out()


@router.get("/{conversation_id}/messages", response_model=list[MessageOut])
async def list_messages(
    conversation_id: str,
    identity: Identity = Depends(get_identity),
    r: redis.Redis = Depends(get_redis),
) -> list[MessageOut]:
    try:
        await conv_svc.get_conversation_for(r, conversation_id, identity.user_id)
        return await conv_svc.list_messages(r, conversation_id)
    except redis.RedisError:
        log.exception("loading messages for %s failed", conversation_id)
        raise HTTPException(status_code=503, detail="Error loading messages")


@router.post("/{conversation_id}/messages", response_model=MessageOut, status_code=201)
async def send_message(
    conversation_id: str,
    payload: MessageIn,
    identity: Identity = Depends(get_identity),
    r: redis.Redis = Depends(get_redis),
) -> MessageOut:
    try:
        conv = await conv_svc.get_conversation_for(r, conversation_id, identity.user_id)
        return await conv_svc.send_message(r, conversation=conv, sender=_me(identity), text=payload.text)
    except redis.RedisError:
        log.exception("sending message to %s failed", conversation_id)
        raise HTTPException(status_code=503, detail="Failed to send message. Please try again.")


async def _forward(websocket: WebSocket, r: redis.Redis, conversation_id: str, live: conv_svc.MessageSubscription) -> None:
    seen: set[str] = set()
    for m in await conv_svc.list_messages(r, conversation_id):
        seen.add(m.id)
        await websocket.send_json(m.model_dump(mode="json"))

    async for m in live:
        if m.id in seen:
            continue
        seen.add(m.id)
        await websocket.send_json(m.model_dump(mode="json"))


async def _until_disconnect(websocket: WebSocket) -> None:
    # Client frames carry nothing; reading them is how a hang-up is noticed.
    while True:
        event = await websocket.receive()
        if event["type"] == "websocket.disconnect":
            return


@router.websocket("/{conversation_id}/stream")
async def stream_messages(
    websocket: WebSocket,
    conversation_id: str,
    token: str = Query(...),
    db: AsyncSession = Depends(get_db),
    r: redis.Redis = Depends(get_redis),
) -> None:
    # Browsers cannot set headers on a WebSocket handshake, so the token rides in the query.
    try:
        identity = await resolve_identity(db, token)
        conv = await conv_svc.get_conversation(r, conversation_id) if identity else None
    except (SQLAlchemyError, redis.RedisError):
        log.exception("opening stream for %s failed", conversation_id)
        await websocket.close(code=status.WS_1011_INTERNAL_ERROR)
        return

    if identity is None or conv is None or not conv.has_participant(identity.user_id):
        await websocket.close(code=status.WS_1008_POLICY_VIOLATION)
        return

    await websocket.accept()
    try:
        async with conv_svc.MessageSubscription(r, conversation_id) as live:
            forward = asyncio.create_task(_forward(websocket, r, conversation_id, live))
            hangup = asyncio.create_task(_until_disconnect(websocket))
            try:
                done, _ = await asyncio.wait({forward, hangup}, return_when=asyncio.FIRST_COMPLETED)
            finally:
                # whichever side is still running goes, even if this handler is cancelled
                for task in (forward, hangup):
                    task.cancel()
                await asyncio.gather(forward, hangup, return_exceptions=True)
            for task in done:
                task.result()
    except WebSocketDisconnect:
        log.debug("stream closed by client: %s", conversation_id)
    except redis.RedisError:
        log.exception("stream for %s lost its realtime connection", conversation_id)
        await websocket.close(code=status.WS_1011_INTERNAL_ERROR)
    else:
        log.debug("stream closed by client: %s", conversation_id)
