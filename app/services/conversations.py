from __future__ import annotations

import json
import logging
import time
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import AsyncIterator

import redis.asyncio as redis
from fastapi import HTTPException

from app.core.ids import gen_id, pair_id
from app.schemas.conversation import ConversationOut, MessageOut


log = logging.getLogger(__name__)

MAX_MESSAGE_CHARS = 4000


def conversation_key(conversation_id: str) -> str:
    return f"conv:{conversation_id}"


def messages_key(conversation_id: str) -> str:
    return f"conv:{conversation_id}:messages"


def user_conversations_key(user_id: str) -> str:
    return f"user:{user_id}:convs"


def events_channel(conversation_id: str) -> str:
    return f"conv:{conversation_id}:events"


def now_ms() -> int:
    return int(time.time() * 1000)


def _from_ms(ms: int | str) -> datetime:
    return datetime.fromtimestamp(int(ms) / 1000, tz=timezone.utc)


def _dumps(value) -> str:
    return json.dumps(value, separators=(",", ":"), ensure_ascii=False)


@dataclass(frozen=True)
class Participant:
    user_id: str
    name: str


@dataclass
class Conversation:
    id: str
    participants: list[str]
    participant_names: dict[str, str]
    listing_id: str | None
    listing_name: str | None
    last_message: str
    last_message_at: int
    created_at: int
    created: bool = field(default=False, compare=False)

    @classmethod
    def from_hash(cls, data: dict[str, str]) -> "Conversation":
        return cls(
            id=data["id"],
            participants=json.loads(data.get("participants") or "[]"),
            participant_names=json.loads(data.get("participant_names") or "{}"),
            listing_id=data.get("listing_id") or None,
            listing_name=data.get("listing_name") or None,
            last_message=data.get("last_message", ""),
            last_message_at=int(data.get("last_message_at") or data.get("created_at") or 0),
            created_at=int(data.get("created_at") or 0),
        )

    def to_out(self) -> ConversationOut:
        return ConversationOut(
            id=self.id,
            participants=self.participants,
            participant_names=self.participant_names,
            listing_id=self.listing_id,
            listing_name=self.listing_name,
            last_message=self.last_message,
            last_message_at=_from_ms(self.last_message_at),
            created_at=_from_ms(self.created_at),
        )

    def has_participant(self, user_id: str) -> bool:
        return user_id in self.participants


def message_from_json(raw: str) -> MessageOut:
    data = json.loads(raw)
    return MessageOut(
        id=data["id"],
        conversation_id=data["conversation_id"],
        sender_id=data["sender_id"],
        sender_name=data["sender_name"],
        text=data["text"],
        sent_at=_from_ms(data["sent_at"]),
    )


def clean_text(text: str) -> str:
    cleaned = (text or "").strip()
    if not cleaned:
        raise HTTPException(status_code=422, detail="Message text must not be empty")
    if len(cleaned) > MAX_MESSAGE_CHARS:
        raise HTTPException(status_code=422, detail=f"Message text exceeds {MAX_MESSAGE_CHARS} characters")
    return cleaned


async def get_conversation(r: redis.Redis, conversation_id: str) -> Conversation | None:
    data = await r.hgetall(conversation_key(conversation_id))
    # a bare created_at means creation is in flight or was cut short
    if not data or "id" not in data:
        return None
    return Conversation.from_hash(data)


async def get_conversation_for(r: redis.Redis, conversation_id: str, user_id: str) -> Conversation:
    conv = await get_conversation(r, conversation_id)
    if conv is None:
        raise HTTPException(status_code=404, detail="Conversation not found")
    if not conv.has_participant(user_id):
        raise HTTPException(status_code=403, detail="Not a participant of this conversation")
    return conv


async def ensure_conversation(
    r: redis.Redis,
    *,
    a: Participant,
    b: Participant,
    listing_id: str | None = None,
    listing_name: str | None = None,
) -> Conversation:
    """
    Return the conversation between two identities, creating it if absent.

    The id depends only on the pair, and HSETNX on `created_at` decides which
    caller creates it, so concurrent or repeated calls never yield a second
    conversation for the same pair. Every caller then (re)writes the body:
    the writes are idempotent, so a creation cut short after the guard is
    repaired by the next call instead of leaving a hash with no body.
    """
    if a.user_id == b.user_id:
        raise HTTPException(status_code=400, detail="Cannot start a conversation with yourself")

    conversation_id = pair_id(a.user_id, b.user_id)
    key = conversation_key(conversation_id)
    ts = now_ms()

    created = bool(await r.hsetnx(key, "created_at", str(ts)))
    existing = None if created else await get_conversation(r, conversation_id)

    if existing is None:
        async with r.pipeline(transaction=True) as pipe:
            pipe.hset(
                key,
                mapping={
                    "id": conversation_id,
                    "participants": _dumps(sorted([a.user_id, b.user_id])),
                    "participant_names": _dumps({a.user_id: a.name, b.user_id: b.name}),
                    "listing_id": listing_id or "",
                    "listing_name": listing_name or "",
                },
            )
            # keep a summary written by messages sent while the body was missing
            pipe.hsetnx(key, "last_message", "")
            pipe.hsetnx(key, "last_message_at", str(ts))
            pipe.sadd(user_conversations_key(a.user_id), conversation_id)
            pipe.sadd(user_conversations_key(b.user_id), conversation_id)
            await pipe.execute()
        if created:
            log.info("conversation created: %s (listing=%s)", conversation_id, listing_id)
        else:
            log.warning("conversation %s had no body; rewrote it", conversation_id)
        existing = await get_conversation(r, conversation_id)

    existing.created = created
    return existing


async def list_conversations(r: redis.Redis, user_id: str) -> list[Conversation]:
    ids = await r.smembers(user_conversations_key(user_id))
    out: list[Conversation] = []
    for conversation_id in ids:
        conv = await get_conversation(r, conversation_id)
        if conv is not None and conv.has_participant(user_id):
            out.append(conv)
    out.sort(key=lambda c: c.last_message_at, reverse=True)
    return out


async def list_messages(r: redis.Redis, conversation_id: str) -> list[MessageOut]:
    raw = await r.lrange(messages_key(conversation_id), 0, -1)
    messages = [message_from_json(x) for x in raw]
    messages.sort(key=lambda m: m.sent_at)
    return messages


async def send_message(
    r: redis.Redis,
    *,
    conversation: Conversation,
    sender: Participant,
    text: str,
) -> MessageOut:
    """
    Append one message and update the conversation summary in one MULTI,
    then publish it to live subscribers.
    """
    if not conversation.has_participant(sender.user_id):
        raise HTTPException(status_code=403, detail="Not a participant of this conversation")

    body = clean_text(text)
    ts = now_ms()
    entry = {
        "id": gen_id("msg"),
        "conversation_id": conversation.id,
        "sender_id": sender.user_id,
        "sender_name": sender.name,
        "text": body,
        "sent_at": ts,
    }
    raw = _dumps(entry)

    async with r.pipeline(transaction=True) as pipe:
        pipe.rpush(messages_key(conversation.id), raw)
        pipe.hset(
            conversation_key(conversation.id),
            mapping={"last_message": body, "last_message_at": str(ts)},
        )
        await pipe.execute()

    conversation.last_message = body
    conversation.last_message_at = ts

    # Subscribers that miss this still see the message on their next history read.
    await r.publish(events_channel(conversation.id), raw)
    return message_from_json(raw)


class MessageSubscription:
    """
    Live feed of messages published to one conversation.

    Subscribes on enter, so a history read done inside the block cannot miss
    a message sent in between (it may see it twice; callers de-dup by id).
    """

    def __init__(self, r: redis.Redis, conversation_id: str):
        self._r = r
        self._conversation_id = conversation_id
        self._channel = events_channel(conversation_id)
        self._pubsub = None

    async def __aenter__(self) -> "MessageSubscription":
        self._pubsub = self._r.pubsub()
        await self._pubsub.subscribe(self._channel)
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        if self._pubsub is not None:
            await self._pubsub.unsubscribe(self._channel)
            await self._pubsub.aclose()
            self._pubsub = None

    async def __aiter__(self) -> AsyncIterator[MessageOut]:
        async for event in self._pubsub.listen():
            if event.get("type") != "message":
                continue
            try:
                yield message_from_json(event["data"])
            except (KeyError, ValueError):
                log.warning("dropping malformed event on %s", self._conversation_id)
