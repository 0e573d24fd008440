import time

import pytest
from fastapi.testclient import TestClient
from starlette.websockets import WebSocketDisconnect

from app.api.v1.endpoints import conversations as conv_endpoints
from app.core.db import get_db
from app.core.redis import get_redis
from app.main import app
from app.services import conversations as conv_svc
from app.services.auth import Identity

from tests.fakes import FakeRedis

ALICE = conv_svc.Participant(user_id="usr_alice", name="Alice")
BOB = conv_svc.Participant(user_id="usr_bob", name="Bob")
EVE = conv_svc.Participant(user_id="usr_eve", name="Eve")


def _identity(p: conv_svc.Participant) -> Identity:
    return Identity(
        user_id=p.user_id,
        session_id=f"ses_{p.name.lower()}",
        email=f"{p.name.lower()}@test.com",
        display_name=p.name,
        role="adopter",
        location="Austin, TX",
        phone=None,
    )


TOKENS = {"tok-alice": _identity(ALICE), "tok-bob": _identity(BOB), "tok-eve": _identity(EVE)}


@pytest.fixture
def stream_env(monkeypatch):
    """App with fake Redis and token lookup; the stream route needs nothing else."""
    fake = FakeRedis()

    async def _no_db():
        yield None

    async def _resolve(db, token):
        return TOKENS.get(token)

    monkeypatch.setattr(conv_endpoints, "resolve_identity", _resolve)
    app.dependency_overrides[get_db] = _no_db
    app.dependency_overrides[get_redis] = lambda: fake

    with TestClient(app) as tc:
        conv = tc.portal.call(_open_with_history, fake)
        yield tc, fake, conv

    app.dependency_overrides.clear()


async def _open_with_history(fake: FakeRedis) -> conv_svc.Conversation:
    conv = await conv_svc.ensure_conversation(fake, a=ALICE, b=BOB, listing_id="pet_1", listing_name="Rex")
    await conv_svc.send_message(fake, conversation=conv, sender=ALICE, text="Is Rex still available?")
    return conv


async def _send(fake: FakeRedis, conversation_id: str, sender: conv_svc.Participant, text: str):
    conv = await conv_svc.get_conversation(fake, conversation_id)
    return await conv_svc.send_message(fake, conversation=conv, sender=sender, text=text)


async def _republish_history(fake: FakeRedis, conversation_id: str) -> None:
    for raw in fake.lists[conv_svc.messages_key(conversation_id)]:
        await fake.publish(conv_svc.events_channel(conversation_id), raw)


def _wait_until(predicate, timeout: float = 2.0) -> bool:
    deadline = time.monotonic() + timeout
    while time.monotonic() < deadline:
        if predicate():
            return True
        time.sleep(0.01)
    return predicate()


def test_stream_replays_history_then_delivers_live_once(stream_env):
    tc, fake, conv = stream_env
    channel = conv_svc.events_channel(conv.id)

    with tc.websocket_connect(f"/v1/conversations/{conv.id}/stream?token=tok-bob") as ws:
        history = ws.receive_json()
        assert history["text"] == "Is Rex still available?"
        assert history["sender_id"] == ALICE.user_id

        # a message already replayed from history is not sent twice
        tc.portal.call(_republish_history, fake, conv.id)
        live = tc.portal.call(_send, fake, conv.id, ALICE, "He is! Want to visit Saturday?")

        got = ws.receive_json()
        assert got["id"] == live.id
        assert got["text"] == "He is! Want to visit Saturday?"
        assert got["id"] != history["id"]

    # hanging up releases the subscription without waiting for another publish
    assert _wait_until(lambda: not fake._subscribers.get(channel))


def test_stream_rejects_unknown_token(stream_env):
    tc, _, conv = stream_env

    with pytest.raises(WebSocketDisconnect) as exc:
        with tc.websocket_connect(f"/v1/conversations/{conv.id}/stream?token=nope"):
            pass
    assert exc.value.code == 1008


def test_stream_rejects_non_participant(stream_env):
    tc, _, conv = stream_env

    with pytest.raises(WebSocketDisconnect) as exc:
        with tc.websocket_connect(f"/v1/conversations/{conv.id}/stream?token=tok-eve"):
            pass
    assert exc.value.code == 1008


def test_stream_closes_when_realtime_store_is_down(stream_env):
    tc, fake, conv = stream_env
    fake.down = True

    with pytest.raises(WebSocketDisconnect) as exc:
        with tc.websocket_connect(f"/v1/conversations/{conv.id}/stream?token=tok-alice"):
            pass
    assert exc.value.code == 1011
