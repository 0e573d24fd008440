import pytest
from sqlalchemy import func, select

from app.core.config import settings
from app.models.session_token import SessionToken
from app.models.user import User


SIGN_UP = {
    "email": "Nora@Example.com",
    "password": "hunter22",
    "name": "Nora Keeper",
    "role": "owner",
    "location": "Portland, OR",
    "phone": "555-0100",
}


@pytest.mark.asyncio
async def test_sign_up_returns_session_and_profile(client, db_session):
    r = await client.post("/v1/auth/sign-up", json=SIGN_UP)
    assert r.status_code == 201, r.text
    body = r.json()

    assert body["session_token"].startswith("st_")
    assert body["profile"]["email"] == "nora@example.com"
    assert body["profile"]["role"] == "owner"

    me = await client.get("/v1/me", headers={"X-Session-Token": body["session_token"]})
    assert me.status_code == 200
    assert me.json()["user_id"] == body["profile"]["user_id"]

    # only the hash of the token is stored
    stored = (await db_session.execute(select(SessionToken.token_hash))).scalars().all()
    assert body["session_token"] not in stored


@pytest.mark.asyncio
async def test_sign_up_duplicate_email_conflicts(client, db_session):
    assert (await client.post("/v1/auth/sign-up", json=SIGN_UP)).status_code == 201

    r = await client.post("/v1/auth/sign-up", json={**SIGN_UP, "email": "nora@example.com"})
    assert r.status_code == 409

    users = (await db_session.execute(select(func.count()).select_from(User))).scalar_one()
    assert users == 1


@pytest.mark.asyncio
async def test_sign_up_rejects_unknown_role(client):
    r = await client.post("/v1/auth/sign-up", json={**SIGN_UP, "role": "admin"})
    assert r.status_code == 422


@pytest.mark.asyncio
async def test_sign_in_and_sign_out(client, owner):
    bad = await client.post("/v1/auth/sign-in", json={"email": owner["email"], "password": "wrong-pass"})
    assert bad.status_code == 401

    r = await client.post("/v1/auth/sign-in", json={"email": owner["email"], "password": "secret123"})
    assert r.status_code == 200, r.text
    headers = {"X-Session-Token": r.json()["session_token"]}

    out = await client.post("/v1/auth/sign-out", headers=headers)
    assert out.status_code == 200
    assert out.json() == {"status": "signed_out"}

    assert (await client.get("/v1/me", headers=headers)).status_code == 401
    # the seeded session is untouched
    assert (await client.get("/v1/me", headers=owner["headers"])).status_code == 200


@pytest.mark.asyncio
async def test_missing_or_bogus_token_is_unauthorized(client):
    assert (await client.get("/v1/me")).status_code == 401
    assert (await client.get("/v1/me", headers={"X-Session-Token": "st_nope_nope"})).status_code == 401


@pytest.mark.asyncio
async def test_sign_in_is_rate_limited_per_email(client, owner, monkeypatch):
    monkeypatch.setattr(settings, "signin_rate_limit", 2)
    creds = {"email": owner["email"], "password": "wrong-pass"}

    assert (await client.post("/v1/auth/sign-in", json=creds)).status_code == 401
    assert (await client.post("/v1/auth/sign-in", json=creds)).status_code == 401

    r = await client.post("/v1/auth/sign-in", json=creds)
    assert r.status_code == 429
    assert int(r.headers["Retry-After"]) > 0


@pytest.mark.asyncio
async def test_sign_in_works_when_limiter_is_down(client, owner, fake_redis):
    fake_redis.down = True

    r = await client.post("/v1/auth/sign-in", json={"email": owner["email"], "password": "secret123"})
    assert r.status_code == 200, r.text


@pytest.mark.asyncio
async def test_my_listings_only_shows_own(client, owner, other_adopter, make_listing):
    mine = await make_listing(name="Biscuit")
    await make_listing(seller=other_adopter, name="Not Mine")

    r = await client.get("/v1/me/listings", headers=owner["headers"])
    assert r.status_code == 200
    assert [x["id"] for x in r.json()] == [mine.id]
