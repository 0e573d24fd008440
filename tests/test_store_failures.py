import pytest
from sqlalchemy.exc import OperationalError

from app.api.v1.endpoints import me as me_endpoints
from app.services import adoption_requests as requests_svc
from app.services import auth as auth_svc


def _boom(*args, **kwargs):
    raise OperationalError("COMMIT", {}, Exception("connection reset"))


async def _failing(*args, **kwargs):
    _boom()


@pytest.mark.asyncio
async def test_failed_approval_commit_is_503_and_nothing_changes(
    client, db_session, owner, adopter, make_listing, fake_redis, monkeypatch
):
    listing = await make_listing()
    req = (
        await client.post(f"/v1/listings/{listing.id}/requests", json={}, headers=adopter["headers"])
    ).json()

    monkeypatch.setattr(db_session, "commit", _failing)
    r = await client.post(f"/v1/requests/{req['id']}/approve", headers=owner["headers"])
    assert r.status_code == 503
    assert r.json()["detail"] == "Failed to save your decision. Please try again."

    reject = await client.post(f"/v1/requests/{req['id']}/reject", headers=owner["headers"])
    assert reject.status_code == 503
    monkeypatch.undo()

    outgoing = await client.get("/v1/requests/outgoing", headers=adopter["headers"])
    assert outgoing.json()[0]["status"] == "pending"
    assert fake_redis.keys_matching("conv:*") == []


@pytest.mark.asyncio
async def test_failed_withdraw_commit_is_503(client, db_session, owner, make_listing, monkeypatch):
    listing_id = (await make_listing()).id

    monkeypatch.setattr(db_session, "commit", _failing)
    r = await client.delete(f"/v1/listings/{listing_id}", headers=owner["headers"])
    assert r.status_code == 503
    monkeypatch.undo()

    fetched = await client.get(f"/v1/listings/{listing_id}")
    assert fetched.json()["is_available"] is True


@pytest.mark.asyncio
async def test_failed_sign_in_and_sign_out_commits_are_503(client, db_session, owner, monkeypatch):
    monkeypatch.setattr(db_session, "commit", _failing)

    sign_in = await client.post("/v1/auth/sign-in", json={"email": owner["email"], "password": "secret123"})
    assert sign_in.status_code == 503

    sign_out = await client.post("/v1/auth/sign-out", headers=owner["headers"])
    assert sign_out.status_code == 503
    monkeypatch.undo()

    # the session was not revoked
    assert (await client.get("/v1/me", headers=owner["headers"])).status_code == 200


@pytest.mark.asyncio
async def test_failed_reads_are_503(client, owner, monkeypatch):
    monkeypatch.setattr(requests_svc, "list_incoming", _failing)
    monkeypatch.setattr(requests_svc, "list_outgoing", _failing)
    monkeypatch.setattr(requests_svc, "list_contacts", _failing)
    monkeypatch.setattr(me_endpoints, "list_owner_listings", _failing)

    for path in ("/v1/requests/incoming", "/v1/requests/outgoing", "/v1/requests/contacts", "/v1/me/listings"):
        r = await client.get(path, headers=owner["headers"])
        assert r.status_code == 503, path


@pytest.mark.asyncio
async def test_failed_session_lookup_is_503(client, owner, monkeypatch):
    monkeypatch.setattr(auth_svc, "resolve_identity", _failing)

    r = await client.get("/v1/me", headers=owner["headers"])
    assert r.status_code == 503
