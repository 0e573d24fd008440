"""
Replay protection for "add pet" submissions.

A client that resends the same form with the same Idempotency-Key (double tap,
dropped response) gets the first stored listing back instead of a second pet
and a second image upload.
"""
import hashlib
import json
import logging

from fastapi import Header, HTTPException
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.models.idempotency import IdempotencyKey


log = logging.getLogger(__name__)

MAX_KEY_CHARS = 200


def submission_fingerprint(path: str, form: dict, image: bytes) -> str:
    # Same key + different form or image must be detectable as a conflict
    raw = json.dumps(
        {"path": path, "form": form, "image_sha256": hashlib.sha256(image).hexdigest()},
        sort_keys=True,
        separators=(",", ":"),
    ).encode("utf-8")
    return "sha256:" + hashlib.sha256(raw).hexdigest()


async def optional_idempotency_key(idempotency_key: str | None = Header(default=None)) -> str | None:
    if idempotency_key is not None and len(idempotency_key) > MAX_KEY_CHARS:
        raise HTTPException(status_code=400, detail="Idempotency-Key too long")
    return idempotency_key or None


async def _find(db: AsyncSession, user_id: str, key: str) -> IdempotencyKey | None:
    stmt = select(IdempotencyKey).where(IdempotencyKey.user_id == user_id, IdempotencyKey.key == key)
    return (await db.execute(stmt)).scalar_one_or_none()


async def replay_or_reserve(
    db: AsyncSession,
    *,
    user_id: str,
    key: str,
    fingerprint: str,
) -> dict | None:
    """
    Returns the stored response when this submission already completed.

    Otherwise reserves the key (flushed, not committed) and returns None; the
    reservation disappears with the transaction if the submission fails.
    """
    existing = await _find(db, user_id, key)
    if existing is not None:
        if existing.request_hash != fingerprint:
            raise HTTPException(status_code=409, detail="Idempotency-Key reuse with a different submission")
        if not existing.response:
            raise HTTPException(status_code=409, detail="A submission with this Idempotency-Key is still in progress")
        log.info("replaying stored response for idempotency key %s (user %s)", key, user_id)
        return existing.response

    db.add(IdempotencyKey(user_id=user_id, key=key, request_hash=fingerprint, response={}))
    # unique (user_id, key) is enforced here, inside the caller's transaction
    await db.flush()
    return None


async def remember_response(db: AsyncSession, *, user_id: str, key: str, response: dict) -> None:
    row = await _find(db, user_id, key)
    if row is None:
        raise HTTPException(status_code=500, detail="Idempotency reservation vanished")
    row.response = response
    await db.flush()
