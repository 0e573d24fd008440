from __future__ import annotations

import logging

from fastapi import HTTPException
from sqlalchemy import select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.security import generate_session_token, hash_password, verify_password
from app.models.base import utcnow
from app.models.session_token import SessionToken
from app.models.user import User
from app.schemas.me import MeOut, SessionOut, SignInIn, SignUpIn
from app.services.auth import Identity


log = logging.getLogger(__name__)


def profile_of(user: User) -> MeOut:
    return MeOut(
        user_id=user.id,
        email=user.email,
        display_name=user.display_name,
        role=user.role,
        location=user.location,
        phone=user.phone,
    )


def profile_of_identity(identity: Identity) -> MeOut:
    return MeOut(
        user_id=identity.user_id,
        email=identity.email,
        display_name=identity.display_name,
        role=identity.role,
        location=identity.location,
        phone=identity.phone,
    )


async def _issue_session(db: AsyncSession, user: User) -> str:
    token = generate_session_token()
    db.add(
        SessionToken(
            user_id=user.id,
            token_prefix=token.prefix,
            token_hash=token.hashed,
            is_active=True,
        )
    )
    await db.flush()
    return token.plain


async def sign_up(db: AsyncSession, payload: SignUpIn) -> SessionOut:
    email = payload.email.lower()
    existing = (await db.execute(select(User.id).where(User.email == email))).scalar_one_or_none()
    if existing:
        raise HTTPException(status_code=409, detail="An account with this email already exists")

    user = User(
        email=email,
        password_hash=hash_password(payload.password),
        display_name=payload.name.strip(),
        role=payload.role,
        location=payload.location.strip(),
        phone=(payload.phone or "").strip() or None,
        is_active=True,
    )
    user.created_by = user.updated_by = "self"

    try:
        db.add(user)
        await db.flush()
        plain = await _issue_session(db, user)
        await db.commit()
    except IntegrityError:
        # lost a race against a concurrent sign-up with the same email
        await db.rollback()
        log.info("sign-up conflict for %s", email)
        raise HTTPException(status_code=409, detail="An account with this email already exists")

    log.info("user signed up: %s (%s)", user.id, user.role)
    return SessionOut(session_token=plain, profile=profile_of(user))


async def sign_in(db: AsyncSession, payload: SignInIn) -> SessionOut:
    email = payload.email.lower()
    user = (
        await db.execute(select(User).where(User.email == email, User.is_active.is_(True)))
    ).scalar_one_or_none()

    if not user or not verify_password(payload.password, user.password_hash):
        raise HTTPException(status_code=401, detail="Invalid email or password")

    plain = await _issue_session(db, user)
    await db.commit()
    return SessionOut(session_token=plain, profile=profile_of(user))


async def sign_out(db: AsyncSession, identity: Identity) -> None:
    await db.execute(
        update(SessionToken)
        .where(SessionToken.id == identity.session_id, SessionToken.is_active.is_(True))
        .values(is_active=False, revoked_at=utcnow())
    )
    await db.commit()


async def get_user_or_404(db: AsyncSession, user_id: str) -> User:
    user = (
        await db.execute(select(User).where(User.id == user_id, User.is_active.is_(True)))
    ).scalar_one_or_none()
    if not user:
        raise HTTPException(status_code=404, detail="User not found")
    return user
