import logging
from dataclasses import dataclass

from fastapi import Depends, HTTPException, Security
from fastapi.security.api_key import APIKeyHeader
from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.db import get_db
from app.core.security import hash_session_token
from app.models.session_token import SessionToken
from app.models.user import User

log = logging.getLogger(__name__)

session_token_header = APIKeyHeader(name="X-Session-Token", auto_error=False)


@dataclass(frozen=True)
class Identity:
    user_id: str
    session_id: str
    email: str
    display_name: str
    role: str  # "owner" | "adopter"
    location: str
    phone: str | None


async def resolve_identity(db: AsyncSession, token: str) -> Identity | None:
    hashed = hash_session_token(token)
    stmt = (
        select(SessionToken, User)
        .join(User, User.id == SessionToken.user_id)
        .where(
            SessionToken.token_hash == hashed,
            SessionToken.is_active.is_(True),
            User.is_active.is_(True),
        )
    )
    row = (await db.execute(stmt)).one_or_none()
    if row is None:
        return None

    session, user = row
    return Identity(
        user_id=user.id,
        session_id=session.id,
        email=user.email,
        display_name=user.display_name,
        role=user.role,
        location=user.location,
        phone=user.phone,
    )


async def get_identity(
    token: str | None = Security(session_token_header),
    db: AsyncSession = Depends(get_db),
) -> Identity:
    if not token:
        raise HTTPException(status_code=401, detail="Missing X-Session-Token")

    try:
        identity = await resolve_identity(db, token)
    except SQLAlchemyError:
        log.exception("session lookup failed")
        raise HTTPException(status_code=503, detail="Could not verify your session right now. Please try again.")
    if identity is None:
        raise HTTPException(status_code=401, detail="Invalid or expired session")
    return identity


def require_owner(identity: Identity = Depends(get_identity)) -> Identity:
    if identity.role != "owner":
        raise HTTPException(status_code=403, detail="Owner role required")
    return identity
