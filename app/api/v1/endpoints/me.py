import logging

from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.db import get_db
from app.schemas.listing import ListingOut
from app.schemas.me import MeOut
from app.services.auth import Identity, get_identity
from app.services.identities import profile_of_identity
from app.services.listings import list_owner_listings

log = logging.getLogger(__name__)
router = APIRouter()

@router.get("/me", response_model=MeOut)
async def me(identity: Identity = Depends(get_identity)) -> MeOut:
    return profile_of_identity(identity)


@router.get("/me/listings", response_model=list[ListingOut])
async def my_listings(
    identity: Identity = Depends(get_identity),
    db: AsyncSession = Depends(get_db),
) -> list[ListingOut]:
    try:
        rows = await list_owner_listings(db, identity.user_id)
    except SQLAlchemyError:
        log.exception("owner listings query failed for %s", identity.user_id)
        raise HTTPException(status_code=503, detail="Could not load your pets right now. Please try again.")
    return [ListingOut.model_validate(r) for r in rows]
