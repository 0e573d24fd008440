from __future__ import annotations

import logging
from dataclasses import dataclass

from fastapi import HTTPException
from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.config import settings
from app.core.telemetry import tracer
from app.models.listing import Listing
from app.schemas.listing import ListingCreate
from app.services.audit import audit
from app.services.auth import Identity
from app.services.listing_filters import ListingFilter, filter_listings


log = logging.getLogger(__name__)


@dataclass(frozen=True)
class BrowseResult:
    total: int
    items: list[Listing]
    # True when the server-side query failed and the fallback scan served the page
    degraded: bool = False


async def create_listing_record(
    *,
    db: AsyncSession,
    identity: Identity,
    payload: ListingCreate,
    image_url: str,
) -> Listing:
    """
    Insert one available Listing owned by the caller.
    The image must already be uploaded; owner name/contact are copied from the profile.
    """
    listing = Listing(
        owner_id=identity.user_id,
        owner_name=identity.display_name,
        owner_contact=identity.email,
        name=payload.name.strip(),
        species=payload.species,
        breed=payload.breed.strip(),
        age=payload.age,
        gender=payload.gender,
        size=payload.size,
        description=payload.description.strip(),
        location=payload.location.strip(),
        image_url=image_url,
        is_available=True,
        created_by=identity.user_id,
        updated_by=identity.user_id,
    )
    db.add(listing)
    await db.flush()
    return listing


async def _query_available(
    db: AsyncSession,
    *,
    species: str | None,
    size: str | None,
    limit: int | None,
) -> list[Listing]:
    stmt = select(Listing).where(Listing.is_available.is_(True))
    if species:
        stmt = stmt.where(Listing.species == species)
    if size:
        stmt = stmt.where(Listing.size == size)
    stmt = stmt.order_by(Listing.created_at.desc())
    if limit:
        stmt = stmt.limit(limit)
    return list((await db.execute(stmt)).scalars().all())


async def _scan_recent(db: AsyncSession, *, scan_limit: int) -> list[Listing]:
    # No filter: the newest rows only, whatever their state.
    stmt = select(Listing).order_by(Listing.created_at.desc()).limit(scan_limit)
    return list((await db.execute(stmt)).scalars().all())


async def browse_listings(
    db: AsyncSession,
    flt: ListingFilter,
    *,
    limit: int | None = None,
) -> BrowseResult:
    """
    The one path for "available listings".

    Equality filters (availability, species, size) run server-side; search and
    location are applied in memory. If the server-side query fails, an
    unfiltered scan is filtered and sorted client-side instead.
    """
    degraded = False
    with tracer.start_as_current_span("listings.browse") as span:
        try:
            rows = await _query_available(db, species=flt.species, size=flt.size, limit=None)
        except SQLAlchemyError:
            log.warning("available-listings query failed; falling back to client-side filtering", exc_info=True)
            await db.rollback()
            degraded = True
            rows = await _scan_recent(db, scan_limit=settings.listing_fallback_scan_limit)
            rows = [
                r for r in rows
                if r.is_available
                and (not flt.species or r.species == flt.species)
                and (not flt.size or r.size == flt.size)
            ]
            rows.sort(key=lambda r: r.created_at, reverse=True)

        total = len(rows)
        items = filter_listings(rows, flt)
        if limit:
            items = items[:limit]
        span.set_attribute("listings.degraded", degraded)
        span.set_attribute("listings.total", total)
        span.set_attribute("listings.returned", len(items))
    return BrowseResult(total=total, items=items, degraded=degraded)


async def available_locations(db: AsyncSession) -> list[str]:
    stmt = (
        select(Listing.location)
        .where(Listing.is_available.is_(True))
        .distinct()
        .order_by(Listing.location.asc())
    )
    return list((await db.execute(stmt)).scalars().all())


async def get_listing_or_404(db: AsyncSession, listing_id: str) -> Listing:
    listing = (await db.execute(select(Listing).where(Listing.id == listing_id))).scalar_one_or_none()
    if not listing:
        raise HTTPException(status_code=404, detail="Listing not found")
    return listing


async def list_owner_listings(db: AsyncSession, owner_id: str) -> list[Listing]:
    stmt = (
        select(Listing)
        .where(Listing.owner_id == owner_id)
        .order_by(Listing.created_at.desc())
    )
    return list((await db.execute(stmt)).scalars().all())


async def withdraw_listing(db: AsyncSession, *, identity: Identity, listing_id: str) -> Listing:
    listing = await get_listing_or_404(db, listing_id)
    if listing.owner_id != identity.user_id:
        raise HTTPException(status_code=403, detail="Only the owner can withdraw this listing")
    if not listing.is_available:
        raise HTTPException(status_code=409, detail="Listing is already withdrawn")

    listing.is_available = False
    listing.updated_by = identity.user_id

    await audit(
        db,
        actor_user_id=identity.user_id,
        action="listing.withdrawn",
        target_type="listing",
        target_id=listing.id,
    )
    await db.flush()
    return listing
