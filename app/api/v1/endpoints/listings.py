import logging

from fastapi import APIRouter, Depends, File, Form, HTTPException, Query, Request, UploadFile
from pydantic import ValidationError
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.config import settings
from app.core.db import get_db
from app.schemas.listing import ListingCreate, ListingOut, ListingPage
from app.services.auth import Identity, get_identity, require_owner
from app.services.idempotency import (
    optional_idempotency_key,
    remember_response,
    replay_or_reserve,
    submission_fingerprint,
)
from app.services.listing_filters import ListingFilter
from app.services.listings import (
    available_locations,
    browse_listings,
    create_listing_record,
    get_listing_or_404,
    withdraw_listing,
)
from app.services.media import MediaUploader, MediaUploadError, get_media_uploader

log = logging.getLogger(__name__)
router = APIRouter()


@router.post("/listings", response_model=ListingOut, status_code=201)
async def create_listing(
    request: Request,
    name: str = Form(...),
    species: str = Form(...),
    breed: str = Form(...),
    age: int = Form(...),
    gender: str = Form(...),
    size: str = Form(...),
    description: str = Form(...),
    location: str = Form(...),
    image: UploadFile | None = File(default=None),
    identity: Identity = Depends(require_owner),
    idempotency_key: str | None = Depends(optional_idempotency_key),
    db: AsyncSession = Depends(get_db),
    uploader: MediaUploader = Depends(get_media_uploader),
) -> ListingOut:
    try:
        payload = ListingCreate(
            name=name,
            species=species,
            breed=breed,
            age=age,
            gender=gender,
            size=size,
            description=description,
            location=location,
        )
    except ValidationError as e:
        raise HTTPException(status_code=422, detail=e.errors(include_url=False))

    if image is None or not image.filename:
        raise HTTPException(status_code=400, detail="Please select an image for your pet")
    if image.content_type and not image.content_type.startswith("image/"):
        raise HTTPException(status_code=400, detail="The selected file is not an image")

    content = await image.read()
    if not content:
        raise HTTPException(status_code=400, detail="The selected image is empty")

    if idempotency_key:
        try:
            stored = await replay_or_reserve(
                db,
                user_id=identity.user_id,
                key=idempotency_key,
                fingerprint=submission_fingerprint(str(request.url.path), payload.model_dump(), content),
            )
        except SQLAlchemyError:
            await db.rollback()
            log.exception("idempotency reservation failed for user %s", identity.user_id)
            raise HTTPException(status_code=503, detail="Failed to add pet. Please try again.")
        if stored:
            # Safe retry: same pet, no second upload
            return ListingOut(**stored)

    try:
        uploaded = await uploader.upload_image(
            filename=image.filename,
            content=content,
            content_type=image.content_type or "application/octet-stream",
        )
    except MediaUploadError:
        await db.rollback()
        log.exception("image upload failed for user %s", identity.user_id)
        raise HTTPException(status_code=502, detail="Failed to upload image. Please try again.")

    try:
        listing = await create_listing_record(
            db=db,
            identity=identity,
            payload=payload,
            image_url=uploaded.url,
        )
        resp = ListingOut.model_validate(listing)

        if idempotency_key:
            await remember_response(
                db,
                user_id=identity.user_id,
                key=idempotency_key,
                response=resp.model_dump(mode="json"),
            )

        await db.commit()
    except SQLAlchemyError:
        await db.rollback()
        log.exception("saving listing failed for user %s", identity.user_id)
        raise HTTPException(status_code=503, detail="Failed to add pet. Please try again.")

    log.info("listing created: %s by %s", listing.id, identity.user_id)
    return resp


@router.get("/listings", response_model=ListingPage)
async def browse(
    search: str | None = Query(default=None, max_length=200),
    species: str | None = Query(default=None),
    size: str | None = Query(default=None),
    location: str | None = Query(default=None),
    limit: int | None = Query(default=None, ge=1, le=200),
    db: AsyncSession = Depends(get_db),
) -> ListingPage:
    flt = ListingFilter.build(search=search, species=species, size=size, location=location)
    try:
        result = await browse_listings(db, flt, limit=limit)
    except SQLAlchemyError:
        log.exception("browse failed, fallback scan included")
        raise HTTPException(status_code=503, detail="Could not load pets right now. Please try again.")

    return ListingPage(
        total=result.total,
        items=[ListingOut.model_validate(r) for r in result.items],
        degraded=result.degraded,
    )


@router.get("/listings/featured", response_model=list[ListingOut])
async def featured(db: AsyncSession = Depends(get_db)) -> list[ListingOut]:
    try:
        result = await browse_listings(db, ListingFilter(), limit=settings.featured_listing_count)
    except SQLAlchemyError:
        log.exception("featured listings failed")
        raise HTTPException(status_code=503, detail="Could not load featured pets right now.")
    return [ListingOut.model_validate(r) for r in result.items]


@router.get("/listings/locations", response_model=list[str])
async def locations(db: AsyncSession = Depends(get_db)) -> list[str]:
    try:
        return await available_locations(db)
    except SQLAlchemyError:
        log.exception("locations query failed")
        raise HTTPException(status_code=503, detail="Could not load locations right now.")


@router.get("/listings/{listing_id}", response_model=ListingOut)
async def get_listing(listing_id: str, db: AsyncSession = Depends(get_db)) -> ListingOut:
    try:
        listing = await get_listing_or_404(db, listing_id)
    except SQLAlchemyError:
        log.exception("loading listing %s failed", listing_id)
        raise HTTPException(status_code=503, detail="Could not load this pet right now.")
    return ListingOut.model_validate(listing)


@router.delete("/listings/{listing_id}", response_model=ListingOut)
async def delete_listing(
    listing_id: str,
    identity: Identity = Depends(get_identity),
    db: AsyncSession = Depends(get_db),
) -> ListingOut:
    # "Delete" only flips availability; the record stays for request history.
    try:
        listing = await withdraw_listing(db, identity=identity, listing_id=listing_id)
        resp = ListingOut.model_validate(listing)
        await db.commit()
    except SQLAlchemyError:
        await db.rollback()
        log.exception("withdrawing listing %s failed", listing_id)
        raise HTTPException(status_code=503, detail="Failed to remove pet. Please try again.")
    return resp
