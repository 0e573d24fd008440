from fastapi import APIRouter

from app.api.v1.endpoints.health import router as health_router
from app.api.v1.endpoints.auth import router as auth_router
from app.api.v1.endpoints.me import router as me_router
from app.api.v1.endpoints.listings import router as listings_router
from app.api.v1.endpoints.adoption_requests import router as adoption_requests_router
from app.api.v1.endpoints.conversations import router as conversations_router


router = APIRouter(prefix="/v1")
router.include_router(health_router, tags=["health"])
router.include_router(auth_router, tags=["auth"])
router.include_router(me_router, tags=["me"])
router.include_router(listings_router, tags=["listings"])
router.include_router(adoption_requests_router, tags=["adoption-requests"])
router.include_router(conversations_router, tags=["conversations"])
