"""API v1 router."""

from fastapi import APIRouter

from .routes import admin, events, status

# Paths the availability gate needs to know about
STATUS_PATH = "/v1/status"
PUBLISH_PATH = "/v1/events/publish"
SUBSCRIBE_PATH = "/v1/events/subscribe"
STREAMING_PATHS = (PUBLISH_PATH, SUBSCRIBE_PATH)

router = APIRouter(prefix="/v1")

router.include_router(status.router)
router.include_router(events.router, prefix="/events")
router.include_router(admin.router, prefix="/admin")
