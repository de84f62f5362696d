from fastapi import APIRouter

from services.session_service.api.v1.endpoints import analytics, exports, sessions

api_router = APIRouter()

# Include all endpoint routers
api_router.include_router(sessions.router, tags=["Sessions"])
api_router.include_router(
    analytics.router, prefix="/devices/{device_id}/analytics", tags=["Analytics"]
)
api_router.include_router(exports.router, tags=["Exports"])
