"""API route aggregation.

All routers registered here get mounted in main.py. Health is open;
notification routes require a Bearer JWT.
"""

from fastapi import APIRouter, Depends

from huddle.api.health import router as health_router
from huddle.api.notifications import router as notifications_router
from huddle.auth.dependencies import get_current_user

_auth = [Depends(get_current_user)]

api_router = APIRouter(prefix="/api/v1")

api_router.include_router(health_router, tags=["health"])
api_router.include_router(
    notifications_router, tags=["notifications"], dependencies=_auth
)
