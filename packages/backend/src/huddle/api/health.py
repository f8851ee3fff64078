"""Health check endpoint.

Learn: reports the database and the realtime layer separately. A missing
broker is not unhealthy. It means this instance is running in
single-instance mode, which is a valid deployment.
"""

from fastapi import APIRouter, Request
from sqlalchemy import text

from huddle import __version__
from huddle.db.engine import engine

router = APIRouter()


@router.get("/health")
async def health_check(request: Request):
    """Check server health and dependency connectivity."""
    checks = {"server": "ok", "version": __version__}

    try:
        async with engine.connect() as conn:
            await conn.execute(text("SELECT 1"))
        checks["database"] = "ok"
    except Exception as e:
        checks["database"] = f"error: {e}"

    service = getattr(request.app.state, "realtime", None)
    realtime = {"mode": "unavailable", "connections": 0, "rooms": 0}
    if service is not None:
        realtime = {
            "mode": service.bridge.mode,
            "connections": len(service.registry),
            "rooms": service.registry.room_count(),
        }

    status = "healthy" if checks["database"] == "ok" else "degraded"
    return {"status": status, **checks, "realtime": realtime}
