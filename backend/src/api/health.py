"""
Health check endpoint for the backend service.

GET /health returns {"status": "ok"} with HTTP 200 plus a snapshot of the
broker subscriber (state, client id, message counters). No authentication is
required -- this is intended for Docker HEALTHCHECK and internal monitoring
only. The process stays healthy while the broker is unreachable; callers
read ``subscriber.state`` to tell the two apart.

CHANGELOG:
- 2026-10-18: Initial creation (STORY-110)

TODO:
- None
"""

from fastapi import APIRouter

from backend.src.api.deps import SubscriberDep

router = APIRouter(tags=["health"])


@router.get("/health")
async def health(subscriber: SubscriberDep) -> dict[str, object]:
    """Return a simple health status.

    Returns:
        dict: ``{"status": "ok", "subscriber": {...}}``; ``subscriber`` is
        None when the lifespan has not created one.
    """
    return {
        "status": "ok",
        "subscriber": subscriber.health() if subscriber is not None else None,
    }
