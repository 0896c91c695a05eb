"""
FastAPI dependency injection providers.

Provides database sessions and the running subscriber for use with
FastAPI's Depends() mechanism.

CHANGELOG:
- 2026-10-18: Initial creation (STORY-110)
"""

from typing import Annotated

from fastapi import Depends, Request
from sqlalchemy.ext.asyncio import AsyncSession

from backend.src.db.session import get_async_session
from backend.src.subscriber import Subscriber

# Type alias for injecting an async DB session via FastAPI Depends().
# Usage in route handlers:
#   async def my_route(db: DbSession):
#       result = await db.execute(...)
DbSession = Annotated[AsyncSession, Depends(get_async_session)]


def get_subscriber(request: Request) -> Subscriber | None:
    """Return the subscriber owned by the application lifespan, if any."""
    return getattr(request.app.state, "subscriber", None)


SubscriberDep = Annotated[Subscriber | None, Depends(get_subscriber)]
