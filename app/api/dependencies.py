from fastapi import HTTPException, status, Request
from app.auth.actor import Actor
from app.core.config import settings
from app.core.request_context import parse_flag
from app.services.auth.authorization_cache import AuthorizationCache, get_authorization_cache
import logging

logger = logging.getLogger(__name__)

async def get_actor(request: Request) -> Actor:
    """
    Actor resolved by the upstream identity layer

    The gateway forwards the user id and whether the user holds an elevated
    role; this service never inspects role names itself.
    """
    raw_id = request.headers.get(settings.ACTOR_ID_HEADER)
    if not raw_id:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Missing actor",
        )

    try:
        actor_id = int(raw_id)
    except ValueError:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid actor",
        )

    actor = Actor(
        id=actor_id,
        is_elevated=parse_flag(request.headers.get(settings.ACTOR_ELEVATED_HEADER)),
    )
    request.state.actor = actor
    return actor

def get_cache() -> AuthorizationCache:
    return get_authorization_cache()
