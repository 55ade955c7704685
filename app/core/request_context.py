import uuid
from contextvars import ContextVar
from typing import Optional, Dict
from fastapi import Request
from app.core.config import settings

HDR_REQUEST_ID = "X-Request-Id"

TRUTHY = {"1", "true", "yes", "on"}

# Request id of the request being served, "-" outside a request
request_id_var: ContextVar[str] = ContextVar("request_id", default="-")

def get_request_context(request: Request) -> Dict[str, Optional[str]]:
    """
    Extracts endpoint, client IP, user-agent, request_id and actor headers from the FastAPI Request.
    - a missing request id is generated so log lines of one request can be joined
    - actor headers are set by the authenticating gateway and fall back to None
    """
    ip_address = request.client.host if request.client else None
    user_agent = request.headers.get("user-agent")
    endpoint = f"{request.method} {request.url.path}"
    request_id = request.headers.get(HDR_REQUEST_ID) or uuid.uuid4().hex
    actor_id = request.headers.get(settings.ACTOR_ID_HEADER)
    actor_elevated = request.headers.get(settings.ACTOR_ELEVATED_HEADER)
    return {
        "ip_address": ip_address,
        "user_agent": user_agent,
        "endpoint": endpoint,
        "request_id": request_id,
        "actor_id": actor_id,
        "actor_elevated": actor_elevated,
    }

def parse_flag(value: Optional[str]) -> bool:
    return (value or "").strip().lower() in TRUTHY
