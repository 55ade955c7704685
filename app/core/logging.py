import logging
from typing import Any, Optional

audit_logger = logging.getLogger("audit")

def log_user_action(actor_id: Optional[int], action: str, entity: str, entity_id: Any = None, **details: Any):
    """Log actor mutations for audit trail"""
    extra = ""
    if details:
        extra = " " + " ".join(f"{key}={value}" for key, value in sorted(details.items()))
    audit_logger.info(f"Actor {actor_id} performed {action} on {entity} {entity_id or ''}{extra}".rstrip())
