import logging
from typing import Any, Dict, Optional
from uuid import UUID

from fastapi import Request
from sqlalchemy.orm import Session

from ..models import AuditLog

logger = logging.getLogger("ubuntu.audit")


def record_event(
    db: Session,
    action: str,
    user_id: Optional[UUID],
    *,
    resource: Optional[str] = None,
    resource_id: Optional[UUID] = None,
    details: Optional[Dict[str, Any]] = None,
    level: str = "info",
    request: Optional[Request] = None,
    flag_reason: Optional[str] = None,
) -> AuditLog:
    """Append an audit record in the caller's transaction."""
    entry = AuditLog(
        user_id=user_id,
        action=action,
        resource=resource,
        resource_id=resource_id,
        details=details or {},
        level=level,
    )
    if request is not None:
        entry.ip_address = request.client.host if request.client else None
        entry.user_agent = (request.headers.get("user-agent") or "")[:255] or None
    if flag_reason:
        entry.set_flagged(flag_reason)
    db.add(entry)
    db.flush()
    log = logger.warning if level in ("error", "critical") else logger.info
    log("audit action=%s user=%s resource=%s:%s", action, user_id, resource, resource_id)
    return entry
