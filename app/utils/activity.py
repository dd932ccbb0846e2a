from typing import Optional
from fastapi import Request
from sqlalchemy.orm import Session
from app.models.models import ActivityLog, User


def log_activity(
    db: Session,
    request: Optional[Request],
    user: Optional[User],
    action: str,
    entity_type: str,
    entity_id: Optional[int] = None,
    description: Optional[str] = None,
) -> ActivityLog:
    """Record an audit entry for a back office action and commit it"""
    log = ActivityLog(
        user_id=user.id if user else None,
        action=action,
        entity_type=entity_type,
        entity_id=entity_id,
        description=description,
        ip_address=request.client.host if request and request.client else None,
        user_agent=request.headers.get("user-agent") if request else None
    )
    db.add(log)
    db.commit()
    return log
