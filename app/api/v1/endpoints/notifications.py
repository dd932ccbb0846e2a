from fastapi import APIRouter, Depends, HTTPException, status, Query
from fastapi.concurrency import run_in_threadpool
from fastapi.security import OAuth2PasswordBearer
from sqlalchemy.orm import Session
from typing import Optional
from sse_starlette.sse import EventSourceResponse

from app.core.database import get_db
from app.core.notification_manager import notification_manager
from app.core.security import get_current_admin_user, get_user_from_token
from app.models.models import User

router = APIRouter()

optional_oauth2_scheme = OAuth2PasswordBearer(tokenUrl="api/v1/auth/login", auto_error=False)


@router.get("/stream")
async def notification_stream(
    token: Optional[str] = Query(None, description="JWT token (use if Authorization header not available)"),
    header_token: Optional[str] = Depends(optional_oauth2_scheme),
    db: Session = Depends(get_db)
):
    """
    Server-Sent Events (SSE) stream of booking events for the back office.

    Authentication:
    - Preferred: Authorization header (Bearer token)
    - Alternative: token query parameter (for EventSource compatibility)

    Events:
    - 'connected': Connection confirmation
    - 'notification': booking_created / booking_updated / booking_deleted
    - 'ping': Keepalive message

    Usage with EventSource:
    ```javascript
    const eventSource = new EventSource('/api/v1/notifications/stream?token=YOUR_TOKEN');

    eventSource.addEventListener('notification', (event) => {
        const notification = JSON.parse(event.data);
        if (notification.notification_type === 'booking_created') playSound();
    });
    ```
    """
    current_user = None
    for candidate in (header_token, token):
        if candidate:
            current_user = await run_in_threadpool(get_user_from_token, candidate, db)
            if current_user:
                break

    if not current_user:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Authentication required"
        )

    user_id = current_user.id

    async def event_generator():
        async for event in notification_manager.admin_event_stream(user_id=user_id):
            yield event

    return EventSourceResponse(event_generator())


@router.get("/stream/stats")
async def get_stream_stats(
    current_user: User = Depends(get_current_admin_user)
):
    """Statistics about active SSE connections"""
    return notification_manager.get_stats()
