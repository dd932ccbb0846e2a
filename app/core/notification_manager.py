"""
SSE Notification Manager
Pushes booking events to connected back office admins in real time
"""
import asyncio
import json
from typing import Dict, Set, AsyncGenerator
from datetime import datetime
import logging

from app.core.config import settings

logger = logging.getLogger(__name__)


class NotificationManager:
    """
    Manages SSE connections for admin notifications.
    Every open stream has its own queue, so an admin with several tabs open
    gets each notification in every tab.
    """

    def __init__(self, keepalive_seconds: float = 30.0):
        # Queues for admins: {user_id: {Queue, ...}}
        self.admin_queues: Dict[int, Set[asyncio.Queue]] = {}
        self.keepalive_seconds = keepalive_seconds

    def connect(self, user_id: int) -> asyncio.Queue:
        """Register a new stream for an admin and return its queue"""
        queue = asyncio.Queue()
        self.admin_queues.setdefault(user_id, set()).add(queue)
        return queue

    def disconnect(self, user_id: int, queue: asyncio.Queue):
        """Drop one stream; the admin's other streams stay connected"""
        queues = self.admin_queues.get(user_id)
        if queues is None:
            return
        queues.discard(queue)
        if not queues:
            del self.admin_queues[user_id]

    async def send_to_admins(self, notification: dict) -> int:
        """Send notification to every open stream. Returns the number of streams reached."""
        sent_count = 0
        for queues in list(self.admin_queues.values()):
            for queue in list(queues):
                await queue.put(notification)
                sent_count += 1

        logger.info(f"Sent {notification.get('notification_type')} notification to {sent_count} stream(s)")
        return sent_count

    async def admin_event_stream(self, user_id: int) -> AsyncGenerator:
        """
        Generate SSE stream for an admin.
        Yields a 'connected' event, then notifications, with 'ping' keepalives.
        """
        queue = self.connect(user_id)

        try:
            yield {
                "event": "connected",
                "data": json.dumps({
                    "message": "Connected to notification stream",
                    "user_id": user_id,
                    "timestamp": datetime.utcnow().isoformat()
                })
            }

            while True:
                try:
                    notification = await asyncio.wait_for(queue.get(), timeout=self.keepalive_seconds)

                    yield {
                        "event": "notification",
                        "data": json.dumps(notification)
                    }
                except asyncio.TimeoutError:
                    yield {
                        "event": "ping",
                        "data": json.dumps({"timestamp": datetime.utcnow().isoformat()})
                    }

        except asyncio.CancelledError:
            logger.info(f"Admin {user_id} disconnected")
            raise
        finally:
            self.disconnect(user_id, queue)

    def get_stats(self) -> dict:
        """Get connection statistics"""
        return {
            "active_admin_connections": sum(len(queues) for queues in self.admin_queues.values()),
            "admins": list(self.admin_queues.keys())
        }


def booking_notification(notification_type: str, booking) -> dict:
    """Build the payload pushed to admins for a booking event"""
    titles = {
        "booking_created": "New booking",
        "booking_updated": "Booking updated",
        "booking_deleted": "Booking deleted",
    }
    return {
        "notification_type": notification_type,
        "title": titles.get(notification_type, "Booking"),
        "message": f"{booking.name} - {booking.date.isoformat()} {booking.time}",
        "entity_type": "booking",
        "entity_id": booking.id,
        "booking": {
            "id": booking.id,
            "name": booking.name,
            "date": booking.date.isoformat(),
            "time": booking.time,
            "status": booking.status,
            "source": booking.source,
        },
        "created_at": datetime.utcnow().isoformat(),
    }


# Global notification manager instance
notification_manager = NotificationManager(keepalive_seconds=settings.SSE_KEEPALIVE_SECONDS)
