import logging
from fastapi import APIRouter, Depends, HTTPException, status, Query, Request
from fastapi.concurrency import run_in_threadpool
from sqlalchemy.orm import Session
from sqlalchemy import or_
from typing import Optional
from datetime import datetime, timezone
from app.core.clock import BusinessClock, get_clock
from app.core.database import get_db
from app.core.security import get_current_admin_user
from app.core.notification_manager import notification_manager, booking_notification
from app.models.models import Booking, User
from app.schemas.schemas import (
    AdminBookingCreate,
    BookingCreate,
    BookingCreatedResponse,
    BookingListResponse,
    BookingResponse,
    BookingUpdate,
    BookingUpdatesResponse,
)
from app.utils import slot_manager
from app.utils.activity import log_activity

logger = logging.getLogger(__name__)

router = APIRouter()

# Write handlers run their database work in the threadpool; only the SSE push
# is awaited on the event loop.


async def _notify_admins(notification: dict):
    try:
        await notification_manager.send_to_admins(notification)
    except Exception as e:
        logger.error(f"Failed to push {notification['notification_type']} notification "
                     f"for booking {notification['entity_id']}: {e}")


def _get_booking_or_404(db: Session, booking_id: int) -> Booking:
    booking = db.query(Booking).filter(Booking.id == booking_id).first()
    if not booking:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Booking not found"
        )
    return booking


def _admit(db: Session, clock: BusinessClock, booking_data: BookingCreate, source: str) -> dict:
    booking = slot_manager.admit_booking(
        db,
        clock,
        name=booking_data.name,
        email=booking_data.email,
        phone=booking_data.phone,
        day=booking_data.date,
        hhmm=booking_data.time,
        source=source,
        notes=booking_data.notes
    )
    return {
        "response": BookingResponse.model_validate(booking),
        "notification": booking_notification("booking_created", booking),
        "booking": booking,
    }


@router.post("/", response_model=BookingCreatedResponse, status_code=status.HTTP_201_CREATED)
async def create_booking(
    booking_data: BookingCreate,
    db: Session = Depends(get_db),
    clock: BusinessClock = Depends(get_clock)
):
    """
    Public booking form.

    Errors come back as {error, code}:
    - validation_error / past_time (400): fix the input
    - slot_unavailable (409): pick another time
    """
    result = await run_in_threadpool(_admit, db, clock, booking_data, "web")
    await _notify_admins(result["notification"])
    return {"booking": result["response"]}


def _admit_as_admin(db, clock, booking_data: AdminBookingCreate, request: Request, current_user: User) -> dict:
    result = _admit(db, clock, booking_data, booking_data.source)
    booking = result["booking"]
    log_activity(
        db, request, current_user, "created", "booking", booking.id,
        f"Created {booking.source} booking for {booking.name} on {booking.date} {booking.time}"
    )
    return result


@router.post("/admin", response_model=BookingCreatedResponse, status_code=status.HTTP_201_CREATED)
async def create_booking_as_admin(
    booking_data: AdminBookingCreate,
    request: Request,
    db: Session = Depends(get_db),
    clock: BusinessClock = Depends(get_clock),
    current_user: User = Depends(get_current_admin_user)
):
    """Book on behalf of a customer (phone, WhatsApp...), same admission rules"""
    result = await run_in_threadpool(_admit_as_admin, db, clock, booking_data, request, current_user)
    await _notify_admins(result["notification"])
    return {"booking": result["response"]}


@router.get("/", response_model=BookingListResponse)
def get_bookings(
    page: int = Query(1, ge=1),
    per_page: int = Query(20, ge=1, le=100),
    search: Optional[str] = None,
    status_filter: Optional[str] = Query(None, alias="status"),
    date_filter: Optional[str] = Query(None, alias="date"),
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_admin_user)
):
    """Get bookings with pagination and filtering, latest dates first"""
    query = db.query(Booking)

    # Apply search filter (name, email, phone)
    if search:
        query = query.filter(
            or_(
                Booking.name.ilike(f"%{search}%"),
                Booking.email.ilike(f"%{search}%"),
                Booking.phone.ilike(f"%{search}%")
            )
        )

    if status_filter:
        query = query.filter(Booking.status == status_filter)

    if date_filter:
        query = query.filter(Booking.date == slot_manager.parse_date(date_filter))

    total = query.count()

    bookings = query.order_by(
        Booking.date.desc(), Booking.time.desc()
    ).offset((page - 1) * per_page).limit(per_page).all()

    return {
        "bookings": bookings,
        "total": total,
        "page": page,
        "per_page": per_page,
        "total_pages": (total + per_page - 1) // per_page
    }


@router.get("/updates", response_model=BookingUpdatesResponse)
def get_booking_updates(
    since: Optional[datetime] = Query(None, description="Naive UTC timestamp from the previous poll's server_time"),
    db: Session = Depends(get_db),
    clock: BusinessClock = Depends(get_clock),
    current_user: User = Depends(get_current_admin_user)
):
    """
    Cheap polling read for the back office.
    Returns bookings created after `since` and a cursor for the next call.
    """
    server_time = datetime.utcnow()
    if since is not None and since.tzinfo is not None:
        since = since.astimezone(timezone.utc).replace(tzinfo=None)
    bookings = slot_manager.list_bookings_since(db, since)
    return {
        "bookings": bookings,
        "server_time": server_time,
        "upcoming_confirmed": slot_manager.count_upcoming_confirmed(db, clock)
    }


@router.get("/{booking_id}", response_model=BookingResponse)
def get_booking(
    booking_id: int,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_admin_user)
):
    """Get booking by ID"""
    return _get_booking_or_404(db, booking_id)


def _update(db, clock, booking_id: int, booking_update: BookingUpdate, request: Request, current_user: User) -> dict:
    booking = _get_booking_or_404(db, booking_id)

    old_status = booking.status
    booking = slot_manager.update_booking(db, clock, booking, booking_update.model_dump(exclude_unset=True))

    description = f"Updated booking for {booking.name} ({booking.date} {booking.time})"
    if old_status != booking.status:
        description += f", status {old_status} -> {booking.status}"
    log_activity(db, request, current_user, "updated", "booking", booking.id, description)

    return {
        "response": BookingResponse.model_validate(booking),
        "notification": booking_notification("booking_updated", booking),
    }


@router.put("/{booking_id}", response_model=BookingResponse)
async def update_booking(
    booking_id: int,
    booking_update: BookingUpdate,
    request: Request,
    db: Session = Depends(get_db),
    clock: BusinessClock = Depends(get_clock),
    current_user: User = Depends(get_current_admin_user)
):
    """Edit a booking's fields or status"""
    result = await run_in_threadpool(_update, db, clock, booking_id, booking_update, request, current_user)
    await _notify_admins(result["notification"])
    return result["response"]


def _delete(db, booking_id: int, request: Request, current_user: User) -> dict:
    booking = _get_booking_or_404(db, booking_id)

    notification = booking_notification("booking_deleted", booking)
    description = f"Deleted booking for {booking.name} scheduled for {booking.date} {booking.time}"
    slot_manager.delete_booking(db, booking)

    log_activity(db, request, current_user, "deleted", "booking", booking_id, description)
    return notification


@router.delete("/{booking_id}")
async def delete_booking(
    booking_id: int,
    request: Request,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_admin_user)
):
    """Delete a booking"""
    notification = await run_in_threadpool(_delete, db, booking_id, request, current_user)
    await _notify_admins(notification)
    return {"message": "Booking deleted"}
