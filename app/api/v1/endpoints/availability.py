from fastapi import APIRouter, Depends, Query, Request
from sqlalchemy.orm import Session
from typing import Optional
from app.core.database import get_db
from app.core.exceptions import DayNotConfiguredError, ValidationError
from app.core.security import get_current_admin_user
from app.models.models import User
from app.schemas.schemas import (
    AvailabilityRangeResponse,
    CloseDayResponse,
    DayCapacityUpdate,
    DayConfigRequest,
    DayConfigResponse,
    SlotSyncResponse,
)
from app.utils import slot_manager
from app.utils.activity import log_activity

router = APIRouter()


@router.get("/", response_model=AvailabilityRangeResponse)
def get_availability(
    start_date: Optional[str] = None,
    end_date: Optional[str] = None,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_admin_user)
):
    """Configured slots in a date range, flat and grouped by day"""
    start = slot_manager.parse_date(start_date, field="start_date") if start_date else None
    end = slot_manager.parse_date(end_date, field="end_date") if end_date else None

    slots = slot_manager.list_configured_slots(db, start, end)
    slots_by_date = {}
    for slot in slots:
        slots_by_date.setdefault(slot.date.isoformat(), []).append(slot)

    return {"slots": slots, "slots_by_date": slots_by_date}


@router.post("/", response_model=DayConfigResponse)
def configure_day(
    day_config: DayConfigRequest,
    request: Request,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_admin_user)
):
    """Open a day, replacing any times it had before"""
    slots = slot_manager.set_day(
        db,
        day_config.date,
        day_config.time_slots,
        day_config.max_bookings_per_slot
    )
    target_date = slot_manager.parse_date(day_config.date)

    log_activity(
        db, request, current_user, "opened_day", "slot", None,
        f"Configured {target_date} with {len(slots)} slot(s)"
    )

    return {"message": "Availability updated", "date": target_date, "count": len(slots)}


@router.put("/", response_model=DayConfigResponse)
def update_day_capacity(
    capacity_update: DayCapacityUpdate,
    request: Request,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_admin_user)
):
    """Change max bookings for every slot of a day"""
    if capacity_update.max_bookings is None:
        raise ValidationError("max_bookings is required", field="max_bookings")
    updated = slot_manager.set_day_capacity(db, capacity_update.date, capacity_update.max_bookings)
    target_date = slot_manager.parse_date(capacity_update.date)
    if not updated:
        raise DayNotConfiguredError(target_date)

    log_activity(
        db, request, current_user, "updated", "slot", None,
        f"Set capacity {capacity_update.max_bookings} on {target_date}"
    )

    return {"message": "Availability updated", "date": target_date, "count": updated}


@router.delete("/", response_model=CloseDayResponse)
def close_day(
    request: Request,
    date: str = Query(..., description="Day to close, YYYY-MM-DD"),
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_admin_user)
):
    """Close a day. Refused while it has confirmed or completed bookings."""
    deleted = slot_manager.close_day(db, date)

    log_activity(
        db, request, current_user, "closed_day", "slot", None,
        f"Closed {date}, {deleted} slot(s) removed"
    )

    return {"message": "Day closed", "deleted_count": deleted}


@router.post("/sync", response_model=SlotSyncResponse)
def sync_slots(
    request: Request,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_admin_user)
):
    """Recount the cached booking counters of every slot"""
    updated = slot_manager.sync_slot_counters(db)
    log_activity(db, request, current_user, "synced", "slot", None, f"Synced {updated} slot counter(s)")
    return {"message": "Slots synced", "slots_updated": updated}
