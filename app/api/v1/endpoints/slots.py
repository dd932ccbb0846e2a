from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session
from typing import Optional
from app.core.clock import BusinessClock, get_clock
from app.core.database import get_db
from app.schemas.schemas import DayAvailabilityResponse, OpenDatesResponse
from app.utils import slot_manager

router = APIRouter()


@router.get("/available", response_model=DayAvailabilityResponse)
def get_available_slots(
    date: str = Query(..., description="Day to check, YYYY-MM-DD"),
    db: Session = Depends(get_db),
    clock: BusinessClock = Depends(get_clock)
):
    """
    Time entries of a day for the public calendar.
    A day that no admin has opened returns an empty list.
    """
    target_date = slot_manager.parse_date(date)
    slots = slot_manager.get_day_availability(db, target_date, clock)
    return {
        "date": target_date,
        "total_available": sum(1 for slot in slots if slot["available"]),
        "slots": slots
    }


@router.get("/dates", response_model=OpenDatesResponse)
def get_open_dates(
    days: Optional[int] = Query(None, ge=1, le=365, description="Horizon in days, defaults to BOOKING_HORIZON_DAYS"),
    available_only: bool = Query(False, description="Leave out days that are fully booked or over"),
    db: Session = Depends(get_db),
    clock: BusinessClock = Depends(get_clock)
):
    """Upcoming days that have been opened for booking"""
    return {"dates": slot_manager.list_open_dates(db, clock, horizon_days=days, available_only=available_only)}
