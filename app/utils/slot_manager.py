"""
Slot availability and booking admission.

Admins open a day by configuring its time slots (each with a capacity).
Bookings are matched to slots by (date, time) value. Whether a time can be
booked is always recomputed from the confirmed bookings; the counters stored
on each slot are a cache refreshed after every write.

All writes to slots and bookings go through this module.
"""
import logging
import re
from contextlib import contextmanager
from datetime import date, datetime, timedelta
from typing import Dict, Iterable, List, Optional, Tuple

import email_validator
from email_validator import EmailNotValidError
from sqlalchemy import func
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from app.core.clock import BusinessClock
from app.core.config import settings
from app.core.exceptions import (
    BookingError,
    DayHasActiveBookingsError,
    PastTimeError,
    SlotUnavailableError,
    StorageError,
    ValidationError,
)
from app.models.models import (
    ACTIVE_BOOKING_STATUSES,
    BOOKING_SOURCES,
    BOOKING_STATUSES,
    AvailableSlot,
    Booking,
)

logger = logging.getLogger(__name__)

DATE_PATTERN = re.compile(r"^\d{4}-\d{2}-\d{2}$")
TIME_PATTERN = re.compile(r"^([01]\d|2[0-3]):[0-5]\d$")
MIN_PHONE_DIGITS = 7


# ==================== INPUT VALIDATION ====================

def parse_date(value, field: str = "date") -> date:
    """Accept a date object or a YYYY-MM-DD string."""
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    if not isinstance(value, str) or not DATE_PATTERN.match(value.strip()):
        raise ValidationError("Date must use the YYYY-MM-DD format", field=field)
    try:
        return date.fromisoformat(value.strip())
    except ValueError:
        raise ValidationError("Invalid calendar date", field=field)


def validate_time(value, field: str = "time") -> str:
    """Accept a zero padded HH:MM string."""
    if not isinstance(value, str) or not TIME_PATTERN.match(value.strip()):
        raise ValidationError("Time must use the HH:MM format", field=field)
    return value.strip()


def validate_email(value: str) -> str:
    """Return the normalized address."""
    try:
        return email_validator.validate_email(value.strip(), check_deliverability=False).normalized
    except EmailNotValidError as exc:
        raise ValidationError(f"Invalid email address: {exc}", field="email")


def validate_phone(value: str) -> str:
    value = value.strip()
    if len(re.sub(r"\D", "", value)) < MIN_PHONE_DIGITS:
        raise ValidationError(f"Phone number must contain at least {MIN_PHONE_DIGITS} digits", field="phone")
    return value


def validate_booking_request(name, email, phone, day, hhmm) -> dict:
    """
    Check presence first, then formats, failing on the first violation.

    Returns the cleaned fields with `date` parsed to a date object.
    """
    raw = {"name": name, "email": email, "phone": phone, "date": day, "time": hhmm}
    for field, value in raw.items():
        if value is None or (isinstance(value, str) and not value.strip()):
            raise ValidationError(f"{field} is required", field=field)

    name = str(name).strip()
    return {
        "name": name,
        "email": validate_email(email),
        "phone": validate_phone(phone),
        "date": parse_date(day),
        "time": validate_time(hhmm),
    }


def _validate_source(source: Optional[str]) -> str:
    source = source or "web"
    if source not in BOOKING_SOURCES:
        raise ValidationError(f"source must be one of: {', '.join(BOOKING_SOURCES)}", field="source")
    return source


def _validate_capacity(value) -> int:
    if isinstance(value, bool) or not isinstance(value, int) or value < 1:
        raise ValidationError("max_bookings must be an integer of at least 1", field="max_bookings")
    return value


# ==================== STORAGE HELPERS ====================

@contextmanager
def storage_guard(db: Session, action: str):
    """
    Run a unit of work: any domain error or storage failure rolls the
    session back. Storage failures surface as StorageError.
    """
    try:
        yield
    except BookingError:
        db.rollback()
        raise
    except SQLAlchemyError as exc:
        db.rollback()
        logger.error(f"Storage failure while {action}: {exc}")
        raise StorageError(f"Storage failure while {action}") from exc


def get_occupancy(db: Session, target_date: date, exclude_booking_id: Optional[int] = None) -> Dict[str, int]:
    """Count confirmed bookings per time for one day."""
    query = db.query(Booking.time, func.count(Booking.id)).filter(
        Booking.date == target_date,
        Booking.status == "confirmed"
    )
    if exclude_booking_id is not None:
        query = query.filter(Booking.id != exclude_booking_id)
    return {hhmm: count for hhmm, count in query.group_by(Booking.time).all()}


def count_confirmed(db: Session, target_date: date, hhmm: str, exclude_booking_id: Optional[int] = None) -> int:
    query = db.query(func.count(Booking.id)).filter(
        Booking.date == target_date,
        Booking.time == hhmm,
        Booking.status == "confirmed"
    )
    if exclude_booking_id is not None:
        query = query.filter(Booking.id != exclude_booking_id)
    return query.scalar() or 0


def _lock_slot(db: Session, target_date: date, hhmm: str) -> Optional[AvailableSlot]:
    """
    Fetch the slot row with a row lock so concurrent admissions for the same
    (date, time) are serialized on databases that support SELECT ... FOR UPDATE.
    """
    return db.query(AvailableSlot).filter(
        AvailableSlot.date == target_date,
        AvailableSlot.time == hhmm
    ).with_for_update().first()


def _apply_counter(slot: AvailableSlot, occupied: int):
    slot.current_bookings = occupied
    slot.is_available = occupied < slot.max_bookings


def refresh_slot_counters(db: Session, keys: Iterable[Tuple[date, str]]):
    """Recount the cached counters of the slots matching the given (date, time) keys."""
    for target_date, hhmm in set(keys):
        slot = db.query(AvailableSlot).filter(
            AvailableSlot.date == target_date,
            AvailableSlot.time == hhmm
        ).first()
        if slot is not None:
            _apply_counter(slot, count_confirmed(db, target_date, hhmm))


# ==================== AVAILABILITY ====================

def evaluate_slot(slot: AvailableSlot, effective_bookings: int, is_past: bool) -> dict:
    """Decide whether one configured slot can take another booking."""
    return {
        "time": slot.time,
        "available": not is_past and effective_bookings < slot.max_bookings,
        "spots_left": slot.max_bookings - effective_bookings,
        "is_past": is_past,
        "max_bookings": slot.max_bookings,
        "current_bookings": effective_bookings,
    }


def get_day_availability(db: Session, target_date: date, clock: BusinessClock) -> List[dict]:
    """
    Time entries of a day, in ascending HH:MM order.

    A day without configured slots has no entries. Read only.
    """
    with storage_guard(db, "reading availability"):
        slots = db.query(AvailableSlot).filter(
            AvailableSlot.date == target_date
        ).order_by(AvailableSlot.time).all()
        if not slots:
            return []
        occupancy = get_occupancy(db, target_date)

    now = clock.now()
    entries = [
        evaluate_slot(slot, occupancy.get(slot.time, 0), clock.is_past(target_date, slot.time, now=now))
        for slot in slots
    ]
    return sorted(entries, key=lambda entry: entry["time"])


def list_open_dates(
    db: Session,
    clock: BusinessClock,
    horizon_days: Optional[int] = None,
    available_only: bool = False
) -> List[date]:
    """
    Upcoming dates (today included) that an admin has opened.

    With available_only, dates whose every entry is past or full are left out.
    """
    horizon = settings.BOOKING_HORIZON_DAYS if horizon_days is None else horizon_days
    start = clock.today()
    end = start + timedelta(days=horizon)

    with storage_guard(db, "listing open dates"):
        rows = db.query(AvailableSlot.date).filter(
            AvailableSlot.date >= start,
            AvailableSlot.date <= end
        ).distinct().order_by(AvailableSlot.date).all()
    dates = [row[0] for row in rows]

    if available_only:
        dates = [
            day for day in dates
            if any(entry["available"] for entry in get_day_availability(db, day, clock))
        ]
    return dates


def list_configured_slots(
    db: Session,
    start_date: Optional[date] = None,
    end_date: Optional[date] = None
) -> List[AvailableSlot]:
    with storage_guard(db, "listing slots"):
        query = db.query(AvailableSlot)
        if start_date is not None:
            query = query.filter(AvailableSlot.date >= start_date)
        if end_date is not None:
            query = query.filter(AvailableSlot.date <= end_date)
        return query.order_by(AvailableSlot.date, AvailableSlot.time).all()


# ==================== ADMISSION ====================

def _reserve(
    db: Session,
    clock: BusinessClock,
    target_date: date,
    hhmm: str,
    exclude_booking_id: Optional[int] = None,
    check_past: bool = True
) -> AvailableSlot:
    """Lock the slot and re-evaluate it against the current occupancy."""
    slot = _lock_slot(db, target_date, hhmm)
    if slot is None:
        raise SlotUnavailableError("The selected time is not offered on this date")

    occupied = count_confirmed(db, target_date, hhmm, exclude_booking_id)
    is_past = clock.is_past(target_date, hhmm) if check_past else False
    if not evaluate_slot(slot, occupied, is_past)["available"]:
        raise SlotUnavailableError("The selected time is no longer available")
    return slot


def _verify_capacity(db: Session, slot: AvailableSlot):
    """
    Recount after the booking row is flushed. On SQLite, which ignores row
    locks, writers are serialized so this catches a lost race.
    """
    occupied = count_confirmed(db, slot.date, slot.time)
    if occupied > slot.max_bookings:
        logger.warning(f"Lost admission race for {slot.date} {slot.time}")
        raise SlotUnavailableError("The selected time is no longer available")
    _apply_counter(slot, occupied)


def admit_booking(
    db: Session,
    clock: BusinessClock,
    name: Optional[str],
    email: Optional[str],
    phone: Optional[str],
    day,
    hhmm: Optional[str],
    source: Optional[str] = "web",
    notes: Optional[str] = None
) -> Booking:
    """
    Validate and commit a single booking.

    Raises ValidationError, PastTimeError, SlotUnavailableError or
    StorageError. Nothing is written when an error is raised.
    """
    fields = validate_booking_request(name, email, phone, day, hhmm)
    source = _validate_source(source)

    if clock.is_past(fields["date"], fields["time"]):
        raise PastTimeError("The selected date and time has already passed")

    with storage_guard(db, "admitting booking"):
        slot = _reserve(db, clock, fields["date"], fields["time"])
        booking = Booking(
            name=fields["name"],
            email=fields["email"],
            phone=fields["phone"],
            date=fields["date"],
            time=fields["time"],
            status="confirmed",
            source=source,
            notes=notes.strip() if notes else None,
        )
        db.add(booking)
        db.flush()
        _verify_capacity(db, slot)
        db.commit()
        db.refresh(booking)

    logger.info(f"Booking {booking.id} admitted for {booking.date} {booking.time} (source={booking.source})")
    return booking


def update_booking(db: Session, clock: BusinessClock, booking: Booking, changes: dict) -> Booking:
    """
    Apply admin edits to a booking.

    Confirming a booking, or moving a confirmed one to another (date, time),
    re-checks the target slot's capacity excluding the booking itself.
    """
    updates = {key: value for key, value in changes.items() if value is not None}

    if "name" in updates:
        if not str(updates["name"]).strip():
            raise ValidationError("name is required", field="name")
        updates["name"] = str(updates["name"]).strip()
    if "email" in updates:
        updates["email"] = validate_email(updates["email"])
    if "phone" in updates:
        updates["phone"] = validate_phone(updates["phone"])
    if "date" in updates:
        updates["date"] = parse_date(updates["date"])
    if "time" in updates:
        updates["time"] = validate_time(updates["time"])
    if "status" in updates and updates["status"] not in BOOKING_STATUSES:
        raise ValidationError(f"status must be one of: {', '.join(BOOKING_STATUSES)}", field="status")
    if "source" in updates:
        updates["source"] = _validate_source(updates["source"])

    old_key = (booking.date, booking.time)
    new_key = (updates.get("date", booking.date), updates.get("time", booking.time))
    new_status = updates.get("status", booking.status)
    needs_capacity = new_status == "confirmed" and (booking.status != "confirmed" or new_key != old_key)

    with storage_guard(db, "updating booking"):
        slot = None
        if needs_capacity:
            slot = _reserve(db, clock, new_key[0], new_key[1], exclude_booking_id=booking.id, check_past=False)
        for field, value in updates.items():
            setattr(booking, field, value)
        db.flush()
        if slot is not None:
            _verify_capacity(db, slot)
        refresh_slot_counters(db, [old_key, new_key])
        db.commit()
        db.refresh(booking)

    logger.info(f"Booking {booking.id} updated: {', '.join(sorted(updates)) or 'no changes'}")
    return booking


def delete_booking(db: Session, booking: Booking):
    key = (booking.date, booking.time)
    booking_id = booking.id
    with storage_guard(db, "deleting booking"):
        db.delete(booking)
        db.flush()
        refresh_slot_counters(db, [key])
        db.commit()
    logger.info(f"Booking {booking_id} deleted")


# ==================== SLOT CONFIGURATION ====================

def set_day(db: Session, day, time_slots: Optional[List[str]], max_bookings: Optional[int] = None) -> List[AvailableSlot]:
    """
    Replace every slot of a day with the given times, in one transaction.

    Duplicate times collapse into one slot. Counters are seeded from the
    confirmed bookings already on the day.
    """
    target_date = parse_date(day)
    if not time_slots or not isinstance(time_slots, list):
        raise ValidationError("time_slots must be a non-empty list", field="time_slots")
    times = sorted({validate_time(hhmm, field="time_slots") for hhmm in time_slots})
    capacity = _validate_capacity(settings.DEFAULT_MAX_BOOKINGS if max_bookings is None else max_bookings)

    with storage_guard(db, "configuring day"):
        occupancy = get_occupancy(db, target_date)
        deleted = db.query(AvailableSlot).filter(
            AvailableSlot.date == target_date
        ).delete(synchronize_session="fetch")

        slots = [
            AvailableSlot(
                date=target_date,
                time=hhmm,
                max_bookings=capacity,
                current_bookings=occupancy.get(hhmm, 0),
                is_available=occupancy.get(hhmm, 0) < capacity,
            )
            for hhmm in times
        ]
        db.add_all(slots)
        db.commit()

    logger.info(f"Configured {target_date}: replaced {deleted} slot(s) with {len(slots)} (capacity {capacity})")
    return slots


def set_day_capacity(db: Session, day, max_bookings) -> int:
    """Change the capacity of every slot of a day. Returns the number of slots changed."""
    target_date = parse_date(day)
    capacity = _validate_capacity(max_bookings)

    with storage_guard(db, "updating day capacity"):
        slots = db.query(AvailableSlot).filter(AvailableSlot.date == target_date).all()
        occupancy = get_occupancy(db, target_date)
        for slot in slots:
            slot.max_bookings = capacity
            _apply_counter(slot, occupancy.get(slot.time, 0))
        db.commit()

    logger.info(f"Set capacity {capacity} on {len(slots)} slot(s) of {target_date}")
    return len(slots)


def close_day(db: Session, day) -> int:
    """
    Delete every slot of a day, unless it has confirmed or completed bookings.
    Returns the number of slots deleted.
    """
    target_date = parse_date(day)

    with storage_guard(db, "closing day"):
        # Lock the day's slots so no admission slips in between the count and the delete
        db.query(AvailableSlot).filter(AvailableSlot.date == target_date).with_for_update().all()
        active = db.query(func.count(Booking.id)).filter(
            Booking.date == target_date,
            Booking.status.in_(ACTIVE_BOOKING_STATUSES)
        ).scalar() or 0
        if active:
            raise DayHasActiveBookingsError(active)

        deleted = db.query(AvailableSlot).filter(
            AvailableSlot.date == target_date
        ).delete(synchronize_session="fetch")
        db.commit()

    logger.info(f"Closed {target_date}: {deleted} slot(s) deleted")
    return deleted


def sync_slot_counters(db: Session) -> int:
    """Recount the cached counters of every slot from the confirmed bookings."""
    with storage_guard(db, "syncing slot counters"):
        counts = {
            (row_date, hhmm): count
            for row_date, hhmm, count in db.query(
                Booking.date, Booking.time, func.count(Booking.id)
            ).filter(Booking.status == "confirmed").group_by(Booking.date, Booking.time).all()
        }
        slots = db.query(AvailableSlot).all()
        for slot in slots:
            _apply_counter(slot, counts.get((slot.date, slot.time), 0))
        db.commit()

    logger.info(f"Synced counters of {len(slots)} slot(s)")
    return len(slots)


# ==================== BACK OFFICE READS ====================

def list_bookings_since(db: Session, since: Optional[datetime] = None) -> List[Booking]:
    """Bookings created after `since` (naive UTC), oldest first."""
    with storage_guard(db, "polling bookings"):
        query = db.query(Booking)
        if since is not None:
            query = query.filter(Booking.created_at > since)
        return query.order_by(Booking.created_at, Booking.id).all()


def count_upcoming_confirmed(db: Session, clock: BusinessClock) -> int:
    with storage_guard(db, "counting upcoming bookings"):
        return db.query(func.count(Booking.id)).filter(
            Booking.date >= clock.today(),
            Booking.status == "confirmed"
        ).scalar() or 0
