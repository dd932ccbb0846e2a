from __future__ import annotations
from pydantic import BaseModel, EmailStr
from datetime import datetime, date as Date
from typing import Optional, List, Dict


# User schemas
class UserBase(BaseModel):
    username: str
    email: EmailStr
    name: str


class UserCreate(UserBase):
    password: str
    role: Optional[str] = "admin"


class UserUpdate(BaseModel):
    username: Optional[str] = None
    email: Optional[EmailStr] = None
    name: Optional[str] = None
    password: Optional[str] = None
    role: Optional[str] = None


class UserResponse(UserBase):
    id: int
    role: str
    created_at: datetime
    updated_at: Optional[datetime] = None

    class Config:
        from_attributes = True


# Auth schemas
class Token(BaseModel):
    access_token: str
    refresh_token: str
    token_type: str
    user: UserResponse


class TokenData(BaseModel):
    username: Optional[str] = None
    role: Optional[str] = None


class LoginRequest(BaseModel):
    username: str  # Username or email
    password: str


class RefreshTokenRequest(BaseModel):
    refresh_token: str


# Booking schemas
class BookingCreate(BaseModel):
    """Public booking request. Field rules are enforced by the slot manager."""
    name: Optional[str] = None
    email: Optional[str] = None
    phone: Optional[str] = None
    date: Optional[str] = None  # YYYY-MM-DD
    time: Optional[str] = None  # HH:MM
    notes: Optional[str] = None


class AdminBookingCreate(BookingCreate):
    source: Optional[str] = "admin"  # web, whatsapp, phone, admin


class BookingUpdate(BaseModel):
    name: Optional[str] = None
    email: Optional[str] = None
    phone: Optional[str] = None
    date: Optional[str] = None
    time: Optional[str] = None
    status: Optional[str] = None  # confirmed, cancelled, completed
    source: Optional[str] = None
    notes: Optional[str] = None


class BookingResponse(BaseModel):
    id: int
    name: str
    email: str
    phone: str
    date: Date
    time: str
    status: str
    source: str
    notes: Optional[str] = None
    created_at: datetime
    updated_at: Optional[datetime] = None

    class Config:
        from_attributes = True


class BookingCreatedResponse(BaseModel):
    booking: BookingResponse


class BookingListResponse(BaseModel):
    """Paginated list of bookings"""
    bookings: List[BookingResponse]
    total: int
    page: int
    per_page: int
    total_pages: int


class BookingUpdatesResponse(BaseModel):
    """Polling payload for the back office"""
    bookings: List[BookingResponse]
    server_time: datetime  # Pass back as `since` on the next poll
    upcoming_confirmed: int


# Slot schemas
class SlotAvailability(BaseModel):
    """One time entry of a day as seen by the public calendar"""
    time: str
    available: bool
    spots_left: int
    is_past: bool
    max_bookings: int
    current_bookings: int


class DayAvailabilityResponse(BaseModel):
    date: Date
    total_available: int
    slots: List[SlotAvailability]


class OpenDatesResponse(BaseModel):
    dates: List[Date]


class AvailableSlotResponse(BaseModel):
    id: int
    date: Date
    time: str
    max_bookings: int
    current_bookings: int
    is_available: bool

    class Config:
        from_attributes = True


class AvailabilityRangeResponse(BaseModel):
    slots: List[AvailableSlotResponse]
    slots_by_date: Dict[str, List[AvailableSlotResponse]]


class DayConfigRequest(BaseModel):
    """Open (or re-open) a day with the given times"""
    date: Optional[str] = None
    time_slots: Optional[List[str]] = None
    max_bookings_per_slot: Optional[int] = None


class DayCapacityUpdate(BaseModel):
    date: Optional[str] = None
    max_bookings: Optional[int] = None


class DayConfigResponse(BaseModel):
    message: str
    date: Date
    count: int


class CloseDayResponse(BaseModel):
    message: str
    deleted_count: int


class SlotSyncResponse(BaseModel):
    message: str
    slots_updated: int


# Configuration schemas
class ConfigEntry(BaseModel):
    value: str
    description: Optional[str] = None


class ConfigMapResponse(BaseModel):
    config: Dict[str, ConfigEntry]


class ConfigUpdate(BaseModel):
    key: str
    value: str
    description: Optional[str] = None


class ConfigResponse(BaseModel):
    id: int
    key: str
    value: str
    description: Optional[str] = None
    updated_at: Optional[datetime] = None

    class Config:
        from_attributes = True
