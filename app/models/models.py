from sqlalchemy import Column, Integer, String, DateTime, Date, Boolean, ForeignKey, Text, UniqueConstraint, Index
from sqlalchemy.orm import relationship
from datetime import datetime
from app.core.database import Base


BOOKING_STATUSES = ("confirmed", "cancelled", "completed")
ACTIVE_BOOKING_STATUSES = ("confirmed", "completed")
BOOKING_SOURCES = ("web", "whatsapp", "phone", "admin")


class User(Base):
    """Admin account for the back office"""
    __tablename__ = "users"

    id = Column(Integer, primary_key=True, index=True)
    username = Column(String, unique=True, index=True, nullable=False)
    email = Column(String, unique=True, index=True, nullable=False)
    name = Column(String, nullable=False)
    hashed_password = Column(String, nullable=False)
    role = Column(String, default="admin")  # admin, staff
    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)


class AvailableSlot(Base):
    """
    A bookable (date, time) offering opened by an admin.

    current_bookings and is_available are a cache of the confirmed bookings
    for the same (date, time); availability is always recomputed from the
    bookings table.
    """
    __tablename__ = "available_slots"

    id = Column(Integer, primary_key=True, index=True)
    date = Column(Date, nullable=False, index=True)
    time = Column(String(5), nullable=False)  # HH:MM, zero padded
    max_bookings = Column(Integer, nullable=False, default=1)
    current_bookings = Column(Integer, nullable=False, default=0)
    is_available = Column(Boolean, nullable=False, default=True)
    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    __table_args__ = (
        UniqueConstraint("date", "time", name="uq_available_slot_date_time"),
    )


class Booking(Base):
    """A customer reservation matched to a slot by (date, time) value"""
    __tablename__ = "bookings"

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String, nullable=False)
    email = Column(String, nullable=False, index=True)
    phone = Column(String, nullable=False)
    date = Column(Date, nullable=False, index=True)
    time = Column(String(5), nullable=False)  # HH:MM
    status = Column(String, nullable=False, default="confirmed")  # confirmed, cancelled, completed
    source = Column(String, nullable=False, default="web")  # web, whatsapp, phone, admin
    notes = Column(Text, nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow, index=True)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    __table_args__ = (
        Index("ix_bookings_date_time_status", "date", "time", "status"),
    )


class SystemConfig(Base):
    """Flat key/value business configuration"""
    __tablename__ = "system_config"

    id = Column(Integer, primary_key=True, index=True)
    key = Column(String, unique=True, index=True, nullable=False)
    value = Column(Text, nullable=False)
    description = Column(Text, nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)


class ActivityLog(Base):
    __tablename__ = "activity_logs"

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(Integer, ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    action = Column(String, nullable=False)  # created, updated, deleted, login, opened_day, closed_day, etc.
    entity_type = Column(String, nullable=True)  # booking, slot, config, user
    entity_id = Column(Integer, nullable=True)  # ID of the affected entity
    description = Column(Text, nullable=True)  # Human-readable description
    ip_address = Column(String, nullable=True)
    user_agent = Column(String, nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow)

    # Relationships
    user = relationship("User", foreign_keys=[user_id])
