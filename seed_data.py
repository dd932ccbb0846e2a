"""Seed initial data for development

Run this script to create:
- An admin user (admin / admin123)
- Default business configuration
- Open days for the next 30 days (Sundays stay closed)

Usage:
    python seed_data.py
"""
from datetime import timedelta

from app.core.clock import business_clock
from app.core.config import settings
from app.core.database import SessionLocal, init_db
from app.core.security import get_password_hash
from app.models.models import AvailableSlot, SystemConfig, User
from app.utils.slot_manager import set_day

DEFAULT_TIME_SLOTS = [
    "09:00", "09:30", "10:00", "10:30", "11:00", "11:30",
    "12:00", "12:30", "14:00", "14:30", "15:00", "15:30",
    "16:00", "16:30", "17:00", "17:30", "18:00",
]

DEFAULT_CONFIG = [
    ("business_name", "My Business", "Business name shown on the booking page"),
    ("business_hours", "09:00-18:00", "Opening hours"),
    ("booking_duration", "30", "Appointment length in minutes"),
    ("max_bookings_per_day", "20", "Maximum bookings per day"),
]


def seed_data():
    init_db()
    db = SessionLocal()

    try:
        if db.query(User).filter(User.username == "admin").first():
            print("Admin user already exists. Skipping user.")
        else:
            admin_user = User(
                username="admin",
                email="admin@example.com",
                name="Administrator",
                hashed_password=get_password_hash("admin123"),
                role="admin"
            )
            db.add(admin_user)
            db.commit()
            print(f"✓ Created admin user: {admin_user.username}")
            print("  Password: admin123")

        for key, value, description in DEFAULT_CONFIG:
            if not db.query(SystemConfig).filter(SystemConfig.key == key).first():
                db.add(SystemConfig(key=key, value=value, description=description))
        db.commit()
        print(f"✓ Configuration keys: {', '.join(key for key, _, _ in DEFAULT_CONFIG)}")

        today = business_clock.today()
        opened = 0
        for offset in range(1, 31):
            day = today + timedelta(days=offset)
            if day.weekday() == 6:  # Sunday
                continue
            if db.query(AvailableSlot).filter(AvailableSlot.date == day).first():
                continue
            set_day(db, day, DEFAULT_TIME_SLOTS, settings.DEFAULT_MAX_BOOKINGS)
            opened += 1
        print(f"✓ Opened {opened} day(s) with {len(DEFAULT_TIME_SLOTS)} slots each")

        print("\n✅ Seed data created successfully!")

    except Exception as e:
        db.rollback()
        print(f"❌ Error seeding data: {e}")
        raise
    finally:
        db.close()


if __name__ == "__main__":
    seed_data()
