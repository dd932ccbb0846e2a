from typing import List
from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    PROJECT_NAME: str = "Appointment Booking API"
    API_V1_STR: str = "/api/v1"
    DATABASE_URL: str = "sqlite:///./booking.db"
    SECRET_KEY: str = "your-secret-key-here-change-in-production"
    ALGORITHM: str = "HS256"
    ACCESS_TOKEN_EXPIRE_MINUTES: int = 30
    REFRESH_TOKEN_EXPIRE_DAYS: int = 7

    # Business calendar
    BUSINESS_TIMEZONE: str = "Europe/Madrid"  # IANA zone used for every "is it past?" decision
    DEFAULT_MAX_BOOKINGS: int = 1  # Capacity per slot when an admin opens a day without one
    BOOKING_HORIZON_DAYS: int = 30  # How far ahead the public calendar looks for open days

    CORS_ORIGINS: List[str] = [
        "http://localhost:3000",
        "http://127.0.0.1:3000",
    ]

    LOG_LEVEL: str = "INFO"
    SSE_KEEPALIVE_SECONDS: float = 30.0

    class Config:
        env_file = ".env"
        case_sensitive = True


settings = Settings()
