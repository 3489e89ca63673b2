import datetime
from functools import lru_cache
from typing import List

from pydantic import BaseModel
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", extra="ignore")

    APP_NAME: str = "ATCL Leave System"
    COMPANY_NAME: str = "Aspiring Technologies Company Limited"

    # Security
    SECRET_KEY: str = "your-strong-secret-key"
    ALGORITHM: str = "HS256"
    ACCESS_TOKEN_EXPIRE_MINUTES: int = 60
    COOKIE_SECURE: bool = True

    # OTP
    OTP_LENGTH: int = 6
    OTP_TTL_MINUTES: int = 10
    OTP_DEMO_ECHO: bool = True  # return the code in the response body

    # Rate limits (slowapi syntax)
    LOGIN_RATE_LIMIT: str = "10/minute"
    OTP_RATE_LIMIT: str = "5/minute"

    DEFAULT_USER_PASSWORD: str = "password123"
    SEED_DEMO_DATA: bool = True

    CERTIFICATE_PREFIX: str = "ATCL_Leave_Request"
    LOG_LEVEL: str = "INFO"


@lru_cache
def get_settings() -> Settings:
    return Settings()


class LeaveQuotas(BaseModel):
    """Annual entitlement in days per leave type."""

    annual: int = 30
    sick: int = 15
    emergency: int = 5
    maternity: int = 90
    hajj: int = 21
    unpaid: int = 30


class Holiday(BaseModel):
    id: int
    name: str
    date: datetime.date
    type: str = "National"


DEFAULT_HOLIDAYS: List[Holiday] = [
    Holiday(id=1, name="New Year's Day", date=datetime.date(2024, 1, 1), type="National"),
    Holiday(id=2, name="Saudi National Day", date=datetime.date(2024, 9, 23), type="National"),
    Holiday(id=3, name="Eid Al-Fitr", date=datetime.date(2024, 4, 10), type="Religious"),
    Holiday(id=4, name="Eid Al-Adha", date=datetime.date(2024, 6, 16), type="Religious"),
]
