"""
User-related Pydantic models for request/response validation.
"""
import re
import uuid
from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional, Type

from pydantic import BaseModel, ConfigDict, EmailStr, Field, field_validator
from pydantic.alias_generators import to_camel

NAME_PATTERN = re.compile(r"^[a-zA-Z\s]+$")
PHONE_PATTERN = re.compile(r"^\+?[\d\s\-()]{10,}$")


class UserType(str, Enum):
    """The four kinds of account; each carries its own profile and claims."""
    CITIZEN = "citizen"
    EMPLOYEE = "employee"
    OFFICE = "office"
    ENVIRONMENTAL = "environmental"


class CamelModel(BaseModel):
    """Base model that speaks camelCase on the wire."""
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


def normalize_email(value: str) -> str:
    return value.strip().lower()


def validate_password_strength(value: str) -> str:
    """Require at least 8 characters with upper, lower and a digit."""
    if len(value) < 8:
        raise ValueError("Password must be at least 8 characters long")
    if not (re.search(r"[a-z]", value) and re.search(r"[A-Z]", value) and re.search(r"\d", value)):
        raise ValueError(
            "Password must contain at least one uppercase letter, one lowercase letter, and one number"
        )
    return value


def validate_person_name(value: str) -> str:
    value = value.strip()
    if not 2 <= len(value) <= 50:
        raise ValueError("Name must be between 2 and 50 characters")
    if not NAME_PATTERN.match(value):
        raise ValueError("Name can only contain letters and spaces")
    return value


def validate_phone(value: Optional[str]) -> str:
    value = (value or "").strip()
    if value and not PHONE_PATTERN.match(value):
        raise ValueError("Invalid phone number format")
    return value


# === Type-specific profiles ===
def _generated_id(prefix: str) -> str:
    return f"{prefix}{uuid.uuid4().hex[:10].upper()}"


class CitizenProfile(CamelModel):
    citizen_id: str = Field(default_factory=lambda: _generated_id("CIT"))
    reports_submitted: int = 0
    points_earned: int = 0
    impact_score: int = 0
    level: int = 1
    achievements: List[str] = Field(default_factory=list)


class EmployeeProfile(CamelModel):
    employee_id: str = Field(default_factory=lambda: _generated_id("EMP"))
    department: str = ""
    position: str = ""
    zone: str = ""
    tasks_completed: int = 0
    average_completion_time: float = 0
    efficiency: float = 0
    current_streak: int = 0
    rank: int = 0
    badge_level: str = "NOVICE"


class OfficeProfile(CamelModel):
    manager_id: str = Field(default_factory=lambda: _generated_id("MGR"))
    department: str = ""
    position: str = "Manager"
    managed_zones: List[str] = Field(default_factory=list)
    team_size: int = 0
    performance_rating: float = 0


class EnvironmentalProfile(CamelModel):
    sensor_id: str = Field(default_factory=lambda: _generated_id("ENV"))
    department: str = "Environmental Monitoring"
    position: str = "Environmental Officer"
    monitored_zones: List[str] = Field(default_factory=list)
    sensors_managed: int = 0


PROFILE_MODELS: Dict[UserType, Type[CamelModel]] = {
    UserType.CITIZEN: CitizenProfile,
    UserType.EMPLOYEE: EmployeeProfile,
    UserType.OFFICE: OfficeProfile,
    UserType.ENVIRONMENTAL: EnvironmentalProfile,
}


def build_default_profile(user_type: UserType) -> Dict[str, Any]:
    """Default profile document for a freshly registered user."""
    return PROFILE_MODELS[user_type]().model_dump(by_alias=True)


# === Requests ===
class RegisterRequest(CamelModel):
    """Registration payload."""
    email: EmailStr
    password: str
    first_name: str
    last_name: str
    user_type: UserType
    phone: Optional[str] = None

    @field_validator("email", mode="before")
    def strip_email(cls, v):
        return normalize_email(v) if isinstance(v, str) else v

    @field_validator("email")
    def lower_email(cls, v):
        return normalize_email(v)

    @field_validator("password")
    def password_strength(cls, v):
        return validate_password_strength(v)

    @field_validator("first_name", "last_name")
    def person_name(cls, v):
        return validate_person_name(v)

    @field_validator("phone")
    def phone_format(cls, v):
        return validate_phone(v)


class LoginRequest(CamelModel):
    """Login payload. Format is not checked beyond non-emptiness."""
    email: str = Field(min_length=1)
    password: str = Field(min_length=1)

    @field_validator("email")
    def normalize(cls, v):
        v = normalize_email(v)
        if not v:
            raise ValueError("Email is required")
        return v


class ProfileUpdateRequest(CamelModel):
    first_name: Optional[str] = None
    last_name: Optional[str] = None
    phone: Optional[str] = None

    @field_validator("first_name", "last_name")
    def person_name(cls, v):
        return None if v is None else validate_person_name(v)

    @field_validator("phone")
    def phone_format(cls, v):
        return None if v is None else validate_phone(v)


class ChangePasswordRequest(CamelModel):
    current_password: str = Field(min_length=1)
    new_password: str

    @field_validator("new_password")
    def password_strength(cls, v):
        return validate_password_strength(v)


# === Responses ===
class UserResponse(CamelModel):
    """Sanitized user. Never carries the password hash or lockout counters."""
    id: str
    email: str
    name: str
    first_name: str
    last_name: str
    phone: str = ""
    user_type: UserType
    profile: Dict[str, Any] = Field(default_factory=dict)
    email_verified: bool = False
    is_active: bool = True
    last_login: Optional[datetime] = None
    last_active_date: Optional[datetime] = None
    created_at: datetime

    @classmethod
    def from_user(cls, user: Any) -> "UserResponse":
        return cls(
            id=user.id,
            email=user.email,
            name=user.full_name,
            first_name=user.first_name,
            last_name=user.last_name,
            phone=user.phone,
            user_type=user.user_type,
            profile=user.profile,
            email_verified=user.email_verified,
            is_active=user.is_active,
            last_login=user.last_login,
            last_active_date=user.last_active_date,
            created_at=user.created_at,
        )


class SessionInfo(CamelModel):
    """Session information model."""
    id: str
    ip_address: Optional[str] = None
    user_agent: Optional[str] = None
    is_current: bool = False
    issued_at: datetime
    last_activity: datetime
    expires_at: datetime


class SessionStats(CamelModel):
    active_sessions: int
    max_active_sessions: int
    last_login: Optional[datetime] = None
    last_activity: Optional[datetime] = None
