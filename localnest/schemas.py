import math
import re
from datetime import datetime, timezone
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, EmailStr, Field, field_validator

_REGISTRABLE_TYPES = {"CUSTOMER", "PROVIDER"}
_PASSWORD_RULE = re.compile(r"^(?=.*[a-z])(?=.*[A-Z])(?=.*\d)")


# ---------- auth ----------

class Register(BaseModel):
    first_name: str = Field(min_length=2, max_length=50)
    last_name: str = Field(min_length=2, max_length=50)
    email: EmailStr
    password: str = Field(min_length=6)
    phone: Optional[str] = None
    user_type: str

    @field_validator("first_name", "last_name")
    @classmethod
    def strip_names(cls, v: str) -> str:
        v = v.strip()
        if len(v) < 2:
            raise ValueError("must be between 2 and 50 characters")
        return v

    @field_validator("password")
    @classmethod
    def password_strength(cls, v: str) -> str:
        if not _PASSWORD_RULE.match(v):
            raise ValueError(
                "Password must contain at least one lowercase letter, one uppercase letter, and one number"
            )
        return v

    @field_validator("user_type")
    @classmethod
    def normalize_user_type(cls, v: str) -> str:
        vv = (v or "").strip().upper()
        if vv not in _REGISTRABLE_TYPES:
            raise ValueError("User type must be either customer or provider")
        return vv


class Login(BaseModel):
    email: str
    password: str


class ProfileUpdate(BaseModel):
    first_name: Optional[str] = None
    last_name: Optional[str] = None
    phone: Optional[str] = None
    experience: Optional[str] = None
    location: Optional[str] = None
    hourly_rate: Optional[float] = Field(default=None, ge=0)
    bio: Optional[str] = None


# ---------- providers / services ----------

class ProviderCreate(BaseModel):
    experience: str = ""
    location: str = ""
    hourly_rate: float = Field(default=0, ge=0)
    bio: Optional[str] = None
    service_ids: List[int] = Field(default_factory=list)


class ProviderUpdate(BaseModel):
    experience: Optional[str] = None
    location: Optional[str] = None
    hourly_rate: Optional[float] = Field(default=None, ge=0)
    bio: Optional[str] = None


class ServiceCreate(BaseModel):
    # all optional so the handler can answer with its own 400
    name: Optional[str] = None
    description: Optional[str] = None
    category: Optional[str] = None
    average_price: Optional[float] = Field(default=None, ge=0)


class ServiceUpdate(BaseModel):
    name: Optional[str] = None
    description: Optional[str] = None
    category: Optional[str] = None
    average_price: Optional[float] = Field(default=None, ge=0)


class AttachService(BaseModel):
    service_id: int


class CategoryRename(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    from_: Optional[str] = Field(default=None, alias="from")
    to: Optional[str] = None


# ---------- bookings ----------

class CreateBooking(BaseModel):
    provider_id: int
    service_id: int
    date: datetime
    time: Optional[str] = None
    notes: Optional[str] = Field(default=None, max_length=500)
    total_price: Optional[float] = Field(default=None, ge=0)

    @field_validator("date")
    @classmethod
    def date_in_utc(cls, v: datetime) -> datetime:
        if v.tzinfo is None:
            v = v.replace(tzinfo=timezone.utc)
        return v.astimezone(timezone.utc)


class UpdateBookingStatus(BaseModel):
    status: str


# ---------- admin ----------

class AdminLogin(BaseModel):
    email: Optional[str] = None
    password: Optional[str] = None


class RefreshTokenRequest(BaseModel):
    refresh_token: Optional[str] = None


class VerifyProvider(BaseModel):
    notes: Optional[str] = None


class RejectProvider(BaseModel):
    reason: Optional[str] = None


class AdminUserUpdate(BaseModel):
    first_name: Optional[str] = None
    last_name: Optional[str] = None
    email: Optional[EmailStr] = None
    phone: Optional[str] = None


class UserStatusUpdate(BaseModel):
    is_active: bool
    reason: Optional[str] = None


# ---------- responses ----------

class UserOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    first_name: str
    last_name: str
    name: str
    email: str
    phone: Optional[str] = None
    user_type: str
    is_active: bool
    created_at: datetime
    updated_at: datetime


class ServiceOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    name: str
    description: str
    category: str
    average_price: float
    created_at: datetime
    updated_at: datetime


class ProviderOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    user_id: int
    experience: str
    location: str
    hourly_rate: Optional[float] = None
    bio: Optional[str] = None
    rating: Optional[float] = None
    verified: bool
    verification_requested: bool
    verification_requested_at: Optional[datetime] = None
    verification_rejected_reason: Optional[str] = None
    verified_at: Optional[datetime] = None
    verified_by: Optional[int] = None


class BookingOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    customer_id: int
    provider_id: int
    service_id: int
    date: datetime
    time: Optional[str] = None
    notes: Optional[str] = None
    status: str
    total_price: Optional[float] = None
    created_at: datetime
    updated_at: datetime


class PageMeta(BaseModel):
    total: int
    page: int
    limit: int
    total_pages: int


def page_meta(total: int, page: int, limit: int) -> dict:
    return PageMeta(
        total=total,
        page=page,
        limit=limit,
        total_pages=math.ceil(total / limit) if limit else 0,
    ).model_dump()
