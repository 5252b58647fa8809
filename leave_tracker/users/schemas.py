"""User Pydantic v2 schemas — request / response validation."""

from __future__ import annotations

from datetime import datetime
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field


# ── Requests ────────────────────────────────────────────────────────

class UserCreate(BaseModel):
    """Payload for registering the calling principal."""

    name: str = Field("", max_length=200)
    email: str = Field("", max_length=255)


class UserUpdate(BaseModel):
    """Partial profile update; absent or empty fields are left untouched."""

    name: Optional[str] = Field(None, max_length=200)
    email: Optional[str] = Field(None, max_length=255)


class UserPromote(BaseModel):
    """Admin payload for changing another user's flags."""

    is_admin: Optional[bool] = None
    is_active: Optional[bool] = None


class BalanceOverride(BaseModel):
    """Admin override of a user's available days (may be negative)."""

    available_days: float


# ── Responses ───────────────────────────────────────────────────────

class UserOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    name: str
    email: str
    is_active: bool
    is_admin: bool
    available_days: Optional[float] = None
    created_at: datetime
    updated_at: Optional[datetime] = None
