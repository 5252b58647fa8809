"""Leave Pydantic v2 schemas — request / response validation.

Date ordering and calendar rules are enforced by the service so that they
surface as the same validation errors over HTTP and in direct calls.
"""

from __future__ import annotations

import uuid
from datetime import date, datetime
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field

from leave_tracker.common.constants import LeaveStatus


# ═════════════════════════════════════════════════════════════════════
# Requests
# ═════════════════════════════════════════════════════════════════════


class LeaveDates(BaseModel):
    """Payload for requesting a leave or moving its dates."""

    start_date: date = Field(..., description="First day of the leave")
    end_date: date = Field(..., description="Last day of the leave; must be after start_date")


class LeaveStatusUpdate(BaseModel):
    """Admin payload for changing a leave's status."""

    status: LeaveStatus


# ═════════════════════════════════════════════════════════════════════
# Responses
# ═════════════════════════════════════════════════════════════════════


class LeaveOut(BaseModel):
    """Full leave representation."""

    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    user_id: str
    start_date: date
    end_date: date
    days: int
    status: LeaveStatus
    created_at: datetime
    updated_at: Optional[datetime] = None
