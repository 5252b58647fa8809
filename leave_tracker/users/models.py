"""User directory ORM model."""

from __future__ import annotations

from datetime import datetime
from typing import TYPE_CHECKING, Optional

import sqlalchemy as sa
from sqlalchemy.orm import Mapped, mapped_column, relationship

from leave_tracker.common.constants import PRINCIPAL_MAX_LENGTH
from leave_tracker.database import Base

if TYPE_CHECKING:
    from leave_tracker.leave.models import Leave


class User(Base):
    """Registered user; ``id`` is the caller's principal."""

    __tablename__ = "users"

    id: Mapped[str] = mapped_column(
        sa.String(PRINCIPAL_MAX_LENGTH), primary_key=True,
    )
    name: Mapped[str] = mapped_column(sa.String(200), nullable=False)
    email: Mapped[str] = mapped_column(
        sa.String(255), unique=True, index=True, nullable=False,
    )
    is_active: Mapped[bool] = mapped_column(
        sa.Boolean, nullable=False, default=False,
    )
    is_admin: Mapped[bool] = mapped_column(
        sa.Boolean, nullable=False, default=False,
    )
    available_days: Mapped[Optional[float]] = mapped_column(sa.Float)
    created_at: Mapped[datetime] = mapped_column(
        sa.DateTime(timezone=True), server_default=sa.func.now(),
    )
    updated_at: Mapped[Optional[datetime]] = mapped_column(
        sa.DateTime(timezone=True),
    )

    # ── Relationships ───────────────────────────────────────────────
    leaves: Mapped[list[Leave]] = relationship(
        back_populates="user",
        cascade="all, delete-orphan",
    )

    def __repr__(self) -> str:
        return f"<User {self.id!r} {self.email!r}>"
