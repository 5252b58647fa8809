"""Leave service layer — request validation, balance debits/credits, lifecycle.

Business logic:
  - A request is checked in a fixed order: user exists, user is active,
    start precedes end, at least one day, enough balance, current calendar
    year, no overlap with the user's other non-rejected leaves
  - A new leave starts PENDING and its days are debited immediately
  - Moving a leave into REJECTED refunds its days; no other status change
    touches the balance
  - Only PENDING leaves can be deleted; deletion refunds the days
  - Status changes and deletes only apply to the status last read, so two
    concurrent rejections refund once
"""

from __future__ import annotations

import logging
import uuid
from datetime import datetime, timezone
from typing import Optional, Sequence

from sqlalchemy import delete, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from leave_tracker.common.constants import BalanceOperation, LeaveStatus
from leave_tracker.common.exceptions import (
    AppException,
    ConflictError,
    ForbiddenException,
    NotFoundException,
    ValidationException,
)
from leave_tracker.common.validators import day_difference, is_within_year
from leave_tracker.leave.models import Leave
from leave_tracker.leave.schemas import LeaveDates
from leave_tracker.users.models import User
from leave_tracker.users.service import UserService

logger = logging.getLogger(__name__)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


# ═════════════════════════════════════════════════════════════════════
# LeaveService
# ═════════════════════════════════════════════════════════════════════


class LeaveService:
    """Async leave operations: request, reschedule, review, cancel, list."""

    # ─────────────────────────────────────────────────────────────────
    # Helpers
    # ─────────────────────────────────────────────────────────────────

    @staticmethod
    def parse_status(value: Optional[str]) -> Optional[LeaveStatus]:
        """Map a status string (case-insensitive) onto ``LeaveStatus``."""
        if value is None:
            return None
        try:
            return LeaveStatus(value.strip().upper())
        except ValueError:
            allowed = ", ".join(s.value for s in LeaveStatus)
            raise ValidationException(
                {"status": [f"Unknown status '{value}'. Expected one of: {allowed}."]}
            )

    @staticmethod
    def _calculate_days(data: LeaveDates) -> int:
        if data.start_date >= data.end_date:
            raise ValidationException(
                {"dates": ["start_date must be before end_date."]}
            )
        days = day_difference(data.start_date, data.end_date)
        if days <= 0:
            raise ValidationException({"dates": ["Leave must be at least one day."]})
        return days

    @staticmethod
    async def _get_leave(
        db: AsyncSession,
        leave_id: uuid.UUID,
        *,
        for_update: bool = False,
    ) -> Leave:
        query = select(Leave).where(Leave.id == leave_id)
        if for_update:
            query = query.with_for_update().execution_options(populate_existing=True)
        result = await db.execute(query)
        leave = result.scalars().first()
        if leave is None:
            raise NotFoundException("Leave", str(leave_id))
        return leave

    @staticmethod
    async def _lost_race(db: AsyncSession, leave_id: uuid.UUID) -> AppException:
        """Error for a guarded write that matched no row: re-read the leave."""
        result = await db.execute(
            select(Leave)
            .where(Leave.id == leave_id)
            .execution_options(populate_existing=True)
        )
        current = result.scalars().first()
        if current is None:
            return NotFoundException("Leave", str(leave_id))
        return ConflictError(
            "status",
            current.status.value,
            detail="The leave request was changed by another request. Reload and retry.",
        )

    @staticmethod
    async def _require_active_user(
        db: AsyncSession,
        user_id: str,
        *,
        for_update: bool = False,
    ) -> User:
        user = await UserService.get_user(db, user_id, for_update=for_update)
        if not user.is_active:
            raise ForbiddenException(
                "Your account is not active yet. Ask an administrator to activate it."
            )
        return user

    # ─────────────────────────────────────────────────────────────────
    # Request Leave
    # ─────────────────────────────────────────────────────────────────

    @staticmethod
    async def request_leave(
        db: AsyncSession,
        user_id: str,
        data: LeaveDates,
    ) -> Leave:
        """Request leave for the calling user and debit the days."""

        # Row lock serializes concurrent requests for the same user
        user = await LeaveService._require_active_user(db, user_id, for_update=True)

        days = LeaveService._calculate_days(data)

        available = UserService.readable_balance(user)
        if days > available:
            raise ValidationException(
                {"balance": [
                    f"Insufficient balance. Available: {available}, "
                    f"Requested: {days}."
                ]}
            )

        year = _utcnow().year
        if not (
            is_within_year(data.start_date, year)
            and is_within_year(data.end_date, year)
        ):
            raise ValidationException(
                {"dates": [f"Leave period must be within the current calendar year ({year})."]}
            )

        overlap_result = await db.execute(
            select(Leave)
            .where(
                Leave.user_id == user_id,
                Leave.status != LeaveStatus.rejected,
                Leave.start_date <= data.end_date,
                Leave.end_date >= data.start_date,
            )
            .order_by(Leave.start_date)
            .limit(1)
        )
        clash = overlap_result.scalars().first()
        if clash is not None:
            raise ConflictError(
                "dates",
                f"{data.start_date.isoformat()}..{data.end_date.isoformat()}",
                detail="The chosen leave period overlaps with an existing leave.",
                message=(
                    f"Overlaps the {clash.status.value} leave from "
                    f"{clash.start_date.isoformat()} to {clash.end_date.isoformat()}."
                ),
            )

        leave = Leave(
            id=uuid.uuid4(),
            user_id=user_id,
            start_date=data.start_date,
            end_date=data.end_date,
            days=days,
            status=LeaveStatus.pending,
            created_at=_utcnow(),
            updated_at=None,
        )
        db.add(leave)
        await db.flush()

        await UserService.adjust_balance(db, user_id, days, BalanceOperation.subtract)

        logger.info(
            "User %s requested leave %s (%s..%s, %d day(s))",
            user_id, leave.id, leave.start_date, leave.end_date, days,
        )
        return leave

    # ─────────────────────────────────────────────────────────────────
    # Update Dates
    # ─────────────────────────────────────────────────────────────────

    @staticmethod
    async def update_dates(
        db: AsyncSession,
        leave_id: uuid.UUID,
        user_id: str,
        data: LeaveDates,
    ) -> Leave:
        """Move an own leave to new dates and recompute its day count.

        Overlap, balance and calendar-year rules are not re-checked and the
        balance is not re-adjusted for a changed day count.
        """

        leave = await LeaveService._get_leave(db, leave_id, for_update=True)
        if leave.user_id != user_id:
            raise ForbiddenException("You can only update your own leave requests.")

        days = LeaveService._calculate_days(data)

        previous_days = leave.days
        leave.start_date = data.start_date
        leave.end_date = data.end_date
        leave.days = days
        leave.updated_at = _utcnow()
        await db.flush()

        if days != previous_days:
            logger.warning(
                "Leave %s changed from %d to %d day(s); balance of user %s not re-adjusted",
                leave.id, previous_days, days, user_id,
            )
        else:
            logger.info("Leave %s moved to %s..%s", leave.id, leave.start_date, leave.end_date)
        return leave

    # ─────────────────────────────────────────────────────────────────
    # Update Status
    # ─────────────────────────────────────────────────────────────────

    @staticmethod
    async def update_status(
        db: AsyncSession,
        leave_id: uuid.UUID,
        actor_id: str,
        status: LeaveStatus,
    ) -> Leave:
        """Set a leave's status (admin only). Entering REJECTED refunds the days."""

        await UserService.require_admin(db, actor_id)
        leave = await LeaveService._get_leave(db, leave_id, for_update=True)

        old_status = leave.status
        refund = status == LeaveStatus.rejected and old_status != LeaveStatus.rejected
        if refund:
            await UserService.lock_balance_holder(db, leave.user_id)

        # Guarded on the status just read, so a concurrent change cannot refund twice
        result = await db.execute(
            update(Leave)
            .where(Leave.id == leave.id, Leave.status == old_status)
            .values(status=status, updated_at=_utcnow())
        )
        if result.rowcount != 1:
            raise await LeaveService._lost_race(db, leave_id)

        if refund:
            await UserService.adjust_balance(
                db, leave.user_id, leave.days, BalanceOperation.add,
            )

        logger.info(
            "User %s changed leave %s status %s -> %s",
            actor_id, leave.id, old_status.value, status.value,
        )
        return leave

    # ─────────────────────────────────────────────────────────────────
    # Delete Leave
    # ─────────────────────────────────────────────────────────────────

    @staticmethod
    async def delete_leave(
        db: AsyncSession,
        leave_id: uuid.UUID,
        user_id: str,
    ) -> Leave:
        """Cancel an own PENDING leave and refund its days."""

        leave = await LeaveService._get_leave(db, leave_id, for_update=True)
        if leave.user_id != user_id:
            raise ForbiddenException("You can only delete your own leave requests.")

        if leave.status != LeaveStatus.pending:
            raise ConflictError(
                "status",
                leave.status.value,
                detail=f"Cannot delete a leave request with status '{leave.status.value}'.",
            )

        await UserService.lock_balance_holder(db, leave.user_id)

        result = await db.execute(
            delete(Leave)
            .where(Leave.id == leave.id, Leave.status == LeaveStatus.pending)
            .execution_options(synchronize_session=False)
        )
        if result.rowcount != 1:
            raise await LeaveService._lost_race(db, leave_id)
        db.expunge(leave)

        await UserService.adjust_balance(
            db, leave.user_id, leave.days, BalanceOperation.add,
        )

        logger.info("User %s deleted pending leave %s", user_id, leave.id)
        return leave

    # ─────────────────────────────────────────────────────────────────
    # Read
    # ─────────────────────────────────────────────────────────────────

    @staticmethod
    async def get_leave(
        db: AsyncSession,
        leave_id: uuid.UUID,
        actor_id: str,
    ) -> Leave:
        """Owner or an administrator may read a single leave."""

        leave = await LeaveService._get_leave(db, leave_id)
        if leave.user_id != actor_id:
            await UserService.require_admin(db, actor_id)
        return leave

    @staticmethod
    async def list_my_leaves(
        db: AsyncSession,
        user_id: str,
        *,
        status: Optional[str] = None,
    ) -> Sequence[Leave]:
        """The caller's leaves, optionally restricted to one status."""

        status_filter = LeaveService.parse_status(status)
        await LeaveService._require_active_user(db, user_id)

        query = (
            select(Leave)
            .where(Leave.user_id == user_id)
            .order_by(Leave.start_date, Leave.created_at)
        )
        if status_filter is not None:
            query = query.where(Leave.status == status_filter)

        result = await db.execute(query)
        return result.scalars().all()

    @staticmethod
    async def list_leaves(
        db: AsyncSession,
        actor_id: str,
        *,
        user_id: Optional[str] = None,
        status: Optional[str] = None,
    ) -> Sequence[Leave]:
        """Every leave in the ledger (admin only), optionally filtered."""

        status_filter = LeaveService.parse_status(status)
        await UserService.require_admin(db, actor_id)

        query = select(Leave).order_by(Leave.start_date, Leave.created_at)
        if user_id:
            query = query.where(Leave.user_id == user_id)
        if status_filter is not None:
            query = query.where(Leave.status == status_filter)

        result = await db.execute(query)
        return result.scalars().all()
