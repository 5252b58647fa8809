"""User directory service — registration, profiles, admin flags, balances.

Business logic:
  - The first user registered into an empty directory becomes admin + active;
    everyone after that starts inactive and non-admin, pending approval
  - Email is syntax-checked and unique (case-insensitive) across all users
  - Promotion rules: admin implies active, deactivation strips admin
  - Balance adjustment is the only way the leave ledger touches a user
"""

from __future__ import annotations

import logging
import math
from datetime import datetime, timezone
from typing import Optional, Sequence

from sqlalchemy import func, select, text
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from leave_tracker.common.constants import BalanceOperation, USER_BOOTSTRAP_LOCK_KEY
from leave_tracker.common.exceptions import (
    ConflictError,
    ForbiddenException,
    InternalErrorException,
    NotFoundException,
    ValidationException,
)
from leave_tracker.common.validators import is_valid_email, normalize_email
from leave_tracker.config import settings
from leave_tracker.users.models import User
from leave_tracker.users.schemas import UserCreate, UserPromote, UserUpdate

logger = logging.getLogger(__name__)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


# ═════════════════════════════════════════════════════════════════════
# UserService
# ═════════════════════════════════════════════════════════════════════


class UserService:
    """Async operations on the user directory."""

    # ─────────────────────────────────────────────────────────────────
    # Helpers
    # ─────────────────────────────────────────────────────────────────

    @staticmethod
    async def _load(
        db: AsyncSession,
        user_id: str,
        *,
        for_update: bool = False,
    ) -> Optional[User]:
        query = select(User).where(User.id == user_id)
        if for_update:
            # Locked reads must see the committed row, not a stale identity-map copy
            query = query.with_for_update().execution_options(populate_existing=True)
        result = await db.execute(query)
        return result.scalars().first()

    @staticmethod
    async def _serialize_bootstrap(db: AsyncSession) -> None:
        """Hold a transaction-scoped lock while deciding who is the first user.

        Only PostgreSQL needs it; SQLite already serializes writers.
        """
        if db.get_bind().dialect.name != "postgresql":
            return
        await db.execute(
            text("SELECT pg_advisory_xact_lock(:key)"),
            {"key": USER_BOOTSTRAP_LOCK_KEY},
        )

    @staticmethod
    def readable_balance(user: User) -> float:
        """Return the user's available days, or 500 if the stored value is unusable."""
        current = user.available_days
        if current is None or math.isnan(current):
            raise InternalErrorException(
                f"Available days of user '{user.id}' could not be read."
            )
        return current

    @staticmethod
    async def lock_balance_holder(db: AsyncSession, user_id: str) -> User:
        """Lock a user's row and verify its balance can be adjusted.

        Callers run this before their own writes so that a missing user or
        an unreadable balance is reported before anything is persisted.
        """
        user = await UserService._load(db, user_id, for_update=True)
        if user is None:
            raise NotFoundException("User", user_id)
        UserService.readable_balance(user)
        return user

    @staticmethod
    async def _ensure_email_available(
        db: AsyncSession,
        email: str,
        *,
        exclude_id: Optional[str] = None,
    ) -> None:
        query = select(User.id).where(User.email == email)
        if exclude_id is not None:
            query = query.where(User.id != exclude_id)
        result = await db.execute(query)
        if result.scalars().first() is not None:
            raise ConflictError("email", email)

    @staticmethod
    async def require_admin(db: AsyncSession, actor_id: str) -> User:
        """Return the calling user if they are an admin, else 403."""
        actor = await UserService._load(db, actor_id)
        if actor is None or not actor.is_admin:
            raise ForbiddenException("Only administrators can perform this action.")
        return actor

    # ─────────────────────────────────────────────────────────────────
    # Create
    # ─────────────────────────────────────────────────────────────────

    @staticmethod
    async def create_user(
        db: AsyncSession,
        principal: str,
        data: UserCreate,
    ) -> User:
        """Register the calling principal as a new user."""

        errors: dict[str, list[str]] = {}
        name = (data.name or "").strip()
        if not name:
            errors["name"] = ["Name is required."]
        email = normalize_email(data.email or "")
        if not is_valid_email(email):
            errors["email"] = ["Please enter a valid email address."]
        if errors:
            raise ValidationException(errors)

        if await UserService._load(db, principal) is not None:
            raise ConflictError(
                "id", principal, detail="This principal is already registered.",
            )
        await UserService._ensure_email_available(db, email)

        # First user into an empty directory bootstraps the admin account
        await UserService._serialize_bootstrap(db)
        count_result = await db.execute(select(func.count()).select_from(User))
        is_first = count_result.scalar_one() == 0

        user = User(
            id=principal,
            name=name,
            email=email,
            is_active=is_first,
            is_admin=is_first,
            available_days=settings.DEFAULT_AVAILABLE_DAYS,
            created_at=_utcnow(),
            updated_at=None,
        )
        db.add(user)
        try:
            await db.flush()
        except IntegrityError as exc:
            await db.rollback()
            if "email" in str(exc.orig):
                raise ConflictError("email", email)
            raise ConflictError(
                "id", principal, detail="This principal is already registered.",
            )

        logger.info(
            "Registered user %s (admin=%s, active=%s)",
            user.id, user.is_admin, user.is_active,
        )
        return user

    # ─────────────────────────────────────────────────────────────────
    # Read
    # ─────────────────────────────────────────────────────────────────

    @staticmethod
    async def get_user(
        db: AsyncSession,
        user_id: str,
        *,
        for_update: bool = False,
    ) -> User:
        user = await UserService._load(db, user_id, for_update=for_update)
        if user is None:
            raise NotFoundException("User", user_id)
        return user

    @staticmethod
    async def list_users(db: AsyncSession, actor_id: str) -> Sequence[User]:
        """All users in registration order; admin only."""
        await UserService.require_admin(db, actor_id)
        result = await db.execute(select(User).order_by(User.created_at, User.id))
        return result.scalars().all()

    # ─────────────────────────────────────────────────────────────────
    # Update profile
    # ─────────────────────────────────────────────────────────────────

    @staticmethod
    async def update_profile(
        db: AsyncSession,
        actor_id: str,
        user_id: str,
        data: UserUpdate,
    ) -> User:
        """Partial-update the caller's own name and/or email."""

        user = await UserService.get_user(db, user_id)
        if actor_id != user.id:
            raise ForbiddenException("You can only update your own profile.")

        # Empty strings count as "not supplied"
        changes = {
            field: value.strip()
            for field, value in data.model_dump(exclude_unset=True).items()
            if value is not None and value.strip()
        }
        if not changes:
            return user

        if "email" in changes:
            email = normalize_email(changes["email"])
            if not is_valid_email(email):
                raise ValidationException(
                    {"email": ["Please enter a valid email address."]}
                )
            await UserService._ensure_email_available(db, email, exclude_id=user.id)
            changes["email"] = email

        for field, value in changes.items():
            setattr(user, field, value)
        user.updated_at = _utcnow()

        try:
            await db.flush()
        except IntegrityError as exc:
            await db.rollback()
            if "email" in str(exc.orig):
                raise ConflictError("email", changes.get("email", ""))
            raise

        logger.info("Updated profile of user %s: %s", user.id, sorted(changes))
        return user

    # ─────────────────────────────────────────────────────────────────
    # Promote / deactivate
    # ─────────────────────────────────────────────────────────────────

    @staticmethod
    async def promote_user(
        db: AsyncSession,
        actor_id: str,
        target_id: str,
        data: UserPromote,
    ) -> User:
        """Change another user's admin/active flags.

        Granting admin also activates the account; deactivating an account
        always strips admin rights.
        """

        await UserService.require_admin(db, actor_id)
        if actor_id == target_id:
            raise ForbiddenException("Administrators cannot change their own flags.")

        if data.is_admin is True and data.is_active is False:
            raise ValidationException(
                {"is_active": ["An administrator cannot be inactive."]}
            )

        user = await UserService.get_user(db, target_id)

        if data.is_admin is not None:
            user.is_admin = data.is_admin
            if data.is_admin:
                user.is_active = True
        if data.is_active is not None:
            user.is_active = data.is_active
            if not data.is_active:
                user.is_admin = False
        user.updated_at = _utcnow()
        await db.flush()

        logger.info(
            "User %s set flags of %s: admin=%s, active=%s",
            actor_id, user.id, user.is_admin, user.is_active,
        )
        return user

    # ─────────────────────────────────────────────────────────────────
    # Balance
    # ─────────────────────────────────────────────────────────────────

    @staticmethod
    async def adjust_balance(
        db: AsyncSession,
        user_id: str,
        days: float,
        operation: BalanceOperation,
    ) -> User:
        """Credit or debit a user's available days.

        Internal to the leave ledger: runs inside the caller's transaction
        and performs no authorization of its own.
        """

        user = await UserService.lock_balance_holder(db, user_id)
        current = user.available_days

        if operation == BalanceOperation.add:
            user.available_days = current + days
        else:
            user.available_days = current - days
        user.updated_at = _utcnow()
        await db.flush()

        logger.info(
            "Balance of user %s: %s %s day(s), %s -> %s",
            user_id, operation.value, days, current, user.available_days,
        )
        return user

    @staticmethod
    async def override_balance(
        db: AsyncSession,
        actor_id: str,
        target_id: str,
        available_days: float,
    ) -> User:
        """Admin override of a user's available days; negatives are allowed."""

        await UserService.require_admin(db, actor_id)
        if math.isnan(available_days) or math.isinf(available_days):
            raise ValidationException(
                {"available_days": ["Available days must be a finite number."]}
            )

        user = await UserService._load(db, target_id, for_update=True)
        if user is None:
            raise NotFoundException("User", target_id)

        previous = user.available_days
        user.available_days = available_days
        user.updated_at = _utcnow()
        await db.flush()

        logger.info(
            "User %s overrode balance of %s: %s -> %s",
            actor_id, target_id, previous, available_days,
        )
        return user

    # ─────────────────────────────────────────────────────────────────
    # Delete
    # ─────────────────────────────────────────────────────────────────

    @staticmethod
    async def delete_user(
        db: AsyncSession,
        actor_id: str,
        target_id: str,
    ) -> User:
        """Remove a user together with all of their leave requests."""

        await UserService.require_admin(db, actor_id)
        if actor_id == target_id:
            raise ForbiddenException("Administrators cannot delete themselves.")

        user = await UserService.get_user(db, target_id)
        await db.delete(user)
        await db.flush()

        logger.info("User %s deleted user %s", actor_id, target_id)
        return user
