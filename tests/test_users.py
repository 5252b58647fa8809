"""User directory tests — registration, profiles, flags, balances, deletion.

Service-layer tests run against SQLite via the shared conftest.py fixtures.
"""

from __future__ import annotations

import math
from unittest.mock import AsyncMock, MagicMock, patch

import pytest
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from leave_tracker.common.constants import (
    USER_BOOTSTRAP_LOCK_KEY,
    BalanceOperation,
    LeaveStatus,
)
from leave_tracker.common.exceptions import (
    ConflictError,
    ForbiddenException,
    InternalErrorException,
    NotFoundException,
    ValidationException,
)
from leave_tracker.leave.models import Leave
from leave_tracker.users.schemas import UserCreate, UserPromote, UserUpdate
from leave_tracker.users.service import UserService
from tests.conftest import day, seed_leave, seed_user


# ═════════════════════════════════════════════════════════════════════
# 1. Registration
# ═════════════════════════════════════════════════════════════════════


class TestCreateUser:

    async def test_first_user_becomes_active_admin(self, db: AsyncSession):
        user = await UserService.create_user(
            db, "alice", UserCreate(name="Alice", email="alice@acme.io"),
        )
        assert user.id == "alice"
        assert user.is_admin is True
        assert user.is_active is True
        assert user.available_days == 21

    async def test_later_users_start_inactive(self, db: AsyncSession):
        await UserService.create_user(
            db, "alice", UserCreate(name="Alice", email="alice@acme.io"),
        )
        bob = await UserService.create_user(
            db, "bob", UserCreate(name="Bob", email="bob@acme.io"),
        )
        assert bob.is_admin is False
        assert bob.is_active is False
        assert bob.available_days == 21

    async def test_email_is_normalized(self, db: AsyncSession):
        user = await UserService.create_user(
            db, "alice", UserCreate(name=" Alice ", email=" Alice@ACME.io "),
        )
        assert user.name == "Alice"
        assert user.email == "alice@acme.io"

    async def test_duplicate_principal_conflicts(self, db: AsyncSession):
        await UserService.create_user(
            db, "alice", UserCreate(name="Alice", email="alice@acme.io"),
        )
        with pytest.raises(ConflictError) as exc_info:
            await UserService.create_user(
                db, "alice", UserCreate(name="Alice", email="other@acme.io"),
            )
        assert "id" in exc_info.value.errors

    async def test_duplicate_email_conflicts_case_insensitively(self, db: AsyncSession):
        await UserService.create_user(
            db, "alice", UserCreate(name="Alice", email="alice@acme.io"),
        )
        with pytest.raises(ConflictError) as exc_info:
            await UserService.create_user(
                db, "bob", UserCreate(name="Bob", email="ALICE@acme.io"),
            )
        assert "email" in exc_info.value.errors

    async def test_missing_name_and_bad_email_reported_together(self, db: AsyncSession):
        with pytest.raises(ValidationException) as exc_info:
            await UserService.create_user(
                db, "alice", UserCreate(name="   ", email="nope"),
            )
        assert set(exc_info.value.errors) == {"name", "email"}

    async def test_nothing_persisted_on_validation_failure(self, db: AsyncSession):
        with pytest.raises(ValidationException):
            await UserService.create_user(db, "alice", UserCreate(name="Alice"))
        with pytest.raises(NotFoundException):
            await UserService.get_user(db, "alice")


# ═════════════════════════════════════════════════════════════════════
# 2. Read
# ═════════════════════════════════════════════════════════════════════


class TestReadUsers:

    async def test_get_unknown_user(self, db: AsyncSession):
        with pytest.raises(NotFoundException):
            await UserService.get_user(db, "ghost")

    async def test_list_users_admin_only(self, db: AsyncSession):
        await seed_user(db, "alice", is_admin=True)
        await seed_user(db, "bob")

        users = await UserService.list_users(db, "alice")
        assert [u.id for u in users] == ["alice", "bob"]

        with pytest.raises(ForbiddenException):
            await UserService.list_users(db, "bob")

    async def test_unregistered_caller_is_not_admin(self, db: AsyncSession):
        with pytest.raises(ForbiddenException):
            await UserService.require_admin(db, "ghost")


# ═════════════════════════════════════════════════════════════════════
# 3. Profile updates
# ═════════════════════════════════════════════════════════════════════


class TestUpdateProfile:

    async def test_partial_update(self, db: AsyncSession):
        await seed_user(db, "bob", name="Bob", email="bob@acme.io")

        user = await UserService.update_profile(
            db, "bob", "bob", UserUpdate(name="Robert"),
        )
        assert user.name == "Robert"
        assert user.email == "bob@acme.io"
        assert user.updated_at is not None

    async def test_empty_strings_are_ignored(self, db: AsyncSession):
        await seed_user(db, "bob", name="Bob", email="bob@acme.io")

        user = await UserService.update_profile(
            db, "bob", "bob", UserUpdate(name="", email="  "),
        )
        assert user.name == "Bob"
        assert user.email == "bob@acme.io"

    async def test_cannot_update_someone_else(self, db: AsyncSession):
        await seed_user(db, "alice", is_admin=True)
        await seed_user(db, "bob")

        with pytest.raises(ForbiddenException):
            await UserService.update_profile(
                db, "alice", "bob", UserUpdate(name="Hacked"),
            )

    async def test_invalid_email_rejected(self, db: AsyncSession):
        await seed_user(db, "bob")
        with pytest.raises(ValidationException):
            await UserService.update_profile(
                db, "bob", "bob", UserUpdate(email="bob-at-acme"),
            )

    async def test_email_taken_by_another_user(self, db: AsyncSession):
        await seed_user(db, "alice", email="alice@acme.io")
        await seed_user(db, "bob", email="bob@acme.io")

        with pytest.raises(ConflictError):
            await UserService.update_profile(
                db, "bob", "bob", UserUpdate(email="Alice@acme.io"),
            )

    async def test_keeping_own_email_is_allowed(self, db: AsyncSession):
        await seed_user(db, "bob", email="bob@acme.io")
        user = await UserService.update_profile(
            db, "bob", "bob", UserUpdate(email="BOB@acme.io"),
        )
        assert user.email == "bob@acme.io"


# ═════════════════════════════════════════════════════════════════════
# 4. Promote / deactivate
# ═════════════════════════════════════════════════════════════════════


class TestPromoteUser:

    async def test_activate(self, db: AsyncSession):
        await seed_user(db, "alice", is_admin=True)
        await seed_user(db, "bob", is_active=False)

        bob = await UserService.promote_user(
            db, "alice", "bob", UserPromote(is_active=True),
        )
        assert bob.is_active is True
        assert bob.is_admin is False

    async def test_granting_admin_activates(self, db: AsyncSession):
        await seed_user(db, "alice", is_admin=True)
        await seed_user(db, "bob", is_active=False)

        bob = await UserService.promote_user(
            db, "alice", "bob", UserPromote(is_admin=True),
        )
        assert bob.is_admin is True
        assert bob.is_active is True

    async def test_deactivating_strips_admin(self, db: AsyncSession):
        await seed_user(db, "alice", is_admin=True)
        await seed_user(db, "bob", is_admin=True)

        bob = await UserService.promote_user(
            db, "alice", "bob", UserPromote(is_active=False),
        )
        assert bob.is_active is False
        assert bob.is_admin is False

    async def test_contradictory_flags_rejected(self, db: AsyncSession):
        await seed_user(db, "alice", is_admin=True)
        await seed_user(db, "bob")

        with pytest.raises(ValidationException):
            await UserService.promote_user(
                db, "alice", "bob", UserPromote(is_admin=True, is_active=False),
            )

    async def test_cannot_change_own_flags(self, db: AsyncSession):
        await seed_user(db, "alice", is_admin=True)
        with pytest.raises(ForbiddenException):
            await UserService.promote_user(
                db, "alice", "alice", UserPromote(is_admin=False),
            )

    async def test_non_admin_cannot_promote(self, db: AsyncSession):
        await seed_user(db, "bob")
        await seed_user(db, "carol", is_active=False)
        with pytest.raises(ForbiddenException):
            await UserService.promote_user(
                db, "bob", "carol", UserPromote(is_active=True),
            )

    async def test_unknown_target(self, db: AsyncSession):
        await seed_user(db, "alice", is_admin=True)
        with pytest.raises(NotFoundException):
            await UserService.promote_user(
                db, "alice", "ghost", UserPromote(is_active=True),
            )


# ═════════════════════════════════════════════════════════════════════
# 5. Balance
# ═════════════════════════════════════════════════════════════════════


class TestBalance:

    async def test_subtract_and_add(self, db: AsyncSession):
        await seed_user(db, "bob", available_days=21)

        user = await UserService.adjust_balance(db, "bob", 4, BalanceOperation.subtract)
        assert user.available_days == 17
        user = await UserService.adjust_balance(db, "bob", 4, BalanceOperation.add)
        assert user.available_days == 21

    async def test_unknown_user(self, db: AsyncSession):
        with pytest.raises(NotFoundException):
            await UserService.adjust_balance(db, "ghost", 1, BalanceOperation.add)

    async def test_unreadable_balance_is_internal_error(self, db: AsyncSession):
        await seed_user(db, "bob", available_days=None)
        with pytest.raises(InternalErrorException):
            await UserService.adjust_balance(db, "bob", 1, BalanceOperation.add)

    async def test_override_allows_negative(self, db: AsyncSession):
        await seed_user(db, "alice", is_admin=True)
        await seed_user(db, "bob")

        bob = await UserService.override_balance(db, "alice", "bob", -2.5)
        assert bob.available_days == -2.5

    async def test_override_rejects_non_finite(self, db: AsyncSession):
        await seed_user(db, "alice", is_admin=True)
        await seed_user(db, "bob")

        with pytest.raises(ValidationException):
            await UserService.override_balance(db, "alice", "bob", math.inf)

    async def test_override_admin_only(self, db: AsyncSession):
        await seed_user(db, "bob")
        with pytest.raises(ForbiddenException):
            await UserService.override_balance(db, "bob", "bob", 100)


# ═════════════════════════════════════════════════════════════════════
# 6. Delete
# ═════════════════════════════════════════════════════════════════════


class TestDeleteUser:

    async def test_delete_removes_leaves(self, db: AsyncSession):
        await seed_user(db, "alice", is_admin=True)
        await seed_user(db, "bob")
        await seed_leave(db, "bob", day(2, 2), day(2, 4))
        await seed_leave(db, "bob", day(3, 2), day(3, 4), status=LeaveStatus.approved)

        await UserService.delete_user(db, "alice", "bob")

        with pytest.raises(NotFoundException):
            await UserService.get_user(db, "bob")
        result = await db.execute(select(Leave).where(Leave.user_id == "bob"))
        assert result.scalars().all() == []

    async def test_cannot_delete_self(self, db: AsyncSession):
        await seed_user(db, "alice", is_admin=True)
        with pytest.raises(ForbiddenException):
            await UserService.delete_user(db, "alice", "alice")

    async def test_non_admin_cannot_delete(self, db: AsyncSession):
        await seed_user(db, "bob")
        await seed_user(db, "carol")
        with pytest.raises(ForbiddenException):
            await UserService.delete_user(db, "bob", "carol")


# ═════════════════════════════════════════════════════════════════════
# 7. First-admin bootstrap serialization
# ═════════════════════════════════════════════════════════════════════


class TestBootstrapLock:

    async def test_postgres_takes_advisory_lock(self):
        session = MagicMock()
        session.get_bind.return_value.dialect.name = "postgresql"
        session.execute = AsyncMock()

        await UserService._serialize_bootstrap(session)

        statement, params = session.execute.await_args.args
        assert "pg_advisory_xact_lock" in str(statement)
        assert params == {"key": USER_BOOTSTRAP_LOCK_KEY}

    async def test_sqlite_skips_lock(self):
        session = MagicMock()
        session.get_bind.return_value.dialect.name = "sqlite"
        session.execute = AsyncMock()

        await UserService._serialize_bootstrap(session)

        session.execute.assert_not_awaited()

    async def test_lock_taken_before_first_user_decision(self, db: AsyncSession):
        calls: list[str] = []
        original_execute = db.execute

        async def _recording_execute(statement, *args, **kwargs):
            calls.append(str(statement))
            return await original_execute(statement, *args, **kwargs)

        async def _lock(session):
            calls.append("LOCK")

        with patch.object(db, "execute", new=_recording_execute), \
                patch.object(UserService, "_serialize_bootstrap", new=_lock):
            await UserService.create_user(
                db, "alice", UserCreate(name="Alice", email="alice@acme.io"),
            )

        lock_at = calls.index("LOCK")
        count_at = next(i for i, sql in enumerate(calls) if "count(" in sql.lower())
        assert lock_at < count_at

    async def test_second_registration_sees_committed_admin(self, file_session_factory):
        async with file_session_factory() as first:
            await UserService.create_user(
                first, "alice", UserCreate(name="Alice", email="alice@acme.io"),
            )
            await first.commit()

        async with file_session_factory() as second:
            bob = await UserService.create_user(
                second, "bob", UserCreate(name="Bob", email="bob@acme.io"),
            )
            await second.commit()

        assert bob.is_admin is False
        assert bob.is_active is False
