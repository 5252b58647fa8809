"""User router — registration, profiles, admin flag and balance management.

Routes:
    /users                — Register the calling principal, list users (admin)
    /users/{id}           — Get, update own profile, delete (admin)
    /users/{id}/promote   — Set admin/active flags (admin, not self)
    /users/{id}/balance   — Override available days (admin)
"""


from fastapi import APIRouter, Depends, Request
from sqlalchemy.ext.asyncio import AsyncSession

from leave_tracker.auth.dependencies import get_current_principal
from leave_tracker.common.rate_limit import limiter
from leave_tracker.config import settings
from leave_tracker.database import get_db
from leave_tracker.users.schemas import (
    BalanceOverride,
    UserCreate,
    UserOut,
    UserPromote,
    UserUpdate,
)
from leave_tracker.users.service import UserService

router = APIRouter(prefix="", tags=["users"])


# ── POST /users — Register ──────────────────────────────────────────

@router.post("", response_model=UserOut, status_code=201)
@limiter.limit(settings.REGISTRATION_RATE_LIMIT)
async def create_user(
    request: Request,
    body: UserCreate,
    principal: str = Depends(get_current_principal),
    db: AsyncSession = Depends(get_db),
):
    """Register the caller. The first user ever registered becomes admin."""
    return await UserService.create_user(db, principal, body)


# ── GET /users — List (admin) ───────────────────────────────────────

@router.get("", response_model=list[UserOut])
async def list_users(
    principal: str = Depends(get_current_principal),
    db: AsyncSession = Depends(get_db),
):
    return await UserService.list_users(db, principal)


# ── GET /users/{id} ─────────────────────────────────────────────────

@router.get("/{user_id}", response_model=UserOut)
async def get_user(
    user_id: str,
    db: AsyncSession = Depends(get_db),
):
    return await UserService.get_user(db, user_id)


# ── PUT /users/{id} — Update own profile ────────────────────────────

@router.put("/{user_id}", response_model=UserOut)
async def update_user(
    user_id: str,
    body: UserUpdate,
    principal: str = Depends(get_current_principal),
    db: AsyncSession = Depends(get_db),
):
    """Partial update: only the supplied, non-empty fields change."""
    return await UserService.update_profile(db, principal, user_id, body)


# ── PUT /users/{id}/promote ─────────────────────────────────────────

@router.put("/{user_id}/promote", response_model=UserOut)
async def promote_user(
    user_id: str,
    body: UserPromote,
    principal: str = Depends(get_current_principal),
    db: AsyncSession = Depends(get_db),
):
    return await UserService.promote_user(db, principal, user_id, body)


# ── PUT /users/{id}/balance ─────────────────────────────────────────

@router.put("/{user_id}/balance", response_model=UserOut)
async def override_balance(
    user_id: str,
    body: BalanceOverride,
    principal: str = Depends(get_current_principal),
    db: AsyncSession = Depends(get_db),
):
    return await UserService.override_balance(
        db, principal, user_id, body.available_days,
    )


# ── DELETE /users/{id} ──────────────────────────────────────────────

@router.delete("/{user_id}", response_model=UserOut)
async def delete_user(
    user_id: str,
    principal: str = Depends(get_current_principal),
    db: AsyncSession = Depends(get_db),
):
    return await UserService.delete_user(db, principal, user_id)
