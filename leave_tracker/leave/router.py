"""Leave router — request, reschedule, review, cancel and list leaves.

All endpoints require a bearer token. Admin-only endpoints are enforced by
the service layer against the caller's user record.
"""


import uuid
from typing import Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from leave_tracker.auth.dependencies import get_current_principal
from leave_tracker.database import get_db
from leave_tracker.leave.schemas import LeaveDates, LeaveOut, LeaveStatusUpdate
from leave_tracker.leave.service import LeaveService

router = APIRouter(prefix="", tags=["leaves"])


# ── POST /leaves ────────────────────────────────────────────────────

@router.post("", response_model=LeaveOut, status_code=201)
async def request_leave(
    body: LeaveDates,
    principal: str = Depends(get_current_principal),
    db: AsyncSession = Depends(get_db),
):
    """Request leave. Validates activation, balance, calendar year and overlap."""
    return await LeaveService.request_leave(db, principal, body)


# ── GET /leaves/mine ────────────────────────────────────────────────

@router.get("/mine", response_model=list[LeaveOut])
async def my_leaves(
    status: Optional[str] = Query(None, description="PENDING, APPROVED or REJECTED"),
    principal: str = Depends(get_current_principal),
    db: AsyncSession = Depends(get_db),
):
    """Get the authenticated user's leave requests."""
    return await LeaveService.list_my_leaves(db, principal, status=status)


# ── GET /leaves — all leaves (admin) ────────────────────────────────

@router.get("", response_model=list[LeaveOut])
async def list_leaves(
    user_id: Optional[str] = Query(None),
    status: Optional[str] = Query(None, description="PENDING, APPROVED or REJECTED"),
    principal: str = Depends(get_current_principal),
    db: AsyncSession = Depends(get_db),
):
    return await LeaveService.list_leaves(
        db, principal, user_id=user_id, status=status,
    )


# ── GET /leaves/{id} ────────────────────────────────────────────────

@router.get("/{leave_id}", response_model=LeaveOut)
async def get_leave(
    leave_id: uuid.UUID,
    principal: str = Depends(get_current_principal),
    db: AsyncSession = Depends(get_db),
):
    return await LeaveService.get_leave(db, leave_id, principal)


# ── PUT /leaves/{id} ────────────────────────────────────────────────

@router.put("/{leave_id}", response_model=LeaveOut)
async def update_leave(
    leave_id: uuid.UUID,
    body: LeaveDates,
    principal: str = Depends(get_current_principal),
    db: AsyncSession = Depends(get_db),
):
    """Move an own leave to new dates. Overlap and balance are not re-checked."""
    return await LeaveService.update_dates(db, leave_id, principal, body)


# ── PUT /leaves/{id}/status ─────────────────────────────────────────

@router.put("/{leave_id}/status", response_model=LeaveOut)
async def update_leave_status(
    leave_id: uuid.UUID,
    body: LeaveStatusUpdate,
    principal: str = Depends(get_current_principal),
    db: AsyncSession = Depends(get_db),
):
    """Approve or reject a leave (admin). Rejection refunds the days."""
    return await LeaveService.update_status(db, leave_id, principal, body.status)


# ── DELETE /leaves/{id} ─────────────────────────────────────────────

@router.delete("/{leave_id}", response_model=LeaveOut)
async def delete_leave(
    leave_id: uuid.UUID,
    principal: str = Depends(get_current_principal),
    db: AsyncSession = Depends(get_db),
):
    """Cancel an own PENDING leave and refund its days."""
    return await LeaveService.delete_leave(db, leave_id, principal)
