"""Enums and constants for Leave Tracker."""

from __future__ import annotations

import enum


# ── Leave ───────────────────────────────────────────────────────────

class LeaveStatus(str, enum.Enum):
    pending = "PENDING"
    approved = "APPROVED"
    rejected = "REJECTED"


# ── Balance ─────────────────────────────────────────────────────────

class BalanceOperation(str, enum.Enum):
    add = "ADD"
    subtract = "SUBTRACT"


# ── Misc constants ──────────────────────────────────────────────────

PRINCIPAL_MAX_LENGTH = 128

# pg_advisory_xact_lock key guarding first-admin bootstrap
USER_BOOTSTRAP_LOCK_KEY = 0x1EA7E
SECONDS_PER_DAY = 24 * 60 * 60
