"""Shared validation helpers used by the user directory and the leave ledger."""

from __future__ import annotations

import math
from datetime import date

from email_validator import EmailNotValidError, validate_email

from leave_tracker.common.constants import SECONDS_PER_DAY


def day_difference(start: date, end: date) -> int:
    """Whole-day span between two dates (or datetimes).

    The span is rounded half-up; any non-zero span counts as at least one
    day. Identical endpoints yield 0.
    """
    delta = abs(end - start)
    if not delta:
        return 0
    days = math.floor(delta.total_seconds() / SECONDS_PER_DAY + 0.5)
    return max(days, 1)


def is_valid_email(email: str) -> bool:
    """Syntax-only email check (no DNS / deliverability lookup)."""
    if not email:
        return False
    try:
        validate_email(email, check_deliverability=False)
    except EmailNotValidError:
        return False
    return True


def normalize_email(email: str) -> str:
    return email.strip().lower()


def is_within_year(value: date, year: int) -> bool:
    return value.year == year
