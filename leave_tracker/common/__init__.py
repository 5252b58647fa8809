"""Common module — shared utilities for Leave Tracker."""

from leave_tracker.common.constants import (
    PRINCIPAL_MAX_LENGTH,
    BalanceOperation,
    LeaveStatus,
)
from leave_tracker.common.exceptions import (
    AppException,
    ConflictError,
    ForbiddenException,
    InternalErrorException,
    NotFoundException,
    ValidationException,
    register_exception_handlers,
)
from leave_tracker.common.validators import (
    day_difference,
    is_valid_email,
    is_within_year,
    normalize_email,
)

__all__ = [
    # Constants / Enums
    "BalanceOperation",
    "LeaveStatus",
    "PRINCIPAL_MAX_LENGTH",
    # Exceptions
    "AppException",
    "ConflictError",
    "ForbiddenException",
    "InternalErrorException",
    "NotFoundException",
    "ValidationException",
    "register_exception_handlers",
    # Validators
    "day_difference",
    "is_valid_email",
    "is_within_year",
    "normalize_email",
]
