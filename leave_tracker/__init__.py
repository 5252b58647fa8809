"""Leave Tracker — leave-balance and leave-request lifecycle service."""

__version__ = "1.0.0"
