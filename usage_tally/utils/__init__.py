"""Utility modules for the usage tally engine."""

from .clock import ApplicationClock, InvalidRangeError, month_id
from .key_variants import wildcard_variants
from .logging_config import CloudWatchHandler, configure_logging

__all__ = [
    "ApplicationClock",
    "InvalidRangeError",
    "month_id",
    "wildcard_variants",
    "CloudWatchHandler",
    "configure_logging",
]
