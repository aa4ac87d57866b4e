"""
Common utility functions for Hall Pass Hub.

This module provides reusable helper functions for:
- Date/time formatting (ISO-8601 with UTC)
- Timezone lookup with a safe fallback
"""

import logging
from datetime import timezone

import pytz

from hallpass.utils.constants import DEFAULT_RESET_TIMEZONE

logger = logging.getLogger(__name__)


def format_utc_iso(dt):
    """Return a UTC ISO-8601 string (with trailing Z) for a datetime or None."""
    if not dt:
        return None
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    else:
        dt = dt.astimezone(timezone.utc)
    return dt.isoformat().replace("+00:00", "Z")


def get_timezone(tz_name=None):
    """Resolve a pytz timezone, falling back to the default school timezone."""
    tz_name = tz_name or DEFAULT_RESET_TIMEZONE
    try:
        return pytz.timezone(tz_name)
    except pytz.UnknownTimeZoneError:
        logger.warning(f"Invalid timezone '{tz_name}', defaulting to {DEFAULT_RESET_TIMEZONE}.")
        return pytz.timezone(DEFAULT_RESET_TIMEZONE)
