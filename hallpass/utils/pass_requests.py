"""
Request parsing for the pass API.

Clients send pass bodies in two shapes:

    {"studentId": 7, "passType": "nurse", "customReason": "..."}      (current)
    {"studentId": 7, "destination": "Nurse", "customDestination": ""}  (legacy)

Both are normalized into a PassRequest before anything reaches the service
layer, so the service only ever sees canonical ids and a known PassType.
"""

from dataclasses import dataclass
from datetime import datetime, time, timedelta, timezone
from typing import Optional

import pytz

from hallpass.errors import ValidationError
from hallpass.models import PassType
from hallpass.utils.constants import MAX_DB_INTEGER, MAX_EXPIRES_IN_MINUTES, MIN_DB_INTEGER


@dataclass
class PassRequest:
    student_id: int
    pass_type: PassType
    custom_reason: Optional[str] = None
    notes: Optional[str] = None
    expires_in_minutes: Optional[int] = None


@dataclass
class HistoryFilters:
    date_start: Optional[datetime] = None
    date_end: Optional[datetime] = None
    grade_id: Optional[int] = None
    teacher_id: Optional[int] = None
    pass_type: Optional[PassType] = None


def _clean_text(value, field, max_length=255):
    if value is None:
        return None
    if not isinstance(value, str):
        raise ValidationError(f"{field} must be a string.")
    value = value.strip()
    if len(value) > max_length:
        raise ValidationError(f"{field} must be at most {max_length} characters.")
    return value or None


def parse_int(value, field, required=False):
    """Coerce an id-like value to int; bools and non-numeric strings are rejected."""
    if value is None or value == '':
        if required:
            raise ValidationError(f"{field} is required.")
        return None
    if isinstance(value, bool):
        raise ValidationError(f"{field} must be an integer.")
    try:
        number = int(value)
    except (TypeError, ValueError, OverflowError):
        raise ValidationError(f"{field} must be an integer.")
    if not MIN_DB_INTEGER <= number <= MAX_DB_INTEGER:
        raise ValidationError(f"{field} is out of range.")
    return number


def _legacy_pass_type(destination):
    """Map a free-text legacy destination onto a PassType, keeping unknown text as custom."""
    try:
        return PassType.from_string(destination), None
    except ValueError:
        pass
    lowered = destination.strip().lower()
    if lowered.startswith('general'):
        return PassType.GENERAL, None
    return PassType.CUSTOM, destination.strip()


def parse_pass_request(data):
    """Validate and normalize a create-pass body. Raises ValidationError."""
    if not isinstance(data, dict):
        raise ValidationError("Request body must be a JSON object.")

    student_id = parse_int(data.get('studentId', data.get('student_id')), 'studentId', required=True)

    if 'passType' in data or 'pass_type' in data:
        raw_type = data.get('passType', data.get('pass_type'))
        if not isinstance(raw_type, str):
            raise ValidationError("passType must be a string.")
        try:
            pass_type = PassType.from_string(raw_type)
        except ValueError:
            raise ValidationError(f"Unknown passType '{raw_type}'.")
        custom_reason = _clean_text(data.get('customReason'), 'customReason')
    elif 'destination' in data:
        destination = _clean_text(data.get('destination'), 'destination')
        if not destination:
            raise ValidationError("destination is required.")
        pass_type, custom_reason = _legacy_pass_type(destination)
        override = _clean_text(data.get('customDestination'), 'customDestination')
        if override:
            custom_reason = override
    else:
        pass_type = PassType.GENERAL
        custom_reason = _clean_text(data.get('customReason'), 'customReason')

    if pass_type is PassType.CUSTOM and not custom_reason:
        raise ValidationError("customReason is required for custom passes.")

    expires_in = parse_int(data.get('expiresInMinutes'), 'expiresInMinutes')
    if expires_in is not None and not 1 <= expires_in <= MAX_EXPIRES_IN_MINUTES:
        raise ValidationError(
            f"expiresInMinutes must be between 1 and {MAX_EXPIRES_IN_MINUTES}."
        )

    return PassRequest(
        student_id=student_id,
        pass_type=pass_type,
        custom_reason=custom_reason,
        notes=_clean_text(data.get('notes'), 'notes', max_length=2000),
        expires_in_minutes=expires_in,
    )


def parse_date_bound(value, field, end_of_day=False):
    """
    Parse YYYY-MM-DD (UTC midnight, or 23:59:59 for an end bound) or a full
    ISO-8601 timestamp. Returns a naive UTC datetime for database comparison.
    """
    if not value:
        return None
    value = value.strip()
    try:
        if len(value) == 10:
            parsed = datetime.strptime(value, '%Y-%m-%d')
            if end_of_day:
                parsed = parsed.replace(hour=23, minute=59, second=59)
            return parsed
        parsed = datetime.fromisoformat(value.replace('Z', '+00:00'))
    except ValueError:
        raise ValidationError(f"Invalid {field} format")
    if parsed.tzinfo is not None:
        parsed = parsed.astimezone(timezone.utc).replace(tzinfo=None)
    return parsed


def timeframe_bounds(timeframe, tz, now=None):
    """Resolve the today/week/month report shortcuts to naive UTC bounds."""
    now_local = (now or datetime.now(timezone.utc)).astimezone(tz)
    if timeframe == 'today':
        start = tz.localize(datetime.combine(now_local.date(), time.min))
        end = tz.localize(datetime.combine(now_local.date(), time.max))
    elif timeframe == 'week':
        start, end = now_local - timedelta(days=7), now_local
    elif timeframe == 'month':
        start, end = now_local - timedelta(days=30), now_local
    else:
        raise ValidationError(f"Unknown timeframe '{timeframe}'.")
    return _naive_utc(start), _naive_utc(end)


def _naive_utc(dt):
    return dt.astimezone(pytz.utc).replace(tzinfo=None)


def parse_history_filters(args, tz=None, now=None):
    """Build HistoryFilters from request query args."""
    timeframe = (args.get('timeframe') or '').strip()
    if timeframe:
        date_start, date_end = timeframe_bounds(timeframe, tz or pytz.utc, now=now)
    else:
        date_start = parse_date_bound(args.get('dateStart'), 'dateStart')
        date_end = parse_date_bound(args.get('dateEnd'), 'dateEnd', end_of_day=True)

    if date_start and date_end and date_start > date_end:
        raise ValidationError("dateStart must not be after dateEnd")

    pass_type = None
    raw_type = (args.get('passType') or '').strip()
    if raw_type:
        try:
            pass_type = PassType.from_string(raw_type)
        except ValueError:
            raise ValidationError(f"Unknown passType '{raw_type}'.")

    return HistoryFilters(
        date_start=date_start,
        date_end=date_end,
        grade_id=parse_int(args.get('grade'), 'grade'),
        teacher_id=parse_int(args.get('teacherId'), 'teacherId'),
        pass_type=pass_type,
    )
