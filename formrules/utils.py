"""
Utility functions shared by the visibility evaluator and the validators.

Emptiness, numeric coercion and temporal parsing live here so that every
component agrees on a single definition of each.
"""

import logging
import math
import re
from datetime import datetime, date, time, timezone
from typing import Any, Optional, Union
from urllib.parse import urlparse

from flask import current_app, has_app_context


LOGGER_NAME = 'formrules'

TIME_PATTERN = re.compile(r'^(\d{1,2}):(\d{2})(?::(\d{2}))?$')
URL_SCHEME_PATTERN = re.compile(r'^[a-zA-Z][a-zA-Z0-9+.\-]*$')

# Redirect targets that could execute script or leave the web origin
BLOCKED_URL_PATTERNS = [
    re.compile(r'^javascript:', re.IGNORECASE),
    re.compile(r'^data:', re.IGNORECASE),
    re.compile(r'^vbscript:', re.IGNORECASE),
    re.compile(r'^file:', re.IGNORECASE),
    re.compile(r'^about:', re.IGNORECASE),
    re.compile(r'^blob:', re.IGNORECASE),
]
RELATIVE_PATH_PATTERN = re.compile(r'^/[a-zA-Z0-9\-_/.?=&#%]*$')

Temporal = Union[datetime, time]


def get_logger() -> logging.Logger:
    """Return the Flask app logger when running inside an app, else the package logger."""
    if has_app_context():
        return current_app.logger
    return logging.getLogger(LOGGER_NAME)


def is_value_empty(value: Any) -> bool:
    """
    Check whether an answer counts as empty.

    None, the empty string, empty lists and empty dicts are empty.
    Everything else, including 0 and False, is a real answer.
    """
    if value is None or value == '':
        return True
    if isinstance(value, (list, tuple)):
        return len(value) == 0
    if isinstance(value, dict):
        return len(value) == 0
    return False


def is_number(value: Any) -> bool:
    """
    True for int/float values that are not booleans and not NaN.

    Integers too large to convert to a float are not numbers.
    """
    if isinstance(value, bool):
        return False
    if isinstance(value, int):
        try:
            float(value)
        except OverflowError:
            return False
        return True
    if isinstance(value, float):
        return not math.isnan(value)
    return False


def coerce_to_number(value: Any) -> Optional[float]:
    """
    Coerce an answer to a number.

    Numbers pass through; strings are parsed after stripping whitespace.
    Booleans, None, empty strings and anything unparseable give None.
    """
    if is_number(value):
        return value
    if isinstance(value, str):
        stripped = value.strip()
        if not stripped:
            return None
        try:
            number = float(stripped)
        except (ValueError, OverflowError):
            return None
        if math.isnan(number) or math.isinf(number):
            return None
        return number
    return None


def format_number(value: Any) -> str:
    """Render a number the way it was authored: 1.0 prints as 1."""
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    return str(value)


def parse_date_value(value: Any) -> Optional[datetime]:
    """
    Parse a date or datetime answer.

    Accepts date/datetime objects, ISO 8601 strings (with optional Z suffix)
    and plain YYYY-MM-DD. Aware datetimes are converted to naive UTC so that
    every parsed value is comparable with every other.
    """
    parsed = None
    if isinstance(value, datetime):
        parsed = value
    elif isinstance(value, date):
        parsed = datetime(value.year, value.month, value.day)
    elif isinstance(value, str):
        str_value = value.strip()
        if not str_value:
            return None
        try:
            parsed = datetime.fromisoformat(str_value.replace('Z', '+00:00'))
        except ValueError:
            pass

        if parsed is None:
            try:
                parsed = datetime.strptime(str_value, '%Y-%m-%d')
            except ValueError:
                return None
    else:
        return None

    if parsed.tzinfo is not None:
        try:
            parsed = parsed.astimezone(timezone.utc).replace(tzinfo=None)
        except OverflowError:
            # Offset pushes the value past datetime.min / datetime.max
            return None
    return parsed


def parse_time_value(value: Any) -> Optional[time]:
    """Parse an HH:MM or HH:MM:SS answer."""
    if isinstance(value, time):
        return value.replace(tzinfo=None)
    if not isinstance(value, str):
        return None

    match = TIME_PATTERN.match(value.strip())
    if not match:
        return None

    hours, minutes, seconds = match.groups()
    try:
        return time(int(hours), int(minutes), int(seconds or 0))
    except ValueError:
        return None


def parse_temporal(value: Any, prefer_time: bool = False) -> Optional[Temporal]:
    """
    Parse a value as either a clock time or a calendar date.

    Time-of-day strings are tried first when `prefer_time` is set (the
    source field is a time field); otherwise dates are tried first.
    """
    if prefer_time:
        parsed_time = parse_time_value(value)
        if parsed_time is not None:
            return parsed_time
        return parse_date_value(value)

    parsed_date = parse_date_value(value)
    if parsed_date is not None:
        return parsed_date
    return parse_time_value(value)


def is_valid_url(value: Any) -> bool:
    """
    Check that a string parses as an absolute URL.

    Mirrors what a browser URL constructor accepts: a scheme followed by
    either a host or a path (``mailto:``), and no embedded whitespace.
    """
    if not isinstance(value, str):
        return False
    str_value = value.strip()
    if not str_value or any(ch.isspace() for ch in str_value):
        return False

    try:
        parsed = urlparse(str_value)
    except ValueError:
        return False

    if not parsed.scheme or not URL_SCHEME_PATTERN.match(parsed.scheme):
        return False

    if parsed.scheme.lower() in ('http', 'https', 'ftp', 'ws', 'wss'):
        return bool(parsed.netloc)

    return bool(parsed.netloc or parsed.path)


def check_redirect_url(url: Optional[str], allow_relative: bool = True) -> Optional[str]:
    """
    Check a post-submission redirect target.

    Returns None when the URL is acceptable (an empty URL means no redirect),
    otherwise a short reason.
    """
    if url is None or url.strip() == '':
        return None

    trimmed = url.strip()

    for pattern in BLOCKED_URL_PATTERNS:
        if pattern.match(trimmed):
            return 'URL contains potentially dangerous content'

    if trimmed.startswith('//'):
        return 'Protocol-relative URLs are not allowed'

    if trimmed.startswith('/'):
        if not allow_relative:
            return 'Relative URLs are not allowed'
        if RELATIVE_PATH_PATTERN.match(trimmed):
            return None
        return 'Invalid relative URL format'

    if not is_valid_url(trimmed):
        return 'Invalid URL format'

    if urlparse(trimmed).scheme.lower() not in ('http', 'https'):
        return 'Only HTTP and HTTPS URLs are allowed'

    return None
