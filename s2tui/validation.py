"""Input validation for values typed into dashboard forms."""

import re
from typing import Optional

_DURATION_RE = re.compile(r'(\d+)([smhdw])', re.IGNORECASE | re.ASCII)
_UNIT_SECONDS = {"s": 1, "m": 60, "h": 3600, "d": 86400, "w": 604800}

BASIN_NAME_MIN = 8
BASIN_NAME_MAX = 48
STREAM_NAME_MAX_BYTES = 512
TOKEN_ID_MAX = 96
U64_MAX = 2**64 - 1


class ValidationError(ValueError):
    """A form value could not be accepted."""


def is_digits(text: str) -> bool:
    """True for a non-empty run of ASCII digits."""
    return text.isascii() and text.isdigit()


def parse_duration(duration_str: str) -> int:
    """
    Parse a duration string into seconds.

    Supports formats: 30s, 5m, 1h, 7d, 2w, 1h30m. A bare integer is seconds.

    Raises:
        ValidationError: If format is invalid or the duration is not positive
    """
    duration_str = duration_str.strip()
    if not duration_str:
        raise ValidationError("Empty duration")

    if is_digits(duration_str):
        seconds = int(duration_str)
        if seconds <= 0:
            raise ValidationError("Duration must be positive")
        return seconds

    matches = _DURATION_RE.findall(duration_str)
    if not matches or "".join(v + u for v, u in matches).lower() != duration_str.lower():
        raise ValidationError(f"Invalid duration: {duration_str} (e.g. 30s, 5m, 7d)")

    total_seconds = sum(int(value) * _UNIT_SECONDS[unit.lower()] for value, unit in matches)
    if total_seconds <= 0:
        raise ValidationError("Duration must be positive")
    return total_seconds


def format_duration(seconds: int) -> str:
    """Inverse of parse_duration for whole units (604800 -> '1w')."""
    for unit in ("w", "d", "h", "m"):
        size = _UNIT_SECONDS[unit]
        if seconds and seconds % size == 0:
            return f"{seconds // size}{unit}"
    return f"{seconds}s"


def validate_basin_name(name: str) -> tuple[bool, str]:
    """
    Validate a basin name.

    Returns:
        Tuple of (is_valid, error_message)
    """
    if not name:
        return False, "Basin name cannot be empty"
    if len(name) < BASIN_NAME_MIN:
        return False, f"Basin name too short (min {BASIN_NAME_MIN} chars)"
    if len(name) > BASIN_NAME_MAX:
        return False, f"Basin name too long (max {BASIN_NAME_MAX} chars)"
    if not re.match(r'^[a-z0-9-]+$', name):
        return False, "Basin name must be lowercase letters, digits or -"
    if name.startswith("-") or name.endswith("-"):
        return False, "Basin name cannot start or end with -"
    return True, ""


def validate_stream_name(name: str) -> tuple[bool, str]:
    """Validate a stream name. Returns (is_valid, error_message)."""
    if not name:
        return False, "Stream name cannot be empty"
    if len(name.encode("utf-8")) > STREAM_NAME_MAX_BYTES:
        return False, f"Stream name too long (max {STREAM_NAME_MAX_BYTES} bytes)"
    return True, ""


def validate_token_id(token_id: str) -> tuple[bool, str]:
    """Validate an access token id. Returns (is_valid, error_message)."""
    if not token_id:
        return False, "Token id cannot be empty"
    if len(token_id) > TOKEN_ID_MAX:
        return False, f"Token id too long (max {TOKEN_ID_MAX} chars)"
    if not re.match(r'^[A-Za-z0-9_-]+$', token_id):
        return False, "Token id must be alphanumeric with - or _ only"
    return True, ""


def parse_u64(text: str, field_name: str, required: bool = False) -> Optional[int]:
    """Parse an unsigned integer field; empty input gives None unless required."""
    text = text.strip()
    if not text:
        if required:
            raise ValidationError(f"{field_name} is required")
        return None
    if not is_digits(text):
        raise ValidationError(f"{field_name} must be a number")
    value = int(text)
    if value > U64_MAX:
        raise ValidationError(f"{field_name} is too large")
    return value
