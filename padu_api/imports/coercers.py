"""Data type coercion for review import values."""

from __future__ import annotations

import re
from dataclasses import dataclass
from datetime import datetime, time, timezone
from enum import Enum
from typing import Any, Optional

from dateutil import parser as date_parser


@dataclass
class CoercionResult:
    """Result of coercion operation."""

    success: bool
    coerced_value: Any = None
    error: Optional[str] = None


class Provider(str, Enum):
    """Review platforms accepted by the importer."""

    GOOGLE = "google"
    TRIPADVISOR = "tripadvisor"
    BOOKING = "booking"


VALID_PROVIDERS = tuple(p.value for p in Provider)

MIN_RATING = 1
MAX_RATING = 5

INTEGER_PATTERN = re.compile(r"^[+-]?\d+$")
US_DATE_PATTERN = re.compile(r"^(\d{1,2})/(\d{1,2})/(\d{4})$")


def coerce_provider(value: Any, hints: Optional[dict] = None) -> CoercionResult:
    """Coerce value to a provider (case-insensitive, trimmed)."""
    if value is None or str(value).strip() == "":
        return CoercionResult(success=False, error="Empty value")

    str_value = str(value).strip().lower()
    if str_value not in VALID_PROVIDERS:
        return CoercionResult(
            success=False,
            error=f"Invalid provider: {str_value}. Valid values: {', '.join(VALID_PROVIDERS)}",
        )
    return CoercionResult(success=True, coerced_value=str_value)


def coerce_rating(value: Any, hints: Optional[dict] = None) -> CoercionResult:
    """Coerce value to an integer star rating in [1, 5]."""
    if value is None or str(value).strip() == "":
        return CoercionResult(success=False, error="Empty value")

    str_value = str(value).strip()
    if not INTEGER_PATTERN.match(str_value):
        return CoercionResult(
            success=False,
            error=f"Could not parse integer: {str_value}",
        )

    rating = int(str_value)
    if rating < MIN_RATING or rating > MAX_RATING:
        return CoercionResult(
            success=False,
            error=f"Rating must be between {MIN_RATING} and {MAX_RATING}",
        )
    return CoercionResult(success=True, coerced_value=rating)


def coerce_review_datetime(value: Any, hints: Optional[dict] = None) -> CoercionResult:
    """
    Coerce value to a timezone-aware UTC datetime.

    Accepts ISO-8601 dates or date-times (naive values are taken as UTC) and
    calendar-valid ``MM/DD/YYYY`` dates.
    """
    if value is None or str(value).strip() == "":
        return CoercionResult(success=False, error="Empty value")

    str_value = str(value).strip()

    match = US_DATE_PATTERN.match(str_value)
    if match:
        month, day, year = (int(part) for part in match.groups())
        try:
            parsed = datetime(year, month, day)
        except ValueError:
            return CoercionResult(
                success=False,
                error=f"Not a calendar date: {str_value}",
            )
    else:
        try:
            parsed = date_parser.isoparse(str_value)
        except (ValueError, OverflowError):
            return CoercionResult(
                success=False,
                error=f"Could not parse datetime: {str_value}",
            )
        if not isinstance(parsed, datetime):
            parsed = datetime.combine(parsed, time())

    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return CoercionResult(success=True, coerced_value=parsed.astimezone(timezone.utc))


def coerce_string(value: Any, hints: Optional[dict] = None) -> CoercionResult:
    """Coerce value to string (empty becomes None)."""
    if value is None:
        return CoercionResult(success=True, coerced_value=None)

    str_value = str(value).strip()
    if str_value == "":
        return CoercionResult(success=True, coerced_value=None)

    max_length = hints.get("max_length") if hints else None
    if max_length and len(str_value) > max_length:
        return CoercionResult(
            success=False,
            error=f"String too long: {len(str_value)} > {max_length}",
        )
    return CoercionResult(success=True, coerced_value=str_value)


def to_iso8601(value: datetime) -> str:
    """Render a datetime as an ISO-8601 UTC string with a ``Z`` suffix."""
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc).isoformat().replace("+00:00", "Z")
