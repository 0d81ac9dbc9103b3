"""Timestamp coercion and UTC day bucketing for telemetry records.

V2 records are keyed by UTC calendar day while V4 pings carry ISO creation
timestamps, so everything is funnelled through aware UTC datetimes before the
reconciliation engine compares them.
"""

from __future__ import annotations

from datetime import date, datetime, timedelta, timezone
from typing import Any

UTC = timezone.utc
ONE_DAY = timedelta(days=1)

# Numeric values above this are epoch milliseconds when epoch_unit="auto".
# 1e12 ms is 2001-09-09; epoch seconds stay well below it.
_MS_THRESHOLD = 1e12


def coerce_timestamp(
    value: Any,
    *,
    epoch_unit: str = "auto",
    index: int | None = None,
) -> datetime:
    """Convert *value* to a timezone-aware UTC datetime.

    Parameters
    ----------
    value:
        ``datetime`` (naive values are taken as UTC), ``date`` (midnight
        UTC), ``int | float`` epoch timestamps, or ISO-8601 strings. Telemetry
        payloads use both ``...Z`` suffixed strings and bare ``YYYY-MM-DD``
        day keys; both are accepted.
    epoch_unit:
        ``"auto"`` (default) treats values above 1e12 as milliseconds,
        ``"s"`` and ``"ms"`` force the unit.
    index:
        Optional position used to enrich error messages.

    Raises
    ------
    TypeError | ValueError
        If *value* cannot be interpreted as a timestamp.
    """
    if hasattr(value, "to_pydatetime"):
        value = value.to_pydatetime()

    if isinstance(value, datetime):
        if value.tzinfo is None:
            return value.replace(tzinfo=UTC)
        return value.astimezone(UTC)

    if isinstance(value, date):
        return datetime(value.year, value.month, value.day, tzinfo=UTC)

    if isinstance(value, bool):
        _raise(TypeError, "boolean is not a timestamp", index)

    if isinstance(value, (int, float)):
        seconds = _epoch_to_seconds(float(value), epoch_unit)
        return datetime.fromtimestamp(seconds, tz=UTC)

    if isinstance(value, str):
        text = value.strip()
        if not text:
            _raise(ValueError, "timestamp string cannot be empty", index)
        if text.endswith("Z"):
            text = text[:-1] + "+00:00"
        try:
            parsed = datetime.fromisoformat(text)
        except ValueError:
            if len(text) == 10:
                parsed = datetime.fromisoformat(text + "T00:00:00+00:00")
            else:
                _raise(ValueError, f"Invalid timestamp '{value}'", index)
        if parsed.tzinfo is None:
            parsed = parsed.replace(tzinfo=UTC)
        return parsed.astimezone(UTC)

    _raise(TypeError, f"Unsupported timestamp type {type(value)}", index)
    return None  # unreachable


def truncate_to_day(value: Any) -> datetime:
    """Return UTC midnight of the day containing *value*."""

    stamp = coerce_timestamp(value)
    return datetime(stamp.year, stamp.month, stamp.day, tzinfo=UTC)


def day_key(value: Any) -> date:
    """UTC calendar day used to bucket V2 days and V4 sessions."""

    return coerce_timestamp(value).date()


def day_start(day: date) -> datetime:
    return datetime(day.year, day.month, day.day, tzinfo=UTC)


def utc_now() -> datetime:
    return datetime.now(UTC)


def _epoch_to_seconds(value: float, epoch_unit: str) -> float:
    if epoch_unit == "s":
        return value
    if epoch_unit == "ms":
        return value / 1000
    if epoch_unit == "auto":
        return value / 1000 if value > _MS_THRESHOLD else value
    raise ValueError(f"Unknown epoch_unit '{epoch_unit}'; expected 'auto', 's', or 'ms'")


def _raise(
    exc_type: type[Exception],
    message: str,
    index: int | None,
) -> None:
    position = f" at index {index}" if index is not None else ""
    raise exc_type(f"{message}{position}")


__all__ = [
    "ONE_DAY",
    "UTC",
    "coerce_timestamp",
    "day_key",
    "day_start",
    "truncate_to_day",
    "utc_now",
]
