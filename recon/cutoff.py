"""Cutoff instant selection for comparing V2 and V4 histories."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date, datetime, timedelta
from typing import Any, Dict, Mapping, Sequence

from infra.timestamps import ONE_DAY, coerce_timestamp, day_start, truncate_to_day
from recon.models import V2DailyRecord, V4Fragment


@dataclass(frozen=True)
class CutoffSelection:
    cutoff: datetime | None
    oldest_v2: datetime | None
    oldest_v4: datetime | None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "cutoff": _isoformat(self.cutoff),
            "oldest_v2": _isoformat(self.oldest_v2),
            "oldest_v4": _isoformat(self.oldest_v4),
        }


def normalize_cutoff(value: Any) -> datetime | None:
    """``None`` and epoch ``0`` both mean "no cutoff"."""

    if value is None or (isinstance(value, (int, float)) and not isinstance(value, bool) and value == 0):
        return None
    return coerce_timestamp(value)


def is_before_cutoff(moment: datetime, cutoff: datetime | None) -> bool:
    return cutoff is not None and moment < cutoff


def select_cutoff(
    v2_records: Mapping[date, V2DailyRecord],
    fragments: Sequence[V4Fragment],
    *,
    proximity: timedelta = ONE_DAY,
) -> CutoffSelection:
    """Slice both histories at a roughly matching point.

    When the oldest V2 day and the oldest V4 fragment's day are within
    ``proximity`` of each other all data is considered comparable and no
    cutoff applies; otherwise the later of the two starts the comparison.
    """

    oldest_v2 = day_start(min(v2_records)) if v2_records else None
    oldest_v4 = truncate_to_day(fragments[0].creation_date) if fragments else None
    if oldest_v2 is None or oldest_v4 is None:
        return CutoffSelection(cutoff=None, oldest_v2=oldest_v2, oldest_v4=oldest_v4)
    if abs(oldest_v2 - oldest_v4) <= proximity:
        cutoff = None
    else:
        cutoff = max(oldest_v2, oldest_v4)
    return CutoffSelection(cutoff=cutoff, oldest_v2=oldest_v2, oldest_v4=oldest_v4)


def _isoformat(value: datetime | None) -> str | None:
    return None if value is None else value.isoformat()


__all__ = ["CutoffSelection", "is_before_cutoff", "normalize_cutoff", "select_cutoff"]
