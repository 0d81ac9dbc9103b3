"""Cross-check of the default-browser signal between V2 days and V4 pings."""

from __future__ import annotations

import logging
from dataclasses import dataclass, replace
from datetime import date, timedelta
from typing import Any, Dict, Mapping, Sequence

from infra.timestamps import ONE_DAY, day_start
from recon.cutoff import is_before_cutoff, normalize_cutoff
from recon.models import V2DailyRecord, V4Fragment

LOGGER = logging.getLogger(__name__)


@dataclass(frozen=True)
class DefaultBrowserCheck:
    records: Dict[date, V2DailyRecord]
    historically_broken: bool

    @property
    def broken_days(self) -> list[date]:
        return [day for day, record in self.records.items() if record.broken_default_browser]


@dataclass(frozen=True)
class CurrentDefaultBrowser:
    v2: bool | None
    v4: bool | None

    @property
    def broken(self) -> bool:
        return self.v2 != self.v4

    def to_dict(self) -> Dict[str, Any]:
        return {"v2": self.v2, "v4": self.v4, "broken": self.broken}


def validate_default_browser(
    v2_records: Mapping[date, V2DailyRecord],
    fragments: Sequence[V4Fragment],
    cutoff: Any = None,
    *,
    window: timedelta = ONE_DAY,
) -> DefaultBrowserCheck:
    """Flag V2 days whose default-browser value no V4 ping confirms.

    The two systems sample on different cadences (daily vs. per ping), so a V2
    day is confirmed by any V4 ping within ``window`` of that day reporting the
    same value. Days before the cutoff or with an unknown V2 value are never
    flagged.
    """

    cutoff_at = normalize_cutoff(cutoff)
    checked: Dict[date, V2DailyRecord] = {}
    saw_breakage = False
    for day, record in v2_records.items():
        broken = False
        v2_time = day_start(day)
        expected = record.default_browser
        if not is_before_cutoff(v2_time, cutoff_at) and expected is not None:
            broken = not any(
                fragment.is_default_browser is expected
                for fragment in fragments
                if v2_time - window <= fragment.creation_date <= v2_time + window
            )
        if broken:
            LOGGER.warning("Default browser value %s on %s not seen in V4", expected, day.isoformat())
        saw_breakage = saw_breakage or broken
        checked[day] = replace(record, broken_default_browser=broken)
    return DefaultBrowserCheck(records=checked, historically_broken=saw_breakage)


def current_default_browser(
    v2_records: Mapping[date, V2DailyRecord],
    fragments: Sequence[V4Fragment],
) -> CurrentDefaultBrowser:
    """Most recent known V2 value next to the last V4 fragment's value."""

    v2_value = None
    for day in sorted(v2_records, reverse=True):
        v2_value = v2_records[day].default_browser
        if v2_value is not None:
            break
    v4_value = fragments[-1].is_default_browser if fragments else None
    return CurrentDefaultBrowser(v2=v2_value, v4=v4_value)


__all__ = [
    "CurrentDefaultBrowser",
    "DefaultBrowserCheck",
    "current_default_browser",
    "validate_default_browser",
]
