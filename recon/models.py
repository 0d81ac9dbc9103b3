"""Canonical V2 daily records and V4 ping fragments."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date, datetime
from typing import Any, Dict, Mapping, Tuple


def v2_default_browser_value(value: Any) -> bool | None:
    """Map the V2 tri-state default-browser value onto the V4 boolean."""

    if isinstance(value, bool):
        return value
    if value == 1:
        return True
    if value == 0:
        return False
    return None


@dataclass(frozen=True)
class V2DailyRecord:
    """One calendar day of the legacy daily-aggregate dataset."""

    day: date
    is_default_browser: Any = None
    search_counts: Mapping[str, int] = field(default_factory=dict)
    total_time: float = 0.0
    clean_total_times: Tuple[float, ...] = ()
    aborted_total_times: Tuple[float, ...] = ()
    broken_default_browser: bool = False

    @property
    def clean_total_time(self) -> float:
        return float(sum(self.clean_total_times))

    @property
    def aborted_total_time(self) -> float:
        return float(sum(self.aborted_total_times))

    @property
    def default_browser(self) -> bool | None:
        return v2_default_browser_value(self.is_default_browser)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "day": self.day.isoformat(),
            "is_default_browser": self.is_default_browser,
            "search_counts": dict(self.search_counts),
            "total_time": self.total_time,
            "clean_total_time": self.clean_total_time,
            "clean_total_times": list(self.clean_total_times),
            "aborted_total_time": self.aborted_total_time,
            "aborted_total_times": list(self.aborted_total_times),
            "broken_default_browser": self.broken_default_browser,
        }


@dataclass(frozen=True)
class V4Fragment:
    """One submitted ping: a slice of a browser session.

    The fields after ``is_from_old_build`` are filled in by the chain walk in
    :func:`recon.chain.validate_chain`; ``None`` means "not evaluated".
    """

    ping_id: str
    session_id: str
    subsession_id: str
    creation_date: datetime
    reason: str
    total_time: float
    client_id: str | None = None
    previous_session_id: str | None = None
    previous_subsession_id: str | None = None
    subsession_counter: int | None = None
    profile_subsession_counter: int | None = None
    channel: str | None = None
    build_id: str | None = None
    version: str | None = None
    session_length: float | None = None
    subsession_length: float | None = None
    is_default_browser: bool | None = None
    search_counts: Mapping[str, int] = field(default_factory=dict)
    is_from_old_build: bool = False
    is_final_fragment: bool | None = None
    is_last_fragment: bool | None = None
    channel_switching: bool | None = None
    broken_session_chain: bool | None = None
    broken_subsession_chain: bool | None = None
    broken_profile_subsession_counter: bool | None = None
    broken_subsession_counter: bool | None = None
    is_broken: bool | None = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "ping_id": self.ping_id,
            "client_id": self.client_id,
            "creation_date": self.creation_date.isoformat(),
            "reason": self.reason,
            "channel": self.channel,
            "build_id": self.build_id,
            "version": self.version,
            "is_default_browser": self.is_default_browser,
            "session_length": self.session_length,
            "subsession_length": self.subsession_length,
            "total_time": self.total_time,
            "session_id": self.session_id,
            "previous_session_id": self.previous_session_id,
            "subsession_id": self.subsession_id,
            "previous_subsession_id": self.previous_subsession_id,
            "profile_subsession_counter": self.profile_subsession_counter,
            "subsession_counter": self.subsession_counter,
            "search_counts": dict(self.search_counts),
            "is_from_old_build": self.is_from_old_build,
            "is_final_fragment": self.is_final_fragment,
            "is_last_fragment": self.is_last_fragment,
            "channel_switching": self.channel_switching,
            "broken_session_chain": self.broken_session_chain,
            "broken_subsession_chain": self.broken_subsession_chain,
            "broken_profile_subsession_counter": self.broken_profile_subsession_counter,
            "broken_subsession_counter": self.broken_subsession_counter,
            "is_broken": self.is_broken,
        }


__all__ = ["V2DailyRecord", "V4Fragment", "v2_default_browser_value"]
