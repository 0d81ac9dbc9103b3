"""Greedy pairing of V2 session-duration samples with V4 sessions.

V4 fragments are first reduced to one record per session and bucketed by the
UTC day the session started. Each V2 day's duration samples are then paired
with same-day V4 sessions, first match wins. The heuristic is deliberately
greedy; downstream tolerances are calibrated against its match counts.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import date, datetime, timedelta
from typing import Any, Callable, Dict, FrozenSet, Iterable, List, Mapping, Sequence, Set, Tuple

from infra.timestamps import day_key, day_start, utc_now
from recon.config import ABORT_REASON, GATHER_REASON
from recon.cutoff import is_before_cutoff, normalize_cutoff
from recon.models import V2DailyRecord, V4Fragment

LOGGER = logging.getLogger(__name__)

DEFAULT_TOLERANCE_SECONDS = 5.0

TOTAL_FIELDS = (
    "total_times",
    "matched_total_times",
    "clean_total_times",
    "matched_clean_total_times",
    "aborted_total_times",
    "matched_aborted_total_times",
    "session_length",
    "matched_clean_session_length",
    "subsession_length",
    "matched_clean_subsession_length",
)


@dataclass(frozen=True)
class V4Session:
    """All fragments of one V4 session reduced to a single record."""

    session_id: str
    start_time: datetime
    total_time: float
    aborted: bool
    reason: str
    session_length: float
    subsession_length: float
    search_counts: Mapping[str, int] = field(default_factory=dict)


@dataclass(frozen=True)
class MatchupEntry:
    """At most one V2 sample next to at most one V4 session for a day."""

    start_time: datetime | None
    total_time_v2: float | None
    total_time_v4: float | None
    aborted: bool
    broken: bool
    session_id: str | None = None
    session_length: float | None = None
    subsession_length: float | None = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "start_time": None if self.start_time is None else self.start_time.isoformat(),
            "total_time_v2": self.total_time_v2,
            "total_time_v4": self.total_time_v4,
            "aborted": self.aborted,
            "broken": self.broken,
            "session_id": self.session_id,
            "session_length": self.session_length,
            "subsession_length": self.subsession_length,
        }


@dataclass(frozen=True)
class SessionMatchup:
    sessions: Dict[date, List[MatchupEntry]]
    missing_in_v2_count: int
    missing_in_v4_count: int
    matched_session_ids: FrozenSet[str]
    totals: Dict[str, Tuple[float, float]]

    @property
    def entries(self) -> List[MatchupEntry]:
        return [entry for day_entries in self.sessions.values() for entry in day_entries]

    @property
    def matched_count(self) -> int:
        return sum(1 for entry in self.entries if not entry.broken)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "missing_in_v2_count": self.missing_in_v2_count,
            "missing_in_v4_count": self.missing_in_v4_count,
            "matched_count": self.matched_count,
            "sessions": {
                day.isoformat(): [entry.to_dict() for entry in entries]
                for day, entries in self.sessions.items()
            },
            "totals": {name: list(pair) for name, pair in self.totals.items()},
        }


def build_v4_sessions(
    fragments: Sequence[V4Fragment],
    *,
    now: datetime | None = None,
    abort_reason: str = ABORT_REASON,
    gather_reason: str = GATHER_REASON,
) -> Dict[date, List[V4Session]]:
    """Reduce annotated fragments to sessions bucketed by UTC start day.

    A session's start is its terminal fragment's creation time minus its total
    time. The still-open session (terminated by a gather) has no meaningful
    start and is anchored to ``now``.
    """

    anchor = now or utc_now()
    subsession_totals: Dict[str, float] = {}
    for fragment in fragments:
        subsession_totals[fragment.session_id] = (
            subsession_totals.get(fragment.session_id, 0.0) + (fragment.subsession_length or 0.0)
        )

    terminals: Dict[str, V4Fragment] = {}
    for fragment in fragments:
        if fragment.is_last_fragment:
            terminals[fragment.session_id] = fragment

    by_day: Dict[date, List[V4Session]] = {}
    for session_id, terminal in terminals.items():
        if terminal.reason == gather_reason:
            start_time = anchor
        else:
            start_time = terminal.creation_date - timedelta(seconds=terminal.total_time)
        subsession_length = subsession_totals[session_id]
        # Builds predating sessionLength only report subsession lengths.
        session_length = terminal.session_length
        if session_length is None:
            session_length = subsession_length
        session = V4Session(
            session_id=session_id,
            start_time=start_time,
            total_time=terminal.total_time,
            aborted=terminal.reason == abort_reason,
            reason=terminal.reason,
            session_length=session_length,
            subsession_length=subsession_length,
            search_counts=dict(terminal.search_counts),
        )
        by_day.setdefault(day_key(start_time), []).append(session)
    return by_day


def match_sessions(
    v2_records: Mapping[date, V2DailyRecord],
    fragments: Sequence[V4Fragment],
    cutoff: Any = None,
    *,
    tolerance_seconds: float = DEFAULT_TOLERANCE_SECONDS,
    now: datetime | None = None,
    abort_reason: str = ABORT_REASON,
    gather_reason: str = GATHER_REASON,
) -> SessionMatchup:
    """Pair V2 duration samples with V4 sessions day by day.

    Days are processed newest first. Within a day clean samples come before
    aborted ones, and each takes the first unclaimed same-day V4 session with
    the same aborted flag; clean samples must also agree on total time within
    ``tolerance_seconds``. Aborted durations are unreliable in V2 and match on
    the flag alone. A claimed session stays claimed for the whole run.
    """

    cutoff_at = normalize_cutoff(cutoff)
    v4_by_day = build_v4_sessions(
        fragments,
        now=now,
        abort_reason=abort_reason,
        gather_reason=gather_reason,
    )
    v2_days = [day for day, record in v2_records.items() if record.total_time > 0]
    days = sorted(set(v4_by_day) | set(v2_days), reverse=True)

    sessions: Dict[date, List[MatchupEntry]] = {}
    matched_ids: Set[str] = set()
    missing_in_v2 = 0
    missing_in_v4 = 0

    for day in days:
        if is_before_cutoff(day_start(day), cutoff_at):
            continue
        candidates = v4_by_day.get(day, [])
        entries: List[MatchupEntry] = []

        record = v2_records.get(day)
        if record is not None:
            samples = [(value, False) for value in record.clean_total_times]
            samples += [(value, True) for value in record.aborted_total_times]
            for value, aborted in samples:
                match = _first_match(candidates, value, aborted, matched_ids, tolerance_seconds)
                if match is None:
                    missing_in_v4 += 1
                    entries.append(
                        MatchupEntry(
                            start_time=None,
                            total_time_v2=value,
                            total_time_v4=None,
                            aborted=aborted,
                            broken=True,
                        )
                    )
                    continue
                matched_ids.add(match.session_id)
                entries.append(
                    MatchupEntry(
                        start_time=match.start_time,
                        total_time_v2=value,
                        total_time_v4=match.total_time,
                        aborted=aborted,
                        broken=False,
                        session_id=match.session_id,
                        session_length=match.session_length,
                        subsession_length=match.subsession_length,
                    )
                )

        unmatched = [session for session in candidates if session.session_id not in matched_ids]
        missing_in_v2 += len(unmatched)
        for session in unmatched:
            entries.append(
                MatchupEntry(
                    start_time=session.start_time,
                    total_time_v2=None,
                    total_time_v4=session.total_time,
                    aborted=session.aborted,
                    broken=True,
                    session_id=session.session_id,
                    session_length=session.session_length,
                    subsession_length=session.subsession_length,
                )
            )
        sessions[day] = entries

    all_entries = [entry for day_entries in sessions.values() for entry in day_entries]
    LOGGER.info(
        "Matched %d sessions over %d days (missing in V4: %d, missing in V2: %d)",
        len(matched_ids),
        len(sessions),
        missing_in_v4,
        missing_in_v2,
    )
    return SessionMatchup(
        sessions=sessions,
        missing_in_v2_count=missing_in_v2,
        missing_in_v4_count=missing_in_v4,
        matched_session_ids=frozenset(matched_ids),
        totals=matchup_totals(all_entries),
    )


def _first_match(
    candidates: Iterable[V4Session],
    value: float,
    aborted: bool,
    claimed: Set[str],
    tolerance: float,
) -> V4Session | None:
    for session in candidates:
        if session.session_id in claimed or session.aborted != aborted:
            continue
        if aborted or value - tolerance <= session.total_time <= value + tolerance:
            return session
    return None


def matchup_totals(entries: Sequence[MatchupEntry]) -> Dict[str, Tuple[float, float]]:
    """``(v2, v4)`` totals over all entries; missing sides count as zero."""

    def matched(entry: MatchupEntry) -> bool:
        return not entry.broken

    def clean(entry: MatchupEntry) -> bool:
        return not entry.aborted

    def aborted(entry: MatchupEntry) -> bool:
        return entry.aborted

    def matched_clean(entry: MatchupEntry) -> bool:
        return not entry.aborted and not entry.broken

    def matched_aborted(entry: MatchupEntry) -> bool:
        return entry.aborted and not entry.broken

    def times(predicate: Callable[[MatchupEntry], bool] | None = None) -> Tuple[float, float]:
        selected = [entry for entry in entries if predicate is None or predicate(entry)]
        return (
            float(sum(entry.total_time_v2 or 0 for entry in selected)),
            float(sum(entry.total_time_v4 or 0 for entry in selected)),
        )

    def v4_only(attr: str, predicate: Callable[[MatchupEntry], bool] | None = None) -> Tuple[float, float]:
        selected = [entry for entry in entries if predicate is None or predicate(entry)]
        return (0.0, float(sum(getattr(entry, attr) or 0 for entry in selected)))

    return {
        "total_times": times(),
        "matched_total_times": times(matched),
        "clean_total_times": times(clean),
        "matched_clean_total_times": times(matched_clean),
        "aborted_total_times": times(aborted),
        "matched_aborted_total_times": times(matched_aborted),
        "session_length": v4_only("session_length"),
        "matched_clean_session_length": v4_only("session_length", matched_clean),
        "subsession_length": v4_only("subsession_length"),
        "matched_clean_subsession_length": v4_only("subsession_length", matched_clean),
    }


__all__ = [
    "DEFAULT_TOLERANCE_SECONDS",
    "MatchupEntry",
    "SessionMatchup",
    "TOTAL_FIELDS",
    "V4Session",
    "build_v4_sessions",
    "match_sessions",
    "matchup_totals",
]
