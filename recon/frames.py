"""Tabular views of reconciliation results."""

from __future__ import annotations

from datetime import date
from typing import Mapping, Sequence

import pandas as pd

from recon.matchup import SessionMatchup
from recon.models import V2DailyRecord, V4Fragment

FRAGMENT_COLUMNS = (
    "creation_date",
    "ping_id",
    "client_id",
    "reason",
    "channel",
    "build_id",
    "is_default_browser",
    "session_length",
    "subsession_length",
    "total_time",
    "session_id",
    "previous_session_id",
    "subsession_id",
    "previous_subsession_id",
    "profile_subsession_counter",
    "subsession_counter",
    "is_from_old_build",
    "is_last_fragment",
    "channel_switching",
    "broken_session_chain",
    "broken_subsession_chain",
    "broken_profile_subsession_counter",
    "broken_subsession_counter",
    "is_broken",
)

V2_COLUMNS = (
    "day",
    "is_default_browser",
    "total_time",
    "clean_total_time",
    "aborted_total_time",
    "clean_sessions",
    "aborted_sessions",
    "broken_default_browser",
)

MATCHUP_COLUMNS = (
    "day",
    "start_time",
    "total_time_v2",
    "total_time_v4",
    "aborted",
    "broken",
    "session_id",
    "session_length",
    "subsession_length",
)


def fragments_frame(fragments: Sequence[V4Fragment]) -> pd.DataFrame:
    """One row per fragment, newest first."""

    rows = [{column: fragment.to_dict()[column] for column in FRAGMENT_COLUMNS} for fragment in fragments]
    frame = pd.DataFrame(rows, columns=list(FRAGMENT_COLUMNS))
    if frame.empty:
        return frame
    frame["creation_date"] = pd.to_datetime(frame["creation_date"], utc=True)
    frame.sort_values("creation_date", ascending=False, inplace=True, kind="mergesort")
    frame.reset_index(drop=True, inplace=True)
    return frame


def v2_frame(records: Mapping[date, V2DailyRecord]) -> pd.DataFrame:
    rows = []
    for day in sorted(records):
        record = records[day]
        rows.append(
            {
                "day": day.isoformat(),
                "is_default_browser": record.is_default_browser,
                "total_time": record.total_time,
                "clean_total_time": record.clean_total_time,
                "aborted_total_time": record.aborted_total_time,
                "clean_sessions": len(record.clean_total_times),
                "aborted_sessions": len(record.aborted_total_times),
                "broken_default_browser": record.broken_default_browser,
            }
        )
    return pd.DataFrame(rows, columns=list(V2_COLUMNS))


def matchup_frame(matchup: SessionMatchup) -> pd.DataFrame:
    """Flatten the per-day matchup table, preserving day and entry order."""

    rows = []
    for day, entries in matchup.sessions.items():
        for entry in entries:
            row = entry.to_dict()
            row["day"] = day.isoformat()
            rows.append(row)
    frame = pd.DataFrame(rows, columns=list(MATCHUP_COLUMNS))
    if not frame.empty:
        frame["start_time"] = pd.to_datetime(frame["start_time"], utc=True)
    return frame


__all__ = ["fragments_frame", "matchup_frame", "v2_frame"]
