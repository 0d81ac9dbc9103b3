from __future__ import annotations

from datetime import datetime, timezone

import pandas as pd

from recon.frames import FRAGMENT_COLUMNS, MATCHUP_COLUMNS, V2_COLUMNS, fragments_frame, matchup_frame, v2_frame
from recon.pipeline import run_reconciliation
from tests.recon.telemetry_helpers import consistent_inputs

NOW = datetime(2023, 1, 3, 15, tzinfo=timezone.utc)


def _report():
    raw_v2, pings, current = consistent_inputs()
    return run_reconciliation(raw_v2, pings, current_ping=current, now=NOW)


def test_fragments_frame_is_newest_first():
    frame = fragments_frame(_report().fragments)

    assert list(frame.columns) == list(FRAGMENT_COLUMNS)
    assert list(frame["session_id"]) == ["c", "b", "a"]
    assert frame["creation_date"].is_monotonic_decreasing
    assert frame.loc[0, "creation_date"] == pd.Timestamp("2023-01-03T14:00:00Z")


def test_empty_fragments_frame_keeps_columns():
    frame = fragments_frame([])

    assert frame.empty
    assert list(frame.columns) == list(FRAGMENT_COLUMNS)


def test_v2_frame_counts_samples():
    frame = v2_frame(_report().v2_records)

    assert list(frame.columns) == list(V2_COLUMNS)
    assert list(frame["day"]) == ["2023-01-01", "2023-01-02", "2023-01-03"]
    assert list(frame["clean_sessions"]) == [1, 0, 1]
    assert list(frame["aborted_sessions"]) == [0, 1, 0]


def test_matchup_frame_preserves_day_order():
    frame = matchup_frame(_report().matchup)

    assert list(frame.columns) == list(MATCHUP_COLUMNS)
    assert list(frame["day"]) == ["2023-01-03", "2023-01-02", "2023-01-01"]
    assert list(frame["session_id"]) == ["c", "b", "a"]
    assert not frame["broken"].any()
