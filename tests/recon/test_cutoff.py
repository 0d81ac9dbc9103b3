from __future__ import annotations

from datetime import date, datetime, timedelta, timezone

import pytest

from recon.cutoff import is_before_cutoff, normalize_cutoff, select_cutoff
from recon.models import V2DailyRecord, V4Fragment

UTC = timezone.utc


def _fragment(when: datetime) -> V4Fragment:
    return V4Fragment(
        ping_id="p",
        session_id="s",
        subsession_id="sub",
        creation_date=when,
        reason="shutdown",
        total_time=1.0,
    )


def _records(*days: date):
    return {day: V2DailyRecord(day=day) for day in days}


@pytest.mark.parametrize("value", [None, 0, 0.0])
def test_normalize_cutoff_treats_zero_as_none(value):
    assert normalize_cutoff(value) is None


def test_normalize_cutoff_coerces_values():
    assert normalize_cutoff("2023-01-02") == datetime(2023, 1, 2, tzinfo=UTC)


def test_is_before_cutoff():
    cutoff = datetime(2023, 1, 2, tzinfo=UTC)

    assert is_before_cutoff(datetime(2023, 1, 1, tzinfo=UTC), cutoff) is True
    assert is_before_cutoff(cutoff, cutoff) is False
    assert is_before_cutoff(datetime(2020, 1, 1, tzinfo=UTC), None) is False


def test_histories_starting_close_together_need_no_cutoff():
    selection = select_cutoff(
        _records(date(2023, 1, 2), date(2023, 1, 1)),
        [_fragment(datetime(2023, 1, 2, 15, tzinfo=UTC))],
    )

    assert selection.cutoff is None
    assert selection.oldest_v2 == datetime(2023, 1, 1, tzinfo=UTC)
    assert selection.oldest_v4 == datetime(2023, 1, 2, tzinfo=UTC)


def test_later_start_becomes_the_cutoff():
    selection = select_cutoff(
        _records(date(2023, 1, 1)),
        [_fragment(datetime(2023, 1, 10, 9, tzinfo=UTC))],
    )

    assert selection.cutoff == datetime(2023, 1, 10, tzinfo=UTC)
    assert selection.to_dict()["cutoff"] == "2023-01-10T00:00:00+00:00"


def test_v2_starting_later_becomes_the_cutoff():
    selection = select_cutoff(
        _records(date(2023, 2, 1)),
        [_fragment(datetime(2023, 1, 1, tzinfo=UTC))],
        proximity=timedelta(days=7),
    )

    assert selection.cutoff == datetime(2023, 2, 1, tzinfo=UTC)


def test_missing_history_yields_no_cutoff():
    assert select_cutoff({}, [_fragment(datetime(2023, 1, 1, tzinfo=UTC))]).cutoff is None
    assert select_cutoff(_records(date(2023, 1, 1)), []).cutoff is None
