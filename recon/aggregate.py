"""Cutoff-aware scalar summaries of V2 days and V4 fragments."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date
from typing import Any, Dict, Iterable, Mapping, Tuple

from infra.timestamps import day_start
from recon.config import ABORT_REASON
from recon.cutoff import is_before_cutoff, normalize_cutoff
from recon.models import V2DailyRecord, V4Fragment


@dataclass
class V2Accumulation:
    search_counts: Dict[str, int] = field(default_factory=dict)
    total_time: float = 0.0
    clean_total_time: float = 0.0
    aborted_total_time: float = 0.0

    def to_dict(self) -> Dict[str, Any]:
        return {
            "search_counts": dict(sorted(self.search_counts.items())),
            "total_time": self.total_time,
            "clean_total_time": self.clean_total_time,
            "aborted_total_time": self.aborted_total_time,
        }


@dataclass
class V4Accumulation(V2Accumulation):
    session_length: float = 0.0
    subsession_length: float = 0.0

    def to_dict(self) -> Dict[str, Any]:
        payload = super().to_dict()
        payload["session_length"] = self.session_length
        payload["subsession_length"] = self.subsession_length
        return payload


def accumulate_v2(records: Mapping[date, V2DailyRecord], cutoff: Any = None) -> V2Accumulation:
    """Sum V2 days at or after ``cutoff``."""

    cutoff_at = normalize_cutoff(cutoff)
    result = V2Accumulation()
    for day, record in records.items():
        if is_before_cutoff(day_start(day), cutoff_at):
            continue
        _add_counts(result.search_counts, record.search_counts)
        result.total_time += record.total_time
        result.clean_total_time += record.clean_total_time
        result.aborted_total_time += record.aborted_total_time
    return result


def accumulate_v4(
    fragments: Iterable[V4Fragment],
    cutoff: Any = None,
    *,
    abort_reason: str = ABORT_REASON,
) -> V4Accumulation:
    """Sum V4 fragments created at or after ``cutoff``.

    Session durations are only taken from each session's last fragment so a
    session split into several pings is counted once.
    """

    cutoff_at = normalize_cutoff(cutoff)
    result = V4Accumulation()
    for fragment in fragments:
        if is_before_cutoff(fragment.creation_date, cutoff_at):
            continue
        _add_counts(result.search_counts, fragment.search_counts)
        result.subsession_length += fragment.subsession_length or 0.0
        if not fragment.is_last_fragment:
            continue
        result.total_time += fragment.total_time
        if fragment.reason == abort_reason:
            result.aborted_total_time += fragment.total_time
        else:
            result.clean_total_time += fragment.total_time
        result.session_length += fragment.session_length or 0.0
    return result


def search_count_pairs(v2: V2Accumulation, v4: V4Accumulation) -> Dict[str, Tuple[int, int]]:
    """Per-engine ``(v2, v4)`` search counts over the union of engines."""

    engines = sorted(set(v2.search_counts) | set(v4.search_counts))
    return {
        f"search: {engine}": (v2.search_counts.get(engine, 0), v4.search_counts.get(engine, 0))
        for engine in engines
    }


def _add_counts(target: Dict[str, int], counts: Mapping[str, int]) -> None:
    for engine, count in counts.items():
        target[engine] = target.get(engine, 0) + count


__all__ = [
    "V2Accumulation",
    "V4Accumulation",
    "accumulate_v2",
    "accumulate_v4",
    "search_count_pairs",
]
