"""Ratio comparison of V2/V4 aggregates under per-metric tolerances."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Dict, List, Mapping, Sequence, Tuple

_TOLERANCE = 1e-9


@dataclass(frozen=True)
class RatioComparison:
    """Candidate (V4) value expressed as a ratio of the reference (V2) value.

    ``ratio`` is ``None`` when the reference is zero; such comparisons carry no
    signal and are never flagged broken.
    """

    reference: float
    candidate: float
    tolerance: float
    ratio: float | None
    broken: bool

    @property
    def percent(self) -> float | None:
        if self.ratio is None:
            return None
        return round(self.ratio * 1000) / 10

    def to_dict(self) -> Dict[str, Any]:
        return {
            "reference": self.reference,
            "candidate": self.candidate,
            "tolerance": self.tolerance,
            "ratio": self.ratio,
            "percent": self.percent,
            "broken": self.broken,
        }


@dataclass(frozen=True)
class MetricRule:
    """Pairs a V2-side total with a V4-side total and the allowed deviation."""

    v2_field: str
    v4_field: str
    tolerance: float

    def __post_init__(self) -> None:
        if self.tolerance < 0:
            raise ValueError(f"tolerance for '{self.label}' must be non-negative")

    @property
    def label(self) -> str:
        if self.v2_field == self.v4_field:
            return self.v2_field
        return f"{self.v2_field} vs. {self.v4_field}"

    @classmethod
    def from_mapping(cls, payload: Mapping[str, Any]) -> "MetricRule":
        v2_field = str(payload.get("v2_field") or payload.get("field") or "")
        if not v2_field:
            raise ValueError("Metric rules must include 'v2_field' (or 'field').")
        v4_field = str(payload.get("v4_field") or v2_field)
        if "tolerance" not in payload:
            raise ValueError(f"Metric rule '{v2_field}' must set a tolerance.")
        return cls(v2_field=v2_field, v4_field=v4_field, tolerance=float(payload["tolerance"]))

    def to_dict(self) -> Dict[str, Any]:
        return {"v2_field": self.v2_field, "v4_field": self.v4_field, "tolerance": self.tolerance}


@dataclass(frozen=True)
class MetricComparison:
    label: str
    rule: MetricRule
    comparison: RatioComparison

    @property
    def broken(self) -> bool:
        return self.comparison.broken

    def to_dict(self) -> Dict[str, Any]:
        payload = {"label": self.label}
        payload.update(self.comparison.to_dict())
        return payload


# Aborted sessions are measured by different means in the two systems, so their
# totals tolerate far larger deviation than clean sessions.
DEFAULT_METRIC_RULES: Tuple[MetricRule, ...] = (
    MetricRule("matched_clean_total_times", "matched_clean_total_times", 0.01),
    MetricRule("matched_aborted_total_times", "matched_aborted_total_times", 5.0),
    MetricRule("matched_total_times", "matched_total_times", 1.0),
    MetricRule("total_times", "total_times", 1.0),
    MetricRule("clean_total_times", "clean_total_times", 1.0),
    MetricRule("aborted_total_times", "aborted_total_times", 5.0),
)

EXTENDED_METRIC_RULES: Tuple[MetricRule, ...] = (
    MetricRule("matched_total_times", "matched_clean_session_length", 5.0),
    MetricRule("matched_total_times", "matched_clean_subsession_length", 5.0),
    MetricRule("total_times", "session_length", 5.0),
    MetricRule("total_times", "subsession_length", 5.0),
)


def compare_ratio(reference: float, candidate: float, tolerance: float) -> RatioComparison:
    """Flag ``candidate`` as broken when ``candidate / reference`` strays from 1.0 by more than ``tolerance``."""

    reference = float(reference or 0)
    candidate = float(candidate or 0)
    if reference == 0:
        return RatioComparison(reference, candidate, float(tolerance), None, False)
    ratio = candidate / reference
    broken = abs(ratio - 1.0) - tolerance > _TOLERANCE
    return RatioComparison(reference, candidate, float(tolerance), ratio, broken)


def compare_pairs(
    pairs: Mapping[str, Sequence[float]],
    tolerance: float,
) -> Dict[str, RatioComparison]:
    """Compare ``(v2, v4)`` pairs such as per-engine search counts."""

    return {label: compare_ratio(pair[0], pair[1], tolerance) for label, pair in pairs.items()}


def compare_metrics(
    totals: Mapping[str, Sequence[float]],
    rules: Sequence[MetricRule],
) -> List[MetricComparison]:
    """Evaluate metric rules against ``(v2, v4)`` totals from the session matchup."""

    comparisons: List[MetricComparison] = []
    for rule in rules:
        if rule.v2_field not in totals:
            raise ValueError(f"Unknown total '{rule.v2_field}' in metric rule '{rule.label}'.")
        if rule.v4_field not in totals:
            raise ValueError(f"Unknown total '{rule.v4_field}' in metric rule '{rule.label}'.")
        v2_value = totals[rule.v2_field][0]
        v4_value = totals[rule.v4_field][1]
        comparisons.append(
            MetricComparison(
                label=rule.label,
                rule=rule,
                comparison=compare_ratio(v2_value, v4_value, rule.tolerance),
            )
        )
    return comparisons


__all__ = [
    "DEFAULT_METRIC_RULES",
    "EXTENDED_METRIC_RULES",
    "MetricComparison",
    "MetricRule",
    "RatioComparison",
    "compare_metrics",
    "compare_pairs",
    "compare_ratio",
]
