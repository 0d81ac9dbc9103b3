"""End-to-end reconciliation of one V2 payload against one V4 ping archive."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import date, datetime
from typing import Any, Dict, Iterable, List, Mapping, Sequence

from infra.timestamps import utc_now
from recon.aggregate import (
    V2Accumulation,
    V4Accumulation,
    accumulate_v2,
    accumulate_v4,
    search_count_pairs,
)
from recon.chain import ChainSummary, chain_summary, validate_chain
from recon.config import ReconciliationConfig
from recon.cutoff import CutoffSelection, select_cutoff
from recon.default_browser import (
    CurrentDefaultBrowser,
    current_default_browser,
    validate_default_browser,
)
from recon.matchup import SessionMatchup, match_sessions
from recon.models import V2DailyRecord, V4Fragment
from recon.normalize import has_old_pings, normalize_v2_payload, normalize_v4_pings
from recon.tolerance import MetricComparison, RatioComparison, compare_metrics, compare_pairs

LOGGER = logging.getLogger(__name__)


class ReconciliationError(RuntimeError):
    """Raised when a reconciliation run has nothing to compare."""


@dataclass
class ReconciliationReport:
    """Everything the presentation layer needs from one run."""

    cutoff: CutoffSelection
    has_old_pings: bool
    fragments: List[V4Fragment]
    v2_records: Dict[date, V2DailyRecord]
    chain: ChainSummary
    v2_accumulated: V2Accumulation
    v4_accumulated: V4Accumulation
    search_counts: Dict[str, RatioComparison]
    current_default_browser: CurrentDefaultBrowser
    default_browser_historically_broken: bool
    matchup: SessionMatchup
    metrics: List[MetricComparison]
    config: ReconciliationConfig = field(default_factory=ReconciliationConfig)

    @property
    def failures(self) -> List[str]:
        failures: List[str] = []
        if self.chain.broken_fragments:
            failures.append("session_chain_broken")
        if self.current_default_browser.broken:
            failures.append("current_default_browser_mismatch")
        if self.default_browser_historically_broken:
            failures.append("default_browser_history_broken")
        for label, comparison in self.search_counts.items():
            if comparison.broken:
                failures.append(f"search_count_mismatch[{label.split(': ', 1)[-1]}]")
        for metric in self.metrics:
            if metric.broken:
                failures.append(f"metric_out_of_tolerance[{metric.label}]")
        return failures

    @property
    def is_broken(self) -> bool:
        return bool(self.failures)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "cutoff": self.cutoff.to_dict(),
            "has_old_pings": self.has_old_pings,
            "is_broken": self.is_broken,
            "failures": self.failures,
            "chain": self.chain.to_dict(),
            "accumulated": {
                "v2": self.v2_accumulated.to_dict(),
                "v4": self.v4_accumulated.to_dict(),
            },
            "search_counts": {label: entry.to_dict() for label, entry in self.search_counts.items()},
            "default_browser": {
                "current": self.current_default_browser.to_dict(),
                "historically_broken": self.default_browser_historically_broken,
            },
            "matchup": self.matchup.to_dict(),
            "metrics": [metric.to_dict() for metric in self.metrics],
            "v2_records": [record.to_dict() for record in self.v2_records.values()],
            "fragments": [fragment.to_dict() for fragment in self.fragments],
            "config": self.config.to_dict(),
        }


def reconcile(
    v2_records: Mapping[date, V2DailyRecord],
    fragments: Sequence[V4Fragment],
    *,
    config: ReconciliationConfig | None = None,
    now: datetime | None = None,
) -> ReconciliationReport:
    """Run every check over already-normalized records."""

    cfg = config or ReconciliationConfig()
    if not fragments:
        raise ReconciliationError("No V4 data to compare yet.")
    if not v2_records:
        raise ReconciliationError("No V2 data to compare yet.")
    anchor = now or utc_now()

    annotated = validate_chain(fragments, final_reasons=cfg.chain.final_reasons)
    summary = chain_summary(annotated)

    selection = _resolve_cutoff(v2_records, annotated, cfg)
    cutoff = selection.cutoff
    LOGGER.info(
        "Reconciling %d V2 days against %d V4 fragments (cutoff=%s)",
        len(v2_records),
        len(annotated),
        cutoff.isoformat() if cutoff else "none",
    )

    v2_accumulated = accumulate_v2(v2_records, cutoff)
    v4_accumulated = accumulate_v4(annotated, cutoff, abort_reason=cfg.chain.abort_reason)
    search_counts = compare_pairs(
        search_count_pairs(v2_accumulated, v4_accumulated),
        cfg.tolerances.search_count_tolerance,
    )

    browser_check = validate_default_browser(
        v2_records,
        annotated,
        cutoff,
        window=cfg.default_browser.window,
    )
    matchup = match_sessions(
        v2_records,
        annotated,
        cutoff,
        tolerance_seconds=cfg.matching.tolerance_seconds,
        now=anchor,
        abort_reason=cfg.chain.abort_reason,
        gather_reason=cfg.chain.gather_reason,
    )
    metrics = compare_metrics(matchup.totals, cfg.tolerances.effective_rules)

    report = ReconciliationReport(
        cutoff=selection,
        has_old_pings=has_old_pings(
            annotated,
            build_id_cutoff=cfg.chain.build_id_cutoff,
            min_version=cfg.chain.min_version,
        ),
        fragments=annotated,
        v2_records=browser_check.records,
        chain=summary,
        v2_accumulated=v2_accumulated,
        v4_accumulated=v4_accumulated,
        search_counts=search_counts,
        current_default_browser=current_default_browser(v2_records, annotated),
        default_browser_historically_broken=browser_check.historically_broken,
        matchup=matchup,
        metrics=metrics,
        config=cfg,
    )
    if report.is_broken:
        LOGGER.warning("Reconciliation found %d issues: %s", len(report.failures), ", ".join(report.failures))
    else:
        LOGGER.info("Reconciliation passed")
    return report


def run_reconciliation(
    raw_v2: Mapping[str, Any],
    raw_pings: Iterable[Mapping[str, Any]],
    *,
    config: ReconciliationConfig | None = None,
    current_ping: Mapping[str, Any] | None = None,
    now: datetime | None = None,
) -> ReconciliationReport:
    """Normalize raw V2/V4 inputs and reconcile them."""

    cfg = config or ReconciliationConfig()
    anchor = now or utc_now()
    fragments = normalize_v4_pings(
        raw_pings,
        build_id_cutoff=cfg.chain.build_id_cutoff,
        current_ping=current_ping,
    )
    v2_records = normalize_v2_payload(raw_v2, now=anchor)
    return reconcile(v2_records, fragments, config=cfg, now=anchor)


def _resolve_cutoff(
    v2_records: Mapping[date, V2DailyRecord],
    fragments: Sequence[V4Fragment],
    cfg: ReconciliationConfig,
) -> CutoffSelection:
    selection = select_cutoff(v2_records, fragments, proximity=cfg.cutoff.proximity)
    if cfg.cutoff.mode == "none":
        return CutoffSelection(cutoff=None, oldest_v2=selection.oldest_v2, oldest_v4=selection.oldest_v4)
    if cfg.cutoff.mode == "fixed":
        return CutoffSelection(
            cutoff=cfg.cutoff.fixed_cutoff,
            oldest_v2=selection.oldest_v2,
            oldest_v4=selection.oldest_v4,
        )
    return selection


__all__ = ["ReconciliationError", "ReconciliationReport", "reconcile", "run_reconciliation"]
