"""Reconciliation of daily-aggregate (V2) and per-session (V4) telemetry."""

from .chain import ChainSummary, chain_summary, validate_chain
from .config import ReconciliationConfig, load_reconciliation_config
from .matchup import MatchupEntry, SessionMatchup, V4Session, build_v4_sessions, match_sessions
from .models import V2DailyRecord, V4Fragment
from .pipeline import ReconciliationError, ReconciliationReport, reconcile, run_reconciliation
from .tolerance import RatioComparison, compare_ratio

__all__ = [
    "ChainSummary",
    "MatchupEntry",
    "RatioComparison",
    "ReconciliationConfig",
    "ReconciliationError",
    "ReconciliationReport",
    "SessionMatchup",
    "V2DailyRecord",
    "V4Fragment",
    "V4Session",
    "build_v4_sessions",
    "chain_summary",
    "compare_ratio",
    "load_reconciliation_config",
    "match_sessions",
    "reconcile",
    "run_reconciliation",
    "validate_chain",
]
