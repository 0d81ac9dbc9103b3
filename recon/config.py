"""Configuration for reconciliation runs."""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from pathlib import Path
from typing import Any, Dict, Mapping, Tuple

import yaml

from infra.timestamps import coerce_timestamp
from recon.tolerance import DEFAULT_METRIC_RULES, EXTENDED_METRIC_RULES, MetricRule

SHUTDOWN_REASON = "shutdown"
ABORT_REASON = "aborted-session"
GATHER_REASON = "gather-subsession-payload"


@dataclass(frozen=True)
class ChainConfig:
    """Fragment vocabulary and the build cutoff for the session chain walk."""

    build_id_cutoff: int = 20150722000000
    min_version: int = 42
    final_reasons: Tuple[str, ...] = (SHUTDOWN_REASON, ABORT_REASON, GATHER_REASON)
    abort_reason: str = ABORT_REASON
    gather_reason: str = GATHER_REASON

    def __post_init__(self) -> None:
        if self.abort_reason not in self.final_reasons:
            raise ValueError("abort_reason must be one of the final reasons.")
        if self.gather_reason not in self.final_reasons:
            raise ValueError("gather_reason must be one of the final reasons.")

    @classmethod
    def from_mapping(cls, payload: Mapping[str, Any] | None) -> "ChainConfig":
        if not payload:
            return cls()
        reasons = payload.get("final_reasons")
        return cls(
            build_id_cutoff=int(payload.get("build_id_cutoff", cls.build_id_cutoff)),
            min_version=int(payload.get("min_version", cls.min_version)),
            final_reasons=tuple(str(reason) for reason in reasons) if reasons else cls.final_reasons,
            abort_reason=str(payload.get("abort_reason", cls.abort_reason)),
            gather_reason=str(payload.get("gather_reason", cls.gather_reason)),
        )


@dataclass(frozen=True)
class MatchingConfig:
    """Session matchup tolerance in seconds for clean sessions."""

    tolerance_seconds: float = 5.0

    def __post_init__(self) -> None:
        if self.tolerance_seconds < 0:
            raise ValueError("tolerance_seconds must be non-negative.")

    @classmethod
    def from_mapping(cls, payload: Mapping[str, Any] | None) -> "MatchingConfig":
        if not payload:
            return cls()
        return cls(tolerance_seconds=float(payload.get("tolerance_seconds", cls.tolerance_seconds)))


@dataclass(frozen=True)
class DefaultBrowserConfig:
    window_days: float = 1.0

    def __post_init__(self) -> None:
        if self.window_days < 0:
            raise ValueError("window_days must be non-negative.")

    @property
    def window(self) -> timedelta:
        return timedelta(days=self.window_days)

    @classmethod
    def from_mapping(cls, payload: Mapping[str, Any] | None) -> "DefaultBrowserConfig":
        if not payload:
            return cls()
        return cls(window_days=float(payload.get("window_days", cls.window_days)))


@dataclass(frozen=True)
class CutoffConfig:
    """Cutoff policy.

    ``mode`` is ``auto`` (derive from the oldest V2/V4 data), ``none`` or
    ``fixed`` (use ``fixed_cutoff``).
    """

    mode: str = "auto"
    proximity_days: float = 1.0
    fixed_cutoff: datetime | None = None

    def __post_init__(self) -> None:
        if self.mode not in {"auto", "none", "fixed"}:
            raise ValueError("cutoff mode must be one of: auto, none, fixed")
        if self.mode == "fixed" and self.fixed_cutoff is None:
            raise ValueError("cutoff mode 'fixed' requires fixed_cutoff.")

    @property
    def proximity(self) -> timedelta:
        return timedelta(days=self.proximity_days)

    @classmethod
    def from_mapping(cls, payload: Mapping[str, Any] | None) -> "CutoffConfig":
        if not payload:
            return cls()
        fixed = payload.get("fixed_cutoff")
        mode = str(payload.get("mode") or ("fixed" if fixed else cls.mode)).strip().lower()
        return cls(
            mode=mode,
            proximity_days=float(payload.get("proximity_days", cls.proximity_days)),
            fixed_cutoff=coerce_timestamp(fixed) if fixed else None,
        )


@dataclass(frozen=True)
class ToleranceConfig:
    search_count_tolerance: float = 0.01
    metric_rules: Tuple[MetricRule, ...] = DEFAULT_METRIC_RULES
    include_extended: bool = False

    @property
    def effective_rules(self) -> Tuple[MetricRule, ...]:
        if self.include_extended:
            return self.metric_rules + EXTENDED_METRIC_RULES
        return self.metric_rules

    @classmethod
    def from_mapping(cls, payload: Mapping[str, Any] | None) -> "ToleranceConfig":
        if not payload:
            return cls()
        rules_block = payload.get("metric_rules")
        if rules_block is not None:
            if not isinstance(rules_block, list):
                raise ValueError("metric_rules must be a list of mappings.")
            rules = tuple(MetricRule.from_mapping(entry) for entry in rules_block)
        else:
            rules = cls.metric_rules
        return cls(
            search_count_tolerance=float(payload.get("search_count_tolerance", cls.search_count_tolerance)),
            metric_rules=rules,
            include_extended=bool(payload.get("include_extended", False)),
        )


@dataclass(frozen=True)
class ReconciliationConfig:
    """Strongly typed reconciliation configuration."""

    chain: ChainConfig = field(default_factory=ChainConfig)
    matching: MatchingConfig = field(default_factory=MatchingConfig)
    default_browser: DefaultBrowserConfig = field(default_factory=DefaultBrowserConfig)
    cutoff: CutoffConfig = field(default_factory=CutoffConfig)
    tolerances: ToleranceConfig = field(default_factory=ToleranceConfig)

    @classmethod
    def from_mapping(cls, payload: Mapping[str, Any] | None) -> "ReconciliationConfig":
        if not payload:
            return cls()
        block = payload.get("reconciliation", payload)
        if not isinstance(block, Mapping):
            raise ValueError("reconciliation config block must be a mapping.")
        return cls(
            chain=ChainConfig.from_mapping(block.get("chain")),
            matching=MatchingConfig.from_mapping(block.get("matching")),
            default_browser=DefaultBrowserConfig.from_mapping(block.get("default_browser")),
            cutoff=CutoffConfig.from_mapping(block.get("cutoff")),
            tolerances=ToleranceConfig.from_mapping(block.get("tolerances")),
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "chain": {
                "build_id_cutoff": self.chain.build_id_cutoff,
                "min_version": self.chain.min_version,
                "final_reasons": list(self.chain.final_reasons),
                "abort_reason": self.chain.abort_reason,
                "gather_reason": self.chain.gather_reason,
            },
            "matching": {"tolerance_seconds": self.matching.tolerance_seconds},
            "default_browser": {"window_days": self.default_browser.window_days},
            "cutoff": {
                "mode": self.cutoff.mode,
                "proximity_days": self.cutoff.proximity_days,
                "fixed_cutoff": None if self.cutoff.fixed_cutoff is None else self.cutoff.fixed_cutoff.isoformat(),
            },
            "tolerances": {
                "search_count_tolerance": self.tolerances.search_count_tolerance,
                "metric_rules": [rule.to_dict() for rule in self.tolerances.metric_rules],
                "include_extended": self.tolerances.include_extended,
            },
        }


def _load_mapping(path: Path) -> Mapping[str, Any]:
    text = path.read_text(encoding="utf-8")
    if path.suffix.lower() in {".yaml", ".yml"}:
        data = yaml.safe_load(text)
    else:
        data = json.loads(text)
    if data is None:
        return {}
    if not isinstance(data, Mapping):
        raise ValueError("Reconciliation config must map keys to values.")
    return data


def load_reconciliation_config(path: Path | str | None) -> ReconciliationConfig:
    """Load a YAML/JSON reconciliation config; defaults when no path is given."""

    if not path:
        return ReconciliationConfig()
    config_path = Path(path)
    if not config_path.exists():
        raise FileNotFoundError(f"Reconciliation config not found: {config_path}")
    return ReconciliationConfig.from_mapping(_load_mapping(config_path))


__all__ = [
    "ABORT_REASON",
    "ChainConfig",
    "CutoffConfig",
    "DefaultBrowserConfig",
    "GATHER_REASON",
    "MatchingConfig",
    "ReconciliationConfig",
    "SHUTDOWN_REASON",
    "ToleranceConfig",
    "load_reconciliation_config",
]
