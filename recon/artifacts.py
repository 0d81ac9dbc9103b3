"""Persistence of reconciliation reports for a run directory."""

from __future__ import annotations

import json
from hashlib import sha256
from pathlib import Path
from typing import Any, Dict, Mapping

from recon.frames import fragments_frame, matchup_frame, v2_frame
from recon.pipeline import ReconciliationReport


def resolve_run_id(payload: Mapping[str, Any], *, prefix: str = "recon") -> str:
    canonical = json.dumps(payload, sort_keys=True, default=str)
    digest = sha256(canonical.encode("utf-8")).hexdigest()[:12]
    return f"{prefix}_{digest}"


def write_report_artifacts(report: ReconciliationReport, output_dir: Path) -> Dict[str, Path]:
    """Write ``report.json`` plus CSV tables; returns the written paths by name."""

    output_dir.mkdir(parents=True, exist_ok=True)
    paths = {
        "report": output_dir / "report.json",
        "matchup": output_dir / "matchup.csv",
        "fragments": output_dir / "fragments.csv",
        "v2_days": output_dir / "v2_days.csv",
    }
    paths["report"].write_text(json.dumps(report.to_dict(), indent=2, sort_keys=True), encoding="utf-8")
    matchup_frame(report.matchup).to_csv(paths["matchup"], index=False)
    fragments_frame(report.fragments).to_csv(paths["fragments"], index=False)
    v2_frame(report.v2_records).to_csv(paths["v2_days"], index=False)
    return paths


__all__ = ["resolve_run_id", "write_report_artifacts"]
