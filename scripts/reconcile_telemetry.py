#!/usr/bin/env python3
"""Reconcile a V2 payload dump against an archive of V4 pings."""

from __future__ import annotations

import argparse
import json
import logging
import sys
from dataclasses import replace
from pathlib import Path
from typing import Sequence

from infra.archive import load_current_ping, load_ping_archive, load_v2_payload
from infra.paths import reports_root
from infra.timestamps import coerce_timestamp
from recon.artifacts import resolve_run_id, write_report_artifacts
from recon.config import CutoffConfig, ReconciliationConfig, load_reconciliation_config
from recon.pipeline import ReconciliationError, run_reconciliation

LOGGER = logging.getLogger(__name__)


def parse_args(argv: Sequence[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Reconcile V2 daily telemetry against V4 session pings.")
    parser.add_argument("--v2-payload", required=True, help="JSON dump of the raw V2 payload.")
    parser.add_argument("--pings", required=True, help="Directory of archived ping JSON files or a JSON list.")
    parser.add_argument("--current-ping", help="Optional JSON file holding the still-open session ping.")
    parser.add_argument("--config", help="YAML/JSON reconciliation config.")
    parser.add_argument(
        "--cutoff",
        help="Override the cutoff: 'auto', 'none' or an ISO timestamp.",
    )
    parser.add_argument("--now", help="Reference time for the open session (ISO timestamp).")
    parser.add_argument("--extended", action="store_true", help="Also compare session/subsession lengths.")
    parser.add_argument("--run-id", help="Deterministic run identifier; auto-derived if omitted.")
    parser.add_argument("--data-root", help="Override RECON_DATA_ROOT for report outputs.")
    parser.add_argument("--strict", action="store_true", help="Exit non-zero when the report is broken.")
    parser.add_argument("--log-level", default="INFO", help="Logging level (default: INFO).")
    return parser.parse_args(argv)


def _apply_overrides(config: ReconciliationConfig, args: argparse.Namespace) -> ReconciliationConfig:
    if args.cutoff:
        token = args.cutoff.strip().lower()
        if token in {"auto", "none"}:
            cutoff = replace(config.cutoff, mode=token, fixed_cutoff=None)
        else:
            cutoff = CutoffConfig(
                mode="fixed",
                proximity_days=config.cutoff.proximity_days,
                fixed_cutoff=coerce_timestamp(args.cutoff),
            )
        config = replace(config, cutoff=cutoff)
    if args.extended:
        config = replace(config, tolerances=replace(config.tolerances, include_extended=True))
    return config


def main(argv: Sequence[str] | None = None) -> int:
    args = parse_args(argv)
    logging.basicConfig(
        level=getattr(logging, str(args.log_level).upper(), logging.INFO),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    try:
        config = _apply_overrides(load_reconciliation_config(args.config), args)
        now = coerce_timestamp(args.now) if args.now else None
        raw_v2 = load_v2_payload(args.v2_payload)
        raw_pings = load_ping_archive(args.pings)
        current_ping = load_current_ping(args.current_ping)
        report = run_reconciliation(
            raw_v2,
            raw_pings,
            config=config,
            current_ping=current_ping,
            now=now,
        )
    except (FileNotFoundError, ValueError, ReconciliationError) as exc:
        print(f"Reconciliation failed: {exc}", file=sys.stderr)
        return 2

    run_id = args.run_id or resolve_run_id(
        {
            "v2_payload": str(Path(args.v2_payload).resolve()),
            "pings": str(Path(args.pings).resolve()),
            "current_ping": args.current_ping,
            "config": config.to_dict(),
            "now": args.now,
        }
    )
    if args.data_root:
        output_dir = Path(args.data_root).expanduser() / "reports" / run_id
    else:
        output_dir = reports_root(run_id)
    paths = write_report_artifacts(report, output_dir)
    LOGGER.info("Wrote reconciliation report to %s", paths["report"])

    payload = {
        "run_id": run_id,
        "is_broken": report.is_broken,
        "failures": report.failures,
        "paths": {name: str(path) for name, path in paths.items()},
    }
    print(json.dumps(payload, indent=2, sort_keys=True))
    if args.strict and report.is_broken:
        print(f"Reconciliation checks failed: {', '.join(report.failures)}", file=sys.stderr)
        return 3
    return 0


if __name__ == "__main__":  # pragma: no cover
    raise SystemExit(main())
