"""Runtime storage roots for reconciliation inputs and reports."""

from __future__ import annotations

import os
from pathlib import Path


_REPO_ROOT = Path(__file__).resolve().parents[1]


def get_repo_root() -> Path:
    """Return the repository root for callers that need absolute resolution."""

    return _REPO_ROOT


def get_data_root() -> Path:
    """Resolve the runtime data root honoring the RECON_DATA_ROOT override."""

    override = os.environ.get("RECON_DATA_ROOT")
    if override:
        return Path(override).expanduser()
    return get_repo_root() / ".recon_data"


def reports_root(*segments: str) -> Path:
    """Directory holding reconciliation report runs."""

    base = get_data_root() / "reports"
    return base.joinpath(*segments) if segments else base


__all__ = [
    "get_data_root",
    "get_repo_root",
    "reports_root",
]
