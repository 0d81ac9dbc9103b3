"""File-backed acquisition of raw V2 payloads and archived V4 pings."""

from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Any, Dict, List, Mapping

LOGGER = logging.getLogger(__name__)


def load_v2_payload(path: Path | str) -> Dict[str, Any]:
    """Load the raw daily-aggregate (V2) payload from a JSON dump."""

    source = Path(path)
    if not source.exists():
        raise FileNotFoundError(f"V2 payload not found: {source}")
    payload = json.loads(source.read_text(encoding="utf-8"))
    if not isinstance(payload, Mapping):
        raise ValueError(f"V2 payload must be a JSON object: {source}")
    data = payload.get("data")
    if not isinstance(data, Mapping) or not isinstance(data.get("days"), Mapping):
        raise ValueError(f"V2 payload is missing the data.days block: {source}")
    return dict(payload)


def load_ping_archive(path: Path | str) -> List[Dict[str, Any]]:
    """Load archived V4 pings from a directory of ``*.json`` files or a JSON list.

    Archived pings that cannot be read are skipped; the caller only sees a
    shorter list.
    """

    source = Path(path)
    if not source.exists():
        raise FileNotFoundError(f"Ping archive not found: {source}")
    if source.is_dir():
        pings: List[Dict[str, Any]] = []
        skipped = 0
        for ping_path in sorted(source.rglob("*.json")):
            ping = _read_ping(ping_path)
            if ping is None:
                skipped += 1
                continue
            pings.append(ping)
        if skipped:
            LOGGER.info("Skipped %d unreadable archived pings under %s", skipped, source)
        return pings

    payload = json.loads(source.read_text(encoding="utf-8"))
    if isinstance(payload, Mapping):
        payload = payload.get("pings")
    if not isinstance(payload, list):
        raise ValueError(f"Ping archive must be a JSON list or an object with a 'pings' list: {source}")
    return [dict(entry) for entry in payload if isinstance(entry, Mapping)]


def load_current_ping(path: Path | str | None) -> Dict[str, Any] | None:
    """Load the optional still-open session ping."""

    if path is None:
        return None
    ping = _read_ping(Path(path))
    if ping is None:
        raise ValueError(f"Current ping could not be loaded: {path}")
    return ping


def _read_ping(path: Path) -> Dict[str, Any] | None:
    try:
        payload = json.loads(path.read_text(encoding="utf-8"))
    except (OSError, UnicodeDecodeError, json.JSONDecodeError) as exc:
        LOGGER.warning("Skipping archived ping %s: %s", path, exc)
        return None
    if not isinstance(payload, Mapping):
        LOGGER.warning("Skipping archived ping %s: not a JSON object", path)
        return None
    return dict(payload)


__all__ = ["load_current_ping", "load_ping_archive", "load_v2_payload"]
