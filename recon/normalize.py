"""Projection of raw V2 payloads and V4 pings into canonical records."""

from __future__ import annotations

import logging
import re
from datetime import date, datetime
from typing import Any, Dict, Iterable, List, Mapping, Sequence

from infra.timestamps import coerce_timestamp, day_key, utc_now
from recon.models import V2DailyRecord, V4Fragment

LOGGER = logging.getLogger(__name__)

SEARCH_COUNTS_BLOCK = "org.mozilla.searches.counts"
APPINFO_BLOCK = "org.mozilla.appInfo.appinfo"
PREVIOUS_SESSIONS_BLOCK = "org.mozilla.appSessions.previous"
CURRENT_SESSION_BLOCK = "org.mozilla.appSessions.current"
SEARCH_COUNTS_HISTOGRAM = "SEARCH_COUNTS"

_LEADING_INT = re.compile(r"^\s*(\d+)")


def normalize_v2_payload(
    payload: Mapping[str, Any],
    *,
    now: datetime | None = None,
) -> Dict[date, V2DailyRecord]:
    """Build the day-keyed V2 map, oldest day first.

    Days without search, appinfo or previous-session blocks are dropped. The
    still-open current session is folded into the record for the UTC day of
    ``now`` as one more clean session sample.
    """

    data = payload.get("data")
    if not isinstance(data, Mapping) or not isinstance(data.get("days"), Mapping):
        raise ValueError("V2 payload must contain a data.days mapping.")
    records: Dict[date, V2DailyRecord] = {}
    for raw_day, block in data["days"].items():
        if not isinstance(block, Mapping):
            continue
        record = _normalize_v2_day(day_key(raw_day), block)
        if record is not None:
            records[record.day] = record

    today = day_key(now or utc_now())
    current = (data.get("last") or {}).get(CURRENT_SESSION_BLOCK)
    if isinstance(current, Mapping) and current.get("totalTime") is not None:
        open_time = float(current["totalTime"])
        base = records.get(today) or V2DailyRecord(day=today)
        records[today] = V2DailyRecord(
            day=today,
            is_default_browser=base.is_default_browser,
            search_counts=base.search_counts,
            total_time=base.total_time + open_time,
            clean_total_times=base.clean_total_times + (open_time,),
            aborted_total_times=base.aborted_total_times,
        )
    else:
        LOGGER.warning("V2 payload has no current session block; today's open session is not counted")
    return {day: records[day] for day in sorted(records)}


def _normalize_v2_day(day: date, block: Mapping[str, Any]) -> V2DailyRecord | None:
    has_data = False
    search_counts: Dict[str, int] = {}
    counts = block.get(SEARCH_COUNTS_BLOCK)
    if isinstance(counts, Mapping):
        for engine, count in counts.items():
            if engine == "_v":
                continue
            search_counts[str(engine)] = int(count)
            has_data = True

    is_default_browser = None
    appinfo = block.get(APPINFO_BLOCK)
    if isinstance(appinfo, Mapping):
        is_default_browser = appinfo.get("isDefaultBrowser")
        has_data = True

    clean: tuple[float, ...] = ()
    aborted: tuple[float, ...] = ()
    previous = block.get(PREVIOUS_SESSIONS_BLOCK)
    if isinstance(previous, Mapping):
        clean = tuple(float(value) for value in previous.get("cleanTotalTime") or [])
        aborted = tuple(float(value) for value in previous.get("abortedTotalTime") or [])
        has_data = True

    if not has_data:
        return None
    return V2DailyRecord(
        day=day,
        is_default_browser=is_default_browser,
        search_counts=search_counts,
        total_time=float(sum(clean) + sum(aborted)),
        clean_total_times=clean,
        aborted_total_times=aborted,
    )


def normalize_v4_ping(
    ping: Mapping[str, Any],
    *,
    is_from_old_build: bool = False,
    index: int | None = None,
) -> V4Fragment:
    """Flatten one main ping into a :class:`V4Fragment`."""

    payload = _require_mapping(ping, "payload", index)
    info = _require_mapping(payload, "info", index)
    simple = payload.get("simpleMeasurements") or {}
    application = ping.get("application") or {}
    settings = (ping.get("environment") or {}).get("settings") or {}

    session_id = _require_value(info, "sessionId", index)
    subsession_id = _require_value(info, "subsessionId", index)
    reason = _require_value(info, "reason", index)
    if ping.get("creationDate") in (None, ""):
        raise ValueError(_position("ping missing creationDate", index))
    if simple.get("totalTime") is None:
        raise ValueError(_position("ping missing simpleMeasurements.totalTime", index))

    search_counts: Dict[str, int] = {}
    keyed = payload.get("keyedHistograms") or {}
    for engine, histogram in (keyed.get(SEARCH_COUNTS_HISTOGRAM) or {}).items():
        if isinstance(histogram, Mapping):
            search_counts[str(engine)] = int(histogram.get("sum") or 0)

    return V4Fragment(
        ping_id=str(ping.get("id") or subsession_id),
        client_id=_optional_str(ping.get("clientId")),
        session_id=str(session_id),
        subsession_id=str(subsession_id),
        previous_session_id=_optional_str(info.get("previousSessionId")),
        previous_subsession_id=_optional_str(info.get("previousSubsessionId")),
        subsession_counter=_optional_int(info.get("subsessionCounter")),
        profile_subsession_counter=_optional_int(info.get("profileSubsessionCounter")),
        reason=str(reason),
        creation_date=coerce_timestamp(ping["creationDate"], index=index),
        channel=_optional_str(application.get("channel")),
        build_id=_optional_str(application.get("buildId")),
        version=_optional_str(application.get("version")),
        session_length=_optional_float(info.get("sessionLength")),
        subsession_length=_optional_float(info.get("subsessionLength")),
        total_time=float(simple["totalTime"]),
        is_default_browser=settings.get("isDefaultBrowser"),
        search_counts=search_counts,
        is_from_old_build=is_from_old_build,
    )


def normalize_v4_pings(
    pings: Iterable[Mapping[str, Any]],
    *,
    build_id_cutoff: int,
    current_ping: Mapping[str, Any] | None = None,
) -> List[V4Fragment]:
    """Normalize archived main pings into a creation-ordered fragment list.

    Leading pings from builds older than ``build_id_cutoff`` are dropped; once
    a newer build has been seen, later old-build pings are kept and flagged.
    The current (still-open) ping is appended last.
    """

    raw = list(pings)
    fragments: List[V4Fragment] = []
    dropped = 0
    for index, ping in enumerate(raw):
        if ping.get("type") != "main":
            continue
        build_id = (ping.get("application") or {}).get("buildId")
        try:
            fragment = normalize_v4_ping(
                ping,
                is_from_old_build=is_old_build(build_id, build_id_cutoff),
                index=index,
            )
        except (TypeError, ValueError) as exc:
            dropped += 1
            LOGGER.warning("Skipping invalid V4 ping: %s", exc)
            continue
        fragments.append(fragment)
    if dropped:
        LOGGER.info("Dropped %d invalid V4 pings", dropped)

    fragments.sort(key=lambda fragment: fragment.creation_date)
    leading_old = 0
    while leading_old < len(fragments) and fragments[leading_old].is_from_old_build:
        leading_old += 1
    if leading_old:
        LOGGER.info("Skipped %d leading pings from builds older than %s", leading_old, build_id_cutoff)
    fragments = fragments[leading_old:]

    if current_ping is not None:
        fragments.append(normalize_v4_ping(current_ping))
    LOGGER.info("Normalized %d V4 fragments from %d archived pings", len(fragments), len(raw))
    return fragments


def is_old_build(build_id: Any, cutoff: int) -> bool:
    """True when ``build_id`` parses to a number below ``cutoff``; unparseable ids are not old."""

    parsed = _leading_int_value(build_id)
    return parsed is not None and parsed < cutoff


def has_old_pings(fragments: Sequence[V4Fragment], *, build_id_cutoff: int, min_version: int) -> bool:
    """True when any fragment comes from an old build id or an old major version."""

    for fragment in fragments:
        if is_old_build(fragment.build_id, build_id_cutoff):
            return True
        major = _leading_int_value(fragment.version)
        if major is not None and major < min_version:
            return True
    return False


def _leading_int_value(value: Any) -> int | None:
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value
    match = _LEADING_INT.match(str(value))
    return int(match.group(1)) if match else None


def _require_mapping(record: Mapping[str, Any], key: str, index: int | None) -> Mapping[str, Any]:
    value = record.get(key)
    if not isinstance(value, Mapping):
        raise ValueError(_position(f"ping missing '{key}' block", index))
    return value


def _require_value(record: Mapping[str, Any], key: str, index: int | None) -> Any:
    value = record.get(key)
    if value in (None, ""):
        raise ValueError(_position(f"ping missing info.{key}", index))
    return value


def _position(message: str, index: int | None) -> str:
    return f"{message} at index {index}" if index is not None else message


def _optional_str(value: Any) -> str | None:
    return None if value is None else str(value)


def _optional_int(value: Any) -> int | None:
    return None if value is None else int(value)


def _optional_float(value: Any) -> float | None:
    return None if value is None else float(value)


__all__ = [
    "has_old_pings",
    "is_old_build",
    "normalize_v2_payload",
    "normalize_v4_ping",
    "normalize_v4_pings",
]
