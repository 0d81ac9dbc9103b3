"""Session/subsession chain consistency checks over ordered V4 fragments."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field, replace
from typing import Any, Collection, Dict, List, Sequence

from recon.config import ChainConfig
from recon.models import V4Fragment

LOGGER = logging.getLogger(__name__)

DEFAULT_FINAL_REASONS = ChainConfig().final_reasons


@dataclass(frozen=True)
class ChainSummary:
    fragments: int
    sessions: int
    broken_fragments: int
    channel_switches: int
    old_build_fragments: int
    broken_ping_ids: List[str] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "fragments": self.fragments,
            "sessions": self.sessions,
            "broken_fragments": self.broken_fragments,
            "channel_switches": self.channel_switches,
            "old_build_fragments": self.old_build_fragments,
            "broken_ping_ids": list(self.broken_ping_ids),
        }


def validate_chain(
    fragments: Sequence[V4Fragment],
    *,
    final_reasons: Collection[str] = DEFAULT_FINAL_REASONS,
) -> List[V4Fragment]:
    """Annotate creation-ordered fragments with chain-break and boundary flags.

    Returns new records; the input fragments are left untouched. The first
    fragment has no predecessor and only receives ``is_final_fragment`` and
    ``is_last_fragment``.
    """

    finals = frozenset(final_reasons)
    annotated: List[V4Fragment] = []
    for fragment in fragments:
        current = replace(fragment, is_final_fragment=fragment.reason in finals)
        if annotated:
            previous = annotated[-1]
            previous = replace(previous, is_last_fragment=previous.session_id != current.session_id)
            annotated[-1] = previous
            current = _annotate_transition(previous, current)
        annotated.append(current)
    if annotated:
        annotated[-1] = replace(annotated[-1], is_last_fragment=True)
    return annotated


def _annotate_transition(previous: V4Fragment, current: V4Fragment) -> V4Fragment:
    channel_switching = current.channel != previous.channel
    broken_session_chain = bool(previous.is_final_fragment) and (
        current.previous_session_id != previous.session_id
    )
    broken_subsession_chain = current.previous_subsession_id != previous.subsession_id
    broken_profile_counter = not _follows(
        current.profile_subsession_counter, previous.profile_subsession_counter
    )
    if previous.is_final_fragment:
        broken_subsession_counter = current.subsession_counter != 1
    else:
        broken_subsession_counter = not _follows(current.subsession_counter, previous.subsession_counter)
    # Old builds and channel switches are expected discontinuities.
    is_broken = (
        not current.is_from_old_build
        and not previous.is_from_old_build
        and not channel_switching
        and (
            broken_session_chain
            or broken_subsession_chain
            or broken_profile_counter
            or broken_subsession_counter
        )
    )
    return replace(
        current,
        channel_switching=channel_switching,
        broken_session_chain=broken_session_chain,
        broken_subsession_chain=broken_subsession_chain,
        broken_profile_subsession_counter=broken_profile_counter,
        broken_subsession_counter=broken_subsession_counter,
        is_broken=is_broken,
    )


def _follows(counter: int | None, previous: int | None) -> bool:
    if counter is None or previous is None:
        return False
    return counter == previous + 1


def chain_summary(fragments: Sequence[V4Fragment]) -> ChainSummary:
    """Count breakage over an annotated fragment sequence."""

    broken_ids = [fragment.ping_id for fragment in fragments if fragment.is_broken]
    summary = ChainSummary(
        fragments=len(fragments),
        sessions=len({fragment.session_id for fragment in fragments}),
        broken_fragments=len(broken_ids),
        channel_switches=sum(1 for fragment in fragments if fragment.channel_switching),
        old_build_fragments=sum(1 for fragment in fragments if fragment.is_from_old_build),
        broken_ping_ids=broken_ids,
    )
    if summary.broken_fragments:
        LOGGER.warning(
            "Session chain broken at %d of %d fragments",
            summary.broken_fragments,
            summary.fragments,
        )
    return summary


__all__ = ["ChainSummary", "DEFAULT_FINAL_REASONS", "chain_summary", "validate_chain"]
