from __future__ import annotations

from dataclasses import replace
from datetime import datetime, timedelta, timezone
from typing import List, Sequence, Tuple

import pytest

from recon.chain import chain_summary, validate_chain
from recon.models import V4Fragment

UTC = timezone.utc
START = datetime(2023, 1, 1, 8, tzinfo=UTC)


def _chain(specs: Sequence[Tuple[str, str]], *, channel: str = "release") -> List[V4Fragment]:
    """Build a well-formed fragment chain from (session_id, reason) pairs."""

    fragments: List[V4Fragment] = []
    previous: V4Fragment | None = None
    for index, (session_id, reason) in enumerate(specs):
        new_session = previous is None or previous.session_id != session_id
        fragments.append(
            V4Fragment(
                ping_id=f"ping-{index}",
                session_id=session_id,
                subsession_id=f"sub-{index}",
                previous_session_id=(previous.session_id if previous else None)
                if new_session
                else previous.previous_session_id,
                previous_subsession_id=previous.subsession_id if previous else None,
                subsession_counter=1 if new_session else previous.subsession_counter + 1,
                profile_subsession_counter=index + 1,
                reason=reason,
                creation_date=START + timedelta(hours=index),
                total_time=60.0 * (index + 1),
                channel=channel,
            )
        )
        previous = fragments[-1]
    return fragments


def test_well_formed_chain_has_no_breakage():
    fragments = _chain(
        [
            ("a", "environment-change"),
            ("a", "daily"),
            ("a", "shutdown"),
            ("b", "aborted-session"),
            ("c", "gather-subsession-payload"),
        ]
    )

    annotated = validate_chain(fragments)

    assert [fragment.is_broken for fragment in annotated] == [None, False, False, False, False]
    assert [fragment.is_final_fragment for fragment in annotated] == [False, False, True, True, True]
    assert [fragment.is_last_fragment for fragment in annotated] == [False, False, True, True, True]
    assert all(fragment.broken_profile_subsession_counter is False for fragment in annotated[1:])
    assert chain_summary(annotated).broken_fragments == 0


def test_first_fragment_has_no_consistency_annotations():
    annotated = validate_chain(_chain([("a", "shutdown")]))

    first = annotated[0]
    assert first.is_final_fragment is True
    assert first.is_last_fragment is True
    assert first.channel_switching is None
    assert first.broken_session_chain is None
    assert first.broken_subsession_chain is None
    assert first.broken_profile_subsession_counter is None
    assert first.broken_subsession_counter is None
    assert first.is_broken is None


def test_last_fragment_is_always_marked_last_even_mid_session():
    annotated = validate_chain(_chain([("a", "environment-change"), ("a", "daily")]))

    assert annotated[0].is_last_fragment is False
    assert annotated[-1].is_last_fragment is True


def test_input_fragments_are_not_mutated():
    fragments = _chain([("a", "shutdown"), ("b", "shutdown")])

    validate_chain(fragments)

    assert fragments[0].is_last_fragment is None
    assert fragments[1].is_broken is None


def test_session_chain_break_requires_final_predecessor():
    fragments = _chain([("a", "shutdown"), ("b", "shutdown")])
    fragments[1] = replace(fragments[1], previous_session_id="somewhere-else")

    annotated = validate_chain(fragments)

    assert annotated[1].broken_session_chain is True
    assert annotated[1].is_broken is True


def test_same_session_continuation_never_breaks_session_chain():
    fragments = _chain([("a", "environment-change"), ("a", "shutdown")])
    fragments[1] = replace(fragments[1], previous_session_id="unrelated")

    annotated = validate_chain(fragments)

    assert annotated[1].broken_session_chain is False


def test_subsession_chain_must_reference_predecessor():
    fragments = _chain([("a", "environment-change"), ("a", "shutdown")])
    fragments[1] = replace(fragments[1], previous_subsession_id="sub-missing")

    annotated = validate_chain(fragments)

    assert annotated[1].broken_subsession_chain is True
    assert annotated[1].is_broken is True


def test_profile_counter_gap_is_broken_across_sessions():
    fragments = _chain([("a", "shutdown"), ("b", "shutdown")])
    fragments[1] = replace(fragments[1], profile_subsession_counter=5)

    annotated = validate_chain(fragments)

    assert annotated[1].broken_profile_subsession_counter is True
    assert annotated[1].broken_session_chain is False
    assert annotated[1].is_broken is True


@pytest.mark.parametrize(
    ("reason", "counter", "expected"),
    [
        ("shutdown", 1, False),
        ("shutdown", 2, True),
        ("environment-change", 2, False),
        ("environment-change", 1, True),
    ],
)
def test_subsession_counter_rules(reason, counter, expected):
    first_session = "a"
    second_session = "b" if reason == "shutdown" else "a"
    fragments = _chain([(first_session, reason), (second_session, "shutdown")])
    fragments[1] = replace(fragments[1], subsession_counter=counter)

    annotated = validate_chain(fragments)

    assert annotated[1].broken_subsession_counter is expected


def test_channel_switch_suppresses_breakage():
    fragments = _chain([("a", "shutdown"), ("b", "shutdown")])
    fragments[1] = replace(fragments[1], channel="beta", previous_subsession_id="bogus")

    annotated = validate_chain(fragments)

    assert annotated[1].channel_switching is True
    assert annotated[1].broken_subsession_chain is True
    assert annotated[1].is_broken is False
    assert chain_summary(annotated).channel_switches == 1


def test_old_build_fragment_is_never_broken_and_exempts_its_successor():
    fragments = _chain([("a", "environment-change"), ("a", "environment-change"), ("a", "shutdown")])
    fragments[1] = replace(fragments[1], is_from_old_build=True, profile_subsession_counter=99)
    fragments[2] = replace(fragments[2], previous_subsession_id="bogus")

    annotated = validate_chain(fragments)

    assert annotated[1].broken_profile_subsession_counter is True
    assert annotated[1].is_broken is False
    assert annotated[2].broken_subsession_chain is True
    assert annotated[2].is_broken is False
    assert chain_summary(annotated).old_build_fragments == 1


def test_custom_final_reasons():
    fragments = _chain([("a", "custom-end"), ("b", "shutdown")])

    annotated = validate_chain(fragments, final_reasons={"custom-end"})

    assert annotated[0].is_final_fragment is True
    assert annotated[1].is_final_fragment is False
    assert annotated[1].broken_subsession_counter is False


def test_chain_summary_lists_broken_pings():
    fragments = _chain([("a", "shutdown"), ("b", "shutdown"), ("c", "shutdown")])
    fragments[2] = replace(fragments[2], previous_subsession_id="gap")

    summary = chain_summary(validate_chain(fragments))

    assert summary.fragments == 3
    assert summary.sessions == 3
    assert summary.broken_ping_ids == ["ping-2"]
    assert summary.to_dict()["broken_fragments"] == 1


def test_empty_sequence():
    assert validate_chain([]) == []
