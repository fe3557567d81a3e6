from __future__ import annotations

import pytest

from bandpoll.errors import ValidationError
from bandpoll.polls.composition import (
    cell_candidates,
    check_planning,
    compose,
    composition_order,
    display_order,
    set_cell,
)
from bandpoll.polls.schema import Assignment
from tests.utils import DATES, every_date, make_poll, response

D1, D2 = DATES


def test_equally_available_pianists_split_across_sessions() -> None:
    poll = make_poll(
        ["piano", "drums"],
        [every_date("Alice", "yes", ["piano"]), every_date("Bob", "yes", ["piano"])],
    )

    planning = compose(poll)

    assert planning[D1]["piano"].name == "Alice"
    assert planning[D2]["piano"].name == "Bob"
    assert planning[D1]["piano"].certain is True
    assert planning[D1]["piano"].is_guest is False


def test_slot_without_candidates_is_absent() -> None:
    poll = make_poll(["piano", "drums"], [every_date("Alice", "yes", ["piano"])])

    planning = compose(poll)

    assert "drums" not in planning[D1]
    assert "drums" not in planning[D2]


def test_yes_tier_beats_ifneeded_regardless_of_fairness() -> None:
    carol = response("Carol", {D1: "ifneeded", D2: "no"}, {D1: ["bass"]})
    dan = every_date("Dan", "yes", ["bass"])
    poll = make_poll(["bass"], [carol, dan])

    planning = compose(poll)

    assert planning[D1]["bass"].name == "Dan"
    assert planning[D1]["bass"].certain is True


def test_ifneeded_used_when_no_yes_candidate() -> None:
    carol = response("Carol", {D1: "ifneeded", D2: "no"}, {D1: ["bass"]})
    poll = make_poll(["bass"], [carol])

    planning = compose(poll)

    assert planning[D1]["bass"] == Assignment(name="Carol", is_guest=False, certain=False)
    assert "bass" not in planning[D2]


def test_fewest_remaining_opportunities_goes_first() -> None:
    aaron = every_date("Aaron", "yes", ["piano"])
    zoe = response("Zoe", {D1: "yes", D2: "no"}, {D1: ["piano"]})
    poll = make_poll(["piano"], [aaron, zoe])

    planning = compose(poll)

    assert planning[D1]["piano"].name == "Zoe"
    assert planning[D2]["piano"].name == "Aaron"


def test_nobody_is_double_booked_within_a_session() -> None:
    alice = every_date("Alice", "yes", ["piano", "drums"])
    bob = every_date("Bob", "yes", ["drums"])
    poll = make_poll(["drums", "piano"], [alice, bob])

    planning = compose(poll)

    for d in DATES:
        names = [a.name for a in planning[d].values()]
        assert len(names) == len(set(names))
        assert planning[d]["piano"].name == "Alice"
        assert planning[d]["drums"].name == "Bob"


def test_scarce_instrument_scheduled_before_abundant_one() -> None:
    dates = ["2024-03-01"]
    eve = response("Eve", {dates[0]: "yes"}, {dates[0]: ["bass", "drums"]})
    frank = response("Frank", {dates[0]: "yes"}, {dates[0]: ["bass"]})
    poll = make_poll(["bass", "drums"], [eve, frank], dates=dates)

    assert composition_order(poll) == ["drums", "bass"]
    planning = compose(poll)
    assert planning[dates[0]]["drums"].name == "Eve"
    assert planning[dates[0]]["bass"].name == "Frank"


def test_priority_instruments_match_case_insensitively() -> None:
    gus = every_date("Gus", "yes", ["Drums", "Piano"])
    poll = make_poll(["Drums", "Piano"], [gus])

    assert composition_order(poll) == ["Piano", "Drums"]
    planning = compose(poll)
    assert planning[D1]["Piano"].name == "Gus"
    assert "Drums" not in planning[D1]


def test_custom_priority_list() -> None:
    poll = make_poll(["bass", "voice", "piano"], [])
    assert composition_order(poll, ["voice"])[0] == "voice"
    assert display_order(poll.instruments, ["voice", "piano"]) == ["voice", "piano", "bass"]


def test_compose_is_deterministic_and_leaves_poll_untouched() -> None:
    poll = make_poll(
        ["piano", "guitar", "drums"],
        [
            every_date("Alice", "yes", ["piano", "guitar"]),
            every_date("Bob", "ifneeded", ["guitar", "drums"]),
            response("Cleo", {D1: "yes", D2: "no"}, {D1: ["drums", "piano"]}),
        ],
    )
    before = poll.model_dump()

    first = compose(poll)
    second = compose(poll)

    assert {d: {i: a.model_dump() for i, a in row.items()} for d, row in first.items()} == {
        d: {i: a.model_dump() for i, a in row.items()} for d, row in second.items()
    }
    assert poll.model_dump() == before


def test_every_assignment_is_eligible() -> None:
    responses = [
        every_date("Alice", "yes", ["piano", "guitar"]),
        every_date("Bob", "ifneeded", ["guitar", "drums"]),
        response("Cleo", {D1: "yes", D2: "no"}, {D1: ["drums"], D2: ["drums"]}),
    ]
    poll = make_poll(["piano", "guitar", "drums"], responses)
    by_name = {r.name: r for r in responses}

    planning = compose(poll)

    for d, row in planning.items():
        for instrument, assignment in row.items():
            r = by_name[assignment.name]
            assert r.is_eligible(d, instrument)
            assert assignment.certain == (r.answers[d] == "yes")


def test_cell_candidates_lists_yes_tier_first() -> None:
    poll = make_poll(
        ["piano"],
        [
            every_date("Ada", "ifneeded", ["piano"]),
            every_date("Ben", "yes", ["piano"]),
            every_date("Cy", "no", ["piano"]),
        ],
    )

    candidates = cell_candidates(poll, D1, "piano")

    assert [(c.tier, c.name) for c in candidates] == [("yes", "Ben"), ("ifneeded", "Ada")]


def test_guest_overwrites_automatic_assignment() -> None:
    poll = make_poll(["piano"], [every_date("Alice", "yes", ["piano"])])
    planning = compose(poll)

    edited = set_cell(poll, planning, D1, "piano", Assignment(name=" Hugo ", is_guest=True, certain=True))

    assert edited[D1]["piano"] == Assignment(name="Hugo", is_guest=True, certain=None)
    assert edited[D2]["piano"].name == "Alice"
    assert planning[D1]["piano"].name == "Alice"


def test_guest_edit_does_not_recheck_double_booking() -> None:
    poll = make_poll(["piano", "drums"], [every_date("Alice", "yes", ["piano"])])
    planning = compose(poll)

    edited = set_cell(poll, planning, D1, "drums", Assignment(name="Alice", is_guest=True))

    assert edited[D1]["piano"].name == "Alice"
    assert edited[D1]["drums"].name == "Alice"


def test_manual_candidate_takes_certainty_from_answer() -> None:
    poll = make_poll(["piano"], [every_date("Ada", "ifneeded", ["piano"])])

    edited = set_cell(poll, None, D2, "piano", Assignment(name="Ada", certain=True))

    assert edited[D2]["piano"].certain is False


def test_manual_edit_rejects_unavailable_participant() -> None:
    poll = make_poll(["piano"], [every_date("Ada", "no", ["piano"])])

    with pytest.raises(ValidationError):
        set_cell(poll, None, D1, "piano", Assignment(name="Ada"))


def test_clearing_a_cell() -> None:
    poll = make_poll(["piano"], [every_date("Alice", "yes", ["piano"])])
    planning = compose(poll)

    edited = set_cell(poll, planning, D1, "piano", None)

    assert "piano" not in edited[D1]
    assert edited[D2]["piano"].name == "Alice"


def test_manual_edit_rejects_unknown_slot() -> None:
    poll = make_poll(["piano"], [])

    with pytest.raises(ValidationError, match="Unknown date"):
        set_cell(poll, None, "2030-01-01", "piano", None)
    with pytest.raises(ValidationError, match="Unknown instrument"):
        set_cell(poll, None, D1, "tuba", None)


def test_check_planning_drops_empty_rows_and_rejects_strangers() -> None:
    poll = make_poll(["piano"], [])
    kept = check_planning(poll, {D1: {"piano": Assignment(name="X", is_guest=True)}, D2: {}})
    assert list(kept) == [D1]

    with pytest.raises(ValidationError):
        check_planning(poll, {D1: {"tuba": Assignment(name="X", is_guest=True)}})


def test_check_planning_resets_guest_certainty() -> None:
    poll = make_poll(["piano", "drums"], [every_date("Alice", "yes", ["piano"])])

    kept = check_planning(
        poll,
        {
            D1: {
                "piano": Assignment(name=" G ", is_guest=True, certain=True),
                "drums": Assignment(name="Alice", is_guest=False, certain=True),
            }
        },
    )

    assert kept[D1]["piano"] == Assignment(name="G", is_guest=True, certain=None)
    assert kept[D1]["drums"] == Assignment(name="Alice", is_guest=False, certain=True)


def test_check_planning_rejects_blank_names() -> None:
    poll = make_poll(["piano"], [])

    with pytest.raises(ValidationError, match="name required"):
        check_planning(poll, {D1: {"piano": Assignment(name="   ", is_guest=True)}})
