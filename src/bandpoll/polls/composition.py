from __future__ import annotations

import logging
from collections import defaultdict
from typing import Dict, List, Optional, Sequence, Set

from ..errors import ValidationError
from .schema import Assignment, Candidate, Planning, Poll


logger = logging.getLogger(__name__)

PRIORITY_INSTRUMENTS = ("piano", "guitar")


def priority_instruments(instruments: Sequence[str], priority: Sequence[str] = PRIORITY_INSTRUMENTS) -> List[str]:
    """Poll instruments matching the priority list, in priority-list order."""
    found: List[str] = []
    for p in priority:
        match = next((i for i in instruments if i.lower() == p.lower()), None)
        if match is not None and match not in found:
            found.append(match)
    return found


def display_order(instruments: Sequence[str], priority: Sequence[str] = PRIORITY_INSTRUMENTS) -> List[str]:
    first = priority_instruments(instruments, priority)
    return first + [i for i in instruments if i not in first]


def cell_candidates(poll: Poll, date: str, instrument: str) -> List[Candidate]:
    yes: List[Candidate] = []
    ifneeded: List[Candidate] = []
    for r in poll.responses:
        if instrument not in r.instruments_on(date):
            continue
        answer = r.answers.get(date)
        if answer == "yes":
            yes.append(Candidate(tier="yes", name=r.name))
        elif answer == "ifneeded":
            ifneeded.append(Candidate(tier="ifneeded", name=r.name))
    return yes + ifneeded


def _remaining_availability(poll: Poll) -> Dict[str, Dict[str, List[int]]]:
    """name -> instrument -> count of eligible dates from each date index to the end."""
    n = len(poll.dates)
    remaining: Dict[str, Dict[str, List[int]]] = {}
    for r in poll.responses:
        per_instr: Dict[str, List[int]] = {}
        for instr in poll.instruments:
            suffix = [0] * (n + 1)
            for i in range(n - 1, -1, -1):
                suffix[i] = suffix[i + 1] + (1 if r.is_eligible(poll.dates[i], instr) else 0)
            per_instr[instr] = suffix[:n]
        remaining[r.name] = per_instr
    return remaining


def _eligible_count(poll: Poll, instrument: str) -> int:
    return sum(1 for r in poll.responses if any(r.is_eligible(d, instrument) for d in poll.dates))


def composition_order(poll: Poll, priority: Sequence[str] = PRIORITY_INSTRUMENTS) -> List[str]:
    """Priority instruments first, then the scarcest instruments."""
    first = priority_instruments(poll.instruments, priority)
    first_low = {p.lower() for p in priority}
    rest = [i for i in poll.instruments if i.lower() not in first_low]
    rest.sort(key=lambda i: _eligible_count(poll, i))
    return first + rest


def compose(poll: Poll, priority: Sequence[str] = PRIORITY_INSTRUMENTS) -> Planning:
    """Greedy line-up for every (date, instrument) slot.

    For each instrument (see ``composition_order``) and each date in poll
    order, candidates already playing something else that day are dropped,
    ``yes`` answers beat ``ifneeded`` answers, and within a tier the person
    with the fewest remaining eligible dates for this instrument wins. Ties
    go to whoever has been assigned this instrument least often so far, then
    to the alphabetically first name.

    Pure function: the poll is not modified. Slots nobody can fill are left
    out of the result.
    """
    remaining = _remaining_availability(poll)
    instr_assignments: Dict[str, Dict[str, int]] = defaultdict(lambda: defaultdict(int))
    planning: Planning = {d: {} for d in poll.dates}
    session_assigned: Dict[str, Set[str]] = {d: set() for d in poll.dates}

    for instrument in composition_order(poll, priority):
        for idx, date in enumerate(poll.dates):
            yes: List[str] = []
            ifneeded: List[str] = []
            for r in poll.responses:
                if r.name in session_assigned[date]:
                    continue
                if instrument not in r.instruments_on(date):
                    continue
                answer = r.answers.get(date)
                if answer == "yes":
                    yes.append(r.name)
                elif answer == "ifneeded":
                    ifneeded.append(r.name)
            if not yes and not ifneeded:
                continue

            def edf_key(name: str) -> tuple:
                return (
                    remaining[name][instrument][idx],
                    instr_assignments[name][instrument],
                    name,
                )

            tier = yes or ifneeded
            chosen = min(tier, key=edf_key)
            planning[date][instrument] = Assignment(name=chosen, is_guest=False, certain=bool(yes))
            session_assigned[date].add(chosen)
            instr_assignments[chosen][instrument] += 1

    filled = sum(len(row) for row in planning.values())
    logger.debug("Composed poll %s: %d slots filled", poll.id, filled)
    return planning


def set_cell(poll: Poll, planning: Optional[Planning], date: str, instrument: str, assignment: Optional[Assignment]) -> Planning:
    """Manually set or clear one planning cell.

    Other cells are left untouched and double booking across the row is not
    re-checked. Guests bypass eligibility; anyone else must be a candidate
    for the cell and gets ``certain`` from their answer.
    """
    if date not in poll.dates:
        raise ValidationError(f"Unknown date: {date}")
    if instrument not in poll.instruments:
        raise ValidationError(f"Unknown instrument: {instrument}")

    updated: Planning = {d: dict(row) for d, row in (planning or {}).items()}
    row = updated.setdefault(date, {})

    if assignment is None:
        row.pop(instrument, None)
        return updated

    name = assignment.name.strip()
    if not name:
        raise ValidationError("name required")
    if assignment.is_guest:
        row[instrument] = Assignment(name=name, is_guest=True, certain=None)
        return updated

    candidate = next((c for c in cell_candidates(poll, date, instrument) if c.name == name), None)
    if candidate is None:
        raise ValidationError(f"{name} is not available for {instrument} on {date}")
    row[instrument] = Assignment(name=name, is_guest=False, certain=candidate.tier == "yes")
    return updated


def check_planning(poll: Poll, planning: Planning) -> Planning:
    """Normalize a planning sent for saving.

    Dates and instruments must belong to the poll and every cell needs a
    name. Names are trimmed and guest cells always carry ``certain=None``.
    """
    checked: Planning = {}
    for date, row in planning.items():
        if date not in poll.dates:
            raise ValidationError(f"Unknown date: {date}")
        cells: Dict[str, Assignment] = {}
        for instrument, assignment in row.items():
            if instrument not in poll.instruments:
                raise ValidationError(f"Unknown instrument: {instrument}")
            name = assignment.name.strip()
            if not name:
                raise ValidationError("name required")
            if assignment.is_guest:
                cells[instrument] = Assignment(name=name, is_guest=True, certain=None)
            else:
                cells[instrument] = Assignment(name=name, is_guest=False, certain=assignment.certain)
        if cells:
            checked[date] = cells
    return checked
