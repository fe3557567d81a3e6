from __future__ import annotations

from typing import Dict

from .schema import Poll


ANSWER_SYMBOLS = {"yes": "✓", "ifneeded": "?", "no": "✗"}


def availability_summary(poll: Poll) -> Dict[str, Dict[str, int]]:
    """Per-date head count: ``{date: {"yes": n, "ifneeded": m}}`` in poll date order."""
    summary: Dict[str, Dict[str, int]] = {}
    for d in poll.dates:
        answers = [r.answers.get(d) for r in poll.responses]
        summary[d] = {"yes": answers.count("yes"), "ifneeded": answers.count("ifneeded")}
    return summary


def summary_label(counts: Dict[str, int]) -> str:
    if counts["ifneeded"]:
        return f"{counts['yes']} (+{counts['ifneeded']})"
    return str(counts["yes"])
