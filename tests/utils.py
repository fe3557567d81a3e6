"""Builders for polls and responses used across the test-suite."""
from __future__ import annotations

from datetime import datetime, timezone
from pathlib import Path
from typing import Dict, Iterable, List, Optional, Sequence

from bandpoll.config import Settings
from bandpoll.polls.schema import Poll, Response

DATES: Sequence[str] = ("2024-01-07", "2024-01-14")


def response(
    name: str,
    answers: Dict[str, str],
    instruments: Optional[Dict[str, List[str]]] = None,
    upfront: Optional[List[str]] = None,
) -> Response:
    return Response(
        name=name,
        submitted_at=datetime(2024, 1, 1, 12, 0, 0, tzinfo=timezone.utc),
        answers=answers,
        instruments=instruments or {},
        upfront_instruments=upfront or [],
    )


def every_date(name: str, answer: str, instruments: List[str], dates: Sequence[str] = DATES) -> Response:
    """Same answer and instrument list on every date."""
    return response(name, {d: answer for d in dates}, {d: list(instruments) for d in dates})


def make_poll(
    instruments: Sequence[str],
    responses: Iterable[Response] = (),
    dates: Sequence[str] = DATES,
    participants: Optional[Sequence[str]] = None,
) -> Poll:
    responses = list(responses)
    return Poll(
        id="poll-1",
        title="Rehearsals",
        created_at=datetime(2024, 1, 1, tzinfo=timezone.utc),
        dates=list(dates),
        participants=list(participants or [r.name for r in responses] or ["Alice"]),
        instruments=list(instruments),
        responses=responses,
        deletion_token="secret",
    )


def submission_body(name: str, answers: Dict[str, str], instruments: Optional[Dict[str, List[str]]] = None, upfront: Optional[List[str]] = None) -> Dict[str, object]:
    return {
        "name": name,
        "answers": answers,
        "instruments": instruments or {},
        "upfrontInstruments": upfront or [],
    }


def make_settings(tmp_path: Path, **overrides: object) -> Settings:
    values: Dict[str, object] = {
        "DATABASE_URL": f"sqlite:///{tmp_path / 'bandpoll.db'}",
        "PRIORITY_INSTRUMENTS": "piano,guitar",
    }
    values.update(overrides)
    return Settings(_env_file=None, **values)
