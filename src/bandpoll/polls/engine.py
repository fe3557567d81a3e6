from __future__ import annotations

import hmac
import logging
import re
import uuid
from dataclasses import dataclass
from datetime import date as _date
from datetime import datetime, timezone
from typing import Dict, List, Optional, Sequence, Tuple

from ..errors import AuthorizationError, ValidationError
from .schema import ANSWER_VALUES, CreatePollRequest, Poll, Response, Submission


logger = logging.getLogger(__name__)

DATE_RE = re.compile(r"^\d{4}-\d{2}-\d{2}$")


@dataclass
class SubmissionResult:
    responses: List[Response]
    response: Response
    is_update: bool


@dataclass
class RosterMerge:
    participants: List[str]
    instruments: List[str]
    added_participants: List[str]
    added_instruments: List[str]


def _is_calendar_date(value: str) -> bool:
    if not isinstance(value, str) or not DATE_RE.match(value):
        return False
    try:
        _date.fromisoformat(value)
    except ValueError:
        return False
    return True


def create_poll(req: CreatePollRequest) -> Poll:
    title = (req.title or "").strip()
    if not title or not req.dates:
        raise ValidationError("Title and at least one date are required")
    if not req.participants:
        raise ValidationError("At least one participant is required")
    if not req.instruments:
        raise ValidationError("At least one instrument is required")
    for d in req.dates:
        if not _is_calendar_date(d):
            raise ValidationError(f"Invalid date: {d}")

    poll = Poll(
        id=str(uuid.uuid4()),
        title=title,
        description=(req.description or "").strip(),
        duration=req.duration or "",
        created_at=datetime.now(timezone.utc),
        dates=sorted(set(req.dates)),
        participants=list(req.participants),
        instruments=list(req.instruments),
        responses=[],
        planning=None,
        deletion_token=str(uuid.uuid4()),
    )
    logger.info("Created poll %s with %d dates", poll.id, len(poll.dates))
    return poll


def check_token(poll: Poll, supplied: Optional[str]) -> None:
    if not supplied:
        raise ValidationError("Deletion token is required")
    if not hmac.compare_digest(poll.deletion_token.encode(), supplied.encode()):
        raise AuthorizationError("Invalid deletion token")


def build_response(
    poll: Poll,
    submission: Submission,
    *,
    require_upfront_instrument: bool = False,
) -> Response:
    """Validate a submission against the poll and turn it into a Response.

    Rules are checked in order and the first failure wins:
    a non-blank name, then a valid answer for every poll date (reported for
    the first offending date in poll order), then, when
    ``require_upfront_instrument`` is set, at least one upfront instrument
    for anyone who declares availability.
    """
    name = (submission.name or "").strip()
    if not name:
        raise ValidationError("name required")

    raw_answers = submission.answers if isinstance(submission.answers, dict) else {}
    answers: Dict[str, str] = {}
    for d in poll.dates:
        value = raw_answers.get(d)
        if value not in ANSWER_VALUES:
            raise ValidationError(f"invalid or missing answer for date {d}")
        answers[d] = value

    upfront = _poll_instruments(poll, submission.upfront_instruments)
    if require_upfront_instrument and not upfront:
        if any(a != "no" for a in answers.values()):
            raise ValidationError("choose at least one instrument before answering yes or if needed")

    instruments: Dict[str, List[str]] = {}
    for d in poll.dates:
        chosen = _poll_instruments(poll, submission.instruments.get(d) or [])
        if chosen:
            instruments[d] = chosen

    return Response(
        name=name,
        submitted_at=datetime.now(timezone.utc),
        answers=answers,
        instruments=instruments,
        upfront_instruments=upfront,
    )


def merge_response(responses: Sequence[Response], response: Response) -> Tuple[List[Response], bool]:
    """Replace the same-named response in place, or append a new one."""
    merged = list(responses)
    for idx, existing in enumerate(merged):
        if existing.key == response.key:
            merged[idx] = response
            return merged, True
    merged.append(response)
    return merged, False


def apply_submission(
    poll: Poll,
    submission: Submission,
    *,
    require_upfront_instrument: bool = False,
) -> SubmissionResult:
    response = build_response(poll, submission, require_upfront_instrument=require_upfront_instrument)
    responses, is_update = merge_response(poll.responses, response)
    logger.info(
        "%s response from %r on poll %s",
        "Updated" if is_update else "New",
        response.name,
        poll.id,
    )
    return SubmissionResult(responses=responses, response=response, is_update=is_update)


def _clean_names(values: Sequence[str]) -> List[str]:
    return [v.strip() for v in values if isinstance(v, str) and v.strip()]


def _poll_instruments(poll: Poll, values: Sequence[str]) -> List[str]:
    known = set(poll.instruments)
    return [v for v in _clean_names(values) if v in known]


def _merge_names(existing: Sequence[str], proposed: Sequence[str]) -> Tuple[List[str], List[str]]:
    seen = {e.lower() for e in existing}
    added: List[str] = []
    for raw in _clean_names(proposed):
        low = raw.lower()
        if low in seen:
            continue
        seen.add(low)
        added.append(raw)
    return list(existing) + added, added


def merge_roster(
    participants: Sequence[str],
    instruments: Sequence[str],
    new_participants: Sequence[str],
    new_instruments: Sequence[str],
) -> RosterMerge:
    merged_participants, added_participants = _merge_names(participants, new_participants)
    merged_instruments, added_instruments = _merge_names(instruments, new_instruments)
    return RosterMerge(
        participants=merged_participants,
        instruments=merged_instruments,
        added_participants=added_participants,
        added_instruments=added_instruments,
    )
