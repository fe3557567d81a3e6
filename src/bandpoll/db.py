from __future__ import annotations

import logging
from contextlib import contextmanager
from typing import Iterator, List, Optional

from sqlalchemy import text
from sqlalchemy.engine import Engine
from sqlmodel import Session, SQLModel, create_engine

from .errors import NotFoundError
from .models import PollRecord
from .polls.schema import Planning, Poll, Response


logger = logging.getLogger(__name__)


class PollStore:
    """Poll persistence keyed by poll id.

    Owns its engine: call ``open`` before use and ``close`` on shutdown.
    Every ``replace_*`` call rewrites a single field of one poll.
    """

    def __init__(self, database_url: str) -> None:
        self.database_url = database_url
        self._engine: Optional[Engine] = None

    def open(self) -> None:
        if self._engine is not None:
            return
        connect_args = {"check_same_thread": False} if self.database_url.startswith("sqlite") else {}
        self._engine = create_engine(self.database_url, echo=False, connect_args=connect_args)
        SQLModel.metadata.create_all(self._engine)
        logger.info("Poll store opened")

    def health_check(self) -> bool:
        if self._engine is None:
            return False
        try:
            with self._engine.connect() as conn:
                conn.execute(text("SELECT 1"))
        except Exception:  # noqa: BLE001
            logger.exception("Poll store health check failed")
            return False
        return True

    def close(self) -> None:
        if self._engine is None:
            return
        self._engine.dispose()
        self._engine = None
        logger.info("Poll store closed")

    @contextmanager
    def session(self) -> Iterator[Session]:
        if self._engine is None:
            raise RuntimeError("Poll store is not open")
        with Session(self._engine) as session:
            yield session

    # -------------------- Reads --------------------

    def load_poll(self, poll_id: str) -> Poll:
        with self.session() as session:
            record = session.get(PollRecord, poll_id)
            if not record:
                raise NotFoundError("Poll not found")
            return _to_poll(record)

    # -------------------- Writes --------------------

    def insert_poll(self, poll: Poll) -> None:
        with self.session() as session:
            session.add(
                PollRecord(
                    id=poll.id,
                    created_at=poll.created_at,
                    title=poll.title,
                    description=poll.description,
                    duration=poll.duration,
                    deletion_token=poll.deletion_token,
                    dates=list(poll.dates),
                    participants=list(poll.participants),
                    instruments=list(poll.instruments),
                    responses=[r.to_wire() for r in poll.responses],
                    planning=_planning_to_wire(poll.planning),
                )
            )
            session.commit()

    def delete_poll(self, poll_id: str) -> None:
        with self.session() as session:
            record = _get_or_raise(session, poll_id)
            session.delete(record)
            session.commit()
        logger.info("Deleted poll %s", poll_id)

    def replace_responses(self, poll_id: str, responses: List[Response]) -> None:
        with self.session() as session:
            record = _get_or_raise(session, poll_id)
            record.responses = [r.to_wire() for r in responses]
            session.add(record)
            session.commit()

    def replace_planning(self, poll_id: str, planning: Optional[Planning]) -> None:
        with self.session() as session:
            record = _get_or_raise(session, poll_id)
            record.planning = _planning_to_wire(planning)
            session.add(record)
            session.commit()

    def replace_roster(self, poll_id: str, participants: List[str], instruments: List[str]) -> None:
        with self.session() as session:
            record = _get_or_raise(session, poll_id)
            record.participants = list(participants)
            record.instruments = list(instruments)
            session.add(record)
            session.commit()


def _get_or_raise(session: Session, poll_id: str) -> PollRecord:
    record = session.get(PollRecord, poll_id)
    if not record:
        raise NotFoundError("Poll not found")
    return record


def _planning_to_wire(planning: Optional[Planning]) -> Optional[dict]:
    if planning is None:
        return None
    return {d: {i: a.to_wire() for i, a in row.items()} for d, row in planning.items()}


def _to_poll(record: PollRecord) -> Poll:
    return Poll.model_validate(
        {
            "id": record.id,
            "title": record.title,
            "description": record.description,
            "duration": record.duration,
            "createdAt": record.created_at,
            "dates": record.dates,
            "participants": record.participants,
            "instruments": record.instruments,
            "responses": record.responses,
            "planning": record.planning,
            "deletionToken": record.deletion_token,
        }
    )
