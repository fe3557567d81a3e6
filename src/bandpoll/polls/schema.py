from __future__ import annotations

from datetime import datetime
from typing import Any, Dict, List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field


AnswerValue = Literal["yes", "ifneeded", "no"]
Tier = Literal["yes", "ifneeded"]

ANSWER_VALUES = ("yes", "ifneeded", "no")
AVAILABLE = ("yes", "ifneeded")


class WireModel(BaseModel):
    """Snake-case attributes, camelCase on the wire."""

    model_config = ConfigDict(populate_by_name=True)

    def to_wire(self, **kwargs: Any) -> Dict[str, Any]:
        return self.model_dump(mode="json", by_alias=True, **kwargs)


class Assignment(WireModel):
    name: str
    is_guest: bool = Field(default=False, alias="isGuest")
    certain: Optional[bool] = None  # meaningless for guests


class Candidate(BaseModel):
    tier: Tier
    name: str


# date -> instrument -> assignment; empty slots are absent
Planning = Dict[str, Dict[str, Assignment]]


class Response(WireModel):
    name: str
    submitted_at: datetime = Field(alias="submittedAt")
    answers: Dict[str, AnswerValue]
    instruments: Dict[str, List[str]] = Field(default_factory=dict)
    upfront_instruments: List[str] = Field(default_factory=list, alias="upfrontInstruments")

    @property
    def key(self) -> str:
        return self.name.lower()

    def instruments_on(self, date: str) -> List[str]:
        return self.instruments.get(date) or []

    def is_available(self, date: str) -> bool:
        return self.answers.get(date) in AVAILABLE

    def is_eligible(self, date: str, instrument: str) -> bool:
        return self.is_available(date) and instrument in self.instruments_on(date)


class Poll(WireModel):
    id: str
    title: str
    description: str = ""
    duration: str = ""
    created_at: datetime = Field(alias="createdAt")
    dates: List[str]
    participants: List[str]
    instruments: List[str]
    responses: List[Response] = Field(default_factory=list)
    planning: Optional[Planning] = None
    deletion_token: str = Field(alias="deletionToken")

    def public(self) -> Dict[str, Any]:
        """Wire form without the capability token."""
        return self.to_wire(exclude={"deletion_token"})


# -------------------- Request bodies --------------------


class CreatePollRequest(WireModel):
    title: Optional[str] = None
    description: Optional[str] = None
    duration: Optional[str] = None
    dates: List[str] = Field(default_factory=list)
    participants: List[str] = Field(default_factory=list)
    instruments: List[str] = Field(default_factory=list)


class Submission(WireModel):
    # Loosely typed on purpose: the aggregator produces the readable errors
    name: Optional[str] = None
    answers: Optional[Dict[str, Any]] = None
    instruments: Dict[str, List[str]] = Field(default_factory=dict)
    upfront_instruments: List[str] = Field(default_factory=list, alias="upfrontInstruments")


class TokenBody(WireModel):
    deletion_token: Optional[str] = Field(default=None, alias="deletionToken")


class RosterUpdate(TokenBody):
    new_participants: List[str] = Field(default_factory=list, alias="newParticipants")
    new_instruments: List[str] = Field(default_factory=list, alias="newInstruments")


class PlanningUpdate(TokenBody):
    planning: Planning = Field(default_factory=dict)


class CellEdit(TokenBody):
    date: str
    instrument: str
    assignment: Optional[Assignment] = None
