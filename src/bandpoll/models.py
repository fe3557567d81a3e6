from __future__ import annotations

from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from sqlalchemy import JSON, Column
from sqlmodel import Field, SQLModel


class PollRecord(SQLModel, table=True):
    __tablename__ = "polls"

    id: str = Field(primary_key=True, max_length=64)
    created_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc), nullable=False, index=True)

    title: str
    description: str = ""
    duration: str = ""
    deletion_token: str = Field(max_length=64)

    # Document-style fields, each replaced wholesale on write
    dates: List[str] = Field(default_factory=list, sa_column=Column(JSON, nullable=False))
    participants: List[str] = Field(default_factory=list, sa_column=Column(JSON, nullable=False))
    instruments: List[str] = Field(default_factory=list, sa_column=Column(JSON, nullable=False))
    responses: List[Dict[str, Any]] = Field(default_factory=list, sa_column=Column(JSON, nullable=False))
    planning: Optional[Dict[str, Any]] = Field(default=None, sa_column=Column(JSON, nullable=True))
