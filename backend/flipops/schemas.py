# backend/flipops/schemas.py
from __future__ import annotations

from datetime import datetime
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

from .domain.events import as_naive_utc


def _camel(name: str) -> str:
    head, *rest = name.split("_")
    return head + "".join(p.title() for p in rest)


class _CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=_camel, populate_by_name=True, from_attributes=True)


# -------------------- Events --------------------

class EventCreate(_CamelModel):
    deal_id: Optional[str] = None
    actor: str = Field(min_length=1)
    artifact: str = Field(min_length=1)
    action: str = Field(min_length=1)
    gate: Optional[str] = Field(default=None, pattern=r"^G[1-4]$")
    diff: dict[str, Any] = Field(default_factory=dict)
    ts: Optional[datetime] = None

    @field_validator("action")
    @classmethod
    def _upper(cls, v: str) -> str:
        return v.strip().upper()

    @field_validator("ts")
    @classmethod
    def _utc(cls, v: Optional[datetime]) -> Optional[datetime]:
        return as_naive_utc(v) if v is not None else None


class EventOut(_CamelModel):
    id: str
    deal_id: Optional[str] = None
    actor: str
    artifact: str
    action: str
    gate: Optional[str] = None
    checksum: Optional[str] = None
    ts: datetime


class MarkSeenIn(_CamelModel):
    event_id: str = Field(min_length=1)
    type: str = "panel_seen"
    message: Optional[str] = None
    metadata: dict[str, Any] = Field(default_factory=dict)


class MarkSeenOut(_CamelModel):
    event_id: str
    processed: bool
    created: bool


# -------------------- Health --------------------

class HealthOut(BaseModel):
    status: str
    version: str
    env: str
    db: str
