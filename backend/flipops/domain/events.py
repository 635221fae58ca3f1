# backend/flipops/domain/events.py
from __future__ import annotations

import re
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Optional

from .jsonfields import loads_dict

GATE_ACTOR_RE = re.compile(r"^system:(G[1-4])(?![0-9])")


def gate_for_actor(actor: Optional[str]) -> Optional[str]:
    """
    system:G1 -> "G1". Anything else (user:..., system:refresh) -> None.
    """
    m = GATE_ACTOR_RE.match((actor or "").strip())
    return m.group(1) if m else None


@dataclass(frozen=True)
class EventRecord:
    id: int
    deal_id: Optional[str]
    actor: str
    artifact: str
    action: str
    gate: Optional[str]
    checksum: str
    ts: datetime
    diff: dict[str, Any] = field(default_factory=dict)

    @classmethod
    def from_row(cls, row: Any) -> "EventRecord":
        actor = str(getattr(row, "actor", "") or "")
        return cls(
            id=int(row.id),
            deal_id=getattr(row, "deal_id", None),
            actor=actor,
            artifact=str(getattr(row, "artifact", "") or ""),
            action=str(getattr(row, "action", "") or "").upper(),
            # explicit column wins; legacy rows fall back to the actor prefix
            gate=(getattr(row, "gate", None) or gate_for_actor(actor)),
            checksum=str(getattr(row, "checksum", "") or ""),
            ts=row.ts,
            diff=loads_dict(getattr(row, "diff_json", None)),
        )

    @property
    def order_key(self) -> tuple[datetime, int]:
        return (self.ts, self.id)

    def feed_item(self) -> dict[str, str]:
        return {"ts": self.ts.isoformat(), "artifact": self.artifact, "action": self.action}


def newest_first(events: list[EventRecord]) -> list[EventRecord]:
    return sorted(events, key=lambda e: e.order_key, reverse=True)


def age_hours(ts: datetime, now: datetime) -> float:
    return max(0.0, (now - ts).total_seconds() / 3600.0)


def as_naive_utc(ts: datetime) -> datetime:
    """Stored timestamps are naive UTC; aware inputs are shifted, not truncated."""
    if ts.tzinfo is None:
        return ts
    return ts.astimezone(timezone.utc).replace(tzinfo=None)
