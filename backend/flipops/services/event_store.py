# backend/flipops/services/event_store.py
from __future__ import annotations

import logging
from collections import defaultdict
from datetime import datetime
from typing import Any, Iterable, Optional

from sqlalchemy import desc, select
from sqlalchemy.orm import Session

from ..domain.events import EventRecord, as_naive_utc, gate_for_actor
from ..domain.fingerprint import event_checksum
from ..domain.jsonfields import dumps_compact
from ..models import Event

log = logging.getLogger(__name__)


def list_deal_events(
    db: Session,
    deal_id: str,
    *,
    since: Optional[datetime] = None,
    limit: Optional[int] = None,
) -> list[EventRecord]:
    """
    Newest first: ts desc, then insertion order desc.
    """
    q = select(Event).where(Event.deal_id == str(deal_id))
    if since is not None:
        q = q.where(Event.ts >= since)
    q = q.order_by(desc(Event.ts), desc(Event.id))
    if limit is not None:
        q = q.limit(int(limit))
    return [EventRecord.from_row(r) for r in db.scalars(q).all()]


def events_by_deal(db: Session, deal_ids: Iterable[str]) -> dict[str, list[EventRecord]]:
    ids = [str(d) for d in deal_ids]
    out: dict[str, list[EventRecord]] = defaultdict(list)
    if not ids:
        return out
    rows = db.scalars(
        select(Event).where(Event.deal_id.in_(ids)).order_by(desc(Event.ts), desc(Event.id))
    ).all()
    for r in rows:
        out[str(r.deal_id)].append(EventRecord.from_row(r))
    return out


def list_gate_events(
    db: Session,
    *,
    artifact: str,
    action: str,
    gate: str,
    since: Optional[datetime] = None,
    limit: int = 50,
) -> list[EventRecord]:
    """
    Cross-deal scan for one gate decision (e.g. every G1 BLOCK this week).
    Gate attribution honours both the gate column and the actor prefix.
    """
    q = select(Event).where(Event.artifact == artifact, Event.action == action)
    if since is not None:
        q = q.where(Event.ts >= since)
    q = q.order_by(desc(Event.ts), desc(Event.id))

    out: list[EventRecord] = []
    for r in db.scalars(q).all():
        rec = EventRecord.from_row(r)
        if rec.gate == gate:
            out.append(rec)
            if len(out) >= limit:
                break
    return out


def write_event(
    db: Session,
    *,
    deal_id: Optional[str],
    actor: str,
    artifact: str,
    action: str,
    diff: Optional[dict[str, Any]] = None,
    gate: Optional[str] = None,
    ts: Optional[datetime] = None,
) -> Event:
    """
    Append one immutable event. Used by the generic event-creation route that
    external gate workflows call; the read-side core never writes.

    NOTE: flush-only, callers commit.
    """
    if not actor or not artifact or not action:
        raise ValueError("actor, artifact and action are required")

    action_u = str(action).strip().upper()
    payload = diff or {}
    row = Event(
        deal_id=str(deal_id) if deal_id is not None else None,
        actor=str(actor).strip(),
        artifact=str(artifact).strip(),
        action=action_u,
        gate=(gate or gate_for_actor(actor)),
        checksum=event_checksum(deal_id=deal_id, actor=actor, artifact=artifact, action=action_u, diff=payload),
        diff_json=dumps_compact(payload) if payload else None,
        ts=as_naive_utc(ts) if ts is not None else datetime.utcnow(),
    )
    db.add(row)
    db.flush()
    log.info(
        "event written",
        extra={"deal_id": row.deal_id, "gate": row.gate, "event_id": row.id, "action": row.action},
    )
    return row
