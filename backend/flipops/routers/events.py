# backend/flipops/routers/events.py
from __future__ import annotations

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from ..auth import Principal, get_principal, tenant_for
from ..db import get_db
from ..schemas import EventCreate, EventOut, MarkSeenIn, MarkSeenOut
from ..services.deal_reads import require_deal
from ..services.event_store import write_event
from ..services.notifications import mark_seen

router = APIRouter(prefix="/events", tags=["events"])


@router.post("", response_model=EventOut, response_model_by_alias=True, status_code=201)
def create_event(payload: EventCreate, db: Session = Depends(get_db), p: Principal = Depends(get_principal)):
    if payload.deal_id is not None:
        require_deal(db, payload.deal_id, user_id=tenant_for(p))
    row = write_event(
        db,
        deal_id=payload.deal_id,
        actor=payload.actor,
        artifact=payload.artifact,
        action=payload.action,
        diff=payload.diff,
        gate=payload.gate,
        ts=payload.ts,
    )
    db.commit()
    db.refresh(row)
    return EventOut(
        id=str(row.id),
        deal_id=row.deal_id,
        actor=row.actor,
        artifact=row.artifact,
        action=row.action,
        gate=row.gate,
        checksum=row.checksum,
        ts=row.ts,
    )


@router.post("/mark-seen", response_model=MarkSeenOut, response_model_by_alias=True)
def mark_event_seen(payload: MarkSeenIn, db: Session = Depends(get_db), p: Principal = Depends(get_principal)):
    row, created = mark_seen(
        db,
        event_id=payload.event_id,
        type=payload.type,
        message=payload.message,
        metadata=payload.metadata,
    )
    db.commit()
    return MarkSeenOut(event_id=row.event_id, processed=bool(row.processed), created=created)
