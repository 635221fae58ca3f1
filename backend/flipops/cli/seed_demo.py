# backend/flipops/cli/seed_demo.py
from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Optional

from sqlalchemy import select
from sqlalchemy.orm import Session

from flipops.db import SessionLocal
from flipops.models import DealSpec, Event, Policy, User
from flipops.services.event_store import write_event

BLOCKED_DEAL_ID = "demo-blocked"
FRESH_DEAL_ID = "demo-fresh"


@dataclass(frozen=True)
class SeedResult:
    user_id: str
    blocked_deal_id: str
    fresh_deal_id: str
    block_event_id: Optional[int]


def _get_or_create_user(db: Session, external_id: str, email: str, name: str) -> User:
    row = db.scalar(select(User).where(User.external_id == external_id))
    if row:
        return row
    row = User(external_id=external_id, email=email, name=name)
    db.add(row)
    db.flush()
    return row


def _ensure_policy(db: Session, region: str, grade: str) -> Policy:
    row = db.scalar(select(Policy).where(Policy.region == region, Policy.grade == grade))
    if row:
        return row
    row = Policy(region=region, grade=grade, max_exposure_usd=300000.0, target_roi_pct=20.0, contingency_target_pct=12.0)
    db.add(row)
    db.flush()
    return row


def _get_or_create_deal(db: Session, deal_id: str, *, user_id: str, address: str, now: datetime) -> DealSpec:
    row = db.get(DealSpec, deal_id)
    if row:
        return row
    row = DealSpec(
        id=deal_id,
        user_id=user_id,
        address=address,
        type="flip",
        max_exposure_usd=300000.0,
        target_roi_pct=20.0,
        region="Miami",
        grade="Standard",
        daily_burn_usd=150.0,
        created_at=now,
        updated_at=now,
    )
    db.add(row)
    db.flush()
    return row


def seed_demo(
    *,
    external_id: str = "demo-user",
    email: str = "demo@flipops.local",
    name: str = "Demo Investor",
    db: Optional[Session] = None,
) -> SeedResult:
    """
    One deal blocked at G1 (P80 over the exposure cap) and one fresh deal
    with no events. Safe to run repeatedly.
    """
    own = db is None
    db = db or SessionLocal()
    try:
        now = datetime.utcnow()
        user = _get_or_create_user(db, external_id, email, name)
        _ensure_policy(db, "Miami", "Standard")

        blocked = _get_or_create_deal(db, BLOCKED_DEAL_ID, user_id=user.id, address="1420 NW 7th St, Miami, FL", now=now)
        _get_or_create_deal(db, FRESH_DEAL_ID, user_id=user.id, address="88 Coral Way, Miami, FL", now=now)

        block = db.scalar(
            select(Event).where(Event.deal_id == blocked.id, Event.artifact == "DealSpec", Event.action == "BLOCK")
        )
        if block is None:
            block = write_event(
                db,
                deal_id=blocked.id,
                actor="system:G1",
                artifact="DealSpec",
                action="BLOCK",
                diff={"p80": 385000, "maxExposureUsd": 300000, "excess": 85000},
            )

        db.commit()
        return SeedResult(
            user_id=user.id,
            blocked_deal_id=BLOCKED_DEAL_ID,
            fresh_deal_id=FRESH_DEAL_ID,
            block_event_id=block.id,
        )
    except Exception:
        db.rollback()
        raise
    finally:
        if own:
            db.close()
