# backend/flipops/services/deal_reads.py
from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Optional

from sqlalchemy import select
from sqlalchemy.orm import Session

from ..domain.errors import DealNotFound, MissingParameter
from ..domain.events import EventRecord
from ..models import Bid, BudgetLedger, ChangeOrder, CostModel, DealSpec, Invoice, Policy, ScopeNode, Vendor
from .event_store import list_deal_events


def require_deal_id(deal_id: Optional[str]) -> str:
    v = (deal_id or "").strip()
    if not v:
        raise MissingParameter("dealId")
    return v


def require_deal(db: Session, deal_id: str, *, user_id: Optional[str] = None) -> DealSpec:
    """
    Another tenant's deal is reported as not found, never as forbidden.
    """
    deal = db.get(DealSpec, str(deal_id))
    if deal is None:
        raise DealNotFound(str(deal_id))
    if user_id and deal.user_id and str(deal.user_id) != str(user_id):
        raise DealNotFound(str(deal_id))
    return deal


def vendors_by_id(db: Session, ids: set[str]) -> dict[str, Vendor]:
    if not ids:
        return {}
    return {v.id: v for v in db.scalars(select(Vendor).where(Vendor.id.in_(sorted(ids)))).all()}


def find_policy(db: Session, *, region: str, grade: str) -> Optional[Policy]:
    return db.scalar(select(Policy).where(Policy.region == region, Policy.grade == grade))


@dataclass
class DealBundle:
    """One deal and every row the panels read, fetched once per request."""

    deal: DealSpec
    events: list[EventRecord]
    ledger: Optional[BudgetLedger] = None
    change_orders: list[ChangeOrder] = field(default_factory=list)
    invoices: list[Invoice] = field(default_factory=list)
    bids: list[Bid] = field(default_factory=list)
    vendors: dict[str, Vendor] = field(default_factory=dict)

    @property
    def newest_event_id(self) -> Optional[str]:
        return str(self.events[0].id) if self.events else None


def load_bundle(
    db: Session, deal_id: str, *, with_vendors: bool = False, user_id: Optional[str] = None
) -> DealBundle:
    deal = require_deal(db, deal_id, user_id=user_id)
    did = str(deal.id)

    ledger = db.scalar(select(BudgetLedger).where(BudgetLedger.deal_id == did))
    cos = list(db.scalars(select(ChangeOrder).where(ChangeOrder.deal_id == did).order_by(ChangeOrder.created_at)).all())
    invs = list(db.scalars(select(Invoice).where(Invoice.deal_id == did).order_by(Invoice.created_at)).all())
    bids = list(db.scalars(select(Bid).where(Bid.deal_id == did).order_by(Bid.created_at)).all())

    vendors: dict[str, Vendor] = {}
    if with_vendors:
        ids = {b.vendor_id for b in bids if b.vendor_id} | {i.vendor_id for i in invs if i.vendor_id}
        vendors = vendors_by_id(db, ids)

    return DealBundle(
        deal=deal,
        events=list_deal_events(db, did),
        ledger=ledger,
        change_orders=cos,
        invoices=invs,
        bids=bids,
        vendors=vendors,
    )


def load_estimator_inputs(db: Session, deal: DealSpec, *, region: str, grade: str) -> tuple[list[Any], list[Any]]:
    nodes = list(db.scalars(select(ScopeNode).where(ScopeNode.deal_id == str(deal.id))).all())
    if not nodes:
        return [], []
    trades = sorted({n.trade for n in nodes})
    models = list(
        db.scalars(
            select(CostModel).where(
                CostModel.region == region,
                CostModel.grade == grade,
                CostModel.trade.in_(trades),
            )
        ).all()
    )
    return nodes, models
