# backend/flipops/services/deal_classifier.py
from __future__ import annotations

import logging
from collections import defaultdict
from datetime import datetime, timedelta
from typing import Any, Optional

from sqlalchemy import or_, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from ..config import GuardrailConfig
from ..domain.budget import bid_spread_pct, impact_pct, variance_pct, variance_tier
from ..domain.events import EventRecord
from ..domain.jsonfields import decode_trade_map
from ..domain.stall import DealFacts, classify_stalled
from ..models import Bid, BudgetLedger, ChangeOrder, DealSpec, Event, Invoice
from .deal_reads import vendors_by_id
from .event_store import events_by_deal, list_gate_events

log = logging.getLogger(__name__)

LIVE_BID_STATUSES = ("pending", "awarded")


def _approved_deal_ids(db: Session) -> set[str]:
    q = (
        select(Event)
        .where(Event.artifact == "DealSpec", Event.action == "APPROVE", Event.deal_id.is_not(None))
        .where(or_(Event.gate == "G1", Event.actor.like("system:G1%")))
    )
    return {str(r.deal_id) for r in db.scalars(q).all() if EventRecord.from_row(r).gate == "G1"}


def _scoped(q, user_id: Optional[str]):
    if user_id:
        q = q.where(DealSpec.user_id == str(user_id))
    return q


def list_active_deals(
    db: Session,
    *,
    cfg: GuardrailConfig,
    now: Optional[datetime] = None,
    user_id: Optional[str] = None,
    limit: Optional[int] = 100,
    offset: int = 0,
    oldest_first: bool = False,
) -> list[DealSpec]:
    """
    Active = approved at G1, or created inside the rolling window.
    """
    now = now or datetime.utcnow()
    cutoff = now - timedelta(days=cfg.active_window_days)
    approved = _approved_deal_ids(db)

    cond = DealSpec.created_at >= cutoff
    if approved:
        cond = or_(cond, DealSpec.id.in_(sorted(approved)))

    q = _scoped(select(DealSpec).where(cond), user_id)
    if oldest_first:
        q = q.order_by(DealSpec.updated_at.asc(), DealSpec.id)
    else:
        q = q.order_by(DealSpec.created_at.desc(), DealSpec.id)
    if offset:
        q = q.offset(offset)
    if limit is not None:
        q = q.limit(limit)
    return list(db.scalars(q).all())


def stalled_report(
    db: Session,
    *,
    cfg: GuardrailConfig,
    now: Optional[datetime] = None,
    user_id: Optional[str] = None,
    limit: Optional[int] = None,
    page_size: int = 500,
) -> dict[str, Any]:
    """
    Read path for the dashboard "overdue" list and the workflow engine's
    polling. Never writes; safe to call on a tight schedule.

    Every active deal is classified; `limit` only trims the returned list,
    never the summary counts.
    """
    now = now or datetime.utcnow()
    deals: list[DealSpec] = []
    while True:
        page = list_active_deals(db, cfg=cfg, now=now, user_id=user_id, limit=page_size, offset=len(deals))
        deals.extend(page)
        if len(page) < page_size:
            break
    ids = [str(d.id) for d in deals]

    evs = events_by_deal(db, ids)
    bids: dict[str, list[Bid]] = defaultdict(list)
    invs: dict[str, list[Invoice]] = defaultdict(list)
    cos: dict[str, list[ChangeOrder]] = defaultdict(list)
    if ids:
        for b in db.scalars(select(Bid).where(Bid.deal_id.in_(ids), Bid.status == "pending")).all():
            bids[b.deal_id].append(b)
        for i in db.scalars(select(Invoice).where(Invoice.deal_id.in_(ids), Invoice.status == "pending")).all():
            invs[i.deal_id].append(i)
        for c in db.scalars(
            select(ChangeOrder).where(ChangeOrder.deal_id.in_(ids), ChangeOrder.status == "proposed")
        ).all():
            cos[c.deal_id].append(c)

    vendor_ids = {b.vendor_id for rows in bids.values() for b in rows if b.vendor_id}
    vendor_ids |= {i.vendor_id for rows in invs.values() for i in rows if i.vendor_id}

    facts = [
        DealFacts(deal=d, events=evs.get(str(d.id), []), bids=bids[d.id], invoices=invs[d.id], change_orders=cos[d.id])
        for d in deals
    ]
    report = classify_stalled(facts, now=now, cfg=cfg, vendors=vendors_by_id(db, vendor_ids))
    if limit:
        report["stalledDeals"] = report["stalledDeals"][:limit]
    report["timestamp"] = now.isoformat()

    log.info("stalled deals computed", extra={"summary": report["summary"], "user_id": user_id})
    return report


def sync_all(
    db: Session,
    *,
    cfg: GuardrailConfig,
    limit: int,
    now: Optional[datetime] = None,
    user_id: Optional[str] = None,
) -> dict[str, Any]:
    """
    Touch updated_at on active deals, least recently synced first. This is a
    CRUD-side write; the read core is untouched.
    """
    now = now or datetime.utcnow()
    t0 = datetime.utcnow()
    deals = list_active_deals(db, cfg=cfg, now=now, user_id=user_id, limit=limit, oldest_first=True)

    ok: list[str] = []
    for d in deals:
        d.updated_at = now
        ok.append(str(d.id))
    try:
        db.commit()
    except SQLAlchemyError:
        db.rollback()
        log.exception("bulk sync failed", extra={"total": len(deals)})
        raise

    ms = int((datetime.utcnow() - t0).total_seconds() * 1000)
    log.info("bulk sync completed", extra={"total": len(deals), "ok": len(ok), "failed": 0})
    return {
        "summary": {"total": len(deals), "successful": len(ok), "failed": 0, "durationMs": ms},
        "results": {"success": ok, "failed": []},
        "timestamp": now.isoformat(),
    }


def pending_change_orders(db: Session, *, user_id: Optional[str] = None) -> dict[str, Any]:
    q = (
        select(ChangeOrder, DealSpec)
        .join(DealSpec, DealSpec.id == ChangeOrder.deal_id)
        .where(ChangeOrder.status == "proposed")
        .order_by(ChangeOrder.created_at.desc(), ChangeOrder.id)
    )
    q = _scoped(q, user_id)

    rows: list[dict[str, Any]] = []
    for co, deal in db.execute(q).all():
        rows.append(
            {
                "dealId": str(deal.id),
                "address": deal.address,
                "changeOrderId": str(co.id),
                "trade": co.trade,
                "deltaUsd": float(co.delta_usd or 0.0),
                "impactPct": round(impact_pct(co.delta_usd or 0.0, deal.max_exposure_usd or 0.0), 2),
                "impactDays": int(co.impact_days or 0),
                "reason": co.rationale or "No reason provided",
                "createdAt": co.created_at.isoformat(),
            }
        )

    return {
        "summary": {
            "total": len(rows),
            "uniqueDeals": len({r["dealId"] for r in rows}),
            "totalImpact": float(sum(r["deltaUsd"] for r in rows)),
            "totalDaysImpact": int(sum(r["impactDays"] for r in rows)),
        },
        "pendingApprovals": rows,
    }


def g1_violations(
    db: Session,
    *,
    cfg: GuardrailConfig,
    now: Optional[datetime] = None,
    user_id: Optional[str] = None,
) -> dict[str, Any]:
    """
    Recent G1 BLOCK decisions, one row per deal (latest block wins).
    """
    now = now or datetime.utcnow()
    since = now - timedelta(days=cfg.violation_window_days)
    blocks = list_gate_events(db, artifact="DealSpec", action="BLOCK", gate="G1", since=since, limit=50)

    latest: dict[str, EventRecord] = {}
    for ev in blocks:
        if ev.deal_id and ev.deal_id not in latest:
            latest[ev.deal_id] = ev

    deals: dict[str, DealSpec] = {}
    if latest:
        q = _scoped(select(DealSpec).where(DealSpec.id.in_(sorted(latest))), user_id)
        deals = {d.id: d for d in db.scalars(q).all()}

    rows: list[dict[str, Any]] = []
    for deal_id, ev in latest.items():
        deal = deals.get(deal_id)
        if deal is None:
            continue
        cap = float(ev.diff.get("maxExposureUsd") or deal.max_exposure_usd or 0.0)
        p80 = float(ev.diff.get("p80") or 0.0)
        over = float(ev.diff.get("overBy") or ev.diff.get("excess") or max(0.0, p80 - cap))
        rows.append(
            {
                "dealId": deal_id,
                "address": deal.address,
                "p80": p80,
                "maxExposureUsd": cap,
                "overBy": over,
                "overByPct": round(over / cap * 100.0, 2) if cap > 0 else 0.0,
                "blockedAt": ev.ts.isoformat(),
                "eventId": str(ev.id),
                "reason": ev.diff.get("reason") or "P80 exceeds max exposure",
            }
        )

    return {"count": len(rows), "violations": rows, "windowDays": cfg.violation_window_days}


def budget_variance_violations(
    db: Session,
    *,
    cfg: GuardrailConfig,
    now: Optional[datetime] = None,
    user_id: Optional[str] = None,
) -> dict[str, Any]:
    """
    G3 watch list: deals whose ledger actuals run past baseline by more than
    the alert threshold. Worst variance first.
    """
    now = now or datetime.utcnow()
    q = _scoped(select(DealSpec, BudgetLedger).join(BudgetLedger, BudgetLedger.deal_id == DealSpec.id), user_id)

    rows: list[dict[str, Any]] = []
    for deal, ledger in db.execute(q.order_by(DealSpec.id)).all():
        baseline = decode_trade_map(ledger.baseline_json)
        actuals = decode_trade_map(ledger.actuals_json)
        pct = variance_pct(actuals.total, baseline.total)
        if pct <= cfg.variance_alert_pct:
            continue
        rows.append(
            {
                "dealId": str(deal.id),
                "address": deal.address,
                "budgetVariancePct": round(pct, 2),
                "tier": variance_tier(pct, cfg.variance_tier1_pct, cfg.variance_tier2_pct),
                "budgetedCost": float(baseline.total),
                "actualCost": float(actuals.total),
                "overageAmount": float(actuals.total - baseline.total),
                "contingencyRemaining": float(ledger.contingency_remaining or 0.0),
            }
        )
    rows.sort(key=lambda r: (-r["budgetVariancePct"], r["dealId"]))

    summary = {
        "total": len(rows),
        "totalOverage": float(sum(r["overageAmount"] for r in rows)),
        "avgVariancePct": round(sum(r["budgetVariancePct"] for r in rows) / len(rows), 2) if rows else 0.0,
    }
    log.info("budget variance violations computed", extra={"summary": summary, "user_id": user_id})
    return {
        "summary": summary,
        "violations": rows,
        "thresholdPct": cfg.variance_alert_pct,
        "timestamp": now.isoformat(),
    }


def bid_spread_violations(
    db: Session,
    *,
    cfg: GuardrailConfig,
    now: Optional[datetime] = None,
    user_id: Optional[str] = None,
) -> dict[str, Any]:
    """
    G2 watch list: deals whose live bids (pending or awarded) spread wider
    than the alert threshold. Needs at least two bids per deal.
    """
    now = now or datetime.utcnow()
    q = _scoped(
        select(Bid, DealSpec)
        .join(DealSpec, DealSpec.id == Bid.deal_id)
        .where(Bid.status.in_(LIVE_BID_STATUSES)),
        user_id,
    )

    by_deal: dict[str, list[Bid]] = defaultdict(list)
    deals: dict[str, DealSpec] = {}
    for bid, deal in db.execute(q).all():
        by_deal[str(deal.id)].append(bid)
        deals[str(deal.id)] = deal

    rows: list[dict[str, Any]] = []
    for deal_id, bids in by_deal.items():
        amounts = [float(b.subtotal or 0.0) for b in bids]
        spread = bid_spread_pct(amounts)
        if spread is None or spread <= cfg.bid_spread_alert_pct:
            continue
        rows.append(
            {
                "dealId": deal_id,
                "address": deals[deal_id].address,
                "bidSpreadPct": round(spread, 2),
                "lowestBid": min(amounts),
                "highestBid": max(amounts),
                "bidCount": len(bids),
            }
        )
    rows.sort(key=lambda r: (-r["bidSpreadPct"], r["dealId"]))

    summary = {
        "total": len(rows),
        "avgSpreadPct": round(sum(r["bidSpreadPct"] for r in rows) / len(rows), 2) if rows else 0.0,
    }
    log.info("bid spread violations computed", extra={"summary": summary, "user_id": user_id})
    return {
        "summary": summary,
        "violations": rows,
        "thresholdPct": cfg.bid_spread_alert_pct,
        "timestamp": now.isoformat(),
    }
