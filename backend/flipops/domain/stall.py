# backend/flipops/domain/stall.py
from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Any, Iterable, Optional

from ..config import GuardrailConfig
from .budget import impact_pct
from .events import EventRecord, age_hours
from .gates import GATES, resolve_gate, has_ever


def is_active(*, created_at: datetime, events: Iterable[EventRecord], now: datetime, window_days: int) -> bool:
    """
    Approved at G1 (ever), or created inside the rolling window.
    """
    if has_ever(events, "G1", "APPROVE"):
        return True
    return created_at >= now - timedelta(days=window_days)


def format_duration(hours: float) -> str:
    """51 -> '2d 3h'; 5 -> '5h'."""
    h = int(max(0.0, hours))
    d, rem = divmod(h, 24)
    return f"{d}d {rem}h" if d else f"{rem}h"


def threshold_label(hours: float) -> str:
    days = float(hours) / 24.0
    if days == int(days):
        n = int(days)
        return f"{n} day" if n == 1 else f"{n} days"
    return f"{days:g} days"


@dataclass(frozen=True)
class StalledDeal:
    gate: str
    deal_id: str
    address: Optional[str]
    stalled_for_hours: int
    status: str
    details: dict[str, Any] = field(default_factory=dict)

    def as_dict(self) -> dict[str, Any]:
        return {
            "gate": self.gate,
            "dealId": self.deal_id,
            "address": self.address,
            "stalledFor": self.stalled_for_hours,
            "stalledForText": format_duration(self.stalled_for_hours),
            "status": self.status,
            "details": self.details,
        }


@dataclass(frozen=True)
class DealFacts:
    """Everything the classifier needs about one deal, already loaded."""

    deal: Any
    events: list[EventRecord]
    bids: list[Any] = field(default_factory=list)
    invoices: list[Any] = field(default_factory=list)
    change_orders: list[Any] = field(default_factory=list)


def _latest_gate_ts(events: list[EventRecord], gate: str) -> Optional[datetime]:
    spec = GATES[gate]
    hits = [e.ts for e in events if e.gate == gate and e.artifact == spec.artifact]
    return max(hits) if hits else None


def _anchor(item_created: datetime, last_gate_event: Optional[datetime]) -> datetime:
    # a gate decision after the item arrived counts as forward motion
    if last_gate_event is not None and last_gate_event > item_created:
        return last_gate_event
    return item_created


def _iso(ts: Optional[datetime]) -> Optional[str]:
    return ts.isoformat() if ts else None


def _oldest(rows: Iterable[Any], status: str) -> tuple[Optional[Any], int]:
    pending = [r for r in rows if (getattr(r, "status", "") or "").lower() == status]
    if not pending:
        return None, 0
    return min(pending, key=lambda r: (r.created_at, str(r.id))), len(pending)


def stalled_for_deal(facts: DealFacts, *, now: datetime, cfg: GuardrailConfig, vendors: dict[str, Any]) -> list[StalledDeal]:
    deal = facts.deal
    limits = cfg.stalled_hours
    out: list[StalledDeal] = []

    def emit(gate: str, since: datetime, status: str, details: dict[str, Any]) -> None:
        h = age_hours(since, now)
        if h > float(limits.get(gate, 0.0)):
            out.append(
                StalledDeal(
                    gate=gate,
                    deal_id=str(deal.id),
                    address=getattr(deal, "address", None),
                    stalled_for_hours=int(h),
                    status=status,
                    details=details,
                )
            )

    def vendor_name(vid: Optional[str]) -> str:
        v = vendors.get(vid) if vid else None
        return getattr(v, "name", None) or "Unknown"

    g1 = resolve_gate(facts.events, "G1")
    if not g1.is_approved:
        base = {
            "maxExposureUsd": float(deal.max_exposure_usd or 0.0),
            "targetRoiPct": float(deal.target_roi_pct or 0.0),
            "createdAt": _iso(deal.created_at),
        }
        if g1.is_blocked:
            base.update({"blockedAt": _iso(g1.ts), "eventId": str(g1.event_id), "reason": g1.diff or {}})
            emit("G1", g1.ts or deal.created_at, "blocked_approval", base)
        else:
            emit("G1", deal.created_at, "pending_approval", base)
        # later gates are not evaluated until the deal clears G1
        return out

    bid, n_bids = _oldest(facts.bids, "pending")
    if bid is not None:
        emit(
            "G2",
            _anchor(bid.created_at, _latest_gate_ts(facts.events, "G2")),
            "bid_pending",
            {
                "bidId": str(bid.id),
                "vendorId": bid.vendor_id,
                "vendorName": vendor_name(bid.vendor_id),
                "subtotal": float(bid.subtotal or 0.0),
                "createdAt": _iso(bid.created_at),
                "pendingBids": n_bids,
            },
        )

    inv, n_inv = _oldest(facts.invoices, "pending")
    if inv is not None:
        emit(
            "G3",
            _anchor(inv.created_at, _latest_gate_ts(facts.events, "G3")),
            "invoice_pending",
            {
                "invoiceId": str(inv.id),
                "trade": inv.trade,
                "amount": float(inv.amount or 0.0),
                "vendorId": inv.vendor_id,
                "vendorName": vendor_name(inv.vendor_id),
                "createdAt": _iso(inv.created_at),
                "pendingInvoices": n_inv,
            },
        )

    co, n_co = _oldest(facts.change_orders, "proposed")
    if co is not None:
        emit(
            "G4",
            _anchor(co.created_at, _latest_gate_ts(facts.events, "G4")),
            "change_order_pending",
            {
                "changeOrderId": str(co.id),
                "trade": co.trade,
                "deltaUsd": float(co.delta_usd or 0.0),
                "impactDays": int(co.impact_days or 0),
                "impactPct": round(impact_pct(co.delta_usd or 0.0, deal.max_exposure_usd or 0.0), 2),
                "createdAt": _iso(co.created_at),
                "pendingChangeOrders": n_co,
            },
        )

    return out


def classify_stalled(
    facts: Iterable[DealFacts],
    *,
    now: datetime,
    cfg: GuardrailConfig,
    vendors: Optional[dict[str, Any]] = None,
) -> dict[str, Any]:
    """
    Stalled = active AND the current gate has not moved for longer than its
    threshold. Inactive deals are skipped entirely.
    """
    vendors = vendors or {}
    stalled: list[StalledDeal] = []
    for f in facts:
        if not is_active(created_at=f.deal.created_at, events=f.events, now=now, window_days=cfg.active_window_days):
            continue
        stalled.extend(stalled_for_deal(f, now=now, cfg=cfg, vendors=vendors))

    stalled.sort(key=lambda s: (-s.stalled_for_hours, s.gate, s.deal_id))

    summary: dict[str, int] = {g: 0 for g in sorted(cfg.stalled_hours)}
    for s in stalled:
        summary[s.gate] = summary.get(s.gate, 0) + 1
    summary["total"] = len(stalled)

    return {
        "summary": summary,
        "stalledDeals": [s.as_dict() for s in stalled],
        "thresholds": {g: threshold_label(h) for g, h in sorted(cfg.stalled_hours.items())},
        "thresholdHours": {g: float(h) for g, h in sorted(cfg.stalled_hours.items())},
    }
