# backend/flipops/domain/budget.py
from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Iterable, Optional

from ..config import GuardrailConfig
from .events import EventRecord
from .jsonfields import TradeMap, decode_trade_map

GREEN = "GREEN"
TIER1 = "TIER1"
TIER2 = "TIER2"

FREEZING_CO_STATUSES = frozenset({"proposed", "approved"})

INVOICE_APPROVAL_ACTIONS = frozenset({"APPROVE", "APPROVE_INVOICE"})
G3_DECISION_ACTIONS = frozenset({"OK", "FREEZE_TIER1", "ESCALATE_TIER2"})


def _round_usd(x: float) -> float:
    return float(round(float(x or 0.0)))


def _round_pct(x: float) -> float:
    return float(round(float(x or 0.0), 2))


def _hours_between(start: Optional[datetime], end: Optional[datetime]) -> Optional[float]:
    if start is None or end is None:
        return None
    return max(0.0, (end - start).total_seconds() / 3600.0)


def _mean(xs: list[float]) -> float:
    return float(sum(xs) / len(xs)) if xs else 0.0


def variance_pct(actual: float, baseline: float) -> float:
    """(actual - baseline) / baseline * 100; 0 when baseline is 0 (never NaN/inf)."""
    if not baseline:
        return 0.0
    return (float(actual) - float(baseline)) / float(baseline) * 100.0


def variance_tier(pct: float, tier1_pct: float, tier2_pct: float) -> str:
    a = abs(float(pct))
    if a < tier1_pct:
        return GREEN
    if a < tier2_pct:
        return TIER1
    return TIER2


def impact_pct(delta_usd: float, max_exposure_usd: float) -> float:
    if not max_exposure_usd or float(max_exposure_usd) <= 0:
        return 0.0
    return float(delta_usd) / float(max_exposure_usd) * 100.0


def bid_spread_pct(amounts: Iterable[float]) -> Optional[float]:
    """(highest - lowest) / lowest * 100 over live bids; None with fewer than two or a zero low bid."""
    xs = [float(a or 0.0) for a in amounts]
    if len(xs) < 2:
        return None
    lo, hi = min(xs), max(xs)
    if lo <= 0:
        return None
    return (hi - lo) / lo * 100.0


def _norm_trade(t: Any) -> str:
    return str(t or "").strip().casefold()


def frozen_trades(change_orders: Iterable[Any]) -> set[str]:
    """Normalized trade names with a proposed or approved change order."""
    out: set[str] = set()
    for co in change_orders:
        if (getattr(co, "status", "") or "").strip().lower() in FREEZING_CO_STATUSES:
            out.add(_norm_trade(getattr(co, "trade", None)))
    return out


# -----------------------------
# Output shapes
# -----------------------------
@dataclass(frozen=True)
class TradeLine:
    trade: str
    baseline: float
    committed: float
    actuals: float
    variance_abs: float
    variance_pct: float
    tier: str
    frozen: bool

    def as_dict(self) -> dict:
        return {
            "trade": self.trade,
            "baseline": _round_usd(self.baseline),
            "committed": _round_usd(self.committed),
            "actuals": _round_usd(self.actuals),
            "varianceAbs": _round_usd(self.variance_abs),
            "variancePct": _round_pct(self.variance_pct),
            "tier": self.tier,
            "frozen": self.frozen,
        }


@dataclass(frozen=True)
class ChangeOrderRollup:
    count: int = 0
    approved: int = 0
    denied: int = 0
    proposed: int = 0
    net_impact_usd: float = 0.0
    approval_latency_hours: float = 0.0

    def as_dict(self) -> dict:
        return {
            "count": self.count,
            "approved": self.approved,
            "denied": self.denied,
            "proposed": self.proposed,
            "netImpactUsd": _round_usd(self.net_impact_usd),
            "approvalLatencyHours": round(self.approval_latency_hours, 1),
        }


@dataclass(frozen=True)
class InvoiceRollup:
    count: int = 0
    pending: int = 0
    avg_approval_latency_hours: float = 0.0

    def as_dict(self) -> dict:
        return {
            "count": self.count,
            "pending": self.pending,
            "avgApprovalLatencyHours": round(self.avg_approval_latency_hours, 1),
        }


@dataclass(frozen=True)
class Burn:
    daily_usd: float = 0.0
    days_held: int = 0
    carry_to_date_usd: float = 0.0

    def as_dict(self) -> dict:
        return {
            "dailyUsd": _round_usd(self.daily_usd),
            "daysHeld": int(self.days_held),
            "carryToDateUsd": _round_usd(self.carry_to_date_usd),
        }


@dataclass(frozen=True)
class MoneySummary:
    baseline: float = 0.0
    committed: float = 0.0
    actuals: float = 0.0
    variance_abs: float = 0.0
    variance_pct: float = 0.0
    by_trade: list[TradeLine] = field(default_factory=list)
    change_orders: ChangeOrderRollup = field(default_factory=ChangeOrderRollup)
    invoices: InvoiceRollup = field(default_factory=InvoiceRollup)
    burn: Burn = field(default_factory=Burn)
    has_ledger: bool = False

    def as_dict(self) -> dict:
        return {
            "budget": {
                "baseline": _round_usd(self.baseline),
                "committed": _round_usd(self.committed),
                "actuals": _round_usd(self.actuals),
                "variance": {"abs": _round_usd(self.variance_abs), "pct": _round_pct(self.variance_pct)},
            },
            "byTrade": [t.as_dict() for t in self.by_trade],
            "changeOrders": self.change_orders.as_dict(),
            "invoices": self.invoices.as_dict(),
            "burn": self.burn.as_dict(),
        }


# -----------------------------
# Rollups
# -----------------------------
def trade_breakdown(
    baseline: TradeMap,
    committed: TradeMap,
    actuals: TradeMap,
    *,
    frozen: set[str],
    tier1_pct: float,
    tier2_pct: float,
) -> list[TradeLine]:
    trades = sorted(set(baseline.by_trade) | set(committed.by_trade) | set(actuals.by_trade))
    out: list[TradeLine] = []
    for t in trades:
        b, c, a = baseline.get(t), committed.get(t), actuals.get(t)
        pct = variance_pct(a, b)
        out.append(
            TradeLine(
                trade=t,
                baseline=b,
                committed=c,
                actuals=a,
                variance_abs=a - b,
                variance_pct=pct,
                tier=variance_tier(pct, tier1_pct, tier2_pct),
                frozen=_norm_trade(t) in frozen,
            )
        )
    return out


def _diff_ref(ev: EventRecord, *keys: str) -> Optional[str]:
    for k in keys:
        v = ev.diff.get(k)
        if v is not None:
            return str(v)
    return None


def change_order_rollup(change_orders: list[Any], events: list[EventRecord]) -> ChangeOrderRollup:
    approving: dict[str, datetime] = {}
    for ev in sorted(events, key=lambda e: e.order_key):
        if ev.artifact != "ChangeOrder" or ev.action != "APPROVE_CO":
            continue
        ref = _diff_ref(ev, "changeOrderId", "coId")
        if ref and ref not in approving:
            approving[ref] = ev.ts

    approved = [c for c in change_orders if (c.status or "").lower() == "approved"]
    denied = [c for c in change_orders if (c.status or "").lower() == "denied"]
    proposed = [c for c in change_orders if (c.status or "").lower() == "proposed"]

    latencies: list[float] = []
    for c in approved:
        decided = approving.get(str(c.id)) or getattr(c, "decided_at", None)
        h = _hours_between(c.created_at, decided)
        if h is not None:
            latencies.append(h)

    return ChangeOrderRollup(
        count=len(change_orders),
        approved=len(approved),
        denied=len(denied),
        proposed=len(proposed),
        net_impact_usd=float(sum(float(c.delta_usd or 0.0) for c in approved)),
        approval_latency_hours=_mean(latencies),
    )


def _is_invoice_approval(ev: EventRecord) -> bool:
    if ev.artifact == "Invoice" and ev.action in INVOICE_APPROVAL_ACTIONS:
        return True
    # every G3 tier still approves the invoice it evaluated
    return ev.artifact == "Budget" and ev.action in G3_DECISION_ACTIONS


def invoice_rollup(invoices: list[Any], events: list[EventRecord]) -> InvoiceRollup:
    approving: dict[str, datetime] = {}
    for ev in sorted(events, key=lambda e: e.order_key):
        if not _is_invoice_approval(ev):
            continue
        ref = _diff_ref(ev, "invoiceId")
        if ref and ref not in approving:
            approving[ref] = ev.ts

    latencies: list[float] = []
    pending = 0
    for inv in invoices:
        if (getattr(inv, "status", "") or "").lower() == "pending":
            pending += 1
        approved_at = approving.get(str(inv.id)) or getattr(inv, "approved_at", None)
        h = _hours_between(inv.created_at, approved_at)
        if h is not None:
            latencies.append(h)

    return InvoiceRollup(count=len(invoices), pending=pending, avg_approval_latency_hours=_mean(latencies))


def burn_for(deal: Any, *, now: datetime) -> Burn:
    daily = float(getattr(deal, "daily_burn_usd", 0.0) or 0.0)
    start = getattr(deal, "start_at", None) or getattr(deal, "created_at", None)
    days = 0
    if start is not None:
        days = max(0, int((now - start).total_seconds() // 86400))
    return Burn(daily_usd=daily, days_held=days, carry_to_date_usd=daily * days)


def aggregate_budget(
    *,
    deal: Any,
    ledger: Optional[Any],
    change_orders: list[Any],
    invoices: list[Any],
    events: list[EventRecord],
    now: datetime,
    cfg: GuardrailConfig,
) -> MoneySummary:
    """
    Money panel math. A deal without a ledger is a valid state: budget and
    per-trade lines are zero/empty; change-order, invoice and burn rollups
    still come from their own rows.
    """
    co = change_order_rollup(change_orders, events)
    inv = invoice_rollup(invoices, events)
    burn = burn_for(deal, now=now)

    if ledger is None:
        return MoneySummary(change_orders=co, invoices=inv, burn=burn, has_ledger=False)

    baseline = decode_trade_map(getattr(ledger, "baseline_json", None))
    committed = decode_trade_map(getattr(ledger, "committed_json", None))
    actuals = decode_trade_map(getattr(ledger, "actuals_json", None))

    lines = trade_breakdown(
        baseline,
        committed,
        actuals,
        frozen=frozen_trades(change_orders),
        tier1_pct=cfg.variance_tier1_pct,
        tier2_pct=cfg.variance_tier2_pct,
    )

    return MoneySummary(
        baseline=baseline.total,
        committed=committed.total,
        actuals=actuals.total,
        variance_abs=actuals.total - baseline.total,
        variance_pct=variance_pct(actuals.total, baseline.total),
        by_trade=lines,
        change_orders=co,
        invoices=inv,
        burn=burn,
        has_ledger=True,
    )


def contingency_remaining(*, target_pct: float, baseline: float, actuals_total: float) -> float:
    """
    Target contingency (pct of baseline) minus whatever actuals have already
    eaten past baseline. Never negative.
    """
    target_usd = float(target_pct) / 100.0 * float(baseline)
    consumed = max(0.0, float(actuals_total) - float(baseline))
    return max(0.0, target_usd - consumed)
