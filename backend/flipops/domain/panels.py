# backend/flipops/domain/panels.py
from __future__ import annotations

import re
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Iterable, Optional

from ..config import GuardrailConfig
from .budget import contingency_remaining
from .estimator import Estimate
from .events import EventRecord, age_hours, newest_first
from .gates import GATES, GATE_ORDER, GateState, status_map

# -----------------------------------------------------------------------------
# Truth / Motion shaping. Pure functions over already-loaded rows; the
# service layer does the querying.
# -----------------------------------------------------------------------------

UNALLOCATED = "Unallocated"

BOTTLENECK_APPROVAL = "APPROVAL"
BOTTLENECK_VENDOR = "VENDOR"
BOTTLENECK_INVOICE = "INVOICE"
BOTTLENECK_CHANGE_ORDER = "CHANGE_ORDER"

MILESTONE_ACTIONS = {
    "G1": frozenset({"APPROVE"}),
    "G2": frozenset({"AWARD"}),
    "G3": frozenset({"OK", "FREEZE_TIER1", "ESCALATE_TIER2"}),
    "G4": frozenset({"APPROVE_CO"}),
}


def _num(v: Any) -> Optional[float]:
    if isinstance(v, bool) or v is None:
        return None
    if isinstance(v, (int, float)):
        return float(v)
    try:
        return float(v)
    except (TypeError, ValueError):
        return None


def _pct(part: float, whole: float) -> float:
    if not whole:
        return 0.0
    return float(part) / float(whole) * 100.0


# -----------------------------
# Truth
# -----------------------------
def drivers_from_diff(diff: dict[str, Any]) -> list[dict[str, Any]]:
    """
    A BLOCK diff explains itself with one of:
      "drivers":   [{"trade": "HVAC", "delta": 40000}, ...]   (or uncertaintyImpact / amount)
      "breakdown": {"HVAC": 40000, "Roofing": 25000}           (or a list like drivers)
    Returns [{trade, delta}] ranked by delta desc.
    """
    raw = diff.get("drivers")
    if raw is None:
        raw = diff.get("breakdown")

    pairs: list[tuple[str, float]] = []
    if isinstance(raw, dict):
        for k, v in raw.items():
            n = _num(v)
            if n is not None:
                pairs.append((str(k), n))
    elif isinstance(raw, list):
        for item in raw:
            if not isinstance(item, dict) or not item.get("trade"):
                continue
            n = None
            for key in ("delta", "amount", "overBy", "uncertaintyImpact"):
                n = _num(item.get(key))
                if n is not None:
                    break
            if n is not None:
                pairs.append((str(item["trade"]), n))

    pairs.sort(key=lambda p: (-p[1], p[0]))
    return [{"trade": t, "delta": float(round(d))} for t, d in pairs]


def overage_from_diff(diff: dict[str, Any]) -> Optional[float]:
    for key in ("excess", "overBy"):
        n = _num(diff.get(key))
        if n is not None:
            return n
    p80, cap = _num(diff.get("p80")), _num(diff.get("maxExposureUsd"))
    if p80 is not None and cap is not None and p80 > cap:
        return p80 - cap
    return None


def rank_drivers(
    *,
    g1: GateState,
    estimate: Estimate,
    trade_overruns: Iterable[tuple[str, float]] = (),
    limit: int = 5,
) -> list[dict[str, Any]]:
    """
    Cost drivers behind an overage, best source first:
      1. the BLOCK event's own breakdown
      2. estimator uncertainty drivers
      3. ledger trades running over baseline
      4. the bare overage on a blocked deal, unallocated
    """
    diff = g1.diff or {}
    if g1.is_blocked:
        from_event = drivers_from_diff(diff)
        if from_event:
            return from_event[:limit]

    if estimate.drivers:
        return [d.as_dict() for d in estimate.drivers[:limit]]

    overruns = sorted(((t, d) for t, d in trade_overruns if d > 0), key=lambda p: (-p[1], p[0]))
    if overruns:
        return [{"trade": t, "delta": float(round(d))} for t, d in overruns[:limit]]

    if g1.is_blocked:
        over = overage_from_diff(diff)
        if over is not None and over > 0:
            return [{"trade": UNALLOCATED, "delta": float(round(over))}]
    return []


def _action_slug(trade: str) -> str:
    return re.sub(r"[^A-Z0-9]+", "_", trade.upper()).strip("_")


def recommend_actions(
    *,
    gates: dict[str, GateState],
    headroom_pct: float,
    drivers: list[dict[str, Any]],
    cfg: GuardrailConfig,
) -> list[str]:
    out: list[str] = []

    def add(a: str) -> None:
        if a not in out:
            out.append(a)

    g1, g2, g3, g4 = (gates[g] for g in GATE_ORDER)

    if g1.is_blocked:
        add("NEGOTIATE_SCOPE_OR_PRICE")
        top = next((d["trade"] for d in drivers if d.get("trade") and d["trade"] != UNALLOCATED), None)
        if top:
            add(f"REVIEW_{_action_slug(top)}_SCOPE")
    if headroom_pct < cfg.headroom_warning_pct:
        add("NEGOTIATE_SCOPE_OR_PRICE")
    if g2.is_blocked:
        add("REVIEW_SCOPE_MISMATCH_BIDS")
    if g3.action == "ESCALATE_TIER2":
        add("RUN_COG_SIMULATION")
    elif g3.action == "FREEZE_TIER1":
        add("FREEZE_NONCRITICAL")
    if g4.is_blocked:
        add("REVISE_CHANGE_ORDER_SCOPE")
    return out


@dataclass(frozen=True)
class Policy:
    max_exposure_usd: float
    target_roi_pct: float
    contingency_target_pct: float


def compose_truth(
    *,
    deal_id: str,
    policy: Policy,
    estimate: Estimate,
    gates: dict[str, GateState],
    ledger_baseline: float,
    ledger_actuals: float,
    trade_overruns: Iterable[tuple[str, float]],
    cfg: GuardrailConfig,
) -> dict[str, Any]:
    cap = float(policy.max_exposure_usd or 0.0)
    headroom = cap - float(estimate.p80)
    headroom_pct = _pct(headroom, cap)

    # contingency is measured against the ledger baseline when one exists
    base = ledger_baseline if ledger_baseline > 0 else estimate.baseline
    remaining = contingency_remaining(
        target_pct=policy.contingency_target_pct, baseline=base, actuals_total=ledger_actuals
    )

    drivers = rank_drivers(g1=gates["G1"], estimate=estimate, trade_overruns=trade_overruns)

    return {
        "dealId": deal_id,
        "policy": {"maxExposureUsd": float(round(cap)), "targetRoiPct": float(policy.target_roi_pct)},
        "estimate": estimate.as_dict(),
        "headroom": {"amount": float(round(headroom)), "pct": float(round(headroom_pct, 2))},
        "contingency": {
            "targetPct": float(round(policy.contingency_target_pct, 2)),
            "remainingUsd": float(round(remaining)),
        },
        "drivers": drivers,
        "status": status_map(gates),
        "gates": {g: gates[g].as_dict() for g in GATE_ORDER},
        "actions": recommend_actions(gates=gates, headroom_pct=headroom_pct, drivers=drivers, cfg=cfg),
    }


# -----------------------------
# Motion
# -----------------------------
def completed_milestones(events: Iterable[EventRecord]) -> int:
    n = 0
    for ev in events:
        spec = GATES.get(ev.gate or "")
        if spec and ev.artifact == spec.artifact and ev.action in MILESTONE_ACTIONS[spec.gate]:
            n += 1
    return n


def _bottleneck(kind: str, ref_id: Any, hours: float, notes: str) -> dict[str, Any]:
    return {"type": kind, "refId": str(ref_id), "ageHours": float(round(hours, 1)), "notes": notes}


def find_bottlenecks(
    *,
    gates: dict[str, GateState],
    bids: list[Any],
    invoices: list[Any],
    change_orders: list[Any],
    now: datetime,
    threshold_hours: float,
) -> list[dict[str, Any]]:
    out: list[dict[str, Any]] = []

    def consider(kind: str, ref_id: Any, since: Optional[datetime], notes: str) -> None:
        if since is None:
            return
        h = age_hours(since, now)
        if h > threshold_hours:
            out.append(_bottleneck(kind, ref_id, h, notes))

    g1, g2, g3, g4 = (gates[g] for g in GATE_ORDER)

    # a deal still waiting on G1 is the stalled classifier's concern, not a bottleneck
    if g1.is_blocked:
        consider(BOTTLENECK_APPROVAL, g1.event_id, g1.ts, "G1 blocked; P80 exceeds max exposure")

    if g2.is_blocked:
        consider(BOTTLENECK_VENDOR, g2.event_id, g2.ts, "Bid spread too high")
    for b in bids:
        if (getattr(b, "status", "") or "").lower() == "pending":
            consider(BOTTLENECK_VENDOR, b.id, b.created_at, "Bid pending award")

    if g3.action == "ESCALATE_TIER2":
        consider(BOTTLENECK_INVOICE, g3.event_id, g3.ts, "Budget variance Tier-2")
    for inv in invoices:
        if (getattr(inv, "status", "") or "").lower() == "pending":
            consider(BOTTLENECK_INVOICE, inv.id, inv.created_at, "Invoice pending approval")

    if g4.is_blocked:
        consider(BOTTLENECK_CHANGE_ORDER, g4.event_id, g4.ts, "CO denied; revise scope")
    for co in change_orders:
        if (getattr(co, "status", "") or "").lower() == "proposed":
            consider(BOTTLENECK_CHANGE_ORDER, co.id, co.created_at, f"{co.trade} change order awaiting approval")

    out.sort(key=lambda b: (-b["ageHours"], b["type"], b["refId"]))
    return out


def _mean_hours(pairs: Iterable[tuple[Optional[datetime], Optional[datetime]]]) -> Optional[float]:
    xs = [max(0.0, (b - a).total_seconds() / 3600.0) for a, b in pairs if a is not None and b is not None]
    if not xs:
        return None
    return float(round(sum(xs) / len(xs), 1))


def vendor_snapshot(*, bids: list[Any], invoices: list[Any], vendors: dict[str, Any]) -> list[dict[str, Any]]:
    ids: list[str] = []
    for row in list(bids) + list(invoices):
        vid = getattr(row, "vendor_id", None)
        if vid and vid not in ids:
            ids.append(vid)

    out: list[dict[str, Any]] = []
    for vid in ids:
        v_bids = [b for b in bids if b.vendor_id == vid]
        v_invs = [i for i in invoices if i.vendor_id == vid]
        v = vendors.get(vid)

        stored = getattr(v, "reliability_score", None) if v is not None else None
        if stored is not None:
            reliability = float(stored)
        else:
            reliability = float(min(100, 50 + len(v_invs) * 10 + len(v_bids) * 5))

        out.append(
            {
                "vendorId": vid,
                "name": (getattr(v, "name", None) or vid),
                "reliabilityScore": reliability,
                "avgBidTurnaroundHours": _mean_hours((b.created_at, b.submitted_at) for b in v_bids),
                "avgInvoiceLatencyHours": _mean_hours((i.created_at, i.approved_at) for i in v_invs),
            }
        )

    out.sort(key=lambda r: (str(r["name"]).lower(), r["vendorId"]))
    return out


def compose_motion(
    *,
    deal: Any,
    events: list[EventRecord],
    gates: dict[str, GateState],
    bids: list[Any],
    invoices: list[Any],
    change_orders: list[Any],
    vendors: dict[str, Any],
    now: datetime,
    cfg: GuardrailConfig,
) -> dict[str, Any]:
    planned = int(cfg.planned_milestones)
    completed = min(planned, completed_milestones(events)) if planned > 0 else completed_milestones(events)
    pct = min(100, round(completed / planned * 100)) if planned > 0 else 0

    return {
        "dealId": deal.id,
        "progress": {"plannedMilestones": planned, "completedMilestones": completed, "percentComplete": pct},
        "bottlenecks": find_bottlenecks(
            gates=gates,
            bids=bids,
            invoices=invoices,
            change_orders=change_orders,
            now=now,
            threshold_hours=cfg.bottleneck_threshold_hours,
        ),
        "vendors": vendor_snapshot(bids=bids, invoices=invoices, vendors=vendors),
        "recentEvents": [e.feed_item() for e in newest_first(events)[: cfg.recent_events_limit]],
    }
