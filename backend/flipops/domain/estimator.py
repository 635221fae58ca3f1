# backend/flipops/domain/estimator.py
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Iterable, Optional

log = logging.getLogger(__name__)

# Relative uncertainty (one standard deviation) by trade.
MATERIAL_UNCERTAINTY: dict[str, float] = {
    "Roofing": 0.10,
    "Kitchen": 0.12,
    "Bathroom": 0.12,
    "Flooring": 0.08,
    "Painting": 0.05,
    "HVAC": 0.10,
    "Electrical": 0.10,
    "Plumbing": 0.12,
    "Framing": 0.15,
    "Foundation": 0.15,
    "Landscaping": 0.20,
}
LABOR_UNCERTAINTY: dict[str, float] = {
    "Roofing": 0.15,
    "Kitchen": 0.18,
    "Bathroom": 0.18,
    "Flooring": 0.12,
    "Painting": 0.10,
    "HVAC": 0.15,
    "Electrical": 0.15,
    "Plumbing": 0.18,
    "Framing": 0.20,
    "Foundation": 0.20,
    "Landscaping": 0.25,
}
DEFAULT_MATERIAL_UNCERTAINTY = 0.10
DEFAULT_LABOR_UNCERTAINTY = 0.15

# z-scores for the reported percentiles
PERCENTILE_Z = {"p50": 0.0, "p80": 0.84, "p95": 1.65}

MAX_DRIVERS = 5


@dataclass(frozen=True)
class LineItem:
    trade: str
    task: str
    quantity: float
    unit: str
    material_cost: float
    labor_cost: float
    contingency: float
    risk_premium: float

    @property
    def total_cost(self) -> float:
        return self.material_cost + self.labor_cost + self.contingency + self.risk_premium

    def weighted_uncertainty(self) -> float:
        base = self.material_cost + self.labor_cost
        if base <= 0:
            return 0.0
        mu = MATERIAL_UNCERTAINTY.get(self.trade, DEFAULT_MATERIAL_UNCERTAINTY)
        lu = LABOR_UNCERTAINTY.get(self.trade, DEFAULT_LABOR_UNCERTAINTY)
        return (self.material_cost * mu + self.labor_cost * lu) / base

    def at(self, percentile: str) -> float:
        return self.total_cost * (1.0 + self.weighted_uncertainty() * PERCENTILE_Z[percentile])


@dataclass(frozen=True)
class Driver:
    trade: str
    delta: float
    share: float

    def as_dict(self) -> dict:
        return {"trade": self.trade, "delta": float(round(self.delta))}


@dataclass(frozen=True)
class Estimate:
    baseline: float = 0.0
    p50: float = 0.0
    p80: float = 0.0
    p95: float = 0.0
    by_trade: dict[str, dict[str, float]] = field(default_factory=dict)
    drivers: list[Driver] = field(default_factory=list)
    missing: list[dict[str, str]] = field(default_factory=list)
    source: str = "estimator"

    def as_dict(self) -> dict:
        return {
            "baseline": float(round(self.baseline)),
            "p50": float(round(self.p50)),
            "p80": float(round(self.p80)),
            "p95": float(round(self.p95)),
        }


def _cost_key(trade: str, task: str, unit: str) -> tuple[str, str, str]:
    return (trade.strip().lower(), task.strip().lower(), unit.strip().lower())


def price_line(node: Any, cost_model: Any) -> LineItem:
    qty = float(getattr(node, "quantity", 0.0) or 0.0)
    material = float(cost_model.material or 0.0) * qty
    labor = float(cost_model.labor or 0.0) * qty
    subtotal = material + labor
    return LineItem(
        trade=str(node.trade),
        task=str(node.task),
        quantity=qty,
        unit=str(node.unit),
        material_cost=material,
        labor_cost=labor,
        contingency=subtotal * float(cost_model.contingency_pct or 0.0) / 100.0,
        risk_premium=subtotal * float(cost_model.risk_premium_pct or 0.0) / 100.0,
    )


def estimate_scope(scope_nodes: Iterable[Any], cost_models: Iterable[Any]) -> Estimate:
    """
    Parametric P50/P80/P95 from scope nodes priced against cost models for one
    region/grade. Deterministic: the same inputs always give the same numbers.
    """
    index: dict[tuple[str, str, str], Any] = {
        _cost_key(cm.trade, cm.task, cm.unit): cm for cm in cost_models
    }

    items: list[LineItem] = []
    missing: list[dict[str, str]] = []
    for node in scope_nodes:
        cm = index.get(_cost_key(node.trade, node.task, node.unit))
        if cm is None:
            missing.append({"trade": str(node.trade), "task": str(node.task), "unit": str(node.unit)})
            continue
        items.append(price_line(node, cm))

    if missing:
        log.warning("no cost model for scope nodes", extra={"missing": missing})

    if not items:
        return Estimate(missing=missing)

    baseline = sum(i.total_cost for i in items)
    p50 = sum(i.at("p50") for i in items)
    p80 = sum(i.at("p80") for i in items)
    p95 = sum(i.at("p95") for i in items)

    by_trade: dict[str, dict[str, float]] = {}
    uplift: dict[str, float] = {}
    for i in items:
        row = by_trade.setdefault(i.trade, {"baseline": 0.0, "p50": 0.0, "p80": 0.0, "p95": 0.0})
        row["baseline"] += i.total_cost
        row["p50"] += i.at("p50")
        row["p80"] += i.at("p80")
        row["p95"] += i.at("p95")
        uplift[i.trade] = uplift.get(i.trade, 0.0) + (i.at("p80") - i.total_cost)

    spread = p80 - baseline
    drivers = sorted(
        (Driver(trade=t, delta=d, share=(d / spread if spread > 0 else 0.0)) for t, d in uplift.items()),
        key=lambda d: (-d.delta, d.trade),
    )[:MAX_DRIVERS]

    return Estimate(
        baseline=baseline,
        p50=p50,
        p80=p80,
        p95=p95,
        by_trade=by_trade,
        drivers=drivers,
        missing=missing,
    )


def estimate_from_event(diff: dict[str, Any], *, fallback: Optional[Estimate] = None) -> Optional[Estimate]:
    """
    A G1 decision records the estimate it was made on. Prefer it over a
    recompute so the panel explains the decision that actually fired.
    """
    p80 = diff.get("p80")
    if not isinstance(p80, (int, float)) or isinstance(p80, bool):
        return None

    fb = fallback or Estimate()

    def num(key: str, default: float) -> float:
        v = diff.get(key)
        return float(v) if isinstance(v, (int, float)) and not isinstance(v, bool) else float(default)

    return Estimate(
        baseline=num("baseline", fb.baseline or float(p80)),
        p50=num("p50", fb.p50 or float(p80)),
        p80=float(p80),
        p95=num("p95", fb.p95 or float(p80)),
        by_trade=fb.by_trade,
        drivers=fb.drivers,
        missing=fb.missing,
        source="event",
    )
