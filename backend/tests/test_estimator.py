# backend/tests/test_estimator.py
from __future__ import annotations

from dataclasses import dataclass

import pytest

from flipops.domain.estimator import Estimate, estimate_from_event, estimate_scope


@dataclass
class Node:
    trade: str
    task: str
    quantity: float
    unit: str


@dataclass
class CM:
    trade: str
    task: str
    unit: str
    material: float
    labor: float
    contingency_pct: float = 0.0
    risk_premium_pct: float = 0.0


def test_percentiles_are_ordered_and_deterministic():
    nodes = [Node("Roofing", "Shingle replace", 20, "sq"), Node("Painting", "Interior", 1500, "sqft")]
    models = [
        CM("Roofing", "shingle replace", "SQ", material=300, labor=200, contingency_pct=10),
        CM("Painting", "Interior", "sqft", material=1, labor=2),
    ]
    a = estimate_scope(nodes, models)
    b = estimate_scope(nodes, models)

    assert a.as_dict() == b.as_dict()
    # roofing 20 * 500 * 1.10 + painting 1500 * 3
    assert a.baseline == pytest.approx(11000 + 4500)
    assert a.p50 == pytest.approx(a.baseline)
    assert a.baseline <= a.p80 <= a.p95
    assert a.drivers[0].trade == "Roofing"
    assert a.missing == []


def test_unpriced_nodes_are_reported_missing():
    est = estimate_scope([Node("Foundation", "Pier", 4, "ea")], [])
    assert est.p80 == 0.0
    assert est.missing == [{"trade": "Foundation", "task": "Pier", "unit": "ea"}]


def test_event_estimate_wins_and_fills_gaps():
    fallback = Estimate(baseline=300000, p50=310000, p80=330000, p95=350000)
    est = estimate_from_event({"p80": 385000, "maxExposureUsd": 300000}, fallback=fallback)
    assert est is not None
    assert est.source == "event"
    assert est.p80 == 385000.0
    assert est.baseline == 300000.0


def test_event_without_p80_is_ignored():
    assert estimate_from_event({"reason": "manual"}) is None
    assert estimate_from_event({"p80": True}) is None
