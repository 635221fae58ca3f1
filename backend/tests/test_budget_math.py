# backend/tests/test_budget_math.py
from __future__ import annotations

import json
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Optional

import pytest

from flipops.config import GuardrailConfig
from flipops.domain.budget import (
    aggregate_budget,
    contingency_remaining,
    frozen_trades,
    impact_pct,
    variance_pct,
    variance_tier,
)
from flipops.domain.events import EventRecord

NOW = datetime(2026, 10, 1, 12, 0, 0)


@dataclass
class Deal:
    id: str = "d1"
    daily_burn_usd: float = 100.0
    created_at: datetime = NOW - timedelta(days=10, hours=5)
    start_at: Optional[datetime] = None
    max_exposure_usd: float = 300000.0


@dataclass
class Ledger:
    baseline_json: Optional[str] = None
    committed_json: Optional[str] = None
    actuals_json: Optional[str] = None


@dataclass
class CO:
    id: str
    trade: str
    status: str
    delta_usd: float = 0.0
    created_at: datetime = NOW - timedelta(hours=30)
    decided_at: Optional[datetime] = None


@dataclass
class Inv:
    id: str
    status: str
    created_at: datetime
    approved_at: Optional[datetime] = None


def test_variance_formula():
    assert variance_pct(115000, 100000) == pytest.approx(15.0)
    assert variance_pct(5000, 0) == 0.0


def test_variance_tiers():
    assert variance_tier(2.9, 3.0, 7.0) == "GREEN"
    assert variance_tier(3.0, 3.0, 7.0) == "TIER1"
    assert variance_tier(-5.0, 3.0, 7.0) == "TIER1"
    assert variance_tier(7.0, 3.0, 7.0) == "TIER2"


def test_impact_pct():
    assert impact_pct(15000, 300000) == pytest.approx(5.0)
    assert impact_pct(15000, 0) == 0.0


def test_freeze_follows_open_change_orders():
    cos = [
        CO(id="a", trade="Roofing", status="proposed"),
        CO(id="b", trade="HVAC", status="denied"),
        CO(id="c", trade=" plumbing ", status="approved"),
    ]
    assert frozen_trades(cos) == {"roofing", "plumbing"}


def test_aggregate_with_ledger():
    ledger = Ledger(
        baseline_json=json.dumps({"Roofing": 60000, "HVAC": 40000}),
        committed_json=json.dumps({"total": 90000, "byTrade": {"Roofing": 55000, "HVAC": 35000}}),
        actuals_json=json.dumps({"Roofing": 75000, "HVAC": 40000}),
    )
    cos = [
        CO(id="co1", trade="Roofing", status="proposed", delta_usd=15000),
        CO(id="co2", trade="HVAC", status="denied", delta_usd=5000),
    ]
    out = aggregate_budget(
        deal=Deal(), ledger=ledger, change_orders=cos, invoices=[], events=[], now=NOW, cfg=GuardrailConfig()
    ).as_dict()

    assert out["budget"]["baseline"] == 100000.0
    assert out["budget"]["committed"] == 90000.0
    assert out["budget"]["actuals"] == 115000.0
    assert out["budget"]["variance"] == {"abs": 15000.0, "pct": 15.0}

    by = {t["trade"]: t for t in out["byTrade"]}
    assert by["Roofing"]["frozen"] is True
    assert by["Roofing"]["tier"] == "TIER2"
    assert by["HVAC"]["frozen"] is False
    assert by["HVAC"]["tier"] == "GREEN"
    assert out["changeOrders"]["proposed"] == 1
    assert out["changeOrders"]["denied"] == 1


def test_no_ledger_is_zero_budget_but_keeps_rollups():
    invs = [
        Inv(id="i1", status="approved", created_at=NOW - timedelta(hours=10), approved_at=NOW - timedelta(hours=4)),
        Inv(id="i2", status="pending", created_at=NOW - timedelta(hours=2)),
    ]
    out = aggregate_budget(
        deal=Deal(), ledger=None, change_orders=[], invoices=invs, events=[], now=NOW, cfg=GuardrailConfig()
    ).as_dict()

    assert out["budget"] == {
        "baseline": 0.0,
        "committed": 0.0,
        "actuals": 0.0,
        "variance": {"abs": 0.0, "pct": 0.0},
    }
    assert out["byTrade"] == []
    assert out["invoices"] == {"count": 2, "pending": 1, "avgApprovalLatencyHours": 6.0}
    assert out["burn"] == {"dailyUsd": 100.0, "daysHeld": 10, "carryToDateUsd": 1000.0}


def test_change_order_latency_prefers_approval_event():
    co = CO(id="co9", trade="Kitchen", status="approved", delta_usd=8000, created_at=NOW - timedelta(hours=30))
    approval = EventRecord(
        id=1,
        deal_id="d1",
        actor="system:G4",
        artifact="ChangeOrder",
        action="APPROVE_CO",
        gate="G4",
        checksum="x",
        ts=NOW - timedelta(hours=18),
        diff={"changeOrderId": "co9"},
    )
    out = aggregate_budget(
        deal=Deal(), ledger=None, change_orders=[co], invoices=[], events=[approval], now=NOW, cfg=GuardrailConfig()
    ).as_dict()
    assert out["changeOrders"]["approved"] == 1
    assert out["changeOrders"]["netImpactUsd"] == 8000.0
    assert out["changeOrders"]["approvalLatencyHours"] == 12.0


def test_contingency_remaining_is_floored():
    assert contingency_remaining(target_pct=12.0, baseline=100000, actuals_total=100000) == pytest.approx(12000.0)
    assert contingency_remaining(target_pct=12.0, baseline=100000, actuals_total=105000) == pytest.approx(7000.0)
    assert contingency_remaining(target_pct=12.0, baseline=100000, actuals_total=150000) == 0.0
