# backend/tests/test_deals_api.py
from __future__ import annotations

import json
from datetime import datetime, timedelta

from flipops.config import GuardrailConfig
from flipops.models import Bid, BudgetLedger, ChangeOrder, DealSpec, Event, Notification, Vendor
from flipops.services.deal_classifier import stalled_report


def test_gate_status_route(client, make_deal, add_event):
    make_deal("g1")
    t = datetime.utcnow()
    add_event("g1", "system:G1", "DealSpec", "APPROVE", ts=t - timedelta(hours=2))
    add_event("g1", "system:G1", "DealSpec", "BLOCK", ts=t - timedelta(hours=1))

    r = client.get("/api/deals/g1/gates")
    assert r.status_code == 200
    gates = {g["gate"]: g["status"] for g in r.json()["gates"]}
    assert gates == {"G1": "blocked", "G2": "pending", "G3": "pending", "G4": "pending"}

    assert client.get("/api/deals/nope/gates").status_code == 404


def test_active_route_uses_window_and_g1(client, make_deal, add_event):
    now = datetime.utcnow()
    make_deal("recent", created_at=now - timedelta(days=29))
    make_deal("stale", created_at=now - timedelta(days=31))
    make_deal("approved", created_at=now - timedelta(days=120))
    add_event("approved", "system:G1", "DealSpec", "APPROVE", ts=now - timedelta(days=100))

    body = client.get("/api/deals/active").json()
    ids = {d["id"] for d in body["deals"]}
    assert ids == {"recent", "approved"}
    assert body["count"] == 2


def test_stalled_route(client, db_session, make_deal, add_event):
    now = datetime.utcnow()
    make_deal("waiting", created_at=now - timedelta(hours=100))
    make_deal("moving", created_at=now - timedelta(days=8))
    add_event("moving", "system:G1", "DealSpec", "APPROVE", ts=now - timedelta(days=7))
    db_session.add(Vendor(id="v1", name="Acme Roofing"))
    db_session.add(Bid(deal_id="moving", vendor_id="v1", subtotal=12000, created_at=now - timedelta(hours=150)))
    db_session.commit()

    body = client.get("/api/deals/stalled").json()
    assert body["summary"]["G1"] == 1
    assert body["summary"]["G2"] == 1
    assert body["summary"]["total"] == 2
    assert body["thresholds"]["G1"] == "3 days"
    assert body["thresholdHours"]["G4"] == 24.0
    g2 = next(s for s in body["stalledDeals"] if s["gate"] == "G2")
    assert g2["details"]["vendorName"] == "Acme Roofing"
    assert "timestamp" in body


def test_change_order_status_route(client, db_session, make_deal):
    make_deal("co-a", max_exposure_usd=300000.0)
    make_deal("co-b", max_exposure_usd=0.0)
    db_session.add(ChangeOrder(deal_id="co-a", trade="Roofing", delta_usd=15000, impact_days=4, status="proposed"))
    db_session.add(ChangeOrder(deal_id="co-b", trade="HVAC", delta_usd=2000, impact_days=1, status="proposed"))
    db_session.add(ChangeOrder(deal_id="co-a", trade="Paint", delta_usd=900, status="approved"))
    db_session.commit()

    body = client.get("/api/deals/change-orders/status").json()
    assert body["summary"] == {"total": 2, "uniqueDeals": 2, "totalImpact": 17000.0, "totalDaysImpact": 5}
    impact = {r["dealId"]: r["impactPct"] for r in body["pendingApprovals"]}
    assert impact == {"co-a": 5.0, "co-b": 0.0}


def test_approve_status_lists_recent_blocks(client, make_deal, add_event):
    now = datetime.utcnow()
    make_deal("over")
    make_deal("old-block")
    add_event("over", "system:G1", "DealSpec", "BLOCK", ts=now - timedelta(days=1), diff={"p80": 330000, "maxExposureUsd": 300000})
    add_event("old-block", "system:G1", "DealSpec", "BLOCK", ts=now - timedelta(days=9), diff={"p80": 400000})

    body = client.get("/api/deals/approve/status").json()
    assert body["count"] == 1
    v = body["violations"][0]
    assert v["dealId"] == "over"
    assert v["overBy"] == 30000.0
    assert v["overByPct"] == 10.0


def test_sync_all_touches_oldest_first(client, db_session, make_deal):
    now = datetime.utcnow()
    make_deal("s1", created_at=now - timedelta(days=2), updated_at=now - timedelta(days=2))
    make_deal("s2", created_at=now - timedelta(days=1), updated_at=now - timedelta(days=5))
    make_deal("s-old", created_at=now - timedelta(days=60))

    body = client.post("/api/deals/sync-all").json()
    assert body["summary"]["total"] == 2
    assert body["results"]["success"] == ["s2", "s1"]

    db_session.expire_all()
    assert db_session.get(DealSpec, "s2").updated_at >= now


def test_post_event_then_gate_moves(client, make_deal):
    make_deal("e1")
    r = client.post(
        "/api/events",
        json={"dealId": "e1", "actor": "system:G2", "artifact": "Bid", "action": "award", "diff": {"bidId": "b1"}},
    )
    assert r.status_code == 201
    out = r.json()
    assert out["gate"] == "G2"
    assert out["action"] == "AWARD"
    assert out["dealId"] == "e1"

    gates = {g["gate"]: g["status"] for g in client.get("/api/deals/e1/gates").json()["gates"]}
    assert gates["G2"] == "approved"


def test_post_event_normalizes_offsets_to_utc(client, make_deal):
    make_deal("tz1")
    approve = client.post(
        "/api/events",
        json={"dealId": "tz1", "actor": "system:G1", "artifact": "DealSpec", "action": "APPROVE",
              "ts": "2026-01-01T10:00:00+00:00"},
    )
    block = client.post(
        "/api/events",
        json={"dealId": "tz1", "actor": "system:G1", "artifact": "DealSpec", "action": "BLOCK",
              "ts": "2026-01-01T12:00:00+05:00"},
    )
    assert approve.status_code == 201
    assert block.status_code == 201
    assert block.json()["ts"] == "2026-01-01T07:00:00"

    gates = {g["gate"]: g["status"] for g in client.get("/api/deals/tz1/gates").json()["gates"]}
    assert gates["G1"] == "approved"


def test_post_event_for_unknown_deal_is_404(client, db_session):
    r = client.post(
        "/api/events",
        json={"dealId": "nope", "actor": "system:G1", "artifact": "DealSpec", "action": "APPROVE"},
    )
    assert r.status_code == 404
    assert r.json() == {"error": "Deal not found"}
    assert db_session.query(Event).count() == 0


def test_post_event_rejects_bad_gate(client):
    r = client.post("/api/events", json={"actor": "x", "artifact": "Bid", "action": "AWARD", "gate": "G9"})
    assert r.status_code == 422


def test_mark_seen_upserts(client, db_session):
    r1 = client.post("/api/events/mark-seen", json={"eventId": "42", "message": "viewed"})
    assert r1.status_code == 200
    assert r1.json() == {"eventId": "42", "processed": True, "created": True}

    r2 = client.post("/api/events/mark-seen", json={"eventId": "42"})
    assert r2.json()["created"] is False

    rows = db_session.query(Notification).filter(Notification.event_id == "42").all()
    assert len(rows) == 1
    assert rows[0].message == "viewed"


def test_health(client):
    r = client.get("/api/health")
    assert r.status_code == 200
    assert r.json()["status"] == "ok"
    assert r.headers.get("x-request-id")


def test_budget_variance_status_lists_overruns(client, db_session, make_deal):
    make_deal("bv-hot")
    make_deal("bv-ok")
    make_deal("bv-empty")
    db_session.add(
        BudgetLedger(
            deal_id="bv-hot",
            baseline_json=json.dumps({"Roofing": 60000, "Kitchen": 40000}),
            actuals_json=json.dumps({"Roofing": 70000, "Kitchen": 45000}),
            contingency_remaining=4000,
        )
    )
    db_session.add(
        BudgetLedger(
            deal_id="bv-ok",
            baseline_json=json.dumps({"Roofing": 100000}),
            actuals_json=json.dumps({"Roofing": 105000}),
        )
    )
    db_session.add(BudgetLedger(deal_id="bv-empty"))
    db_session.commit()

    body = client.get("/api/deals/budget-variance/status").json()
    assert body["summary"] == {"total": 1, "totalOverage": 15000.0, "avgVariancePct": 15.0}
    v = body["violations"][0]
    assert v["dealId"] == "bv-hot"
    assert v["budgetVariancePct"] == 15.0
    assert v["tier"] == "TIER2"
    assert v["contingencyRemaining"] == 4000.0
    assert body["thresholdPct"] == 10.0


def test_bid_spread_status_uses_live_bids_only(client, db_session, make_deal):
    make_deal("bs-wide")
    make_deal("bs-tight")
    make_deal("bs-single")
    db_session.add(Vendor(id="v1", name="Acme Roofing"))
    db_session.add_all(
        [
            Bid(deal_id="bs-wide", vendor_id="v1", subtotal=100000, status="pending"),
            Bid(deal_id="bs-wide", vendor_id="v1", subtotal=130000, status="awarded"),
            Bid(deal_id="bs-wide", vendor_id="v1", subtotal=50000, status="rejected"),
            Bid(deal_id="bs-tight", vendor_id="v1", subtotal=100000, status="pending"),
            Bid(deal_id="bs-tight", vendor_id="v1", subtotal=110000, status="pending"),
            Bid(deal_id="bs-single", vendor_id="v1", subtotal=90000, status="pending"),
        ]
    )
    db_session.commit()

    body = client.get("/api/deals/bid-spread/status").json()
    assert body["summary"] == {"total": 1, "avgSpreadPct": 30.0}
    v = body["violations"][0]
    assert v["dealId"] == "bs-wide"
    assert (v["lowestBid"], v["highestBid"], v["bidCount"]) == (100000.0, 130000.0, 2)


def test_stalled_report_pages_past_the_page_size(db_session, make_deal):
    old = datetime.utcnow() - timedelta(hours=100)
    for i in range(5):
        make_deal(f"st-{i}", created_at=old)

    report = stalled_report(db_session, cfg=GuardrailConfig(), page_size=2, limit=3)
    assert report["summary"]["G1"] == 5
    assert report["summary"]["total"] == 5
    assert len(report["stalledDeals"]) == 3
