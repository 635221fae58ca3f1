# backend/tests/test_event_store.py
from __future__ import annotations

from datetime import datetime, timedelta

import pytest

from flipops.domain.fingerprint import event_checksum
from flipops.models import Event
from flipops.services.event_store import events_by_deal, list_deal_events, list_gate_events, write_event


def test_write_event_derives_gate_and_checksum(db_session, make_deal):
    make_deal("d1")
    row = write_event(db_session, deal_id="d1", actor="system:G1", artifact="DealSpec", action="block", diff={"p80": 1})
    db_session.commit()

    assert row.id is not None
    assert row.gate == "G1"
    assert row.action == "BLOCK"
    assert row.checksum == event_checksum(
        deal_id="d1", actor="system:G1", artifact="DealSpec", action="BLOCK", diff={"p80": 1}
    )


def test_write_event_requires_core_fields(db_session):
    with pytest.raises(ValueError):
        write_event(db_session, deal_id=None, actor="", artifact="DealSpec", action="APPROVE")


def test_list_is_newest_first_with_insertion_tiebreak(db_session, make_deal, add_event):
    make_deal("d1")
    t = datetime(2026, 9, 1, 8, 0, 0)
    a = add_event("d1", "system:G1", "DealSpec", "APPROVE", ts=t)
    b = add_event("d1", "system:G1", "DealSpec", "BLOCK", ts=t)
    c = add_event("d1", "user:u1", "Note", "COMMENT", ts=t - timedelta(hours=1))

    ids = [e.id for e in list_deal_events(db_session, "d1")]
    assert ids == [b.id, a.id, c.id]
    assert [e.id for e in list_deal_events(db_session, "d1", limit=1)] == [b.id]
    assert list_deal_events(db_session, "nope") == []


def test_events_by_deal_groups_rows(db_session, make_deal, add_event):
    make_deal("d1")
    make_deal("d2")
    t = datetime(2026, 9, 1, 8, 0, 0)
    add_event("d1", "system:G1", "DealSpec", "APPROVE", ts=t)
    add_event("d2", "system:G2", "Bid", "AWARD", ts=t)
    add_event("d2", "system:G2", "Bid", "BLOCK", ts=t + timedelta(minutes=1))

    grouped = events_by_deal(db_session, ["d1", "d2", "d3"])
    assert len(grouped["d1"]) == 1
    assert [e.action for e in grouped["d2"]] == ["BLOCK", "AWARD"]
    assert grouped.get("d3", []) == []


def test_gate_scan_honours_legacy_actor_prefix(db_session, make_deal):
    make_deal("d1")
    t = datetime(2026, 9, 1, 8, 0, 0)
    # legacy row: no gate column, attribution via actor only
    db_session.add(
        Event(deal_id="d1", actor="system:G1", artifact="DealSpec", action="BLOCK", gate=None, checksum="c", ts=t)
    )
    db_session.add(
        Event(deal_id="d1", actor="user:ops", artifact="DealSpec", action="BLOCK", gate=None, checksum="c", ts=t)
    )
    db_session.commit()

    hits = list_gate_events(db_session, artifact="DealSpec", action="BLOCK", gate="G1")
    assert len(hits) == 1
    assert hits[0].gate == "G1"
