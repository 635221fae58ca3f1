# backend/tests/test_jsonfields_and_fingerprint.py
from __future__ import annotations

from flipops.domain.fingerprint import etag_for, event_checksum, fingerprint
from flipops.domain.jsonfields import decode_trade_map, loads_dict


def test_loads_dict_tolerates_bad_columns():
    assert loads_dict(None) == {}
    assert loads_dict("") == {}
    assert loads_dict("{not json") == {}
    assert loads_dict('[{"op": "replace"}]') == {"patch": [{"op": "replace"}]}
    assert loads_dict('{"a": 1}') == {"a": 1}


def test_trade_map_reads_both_ledger_encodings():
    flat = decode_trade_map('{"Roofing": 12000, "HVAC": "8000", "note": "x"}')
    assert flat.by_trade == {"Roofing": 12000.0, "HVAC": 8000.0}
    assert flat.total == 20000.0

    nested = decode_trade_map({"total": 21000, "byTrade": {"Roofing": 12000, "HVAC": 8000}})
    assert nested.total == 21000.0
    assert nested.get("HVAC") == 8000.0
    assert nested.get("Plumbing") == 0.0

    assert not decode_trade_map(None)


def test_fingerprint_ignores_key_order():
    assert fingerprint({"a": 1, "b": 2}) == fingerprint({"b": 2, "a": 1})
    assert etag_for({"x": [1, 2]}) == etag_for({"x": [1, 2]})
    assert etag_for({"x": [1, 2]}) != etag_for({"x": [2, 1]})


def test_etag_is_quoted_prefix():
    tag = etag_for({"dealId": "d1"})
    assert tag.startswith('"') and tag.endswith('"')
    assert len(tag) == 34


def test_event_checksum_covers_diff():
    a = event_checksum(deal_id="d1", actor="system:G1", artifact="DealSpec", action="BLOCK", diff={"p80": 1})
    b = event_checksum(deal_id="d1", actor="system:G1", artifact="DealSpec", action="BLOCK", diff={"p80": 2})
    assert a != b
    assert len(a) == 64
