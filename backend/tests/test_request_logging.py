# backend/tests/test_request_logging.py
from __future__ import annotations

import json
import logging


def _access_lines(caplog) -> list[dict]:
    return [json.loads(r.getMessage()) for r in caplog.records if r.name == "flipops.request"]


def test_access_line_carries_request_and_deal_ids(client, make_deal, caplog):
    make_deal("log1")
    caplog.set_level(logging.INFO, logger="flipops.request")

    r = client.get("/api/deals/log1/gates", headers={"X-Request-ID": "req-abc"})
    assert r.status_code == 200
    assert r.headers["x-request-id"] == "req-abc"

    line = _access_lines(caplog)[-1]
    assert line["request_id"] == "req-abc"
    assert line["deal_id"] == "log1"
    assert line["status_code"] == 200


def test_access_line_reads_deal_id_from_query(client, make_deal, caplog):
    make_deal("log2")
    caplog.set_level(logging.INFO, logger="flipops.request")

    client.get("/api/panels/money", params={"dealId": "log2"})
    assert _access_lines(caplog)[-1]["deal_id"] == "log2"
