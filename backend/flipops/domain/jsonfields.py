# backend/flipops/domain/jsonfields.py
from __future__ import annotations

import json
import logging
from typing import Any, Mapping, Optional

log = logging.getLogger(__name__)

TOTAL_KEY = "total"
BY_TRADE_KEY = "byTrade"


def loads_dict(s: Optional[str]) -> dict[str, Any]:
    """
    Decode a JSON text column into a dict.

    Empty/NULL columns are {}. Corrupt payloads are logged and treated as {}
    so one bad row cannot take down a read path.
    """
    if not s:
        return {}
    try:
        x = json.loads(s)
    except (TypeError, ValueError):
        log.warning("undecodable json column", extra={"preview": str(s)[:80]})
        return {}
    if isinstance(x, dict):
        return x
    # JSON-patch style diffs are arrays; keep them addressable.
    if isinstance(x, list):
        return {"patch": x}
    return {}


def dumps_compact(v: Any) -> str:
    return json.dumps(v if v is not None else {}, separators=(",", ":"), sort_keys=True, default=str)


def _num(v: Any) -> Optional[float]:
    if isinstance(v, bool):
        return None
    if isinstance(v, (int, float)):
        return float(v)
    if isinstance(v, str):
        try:
            return float(v)
        except ValueError:
            return None
    return None


class TradeMap:
    """
    A decoded ledger column: trade name -> USD, plus the deal total.

    Two encodings exist in stored ledgers:
      {"Roofing": 12000, "HVAC": 8000, "total": 20000}
      {"total": 20000, "byTrade": {"Roofing": 12000, "HVAC": 8000}}
    Non-numeric entries (e.g. per-trade variance objects) are ignored.
    """

    __slots__ = ("by_trade", "_explicit_total")

    def __init__(self, by_trade: Mapping[str, float], explicit_total: Optional[float] = None):
        self.by_trade: dict[str, float] = dict(by_trade)
        self._explicit_total = explicit_total

    @property
    def total(self) -> float:
        if self._explicit_total is not None:
            return float(self._explicit_total)
        return float(sum(self.by_trade.values()))

    def get(self, trade: str) -> float:
        return float(self.by_trade.get(trade, 0.0))

    def __bool__(self) -> bool:
        return bool(self.by_trade) or self._explicit_total is not None


def decode_trade_map(raw: Optional[str] | Mapping[str, Any]) -> TradeMap:
    data = loads_dict(raw) if not isinstance(raw, Mapping) else dict(raw)

    source = data.get(BY_TRADE_KEY) if isinstance(data.get(BY_TRADE_KEY), Mapping) else data
    by_trade: dict[str, float] = {}
    for k, v in source.items():
        if k in (TOTAL_KEY, BY_TRADE_KEY):
            continue
        n = _num(v)
        if n is not None:
            by_trade[str(k)] = n

    return TradeMap(by_trade, _num(data.get(TOTAL_KEY)))
