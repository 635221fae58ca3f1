# backend/flipops/services/panels.py
from __future__ import annotations

import logging
from datetime import datetime
from typing import Any, Optional

from sqlalchemy.orm import Session

from ..config import GuardrailConfig
from ..domain.budget import aggregate_budget
from ..domain.estimator import Estimate, estimate_from_event, estimate_scope
from ..domain.gates import resolve_gates
from ..domain.jsonfields import decode_trade_map
from ..domain.panels import Policy, compose_motion, compose_truth
from .deal_reads import find_policy, load_bundle, load_estimator_inputs

log = logging.getLogger(__name__)

# -----------------------------------------------------------------------------
# Truth / Money / Motion read models.
#
# Each builder loads one deal's rows once, hands them to the pure composers in
# domain/, and stamps the id of the newest Event so clients can tell whether
# they have already seen this state. No writes, no caching beyond HTTP ETag.
# -----------------------------------------------------------------------------


def _now(now: Optional[datetime]) -> datetime:
    return now or datetime.utcnow()


def _policy_for(db: Session, deal: Any, cfg: GuardrailConfig) -> Policy:
    region = deal.region or cfg.default_region
    grade = deal.grade or cfg.default_grade
    row = find_policy(db, region=region, grade=grade)

    max_exposure = float(deal.max_exposure_usd or 0.0) or float(getattr(row, "max_exposure_usd", 0.0) or 0.0)
    target_roi = float(deal.target_roi_pct or 0.0) or float(getattr(row, "target_roi_pct", 0.0) or 0.0)

    cont = getattr(row, "contingency_target_pct", None)
    if cont is None:
        cont = cfg.contingency_target_pct
    elif float(cont) <= 1.0:
        # stored as a fraction (0.12) on older policy rows
        cont = float(cont) * 100.0

    return Policy(max_exposure_usd=max_exposure, target_roi_pct=target_roi, contingency_target_pct=float(cont))


def build_truth_panel(
    db: Session,
    deal_id: str,
    *,
    cfg: GuardrailConfig,
    now: Optional[datetime] = None,
    user_id: Optional[str] = None,
) -> dict:
    b = load_bundle(db, deal_id, user_id=user_id)
    deal = b.deal
    gates = resolve_gates(b.events)

    region = deal.region or cfg.default_region
    grade = deal.grade or cfg.default_grade
    nodes, models = load_estimator_inputs(db, deal, region=region, grade=grade)
    computed = estimate_scope(nodes, models)

    est: Estimate = computed
    g1 = gates["G1"]
    if g1.diff:
        est = estimate_from_event(g1.diff, fallback=computed) or computed

    baseline = decode_trade_map(b.ledger.baseline_json) if b.ledger else decode_trade_map(None)
    actuals = decode_trade_map(b.ledger.actuals_json) if b.ledger else decode_trade_map(None)
    overruns = [(t, actuals.get(t) - baseline.get(t)) for t in actuals.by_trade]

    body = compose_truth(
        deal_id=str(deal.id),
        policy=_policy_for(db, deal, cfg),
        estimate=est,
        gates=gates,
        ledger_baseline=baseline.total,
        ledger_actuals=actuals.total,
        trade_overruns=overruns,
        cfg=cfg,
    )
    body["eventId"] = b.newest_event_id
    log.info("truth panel built", extra={"deal_id": str(deal.id), "estimate_source": est.source})
    return body


def build_money_panel(
    db: Session,
    deal_id: str,
    *,
    cfg: GuardrailConfig,
    now: Optional[datetime] = None,
    user_id: Optional[str] = None,
) -> dict:
    b = load_bundle(db, deal_id, user_id=user_id)
    summary = aggregate_budget(
        deal=b.deal,
        ledger=b.ledger,
        change_orders=b.change_orders,
        invoices=b.invoices,
        events=b.events,
        now=_now(now),
        cfg=cfg,
    )
    body: dict[str, Any] = {"dealId": str(b.deal.id)}
    body.update(summary.as_dict())
    body["eventId"] = b.newest_event_id
    return body


def build_motion_panel(
    db: Session,
    deal_id: str,
    *,
    cfg: GuardrailConfig,
    now: Optional[datetime] = None,
    user_id: Optional[str] = None,
) -> dict:
    b = load_bundle(db, deal_id, with_vendors=True, user_id=user_id)
    body = compose_motion(
        deal=b.deal,
        events=b.events,
        gates=resolve_gates(b.events),
        bids=b.bids,
        invoices=b.invoices,
        change_orders=b.change_orders,
        vendors=b.vendors,
        now=_now(now),
        cfg=cfg,
    )
    body["eventId"] = b.newest_event_id
    return body
