# backend/flipops/routers/deals.py
from __future__ import annotations

from typing import Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from ..auth import Principal, get_principal, tenant_for
from ..config import guardrail_config, settings
from ..db import get_db
from ..services.deal_classifier import (
    bid_spread_violations,
    budget_variance_violations,
    g1_violations,
    list_active_deals,
    pending_change_orders,
    stalled_report,
    sync_all,
)
from ..services.gate_status import gate_status_payload

router = APIRouter(prefix="/deals", tags=["deals"])

# Static paths are declared before /{deal_id}/... so they never match as ids.


def _deal_row(d) -> dict:
    return {
        "id": str(d.id),
        "address": d.address,
        "type": d.type,
        "maxExposureUsd": float(d.max_exposure_usd or 0.0),
        "targetRoiPct": float(d.target_roi_pct or 0.0),
        "region": d.region,
        "grade": d.grade,
        "createdAt": d.created_at.isoformat(),
        "updatedAt": d.updated_at.isoformat() if d.updated_at else None,
    }


@router.get("/active", response_model=dict)
def active_deals(
    user_id: Optional[str] = Query(default=None, alias="userId"),
    db: Session = Depends(get_db),
    p: Principal = Depends(get_principal),
):
    deals = list_active_deals(db, cfg=guardrail_config(), user_id=tenant_for(p, user_id))
    return {"count": len(deals), "deals": [_deal_row(d) for d in deals]}


@router.get("/stalled", response_model=dict)
def stalled_deals(
    user_id: Optional[str] = Query(default=None, alias="userId"),
    limit: int = Query(default=settings.stalled_list_limit, ge=1, le=1000),
    db: Session = Depends(get_db),
    p: Principal = Depends(get_principal),
):
    return stalled_report(db, cfg=guardrail_config(), user_id=tenant_for(p, user_id), limit=limit)


@router.post("/sync-all", response_model=dict)
def sync_all_deals(
    user_id: Optional[str] = Query(default=None, alias="userId"),
    db: Session = Depends(get_db),
    p: Principal = Depends(get_principal),
):
    return sync_all(db, cfg=guardrail_config(), limit=int(settings.sync_all_limit), user_id=tenant_for(p, user_id))


@router.get("/change-orders/status", response_model=dict)
def change_order_status(
    user_id: Optional[str] = Query(default=None, alias="userId"),
    db: Session = Depends(get_db),
    p: Principal = Depends(get_principal),
):
    return pending_change_orders(db, user_id=tenant_for(p, user_id))


@router.get("/approve/status", response_model=dict)
def approval_violations(
    user_id: Optional[str] = Query(default=None, alias="userId"),
    db: Session = Depends(get_db),
    p: Principal = Depends(get_principal),
):
    return g1_violations(db, cfg=guardrail_config(), user_id=tenant_for(p, user_id))


@router.get("/budget-variance/status", response_model=dict)
def budget_variance_status(
    user_id: Optional[str] = Query(default=None, alias="userId"),
    db: Session = Depends(get_db),
    p: Principal = Depends(get_principal),
):
    return budget_variance_violations(db, cfg=guardrail_config(), user_id=tenant_for(p, user_id))


@router.get("/bid-spread/status", response_model=dict)
def bid_spread_status(
    user_id: Optional[str] = Query(default=None, alias="userId"),
    db: Session = Depends(get_db),
    p: Principal = Depends(get_principal),
):
    return bid_spread_violations(db, cfg=guardrail_config(), user_id=tenant_for(p, user_id))


@router.get("/{deal_id}/gates", response_model=dict)
def deal_gates(deal_id: str, db: Session = Depends(get_db), p: Principal = Depends(get_principal)):
    return gate_status_payload(db, deal_id, user_id=tenant_for(p))
