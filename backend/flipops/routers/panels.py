# backend/flipops/routers/panels.py
from __future__ import annotations

from typing import Callable, Optional

from fastapi import APIRouter, Depends, Query, Request, Response
from fastapi.responses import JSONResponse
from sqlalchemy.orm import Session

from ..auth import Principal, get_principal, tenant_for
from ..config import guardrail_config, settings
from ..db import get_db
from ..domain.fingerprint import etag_for
from ..services.deal_reads import require_deal_id
from ..services.panels import build_money_panel, build_motion_panel, build_truth_panel

router = APIRouter(prefix="/panels", tags=["panels"])


def _cached(request: Request, body: dict) -> Response:
    tag = etag_for(body)
    headers = {
        "ETag": tag,
        "Cache-Control": f"public, max-age={int(settings.panel_cache_max_age_seconds)}",
    }
    if request.headers.get("If-None-Match") == tag:
        return Response(status_code=304, headers=headers)
    return JSONResponse(content=body, headers=headers)


def _serve(
    request: Request, db: Session, p: Principal, deal_id: Optional[str], build: Callable[..., dict]
) -> Response:
    did = require_deal_id(deal_id)
    return _cached(request, build(db, did, cfg=guardrail_config(), user_id=tenant_for(p)))


@router.get("/truth")
def truth_panel(
    request: Request,
    deal_id: Optional[str] = Query(default=None, alias="dealId"),
    db: Session = Depends(get_db),
    p: Principal = Depends(get_principal),
):
    return _serve(request, db, p, deal_id, build_truth_panel)


@router.get("/money")
def money_panel(
    request: Request,
    deal_id: Optional[str] = Query(default=None, alias="dealId"),
    db: Session = Depends(get_db),
    p: Principal = Depends(get_principal),
):
    return _serve(request, db, p, deal_id, build_money_panel)


@router.get("/motion")
def motion_panel(
    request: Request,
    deal_id: Optional[str] = Query(default=None, alias="dealId"),
    db: Session = Depends(get_db),
    p: Principal = Depends(get_principal),
):
    return _serve(request, db, p, deal_id, build_motion_panel)
