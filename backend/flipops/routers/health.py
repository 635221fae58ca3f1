# backend/flipops/routers/health.py
from __future__ import annotations

import logging

from fastapi import APIRouter, Depends
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from ..config import settings
from ..db import get_db
from ..schemas import HealthOut

router = APIRouter(tags=["health"])
log = logging.getLogger(__name__)


@router.get("/health", response_model=HealthOut)
def health(db: Session = Depends(get_db)):
    db_state = "ok"
    try:
        db.execute(text("SELECT 1"))
    except SQLAlchemyError:
        log.exception("health check database probe failed")
        db_state = "unavailable"
    return HealthOut(
        status="ok" if db_state == "ok" else "degraded",
        version=settings.service_version,
        env=settings.app_env,
        db=db_state,
    )
