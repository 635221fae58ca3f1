# backend/tests/conftest.py
from __future__ import annotations

from datetime import datetime
from typing import Any, Callable, Optional

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from flipops.db import Base, get_db
from flipops.main import create_app
from flipops.models import DealSpec
from flipops.services.event_store import write_event


@pytest.fixture()
def db_session():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
        future=True,
    )
    Base.metadata.create_all(bind=engine)
    Session = sessionmaker(bind=engine, autoflush=False, expire_on_commit=False, future=True)
    db = Session()
    try:
        yield db
    finally:
        db.close()
        Base.metadata.drop_all(bind=engine)
        engine.dispose()


@pytest.fixture()
def client(db_session):
    app = create_app()

    def _override_get_db():
        yield db_session

    app.dependency_overrides[get_db] = _override_get_db
    with TestClient(app) as c:
        yield c
    app.dependency_overrides.clear()


@pytest.fixture()
def make_deal(db_session) -> Callable[..., DealSpec]:
    def _make(
        deal_id: str,
        *,
        created_at: Optional[datetime] = None,
        max_exposure_usd: float = 300000.0,
        **kw: Any,
    ) -> DealSpec:
        ts = created_at or datetime.utcnow()
        deal = DealSpec(
            id=deal_id,
            address=kw.pop("address", f"{deal_id} Main St"),
            max_exposure_usd=max_exposure_usd,
            target_roi_pct=kw.pop("target_roi_pct", 20.0),
            region=kw.pop("region", "Miami"),
            grade=kw.pop("grade", "Standard"),
            created_at=ts,
            updated_at=kw.pop("updated_at", ts),
            **kw,
        )
        db_session.add(deal)
        db_session.commit()
        return deal

    return _make


@pytest.fixture()
def add_event(db_session) -> Callable[..., Any]:
    def _add(deal_id: str, actor: str, artifact: str, action: str, *, ts: datetime, diff: Optional[dict] = None):
        row = write_event(db_session, deal_id=deal_id, actor=actor, artifact=artifact, action=action, diff=diff, ts=ts)
        db_session.commit()
        return row

    return _add
