# backend/flipops/models.py
from __future__ import annotations

import uuid
from datetime import datetime
from typing import List, Optional

from sqlalchemy import (
    Boolean,
    DateTime,
    Float,
    ForeignKey,
    Integer,
    String,
    Text,
    UniqueConstraint,
    Index,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from .db import Base


def new_id() -> str:
    return uuid.uuid4().hex


# -----------------------------
# Tenant root
# -----------------------------
class User(Base):
    __tablename__ = "users"

    id: Mapped[str] = mapped_column(String(64), primary_key=True, default=new_id)
    external_id: Mapped[Optional[str]] = mapped_column(String(120), nullable=True, unique=True, index=True)
    email: Mapped[Optional[str]] = mapped_column(String(200), nullable=True, index=True)
    name: Mapped[Optional[str]] = mapped_column(String(160), nullable=True)

    # investor profile / preferences, JSON-encoded
    investor_profile_json: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    created_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, default=datetime.utcnow)

    deals: Mapped[List["DealSpec"]] = relationship(back_populates="user")
    properties: Mapped[List["Property"]] = relationship(back_populates="user")


# -----------------------------
# Leads (independent of deals)
# -----------------------------
class Property(Base):
    __tablename__ = "properties"

    id: Mapped[str] = mapped_column(String(64), primary_key=True, default=new_id)
    user_id: Mapped[Optional[str]] = mapped_column(String(64), ForeignKey("users.id"), nullable=True, index=True)

    address: Mapped[str] = mapped_column(String(255), nullable=False)
    city: Mapped[Optional[str]] = mapped_column(String(120), nullable=True)
    state: Mapped[Optional[str]] = mapped_column(String(2), nullable=True)
    zip: Mapped[Optional[str]] = mapped_column(String(10), nullable=True)

    foreclosure: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    pre_foreclosure: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    tax_delinquent: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    vacant: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    bankruptcy: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    absentee_owner: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)

    # computed by the external scoring workflow
    score: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    score_breakdown_json: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    enriched: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    phone_numbers_json: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    emails_json: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    created_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, default=datetime.utcnow)

    user: Mapped[Optional["User"]] = relationship(back_populates="properties")


# -----------------------------
# Core domain: Deals / Events
# -----------------------------
class DealSpec(Base):
    __tablename__ = "deal_specs"

    id: Mapped[str] = mapped_column(String(64), primary_key=True, default=new_id)
    user_id: Mapped[Optional[str]] = mapped_column(String(64), ForeignKey("users.id"), nullable=True, index=True)

    address: Mapped[str] = mapped_column(String(255), nullable=False)
    type: Mapped[Optional[str]] = mapped_column(String(40), nullable=True)  # flip|rental|wholesale

    max_exposure_usd: Mapped[float] = mapped_column(Float, nullable=False, default=0.0)
    target_roi_pct: Mapped[float] = mapped_column(Float, nullable=False, default=0.0)
    arv: Mapped[Optional[float]] = mapped_column(Float, nullable=True)

    region: Mapped[Optional[str]] = mapped_column(String(80), nullable=True)
    grade: Mapped[Optional[str]] = mapped_column(String(40), nullable=True)  # Standard|Premium|Luxury

    start_at: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)
    daily_burn_usd: Mapped[float] = mapped_column(Float, nullable=False, default=0.0)

    created_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, default=datetime.utcnow, index=True)
    updated_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, default=datetime.utcnow)

    user: Mapped[Optional["User"]] = relationship(back_populates="deals")
    ledger: Mapped[Optional["BudgetLedger"]] = relationship(back_populates="deal", uselist=False)
    events: Mapped[List["Event"]] = relationship(back_populates="deal")
    bids: Mapped[List["Bid"]] = relationship(back_populates="deal")
    change_orders: Mapped[List["ChangeOrder"]] = relationship(back_populates="deal")
    invoices: Mapped[List["Invoice"]] = relationship(back_populates="deal")
    scope_nodes: Mapped[List["ScopeNode"]] = relationship(back_populates="deal")


class Event(Base):
    """
    Append-only audit record. Rows are never updated or deleted.
    """

    __tablename__ = "events"
    __table_args__ = (
        Index("ix_events_deal_ts", "deal_id", "ts"),
        Index("ix_events_artifact_action", "artifact", "action"),
    )

    # autoincrement id doubles as insertion order; breaks ts ties
    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)

    deal_id: Mapped[Optional[str]] = mapped_column(String(64), ForeignKey("deal_specs.id"), nullable=True)

    actor: Mapped[str] = mapped_column(String(120), nullable=False)  # e.g. system:G1, user:<id>
    artifact: Mapped[str] = mapped_column(String(80), nullable=False)  # DealSpec|Bid|Budget|ChangeOrder|Invoice
    action: Mapped[str] = mapped_column(String(80), nullable=False)  # APPROVE|BLOCK|AWARD|...
    gate: Mapped[Optional[str]] = mapped_column(String(4), nullable=True, index=True)  # G1..G4

    checksum: Mapped[str] = mapped_column(String(64), nullable=False)
    diff_json: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    ts: Mapped[datetime] = mapped_column(DateTime, nullable=False, default=datetime.utcnow)

    deal: Mapped[Optional["DealSpec"]] = relationship(back_populates="events")


class BudgetLedger(Base):
    __tablename__ = "budget_ledgers"

    id: Mapped[str] = mapped_column(String(64), primary_key=True, default=new_id)
    deal_id: Mapped[str] = mapped_column(String(64), ForeignKey("deal_specs.id"), nullable=False, unique=True)

    baseline_json: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    committed_json: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    actuals_json: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    variance_json: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    contingency_remaining: Mapped[float] = mapped_column(Float, nullable=False, default=0.0)

    updated_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, default=datetime.utcnow)

    deal: Mapped["DealSpec"] = relationship(back_populates="ledger")


class ChangeOrder(Base):
    __tablename__ = "change_orders"

    id: Mapped[str] = mapped_column(String(64), primary_key=True, default=new_id)
    deal_id: Mapped[str] = mapped_column(String(64), ForeignKey("deal_specs.id"), nullable=False, index=True)

    trade: Mapped[str] = mapped_column(String(80), nullable=False)
    delta_usd: Mapped[float] = mapped_column(Float, nullable=False, default=0.0)
    impact_days: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    rationale: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    status: Mapped[str] = mapped_column(String(20), nullable=False, default="proposed")  # proposed|approved|denied

    created_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, default=datetime.utcnow)
    decided_at: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)

    deal: Mapped["DealSpec"] = relationship(back_populates="change_orders")


class Vendor(Base):
    __tablename__ = "vendors"

    id: Mapped[str] = mapped_column(String(64), primary_key=True, default=new_id)
    name: Mapped[str] = mapped_column(String(200), nullable=False)
    trade: Mapped[Optional[str]] = mapped_column(String(80), nullable=True)
    reliability_score: Mapped[Optional[float]] = mapped_column(Float, nullable=True)

    created_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, default=datetime.utcnow)


class Bid(Base):
    __tablename__ = "bids"

    id: Mapped[str] = mapped_column(String(64), primary_key=True, default=new_id)
    deal_id: Mapped[str] = mapped_column(String(64), ForeignKey("deal_specs.id"), nullable=False, index=True)
    vendor_id: Mapped[str] = mapped_column(String(64), ForeignKey("vendors.id"), nullable=False, index=True)

    trade: Mapped[Optional[str]] = mapped_column(String(80), nullable=True)
    subtotal: Mapped[float] = mapped_column(Float, nullable=False, default=0.0)
    status: Mapped[str] = mapped_column(String(20), nullable=False, default="pending")  # pending|awarded|rejected

    created_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, default=datetime.utcnow)
    submitted_at: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)

    deal: Mapped["DealSpec"] = relationship(back_populates="bids")
    vendor: Mapped["Vendor"] = relationship()


class Invoice(Base):
    __tablename__ = "invoices"

    id: Mapped[str] = mapped_column(String(64), primary_key=True, default=new_id)
    deal_id: Mapped[str] = mapped_column(String(64), ForeignKey("deal_specs.id"), nullable=False, index=True)
    vendor_id: Mapped[Optional[str]] = mapped_column(String(64), ForeignKey("vendors.id"), nullable=True, index=True)

    trade: Mapped[str] = mapped_column(String(80), nullable=False)
    amount: Mapped[float] = mapped_column(Float, nullable=False, default=0.0)
    status: Mapped[str] = mapped_column(String(20), nullable=False, default="pending")  # pending|approved|rejected

    created_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, default=datetime.utcnow)
    approved_at: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)

    deal: Mapped["DealSpec"] = relationship(back_populates="invoices")
    vendor: Mapped[Optional["Vendor"]] = relationship()


# -----------------------------
# Underwriting inputs
# -----------------------------
class Policy(Base):
    __tablename__ = "policies"
    __table_args__ = (UniqueConstraint("region", "grade", name="uq_policies_region_grade"),)

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    region: Mapped[str] = mapped_column(String(80), nullable=False)
    grade: Mapped[str] = mapped_column(String(40), nullable=False)

    max_exposure_usd: Mapped[float] = mapped_column(Float, nullable=False)
    target_roi_pct: Mapped[float] = mapped_column(Float, nullable=False)
    contingency_target_pct: Mapped[Optional[float]] = mapped_column(Float, nullable=True)


class ScopeNode(Base):
    __tablename__ = "scope_nodes"

    id: Mapped[str] = mapped_column(String(64), primary_key=True, default=new_id)
    deal_id: Mapped[str] = mapped_column(String(64), ForeignKey("deal_specs.id"), nullable=False, index=True)

    trade: Mapped[str] = mapped_column(String(80), nullable=False)
    task: Mapped[str] = mapped_column(String(120), nullable=False)
    quantity: Mapped[float] = mapped_column(Float, nullable=False, default=0.0)
    unit: Mapped[str] = mapped_column(String(20), nullable=False)

    deal: Mapped["DealSpec"] = relationship(back_populates="scope_nodes")


class CostModel(Base):
    __tablename__ = "cost_models"
    __table_args__ = (
        UniqueConstraint("region", "grade", "trade", "task", "unit", name="uq_cost_models_key"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    region: Mapped[str] = mapped_column(String(80), nullable=False)
    grade: Mapped[str] = mapped_column(String(40), nullable=False)
    trade: Mapped[str] = mapped_column(String(80), nullable=False)
    task: Mapped[str] = mapped_column(String(120), nullable=False)
    unit: Mapped[str] = mapped_column(String(20), nullable=False)

    material: Mapped[float] = mapped_column(Float, nullable=False, default=0.0)
    labor: Mapped[float] = mapped_column(Float, nullable=False, default=0.0)
    contingency_pct: Mapped[float] = mapped_column(Float, nullable=False, default=0.0)
    risk_premium_pct: Mapped[float] = mapped_column(Float, nullable=False, default=0.0)


# -----------------------------
# Notifications (mark-seen)
# -----------------------------
class Notification(Base):
    __tablename__ = "notifications"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    event_id: Mapped[str] = mapped_column(String(64), nullable=False, unique=True, index=True)
    type: Mapped[str] = mapped_column(String(40), nullable=False, default="seen")
    message: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    processed: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    metadata_json: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    created_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, default=datetime.utcnow)
