# backend/flipops/services/gate_status.py
from __future__ import annotations

from typing import Any, Optional

from sqlalchemy.orm import Session

from ..domain.gates import GATE_ORDER, GateState, resolve_gates
from .deal_reads import require_deal
from .event_store import list_deal_events


def get_gate_states(db: Session, deal_id: str, *, user_id: Optional[str] = None) -> dict[str, GateState]:
    """
    Current G1..G4 status for a deal, derived from its event log.
    Raises DealNotFound for an unknown deal. Pure read.
    """
    deal = require_deal(db, deal_id, user_id=user_id)
    return resolve_gates(list_deal_events(db, str(deal.id)))


def gate_status_payload(db: Session, deal_id: str, *, user_id: Optional[str] = None) -> dict[str, Any]:
    states = get_gate_states(db, deal_id, user_id=user_id)
    return {
        "dealId": str(deal_id),
        "gates": [states[g].as_dict() for g in GATE_ORDER],
    }
