# backend/flipops/domain/gates.py
from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Any, Iterable, Optional

from .events import EventRecord

# -----------------------------------------------------------------------------
# Gate status is never stored. It is the latest matching event per gate:
#   approve action -> "approved", block action -> "blocked", none -> "pending".
# Re-running over the same log gives the same answer.
# -----------------------------------------------------------------------------

APPROVED = "approved"
BLOCKED = "blocked"
PENDING = "pending"

GATE_ORDER = ("G1", "G2", "G3", "G4")


@dataclass(frozen=True)
class GateSpec:
    gate: str
    label: str
    artifact: str
    approve_actions: frozenset[str]
    block_actions: frozenset[str]

    @property
    def actions(self) -> frozenset[str]:
        return self.approve_actions | self.block_actions

    def matches(self, ev: EventRecord) -> bool:
        return ev.gate == self.gate and ev.artifact == self.artifact and ev.action in self.actions


GATES: dict[str, GateSpec] = {
    "G1": GateSpec("G1", "deal approval", "DealSpec", frozenset({"APPROVE"}), frozenset({"BLOCK"})),
    "G2": GateSpec("G2", "bid award", "Bid", frozenset({"AWARD"}), frozenset({"BLOCK"})),
    "G3": GateSpec(
        "G3", "invoice ingestion", "Budget", frozenset({"OK"}), frozenset({"FREEZE_TIER1", "ESCALATE_TIER2"})
    ),
    "G4": GateSpec("G4", "change-order approval", "ChangeOrder", frozenset({"APPROVE_CO"}), frozenset({"DENY"})),
}


@dataclass(frozen=True)
class GateState:
    gate: str
    status: str
    action: Optional[str] = None
    event_id: Optional[int] = None
    ts: Optional[datetime] = None
    diff: Optional[dict[str, Any]] = None

    @property
    def is_approved(self) -> bool:
        return self.status == APPROVED

    @property
    def is_blocked(self) -> bool:
        return self.status == BLOCKED

    def as_dict(self) -> dict[str, Any]:
        return {
            "gate": self.gate,
            "status": self.status,
            "action": self.action,
            "eventId": str(self.event_id) if self.event_id is not None else None,
            "ts": self.ts.isoformat() if self.ts else None,
            "diff": self.diff or {},
        }


def latest_matching(events: Iterable[EventRecord], spec: GateSpec) -> Optional[EventRecord]:
    """
    Latest-wins over (ts, id). Input order does not matter.
    """
    best: Optional[EventRecord] = None
    for ev in events:
        if not spec.matches(ev):
            continue
        if best is None or ev.order_key > best.order_key:
            best = ev
    return best


def resolve_gate(events: Iterable[EventRecord], gate: str) -> GateState:
    spec = GATES[gate]
    ev = latest_matching(events, spec)
    if ev is None:
        return GateState(gate=gate, status=PENDING)

    status = APPROVED if ev.action in spec.approve_actions else BLOCKED
    return GateState(gate=gate, status=status, action=ev.action, event_id=ev.id, ts=ev.ts, diff=dict(ev.diff))


def resolve_gates(events: Iterable[EventRecord]) -> dict[str, GateState]:
    evs = list(events)
    return {g: resolve_gate(evs, g) for g in GATE_ORDER}


def status_map(states: dict[str, GateState]) -> dict[str, str]:
    """{"g1": "blocked", "g2": "pending", ...} as carried on the Truth panel."""
    return {g.lower(): states[g].status for g in GATE_ORDER if g in states}


def has_ever(events: Iterable[EventRecord], gate: str, action: str) -> bool:
    spec = GATES[gate]
    return any(spec.matches(ev) and ev.action == action for ev in events)
