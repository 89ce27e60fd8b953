"""
GatePilot Partner Models

The partner record is the root aggregate the gate state machine reads
and writes.

Key components:
- PartnerRecord: identity, ownership, classification, financials,
  current gate pointer and per-gate progress
- GateProgress: mutable per-partner, per-gate state
- Approval: approver attestation recorded when a gate is completed

Invariant: current_gate never regresses, and only the state machine's
completion transition moves it.
"""
from __future__ import annotations

import copy
from dataclasses import dataclass, field
from datetime import date, datetime
from typing import Any, Optional
from uuid import uuid4

from .enums import ContractType, GateId, GateStatus, TierClassification, UserRole
from .submission import SignatureAttestation
from .timestamps import format_datetime, parse_datetime, utc_now


# =============================================================================
# Approval
# =============================================================================

@dataclass(frozen=True)
class Approval:
    """An approver's sign-off on a completed gate."""
    approved_by: str
    approved_by_role: UserRole
    signature: SignatureAttestation
    approved_at: datetime = field(default_factory=utc_now)
    notes: Optional[str] = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "approved_by": self.approved_by,
            "approved_by_role": self.approved_by_role.value,
            "approved_at": format_datetime(self.approved_at),
            "signature": self.signature.to_dict(),
            "notes": self.notes,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Approval:
        return cls(
            approved_by=data["approved_by"],
            approved_by_role=UserRole(data["approved_by_role"]),
            signature=SignatureAttestation.from_dict(data["signature"]),
            approved_at=parse_datetime(data.get("approved_at")) or utc_now(),
            notes=data.get("notes"),
        )


# =============================================================================
# Gate Progress
# =============================================================================

@dataclass
class GateProgress:
    """
    Per-gate state for one partner.

    Attributes:
        gate_id: Which gate
        status: Last computed (or manually forced) status
        questionnaires: questionnaire_id -> most recent submission_id
        blockers: Free-text reasons recorded by a manual block
        approvals: Approver attestations, in the order recorded
        started_at: When the gate was first entered
        completed_at: When the gate was completed (passed is then terminal)
    """
    gate_id: GateId
    status: GateStatus = GateStatus.NOT_STARTED
    questionnaires: dict[str, str] = field(default_factory=dict)
    blockers: list[str] = field(default_factory=list)
    approvals: list[Approval] = field(default_factory=list)
    started_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None

    @property
    def is_blocked(self) -> bool:
        return self.status == GateStatus.BLOCKED

    @property
    def is_completed(self) -> bool:
        return self.completed_at is not None

    def to_dict(self) -> dict[str, Any]:
        return {
            "gate_id": self.gate_id.value,
            "status": self.status.value,
            "questionnaires": dict(self.questionnaires),
            "blockers": list(self.blockers),
            "approvals": [a.to_dict() for a in self.approvals],
            "started_at": format_datetime(self.started_at),
            "completed_at": format_datetime(self.completed_at),
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> GateProgress:
        return cls(
            gate_id=GateId(data["gate_id"]),
            status=GateStatus(data.get("status", GateStatus.NOT_STARTED.value)),
            questionnaires=dict(data.get("questionnaires") or {}),
            blockers=list(data.get("blockers") or []),
            approvals=[Approval.from_dict(a) for a in data.get("approvals") or []],
            started_at=parse_datetime(data.get("started_at")),
            completed_at=parse_datetime(data.get("completed_at")),
        )


# =============================================================================
# Partner Record
# =============================================================================

def new_partner_id() -> str:
    return f"partner-{uuid4().hex[:12]}"


@dataclass
class PartnerRecord:
    """
    Root aggregate for a partner moving through the gates.

    Attributes:
        id: Unique identifier
        name: Partner display name
        pam_owner: Partner Account Manager (primary owner) email
        pdm_owner / psm_owner / tam_owner: Functional owners
        contract_type: Commercial agreement type
        tier: Classification tier
        ccv: Contractually committed value (threshold rules)
        lrp: Launch revenue potential
        current_gate: Gate the partner is currently at
        gates: gate_id -> GateProgress, initialized lazily
        revision: Incremented on every persisted write
    """
    id: str
    name: str
    pam_owner: str
    pdm_owner: Optional[str] = None
    psm_owner: Optional[str] = None
    tam_owner: Optional[str] = None
    contract_type: ContractType = ContractType.OTHER
    tier: TierClassification = TierClassification.TIER_2
    ccv: float = 0.0
    lrp: float = 0.0
    contract_signed_date: Optional[date] = None
    target_launch_date: Optional[date] = None
    actual_launch_date: Optional[date] = None
    current_gate: GateId = GateId.PRE_CONTRACT
    gates: dict[GateId, GateProgress] = field(default_factory=dict)
    revision: int = 0
    created_at: datetime = field(default_factory=utc_now)
    updated_at: datetime = field(default_factory=utc_now)

    def owner_for(self, role: UserRole) -> Optional[str]:
        """Owner email assigned for a role's function, if any."""
        return {
            UserRole.PAM: self.pam_owner,
            UserRole.PDM: self.pdm_owner,
            UserRole.PSM: self.psm_owner,
            UserRole.TAM: self.tam_owner,
        }.get(role)

    def gate(self, gate_id: GateId) -> Optional[GateProgress]:
        return self.gates.get(gate_id)

    def copy(self) -> PartnerRecord:
        """Deep copy, so transitions never mutate their input."""
        return copy.deepcopy(self)

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "pam_owner": self.pam_owner,
            "pdm_owner": self.pdm_owner,
            "psm_owner": self.psm_owner,
            "tam_owner": self.tam_owner,
            "contract_type": self.contract_type.value,
            "tier": self.tier.value,
            "ccv": self.ccv,
            "lrp": self.lrp,
            "contract_signed_date": self.contract_signed_date.isoformat() if self.contract_signed_date else None,
            "target_launch_date": self.target_launch_date.isoformat() if self.target_launch_date else None,
            "actual_launch_date": self.actual_launch_date.isoformat() if self.actual_launch_date else None,
            "current_gate": self.current_gate.value,
            "gates": {g.value: p.to_dict() for g, p in self.gates.items()},
            "revision": self.revision,
            "created_at": format_datetime(self.created_at),
            "updated_at": format_datetime(self.updated_at),
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> PartnerRecord:
        def _date(value: Any) -> Optional[date]:
            if not value:
                return None
            if isinstance(value, date):
                return value
            return date.fromisoformat(str(value)[:10])

        return cls(
            id=data["id"],
            name=data["name"],
            pam_owner=data["pam_owner"],
            pdm_owner=data.get("pdm_owner"),
            psm_owner=data.get("psm_owner"),
            tam_owner=data.get("tam_owner"),
            contract_type=ContractType(data.get("contract_type", ContractType.OTHER.value)),
            tier=TierClassification(data.get("tier", TierClassification.TIER_2.value)),
            ccv=float(data.get("ccv") or 0),
            lrp=float(data.get("lrp") or 0),
            contract_signed_date=_date(data.get("contract_signed_date")),
            target_launch_date=_date(data.get("target_launch_date")),
            actual_launch_date=_date(data.get("actual_launch_date")),
            current_gate=GateId(data.get("current_gate", GateId.PRE_CONTRACT.value)),
            gates={
                GateId(g): GateProgress.from_dict(p)
                for g, p in (data.get("gates") or {}).items()
            },
            revision=int(data.get("revision", 0)),
            created_at=parse_datetime(data.get("created_at")) or utc_now(),
            updated_at=parse_datetime(data.get("updated_at")) or utc_now(),
        )
