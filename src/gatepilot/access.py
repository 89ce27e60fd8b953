"""
GatePilot Access Control

Role-based partner visibility. The identity provider supplies an email
and one role; nothing here authenticates, it only reads that pair.

Rules:
- Admin and PDM see and edit every partner, approve gates and edit templates
- Every other role sees the partners it owns: the caller's email matches
  (case-insensitively) the owner field for its role, or the PAM owner

Also measures a PDM's workload (summed CCV or partner count) against a
capacity target.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Iterable, Optional

from .exceptions import AccessDeniedError
from .models import GateId, PartnerRecord, UserRole

UNRESTRICTED_ROLES = frozenset({UserRole.ADMIN, UserRole.PDM})


@dataclass(frozen=True)
class CallerIdentity:
    """Caller identity and role as supplied by the identity provider."""
    email: str
    role: UserRole

    @property
    def is_unrestricted(self) -> bool:
        return self.role in UNRESTRICTED_ROLES


def _same_email(a: Optional[str], b: Optional[str]) -> bool:
    return bool(a) and bool(b) and a.strip().lower() == b.strip().lower()


def is_primary_owner(identity: Optional[CallerIdentity], partner: PartnerRecord) -> bool:
    return identity is not None and _same_email(partner.pam_owner, identity.email)


def can_access_partner(identity: Optional[CallerIdentity], partner: PartnerRecord) -> bool:
    if identity is None:
        return False
    if identity.is_unrestricted:
        return True
    return (
        _same_email(partner.owner_for(identity.role), identity.email)
        or is_primary_owner(identity, partner)
    )


def filter_partners_by_role(
    partners: Iterable[PartnerRecord],
    identity: Optional[CallerIdentity],
) -> list[PartnerRecord]:
    if identity is None:
        return []
    return [p for p in partners if can_access_partner(identity, p)]


def can_edit_partner(identity: Optional[CallerIdentity], partner: PartnerRecord) -> bool:
    return can_access_partner(identity, partner)


def can_submit_questionnaire(identity: Optional[CallerIdentity], partner: PartnerRecord) -> bool:
    return can_access_partner(identity, partner)


def can_approve_gate(identity: Optional[CallerIdentity]) -> bool:
    """Gate completion and manual blocks are reserved for unrestricted roles."""
    return identity is not None and identity.is_unrestricted


def can_manage_templates(identity: Optional[CallerIdentity]) -> bool:
    return identity is not None and identity.is_unrestricted


def assigned_partners(partners: Iterable[PartnerRecord], email: str) -> list[PartnerRecord]:
    """Partners whose PAM owner is email."""
    return [p for p in partners if _same_email(p.pam_owner, email)]


def group_partners_by_gate(
    partners: Iterable[PartnerRecord],
    identity: Optional[CallerIdentity],
    gate_order: Iterable[GateId] = tuple(GateId),
) -> dict[GateId, list[PartnerRecord]]:
    """Visible partners bucketed by current gate, every gate present."""
    grouped: dict[GateId, list[PartnerRecord]] = {g: [] for g in gate_order}
    for partner in filter_partners_by_role(partners, identity):
        grouped.setdefault(partner.current_gate, []).append(partner)
    return grouped


def require(allowed: bool, identity: Optional[CallerIdentity], action: str, partner_id: Optional[str] = None) -> None:
    """Raise AccessDeniedError unless allowed."""
    if not allowed:
        raise AccessDeniedError(
            message=f"{identity.role.value if identity else 'Anonymous'} caller may not {action}",
            details={"email": identity.email if identity else None, "action": action},
            partner_id=partner_id,
        )


# =============================================================================
# PDM Workload
# =============================================================================

class UtilizationMode(str, Enum):
    """What a PDM's workload is measured in."""
    REVENUE = "revenue"  # summed CCV
    PARTNER_COUNT = "partner-count"


@dataclass
class PDMUtilization:
    """
    A PDM's workload against a capacity target.

    Attributes:
        pdm_email: PDM the workload was computed for
        mode: Revenue (summed CCV) or partner count
        current_value: Summed CCV or number of partners
        capacity_target: Target in the same unit as current_value
        utilization_percentage: current_value / capacity_target * 100,
            0 when the target is not positive
        partners: Partners whose PDM owner is pdm_email
    """
    pdm_email: str
    mode: UtilizationMode
    current_value: float
    capacity_target: float
    utilization_percentage: float
    partners: list[PartnerRecord] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return {
            "pdm_email": self.pdm_email,
            "mode": self.mode.value,
            "current_value": self.current_value,
            "capacity_target": self.capacity_target,
            "utilization_percentage": self.utilization_percentage,
            "partner_ids": [p.id for p in self.partners],
        }


def pdm_utilization(
    partners: Iterable[PartnerRecord],
    pdm_email: str,
    mode: UtilizationMode = UtilizationMode.REVENUE,
    capacity_target: float = 0,
) -> PDMUtilization:
    """
    Workload of one PDM across the partners they own.

    Args:
        partners: All partner records
        pdm_email: PDM to measure, matched case-insensitively
        mode: REVENUE sums CCV, PARTNER_COUNT counts partners
        capacity_target: Target revenue or partner count

    Returns:
        PDMUtilization; utilization is 0 when capacity_target <= 0
    """
    mode = UtilizationMode(mode)
    owned = [p for p in partners if _same_email(p.pdm_owner, pdm_email)]
    if mode == UtilizationMode.REVENUE:
        current = float(sum(p.ccv for p in owned))
    else:
        current = float(len(owned))
    percentage = current / capacity_target * 100 if capacity_target > 0 else 0.0
    return PDMUtilization(
        pdm_email=pdm_email,
        mode=mode,
        current_value=current,
        capacity_target=capacity_target,
        utilization_percentage=percentage,
        partners=owned,
    )
