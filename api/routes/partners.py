"""Partner and gate transition endpoints."""

from typing import Optional

from fastapi import APIRouter, Depends, HTTPException

from api.dependencies import get_identity, get_service
from api.schemas.requests import (
    GateApprovalRequest,
    GateBlockRequest,
    GateRevisionRequest,
    PartnerCreateRequest,
    SignatureInput,
)
from api.schemas.responses import GateOverviewItem, GateTransitionResponse, PartnerResponse, PDMUtilizationResponse
from gatepilot.access import CallerIdentity, UtilizationMode
from gatepilot.engine import GateTransition
from gatepilot.models import GateId, PartnerRecord, SignatureAttestation
from gatepilot.service import GateService

router = APIRouter(prefix="/partners", tags=["Partners"])


def partner_response(partner: PartnerRecord) -> PartnerResponse:
    return PartnerResponse(**partner.to_dict())


def signature_from_input(signature: SignatureInput) -> SignatureAttestation:
    return SignatureAttestation.from_dict(signature.model_dump(exclude_none=True))


def parse_gate(gate_id: str) -> GateId:
    try:
        return GateId(gate_id)
    except ValueError:
        raise HTTPException(status_code=404, detail=f"Gate '{gate_id}' not found")


def transition_response(transition: GateTransition) -> GateTransitionResponse:
    """Applied transitions return the partner; refused ones are a 409 with the reason."""
    if not transition.ok:
        raise HTTPException(status_code=409, detail=transition.to_dict())
    return GateTransitionResponse(
        gate_id=transition.gate_id.value,
        status=transition.partner.gates[transition.gate_id].status.value,
        partner=partner_response(transition.partner),
    )


@router.post("", response_model=PartnerResponse, status_code=201)
async def create_partner(
    request: PartnerCreateRequest,
    identity: CallerIdentity = Depends(get_identity),
    service: GateService = Depends(get_service),
):
    """Create a partner at the first gate."""
    partner = service.create_partner(request.model_dump(exclude_none=True), identity)
    return partner_response(partner)


@router.get("", response_model=list[PartnerResponse])
async def list_partners(
    gate: Optional[str] = None,
    identity: CallerIdentity = Depends(get_identity),
    service: GateService = Depends(get_service),
):
    """
    List the partners the caller may see.

    Optionally filter by current gate: pre-contract, gate-0 ... post-launch
    """
    partners = service.list_partners(identity)
    if gate:
        partners = [p for p in partners if p.current_gate == parse_gate(gate)]
    return [partner_response(p) for p in partners]


@router.get("/workload/{pdm_email}", response_model=PDMUtilizationResponse)
async def pdm_workload(
    pdm_email: str,
    mode: UtilizationMode = UtilizationMode.REVENUE,
    capacity_target: float = 0,
    identity: CallerIdentity = Depends(get_identity),
    service: GateService = Depends(get_service),
):
    """
    A PDM's workload: summed CCV (mode=revenue) or number of partners
    (mode=partner-count) against capacity_target. Admin and PDM only.
    """
    return PDMUtilizationResponse(**service.pdm_workload(pdm_email, identity, mode, capacity_target).to_dict())


@router.get("/{partner_id}", response_model=PartnerResponse)
async def get_partner(
    partner_id: str,
    identity: CallerIdentity = Depends(get_identity),
    service: GateService = Depends(get_service),
):
    return partner_response(service.get_partner(partner_id, identity))


@router.get("/{partner_id}/gates", response_model=list[GateOverviewItem])
async def gate_overview(
    partner_id: str,
    identity: CallerIdentity = Depends(get_identity),
    service: GateService = Depends(get_service),
):
    """Status, completion percentage and blockers for every gate."""
    return [GateOverviewItem(**s.to_dict()) for s in service.gate_overview(partner_id, identity)]


@router.post("/{partner_id}/gates/{gate_id}/start", response_model=GateTransitionResponse)
async def start_gate(
    partner_id: str,
    gate_id: str,
    request: Optional[GateRevisionRequest] = None,
    identity: CallerIdentity = Depends(get_identity),
    service: GateService = Depends(get_service),
):
    expected = request.expected_revision if request else None
    return transition_response(service.start_gate(partner_id, parse_gate(gate_id), identity, expected))


@router.post("/{partner_id}/gates/{gate_id}/complete", response_model=GateTransitionResponse)
async def complete_gate(
    partner_id: str,
    gate_id: str,
    request: GateApprovalRequest,
    identity: CallerIdentity = Depends(get_identity),
    service: GateService = Depends(get_service),
):
    """Record a signed approval of a passed gate and unlock the next gate."""
    transition = service.complete_gate(
        partner_id,
        parse_gate(gate_id),
        identity,
        signature_from_input(request.signature),
        notes=request.notes,
        expected_revision=request.expected_revision,
    )
    return transition_response(transition)


@router.post("/{partner_id}/gates/{gate_id}/block", response_model=GateTransitionResponse)
async def block_gate(
    partner_id: str,
    gate_id: str,
    request: GateBlockRequest,
    identity: CallerIdentity = Depends(get_identity),
    service: GateService = Depends(get_service),
):
    transition = service.block_gate(
        partner_id, parse_gate(gate_id), request.reasons, identity, request.expected_revision
    )
    return transition_response(transition)


@router.post("/{partner_id}/gates/{gate_id}/unblock", response_model=GateTransitionResponse)
async def unblock_gate(
    partner_id: str,
    gate_id: str,
    request: Optional[GateRevisionRequest] = None,
    identity: CallerIdentity = Depends(get_identity),
    service: GateService = Depends(get_service),
):
    expected = request.expected_revision if request else None
    return transition_response(service.unblock_gate(partner_id, parse_gate(gate_id), identity, expected))
