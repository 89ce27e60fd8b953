"""Questionnaire submission endpoints."""

from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Request

from api.dependencies import get_identity, get_service
from api.routes.partners import signature_from_input
from api.schemas.requests import SectionReviewRequest, SubmissionRequest
from api.schemas.responses import RenderedSubmissionResponse, SubmissionOutcomeResponse, VerdictSummary
from gatepilot.access import CallerIdentity
from gatepilot.models import SectionResult
from gatepilot.service import GateService, SubmissionOutcome, SubmissionPayload

router = APIRouter(prefix="/submissions", tags=["Submissions"])


@router.post("", response_model=SubmissionOutcomeResponse, status_code=201)
async def create_submission(
    request: SubmissionRequest,
    http_request: Request,
    identity: CallerIdentity = Depends(get_identity),
    service: GateService = Depends(get_service),
):
    """
    Submit a signed questionnaire for a partner.

    Sections are scored against the template version current at submission
    time; that version is pinned on the stored submission. An out-of-order
    submission is refused with 409 and the blocking gate.
    """
    signature = signature_from_input(request.signature)
    payload = SubmissionPayload(
        questionnaire_id=request.questionnaire_id,
        answers=request.answers,
        signature=signature,
        originating_address=signature.originating_address or (http_request.client.host if http_request.client else None),
        client_descriptor=signature.client_descriptor or http_request.headers.get("user-agent"),
        expected_revision=request.expected_revision,
    )

    outcome = service.submit_questionnaire(request.partner_id, payload, identity)
    return _outcome_response(outcome)


@router.post("/{submission_id}/reviews", response_model=SubmissionOutcomeResponse, status_code=201)
async def review_section(
    submission_id: str,
    request: SectionReviewRequest,
    identity: CallerIdentity = Depends(get_identity),
    service: GateService = Depends(get_service),
):
    """
    Record a verdict on a manual-review section (Admin and PDM only).

    The review is stored as a new submission superseding the reviewed one,
    and the gate is recomputed. Reviewing a submission that is no longer
    the latest for its questionnaire is refused with 409.
    """
    outcome = service.review_section(
        submission_id,
        request.section_id,
        SectionResult(request.result),
        identity,
        failure_reasons=request.failure_reasons,
        notes=request.notes,
        expected_revision=request.expected_revision,
    )
    return _outcome_response(outcome)


def _outcome_response(outcome: SubmissionOutcome) -> SubmissionOutcomeResponse:
    if not outcome.accepted:
        raise HTTPException(status_code=409, detail=outcome.to_dict())

    return SubmissionOutcomeResponse(
        submission_id=outcome.submission.id,
        gate_id=outcome.gate_id.value,
        schema_version=outcome.submission.schema_version,
        section_verdicts={k: VerdictSummary(**v.to_dict()) for k, v in outcome.section_verdicts.items()},
        overall_status=outcome.overall_status.value,
        gate_status=outcome.gate_status.value,
        qualification=outcome.qualification,
        partner_revision=outcome.partner.revision,
    )


@router.get("")
async def list_submissions(
    partner_id: str,
    questionnaire_id: Optional[str] = None,
    identity: CallerIdentity = Depends(get_identity),
    service: GateService = Depends(get_service),
):
    """A partner's submissions, newest first."""
    return [s.to_dict() for s in service.list_submissions(partner_id, identity, questionnaire_id)]


@router.get("/{submission_id}")
async def get_submission(
    submission_id: str,
    identity: CallerIdentity = Depends(get_identity),
    service: GateService = Depends(get_service),
):
    return service.get_submission(submission_id, identity).to_dict()


@router.get("/{submission_id}/render", response_model=RenderedSubmissionResponse)
async def render_submission(
    submission_id: str,
    identity: CallerIdentity = Depends(get_identity),
    service: GateService = Depends(get_service),
):
    """Submission with the exact template version it was answered against."""
    rendered = service.render_submission(submission_id, identity)
    return RenderedSubmissionResponse(
        submission=rendered.submission.to_dict(),
        template=rendered.resolved.schema.to_dict(),
        requested_version=rendered.submission.schema_version,
        resolved_version=rendered.resolved.version,
        fell_back=rendered.resolved.fell_back,
    )
