"""Response schemas for the API."""

from pydantic import BaseModel
from typing import Any, Optional


class VerdictSummary(BaseModel):
    """Verdict for one questionnaire section."""
    result: str  # pass|fail|pending
    failure_reasons: list[str]
    evaluated_at: Optional[str] = None
    evaluated_by: Optional[str] = None
    notes: Optional[str] = None


class GateProgressSummary(BaseModel):
    """Stored progress for one gate."""
    gate_id: str
    status: str  # not-started|in-progress|passed|failed|blocked
    questionnaires: dict[str, str]
    blockers: list[str]
    approvals: list[dict[str, Any]]
    started_at: Optional[str] = None
    completed_at: Optional[str] = None


class PartnerResponse(BaseModel):
    """A partner record."""
    id: str
    name: str
    pam_owner: str
    pdm_owner: Optional[str] = None
    psm_owner: Optional[str] = None
    tam_owner: Optional[str] = None
    contract_type: str
    tier: str
    ccv: float
    lrp: float
    contract_signed_date: Optional[str] = None
    target_launch_date: Optional[str] = None
    actual_launch_date: Optional[str] = None
    current_gate: str
    gates: dict[str, GateProgressSummary]
    revision: int
    created_at: str
    updated_at: str


class GateOverviewItem(BaseModel):
    """Computed view of one gate for a partner."""
    gate_id: str
    name: str
    status: str
    completion_percentage: int
    blockers: list[str]
    is_current: bool
    started_at: Optional[str] = None
    completed_at: Optional[str] = None
    approvals: int


class PDMUtilizationResponse(BaseModel):
    """A PDM's workload against a capacity target."""
    pdm_email: str
    mode: str  # revenue|partner-count
    current_value: float
    capacity_target: float
    utilization_percentage: float
    partner_ids: list[str]


class GateTransitionResponse(BaseModel):
    """Result of a gate transition that was applied."""
    gate_id: str
    status: str
    partner: PartnerResponse


class SubmissionOutcomeResponse(BaseModel):
    """Verdicts and updated gate status for an accepted submission."""
    submission_id: str
    gate_id: str
    schema_version: int
    section_verdicts: dict[str, VerdictSummary]
    overall_status: str  # pass|fail|partial|pending
    gate_status: str
    qualification: Optional[dict[str, Any]] = None
    partner_revision: int


class RenderedSubmissionResponse(BaseModel):
    """Submission with the schema version it pinned."""
    submission: dict[str, Any]
    template: dict[str, Any]
    requested_version: int
    resolved_version: int
    fell_back: bool


class TemplateSummary(BaseModel):
    """Index entry for a questionnaire template."""
    template_id: str
    name: str
    gate: Optional[str] = None
    current_version: int
    updated_at: Optional[str] = None
    updated_by: Optional[str] = None


class TemplateVersionSummary(BaseModel):
    """An archived template version."""
    template_id: str
    version: int
    created_at: Optional[str] = None
    created_by: Optional[str] = None
    schema_hash: Optional[str] = None
