"""
GatePilot Gate Service

Orchestrates the submission data flow:

    payload -> resolve current schema (pin version + hash)
            -> validate fields -> score sections
            -> append submission -> recompute owning gate
            -> persist partner (revision checked)

Policy violations (out-of-order submission or completion, completing a
gate that has not passed) come back as outcome objects carrying the
reason. Not-found, validation and access errors raise their own
exception classes. Store errors propagate unmodified.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass, field, replace
from datetime import date
from typing import Any, Iterable, Mapping, Optional

from .access import (
    CallerIdentity,
    PDMUtilization,
    UtilizationMode,
    can_access_partner,
    can_approve_gate,
    can_edit_partner,
    can_manage_templates,
    can_submit_questionnaire,
    filter_partners_by_role,
    group_partners_by_gate,
    pdm_utilization,
    require,
)
from .engine import (
    EMAIL_PATTERN,
    FieldValidator,
    GateCheck,
    GateStateMachine,
    GateSummary,
    GateTransition,
    RuleEvaluator,
    SubmissionEvaluation,
    default_failure_message,
    initialize_gate_progress,
)
from .exceptions import FieldError, PartnerValidationError, SubmissionValidationError
from .models import (
    ContractType,
    GateConfig,
    GateId,
    GateStatus,
    PartnerRecord,
    QuestionSection,
    QuestionnaireSchema,
    SectionAnswers,
    SectionResult,
    SectionVerdict,
    SignatureAttestation,
    Submission,
    SubmissionStatus,
    TierClassification,
    default_gate_config,
    new_partner_id,
    new_submission_id,
    utc_now,
)
from .store import PartnerRepository, ResolvedSchema, SubmissionRepository, TemplateVersionStore

logger = logging.getLogger(__name__)


# =============================================================================
# Inputs and Outcomes
# =============================================================================

@dataclass
class SubmissionPayload:
    """
    A submission as received from the rendering layer.

    Attributes:
        questionnaire_id: Template answered
        answers: section_id -> field_id -> value
        signature: Signer's attestation, stored verbatim
        expected_revision: Partner revision the caller read, if known
    """
    questionnaire_id: str
    answers: dict[str, dict[str, Any]]
    signature: SignatureAttestation
    originating_address: Optional[str] = None
    client_descriptor: Optional[str] = None
    expected_revision: Optional[int] = None


@dataclass
class SubmissionOutcome:
    """Verdicts and updated gate status returned to the caller."""
    accepted: bool
    gate_id: Optional[GateId]
    submission: Optional[Submission] = None
    section_verdicts: dict[str, SectionVerdict] = field(default_factory=dict)
    overall_status: Optional[SubmissionStatus] = None
    gate_status: Optional[GateStatus] = None
    qualification: Optional[dict[str, Any]] = None
    partner: Optional[PartnerRecord] = None
    reason: Optional[str] = None
    blocking_gate: Optional[GateId] = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "accepted": self.accepted,
            "gate_id": self.gate_id.value if self.gate_id else None,
            "submission_id": self.submission.id if self.submission else None,
            "schema_version": self.submission.schema_version if self.submission else None,
            "section_verdicts": {k: v.to_dict() for k, v in self.section_verdicts.items()},
            "overall_status": self.overall_status.value if self.overall_status else None,
            "gate_status": self.gate_status.value if self.gate_status else None,
            "qualification": self.qualification,
            "reason": self.reason,
            "blocking_gate": self.blocking_gate.value if self.blocking_gate else None,
        }


@dataclass
class RenderedSubmission:
    """A submission together with the schema version it pinned."""
    submission: Submission
    resolved: ResolvedSchema

    def to_dict(self) -> dict[str, Any]:
        return {
            "submission": self.submission.to_dict(),
            "schema": self.resolved.schema.to_dict(),
            "fell_back": self.resolved.fell_back,
        }


def _section_answers(
    sections: Iterable[QuestionSection],
    answers: Mapping[str, Mapping[str, Any]],
    evaluation: SubmissionEvaluation,
) -> list[SectionAnswers]:
    return [
        SectionAnswers(
            section_id=section.id,
            fields=dict(answers.get(section.id) or {}),
            verdict=evaluation.section_verdicts[section.id],
        )
        for section in sections
    ]


# =============================================================================
# Partner Payload Validation
# =============================================================================

def _optional_date(value: Any, field_id: str, errors: list[FieldError]) -> Optional[date]:
    if value in (None, ""):
        return None
    if isinstance(value, date):
        return value
    try:
        return date.fromisoformat(str(value)[:10])
    except ValueError:
        errors.append(FieldError(field_id=field_id, message="Invalid date (expected YYYY-MM-DD)"))
        return None


def validate_partner_payload(data: Mapping[str, Any]) -> list[FieldError]:
    """Every problem with a partner create/update payload."""
    errors: list[FieldError] = []

    if not str(data.get("name") or "").strip():
        errors.append(FieldError(field_id="name", message="Partner name is required"))

    for owner in ("pam_owner", "pdm_owner", "psm_owner", "tam_owner"):
        value = data.get(owner)
        if owner == "pam_owner" and not value:
            errors.append(FieldError(field_id=owner, message="PAM owner is required"))
        elif value and not EMAIL_PATTERN.match(str(value)):
            errors.append(FieldError(field_id=owner, message="Must be a valid email address"))

    if data.get("contract_type") is not None:
        allowed = [c.value for c in ContractType]
        if data["contract_type"] not in allowed:
            errors.append(FieldError(
                field_id="contract_type",
                message=f"Contract type must be one of: {', '.join(allowed)}",
            ))

    if data.get("tier") is not None:
        allowed = [t.value for t in TierClassification]
        if data["tier"] not in allowed:
            errors.append(FieldError(field_id="tier", message=f"Tier must be one of: {', '.join(allowed)}"))

    for amount in ("ccv", "lrp"):
        value = data.get(amount)
        if value is None:
            continue
        try:
            if float(value) < 0:
                errors.append(FieldError(field_id=amount, message=f"{amount.upper()} cannot be negative"))
        except (TypeError, ValueError):
            errors.append(FieldError(field_id=amount, message=f"{amount.upper()} must be a number"))

    for date_field in ("contract_signed_date", "target_launch_date", "actual_launch_date"):
        _optional_date(data.get(date_field), date_field, errors)

    return errors


# =============================================================================
# Gate Service
# =============================================================================

class GateService:
    """
    Application service for partner gate progression.

    Usage:
        service = GateService(partners, submissions, templates, config)
        outcome = service.submit_questionnaire(partner_id, payload, identity)
        if outcome.accepted and outcome.gate_status == GateStatus.PASSED:
            service.complete_gate(partner_id, outcome.gate_id, identity, signature)
    """

    def __init__(
        self,
        partners: PartnerRepository,
        submissions: SubmissionRepository,
        templates: TemplateVersionStore,
        config: Optional[GateConfig] = None,
        evaluator: Optional[RuleEvaluator] = None,
        validator: Optional[FieldValidator] = None,
    ):
        self.partners = partners
        self.submissions = submissions
        self.templates = templates
        self.config = config or default_gate_config()
        self.machine = GateStateMachine(config=self.config)
        self.evaluator = evaluator or RuleEvaluator()
        self.validator = validator or FieldValidator()

    # =========================================================================
    # Partners
    # =========================================================================

    def create_partner(self, data: Mapping[str, Any], identity: CallerIdentity) -> PartnerRecord:
        """
        Create a partner at the first configured gate.

        Raises:
            PartnerValidationError: With one FieldError per invalid field
            AccessDeniedError: If the caller would not own the new partner
        """
        errors = validate_partner_payload(data)
        if errors:
            raise PartnerValidationError(
                message=f"Partner has {len(errors)} invalid field(s)",
                field_errors=errors,
            )

        first_gate = self.config.order[0]
        scratch: list[FieldError] = []
        partner = PartnerRecord(
            id=new_partner_id(),
            name=str(data["name"]).strip(),
            pam_owner=str(data["pam_owner"]).strip(),
            pdm_owner=data.get("pdm_owner"),
            psm_owner=data.get("psm_owner"),
            tam_owner=data.get("tam_owner"),
            contract_type=ContractType(data.get("contract_type") or ContractType.OTHER.value),
            tier=TierClassification(data.get("tier") or TierClassification.TIER_2.value),
            ccv=float(data.get("ccv") or 0),
            lrp=float(data.get("lrp") or 0),
            contract_signed_date=_optional_date(data.get("contract_signed_date"), "contract_signed_date", scratch),
            target_launch_date=_optional_date(data.get("target_launch_date"), "target_launch_date", scratch),
            actual_launch_date=_optional_date(data.get("actual_launch_date"), "actual_launch_date", scratch),
            current_gate=first_gate,
            gates={first_gate: initialize_gate_progress(first_gate)},
        )
        require(can_edit_partner(identity, partner), identity, "create a partner owned by someone else")

        saved = self.partners.save(partner, expected_revision=0)
        logger.info("Partner %s (%s) created by %s", saved.id, saved.name, identity.email)
        return saved

    def get_partner(self, partner_id: str, identity: CallerIdentity) -> PartnerRecord:
        partner = self.partners.get_or_raise(partner_id)
        require(can_access_partner(identity, partner), identity, "view this partner", partner_id)
        return partner

    def list_partners(self, identity: CallerIdentity) -> list[PartnerRecord]:
        return filter_partners_by_role(self.partners.list(), identity)

    def partners_by_gate(self, identity: CallerIdentity) -> dict[GateId, list[PartnerRecord]]:
        return group_partners_by_gate(self.partners.list(), identity, self.config.order)

    def pdm_workload(
        self,
        pdm_email: str,
        identity: CallerIdentity,
        mode: UtilizationMode = UtilizationMode.REVENUE,
        capacity_target: float = 0,
    ) -> PDMUtilization:
        """A PDM's workload against a capacity target (Admin and PDM only)."""
        require(can_approve_gate(identity), identity, "view PDM workload")
        return pdm_utilization(self.partners.list(), pdm_email, mode, capacity_target)

    # =========================================================================
    # Submissions
    # =========================================================================

    def submit_questionnaire(
        self,
        partner_id: str,
        payload: SubmissionPayload,
        identity: CallerIdentity,
    ) -> SubmissionOutcome:
        """
        Score a questionnaire submission and record it on its gate.

        Raises:
            PartnerNotFoundError / SchemaNotFoundError: Missing records
            SubmissionValidationError: Invalid answers, every field reported
            AccessDeniedError: Caller may not submit for this partner
            StaleWriteError: Partner changed since expected_revision
        """
        partner = self.partners.get_or_raise(partner_id)
        require(can_submit_questionnaire(identity, partner), identity, "submit for this partner", partner_id)

        known = self.submissions.for_partner(partner)
        check = self.machine.can_submit(partner, payload.questionnaire_id, known)
        if not check.allowed:
            return self._refused_submission(check)

        resolved = self.templates.resolve_schema_or_raise(payload.questionnaire_id)
        schema = resolved.schema
        self.validator.validate_or_raise(schema, payload.answers, partner_id=partner_id)

        now = utc_now()
        evaluation = self.evaluator.evaluate_submission(schema.sections, payload.answers, now=now)
        submission = Submission(
            id=new_submission_id(),
            questionnaire_id=payload.questionnaire_id,
            schema_version=schema.version,
            schema_hash=schema.schema_hash,
            partner_id=partner.id,
            sections=_section_answers(schema.sections, payload.answers, evaluation),
            overall_status=evaluation.overall_status,
            signature=payload.signature,
            submitted_by=identity.email,
            submitted_by_role=identity.role,
            originating_address=payload.originating_address or payload.signature.originating_address,
            client_descriptor=payload.client_descriptor or payload.signature.client_descriptor,
            created_at=now,
        )
        return self._record(partner, submission, evaluation, known, payload.expected_revision)

    def review_section(
        self,
        submission_id: str,
        section_id: str,
        result: SectionResult,
        identity: CallerIdentity,
        failure_reasons: Iterable[str] = (),
        notes: Optional[str] = None,
        expected_revision: Optional[int] = None,
    ) -> SubmissionOutcome:
        """
        Record a reviewer's verdict on a manually reviewed section.

        Submissions are immutable, so the review produces a new submission
        with the same answers, signature and pinned version, superseding
        the reviewed one on its gate. Earlier reviews of the submission's
        other manual sections carry over.

        Returns:
            SubmissionOutcome; refused when the submission is no longer the
            latest for its questionnaire

        Raises:
            AccessDeniedError: Caller may not review (Admin and PDM only)
            SubmissionValidationError: Section is not manual, or the
                verdict is not pass or fail
        """
        reviewed = self.submissions.get_or_raise(submission_id)
        partner = self.partners.get_or_raise(reviewed.partner_id)
        require(can_approve_gate(identity), identity, "review questionnaire sections", partner.id)

        schema = self.templates.resolve_schema_or_raise(
            reviewed.questionnaire_id, reviewed.schema_version
        ).schema
        section = schema.get_section(section_id)
        problem = None
        if section is None or section.criteria is None or not section.criteria.is_manual:
            problem = f"Section '{section_id}' is not reviewed manually"
        elif result not in (SectionResult.PASS, SectionResult.FAIL):
            problem = "A review verdict must be pass or fail"
        if problem:
            raise SubmissionValidationError(
                message=problem,
                details={"submission_id": submission_id},
                partner_id=partner.id,
                field_errors=[FieldError(field_id=None, section_id=section_id, message=problem)],
            )

        gate_id = self.config.gate_for_questionnaire(reviewed.questionnaire_id)
        progress = partner.gate(gate_id) if gate_id else None
        latest = progress.questionnaires.get(reviewed.questionnaire_id) if progress else None
        if latest != reviewed.id:
            return SubmissionOutcome(
                accepted=False,
                gate_id=gate_id,
                reason=f"Submission {reviewed.id} is not the latest for {reviewed.questionnaire_id} (latest: {latest})",
            )

        now = utc_now()
        reasons = [r for r in failure_reasons if r]
        if result == SectionResult.FAIL and not reasons:
            reasons = [default_failure_message(section.title)]
        verdicts = {
            s.id: reviewed.section_verdicts[s.id]
            for s in schema.sections
            if s.criteria is not None and s.criteria.is_manual
            and s.id in reviewed.section_verdicts and not reviewed.section_verdicts[s.id].pending
        }
        verdicts[section_id] = SectionVerdict(
            result=result,
            failure_reasons=reasons,
            evaluated_at=now,
            evaluated_by=identity.email,
            notes=notes,
        )

        evaluation = self.evaluator.evaluate_submission(
            schema.sections, reviewed.answers, reviewer_verdicts=verdicts, now=now
        )
        submission = replace(
            reviewed,
            id=new_submission_id(),
            sections=_section_answers(schema.sections, reviewed.answers, evaluation),
            overall_status=evaluation.overall_status,
            created_at=now,
            qualification=None,
            supersedes=reviewed.id,
        )
        logger.info(
            "Section %s of submission %s reviewed by %s: %s",
            section_id, reviewed.id, identity.email, result.value,
        )
        known = self.submissions.for_partner(partner)
        return self._record(partner, submission, evaluation, known, expected_revision)

    def get_submission(self, submission_id: str, identity: CallerIdentity) -> Submission:
        submission = self.submissions.get_or_raise(submission_id)
        self.get_partner(submission.partner_id, identity)
        return submission

    def list_submissions(
        self,
        partner_id: str,
        identity: CallerIdentity,
        questionnaire_id: Optional[str] = None,
    ) -> list[Submission]:
        self.get_partner(partner_id, identity)
        return self.submissions.list_for_partner(partner_id, questionnaire_id)

    def render_submission(self, submission_id: str, identity: CallerIdentity) -> RenderedSubmission:
        """Submission plus the exact schema version it was answered against."""
        submission = self.get_submission(submission_id, identity)
        resolved = self.templates.resolve_schema_or_raise(
            submission.questionnaire_id, submission.schema_version
        )
        return RenderedSubmission(submission=submission, resolved=resolved)

    # =========================================================================
    # Gate Transitions
    # =========================================================================

    def start_gate(
        self,
        partner_id: str,
        gate_id: GateId,
        identity: CallerIdentity,
        expected_revision: Optional[int] = None,
    ) -> GateTransition:
        partner = self.partners.get_or_raise(partner_id)
        require(can_edit_partner(identity, partner), identity, "start a gate for this partner", partner_id)
        transition = self.machine.start_gate(partner, gate_id, self.submissions.for_partner(partner))
        return self._persist(partner, transition, expected_revision)

    def complete_gate(
        self,
        partner_id: str,
        gate_id: GateId,
        identity: CallerIdentity,
        signature: SignatureAttestation,
        notes: Optional[str] = None,
        expected_revision: Optional[int] = None,
    ) -> GateTransition:
        partner = self.partners.get_or_raise(partner_id)
        require(can_approve_gate(identity), identity, "approve gates", partner_id)
        transition = self.machine.complete_gate(
            partner,
            gate_id,
            approver=identity.email,
            approver_role=identity.role,
            signature=signature,
            submissions=self.submissions.for_partner(partner),
            notes=notes,
        )
        return self._persist(partner, transition, expected_revision)

    def block_gate(
        self,
        partner_id: str,
        gate_id: GateId,
        reasons: Iterable[str],
        identity: CallerIdentity,
        expected_revision: Optional[int] = None,
    ) -> GateTransition:
        partner = self.partners.get_or_raise(partner_id)
        require(can_approve_gate(identity), identity, "block gates", partner_id)
        transition = self.machine.block_gate(partner, gate_id, reasons)
        return self._persist(partner, transition, expected_revision)

    def unblock_gate(
        self,
        partner_id: str,
        gate_id: GateId,
        identity: CallerIdentity,
        expected_revision: Optional[int] = None,
    ) -> GateTransition:
        partner = self.partners.get_or_raise(partner_id)
        require(can_approve_gate(identity), identity, "unblock gates", partner_id)
        transition = self.machine.unblock_gate(partner, gate_id, self.submissions.for_partner(partner))
        return self._persist(partner, transition, expected_revision)

    def gate_overview(self, partner_id: str, identity: CallerIdentity) -> list[GateSummary]:
        partner = self.get_partner(partner_id, identity)
        return self.machine.overview(partner, self.submissions.for_partner(partner))

    def can_advance(self, partner_id: str, gate_id: GateId, identity: CallerIdentity) -> GateCheck:
        partner = self.get_partner(partner_id, identity)
        return self.machine.can_advance(partner, gate_id, self.submissions.for_partner(partner))

    # =========================================================================
    # Templates
    # =========================================================================

    def save_template(self, schema: QuestionnaireSchema, identity: CallerIdentity) -> QuestionnaireSchema:
        require(can_manage_templates(identity), identity, "edit questionnaire templates")
        return self.templates.save(schema, updated_by=identity.email)

    def remove_template_field(self, template_id: str, field_id: str, identity: CallerIdentity) -> QuestionnaireSchema:
        require(can_manage_templates(identity), identity, "edit questionnaire templates")
        return self.templates.remove_field(template_id, field_id, updated_by=identity.email)

    def seed_templates(self, schemas: Iterable[QuestionnaireSchema]) -> list[QuestionnaireSchema]:
        """Store shipped questionnaires that have no current version yet."""
        return [self.templates.ensure_template(s) for s in schemas]

    # =========================================================================
    # Internals
    # =========================================================================

    def _record(
        self,
        partner: PartnerRecord,
        submission: Submission,
        evaluation: SubmissionEvaluation,
        known: Mapping[str, Submission],
        expected_revision: Optional[int],
    ) -> SubmissionOutcome:
        """Reference a scored submission from its gate, then store both."""
        transition = self.machine.record_submission(partner, submission, known, now=submission.created_at)
        if not transition.ok:
            return self._refused_submission(GateCheck(False, transition.gate_id, transition.blocking_gate, transition.reason))

        gate_id = transition.gate_id
        with_new = dict(known)
        with_new[submission.id] = submission
        qualification = self.machine.qualification(transition.partner.gates[gate_id], with_new, transition.partner)
        if qualification is not None:
            submission.qualification = qualification.to_dict()

        self.submissions.add(submission)
        expected = expected_revision if expected_revision is not None else partner.revision
        saved = self.partners.save(transition.partner, expected_revision=expected)

        gate_status = saved.gates[gate_id].status
        logger.info(
            "Submission %s for partner %s (%s v%d): %s, gate %s now %s",
            submission.id, partner.id, submission.questionnaire_id, submission.schema_version,
            submission.overall_status.value, gate_id.value, gate_status.value,
        )
        return SubmissionOutcome(
            accepted=True,
            gate_id=gate_id,
            submission=submission,
            section_verdicts=evaluation.section_verdicts,
            overall_status=evaluation.overall_status,
            gate_status=gate_status,
            qualification=submission.qualification,
            partner=saved,
        )

    def _persist(
        self,
        partner: PartnerRecord,
        transition: GateTransition,
        expected_revision: Optional[int],
    ) -> GateTransition:
        if not transition.ok:
            return transition
        expected = expected_revision if expected_revision is not None else partner.revision
        saved = self.partners.save(transition.partner, expected_revision=expected)
        return replace(transition, partner=saved)

    @staticmethod
    def _refused_submission(check: GateCheck) -> SubmissionOutcome:
        return SubmissionOutcome(
            accepted=False,
            gate_id=check.gate_id,
            reason=check.reason,
            blocking_gate=check.blocking_gate,
        )
