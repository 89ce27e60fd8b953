"""
Pytest configuration and fixtures for GatePilot tests.

Provides helper factories and common fixtures matching actual model definitions.
"""
import pytest
from datetime import datetime, timedelta, timezone
from pathlib import Path
from uuid import uuid4

from gatepilot.access import CallerIdentity
from gatepilot.engine import initialize_gate_progress, overall_status
from gatepilot.models import (
    FieldType,
    GateId,
    PartnerRecord,
    QuestionField,
    QuestionnaireSchema,
    QuestionSection,
    SectionAnswers,
    SectionResult,
    SectionVerdict,
    SignatureAttestation,
    SignatureKind,
    Submission,
    UserRole,
    automatic,
    rule,
)
from gatepilot.packs import PackLoader
from gatepilot.service import GateService, SubmissionPayload
from gatepilot.store import (
    InMemoryStore,
    PartnerRepository,
    SubmissionRepository,
    TemplateVersionStore,
)

PACKS_DIR = Path(__file__).parent.parent / "packs"

BASE_TIME = datetime(2026, 3, 2, 9, 0, tzinfo=timezone.utc)

ADMIN = CallerIdentity("admin@example.com", UserRole.ADMIN)
PDM = CallerIdentity("pdm@example.com", UserRole.PDM)
PAM = CallerIdentity("pam@example.com", UserRole.PAM)
OTHER_PAM = CallerIdentity("someone.else@example.com", UserRole.PAM)


# =============================================================================
# Answer Sets (shipped packs)
# =============================================================================

PRE_CONTRACT_ANSWERS = {
    "partner-profile": {
        "partner-legal-name": "Acme Connectivity Ltd",
        "contract-type": "PPA",
        "primary-contact-email": "ops@acme.example",
    },
    "commercial-terms": {
        "ccv-amount": 12000000,
        "country-lrp": 3000000,
        "pricing-approved": "Yes",
    },
    "pdm-engagement": {"pdm-engagement-approved": "Yes"},
}

GATE_0_ANSWERS = {
    "contract-execution": {"contract-signed": "Yes"},
    "partner-team": {"team-commitment-confirmed": "Yes"},
    "launch-timing": {"launch-within-12-months": "Yes"},
    "financial-bar": {"ccv-amount": 12000000, "meets-financial-bar": "Yes"},
    "strategic-value": {"market-position": "Challenger"},
    "operational-readiness": {"operational-readiness-score": "High"},
}


def answers_with(base: dict, section_id: str, **values) -> dict:
    """Copy of an answer set with some values in one section replaced."""
    copied = {k: dict(v) for k, v in base.items()}
    copied.setdefault(section_id, {}).update({k.replace("_", "-"): v for k, v in values.items()})
    return copied


# =============================================================================
# Factory Helpers
# =============================================================================

def make_field(
    field_id: str,
    type: FieldType = FieldType.TEXT,
    required: bool = False,
    options: tuple = (),
    label: str = None,
    **kwargs,
) -> QuestionField:
    """Create a QuestionField with required fields."""
    return QuestionField(
        id=field_id,
        type=type,
        label=label or field_id.replace("-", " ").capitalize(),
        required=required,
        options=tuple(options),
        **kwargs,
    )


def make_section(
    section_id: str,
    fields: list = None,
    criteria=None,
    title: str = None,
) -> QuestionSection:
    """Create a QuestionSection; defaults to one Yes/No question that must be Yes."""
    if fields is None:
        approval_field = f"{section_id}-approved"
        fields = [make_field(approval_field, FieldType.RADIO, required=True, options=("Yes", "No"))]
        if criteria is None:
            criteria = automatic(rule(approval_field, "equals", "Yes", f"{section_id} must be approved"))
    return QuestionSection(
        id=section_id,
        title=title or section_id.replace("-", " ").title(),
        fields=tuple(fields),
        criteria=criteria,
    )


def make_schema(
    template_id: str = "pre-contract",
    sections: list = None,
    version: int = 0,
    gate: GateId = None,
) -> QuestionnaireSchema:
    """Create a QuestionnaireSchema; defaults to two approval sections."""
    return QuestionnaireSchema(
        template_id=template_id,
        name=template_id.replace("-", " ").title(),
        sections=sections if sections is not None else [make_section("alpha"), make_section("beta")],
        version=version,
        gate=gate,
    )


def make_signature(
    signer_name: str = "Jordan Lee",
    signer_email: str = "jordan.lee@example.com",
    kind: SignatureKind = SignatureKind.TYPED,
) -> SignatureAttestation:
    return SignatureAttestation(
        kind=kind,
        rendered_data=signer_name,
        signer_name=signer_name,
        signer_email=signer_email,
        timestamp=BASE_TIME,
        originating_address="203.0.113.7",
        client_descriptor="pytest",
    )


def make_verdict(result: SectionResult, *reasons: str) -> SectionVerdict:
    return SectionVerdict(result=result, failure_reasons=list(reasons), evaluated_at=BASE_TIME)


def make_submission(
    questionnaire_id: str = "pre-contract",
    verdicts: dict = None,
    partner_id: str = "partner-test",
    answers: dict = None,
    schema_version: int = 1,
    created_at: datetime = None,
    submission_id: str = None,
) -> Submission:
    """
    Create a Submission from section verdicts.

    verdicts maps section_id -> SectionResult (or SectionVerdict); the
    overall status is derived the same way the evaluator derives it.
    """
    verdicts = verdicts or {"alpha": SectionResult.PASS}
    answers = answers or {}
    resolved = {
        section_id: v if isinstance(v, SectionVerdict) else make_verdict(
            v, *([f"{section_id} failed"] if v == SectionResult.FAIL else [])
        )
        for section_id, v in verdicts.items()
    }
    return Submission(
        id=submission_id or f"sub-{uuid4().hex[:12]}",
        questionnaire_id=questionnaire_id,
        schema_version=schema_version,
        partner_id=partner_id,
        sections=[
            SectionAnswers(section_id=section_id, fields=dict(answers.get(section_id) or {}), verdict=verdict)
            for section_id, verdict in resolved.items()
        ],
        overall_status=overall_status(resolved.values()),
        signature=make_signature(),
        submitted_by=PAM.email,
        submitted_by_role=PAM.role,
        created_at=created_at or BASE_TIME,
    )


def make_gate0_submission(passing: int, failing: int = 0, pending: int = 0, **kwargs) -> Submission:
    """Gate 0 kickoff submission with the given verdict counts."""
    results = (
        [SectionResult.PASS] * passing
        + [SectionResult.FAIL] * failing
        + [SectionResult.PENDING] * pending
    )
    verdicts = {f"criterion-{i + 1}": r for i, r in enumerate(results)}
    return make_submission("gate-0-kickoff", verdicts=verdicts, **kwargs)


def make_partner(
    partner_id: str = "partner-test",
    name: str = "Acme Connectivity",
    pam_owner: str = PAM.email,
    gates: dict = None,
    current_gate: GateId = GateId.PRE_CONTRACT,
    **kwargs,
) -> PartnerRecord:
    """Create a PartnerRecord at the first gate."""
    if gates is None:
        gates = {current_gate: initialize_gate_progress(current_gate)}
    return PartnerRecord(
        id=partner_id,
        name=name,
        pam_owner=pam_owner,
        current_gate=current_gate,
        gates=gates,
        **kwargs,
    )


def attach(partner: PartnerRecord, gate_id: GateId, submission: Submission, started: bool = True) -> PartnerRecord:
    """Reference a submission from a gate's progress (no status recalculation)."""
    progress = partner.gates.setdefault(gate_id, initialize_gate_progress(gate_id))
    progress.questionnaires[submission.questionnaire_id] = submission.id
    if started and progress.started_at is None:
        progress.started_at = submission.created_at
    return partner


def later(minutes: int) -> datetime:
    return BASE_TIME + timedelta(minutes=minutes)


def make_service(store=None, strict_history: bool = False) -> GateService:
    """GateService over an in-memory store, seeded with the shipped packs."""
    store = store if store is not None else InMemoryStore()
    config, schemas = PackLoader().load_directory(PACKS_DIR)
    service = GateService(
        PartnerRepository(store),
        SubmissionRepository(store),
        TemplateVersionStore(store, strict_history=strict_history),
        config=config,
    )
    service.seed_templates(schemas.values())
    return service


def make_payload(questionnaire_id: str, answers: dict, **kwargs) -> SubmissionPayload:
    return SubmissionPayload(
        questionnaire_id=questionnaire_id,
        answers=answers,
        signature=make_signature(),
        **kwargs,
    )


# =============================================================================
# Fixtures
# =============================================================================

@pytest.fixture
def store():
    return InMemoryStore()


@pytest.fixture
def service(store):
    return make_service(store)


@pytest.fixture
def partner(service):
    """A partner owned by PAM, created through the service."""
    return service.create_partner(
        {"name": "Acme Connectivity", "pam_owner": PAM.email, "contract_type": "PPA", "ccv": 12000000},
        PAM,
    )
