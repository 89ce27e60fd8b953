"""
GatePilot - Partner Onboarding Gate Progression

GatePilot moves partners through an ordered sequence of onboarding gates.
Each gate requires questionnaires; each questionnaire section is scored
pass/fail/pending by declarative rules, and gate status follows from the
latest submission per required questionnaire.

Key Features:
- Declarative section criteria (equals, in, greaterThan, contains, ...)
- Gate state machine with strict progression order
- Qualification policies (revenue threshold or minimum passing sections)
- Versioned questionnaire templates; submissions pin the version they answered
- Signed approvals recorded on gate completion
- Role-based partner visibility

Quick Start:
    from gatepilot import GateService, CallerIdentity, UserRole
    from gatepilot.store import (
        InMemoryStore, PartnerRepository, SubmissionRepository, TemplateVersionStore,
    )

    store = InMemoryStore()
    service = GateService(
        PartnerRepository(store),
        SubmissionRepository(store),
        TemplateVersionStore(store),
    )
    pdm = CallerIdentity("pdm@example.com", UserRole.PDM)
    partner = service.create_partner({"name": "Acme", "pam_owner": "pam@example.com"}, pdm)

Version: 0.1.0
"""
from __future__ import annotations

__version__ = "0.1.0"
__author__ = "GatePilot Team"

# =============================================================================
# Core Models (Re-exported for convenience)
# =============================================================================
from .models import (
    # Enums
    ContractType,
    CriteriaType,
    FieldType,
    GateId,
    GateStatus,
    RuleOperator,
    SectionResult,
    SignatureKind,
    SubmissionStatus,
    TierClassification,
    UserRole,
    # Rules
    PassFailCriteria,
    RuleComparison,
    SectionVerdict,
    # Templates
    QuestionField,
    QuestionnaireSchema,
    QuestionSection,
    SchemaSnapshot,
    # Submissions
    SectionAnswers,
    SignatureAttestation,
    Submission,
    # Partners
    Approval,
    GateProgress,
    PartnerRecord,
    # Gates
    GateConfig,
    GateDefinition,
    QualificationPolicy,
    default_gate_config,
)

# =============================================================================
# Engine
# =============================================================================
from .engine import (
    FieldValidator,
    GateCheck,
    GateStateMachine,
    GateSummary,
    GateTransition,
    QualificationResult,
    RuleEvaluator,
    evaluate_policy,
)

# =============================================================================
# Access and Service
# =============================================================================
from .access import CallerIdentity, PDMUtilization, UtilizationMode, pdm_utilization
from .service import (
    GateService,
    RenderedSubmission,
    SubmissionOutcome,
    SubmissionPayload,
)

# =============================================================================
# Exceptions
# =============================================================================
from .exceptions import (
    AccessDeniedError,
    FieldError,
    GatePilotError,
    NotFoundError,
    PackLoadError,
    PackValidationError,
    PartnerNotFoundError,
    PartnerValidationError,
    RuleEvaluationError,
    SchemaNotFoundError,
    SchemaValidationError,
    SchemaVersionNotFoundError,
    StaleWriteError,
    StoreError,
    SubmissionNotFoundError,
    SubmissionValidationError,
    ValidationFailedError,
)

__all__ = [
    "__version__",
    # Enums
    "ContractType",
    "CriteriaType",
    "FieldType",
    "GateId",
    "GateStatus",
    "RuleOperator",
    "SectionResult",
    "SignatureKind",
    "SubmissionStatus",
    "TierClassification",
    "UserRole",
    # Models
    "PassFailCriteria",
    "RuleComparison",
    "SectionVerdict",
    "QuestionField",
    "QuestionnaireSchema",
    "QuestionSection",
    "SchemaSnapshot",
    "SectionAnswers",
    "SignatureAttestation",
    "Submission",
    "Approval",
    "GateProgress",
    "PartnerRecord",
    "GateConfig",
    "GateDefinition",
    "QualificationPolicy",
    "default_gate_config",
    # Engine
    "FieldValidator",
    "GateCheck",
    "GateStateMachine",
    "GateSummary",
    "GateTransition",
    "QualificationResult",
    "RuleEvaluator",
    "evaluate_policy",
    # Service
    "CallerIdentity",
    "PDMUtilization",
    "UtilizationMode",
    "pdm_utilization",
    "GateService",
    "RenderedSubmission",
    "SubmissionOutcome",
    "SubmissionPayload",
    # Exceptions
    "AccessDeniedError",
    "FieldError",
    "GatePilotError",
    "NotFoundError",
    "PackLoadError",
    "PackValidationError",
    "PartnerNotFoundError",
    "PartnerValidationError",
    "RuleEvaluationError",
    "SchemaNotFoundError",
    "SchemaValidationError",
    "SchemaVersionNotFoundError",
    "StaleWriteError",
    "StoreError",
    "SubmissionNotFoundError",
    "SubmissionValidationError",
    "ValidationFailedError",
]
