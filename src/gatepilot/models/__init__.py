"""
GatePilot Models

Domain models for partner gate progression.

Modules:
- enums: All enumeration types
- rules: Section pass/fail rule language and verdicts
- template: Questionnaire schemas and archived snapshots
- submission: Submissions and signature attestations
- partner: Partner records, gate progress, approvals
- gates: Gate definitions, qualification policies, gate configuration
"""
from __future__ import annotations

from .enums import (
    CHOICE_FIELD_TYPES,
    NUMERIC_OPERATORS,
    ContractType,
    CriteriaType,
    FieldType,
    FieldValidationType,
    GateId,
    GateStatus,
    RuleOperator,
    SectionResult,
    SignatureKind,
    SubmissionStatus,
    TierClassification,
    UserRole,
)
from .rules import (
    PassFailCriteria,
    RuleComparison,
    SectionVerdict,
    automatic,
    manual,
    rule,
)
from .template import (
    FieldValidation,
    QuestionField,
    QuestionnaireSchema,
    QuestionSection,
    SchemaSnapshot,
)
from .submission import (
    SectionAnswers,
    SignatureAttestation,
    Submission,
    new_submission_id,
)
from .partner import (
    Approval,
    GateProgress,
    PartnerRecord,
    new_partner_id,
)
from .gates import (
    GATE_0_MIN_PASSING_SECTIONS,
    TIER_0_CCV_THRESHOLD,
    GateConfig,
    GateDefinition,
    QualificationPolicy,
    default_gate_config,
)
from .timestamps import parse_datetime, utc_now

__all__ = [
    # Enums
    "CHOICE_FIELD_TYPES",
    "NUMERIC_OPERATORS",
    "ContractType",
    "CriteriaType",
    "FieldType",
    "FieldValidationType",
    "GateId",
    "GateStatus",
    "RuleOperator",
    "SectionResult",
    "SignatureKind",
    "SubmissionStatus",
    "TierClassification",
    "UserRole",
    # Rules
    "PassFailCriteria",
    "RuleComparison",
    "SectionVerdict",
    "automatic",
    "manual",
    "rule",
    # Template
    "FieldValidation",
    "QuestionField",
    "QuestionnaireSchema",
    "QuestionSection",
    "SchemaSnapshot",
    # Submission
    "SectionAnswers",
    "SignatureAttestation",
    "Submission",
    "new_submission_id",
    # Partner
    "Approval",
    "GateProgress",
    "PartnerRecord",
    "new_partner_id",
    # Gates
    "GATE_0_MIN_PASSING_SECTIONS",
    "TIER_0_CCV_THRESHOLD",
    "GateConfig",
    "GateDefinition",
    "QualificationPolicy",
    "default_gate_config",
    # Time
    "parse_datetime",
    "utc_now",
]
