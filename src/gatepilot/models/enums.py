"""
GatePilot Enumerations

All enumeration types used throughout the GatePilot system.
Organized by domain area for clarity.

All enums inherit from (str, Enum) for JSON serialization compatibility.
"""
from __future__ import annotations

from enum import Enum


# =============================================================================
# Gates
# =============================================================================

class GateId(str, Enum):
    """
    Partner onboarding gates.

    Declaration order is NOT the source of truth for progression; the
    injected GateConfig carries the order.
    """
    PRE_CONTRACT = "pre-contract"
    GATE_0 = "gate-0"
    GATE_1 = "gate-1"
    GATE_2 = "gate-2"
    GATE_3 = "gate-3"
    POST_LAUNCH = "post-launch"


class GateStatus(str, Enum):
    """Aggregate status of one gate for one partner."""
    NOT_STARTED = "not-started"
    IN_PROGRESS = "in-progress"
    PASSED = "passed"            # Terminal for the gate
    FAILED = "failed"
    BLOCKED = "blocked"          # Manual override, suppresses recalculation


# =============================================================================
# Verdicts
# =============================================================================

class SectionResult(str, Enum):
    """Verdict for a single questionnaire section."""
    PASS = "pass"
    FAIL = "fail"
    PENDING = "pending"          # Manual review outstanding


class SubmissionStatus(str, Enum):
    """Overall verdict for a submission."""
    PASS = "pass"
    FAIL = "fail"
    PARTIAL = "partial"          # Some sections pass, rest pending
    PENDING = "pending"


# =============================================================================
# Questionnaire Schema
# =============================================================================

class FieldType(str, Enum):
    """Input types a questionnaire field may declare."""
    TEXT = "text"
    EMAIL = "email"
    DATE = "date"
    NUMBER = "number"
    SELECT = "select"
    CHECKBOX = "checkbox"
    RADIO = "radio"
    TEXTAREA = "textarea"

    @property
    def is_choice(self) -> bool:
        """Choice-based fields must declare at least one option."""
        return self in CHOICE_FIELD_TYPES


CHOICE_FIELD_TYPES = frozenset({FieldType.SELECT, FieldType.CHECKBOX, FieldType.RADIO})


class FieldValidationType(str, Enum):
    """Optional per-field validation rule kinds."""
    REGEX = "regex"
    MIN = "min"
    MAX = "max"
    MIN_LENGTH = "minLength"
    MAX_LENGTH = "maxLength"
    EMAIL = "email"
    URL = "url"


class CriteriaType(str, Enum):
    """How a section's pass/fail verdict is determined."""
    AUTOMATIC = "automatic"
    MANUAL = "manual"


class RuleOperator(str, Enum):
    """Operators for atomic section comparisons."""
    EQUALS = "equals"
    NOT_EQUALS = "notEquals"
    GREATER_THAN = "greaterThan"       # Numeric
    LESS_THAN = "lessThan"             # Numeric
    CONTAINS = "contains"              # String/list contains
    NOT_CONTAINS = "notContains"
    IN = "in"                          # Membership in provided list


NUMERIC_OPERATORS = frozenset({RuleOperator.GREATER_THAN, RuleOperator.LESS_THAN})


# =============================================================================
# Partner Classification
# =============================================================================

class UserRole(str, Enum):
    """Roles supplied by the identity provider."""
    PAM = "PAM"      # Partner Account Manager
    PDM = "PDM"      # Partner Development Manager
    TPM = "TPM"      # Technical Program Manager
    PSM = "PSM"      # Partner Success Manager
    TAM = "TAM"      # Technical Account Manager
    ADMIN = "Admin"  # Unrestricted


class TierClassification(str, Enum):
    """Partner tier."""
    TIER_0 = "tier-0"
    TIER_1 = "tier-1"
    TIER_2 = "tier-2"


class ContractType(str, Enum):
    """Commercial agreement type."""
    PPA = "PPA"
    DISTRIBUTION = "Distribution"
    SALES_AGENT = "Sales-Agent"
    OTHER = "Other"


# =============================================================================
# Signatures
# =============================================================================

class SignatureKind(str, Enum):
    """How a signature attestation was captured."""
    TYPED = "typed"
    DRAWN = "drawn"
