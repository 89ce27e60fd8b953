"""
GatePilot Exception Hierarchy

Domain-specific exceptions for partner gate progression.
All exceptions include error codes for tracking and logging.

Exception codes follow the pattern: GP_<CATEGORY>_<SPECIFIC>

Policy violations (advancing out of order, completing a gate that has
not passed) are NOT exceptions: the gate state machine returns outcome
objects carrying the reason. Everything here is either a validation
error, a not-found error, or a collaborator failure.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Optional


@dataclass
class GatePilotError(Exception):
    """
    Base exception for all GatePilot errors.

    Attributes:
        message: Human-readable error description
        code: Machine-readable error code (GP_*)
        details: Additional context about the error
        partner_id: Associated partner ID if applicable
    """
    message: str
    code: str = "GP_INTERNAL_ERROR"
    details: dict[str, Any] = field(default_factory=dict)
    partner_id: Optional[str] = None

    def __post_init__(self) -> None:
        super().__init__(self.message)

    def __str__(self) -> str:
        parts = [f"[{self.code}] {self.message}"]
        if self.partner_id:
            parts.append(f"(partner: {self.partner_id})")
        return " ".join(parts)

    def to_dict(self) -> dict[str, Any]:
        """Serialize exception for logging/API responses."""
        result: dict[str, Any] = {
            "code": self.code,
            "message": self.message,
        }
        if self.details:
            result["details"] = self.details
        if self.partner_id:
            result["partner_id"] = self.partner_id
        return result


# =============================================================================
# Validation Errors
# =============================================================================

@dataclass
class FieldError:
    """A single offending field, reported back to the caller."""
    field_id: Optional[str]
    message: str
    section_id: Optional[str] = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "section_id": self.section_id,
            "field_id": self.field_id,
            "message": self.message,
        }


@dataclass
class ValidationFailedError(GatePilotError):
    """Base for errors that carry per-field detail."""
    code: str = "GP_VALIDATION_ERROR"
    field_errors: list[FieldError] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        result = super().to_dict()
        result["field_errors"] = [e.to_dict() for e in self.field_errors]
        return result


@dataclass
class SchemaValidationError(ValidationFailedError):
    """Questionnaire schema edit is malformed; the save was blocked."""
    code: str = "GP_SCHEMA_VALIDATION_ERROR"


@dataclass
class SubmissionValidationError(ValidationFailedError):
    """Submission payload does not satisfy its schema."""
    code: str = "GP_SUBMISSION_VALIDATION_ERROR"


@dataclass
class PartnerValidationError(ValidationFailedError):
    """Partner record payload is malformed."""
    code: str = "GP_PARTNER_VALIDATION_ERROR"


# =============================================================================
# Not-Found Errors
# =============================================================================

@dataclass
class NotFoundError(GatePilotError):
    """Base for missing records; callers render a "create new" flow."""
    code: str = "GP_NOT_FOUND"


@dataclass
class PartnerNotFoundError(NotFoundError):
    """Requested partner record does not exist."""
    code: str = "GP_PARTNER_NOT_FOUND"


@dataclass
class SubmissionNotFoundError(NotFoundError):
    """Requested submission does not exist."""
    code: str = "GP_SUBMISSION_NOT_FOUND"


@dataclass
class SchemaNotFoundError(NotFoundError):
    """Neither a pinned snapshot nor a current schema exists."""
    code: str = "GP_SCHEMA_NOT_FOUND"


@dataclass
class SchemaVersionNotFoundError(NotFoundError):
    """Pinned schema version is missing and fallback is disabled."""
    code: str = "GP_SCHEMA_VERSION_NOT_FOUND"


# =============================================================================
# Rule Evaluation Errors
# =============================================================================

@dataclass
class RuleEvaluationError(GatePilotError):
    """Rule structure could not be evaluated."""
    code: str = "GP_RULE_EVAL_ERROR"


# =============================================================================
# Access Errors
# =============================================================================

@dataclass
class AccessDeniedError(GatePilotError):
    """Caller role does not permit the operation on this partner."""
    code: str = "GP_ACCESS_DENIED"


# =============================================================================
# Pack Errors
# =============================================================================

@dataclass
class PackLoadError(GatePilotError):
    """Failed to read a questionnaire or gate pack from disk."""
    code: str = "GP_PACK_LOAD_ERROR"


@dataclass
class PackValidationError(ValidationFailedError):
    """Pack document failed schema validation."""
    code: str = "GP_PACK_VALIDATION_ERROR"


# =============================================================================
# Collaborator Errors
# =============================================================================

@dataclass
class StoreError(GatePilotError):
    """Persistent store operation failed after the collaborator's retries."""
    code: str = "GP_STORE_ERROR"
    operation: Optional[str] = None
    key: Optional[str] = None


@dataclass
class StaleWriteError(GatePilotError):
    """Record changed since it was read; the write was refused."""
    code: str = "GP_STALE_WRITE"
    expected_revision: Optional[int] = None
    actual_revision: Optional[int] = None
