"""
GatePilot Section Rules

The pass/fail rule language attached to questionnaire sections, and the
verdict a section receives once evaluated.

Key components:
- RuleComparison: one atomic comparison (field, operator, value)
- PassFailCriteria: automatic (list of comparisons) or manual review
- SectionVerdict: result + every failure reason collected

The rule language is a closed set: RuleOperator enumerates every
operator and the evaluator matches on it exhaustively.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Optional

from .enums import CriteriaType, RuleOperator, SectionResult
from .timestamps import format_datetime, parse_datetime


# =============================================================================
# Rule Comparison
# =============================================================================

@dataclass(frozen=True)
class RuleComparison:
    """
    An atomic comparison against one submitted field value.

    Attributes:
        field_id: Field identifier within the section
        operator: Comparison operator
        value: Value to compare against (a list for IN)
        failure_message: Validator-authored reason used when this fails
    """
    field_id: str
    operator: RuleOperator
    value: Any = None
    failure_message: Optional[str] = None

    def __post_init__(self) -> None:
        if self.operator == RuleOperator.IN and not isinstance(self.value, (list, tuple)):
            raise ValueError(
                f"Rule on '{self.field_id}' uses 'in' but value is not a list"
            )

    def describe(self) -> str:
        """Short human-readable form, e.g. "contract-signed equals Yes"."""
        return f"{self.field_id} {self.operator.value} {self.value!r}"

    def to_dict(self) -> dict[str, Any]:
        result: dict[str, Any] = {
            "field_id": self.field_id,
            "operator": self.operator.value,
            "value": list(self.value) if isinstance(self.value, tuple) else self.value,
        }
        if self.failure_message:
            result["failure_message"] = self.failure_message
        return result

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> RuleComparison:
        # "field" is the legacy key for field_id
        value = data.get("value")
        return cls(
            field_id=data.get("field_id") or data.get("fieldId") or data.get("field") or "",
            operator=RuleOperator(data["operator"]),
            value=tuple(value) if isinstance(value, list) else value,
            failure_message=data.get("failure_message") or data.get("failureMessage"),
        )


# =============================================================================
# Pass/Fail Criteria
# =============================================================================

@dataclass(frozen=True)
class PassFailCriteria:
    """
    A section's declared rule set.

    AUTOMATIC criteria pass only if every comparison passes.
    MANUAL criteria stay pending until a reviewer attaches a verdict.
    """
    type: CriteriaType
    rules: tuple[RuleComparison, ...] = ()

    @property
    def is_manual(self) -> bool:
        return self.type == CriteriaType.MANUAL

    @property
    def referenced_fields(self) -> set[str]:
        return {r.field_id for r in self.rules}

    def to_dict(self) -> dict[str, Any]:
        result: dict[str, Any] = {"type": self.type.value}
        if self.rules:
            result["rules"] = [r.to_dict() for r in self.rules]
        return result

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> PassFailCriteria:
        return cls(
            type=CriteriaType(data.get("type", CriteriaType.AUTOMATIC.value)),
            rules=tuple(RuleComparison.from_dict(r) for r in data.get("rules") or []),
        )


def automatic(*rules: RuleComparison) -> PassFailCriteria:
    """Build automatic criteria from comparisons."""
    return PassFailCriteria(type=CriteriaType.AUTOMATIC, rules=tuple(rules))


def manual() -> PassFailCriteria:
    """Build manual-review criteria."""
    return PassFailCriteria(type=CriteriaType.MANUAL)


def rule(
    field_id: str,
    operator: RuleOperator | str,
    value: Any = None,
    failure_message: Optional[str] = None,
) -> RuleComparison:
    """Build a RuleComparison, accepting the operator's string form."""
    if isinstance(value, list):
        value = tuple(value)
    return RuleComparison(
        field_id=field_id,
        operator=RuleOperator(operator),
        value=value,
        failure_message=failure_message,
    )


# =============================================================================
# Section Verdict
# =============================================================================

@dataclass
class SectionVerdict:
    """
    Outcome of evaluating one section.

    failure_reasons holds every failing comparison's reason, in rule order.
    """
    result: SectionResult
    failure_reasons: list[str] = field(default_factory=list)
    evaluated_at: Optional[datetime] = None
    evaluated_by: Optional[str] = None
    notes: Optional[str] = None

    @property
    def passed(self) -> bool:
        return self.result == SectionResult.PASS

    @property
    def failed(self) -> bool:
        return self.result == SectionResult.FAIL

    @property
    def pending(self) -> bool:
        return self.result == SectionResult.PENDING

    def to_dict(self) -> dict[str, Any]:
        return {
            "result": self.result.value,
            "failure_reasons": list(self.failure_reasons),
            "evaluated_at": format_datetime(self.evaluated_at),
            "evaluated_by": self.evaluated_by,
            "notes": self.notes,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> SectionVerdict:
        return cls(
            result=SectionResult(data.get("result", SectionResult.PENDING.value)),
            failure_reasons=list(data.get("failure_reasons") or []),
            evaluated_at=parse_datetime(data.get("evaluated_at")),
            evaluated_by=data.get("evaluated_by"),
            notes=data.get("notes"),
        )
