"""
GatePilot Rule Evaluator

Turns raw questionnaire answers into per-section pass/fail/pending
verdicts.

Key features:
- Exhaustive matching over RuleOperator (no dynamic dispatch)
- Numeric operators coerce to numbers; non-numeric or missing values
  fail the comparison instead of raising
- Every failing comparison contributes its reason, not just the first
- Manual criteria stay pending until a reviewer verdict is attached
"""
from __future__ import annotations

import logging
import math
from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal, InvalidOperation
from typing import Any, Iterable, Mapping, Optional

from ..exceptions import RuleEvaluationError
from ..models import (
    PassFailCriteria,
    QuestionSection,
    RuleComparison,
    RuleOperator,
    SectionResult,
    SectionVerdict,
    SubmissionStatus,
    utc_now,
)

logger = logging.getLogger(__name__)


# =============================================================================
# Value Coercion
# =============================================================================

def coerce_number(value: Any) -> Optional[float]:
    """
    Coerce a submitted value to a number.

    Returns None for missing, boolean, empty or non-numeric values so
    that numeric comparisons against them fail.
    """
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, (int, float, Decimal)):
        number = float(value)
    elif isinstance(value, str):
        text = value.strip().replace(",", "")
        if not text:
            return None
        try:
            number = float(Decimal(text))
        except (InvalidOperation, ValueError):
            return None
    else:
        return None
    if math.isnan(number):
        return None
    return number


def _is_missing(value: Any) -> bool:
    return value is None or value == "" or value == []


def _values_equal(actual: Any, expected: Any) -> bool:
    if actual == expected:
        return True
    # Form posts deliver numbers as strings; compare numerically across str/number
    if isinstance(actual, str) != isinstance(expected, str):
        left, right = coerce_number(actual), coerce_number(expected)
        return left is not None and right is not None and left == right
    return False


# =============================================================================
# Comparison Operators
# =============================================================================

def compare_values(actual: Any, operator: RuleOperator, expected: Any) -> bool:
    """
    Compare a submitted value against a rule's value.

    Args:
        actual: The submitted field value (None when absent)
        operator: Comparison operator
        expected: The rule's comparison value

    Returns:
        True if the comparison holds

    Raises:
        RuleEvaluationError: If the operator is not a RuleOperator
    """
    if operator == RuleOperator.EQUALS:
        return _values_equal(actual, expected)

    elif operator == RuleOperator.NOT_EQUALS:
        return not _values_equal(actual, expected)

    elif operator in (RuleOperator.GREATER_THAN, RuleOperator.LESS_THAN):
        left, right = coerce_number(actual), coerce_number(expected)
        if left is None or right is None:
            return False
        if operator == RuleOperator.GREATER_THAN:
            return left > right
        return left < right

    elif operator == RuleOperator.CONTAINS:
        if _is_missing(actual):
            return False
        if isinstance(actual, (list, tuple, set)):
            return expected in actual
        return str(expected) in str(actual)

    elif operator == RuleOperator.NOT_CONTAINS:
        if _is_missing(actual):
            return True
        if isinstance(actual, (list, tuple, set)):
            return expected not in actual
        return str(expected) not in str(actual)

    elif operator == RuleOperator.IN:
        if not isinstance(expected, (list, tuple, set, frozenset)):
            return False
        if isinstance(actual, (list, tuple)):
            # Multi-select answers: every chosen option must be allowed
            return len(actual) > 0 and all(a in expected for a in actual)
        return any(_values_equal(actual, e) for e in expected)

    raise RuleEvaluationError(
        message=f"Unknown rule operator: {operator!r}",
        details={"operator": str(operator)},
    )


# =============================================================================
# Rule Outcome
# =============================================================================

@dataclass
class RuleOutcome:
    """Result of one atomic comparison, kept for explanation."""
    rule: RuleComparison
    passed: bool
    actual: Any
    reason: Optional[str] = None

    @property
    def explanation(self) -> str:
        status = "PASSED" if self.passed else f"FAILED (actual: {self.actual!r})"
        return f"{self.rule.describe()}: {status}"


def default_failure_message(section_title: str) -> str:
    return f"{section_title}: Required criteria not met"


# =============================================================================
# Submission Evaluation
# =============================================================================

@dataclass
class SubmissionEvaluation:
    """Verdict per section plus the overall verdict."""
    section_verdicts: dict[str, SectionVerdict] = field(default_factory=dict)
    overall_status: SubmissionStatus = SubmissionStatus.PENDING

    @property
    def failure_reasons(self) -> list[str]:
        reasons: list[str] = []
        for verdict in self.section_verdicts.values():
            reasons.extend(verdict.failure_reasons)
        return reasons

    @property
    def passed_sections(self) -> int:
        return sum(1 for v in self.section_verdicts.values() if v.passed)


def overall_status(verdicts: Iterable[SectionVerdict]) -> SubmissionStatus:
    """
    Aggregate section verdicts into a submission verdict.

    - any section fails           -> FAIL
    - every section passes        -> PASS
    - every section pending/none  -> PENDING
    - passes mixed with pending   -> PARTIAL
    """
    results = [v.result for v in verdicts]
    if not results:
        return SubmissionStatus.PENDING
    if SectionResult.FAIL in results:
        return SubmissionStatus.FAIL
    if all(r == SectionResult.PASS for r in results):
        return SubmissionStatus.PASS
    if all(r == SectionResult.PENDING for r in results):
        return SubmissionStatus.PENDING
    return SubmissionStatus.PARTIAL


# =============================================================================
# Rule Evaluator
# =============================================================================

@dataclass
class RuleEvaluator:
    """
    Evaluates section rule sets against submitted field values.

    Usage:
        evaluator = RuleEvaluator()
        verdict = evaluator.evaluate_criteria(criteria, {"contract-signed": "Yes"})

        if verdict.result == SectionResult.FAIL:
            print(verdict.failure_reasons)
    """

    debug: bool = False

    def evaluate_rule(
        self,
        rule: RuleComparison,
        fields: Mapping[str, Any],
        section_title: str = "Section",
    ) -> RuleOutcome:
        actual = fields.get(rule.field_id)
        passed = compare_values(actual, rule.operator, rule.value)
        outcome = RuleOutcome(
            rule=rule,
            passed=passed,
            actual=actual,
            reason=None if passed else (rule.failure_message or default_failure_message(section_title)),
        )
        if self.debug:
            logger.debug("Rule %s", outcome.explanation)
        return outcome

    def evaluate_criteria(
        self,
        criteria: Optional[PassFailCriteria],
        fields: Mapping[str, Any],
        section_title: str = "Section",
        reviewer_verdict: Optional[SectionVerdict] = None,
        now: Optional[datetime] = None,
    ) -> SectionVerdict:
        """
        Evaluate one section's declared rule set.

        Args:
            criteria: The section's criteria (None -> pending)
            fields: field_id -> submitted value
            section_title: Used in the default failure message
            reviewer_verdict: Out-of-band verdict for manual criteria
            now: Evaluation timestamp (defaults to now, UTC)

        Returns:
            SectionVerdict with every failing reason collected
        """
        if criteria is None:
            return SectionVerdict(result=SectionResult.PENDING)

        if criteria.is_manual:
            if reviewer_verdict is not None and not reviewer_verdict.pending:
                return reviewer_verdict
            return SectionVerdict(result=SectionResult.PENDING)

        if not criteria.rules:
            return SectionVerdict(result=SectionResult.PENDING)

        outcomes = [self.evaluate_rule(r, fields, section_title) for r in criteria.rules]
        reasons = [o.reason for o in outcomes if not o.passed and o.reason]

        return SectionVerdict(
            result=SectionResult.FAIL if reasons else SectionResult.PASS,
            failure_reasons=reasons,
            evaluated_at=now or utc_now(),
        )

    def evaluate_section(
        self,
        section: QuestionSection,
        fields: Mapping[str, Any],
        reviewer_verdict: Optional[SectionVerdict] = None,
        now: Optional[datetime] = None,
    ) -> SectionVerdict:
        return self.evaluate_criteria(
            section.criteria,
            fields,
            section_title=section.title,
            reviewer_verdict=reviewer_verdict,
            now=now,
        )

    def evaluate_submission(
        self,
        sections: Iterable[QuestionSection],
        answers: Mapping[str, Mapping[str, Any]],
        reviewer_verdicts: Optional[Mapping[str, SectionVerdict]] = None,
        now: Optional[datetime] = None,
    ) -> SubmissionEvaluation:
        """
        Score every section of a schema, in schema order.

        Sections with no submitted answers are evaluated against an empty
        answer set, so automatic rules on them fail.
        """
        reviewer_verdicts = reviewer_verdicts or {}
        now = now or utc_now()
        evaluation = SubmissionEvaluation()
        for section in sections:
            evaluation.section_verdicts[section.id] = self.evaluate_section(
                section,
                answers.get(section.id, {}),
                reviewer_verdict=reviewer_verdicts.get(section.id),
                now=now,
            )
        evaluation.overall_status = overall_status(evaluation.section_verdicts.values())
        return evaluation


# =============================================================================
# Convenience Functions
# =============================================================================

def evaluate_criteria(
    criteria: Optional[PassFailCriteria],
    fields: Mapping[str, Any],
    section_title: str = "Section",
) -> SectionVerdict:
    """Evaluate a rule set with a temporary evaluator."""
    return RuleEvaluator().evaluate_criteria(criteria, fields, section_title)
