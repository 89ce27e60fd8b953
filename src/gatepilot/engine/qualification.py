"""
GatePilot Qualification Policies

Gate-specific overrides layered on top of per-section verdicts:

1. Threshold - a partner whose numeric attribute (or matching numeric
   answer) meets or exceeds the threshold qualifies outright
2. Minimum count - the gate qualifies when at least N of its sections
   pass, even if the rest do not

Policies are keyed by gate id in the injected GateConfig and are only
consulted by the gate state machine.
"""
from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Iterable, Optional

from ..models import PartnerRecord, QualificationPolicy, Submission
from .rule_evaluator import coerce_number


# =============================================================================
# Qualification Result
# =============================================================================

@dataclass
class QualificationResult:
    """
    Outcome of applying a gate's qualification policy.

    could_still_qualify is True when the minimum count is not reached yet
    but pending (manually reviewed) sections could still close the gap.
    """
    qualifies: bool
    reason: str
    auto_qualified: bool = False
    threshold_value: Optional[float] = None
    passed_sections: int = 0
    pending_sections: int = 0
    total_sections: int = 0
    could_still_qualify: bool = False

    def to_dict(self) -> dict[str, Any]:
        return {
            "qualifies": self.qualifies,
            "reason": self.reason,
            "auto_qualified": self.auto_qualified,
            "threshold_value": self.threshold_value,
            "passed_sections": self.passed_sections,
            "pending_sections": self.pending_sections,
            "total_sections": self.total_sections,
            "could_still_qualify": self.could_still_qualify,
        }


# =============================================================================
# Threshold Source
# =============================================================================

def threshold_value(
    policy: QualificationPolicy,
    submissions: Iterable[Submission],
    partner: Optional[PartnerRecord] = None,
) -> Optional[float]:
    """
    Highest numeric value available for the policy's threshold.

    Reads the partner attribute and the answer field from every given
    submission; non-numeric values are ignored.
    """
    candidates: list[float] = []
    if partner is not None and policy.threshold_attribute:
        number = coerce_number(getattr(partner, policy.threshold_attribute, None))
        if number is not None:
            candidates.append(number)
    if policy.threshold_answer_field:
        for submission in submissions:
            number = coerce_number(submission.all_answers().get(policy.threshold_answer_field))
            if number is not None:
                candidates.append(number)
    return max(candidates) if candidates else None


# =============================================================================
# Policy Evaluation
# =============================================================================

def evaluate_policy(
    policy: QualificationPolicy,
    submissions: Iterable[Submission],
    partner: Optional[PartnerRecord] = None,
) -> QualificationResult:
    """
    Apply a qualification policy to the latest submissions of a gate.

    Args:
        policy: The gate's qualification policy
        submissions: Latest submission per required questionnaire
        partner: Partner record, read for the threshold attribute

    Returns:
        QualificationResult with a human-readable reason
    """
    submissions = list(submissions)

    verdicts = [v for s in submissions for v in s.section_verdicts.values()]
    passed = sum(1 for v in verdicts if v.passed)
    pending = sum(1 for v in verdicts if v.pending)
    total = len(verdicts)

    if policy.has_threshold:
        value = threshold_value(policy, submissions, partner)
        if value is not None and value >= float(policy.threshold):
            label = policy.threshold_attribute or policy.threshold_answer_field or "value"
            return QualificationResult(
                qualifies=True,
                reason=(
                    f"Automatically qualified: {label} of {value:,.0f} meets "
                    f"the {float(policy.threshold):,.0f} threshold"
                ),
                auto_qualified=True,
                threshold_value=value,
                passed_sections=passed,
                pending_sections=pending,
                total_sections=total,
            )

    if policy.has_minimum_count:
        minimum = int(policy.min_passing_sections)
        if passed >= minimum:
            return QualificationResult(
                qualifies=True,
                reason=f"Partner meets {passed} of {total} criteria (minimum {minimum} required)",
                passed_sections=passed,
                pending_sections=pending,
                total_sections=total,
            )
        return QualificationResult(
            qualifies=False,
            reason=(
                f"Partner only meets {passed} of {total} criteria. "
                f"Minimum {minimum} required for qualification"
            ),
            passed_sections=passed,
            pending_sections=pending,
            total_sections=total,
            could_still_qualify=passed + pending >= minimum,
        )

    return QualificationResult(
        qualifies=False,
        reason="Qualification threshold not met",
        passed_sections=passed,
        pending_sections=pending,
        total_sections=total,
    )
