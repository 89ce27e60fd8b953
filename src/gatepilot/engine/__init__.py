"""
GatePilot Engine

Core progression and validation services.

Services:
- RuleEvaluator: Score questionnaire sections against their rules
- FieldValidator: Validate submission payloads against a pinned schema
- evaluate_policy: Apply gate-specific qualification policies
- GateStateMachine: Gate status, sequential progression, transitions

Usage:
    from gatepilot.engine import (
        FieldValidator,
        GateStateMachine,
        RuleEvaluator,
    )
"""
from __future__ import annotations

from .rule_evaluator import (
    RuleEvaluator,
    RuleOutcome,
    SubmissionEvaluation,
    coerce_number,
    compare_values,
    default_failure_message,
    evaluate_criteria,
    overall_status,
)
from .field_validator import (
    EMAIL_PATTERN,
    FieldValidator,
    validate_schema,
)
from .qualification import (
    QualificationResult,
    evaluate_policy,
    threshold_value,
)
from .gate_machine import (
    GateCheck,
    GateStateMachine,
    GateSummary,
    GateTransition,
    initialize_gate_progress,
)

__all__ = [
    # Rule evaluation
    "RuleEvaluator",
    "RuleOutcome",
    "SubmissionEvaluation",
    "coerce_number",
    "compare_values",
    "default_failure_message",
    "evaluate_criteria",
    "overall_status",
    # Field validation
    "EMAIL_PATTERN",
    "FieldValidator",
    "validate_schema",
    # Qualification
    "QualificationResult",
    "evaluate_policy",
    "threshold_value",
    # Gate state machine
    "GateCheck",
    "GateStateMachine",
    "GateSummary",
    "GateTransition",
    "initialize_gate_progress",
]
