"""
GatePilot Gate Configuration

Immutable reference data describing the gate sequence and the
gate-specific qualification policies.

The configuration is injected into the state machine explicitly; nothing
reads it from module-level state, so tests can run any number of
configurations side by side.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Mapping, Optional

from .enums import GateId


# =============================================================================
# Gate Definition
# =============================================================================

@dataclass(frozen=True)
class GateDefinition:
    """
    One stage in the partner approval sequence.

    Attributes:
        id: Gate identifier
        name: Human-readable name ("Gate 0: Onboarding Kickoff")
        questionnaires: Questionnaire ids required to pass the gate
        estimated_weeks: Estimated duration, display only
        criteria: Human-readable gate criteria, display only
    """
    id: GateId
    name: str
    questionnaires: tuple[str, ...] = ()
    estimated_weeks: str = ""
    description: str = ""
    criteria: tuple[str, ...] = ()

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id.value,
            "name": self.name,
            "description": self.description,
            "questionnaires": list(self.questionnaires),
            "estimated_weeks": self.estimated_weeks,
            "criteria": list(self.criteria),
        }


# =============================================================================
# Qualification Policy
# =============================================================================

@dataclass(frozen=True)
class QualificationPolicy:
    """
    Gate-specific override on top of per-section verdicts.

    Two independent rules, either may be unset:
    - threshold: if the partner's numeric attribute (or the matching
      numeric answer) meets or exceeds it, the gate qualifies outright
    - min_passing_sections: the gate qualifies when at least N of its
      sections pass, even if not all do

    Attributes:
        threshold: Absolute qualifying value (inclusive)
        threshold_attribute: PartnerRecord attribute read for the threshold
        threshold_answer_field: Submission answer field read for the threshold
        min_passing_sections: N in "N of M sections must pass"
    """
    threshold: Optional[float] = None
    threshold_attribute: Optional[str] = "ccv"
    threshold_answer_field: Optional[str] = None
    min_passing_sections: Optional[int] = None
    description: str = ""

    @property
    def has_threshold(self) -> bool:
        return self.threshold is not None

    @property
    def has_minimum_count(self) -> bool:
        return self.min_passing_sections is not None

    def to_dict(self) -> dict[str, Any]:
        return {
            "threshold": self.threshold,
            "threshold_attribute": self.threshold_attribute,
            "threshold_answer_field": self.threshold_answer_field,
            "min_passing_sections": self.min_passing_sections,
            "description": self.description,
        }


# =============================================================================
# Gate Configuration
# =============================================================================

@dataclass(frozen=True)
class GateConfig:
    """
    Ordered gate definitions plus qualification policies keyed by gate id.

    Usage:
        config = default_gate_config()
        config.next_gate(GateId.PRE_CONTRACT)      # GateId.GATE_0
        config.gates_before(GateId.GATE_1)         # [PRE_CONTRACT, GATE_0]
    """
    gates: tuple[GateDefinition, ...]
    policies: Mapping[GateId, QualificationPolicy] = field(default_factory=dict)

    def __post_init__(self) -> None:
        ids = [g.id for g in self.gates]
        if len(ids) != len(set(ids)):
            raise ValueError("Gate configuration contains duplicate gate ids")
        unknown = set(self.policies) - set(ids)
        if unknown:
            raise ValueError(
                f"Qualification policies reference unknown gates: {sorted(g.value for g in unknown)}"
            )

    @property
    def order(self) -> list[GateId]:
        return [g.id for g in self.gates]

    def definition(self, gate_id: GateId) -> Optional[GateDefinition]:
        for g in self.gates:
            if g.id == gate_id:
                return g
        return None

    def name_of(self, gate_id: GateId) -> str:
        definition = self.definition(gate_id)
        return definition.name if definition else gate_id.value

    def index_of(self, gate_id: GateId) -> int:
        """Position in the order, or -1 for a gate not in this configuration."""
        try:
            return self.order.index(gate_id)
        except ValueError:
            return -1

    def next_gate(self, gate_id: GateId) -> Optional[GateId]:
        index = self.index_of(gate_id)
        if index < 0 or index >= len(self.gates) - 1:
            return None
        return self.gates[index + 1].id

    def previous_gate(self, gate_id: GateId) -> Optional[GateId]:
        index = self.index_of(gate_id)
        if index <= 0:
            return None
        return self.gates[index - 1].id

    def gates_before(self, gate_id: GateId) -> list[GateId]:
        """Every gate strictly earlier in the order."""
        index = self.index_of(gate_id)
        if index <= 0:
            return []
        return self.order[:index]

    def required_questionnaires(self, gate_id: GateId) -> tuple[str, ...]:
        definition = self.definition(gate_id)
        return definition.questionnaires if definition else ()

    def gate_for_questionnaire(self, questionnaire_id: str) -> Optional[GateId]:
        for g in self.gates:
            if questionnaire_id in g.questionnaires:
                return g.id
        return None

    def policy_for(self, gate_id: GateId) -> Optional[QualificationPolicy]:
        return self.policies.get(gate_id)

    def to_dict(self) -> dict[str, Any]:
        return {
            "gates": [g.to_dict() for g in self.gates],
            "policies": {g.value: p.to_dict() for g, p in self.policies.items()},
        }


# =============================================================================
# Default Configuration
# =============================================================================

TIER_0_CCV_THRESHOLD = 50_000_000
GATE_0_MIN_PASSING_SECTIONS = 4


def default_gate_config() -> GateConfig:
    """
    The shipped six-gate configuration.

    Gate 0 carries the white-glove onboarding policy: partners with a
    contractually committed value of $50M or more qualify automatically,
    everyone else needs at least 4 of the 6 kickoff sections to pass.
    """
    return GateConfig(
        gates=(
            GateDefinition(
                id=GateId.PRE_CONTRACT,
                name="Pre-Contract: PDM Engagement",
                questionnaires=("pre-contract",),
                estimated_weeks="2-4",
                criteria=("PDM engagement approved",),
            ),
            GateDefinition(
                id=GateId.GATE_0,
                name="Gate 0: Onboarding Kickoff",
                questionnaires=("gate-0-kickoff",),
                estimated_weeks="1-2",
                criteria=(
                    "Contract Execution Complete",
                    "Partner Team Identified",
                    "Launch Timing Within 12 Months",
                    "Financial Bar Met",
                    "Strategic Value",
                    "Operational Readiness",
                ),
            ),
            GateDefinition(
                id=GateId.GATE_1,
                name="Gate 1: Ready to Sell",
                questionnaires=("gate-1-ready-to-sell",),
                estimated_weeks="4-6",
            ),
            GateDefinition(
                id=GateId.GATE_2,
                name="Gate 2: Ready to Order",
                questionnaires=("gate-2-ready-to-order",),
                estimated_weeks="4-6",
            ),
            GateDefinition(
                id=GateId.GATE_3,
                name="Gate 3: Ready to Deliver",
                questionnaires=("gate-3-ready-to-deliver",),
                estimated_weeks="4-8",
            ),
            GateDefinition(
                id=GateId.POST_LAUNCH,
                name="Post-Launch",
                estimated_weeks="ongoing",
            ),
        ),
        policies={
            GateId.GATE_0: QualificationPolicy(
                threshold=TIER_0_CCV_THRESHOLD,
                threshold_attribute="ccv",
                threshold_answer_field="ccv-amount",
                min_passing_sections=GATE_0_MIN_PASSING_SECTIONS,
                description="Tier 0 (CCV >= $50M) qualifies automatically; otherwise 4 of 6 criteria",
            ),
        },
    )
