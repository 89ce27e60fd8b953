"""
GatePilot Pack Schemas

Pydantic models for validating questionnaire and gate configuration
documents (YAML or JSON).

These schemas define the structure of the packs loaded at runtime. They
map to the domain models in gatepilot.models.

Schema versioning:
- schema_version field tracks breaking changes
- Loaders should check version compatibility
"""
from __future__ import annotations

from typing import Any, Literal, Optional

from pydantic import BaseModel, Field, field_validator, model_validator


# =============================================================================
# Schema Version
# =============================================================================

SCHEMA_VERSION = "1.0.0"


# =============================================================================
# Enums as Literals (for YAML validation)
# =============================================================================

GateIdValue = Literal[
    "pre-contract", "gate-0", "gate-1", "gate-2", "gate-3", "post-launch"
]

FieldTypeValue = Literal[
    "text", "email", "date", "number", "select", "checkbox", "radio", "textarea"
]

FieldValidationTypeValue = Literal[
    "regex", "min", "max", "minLength", "maxLength", "email", "url"
]

RuleOperatorValue = Literal[
    "equals", "notEquals", "greaterThan", "lessThan", "contains", "notContains", "in"
]

CriteriaTypeValue = Literal["automatic", "manual"]

CHOICE_TYPES = {"select", "checkbox", "radio"}


# =============================================================================
# Questionnaire Schemas
# =============================================================================

class FieldValidationSchema(BaseModel):
    """Schema for an optional per-field input rule."""
    type: FieldValidationTypeValue = Field(..., description="Validation kind")
    value: Any = Field(None, description="Pattern or bound, depending on kind")
    message: str = Field("Invalid value", description="Message shown on failure")

    model_config = {"extra": "forbid"}


class QuestionFieldSchema(BaseModel):
    """Schema for a single questionnaire field."""
    id: str = Field(..., min_length=1, description="Field ID, unique across the questionnaire")
    type: FieldTypeValue = Field("text", description="Input type")
    label: str = Field(..., description="Display label")
    required: bool = Field(False, description="Whether an answer is mandatory")
    options: list[str] = Field(default_factory=list, description="Choices for select/radio/checkbox")
    order: Optional[int] = Field(None, description="Sort key (defaults to position)")
    help_text: Optional[str] = None
    placeholder: Optional[str] = None
    default_value: Any = None
    validation: Optional[FieldValidationSchema] = None

    model_config = {"extra": "forbid"}

    @field_validator("options", mode="before")
    @classmethod
    def stringify_options(cls, v: Any) -> Any:
        """YAML reads bare Yes/No as booleans; options are always text."""
        if isinstance(v, list):
            return [("Yes" if o else "No") if isinstance(o, bool) else str(o) for o in v]
        return v

    @model_validator(mode="after")
    def validate_choice_options(self) -> "QuestionFieldSchema":
        if self.type in CHOICE_TYPES and not self.options:
            raise ValueError(f"{self.type} field '{self.id}' must have at least one option")
        return self


class RuleSchema(BaseModel):
    """
    Schema for one atomic comparison.

    The legacy keys "field" and "fieldId" are accepted for field_id.
    """
    field_id: str = Field(..., min_length=1, description="Field the rule reads")
    operator: RuleOperatorValue = Field(..., description="Comparison operator")
    value: Any = Field(None, description="Comparison value (a list for 'in')")
    failure_message: Optional[str] = Field(None, description="Reason reported when the rule fails")

    model_config = {"extra": "forbid"}

    @model_validator(mode="before")
    @classmethod
    def accept_legacy_keys(cls, data: Any) -> Any:
        if isinstance(data, dict) and "field_id" not in data:
            data = dict(data)
            for legacy in ("field", "fieldId"):
                if legacy in data:
                    data["field_id"] = data.pop(legacy)
                    break
        if isinstance(data, dict) and "failureMessage" in data:
            data = dict(data)
            data.setdefault("failure_message", data.pop("failureMessage"))
        return data

    @model_validator(mode="after")
    def validate_membership_value(self) -> "RuleSchema":
        if self.operator == "in" and not isinstance(self.value, list):
            raise ValueError(f"Rule on '{self.field_id}' uses 'in' but value is not a list")
        return self


class CriteriaSchema(BaseModel):
    """Schema for a section's pass/fail criteria."""
    type: CriteriaTypeValue = Field("automatic", description="automatic or manual")
    rules: list[RuleSchema] = Field(default_factory=list)

    model_config = {"extra": "forbid"}

    @model_validator(mode="after")
    def validate_rules(self) -> "CriteriaSchema":
        if self.type == "manual" and self.rules:
            raise ValueError("Manual criteria cannot declare rules")
        return self


class QuestionSectionSchema(BaseModel):
    """Schema for a questionnaire section."""
    id: str = Field(..., min_length=1)
    title: str = Field(..., min_length=1)
    description: Optional[str] = None
    fields: list[QuestionFieldSchema] = Field(default_factory=list)
    criteria: Optional[CriteriaSchema] = None

    model_config = {"extra": "forbid"}


class QuestionnairePackSchema(BaseModel):
    """
    Top-level schema for a questionnaire document.

    One document defines one questionnaire template.
    """
    schema_version: str = Field(SCHEMA_VERSION, description="Schema version for compatibility")
    id: str = Field(..., min_length=1, description="Template id (e.g., 'gate-0-kickoff')")
    name: str = Field(..., description="Human-readable name")
    gate: Optional[GateIdValue] = Field(None, description="Gate the questionnaire belongs to")
    description: Optional[str] = None
    sections: list[QuestionSectionSchema] = Field(..., min_length=1)

    model_config = {"extra": "forbid"}


# =============================================================================
# Gate Configuration Schemas
# =============================================================================

class GateDefinitionSchema(BaseModel):
    """Schema for one gate in the sequence."""
    id: GateIdValue
    name: str = Field(..., min_length=1)
    description: str = ""
    questionnaires: list[str] = Field(default_factory=list)
    estimated_weeks: str = ""
    criteria: list[str] = Field(default_factory=list)

    model_config = {"extra": "forbid"}


class QualificationPolicySchema(BaseModel):
    """Schema for a gate's qualification policy."""
    threshold: Optional[float] = Field(None, ge=0, description="Inclusive qualifying value")
    threshold_attribute: Optional[str] = Field("ccv", description="Partner attribute read")
    threshold_answer_field: Optional[str] = Field(None, description="Answer field read")
    min_passing_sections: Optional[int] = Field(None, ge=1)
    description: str = ""

    model_config = {"extra": "forbid"}

    @model_validator(mode="after")
    def validate_has_rule(self) -> "QualificationPolicySchema":
        if self.threshold is None and self.min_passing_sections is None:
            raise ValueError("Policy needs a threshold or min_passing_sections")
        return self


class GateConfigPackSchema(BaseModel):
    """Top-level schema for the gate configuration document."""
    schema_version: str = Field(SCHEMA_VERSION, description="Schema version for compatibility")
    gates: list[GateDefinitionSchema] = Field(..., min_length=1)
    policies: dict[GateIdValue, QualificationPolicySchema] = Field(default_factory=dict)

    model_config = {"extra": "forbid"}

    @model_validator(mode="after")
    def validate_gate_references(self) -> "GateConfigPackSchema":
        ids = [g.id for g in self.gates]
        if len(ids) != len(set(ids)):
            raise ValueError("Duplicate gate ids")
        unknown = set(self.policies) - set(ids)
        if unknown:
            raise ValueError(f"Policies reference undeclared gates: {sorted(unknown)}")
        return self


# =============================================================================
# Validation Helpers
# =============================================================================

def validate_questionnaire_pack(data: dict[str, Any]) -> QuestionnairePackSchema:
    """
    Validate a questionnaire dictionary against the schema.

    Raises:
        pydantic.ValidationError: If validation fails
    """
    return QuestionnairePackSchema.model_validate(data)


def validate_gate_config_pack(data: dict[str, Any]) -> GateConfigPackSchema:
    """
    Validate a gate configuration dictionary against the schema.

    Raises:
        pydantic.ValidationError: If validation fails
    """
    return GateConfigPackSchema.model_validate(data)


def check_schema_version(data: dict[str, Any]) -> bool:
    """Major version of the document must match SCHEMA_VERSION."""
    pack_version = str(data.get("schema_version", SCHEMA_VERSION))
    return pack_version.split(".")[0] == SCHEMA_VERSION.split(".")[0]
