"""
GatePilot Questionnaire Schema Models

Versioned, ordered definitions of the sections and fields a submission
answers.

Key components:
- QuestionField: one typed input (text, number, select, ...)
- QuestionSection: ordered fields plus pass/fail criteria
- QuestionnaireSchema: the current, editable schema for a template
- SchemaSnapshot: an immutable archived version of a schema

A submission pins the version number of the schema that was current at
creation; re-rendering it must go through that snapshot, never through
the current schema.
"""
from __future__ import annotations

from dataclasses import dataclass, field, replace
from datetime import datetime
from typing import Any, Iterator, Optional

from ..canon import compute_schema_hash
from .enums import FieldType, FieldValidationType, GateId
from .rules import PassFailCriteria
from .timestamps import format_datetime, parse_datetime, utc_now


# =============================================================================
# Field Validation
# =============================================================================

@dataclass(frozen=True)
class FieldValidation:
    """Optional input rule on a field, with the message shown on failure."""
    type: FieldValidationType
    message: str
    value: Any = None

    def to_dict(self) -> dict[str, Any]:
        return {"type": self.type.value, "value": self.value, "message": self.message}

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> FieldValidation:
        return cls(
            type=FieldValidationType(data["type"]),
            message=data.get("message") or "Invalid value",
            value=data.get("value"),
        )


# =============================================================================
# Question Field
# =============================================================================

@dataclass(frozen=True)
class QuestionField:
    """
    A single input in a questionnaire section.

    Attributes:
        id: Unique within the schema version (across all sections)
        type: Input type
        label: Display label (must be non-empty)
        required: Whether an answer is mandatory
        options: Allowed values for select/radio/checkbox
        order: Sort key within the section
        removed: Soft-delete flag; kept so older answers still render
    """
    id: str
    type: FieldType
    label: str
    required: bool = False
    options: tuple[str, ...] = ()
    order: int = 0
    help_text: Optional[str] = None
    placeholder: Optional[str] = None
    default_value: Any = None
    validation: Optional[FieldValidation] = None
    removed: bool = False

    def to_dict(self) -> dict[str, Any]:
        result: dict[str, Any] = {
            "id": self.id,
            "type": self.type.value,
            "label": self.label,
            "required": self.required,
            "order": self.order,
        }
        if self.options:
            result["options"] = list(self.options)
        if self.help_text:
            result["help_text"] = self.help_text
        if self.placeholder:
            result["placeholder"] = self.placeholder
        if self.default_value is not None:
            result["default_value"] = self.default_value
        if self.validation:
            result["validation"] = self.validation.to_dict()
        if self.removed:
            result["removed"] = True
        return result

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> QuestionField:
        validation = data.get("validation")
        return cls(
            id=data["id"],
            type=FieldType(data.get("type", FieldType.TEXT.value)),
            label=data.get("label", ""),
            required=bool(data.get("required", False)),
            options=tuple(data.get("options") or ()),
            order=int(data.get("order", 0)),
            help_text=data.get("help_text"),
            placeholder=data.get("placeholder"),
            default_value=data.get("default_value"),
            validation=FieldValidation.from_dict(validation) if validation else None,
            removed=bool(data.get("removed", False)),
        )


# =============================================================================
# Question Section
# =============================================================================

@dataclass(frozen=True)
class QuestionSection:
    """An ordered group of fields sharing one pass/fail verdict."""
    id: str
    title: str
    fields: tuple[QuestionField, ...] = ()
    criteria: Optional[PassFailCriteria] = None
    description: Optional[str] = None

    @property
    def active_fields(self) -> list[QuestionField]:
        """Non-removed fields in display order."""
        return sorted((f for f in self.fields if not f.removed), key=lambda f: f.order)

    def get_field(self, field_id: str) -> Optional[QuestionField]:
        for f in self.fields:
            if f.id == field_id:
                return f
        return None

    def to_dict(self) -> dict[str, Any]:
        result: dict[str, Any] = {
            "id": self.id,
            "title": self.title,
            "fields": [f.to_dict() for f in self.fields],
        }
        if self.criteria is not None:
            result["criteria"] = self.criteria.to_dict()
        if self.description:
            result["description"] = self.description
        return result

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> QuestionSection:
        criteria = data.get("criteria") or data.get("pass_fail_criteria")
        return cls(
            id=data["id"],
            title=data.get("title", data["id"]),
            fields=tuple(QuestionField.from_dict(f) for f in data.get("fields") or []),
            criteria=PassFailCriteria.from_dict(criteria) if criteria else None,
            description=data.get("description"),
        )


def _iter_fields(sections: tuple[QuestionSection, ...] | list[QuestionSection]) -> Iterator[tuple[QuestionSection, QuestionField]]:
    for section in sections:
        for f in section.fields:
            yield section, f


# =============================================================================
# Questionnaire Schema (current, editable)
# =============================================================================

@dataclass
class QuestionnaireSchema:
    """
    The current editable schema for a questionnaire template.

    version is 0 until the schema is first saved; every save increments it.
    """
    template_id: str
    name: str
    sections: list[QuestionSection] = field(default_factory=list)
    version: int = 0
    gate: Optional[GateId] = None
    description: Optional[str] = None
    created_at: datetime = field(default_factory=utc_now)
    updated_at: datetime = field(default_factory=utc_now)
    updated_by: Optional[str] = None

    def get_section(self, section_id: str) -> Optional[QuestionSection]:
        for section in self.sections:
            if section.id == section_id:
                return section
        return None

    def iter_fields(self) -> Iterator[tuple[QuestionSection, QuestionField]]:
        return _iter_fields(self.sections)

    @property
    def field_ids(self) -> list[str]:
        return [f.id for _, f in self.iter_fields()]

    @property
    def schema_hash(self) -> str:
        return compute_schema_hash(self.template_id, self.sections)

    def with_field_removed(self, field_id: str) -> QuestionnaireSchema:
        """Copy of this schema with the field soft-deleted."""
        sections = [
            replace(
                s,
                fields=tuple(replace(f, removed=True) if f.id == field_id else f for f in s.fields),
            )
            for s in self.sections
        ]
        return replace(self, sections=sections)

    def snapshot(self, created_by: Optional[str] = None) -> SchemaSnapshot:
        """Freeze this schema's current state as an archived version."""
        return SchemaSnapshot(
            template_id=self.template_id,
            version=self.version,
            name=self.name,
            sections=tuple(self.sections),
            gate=self.gate,
            created_at=self.updated_at,
            created_by=created_by or self.updated_by,
            schema_hash=self.schema_hash,
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "template_id": self.template_id,
            "name": self.name,
            "version": self.version,
            "gate": self.gate.value if self.gate else None,
            "description": self.description,
            "sections": [s.to_dict() for s in self.sections],
            "created_at": format_datetime(self.created_at),
            "updated_at": format_datetime(self.updated_at),
            "updated_by": self.updated_by,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> QuestionnaireSchema:
        gate = data.get("gate")
        return cls(
            template_id=data.get("template_id") or data["id"],
            name=data.get("name", ""),
            sections=[QuestionSection.from_dict(s) for s in data.get("sections") or []],
            version=int(data.get("version", 0)),
            gate=GateId(gate) if gate else None,
            description=data.get("description"),
            created_at=parse_datetime(data.get("created_at")) or utc_now(),
            updated_at=parse_datetime(data.get("updated_at")) or utc_now(),
            updated_by=data.get("updated_by"),
        )


# =============================================================================
# Schema Snapshot (archived, immutable)
# =============================================================================

@dataclass(frozen=True)
class SchemaSnapshot:
    """
    An immutable archived version of a questionnaire schema.

    Retrieved by exact (template_id, version). Contains every field that
    existed at archive time, including ones later removed or renamed.
    """
    template_id: str
    version: int
    name: str
    sections: tuple[QuestionSection, ...]
    gate: Optional[GateId] = None
    created_at: Optional[datetime] = None
    created_by: Optional[str] = None
    schema_hash: Optional[str] = None

    def get_section(self, section_id: str) -> Optional[QuestionSection]:
        for section in self.sections:
            if section.id == section_id:
                return section
        return None

    def iter_fields(self) -> Iterator[tuple[QuestionSection, QuestionField]]:
        return _iter_fields(self.sections)

    @property
    def field_ids(self) -> list[str]:
        return [f.id for _, f in self.iter_fields()]

    def to_dict(self) -> dict[str, Any]:
        return {
            "template_id": self.template_id,
            "version": self.version,
            "name": self.name,
            "gate": self.gate.value if self.gate else None,
            "sections": [s.to_dict() for s in self.sections],
            "created_at": format_datetime(self.created_at),
            "created_by": self.created_by,
            "schema_hash": self.schema_hash,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> SchemaSnapshot:
        gate = data.get("gate")
        return cls(
            template_id=data["template_id"],
            version=int(data["version"]),
            name=data.get("name", ""),
            sections=tuple(QuestionSection.from_dict(s) for s in data.get("sections") or []),
            gate=GateId(gate) if gate else None,
            created_at=parse_datetime(data.get("created_at")),
            created_by=data.get("created_by"),
            schema_hash=data.get("schema_hash"),
        )
