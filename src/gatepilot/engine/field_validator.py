"""
GatePilot Field Validator

Checks a submission payload against the pinned questionnaire schema
before it is scored.

Every offending field is reported; validation never stops at the first
error. Removed (soft-deleted) fields are ignored.
"""
from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Any, Mapping, Optional, Union
from urllib.parse import urlparse

from ..exceptions import FieldError, SubmissionValidationError
from ..models import (
    FieldType,
    FieldValidation,
    FieldValidationType,
    QuestionField,
    QuestionnaireSchema,
    SchemaSnapshot,
)
from .rule_evaluator import coerce_number

EMAIL_PATTERN = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")

SchemaLike = Union[QuestionnaireSchema, SchemaSnapshot]


def _is_blank(value: Any) -> bool:
    if value is None:
        return True
    if isinstance(value, str):
        return not value.strip()
    if isinstance(value, (list, tuple)):
        return len(value) == 0
    return False


def _is_url(value: str) -> bool:
    parsed = urlparse(value)
    return parsed.scheme in ("http", "https") and bool(parsed.netloc)


def _as_length(value: Any) -> Optional[int]:
    number = coerce_number(value)
    if number is None or number < 0 or not number.is_integer():
        return None
    return int(number)


def rule_value_error(rule: FieldValidation) -> Optional[str]:
    """
    Check that a validation rule's value fits its type.

    Returns:
        A message describing the problem, or None when the rule is usable
    """
    if rule.type == FieldValidationType.REGEX:
        if not isinstance(rule.value, str) or not rule.value:
            return "regex validation needs a pattern"
        try:
            re.compile(rule.value)
        except re.error as exc:
            return f"Invalid regex pattern '{rule.value}': {exc}"
    elif rule.type in (FieldValidationType.MIN, FieldValidationType.MAX):
        if coerce_number(rule.value) is None:
            return f"{rule.type.value} validation needs a numeric value, got {rule.value!r}"
    elif rule.type in (FieldValidationType.MIN_LENGTH, FieldValidationType.MAX_LENGTH):
        if _as_length(rule.value) is None:
            return f"{rule.type.value} validation needs a non-negative integer, got {rule.value!r}"
    return None


# =============================================================================
# Field Validator
# =============================================================================

@dataclass
class FieldValidator:
    """
    Validates answers section by section.

    Holds configuration only, so one instance can be shared by every
    request.

    Usage:
        validator = FieldValidator()
        errors = validator.validate(schema, {"contract-execution": {...}})

        validator.validate_or_raise(schema, answers)   # raises with all errors
    """

    reject_unknown_fields: bool = False

    def validate(
        self,
        schema: SchemaLike,
        answers: Mapping[str, Mapping[str, Any]],
    ) -> list[FieldError]:
        """
        Validate answers against every active field of the schema.

        Args:
            schema: Pinned schema (current or archived snapshot)
            answers: section_id -> field_id -> value

        Returns:
            All field errors found, empty when the payload is valid
        """
        errors: list[FieldError] = []

        known_sections = {s.id for s in schema.sections}
        for section_id in answers:
            if section_id not in known_sections:
                errors.append(FieldError(
                    field_id=None,
                    section_id=section_id,
                    message=f"Unknown section '{section_id}'",
                ))

        for section in schema.sections:
            values = answers.get(section.id) or {}
            active = {f.id for f in section.active_fields}
            for question in section.active_fields:
                message = self.validate_value(question, values.get(question.id))
                if message:
                    errors.append(FieldError(
                        field_id=question.id,
                        section_id=section.id,
                        message=message,
                    ))
            if self.reject_unknown_fields:
                for field_id in values:
                    if field_id not in active:
                        errors.append(FieldError(
                            field_id=field_id,
                            section_id=section.id,
                            message=f"Unknown field '{field_id}'",
                        ))

        return errors

    def validate_or_raise(
        self,
        schema: SchemaLike,
        answers: Mapping[str, Mapping[str, Any]],
        partner_id: Optional[str] = None,
    ) -> None:
        errors = self.validate(schema, answers)
        if errors:
            raise SubmissionValidationError(
                message=f"Submission has {len(errors)} invalid field(s)",
                details={"template_id": schema.template_id, "version": schema.version},
                partner_id=partner_id,
                field_errors=errors,
            )

    def validate_value(self, question: QuestionField, value: Any) -> Optional[str]:
        """Return an error message for one field's value, or None."""
        if _is_blank(value):
            return f"{question.label} is required" if question.required else None

        if question.type == FieldType.EMAIL:
            if not isinstance(value, str) or not EMAIL_PATTERN.match(value):
                return "Please enter a valid email address"

        elif question.type == FieldType.NUMBER:
            if coerce_number(value) is None:
                return "Please enter a valid number"

        elif question.type == FieldType.CHECKBOX:
            selected = value if isinstance(value, (list, tuple)) else [value]
            invalid = [v for v in selected if v not in question.options]
            if invalid:
                return f"{question.label}: invalid option(s) {', '.join(map(str, invalid))}"

        elif question.type in (FieldType.SELECT, FieldType.RADIO):
            if value not in question.options:
                return f"{question.label}: '{value}' is not an allowed option"

        return self._apply_rule(question.validation, value)

    def _apply_rule(self, rule: Optional[FieldValidation], value: Any) -> Optional[str]:
        if rule is None:
            return None
        if rule_value_error(rule):
            # Schemas are checked on save; a bad rule in an old snapshot is not enforced
            return None
        text = value if isinstance(value, str) else str(value)

        if rule.type == FieldValidationType.REGEX:
            ok = re.search(str(rule.value), text) is not None
        elif rule.type == FieldValidationType.MIN:
            number = coerce_number(value)
            ok = number is not None and number >= coerce_number(rule.value)
        elif rule.type == FieldValidationType.MAX:
            number = coerce_number(value)
            ok = number is not None and number <= coerce_number(rule.value)
        elif rule.type == FieldValidationType.MIN_LENGTH:
            ok = len(text) >= _as_length(rule.value)
        elif rule.type == FieldValidationType.MAX_LENGTH:
            ok = len(text) <= _as_length(rule.value)
        elif rule.type == FieldValidationType.EMAIL:
            ok = EMAIL_PATTERN.match(text) is not None
        elif rule.type == FieldValidationType.URL:
            ok = _is_url(text)
        else:
            ok = True

        return None if ok else rule.message


# =============================================================================
# Schema Structure Validation
# =============================================================================

def validate_schema(schema: SchemaLike) -> list[FieldError]:
    """
    Check a questionnaire schema's structure before it is saved or loaded.

    Catches:
    - Duplicate section ids
    - Duplicate field ids across all sections
    - Empty field labels
    - Choice fields (select/checkbox/radio) without options
    - Validation rules whose value does not fit their type (bad regex,
      non-numeric min/max, non-integer lengths)
    - Rules referencing fields the schema does not declare, or has removed

    Returns:
        One FieldError per offending field, empty when the schema is valid
    """
    errors: list[FieldError] = []

    seen_sections: set[str] = set()
    for section in schema.sections:
        if section.id in seen_sections:
            errors.append(FieldError(
                field_id=None,
                section_id=section.id,
                message=f"Duplicate section ID: '{section.id}'",
            ))
        seen_sections.add(section.id)

    seen_fields: dict[str, str] = {}
    for section, question in schema.iter_fields():
        if question.id in seen_fields:
            errors.append(FieldError(
                field_id=question.id,
                section_id=section.id,
                message=(
                    f"Duplicate field ID: '{question.id}' "
                    f"(already used in section '{seen_fields[question.id]}')"
                ),
            ))
        else:
            seen_fields[question.id] = section.id
        if not question.label or not question.label.strip():
            errors.append(FieldError(
                field_id=question.id,
                section_id=section.id,
                message="Field label cannot be empty",
            ))
        if question.type.is_choice and not question.options:
            errors.append(FieldError(
                field_id=question.id,
                section_id=section.id,
                message=f"{question.type.value} field must have at least one option",
            ))
        if question.validation is not None and not question.removed:
            problem = rule_value_error(question.validation)
            if problem:
                errors.append(FieldError(
                    field_id=question.id,
                    section_id=section.id,
                    message=problem,
                ))

    removed = {f.id for _, f in schema.iter_fields() if f.removed}
    for section in schema.sections:
        if section.criteria is None:
            continue
        for field_id in sorted(section.criteria.referenced_fields):
            if field_id not in seen_fields:
                errors.append(FieldError(
                    field_id=field_id,
                    section_id=section.id,
                    message=f"Rule references unknown field '{field_id}'",
                ))
            elif field_id in removed:
                # A removed field is never asked for, so its rule could never pass
                errors.append(FieldError(
                    field_id=field_id,
                    section_id=section.id,
                    message=f"Rule references removed field '{field_id}'; update the section criteria first",
                ))

    return errors
