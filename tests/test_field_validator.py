"""
Tests for GatePilot Field Validator

Tests cover:
- Required, typed and option-constrained fields
- Optional per-field validation rules
- Every error reported, never just the first
- Structural checks on schemas before save
"""
import pytest

from gatepilot.engine import FieldValidator, validate_schema
from gatepilot.exceptions import SubmissionValidationError
from gatepilot.models import (
    FieldType,
    FieldValidation,
    FieldValidationType,
    automatic,
    rule,
)

from tests.conftest import make_field, make_schema, make_section


# =============================================================================
# Fixtures
# =============================================================================

@pytest.fixture
def validator():
    return FieldValidator()


@pytest.fixture
def profile_schema():
    """One section exercising each field type."""
    return make_schema(
        "partner-profile",
        sections=[
            make_section(
                "profile",
                fields=[
                    make_field("legal-name", required=True),
                    make_field("contact-email", FieldType.EMAIL, required=True),
                    make_field("headcount", FieldType.NUMBER),
                    make_field("region", FieldType.SELECT, required=True, options=("EMEA", "APAC", "AMER")),
                    make_field("channels", FieldType.CHECKBOX, options=("Online", "Retail", "Direct")),
                    make_field("signed", FieldType.RADIO, options=("Yes", "No")),
                    make_field(
                        "website",
                        validation=FieldValidation(FieldValidationType.URL, "Enter a full URL"),
                    ),
                    make_field(
                        "tax-id",
                        validation=FieldValidation(FieldValidationType.REGEX, "Tax ID must be 9 digits", r"^\d{9}$"),
                    ),
                    make_field(
                        "summary",
                        FieldType.TEXTAREA,
                        validation=FieldValidation(FieldValidationType.MAX_LENGTH, "Keep it under 20 characters", 20),
                    ),
                ],
                criteria=automatic(rule("region", "in", ["EMEA", "APAC", "AMER"])),
            )
        ],
    )


@pytest.fixture
def valid_answers():
    return {
        "profile": {
            "legal-name": "Acme Connectivity Ltd",
            "contact-email": "ops@acme.example",
            "headcount": "120",
            "region": "EMEA",
            "channels": ["Online", "Direct"],
            "signed": "Yes",
            "website": "https://acme.example",
            "tax-id": "123456789",
            "summary": "Regional carrier",
        }
    }


def error_fields(errors):
    return {e.field_id for e in errors}


# =============================================================================
# Field Validation
# =============================================================================

class TestFieldValidator:
    """Tests for validating answers against a schema."""

    def test_valid_answers(self, validator, profile_schema, valid_answers):
        assert validator.validate(profile_schema, valid_answers) == []

    def test_value_without_rule(self, validator):
        assert validator.validate_value(make_field("notes"), "free text") is None

    def test_value_against_rule(self, validator):
        question = make_field("code", validation=FieldValidation(FieldValidationType.REGEX, "Digits only", r"^\d+$"))

        assert validator.validate_value(question, "12a") == "Digits only"
        assert validator.validate_value(question, "12") is None

    def test_required_field_missing(self, validator, profile_schema, valid_answers):
        valid_answers["profile"]["legal-name"] = "   "

        errors = validator.validate(profile_schema, valid_answers)

        assert len(errors) == 1
        assert errors[0].field_id == "legal-name"
        assert errors[0].section_id == "profile"
        assert errors[0].message == "Legal name is required"

    def test_optional_fields_may_be_blank(self, validator, profile_schema, valid_answers):
        for field_id in ("headcount", "channels", "signed", "website", "tax-id", "summary"):
            valid_answers["profile"].pop(field_id)

        assert validator.validate(profile_schema, valid_answers) == []

    def test_invalid_email(self, validator, profile_schema, valid_answers):
        valid_answers["profile"]["contact-email"] = "ops-at-acme"
        errors = validator.validate(profile_schema, valid_answers)
        assert error_fields(errors) == {"contact-email"}

    def test_invalid_number(self, validator, profile_schema, valid_answers):
        valid_answers["profile"]["headcount"] = "about a hundred"
        assert error_fields(validator.validate(profile_schema, valid_answers)) == {"headcount"}

    def test_select_option_not_allowed(self, validator, profile_schema, valid_answers):
        valid_answers["profile"]["region"] = "LATAM"
        errors = validator.validate(profile_schema, valid_answers)
        assert errors[0].message == "Region: 'LATAM' is not an allowed option"

    def test_checkbox_option_not_allowed(self, validator, profile_schema, valid_answers):
        valid_answers["profile"]["channels"] = ["Online", "Telepathy"]
        assert error_fields(validator.validate(profile_schema, valid_answers)) == {"channels"}

    def test_validation_rules(self, validator, profile_schema, valid_answers):
        valid_answers["profile"]["website"] = "acme.example"
        valid_answers["profile"]["tax-id"] = "12-345"
        valid_answers["profile"]["summary"] = "A much longer description than allowed"

        errors = {e.field_id: e.message for e in validator.validate(profile_schema, valid_answers)}

        assert errors == {
            "website": "Enter a full URL",
            "tax-id": "Tax ID must be 9 digits",
            "summary": "Keep it under 20 characters",
        }

    def test_every_error_reported(self, validator, profile_schema):
        errors = validator.validate(profile_schema, {"profile": {"contact-email": "nope"}})
        assert error_fields(errors) == {"legal-name", "contact-email", "region"}

    def test_unknown_section_reported(self, validator, profile_schema, valid_answers):
        valid_answers["mystery"] = {"x": 1}

        errors = validator.validate(profile_schema, valid_answers)

        assert len(errors) == 1
        assert errors[0].section_id == "mystery"
        assert errors[0].field_id is None

    def test_unknown_fields_ignored_by_default(self, validator, profile_schema, valid_answers):
        valid_answers["profile"]["extra"] = "ignored"
        assert validator.validate(profile_schema, valid_answers) == []

    def test_unknown_fields_rejected_when_configured(self, profile_schema, valid_answers):
        valid_answers["profile"]["extra"] = "rejected"
        errors = FieldValidator(reject_unknown_fields=True).validate(profile_schema, valid_answers)
        assert error_fields(errors) == {"extra"}

    def test_removed_fields_not_required(self, validator, profile_schema, valid_answers):
        schema = profile_schema.with_field_removed("legal-name")
        del valid_answers["profile"]["legal-name"]

        assert validator.validate(schema, valid_answers) == []

    def test_validates_against_snapshot(self, validator, profile_schema, valid_answers):
        assert validator.validate(profile_schema.snapshot(), valid_answers) == []

    def test_validate_or_raise(self, validator, profile_schema):
        with pytest.raises(SubmissionValidationError) as exc_info:
            validator.validate_or_raise(profile_schema, {"profile": {}}, partner_id="partner-1")

        error = exc_info.value
        assert error.partner_id == "partner-1"
        assert {e.field_id for e in error.field_errors} == {"legal-name", "contact-email", "region"}
        assert error.to_dict()["code"] == "GP_SUBMISSION_VALIDATION_ERROR"
        assert len(error.to_dict()["field_errors"]) == 3

    def test_min_max_rules(self, validator):
        schema = make_schema(
            "bounds",
            sections=[
                make_section(
                    "numbers",
                    fields=[
                        make_field("ccv", FieldType.NUMBER, validation=FieldValidation(FieldValidationType.MIN, "CCV cannot be negative", 0)),
                        make_field("share", FieldType.NUMBER, validation=FieldValidation(FieldValidationType.MAX, "Share is a percentage", 100)),
                    ],
                    criteria=None,
                )
            ],
        )

        assert validator.validate(schema, {"numbers": {"ccv": 0, "share": 100}}) == []
        errors = validator.validate(schema, {"numbers": {"ccv": -1, "share": 101}})
        assert [e.message for e in errors] == ["CCV cannot be negative", "Share is a percentage"]


# =============================================================================
# Schema Structure
# =============================================================================

class TestValidateSchema:
    """Tests for structural checks before a schema is saved."""

    def test_valid_schema(self, profile_schema):
        assert validate_schema(profile_schema) == []

    def test_duplicate_field_ids_across_sections(self):
        schema = make_schema(
            sections=[
                make_section("alpha", fields=[make_field("contact")]),
                make_section("beta", fields=[make_field("contact")]),
            ]
        )

        errors = validate_schema(schema)

        assert len(errors) == 1
        assert errors[0].field_id == "contact"
        assert errors[0].section_id == "beta"
        assert "already used in section 'alpha'" in errors[0].message

    def test_duplicate_section_ids(self):
        schema = make_schema(sections=[make_section("alpha", fields=[make_field("a")]), make_section("alpha", fields=[make_field("b")])])
        assert [e.message for e in validate_schema(schema)] == ["Duplicate section ID: 'alpha'"]

    def test_empty_label(self):
        schema = make_schema(sections=[make_section("alpha", fields=[make_field("a", label=" ")])])
        assert validate_schema(schema)[0].message == "Field label cannot be empty"

    def test_choice_field_without_options(self):
        schema = make_schema(sections=[make_section("alpha", fields=[make_field("choice", FieldType.SELECT)])])
        assert validate_schema(schema)[0].message == "select field must have at least one option"

    def test_rule_references_unknown_field(self):
        schema = make_schema(
            sections=[
                make_section(
                    "alpha",
                    fields=[make_field("known")],
                    criteria=automatic(rule("unknown", "equals", "Yes")),
                )
            ]
        )

        errors = validate_schema(schema)

        assert len(errors) == 1
        assert errors[0].field_id == "unknown"
        assert errors[0].message == "Rule references unknown field 'unknown'"

    def test_rule_may_reference_field_in_other_section(self):
        schema = make_schema(
            sections=[
                make_section("alpha", fields=[make_field("shared")]),
                make_section("beta", fields=[make_field("other")], criteria=automatic(rule("shared", "equals", "Yes"))),
            ]
        )
        assert validate_schema(schema) == []

    def test_rule_references_removed_field(self):
        schema = make_schema(sections=[make_section("alpha"), make_section("beta")])

        errors = validate_schema(schema.with_field_removed("alpha-approved"))

        assert len(errors) == 1
        assert errors[0].field_id == "alpha-approved"
        assert errors[0].section_id == "alpha"
        assert errors[0].message.startswith("Rule references removed field 'alpha-approved'")

    def test_removing_unreferenced_field_is_fine(self):
        schema = make_schema(
            sections=[make_section("alpha", fields=[make_field("a"), make_field("b")], criteria=automatic(rule("a", "equals", "x")))]
        )
        assert validate_schema(schema.with_field_removed("b")) == []


def schema_with_rule(validation):
    return make_schema(
        "rules",
        sections=[make_section("alpha", fields=[make_field("value", validation=validation)], criteria=None)],
    )


class TestValidationRuleValues:
    """Validation rules must be usable before a schema is accepted."""

    @pytest.mark.parametrize("validation_type, value", [
        (FieldValidationType.REGEX, "[unclosed"),
        (FieldValidationType.REGEX, ""),
        (FieldValidationType.REGEX, None),
        (FieldValidationType.MIN, "zero"),
        (FieldValidationType.MAX, None),
        (FieldValidationType.MIN_LENGTH, -1),
        (FieldValidationType.MAX_LENGTH, "3.5"),
    ])
    def test_unusable_rule_value_rejected(self, validation_type, value):
        errors = validate_schema(schema_with_rule(FieldValidation(validation_type, "Invalid", value)))

        assert len(errors) == 1
        assert errors[0].field_id == "value"
        assert errors[0].section_id == "alpha"

    def test_bad_regex_message(self):
        errors = validate_schema(schema_with_rule(FieldValidation(FieldValidationType.REGEX, "Invalid", "[unclosed")))
        assert errors[0].message.startswith("Invalid regex pattern '[unclosed'")

    @pytest.mark.parametrize("validation_type, value", [
        (FieldValidationType.REGEX, r"^\d+$"),
        (FieldValidationType.MIN, "0"),
        (FieldValidationType.MAX, 2.5),
        (FieldValidationType.MIN_LENGTH, "3"),
        (FieldValidationType.MAX_LENGTH, 20),
        (FieldValidationType.URL, None),
    ])
    def test_usable_rule_values(self, validation_type, value):
        assert validate_schema(schema_with_rule(FieldValidation(validation_type, "Invalid", value))) == []

    def test_bad_rule_in_archived_version_does_not_raise(self, validator):
        schema = schema_with_rule(FieldValidation(FieldValidationType.REGEX, "Invalid", "[unclosed"))
        assert validator.validate(schema.snapshot(), {"alpha": {"value": "anything"}}) == []

    def test_validator_keeps_no_per_call_state(self, validator, profile_schema, valid_answers):
        before = dict(vars(validator))

        first = validator.validate(profile_schema, {"profile": {}})
        second = validator.validate(profile_schema, valid_answers)

        assert len(first) == 3
        assert second == []
        assert vars(validator) == before
