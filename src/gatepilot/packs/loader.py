"""
GatePilot Pack Loader

Loads and validates questionnaire and gate configuration packs from
YAML or JSON files.

Converts Pydantic schema models to GatePilot domain models.
"""
from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Any, Optional, Union

import yaml
from pydantic import ValidationError

from ..engine.field_validator import validate_schema
from ..exceptions import FieldError, PackLoadError, PackValidationError
from ..models import (
    CriteriaType,
    FieldType,
    FieldValidation,
    FieldValidationType,
    GateConfig,
    GateDefinition,
    GateId,
    PassFailCriteria,
    QualificationPolicy,
    QuestionField,
    QuestionnaireSchema,
    QuestionSection,
    RuleComparison,
    RuleOperator,
)
from .schema import (
    SCHEMA_VERSION,
    CriteriaSchema,
    GateConfigPackSchema,
    QuestionFieldSchema,
    QuestionnairePackSchema,
    QuestionSectionSchema,
    RuleSchema,
    check_schema_version,
    validate_gate_config_pack,
    validate_questionnaire_pack,
)

logger = logging.getLogger(__name__)

GATE_CONFIG_FILENAMES = ("gates.yaml", "gates.yml", "gates.json")


# =============================================================================
# Schema to Model Converters
# =============================================================================

def _convert_rule(schema: RuleSchema) -> RuleComparison:
    value = schema.value
    return RuleComparison(
        field_id=schema.field_id,
        operator=RuleOperator(schema.operator),
        value=tuple(value) if isinstance(value, list) else value,
        failure_message=schema.failure_message,
    )


def _convert_criteria(schema: Optional[CriteriaSchema]) -> Optional[PassFailCriteria]:
    if schema is None:
        return None
    return PassFailCriteria(
        type=CriteriaType(schema.type),
        rules=tuple(_convert_rule(r) for r in schema.rules),
    )


def _convert_field(schema: QuestionFieldSchema, position: int) -> QuestionField:
    validation = None
    if schema.validation is not None:
        validation = FieldValidation(
            type=FieldValidationType(schema.validation.type),
            value=schema.validation.value,
            message=schema.validation.message,
        )
    return QuestionField(
        id=schema.id,
        type=FieldType(schema.type),
        label=schema.label,
        required=schema.required,
        options=tuple(schema.options),
        order=schema.order if schema.order is not None else position,
        help_text=schema.help_text,
        placeholder=schema.placeholder,
        default_value=schema.default_value,
        validation=validation,
    )


def _convert_section(schema: QuestionSectionSchema) -> QuestionSection:
    return QuestionSection(
        id=schema.id,
        title=schema.title,
        description=schema.description,
        fields=tuple(_convert_field(f, i) for i, f in enumerate(schema.fields)),
        criteria=_convert_criteria(schema.criteria),
    )


def _convert_questionnaire(schema: QuestionnairePackSchema) -> QuestionnaireSchema:
    return QuestionnaireSchema(
        template_id=schema.id,
        name=schema.name,
        gate=GateId(schema.gate) if schema.gate else None,
        description=schema.description,
        sections=[_convert_section(s) for s in schema.sections],
    )


def _convert_gate_config(schema: GateConfigPackSchema) -> GateConfig:
    return GateConfig(
        gates=tuple(
            GateDefinition(
                id=GateId(g.id),
                name=g.name,
                description=g.description,
                questionnaires=tuple(g.questionnaires),
                estimated_weeks=g.estimated_weeks,
                criteria=tuple(g.criteria),
            )
            for g in schema.gates
        ),
        policies={
            GateId(gate_id): QualificationPolicy(
                threshold=p.threshold,
                threshold_attribute=p.threshold_attribute,
                threshold_answer_field=p.threshold_answer_field,
                min_passing_sections=p.min_passing_sections,
                description=p.description,
            )
            for gate_id, p in schema.policies.items()
        },
    )


def _pydantic_field_errors(error: ValidationError) -> list[FieldError]:
    return [
        FieldError(
            field_id=".".join(str(part) for part in e["loc"]) or None,
            message=e["msg"],
        )
        for e in error.errors()
    ]


# =============================================================================
# Pack Loader
# =============================================================================

class PackLoader:
    """
    Loads questionnaire and gate configuration packs.

    Usage:
        loader = PackLoader()
        schema = loader.load_questionnaire("packs/questionnaires/gate-0-kickoff.yaml")
        config = loader.load_gate_config("packs/gates.yaml")

        config, schemas = loader.load_directory("packs")
    """

    def __init__(self, strict_version: bool = True):
        """
        Initialize the loader.

        Args:
            strict_version: If True, reject packs with incompatible schema versions
        """
        self.strict_version = strict_version
        self._questionnaires: dict[str, QuestionnaireSchema] = {}

    def load_questionnaire(self, path: Union[str, Path]) -> QuestionnaireSchema:
        """
        Load a questionnaire pack from a file.

        Raises:
            PackLoadError: If the file cannot be read or parsed
            PackValidationError: If schema or structure validation fails
        """
        path = Path(path)
        data = self._read(path)
        schema = self.questionnaire_from_dict(data, source=str(path))
        self._questionnaires[schema.template_id] = schema
        return schema

    def questionnaire_from_dict(self, data: dict[str, Any], source: str = "") -> QuestionnaireSchema:
        self._check_version(data, source)
        try:
            pack = validate_questionnaire_pack(data)
        except ValidationError as e:
            raise PackValidationError(
                message=f"Questionnaire pack validation failed: {e.error_count()} errors",
                details={"path": source},
                field_errors=_pydantic_field_errors(e),
            )

        schema = _convert_questionnaire(pack)

        errors = validate_schema(schema)
        if errors:
            raise PackValidationError(
                message=f"Questionnaire '{schema.template_id}' has {len(errors)} structural errors",
                details={"path": source},
                field_errors=errors,
            )
        return schema

    def load_gate_config(self, path: Union[str, Path]) -> GateConfig:
        """
        Load the gate configuration from a file.

        Raises:
            PackLoadError: If the file cannot be read or parsed
            PackValidationError: If validation fails
        """
        path = Path(path)
        return self.gate_config_from_dict(self._read(path), source=str(path))

    def gate_config_from_dict(self, data: dict[str, Any], source: str = "") -> GateConfig:
        self._check_version(data, source)
        try:
            pack = validate_gate_config_pack(data)
        except ValidationError as e:
            raise PackValidationError(
                message=f"Gate configuration validation failed: {e.error_count()} errors",
                details={"path": source},
                field_errors=_pydantic_field_errors(e),
            )
        return _convert_gate_config(pack)

    def load_directory(
        self,
        directory: Union[str, Path],
    ) -> tuple[GateConfig, dict[str, QuestionnaireSchema]]:
        """
        Load gates.yaml plus every questionnaire under questionnaires/.

        Also checks that every questionnaire a gate requires is present.

        Returns:
            (gate configuration, template_id -> schema)
        """
        directory = Path(directory)
        config_path = next(
            (directory / name for name in GATE_CONFIG_FILENAMES if (directory / name).exists()),
            None,
        )
        if config_path is None:
            raise PackLoadError(
                message=f"No gate configuration found in {directory}",
                details={"path": str(directory), "expected": list(GATE_CONFIG_FILENAMES)},
            )
        config = self.load_gate_config(config_path)

        schemas: dict[str, QuestionnaireSchema] = {}
        questionnaire_dir = directory / "questionnaires"
        if questionnaire_dir.is_dir():
            for path in sorted(questionnaire_dir.iterdir()):
                if path.suffix.lower() in {".yaml", ".yml", ".json"}:
                    schema = self.load_questionnaire(path)
                    if schema.template_id in schemas:
                        raise PackValidationError(
                            message=f"Duplicate questionnaire id '{schema.template_id}'",
                            details={"path": str(path)},
                        )
                    schemas[schema.template_id] = schema

        missing = [
            FieldError(field_id=q, section_id=g.id.value, message=f"Questionnaire '{q}' has no pack")
            for g in config.gates
            for q in g.questionnaires
            if q not in schemas
        ]
        if missing:
            raise PackValidationError(
                message=f"{len(missing)} required questionnaire(s) missing from {directory}",
                details={"path": str(directory)},
                field_errors=missing,
            )

        logger.info("Loaded %d gates and %d questionnaires from %s", len(config.gates), len(schemas), directory)
        return config, schemas

    def get_questionnaire(self, template_id: str) -> Optional[QuestionnaireSchema]:
        """Get a previously loaded questionnaire by id."""
        return self._questionnaires.get(template_id)

    def list_questionnaires(self) -> list[str]:
        return list(self._questionnaires.keys())

    def _check_version(self, data: dict[str, Any], source: str) -> None:
        if self.strict_version and not check_schema_version(data):
            raise PackValidationError(
                message=(
                    f"Schema version mismatch: pack has {data.get('schema_version')}, "
                    f"expected {SCHEMA_VERSION}"
                ),
                details={"path": source, "expected_version": SCHEMA_VERSION},
            )

    def _read(self, path: Path) -> dict[str, Any]:
        try:
            data = self._load_file(path)
        except (OSError, yaml.YAMLError, json.JSONDecodeError) as e:
            raise PackLoadError(
                message=f"Failed to load pack: {e}",
                details={"path": str(path), "error": str(e)},
            )
        if not isinstance(data, dict):
            raise PackLoadError(
                message="Pack document must be a mapping",
                details={"path": str(path)},
            )
        return data

    def _load_file(self, path: Path) -> Any:
        """Load data from YAML or JSON file."""
        with open(path, "r", encoding="utf-8") as f:
            if path.suffix.lower() == ".json":
                return json.load(f)
            return yaml.safe_load(f)


# =============================================================================
# Convenience Functions
# =============================================================================

def load_questionnaire(path: Union[str, Path]) -> QuestionnaireSchema:
    """Load one questionnaire pack with a temporary loader."""
    return PackLoader().load_questionnaire(path)


def load_gate_config(path: Union[str, Path]) -> GateConfig:
    """Load a gate configuration with a temporary loader."""
    return PackLoader().load_gate_config(path)


def load_questionnaire_from_string(content: str, format: str = "yaml") -> QuestionnaireSchema:
    """
    Load a questionnaire from a string.

    Args:
        content: YAML or JSON string
        format: "yaml" or "json"
    """
    if format.lower() == "json":
        data = json.loads(content)
    else:
        data = yaml.safe_load(content)
    return PackLoader().questionnaire_from_dict(data)
