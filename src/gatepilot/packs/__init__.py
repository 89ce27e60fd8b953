"""
GatePilot Packs

Schema validation and loading for questionnaire and gate packs.

Packs are YAML or JSON documents: one gate configuration (gates.yaml)
describing the gate order, each gate's required questionnaires and the
gate qualification policies, plus one document per questionnaire.

Usage:
    from gatepilot.packs import PackLoader

    loader = PackLoader()
    config, questionnaires = loader.load_directory("packs")
"""
from __future__ import annotations

from .loader import (
    PackLoader,
    load_gate_config,
    load_questionnaire,
    load_questionnaire_from_string,
)
from .schema import (
    SCHEMA_VERSION,
    CriteriaSchema,
    FieldValidationSchema,
    GateConfigPackSchema,
    GateDefinitionSchema,
    QualificationPolicySchema,
    QuestionFieldSchema,
    QuestionnairePackSchema,
    QuestionSectionSchema,
    RuleSchema,
    check_schema_version,
    validate_gate_config_pack,
    validate_questionnaire_pack,
)

__all__ = [
    # Version
    "SCHEMA_VERSION",
    # Loader
    "PackLoader",
    "load_gate_config",
    "load_questionnaire",
    "load_questionnaire_from_string",
    # Validation
    "check_schema_version",
    "validate_gate_config_pack",
    "validate_questionnaire_pack",
    # Schemas
    "CriteriaSchema",
    "FieldValidationSchema",
    "GateConfigPackSchema",
    "GateDefinitionSchema",
    "QualificationPolicySchema",
    "QuestionFieldSchema",
    "QuestionnairePackSchema",
    "QuestionSectionSchema",
    "RuleSchema",
]
