"""
GatePilot Template Version Store

Keeps the current editable questionnaire schema per template plus an
immutable archive of every version that was ever current.

Storage layout (key-value collaborator):
- templates/current/<template_id>        current editable schema
- templates/versions/<template_id>/<n>   archived snapshot of version n
- templates/metadata                     template index for listings

A submission pins the schema version current at its creation.
resolve_schema(template_id, pinned_version) returns that exact archived
snapshot, including fields later removed from the current schema. When
the pinned snapshot is missing it falls back to the current schema and
logs the fallback, unless strict_history is set.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass, replace
from typing import Any, Optional

from ..engine.field_validator import validate_schema
from ..exceptions import (
    FieldError,
    SchemaNotFoundError,
    SchemaValidationError,
    SchemaVersionNotFoundError,
    StoreError,
)
from ..models import QuestionnaireSchema, SchemaSnapshot, utc_now
from .base import KeyValueStore

logger = logging.getLogger(__name__)

CURRENT_PREFIX = "templates/current/"
VERSIONS_PREFIX = "templates/versions/"
METADATA_KEY = "templates/metadata"


# =============================================================================
# Resolved Schema
# =============================================================================

@dataclass(frozen=True)
class ResolvedSchema:
    """
    A schema resolved for rendering or scoring.

    Attributes:
        schema: The snapshot to use (archived, or the current schema frozen)
        requested_version: Version the caller pinned, if any
        fell_back: True when the pinned version was missing and the current
            schema was substituted
    """
    schema: SchemaSnapshot
    requested_version: Optional[int] = None
    fell_back: bool = False

    @property
    def version(self) -> int:
        return self.schema.version

    @property
    def template_id(self) -> str:
        return self.schema.template_id

    def to_dict(self) -> dict[str, Any]:
        return {
            "schema": self.schema.to_dict(),
            "requested_version": self.requested_version,
            "resolved_version": self.version,
            "fell_back": self.fell_back,
        }


# =============================================================================
# Template Version Store
# =============================================================================

class TemplateVersionStore:
    """
    Current and archived questionnaire schemas.

    Usage:
        templates = TemplateVersionStore(store)
        saved = templates.save(schema, updated_by="pdm@example.com")

        resolved = templates.resolve_schema("gate-0-kickoff", submission.schema_version)
        if resolved and resolved.fell_back:
            ...  # rendered against the current schema
    """

    def __init__(self, store: KeyValueStore, strict_history: bool = False):
        self.store = store
        self.strict_history = strict_history

    @staticmethod
    def current_key(template_id: str) -> str:
        return f"{CURRENT_PREFIX}{template_id}"

    @staticmethod
    def version_key(template_id: str, version: int) -> str:
        return f"{VERSIONS_PREFIX}{template_id}/{version}"

    # =========================================================================
    # Reads
    # =========================================================================

    def get_current(self, template_id: str) -> Optional[QuestionnaireSchema]:
        data = self.store.get(self.current_key(template_id))
        return QuestionnaireSchema.from_dict(data) if data is not None else None

    def get_version(self, template_id: str, version: int) -> Optional[SchemaSnapshot]:
        data = self.store.get(self.version_key(template_id, version))
        return SchemaSnapshot.from_dict(data) if data is not None else None

    def list_versions(self, template_id: str) -> list[SchemaSnapshot]:
        """Archived versions, newest first."""
        records = self.store.list(f"{VERSIONS_PREFIX}{template_id}/")
        snapshots = [SchemaSnapshot.from_dict(r) for r in records]
        return sorted(
            (s for s in snapshots if s.template_id == template_id),
            key=lambda s: s.version,
            reverse=True,
        )

    def list_templates(self) -> list[dict[str, Any]]:
        """Index entries for every template, by template id."""
        metadata = self.store.get(METADATA_KEY)
        if metadata and metadata.get("templates"):
            entries = metadata["templates"]
        else:
            entries = {
                r["template_id"]: self._metadata_entry(QuestionnaireSchema.from_dict(r))
                for r in self.store.list(CURRENT_PREFIX)
            }
        return [dict(entries[k], template_id=k) for k in sorted(entries)]

    def validate(self, schema: QuestionnaireSchema) -> list[FieldError]:
        return validate_schema(schema)

    # =========================================================================
    # Writes
    # =========================================================================

    def save(self, schema: QuestionnaireSchema, updated_by: Optional[str] = None) -> QuestionnaireSchema:
        """
        Validate and save a schema as the new current version.

        The pre-save current version is archived first (if it is not
        already), then the new version is written as current and archived
        under its own number.

        Raises:
            SchemaValidationError: With one FieldError per offending field
        """
        errors = self.validate(schema)
        if errors:
            raise SchemaValidationError(
                message=f"Template '{schema.template_id}' has {len(errors)} invalid field(s)",
                details={"template_id": schema.template_id},
                field_errors=errors,
            )

        existing = self.get_current(schema.template_id)
        latest_archived = self._latest_archived_version(schema.template_id)

        if existing is not None and existing.version > 0:
            if self.get_version(existing.template_id, existing.version) is None:
                self._archive(existing.snapshot())
                latest_archived = max(latest_archived, existing.version)

        now = utc_now()
        base_version = max(existing.version if existing else 0, latest_archived)
        saved = replace(
            schema,
            version=base_version + 1,
            created_at=existing.created_at if existing else now,
            updated_at=now,
            updated_by=updated_by or schema.updated_by,
        )

        self.store.set(self.current_key(saved.template_id), saved.to_dict())
        self._archive(saved.snapshot(created_by=updated_by))
        self._update_metadata(saved)

        logger.info(
            "Saved template %s version %d (%s)",
            saved.template_id, saved.version, saved.schema_hash[:12],
        )
        return saved

    def ensure_template(self, schema: QuestionnaireSchema, updated_by: str = "system") -> QuestionnaireSchema:
        """Save a schema only if no current version exists yet."""
        existing = self.get_current(schema.template_id)
        if existing is not None:
            return existing
        return self.save(schema, updated_by=updated_by)

    def remove_field(
        self,
        template_id: str,
        field_id: str,
        updated_by: Optional[str] = None,
    ) -> QuestionnaireSchema:
        """
        Soft-delete a field in a new version.

        The field stays in the schema flagged removed, and older versions
        keep it untouched.
        """
        current = self.get_current(template_id)
        if current is None:
            raise SchemaNotFoundError(
                message=f"Template not found: {template_id}",
                details={"template_id": template_id},
            )
        if field_id not in current.field_ids:
            raise SchemaValidationError(
                message=f"Field '{field_id}' does not exist in template '{template_id}'",
                details={"template_id": template_id},
                field_errors=[FieldError(field_id=field_id, message="Unknown field")],
            )
        return self.save(current.with_field_removed(field_id), updated_by=updated_by)

    # =========================================================================
    # Resolution
    # =========================================================================

    def resolve_schema(
        self,
        template_id: str,
        pinned_version: Optional[int] = None,
    ) -> Optional[ResolvedSchema]:
        """
        Resolve the schema a submission must be rendered against.

        Args:
            template_id: Template identifier
            pinned_version: Version stored on the submission (None -> current)

        Returns:
            ResolvedSchema, or None when neither the pinned version nor a
            current schema exists

        Raises:
            SchemaVersionNotFoundError: With strict_history, when the
                pinned version is not archived
        """
        if pinned_version is not None:
            snapshot = self.get_version(template_id, pinned_version)
            if snapshot is not None:
                return ResolvedSchema(schema=snapshot, requested_version=pinned_version)
            if self.strict_history:
                raise SchemaVersionNotFoundError(
                    message=f"Template {template_id} version {pinned_version} is not archived",
                    details={"template_id": template_id, "version": pinned_version},
                )

        current = self.get_current(template_id)
        if current is None:
            return None

        fell_back = pinned_version is not None and pinned_version != current.version
        if fell_back:
            logger.warning(
                "Template %s version %s not archived; falling back to current version %d",
                template_id, pinned_version, current.version,
            )
        return ResolvedSchema(
            schema=current.snapshot(),
            requested_version=pinned_version,
            fell_back=fell_back,
        )

    def resolve_schema_or_raise(
        self,
        template_id: str,
        pinned_version: Optional[int] = None,
    ) -> ResolvedSchema:
        resolved = self.resolve_schema(template_id, pinned_version)
        if resolved is None:
            raise SchemaNotFoundError(
                message=f"Template not found: {template_id}",
                details={"template_id": template_id, "version": pinned_version},
            )
        return resolved

    # =========================================================================
    # Internals
    # =========================================================================

    def _archive(self, snapshot: SchemaSnapshot) -> None:
        self.store.set(self.version_key(snapshot.template_id, snapshot.version), snapshot.to_dict())

    def _latest_archived_version(self, template_id: str) -> int:
        prefix = f"{VERSIONS_PREFIX}{template_id}/"
        versions = [
            int(key[len(prefix):])
            for key in self.store.keys(prefix)
            if key[len(prefix):].isdigit()
        ]
        return max(versions, default=0)

    @staticmethod
    def _metadata_entry(schema: QuestionnaireSchema) -> dict[str, Any]:
        return {
            "name": schema.name,
            "gate": schema.gate.value if schema.gate else None,
            "current_version": schema.version,
            "updated_at": schema.updated_at.isoformat(),
            "updated_by": schema.updated_by,
        }

    def _update_metadata(self, schema: QuestionnaireSchema) -> None:
        try:
            metadata = self.store.get(METADATA_KEY) or {"templates": {}}
            metadata.setdefault("templates", {})[schema.template_id] = self._metadata_entry(schema)
            self.store.set(METADATA_KEY, metadata)
        except StoreError as e:
            logger.warning("Template metadata update failed for %s: %s", schema.template_id, e)
