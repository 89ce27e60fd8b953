"""Questionnaire template endpoints."""

from typing import Any, Optional

from fastapi import APIRouter, Body, Depends, HTTPException

from api.dependencies import get_identity, get_service
from api.schemas.responses import TemplateSummary, TemplateVersionSummary
from gatepilot.access import CallerIdentity
from gatepilot.packs import PackLoader
from gatepilot.service import GateService

router = APIRouter(prefix="/templates", tags=["Templates"])

# Template bodies use the questionnaire pack format
loader = PackLoader(strict_version=False)


def _require_current(service: GateService, template_id: str):
    schema = service.templates.get_current(template_id)
    if schema is None:
        raise HTTPException(status_code=404, detail=f"Template '{template_id}' not found")
    return schema


@router.get("", response_model=list[TemplateSummary])
async def list_templates(service: GateService = Depends(get_service)):
    """List every questionnaire template with its current version."""
    return [TemplateSummary(**entry) for entry in service.templates.list_templates()]


@router.get("/{template_id}")
async def get_template(template_id: str, service: GateService = Depends(get_service)):
    """Current editable schema."""
    return _require_current(service, template_id).to_dict()


@router.put("/{template_id}")
async def save_template(
    template_id: str,
    document: dict[str, Any] = Body(..., description="Questionnaire pack document"),
    identity: CallerIdentity = Depends(get_identity),
    service: GateService = Depends(get_service),
):
    """
    Save a new version of a template.

    The previous version stays archived; submissions that pinned it keep
    rendering against it.
    """
    document = dict(document)
    document.setdefault("id", template_id)
    if document["id"] != template_id:
        raise HTTPException(
            status_code=400,
            detail=f"Document id '{document['id']}' does not match template '{template_id}'",
        )
    schema = loader.questionnaire_from_dict(document, source=f"PUT /templates/{template_id}")
    return service.save_template(schema, identity).to_dict()


@router.delete("/{template_id}/fields/{field_id}")
async def remove_field(
    template_id: str,
    field_id: str,
    identity: CallerIdentity = Depends(get_identity),
    service: GateService = Depends(get_service),
):
    """Soft-delete a field; it remains visible on older versions."""
    return service.remove_template_field(template_id, field_id, identity).to_dict()


@router.get("/{template_id}/versions", response_model=list[TemplateVersionSummary])
async def list_versions(template_id: str, service: GateService = Depends(get_service)):
    """Archived versions, newest first."""
    _require_current(service, template_id)
    return [
        TemplateVersionSummary(
            template_id=s.template_id,
            version=s.version,
            created_at=s.created_at.isoformat() if s.created_at else None,
            created_by=s.created_by,
            schema_hash=s.schema_hash,
        )
        for s in service.templates.list_versions(template_id)
    ]


@router.get("/{template_id}/versions/{version}")
async def get_version(template_id: str, version: int, service: GateService = Depends(get_service)):
    snapshot = service.templates.get_version(template_id, version)
    if snapshot is None:
        raise HTTPException(status_code=404, detail=f"Template '{template_id}' version {version} not found")
    return snapshot.to_dict()


@router.get("/{template_id}/resolve")
async def resolve(template_id: str, version: Optional[int] = None, service: GateService = Depends(get_service)):
    """Resolve a pinned version, falling back to the current schema when it is not archived."""
    return service.templates.resolve_schema_or_raise(template_id, version).to_dict()
