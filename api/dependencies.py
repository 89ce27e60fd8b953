"""Shared service instance and caller identity for the routers."""

from fastapi import Header, HTTPException

from gatepilot.access import CallerIdentity
from gatepilot.models import UserRole
from gatepilot.service import GateService

# Shared service instance (set by main.py)
service: GateService = None


def set_service(s: GateService):
    global service
    service = s


def get_service() -> GateService:
    if service is None:
        raise HTTPException(status_code=503, detail="Service not initialized")
    return service


def get_identity(
    x_user_email: str = Header(..., description="Caller email from the identity provider"),
    x_user_role: str = Header(..., description="PAM|PDM|TPM|PSM|TAM|Admin"),
) -> CallerIdentity:
    """Read caller identity and role supplied by the identity provider."""
    try:
        role = UserRole(x_user_role)
    except ValueError:
        allowed = ", ".join(r.value for r in UserRole)
        raise HTTPException(status_code=400, detail=f"Unknown role '{x_user_role}'. Expected one of: {allowed}")
    if not x_user_email.strip():
        raise HTTPException(status_code=400, detail="X-User-Email header is empty")
    return CallerIdentity(email=x_user_email.strip(), role=role)
