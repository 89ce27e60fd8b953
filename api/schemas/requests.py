"""Request schemas for the API."""

from pydantic import BaseModel, Field
from typing import Any, Literal, Optional


class SignatureInput(BaseModel):
    """Signed attestation captured by the signature UI."""
    kind: Literal["typed", "drawn"] = Field(..., description="typed|drawn")
    rendered_data: str = Field(..., min_length=1, description="Typed name or encoded drawing")
    signer_name: str = Field(..., min_length=1)
    signer_email: str = Field(..., min_length=3)
    timestamp: Optional[str] = Field(default=None, description="ISO timestamp; server time when omitted")

    model_config = {
        "json_schema_extra": {
            "examples": [
                {
                    "kind": "typed",
                    "rendered_data": "Jordan Lee",
                    "signer_name": "Jordan Lee",
                    "signer_email": "jordan.lee@example.com",
                }
            ]
        }
    }


class PartnerCreateRequest(BaseModel):
    """Request to create a partner at the first gate."""
    name: str = Field(..., description="Partner display name")
    pam_owner: str = Field(..., description="Partner Account Manager email")
    pdm_owner: Optional[str] = None
    psm_owner: Optional[str] = None
    tam_owner: Optional[str] = None
    contract_type: Optional[str] = Field(default=None, description="PPA|Distribution|Sales-Agent|Other")
    tier: Optional[str] = Field(default=None, description="tier-0|tier-1|tier-2")
    ccv: Optional[float] = Field(default=None, description="Contractually committed value")
    lrp: Optional[float] = Field(default=None, description="Launch revenue potential")
    contract_signed_date: Optional[str] = None
    target_launch_date: Optional[str] = None
    actual_launch_date: Optional[str] = None

    model_config = {
        "json_schema_extra": {
            "examples": [
                {
                    "name": "Acme Connectivity",
                    "pam_owner": "pam@example.com",
                    "pdm_owner": "pdm@example.com",
                    "contract_type": "PPA",
                    "tier": "tier-1",
                    "ccv": 12000000,
                }
            ]
        }
    }


class SubmissionRequest(BaseModel):
    """Signed questionnaire submission for a partner."""
    partner_id: str
    questionnaire_id: str = Field(..., description="Template answered, e.g. 'gate-0-kickoff'")
    answers: dict[str, dict[str, Any]] = Field(..., description="section_id -> field_id -> value")
    signature: SignatureInput
    expected_revision: Optional[int] = Field(default=None, description="Partner revision the caller read")

    model_config = {
        "json_schema_extra": {
            "examples": [
                {
                    "partner_id": "partner-0123456789ab",
                    "questionnaire_id": "pre-contract",
                    "answers": {
                        "pdm-engagement": {"pdm-engagement-approved": "Yes"},
                    },
                    "signature": {
                        "kind": "typed",
                        "rendered_data": "Jordan Lee",
                        "signer_name": "Jordan Lee",
                        "signer_email": "jordan.lee@example.com",
                    },
                }
            ]
        }
    }


class SectionReviewRequest(BaseModel):
    """Reviewer's verdict on a manual-review section of a submission."""
    section_id: str
    result: Literal["pass", "fail"]
    failure_reasons: list[str] = Field(default=[])
    notes: Optional[str] = None
    expected_revision: Optional[int] = Field(default=None, description="Partner revision the caller read")

    model_config = {
        "json_schema_extra": {
            "examples": [
                {"section_id": "strategic-value", "result": "pass", "notes": "Clear market fit"}
            ]
        }
    }


class GateApprovalRequest(BaseModel):
    """Signed approval of a passed gate."""
    signature: SignatureInput
    notes: Optional[str] = None
    expected_revision: Optional[int] = None


class GateBlockRequest(BaseModel):
    """Manual block with at least one reason."""
    reasons: list[str] = Field(..., min_length=1)
    expected_revision: Optional[int] = None


class GateRevisionRequest(BaseModel):
    """Start or unblock a gate."""
    expected_revision: Optional[int] = None

