"""
GatePilot Submission Models

An immutable, schema-version-pinned record of one questionnaire's
answers plus the signer's attestation.

Submissions are append-only: a partner re-answering a questionnaire
creates a new submission which supersedes the previous one on the gate.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Optional
from uuid import uuid4

from .enums import SectionResult, SignatureKind, SubmissionStatus, UserRole
from .rules import SectionVerdict
from .timestamps import format_datetime, parse_datetime, utc_now


# =============================================================================
# Signature Attestation
# =============================================================================

@dataclass(frozen=True)
class SignatureAttestation:
    """
    Opaque signed-attestation record captured by the signature UI.

    Stored and displayed verbatim. Nothing here is cryptographically
    verified.

    Attributes:
        kind: typed or drawn
        rendered_data: typed name, or encoded drawing for drawn signatures
        signer_name: Name of the signer
        signer_email: Email of the signer
        timestamp: When the signature was captured
        originating_address: Network address the signature came from
        client_descriptor: User agent / client description
    """
    kind: SignatureKind
    rendered_data: str
    signer_name: str
    signer_email: str
    timestamp: datetime = field(default_factory=utc_now)
    originating_address: Optional[str] = None
    client_descriptor: Optional[str] = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "kind": self.kind.value,
            "rendered_data": self.rendered_data,
            "signer_name": self.signer_name,
            "signer_email": self.signer_email,
            "timestamp": format_datetime(self.timestamp),
            "originating_address": self.originating_address,
            "client_descriptor": self.client_descriptor,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> SignatureAttestation:
        return cls(
            kind=SignatureKind(data.get("kind") or data.get("type")),
            rendered_data=data.get("rendered_data") or data.get("data") or "",
            signer_name=data.get("signer_name", ""),
            signer_email=data.get("signer_email", ""),
            timestamp=parse_datetime(data.get("timestamp")) or utc_now(),
            originating_address=data.get("originating_address"),
            client_descriptor=data.get("client_descriptor"),
        )


# =============================================================================
# Section Answers
# =============================================================================

@dataclass
class SectionAnswers:
    """Submitted field values for one section plus its computed verdict."""
    section_id: str
    fields: dict[str, Any] = field(default_factory=dict)
    verdict: SectionVerdict = field(
        default_factory=lambda: SectionVerdict(result=SectionResult.PENDING)
    )

    def to_dict(self) -> dict[str, Any]:
        return {
            "section_id": self.section_id,
            "fields": dict(self.fields),
            "verdict": self.verdict.to_dict(),
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> SectionAnswers:
        verdict = data.get("verdict")
        return cls(
            section_id=data["section_id"],
            fields=dict(data.get("fields") or {}),
            verdict=SectionVerdict.from_dict(verdict) if verdict else SectionVerdict(result=SectionResult.PENDING),
        )


# =============================================================================
# Submission
# =============================================================================

def new_submission_id() -> str:
    return f"submission-{uuid4().hex[:12]}"


@dataclass
class Submission:
    """
    One partner's answers to one questionnaire at one point in time.

    schema_version is fixed at creation and never changes; re-rendering
    must resolve exactly that version.

    Attributes:
        id: Unique identifier
        questionnaire_id: Questionnaire (template) answered
        schema_version: Version of the schema current at creation
        schema_hash: Structural hash of that schema version
        partner_id: Owning partner
        sections: Answers and verdict per section
        overall_status: Aggregate verdict
        signature: Signer's attestation
        submitted_by: Submitter identity (email)
        submitted_by_role: Submitter role
        qualification: Gate qualification note recorded at scoring time
        supersedes: Submission this one replaces after a manual review
    """
    id: str
    questionnaire_id: str
    schema_version: int
    partner_id: str
    sections: list[SectionAnswers]
    overall_status: SubmissionStatus
    signature: SignatureAttestation
    submitted_by: str
    submitted_by_role: UserRole
    schema_hash: Optional[str] = None
    originating_address: Optional[str] = None
    client_descriptor: Optional[str] = None
    created_at: datetime = field(default_factory=utc_now)
    qualification: Optional[dict[str, Any]] = None
    supersedes: Optional[str] = None

    @property
    def section_verdicts(self) -> dict[str, SectionVerdict]:
        return {s.section_id: s.verdict for s in self.sections}

    @property
    def answers(self) -> dict[str, dict[str, Any]]:
        return {s.section_id: s.fields for s in self.sections}

    def all_answers(self) -> dict[str, Any]:
        """Flatten every section's answers into one field_id -> value map."""
        merged: dict[str, Any] = {}
        for s in self.sections:
            merged.update(s.fields)
        return merged

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "questionnaire_id": self.questionnaire_id,
            "schema_version": self.schema_version,
            "schema_hash": self.schema_hash,
            "partner_id": self.partner_id,
            "sections": [s.to_dict() for s in self.sections],
            "overall_status": self.overall_status.value,
            "signature": self.signature.to_dict(),
            "submitted_by": self.submitted_by,
            "submitted_by_role": self.submitted_by_role.value,
            "originating_address": self.originating_address,
            "client_descriptor": self.client_descriptor,
            "created_at": format_datetime(self.created_at),
            "qualification": self.qualification,
            "supersedes": self.supersedes,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Submission:
        return cls(
            id=data["id"],
            questionnaire_id=data["questionnaire_id"],
            schema_version=int(data["schema_version"]),
            schema_hash=data.get("schema_hash"),
            partner_id=data["partner_id"],
            sections=[SectionAnswers.from_dict(s) for s in data.get("sections") or []],
            overall_status=SubmissionStatus(data.get("overall_status", SubmissionStatus.PENDING.value)),
            signature=SignatureAttestation.from_dict(data["signature"]),
            submitted_by=data["submitted_by"],
            submitted_by_role=UserRole(data["submitted_by_role"]),
            originating_address=data.get("originating_address"),
            client_descriptor=data.get("client_descriptor"),
            created_at=parse_datetime(data.get("created_at")) or utc_now(),
            qualification=data.get("qualification"),
            supersedes=data.get("supersedes"),
        )
