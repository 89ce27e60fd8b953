"""
GatePilot Gate State Machine

Aggregates submission verdicts into gate status and enforces strictly
sequential advancement through the configured gate order.

Key features:
- Status derived from the latest submission per required questionnaire
- Gate-specific qualification policies (threshold, N-of-M sections)
- Manual block that suppresses recalculation until cleared
- Completion transition: the only code path that moves current_gate

Every operation is pure with respect to its inputs. Transitions work on
a copy of the partner record and return it inside an outcome object;
callers persist the result. Policy violations are returned as outcomes
carrying a reason, never raised.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Iterable, Mapping, Optional

from ..models import (
    Approval,
    GateConfig,
    GateId,
    GateProgress,
    GateStatus,
    PartnerRecord,
    SignatureAttestation,
    Submission,
    SubmissionStatus,
    UserRole,
    default_gate_config,
    utc_now,
)
from .qualification import QualificationResult, evaluate_policy

logger = logging.getLogger(__name__)


# =============================================================================
# Outcome Objects
# =============================================================================

@dataclass
class GateCheck:
    """Whether a partner may enter a gate, and if not, which gate blocks it."""
    allowed: bool
    gate_id: GateId
    blocking_gate: Optional[GateId] = None
    reason: Optional[str] = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "allowed": self.allowed,
            "gate_id": self.gate_id.value,
            "blocking_gate": self.blocking_gate.value if self.blocking_gate else None,
            "reason": self.reason,
        }


@dataclass
class GateTransition:
    """
    Result of a state-changing operation.

    When ok is False, partner is the unmodified input and reason says why.
    """
    ok: bool
    partner: PartnerRecord
    gate_id: GateId
    reason: Optional[str] = None
    blocking_gate: Optional[GateId] = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "ok": self.ok,
            "partner_id": self.partner.id,
            "gate_id": self.gate_id.value,
            "reason": self.reason,
            "blocking_gate": self.blocking_gate.value if self.blocking_gate else None,
        }


@dataclass
class GateSummary:
    """Read model for one gate, as shown on progress views."""
    gate_id: GateId
    name: str
    status: GateStatus
    completion_percentage: int
    blockers: list[str] = field(default_factory=list)
    is_current: bool = False
    started_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None
    approvals: int = 0

    def to_dict(self) -> dict[str, Any]:
        return {
            "gate_id": self.gate_id.value,
            "name": self.name,
            "status": self.status.value,
            "completion_percentage": self.completion_percentage,
            "blockers": list(self.blockers),
            "is_current": self.is_current,
            "started_at": self.started_at.isoformat() if self.started_at else None,
            "completed_at": self.completed_at.isoformat() if self.completed_at else None,
            "approvals": self.approvals,
        }


def initialize_gate_progress(gate_id: GateId) -> GateProgress:
    """Fresh, not-started progress record for a gate."""
    return GateProgress(gate_id=gate_id, status=GateStatus.NOT_STARTED)


# =============================================================================
# Gate State Machine
# =============================================================================

@dataclass
class GateStateMachine:
    """
    Gate status calculation and transitions over an injected GateConfig.

    Usage:
        machine = GateStateMachine(config=default_gate_config())

        status = machine.calculate_status(progress, submissions, partner)
        check = machine.can_advance(partner, GateId.GATE_1, submissions)
        if not check.allowed:
            print(check.reason)

        result = machine.complete_gate(partner, GateId.GATE_0, ...)
        if result.ok:
            repository.save(result.partner)

    submissions is always a mapping of submission id -> Submission that
    contains (at least) every submission the partner's progress refers to.
    """

    config: GateConfig = field(default_factory=default_gate_config)

    # =========================================================================
    # Status
    # =========================================================================

    def latest_submissions(
        self,
        progress: GateProgress,
        submissions: Mapping[str, Submission],
    ) -> dict[str, Submission]:
        """Latest submission per required questionnaire that has one."""
        latest: dict[str, Submission] = {}
        for questionnaire_id in self.config.required_questionnaires(progress.gate_id):
            submission_id = progress.questionnaires.get(questionnaire_id)
            if submission_id and submission_id in submissions:
                latest[questionnaire_id] = submissions[submission_id]
        return latest

    def missing_questionnaires(
        self,
        progress: GateProgress,
        submissions: Mapping[str, Submission],
    ) -> list[str]:
        latest = self.latest_submissions(progress, submissions)
        return [
            q for q in self.config.required_questionnaires(progress.gate_id)
            if q not in latest
        ]

    def qualification(
        self,
        progress: GateProgress,
        submissions: Mapping[str, Submission],
        partner: Optional[PartnerRecord] = None,
    ) -> Optional[QualificationResult]:
        """Apply the gate's policy, if any, to its latest submissions."""
        policy = self.config.policy_for(progress.gate_id)
        if policy is None:
            return None
        latest = self.latest_submissions(progress, submissions)
        return evaluate_policy(policy, latest.values(), partner)

    def calculate_status(
        self,
        progress: GateProgress,
        submissions: Mapping[str, Submission],
        partner: Optional[PartnerRecord] = None,
    ) -> GateStatus:
        """
        Derive a gate's status from the latest submission per required
        questionnaire.

        Args:
            progress: The gate's progress record
            submissions: submission id -> Submission
            partner: Partner record, read by threshold policies

        Returns:
            The computed GateStatus. BLOCKED is returned unchanged and a
            completed gate stays PASSED.
        """
        if progress.status == GateStatus.BLOCKED:
            return GateStatus.BLOCKED
        if progress.completed_at is not None:
            return GateStatus.PASSED

        required = self.config.required_questionnaires(progress.gate_id)
        if not required:
            return GateStatus.PASSED if progress.started_at else GateStatus.NOT_STARTED

        latest = self.latest_submissions(progress, submissions)
        if not latest:
            return GateStatus.NOT_STARTED
        if len(latest) < len(required):
            return GateStatus.IN_PROGRESS

        policy = self.config.policy_for(progress.gate_id)
        if policy is not None:
            result = evaluate_policy(policy, latest.values(), partner)
            if result.qualifies:
                return GateStatus.PASSED
            if policy.has_minimum_count:
                return GateStatus.IN_PROGRESS if result.could_still_qualify else GateStatus.FAILED

        statuses = [s.overall_status for s in latest.values()]
        if all(s == SubmissionStatus.PASS for s in statuses):
            return GateStatus.PASSED
        if any(s == SubmissionStatus.FAIL for s in statuses):
            return GateStatus.FAILED
        return GateStatus.IN_PROGRESS

    def gate_status(
        self,
        partner: PartnerRecord,
        gate_id: GateId,
        submissions: Mapping[str, Submission],
    ) -> GateStatus:
        progress = partner.gate(gate_id)
        if progress is None:
            return GateStatus.NOT_STARTED
        return self.calculate_status(progress, submissions, partner)

    def completion_percentage(
        self,
        progress: GateProgress,
        submissions: Mapping[str, Submission],
    ) -> int:
        """
        Share of required questionnaires with any submission, 0-100.

        Progress display only; never used for gating decisions.
        """
        required = self.config.required_questionnaires(progress.gate_id)
        if not required:
            return 100 if progress.started_at or progress.completed_at else 0
        present = len(self.latest_submissions(progress, submissions))
        return round(present * 100 / len(required))

    # =========================================================================
    # Progression
    # =========================================================================

    def can_advance(
        self,
        partner: PartnerRecord,
        target_gate: GateId,
        submissions: Mapping[str, Submission],
    ) -> GateCheck:
        """
        Check that every gate strictly before target_gate has passed.

        Returns:
            GateCheck naming the first blocking gate and why it blocks
        """
        if self.config.index_of(target_gate) < 0:
            return GateCheck(
                allowed=False,
                gate_id=target_gate,
                reason=f"Gate {target_gate.value} is not part of the configured gate order",
            )

        target_name = self.config.name_of(target_gate)
        for gate_id in self.config.gates_before(target_gate):
            name = self.config.name_of(gate_id)
            progress = partner.gate(gate_id)
            if progress is None:
                return GateCheck(
                    allowed=False,
                    gate_id=target_gate,
                    blocking_gate=gate_id,
                    reason=f"Previous gate ({name}) has not been started",
                )
            status = self.calculate_status(progress, submissions, partner)
            if status != GateStatus.PASSED:
                return GateCheck(
                    allowed=False,
                    gate_id=target_gate,
                    blocking_gate=gate_id,
                    reason=(
                        f'Previous gate "{name}" must be completed before '
                        f"progressing to {target_name} (status: {status.value})"
                    ),
                )
        return GateCheck(allowed=True, gate_id=target_gate)

    def can_submit(
        self,
        partner: PartnerRecord,
        questionnaire_id: str,
        submissions: Mapping[str, Submission],
    ) -> GateCheck:
        """Check that the questionnaire belongs to a gate the partner may enter."""
        gate_id = self.config.gate_for_questionnaire(questionnaire_id)
        if gate_id is None:
            return GateCheck(
                allowed=False,
                gate_id=partner.current_gate,
                reason=f"Questionnaire '{questionnaire_id}' is not required by any gate",
            )
        return self.can_advance(partner, gate_id, submissions)

    def gate_blockers(
        self,
        partner: PartnerRecord,
        target_gate: GateId,
        submissions: Mapping[str, Submission],
    ) -> list[str]:
        """Progression reason (if any) followed by the gate's own blockers."""
        blockers: list[str] = []
        check = self.can_advance(partner, target_gate, submissions)
        if not check.allowed and check.reason:
            blockers.append(check.reason)
        progress = partner.gate(target_gate)
        if progress is not None:
            blockers.extend(progress.blockers)
        return blockers

    # =========================================================================
    # Transitions
    # =========================================================================

    def start_gate(
        self,
        partner: PartnerRecord,
        gate_id: GateId,
        submissions: Mapping[str, Submission],
        now: Optional[datetime] = None,
    ) -> GateTransition:
        """Enter a gate: initialize its progress and set the start timestamp."""
        check = self.can_advance(partner, gate_id, submissions)
        if not check.allowed:
            return GateTransition(False, partner, gate_id, check.reason, check.blocking_gate)

        updated = partner.copy()
        progress = updated.gates.setdefault(gate_id, initialize_gate_progress(gate_id))
        if progress.started_at is None:
            progress.started_at = now or utc_now()
        if progress.status != GateStatus.BLOCKED:
            progress.status = self.calculate_status(progress, submissions, updated)
        return GateTransition(True, updated, gate_id)

    def record_submission(
        self,
        partner: PartnerRecord,
        submission: Submission,
        submissions: Mapping[str, Submission],
        now: Optional[datetime] = None,
    ) -> GateTransition:
        """
        Reference a new submission from its owning gate and recompute status.

        The submission supersedes any earlier one for the same questionnaire.
        """
        check = self.can_submit(partner, submission.questionnaire_id, submissions)
        if not check.allowed:
            return GateTransition(False, partner, check.gate_id, check.reason, check.blocking_gate)

        gate_id = check.gate_id
        known = dict(submissions)
        known[submission.id] = submission

        updated = partner.copy()
        progress = updated.gates.setdefault(gate_id, initialize_gate_progress(gate_id))
        if progress.started_at is None:
            progress.started_at = now or submission.created_at
        progress.questionnaires[submission.questionnaire_id] = submission.id
        if progress.status != GateStatus.BLOCKED:
            progress.status = self.calculate_status(progress, known, updated)
        return GateTransition(True, updated, gate_id)

    def complete_gate(
        self,
        partner: PartnerRecord,
        gate_id: GateId,
        approver: str,
        approver_role: UserRole,
        signature: SignatureAttestation,
        submissions: Mapping[str, Submission],
        notes: Optional[str] = None,
        now: Optional[datetime] = None,
    ) -> GateTransition:
        """
        Record approval of a passed gate and unlock the next one.

        Only succeeds when every earlier gate has passed and the gate's own
        computed status is PASSED. On success: approval appended, completion
        timestamped, blockers cleared, current_gate moved to the next gate
        (never backwards) and the next gate's progress initialized.
        On refusal nothing is modified.
        """
        name = self.config.name_of(gate_id)

        check = self.can_advance(partner, gate_id, submissions)
        if not check.allowed:
            return GateTransition(False, partner, gate_id, check.reason, check.blocking_gate)

        progress = partner.gate(gate_id)
        if progress is None:
            return GateTransition(False, partner, gate_id, f'Gate "{name}" has not been started')
        if progress.completed_at is not None:
            return GateTransition(False, partner, gate_id, f'Gate "{name}" is already completed')

        status = self.calculate_status(progress, submissions, partner)
        if status != GateStatus.PASSED:
            return GateTransition(
                False, partner, gate_id, self._not_passed_reason(name, progress, status, submissions, partner)
            )

        now = now or utc_now()
        updated = partner.copy()
        target = updated.gates[gate_id]
        target.status = GateStatus.PASSED
        target.completed_at = now
        target.blockers = []
        target.approvals.append(Approval(
            approved_by=approver,
            approved_by_role=approver_role,
            signature=signature,
            approved_at=now,
            notes=notes,
        ))

        next_gate = self.config.next_gate(gate_id)
        if next_gate is not None:
            if self.config.index_of(next_gate) > self.config.index_of(updated.current_gate):
                updated.current_gate = next_gate
            updated.gates.setdefault(next_gate, initialize_gate_progress(next_gate))

        logger.info(
            "Gate %s completed for partner %s by %s (%s); current gate now %s",
            gate_id.value, partner.id, approver, approver_role.value, updated.current_gate.value,
        )
        return GateTransition(True, updated, gate_id)

    def block_gate(
        self,
        partner: PartnerRecord,
        gate_id: GateId,
        reasons: Iterable[str],
    ) -> GateTransition:
        """Force BLOCKED with explicit reasons; current_gate is untouched."""
        reasons = [r.strip() for r in reasons if r and r.strip()]
        name = self.config.name_of(gate_id)
        if not reasons:
            return GateTransition(False, partner, gate_id, "At least one blocker reason is required")
        if self.config.index_of(gate_id) < 0:
            return GateTransition(False, partner, gate_id, f"Gate {gate_id.value} is not part of the configured gate order")
        existing = partner.gate(gate_id)
        if existing is not None and existing.completed_at is not None:
            return GateTransition(False, partner, gate_id, f'Gate "{name}" is already completed and cannot be blocked')

        updated = partner.copy()
        progress = updated.gates.setdefault(gate_id, initialize_gate_progress(gate_id))
        progress.status = GateStatus.BLOCKED
        progress.blockers = reasons
        logger.info("Gate %s blocked for partner %s: %s", gate_id.value, partner.id, "; ".join(reasons))
        return GateTransition(True, updated, gate_id)

    def unblock_gate(
        self,
        partner: PartnerRecord,
        gate_id: GateId,
        submissions: Mapping[str, Submission],
    ) -> GateTransition:
        """Clear a manual block and resume automatic recalculation."""
        progress = partner.gate(gate_id)
        if progress is None or progress.status != GateStatus.BLOCKED:
            return GateTransition(False, partner, gate_id, f'Gate "{self.config.name_of(gate_id)}" is not blocked')

        updated = partner.copy()
        target = updated.gates[gate_id]
        target.blockers = []
        target.status = GateStatus.NOT_STARTED
        target.status = self.calculate_status(target, submissions, updated)
        logger.info("Gate %s unblocked for partner %s", gate_id.value, partner.id)
        return GateTransition(True, updated, gate_id)

    # =========================================================================
    # Read Models
    # =========================================================================

    def overview(
        self,
        partner: PartnerRecord,
        submissions: Mapping[str, Submission],
    ) -> list[GateSummary]:
        """Status, completion and blockers for every configured gate."""
        summaries: list[GateSummary] = []
        for definition in self.config.gates:
            progress = partner.gate(definition.id) or initialize_gate_progress(definition.id)
            summaries.append(GateSummary(
                gate_id=definition.id,
                name=definition.name,
                status=self.calculate_status(progress, submissions, partner),
                completion_percentage=self.completion_percentage(progress, submissions),
                blockers=self.gate_blockers(partner, definition.id, submissions),
                is_current=definition.id == partner.current_gate,
                started_at=progress.started_at,
                completed_at=progress.completed_at,
                approvals=len(progress.approvals),
            ))
        return summaries

    def _not_passed_reason(
        self,
        name: str,
        progress: GateProgress,
        status: GateStatus,
        submissions: Mapping[str, Submission],
        partner: PartnerRecord,
    ) -> str:
        if status == GateStatus.BLOCKED:
            return f'Gate "{name}" is blocked: {"; ".join(progress.blockers) or "no reason recorded"}'
        missing = self.missing_questionnaires(progress, submissions)
        if missing:
            return f'Gate "{name}" is missing submissions for: {", ".join(missing)}'
        qualification = self.qualification(progress, submissions, partner)
        if qualification is not None and not qualification.qualifies:
            return f'Gate "{name}" has not passed: {qualification.reason}'
        return f'Gate "{name}" has not passed (status: {status.value})'
