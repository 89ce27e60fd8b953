"""
Tests for GatePilot Gate Service

End-to-end flows over an in-memory store seeded with the shipped packs:
- Partner creation and visibility
- Submission scoring, pinning and gate recalculation
- Out-of-order submissions and completions refused with a reason
- Gate 0 qualification (4 of 6, and the CCV threshold)
- Rendering against the pinned schema after a template edit
"""
import pytest

from gatepilot.exceptions import (
    AccessDeniedError,
    PartnerNotFoundError,
    PartnerValidationError,
    SchemaNotFoundError,
    SchemaValidationError,
    StaleWriteError,
    SubmissionNotFoundError,
    SubmissionValidationError,
)
from gatepilot.models import (
    FieldValidation,
    FieldValidationType,
    GateId,
    GateStatus,
    SectionResult,
    SubmissionStatus,
    UserRole,
)
from gatepilot.access import UtilizationMode
from gatepilot.packs import PackLoader
from gatepilot.service import validate_partner_payload

from tests.conftest import (
    ADMIN,
    GATE_0_ANSWERS,
    OTHER_PAM,
    PACKS_DIR,
    PAM,
    PDM,
    PRE_CONTRACT_ANSWERS,
    answers_with,
    make_field,
    make_payload,
    make_schema,
    make_section,
    make_signature,
    make_verdict,
)


# =============================================================================
# Helpers
# =============================================================================

def pass_pre_contract(service, partner):
    """Submit passing pre-contract answers and complete the gate."""
    outcome = service.submit_questionnaire(partner.id, make_payload("pre-contract", PRE_CONTRACT_ANSWERS), PAM)
    assert outcome.gate_status == GateStatus.PASSED
    transition = service.complete_gate(partner.id, GateId.PRE_CONTRACT, ADMIN, make_signature())
    assert transition.ok, transition.reason
    return transition.partner


# =============================================================================
# Partners
# =============================================================================

class TestCreatePartner:
    """Tests for creating partners."""

    def test_starts_at_first_gate(self, partner):
        assert partner.id.startswith("partner-")
        assert partner.current_gate == GateId.PRE_CONTRACT
        assert partner.gates[GateId.PRE_CONTRACT].status == GateStatus.NOT_STARTED
        assert partner.revision == 1
        assert partner.ccv == 12_000_000

    def test_every_invalid_field_reported(self, service):
        with pytest.raises(PartnerValidationError) as exc_info:
            service.create_partner({"name": " ", "pam_owner": "not-an-email", "ccv": -5, "tier": "gold"}, ADMIN)

        assert {e.field_id for e in exc_info.value.field_errors} == {"name", "pam_owner", "ccv", "tier"}

    def test_pam_cannot_create_for_someone_else(self, service):
        with pytest.raises(AccessDeniedError):
            service.create_partner({"name": "Beta", "pam_owner": "other@example.com"}, PAM)

    def test_admin_creates_for_anyone(self, service):
        created = service.create_partner({"name": "Beta", "pam_owner": "other@example.com"}, ADMIN)
        assert created.pam_owner == "other@example.com"

    def test_payload_validation(self):
        errors = validate_partner_payload({
            "name": "Gamma",
            "pam_owner": "pam@example.com",
            "ccv": "lots",
            "contract_type": "Handshake",
            "target_launch_date": "next spring",
        })
        assert [e.field_id for e in errors] == ["contract_type", "ccv", "target_launch_date"]


class TestPartnerVisibility:

    def test_get_partner_checks_access(self, service, partner):
        assert service.get_partner(partner.id, PDM).id == partner.id
        with pytest.raises(AccessDeniedError):
            service.get_partner(partner.id, OTHER_PAM)

    def test_unknown_partner(self, service):
        with pytest.raises(PartnerNotFoundError):
            service.get_partner("partner-missing", ADMIN)

    def test_list_and_group(self, service, partner):
        service.create_partner({"name": "Beta", "pam_owner": "other@example.com"}, ADMIN)

        assert [p.name for p in service.list_partners(PAM)] == ["Acme Connectivity"]
        assert len(service.list_partners(ADMIN)) == 2
        grouped = service.partners_by_gate(ADMIN)
        assert len(grouped[GateId.PRE_CONTRACT]) == 2
        assert grouped[GateId.GATE_0] == []

    def test_pdm_workload(self, service):
        service.create_partner({"name": "Alpha", "pam_owner": PAM.email, "pdm_owner": PDM.email, "ccv": 3_000_000}, ADMIN)
        service.create_partner({"name": "Beta", "pam_owner": PAM.email, "pdm_owner": "PDM@example.com"}, ADMIN)

        by_count = service.pdm_workload(PDM.email, PDM, UtilizationMode.PARTNER_COUNT, 4)
        by_revenue = service.pdm_workload(PDM.email, ADMIN, UtilizationMode.REVENUE, 12_000_000)

        assert by_count.current_value == 2
        assert by_count.utilization_percentage == 50
        assert by_revenue.utilization_percentage == 25

    def test_pdm_workload_requires_role(self, service):
        with pytest.raises(AccessDeniedError):
            service.pdm_workload(PDM.email, PAM)


# =============================================================================
# Submissions
# =============================================================================

class TestSubmitQuestionnaire:
    """Tests for the submission data flow."""

    def test_passing_submission(self, service, partner):
        outcome = service.submit_questionnaire(partner.id, make_payload("pre-contract", PRE_CONTRACT_ANSWERS), PAM)

        assert outcome.accepted is True
        assert outcome.gate_id == GateId.PRE_CONTRACT
        assert outcome.overall_status == SubmissionStatus.PASS
        assert outcome.gate_status == GateStatus.PASSED
        assert outcome.qualification is None
        assert outcome.partner.revision == 2
        assert set(outcome.section_verdicts) == {"partner-profile", "commercial-terms", "pdm-engagement"}

    def test_submission_pins_schema(self, service, partner):
        outcome = service.submit_questionnaire(partner.id, make_payload("pre-contract", PRE_CONTRACT_ANSWERS), PAM)

        stored = service.get_submission(outcome.submission.id, PAM)
        current = service.templates.get_current("pre-contract")
        assert stored.schema_version == current.version == 1
        assert stored.schema_hash == current.schema_hash
        assert stored.submitted_by == PAM.email
        assert stored.submitted_by_role == UserRole.PAM
        assert stored.signature.signer_name == "Jordan Lee"
        assert stored.originating_address == "203.0.113.7"

    def test_failing_rule_reports_its_reason(self, service, partner):
        answers = answers_with(PRE_CONTRACT_ANSWERS, "commercial-terms", pricing_approved="No")

        outcome = service.submit_questionnaire(partner.id, make_payload("pre-contract", answers), PAM)

        verdict = outcome.section_verdicts["commercial-terms"]
        assert verdict.result == SectionResult.FAIL
        assert verdict.failure_reasons == ["Pricing must be approved by finance"]
        assert outcome.gate_status == GateStatus.FAILED

    def test_resubmission_supersedes(self, service, partner):
        failing = answers_with(PRE_CONTRACT_ANSWERS, "pdm-engagement", pdm_engagement_approved="No")
        first = service.submit_questionnaire(partner.id, make_payload("pre-contract", failing), PAM)
        second = service.submit_questionnaire(partner.id, make_payload("pre-contract", PRE_CONTRACT_ANSWERS), PAM)

        assert first.gate_status == GateStatus.FAILED
        assert second.gate_status == GateStatus.PASSED
        assert len(service.list_submissions(partner.id, PAM)) == 2
        assert second.partner.gates[GateId.PRE_CONTRACT].questionnaires == {"pre-contract": second.submission.id}

    def test_validation_errors_block_submission(self, service, partner):
        answers = answers_with(PRE_CONTRACT_ANSWERS, "partner-profile", partner_legal_name="", primary_contact_email="nope")

        with pytest.raises(SubmissionValidationError) as exc_info:
            service.submit_questionnaire(partner.id, make_payload("pre-contract", answers), PAM)

        assert {e.field_id for e in exc_info.value.field_errors} == {"partner-legal-name", "primary-contact-email"}
        assert service.list_submissions(partner.id, PAM) == []

    def test_out_of_order_submission_refused(self, service, partner):
        outcome = service.submit_questionnaire(partner.id, make_payload("gate-0-kickoff", GATE_0_ANSWERS), PAM)

        assert outcome.accepted is False
        assert outcome.blocking_gate == GateId.PRE_CONTRACT
        assert "must be completed before progressing to Gate 0" in outcome.reason
        assert outcome.to_dict()["submission_id"] is None
        assert service.list_submissions(partner.id, PAM) == []

    def test_unknown_questionnaire_refused(self, service, partner):
        outcome = service.submit_questionnaire(partner.id, make_payload("mystery", {}), PAM)
        assert outcome.accepted is False
        assert "not required by any gate" in outcome.reason

    def test_access_denied(self, service, partner):
        with pytest.raises(AccessDeniedError):
            service.submit_questionnaire(partner.id, make_payload("pre-contract", PRE_CONTRACT_ANSWERS), OTHER_PAM)

    def test_stale_revision_refused(self, service, partner):
        payload = make_payload("pre-contract", PRE_CONTRACT_ANSWERS, expected_revision=0)

        with pytest.raises(StaleWriteError):
            service.submit_questionnaire(partner.id, payload, PAM)

        assert service.get_partner(partner.id, PAM).revision == 1

    def test_filter_by_questionnaire(self, service, partner):
        pass_pre_contract(service, partner)
        service.submit_questionnaire(partner.id, make_payload("gate-0-kickoff", GATE_0_ANSWERS), PAM)

        listed = service.list_submissions(partner.id, PAM, questionnaire_id="gate-0-kickoff")

        assert [s.questionnaire_id for s in listed] == ["gate-0-kickoff"]


# =============================================================================
# Gate Progression
# =============================================================================

class TestGateProgression:
    """Tests for completion, blocking and the gate 0 policy."""

    def test_complete_moves_to_next_gate(self, service, partner):
        updated = pass_pre_contract(service, partner)

        assert updated.current_gate == GateId.GATE_0
        assert updated.gates[GateId.PRE_CONTRACT].approvals[0].approved_by == ADMIN.email
        assert updated.gates[GateId.GATE_0].status == GateStatus.NOT_STARTED
        assert service.get_partner(partner.id, PAM).current_gate == GateId.GATE_0

    def test_complete_refused_when_not_passed(self, service, partner):
        transition = service.complete_gate(partner.id, GateId.PRE_CONTRACT, ADMIN, make_signature())

        assert transition.ok is False
        assert "missing submissions" in transition.reason
        assert service.get_partner(partner.id, ADMIN).revision == partner.revision

    def test_complete_requires_approver_role(self, service, partner):
        with pytest.raises(AccessDeniedError):
            service.complete_gate(partner.id, GateId.PRE_CONTRACT, PAM, make_signature())

    def test_gate_0_passes_with_four_of_six(self, service, partner):
        pass_pre_contract(service, partner)
        answers = answers_with(GATE_0_ANSWERS, "partner-team", team_commitment_confirmed="No")

        outcome = service.submit_questionnaire(partner.id, make_payload("gate-0-kickoff", answers), PAM)

        assert outcome.overall_status == SubmissionStatus.FAIL
        assert outcome.gate_status == GateStatus.PASSED
        assert outcome.qualification["passed_sections"] == 4
        assert outcome.qualification["reason"] == "Partner meets 4 of 6 criteria (minimum 4 required)"

    def test_gate_0_waits_on_manual_review(self, service, partner):
        pass_pre_contract(service, partner)
        answers = answers_with(
            answers_with(GATE_0_ANSWERS, "partner-team", team_commitment_confirmed="No"),
            "contract-execution", contract_signed="No",
        )

        pending = service.submit_questionnaire(partner.id, make_payload("gate-0-kickoff", answers), PAM)
        reviewed = service.review_section(
            pending.submission.id, "strategic-value", SectionResult.PASS, PDM, notes="Clear market fit"
        )

        assert pending.gate_status == GateStatus.IN_PROGRESS
        assert pending.qualification["could_still_qualify"] is True
        assert reviewed.accepted is True
        assert reviewed.gate_status == GateStatus.PASSED
        assert reviewed.section_verdicts["strategic-value"].evaluated_by == PDM.email
        assert reviewed.qualification["passed_sections"] == 4

    def test_gate_0_threshold_qualifies_outright(self, service):
        big = service.create_partner({"name": "Mega Telco", "pam_owner": PAM.email, "ccv": 60_000_000}, PAM)
        pass_pre_contract(service, big)
        failing = {
            section: {k: ("No" if v == "Yes" else v) for k, v in fields.items()}
            for section, fields in GATE_0_ANSWERS.items()
        }
        failing["operational-readiness"]["operational-readiness-score"] = "Low"

        outcome = service.submit_questionnaire(big.id, make_payload("gate-0-kickoff", failing), PAM)

        assert outcome.qualification["auto_qualified"] is True
        assert outcome.gate_status == GateStatus.PASSED

    def test_full_walk_to_gate_1(self, service, partner):
        pass_pre_contract(service, partner)
        service.submit_questionnaire(partner.id, make_payload("gate-0-kickoff", GATE_0_ANSWERS), PAM)

        transition = service.complete_gate(partner.id, GateId.GATE_0, PDM, make_signature(), notes="Kickoff held")

        assert transition.ok is True
        assert transition.partner.current_gate == GateId.GATE_1
        overview = service.gate_overview(partner.id, PAM)
        assert [s.status for s in overview[:3]] == [GateStatus.PASSED, GateStatus.PASSED, GateStatus.NOT_STARTED]
        assert service.can_advance(partner.id, GateId.GATE_1, PAM).allowed is True
        assert service.can_advance(partner.id, GateId.GATE_2, PAM).blocking_gate == GateId.GATE_1

    def test_block_and_unblock(self, service, partner):
        service.submit_questionnaire(partner.id, make_payload("pre-contract", PRE_CONTRACT_ANSWERS), PAM)

        blocked = service.block_gate(partner.id, GateId.PRE_CONTRACT, ["Legal hold"], PDM)
        refused = service.complete_gate(partner.id, GateId.PRE_CONTRACT, ADMIN, make_signature())
        unblocked = service.unblock_gate(partner.id, GateId.PRE_CONTRACT, ADMIN)

        assert blocked.partner.gates[GateId.PRE_CONTRACT].status == GateStatus.BLOCKED
        assert refused.ok is False
        assert unblocked.partner.gates[GateId.PRE_CONTRACT].status == GateStatus.PASSED

    def test_block_requires_approver_role(self, service, partner):
        with pytest.raises(AccessDeniedError):
            service.block_gate(partner.id, GateId.PRE_CONTRACT, ["x"], PAM)

    def test_transition_with_stale_revision(self, service, partner):
        service.submit_questionnaire(partner.id, make_payload("pre-contract", PRE_CONTRACT_ANSWERS), PAM)

        with pytest.raises(StaleWriteError):
            service.complete_gate(partner.id, GateId.PRE_CONTRACT, ADMIN, make_signature(), expected_revision=1)

    def test_start_gate_without_questionnaires(self, service, partner):
        transition = service.start_gate(partner.id, GateId.POST_LAUNCH, PAM)

        assert transition.ok is False
        assert transition.blocking_gate == GateId.PRE_CONTRACT


# =============================================================================
# Manual Review
# =============================================================================

class TestManualReview:
    """Tests for reviewer verdicts on manually reviewed sections."""

    @pytest.fixture
    def submitted(self, service, partner):
        pass_pre_contract(service, partner)
        return service.submit_questionnaire(partner.id, make_payload("gate-0-kickoff", GATE_0_ANSWERS), PAM)

    def test_submitter_cannot_supply_verdicts(self, submitted):
        with pytest.raises(TypeError):
            make_payload(
                "gate-0-kickoff", GATE_0_ANSWERS,
                reviewer_verdicts={"strategic-value": make_verdict(SectionResult.PASS)},
            )

        assert submitted.section_verdicts["strategic-value"].result == SectionResult.PENDING

    def test_pam_cannot_review(self, service, submitted):
        with pytest.raises(AccessDeniedError):
            service.review_section(submitted.submission.id, "strategic-value", SectionResult.PASS, PAM)

        latest = service.list_submissions(submitted.partner.id, ADMIN, "gate-0-kickoff")
        assert [s.id for s in latest] == [submitted.submission.id]

    def test_review_supersedes_submission(self, service, submitted):
        outcome = service.review_section(submitted.submission.id, "strategic-value", SectionResult.PASS, ADMIN)

        new = outcome.submission
        assert new.id != submitted.submission.id
        assert new.supersedes == submitted.submission.id
        assert new.answers == submitted.submission.answers
        assert new.schema_version == submitted.submission.schema_version
        assert new.signature == submitted.submission.signature
        assert new.overall_status == SubmissionStatus.PASS
        original = service.get_submission(submitted.submission.id, PAM)
        assert original.section_verdicts["strategic-value"].pending
        assert outcome.partner.gates[GateId.GATE_0].questionnaires["gate-0-kickoff"] == new.id

    def test_fail_without_reasons_gets_default_message(self, service, submitted):
        outcome = service.review_section(submitted.submission.id, "strategic-value", SectionResult.FAIL, PDM)

        verdict = outcome.section_verdicts["strategic-value"]
        assert verdict.result == SectionResult.FAIL
        assert verdict.failure_reasons == ["Strategic Value: Required criteria not met"]

    def test_superseded_submission_refused(self, service, submitted):
        service.review_section(submitted.submission.id, "strategic-value", SectionResult.PASS, PDM)

        again = service.review_section(submitted.submission.id, "strategic-value", SectionResult.FAIL, PDM)

        assert again.accepted is False
        assert "not the latest" in again.reason

    def test_automatic_section_cannot_be_reviewed(self, service, submitted):
        with pytest.raises(SubmissionValidationError) as exc_info:
            service.review_section(submitted.submission.id, "partner-team", SectionResult.PASS, ADMIN)

        assert exc_info.value.field_errors[0].section_id == "partner-team"

    def test_pending_is_not_a_verdict(self, service, submitted):
        with pytest.raises(SubmissionValidationError):
            service.review_section(submitted.submission.id, "strategic-value", SectionResult.PENDING, ADMIN)

    def test_unknown_submission(self, service):
        with pytest.raises(SubmissionNotFoundError):
            service.review_section("submission-missing", "strategic-value", SectionResult.PASS, ADMIN)


# =============================================================================
# Templates
# =============================================================================

class TestTemplates:
    """Tests for template edits and historical rendering."""

    def test_render_uses_pinned_version_after_edit(self, service, partner):
        outcome = service.submit_questionnaire(partner.id, make_payload("pre-contract", PRE_CONTRACT_ANSWERS), PAM)
        service.remove_template_field("pre-contract", "country-lrp", ADMIN)

        rendered = service.render_submission(outcome.submission.id, PAM)

        assert service.templates.get_current("pre-contract").version == 2
        assert rendered.resolved.version == 1
        assert rendered.resolved.fell_back is False
        field = rendered.resolved.schema.get_section("commercial-terms").get_field("country-lrp")
        assert field.removed is False
        assert rendered.to_dict()["schema"]["version"] == 1

    def test_new_submissions_use_new_version(self, service, partner):
        service.remove_template_field("pre-contract", "country-lrp", PDM)
        answers = {k: dict(v) for k, v in PRE_CONTRACT_ANSWERS.items()}
        del answers["commercial-terms"]["country-lrp"]

        outcome = service.submit_questionnaire(partner.id, make_payload("pre-contract", answers), PAM)

        assert outcome.submission.schema_version == 2
        assert outcome.gate_status == GateStatus.PASSED

    def test_template_edit_requires_role(self, service):
        with pytest.raises(AccessDeniedError):
            service.remove_template_field("pre-contract", "country-lrp", PAM)

    def test_seed_does_not_overwrite_edits(self, service):
        service.remove_template_field("pre-contract", "country-lrp", ADMIN)
        _, schemas = PackLoader().load_directory(PACKS_DIR)
        service.seed_templates(schemas.values())

        assert service.templates.get_current("pre-contract").version == 2

    def test_unknown_template(self, service):
        with pytest.raises(SchemaNotFoundError):
            service.remove_template_field("mystery", "x", ADMIN)

    def test_cannot_remove_field_a_rule_depends_on(self, service):
        with pytest.raises(SchemaValidationError) as exc_info:
            service.remove_template_field("pre-contract", "pricing-approved", ADMIN)

        assert exc_info.value.field_errors[0].section_id == "commercial-terms"
        assert service.templates.get_current("pre-contract").version == 1

    def test_bad_regex_rejected_on_save(self, service):
        schema = make_schema(
            "regex-check",
            sections=[make_section("alpha", fields=[
                make_field("code", validation=FieldValidation(FieldValidationType.REGEX, "Bad code", "[unclosed")),
            ])],
        )

        with pytest.raises(SchemaValidationError) as exc_info:
            service.save_template(schema, ADMIN)

        assert exc_info.value.field_errors[0].field_id == "code"
        assert service.templates.get_current("regex-check") is None
