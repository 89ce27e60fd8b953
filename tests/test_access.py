"""
Tests for GatePilot access control.
"""
import pytest

from gatepilot.access import (
    CallerIdentity,
    UtilizationMode,
    assigned_partners,
    can_access_partner,
    can_approve_gate,
    can_manage_templates,
    filter_partners_by_role,
    group_partners_by_gate,
    pdm_utilization,
    require,
)
from gatepilot.exceptions import AccessDeniedError
from gatepilot.models import GateId, UserRole

from tests.conftest import ADMIN, OTHER_PAM, PAM, PDM, make_partner


@pytest.fixture
def partners():
    return [
        make_partner("partner-a", name="Alpha", pam_owner="PAM@Example.com"),
        make_partner("partner-b", name="Beta", pam_owner="other@example.com", psm_owner="psm@example.com"),
        make_partner("partner-c", name="Gamma", pam_owner="other@example.com", current_gate=GateId.GATE_1),
    ]


class TestPartnerVisibility:

    @pytest.mark.parametrize("identity", [ADMIN, PDM])
    def test_unrestricted_roles_see_everything(self, partners, identity):
        assert len(filter_partners_by_role(partners, identity)) == 3

    def test_owner_match_is_case_insensitive(self, partners):
        assert [p.id for p in filter_partners_by_role(partners, PAM)] == ["partner-a"]

    def test_role_specific_owner(self, partners):
        psm = CallerIdentity("psm@example.com", UserRole.PSM)
        assert [p.id for p in filter_partners_by_role(partners, psm)] == ["partner-b"]

    def test_role_without_owner_field_uses_pam_owner(self, partners):
        tpm = CallerIdentity("pam@example.com", UserRole.TPM)
        assert [p.id for p in filter_partners_by_role(partners, tpm)] == ["partner-a"]

    def test_no_match(self, partners):
        assert filter_partners_by_role(partners, OTHER_PAM) == []

    def test_anonymous_sees_nothing(self, partners):
        assert filter_partners_by_role(partners, None) == []
        assert can_access_partner(None, partners[0]) is False

    def test_assigned_partners(self, partners):
        assert [p.id for p in assigned_partners(partners, "other@example.com")] == ["partner-b", "partner-c"]


class TestPermissions:

    def test_approval_reserved_for_unrestricted_roles(self):
        assert can_approve_gate(ADMIN) is True
        assert can_approve_gate(PDM) is True
        assert can_approve_gate(PAM) is False
        assert can_approve_gate(None) is False

    def test_template_management(self):
        assert can_manage_templates(PDM) is True
        assert can_manage_templates(CallerIdentity("tam@example.com", UserRole.TAM)) is False

    def test_require_raises(self):
        with pytest.raises(AccessDeniedError) as exc_info:
            require(False, PAM, "approve gates", partner_id="partner-a")

        error = exc_info.value
        assert error.message == "PAM caller may not approve gates"
        assert error.partner_id == "partner-a"
        assert error.to_dict()["code"] == "GP_ACCESS_DENIED"

    def test_require_allows(self):
        require(True, PAM, "view partner")


class TestGroupByGate:

    def test_every_gate_present(self, partners):
        grouped = group_partners_by_gate(partners, ADMIN)

        assert list(grouped) == list(GateId)
        assert [p.id for p in grouped[GateId.PRE_CONTRACT]] == ["partner-a", "partner-b"]
        assert [p.id for p in grouped[GateId.GATE_1]] == ["partner-c"]
        assert grouped[GateId.POST_LAUNCH] == []

    def test_filtered_by_caller(self, partners):
        grouped = group_partners_by_gate(partners, PAM)
        assert sum(len(v) for v in grouped.values()) == 1


class TestPDMUtilization:

    @pytest.fixture
    def portfolio(self):
        return [
            make_partner("partner-a", pdm_owner="PDM@Example.com", ccv=4_000_000),
            make_partner("partner-b", pdm_owner="pdm@example.com", ccv=6_000_000),
            make_partner("partner-c", pdm_owner="other.pdm@example.com", ccv=50_000_000),
            make_partner("partner-d", ccv=1_000_000),
        ]

    def test_revenue_sums_ccv(self, portfolio):
        result = pdm_utilization(portfolio, PDM.email, UtilizationMode.REVENUE, 20_000_000)

        assert result.current_value == 10_000_000
        assert result.utilization_percentage == 50
        assert [p.id for p in result.partners] == ["partner-a", "partner-b"]

    def test_partner_count(self, portfolio):
        result = pdm_utilization(portfolio, "PDM@EXAMPLE.COM", UtilizationMode.PARTNER_COUNT, 8)

        assert result.current_value == 2
        assert result.utilization_percentage == 25

    def test_mode_accepts_plain_value(self, portfolio):
        result = pdm_utilization(portfolio, PDM.email, "partner-count", 4)

        assert result.mode == UtilizationMode.PARTNER_COUNT
        assert result.utilization_percentage == 50

    @pytest.mark.parametrize("target", [0, -5])
    def test_no_target_means_zero_utilization(self, portfolio, target):
        result = pdm_utilization(portfolio, PDM.email, UtilizationMode.REVENUE, target)

        assert result.current_value == 10_000_000
        assert result.utilization_percentage == 0

    def test_pdm_without_partners(self, portfolio):
        result = pdm_utilization(portfolio, "new.pdm@example.com", UtilizationMode.REVENUE, 1_000_000)

        assert result.current_value == 0
        assert result.partners == []

    def test_over_capacity(self, portfolio):
        result = pdm_utilization(portfolio, "other.pdm@example.com", UtilizationMode.REVENUE, 25_000_000)

        assert result.utilization_percentage == 200

    def test_to_dict(self, portfolio):
        data = pdm_utilization(portfolio, PDM.email, UtilizationMode.PARTNER_COUNT, 4).to_dict()

        assert data == {
            "pdm_email": PDM.email,
            "mode": "partner-count",
            "current_value": 2,
            "capacity_target": 4,
            "utilization_percentage": 50,
            "partner_ids": ["partner-a", "partner-b"],
        }
