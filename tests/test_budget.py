import pytest

from workload_planner.budget import (
    BUDGET_NONE,
    BUDGET_STRICT,
    BUDGET_WARNING,
    PERIOD_YEARLY,
    BudgetManager,
    budget_status_text,
    format_currency,
    validate_allocation_budget,
)
from workload_planner.models import AccountingSnapshot, AllocationPlan, CostCenter, SystemErrorDetails
from workload_planner.validation import ValidationEngine


@pytest.fixture
def cost_centers():
    return [
        CostCenter(
            id="cc-eng",
            code="ENG",
            name="Engineering",
            monthly_budget=10_000_000,
            yearly_budget=120_000_000,
            actual_monthly_cost=4_000_000,
            actual_yearly_cost=50_000_000,
            budget_enforcement="strict",
        ),
        CostCenter(
            id="cc-ops",
            code="OPS",
            name="Operations",
            monthly_budget=5_000_000,
            budget_enforcement="warning",
            over_budget_threshold=10,
        ),
        CostCenter(id="cc-lab", code="LAB", name="Lab", monthly_budget=1_000, budget_enforcement="NONE"),
    ]


@pytest.fixture
def charged(make_allocation):
    return [
        make_allocation(
            "a1", "Bob", 0.5, cost_center_id="cc-eng", plan=AllocationPlan(cost_monthly=2_000_000, cost_project=6_000_000)
        ),
        make_allocation(
            "a2",
            "Alice",
            0.5,
            cost_center_snapshot=AccountingSnapshot(id="cc-eng", code="ENG", name="Engineering"),
            plan=AllocationPlan(cost_monthly=1_000_000, cost_project=3_000_000),
        ),
        make_allocation("a3", "Carol", 0.5, cost_center_id="cc-ops", plan=AllocationPlan(cost_monthly=5_000_000)),
    ]


@pytest.fixture
def manager(cost_centers, charged):
    return BudgetManager(cost_centers, charged)


class TestSpend:
    def test_pending_cost_matches_id_and_snapshot(self, manager):
        assert manager.pending_allocations_cost("cc-eng") == 3_000_000
        assert manager.pending_allocations_cost("cc-eng", PERIOD_YEARLY) == 9_000_000

    def test_projected_and_available(self, manager):
        assert manager.projected_spend("cc-eng") == 7_000_000
        assert manager.projected_spend("cc-eng", 500_000) == 7_500_000
        assert manager.get_available_budget("cc-eng") == 3_000_000
        assert manager.get_available_budget("cc-ops") == 0
        assert manager.get_available_budget("cc-missing") == 0

    def test_utilization(self, manager):
        assert manager.get_budget_utilization("cc-eng") == pytest.approx(70.0)
        assert manager.get_budget_utilization("cc-eng", PERIOD_YEARLY) == pytest.approx(59_000_000 / 120_000_000 * 100)
        assert manager.get_budget_utilization("cc-missing") == 0

    def test_zero_budget_has_no_utilization(self, charged):
        manager = BudgetManager([CostCenter(id="cc-eng", code="ENG", name="Engineering")], charged)
        assert manager.get_budget_utilization("cc-eng") == 0

    def test_enforcement_modes(self, manager, caplog):
        assert manager.enforcement_mode("cc-eng") == BUDGET_STRICT
        assert manager.enforcement_mode("cc-lab") == BUDGET_NONE
        assert manager.enforcement_mode("cc-missing") == BUDGET_NONE
        soft = BudgetManager([CostCenter(id="cc-x", code="X", name="X", budget_enforcement="soft")])
        assert soft.enforcement_mode("cc-x") == BUDGET_WARNING
        assert "Unknown budget enforcement" in caplog.text

    def test_unset_enforcement_defaults_to_warning(self):
        manager = BudgetManager([CostCenter(id="cc-x", code="X", name="X")])
        assert manager.enforcement_mode("cc-x") == BUDGET_WARNING


class TestValidateBudgetCapacity:
    def test_within_budget(self, manager):
        result = manager.validate_budget_capacity("cc-eng", 2_000_000)
        assert result.is_valid
        assert result.severity == "info"
        assert result.message == "Budget validation passed: IDR 3,000,000 remaining in monthly budget"
        assert result.details.new_projected_spend == 9_000_000
        assert result.details.utilization_after_allocation == 90.0
        assert result.recommendations == ()

    def test_strict_rejects_overrun(self, manager):
        result = manager.validate_budget_capacity("cc-eng", 4_000_000)
        assert not result.is_valid
        assert result.severity == "error"
        assert result.message == "Allocation rejected: Would exceed monthly budget by IDR 1,000,000"
        assert result.details.enforcement_mode == BUDGET_STRICT
        assert result.recommendations

    def test_warning_mode_lets_overrun_through(self, manager):
        result = manager.validate_budget_capacity("cc-ops", 200_000)
        assert result.is_valid
        assert result.severity == "warning"
        assert result.message == "Budget warning: Allocation would exceed monthly budget by IDR 200,000"

    def test_warning_mode_past_threshold(self, manager):
        result = manager.validate_budget_capacity("cc-ops", 1_000_000)
        assert result.severity == "warning"
        assert result.message == (
            "Budget warning: Allocation would exceed monthly budget threshold (120.0% utilization)"
        )
        assert result.details.max_allowed_spend == pytest.approx(5_500_000)

    def test_none_mode_always_passes(self, manager):
        result = manager.validate_budget_capacity("cc-lab", 5_000)
        assert result.is_valid
        assert result.severity == "info"

    def test_yearly_period(self, manager):
        result = manager.validate_budget_capacity("cc-eng", 70_000_000, PERIOD_YEARLY)
        assert result.message == "Allocation rejected: Would exceed yearly budget by IDR 9,000,000"

    def test_missing_cost_center(self, manager):
        result = manager.validate_budget_capacity("cc-missing", 1)
        assert not result.is_valid
        assert result.message == "Cost center not found"

    def test_unsupported_period(self, manager):
        result = manager.validate_budget_capacity("cc-eng", 1, "weekly")
        assert result.severity == "error"
        assert isinstance(result.details, SystemErrorDetails)
        assert result.message == "Unsupported budget period: weekly"

    def test_has_sufficient_budget(self, manager):
        assert manager.has_sufficient_budget("cc-eng", 2_000_000)
        assert not manager.has_sufficient_budget("cc-eng", 4_000_000)
        assert not manager.has_sufficient_budget("cc-ops", 200_000)

    def test_module_helper(self, cost_centers, charged):
        result = validate_allocation_budget("cc-eng", 4_000_000, cost_centers, charged)
        assert result.severity == "error"

    def test_rejection_feeds_cross_validation(self, manager):
        result = manager.validate_budget_capacity("cc-eng", 4_000_000)
        combined = ValidationEngine().perform_cross_validation([result])
        assert combined.details.recommendation == "reject"
        assert combined.details.error_count == 1


class TestReporting:
    @pytest.mark.parametrize(
        "utilization, label",
        [(120, "Over Budget"), (100, "Over Budget"), (95, "Critical"), (80, "High"), (50, "Moderate"), (10, "Low")],
    )
    def test_status_text(self, utilization, label):
        assert budget_status_text(utilization) == label

    def test_format_currency(self):
        assert format_currency(1_234_567.4) == "IDR 1,234,567"
        assert format_currency(2500, "USD") == "USD 2,500"

    def test_budget_status(self, manager):
        status = manager.budget_status("cc-eng")
        assert status.pending_cost == 3_000_000
        assert status.projected_spend == 7_000_000
        assert status.utilization == 70.0
        assert status.status == "Moderate"
        assert not status.is_over_budget
        assert manager.budget_status("cc-missing") is None

    def test_over_budget_cost_centers(self, cost_centers, charged, make_allocation):
        extra = make_allocation("a4", "Bob", 0.2, cost_center_id="cc-eng", plan=AllocationPlan(cost_monthly=4_000_000))
        over = BudgetManager(cost_centers, charged + [extra]).get_over_budget_cost_centers()
        assert [item.cost_center.id for item in over] == ["cc-eng"]
        assert over[0].utilization == 110.0
        assert over[0].overage_amount == 1_000_000

    def test_summary_frame(self, manager):
        frame = manager.budget_summary_frame().set_index("cost_center_id")
        assert list(frame.index) == ["cc-eng", "cc-ops", "cc-lab"]
        assert frame.loc["cc-ops", "status"] == "Over Budget"
        assert frame.loc["cc-lab", "enforcement_mode"] == BUDGET_NONE
