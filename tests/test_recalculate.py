import logging
from datetime import date

import pytest

from workload_planner.complexity import DEFAULT_COMPLEXITY
from workload_planner.models import (
    AccountingSnapshot,
    Account,
    AllocationPlan,
    CostCenter,
)
from workload_planner.recalculate import recalculate_allocations


@pytest.fixture
def cost_centers():
    return [CostCenter(id="cc-eng", code="ENG", name="Engineering")]


@pytest.fixture
def accounts():
    return [Account(id="coa-1", code="6100", name="Salaries")]


@pytest.fixture
def recalc(costs, templates, holidays, leaves, resources):
    def run(allocations, cost_centers=None, coa=None):
        return recalculate_allocations(
            allocations, DEFAULT_COMPLEXITY, costs, templates, holidays, leaves, resources, cost_centers, coa
        )

    return run


class TestRecalculateAllocations:
    def test_project_allocation(self, recalc, make_allocation):
        allocation = make_allocation("a1", "Alice", 1.0, plan=AllocationPlan(task_start=date(2026, 1, 5)))
        (updated,) = recalc([allocation])
        assert updated.plan.task_end == date(2026, 2, 5)
        assert updated.plan.cost_project == 17280000
        assert updated.plan.cost_monthly == 17280000
        assert updated.workload == 0.5

    def test_half_time_doubles_duration_not_cost(self, recalc, make_allocation):
        allocation = make_allocation("a1", "Alice", 0.5, plan=AllocationPlan(task_start=date(2026, 1, 5)))
        (updated,) = recalc([allocation])
        assert updated.plan.cost_project == 17280000
        assert updated.plan.task_end == date(2026, 3, 9)
        assert updated.plan.cost_monthly == 8640000

    def test_member_leave_extends_end_date(self, recalc, make_allocation):
        allocation = make_allocation("a4", "Bob", 1.0, plan=AllocationPlan(task_start=date(2026, 1, 9)))
        (updated,) = recalc([allocation])
        assert updated.plan.task_end == date(2026, 2, 6)
        assert updated.plan.cost_project == 19440000

    def test_support_allocation_has_no_project_cost(self, recalc, make_allocation):
        allocation = make_allocation(
            "a2",
            "Bob",
            task_name="Incident Triage",
            category="Support",
            plan=AllocationPlan(task_start=date(2026, 1, 5), cost_project=999),
        )
        (updated,) = recalc([allocation])
        assert updated.plan.cost_project == 0
        assert updated.plan.cost_monthly == 0
        assert updated.plan.task_end == date(2026, 1, 7)
        assert updated.workload == 0.1

    def test_incomplete_records_pass_through(self, recalc, make_allocation):
        no_start = make_allocation("a3", "Alice", plan=AllocationPlan())
        no_complexity = make_allocation("a5", "Alice", complexity=None)
        results = recalc([no_start, no_complexity])
        assert results[0] is no_start
        assert results[1] is no_complexity

    def test_snapshots(self, recalc, make_allocation, cost_centers, accounts):
        allocation = make_allocation("a4", "Bob", 1.0, coa_id="coa-1", plan=AllocationPlan(task_start=date(2026, 1, 9)))
        (updated,) = recalc([allocation], cost_centers, accounts)
        assert updated.cost_center_id == "cc-eng"
        assert updated.cost_center_snapshot == AccountingSnapshot(id="cc-eng", code="ENG", name="Engineering")
        assert updated.coa_snapshot == AccountingSnapshot(id="coa-1", code="6100", name="Salaries")

    def test_snapshots_skipped_without_tables(self, recalc, make_allocation):
        allocation = make_allocation("a4", "Bob", 1.0, coa_id="coa-1", plan=AllocationPlan(task_start=date(2026, 1, 9)))
        (updated,) = recalc([allocation])
        assert updated.cost_center_snapshot is None
        assert updated.coa_snapshot is None

    def test_failure_keeps_original_and_continues(self, recalc, make_allocation, caplog):
        broken = make_allocation("bad", "Alice", 1.0, plan=AllocationPlan(task_start="not-a-date"))
        good = make_allocation("a1", "Alice", 1.0, plan=AllocationPlan(task_start=date(2026, 1, 5)))
        with caplog.at_level(logging.ERROR):
            results = recalc([broken, good])
        assert results[0] is broken
        assert results[1].plan.task_end == date(2026, 2, 5)
        assert "Failed to recalculate allocation bad" in caplog.text

    def test_idempotent(self, recalc, make_allocation, cost_centers, accounts):
        allocations = [
            make_allocation("a1", "Alice", 1.0, plan=AllocationPlan(task_start=date(2026, 1, 5))),
            make_allocation("a4", "Bob", 0.5, coa_id="coa-1", plan=AllocationPlan(task_start=date(2026, 1, 9))),
        ]
        once = recalc(allocations, cost_centers, accounts)
        assert recalc(once, cost_centers, accounts) == once

    def test_idempotent_without_explicit_percentage(self, recalc, make_allocation):
        allocation = make_allocation(
            "a2",
            "Bob",
            task_name="Incident Triage",
            category="Support",
            plan=AllocationPlan(task_start=date(2026, 1, 5)),
        )
        once = recalc([allocation])
        twice = recalc(once)
        assert twice == once
        assert twice[0].plan.task_end == date(2026, 1, 7)
        assert twice[0].workload == 0.1

    def test_written_workload_does_not_change_utilization_share(self, recalc, make_allocation):
        allocation = make_allocation(
            "a2",
            "Bob",
            task_name="Incident Triage",
            category="Support",
            plan=AllocationPlan(task_start=date(2026, 1, 5)),
        )
        (updated,) = recalc([allocation])
        assert updated.allocation_percentage == 1.0
        assert updated.effective_percentage() == allocation.effective_percentage() == 1.0
