from datetime import date

import pytest

from workload_planner.allocation import (
    AllocationEngineConfig,
    AllocationOptions,
    ResourceAllocationEngine,
    calculate_utilization,
    detect_over_allocation,
    get_resource_availability,
    get_utilization_summary,
    member_workload_frame,
    task_matrix_frame,
    utilization_status,
    validate_allocation,
)
from workload_planner.models import AllocationPlan, Resource


@pytest.fixture
def engine():
    return ResourceAllocationEngine()


class TestUtilization:
    def test_sums_active_allocations(self, resources, make_allocation):
        allocations = [
            make_allocation("a1", "Alice", 0.5),
            make_allocation("a2", "r-alice", 0.25),
            make_allocation("a3", "Bob", 0.9),
        ]
        result = calculate_utilization("Alice", allocations, resources)
        assert result.current_utilization == 0.75
        assert result.utilization_percentage == 75.0
        assert [entry.allocation_id for entry in result.breakdown] == ["a1", "a2"]

    def test_inactive_allocations_ignored(self, resources, make_allocation):
        allocations = [
            make_allocation("a1", "Alice", 0.5),
            make_allocation("a2", "Alice", 0.5, status="completed"),
            make_allocation("a3", "Alice", 0.5, task_name="Completed"),
            make_allocation("a4", "Alice", 0.5, task_name="Idle"),
        ]
        assert calculate_utilization("Alice", allocations, resources).current_utilization == 0.5

    def test_percentages_clamped(self, resources, make_allocation):
        allocations = [
            make_allocation("a1", "Alice", 0.05),
            make_allocation("a2", "Alice", 1.5),
        ]
        assert calculate_utilization("Alice", allocations, resources).current_utilization == 1.1

    def test_legacy_workload_used_when_percentage_missing(self, resources, make_allocation):
        allocations = [make_allocation("a1", "Alice", None, workload=0.3), make_allocation("a2", "Alice")]
        assert calculate_utilization("Alice", allocations, resources).current_utilization == 1.3

    def test_date_range_filters_overlapping(self, resources, make_allocation):
        allocations = [
            make_allocation("a1", "Alice", 0.5),
            make_allocation(
                "a2", "Alice", 0.5, plan=AllocationPlan(task_start=date(2026, 3, 2), task_end=date(2026, 3, 31))
            ),
            make_allocation("a3", "Alice", 0.2, plan=AllocationPlan()),
        ]
        result = calculate_utilization("Alice", allocations, resources, (date(2026, 3, 1), date(2026, 3, 15)))
        assert [entry.allocation_id for entry in result.breakdown] == ["a2", "a3"]

    def test_unknown_resource(self, resources):
        result = calculate_utilization("Zed", [], resources)
        assert result.error == "Resource not found: Zed"
        assert result.current_utilization == 0


class TestOverAllocation:
    def test_over_default_threshold(self, resources, make_allocation):
        allocations = [make_allocation("a1", "Bob", 0.9), make_allocation("a2", "Bob", 0.5)]
        result = detect_over_allocation("Bob", allocations, resources)
        assert result.is_over_allocated
        assert result.threshold == 1.2
        assert result.over_allocation_amount == 0.2
        assert result.conflicting_allocations == ("a1", "a2")

    def test_resource_threshold_takes_precedence(self, resources, make_allocation):
        allocations = [make_allocation("a1", "Dave", 0.9), make_allocation("a2", "Dave", 0.5)]
        result = detect_over_allocation("Dave", allocations, resources, AllocationOptions(capacity_threshold=1.1))
        assert result.threshold == 1.5
        assert not result.is_over_allocated
        assert result.conflicting_allocations == ()

    def test_options_threshold(self, resources, make_allocation):
        allocations = [make_allocation("a1", "Bob", 1.0), make_allocation("a2", "Bob", 0.1)]
        result = detect_over_allocation("Bob", allocations, resources, AllocationOptions(capacity_threshold=1.05))
        assert result.is_over_allocated

    def test_zero_threshold_is_respected(self, resources, make_allocation):
        allocations = [make_allocation("a1", "Bob", 0.5)]
        result = detect_over_allocation("Bob", allocations, resources, AllocationOptions(capacity_threshold=0.0))
        assert result.threshold == 0.0
        assert result.is_over_allocated

    def test_zero_resource_threshold_is_respected(self):
        frozen = Resource(id="r-z", name="Zoe", over_allocation_threshold=0.0)
        assert ResourceAllocationEngine().threshold_for(frozen, AllocationOptions(capacity_threshold=1.1)) == 0.0


class TestValidateAllocation:
    def test_over_threshold_warns_by_default(self, resources, make_allocation):
        existing = [make_allocation("a1", "Bob", 0.9)]
        request = make_allocation("new", "Bob", 0.4)
        result = validate_allocation(request, existing, resources)
        assert result.is_valid
        assert result.warnings == ["Allocation will exceed capacity threshold. Projected utilization: 130.0%"]
        assert result.projected_utilization == 1.3
        assert [conflict.allocation_id for conflict in result.conflicts] == ["a1"]

    def test_over_threshold_rejected_when_strict(self, resources, make_allocation):
        existing = [make_allocation("a1", "Bob", 0.9)]
        request = make_allocation("new", "Bob", 0.4)
        result = validate_allocation(request, existing, resources, AllocationOptions(strict_enforcement=True))
        assert not result.is_valid
        assert result.errors == [
            "Allocation would cause over-allocation. Projected utilization: 130.0%, "
            "Threshold: 120.0%, Over by: 10.0%"
        ]

    def test_strict_engine_config(self, resources, make_allocation):
        engine = ResourceAllocationEngine(AllocationEngineConfig(strict_enforcement=True))
        result = engine.validate_allocation(
            make_allocation("new", "Bob", 0.4), [make_allocation("a1", "Bob", 0.9)], resources
        )
        assert not result.is_valid

    def test_above_capacity_within_threshold(self, resources, make_allocation):
        result = validate_allocation(make_allocation("new", "Bob", 0.3), [make_allocation("a1", "Bob", 0.8)], resources)
        assert result.is_valid
        assert result.warnings == ["Allocation exceeds resource's maximum capacity (100%)"]

    def test_invalid_percentage(self, resources, make_allocation):
        result = validate_allocation(make_allocation("new", "Bob", 1.5), [], resources)
        assert not result.is_valid
        assert result.errors[0].startswith("Invalid allocation percentage: 1.5")

    def test_unknown_resource(self, resources, make_allocation):
        result = validate_allocation(make_allocation("new", "Zed", 0.5), [], resources)
        assert result.errors == ["Resource not found: Zed"]

    def test_high_utilization_recommendation(self, resources, make_allocation):
        result = validate_allocation(make_allocation("new", "Bob", 0.5), [make_allocation("a1", "Bob", 0.4)], resources)
        assert "Resource will be at high utilization. Consider monitoring workload closely." in result.recommendations

    def test_many_allocations_recommendation(self, resources, make_allocation):
        existing = [make_allocation(f"a{i}", "Carol", 0.1) for i in range(5)]
        result = validate_allocation(make_allocation("new", "Carol", 0.1), existing, resources)
        assert (
            "Resource already has many concurrent allocations. Consider task prioritization."
            in result.recommendations
        )


class TestAvailability:
    def test_available_capacity(self, resources, make_allocation):
        result = get_resource_availability("Bob", [make_allocation("a1", "Bob", 0.5)], resources)
        assert result.available
        assert result.available_capacity == 0.7
        assert result.available_percentage == 70.0
        assert result.status == "moderate-utilization"
        assert result.active_allocations == 1

    def test_fully_booked(self, resources, make_allocation):
        allocations = [make_allocation("a1", "Bob", 1.0), make_allocation("a2", "Bob", 0.2)]
        result = get_resource_availability("Bob", allocations, resources)
        assert not result.available
        assert result.status == "over-capacity"

    def test_unknown_resource(self, resources):
        assert get_resource_availability("Zed", [], resources).error == "Resource not found: Zed"


class TestStatus:
    @pytest.mark.parametrize(
        "utilization, status",
        [
            (1.1, "over-capacity"),
            (1.0, "at-capacity"),
            (0.85, "high-utilization"),
            (0.5, "moderate-utilization"),
            (0.2, "available"),
        ],
    )
    def test_bands(self, utilization, status):
        assert utilization_status(utilization, 1.0) == status


class TestSummaries:
    def test_summary_sorted_and_skips_inactive(self, resources, make_allocation):
        allocations = [
            make_allocation("a1", "Alice", 0.3),
            make_allocation("a2", "Bob", 0.9),
            make_allocation("a3", "Bob", 0.5),
            make_allocation("a4", "Erin", 0.5),
        ]
        summary = get_utilization_summary(allocations, resources)
        assert [item.resource_name for item in summary][:2] == ["Bob", "Alice"]
        assert "Erin" not in [item.resource_name for item in summary]
        assert summary[0].is_over_allocated

    def test_summary_frame(self, engine, resources, make_allocation):
        frame = engine.utilization_summary_frame([make_allocation("a1", "Alice", 0.3)], resources)
        assert list(frame["resource_name"]) == ["Alice", "Bob", "Carol", "Dave"]
        assert frame.loc[0, "utilization_percentage"] == 30.0

    def test_member_workload_frame(self, resources, costs, make_allocation):
        allocations = [
            make_allocation("a1", "Alice", 0.3, workload=0.5, plan=AllocationPlan(cost_monthly=4000000)),
            make_allocation("a2", "Alice", 0.3, workload=0.25, task_name="Completed"),
        ]
        frame = member_workload_frame(allocations, resources, costs).set_index("resource")
        assert frame.loc["Alice", "total_workload"] == 0.75
        assert frame.loc["Alice", "active_count"] == 1
        assert frame.loc["Alice", "completed_count"] == 1
        assert frame.loc["Alice", "active_workload_ratio"] == 0.25
        assert frame.loc["Dave", "active_workload_ratio"] == 0

    def test_task_matrix(self, resources, make_allocation):
        allocations = [
            make_allocation("a1", "Alice"),
            make_allocation("a2", "Alice"),
            make_allocation("a3", "Bob", task_name="Incident Triage"),
        ]
        matrix = task_matrix_frame(allocations, resources)
        assert matrix.loc["Feature Build", "Alice"] == 2
        assert matrix.loc["Incident Triage", "Bob"] == 1
        assert matrix.loc["Feature Build", "Carol"] == 0
