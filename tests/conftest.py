"""
Shared fixtures: a small team, their hourly rates, task templates and a
reference calendar. 2026-01-05 is a Monday.
"""

from datetime import date

import pytest

from workload_planner.models import (
    CATEGORY_PROJECT,
    CATEGORY_SUPPORT,
    Allocation,
    AllocationPlan,
    Holiday,
    LeaveRecord,
    Resource,
    ResourceCostRecord,
    TaskEstimate,
    TaskTemplate,
)

MONDAY = date(2026, 1, 5)


@pytest.fixture
def resources():
    return [
        Resource(id="r-alice", name="Alice", tier_level=1, skill_areas=("Python", "React"), cost_tier_id="c-junior"),
        Resource(
            id="r-bob",
            name="Bob",
            tier_level=3,
            skill_areas=("Python", "PostgreSQL", "React Native", "Data Analysis"),
            cost_center_id="cc-eng",
        ),
        Resource(id="r-carol", name="Carol", tier_level=2, skill_areas=("QA",)),
        Resource(id="r-dave", name="Dave", tier_level=4, over_allocation_threshold=1.5, resource_type="contractor"),
        Resource(id="r-erin", name="Erin", tier_level=2, is_active=False),
    ]


@pytest.fixture
def costs():
    return [
        ResourceCostRecord(id="c-junior", resource_name="Alice", per_hour_cost=100000, monthly_cost=16000000),
        ResourceCostRecord(id="c-bob", resource_name="Bob", per_hour_cost=150000, monthly_cost=24000000),
        ResourceCostRecord(id="c-carol", resource_name="Carol", per_hour_cost=120000, monthly_cost=19200000),
    ]


@pytest.fixture
def templates():
    return [
        TaskTemplate(
            id="t-build",
            name="Feature Build",
            category=CATEGORY_PROJECT,
            estimates={"medium": TaskEstimate(days=18, hours=144, percentage=0.5)},
        ),
        TaskTemplate(
            id="t-triage",
            name="Incident Triage",
            category=CATEGORY_SUPPORT,
            estimates={
                "low": TaskEstimate(days=0.25, hours=2, percentage=0.05),
                "medium": TaskEstimate(days=0.5, hours=4, percentage=0.1),
            },
        ),
    ]


@pytest.fixture
def holidays():
    return [Holiday(date=date(2026, 1, 6), name="Company Day")]


@pytest.fixture
def leaves():
    return [LeaveRecord(id="l-1", member_name="Bob", start_date=date(2026, 1, 12), end_date=date(2026, 1, 14))]


def make_allocation(allocation_id, resource, pct=None, **kwargs):
    """Build an allocation with sensible defaults for tests."""
    plan = kwargs.pop("plan", AllocationPlan(task_start=MONDAY, task_end=date(2026, 1, 30)))
    return Allocation(
        id=allocation_id,
        resource=resource,
        project_name=kwargs.pop("project_name", "Apollo"),
        task_name=kwargs.pop("task_name", "Feature Build"),
        category=kwargs.pop("category", CATEGORY_PROJECT),
        complexity=kwargs.pop("complexity", "medium"),
        allocation_percentage=pct,
        plan=plan,
        **kwargs,
    )


@pytest.fixture(name="make_allocation")
def make_allocation_fixture():
    return make_allocation
