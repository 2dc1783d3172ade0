"""
Batch re-run of the cost calculator over stored allocations.

Used after reference data changes (complexity table, rates, templates,
holidays). Each allocation is recomputed independently; a failure on one
record leaves that record untouched and the batch continues.
"""

from __future__ import annotations

import logging
from dataclasses import replace
from typing import Dict, Iterable, List, Optional, Sequence

from .calculations import calculate_enhanced_cost, calculate_monthly_cost, find_template
from .complexity import ComplexityTable
from .models import (
    CATEGORY_PROJECT,
    DEFAULT_TIER,
    Account,
    Allocation,
    CostCenter,
    Holiday,
    LeaveRecord,
    Resource,
    ResourceCostRecord,
    TaskTemplate,
)
from .workdays import StaticHolidayProvider, add_workdays

logger = logging.getLogger(__name__)


def _find_member(identifier: str, resources: Iterable[Resource]) -> Optional[Resource]:
    for resource in resources:
        if resource.matches(identifier):
            return resource
    return None


def _needs_recalculation(allocation: Allocation) -> bool:
    return bool(allocation.plan.task_start and allocation.resource and allocation.complexity)


def recalculate_one(
    allocation: Allocation,
    complexity: ComplexityTable,
    costs: Sequence[ResourceCostRecord],
    tasks: Sequence[TaskTemplate],
    provider: StaticHolidayProvider,
    resources: Sequence[Resource],
    cost_centers: Optional[Dict[str, CostCenter]] = None,
    coa: Optional[Dict[str, Account]] = None,
) -> Allocation:
    member = _find_member(allocation.resource, resources)
    tier = member.tier_level if member is not None else DEFAULT_TIER
    member_name = member.name if member is not None else allocation.resource
    cost_key = (member.cost_tier_id if member is not None else None) or member_name

    template = find_template(allocation.task_name, tasks)
    category = allocation.category or (template.category if template is not None else None)
    percentage = allocation.scheduled_percentage()
    estimate = calculate_enhanced_cost(
        allocation.complexity,
        cost_key,
        complexity,
        costs,
        tier,
        percentage,
        category,
        template,
    )

    task_start = allocation.plan.task_start
    task_end = add_workdays(task_start, estimate.duration_days, provider.excluded_dates_for(member_name))
    cost_project = estimate.total_cost if category == CATEGORY_PROJECT else 0
    plan = replace(
        allocation.plan,
        task_end=task_end,
        cost_project=cost_project,
        cost_monthly=calculate_monthly_cost(cost_project, task_start, task_end),
    )

    workload = allocation.workload
    if template is not None:
        template_estimate = template.estimate_for(allocation.complexity)
        if template_estimate is not None and template_estimate.percentage is not None:
            workload = template_estimate.percentage

    # Pin the percentage the plan was built with so the rewritten workload
    # is never read back as the allocation share.
    allocation_percentage = allocation.allocation_percentage
    if allocation_percentage is None:
        allocation_percentage = percentage
    updated = replace(
        allocation,
        plan=plan,
        workload=workload,
        category=category,
        allocation_percentage=allocation_percentage,
    )

    if cost_centers is not None and member is not None and member.cost_center_id:
        center = cost_centers.get(member.cost_center_id)
        if center is not None:
            updated = replace(updated, cost_center_id=center.id, cost_center_snapshot=center.snapshot())
    if coa is not None and allocation.coa_id:
        account = coa.get(allocation.coa_id)
        if account is not None:
            updated = replace(updated, coa_snapshot=account.snapshot())
    return updated


def recalculate_allocations(
    allocations: Sequence[Allocation],
    complexity: ComplexityTable,
    costs: Sequence[ResourceCostRecord],
    tasks: Sequence[TaskTemplate],
    holidays: Sequence[Holiday],
    leaves: Sequence[LeaveRecord],
    resources: Sequence[Resource],
    cost_centers: Optional[Iterable[CostCenter]] = None,
    coa: Optional[Iterable[Account]] = None,
) -> List[Allocation]:
    """Return a new list with task end, costs, workload and snapshots refreshed."""
    provider = StaticHolidayProvider(holidays, leaves)
    centers_by_id = {center.id: center for center in cost_centers} if cost_centers is not None else None
    accounts_by_id = {account.id: account for account in coa} if coa is not None else None

    updated: List[Allocation] = []
    recalculated = 0
    for allocation in allocations:
        if not _needs_recalculation(allocation):
            updated.append(allocation)
            continue
        try:
            updated.append(
                recalculate_one(
                    allocation,
                    complexity,
                    costs,
                    tasks,
                    provider,
                    resources,
                    centers_by_id,
                    accounts_by_id,
                )
            )
            recalculated += 1
        except Exception:
            logger.exception("Failed to recalculate allocation %s", allocation.id)
            updated.append(allocation)
    logger.info("Recalculated %d of %d allocations", recalculated, len(allocations))
    return updated
