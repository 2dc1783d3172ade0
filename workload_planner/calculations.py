"""
Effort, duration and cost estimation for a single allocation.

Project work is estimated through the complexity model with a tier-based skill
adjustment. Support, maintenance and terminal work use the flat hours from the
task template. Cost is effort times the resource's hourly rate and never depends
on the allocation percentage; only the duration stretches as the percentage
shrinks.
"""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass
from typing import Iterable, List, Optional, Sequence

from dateutil.relativedelta import relativedelta

from .classifier import METHOD_SIMPLE, calculation_method
from .complexity import (
    DEFAULT_COMPLEXITY,
    ComplexityTable,
    round_half_up,
    tier_adjusted_effort,
    tier_label,
)
from .models import (
    DEFAULT_TIER,
    HOURS_PER_DAY,
    MAX_ALLOCATION_PCT,
    DateLike,
    Level,
    ResourceCostRecord,
    TaskTemplate,
    clamp_percentage,
    to_date,
)

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class SelectiveEffort:
    method: str
    effort_hours: float
    base_effort_hours: float
    after_complexity: float
    after_risk: float
    skill_multiplier: float = 1.0
    complexity_multiplier: float = 1.0
    risk_multiplier: float = 1.0


@dataclass(frozen=True)
class CostEstimate:
    total_cost: float
    effort_hours: float
    duration_days: int
    hourly_rate: float
    allocation_percentage: float
    base_effort_hours: float
    skill_multiplier: float
    complexity_multiplier: float
    risk_multiplier: float
    method: str
    category: Optional[str]
    complexity: Optional[str]
    tier_level: object
    resource_name: Optional[str]
    after_complexity: float = 0.0
    after_risk: float = 0.0
    error: Optional[str] = None


@dataclass(frozen=True)
class CostSummary:
    total_cost: float
    effort_hours: float
    duration_days: int
    hourly_rate: float
    allocation_percentage: float


@dataclass(frozen=True)
class EffortStages:
    base_effort_hours: float
    after_complexity_multiplier: float
    after_risk_multiplier: float
    final_adjusted_hours: float
    skill_multiplier: float
    complexity_multiplier: float
    risk_multiplier: float


@dataclass(frozen=True)
class DurationBreakdown:
    effort_hours: float
    allocation_percentage: float
    hours_per_day: float
    duration_days: int


@dataclass(frozen=True)
class CostStages:
    base_effort_cost: float
    skill_adjustment_cost: float
    total_cost: float
    hourly_rate: float


@dataclass(frozen=True)
class CostContext:
    complexity: Optional[str]
    resource_name: Optional[str]
    tier_level: object
    tier_label: str
    method: str
    category: Optional[str]


@dataclass(frozen=True)
class CostBreakdown:
    summary: CostSummary
    effort_breakdown: EffortStages
    duration_breakdown: DurationBreakdown
    cost_breakdown: CostStages
    context: CostContext
    error: Optional[str] = None


def find_resource_cost(resource_id: Optional[str], costs: Iterable[ResourceCostRecord]) -> Optional[ResourceCostRecord]:
    """Match on id first, then on the resource name ignoring case."""
    if not resource_id:
        return None
    records = list(costs or ())
    for record in records:
        if record.id == resource_id:
            return record
    lowered = resource_id.lower()
    for record in records:
        if record.resource_name and record.resource_name.lower() == lowered:
            return record
    return None


def _duration_percentage(allocation_pct: object) -> float:
    if isinstance(allocation_pct, bool) or not isinstance(allocation_pct, (int, float)):
        return MAX_ALLOCATION_PCT
    if not math.isfinite(allocation_pct):
        return MAX_ALLOCATION_PCT
    return clamp_percentage(float(allocation_pct))


def calculate_duration_from_effort(effort_hours: float, allocation_pct: object = 1.0) -> int:
    if not effort_hours or effort_hours <= 0 or not math.isfinite(effort_hours):
        return 0
    hours_per_day = _duration_percentage(allocation_pct) * HOURS_PER_DAY
    return int(math.ceil(effort_hours / hours_per_day))


def calculate_selective_effort(
    task_or_category: object,
    level: Optional[Level],
    template: Optional[TaskTemplate] = None,
    table: ComplexityTable = DEFAULT_COMPLEXITY,
    tier: object = DEFAULT_TIER,
) -> SelectiveEffort:
    """Pick the estimation strategy for the task category and compute raw effort."""
    method = calculation_method(task_or_category)
    if method == METHOD_SIMPLE and template is not None:
        estimate = template.estimate_for(level)
        hours = float(estimate.hours or 0) if estimate is not None else 0.0
        if not math.isfinite(hours) or hours < 0:
            hours = 0.0
        return SelectiveEffort(
            method=METHOD_SIMPLE,
            effort_hours=hours,
            base_effort_hours=hours,
            after_complexity=hours,
            after_risk=hours,
        )

    effort = tier_adjusted_effort(level, tier, table)
    return SelectiveEffort(
        method=method,
        effort_hours=effort.adjusted_effort_hours,
        base_effort_hours=effort.base_effort_hours,
        after_complexity=effort.breakdown.after_complexity,
        after_risk=effort.breakdown.after_risk,
        skill_multiplier=effort.skill_multiplier,
        complexity_multiplier=effort.complexity_multiplier,
        risk_multiplier=effort.risk_multiplier,
    )


def _zero_estimate(
    level: Optional[Level],
    resource_id: Optional[str],
    tier: object,
    allocation_pct: float,
    category: Optional[str],
    error: str,
) -> CostEstimate:
    return CostEstimate(
        total_cost=0,
        effort_hours=0.0,
        duration_days=0,
        hourly_rate=0.0,
        allocation_percentage=allocation_pct,
        base_effort_hours=0.0,
        skill_multiplier=1.0,
        complexity_multiplier=1.0,
        risk_multiplier=1.0,
        method=calculation_method(category),
        category=category,
        complexity=level,
        tier_level=tier,
        resource_name=resource_id,
        error=error,
    )


def calculate_enhanced_cost(
    level: Optional[Level],
    resource_id: Optional[str],
    complexity_table: ComplexityTable = DEFAULT_COMPLEXITY,
    resource_costs: Sequence[ResourceCostRecord] = (),
    tier: object = DEFAULT_TIER,
    allocation_pct: object = 1.0,
    category: object = None,
    template: Optional[TaskTemplate] = None,
) -> CostEstimate:
    pct = _duration_percentage(allocation_pct)
    category_name = category if isinstance(category, str) else getattr(category, "category", None)
    record = find_resource_cost(resource_id, resource_costs)
    if record is None:
        logger.warning("Resource cost not found for %s; returning zero cost", resource_id)
        return _zero_estimate(level, resource_id, tier, pct, category_name, f"Resource cost not found: {resource_id}")
    rate = record.per_hour_cost
    if isinstance(rate, bool) or not isinstance(rate, (int, float)) or not math.isfinite(rate) or rate < 0:
        return _zero_estimate(level, resource_id, tier, pct, category_name, f"Invalid hourly rate for {resource_id}")

    effort = calculate_selective_effort(category, level, template, complexity_table, tier)
    total_cost = int(round_half_up(effort.effort_hours * rate))
    return CostEstimate(
        total_cost=total_cost,
        effort_hours=effort.effort_hours,
        duration_days=calculate_duration_from_effort(effort.effort_hours, pct),
        hourly_rate=rate,
        allocation_percentage=pct,
        base_effort_hours=effort.base_effort_hours,
        skill_multiplier=effort.skill_multiplier,
        complexity_multiplier=effort.complexity_multiplier,
        risk_multiplier=effort.risk_multiplier,
        method=effort.method,
        category=category_name,
        complexity=level,
        tier_level=tier,
        resource_name=record.resource_name,
        after_complexity=effort.after_complexity,
        after_risk=effort.after_risk,
    )


def get_detailed_cost_breakdown(
    level: Optional[Level],
    resource_id: Optional[str],
    complexity_table: ComplexityTable = DEFAULT_COMPLEXITY,
    resource_costs: Sequence[ResourceCostRecord] = (),
    tier: object = DEFAULT_TIER,
    allocation_pct: object = 1.0,
    category: object = None,
    template: Optional[TaskTemplate] = None,
) -> CostBreakdown:
    estimate = calculate_enhanced_cost(
        level, resource_id, complexity_table, resource_costs, tier, allocation_pct, category, template
    )
    base_effort_cost = int(round_half_up(estimate.after_risk * estimate.hourly_rate))
    return CostBreakdown(
        summary=CostSummary(
            total_cost=estimate.total_cost,
            effort_hours=estimate.effort_hours,
            duration_days=estimate.duration_days,
            hourly_rate=estimate.hourly_rate,
            allocation_percentage=estimate.allocation_percentage,
        ),
        effort_breakdown=EffortStages(
            base_effort_hours=estimate.base_effort_hours,
            after_complexity_multiplier=estimate.after_complexity,
            after_risk_multiplier=estimate.after_risk,
            final_adjusted_hours=estimate.effort_hours,
            skill_multiplier=estimate.skill_multiplier,
            complexity_multiplier=estimate.complexity_multiplier,
            risk_multiplier=estimate.risk_multiplier,
        ),
        duration_breakdown=DurationBreakdown(
            effort_hours=estimate.effort_hours,
            allocation_percentage=estimate.allocation_percentage,
            hours_per_day=estimate.allocation_percentage * HOURS_PER_DAY,
            duration_days=estimate.duration_days,
        ),
        cost_breakdown=CostStages(
            base_effort_cost=base_effort_cost,
            skill_adjustment_cost=estimate.total_cost - base_effort_cost,
            total_cost=estimate.total_cost,
            hourly_rate=estimate.hourly_rate,
        ),
        context=CostContext(
            complexity=estimate.complexity,
            resource_name=estimate.resource_name,
            tier_level=estimate.tier_level,
            tier_label=tier_label(estimate.tier_level),
            method=estimate.method,
            category=estimate.category,
        ),
        error=estimate.error,
    )


def months_between(start: DateLike, end: DateLike) -> int:
    """Whole calendar months from start to end (DATEDIF "m")."""
    start_date = to_date(start)
    end_date = to_date(end)
    if start_date is None or end_date is None:
        return 0
    delta = relativedelta(end_date, start_date)
    return delta.years * 12 + delta.months


def calculate_monthly_cost(project_cost: float, start: DateLike, end: DateLike) -> float:
    months = months_between(start, end)
    return project_cost / max(1, months)


def calculate_workload_percentage(
    task_name: Optional[str], level: Optional[Level], templates: Iterable[TaskTemplate]
) -> float:
    for template in templates or ():
        if template.name == task_name:
            estimate = template.estimate_for(level)
            if estimate is None or not estimate.percentage:
                return 0.0
            return float(estimate.percentage)
    return 0.0


def find_template(task_name: Optional[str], templates: Iterable[TaskTemplate]) -> Optional[TaskTemplate]:
    if not task_name:
        return None
    candidates: List[TaskTemplate] = list(templates or ())
    for template in candidates:
        if template.name == task_name or template.id == task_name:
            return template
    return None
