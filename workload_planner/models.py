from __future__ import annotations

import math
from dataclasses import dataclass, field
from datetime import date, datetime, timedelta
from typing import Dict, Iterator, List, Mapping, Optional, Tuple, Union

from dateutil import parser as dateparser


Level = str
Category = str

CATEGORY_PROJECT: Category = "Project"
CATEGORY_SUPPORT: Category = "Support"
CATEGORY_MAINTENANCE: Category = "Maintenance"
CATEGORY_TERMINAL: Category = "Terminal"
TASK_CATEGORIES: Tuple[Category, ...] = (
    CATEGORY_PROJECT,
    CATEGORY_SUPPORT,
    CATEGORY_MAINTENANCE,
    CATEGORY_TERMINAL,
)

MIN_ALLOCATION_PCT = 0.1
MAX_ALLOCATION_PCT = 1.0
HOURS_PER_DAY = 8.0
DEFAULT_TIER = 2
DEFAULT_MAX_CAPACITY = 1.0

INACTIVE_STATUSES = frozenset({"completed", "cancelled", "idle"})
INACTIVE_TASK_NAMES = frozenset({"Completed", "Idle", "completed", "idle"})

DateLike = Union[date, datetime, str, None]


def to_date(value: DateLike) -> Optional[date]:
    """Coerce a date, datetime or ISO string to a date; blank values become None."""
    if value is None:
        return None
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    text = str(value).strip()
    if not text:
        return None
    return dateparser.isoparse(text).date()


def clamp_percentage(value: float) -> float:
    return min(MAX_ALLOCATION_PCT, max(MIN_ALLOCATION_PCT, value))


def _is_number(value: object) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool) and math.isfinite(value)


@dataclass(frozen=True)
class ComplexityLevel:
    """Effort and risk parameters for one complexity level."""

    level: Level
    label: str
    base_effort_hours: float
    complexity_multiplier: float
    risk_factor: float
    skill_sensitivity: float
    days: float = 0.0
    hours: float = 0.0
    workload: float = 0.0
    technical_complexity: int = 5
    business_complexity: int = 5
    integration_points: int = 0
    unknown_requirements: float = 0.0
    description: str = ""


@dataclass(frozen=True)
class TaskEstimate:
    days: float
    hours: float
    percentage: Optional[float] = None


@dataclass(frozen=True)
class TaskTemplate:
    """Flat estimate template for a named task."""

    id: str
    name: str
    category: Category
    estimates: Mapping[Level, TaskEstimate] = field(default_factory=dict)
    required_skills: Tuple[str, ...] = ()

    def estimate_for(self, level: Optional[Level]) -> Optional[TaskEstimate]:
        if not level:
            return None
        if level in self.estimates:
            return self.estimates[level]
        lowered = str(level).lower()
        for key, estimate in self.estimates.items():
            if key.lower() == lowered:
                return estimate
        return None


@dataclass(frozen=True)
class ResourceCostRecord:
    id: str
    resource_name: str
    per_hour_cost: float
    monthly_cost: float = 0.0
    per_day_cost: Optional[float] = None
    currency: str = "IDR"


@dataclass(frozen=True)
class Resource:
    """Team member that allocations are assigned to.

    ``over_allocation_threshold`` of None defers to the request options and then
    to the engine default (1.2).
    """

    id: str
    name: str
    tier_level: int = DEFAULT_TIER
    max_capacity: float = DEFAULT_MAX_CAPACITY
    over_allocation_threshold: Optional[float] = None
    skill_areas: Tuple[str, ...] = ()
    is_active: bool = True
    cost_tier_id: Optional[str] = None
    cost_center_id: Optional[str] = None
    resource_type: Optional[str] = None

    def matches(self, identifier: Optional[str]) -> bool:
        if not identifier:
            return False
        if identifier == self.id or identifier == self.name:
            return True
        return bool(self.name) and identifier.lower() == self.name.lower()

    @property
    def effective_max_capacity(self) -> float:
        return self.max_capacity if _is_number(self.max_capacity) and self.max_capacity > 0 else DEFAULT_MAX_CAPACITY


@dataclass(frozen=True)
class AllocationPlan:
    task_start: Optional[date] = None
    task_end: Optional[date] = None
    cost_project: float = 0.0
    cost_monthly: float = 0.0


@dataclass(frozen=True)
class AccountingSnapshot:
    """Point-in-time copy of a cost center or chart-of-accounts entry."""

    id: str
    code: str
    name: str


@dataclass(frozen=True)
class Allocation:
    """A resource committed to one task; also used as an allocation request."""

    id: str
    resource: str
    project_name: str = ""
    task_name: str = ""
    category: Optional[Category] = None
    complexity: Optional[Level] = None
    allocation_percentage: Optional[float] = None
    plan: AllocationPlan = field(default_factory=AllocationPlan)
    priority: Optional[str] = None
    status: Optional[str] = None
    workload: Optional[float] = None
    required_skills: Tuple[str, ...] = ()
    start_time: Optional[datetime] = None
    first_response: Optional[datetime] = None
    resolved_at: Optional[datetime] = None
    cost_center_id: Optional[str] = None
    cost_center_snapshot: Optional[AccountingSnapshot] = None
    coa_id: Optional[str] = None
    coa_snapshot: Optional[AccountingSnapshot] = None

    def is_active(self) -> bool:
        if self.status and self.status.lower() in INACTIVE_STATUSES:
            return False
        if self.task_name and self.task_name in INACTIVE_TASK_NAMES:
            return False
        return True

    def is_completed(self) -> bool:
        return (
            (self.status or "").lower() == "completed"
            or self.task_name == "Completed"
            or self.category == CATEGORY_TERMINAL
        )

    def raw_percentage(self) -> float:
        """Explicit percentage, then the legacy workload field, then full time."""
        if self.allocation_percentage is not None:
            return self.allocation_percentage
        if self.workload is not None:
            return self.workload
        return 1.0

    def effective_percentage(self) -> float:
        raw = self.raw_percentage()
        if not _is_number(raw):
            return MAX_ALLOCATION_PCT
        return clamp_percentage(float(raw))

    def scheduled_percentage(self) -> float:
        """Share of the day used to stretch a plan; the legacy workload field is ignored."""
        if not _is_number(self.allocation_percentage):
            return MAX_ALLOCATION_PCT
        return clamp_percentage(float(self.allocation_percentage))

    def overlaps(self, start: Optional[date], end: Optional[date]) -> bool:
        """Allocations without both plan dates are treated as open-ended."""
        if start is None or end is None:
            return True
        if self.plan.task_start is None or self.plan.task_end is None:
            return True
        return self.plan.task_start <= end and self.plan.task_end >= start


@dataclass(frozen=True)
class LeaveRecord:
    id: str
    member_name: str
    start_date: date
    end_date: date
    type: str = "Annual Leave"

    def days(self) -> Iterator[date]:
        current = self.start_date
        while current <= self.end_date:
            yield current
            current += timedelta(days=1)

    def overlaps(self, start: date, end: date) -> bool:
        return self.start_date <= end and self.end_date >= start


@dataclass(frozen=True)
class Holiday:
    date: date
    name: str = ""
    type: str = "public"


@dataclass(frozen=True)
class CostCenter:
    """Accounting unit that allocations are charged to.

    Budgets are in the cost center's currency. ``over_budget_threshold`` is a
    percentage of headroom above the budget before warning-mode checks
    escalate their message; ``budget_enforcement`` of None means "warning".
    """

    id: str
    code: str
    name: str
    status: str = "Active"
    monthly_budget: float = 0.0
    yearly_budget: float = 0.0
    actual_monthly_cost: float = 0.0
    actual_yearly_cost: float = 0.0
    budget_enforcement: Optional[str] = None
    over_budget_threshold: float = 0.0

    def snapshot(self) -> AccountingSnapshot:
        return AccountingSnapshot(id=self.id, code=self.code, name=self.name)


@dataclass(frozen=True)
class Account:
    id: str
    code: str
    name: str
    is_active: bool = True

    def snapshot(self) -> AccountingSnapshot:
        return AccountingSnapshot(id=self.id, code=self.code, name=self.name)


# Validation detail variants. Each check type carries its own payload so the
# aggregator can dispatch on the class instead of inspecting dictionaries.


@dataclass(frozen=True)
class AvailabilityDetails:
    resource_id: str
    start_date: Optional[date]
    end_date: Optional[date]
    conflicts: Tuple[str, ...] = ()
    leave_conflicts: Tuple[str, ...] = ()
    period_utilization: float = 0.0
    recommendations: Tuple[str, ...] = ()


@dataclass(frozen=True)
class SkillGap:
    skill: str
    severity: str  # "critical" or "moderate"
    closest_match: Optional[str] = None


@dataclass(frozen=True)
class SkillMatchDetails:
    resource_id: str
    complexity: Optional[Level]
    matched_skills: Tuple[str, ...] = ()
    gaps: Tuple[SkillGap, ...] = ()
    match_score: float = 1.0
    tier_fit: str = "optimal"
    recommendations: Tuple[str, ...] = ()

    @property
    def critical_gaps(self) -> Tuple[SkillGap, ...]:
        return tuple(gap for gap in self.gaps if gap.severity == "critical")


@dataclass(frozen=True)
class CapacityDetails:
    resource_id: str
    current_utilization: float
    requested_percentage: float
    projected_utilization: float
    max_capacity: float
    threshold: float
    recommendations: Tuple[str, ...] = ()


@dataclass(frozen=True)
class WorkloadDetails:
    resource_id: str
    concurrent_tasks: int
    projected_utilization: float
    sustainability_score: int
    complexity_counts: Mapping[Level, int] = field(default_factory=dict)
    recommendations: Tuple[str, ...] = ()


@dataclass(frozen=True)
class CrossValidationDetails:
    overall_risk: str
    recommendation: str
    error_count: int
    warning_count: int
    conflicts: Tuple[str, ...] = ()
    recommendations: Tuple[str, ...] = ()


@dataclass(frozen=True)
class BudgetDetails:
    cost_center_id: str
    period: str
    allocation_cost: float
    cost_center_name: Optional[str] = None
    total_budget: float = 0.0
    current_projected_spend: float = 0.0
    new_projected_spend: float = 0.0
    available_budget: float = 0.0
    utilization_after_allocation: float = 0.0
    enforcement_mode: Optional[str] = None
    over_budget_threshold: float = 0.0
    max_allowed_spend: float = 0.0
    recommendations: Tuple[str, ...] = ()


@dataclass(frozen=True)
class SystemErrorDetails:
    check: str
    error: str
    recommendations: Tuple[str, ...] = ()


ValidationDetails = Union[
    AvailabilityDetails,
    SkillMatchDetails,
    CapacityDetails,
    WorkloadDetails,
    CrossValidationDetails,
    BudgetDetails,
    SystemErrorDetails,
]


@dataclass(frozen=True)
class ValidationResult:
    type: str
    is_valid: bool
    severity: str  # "info", "warning" or "error"
    message: str
    details: ValidationDetails

    @property
    def recommendations(self) -> Tuple[str, ...]:
        return self.details.recommendations


def index_templates(templates: Optional[List[TaskTemplate]]) -> Dict[str, TaskTemplate]:
    """Index templates by both id and name."""
    indexed: Dict[str, TaskTemplate] = {}
    for template in templates or ():
        indexed.setdefault(template.name, template)
        indexed.setdefault(template.id, template)
    return indexed
