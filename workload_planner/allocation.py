from __future__ import annotations

import math
from dataclasses import asdict, dataclass, field
from datetime import date
from typing import Dict, List, Optional, Sequence, Tuple

import pandas as pd

from .complexity import round_half_up
from .models import (
    DEFAULT_MAX_CAPACITY,
    MAX_ALLOCATION_PCT,
    MIN_ALLOCATION_PCT,
    Allocation,
    Resource,
    ResourceCostRecord,
)

DEFAULT_CAPACITY_THRESHOLD = 1.2
HIGH_UTILIZATION_MARK = 0.8
MANY_ALLOCATIONS_COUNT = 5

DateRange = Tuple[Optional[date], Optional[date]]


@dataclass(frozen=True)
class AllocationEngineConfig:
    default_capacity_threshold: float = DEFAULT_CAPACITY_THRESHOLD
    strict_enforcement: bool = False
    high_utilization_mark: float = HIGH_UTILIZATION_MARK
    many_allocations_count: int = MANY_ALLOCATIONS_COUNT


@dataclass(frozen=True)
class AllocationOptions:
    """Per-call overrides; None leaves the engine setting in place."""

    capacity_threshold: Optional[float] = None
    strict_enforcement: Optional[bool] = None


@dataclass(frozen=True)
class UtilizationEntry:
    allocation_id: str
    project_name: str
    task_name: str
    allocation_percentage: float
    start_date: Optional[date]
    end_date: Optional[date]
    category: Optional[str]
    complexity: Optional[str]


@dataclass(frozen=True)
class UtilizationResult:
    resource_id: str
    resource_name: Optional[str]
    current_utilization: float
    max_capacity: float
    utilization_percentage: float
    breakdown: Tuple[UtilizationEntry, ...] = ()
    error: Optional[str] = None

    @property
    def active_count(self) -> int:
        return len(self.breakdown)


@dataclass(frozen=True)
class OverAllocationResult:
    resource_id: str
    resource_name: Optional[str]
    is_over_allocated: bool
    current_utilization: float
    max_capacity: float
    threshold: float
    over_allocation_amount: float
    conflicting_allocations: Tuple[str, ...] = ()
    breakdown: Tuple[UtilizationEntry, ...] = ()
    error: Optional[str] = None


@dataclass(frozen=True)
class AllocationConflict:
    allocation_id: str
    project_name: str
    allocation_percentage: float
    conflict: str = "capacity_overlap"


@dataclass
class AllocationCheck:
    is_valid: bool = True
    warnings: List[str] = field(default_factory=list)
    errors: List[str] = field(default_factory=list)
    conflicts: List[AllocationConflict] = field(default_factory=list)
    recommendations: List[str] = field(default_factory=list)
    current_utilization: float = 0.0
    projected_utilization: float = 0.0
    threshold: float = DEFAULT_CAPACITY_THRESHOLD


@dataclass(frozen=True)
class ResourceAvailability:
    resource_id: str
    resource_name: Optional[str]
    available: bool
    current_utilization: float = 0.0
    max_capacity: float = DEFAULT_MAX_CAPACITY
    threshold: float = DEFAULT_CAPACITY_THRESHOLD
    available_capacity: float = 0.0
    available_percentage: float = 0.0
    status: str = "available"
    active_allocations: int = 0
    error: Optional[str] = None


@dataclass(frozen=True)
class UtilizationSummary:
    resource_id: str
    resource_name: str
    resource_type: Optional[str]
    current_utilization: float
    utilization_percentage: float
    max_capacity: float
    is_over_allocated: bool
    over_allocation_amount: float
    active_allocations: int
    status: str


def find_resource(identifier: Optional[str], resources: Sequence[Resource]) -> Optional[Resource]:
    """Resolve a resource by id or name, ignoring case on the name."""
    for resource in resources or ():
        if resource.matches(identifier):
            return resource
    return None


def utilization_status(utilization: float, max_capacity: float) -> str:
    percentage = utilization / max_capacity * 100
    if percentage > 100:
        return "over-capacity"
    if percentage >= 100:
        return "at-capacity"
    if percentage >= 80:
        return "high-utilization"
    if percentage >= 50:
        return "moderate-utilization"
    return "available"


class ResourceAllocationEngine:
    """Capacity arithmetic over caller-supplied allocation lists.

    The engine keeps no state besides its configuration; every method is a
    function of its arguments.
    """

    def __init__(self, config: Optional[AllocationEngineConfig] = None) -> None:
        self.config = config or AllocationEngineConfig()

    def threshold_for(self, resource: Resource, options: Optional[AllocationOptions] = None) -> float:
        if resource.over_allocation_threshold is not None:
            return resource.over_allocation_threshold
        if options is not None and options.capacity_threshold is not None:
            return options.capacity_threshold
        return self.config.default_capacity_threshold

    def _is_strict(self, options: Optional[AllocationOptions]) -> bool:
        if options is not None and options.strict_enforcement:
            return True
        return self.config.strict_enforcement

    def _active_for(
        self, resource: Resource, allocations: Sequence[Allocation], date_range: Optional[DateRange]
    ) -> List[Allocation]:
        start, end = date_range if date_range else (None, None)
        return [
            allocation
            for allocation in allocations or ()
            if resource.matches(allocation.resource)
            and allocation.is_active()
            and allocation.overlaps(start, end)
        ]

    def calculate_utilization(
        self,
        resource_id: str,
        allocations: Sequence[Allocation],
        resources: Sequence[Resource],
        date_range: Optional[DateRange] = None,
    ) -> UtilizationResult:
        resource = find_resource(resource_id, resources)
        if resource is None:
            return UtilizationResult(
                resource_id=resource_id,
                resource_name=None,
                current_utilization=0.0,
                max_capacity=0.0,
                utilization_percentage=0.0,
                error=f"Resource not found: {resource_id}",
            )
        breakdown = tuple(
            UtilizationEntry(
                allocation_id=allocation.id,
                project_name=allocation.project_name,
                task_name=allocation.task_name,
                allocation_percentage=allocation.effective_percentage(),
                start_date=allocation.plan.task_start,
                end_date=allocation.plan.task_end,
                category=allocation.category,
                complexity=allocation.complexity,
            )
            for allocation in self._active_for(resource, allocations, date_range)
        )
        total = sum(entry.allocation_percentage for entry in breakdown)
        max_capacity = resource.effective_max_capacity
        return UtilizationResult(
            resource_id=resource.id or resource_id,
            resource_name=resource.name,
            current_utilization=round_half_up(total, 3),
            max_capacity=max_capacity,
            utilization_percentage=round_half_up(total / max_capacity * 100, 2),
            breakdown=breakdown,
        )

    def detect_over_allocation(
        self,
        resource_id: str,
        allocations: Sequence[Allocation],
        resources: Sequence[Resource],
        options: Optional[AllocationOptions] = None,
    ) -> OverAllocationResult:
        resource = find_resource(resource_id, resources)
        if resource is None:
            return OverAllocationResult(
                resource_id=resource_id,
                resource_name=None,
                is_over_allocated=False,
                current_utilization=0.0,
                max_capacity=0.0,
                threshold=self.config.default_capacity_threshold,
                over_allocation_amount=0.0,
                error=f"Resource not found: {resource_id}",
            )
        threshold = self.threshold_for(resource, options)
        utilization = self.calculate_utilization(resource_id, allocations, resources)
        is_over = utilization.current_utilization > threshold
        conflicting = (
            tuple(entry.allocation_id for entry in utilization.breakdown if entry.allocation_percentage > 0)
            if is_over
            else ()
        )
        return OverAllocationResult(
            resource_id=utilization.resource_id,
            resource_name=resource.name,
            is_over_allocated=is_over,
            current_utilization=utilization.current_utilization,
            max_capacity=utilization.max_capacity,
            threshold=threshold,
            over_allocation_amount=round_half_up(max(0.0, utilization.current_utilization - threshold), 3),
            conflicting_allocations=conflicting,
            breakdown=utilization.breakdown,
        )

    def validate_allocation(
        self,
        request: Allocation,
        existing: Sequence[Allocation],
        resources: Sequence[Resource],
        options: Optional[AllocationOptions] = None,
    ) -> AllocationCheck:
        result = AllocationCheck(threshold=self.config.default_capacity_threshold)
        resource = find_resource(request.resource, resources)
        if resource is None:
            result.is_valid = False
            result.errors.append(f"Resource not found: {request.resource}")
            return result

        requested = request.raw_percentage()
        if not _valid_percentage(requested):
            result.is_valid = False
            result.errors.append(
                f"Invalid allocation percentage: {requested}. "
                f"Must be between {MIN_ALLOCATION_PCT} and {MAX_ALLOCATION_PCT}"
            )
            requested = 0.0 if not _is_finite(requested) else requested

        utilization = self.calculate_utilization(request.resource, existing, resources)
        projected = utilization.current_utilization + requested
        max_capacity = utilization.max_capacity
        threshold = self.threshold_for(resource, options)
        result.current_utilization = utilization.current_utilization
        result.projected_utilization = round_half_up(projected, 3)
        result.threshold = threshold

        if projected > threshold:
            over = projected - threshold
            if self._is_strict(options):
                result.is_valid = False
                result.errors.append(
                    "Allocation would cause over-allocation. "
                    f"Projected utilization: {projected * 100:.1f}%, "
                    f"Threshold: {threshold * 100:.1f}%, "
                    f"Over by: {over * 100:.1f}%"
                )
            else:
                result.warnings.append(
                    f"Allocation will exceed capacity threshold. Projected utilization: {projected * 100:.1f}%"
                )
            result.conflicts = [
                AllocationConflict(
                    allocation_id=entry.allocation_id,
                    project_name=entry.project_name,
                    allocation_percentage=entry.allocation_percentage,
                )
                for entry in utilization.breakdown
                if entry.allocation_percentage > 0
            ]
        elif projected > max_capacity:
            result.warnings.append(f"Allocation exceeds resource's maximum capacity ({max_capacity * 100:.0f}%)")

        if self.config.high_utilization_mark < projected <= max_capacity:
            result.recommendations.append(
                "Resource will be at high utilization. Consider monitoring workload closely."
            )
        if utilization.active_count >= self.config.many_allocations_count:
            result.recommendations.append(
                "Resource already has many concurrent allocations. Consider task prioritization."
            )
        return result

    def get_resource_availability(
        self,
        resource_id: str,
        allocations: Sequence[Allocation],
        resources: Sequence[Resource],
        date_range: Optional[DateRange] = None,
    ) -> ResourceAvailability:
        resource = find_resource(resource_id, resources)
        if resource is None:
            return ResourceAvailability(
                resource_id=resource_id,
                resource_name=None,
                available=False,
                error=f"Resource not found: {resource_id}",
            )
        utilization = self.calculate_utilization(resource_id, allocations, resources, date_range)
        threshold = self.threshold_for(resource)
        available_capacity = max(0.0, threshold - utilization.current_utilization)
        return ResourceAvailability(
            resource_id=utilization.resource_id,
            resource_name=resource.name,
            available=available_capacity > 0,
            current_utilization=utilization.current_utilization,
            max_capacity=utilization.max_capacity,
            threshold=threshold,
            available_capacity=round_half_up(available_capacity, 3),
            available_percentage=round_half_up(available_capacity * 100, 1),
            status=utilization_status(utilization.current_utilization, utilization.max_capacity),
            active_allocations=utilization.active_count,
        )

    def get_utilization_summary(
        self, allocations: Sequence[Allocation], resources: Sequence[Resource]
    ) -> List[UtilizationSummary]:
        summaries: List[UtilizationSummary] = []
        for resource in resources or ():
            if not resource.is_active:
                continue
            utilization = self.calculate_utilization(resource.name, allocations, resources)
            over = self.detect_over_allocation(resource.name, allocations, resources)
            summaries.append(
                UtilizationSummary(
                    resource_id=resource.id,
                    resource_name=resource.name,
                    resource_type=resource.resource_type,
                    current_utilization=utilization.current_utilization,
                    utilization_percentage=utilization.utilization_percentage,
                    max_capacity=utilization.max_capacity,
                    is_over_allocated=over.is_over_allocated,
                    over_allocation_amount=over.over_allocation_amount,
                    active_allocations=utilization.active_count,
                    status=utilization_status(utilization.current_utilization, utilization.max_capacity),
                )
            )
        summaries.sort(key=lambda item: item.utilization_percentage, reverse=True)
        return summaries

    def utilization_summary_frame(
        self, allocations: Sequence[Allocation], resources: Sequence[Resource]
    ) -> pd.DataFrame:
        rows = [asdict(summary) for summary in self.get_utilization_summary(allocations, resources)]
        columns = list(UtilizationSummary.__dataclass_fields__)
        return pd.DataFrame(rows, columns=columns)


def _is_finite(value: object) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool) and math.isfinite(value)


def _valid_percentage(value: object) -> bool:
    return _is_finite(value) and MIN_ALLOCATION_PCT <= value <= MAX_ALLOCATION_PCT


def member_workload_frame(
    allocations: Sequence[Allocation],
    resources: Sequence[Resource],
    costs: Sequence[ResourceCostRecord] = (),
) -> pd.DataFrame:
    """Per-member totals: summed workload, active and completed counts, and the
    ratio of active monthly cost to the member's monthly cost."""
    monthly_cost: Dict[str, float] = {
        record.resource_name.lower(): record.monthly_cost for record in costs if record.resource_name
    }
    rows = []
    for resource in resources:
        owned = [allocation for allocation in allocations if resource.matches(allocation.resource)]
        active = [allocation for allocation in owned if allocation.task_name != "Completed"]
        member_cost = monthly_cost.get(resource.name.lower(), 0.0)
        active_cost = sum(allocation.plan.cost_monthly or 0.0 for allocation in active)
        rows.append(
            {
                "resource": resource.name,
                "total_workload": sum(allocation.workload or 0.0 for allocation in owned),
                "active_count": len(active),
                "completed_count": len(owned) - len(active),
                "active_workload_ratio": active_cost / member_cost if member_cost else 0.0,
            }
        )
    return pd.DataFrame(
        rows, columns=["resource", "total_workload", "active_count", "completed_count", "active_workload_ratio"]
    )


def task_matrix_frame(allocations: Sequence[Allocation], resources: Sequence[Resource]) -> pd.DataFrame:
    """Count of allocations per task name (rows) and member (columns)."""
    names = [resource.name for resource in resources]
    records = [
        {"task_name": allocation.task_name, "resource": allocation.resource}
        for allocation in allocations
        if allocation.resource in names
    ]
    if not records:
        return pd.DataFrame(columns=names)
    df = pd.DataFrame(records)
    matrix = pd.crosstab(df["task_name"], df["resource"])
    return matrix.reindex(columns=names, fill_value=0)


default_engine = ResourceAllocationEngine()


def calculate_utilization(
    resource_id: str,
    allocations: Sequence[Allocation],
    resources: Sequence[Resource],
    date_range: Optional[DateRange] = None,
) -> UtilizationResult:
    return default_engine.calculate_utilization(resource_id, allocations, resources, date_range)


def detect_over_allocation(
    resource_id: str,
    allocations: Sequence[Allocation],
    resources: Sequence[Resource],
    options: Optional[AllocationOptions] = None,
) -> OverAllocationResult:
    return default_engine.detect_over_allocation(resource_id, allocations, resources, options)


def validate_allocation(
    request: Allocation,
    existing: Sequence[Allocation],
    resources: Sequence[Resource],
    options: Optional[AllocationOptions] = None,
) -> AllocationCheck:
    return default_engine.validate_allocation(request, existing, resources, options)


def get_resource_availability(
    resource_id: str,
    allocations: Sequence[Allocation],
    resources: Sequence[Resource],
    date_range: Optional[DateRange] = None,
) -> ResourceAvailability:
    return default_engine.get_resource_availability(resource_id, allocations, resources, date_range)


def get_utilization_summary(allocations: Sequence[Allocation], resources: Sequence[Resource]) -> List[UtilizationSummary]:
    return default_engine.get_utilization_summary(allocations, resources)
