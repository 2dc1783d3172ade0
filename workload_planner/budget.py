"""
Cost-center budget checks for allocation costs.

Spend for a cost center is its recorded actual cost plus the planned cost of
every allocation charged to it (by ``cost_center_id`` or by the snapshot
taken at recalculation). Monthly figures use ``plan.cost_monthly`` and yearly
figures use ``plan.cost_project``.

Enforcement follows the same policy split as capacity checks: ``strict``
rejects an allocation that would overrun the budget, ``warning`` lets it
through with a warning, ``none`` always approves.
"""

from __future__ import annotations

import logging
from dataclasses import asdict, dataclass
from typing import Iterable, List, Optional, Sequence, Tuple

import pandas as pd

from .complexity import round_half_up
from .models import Allocation, BudgetDetails, CostCenter, SystemErrorDetails, ValidationResult
from .validation import SEVERITY_ERROR, SEVERITY_INFO, SEVERITY_WARNING

logger = logging.getLogger(__name__)

CHECK_BUDGET = "budget"

BUDGET_STRICT = "strict"
BUDGET_WARNING = "warning"
BUDGET_NONE = "none"
BUDGET_ENFORCEMENT_MODES: Tuple[str, ...] = (BUDGET_STRICT, BUDGET_WARNING, BUDGET_NONE)

PERIOD_MONTHLY = "monthly"
PERIOD_YEARLY = "yearly"
BUDGET_PERIODS: Tuple[str, ...] = (PERIOD_MONTHLY, PERIOD_YEARLY)

# (lower bound in percent, label), checked from the top.
BUDGET_STATUS_BANDS: Tuple[Tuple[float, str], ...] = (
    (100.0, "Over Budget"),
    (90.0, "Critical"),
    (75.0, "High"),
    (40.0, "Moderate"),
)


def format_currency(amount: float, currency: str = "IDR") -> str:
    return f"{currency} {amount:,.0f}"


def budget_status_text(utilization: float) -> str:
    for lower, label in BUDGET_STATUS_BANDS:
        if utilization >= lower:
            return label
    return "Low"


@dataclass(frozen=True)
class BudgetStatus:
    cost_center_id: str
    cost_center_code: str
    cost_center_name: str
    period: str
    enforcement_mode: str
    total_budget: float
    current_spend: float
    pending_cost: float
    projected_spend: float
    available_budget: float
    utilization: float
    status: str
    is_over_budget: bool


@dataclass(frozen=True)
class OverBudgetCostCenter:
    cost_center: CostCenter
    utilization: float
    overage_amount: float


class BudgetManager:
    """Budget views over a fixed set of cost centers and allocations."""

    def __init__(self, cost_centers: Iterable[CostCenter] = (), allocations: Iterable[Allocation] = ()) -> None:
        self.cost_centers: List[CostCenter] = list(cost_centers)
        self.allocations: List[Allocation] = list(allocations)

    def get_cost_center(self, cost_center_id: Optional[str]) -> Optional[CostCenter]:
        for center in self.cost_centers:
            if center.id == cost_center_id:
                return center
        return None

    @staticmethod
    def _budget(center: CostCenter, period: str) -> float:
        return center.monthly_budget if period == PERIOD_MONTHLY else center.yearly_budget

    def current_spend(self, cost_center_id: str, period: str = PERIOD_MONTHLY) -> float:
        center = self.get_cost_center(cost_center_id)
        if center is None:
            return 0.0
        return center.actual_monthly_cost if period == PERIOD_MONTHLY else center.actual_yearly_cost

    def pending_allocations_cost(self, cost_center_id: str, period: str = PERIOD_MONTHLY) -> float:
        total = 0.0
        for allocation in self.allocations:
            snapshot_id = allocation.cost_center_snapshot.id if allocation.cost_center_snapshot else None
            if allocation.cost_center_id != cost_center_id and snapshot_id != cost_center_id:
                continue
            total += (allocation.plan.cost_monthly if period == PERIOD_MONTHLY else allocation.plan.cost_project) or 0
        return total

    def projected_spend(self, cost_center_id: str, additional_cost: float = 0.0, period: str = PERIOD_MONTHLY) -> float:
        return (
            self.current_spend(cost_center_id, period)
            + self.pending_allocations_cost(cost_center_id, period)
            + additional_cost
        )

    def get_available_budget(self, cost_center_id: str, period: str = PERIOD_MONTHLY) -> float:
        center = self.get_cost_center(cost_center_id)
        if center is None:
            return 0.0
        return max(0.0, self._budget(center, period) - self.projected_spend(cost_center_id, 0.0, period))

    def get_budget_utilization(self, cost_center_id: str, period: str = PERIOD_MONTHLY) -> float:
        """Projected spend as a percentage of the period budget; 0 when there is no budget."""
        center = self.get_cost_center(cost_center_id)
        if center is None:
            return 0.0
        budget = self._budget(center, period)
        if budget <= 0:
            return 0.0
        return self.projected_spend(cost_center_id, 0.0, period) / budget * 100

    def enforcement_mode(self, cost_center_id: str) -> str:
        center = self.get_cost_center(cost_center_id)
        if center is None:
            return BUDGET_NONE
        mode = (center.budget_enforcement or BUDGET_WARNING).lower()
        if mode not in BUDGET_ENFORCEMENT_MODES:
            logger.warning("Unknown budget enforcement %r on cost center %s; using warning", mode, center.id)
            return BUDGET_WARNING
        return mode

    def validate_budget_capacity(
        self, cost_center_id: str, allocation_cost: float, period: str = PERIOD_MONTHLY
    ) -> ValidationResult:
        if period not in BUDGET_PERIODS:
            return ValidationResult(
                type=CHECK_BUDGET,
                is_valid=False,
                severity=SEVERITY_ERROR,
                message=f"Unsupported budget period: {period}",
                details=SystemErrorDetails(check=CHECK_BUDGET, error=f"Unsupported budget period: {period}"),
            )
        center = self.get_cost_center(cost_center_id)
        if center is None:
            return ValidationResult(
                type=CHECK_BUDGET,
                is_valid=False,
                severity=SEVERITY_ERROR,
                message="Cost center not found",
                details=BudgetDetails(cost_center_id=cost_center_id, period=period, allocation_cost=allocation_cost),
            )

        mode = self.enforcement_mode(cost_center_id)
        budget = self._budget(center, period)
        current = self.projected_spend(cost_center_id, 0.0, period)
        projected = current + allocation_cost
        utilization = projected / budget * 100 if budget > 0 else 0.0
        threshold = center.over_budget_threshold or 0.0
        max_allowed = budget * (1 + threshold / 100)
        exceeds_budget = projected > budget
        overrun = format_currency(projected - budget)

        severity = SEVERITY_INFO
        recommendations: Tuple[str, ...] = ()
        if exceeds_budget and mode == BUDGET_STRICT:
            severity = SEVERITY_ERROR
            message = f"Allocation rejected: Would exceed {period} budget by {overrun}"
            recommendations = ("Reduce the allocation cost or move it to a cost center with remaining budget",)
        elif exceeds_budget and mode == BUDGET_WARNING:
            severity = SEVERITY_WARNING
            if projected > max_allowed:
                message = f"Budget warning: Allocation would exceed {period} budget threshold ({utilization:.1f}% utilization)"
            else:
                message = f"Budget warning: Allocation would exceed {period} budget by {overrun}"
            recommendations = ("Review cost center spend before committing the allocation",)
        else:
            message = (
                f"Budget validation passed: {format_currency(budget - current)} remaining in {period} budget"
            )

        return ValidationResult(
            type=CHECK_BUDGET,
            is_valid=severity != SEVERITY_ERROR,
            severity=severity,
            message=message,
            details=BudgetDetails(
                cost_center_id=cost_center_id,
                period=period,
                allocation_cost=allocation_cost,
                cost_center_name=center.name,
                total_budget=budget,
                current_projected_spend=current,
                new_projected_spend=projected,
                available_budget=budget - current,
                utilization_after_allocation=round_half_up(utilization, 2),
                enforcement_mode=mode,
                over_budget_threshold=threshold,
                max_allowed_spend=max_allowed,
                recommendations=recommendations,
            ),
        )

    def has_sufficient_budget(self, cost_center_id: str, allocation_cost: float, period: str = PERIOD_MONTHLY) -> bool:
        return self.validate_budget_capacity(cost_center_id, allocation_cost, period).severity == SEVERITY_INFO

    def budget_status(self, cost_center_id: str, period: str = PERIOD_MONTHLY) -> Optional[BudgetStatus]:
        center = self.get_cost_center(cost_center_id)
        if center is None:
            return None
        budget = self._budget(center, period)
        current = self.current_spend(cost_center_id, period)
        pending = self.pending_allocations_cost(cost_center_id, period)
        projected = current + pending
        utilization = projected / budget * 100 if budget > 0 else 0.0
        return BudgetStatus(
            cost_center_id=center.id,
            cost_center_code=center.code,
            cost_center_name=center.name,
            period=period,
            enforcement_mode=self.enforcement_mode(center.id),
            total_budget=budget,
            current_spend=current,
            pending_cost=pending,
            projected_spend=projected,
            available_budget=max(0.0, budget - projected),
            utilization=round_half_up(utilization, 2),
            status=budget_status_text(utilization),
            is_over_budget=projected > budget,
        )

    def get_over_budget_cost_centers(self, period: str = PERIOD_MONTHLY) -> List[OverBudgetCostCenter]:
        over: List[OverBudgetCostCenter] = []
        for center in self.cost_centers:
            utilization = self.get_budget_utilization(center.id, period)
            if utilization <= 100:
                continue
            over.append(
                OverBudgetCostCenter(
                    cost_center=center,
                    utilization=round_half_up(utilization, 2),
                    overage_amount=self.projected_spend(center.id, 0.0, period) - self._budget(center, period),
                )
            )
        return over

    def budget_summary_frame(self, period: str = PERIOD_MONTHLY) -> pd.DataFrame:
        rows = [asdict(self.budget_status(center.id, period)) for center in self.cost_centers]
        return pd.DataFrame(rows, columns=list(BudgetStatus.__dataclass_fields__))


def validate_allocation_budget(
    cost_center_id: str,
    allocation_cost: float,
    cost_centers: Sequence[CostCenter],
    allocations: Sequence[Allocation] = (),
    period: str = PERIOD_MONTHLY,
) -> ValidationResult:
    return BudgetManager(cost_centers, allocations).validate_budget_capacity(cost_center_id, allocation_cost, period)
