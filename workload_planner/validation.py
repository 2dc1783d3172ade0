"""
Pre-allocation validation.

Four independent checks (availability, skill match, capacity limits, workload
sustainability) each produce a ValidationResult; a cross-validation step folds
them into one recommendation. None of the checks raise on bad input: an
unexpected failure inside a check is logged and reported as an error result.
"""

from __future__ import annotations

import logging
import math
import re
from dataclasses import dataclass
from datetime import date
from typing import Callable, Dict, FrozenSet, List, Optional, Sequence, Tuple

from .allocation import ResourceAllocationEngine, find_resource
from .complexity import DEFAULT_COMPLEXITY, ComplexityTable
from .models import (
    MAX_ALLOCATION_PCT,
    MIN_ALLOCATION_PCT,
    Allocation,
    AvailabilityDetails,
    CapacityDetails,
    CrossValidationDetails,
    LeaveRecord,
    Resource,
    SkillGap,
    SkillMatchDetails,
    SystemErrorDetails,
    ValidationResult,
    WorkloadDetails,
)

logger = logging.getLogger(__name__)

SEVERITY_INFO = "info"
SEVERITY_WARNING = "warning"
SEVERITY_ERROR = "error"

CHECK_AVAILABILITY = "availability"
CHECK_SKILL_MATCH = "skill_match"
CHECK_CAPACITY = "capacity_limits"
CHECK_WORKLOAD = "workload_constraints"
CHECK_CROSS = "cross_validation"
CHECK_SYSTEM_ERROR = "system_error"

SIGNIFICANT_OVER_ALLOCATION = 0.2
VERY_HIGH_UTILIZATION = 0.9
HIGH_RISK_LEVELS = frozenset({"high", "sophisticated"})

DEFAULT_SKILL_SYNONYMS: Tuple[FrozenSet[str], ...] = (
    frozenset({"javascript", "js", "ecmascript"}),
    frozenset({"typescript", "ts"}),
    frozenset({"python", "py"}),
    frozenset({"kubernetes", "k8s"}),
    frozenset({"postgresql", "postgres", "psql"}),
    frozenset({"qa", "testing", "quality assurance"}),
    frozenset({"devops", "ci/cd", "cicd"}),
    frozenset({"frontend", "front-end", "ui"}),
    frozenset({"backend", "back-end", "api"}),
    frozenset({"machine learning", "ml"}),
    frozenset({"amazon web services", "aws"}),
    frozenset({"google cloud", "gcp"}),
)

# Optimal tier band per complexity and the minimum tier when no skills are listed.
OPTIMAL_TIER_RANGES: Dict[str, Tuple[int, int]] = {
    "low": (1, 3),
    "medium": (2, 4),
    "high": (3, 5),
    "sophisticated": (4, 5),
}
MINIMUM_CAPABLE_TIER: Dict[str, int] = {"low": 1, "medium": 2, "high": 3, "sophisticated": 4}


@dataclass(frozen=True)
class ValidationConfig:
    strict_skill_matching: bool = False
    allow_over_allocation: bool = False
    validate_leave_schedules: bool = True
    validate_capacity_limits: bool = True
    max_concurrent_tasks: int = 5
    skill_synonyms: Tuple[FrozenSet[str], ...] = DEFAULT_SKILL_SYNONYMS


def _normalize_skill(value: object) -> str:
    return " ".join(str(value).strip().lower().split())


def _tokens(skill: str) -> FrozenSet[str]:
    return frozenset(token for token in re.split(r"[\s/_\-.,]+", skill) if len(token) > 1)


def _finite(value: object) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool) and math.isfinite(value)


def _dedupe(items: Sequence[str]) -> Tuple[str, ...]:
    seen: List[str] = []
    for item in items:
        if item not in seen:
            seen.append(item)
    return tuple(seen)


class ValidationEngine:
    def __init__(
        self,
        config: Optional[ValidationConfig] = None,
        allocation_engine: Optional[ResourceAllocationEngine] = None,
        complexity_table: ComplexityTable = DEFAULT_COMPLEXITY,
    ) -> None:
        self.config = config or ValidationConfig()
        self.allocation_engine = allocation_engine or ResourceAllocationEngine()
        self.complexity_table = complexity_table
        self._synonyms: Dict[str, FrozenSet[str]] = {}
        for group in self.config.skill_synonyms:
            normalized = frozenset(_normalize_skill(item) for item in group)
            for item in normalized:
                self._synonyms[item] = self._synonyms.get(item, frozenset()) | normalized

    # -- helpers ---------------------------------------------------------

    def _guarded(self, check: str, func: Callable[[], ValidationResult]) -> ValidationResult:
        try:
            return func()
        except Exception as exc:  # reported to the caller as an error result
            logger.exception("Validation check %s failed", check)
            return ValidationResult(
                type=check,
                is_valid=False,
                severity=SEVERITY_ERROR,
                message=f"Error during {check.replace('_', ' ')} validation: {exc}",
                details=SystemErrorDetails(check=check, error=str(exc)),
            )

    def _level(self, complexity: object) -> str:
        config = self.complexity_table.lookup(complexity)
        return config.level if config is not None else self.complexity_table.fallback

    def _resource_missing(self, check: str, resource_id: object) -> ValidationResult:
        return ValidationResult(
            type=check,
            is_valid=False,
            severity=SEVERITY_ERROR,
            message=f"Resource not found: {resource_id}",
            details=SystemErrorDetails(check=check, error=f"Resource not found: {resource_id}"),
        )

    def _skill_equivalents(self, skill: str) -> FrozenSet[str]:
        return self._synonyms.get(skill, frozenset()) | {skill}

    # -- availability ------------------------------------------------------

    def validate_resource_availability(
        self,
        resource_id: str,
        start: Optional[date],
        end: Optional[date],
        existing: Sequence[Allocation] = (),
        resources: Sequence[Resource] = (),
        leaves: Sequence[LeaveRecord] = (),
    ) -> ValidationResult:
        return self._guarded(
            CHECK_AVAILABILITY,
            lambda: self._availability(resource_id, start, end, existing, resources, leaves),
        )

    def _availability(
        self,
        resource_id: str,
        start: Optional[date],
        end: Optional[date],
        existing: Sequence[Allocation],
        resources: Sequence[Resource],
        leaves: Sequence[LeaveRecord],
    ) -> ValidationResult:
        resource = find_resource(resource_id, resources)
        if resource is None:
            return self._resource_missing(CHECK_AVAILABILITY, resource_id)

        is_valid = True
        severity = SEVERITY_INFO
        message = "Resource is available"
        conflicts: Tuple[str, ...] = ()
        leave_conflicts: Tuple[str, ...] = ()
        if start is not None and end is not None:
            conflicts = tuple(
                allocation.id
                for allocation in existing
                if resource.matches(allocation.resource)
                and allocation.is_active()
                and allocation.plan.task_start is not None
                and allocation.plan.task_end is not None
                and allocation.overlaps(start, end)
            )
            if conflicts:
                severity = SEVERITY_WARNING
                message = f"Resource has {len(conflicts)} conflicting allocation(s)"
            if self.config.validate_leave_schedules:
                leave_conflicts = tuple(
                    leave.id
                    for leave in leaves
                    if resource.matches(leave.member_name) and leave.overlaps(start, end)
                )
                if leave_conflicts:
                    is_valid = False
                    severity = SEVERITY_ERROR
                    message = f"Resource has {len(leave_conflicts)} leave conflict(s)"

        date_range = (start, end) if start is not None and end is not None else None
        utilization = self.allocation_engine.calculate_utilization(resource_id, existing, resources, date_range)
        threshold = self.allocation_engine.threshold_for(resource)
        over = max(0.0, utilization.current_utilization - threshold)
        capacity_exceeded = utilization.current_utilization > threshold
        if capacity_exceeded and severity != SEVERITY_ERROR:
            if over > SIGNIFICANT_OVER_ALLOCATION:
                is_valid = False
                severity = SEVERITY_ERROR
                message = "Resource significantly over-allocated during period"
            else:
                severity = SEVERITY_WARNING
                message = "Resource near capacity limit during period"

        recommendations: List[str] = []
        if conflicts or leave_conflicts or capacity_exceeded:
            recommendations.append("Consider adjusting allocation dates or reducing allocation percentage")
            if conflicts:
                recommendations.append("Review existing allocations for potential rescheduling")

        return ValidationResult(
            type=CHECK_AVAILABILITY,
            is_valid=is_valid,
            severity=severity,
            message=message,
            details=AvailabilityDetails(
                resource_id=resource_id,
                start_date=start,
                end_date=end,
                conflicts=conflicts,
                leave_conflicts=leave_conflicts,
                period_utilization=utilization.current_utilization,
                recommendations=tuple(recommendations),
            ),
        )

    # -- skills -------------------------------------------------------------

    def validate_skill_match(
        self,
        resource_id: str,
        required_skills: Sequence[str] = (),
        complexity: object = "medium",
        resources: Sequence[Resource] = (),
    ) -> ValidationResult:
        return self._guarded(
            CHECK_SKILL_MATCH,
            lambda: self._skill_match(resource_id, required_skills, complexity, resources),
        )

    def _classify_skill(self, required: str, owned: Sequence[str]) -> Tuple[Optional[str], float, Optional[str]]:
        """Return (matched skill, confidence, partial match) for one requirement."""
        wanted = _normalize_skill(required)
        equivalents = self._skill_equivalents(wanted)
        for skill in owned:
            if _normalize_skill(skill) == wanted:
                return skill, 1.0, None
        for skill in owned:
            if _normalize_skill(skill) in equivalents:
                return skill, 0.9, None
        for skill in owned:
            normalized = _normalize_skill(skill)
            if normalized and (wanted in normalized or normalized in wanted):
                return skill, 0.8, None
        wanted_tokens = set()
        for equivalent in equivalents:
            wanted_tokens |= _tokens(equivalent)
        for skill in owned:
            if wanted_tokens & _tokens(_normalize_skill(skill)):
                return None, 0.0, skill
        return None, 0.0, None

    def _skill_match(
        self,
        resource_id: str,
        required_skills: Sequence[str],
        complexity: object,
        resources: Sequence[Resource],
    ) -> ValidationResult:
        resource = find_resource(resource_id, resources)
        if resource is None:
            return self._resource_missing(CHECK_SKILL_MATCH, resource_id)
        level = self._level(complexity)
        tier = resource.tier_level if _finite(resource.tier_level) else 2
        requirements = [skill for skill in (required_skills or ()) if str(skill).strip()]

        is_valid = True
        severity = SEVERITY_INFO
        message = "Skills match requirements"
        matched: List[str] = []
        gaps: List[SkillGap] = []
        confidences: List[float] = []
        recommendations: List[str] = []

        if not requirements:
            if tier < MINIMUM_CAPABLE_TIER.get(level, 2):
                severity = SEVERITY_WARNING
                message = f"Resource tier level ({tier}) may not be optimal for {level} complexity tasks"
                seniority = "senior" if level == "sophisticated" else "more experienced"
                recommendations.append(f"Consider assigning a {seniority} resource")
            return ValidationResult(
                type=CHECK_SKILL_MATCH,
                is_valid=True,
                severity=severity,
                message=message,
                details=SkillMatchDetails(
                    resource_id=resource_id,
                    complexity=level,
                    recommendations=tuple(recommendations),
                ),
            )

        for required in requirements:
            skill, confidence, partial = self._classify_skill(str(required), resource.skill_areas)
            if skill is not None:
                matched.append(skill)
                confidences.append(confidence)
            elif partial is not None:
                gaps.append(SkillGap(skill=str(required), severity="moderate", closest_match=partial))
                confidences.append(0.5)
            else:
                gaps.append(SkillGap(skill=str(required), severity="critical"))
                confidences.append(0.0)

        critical = [gap for gap in gaps if gap.severity == "critical"]
        if not gaps:
            message = "All required skills are available"
        elif critical:
            escalate = level in HIGH_RISK_LEVELS or self.config.strict_skill_matching
            is_valid = not escalate
            severity = SEVERITY_ERROR if escalate else SEVERITY_WARNING
            message = f"Missing {len(critical)} critical skill(s)"
            recommendations.append("Consider providing training or pairing with experienced team member")
        else:
            severity = SEVERITY_WARNING
            message = f"Missing {len(gaps)} non-critical skill(s)"
            recommendations.append("Resource can learn missing skills during task execution")

        low, high = OPTIMAL_TIER_RANGES.get(level, (2, 4))
        tier_fit = "optimal"
        if tier < low:
            tier_fit = "under"
            recommendations.append(
                f"Consider assigning a more senior resource (tier {low}+ recommended for {level} complexity)"
            )
        elif tier > high:
            tier_fit = "over"
            recommendations.append(
                f"Resource may be overqualified for {level} complexity task - consider utilizing on higher complexity work"
            )
        if tier_fit != "optimal" and severity == SEVERITY_INFO:
            severity = SEVERITY_WARNING
            message = "Skill match acceptable but tier level concerns exist"

        return ValidationResult(
            type=CHECK_SKILL_MATCH,
            is_valid=is_valid,
            severity=severity,
            message=message,
            details=SkillMatchDetails(
                resource_id=resource_id,
                complexity=level,
                matched_skills=tuple(matched),
                gaps=tuple(gaps),
                match_score=round(sum(confidences) / len(confidences), 2),
                tier_fit=tier_fit,
                recommendations=tuple(recommendations),
            ),
        )

    # -- capacity -------------------------------------------------------------

    def validate_capacity_limits(
        self,
        resource_id: str,
        requested: object = 1.0,
        existing: Sequence[Allocation] = (),
        resources: Sequence[Resource] = (),
    ) -> ValidationResult:
        return self._guarded(
            CHECK_CAPACITY,
            lambda: self._capacity(resource_id, requested, existing, resources),
        )

    def _capacity(
        self,
        resource_id: str,
        requested: object,
        existing: Sequence[Allocation],
        resources: Sequence[Resource],
    ) -> ValidationResult:
        resource = find_resource(resource_id, resources)
        if resource is None:
            return self._resource_missing(CHECK_CAPACITY, resource_id)
        threshold = self.allocation_engine.threshold_for(resource)
        max_capacity = resource.effective_max_capacity
        if not _finite(requested) or not MIN_ALLOCATION_PCT <= requested <= MAX_ALLOCATION_PCT:
            return ValidationResult(
                type=CHECK_CAPACITY,
                is_valid=False,
                severity=SEVERITY_ERROR,
                message=(
                    f"Invalid allocation percentage: {requested}. "
                    f"Must be between {MIN_ALLOCATION_PCT} and {MAX_ALLOCATION_PCT}"
                ),
                details=CapacityDetails(
                    resource_id=resource_id,
                    current_utilization=0.0,
                    requested_percentage=float("nan") if not _finite(requested) else float(requested),
                    projected_utilization=0.0,
                    max_capacity=max_capacity,
                    threshold=threshold,
                ),
            )

        utilization = self.allocation_engine.calculate_utilization(resource_id, existing, resources)
        current = utilization.current_utilization
        projected = current + float(requested)
        is_valid = True
        severity = SEVERITY_INFO
        message = "Capacity limits respected"
        recommendations: List[str] = []

        if projected > threshold:
            over = projected - threshold
            if self.config.allow_over_allocation or not self.config.validate_capacity_limits:
                severity = SEVERITY_WARNING
                message = f"Allocation exceeds threshold by {over * 100:.1f}%"
            else:
                is_valid = False
                severity = SEVERITY_ERROR
                message = f"Allocation would exceed capacity threshold by {over * 100:.1f}%"
            recommendations.append(
                f"Reduce allocation percentage to {max(MIN_ALLOCATION_PCT, threshold - current):.2f} or less"
            )
            if utilization.active_count:
                recommendations.append("Consider rescheduling or reducing existing allocations")
        elif projected > max_capacity:
            severity = SEVERITY_WARNING
            message = "Allocation exceeds base capacity but within threshold"
            recommendations.append("Monitor resource workload closely for signs of overwork")

        if projected > VERY_HIGH_UTILIZATION:
            recommendations.append(
                "Resource will be at very high utilization - ensure adequate support and monitoring"
            )

        return ValidationResult(
            type=CHECK_CAPACITY,
            is_valid=is_valid,
            severity=severity,
            message=message,
            details=CapacityDetails(
                resource_id=resource_id,
                current_utilization=current,
                requested_percentage=float(requested),
                projected_utilization=round(projected, 3),
                max_capacity=max_capacity,
                threshold=threshold,
                recommendations=tuple(recommendations),
            ),
        )

    # -- workload -------------------------------------------------------------

    def validate_workload_constraints(
        self,
        request: Allocation,
        existing: Sequence[Allocation] = (),
        resources: Sequence[Resource] = (),
    ) -> ValidationResult:
        return self._guarded(CHECK_WORKLOAD, lambda: self._workload(request, existing, resources))

    def sustainability_score(
        self, total_utilization: float, task_count: int, sophisticated_count: int, tier: int
    ) -> int:
        score = 100.0
        if total_utilization > 1.0:
            score -= (total_utilization - 1.0) * 30
        if task_count > self.config.max_concurrent_tasks:
            score -= (task_count - self.config.max_concurrent_tasks) * 10
        if sophisticated_count > 1:
            score -= (sophisticated_count - 1) * 15
        if tier >= 3:
            score += 5
        return int(max(0, min(100, math.floor(score + 0.5))))

    def _workload(
        self, request: Allocation, existing: Sequence[Allocation], resources: Sequence[Resource]
    ) -> ValidationResult:
        resource = find_resource(request.resource, resources)
        if resource is None:
            return self._resource_missing(CHECK_WORKLOAD, request.resource)
        utilization = self.allocation_engine.calculate_utilization(request.resource, existing, resources)
        requested = request.raw_percentage()
        requested = float(requested) if _finite(requested) else MAX_ALLOCATION_PCT
        projected = utilization.current_utilization + requested
        current_count = utilization.active_count

        counts: Dict[str, int] = {}
        for entry in utilization.breakdown:
            level = self._level(entry.complexity)
            counts[level] = counts.get(level, 0) + 1
        new_level = self._level(request.complexity)
        counts[new_level] = counts.get(new_level, 0) + 1

        tier = resource.tier_level if _finite(resource.tier_level) else 2
        score = self.sustainability_score(projected, current_count + 1, counts.get("sophisticated", 0), tier)

        is_valid = True
        severity = SEVERITY_INFO
        message = "Workload constraints satisfied"
        recommendations: List[str] = []
        if current_count >= self.config.max_concurrent_tasks:
            severity = SEVERITY_WARNING
            message = f"Resource at maximum concurrent task limit ({self.config.max_concurrent_tasks})"
            recommendations.append(
                "Consider waiting for current tasks to complete or reassigning to another resource"
            )
        if score < 50:
            is_valid = False
            severity = SEVERITY_ERROR
            message = f"Unsustainable workload detected: {score}%"
            recommendations.append("Immediate action required to reduce workload or provide additional resources")
        elif score < 70:
            severity = SEVERITY_WARNING
            if current_count < self.config.max_concurrent_tasks:
                message = f"Low workload sustainability score: {score}%"
            recommendations.append("Workload may not be sustainable long-term - consider load balancing")

        sophisticated = counts.get("sophisticated", 0)
        if sophisticated > 2:
            recommendations.append("Too many sophisticated complexity tasks - consider redistributing workload")
        elif sophisticated + counts.get("high", 0) > 3:
            recommendations.append("High concentration of complex tasks - ensure adequate support and monitoring")

        return ValidationResult(
            type=CHECK_WORKLOAD,
            is_valid=is_valid,
            severity=severity,
            message=message,
            details=WorkloadDetails(
                resource_id=request.resource,
                concurrent_tasks=current_count,
                projected_utilization=round(projected, 3),
                sustainability_score=score,
                complexity_counts=counts,
                recommendations=tuple(recommendations),
            ),
        )

    # -- aggregation ------------------------------------------------------------

    def perform_cross_validation(self, results: Sequence[ValidationResult]) -> ValidationResult:
        errors = sum(1 for result in results if result.severity == SEVERITY_ERROR)
        warnings = sum(1 for result in results if result.severity == SEVERITY_WARNING)
        if errors:
            risk, recommendation, severity = "high", "reject", SEVERITY_ERROR
            message = f"{errors} critical validation error(s) found"
        elif warnings > 2:
            risk, recommendation, severity = "medium", "proceed_with_caution", SEVERITY_WARNING
            message = f"{warnings} validation warning(s) found"
        elif warnings:
            risk, recommendation, severity = "low", "proceed_with_monitoring", SEVERITY_WARNING
            message = f"{warnings} minor validation warning(s) found"
        else:
            risk, recommendation, severity = "low", "proceed", SEVERITY_INFO
            message = "Cross-validation passed"

        by_type = {result.type: result for result in results}
        conflicts: List[str] = []
        availability = by_type.get(CHECK_AVAILABILITY)
        capacity = by_type.get(CHECK_CAPACITY)
        if availability is not None and capacity is not None and availability.is_valid and not capacity.is_valid:
            conflicts.append("Resource appears available but capacity limits would be exceeded")
            message += " (with conflicting recommendations)"

        recommendations = _dedupe([item for result in results for item in result.recommendations])
        return ValidationResult(
            type=CHECK_CROSS,
            is_valid=errors == 0,
            severity=severity,
            message=message,
            details=CrossValidationDetails(
                overall_risk=risk,
                recommendation=recommendation,
                error_count=errors,
                warning_count=warnings,
                conflicts=tuple(conflicts),
                recommendations=recommendations,
            ),
        )

    def validate_allocation_creation(
        self,
        request: Allocation,
        existing: Sequence[Allocation] = (),
        resources: Sequence[Resource] = (),
        leaves: Sequence[LeaveRecord] = (),
    ) -> List[ValidationResult]:
        """Run every check for a new allocation; the last result is the cross-validation."""
        try:
            checks = [
                self.validate_resource_availability(
                    request.resource, request.plan.task_start, request.plan.task_end, existing, resources, leaves
                ),
                self.validate_skill_match(request.resource, request.required_skills, request.complexity, resources),
                self.validate_capacity_limits(request.resource, request.raw_percentage(), existing, resources),
                self.validate_workload_constraints(request, existing, resources),
            ]
            checks.append(self.perform_cross_validation(checks))
            return checks
        except Exception as exc:  # reported to the caller as an error result
            logger.exception("Validation of allocation %s failed", getattr(request, "id", None))
            return [
                ValidationResult(
                    type=CHECK_SYSTEM_ERROR,
                    is_valid=False,
                    severity=SEVERITY_ERROR,
                    message=f"Validation system error: {exc}",
                    details=SystemErrorDetails(check=CHECK_SYSTEM_ERROR, error=str(exc)),
                )
            ]


default_validator = ValidationEngine()


def validate_allocation_creation(
    request: Allocation,
    existing: Sequence[Allocation] = (),
    resources: Sequence[Resource] = (),
    leaves: Sequence[LeaveRecord] = (),
) -> List[ValidationResult]:
    return default_validator.validate_allocation_creation(request, existing, resources, leaves)
