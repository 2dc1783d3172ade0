"""
Service-level targets for prioritized support work.

Priorities P1..P4 map to response, resolution and escalation windows in hours.
Deadlines run on calendar time unless business-hours mode is enabled, in which
case time only accrues inside the configured working window.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime, time, timedelta, tzinfo
from enum import Enum
from types import MappingProxyType
from typing import Dict, List, Mapping, Optional, Sequence, Tuple

from dateutil import parser as dateparser
from dateutil import tz

from .complexity import round_half_up
from .models import CATEGORY_SUPPORT, Allocation

logger = logging.getLogger(__name__)

STATUS_WITHIN = "Within SLA"
STATUS_AT_RISK = "At Risk"
STATUS_BREACHED = "Breached"

DEADLINE_RESPONSE = "response"
DEADLINE_RESOLUTION = "resolution"

INVALID_REFERENCE_TIME = "Invalid reference time provided"


class Priority(str, Enum):
    P1 = "P1"
    P2 = "P2"
    P3 = "P3"
    P4 = "P4"
    UNRECOGNIZED = "unrecognized"


_PRIORITY_ALIASES: Mapping[str, Priority] = MappingProxyType(
    {
        "P1": Priority.P1,
        "P2": Priority.P2,
        "P3": Priority.P3,
        "P4": Priority.P4,
        "CRITICAL": Priority.P1,
        "HIGH": Priority.P2,
        "MEDIUM": Priority.P3,
        "LOW": Priority.P4,
        "1": Priority.P1,
        "2": Priority.P2,
        "3": Priority.P3,
        "4": Priority.P4,
    }
)
KNOWN_PRIORITIES: Tuple[Priority, ...] = (Priority.P1, Priority.P2, Priority.P3, Priority.P4)
DEFAULT_PRIORITY = Priority.P3


def normalize_priority(value: object) -> Priority:
    """Map loose priority input ("P1", "critical", 1) to the enum; anything else is UNRECOGNIZED."""
    if isinstance(value, Priority):
        return value
    if value is None or isinstance(value, bool):
        return Priority.UNRECOGNIZED
    key = str(value).strip().upper()
    return _PRIORITY_ALIASES.get(key, Priority.UNRECOGNIZED)


@dataclass(frozen=True)
class SLATarget:
    response_hours: float
    resolution_hours: float
    escalation_hours: float
    label: str
    description: str = ""


DEFAULT_SLA_TARGETS: Mapping[Priority, SLATarget] = MappingProxyType(
    {
        Priority.P1: SLATarget(1, 4, 2, "Critical", "Immediate attention required - system down or critical business impact"),
        Priority.P2: SLATarget(4, 24, 8, "High", "High impact - significant business disruption"),
        Priority.P3: SLATarget(8, 72, 24, "Medium", "Medium impact - moderate business disruption"),
        Priority.P4: SLATarget(24, 168, 72, "Low", "Low impact - minor business disruption or enhancement request"),
    }
)


@dataclass(frozen=True)
class SLAConfig:
    targets: Mapping[Priority, SLATarget] = field(default_factory=lambda: DEFAULT_SLA_TARGETS)
    business_hours_only: bool = False
    business_hours: Tuple[int, int] = (9, 17)
    working_days: Tuple[int, ...] = (1, 2, 3, 4, 5)  # ISO weekdays, Monday=1
    at_risk_hours: float = 4.0
    timezone: str = "Asia/Jakarta"

    def __post_init__(self) -> None:
        open_hour, close_hour = self.business_hours
        if not (0 <= open_hour < close_hour <= 24):
            raise ValueError("business_hours must satisfy 0 <= start < end <= 24")
        if not self.working_days:
            raise ValueError("working_days must not be empty")
        if not all(isinstance(day, int) and not isinstance(day, bool) and 1 <= day <= 7 for day in self.working_days):
            raise ValueError("working_days entries must be ISO weekdays 1-7 (Monday=1)")
        if self.at_risk_hours < 0:
            raise ValueError("at_risk_hours must not be negative")
        if tz.gettz(self.timezone) is None:
            raise ValueError(f"unknown timezone: {self.timezone}")

    @property
    def zone(self) -> tzinfo:
        return tz.gettz(self.timezone)


@dataclass(frozen=True)
class SLARequirements:
    priority: Priority
    requested: object
    target: SLATarget
    business_hours_only: bool
    error: Optional[str] = None


@dataclass(frozen=True)
class SLADeadlines:
    priority: Priority
    start_time: Optional[datetime]
    response: Optional[datetime] = None
    resolution: Optional[datetime] = None
    escalation: Optional[datetime] = None
    requirements: Optional[SLARequirements] = None
    error: Optional[str] = None


@dataclass(frozen=True)
class TimeRemaining:
    total_hours: float
    is_overdue: bool
    human_readable: str


@dataclass(frozen=True)
class SLACompliance:
    task_id: Optional[str]
    status: str
    priority: Priority
    deadline_type: Optional[str] = None
    deadline: Optional[datetime] = None
    remaining: Optional[TimeRemaining] = None
    compliance_percentage: int = 100
    error: Optional[str] = None

    @property
    def is_breached(self) -> bool:
        return self.status == STATUS_BREACHED

    @property
    def is_at_risk(self) -> bool:
        return self.status == STATUS_AT_RISK


@dataclass(frozen=True)
class ComplianceBucket:
    total: int
    breached: int
    at_risk: int
    within_sla: int
    compliance_rate: int


@dataclass(frozen=True)
class SLATrackingReport:
    summary: ComplianceBucket
    by_priority: Dict[Priority, ComplianceBucket]
    tasks: List[SLACompliance]
    generated_at: Optional[datetime]
    error: Optional[str] = None


def _to_datetime(value: object, zone: Optional[tzinfo] = None) -> Optional[datetime]:
    """Parse to a naive wall-clock datetime; aware values are first converted into ``zone``."""
    if value is None:
        return None
    if isinstance(value, datetime):
        parsed = value
    elif hasattr(value, "year") and hasattr(value, "month") and hasattr(value, "day"):
        return datetime(value.year, value.month, value.day)
    else:
        text = str(value).strip()
        if not text:
            return None
        try:
            parsed = dateparser.isoparse(text)
        except (ValueError, TypeError, OverflowError):
            return None
    if parsed.tzinfo is not None:
        try:
            parsed = parsed.astimezone(zone or tz.UTC).replace(tzinfo=None)
        except (ValueError, OverflowError):
            return None
    return parsed


def _format_duration(delta: timedelta) -> str:
    minutes_total = int(delta.total_seconds() // 60)
    days, remainder = divmod(minutes_total, 24 * 60)
    whole_hours, minutes = divmod(remainder, 60)
    parts = []
    if days:
        parts.append(f"{days}d")
    if whole_hours:
        parts.append(f"{whole_hours}h")
    if minutes or not parts:
        parts.append(f"{minutes}m")
    return " ".join(parts)


def _bucket(results: Sequence[SLACompliance]) -> ComplianceBucket:
    total = len(results)
    breached = sum(1 for item in results if item.status == STATUS_BREACHED)
    at_risk = sum(1 for item in results if item.status == STATUS_AT_RISK)
    within = total - breached - at_risk
    rate = int(round_half_up(within / total * 100)) if total else 100
    return ComplianceBucket(total=total, breached=breached, at_risk=at_risk, within_sla=within, compliance_rate=rate)


class SLAEngine:
    def __init__(self, config: Optional[SLAConfig] = None) -> None:
        self.config = config or SLAConfig()

    def get_sla_requirements(self, value: object) -> SLARequirements:
        priority = normalize_priority(value)
        error = None
        if priority is Priority.UNRECOGNIZED or priority not in self.config.targets:
            logger.warning("Unknown priority level %r; using %s targets", value, DEFAULT_PRIORITY.value)
            error = f"Unknown priority level: {value}. Using medium priority defaults."
            priority = DEFAULT_PRIORITY
        return SLARequirements(
            priority=priority,
            requested=value,
            target=self.config.targets[priority],
            business_hours_only=self.config.business_hours_only,
            error=error,
        )

    def add_sla_hours(self, start: datetime, hours: float) -> datetime:
        if not self.config.business_hours_only:
            return start + timedelta(hours=hours)
        return self._add_business_hours(start, hours)

    def _add_business_hours(self, start: datetime, hours: float) -> datetime:
        open_hour, close_hour = self.config.business_hours
        current = start
        remaining = timedelta(hours=hours)
        while remaining > timedelta(0):
            midnight = datetime.combine(current.date(), time(0), tzinfo=current.tzinfo)
            day_open = midnight + timedelta(hours=open_hour)
            day_close = midnight + timedelta(hours=close_hour)
            if current.isoweekday() not in self.config.working_days or current >= day_close:
                current = day_open + timedelta(days=1)
                continue
            if current < day_open:
                current = day_open
            step = min(remaining, day_close - current)
            current += step
            remaining -= step
        return current

    def calculate_sla_deadlines(self, priority: object, start_time: object) -> SLADeadlines:
        """Deadlines as naive wall-clock times in the configured timezone."""
        requirements = self.get_sla_requirements(priority)
        start = self._local(start_time)
        if start is None:
            return SLADeadlines(
                priority=requirements.priority,
                start_time=None,
                requirements=requirements,
                error="Invalid start time provided",
            )
        target = requirements.target
        return SLADeadlines(
            priority=requirements.priority,
            start_time=start,
            response=self.add_sla_hours(start, target.response_hours),
            resolution=self.add_sla_hours(start, target.resolution_hours),
            escalation=self.add_sla_hours(start, target.escalation_hours),
            requirements=requirements,
            error=requirements.error,
        )

    def _status(self, now: datetime, deadline: datetime) -> str:
        if now > deadline:
            return STATUS_BREACHED
        remaining = (deadline - now).total_seconds() / 3600
        if remaining < self.config.at_risk_hours:
            return STATUS_AT_RISK
        return STATUS_WITHIN

    def _local(self, value: object) -> Optional[datetime]:
        return _to_datetime(value, self.config.zone)

    def check_sla_compliance(self, task: Allocation, now: object) -> SLACompliance:
        current = self._local(now)
        start = self._local(task.start_time) or _to_datetime(task.plan.task_start)
        priority = self.get_sla_requirements(task.priority).priority
        error = None
        if start is None:
            error = "No start time available for SLA calculation"
        elif current is None:
            error = INVALID_REFERENCE_TIME
        if error is not None:
            return SLACompliance(task_id=task.id, status=STATUS_WITHIN, priority=priority, error=error)
        deadlines = self.calculate_sla_deadlines(task.priority, start)
        if task.is_completed() or task.first_response is not None:
            deadline_type, deadline = DEADLINE_RESOLUTION, deadlines.resolution
        else:
            deadline_type, deadline = DEADLINE_RESPONSE, deadlines.response

        remaining_hours = (deadline - current).total_seconds() / 3600
        if remaining_hours < 0:
            remaining = TimeRemaining(
                total_hours=0.0,
                is_overdue=True,
                human_readable=f"Overdue by {_format_duration(current - deadline)}",
            )
        else:
            remaining = TimeRemaining(
                total_hours=round_half_up(remaining_hours, 2),
                is_overdue=False,
                human_readable=_format_duration(deadline - current),
            )
        return SLACompliance(
            task_id=task.id,
            status=self._status(current, deadline),
            priority=priority,
            deadline_type=deadline_type,
            deadline=deadline,
            remaining=remaining,
            compliance_percentage=self._compliance_percentage(start, current, deadline),
            error=deadlines.error,
        )

    @staticmethod
    def _compliance_percentage(start: datetime, now: datetime, deadline: datetime) -> int:
        """Share of the SLA window still left, 100 at start and 0 at the deadline."""
        total = (deadline - start).total_seconds()
        elapsed = (now - start).total_seconds()
        if total <= 0 or elapsed <= 0:
            return 100
        if elapsed >= total:
            return 0
        return int(round_half_up((total - elapsed) / total * 100))

    def track_sla_compliance(self, tasks: Sequence[Allocation], now: object) -> SLATrackingReport:
        current = self._local(now)
        if current is None:
            logger.warning("Invalid SLA reference time %r", now)
        results = [self.check_sla_compliance(task, current) for task in tasks]
        by_priority = {
            priority: _bucket([item for item in results if item.priority is priority])
            for priority in KNOWN_PRIORITIES
        }
        return SLATrackingReport(
            summary=_bucket(results),
            by_priority=by_priority,
            tasks=results,
            generated_at=current,
            error=None if current is not None else INVALID_REFERENCE_TIME,
        )

    def calculate_mttr(self, allocations: Sequence[Allocation]) -> int:
        """Mean hours to resolve completed support allocations."""
        durations: List[float] = []
        for allocation in allocations:
            if allocation.category != CATEGORY_SUPPORT or not allocation.is_completed():
                continue
            start = self._local(allocation.start_time) or _to_datetime(allocation.plan.task_start)
            end = self._local(allocation.resolved_at) or _to_datetime(allocation.plan.task_end)
            if start is None or end is None:
                continue
            durations.append(max(0.0, (end - start).total_seconds() / 3600))
        if not durations:
            return 0
        return int(round_half_up(sum(durations) / len(durations)))

    def sla_compliance_rate(self, allocations: Sequence[Allocation], now: object) -> int:
        """Percentage of support allocations that have not breached their SLA."""
        support = [allocation for allocation in allocations if allocation.category == CATEGORY_SUPPORT]
        if not support:
            return 100
        within = sum(1 for task in support if not self.check_sla_compliance(task, now).is_breached)
        return int(round_half_up(within / len(support) * 100))


default_sla_engine = SLAEngine()


def get_sla_requirements(value: object) -> SLARequirements:
    return default_sla_engine.get_sla_requirements(value)


def calculate_sla_deadlines(priority: object, start_time: object) -> SLADeadlines:
    return default_sla_engine.calculate_sla_deadlines(priority, start_time)


def check_sla_compliance(task: Allocation, now: object) -> SLACompliance:
    return default_sla_engine.check_sla_compliance(task, now)


def track_sla_compliance(tasks: Sequence[Allocation], now: object) -> SLATrackingReport:
    return default_sla_engine.track_sla_compliance(tasks, now)
