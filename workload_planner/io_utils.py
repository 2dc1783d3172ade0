from __future__ import annotations

import json
import logging
from dataclasses import dataclass, field
from pathlib import Path

from .allocation import AllocationEngineConfig
from .sla import SLAConfig
from .validation import ValidationConfig

_VALID_LOG_LEVELS = {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}


@dataclass(frozen=True)
class EngineSettings:
    allocation: AllocationEngineConfig = field(default_factory=AllocationEngineConfig)
    validation: ValidationConfig = field(default_factory=ValidationConfig)
    sla: SLAConfig = field(default_factory=SLAConfig)
    logging_level: str = "INFO"


def configure_logging(level_name: str) -> None:
    level = getattr(logging, level_name.upper(), logging.INFO)
    logging.basicConfig(level=level, format="%(levelname)s %(message)s")


def _read_json(path: str | Path) -> object:
    try:
        return json.loads(Path(path).read_text())
    except json.JSONDecodeError as exc:
        raise ValueError(f"{Path(path).name} is not valid JSON") from exc


def _number(section: dict, key: str, default: float, section_name: str) -> float:
    value = section.get(key, default)
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise ValueError(f"{section_name}.{key} must be a number")
    return float(value)


def _flag(section: dict, key: str, default: bool, section_name: str) -> bool:
    value = section.get(key, default)
    if not isinstance(value, bool):
        raise ValueError(f"{section_name}.{key} must be a boolean")
    return value


def _section(data: dict, name: str) -> dict:
    section = data.get(name) or {}
    if not isinstance(section, dict):
        raise ValueError(f"{name} must be an object")
    return section


def _allocation_config(section: dict) -> AllocationEngineConfig:
    threshold = _number(section, "default_capacity_threshold", 1.2, "allocation")
    if threshold <= 0:
        raise ValueError("allocation.default_capacity_threshold must be positive")
    high_mark = _number(section, "high_utilization_mark", 0.8, "allocation")
    if not (0 < high_mark <= threshold):
        raise ValueError("allocation.high_utilization_mark must be in (0, default_capacity_threshold]")
    many = section.get("many_allocations_count", 5)
    if isinstance(many, bool) or not isinstance(many, int) or many <= 0:
        raise ValueError("allocation.many_allocations_count must be a positive integer")
    return AllocationEngineConfig(
        default_capacity_threshold=threshold,
        strict_enforcement=_flag(section, "strict_enforcement", False, "allocation"),
        high_utilization_mark=high_mark,
        many_allocations_count=many,
    )


def _validation_config(section: dict) -> ValidationConfig:
    max_tasks = section.get("max_concurrent_tasks", 5)
    if isinstance(max_tasks, bool) or not isinstance(max_tasks, int) or max_tasks <= 0:
        raise ValueError("validation.max_concurrent_tasks must be a positive integer")
    synonyms_raw = section.get("skill_synonyms")
    defaults = ValidationConfig()
    if synonyms_raw is None:
        synonyms = defaults.skill_synonyms
    else:
        if not isinstance(synonyms_raw, list) or not all(isinstance(group, list) for group in synonyms_raw):
            raise ValueError("validation.skill_synonyms must be an array of arrays")
        synonyms = tuple(frozenset(str(item) for item in group) for group in synonyms_raw if group)
    return ValidationConfig(
        strict_skill_matching=_flag(section, "strict_skill_matching", False, "validation"),
        allow_over_allocation=_flag(section, "allow_over_allocation", False, "validation"),
        validate_leave_schedules=_flag(section, "validate_leave_schedules", True, "validation"),
        validate_capacity_limits=_flag(section, "validate_capacity_limits", True, "validation"),
        max_concurrent_tasks=max_tasks,
        skill_synonyms=synonyms,
    )


def _sla_config(section: dict) -> SLAConfig:
    business_hours = section.get("business_hours", [9, 17])
    if (
        not isinstance(business_hours, list)
        or len(business_hours) != 2
        or not all(isinstance(value, int) and not isinstance(value, bool) for value in business_hours)
    ):
        raise ValueError("sla.business_hours must be a [start, end] pair of integers")
    start_hour, end_hour = business_hours
    if not (0 <= start_hour < end_hour <= 24):
        raise ValueError("sla.business_hours must satisfy 0 <= start < end <= 24")
    working_days = section.get("working_days", [1, 2, 3, 4, 5])
    if not isinstance(working_days, list) or not working_days:
        raise ValueError("sla.working_days must be a non-empty array")
    if not all(isinstance(day, int) and not isinstance(day, bool) and 1 <= day <= 7 for day in working_days):
        raise ValueError("sla.working_days entries must be ISO weekdays 1-7")
    at_risk = _number(section, "at_risk_hours", 4.0, "sla")
    if at_risk < 0:
        raise ValueError("sla.at_risk_hours must not be negative")
    timezone = section.get("timezone", "Asia/Jakarta")
    if not isinstance(timezone, str) or not timezone:
        raise ValueError("sla.timezone must be a non-empty string")
    try:
        return SLAConfig(
            business_hours_only=_flag(section, "business_hours_only", False, "sla"),
            business_hours=(start_hour, end_hour),
            working_days=tuple(sorted(set(working_days))),
            at_risk_hours=at_risk,
            timezone=timezone,
        )
    except ValueError as exc:
        raise ValueError(f"sla: {exc}") from exc


def load_config(path: str | Path) -> EngineSettings:
    data = _read_json(path)
    if not isinstance(data, dict):
        raise ValueError("config file must be a JSON object")
    logging_level = data.get("logging_level", "INFO")
    if not isinstance(logging_level, str) or logging_level.upper() not in _VALID_LOG_LEVELS:
        raise ValueError(f"logging_level must be one of {', '.join(sorted(_VALID_LOG_LEVELS))}")
    return EngineSettings(
        allocation=_allocation_config(_section(data, "allocation")),
        validation=_validation_config(_section(data, "validation")),
        sla=_sla_config(_section(data, "sla")),
        logging_level=logging_level.upper(),
    )
