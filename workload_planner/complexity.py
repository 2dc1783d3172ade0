"""
Complexity model and tier-based skill adjustment.

A complexity level carries base effort hours plus complexity and risk
multipliers. The resource tier scales effort through a skill multiplier whose
influence is damped by the level's skill sensitivity:

    multiplier = 1 + (tier_base - 1) * sensitivity

Tables are immutable and passed explicitly to every calculator.
"""

from __future__ import annotations

import logging
import math
from dataclasses import asdict, dataclass, field
from types import MappingProxyType
from typing import Dict, List, Mapping, Optional, Tuple, Union

from .models import ComplexityLevel, DEFAULT_TIER, Level

logger = logging.getLogger(__name__)

FALLBACK_LEVEL: Level = "medium"
DEFAULT_SKILL_SENSITIVITY = 0.5
MAX_SKILL_SENSITIVITY = 2.0
MID_TIER_MULTIPLIER = 1.0

TIER_SKILL_MULTIPLIERS: Mapping[int, float] = MappingProxyType(
    {1: 1.4, 2: 1.0, 3: 0.8, 4: 0.7, 5: 0.6}
)
TIER_LABELS: Mapping[int, str] = MappingProxyType(
    {1: "Junior", 2: "Mid", 3: "Senior", 4: "Lead", 5: "Principal"}
)
LEVEL_ORDER: Tuple[Level, ...] = ("low", "medium", "high", "sophisticated")


def round_half_up(value: float, digits: int = 0) -> float:
    """Round halves away from negative infinity, matching spreadsheet-style rounding."""
    if not math.isfinite(value):
        return value
    factor = 10 ** digits
    return math.floor(value * factor + 0.5) / factor


@dataclass(frozen=True)
class ComplexityTable:
    """Read-only mapping of level name to its parameters."""

    levels: Mapping[Level, ComplexityLevel]
    fallback: Level = FALLBACK_LEVEL

    def __post_init__(self) -> None:
        if self.fallback not in self.levels:
            raise ValueError(f"fallback level '{self.fallback}' missing from complexity table")
        object.__setattr__(self, "levels", MappingProxyType(dict(self.levels)))

    def __contains__(self, level: object) -> bool:
        return self.lookup(level) is not None

    def names(self) -> Tuple[Level, ...]:
        return tuple(self.levels.keys())

    def lookup(self, level: object) -> Optional[ComplexityLevel]:
        if not isinstance(level, str) or not level.strip():
            return None
        key = level.strip().lower()
        for name, config in self.levels.items():
            if name.lower() == key:
                return config
        return None

    def resolve(self, level: object) -> Tuple[ComplexityLevel, bool]:
        """Return the level config and whether the fallback level was used."""
        config = self.lookup(level)
        if config is not None:
            return config, False
        logger.warning("Unknown complexity level: %s, defaulting to %s", level, self.fallback)
        return self.levels[self.fallback], True


DEFAULT_COMPLEXITY = ComplexityTable(
    levels={
        "low": ComplexityLevel(
            level="low",
            label="Low",
            base_effort_hours=40,
            complexity_multiplier=0.8,
            risk_factor=1.0,
            skill_sensitivity=0.3,
            days=27,
            hours=14.5,
            workload=14.5 / 8,
            technical_complexity=2,
            business_complexity=2,
            integration_points=1,
            unknown_requirements=0.1,
            description="Routine change with well understood requirements",
        ),
        "medium": ComplexityLevel(
            level="medium",
            label="Medium",
            base_effort_hours=120,
            complexity_multiplier=1.0,
            risk_factor=1.2,
            skill_sensitivity=0.5,
            days=72,
            hours=19,
            workload=19 / 8,
            technical_complexity=5,
            business_complexity=4,
            integration_points=3,
            unknown_requirements=0.2,
            description="Moderate scope with a few integrations",
        ),
        "high": ComplexityLevel(
            level="high",
            label="High",
            base_effort_hours=320,
            complexity_multiplier=1.5,
            risk_factor=1.8,
            skill_sensitivity=0.8,
            days=102,
            hours=30,
            workload=30 / 8,
            technical_complexity=7,
            business_complexity=6,
            integration_points=5,
            unknown_requirements=0.35,
            description="Cross-team work with significant unknowns",
        ),
        "sophisticated": ComplexityLevel(
            level="sophisticated",
            label="Sophisticated",
            base_effort_hours=640,
            complexity_multiplier=2.5,
            risk_factor=2.5,
            skill_sensitivity=1.2,
            days=150,
            hours=48,
            workload=48 / 8,
            technical_complexity=9,
            business_complexity=8,
            integration_points=8,
            unknown_requirements=0.5,
            description="Novel architecture or platform level change",
        ),
    }
)


def base_tier_multiplier(tier: object) -> float:
    if isinstance(tier, bool) or not isinstance(tier, (int, float)):
        return MID_TIER_MULTIPLIER
    return TIER_SKILL_MULTIPLIERS.get(tier, MID_TIER_MULTIPLIER)


def tier_label(tier: object) -> str:
    if isinstance(tier, bool) or not isinstance(tier, (int, float)):
        return "Unknown"
    return TIER_LABELS.get(tier, "Unknown")


def _normalize_sensitivity(value: Optional[float]) -> float:
    if value is None or isinstance(value, bool) or not isinstance(value, (int, float)):
        return DEFAULT_SKILL_SENSITIVITY
    if not math.isfinite(value):
        return DEFAULT_SKILL_SENSITIVITY
    return min(MAX_SKILL_SENSITIVITY, max(0.0, float(value)))


def tier_multiplier(tier: object, skill_sensitivity: Optional[float] = DEFAULT_SKILL_SENSITIVITY) -> float:
    base = base_tier_multiplier(tier)
    sensitivity = _normalize_sensitivity(skill_sensitivity)
    return round_half_up(1 + (base - 1) * sensitivity, 2)


@dataclass(frozen=True)
class EffortBreakdown:
    base_effort: float
    after_complexity: float
    after_risk: float
    after_skill: float
    tier_level: object
    skill_sensitivity: float


@dataclass(frozen=True)
class EffortResult:
    level: Level
    base_effort_hours: float
    adjusted_effort_hours: float
    skill_multiplier: float
    complexity_multiplier: float
    risk_multiplier: float
    breakdown: EffortBreakdown
    used_fallback: bool = False


def get_complexity_config(level: object, table: ComplexityTable = DEFAULT_COMPLEXITY) -> ComplexityLevel:
    config, _ = table.resolve(level)
    return config


def tier_adjusted_effort(
    level: object, tier: object = DEFAULT_TIER, table: ComplexityTable = DEFAULT_COMPLEXITY
) -> EffortResult:
    config, used_fallback = table.resolve(level)
    skill = tier_multiplier(tier, config.skill_sensitivity)
    after_complexity = config.base_effort_hours * config.complexity_multiplier
    after_risk = after_complexity * config.risk_factor
    adjusted = round_half_up(after_risk * skill, 2)
    return EffortResult(
        level=config.level,
        base_effort_hours=config.base_effort_hours,
        adjusted_effort_hours=adjusted,
        skill_multiplier=skill,
        complexity_multiplier=config.complexity_multiplier,
        risk_multiplier=config.risk_factor,
        breakdown=EffortBreakdown(
            base_effort=config.base_effort_hours,
            after_complexity=round_half_up(after_complexity, 2),
            after_risk=round_half_up(after_risk, 2),
            after_skill=adjusted,
            tier_level=tier,
            skill_sensitivity=config.skill_sensitivity,
        ),
        used_fallback=used_fallback,
    )


@dataclass(frozen=True)
class ConfigCheck:
    is_valid: bool
    errors: List[str] = field(default_factory=list)
    warnings: List[str] = field(default_factory=list)


_REQUIRED_FIELDS = (
    "label",
    "base_effort_hours",
    "complexity_multiplier",
    "risk_factor",
    "skill_sensitivity",
)


def _numeric(value: object) -> Optional[float]:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return None
    return float(value)


def validate_complexity_config(config: Union[ComplexityLevel, Mapping[str, object]]) -> ConfigCheck:
    """Check one level's parameters; accepts a ComplexityLevel or a raw mapping."""
    data: Dict[str, object] = asdict(config) if isinstance(config, ComplexityLevel) else dict(config)
    errors: List[str] = []
    warnings: List[str] = []

    for name in _REQUIRED_FIELDS:
        if data.get(name) in (None, ""):
            errors.append(f"Missing required field: {name}")

    base = _numeric(data.get("base_effort_hours"))
    if data.get("base_effort_hours") is not None and (base is None or base <= 0):
        errors.append("base_effort_hours must be greater than 0")
    multiplier = _numeric(data.get("complexity_multiplier"))
    if data.get("complexity_multiplier") is not None and (multiplier is None or multiplier <= 0):
        errors.append("complexity_multiplier must be greater than 0")
    risk = _numeric(data.get("risk_factor"))
    if data.get("risk_factor") is not None:
        if risk is None or risk <= 0:
            errors.append("risk_factor must be greater than 0")
        elif risk < 1.0:
            warnings.append("risk_factor less than 1.0 reduces effort (unusual but allowed)")
    sensitivity = _numeric(data.get("skill_sensitivity"))
    if sensitivity is not None and not 0 <= sensitivity <= MAX_SKILL_SENSITIVITY:
        warnings.append("skill_sensitivity outside typical range 0-2")

    for name in ("technical_complexity", "business_complexity"):
        if name in data and data[name] is not None:
            score = _numeric(data[name])
            if score is None or not 1 <= score <= 10:
                errors.append(f"{name} must be between 1 and 10")
    if data.get("integration_points") is not None:
        points = _numeric(data["integration_points"])
        if points is None or points < 0:
            errors.append("integration_points must be 0 or greater")
    if data.get("unknown_requirements") is not None:
        unknown = _numeric(data["unknown_requirements"])
        if unknown is None or not 0 <= unknown <= 1:
            errors.append("unknown_requirements must be between 0 and 1")

    return ConfigCheck(is_valid=not errors, errors=errors, warnings=warnings)


_MONOTONIC_FIELDS = (
    "base_effort_hours",
    "complexity_multiplier",
    "risk_factor",
    "technical_complexity",
    "business_complexity",
    "integration_points",
    "unknown_requirements",
)


def validate_complexity_table(table: ComplexityTable) -> ConfigCheck:
    """Validate each level and warn when parameters decrease from one level to the next."""
    errors: List[str] = []
    warnings: List[str] = []
    for name, config in table.levels.items():
        check = validate_complexity_config(config)
        errors.extend(f"{name}: {message}" for message in check.errors)
        warnings.extend(f"{name}: {message}" for message in check.warnings)

    ordered = [table.levels[name] for name in LEVEL_ORDER if name in table.levels]
    for lower, higher in zip(ordered, ordered[1:]):
        for name in _MONOTONIC_FIELDS:
            if getattr(higher, name) < getattr(lower, name):
                warnings.append(f"{name} decreases from {lower.level} to {higher.level}")
    return ConfigCheck(is_valid=not errors, errors=errors, warnings=warnings)
