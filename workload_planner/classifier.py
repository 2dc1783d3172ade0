from __future__ import annotations

from typing import Iterable, Mapping, Optional, Tuple

from .models import CATEGORY_PROJECT, TASK_CATEGORIES, Category, TaskTemplate

METHOD_COMPLEXITY = "complexity"
METHOD_SIMPLE = "simple"


def _category_of(task_or_category: object) -> Optional[str]:
    if task_or_category is None:
        return None
    if isinstance(task_or_category, str):
        return task_or_category
    if isinstance(task_or_category, Mapping):
        value = task_or_category.get("category")
    else:
        value = getattr(task_or_category, "category", None)
    return value if isinstance(value, str) else None


def calculation_method(task_or_category: object) -> str:
    """Only Project work is estimated through the complexity model."""
    if _category_of(task_or_category) == CATEGORY_PROJECT:
        return METHOD_COMPLEXITY
    return METHOD_SIMPLE


def uses_complexity_calculation(task_or_category: object) -> bool:
    return calculation_method(task_or_category) == METHOD_COMPLEXITY


def uses_simple_estimate(task_or_category: object) -> bool:
    return calculation_method(task_or_category) == METHOD_SIMPLE


def is_valid_category(category: object) -> bool:
    return isinstance(category, str) and category in TASK_CATEGORIES


def supported_categories() -> Tuple[Category, ...]:
    return TASK_CATEGORIES


def task_category(value: object, templates: Iterable[TaskTemplate] = ()) -> Optional[Category]:
    """Resolve a category from a category name, a task object, or a template name/id."""
    if isinstance(value, str) and is_valid_category(value):
        return value
    if not isinstance(value, str):
        return _category_of(value) or None
    for template in templates:
        if template.name == value or template.id == value:
            return template.category or None
    return None
