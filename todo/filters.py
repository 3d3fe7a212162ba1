"""
todo/filters.py -- Turn raw list-query parameters into a validated TaskFilter.

Policy per parameter:
  search    blank / whitespace-only -> no filter; otherwise kept verbatim
  category  absent or "all" (any case) -> no filter; otherwise must parse,
            an unknown value raises InvalidCategory and fails the request
  priority  absent -> no filter; unknown value -> filter silently skipped
  sort      absent or unknown -> created_desc

The category/priority asymmetry is long-standing observable behavior that
clients may depend on. Do not unify it without a product decision.
"""

from __future__ import annotations

import logging

from core.errors import InvalidCategory
from todo.models import Category, Priority, SortMode, TaskFilter

logger = logging.getLogger("todomanager.todo")

ALL_CATEGORIES = "all"


def normalize_search(search: str | None) -> str | None:
    if search is None or not search.strip():
        return None
    return search


def parse_category(value: str) -> Category:
    """Strict category parse. Raises InvalidCategory on an unknown name."""
    try:
        return Category.parse(value)
    except ValueError:
        raise InvalidCategory(value, Category.labels()) from None


def build_filter(
    search: str | None = None,
    category: str | None = None,
    priority: str | None = None,
    sort: str | None = None,
) -> TaskFilter:
    parsed_category: Category | None = None
    if category is not None and category.strip() and category.strip().lower() != ALL_CATEGORIES:
        parsed_category = parse_category(category)

    parsed_priority: Priority | None = None
    if priority is not None and priority.strip():
        try:
            parsed_priority = Priority.parse(priority)
        except ValueError:
            logger.debug("Ignoring unrecognized priority filter %r", priority)

    return TaskFilter(
        search=normalize_search(search),
        category=parsed_category,
        priority=parsed_priority,
        sort=SortMode.from_param(sort),
    )
