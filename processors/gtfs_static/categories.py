# processors/gtfs_static/categories.py
# -*- coding: utf-8 -*-
"""
Operator categories, feed tables and the per-category table-name resolver.

Every category owns an isolated set of eight tables named
``<table>_<category suffix>`` (for example ``stops_rapid_rail_kl``). Table
names are only ever produced by :func:`table_name` and are composed into SQL
through ``psycopg.sql.Identifier``.
"""

from enum import Enum
from typing import Iterable, List, Tuple

from psycopg import sql


class Category(str, Enum):
    """Operator/service groups published by the static feed API."""

    RAPID_BUS_MRTFEEDER = "rapid-bus-mrtfeeder"
    RAPID_RAIL_KL = "rapid-rail-kl"
    RAPID_BUS_KL = "rapid-bus-kl"
    KTMB = "ktmb"

    @property
    def table_suffix(self) -> str:
        return self.value.replace("-", "_")

    @property
    def description(self) -> str:
        return CATEGORY_DESCRIPTIONS[self]

    def source_url(self, base_url: str) -> str:
        """URL of this category's ZIP archive under ``base_url``."""
        base = str(base_url).rstrip("/")
        if self is Category.KTMB:
            return f"{base}/ktmb"
        return f"{base}/prasarana?category={self.value}"


CATEGORY_DESCRIPTIONS = {
    Category.RAPID_BUS_MRTFEEDER: "MRT feeder bus",
    Category.RAPID_RAIL_KL: "Rapid KL rail (LRT, MRT, monorail)",
    Category.RAPID_BUS_KL: "Rapid KL bus",
    Category.KTMB: "KTM Berhad intercity and commuter rail",
}


class FeedTable(str, Enum):
    """The eight feed tables, valued by their base table name."""

    AGENCY = "agency"
    ROUTES = "routes"
    STOPS = "stops"
    CALENDAR = "calendar"
    CALENDAR_DATES = "calendar_dates"
    TRIPS = "trips"
    STOP_TIMES = "stop_times"
    SHAPES = "shapes"

    @property
    def file_name(self) -> str:
        return f"{self.value}.txt"


# Later tables reference earlier ones.
LOAD_ORDER: Tuple[FeedTable, ...] = (
    FeedTable.AGENCY,
    FeedTable.ROUTES,
    FeedTable.STOPS,
    FeedTable.CALENDAR,
    FeedTable.CALENDAR_DATES,
    FeedTable.TRIPS,
    FeedTable.STOP_TIMES,
    FeedTable.SHAPES,
)
CLEAR_ORDER: Tuple[FeedTable, ...] = tuple(reversed(LOAD_ORDER))


def table_name(table: FeedTable, category: Category) -> str:
    """Resolve ``(table, category)`` to the physical table name."""
    return f"{FeedTable(table).value}_{Category(category).table_suffix}"


def qualified_table(
    table: FeedTable, category: Category, schema: str
) -> sql.Identifier:
    """``schema.table`` as a quoted identifier ready for ``sql.SQL.format``."""
    return sql.Identifier(schema, table_name(table, category))


def parse_categories(value: str) -> List[Category]:
    """
    Turn command-line input (``"all"`` or a comma-separated list) into
    categories, keeping the given order and dropping duplicates.

    Raises:
        ValueError: If any name is not a known category.
    """
    if value is None or value.strip().lower() in ("", "all"):
        return list(Category)

    names = [name.strip() for name in value.split(",") if name.strip()]
    known = {category.value: category for category in Category}
    unknown = [name for name in names if name not in known]
    if unknown:
        raise ValueError(
            f"Unknown categories: {', '.join(unknown)}. "
            f"Available: {', '.join(known)}"
        )
    return _unique(known[name] for name in names)


def _unique(categories: Iterable[Category]) -> List[Category]:
    seen: List[Category] = []
    for category in categories:
        if category not in seen:
            seen.append(category)
    return seen
