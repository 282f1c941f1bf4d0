#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""
Loads typed feed records for one category into its PostgreSQL tables.

Policies:
- tables load in the fixed dependency order, whatever order the caller
  supplies them in;
- every record is upserted on its natural key, one statement per record;
- stop_times and shapes are walked in batches (1000 by default) for
  progress reporting;
- only stop_times tolerates foreign-key violations: the row is skipped and
  counted. Any other database error fails the table;
- the clear step and the load share one transaction, so a failed table
  leaves the category exactly as it was before the run.
"""

import logging
from typing import Dict, Iterator, List, Mapping, Optional, Sequence

import psycopg
from psycopg import errors as pg_errors
from pydantic import BaseModel, Field

from .categories import CLEAR_ORDER, LOAD_ORDER, Category, FeedTable, table_name
from .schema_definitions import FEED_TABLE_SCHEMAS, FeedRecord, Route
from .transform import apply_default_agency

module_logger = logging.getLogger(__name__)

DEFAULT_BATCH_SIZE = 1000


class TableLoadResult(BaseModel):
    table: FeedTable
    success: bool = True
    inserted: int = 0
    updated: int = 0
    skipped: int = 0
    error: Optional[str] = None

    @property
    def loaded(self) -> int:
        return self.inserted + self.updated


class CategoryLoadResult(BaseModel):
    category: Category
    success: bool = False
    tables: List[TableLoadResult] = Field(default_factory=list)
    rolled_back: bool = False
    error: Optional[str] = None

    def table_result(self, table: FeedTable) -> Optional[TableLoadResult]:
        for result in self.tables:
            if result.table is table:
                return result
        return None

    @property
    def rows_by_table(self) -> Dict[str, int]:
        if self.rolled_back:
            return {}
        return {result.table.value: result.loaded for result in self.tables}

    @property
    def skipped_total(self) -> int:
        return sum(result.skipped for result in self.tables)


class _CategoryLoadAborted(Exception):
    """Raised inside the category transaction to roll it back."""


def describe_db_error(error: psycopg.Error) -> str:
    message = error.diag.message_primary if error.diag else None
    return message or str(error) or type(error).__name__


def _batches(records: Sequence[FeedRecord], batch_size: int) -> Iterator[Sequence[FeedRecord]]:
    for start in range(0, len(records), batch_size):
        yield records[start:start + batch_size]


def clear_category(store, category: Category) -> None:
    """Empty the category's tables, dependents first."""
    module_logger.info(f"Clearing existing data for {category.value}...")
    for table in CLEAR_ORDER:
        store.truncate(table, category)
        module_logger.debug(f"Cleared {table_name(table, category)}")


def load_table(
    store,
    category: Category,
    table: FeedTable,
    records: Sequence[FeedRecord],
    batch_size: int = DEFAULT_BATCH_SIZE,
) -> TableLoadResult:
    """
    Upsert ``records`` into one table of ``category``.

    Raises:
        psycopg.Error: For any database error except a foreign-key violation
            on a table that tolerates them.
    """
    details = FEED_TABLE_SCHEMAS[table]
    result = TableLoadResult(table=table)
    name = table_name(table, category)

    if not records:
        module_logger.info(f"No {table.value} data to import")
        return result

    module_logger.info(f"Importing {len(records)} records into {name}...")
    batched = details["batched"]
    fk_tolerant = details["fk_tolerant"]
    size = batch_size if batched else len(records)
    total_batches = (len(records) + size - 1) // size

    for batch_number, batch in enumerate(_batches(records, size), start=1):
        if batched:
            start = (batch_number - 1) * size + 1
            module_logger.info(
                f"Processing {table.value} batch {batch_number}/{total_batches} "
                f"({start}-{start + len(batch) - 1})"
            )
        for record in batch:
            if fk_tolerant:
                try:
                    with store.savepoint():
                        inserted = store.upsert(table, category, record)
                except pg_errors.ForeignKeyViolation as e:
                    result.skipped += 1
                    module_logger.debug(
                        f"Skipped {table.value} row with unresolved reference: {describe_db_error(e)}"
                    )
                    continue
            else:
                inserted = store.upsert(table, category, record)

            if inserted:
                result.inserted += 1
            else:
                result.updated += 1

    module_logger.info(
        f"Imported {name}: {result.inserted} inserted, {result.updated} updated, "
        f"{result.skipped} skipped"
    )
    return result


def _resolve_route_agencies(store, category: Category, routes: List[Route]) -> List[Route]:
    if all(route.agency_id for route in routes):
        return routes
    fallback = store.first_agency_id(category)
    module_logger.info(
        f"Routes without agency_id in {category.value} get '{fallback or 'default'}'"
    )
    return apply_default_agency(routes, fallback)


def load_category(
    store,
    category: Category,
    records: Mapping[FeedTable, Sequence[FeedRecord]],
    batch_size: int = DEFAULT_BATCH_SIZE,
    clear_first: bool = True,
) -> CategoryLoadResult:
    """
    Clear and load all eight tables of ``category`` in one transaction.

    Args:
        store: Store handle (``PostgresFeedStore`` or a compatible object)
            providing transaction, savepoint, truncate, upsert and
            first_agency_id.
        category: Category whose tables are written.
        records: Records per table. Missing tables load empty.
        batch_size: Batch size for stop_times and shapes.
        clear_first: Truncate the category's tables before loading.

    Returns:
        A CategoryLoadResult. Tables after a failed one are not attempted and
        the whole category is rolled back.
    """
    category = Category(category)
    by_table = {FeedTable(key): list(value) for key, value in records.items()}
    result = CategoryLoadResult(category=category)

    module_logger.info(f"Importing data for category: {category.value}")
    try:
        with store.transaction():
            if clear_first:
                clear_category(store, category)

            for table in LOAD_ORDER:
                table_records = by_table.get(table, [])
                try:
                    if table is FeedTable.ROUTES and table_records:
                        table_records = _resolve_route_agencies(store, category, table_records)
                    table_result = load_table(store, category, table, table_records, batch_size)
                except psycopg.Error as e:
                    table_result = TableLoadResult(
                        table=table, success=False, error=describe_db_error(e)
                    )
                    result.tables.append(table_result)
                    module_logger.error(
                        f"Error importing {table.value} for {category.value}: {table_result.error}"
                    )
                    raise _CategoryLoadAborted(
                        f"{table.value}: {table_result.error}"
                    ) from e
                result.tables.append(table_result)
    except _CategoryLoadAborted as e:
        result.rolled_back = True
        result.error = str(e)
    except psycopg.Error as e:
        # Clear step or commit failed.
        result.rolled_back = True
        result.error = describe_db_error(e)
        module_logger.error(f"Import of {category.value} failed: {result.error}")

    if result.rolled_back:
        module_logger.error(
            f"Import of {category.value} rolled back; previous data left in place."
        )
        return result

    result.success = all(t.success for t in result.tables)
    module_logger.info(
        f"Import completed for {category.value}: "
        f"{sum(1 for t in result.tables if t.success)}/{len(result.tables)} tables, "
        f"{result.skipped_total} rows skipped"
    )
    return result
