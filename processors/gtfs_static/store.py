# processors/gtfs_static/store.py
# -*- coding: utf-8 -*-
"""
Store handle used by the loader.

``PostgresFeedStore`` wraps one Psycopg 3 connection and a schema name. It is
created by the caller and passed to the loader explicitly; nothing in this
package keeps a module-level connection or pool. The connection is expected
in autocommit mode, so ``transaction()`` opens a real transaction and a
nested ``savepoint()`` becomes a SAVEPOINT.
"""

import logging
from contextlib import contextmanager
from typing import Dict, Iterator, Optional, Tuple

from psycopg import Connection as PgConnection
from psycopg import sql

from .categories import Category, FeedTable, qualified_table, table_name
from .schema_definitions import (
    FeedRecord,
    column_names,
    key_columns,
    record_values,
)

module_logger = logging.getLogger(__name__)


def build_upsert_sql(
    table: FeedTable, category: Category, schema: str
) -> sql.Composed:
    """
    INSERT ... ON CONFLICT (natural key) DO UPDATE for one table.

    Every non-key column is overwritten and ``updated_at`` refreshed. The
    statement returns one boolean: true when the row was inserted, false when
    an existing row was updated.
    """
    columns = column_names(table)
    keys = key_columns(table)
    non_keys = [col for col in columns if col not in keys]

    assignments = [
        sql.SQL("{} = EXCLUDED.{}").format(sql.Identifier(col), sql.Identifier(col))
        for col in non_keys
    ]
    assignments.append(sql.SQL("updated_at = CURRENT_TIMESTAMP"))

    return sql.SQL(
        "INSERT INTO {table} ({columns}) VALUES ({values}) "
        "ON CONFLICT ({keys}) DO UPDATE SET {assignments} "
        "RETURNING (xmax = 0) AS inserted"
    ).format(
        table=qualified_table(table, category, schema),
        columns=sql.SQL(", ").join(map(sql.Identifier, columns)),
        values=sql.SQL(", ").join([sql.Placeholder()] * len(columns)),
        keys=sql.SQL(", ").join(map(sql.Identifier, keys)),
        assignments=sql.SQL(", ").join(assignments),
    )


class PostgresFeedStore:
    """Category table operations on a single PostgreSQL connection."""

    def __init__(self, conn: PgConnection, schema: str = "gtfs"):
        self.conn = conn
        self.schema = schema
        self._upsert_cache: Dict[Tuple[FeedTable, Category], sql.Composed] = {}

    @contextmanager
    def transaction(self) -> Iterator[None]:
        """Outer transaction; any exception rolls everything back and propagates."""
        with self.conn.transaction():
            yield

    @contextmanager
    def savepoint(self) -> Iterator[None]:
        """Nested block; an exception rolls back to the savepoint and propagates."""
        with self.conn.transaction():
            yield

    def truncate(self, table: FeedTable, category: Category) -> None:
        # CASCADE: referencing tables of the same category are cleared anyway.
        with self.conn.cursor() as cursor:
            cursor.execute(
                sql.SQL("TRUNCATE TABLE {} CASCADE").format(
                    qualified_table(table, category, self.schema)
                )
            )
        module_logger.debug(f"Truncated {self.schema}.{table_name(table, category)}")

    def upsert(self, table: FeedTable, category: Category, record: FeedRecord) -> bool:
        """Insert or update one record; True if it was inserted."""
        cache_key = (table, category)
        if cache_key not in self._upsert_cache:
            self._upsert_cache[cache_key] = build_upsert_sql(table, category, self.schema)
        with self.conn.cursor() as cursor:
            cursor.execute(self._upsert_cache[cache_key], record_values(record))
            row = cursor.fetchone()
        return bool(row[0]) if row else False

    def first_agency_id(self, category: Category) -> Optional[str]:
        with self.conn.cursor() as cursor:
            cursor.execute(
                sql.SQL("SELECT agency_id FROM {} LIMIT 1").format(
                    qualified_table(FeedTable.AGENCY, category, self.schema)
                )
            )
            row = cursor.fetchone()
        return row[0] if row else None

    def count_rows(self, table: FeedTable, category: Category) -> int:
        with self.conn.cursor() as cursor:
            cursor.execute(
                sql.SQL("SELECT COUNT(*) FROM {}").format(
                    qualified_table(table, category, self.schema)
                )
            )
            row = cursor.fetchone()
        return int(row[0]) if row else 0
