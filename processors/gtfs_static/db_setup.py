# processors/gtfs_static/db_setup.py
# -*- coding: utf-8 -*-
"""
Creates the feed schema and the per-category tables, keys and indexes.

All statements use ``IF NOT EXISTS`` so setup can be run repeatedly.
Foreign keys are checked immediately (not deferred) so a violating row
fails at its own INSERT, which is what lets the loader skip single
stop_times rows.
"""
import logging
from typing import Dict, List, Optional, Sequence

import psycopg
from psycopg import Connection as PgConnection
from psycopg import sql

from .categories import LOAD_ORDER, Category, FeedTable, qualified_table, table_name
from .schema_definitions import FEED_FOREIGN_KEYS, FEED_TABLE_SCHEMAS

module_logger = logging.getLogger(__name__)

# (table, columns) to index, besides primary keys.
FEED_INDEXES: List[tuple] = [
    (FeedTable.ROUTES, ["agency_id"]),
    (FeedTable.STOPS, ["stop_lat", "stop_lon"]),
    (FeedTable.TRIPS, ["route_id"]),
    (FeedTable.TRIPS, ["service_id"]),
    (FeedTable.STOP_TIMES, ["stop_id"]),
    (FeedTable.SHAPES, ["shape_id"]),
]

TIMESTAMP_COLUMNS: Dict[str, Dict[str, str]] = {
    "created_at": {"type": "TIMESTAMP DEFAULT CURRENT_TIMESTAMP"},
    "updated_at": {"type": "TIMESTAMP DEFAULT CURRENT_TIMESTAMP"},
}


def _constraint_name(*parts: str) -> str:
    # PostgreSQL truncates identifiers at 63 bytes.
    return "_".join(parts)[:63]


def create_table_sql(
    table: FeedTable, category: Category, schema: str
) -> sql.Composed:
    """CREATE TABLE statement for one category table."""
    details = FEED_TABLE_SCHEMAS[table]
    physical_name = table_name(table, category)

    definitions: List[sql.Composable] = []
    columns = dict(details["columns"])
    columns.update(TIMESTAMP_COLUMNS)
    for col_name, col_props in columns.items():
        definitions.append(
            sql.SQL(" ").join([sql.Identifier(col_name), sql.SQL(col_props["type"])])
        )

    definitions.append(
        sql.SQL("CONSTRAINT {} PRIMARY KEY ({})").format(
            sql.Identifier(_constraint_name("pk", physical_name)),
            sql.SQL(", ").join(map(sql.Identifier, details["pk_cols"])),
        )
    )

    for from_table, from_cols, to_table, to_cols in FEED_FOREIGN_KEYS:
        if from_table is not table:
            continue
        definitions.append(
            sql.SQL("CONSTRAINT {} FOREIGN KEY ({}) REFERENCES {} ({})").format(
                sql.Identifier(
                    _constraint_name("fk", physical_name, *from_cols)
                ),
                sql.SQL(", ").join(map(sql.Identifier, from_cols)),
                qualified_table(to_table, category, schema),
                sql.SQL(", ").join(map(sql.Identifier, to_cols)),
            )
        )

    return sql.SQL("CREATE TABLE IF NOT EXISTS {} ({})").format(
        qualified_table(table, category, schema),
        sql.SQL(", ").join(definitions),
    )


def create_index_sql(
    table: FeedTable, columns: Sequence[str], category: Category, schema: str
) -> sql.Composed:
    index_name = _constraint_name("idx", table_name(table, category), *columns)
    return sql.SQL("CREATE INDEX IF NOT EXISTS {} ON {} ({})").format(
        sql.Identifier(index_name),
        qualified_table(table, category, schema),
        sql.SQL(", ").join(map(sql.Identifier, columns)),
    )


def create_feed_schema(conn: PgConnection, schema: str) -> None:
    with conn.cursor() as cursor:
        cursor.execute(
            sql.SQL("CREATE SCHEMA IF NOT EXISTS {}").format(sql.Identifier(schema))
        )
    module_logger.info(f"Schema '{schema}' ensured.")


def create_category_tables(
    conn: PgConnection, category: Category, schema: str
) -> None:
    """
    Create the eight tables of ``category`` in load order, plus indexes,
    inside one transaction.

    Raises:
        psycopg.Error: If any statement fails; nothing is created then.
    """
    category = Category(category)
    module_logger.info(f"Setting up tables for category {category.value} in schema {schema}...")
    with conn.transaction():
        with conn.cursor() as cursor:
            for table in LOAD_ORDER:
                create_sql = create_table_sql(table, category, schema)
                try:
                    module_logger.debug(
                        f"Executing SQL for table {table_name(table, category)}: "
                        f"{create_sql.as_string(conn)}"
                    )
                    cursor.execute(create_sql)
                except psycopg.Error as e:
                    module_logger.error(
                        f"Error creating table {table_name(table, category)}: "
                        f"{e.diag.message_primary if e.diag else str(e)}"
                    )
                    raise
            for table, columns in FEED_INDEXES:
                cursor.execute(create_index_sql(table, columns, category, schema))
    module_logger.info(f"Tables for {category.value} ensured.")


def setup_feed_database(
    conn: PgConnection,
    schema: str,
    categories: Optional[Sequence[Category]] = None,
) -> None:
    """Create the schema and the tables for every given category (all by default)."""
    create_feed_schema(conn, schema)
    for category in categories or list(Category):
        create_category_tables(conn, category, schema)
    module_logger.info("Database schema setup/verification complete.")
