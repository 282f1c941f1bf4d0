#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""
Command-line interface for the static feed pipeline.

Commands:
    download   fetch archives (``--categories a,b`` or ``all``)
    list       show downloaded archives
    cleanup    keep only the newest archives per category
    extract    extract + parse + write the JSON snapshot
    import     create tables (``--schema``) and/or load snapshots
    run        full pipeline: download, extract, parse, load

Exit code is 0 on success and 1 on any fatal error or failed category.
"""

import argparse
import logging
import sys
from typing import Callable, Dict, List, Optional, Sequence

import psycopg

from common.core_utils import resolve_log_level, setup_logging
from common.db_utils import get_db_connection
from common.metrics import write_metrics_textfile
from config.config_loader import load_app_settings
from config.config_models import AppSettings

from . import download, main_pipeline
from .categories import Category, parse_categories
from .db_setup import setup_feed_database
from .store import PostgresFeedStore

module_logger = logging.getLogger(__name__)


def _symbol(app_settings: AppSettings, key: str) -> str:
    return app_settings.symbols.get(key, "")


def _log_summary(app_settings: AppSettings, summary: main_pipeline.PipelineSummary) -> None:
    if not summary.results:
        module_logger.warning("No categories were processed.")
        return
    frame = main_pipeline.summary_frame(summary)
    module_logger.info("Per-category results:\n" + frame.to_string(index=False))
    totals = summary.rows_by_table
    if totals:
        module_logger.info(
            "Rows loaded per table: "
            + ", ".join(f"{table}={count}" for table, count in totals.items())
        )
    symbol = _symbol(app_settings, "success" if summary.success else "error")
    module_logger.info(
        f"{symbol} {summary.succeeded} categories succeeded, {summary.failed} failed"
    )


def _with_store(app_settings: AppSettings, action: Callable[[psycopg.Connection], bool]) -> bool:
    conn = get_db_connection(app_settings.pg)
    if conn is None:
        module_logger.critical("Failed to connect to the database.")
        return False
    try:
        return action(conn)
    except psycopg.Error as db_err:
        module_logger.critical(
            f"A Psycopg 3 database error occurred: "
            f"{db_err.diag.message_primary if db_err.diag else str(db_err)}",
            exc_info=True,
        )
        return False
    finally:
        if not conn.closed:
            conn.close()
            module_logger.info("Database connection closed.")


def cmd_download(args: argparse.Namespace, app_settings: AppSettings) -> bool:
    categories = parse_categories(args.categories)
    results = download.fetch_categories(categories, app_settings.feeds)
    for result in results:
        if result.success:
            module_logger.info(
                f"{_symbol(app_settings, 'success')} {result.category.value}: "
                f"{result.file_path} ({result.size_mb})"
            )
        else:
            module_logger.error(
                f"{_symbol(app_settings, 'error')} {result.category.value}: {result.error}"
            )
    return all(result.success for result in results)


def cmd_list(args: argparse.Namespace, app_settings: AppSettings) -> bool:
    archives = download.list_downloaded_archives(app_settings.feeds)
    for category, infos in archives.items():
        module_logger.info(f"{category.value} ({category.description}): {len(infos)} archives")
        for info in infos:
            module_logger.info(f"    {info.file_path.name}  {info.size_mb}")
    return True


def cmd_cleanup(args: argparse.Namespace, app_settings: AppSettings) -> bool:
    result = download.cleanup_old_archives(app_settings.feeds, keep=args.keep)
    module_logger.info(
        f"{_symbol(app_settings, 'sparkles')} Deleted {len(result.deleted)} archives, "
        f"kept {len(result.kept)}"
    )
    for error in result.errors:
        module_logger.error(error)
    return not result.errors


def _selected_categories(args: argparse.Namespace) -> List[Category]:
    if getattr(args, "all", False):
        return list(Category)
    return parse_categories(args.category)


def cmd_extract(args: argparse.Namespace, app_settings: AppSettings) -> bool:
    summary = main_pipeline.PipelineSummary()
    for category in _selected_categories(args):
        summary.results.append(
            main_pipeline.extract_and_parse_category(category, app_settings.feeds)
        )
    _log_summary(app_settings, summary)
    return summary.success


def cmd_import(args: argparse.Namespace, app_settings: AppSettings) -> bool:
    if not (args.schema or args.category or args.all):
        module_logger.error("Nothing to do: give --schema, --category or --all.")
        return False

    feeds = app_settings.feeds

    def _action(conn: psycopg.Connection) -> bool:
        if args.schema:
            setup_feed_database(conn, feeds.db_schema)
        if not (args.category or args.all):
            return True
        store = PostgresFeedStore(conn, feeds.db_schema)
        summary = main_pipeline.import_categories(_selected_categories(args), feeds, store)
        _log_summary(app_settings, summary)
        return summary.success

    return _with_store(app_settings, _action)


def cmd_run(args: argparse.Namespace, app_settings: AppSettings) -> bool:
    categories = parse_categories(args.categories)
    feeds = app_settings.feeds

    def _action(conn: psycopg.Connection) -> bool:
        setup_feed_database(conn, feeds.db_schema, categories)
        store = PostgresFeedStore(conn, feeds.db_schema)
        summary = main_pipeline.run_categories(
            categories, feeds, store, skip_download=args.skip_download
        )
        _log_summary(app_settings, summary)
        return summary.success

    return _with_store(app_settings, _action)


COMMANDS: Dict[str, Callable[[argparse.Namespace, AppSettings], bool]] = {
    "download": cmd_download,
    "list": cmd_list,
    "cleanup": cmd_cleanup,
    "extract": cmd_extract,
    "import": cmd_import,
    "run": cmd_run,
}


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="Download static transit feeds and load them into PostgreSQL."
    )
    parser.add_argument("--config", dest="config_file", default="config.yaml",
                        help="Path to the YAML configuration file (default: config.yaml).")
    parser.add_argument(
        "--log-level",
        dest="log_level_str",
        choices=["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"],
        default=None,
        help="Set the logging level (default: from config, INFO).",
    )
    parser.add_argument("--log-file", dest="log_file_path", default=None,
                        help="Also write logs to this file.")
    parser.add_argument("--no-console-log", action="store_false", dest="log_to_console",
                        help="Disable logging to console (stdout).")
    parser.add_argument("--pghost", default=None, help="PostgreSQL host.")
    parser.add_argument("--pgport", type=int, default=None, help="PostgreSQL port.")
    parser.add_argument("--pgdatabase", default=None, help="PostgreSQL database.")
    parser.add_argument("--pguser", default=None, help="PostgreSQL user.")
    parser.add_argument("--pgpassword", default=None, help="PostgreSQL password.")
    parser.add_argument("--data-dir", dest="data_dir", default=None,
                        help="Root directory for archives, extracted tables and snapshots.")
    parser.add_argument("--metrics-file", dest="metrics_file", default=None,
                        help="Write Prometheus metrics to this file when the command ends.")

    subparsers = parser.add_subparsers(dest="command", required=True)

    download_parser = subparsers.add_parser("download", help="Download feed archives.")
    download_parser.add_argument("--categories", default="all",
                                 help="Comma-separated categories or 'all' (default).")

    subparsers.add_parser("list", help="List downloaded archives.")

    cleanup_parser = subparsers.add_parser("cleanup", help="Delete old archives.")
    cleanup_parser.add_argument("--keep", type=int, default=None,
                                help="Archives to keep per category (default: 3).")

    extract_parser = subparsers.add_parser(
        "extract", help="Extract the newest archive, parse it and write the snapshot."
    )
    extract_target = extract_parser.add_mutually_exclusive_group(required=True)
    extract_target.add_argument("--category", help="Single category.")
    extract_target.add_argument("--all", action="store_true", help="Every category.")

    import_parser = subparsers.add_parser("import", help="Create tables and/or load snapshots.")
    import_parser.add_argument("--schema", action="store_true",
                               help="Create the schema and all category tables.")
    import_target = import_parser.add_mutually_exclusive_group()
    import_target.add_argument("--category", help="Load one category from its snapshot.")
    import_target.add_argument("--all", action="store_true",
                               help="Load every category from its snapshot.")

    run_parser = subparsers.add_parser("run", help="Run the full pipeline.")
    run_parser.add_argument("--categories", default="all",
                            help="Comma-separated categories or 'all' (default).")
    run_parser.add_argument("--skip-download", action="store_true",
                            help="Use the newest archive already on disk.")
    return parser


def main(argv: Optional[Sequence[str]] = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)

    app_settings = load_app_settings(args, config_file_path=args.config_file)
    setup_logging(
        log_level=resolve_log_level(args.log_level_str or app_settings.log_level),
        log_file=args.log_file_path or app_settings.log_file,
        log_to_console=args.log_to_console,
        log_prefix=app_settings.log_prefix,
        symbols=app_settings.symbols,
    )

    try:
        success = COMMANDS[args.command](args, app_settings)
    except ValueError as ve:
        module_logger.error(f"{_symbol(app_settings, 'error')} {ve}")
        success = False
    except Exception as e:
        module_logger.critical(
            f"An unhandled error occurred while running '{args.command}': {e}",
            exc_info=True,
        )
        success = False

    if app_settings.metrics_file:
        try:
            write_metrics_textfile(app_settings.metrics_file)
        except OSError as e:
            module_logger.error(f"Could not write metrics to {app_settings.metrics_file}: {e}")
    return 0 if success else 1


def main_cli() -> None:  # pragma: no cover
    """Main command-line interface entry point for this script."""
    sys.exit(main())


if __name__ == "__main__":  # pragma: no cover
    main_cli()
