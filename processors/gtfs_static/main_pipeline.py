#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""
Main orchestrator for the static feed pipeline.

Per category: Fetch -> Extract -> Parse (+ JSON snapshot) -> Transform ->
Load. A failure at any stage ends that category's run with a result naming
the stage; other categories in the same batch still run.
"""

import logging
import time
from datetime import datetime
from enum import Enum
from typing import Callable, Dict, List, Optional, Sequence

import pandas as pd
from pydantic import BaseModel, Field

from common.metrics import FeedMetrics, get_metrics
from config.config_models import FeedSettings

from . import download, extract, load, parser, snapshot, transform
from .categories import Category
from .download import FetchResult
from .errors import FeedPipelineError
from .extract import ExtractResult
from .load import CategoryLoadResult

module_logger = logging.getLogger(__name__)


class PipelineStage(str, Enum):
    FETCH = "fetch"
    EXTRACT = "extract"
    PARSE = "parse"
    TRANSFORM = "transform"
    LOAD = "load"
    DONE = "done"


class CategoryRunResult(BaseModel):
    category: Category
    success: bool = False
    stage: PipelineStage = PipelineStage.FETCH
    error: Optional[str] = None
    fetch: Optional[FetchResult] = None
    extract: Optional[ExtractResult] = None
    load: Optional[CategoryLoadResult] = None

    @property
    def rows_by_table(self) -> Dict[str, int]:
        return self.load.rows_by_table if self.load else {}


class PipelineSummary(BaseModel):
    results: List[CategoryRunResult] = Field(default_factory=list)

    @property
    def succeeded(self) -> int:
        return sum(1 for r in self.results if r.success)

    @property
    def failed(self) -> int:
        return len(self.results) - self.succeeded

    @property
    def success(self) -> bool:
        return bool(self.results) and self.failed == 0

    @property
    def rows_by_table(self) -> Dict[str, int]:
        """Rows loaded per table name, summed over successful categories."""
        totals: Dict[str, int] = {}
        for result in self.results:
            if not result.success:
                continue
            for table, count in result.rows_by_table.items():
                totals[table] = totals.get(table, 0) + count
        return totals


def _fail(result: CategoryRunResult, stage: PipelineStage, error: str) -> CategoryRunResult:
    result.stage = stage
    result.error = error
    result.success = False
    module_logger.error(
        f"Category {result.category.value} failed at {stage.value}: {error}"
    )
    return result


def _record_outcome(result: CategoryRunResult, metrics: FeedMetrics) -> None:
    category = result.category.value
    metrics.record_category_processed("success" if result.success else "failure", category)
    if not result.success:
        metrics.record_stage_failure(result.stage.value, category)
        return
    skipped = {t.table.value: t.skipped for t in result.load.tables} if result.load else {}
    metrics.record_table_rows(category, result.rows_by_table, skipped)
    metrics.mark_success(category)


def import_category_snapshot(
    category: Category,
    settings: FeedSettings,
    store,
    result: Optional[CategoryRunResult] = None,
    metrics: Optional[FeedMetrics] = None,
) -> CategoryRunResult:
    """
    Transform and load a category from its JSON snapshot, without fetching.
    """
    category = Category(category)
    metrics = metrics or get_metrics()
    if result is None:
        result = CategoryRunResult(category=category, stage=PipelineStage.PARSE)

    try:
        feed_snapshot = snapshot.read_snapshot(category, settings)
    except FeedPipelineError as e:
        return _fail(result, PipelineStage.PARSE, str(e))
    module_logger.info(
        f"Loaded parsed data for {category.value} from: {feed_snapshot.source_archive}"
    )

    result.stage = PipelineStage.TRANSFORM
    try:
        records = transform.transform_feed(feed_snapshot.parsed_tables())
    except FeedPipelineError as e:
        return _fail(result, PipelineStage.TRANSFORM, str(e))

    result.stage = PipelineStage.LOAD
    load_started = time.monotonic()
    result.load = load.load_category(
        store, category, records, batch_size=settings.batch_size
    )
    metrics.record_load_time(category.value, time.monotonic() - load_started)
    if not result.load.success:
        return _fail(result, PipelineStage.LOAD, result.load.error or "load failed")

    result.stage = PipelineStage.DONE
    result.success = True
    return result


def extract_and_parse_category(
    category: Category,
    settings: FeedSettings,
    archive_path=None,
    result: Optional[CategoryRunResult] = None,
) -> CategoryRunResult:
    """
    Extract the given (or newest downloaded) archive, parse its tables and
    write the JSON snapshot.
    """
    category = Category(category)
    if result is None:
        result = CategoryRunResult(category=category, stage=PipelineStage.EXTRACT)

    result.stage = PipelineStage.EXTRACT
    archive = archive_path or download.latest_archive(category, settings)
    if archive is None:
        return _fail(result, PipelineStage.EXTRACT, "No downloaded archive found")

    result.extract = extract.extract_category_archive(archive, category, settings)
    if not result.extract.success:
        return _fail(result, PipelineStage.EXTRACT, result.extract.error or "extract failed")

    result.stage = PipelineStage.PARSE
    try:
        tables = parser.parse_feed_directory(result.extract.extract_dir)
        snapshot.write_snapshot(category, tables, settings, source_archive=archive)
    except (FeedPipelineError, OSError) as e:
        return _fail(result, PipelineStage.PARSE, str(e))

    result.success = True
    return result


def _run_stages(
    result: CategoryRunResult,
    settings: FeedSettings,
    store,
    skip_download: bool,
    metrics: FeedMetrics,
) -> CategoryRunResult:
    category = result.category

    archive_path = None
    if not skip_download:
        module_logger.info("--- Step 1: Downloading feed archive ---")
        fetch_started = time.monotonic()
        result.fetch = download.fetch_category_archive(category, settings)
        if not result.fetch.success:
            return _fail(result, PipelineStage.FETCH, result.fetch.error or "download failed")
        metrics.record_download_time(category.value, time.monotonic() - fetch_started)
        archive_path = result.fetch.file_path

    module_logger.info("--- Step 2: Extracting and parsing tables ---")
    result = extract_and_parse_category(category, settings, archive_path, result)
    if not result.success:
        return result

    module_logger.info("--- Step 3: Transforming and loading ---")
    result.success = False
    return import_category_snapshot(category, settings, store, result, metrics)


def run_category_pipeline(
    category: Category,
    settings: FeedSettings,
    store,
    skip_download: bool = False,
    metrics: Optional[FeedMetrics] = None,
) -> CategoryRunResult:
    """
    Run every stage for one category and report where it stopped.

    An unexpected exception is logged and recorded as a failure of the stage
    the category had reached.
    """
    category = Category(category)
    metrics = metrics or get_metrics()
    module_logger.info(f"===== Processing category: {category.value} =====")
    result = CategoryRunResult(category=category)
    try:
        result = _run_stages(result, settings, store, skip_download, metrics)
    except Exception as e:
        module_logger.critical(
            f"Unexpected error while processing {category.value}: {e}",
            exc_info=True,
        )
        result = _fail(result, result.stage, str(e))
    _record_outcome(result, metrics)
    return result


def run_categories(
    categories: Sequence[Category],
    settings: FeedSettings,
    store,
    skip_download: bool = False,
    sleep: Callable[[float], None] = time.sleep,
    metrics: Optional[FeedMetrics] = None,
) -> PipelineSummary:
    """
    Run the pipeline for several categories in turn.

    Downloads are spaced by ``settings.fetch_delay_seconds``. An unexpected
    exception in one category is recorded as that category's failure.
    """
    metrics = metrics or get_metrics()
    start_time = datetime.now()
    module_logger.info(
        f"===== Feed pipeline started at {start_time.isoformat()} for "
        f"{', '.join(Category(c).value for c in categories)} ====="
    )
    summary = PipelineSummary()

    for index, category in enumerate(categories):
        if index > 0 and not skip_download and settings.fetch_delay_seconds > 0:
            sleep(settings.fetch_delay_seconds)
        summary.results.append(
            run_category_pipeline(
                category, settings, store, skip_download=skip_download, metrics=metrics
            )
        )

    duration = datetime.now() - start_time
    module_logger.info(
        f"===== Feed pipeline finished. {summary.succeeded} succeeded, "
        f"{summary.failed} failed. Duration: {duration} ====="
    )
    return summary


def import_categories(
    categories: Sequence[Category],
    settings: FeedSettings,
    store,
    metrics: Optional[FeedMetrics] = None,
) -> PipelineSummary:
    """Load several categories from their snapshots."""
    metrics = metrics or get_metrics()
    summary = PipelineSummary()
    for category in categories:
        result = import_category_snapshot(category, settings, store, metrics=metrics)
        _record_outcome(result, metrics)
        summary.results.append(result)
    return summary


def summary_frame(summary: PipelineSummary) -> pd.DataFrame:
    """One row per category: outcome, failing stage and rows per table."""
    rows = []
    for result in summary.results:
        row = {
            "category": result.category.value,
            "success": result.success,
            "stage": result.stage.value,
            "skipped": result.load.skipped_total if result.load else 0,
            "error": result.error or "",
        }
        row.update(result.rows_by_table)
        rows.append(row)
    return pd.DataFrame(rows).fillna(0)
