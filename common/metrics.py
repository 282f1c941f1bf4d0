"""
Prometheus metrics for the static feed pipeline.

The pipeline runs as a batch job, so metrics are collected in-process and
written once at the end with :func:`write_metrics_textfile` for the node
exporter textfile collector.
"""

import logging
from pathlib import Path
from typing import Mapping, Optional, Union

from prometheus_client import (
    REGISTRY,
    CollectorRegistry,
    Counter,
    Gauge,
    Histogram,
    write_to_textfile,
)

logger = logging.getLogger(__name__)


class FeedMetrics:
    """Metrics collection for feed downloads and loads."""

    def __init__(self, registry: Optional[CollectorRegistry] = None):
        """Initialize metrics collectors.

        Args:
            registry: Optional custom registry. Uses default if None.
        """
        self.registry = registry or REGISTRY

        self.categories_processed = Counter(
            "gtfs_feeds_categories_processed_total",
            "Total number of category pipeline runs",
            ["status", "category"],
            registry=self.registry,
        )

        self.stage_failures = Counter(
            "gtfs_feeds_stage_failures_total",
            "Category runs that stopped at a pipeline stage",
            ["stage", "category"],
            registry=self.registry,
        )

        self.download_duration = Histogram(
            "gtfs_feeds_download_duration_seconds",
            "Time spent downloading a category archive",
            ["category"],
            registry=self.registry,
        )

        self.load_duration = Histogram(
            "gtfs_feeds_load_duration_seconds",
            "Time spent clearing and loading a category",
            ["category"],
            registry=self.registry,
        )

        self.rows_loaded = Counter(
            "gtfs_feeds_rows_loaded_total",
            "Rows inserted or updated per table",
            ["category", "table"],
            registry=self.registry,
        )

        self.rows_skipped = Counter(
            "gtfs_feeds_rows_skipped_total",
            "Rows skipped for unresolved references",
            ["category", "table"],
            registry=self.registry,
        )

        self.last_success = Gauge(
            "gtfs_feeds_last_success_timestamp_seconds",
            "Unix time of the last successful load of a category",
            ["category"],
            registry=self.registry,
        )

        logger.debug("Feed metrics initialized")

    def record_category_processed(self, status: str, category: str):
        self.categories_processed.labels(status=status, category=category).inc()

    def record_stage_failure(self, stage: str, category: str):
        self.stage_failures.labels(stage=stage, category=category).inc()

    def record_download_time(self, category: str, duration: float):
        self.download_duration.labels(category=category).observe(duration)

    def record_load_time(self, category: str, duration: float):
        self.load_duration.labels(category=category).observe(duration)

    def record_table_rows(
        self,
        category: str,
        loaded: Mapping[str, int],
        skipped: Optional[Mapping[str, int]] = None,
    ):
        """Add loaded (and skipped) row counts per table."""
        for table, count in loaded.items():
            self.rows_loaded.labels(category=category, table=table).inc(count)
        for table, count in (skipped or {}).items():
            if count:
                self.rows_skipped.labels(category=category, table=table).inc(count)

    def mark_success(self, category: str):
        self.last_success.labels(category=category).set_to_current_time()


# Global metrics instance
_metrics_instance: Optional[FeedMetrics] = None


def get_metrics() -> FeedMetrics:
    """Get the global metrics instance."""
    global _metrics_instance
    if _metrics_instance is None:
        _metrics_instance = FeedMetrics()
    return _metrics_instance


def write_metrics_textfile(
    path: Union[str, Path], metrics: Optional[FeedMetrics] = None
) -> Path:
    """Write the registry in the Prometheus text format to ``path``.

    Raises:
        OSError: If the file cannot be written.
    """
    metrics = metrics or get_metrics()
    target = Path(path)
    target.parent.mkdir(parents=True, exist_ok=True)
    write_to_textfile(str(target), metrics.registry)
    logger.info(f"Wrote Prometheus metrics to {target}")
    return target
