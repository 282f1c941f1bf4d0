# processors/gtfs_static/snapshot.py
# -*- coding: utf-8 -*-
"""
JSON snapshot of a category's parsed tables.

The snapshot sits between parsing and loading so a load can be retried
without downloading or extracting again. Layout::

    {
      "category": "rapid-rail-kl",
      "source_archive": "data/gtfs/rapid-rail-kl/rapid-rail-kl_....zip",
      "extracted_at": "2024-05-01T10:15:30+00:00",
      "files": {"stops": {"headers": [...], "rows": [...], "total_rows": 2}, ...}
    }
"""

import datetime
import json
import logging
from pathlib import Path
from typing import Dict, Optional, Union

from pydantic import BaseModel, Field, ValidationError

from config.config_models import FeedSettings

from .categories import Category, FeedTable
from .errors import SnapshotError
from .parser import ParsedTable

module_logger = logging.getLogger(__name__)


class SnapshotTable(BaseModel):
    headers: list = Field(default_factory=list)
    rows: list = Field(default_factory=list)
    total_rows: int = 0


class FeedSnapshot(BaseModel):
    category: Category
    source_archive: Optional[str] = None
    extracted_at: datetime.datetime
    files: Dict[str, SnapshotTable] = Field(default_factory=dict)

    def parsed_tables(self) -> Dict[FeedTable, ParsedTable]:
        """Tables as ParsedTable objects; tables missing from the file are empty."""
        tables: Dict[FeedTable, ParsedTable] = {}
        for table in FeedTable:
            stored = self.files.get(table.value)
            tables[table] = (
                ParsedTable(headers=stored.headers, rows=stored.rows)
                if stored
                else ParsedTable()
            )
        return tables


def snapshot_path(category: Category, settings: FeedSettings) -> Path:
    return Path(settings.parsed_dir) / f"{Category(category).value}_parsed.json"


def write_snapshot(
    category: Category,
    tables: Dict[FeedTable, ParsedTable],
    settings: FeedSettings,
    source_archive: Optional[Union[str, Path]] = None,
) -> Path:
    """Write the snapshot for ``category`` and return its path."""
    snapshot = FeedSnapshot(
        category=category,
        source_archive=str(source_archive) if source_archive else None,
        extracted_at=datetime.datetime.now(datetime.timezone.utc),
        files={
            FeedTable(table).value: SnapshotTable(
                headers=parsed.headers, rows=parsed.rows, total_rows=parsed.total_rows
            )
            for table, parsed in tables.items()
        },
    )
    target = snapshot_path(category, settings)
    target.parent.mkdir(parents=True, exist_ok=True)
    with open(target, "w", encoding="utf-8") as f:
        json.dump(snapshot.model_dump(mode="json"), f, ensure_ascii=False)
    module_logger.info(f"Wrote parsed snapshot for {Category(category).value}: {target}")
    return target


def read_snapshot(category: Category, settings: FeedSettings) -> FeedSnapshot:
    """
    Load the snapshot for ``category``.

    Raises:
        SnapshotError: If the file is missing, unreadable or malformed.
    """
    source = snapshot_path(category, settings)
    if not source.is_file():
        raise SnapshotError(
            f"Parsed data file not found: {source}", category=Category(category).value
        )
    try:
        with open(source, "r", encoding="utf-8") as f:
            data = json.load(f)
        return FeedSnapshot.model_validate(data)
    except (OSError, json.JSONDecodeError, ValidationError) as e:
        raise SnapshotError(
            f"Could not load snapshot {source}: {e}",
            category=Category(category).value,
            original_error=e,
        ) from e


def available_snapshots(settings: FeedSettings) -> Dict[Category, Path]:
    """Categories that have a snapshot on disk."""
    return {
        category: snapshot_path(category, settings)
        for category in Category
        if snapshot_path(category, settings).is_file()
    }
