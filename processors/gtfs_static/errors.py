# processors/gtfs_static/errors.py
# -*- coding: utf-8 -*-
"""Exceptions raised inside the feed pipeline."""

from typing import Optional


class FeedPipelineError(Exception):
    """Base class for feed pipeline errors."""

    def __init__(
        self,
        message: str,
        category: Optional[str] = None,
        original_error: Optional[Exception] = None,
    ):
        self.category = category
        self.original_error = original_error
        super().__init__(message)


class FeedParseError(FeedPipelineError):
    """A table file exists but cannot be read."""


class FeedTransformError(FeedPipelineError):
    """A raw row cannot be turned into a typed record."""

    def __init__(
        self,
        message: str,
        table: Optional[str] = None,
        row_number: Optional[int] = None,
        original_error: Optional[Exception] = None,
    ):
        self.table = table
        self.row_number = row_number
        super().__init__(message, original_error=original_error)


class SnapshotError(FeedPipelineError):
    """A parsed snapshot is missing or malformed."""
