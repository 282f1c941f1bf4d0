# common/file_utils.py
# -*- coding: utf-8 -*-
"""
File system utility functions: directory resets, file sizes and
timestamped file names for downloaded artifacts.
"""

import datetime
import logging
import shutil
from pathlib import Path
from typing import Optional

module_logger = logging.getLogger(__name__)

BYTES_PER_MB = 1024 * 1024


def cleanup_directory(
    directory_path: Path,
    ensure_dir_exists_after: bool = False,
    current_logger: Optional[logging.Logger] = None,
) -> None:
    """
    Removes the specified directory and its contents and optionally recreates
    it empty afterwards.

    Parameters:
        directory_path (Path): The directory to clean up.
        ensure_dir_exists_after (bool): Recreate the directory after cleanup.
            Defaults to False.
        current_logger (Optional[logging.Logger]): The logger instance to use.
            If not provided, a module-level logger is used.

    Raises:
        OSError: If the directory cannot be removed or recreated, or if the
            path exists but is not a directory.
    """
    logger_to_use = current_logger if current_logger else module_logger

    logger_to_use.debug(f"Attempting to clean directory: {directory_path}")
    if directory_path.exists():
        if not directory_path.is_dir():
            raise NotADirectoryError(
                f"Path {directory_path} exists but is not a directory."
            )
        shutil.rmtree(directory_path)
        logger_to_use.info(
            f"Removed directory and its contents: {directory_path}"
        )
    else:
        logger_to_use.debug(
            f"Directory {directory_path} does not exist. No cleanup needed."
        )

    if ensure_dir_exists_after:
        directory_path.mkdir(parents=True, exist_ok=True)
        logger_to_use.debug(f"Ensured directory exists: {directory_path}")


def size_in_mb(size_bytes: int) -> str:
    """Human readable size, e.g. ``'1.25 MB'``."""
    return f"{size_bytes / BYTES_PER_MB:.2f} MB"


def timestamp_for_filename(moment: Optional[datetime.datetime] = None) -> str:
    """
    ISO-8601 UTC timestamp safe to embed in a file name.

    Colons and dots are replaced with hyphens, so
    ``2024-05-01T10:15:30.123+00:00`` becomes ``2024-05-01T10-15-30-123Z``.
    """
    moment = moment or datetime.datetime.now(datetime.timezone.utc)
    iso_value = moment.astimezone(datetime.timezone.utc).strftime(
        "%Y-%m-%dT%H:%M:%S.%f"
    )[:-3]
    return iso_value.replace(":", "-").replace(".", "-") + "Z"
