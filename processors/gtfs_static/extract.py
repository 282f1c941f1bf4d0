#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""
Unpacks a category's feed archive into ``<data_dir>/extracted/<category>/``.

Any previous extraction for the category is removed first, so the directory
always mirrors exactly one archive.
"""

import logging
import zipfile
from pathlib import Path
from typing import Dict, List, Optional, Union

from pydantic import BaseModel, Field

from common.file_utils import cleanup_directory
from config.config_models import FeedSettings

from .categories import LOAD_ORDER, Category

module_logger = logging.getLogger(__name__)

EXPECTED_FILES = {table.file_name for table in LOAD_ORDER}


class ExtractedFile(BaseModel):
    name: str
    size_bytes: int


class ExtractResult(BaseModel):
    category: Category
    success: bool
    archive_path: Optional[Path] = None
    extract_dir: Optional[Path] = None
    files: List[ExtractedFile] = Field(default_factory=list)
    missing_tables: List[str] = Field(default_factory=list)
    error: Optional[str] = None

    @property
    def file_sizes(self) -> Dict[str, int]:
        return {f.name: f.size_bytes for f in self.files}


def category_extract_dir(category: Category, settings: FeedSettings) -> Path:
    return Path(settings.extracted_dir) / Category(category).value


def extract_category_archive(
    archive_path: Union[str, Path],
    category: Category,
    settings: FeedSettings,
) -> ExtractResult:
    """
    Extract every member of ``archive_path`` and list the ``.txt`` tables.

    Returns:
        An ExtractResult; corrupt archives, missing files and I/O errors give
        ``success=False`` with ``error`` set.
    """
    category = Category(category)
    zip_path = Path(archive_path)
    extract_path = category_extract_dir(category, settings)
    result = ExtractResult(
        category=category, success=False, archive_path=zip_path, extract_dir=extract_path
    )

    module_logger.info(f"Extracting '{zip_path}' to '{extract_path}'")

    if not zip_path.is_file():
        result.error = f"Archive not found or is not a file: {zip_path}"
        module_logger.error(result.error)
        return result

    try:
        with zipfile.ZipFile(zip_path, "r") as zip_ref:
            cleanup_directory(
                extract_path, ensure_dir_exists_after=True, current_logger=module_logger
            )
            zip_ref.extractall(extract_path)
    except zipfile.BadZipFile:
        result.error = f"'{zip_path}' is not a valid zip file or is corrupted."
    except (OSError, RuntimeError) as err:
        # RuntimeError covers encrypted members.
        result.error = f"Error during extraction: {err}"

    if result.error:
        module_logger.error(result.error)
        return result

    result.files = sorted(
        (
            ExtractedFile(name=item.name, size_bytes=item.stat().st_size)
            for item in extract_path.iterdir()
            if item.is_file() and item.suffix.lower() == ".txt"
        ),
        key=lambda f: f.name,
    )
    found = {f.name for f in result.files}
    result.missing_tables = sorted(EXPECTED_FILES - found)
    if result.missing_tables:
        module_logger.warning(
            f"Archive for {category.value} has no {', '.join(result.missing_tables)}; "
            "those tables load empty."
        )
    result.success = True
    module_logger.info(
        f"Extracted {len(result.files)} tables for {category.value} to {extract_path}"
    )
    return result
