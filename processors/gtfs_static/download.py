#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""
Downloads per-category feed archives and manages the local archive store.

Archives are kept as ``<data_dir>/<category>/<category>_<timestamp>.zip``.
Fetch functions never raise: network, HTTP and file errors are reported
through a failed :class:`FetchResult`.
"""

import logging
import time
from pathlib import Path
from typing import Callable, Dict, List, Optional, Sequence

import requests
from pydantic import BaseModel, Field

from common.file_utils import size_in_mb, timestamp_for_filename
from config.config_models import FeedSettings

from .categories import Category

module_logger = logging.getLogger(__name__)


class FetchResult(BaseModel):
    category: Category
    success: bool
    url: Optional[str] = None
    description: Optional[str] = None
    file_path: Optional[Path] = None
    size_bytes: int = 0
    size_mb: Optional[str] = None
    error: Optional[str] = None


class ArchiveInfo(BaseModel):
    category: Category
    file_path: Path
    size_bytes: int
    size_mb: str
    modified_at: float


class CleanupResult(BaseModel):
    deleted: List[Path] = Field(default_factory=list)
    kept: List[Path] = Field(default_factory=list)
    errors: List[str] = Field(default_factory=list)


def category_archive_dir(category: Category, settings: FeedSettings) -> Path:
    return Path(settings.data_dir) / Category(category).value


def fetch_category_archive(
    category: Category,
    settings: FeedSettings,
    session: Optional[requests.Session] = None,
) -> FetchResult:
    """
    Download the archive for one category into its archive directory.

    Args:
        category: Category to fetch.
        settings: Feed settings (base URL, data directory, timeout, chunk size).
        session: Optional ``requests.Session``; plain ``requests.get`` otherwise.

    Returns:
        A FetchResult with path and size on success, or with ``error`` set.
    """
    category = Category(category)
    url = category.source_url(str(settings.base_url))
    result = FetchResult(category=category, success=False, url=url,
                         description=category.description)
    target_dir = category_archive_dir(category, settings)
    download_path = target_dir / f"{category.value}_{timestamp_for_filename()}.zip"

    module_logger.info(f"Downloading {category.value} ({category.description}) from: {url}")
    response: Optional[requests.Response] = None
    getter = session.get if session is not None else requests.get

    try:
        target_dir.mkdir(parents=True, exist_ok=True)
        response = getter(url, stream=True, timeout=settings.request_timeout)
        response.raise_for_status()

        with open(download_path, "wb") as f:
            for chunk in response.iter_content(chunk_size=settings.download_chunk_size):
                if chunk:
                    f.write(chunk)

        size_bytes = download_path.stat().st_size
        result.success = True
        result.file_path = download_path
        result.size_bytes = size_bytes
        result.size_mb = size_in_mb(size_bytes)
        module_logger.info(
            f"Downloaded {category.value} to {download_path} ({result.size_mb})"
        )
        return result
    except requests.exceptions.HTTPError as http_err:
        status_code = response.status_code if response is not None else "Unknown"
        result.error = f"HTTP error {status_code}: {http_err}"
    except requests.exceptions.ConnectionError as conn_err:
        result.error = f"Connection error: {conn_err}"
    except requests.exceptions.Timeout as timeout_err:
        result.error = f"Timeout: {timeout_err}"
    except requests.exceptions.RequestException as req_err:
        result.error = f"Request failed: {req_err}"
    except OSError as io_err:
        result.error = f"File I/O error when saving download: {io_err}"
    finally:
        if response is not None:
            response.close()

    module_logger.error(f"Failed to download {category.value}: {result.error}")
    _remove_partial_download(download_path)
    return result


def _remove_partial_download(download_path: Path) -> None:
    try:
        if download_path.is_file():
            download_path.unlink()
            module_logger.debug(f"Removed partial download: {download_path}")
    except OSError as e:
        module_logger.warning(f"Could not remove partial download {download_path}: {e}")


def fetch_categories(
    categories: Sequence[Category],
    settings: FeedSettings,
    delay_seconds: Optional[float] = None,
    session: Optional[requests.Session] = None,
    sleep: Callable[[float], None] = time.sleep,
) -> List[FetchResult]:
    """
    Fetch several categories one after another, pausing between requests.

    A failed category does not stop the others.
    """
    delay = settings.fetch_delay_seconds if delay_seconds is None else delay_seconds
    results: List[FetchResult] = []
    for index, category in enumerate(categories):
        if index > 0 and delay > 0:
            sleep(delay)
        results.append(fetch_category_archive(category, settings, session=session))

    succeeded = sum(1 for r in results if r.success)
    module_logger.info(
        f"Download summary: {succeeded} succeeded, {len(results) - succeeded} failed"
    )
    return results


def list_downloaded_archives(
    settings: FeedSettings,
    categories: Optional[Sequence[Category]] = None,
) -> Dict[Category, List[ArchiveInfo]]:
    """Downloaded archives per category, newest first."""
    archives: Dict[Category, List[ArchiveInfo]] = {}
    for category in categories or list(Category):
        category_dir = category_archive_dir(category, settings)
        if not category_dir.is_dir():
            archives[category] = []
            continue
        infos = []
        for path in category_dir.glob("*.zip"):
            stat = path.stat()
            infos.append(
                ArchiveInfo(
                    category=category,
                    file_path=path,
                    size_bytes=stat.st_size,
                    size_mb=size_in_mb(stat.st_size),
                    modified_at=stat.st_mtime,
                )
            )
        # Names embed the download time, so they break mtime ties.
        infos.sort(key=lambda info: (info.modified_at, info.file_path.name), reverse=True)
        archives[category] = infos
    return archives


def latest_archive(category: Category, settings: FeedSettings) -> Optional[Path]:
    archives = list_downloaded_archives(settings, [category])[category]
    return archives[0].file_path if archives else None


def cleanup_old_archives(
    settings: FeedSettings,
    keep: Optional[int] = None,
    categories: Optional[Sequence[Category]] = None,
) -> CleanupResult:
    """Delete all but the ``keep`` newest archives of each category."""
    keep_count = settings.archives_to_keep if keep is None else keep
    if keep_count < 0:
        raise ValueError("keep must not be negative")

    result = CleanupResult()
    for category, infos in list_downloaded_archives(settings, categories).items():
        result.kept.extend(info.file_path for info in infos[:keep_count])
        for info in infos[keep_count:]:
            try:
                info.file_path.unlink()
                result.deleted.append(info.file_path)
                module_logger.info(f"Deleted old archive: {info.file_path}")
            except OSError as e:
                result.errors.append(f"{info.file_path}: {e}")
                module_logger.error(f"Could not delete {info.file_path}: {e}")

    module_logger.info(
        f"Cleanup complete: {len(result.deleted)} deleted, {len(result.kept)} kept, "
        f"{len(result.errors)} errors"
    )
    return result
