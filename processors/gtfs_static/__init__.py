"""
Static transit feed ingestion.

This package downloads GTFS static archives per operator category, parses
their tables and loads them into category-scoped PostgreSQL tables.
"""

from processors.gtfs_static.categories import Category, FeedTable
from processors.gtfs_static.load import load_category
from processors.gtfs_static.main_pipeline import run_categories, run_category_pipeline
from processors.gtfs_static.store import PostgresFeedStore

__all__ = [
    "Category",
    "FeedTable",
    "PostgresFeedStore",
    "load_category",
    "run_categories",
    "run_category_pipeline",
]
