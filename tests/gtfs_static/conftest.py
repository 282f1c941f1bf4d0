import copy
import zipfile
from contextlib import contextmanager
from pathlib import Path
from typing import Dict, List, Optional, Tuple

import pytest
from psycopg import errors as pg_errors

from config.config_models import FeedSettings
from processors.gtfs_static.categories import Category, FeedTable
from processors.gtfs_static.parser import parse_delimited_table
from processors.gtfs_static.schema_definitions import (
    FEED_FOREIGN_KEYS,
    FeedRecord,
    key_columns,
)
from processors.gtfs_static.transform import transform_feed


class InMemoryFeedStore:
    """
    Store double with the behaviour the loader relies on: primary-key upserts,
    immediate foreign-key checks, truncation and transactional rollback.
    """

    def __init__(self):
        self.tables: Dict[Tuple[FeedTable, Category], Dict[tuple, dict]] = {}
        self.truncated: List[FeedTable] = []
        self.upserted: List[FeedTable] = []
        self.fail_on: Dict[FeedTable, Exception] = {}
        self.transactions = 0

    def _rows(self, table: FeedTable, category: Category) -> Dict[tuple, dict]:
        return self.tables.setdefault((table, category), {})

    @contextmanager
    def transaction(self):
        self.transactions += 1
        saved = copy.deepcopy(self.tables)
        try:
            yield
        except BaseException:
            self.tables = saved
            raise

    @contextmanager
    def savepoint(self):
        saved = copy.deepcopy(self.tables)
        try:
            yield
        except BaseException:
            self.tables = saved
            raise

    def truncate(self, table: FeedTable, category: Category) -> None:
        self.truncated.append(table)
        self._rows(table, category).clear()

    def upsert(self, table: FeedTable, category: Category, record: FeedRecord) -> bool:
        self.upserted.append(table)
        if table in self.fail_on:
            raise self.fail_on[table]
        for from_table, cols, to_table, _ in FEED_FOREIGN_KEYS:
            if from_table is not table:
                continue
            values = tuple(getattr(record, col) for col in cols)
            if any(value is None for value in values):
                continue
            if values not in self._rows(to_table, category):
                raise pg_errors.ForeignKeyViolation(
                    f"insert on {table.value} violates foreign key to {to_table.value}"
                )
        key = tuple(getattr(record, col) for col in key_columns(table))
        rows = self._rows(table, category)
        inserted = key not in rows
        rows[key] = record.model_dump()
        return inserted

    def first_agency_id(self, category: Category) -> Optional[str]:
        rows = self._rows(FeedTable.AGENCY, category)
        return next(iter(rows))[0] if rows else None

    def count_rows(self, table: FeedTable, category: Category) -> int:
        return len(self._rows(table, category))

    def row(self, table: FeedTable, category: Category, *key) -> Optional[dict]:
        return self._rows(table, category).get(tuple(key))


SAMPLE_FEED: Dict[str, str] = {
    "agency.txt": (
        "agency_id,agency_name,agency_url,agency_timezone,agency_phone,agency_lang\n"
        'KTMB,"Keretapi Tanah Melayu, Berhad",https://www.ktmb.com.my,Asia/Kuala_Lumpur,,ms\n'
    ),
    "routes.txt": (
        "route_id,agency_id,route_short_name,route_long_name,route_type\n"
        "R1,KTMB,KS,Komuter Seremban,2\n"
    ),
    "stops.txt": (
        "stop_id,stop_code,stop_name,stop_lat,stop_lon\n"
        "S1,KL,KL Sentral,3.13442,101.68625\n"
        "S2,SB,Seremban,2.71907,101.94043\n"
    ),
    "calendar.txt": (
        "service_id,monday,tuesday,wednesday,thursday,friday,saturday,sunday,start_date,end_date\n"
        "WK,1,1,1,1,1,0,0,20240101,20241231\n"
    ),
    "trips.txt": (
        "route_id,service_id,trip_id,trip_headsign,direction_id,shape_id\n"
        "R1,WK,T1,Seremban,0,\n"
    ),
    "stop_times.txt": (
        "trip_id,arrival_time,departure_time,stop_id,stop_sequence\n"
        "T1,08:00:00,08:00:00,S1,1\n"
        "T1,24:05:00,24:05:00,S2,2\n"
    ),
}


def write_archive(path: Path, files: Dict[str, str]) -> Path:
    path.parent.mkdir(parents=True, exist_ok=True)
    with zipfile.ZipFile(path, "w") as archive:
        for name, content in files.items():
            archive.writestr(name, content)
    return path


@pytest.fixture
def feed_settings(tmp_path) -> FeedSettings:
    return FeedSettings(
        data_dir=tmp_path / "gtfs",
        base_url="https://feeds.example.test/gtfs-static",
        fetch_delay_seconds=0,
    )


@pytest.fixture
def memory_store() -> InMemoryFeedStore:
    return InMemoryFeedStore()


@pytest.fixture
def sample_archive(tmp_path) -> Path:
    return write_archive(tmp_path / "incoming" / "sample.zip", SAMPLE_FEED)


@pytest.fixture
def sample_feed() -> Dict[str, str]:
    return dict(SAMPLE_FEED)


@pytest.fixture
def sample_records(sample_feed):
    parsed = {
        FeedTable(name[:-len(".txt")]): parse_delimited_table(content)
        for name, content in sample_feed.items()
    }
    return transform_feed(parsed)


@pytest.fixture
def make_archive():
    return write_archive
