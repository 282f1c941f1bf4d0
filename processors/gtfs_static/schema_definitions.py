#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""
Typed records for the eight feed tables and their database layout.

Each record model is a Pydantic model built from one raw row after the
coercions in ``transform.py``. ``FEED_TABLE_SCHEMAS`` maps every
:class:`~processors.gtfs_static.categories.FeedTable` to its record model,
column types, natural key and load policy. ``FEED_FOREIGN_KEYS`` lists the
references between tables of the same category.
"""

import datetime
from typing import Annotated, Any, Dict, List, Optional, Tuple

from pydantic import BaseModel, ConfigDict, Field, StringConstraints

from .categories import FeedTable

NonEmptyStr = Annotated[str, StringConstraints(min_length=1)]
ServiceTime = Annotated[str, StringConstraints(pattern=r"^\d{2}:\d{2}:\d{2}$")]


class FeedRecord(BaseModel):
    """
    Base model for all feed records.

    - `extra = "ignore"`: columns the loader does not store are dropped.
    - `str_strip_whitespace = True`: strings are trimmed.
    """
    model_config = ConfigDict(extra="ignore", str_strip_whitespace=True)


class Agency(FeedRecord):
    """A row of `agency.txt`. A blank id is stored as ``"default"``."""
    agency_id: NonEmptyStr
    agency_name: Optional[str] = None
    agency_url: Optional[str] = None
    agency_timezone: Optional[str] = None
    agency_phone: Optional[str] = None
    agency_lang: Optional[str] = None


class Route(FeedRecord):
    """
    A row of `routes.txt`.

    `agency_id` is None when the feed leaves it blank; the loader fills it in
    from the agencies already stored for the category.
    """
    route_id: NonEmptyStr
    agency_id: Optional[str] = None
    route_short_name: Optional[str] = None
    route_long_name: Optional[str] = None
    route_type: int = 3


class Stop(FeedRecord):
    stop_id: NonEmptyStr
    stop_code: Optional[str] = None
    stop_name: Optional[str] = None
    stop_lat: float = Field(ge=-90, le=90)
    stop_lon: float = Field(ge=-180, le=180)


class Calendar(FeedRecord):
    service_id: NonEmptyStr
    monday: bool = False
    tuesday: bool = False
    wednesday: bool = False
    thursday: bool = False
    friday: bool = False
    saturday: bool = False
    sunday: bool = False
    start_date: datetime.date
    end_date: datetime.date


class CalendarDate(FeedRecord):
    """Exception type 1 adds service on `date`, 2 removes it."""
    service_id: NonEmptyStr
    date: datetime.date
    exception_type: int = Field(ge=1, le=2)


class Trip(FeedRecord):
    route_id: NonEmptyStr
    service_id: NonEmptyStr
    trip_id: NonEmptyStr
    trip_headsign: Optional[str] = None
    direction_id: Optional[int] = None
    shape_id: Optional[str] = None


class StopTime(FeedRecord):
    """
    A row of `stop_times.txt`.

    Times are wall-clock ``HH:MM:SS`` with the hour already brought below 24.
    """
    trip_id: NonEmptyStr
    arrival_time: Optional[ServiceTime] = None
    departure_time: Optional[ServiceTime] = None
    stop_id: NonEmptyStr
    stop_sequence: int
    stop_headsign: Optional[str] = None
    shape_dist_traveled: Optional[float] = None


class Shape(FeedRecord):
    shape_id: NonEmptyStr
    shape_pt_lat: float = Field(ge=-90, le=90)
    shape_pt_lon: float = Field(ge=-180, le=180)
    shape_pt_sequence: int
    shape_dist_traveled: Optional[float] = None


# Column types follow the record models field for field; created_at and
# updated_at are appended by db_setup.
FEED_TABLE_SCHEMAS: Dict[FeedTable, Dict[str, Any]] = {
    FeedTable.AGENCY: {
        "model": Agency,
        "columns": {
            "agency_id": {"type": "VARCHAR(50) NOT NULL"},
            "agency_name": {"type": "VARCHAR(255)"},
            "agency_url": {"type": "VARCHAR(500)"},
            "agency_timezone": {"type": "VARCHAR(50)"},
            "agency_phone": {"type": "VARCHAR(50)"},
            "agency_lang": {"type": "VARCHAR(10)"},
        },
        "pk_cols": ["agency_id"],
        "batched": False,
        "fk_tolerant": False,
    },
    FeedTable.ROUTES: {
        "model": Route,
        "columns": {
            "route_id": {"type": "VARCHAR(50) NOT NULL"},
            "agency_id": {"type": "VARCHAR(50)"},
            "route_short_name": {"type": "VARCHAR(50)"},
            "route_long_name": {"type": "VARCHAR(255)"},
            "route_type": {"type": "INTEGER NOT NULL"},
        },
        "pk_cols": ["route_id"],
        "batched": False,
        "fk_tolerant": False,
    },
    FeedTable.STOPS: {
        "model": Stop,
        "columns": {
            "stop_id": {"type": "VARCHAR(50) NOT NULL"},
            "stop_code": {"type": "VARCHAR(50)"},
            "stop_name": {"type": "VARCHAR(255)"},
            "stop_lat": {"type": "DECIMAL(10, 8) NOT NULL"},
            "stop_lon": {"type": "DECIMAL(11, 8) NOT NULL"},
        },
        "pk_cols": ["stop_id"],
        "batched": False,
        "fk_tolerant": False,
    },
    FeedTable.CALENDAR: {
        "model": Calendar,
        "columns": {
            "service_id": {"type": "VARCHAR(50) NOT NULL"},
            "monday": {"type": "BOOLEAN NOT NULL DEFAULT FALSE"},
            "tuesday": {"type": "BOOLEAN NOT NULL DEFAULT FALSE"},
            "wednesday": {"type": "BOOLEAN NOT NULL DEFAULT FALSE"},
            "thursday": {"type": "BOOLEAN NOT NULL DEFAULT FALSE"},
            "friday": {"type": "BOOLEAN NOT NULL DEFAULT FALSE"},
            "saturday": {"type": "BOOLEAN NOT NULL DEFAULT FALSE"},
            "sunday": {"type": "BOOLEAN NOT NULL DEFAULT FALSE"},
            "start_date": {"type": "DATE NOT NULL"},
            "end_date": {"type": "DATE NOT NULL"},
        },
        "pk_cols": ["service_id"],
        "batched": False,
        "fk_tolerant": False,
    },
    FeedTable.CALENDAR_DATES: {
        "model": CalendarDate,
        "columns": {
            "service_id": {"type": "VARCHAR(50) NOT NULL"},
            "date": {"type": "DATE NOT NULL"},
            "exception_type": {"type": "INTEGER NOT NULL"},
        },
        "pk_cols": ["service_id", "date"],
        "batched": False,
        "fk_tolerant": False,
    },
    FeedTable.TRIPS: {
        "model": Trip,
        "columns": {
            "route_id": {"type": "VARCHAR(50) NOT NULL"},
            "service_id": {"type": "VARCHAR(50) NOT NULL"},
            "trip_id": {"type": "VARCHAR(50) NOT NULL"},
            "trip_headsign": {"type": "VARCHAR(255)"},
            "direction_id": {"type": "INTEGER"},
            "shape_id": {"type": "VARCHAR(50)"},
        },
        "pk_cols": ["trip_id"],
        "batched": False,
        "fk_tolerant": False,
    },
    FeedTable.STOP_TIMES: {
        "model": StopTime,
        "columns": {
            "trip_id": {"type": "VARCHAR(50) NOT NULL"},
            "arrival_time": {"type": "TIME"},
            "departure_time": {"type": "TIME"},
            "stop_id": {"type": "VARCHAR(50) NOT NULL"},
            "stop_sequence": {"type": "INTEGER NOT NULL"},
            "stop_headsign": {"type": "VARCHAR(255)"},
            "shape_dist_traveled": {"type": "DECIMAL(10, 6)"},
        },
        "pk_cols": ["trip_id", "stop_sequence"],
        "batched": True,
        "fk_tolerant": True,
    },
    FeedTable.SHAPES: {
        "model": Shape,
        "columns": {
            "shape_id": {"type": "VARCHAR(50) NOT NULL"},
            "shape_pt_lat": {"type": "DECIMAL(10, 8) NOT NULL"},
            "shape_pt_lon": {"type": "DECIMAL(11, 8) NOT NULL"},
            "shape_pt_sequence": {"type": "INTEGER NOT NULL"},
            "shape_dist_traveled": {"type": "DECIMAL(10, 6)"},
        },
        "pk_cols": ["shape_id", "shape_pt_sequence"],
        "batched": True,
        "fk_tolerant": False,
    },
}

# (table, columns, referenced table, referenced columns), all within one category.
FEED_FOREIGN_KEYS: List[Tuple[FeedTable, List[str], FeedTable, List[str]]] = [
    (FeedTable.ROUTES, ["agency_id"], FeedTable.AGENCY, ["agency_id"]),
    (FeedTable.CALENDAR_DATES, ["service_id"], FeedTable.CALENDAR, ["service_id"]),
    (FeedTable.TRIPS, ["route_id"], FeedTable.ROUTES, ["route_id"]),
    (FeedTable.TRIPS, ["service_id"], FeedTable.CALENDAR, ["service_id"]),
    (FeedTable.STOP_TIMES, ["trip_id"], FeedTable.TRIPS, ["trip_id"]),
    (FeedTable.STOP_TIMES, ["stop_id"], FeedTable.STOPS, ["stop_id"]),
]


def column_names(table: FeedTable) -> List[str]:
    return list(FEED_TABLE_SCHEMAS[table]["columns"].keys())


def key_columns(table: FeedTable) -> List[str]:
    return list(FEED_TABLE_SCHEMAS[table]["pk_cols"])


def record_values(record: FeedRecord) -> Tuple[Any, ...]:
    """Field values in column order, ready to bind as query parameters."""
    data = record.model_dump()
    table = RECORD_TABLES[type(record)]
    return tuple(data[name] for name in column_names(table))


RECORD_TABLES: Dict[type, FeedTable] = {
    schema["model"]: table for table, schema in FEED_TABLE_SCHEMAS.items()
}
