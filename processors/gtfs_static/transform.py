#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""
Turns parsed feed rows into typed records.

Everything here is a pure function of its input: no files, no database.
Coercion rules:
- numbers that do not parse become None, except route_type which falls
  back to 3 (bus);
- day-of-week flags are true only for ``"1"`` / ``1``;
- a blank agency id becomes ``"default"``;
- a blank route agency id stays None for the loader to resolve;
- stop times with an hour of 24 or more have 24 subtracted from the hour.
"""

import datetime
import logging
from typing import Any, Callable, Dict, List, Mapping, Optional, Tuple

from pydantic import ValidationError

from .categories import LOAD_ORDER, FeedTable
from .errors import FeedTransformError
from .parser import ParsedTable
from .schema_definitions import (
    FEED_TABLE_SCHEMAS,
    Agency,
    Calendar,
    CalendarDate,
    FeedRecord,
    Route,
    Shape,
    Stop,
    StopTime,
    Trip,
)

module_logger = logging.getLogger(__name__)

DEFAULT_AGENCY_ID = "default"
DEFAULT_ROUTE_TYPE = 3
DAYS_OF_WEEK = (
    "monday", "tuesday", "wednesday", "thursday", "friday", "saturday", "sunday",
)


def clean_string_field(value: Any) -> Optional[str]:
    """
    Clean a string field by stripping whitespace.

    None and strings that are empty after stripping become None. Other
    values are converted to ``str`` first.
    """
    if value is None:
        return None
    stripped_value = str(value).strip()
    return stripped_value if stripped_value else None


def parse_int(value: Any, default: Optional[int] = None) -> Optional[int]:
    """
    Parse a whole number, returning ``default`` when it does not parse.

    Decimal spellings such as ``"1.0"`` are truncated.
    """
    text = clean_string_field(value)
    if text is None:
        return default
    try:
        return int(text)
    except ValueError:
        pass
    try:
        number = float(text)
    except ValueError:
        return default
    if number != number or number in (float("inf"), float("-inf")):
        return default
    return int(number)


def parse_float(value: Any, default: Optional[float] = None) -> Optional[float]:
    text = clean_string_field(value)
    if text is None:
        return default
    try:
        number = float(text)
    except ValueError:
        return default
    if number != number or number in (float("inf"), float("-inf")):
        return default
    return number


def parse_day_flag(value: Any) -> bool:
    """True only for the string ``"1"`` or the number 1."""
    if isinstance(value, str):
        return value.strip() == "1"
    return value == 1 and not isinstance(value, bool)


def parse_feed_date(value: Any) -> Optional[datetime.date]:
    """Parse ``YYYYMMDD``; blank or malformed values give None."""
    text = clean_string_field(value)
    if text is None:
        return None
    try:
        return datetime.datetime.strptime(text, "%Y%m%d").date()
    except ValueError:
        return None


def split_service_time(value: Any) -> Tuple[Optional[str], int]:
    """
    Split a feed time into a wall-clock ``HH:MM:SS`` and a day offset.

    ``"25:10:00"`` gives ``("01:10:00", 1)``; ``"23:59:00"`` gives
    ``("23:59:00", 0)``. Single-digit hours are zero-padded. Blank input
    gives ``(None, 0)``. Values that are not ``H:MM:SS`` are returned as they
    are with offset 0 and left to the record model to reject.
    """
    text = clean_string_field(value)
    if text is None:
        return None, 0

    parts = text.split(":")
    if len(parts) != 3 or not all(part.isdigit() for part in parts):
        return text, 0

    hours, minutes, seconds = (int(part) for part in parts)
    day_offset = 1 if hours >= 24 else 0
    hours -= 24 * day_offset
    return f"{hours:02d}:{minutes:02d}:{seconds:02d}", day_offset


def normalize_service_time(value: Any) -> Optional[str]:
    """
    Rewrite a time with an hour of 24 or more by subtracting 24 from the hour.

    In-range values are returned unchanged. The day offset is discarded; use
    :func:`split_service_time` to keep it.
    """
    return split_service_time(value)[0]


def apply_default_agency(
    routes: List[Route], fallback_agency_id: Optional[str]
) -> List[Route]:
    """
    Give every route without an agency ``fallback_agency_id``, or
    ``"default"`` when the category has no agency at all.
    """
    agency_id = fallback_agency_id or DEFAULT_AGENCY_ID
    return [
        route if route.agency_id else route.model_copy(update={"agency_id": agency_id})
        for route in routes
    ]


# --- Row converters: raw mapping -> keyword arguments for the record model ---

def _agency_fields(row: Mapping[str, str]) -> Dict[str, Any]:
    return {
        "agency_id": clean_string_field(row.get("agency_id")) or DEFAULT_AGENCY_ID,
        "agency_name": clean_string_field(row.get("agency_name")),
        "agency_url": clean_string_field(row.get("agency_url")),
        "agency_timezone": clean_string_field(row.get("agency_timezone")),
        "agency_phone": clean_string_field(row.get("agency_phone")),
        "agency_lang": clean_string_field(row.get("agency_lang")),
    }


def _route_fields(row: Mapping[str, str]) -> Dict[str, Any]:
    return {
        "route_id": clean_string_field(row.get("route_id")),
        "agency_id": clean_string_field(row.get("agency_id")),
        "route_short_name": clean_string_field(row.get("route_short_name")),
        "route_long_name": clean_string_field(row.get("route_long_name")),
        "route_type": parse_int(row.get("route_type"), DEFAULT_ROUTE_TYPE),
    }


def _stop_fields(row: Mapping[str, str]) -> Dict[str, Any]:
    return {
        "stop_id": clean_string_field(row.get("stop_id")),
        "stop_code": clean_string_field(row.get("stop_code")),
        "stop_name": clean_string_field(row.get("stop_name")),
        "stop_lat": parse_float(row.get("stop_lat")),
        "stop_lon": parse_float(row.get("stop_lon")),
    }


def _calendar_fields(row: Mapping[str, str]) -> Dict[str, Any]:
    fields: Dict[str, Any] = {
        "service_id": clean_string_field(row.get("service_id")),
        "start_date": parse_feed_date(row.get("start_date")),
        "end_date": parse_feed_date(row.get("end_date")),
    }
    for day in DAYS_OF_WEEK:
        fields[day] = parse_day_flag(row.get(day))
    return fields


def _calendar_date_fields(row: Mapping[str, str]) -> Dict[str, Any]:
    return {
        "service_id": clean_string_field(row.get("service_id")),
        "date": parse_feed_date(row.get("date")),
        "exception_type": parse_int(row.get("exception_type")),
    }


def _trip_fields(row: Mapping[str, str]) -> Dict[str, Any]:
    return {
        "route_id": clean_string_field(row.get("route_id")),
        "service_id": clean_string_field(row.get("service_id")),
        "trip_id": clean_string_field(row.get("trip_id")),
        "trip_headsign": clean_string_field(row.get("trip_headsign")),
        "direction_id": parse_int(row.get("direction_id")),
        "shape_id": clean_string_field(row.get("shape_id")),
    }


def _stop_time_fields(row: Mapping[str, str]) -> Dict[str, Any]:
    return {
        "trip_id": clean_string_field(row.get("trip_id")),
        "arrival_time": normalize_service_time(row.get("arrival_time")),
        "departure_time": normalize_service_time(row.get("departure_time")),
        "stop_id": clean_string_field(row.get("stop_id")),
        "stop_sequence": parse_int(row.get("stop_sequence")),
        "stop_headsign": clean_string_field(row.get("stop_headsign")),
        "shape_dist_traveled": parse_float(row.get("shape_dist_traveled")),
    }


def _shape_fields(row: Mapping[str, str]) -> Dict[str, Any]:
    return {
        "shape_id": clean_string_field(row.get("shape_id")),
        "shape_pt_lat": parse_float(row.get("shape_pt_lat")),
        "shape_pt_lon": parse_float(row.get("shape_pt_lon")),
        "shape_pt_sequence": parse_int(row.get("shape_pt_sequence")),
        "shape_dist_traveled": parse_float(row.get("shape_dist_traveled")),
    }


ROW_CONVERTERS: Dict[FeedTable, Callable[[Mapping[str, str]], Dict[str, Any]]] = {
    FeedTable.AGENCY: _agency_fields,
    FeedTable.ROUTES: _route_fields,
    FeedTable.STOPS: _stop_fields,
    FeedTable.CALENDAR: _calendar_fields,
    FeedTable.CALENDAR_DATES: _calendar_date_fields,
    FeedTable.TRIPS: _trip_fields,
    FeedTable.STOP_TIMES: _stop_time_fields,
    FeedTable.SHAPES: _shape_fields,
}


def transform_row(table: FeedTable, row: Mapping[str, str]) -> FeedRecord:
    """
    Convert one raw row of ``table`` into its record.

    Raises:
        pydantic.ValidationError: If a required value is missing or invalid.
    """
    model = FEED_TABLE_SCHEMAS[table]["model"]
    return model(**ROW_CONVERTERS[table](row))


def transform_agency(row: Mapping[str, str]) -> Agency:
    return transform_row(FeedTable.AGENCY, row)  # type: ignore[return-value]


def transform_route(row: Mapping[str, str]) -> Route:
    return transform_row(FeedTable.ROUTES, row)  # type: ignore[return-value]


def transform_stop(row: Mapping[str, str]) -> Stop:
    return transform_row(FeedTable.STOPS, row)  # type: ignore[return-value]


def transform_calendar(row: Mapping[str, str]) -> Calendar:
    return transform_row(FeedTable.CALENDAR, row)  # type: ignore[return-value]


def transform_calendar_date(row: Mapping[str, str]) -> CalendarDate:
    return transform_row(FeedTable.CALENDAR_DATES, row)  # type: ignore[return-value]


def transform_trip(row: Mapping[str, str]) -> Trip:
    return transform_row(FeedTable.TRIPS, row)  # type: ignore[return-value]


def transform_stop_time(row: Mapping[str, str]) -> StopTime:
    return transform_row(FeedTable.STOP_TIMES, row)  # type: ignore[return-value]


def transform_shape(row: Mapping[str, str]) -> Shape:
    return transform_row(FeedTable.SHAPES, row)  # type: ignore[return-value]


def transform_table(table: FeedTable, parsed: ParsedTable) -> List[FeedRecord]:
    """
    Convert every row of a parsed table.

    Raises:
        FeedTransformError: On the first row that cannot become a record.
            Row numbers count data rows from 1.
    """
    records: List[FeedRecord] = []
    for row_number, row in enumerate(parsed.rows, start=1):
        try:
            records.append(transform_row(table, row))
        except ValidationError as e:
            fields = ", ".join(
                ".".join(str(part) for part in error["loc"]) for error in e.errors()
            )
            raise FeedTransformError(
                f"{table.file_name} row {row_number}: invalid value for {fields}",
                table=table.value,
                row_number=row_number,
                original_error=e,
            ) from e
    return records


def transform_feed(
    parsed_tables: Mapping[FeedTable, ParsedTable],
) -> Dict[FeedTable, List[FeedRecord]]:
    """Transform all eight tables; a table absent from the input is empty."""
    transformed: Dict[FeedTable, List[FeedRecord]] = {}
    for table in LOAD_ORDER:
        parsed = parsed_tables.get(table) or ParsedTable()
        transformed[table] = transform_table(table, parsed)
        module_logger.debug(
            f"Transformed {len(transformed[table])} {table.value} records"
        )
    return transformed
