import datetime

import pytest
from psycopg import errors as pg_errors

from processors.gtfs_static.categories import CLEAR_ORDER, LOAD_ORDER, Category, FeedTable
from processors.gtfs_static.load import (
    CategoryLoadResult,
    TableLoadResult,
    clear_category,
    describe_db_error,
    load_category,
    load_table,
)
from processors.gtfs_static.parser import parse_delimited_table
from processors.gtfs_static.schema_definitions import Agency, Route, Shape
from processors.gtfs_static.transform import transform_feed

CATEGORY = Category.KTMB


def test_load_category_end_to_end(memory_store, sample_records):
    """The sample feed lands in the ktmb tables with normalized times."""
    result = load_category(memory_store, CATEGORY, sample_records)

    assert result.success
    assert not result.rolled_back
    assert result.skipped_total == 0
    assert result.rows_by_table == {
        "agency": 1, "routes": 1, "stops": 2, "calendar": 1,
        "calendar_dates": 0, "trips": 1, "stop_times": 2, "shapes": 0,
    }
    agency = memory_store.row(FeedTable.AGENCY, CATEGORY, "KTMB")
    assert agency["agency_name"] == "Keretapi Tanah Melayu, Berhad"
    late = memory_store.row(FeedTable.STOP_TIMES, CATEGORY, "T1", 2)
    assert late["arrival_time"] == "00:05:00"


def test_load_category_twice_updates_instead_of_duplicating(memory_store, sample_records):
    load_category(memory_store, CATEGORY, sample_records)
    second = load_category(memory_store, CATEGORY, sample_records, clear_first=False)

    stops = second.table_result(FeedTable.STOPS)
    assert (stops.inserted, stops.updated) == (0, 2)
    assert memory_store.count_rows(FeedTable.STOPS, CATEGORY) == 2


def test_load_category_repeated_with_clear_gives_same_counts(memory_store, sample_records):
    first = load_category(memory_store, CATEGORY, sample_records)
    second = load_category(memory_store, CATEGORY, sample_records)

    assert first.rows_by_table == second.rows_by_table
    assert memory_store.count_rows(FeedTable.STOP_TIMES, CATEGORY) == 2


def test_load_order_ignores_input_order(memory_store, sample_records):
    reversed_records = dict(reversed(list(sample_records.items())))

    result = load_category(memory_store, CATEGORY, reversed_records)

    assert result.success
    assert [t.table for t in result.tables] == list(LOAD_ORDER)
    upserted_order = list(dict.fromkeys(memory_store.upserted))
    assert upserted_order == [t for t in LOAD_ORDER if sample_records[t]]


def test_clear_category_uses_reverse_load_order(memory_store):
    clear_category(memory_store, CATEGORY)

    assert memory_store.truncated == list(CLEAR_ORDER)
    assert memory_store.truncated[0] is FeedTable.SHAPES
    assert memory_store.truncated[-1] is FeedTable.AGENCY


def test_stop_times_with_unknown_stop_are_skipped(memory_store, sample_records):
    records = dict(sample_records)
    records[FeedTable.STOP_TIMES] = list(records[FeedTable.STOP_TIMES]) + [
        records[FeedTable.STOP_TIMES][0].model_copy(
            update={"stop_id": "S404", "stop_sequence": 3}
        )
    ]

    result = load_category(memory_store, CATEGORY, records)

    stop_times = result.table_result(FeedTable.STOP_TIMES)
    assert result.success
    assert (stop_times.inserted, stop_times.skipped) == (2, 1)
    assert result.skipped_total == 1
    assert memory_store.row(FeedTable.STOP_TIMES, CATEGORY, "T1", 3) is None


def test_trip_with_unknown_route_rolls_back_category(memory_store, sample_records):
    load_category(memory_store, CATEGORY, sample_records)
    records = dict(sample_records)
    records[FeedTable.TRIPS] = [
        records[FeedTable.TRIPS][0].model_copy(update={"route_id": "R404"})
    ]

    result = load_category(memory_store, CATEGORY, records)

    assert not result.success
    assert result.rolled_back
    assert result.rows_by_table == {}
    assert result.tables[-1].table is FeedTable.TRIPS
    assert result.tables[-1].success is False
    assert FeedTable.STOP_TIMES not in [t.table for t in result.tables]
    assert "trips" in result.error
    # Previous load survives the failed run.
    assert memory_store.count_rows(FeedTable.TRIPS, CATEGORY) == 1
    assert memory_store.row(FeedTable.TRIPS, CATEGORY, "T1")["route_id"] == "R1"


def test_failing_table_after_clear_keeps_previous_rows(memory_store, sample_records):
    load_category(memory_store, CATEGORY, sample_records)
    memory_store.fail_on[FeedTable.CALENDAR] = pg_errors.UniqueViolation("duplicate")

    result = load_category(memory_store, CATEGORY, sample_records)

    assert result.rolled_back
    assert memory_store.count_rows(FeedTable.STOPS, CATEGORY) == 2
    assert memory_store.count_rows(FeedTable.STOP_TIMES, CATEGORY) == 2


def test_route_without_agency_gets_first_agency(memory_store):
    records = {
        FeedTable.AGENCY: [Agency(agency_id="RKL")],
        FeedTable.ROUTES: [Route(route_id="KJ"), Route(route_id="AG", agency_id="RKL")],
    }

    result = load_category(memory_store, Category.RAPID_RAIL_KL, records)

    assert result.success
    assert memory_store.row(FeedTable.ROUTES, Category.RAPID_RAIL_KL, "KJ")["agency_id"] == "RKL"


def test_route_without_agency_and_no_agencies_uses_default(memory_store):
    records = {
        FeedTable.AGENCY: [Agency(agency_id="default")],
        FeedTable.ROUTES: [Route(route_id="T100")],
    }
    memory_store.first_agency_id = lambda category: None

    result = load_category(memory_store, Category.RAPID_BUS_KL, records)

    assert result.success
    assert memory_store.row(FeedTable.ROUTES, Category.RAPID_BUS_KL, "T100")["agency_id"] == "default"


def test_shapes_load_in_batches(memory_store, caplog):
    shapes = [
        Shape(shape_id="SH1", shape_pt_lat=3.1, shape_pt_lon=101.6, shape_pt_sequence=n)
        for n in range(2500)
    ]

    with caplog.at_level("INFO", logger="processors.gtfs_static.load"):
        result = load_table(memory_store, CATEGORY, FeedTable.SHAPES, shapes, batch_size=1000)

    assert result.inserted == 2500
    batch_lines = [r.message for r in caplog.records if "batch" in r.message]
    assert len(batch_lines) == 3
    assert "3/3 (2001-2500)" in batch_lines[-1]


def test_unbatched_table_logs_no_batches(memory_store, caplog):
    with caplog.at_level("INFO", logger="processors.gtfs_static.load"):
        load_table(memory_store, CATEGORY, FeedTable.AGENCY, [Agency(agency_id="A")])

    assert not [r for r in caplog.records if "batch" in r.message]


def test_foreign_key_violation_fails_non_tolerant_table(memory_store):
    routes = [Route(route_id="R1", agency_id="missing")]

    with pytest.raises(pg_errors.ForeignKeyViolation):
        load_table(memory_store, CATEGORY, FeedTable.ROUTES, routes)


def test_empty_table_loads_nothing(memory_store):
    result = load_table(memory_store, CATEGORY, FeedTable.CALENDAR_DATES, [])

    assert result == TableLoadResult(table=FeedTable.CALENDAR_DATES)
    assert memory_store.upserted == []


def test_load_category_runs_in_one_transaction(memory_store, sample_records):
    load_category(memory_store, CATEGORY, sample_records)

    assert memory_store.transactions == 1


def test_category_result_helpers():
    result = CategoryLoadResult(
        category=CATEGORY,
        success=True,
        tables=[
            TableLoadResult(table=FeedTable.STOPS, inserted=2, updated=1),
            TableLoadResult(table=FeedTable.STOP_TIMES, inserted=5, skipped=2),
        ],
    )

    assert result.rows_by_table == {"stops": 3, "stop_times": 5}
    assert result.skipped_total == 2
    assert result.table_result(FeedTable.SHAPES) is None


def test_describe_db_error_falls_back_to_message():
    assert describe_db_error(pg_errors.UniqueViolation("duplicate key")) == "duplicate key"


def test_calendar_dates_reference_calendar(memory_store, sample_records):
    records = dict(sample_records)
    records[FeedTable.CALENDAR_DATES] = [
        transform_feed({
            FeedTable.CALENDAR_DATES: parse_delimited_table(
                "service_id,date,exception_type\nWK,20240501,2\n"
            )
        })[FeedTable.CALENDAR_DATES][0]
    ]

    result = load_category(memory_store, CATEGORY, records)

    assert result.success
    row = memory_store.row(FeedTable.CALENDAR_DATES, CATEGORY, "WK", datetime.date(2024, 5, 1))
    assert row["exception_type"] == 2


def test_calendar_date_with_unknown_service_rolls_back_category(memory_store, sample_records):
    load_category(memory_store, CATEGORY, sample_records)
    records = dict(sample_records)
    records[FeedTable.CALENDAR_DATES] = transform_feed({
        FeedTable.CALENDAR_DATES: parse_delimited_table(
            "service_id,date,exception_type\nHOLIDAY,20240501,1\n"
        )
    })[FeedTable.CALENDAR_DATES]

    result = load_category(memory_store, CATEGORY, records)

    assert not result.success
    assert result.rolled_back
    assert result.tables[-1].table is FeedTable.CALENDAR_DATES
    assert result.tables[-1].success is False
    assert FeedTable.TRIPS not in [t.table for t in result.tables]
    assert memory_store.count_rows(FeedTable.CALENDAR_DATES, CATEGORY) == 0
    assert memory_store.count_rows(FeedTable.TRIPS, CATEGORY) == 1
