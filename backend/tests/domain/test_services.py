from datetime import date, timedelta

import pytest
from tablebook.domain.errors import CapacityError, CapacityRule, ReservationValidationError
from tablebook.domain.services import (
    TableSnapshot,
    build_reservation_number,
    partition_tables,
    validate_booking_request,
    validate_table_selection,
)


def _tables(**capacities: int) -> list[TableSnapshot]:
    return [TableSnapshot(table_number=int(n[1:]), capacity=c) for n, c in capacities.items()]


def test_four_guests_on_a_four_top_is_accepted() -> None:
    assert validate_table_selection([1], _tables(t1=4), guests=4) == 4


def test_one_seat_of_slack_is_accepted() -> None:
    assert validate_table_selection([1], _tables(t1=4), guests=3) == 4


def test_combined_tables_are_accepted() -> None:
    assert validate_table_selection([1, 2], _tables(t1=4, t2=4), guests=7) == 8


def test_two_guests_on_a_six_top_is_rejected_as_too_large() -> None:
    with pytest.raises(CapacityError) as excinfo:
        validate_table_selection([11], _tables(t11=6), guests=2)
    assert excinfo.value.rule == CapacityRule.TABLE_TOO_LARGE
    assert excinfo.value.total_capacity == 6


def test_combined_capacity_more_than_one_over_is_rejected() -> None:
    with pytest.raises(CapacityError) as excinfo:
        validate_table_selection([1, 2], _tables(t1=4, t2=4), guests=5)
    assert excinfo.value.rule == CapacityRule.EXCESS_CAPACITY
    assert excinfo.value.total_capacity == 8


def test_insufficient_capacity_is_rejected() -> None:
    with pytest.raises(CapacityError) as excinfo:
        validate_table_selection([1], _tables(t1=4), guests=5)
    assert excinfo.value.rule == CapacityRule.INSUFFICIENT_CAPACITY
    assert excinfo.value.total_capacity == 4


def test_empty_selection_is_rejected() -> None:
    with pytest.raises(CapacityError) as excinfo:
        validate_table_selection([], _tables(t1=4), guests=2)
    assert excinfo.value.rule == CapacityRule.NO_TABLES
    assert excinfo.value.total_capacity == 0


def test_unknown_table_is_rejected_with_found_capacity() -> None:
    with pytest.raises(CapacityError) as excinfo:
        validate_table_selection([1, 99], _tables(t1=4), guests=4)
    assert excinfo.value.rule == CapacityRule.TABLES_UNAVAILABLE
    assert excinfo.value.total_capacity == 4


def test_inactive_table_is_unavailable() -> None:
    tables = [TableSnapshot(table_number=3, capacity=4, is_active=False)]
    with pytest.raises(CapacityError) as excinfo:
        validate_table_selection([3], tables, guests=4)
    assert excinfo.value.rule == CapacityRule.TABLES_UNAVAILABLE


def test_duplicate_numbers_are_unavailable() -> None:
    with pytest.raises(CapacityError) as excinfo:
        validate_table_selection([1, 1], _tables(t1=4), guests=4)
    assert excinfo.value.rule == CapacityRule.TABLES_UNAVAILABLE


def test_too_large_is_checked_before_totals() -> None:
    # a 6-top with a 4-top for 3 guests is both too large and over capacity
    with pytest.raises(CapacityError) as excinfo:
        validate_table_selection([1, 11], _tables(t1=4, t11=6), guests=3)
    assert excinfo.value.rule == CapacityRule.TABLE_TOO_LARGE
    assert excinfo.value.total_capacity == 10


def test_partition_splits_available_occupied_and_not_eligible() -> None:
    tables = _tables(t1=4, t2=4, t11=6, t12=6) + [TableSnapshot(table_number=5, capacity=4, is_active=False)]
    result = partition_tables(tables, {2, 12}, guests=3)
    assert result.available == [1]
    assert result.occupied == [2, 12]
    assert result.not_eligible == [11]


def test_partition_of_large_party_makes_all_tables_eligible() -> None:
    result = partition_tables(_tables(t1=4, t11=6), set(), guests=10)
    assert result.available == [1, 11]
    assert result.not_eligible == []


def test_reservation_number_sorts_tables() -> None:
    assert build_reservation_number(date(2025, 1, 15), 9, [3, 1]) == "20250115-1900-1-3"


def test_reservation_number_rejects_unknown_slot() -> None:
    with pytest.raises(ReservationValidationError):
        build_reservation_number(date(2025, 1, 15), 16, [1])


@pytest.mark.parametrize(
    "kwargs",
    [
        {"booking_date": None, "slot": 1, "guests": 2},
        {"booking_date": date(2030, 1, 1), "slot": None, "guests": 2},
        {"booking_date": date(2030, 1, 1), "slot": 0, "guests": 2},
        {"booking_date": date(2030, 1, 1), "slot": 16, "guests": 2},
        {"booking_date": date(2030, 1, 1), "slot": 1, "guests": 0},
        {"booking_date": date(2030, 1, 1), "slot": 1, "guests": 21},
    ],
)
def test_booking_request_rejects_malformed_input(kwargs: dict) -> None:
    with pytest.raises(ReservationValidationError):
        validate_booking_request(**kwargs)


def test_booking_request_rejects_past_dates() -> None:
    today = date(2030, 1, 10)
    with pytest.raises(ReservationValidationError):
        validate_booking_request(booking_date=today - timedelta(days=1), slot=1, guests=2, today=today)
    validate_booking_request(booking_date=today, slot=1, guests=2, today=today)
