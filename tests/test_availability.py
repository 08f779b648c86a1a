"""Tests for equipment availability checks."""

from datetime import date

import pytest

from helpers import EQUIPMENT_ID, set_result
from rencam.domain.availability import (
    BLOCKING_STATUSES,
    assert_available,
    availability_cache_key,
    check_availability,
    count_conflicts,
    equipment_calendar,
    is_available,
)
from rencam.domain.errors import EquipmentUnavailable, InvalidDuration


class TestTransactionalCheck:
    def test_count_conflicts_query(self, tx):
        tx.fetchone.return_value = {"conflicts": 2}
        n = count_conflicts(
            tx, equipment_id=EQUIPMENT_ID, start_date=date(2026, 3, 1), end_date=date(2026, 3, 3)
        )
        assert n == 2
        query, params = tx.fetchone.call_args[0]
        assert "NOT (end_date < %s OR start_date > %s)" in query
        assert "id <> %s" not in query
        assert params == [EQUIPMENT_ID, list(BLOCKING_STATUSES), date(2026, 3, 1), date(2026, 3, 3)]

    def test_exclude_booking(self, tx):
        tx.fetchone.return_value = {"conflicts": 0}
        count_conflicts(
            tx,
            equipment_id=EQUIPMENT_ID,
            start_date=date(2026, 3, 1),
            end_date=date(2026, 3, 3),
            exclude_booking_id="b1",
        )
        query, params = tx.fetchone.call_args[0]
        assert query.rstrip().endswith("AND id <> %s")
        assert params[-1] == "b1"

    def test_only_confirmed_and_active_block(self):
        assert set(BLOCKING_STATUSES) == {"confirmed", "active"}

    def test_is_available(self, tx):
        tx.fetchone.return_value = {"conflicts": 0}
        assert is_available(
            tx, equipment_id=EQUIPMENT_ID, start_date=date(2026, 3, 1), end_date=date(2026, 3, 1)
        )

    def test_invalid_range(self, tx):
        with pytest.raises(InvalidDuration):
            is_available(
                tx, equipment_id=EQUIPMENT_ID, start_date=date(2026, 3, 2), end_date=date(2026, 3, 1)
            )
        tx.fetchone.assert_not_called()

    def test_assert_available_raises(self, tx):
        tx.fetchone.return_value = {"conflicts": 1}
        with pytest.raises(EquipmentUnavailable) as exc_info:
            assert_available(
                tx, equipment_id=EQUIPMENT_ID, start_date=date(2026, 3, 1), end_date=date(2026, 3, 3)
            )
        assert exc_info.value.equipment_id == EQUIPMENT_ID
        assert not exc_info.value.retryable


class TestCachedCheck:
    def test_cached_between_calls(self, executor, pool, cursor, memory_cache):
        set_result(cursor, ["conflicts"], [(0,)])
        args = dict(equipment_id=EQUIPMENT_ID, start_date=date(2026, 3, 1), end_date=date(2026, 3, 3))

        assert check_availability(executor, **args) is True
        assert check_availability(executor, **args) is True
        assert pool.checkouts == 1
        key = availability_cache_key(EQUIPMENT_ID, date(2026, 3, 1), date(2026, 3, 3))
        assert key.startswith("bookings:")
        assert memory_cache.get(key) == [{"conflicts": 0}]

    def test_unavailable(self, executor, cursor):
        set_result(cursor, ["conflicts"], [(1,)])
        assert (
            check_availability(
                executor,
                equipment_id=EQUIPMENT_ID,
                start_date=date(2026, 3, 1),
                end_date=date(2026, 3, 3),
            )
            is False
        )

    def test_booking_write_drops_cached_answer(self, executor, cursor, memory_cache):
        set_result(cursor, ["conflicts"], [(0,)])
        args = dict(equipment_id=EQUIPMENT_ID, start_date=date(2026, 3, 1), end_date=date(2026, 3, 3))
        check_availability(executor, **args)

        cursor.description = None
        executor.execute("UPDATE bookings SET status = 'confirmed' WHERE id = %s", ("b1",))

        key = availability_cache_key(EQUIPMENT_ID, date(2026, 3, 1), date(2026, 3, 3))
        assert memory_cache.get(key) is None


class TestCalendar:
    def test_month_bounds(self, executor, cursor, memory_cache):
        set_result(
            cursor,
            ["id", "booking_reference", "start_date", "end_date", "status"],
            [("b1", "RC-2026-032-AAAAAA", date(2026, 1, 30), date(2026, 2, 2), "confirmed")],
        )
        rows = equipment_calendar(executor, equipment_id=EQUIPMENT_ID, year=2026, month=2)

        assert rows[0]["start_date"] == date(2026, 1, 30)
        _, params = cursor.execute.call_args[0]
        assert params[2:] == (date(2026, 2, 1), date(2026, 2, 28))
        assert memory_cache.get(f"bookings:calendar:{EQUIPMENT_ID}:2026-02") == rows

    def test_leap_february(self, executor, cursor):
        set_result(cursor, ["id"], [])
        equipment_calendar(executor, equipment_id=EQUIPMENT_ID, year=2028, month=2)
        _, params = cursor.execute.call_args[0]
        assert params[3] == date(2028, 2, 29)

    def test_invalid_month(self, executor):
        with pytest.raises(ValueError):
            equipment_calendar(executor, equipment_id=EQUIPMENT_ID, year=2026, month=13)
