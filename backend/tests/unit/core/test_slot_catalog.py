from __future__ import annotations

from datetime import date, datetime, time, timezone

import pytest

from icetime.core.enums import DayOfWeek, PoolName
from icetime.core.slot_catalog import build_catalog, parse_slot_time, window_label
from icetime.core.timezone_utils import hours_until, rink_today, session_start


class TestParseSlotTime:
    @pytest.mark.parametrize(
        "value, expected",
        [
            ("15:00", time(15, 0)),
            ("3-4pm", time(15, 0)),
            ("4:15-5:15pm", time(16, 15)),
            ("11-12pm", time(11, 0)),
            ("7:30 AM", time(7, 30)),
            ("8:45pm", time(20, 45)),
            (" 20:00 ", time(20, 0)),
        ],
    )
    def test_accepted_formats(self, value: str, expected: time) -> None:
        assert parse_slot_time(value) == expected

    @pytest.mark.parametrize("value", ["", "pm", "13pm", "soon"])
    def test_rejected_formats(self, value: str) -> None:
        with pytest.raises(ValueError):
            parse_slot_time(value)


class TestWindowLabel:
    @pytest.mark.parametrize(
        "start, label",
        [
            (time(15, 0), "3-4pm"),
            (time(16, 15), "4:15-5:15pm"),
            (time(11, 0), "11am-12pm"),
            (time(7, 30), "7:30-8:30am"),
        ],
    )
    def test_labels(self, start: time, label: str) -> None:
        assert window_label(start) == label

    def test_label_round_trips_through_parser(self) -> None:
        assert parse_slot_time(window_label(time(18, 45))) == time(18, 45)


class TestCatalog:
    def test_pool_sizes(self) -> None:
        catalog = build_catalog()
        by_pool = {pool: [d for d in catalog if d.pool == pool] for pool in PoolName}

        assert len(by_pool[PoolName.GROUP]) == 8
        assert len(by_pool[PoolName.SHARED]) == 15
        assert len(by_pool[PoolName.SUNDAY]) == 2
        assert {d.capacity for d in by_pool[PoolName.GROUP]} == {6}
        assert {d.capacity for d in by_pool[PoolName.SHARED]} == {1}

    def test_sunday_eligibility(self) -> None:
        early, late = sorted(
            (d for d in build_catalog() if d.pool == PoolName.SUNDAY), key=lambda d: d.start_time
        )

        assert early.eligible_categories == {"M7", "M9", "M11"}
        assert "M15 Elite" in late.eligible_categories
        assert "M11" not in late.eligible_categories

    def test_positions_follow_the_day(self) -> None:
        tuesday = [
            d
            for d in build_catalog()
            if d.pool == PoolName.GROUP and d.day_of_week == DayOfWeek.TUESDAY
        ]

        assert [d.position for d in tuesday] == [0, 1, 2, 3]
        assert tuesday[-1].end_time == time(21, 15)


class TestDayOfWeek:
    @pytest.mark.parametrize(
        "value, day",
        [("Monday", DayOfWeek.MONDAY), ("wed", DayOfWeek.WEDNESDAY), (" THU ", DayOfWeek.THURSDAY)],
    )
    def test_parse(self, value: str, day: DayOfWeek) -> None:
        assert DayOfWeek.parse(value) == day

    @pytest.mark.parametrize("value", ["mo", "funday", ""])
    def test_parse_rejects(self, value: str) -> None:
        with pytest.raises(ValueError):
            DayOfWeek.parse(value)

    def test_from_date(self) -> None:
        assert DayOfWeek.from_date(date(2026, 3, 3)) == DayOfWeek.TUESDAY
        assert DayOfWeek.SUNDAY.index == 6


class TestRinkTime:
    def test_session_start_is_local(self) -> None:
        start = session_start(date(2026, 3, 3), time(16, 30))

        assert start.astimezone(timezone.utc) == datetime(2026, 3, 3, 21, 30, tzinfo=timezone.utc)

    def test_daylight_saving_shift(self) -> None:
        # Clocks go forward on 8 March 2026
        start = session_start(date(2026, 3, 10), time(16, 30))

        assert start.astimezone(timezone.utc).hour == 20

    def test_rink_today_lags_utc_in_the_evening(self) -> None:
        assert rink_today(datetime(2026, 3, 3, 2, 0, tzinfo=timezone.utc)) == date(2026, 3, 2)

    def test_hours_until_treats_naive_as_utc(self) -> None:
        start = datetime(2026, 3, 3, 12, 0, tzinfo=timezone.utc)

        assert hours_until(start, datetime(2026, 3, 2, 12, 0)) == 24
