from datetime import date, datetime

import pytest

from rideswith.services.recurrence import MAX_OCCURRENCES, expand_recurrence


def test_weekly_series_includes_the_end_day():
    start = datetime(2025, 3, 1, 9, 0)

    dates = expand_recurrence(start, "WEEKLY", date(2025, 3, 29))

    assert dates == [
        datetime(2025, 3, 1, 9, 0),
        datetime(2025, 3, 8, 9, 0),
        datetime(2025, 3, 15, 9, 0),
        datetime(2025, 3, 22, 9, 0),
        datetime(2025, 3, 29, 9, 0),
    ]


def test_biweekly_steps_fourteen_days():
    start = datetime(2025, 1, 4, 7, 30)

    dates = expand_recurrence(start, "biweekly", datetime(2025, 2, 14))

    assert dates == [datetime(2025, 1, 4, 7, 30), datetime(2025, 1, 18, 7, 30), datetime(2025, 2, 1, 7, 30)]


def test_monthly_clamps_to_month_end_without_drifting():
    start = datetime(2025, 1, 31, 8, 0)

    dates = expand_recurrence(start, "MONTHLY", date(2025, 5, 31))

    assert [d.day for d in dates] == [31, 28, 31, 30, 31]
    assert [d.month for d in dates] == [1, 2, 3, 4, 5]


def test_monthly_handles_leap_years():
    dates = expand_recurrence(datetime(2024, 1, 29, 8, 0), "MONTHLY", date(2024, 3, 1))

    assert dates == [datetime(2024, 1, 29, 8, 0), datetime(2024, 2, 29, 8, 0)]


def test_occurrences_are_capped():
    start = datetime(2025, 1, 1, 8, 0)

    dates = expand_recurrence(start, "WEEKLY", date(2030, 1, 1))

    assert len(dates) == MAX_OCCURRENCES
    assert dates[0] == start


def test_end_before_start_is_rejected():
    with pytest.raises(ValueError):
        expand_recurrence(datetime(2025, 6, 1, 8, 0), "WEEKLY", date(2025, 5, 1))


def test_unknown_pattern_is_rejected():
    with pytest.raises(ValueError):
        expand_recurrence(datetime(2025, 6, 1, 8, 0), "DAILY", date(2025, 7, 1))
