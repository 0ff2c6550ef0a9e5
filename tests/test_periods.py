from datetime import date

import pytest

from periods import month_period, resolve_period


def test_month_period_covers_whole_month() -> None:
    period = month_period(date(2024, 2, 10))
    assert (period.start, period.end) == (date(2024, 2, 1), date(2024, 2, 29))
    assert period.contains(date(2024, 2, 29))
    assert not period.contains(date(2024, 3, 1))


def test_resolve_named_periods() -> None:
    today = date(2026, 1, 15)

    assert resolve_period(None, None, None, today=today) is None
    assert resolve_period("all", None, None, today=today) is None

    this_month = resolve_period("this_month", None, None, today=today)
    assert (this_month.start, this_month.end) == (date(2026, 1, 1), date(2026, 1, 31))

    last_month = resolve_period("last_month", None, None, today=today)
    assert (last_month.start, last_month.end) == (date(2025, 12, 1), date(2025, 12, 31))

    this_year = resolve_period("this_year", None, None, today=today)
    assert (this_year.start, this_year.end) == (date(2026, 1, 1), date(2026, 12, 31))


def test_resolve_custom_period() -> None:
    period = resolve_period("custom", "2026-03-01", "2026-03-15")
    assert (period.start, period.end) == (date(2026, 3, 1), date(2026, 3, 15))


@pytest.mark.parametrize(
    "args",
    [
        ("custom", None, "2026-03-15"),
        ("custom", "2026-03-16", "2026-03-15"),
        ("fortnight", None, None),
    ],
)
def test_resolve_period_rejects_bad_input(args) -> None:
    with pytest.raises(ValueError):
        resolve_period(*args)
