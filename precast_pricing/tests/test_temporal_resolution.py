from datetime import date, datetime
from operator import attrgetter
from types import SimpleNamespace

import pytest

from precast_pricing.services.temporal_resolution import (
    add_months,
    last_day_of_previous_month,
    month_end,
    month_start,
    previous_month,
    resolve_as_of,
    same_day_previous_month,
    to_date,
)


def row(name, effective, until=None, created=datetime(2024, 1, 1)):
    return SimpleNamespace(name=name, effective_date=effective, valid_until=until, created_at=created)


def windowed(rows, as_of):
    return resolve_as_of(rows, as_of, valid_until=attrgetter("valid_until"))


def test_month_helpers():
    assert month_start(date(2024, 2, 17)) == date(2024, 2, 1)
    assert month_end(date(2024, 2, 17)) == date(2024, 2, 29)
    assert month_end(date(2023, 2, 1)) == date(2023, 2, 28)
    assert previous_month(date(2024, 1, 15)) == date(2023, 12, 1)
    assert last_day_of_previous_month(date(2024, 3, 10)) == date(2024, 2, 29)


def test_same_day_previous_month_clamps_to_month_end():
    assert same_day_previous_month(date(2024, 3, 31)) == date(2024, 2, 29)
    assert same_day_previous_month(date(2024, 1, 15)) == date(2023, 12, 15)
    assert add_months(date(2024, 1, 31), 1) == date(2024, 2, 29)


def test_to_date_accepts_strings_and_datetimes():
    assert to_date("2024-05-06") == date(2024, 5, 6)
    assert to_date("2024-05-06T10:00:00") == date(2024, 5, 6)
    assert to_date(datetime(2024, 5, 6, 23, 59)) == date(2024, 5, 6)
    with pytest.raises(ValueError):
        to_date("06/05/2024")
    with pytest.raises(TypeError):
        to_date(20240506)


def test_latest_effective_row_wins():
    rows = [row("jan", date(2024, 1, 1)), row("mar", date(2024, 3, 1)), row("feb", date(2024, 2, 1))]
    assert resolve_as_of(rows, date(2024, 2, 20)).name == "feb"
    assert resolve_as_of(rows, date(2024, 3, 1)).name == "mar"


def test_nothing_effective_yet_returns_none():
    assert resolve_as_of([row("future", date(2024, 6, 1))], date(2024, 5, 31)) is None
    assert resolve_as_of([], date(2024, 5, 31)) is None


def test_valid_until_is_inclusive():
    rows = [row("closed", date(2024, 1, 1), until=date(2024, 1, 31))]
    assert windowed(rows, date(2024, 1, 31)).name == "closed"
    assert windowed(rows, date(2024, 2, 1)) is None


def test_open_ended_ledger_ignores_valid_until():
    rows = [row("closed", date(2024, 1, 1), until=date(2024, 1, 31))]
    assert resolve_as_of(rows, date(2024, 2, 1)).name == "closed"


def test_tie_broken_by_newest_created_row():
    rows = [
        row("old", date(2024, 1, 1), created=datetime(2024, 1, 1, 8, 0)),
        row("new", date(2024, 1, 1), created=datetime(2024, 1, 1, 9, 0)),
        row("older", date(2024, 1, 1), created=datetime(2023, 12, 31)),
    ]
    assert resolve_as_of(rows, date(2024, 1, 10)).name == "new"


def test_tie_break_mixes_naive_and_aware_timestamps():
    from datetime import timezone
    rows = [
        row("aware", date(2024, 1, 1), created=datetime(2024, 1, 1, 10, 0, tzinfo=timezone.utc)),
        row("naive", date(2024, 1, 1), created=datetime(2024, 1, 1, 9, 0)),
    ]
    assert resolve_as_of(rows, date(2024, 1, 2)).name == "aware"


def test_resolution_is_monotonic_between_changes():
    rows = [row("a", date(2024, 1, 1)), row("b", date(2024, 4, 1), until=date(2024, 6, 30))]
    picks = {windowed(rows, date(2024, 4, d)).name for d in range(1, 31)}
    assert picks == {"b"}
    assert windowed(rows, date(2024, 3, 31)).name == "a"


def test_resolution_does_not_mutate_rows():
    rows = [row("a", date(2024, 1, 1)), row("b", date(2024, 2, 1))]
    snapshot = [vars(r).copy() for r in rows]
    resolve_as_of(rows, date(2024, 2, 2))
    assert [vars(r) for r in rows] == snapshot


def test_custom_accessors():
    rows = [SimpleNamespace(valid_from=date(2024, 1, 1), created_at=None, v=1)]
    found = resolve_as_of(rows, date(2024, 1, 1), effective=attrgetter("valid_from"))
    assert found.v == 1
