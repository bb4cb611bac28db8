from datetime import date

import pytest

from precast_pricing.errors import ConflictError, ErrorCode, NotFoundError, ValidationError


def test_close_month_requires_parameters(services, seed):
    zone = seed.zone()
    with pytest.raises(ValidationError) as exc:
        services.month_close.close_month(zone_id=zone.id, month_date=date(2024, 5, 1), operator_id="u1")
    assert exc.value.code == ErrorCode.PROCESS_PARAMETERS_MISSING


def test_close_month_once(services, seed):
    zone = seed.zone()
    seed.parameters(zone, date(2024, 5, 1), energy_per_ton=1)
    closure = services.month_close.close_month(zone_id=zone.id, month_date=date(2024, 5, 20), operator_id="u1")
    assert closure.month_date == date(2024, 5, 1)
    assert closure.closed_by == "u1"

    with pytest.raises(ConflictError) as exc:
        services.month_close.close_month(zone_id=zone.id, month_date=date(2024, 5, 1), operator_id="u2")
    assert exc.value.code == ErrorCode.PERIOD_ALREADY_CLOSED


def test_is_closed_and_assert_open(services, seed):
    zone = seed.zone()
    other = seed.zone("Z2")
    seed.parameters(zone, date(2024, 5, 1), energy_per_ton=1)
    services.month_close.close_month(zone_id=zone.id, month_date=date(2024, 5, 1), operator_id="u1")

    assert services.month_close.is_closed(zone.id, date(2024, 5, 31))
    assert not services.month_close.is_closed(zone.id, date(2024, 6, 1))
    assert not services.month_close.is_closed(other.id, date(2024, 5, 15))

    services.month_close.assert_open(zone.id, date(2024, 4, 30))
    with pytest.raises(ConflictError):
        services.month_close.assert_open(zone.id, date(2024, 5, 2))


def test_closing_does_not_change_lookups(services, seed):
    zone = seed.zone()
    seed.parameters(zone, date(2024, 5, 1), energy_per_ton=42)
    before = services.parameters.resolve_for_date(zone.id, date(2024, 5, 10))
    services.month_close.close_month(zone_id=zone.id, month_date=date(2024, 5, 1), operator_id="u1")
    after = services.parameters.resolve_for_date(zone.id, date(2024, 5, 10))
    assert before.row.id == after.row.id
    assert after.fallback is False


def test_list_closures(services, seed):
    zone = seed.zone()
    for month in (date(2024, 4, 1), date(2024, 5, 1)):
        seed.parameters(zone, month, energy_per_ton=1)
        services.month_close.close_month(zone_id=zone.id, month_date=month, operator_id="u1")
    assert [c.month_date for c in services.month_close.list_closures(zone.id)] == [
        date(2024, 5, 1), date(2024, 4, 1)
    ]


def test_close_month_unknown_zone(services):
    with pytest.raises(NotFoundError):
        services.month_close.close_month(zone_id="nope", month_date=date(2024, 5, 1), operator_id="u1")
