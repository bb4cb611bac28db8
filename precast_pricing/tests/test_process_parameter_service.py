from datetime import date
from decimal import Decimal

import pytest
from sqlalchemy import select, func

from precast_pricing.errors import ConflictError, ErrorCode, NotFoundError, ValidationError
from precast_pricing.models.process_parameters import ProcessParameters


def test_get_parameters_exact_month(services, seed):
    zone = seed.zone()
    seed.parameters(zone, date(2024, 2, 1), energy_per_ton=60)
    resolved = services.parameters.get_parameters(zone.id, date(2024, 2, 20))
    assert not resolved.fallback
    assert resolved.month_date == date(2024, 2, 1)
    assert resolved.row.energy_per_ton == Decimal("60")


def test_get_parameters_falls_back_to_previous_month(services, seed):
    zone = seed.zone()
    seed.parameters(zone, date(2024, 1, 1), energy_per_ton=50)
    resolved = services.parameters.get_parameters(zone.id, date(2024, 2, 1))
    assert resolved.fallback
    assert resolved.month_date == date(2024, 1, 1)
    assert resolved.row.energy_per_ton == Decimal("50")


def test_fallback_only_reaches_one_month_back(services, seed):
    zone = seed.zone()
    seed.parameters(zone, date(2023, 12, 1), energy_per_ton=40)
    assert services.parameters.resolve_for_date(zone.id, date(2024, 2, 10)) is None
    with pytest.raises(NotFoundError):
        services.parameters.get_parameters(zone.id, date(2024, 2, 1))


def test_parameters_of_other_zone_are_ignored(services, seed):
    z1, z2 = seed.zone("Z1"), seed.zone("Z2")
    seed.parameters(z2, date(2024, 2, 1), energy_per_ton=10)
    assert services.parameters.resolve_for_date(z1.id, date(2024, 2, 10)) is None


def test_upsert_inserts_then_updates_single_row(services, db, seed):
    zone = seed.zone()
    first = services.parameters.upsert_parameters(
        zone_id=zone.id, month_date=date(2024, 3, 15),
        fields={"energy_per_ton": "50", "labor_rate_per_hour": 20}, operator_id="u1",
    )
    assert first.month_date == date(2024, 3, 1)
    assert first.hours_per_ton_steel == Decimal("0")

    second = services.parameters.upsert_parameters(
        zone_id=zone.id, month_date=date(2024, 3, 1),
        fields={"energy_per_ton": 55}, operator_id="u1",
    )
    assert second.id == first.id
    assert second.energy_per_ton == Decimal("55")
    # 未提交的字段保留原值
    assert second.labor_rate_per_hour == Decimal("20")

    count = db.execute(
        select(func.count()).select_from(ProcessParameters).where(ProcessParameters.zone_id == zone.id)
    ).scalar_one()
    assert count == 1


def test_upsert_rejects_negative_and_unknown_fields(services, seed):
    zone = seed.zone()
    with pytest.raises(ValidationError) as exc:
        services.parameters.upsert_parameters(
            zone_id=zone.id, month_date=date(2024, 3, 1), fields={"energy_per_ton": -1}, operator_id="u1"
        )
    assert exc.value.code == ErrorCode.INVALID_PARAMETERS
    assert "energy_per_ton" in exc.value.details["fields"]

    with pytest.raises(ValidationError):
        services.parameters.upsert_parameters(
            zone_id=zone.id, month_date=date(2024, 3, 1), fields={"bonus": 1}, operator_id="u1"
        )


def test_upsert_in_closed_period(services, seed):
    zone = seed.zone()
    seed.parameters(zone, date(2024, 3, 1), energy_per_ton=50)
    services.month_close.close_month(zone_id=zone.id, month_date=date(2024, 3, 1), operator_id="u1")
    with pytest.raises(ConflictError) as exc:
        services.parameters.upsert_parameters(
            zone_id=zone.id, month_date=date(2024, 3, 1), fields={"energy_per_ton": 70}, operator_id="u1"
        )
    assert exc.value.code == ErrorCode.PERIOD_CLOSED


def test_copy_from_previous_month(services, seed):
    zone = seed.zone()
    seed.parameters(zone, date(2024, 1, 1), energy_per_ton=50, profit_per_ton=12)
    copied = services.parameters.copy_from_previous_month(
        zone_id=zone.id, target_month=date(2024, 2, 1), operator_id="u1"
    )
    assert copied.month_date == date(2024, 2, 1)
    assert copied.energy_per_ton == Decimal("50")
    assert copied.profit_per_ton == Decimal("12")

    with pytest.raises(NotFoundError):
        services.parameters.copy_from_previous_month(
            zone_id=zone.id, target_month=date(2024, 6, 1), operator_id="u1"
        )


def test_compare_zones(services, seed):
    z1 = seed.zone("Z1", display_order=1)
    z2 = seed.zone("Z2", display_order=2)
    seed.parameters(z1, date(2024, 1, 1), energy_per_ton=50)
    seed.parameters(z1, date(2024, 2, 1), energy_per_ton=55)
    seed.parameters(z2, date(2024, 2, 1), energy_per_ton=40)

    rows = services.parameters.compare_zones(date(2024, 2, 1))
    assert [r["zone_code"] for r in rows] == ["Z1", "Z2"]
    assert rows[0]["delta_percent"]["energy_per_ton"] == Decimal("10")
    # 上月为 0 的字段不算百分比
    assert rows[0]["delta_percent"]["profit_per_ton"] is None
    assert rows[1]["previous"] is None
    assert rows[1]["current"]["energy_per_ton"] == Decimal("40")
