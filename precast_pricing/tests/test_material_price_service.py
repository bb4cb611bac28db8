from datetime import date, datetime
from decimal import Decimal
from io import StringIO

import pandas as pd
import pytest
from sqlalchemy import select, func

from precast_pricing.errors import ConflictError, ErrorCode, ValidationError
from precast_pricing.models.material_zone_price import MaterialZonePrice
from precast_pricing.services.query_spec import MaterialPriceQuery


def test_resolve_price_inside_window(services, example):
    zone, a = example["zone"], example["a"]
    assert services.material_prices.resolve_price(a.id, zone.id, date(2024, 1, 15)).price == Decimal("10")
    assert services.material_prices.resolve_price(a.id, zone.id, date(2023, 12, 31)) is None


def test_set_price_closes_previous_window(services, db, example):
    zone, a = example["zone"], example["a"]
    new = services.material_prices.set_price(
        material_id=a.id, zone_id=zone.id, price="12.50", valid_from=date(2024, 3, 1), operator_id="u1"
    )
    old = db.execute(
        select(MaterialZonePrice).where(
            MaterialZonePrice.material_id == a.id, MaterialZonePrice.valid_from == date(2024, 1, 1)
        )
    ).scalar_one()
    assert old.valid_until == date(2024, 2, 29)
    assert old.is_active
    assert new.valid_until is None

    mps = services.material_prices
    assert mps.resolve_price(a.id, zone.id, date(2024, 2, 29)).price == Decimal("10")
    assert mps.resolve_price(a.id, zone.id, date(2024, 3, 1)).price == Decimal("12.50")


def test_set_price_same_day_deactivates_previous(services, db, example):
    zone, a = example["zone"], example["a"]
    services.material_prices.set_price(
        material_id=a.id, zone_id=zone.id, price="11", valid_from=date(2024, 1, 1), operator_id="u1"
    )
    active = db.execute(
        select(MaterialZonePrice).where(
            MaterialZonePrice.material_id == a.id, MaterialZonePrice.is_active.is_(True)
        )
    ).scalars().all()
    assert [r.price for r in active] == [Decimal("11")]
    assert services.material_prices.resolve_price(a.id, zone.id, date(2024, 1, 2)).price == Decimal("11")


def test_set_price_before_existing_row_is_bounded(services, example):
    zone, a = example["zone"], example["a"]
    earlier = services.material_prices.set_price(
        material_id=a.id, zone_id=zone.id, price="9", valid_from=date(2023, 11, 1), operator_id="u1"
    )
    assert earlier.valid_until == date(2023, 12, 31)
    assert services.material_prices.resolve_price(a.id, zone.id, date(2024, 1, 5)).price == Decimal("10")


def test_set_price_rejects_negative(services, example):
    with pytest.raises(ValidationError) as exc:
        services.material_prices.set_price(
            material_id=example["a"].id, zone_id=example["zone"].id, price="-1",
            valid_from=date(2024, 2, 1), operator_id="u1",
        )
    assert exc.value.code == ErrorCode.INVALID_PRICE


def test_set_price_in_closed_month(services, seed, example):
    seed.parameters(example["zone"], date(2024, 2, 1), energy_per_ton=1)
    services.month_close.close_month(zone_id=example["zone"].id, month_date=date(2024, 2, 1), operator_id="u1")
    with pytest.raises(ConflictError) as exc:
        services.material_prices.set_price(
            material_id=example["a"].id, zone_id=example["zone"].id, price="1",
            valid_from=date(2024, 2, 15), operator_id="u1",
        )
    assert exc.value.code == ErrorCode.PERIOD_CLOSED


def test_tie_on_valid_from_newest_created_wins(services, seed, example):
    zone, b = example["zone"], example["b"]
    dup = seed.price(b, zone, "7.00", date(2024, 1, 1))
    dup.created_at = datetime(2030, 1, 1)
    services.material_prices.db.commit()
    assert services.material_prices.resolve_price(b.id, zone.id, date(2024, 1, 10)).price == Decimal("7")


def test_deactivate_price(services, example):
    row = services.material_prices.resolve_price(example["a"].id, example["zone"].id, date(2024, 1, 5))
    services.material_prices.deactivate_price(price_id=row.id, operator_id="u1")
    assert services.material_prices.resolve_price(example["a"].id, example["zone"].id, date(2024, 1, 5)) is None


def test_price_history_keeps_every_row(services, example):
    zone, a = example["zone"], example["a"]
    services.material_prices.set_price(
        material_id=a.id, zone_id=zone.id, price="12", valid_from=date(2024, 2, 1), operator_id="u1"
    )
    history = services.material_prices.get_price_history(a.id, zone_id=zone.id)
    assert [r.valid_from for r in history] == [date(2024, 2, 1), date(2024, 1, 1)]


def test_list_current_prices_with_previous_month_delta(services, seed, example):
    zone, a = example["zone"], example["a"]
    seed.material("NOPRICE", category="cement")
    services.material_prices.set_price(
        material_id=a.id, zone_id=zone.id, price="12", valid_from=date(2024, 2, 1), operator_id="u1"
    )

    rows = services.material_prices.list_current_prices(MaterialPriceQuery(zone_id=zone.id, as_of=date(2024, 2, 10)))
    by_code = {r["material_code"]: r for r in rows}
    assert by_code["A"]["price"] == Decimal("12")
    assert by_code["A"]["previous_price"] == Decimal("10")
    assert by_code["A"]["delta_percent"] == Decimal("20")
    assert by_code["B"]["delta_percent"] == Decimal("0")
    assert by_code["NOPRICE"]["price"] is None


def test_list_current_prices_filters(services, example):
    zone = example["zone"]
    only_steel = services.material_prices.list_current_prices(
        MaterialPriceQuery(zone_id=zone.id, as_of=date(2024, 1, 10), category="steel")
    )
    assert [r["material_code"] for r in only_steel] == ["B"]

    search = services.material_prices.list_current_prices(
        MaterialPriceQuery(zone_id=zone.id, as_of=date(2024, 1, 10), search="material a")
    )
    assert [r["material_code"] for r in search] == ["A"]


def test_import_prices_all_or_nothing(services, db, example):
    zone = example["zone"]
    before = db.execute(select(func.count()).select_from(MaterialZonePrice)).scalar_one()

    summary = services.material_prices.import_prices(
        zone_id=zone.id,
        month_date=date(2024, 2, 17),
        rows=[
            {"material_code": "A", "price": "11"},
            {"material_code": "UNKNOWN", "price": "3"},
            {"material_code": "B", "price": "abc"},
        ],
        operator_id="u1",
    )
    assert not summary.applied
    assert summary.ok_count == 1
    assert summary.error_count == 2
    assert db.execute(select(func.count()).select_from(MaterialZonePrice)).scalar_one() == before


def test_import_prices_applies_from_month_start(services, example):
    zone = example["zone"]
    summary = services.material_prices.import_prices(
        zone_id=zone.id,
        month_date=date(2024, 2, 17),
        rows=[{"material_code": "A", "price": "11"}, {"material_id": example["b"].id, "price": 6}],
        operator_id="u1",
    )
    assert summary.applied
    assert summary.month_date == date(2024, 2, 1)
    mps = services.material_prices
    assert mps.resolve_price(example["a"].id, zone.id, date(2024, 2, 1)).price == Decimal("11")
    assert mps.resolve_price(example["b"].id, zone.id, date(2024, 2, 1)).price == Decimal("6")
    assert mps.resolve_price(example["a"].id, zone.id, date(2024, 1, 31)).price == Decimal("10")


def test_import_rejects_duplicate_material_rows(services, example):
    summary = services.material_prices.import_prices(
        zone_id=example["zone"].id,
        month_date=date(2024, 2, 1),
        rows=[{"material_code": "A", "price": "11"}, {"material_code": "A", "price": "12"}],
        operator_id="u1",
    )
    assert not summary.applied
    assert "more than once" in summary.rows[1].message


def test_parse_price_csv(services):
    rows = services.material_prices.parse_price_csv("Material_Code,Price\nA,11.5\nB,6\n")
    assert rows == [{"material_code": "A", "price": "11.5"}, {"material_code": "B", "price": "6"}]

    with pytest.raises(ValidationError):
        services.material_prices.parse_price_csv("code,amount\nA,1\n")


def test_export_prices_csv(services, example):
    csv_text = services.material_prices.export_prices_csv(example["zone"].id, date(2024, 1, 20))
    df = pd.read_csv(StringIO(csv_text), dtype=str)
    assert list(df["material_code"]) == ["A", "B"]
    assert [float(p) for p in df["price"]] == [10.0, 5.0]


def close_february(services, seed, zone):
    seed.parameters(zone, date(2024, 2, 1), energy_per_ton=1)
    services.month_close.close_month(zone_id=zone.id, month_date=date(2024, 2, 1), operator_id="u1")


def test_open_ended_price_cannot_run_into_closed_month(services, seed, example):
    zone, a = example["zone"], example["a"]
    close_february(services, seed, zone)
    with pytest.raises(ConflictError) as exc:
        services.material_prices.set_price(
            material_id=a.id, zone_id=zone.id, price="99", valid_from=date(2024, 1, 20), operator_id="u1"
        )
    assert exc.value.code == ErrorCode.PERIOD_CLOSED
    assert exc.value.details["month_date"] == "2024-02-01"
    assert services.material_prices.resolve_price(a.id, zone.id, date(2024, 2, 10)).price == Decimal("10")
    assert services.material_prices.resolve_price(a.id, zone.id, date(2024, 1, 25)).price == Decimal("10")


def test_price_bounded_before_closed_month_is_allowed(services, seed, example):
    zone, a = example["zone"], example["a"]
    seed.price(a, zone, "12.00", date(2024, 2, 1))
    close_february(services, seed, zone)
    row = services.material_prices.set_price(
        material_id=a.id, zone_id=zone.id, price="11", valid_from=date(2024, 1, 20), operator_id="u1"
    )
    assert row.valid_until == date(2024, 1, 31)
    assert services.material_prices.resolve_price(a.id, zone.id, date(2024, 2, 10)).price == Decimal("12")


def test_deactivate_row_spanning_closed_month(services, seed, example):
    zone, a = example["zone"], example["a"]
    row = services.material_prices.resolve_price(a.id, zone.id, date(2024, 1, 5))
    close_february(services, seed, zone)
    with pytest.raises(ConflictError) as exc:
        services.material_prices.deactivate_price(price_id=row.id, operator_id="u1")
    assert exc.value.code == ErrorCode.PERIOD_CLOSED
    assert row.is_active


def test_import_cannot_run_into_closed_month(services, db, seed, example):
    zone = example["zone"]
    close_february(services, seed, zone)
    before = db.execute(select(func.count()).select_from(MaterialZonePrice)).scalar_one()
    with pytest.raises(ConflictError):
        services.material_prices.import_prices(
            zone_id=zone.id,
            month_date=date(2024, 1, 1),
            rows=[{"material_code": "A", "price": "11"}],
            operator_id="u1",
        )
    assert db.execute(select(func.count()).select_from(MaterialZonePrice)).scalar_one() == before
    assert services.material_prices.resolve_price(example["a"].id, zone.id, date(2024, 2, 10)).price == Decimal("10")
