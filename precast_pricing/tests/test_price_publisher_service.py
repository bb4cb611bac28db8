from datetime import date
from decimal import Decimal

import pytest
from sqlalchemy import select, func

from precast_pricing.db.enums import AuditAction, AuditEntityType
from precast_pricing.errors import ConflictError, ErrorCode, ValidationError
from precast_pricing.models.audit_log import AuditLog
from precast_pricing.models.piece_zone_price import PieceZonePrice
from precast_pricing.services.price_line import ComputedPrice, SuppliedPrice


def publish(services, example, when, line, operator="u1"):
    return services.publisher.publish(
        piece_id=example["piece"].id,
        zone_id=example["zone"].id,
        effective_date=when,
        price_line=line,
        operator_id=operator,
    )


def count_rows(db, example):
    return db.execute(
        select(func.count()).select_from(PieceZonePrice).where(PieceZonePrice.piece_id == example["piece"].id)
    ).scalar_one()


def test_publish_is_idempotent_per_date(services, db, example):
    first = publish(services, example, date(2024, 1, 15), SuppliedPrice(amount=Decimal("100")))
    second = publish(services, example, date(2024, 1, 15), SuppliedPrice(amount=Decimal("100")))
    assert first.created is True
    assert second.created is False
    assert count_rows(db, example) == 1
    assert second.price.final_price == Decimal("100")


def test_republish_overwrites_and_new_date_appends(services, db, example):
    publish(services, example, date(2024, 1, 15), SuppliedPrice(amount=Decimal("100")))
    over = publish(services, example, date(2024, 1, 15), SuppliedPrice(amount=Decimal("120"), adjustment=Decimal("-5")))
    assert over.price.base_price == Decimal("120")
    assert over.price.final_price == Decimal("115")

    publish(services, example, date(2024, 2, 1), SuppliedPrice(amount=Decimal("130")))
    assert count_rows(db, example) == 2

    db.flush()
    actions = db.execute(
        select(AuditLog.action).where(AuditLog.entity_type == AuditEntityType.PieceZonePrice)
    ).scalars().all()
    assert sorted(a.value for a in actions) == ["create", "create", "update"]


def test_publish_then_history_round_trip(services, example):
    publish(services, example, date(2024, 3, 1), SuppliedPrice(amount=Decimal("88.5")))
    history = services.history.get_history(example["piece"].id, zone_id=example["zone"].id)
    assert history[0].row.effective_date == date(2024, 3, 1)
    assert history[0].row.final_price == Decimal("88.5")
    resolved = services.history.resolve_price(example["piece"].id, example["zone"].id, date(2024, 3, 1))
    assert resolved.final_price == Decimal("88.5")


def test_computed_price_uses_breakdown_total(services, example):
    result = publish(services, example, date(2024, 1, 15), ComputedPrice(adjustment=Decimal("3")))
    assert result.breakdown is not None
    assert result.price.base_price == Decimal("27")
    assert result.price.final_price == Decimal("30")


def test_computed_price_reuses_given_breakdown(services, example):
    breakdown = services.breakdown.calculate(
        piece_id=example["piece"].id, zone_id=example["zone"].id, as_of=date(2024, 1, 15)
    )
    result = publish(services, example, date(2024, 1, 15), ComputedPrice(breakdown=breakdown))
    assert result.breakdown is breakdown

    with pytest.raises(ValidationError):
        publish(services, example, date(2024, 1, 16), ComputedPrice(breakdown=breakdown))


def test_publish_blocked_by_missing_material_prices(services, seed, db, example):
    c = seed.material("C", name="Fibre")
    seed.line(example["piece"], c, 1)
    with pytest.raises(ValidationError) as exc:
        publish(services, example, date(2024, 3, 1), ComputedPrice())
    assert exc.value.code == ErrorCode.MISSING_MATERIAL_PRICES
    assert exc.value.details["missing_prices"] == [c.id]
    assert exc.value.details["materials"] == ["Fibre"]
    assert count_rows(db, example) == 0


def test_supplied_price_skips_completeness_check(services, seed, example):
    c = seed.material("C")
    seed.line(example["piece"], c, 1)
    result = publish(services, example, date(2024, 3, 1), SuppliedPrice(amount=Decimal("50")))
    assert result.price.final_price == Decimal("50")


def test_negative_price_rejected(services, example):
    with pytest.raises(ValidationError) as exc:
        publish(services, example, date(2024, 3, 1), SuppliedPrice(amount=Decimal("-1")))
    assert exc.value.code == ErrorCode.INVALID_PRICE

    with pytest.raises(ValidationError) as exc:
        publish(services, example, date(2024, 3, 1), SuppliedPrice(amount=Decimal("10"), adjustment=Decimal("-11")))
    assert exc.value.code == ErrorCode.INVALID_PRICE


def test_publish_in_closed_period(services, seed, example):
    seed.parameters(example["zone"], date(2024, 3, 1), energy_per_ton=10)
    services.month_close.close_month(zone_id=example["zone"].id, month_date=date(2024, 3, 1), operator_id="u1")
    with pytest.raises(ConflictError) as exc:
        publish(services, example, date(2024, 3, 20), SuppliedPrice(amount=Decimal("10")))
    assert exc.value.code == ErrorCode.PERIOD_CLOSED
    # 下个月不受影响
    publish(services, example, date(2024, 4, 1), SuppliedPrice(amount=Decimal("10")))


def test_created_by_records_operator(services, example):
    result = publish(services, example, date(2024, 1, 15), SuppliedPrice(amount=Decimal("10")), operator="alice")
    assert result.price.created_by == "alice"
    result = publish(services, example, date(2024, 1, 15), SuppliedPrice(amount=Decimal("11")), operator="bob")
    assert result.price.created_by == "bob"


def test_copy_zone_prices(services, seed, example):
    target = seed.zone("Z2")
    publish(services, example, date(2024, 1, 1), SuppliedPrice(amount=Decimal("100"), adjustment=Decimal("10")))

    copied = services.publisher.copy_zone_prices(
        source_zone_id=example["zone"].id,
        target_zone_id=target.id,
        effective_date=date(2024, 2, 1),
        adjustment_percentage=Decimal("10"),
        operator_id="u1",
    )
    assert len(copied) == 1
    assert copied[0].zone_id == target.id
    assert copied[0].effective_date == date(2024, 2, 1)
    assert copied[0].final_price == Decimal("121")

    with pytest.raises(ValidationError):
        services.publisher.copy_zone_prices(
            source_zone_id=target.id, target_zone_id=target.id,
            effective_date=date(2024, 2, 1), operator_id="u1",
        )


def test_publish_cannot_carry_into_later_closed_month(services, seed, example):
    publish(services, example, date(2024, 1, 1), SuppliedPrice(amount=Decimal("100")))
    seed.parameters(example["zone"], date(2024, 2, 1), energy_per_ton=1)
    services.month_close.close_month(zone_id=example["zone"].id, month_date=date(2024, 2, 1), operator_id="u1")

    with pytest.raises(ConflictError) as exc:
        publish(services, example, date(2024, 1, 15), SuppliedPrice(amount=Decimal("90")))
    assert exc.value.code == ErrorCode.PERIOD_CLOSED
    assert services.history.resolve_price(example["piece"].id, example["zone"].id, date(2024, 2, 10)).final_price == Decimal("100")


def test_publish_ending_before_closed_month_is_allowed(services, seed, example):
    publish(services, example, date(2024, 1, 1), SuppliedPrice(amount=Decimal("100")))
    publish(services, example, date(2024, 2, 1), SuppliedPrice(amount=Decimal("110")))
    seed.parameters(example["zone"], date(2024, 2, 1), energy_per_ton=1)
    services.month_close.close_month(zone_id=example["zone"].id, month_date=date(2024, 2, 1), operator_id="u1")

    # 1 月 15 日的价格只到 1 月 31 日为止
    result = publish(services, example, date(2024, 1, 15), SuppliedPrice(amount=Decimal("105")))
    assert result.created
    assert services.history.resolve_price(example["piece"].id, example["zone"].id, date(2024, 2, 10)).final_price == Decimal("110")
