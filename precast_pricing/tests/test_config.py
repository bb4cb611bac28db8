import pytest
from pydantic import ValidationError as PydanticValidationError

from precast_pricing.config import PricingPolicy, merge_with_defaults
from precast_pricing.errors import ValidationError


def test_merge_returns_new_value_and_keeps_defaults():
    defaults = PricingPolicy()
    merged = merge_with_defaults({"include_profit": False}, defaults)
    assert merged is not defaults
    assert merged.include_profit is False
    assert defaults.include_profit is True
    assert merged.include_engineering is True


def test_merge_without_overrides_returns_defaults():
    defaults = PricingPolicy(money_places=2)
    assert merge_with_defaults(None, defaults) is defaults
    assert merge_with_defaults({}, defaults) is defaults


def test_merge_ignores_unknown_and_null_keys():
    merged = merge_with_defaults({"colour": "red", "include_profit": None}, PricingPolicy())
    assert merged == PricingPolicy()


def test_merge_rejects_bad_values():
    with pytest.raises(PydanticValidationError):
        merge_with_defaults({"money_places": "many"}, PricingPolicy())


def test_policy_is_immutable():
    policy = PricingPolicy()
    with pytest.raises(PydanticValidationError):
        policy.include_profit = False


def test_system_config_service_round_trip(services):
    assert services.system_config.get_pricing_policy() == services.system_config.defaults

    policy = services.system_config.update_pricing_policy(
        overrides={"include_engineering": False}, operator_id="u1"
    )
    assert policy.include_engineering is False

    policy = services.system_config.update_pricing_policy(overrides={"money_places": 2}, operator_id="u1")
    # 之前保存的覆盖项仍然有效
    assert policy.include_engineering is False
    assert policy.money_places == 2
    assert services.system_config.get_pricing_policy() == policy


def test_system_config_rejects_unknown_keys(services):
    with pytest.raises(ValidationError):
        services.system_config.update_pricing_policy(overrides={"discount": 5}, operator_id="u1")


def test_logger_writes_under_configured_log_dir():
    import os
    from logging.handlers import RotatingFileHandler

    from precast_pricing.config import load_settings
    from precast_pricing.logger import get_logger

    logger = get_logger("precast_pricing.tests.log_dir")
    files = [h.baseFilename for h in logger.handlers if isinstance(h, RotatingFileHandler)]
    assert len(files) == 1
    assert os.path.dirname(files[0]) == os.path.abspath(load_settings().log_dir)
