# precast_pricing/config.py
'''
进程级配置：启动时加载一次，之后只读。
Stored overrides (SystemConfig table) never mutate these values;
merge_with_defaults() always returns a new PricingPolicy.
'''
import os
from functools import lru_cache
from typing import Any, Mapping, Optional

from dotenv import load_dotenv
from pydantic import BaseModel, ConfigDict

BASE_DIR = os.path.dirname(os.path.dirname(os.path.abspath(__file__)))


class PricingPolicy(BaseModel):
    """
    Which per-ton terms take part in the process cost, plus output rounding.
    """
    model_config = ConfigDict(frozen=True, extra="ignore")

    include_factory_overhead: bool = True
    include_company_overhead: bool = True
    include_profit: bool = True
    include_engineering: bool = True
    money_places: int = 4


class Settings(BaseModel):
    model_config = ConfigDict(frozen=True)

    database_url: str
    secret_key: str
    log_dir: str = "logs"
    session_type: str = "filesystem"
    session_file_dir: str = os.path.join(BASE_DIR, "flask_session")
    history_default_limit: int = 50
    pricing_defaults: PricingPolicy = PricingPolicy()


def merge_with_defaults(
    stored: Optional[Mapping[str, Any]],
    defaults: PricingPolicy,
) -> PricingPolicy:
    '''
    Overlay stored overrides on the defaults and return a new policy.
    Unknown keys are ignored; a stored value that fails validation raises
    pydantic's ValidationError so bad config never reaches the calculator.

    :param stored: overrides read from persistence (may be None)
    :param defaults: the process-wide defaults
    :rtype: PricingPolicy
    '''
    if not stored:
        return defaults
    merged = defaults.model_dump()
    for key, value in stored.items():
        if key in merged and value is not None:
            merged[key] = value
    return PricingPolicy.model_validate(merged)


def _settings_from_env() -> Settings:
    load_dotenv()

    default_db_url = f"sqlite:///{os.path.join(BASE_DIR, 'pricing.db')}"
    secret_key = os.getenv("SECRET_KEY", "dev-secret-key-change-in-production")
    if isinstance(secret_key, bytes):
        secret_key = secret_key.decode("utf-8")

    return Settings(
        database_url=os.getenv("DATABASE_URL", default_db_url),
        secret_key=secret_key,
        log_dir=os.getenv("LOG_DIR", "logs"),
        session_type=os.getenv("SESSION_TYPE", "filesystem"),
        session_file_dir=os.getenv(
            "SESSION_FILE_DIR", os.path.join(BASE_DIR, "flask_session")
        ),
        history_default_limit=int(os.getenv("HISTORY_DEFAULT_LIMIT", 50)),
    )


@lru_cache(maxsize=1)
def load_settings() -> Settings:
    """Build the Settings value once per process."""
    return _settings_from_env()


__all__ = [
    "PricingPolicy",
    "Settings",
    "merge_with_defaults",
    "load_settings",
]
