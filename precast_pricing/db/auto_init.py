"""
数据库自动初始化检查模块
Called at startup: creates the schema when the ledger tables are missing.
"""
from sqlalchemy import inspect
from precast_pricing.db.session import get_engine
from precast_pricing.db.init_db import init_db
from precast_pricing.logger import get_logger

logger = get_logger(__name__)

REQUIRED_TABLES = (
    "piece_material_formulas",
    "material_zone_prices",
    "process_parameters",
    "piece_zone_prices",
    "month_closures",
)


def check_tables_exist() -> bool:
    """检查数据库表是否存在"""
    engine = get_engine()
    tables = set(inspect(engine).get_table_names())
    return all(t in tables for t in REQUIRED_TABLES)


def auto_init():
    logger.info("Checking database schema...")

    if check_tables_exist():
        logger.info("Database schema already present")
        return

    logger.info("Ledger tables missing, creating schema")
    try:
        init_db()
    except Exception:
        logger.exception("Schema creation failed")
        raise
    logger.info("Database schema created")


if __name__ == "__main__":
    auto_init()
