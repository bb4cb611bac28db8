# run.py
"""
标准 Flask 服务启动脚本（开发者 / 运维 / CLI 用）
仅用于本地 / 内网启动；生产环境用 WSGI server 加载 precast_pricing.app_factory:create_app
"""
import os

from precast_pricing.app_factory import create_app
from precast_pricing.config import load_settings
from precast_pricing.db.auto_init import auto_init
from precast_pricing.logger import get_logger

logger = get_logger("run")


def main():
    # 1️启动前初始化数据库
    auto_init()

    # 2️创建 Flask app
    app = create_app()
    logger.info("Database: %s", load_settings().database_url)
    logger.debug("Routes:\n%s", app.url_map)

    # 3️启动参数
    host = os.getenv("HOST", "0.0.0.0")
    port = int(os.getenv("PORT", 5000))
    debug = os.getenv("FLASK_DEBUG", "0") == "1"

    app.run(host=host, port=port, debug=debug, use_reloader=False)


if __name__ == "__main__":
    main()
