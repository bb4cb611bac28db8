'''Flask 装配层：注入配置、初始化 session、注册蓝图和 error handler，不负责启动服务。
Used by run.py, WSGI servers and the tests.'''
# precast_pricing/app_factory.py
import os
from typing import Any, Mapping, Optional

from flask import Flask, jsonify
from flask_session import Session
from pydantic import ValidationError as PydanticValidationError
from sqlalchemy.exc import SQLAlchemyError

from precast_pricing.config import load_settings
from precast_pricing.errors import PricingError, PersistenceError, ValidationError, ErrorCode
from precast_pricing.logger import get_logger

logger = get_logger(__name__)


def create_app(overrides: Optional[Mapping[str, Any]] = None) -> Flask:
    """应用工厂函数"""
    settings = load_settings()

    app = Flask(__name__)
    app.config["SECRET_KEY"] = settings.secret_key
    app.config["JSON_SORT_KEYS"] = False

    # Session 配置（身份由外部登录系统写入 session["user_id"]）
    app.config["SESSION_TYPE"] = settings.session_type
    app.config["SESSION_PERMANENT"] = False
    app.config["SESSION_USE_SIGNER"] = True
    app.config["SESSION_KEY_PREFIX"] = "pricing:"
    app.config["SESSION_FILE_DIR"] = settings.session_file_dir

    if overrides:
        app.config.update(overrides)

    if app.config["SESSION_TYPE"] == "filesystem":
        os.makedirs(app.config["SESSION_FILE_DIR"], exist_ok=True)
    Session(app)

    # 注册蓝图
    from precast_pricing.routes.pricing import pricing_bp
    from precast_pricing.routes.formulas import formula_bp
    from precast_pricing.routes.materials import material_bp
    from precast_pricing.routes.process_parameters import parameters_bp
    from precast_pricing.routes.periods import period_bp
    from precast_pricing.routes.system_config import system_config_bp

    app.register_blueprint(pricing_bp)
    app.register_blueprint(formula_bp)
    app.register_blueprint(material_bp)
    app.register_blueprint(parameters_bp)
    app.register_blueprint(period_bp)
    app.register_blueprint(system_config_bp)

    register_error_handlers(app)

    return app


def _error_response(error: PricingError):
    return jsonify({"success": False, "error": error.to_dict()}), error.http_status


def register_error_handlers(app: Flask) -> None:
    """注册错误处理器：所有错误统一返回 JSON"""

    @app.errorhandler(PricingError)
    def pricing_error(error: PricingError):
        if error.http_status >= 500:
            logger.error("%s: %s", error.code.value, error.message)
        else:
            logger.info("%s %s: %s", error.http_status, error.code.value, error.message)
        return _error_response(error)

    @app.errorhandler(PydanticValidationError)
    def payload_error(error: PydanticValidationError):
        details = {
            "errors": [
                {"field": ".".join(str(p) for p in err["loc"]), "message": err["msg"]}
                for err in error.errors()
            ]
        }
        return _error_response(
            ValidationError("Invalid request payload", code=ErrorCode.INVALID_PAYLOAD, details=details)
        )

    @app.errorhandler(SQLAlchemyError)
    def persistence_error(error: SQLAlchemyError):
        # 不重试，由调用方决定
        logger.exception("Database error: %s", error)
        return _error_response(PersistenceError("Database error"))

    @app.errorhandler(404)
    def not_found(error):
        return jsonify({
            "success": False,
            "error": {"code": ErrorCode.NOT_FOUND.value, "message": "Resource not found", "details": {}},
        }), 404

    @app.errorhandler(405)
    def method_not_allowed(error):
        return jsonify({
            "success": False,
            "error": {"code": ErrorCode.INVALID_PAYLOAD.value, "message": "Method not allowed", "details": {}},
        }), 405
