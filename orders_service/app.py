import logging
import os

from flask import Flask

from orders_service.cli import register_cli
from orders_service.config import Config
from orders_service.db import db
from orders_service.errors import OrderServiceError
from orders_service.extensions import init_extensions
from orders_service.utils.responses import err


def create_app(overrides: dict | None = None) -> Flask:
    app = Flask(__name__)
    app.config.from_object(Config)
    if overrides:
        app.config.update(overrides)
    app.config["JSON_AS_ASCII"] = False

    logging.basicConfig(level=app.config.get("LOG_LEVEL", "INFO"))

    if app.config.get("DB_ISOLATION_LEVEL"):
        app.config["SQLALCHEMY_ENGINE_OPTIONS"] = {"isolation_level": app.config["DB_ISOLATION_LEVEL"]}

    db.init_app(app)
    init_extensions(app)

    @app.errorhandler(OrderServiceError)
    def handle_service_error(e: OrderServiceError):
        if e.status_code >= 500:
            app.logger.error("%s: %s", e.code, e.message)
        return err(e.code, e.status_code, message=e.message, **e.details)

    from orders_service.blueprints.gateway import bp as gateway_bp
    from orders_service.routes import bp as orders_bp

    app.register_blueprint(orders_bp)
    app.register_blueprint(gateway_bp)
    register_cli(app)

    with app.app_context():
        from orders_service import models  # noqa: F401

        db.create_all()

    @app.get("/")
    def index():
        return {"service": "orders", "status": "ok", "prefix": "/orders"}

    @app.get("/health")
    def health():
        return {"service": "orders", "status": "ok"}

    return app


if __name__ == "__main__":
    create_app().run(host="0.0.0.0", port=int(os.getenv("PORT", "5006")), debug=True)
