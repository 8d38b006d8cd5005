import logging
import os

from flask import Flask, jsonify
from flask_cors import CORS

from pasoapaso import settings
from pasoapaso.errors import register_error_handlers
from pasoapaso.models import db
from pasoapaso.models.gateway_registry import build_default_registry
from pasoapaso.services.payment_service import PaymentService
from pasoapaso.services.webhook_service import WebhookService
from pasoapaso.utils.debug_routes import register_debug_routes

from pasoapaso.blueprints.checkout import bp as checkout_bp
from pasoapaso.blueprints.webhooks import bp as webhooks_bp
from pasoapaso.blueprints.order_tracking import bp as order_tracking_bp
from pasoapaso.blueprints.gateways import bp as gateways_bp


# esquemas aceitos para Postgres -> dialeto SQLAlchemy com o driver psycopg 3
PG_SCHEMES = ("postgres://", "postgresql://", "postgresql+psycopg://")
PG_DIALECT = "postgresql+psycopg://"


def database_uri(raw_url: str) -> str:
    """
    Monta a URI do SQLAlchemy a partir de DATABASE_URL.

    Vazia: SQLite em pasoapaso/database/app.db. Postgres em qualquer
    grafia vai para o driver psycopg e recebe DATABASE_SSLMODE quando a
    URL não traz sslmode próprio.
    """
    if not raw_url:
        return f"sqlite:///{os.path.join(os.path.dirname(__file__), 'database', 'app.db')}"
    scheme = next((s for s in PG_SCHEMES if raw_url.startswith(s)), None)
    if scheme is None:
        return raw_url
    url = PG_DIALECT + raw_url[len(scheme):]
    if settings.DATABASE_SSLMODE and "sslmode=" not in url:
        url += ("&" if "?" in url else "?") + f"sslmode={settings.DATABASE_SSLMODE}"
    return url


def create_app(test_config=None) -> Flask:
    logging.basicConfig(level=logging.INFO)

    app = Flask(__name__)
    app.config["SECRET_KEY"] = settings.SECRET_KEY
    app.config["SQLALCHEMY_DATABASE_URI"] = database_uri(os.getenv("DATABASE_URL", ""))
    app.config["SQLALCHEMY_TRACK_MODIFICATIONS"] = False
    if test_config:
        app.config.update(test_config)
    if app.config["SQLALCHEMY_DATABASE_URI"].startswith("postgresql"):
        app.config.setdefault("SQLALCHEMY_ENGINE_OPTIONS", {"pool_pre_ping": True})

    # CORS somente para os domínios da loja em /api/*
    CORS(app, resources={r"/api/*": {"origins": settings.CORS_ORIGINS}})

    db.init_app(app)
    with app.app_context():
        if app.config["SQLALCHEMY_DATABASE_URI"].startswith("sqlite:///"):
            os.makedirs(os.path.join(os.path.dirname(__file__), "database"), exist_ok=True)
        db.create_all()

    # Registro de adaptadores montado uma única vez, antes de aceitar tráfego
    registry = build_default_registry(
        app_url=settings.APP_URL,
        api_url=settings.API_URL,
        timeout=settings.PAYMENT_PROVIDER_TIMEOUT,
    )
    payment_service = PaymentService(registry)
    app.extensions["payment_gateways"] = registry
    app.extensions["payment_service"] = payment_service
    app.extensions["webhook_service"] = WebhookService(registry, payment_service)

    register_error_handlers(app)

    @app.route("/api/health", methods=["GET"])
    def health():
        return jsonify({"status": "healthy", "service": "Paso a Paso Backend"}), 200

    app.register_blueprint(checkout_bp, url_prefix="/api/checkout")
    app.register_blueprint(webhooks_bp, url_prefix="/api")
    app.register_blueprint(order_tracking_bp, url_prefix="/api/orders")
    app.register_blueprint(gateways_bp, url_prefix="/api/payment-gateways")

    register_debug_routes(app)
    return app
