# pasoapaso/utils/debug_routes.py
import os

from flask import current_app, jsonify

from pasoapaso import settings
from pasoapaso.models import PaymentGateway

SAFE_ENV_KEYS = {"RENDER", "PYTHON_VERSION", "APP_URL", "API_URL", "PAYMENT_CURRENCY"}
HTTP_METHODS = {"GET", "POST", "PUT", "DELETE", "PATCH"}


def register_debug_routes(app):
    """
    Endpoints de diagnóstico, só com DEBUG_ROUTES=1:
      /api/_routes          rotas registradas
      /api/_gateways        pasarelas do banco x adaptadores do registro
      /api/health/full      blueprints, adaptadores e env segura
    Nunca expõe a config (credenciais) das pasarelas.
    """
    if os.getenv("DEBUG_ROUTES") != "1":
        return

    @app.get("/api/_routes")
    def _routes():
        out = [
            {
                "rule": str(rule),
                "endpoint": rule.endpoint,
                "methods": sorted(rule.methods & HTTP_METHODS),
            }
            for rule in app.url_map.iter_rules()
        ]
        out.sort(key=lambda r: r["rule"])
        return jsonify(out)

    @app.get("/api/_gateways")
    def _gateways():
        registry = current_app.extensions["payment_gateways"]
        rows = PaymentGateway.query.order_by(PaymentGateway.priority.desc(), PaymentGateway.id).all()
        return jsonify([
            {
                "id": g.id,
                "provider": g.provider,
                "mode": g.mode,
                "active": g.active,
                "hasAdapter": registry.has_adapter(g.provider),
                "configKeys": sorted((g.config or {}).keys()),
            }
            for g in rows
        ])

    @app.get("/api/health/full")
    def _health_full():
        env = {k: os.getenv(k) for k in SAFE_ENV_KEYS if os.getenv(k)}
        return jsonify({
            "status": "ok",
            "blueprints": sorted(app.blueprints.keys()),
            "adapters": current_app.extensions["payment_gateways"].list_adapters(),
            "providerTimeout": settings.PAYMENT_PROVIDER_TIMEOUT,
            "env": env,
        })
