# pasoapaso/blueprints/webhooks.py
"""
Webhooks públicos dos provedores. Sempre respondem 200 para não
provocar reenvios em massa; o resultado interno só vai para o log.
"""
from flask import Blueprint, current_app, jsonify, request
import logging

logger = logging.getLogger(__name__)

bp = Blueprint("webhooks", __name__)


def _payload():
    # Mercado Pago manda parte dos dados na query string (?type=payment&id=123)
    body = request.get_json(silent=True)
    if body is None:
        body = {}
    if isinstance(body, dict):
        merged = {k: v for k, v in request.args.items()}
        merged.update(body)
        return merged
    return body


def _ack(provider: str):
    payload = _payload()
    logger.info(f"Webhook recebido de {provider}: {payload}")
    try:
        outcome = current_app.extensions["webhook_service"].ingest(provider, payload)
        processed = outcome.success
    except Exception as e:
        logger.exception(f"Erro inesperado no webhook de {provider}: {e}")
        processed = False
    return jsonify({"ok": True, "processed": processed}), 200


@bp.post("/payments/webhook")
def mercadopago_webhook():
    return _ack("mercadopago")


@bp.post("/webhooks/<provider>")
def generic_webhook(provider: str):
    return _ack(provider)
