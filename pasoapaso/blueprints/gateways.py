# pasoapaso/blueprints/gateways.py
from flask import Blueprint, current_app, jsonify, request
import logging

from pasoapaso.services import gateway_service
from pasoapaso.utils.auth import require_staff

logger = logging.getLogger(__name__)

bp = Blueprint("gateways", __name__)


def _body():
    data = request.get_json(silent=True)
    return data if isinstance(data, dict) else {}


@bp.get("/")
@require_staff
def list_gateways():
    active_only = request.args.get("active") in ("1", "true")
    return jsonify({
        "success": True,
        "gateways": gateway_service.list_gateways(active_only=active_only),
        "adapters": current_app.extensions["payment_gateways"].list_adapters(),
    })


@bp.post("/")
@require_staff
def create_gateway():
    """
    POST /api/payment-gateways/
    Body: { name, provider, mode?, config?, feesFixed?, feesPercent?, priority?, active? }
    """
    gateway = gateway_service.create_gateway(_body())
    return jsonify({"success": True, "gateway": gateway_service.serialize_gateway(gateway)}), 201


@bp.patch("/<int:gateway_id>")
@require_staff
def update_gateway(gateway_id: int):
    gateway = gateway_service.update_gateway(gateway_id, _body())
    return jsonify({"success": True, "gateway": gateway_service.serialize_gateway(gateway)})


@bp.delete("/<int:gateway_id>")
@require_staff
def delete_gateway(gateway_id: int):
    gateway_service.delete_gateway(gateway_id)
    return jsonify({"success": True})


@bp.post("/<int:gateway_id>/test")
@require_staff
def test_gateway(gateway_id: int):
    """Testa a conexão de uma pasarela específica."""
    result = current_app.extensions["payment_service"].test_gateway_connection(gateway_id)
    return jsonify({
        "success": True,
        "gateway": gateway_id,
        "working": result["success"],
        "message": result["message"],
    })


@bp.post("/<int:gateway_id>/rules")
@require_staff
def create_rule(gateway_id: int):
    """
    POST /api/payment-gateways/<id>/rules
    Body: { action: DISCOUNT|CHARGE, scopeType?: PRODUCT|CATEGORY|GLOBAL, scopeId?,
            amount? (centavos) | percent?, priority?, description?, active? }
    """
    rule = gateway_service.create_rule(gateway_id, _body())
    return jsonify({"success": True, "rule": gateway_service.serialize_rule(rule)}), 201


@bp.patch("/rules/<int:rule_id>")
@require_staff
def update_rule(rule_id: int):
    rule = gateway_service.update_rule(rule_id, _body())
    return jsonify({"success": True, "rule": gateway_service.serialize_rule(rule)})


@bp.delete("/rules/<int:rule_id>")
@require_staff
def delete_rule(rule_id: int):
    gateway_service.delete_rule(rule_id)
    return jsonify({"success": True})
