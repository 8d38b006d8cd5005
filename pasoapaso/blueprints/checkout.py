# pasoapaso/blueprints/checkout.py
from flask import Blueprint, current_app, jsonify, request
import logging

from pasoapaso.errors import PaymentCoreError, ValidationError
from pasoapaso.services.payment_service import serialize_payment, CHECKOUT_FAILED_MESSAGE
from pasoapaso.utils.auth import current_actor, require_auth

logger = logging.getLogger(__name__)

bp = Blueprint("checkout", __name__)


def _int_field(data, key):
    try:
        return int(data.get(key))
    except (TypeError, ValueError):
        raise ValidationError(f"Campo obligatorio inválido: {key}", field=key)


@bp.post("/create-payment")
@require_auth
def create_payment():
    """
    POST /api/checkout/create-payment
    Body: { gatewayId, orderId, customerEmail?, customerName? }
    """
    data = request.get_json(silent=True) or {}
    gateway_id = _int_field(data, "gatewayId")
    order_id = _int_field(data, "orderId")
    actor = current_actor()

    try:
        result = current_app.extensions["payment_service"].create_checkout_payment(
            gateway_id=gateway_id,
            order_id=order_id,
            usuario_id=None if actor.is_staff else actor.id,
            customer_email=(data.get("customerEmail") or "").strip() or None,
            customer_name=(data.get("customerName") or "").strip() or None,
        )
    except PaymentCoreError:
        raise
    except Exception as e:
        logger.error(f"Erro ao criar pagamento do pedido {order_id}: {e}")
        return jsonify({"success": False, "error": CHECKOUT_FAILED_MESSAGE}), 500

    success = result.pop("success")
    error = result.pop("error", None)
    body = {"success": success, "data": result}
    if error:
        body["error"] = error
    return jsonify(body)


@bp.post("/create-order")
@require_auth
def create_order():
    """
    POST /api/checkout/create-order
    Body: { gatewayId, items: [{productId, nombre?, cantidad, talle?, color?,
            categoriaId?, precioUnitario}], fulfillmentType?, direccionEnvio?,
            shippingNotes?, customerEmail?, customerName? }
    Cria o pedido do usuário autenticado e inicia o pagamento.
    """
    data = request.get_json(silent=True) or {}
    gateway_id = _int_field(data, "gatewayId")
    actor = current_actor()

    try:
        result = current_app.extensions["payment_service"].create_order_and_payment(
            gateway_id=gateway_id,
            usuario_id=actor.id,
            items=data.get("items"),
            fulfillment_type=data.get("fulfillmentType"),
            direccion_envio=data.get("direccionEnvio"),
            shipping_notes=data.get("shippingNotes"),
            customer_email=(data.get("customerEmail") or "").strip() or None,
            customer_name=(data.get("customerName") or "").strip() or None,
        )
    except PaymentCoreError:
        raise
    except Exception as e:
        logger.error(f"Erro ao criar pedido para {actor.id}: {e}")
        return jsonify({"success": False, "error": CHECKOUT_FAILED_MESSAGE}), 500

    success = result.pop("success")
    error = result.pop("error", None)
    body = {"success": success, "data": result}
    if error:
        body["error"] = error
    return jsonify(body), 201


@bp.get("/payment/<int:payment_id>")
@require_auth
def get_payment_status(payment_id: int):
    actor = current_actor()
    refresh = request.args.get("refresh") in ("1", "true")
    payment = current_app.extensions["payment_service"].get_payment(
        payment_id,
        usuario_id=None if actor.is_staff else actor.id,
        refresh=refresh,
    )
    return jsonify({"success": True, "data": serialize_payment(payment)})
