# pasoapaso/blueprints/order_tracking.py
from flask import Blueprint, jsonify, request

from pasoapaso.services import order_tracking_service as tracking
from pasoapaso.utils.auth import current_actor, require_auth, require_staff

bp = Blueprint("order_tracking", __name__)


@bp.patch("/<int:order_id>/estado-entrega")
@require_staff
def actualizar_estado_entrega(order_id: int):
    """
    PATCH /api/orders/<id>/estado-entrega
    Body: { estadoEntrega, notas?, motivoNoEntrega?, motivoCancelacion?, trackingNumber?, courierName? }
    """
    data = request.get_json(silent=True) or {}
    order = tracking.actualizar_estado_entrega(
        order_id=order_id,
        nuevo_estado=data.get("estadoEntrega"),
        cambiado_por=current_actor().id,
        notas=data.get("notas"),
        motivo_no_entrega=data.get("motivoNoEntrega"),
        motivo_cancelacion=data.get("motivoCancelacion"),
        tracking_number=data.get("trackingNumber"),
        courier_name=data.get("courierName"),
    )
    return jsonify({"success": True, "data": tracking.obtener_tracking(order.id)})


@bp.post("/<int:order_id>/confirmar-recepcion")
@require_auth
def confirmar_recepcion(order_id: int):
    actor = current_actor()
    order = tracking.confirmar_recepcion(order_id=order_id, usuario_id=actor.id)
    return jsonify({"success": True, "data": tracking.obtener_tracking(order.id, actor.id)})


@bp.get("/<int:order_id>/tracking")
@require_auth
def obtener_tracking(order_id: int):
    actor = current_actor()
    data = tracking.obtener_tracking(order_id, None if actor.is_staff else actor.id)
    return jsonify({"success": True, "data": data})
