"""
Serviço de rastreamento e entrega de pedidos.

Máquina de estados da entrega (estado_entrega), com tabela de
transições explícita, escalonamento para retirada no local após duas
tentativas frustradas e histórico de auditoria gravado na mesma
transação que a mudança de estado.
"""

from datetime import datetime
from typing import Any, Dict, List, NamedTuple, Optional, Union
import logging

from pasoapaso.errors import ValidationError, StateConflictError, OrderNotFoundError
from pasoapaso.models import (
    db, utcnow, Order, OrderStatusHistory, EstadoEntrega, EstadoOrden, FulfillmentType
)
from pasoapaso.services.payment_service import serialize_payment
from pasoapaso.signals import emit, order_status_changed, orders_refresh

logger = logging.getLogger(__name__)

E = EstadoEntrega

MAX_INTENTOS_ENTREGA = 2
NOTA_ESCALONAMENTO = "Máximo de intentos de entrega alcanzado. El cliente debe retirar en local."
NOTA_CONFIRMACAO = "Cliente confirmó recepción del pedido"
NOTA_CONFIRMACAO_RETIRO = "Cliente confirmó que retirará el pedido en local tras intentos fallidos"

TRANSITIONS: Dict[EstadoEntrega, frozenset] = {
    E.PENDIENTE: frozenset({
        E.PREPARANDO, E.EN_CAMINO, E.VISITADO_NO_ENTREGADO,
        E.RETIRO_EN_LOCAL, E.ENTREGADO, E.CANCELADO,
    }),
    E.PREPARANDO: frozenset({
        E.EN_CAMINO, E.VISITADO_NO_ENTREGADO, E.RETIRO_EN_LOCAL, E.ENTREGADO, E.CANCELADO,
    }),
    # despachado não pode mais ser cancelado
    E.EN_CAMINO: frozenset({E.VISITADO_NO_ENTREGADO, E.RETIRO_EN_LOCAL, E.ENTREGADO}),
    E.VISITADO_NO_ENTREGADO: frozenset({
        E.EN_CAMINO, E.VISITADO_NO_ENTREGADO, E.RETIRO_EN_LOCAL, E.ENTREGADO, E.CANCELADO,
    }),
    E.RETIRO_EN_LOCAL: frozenset({E.VISITADO_NO_ENTREGADO, E.ENTREGADO, E.CANCELADO}),
    E.ENTREGADO: frozenset(),
    E.CANCELADO: frozenset(),
}

FINAL_STATUSES = frozenset({E.ENTREGADO, E.CANCELADO})


class EscalationRule(NamedTuple):
    requested: EstadoEntrega
    min_intentos: int
    substitute: EstadoEntrega
    note: str


ESCALATIONS: List[EscalationRule] = [
    EscalationRule(E.VISITADO_NO_ENTREGADO, MAX_INTENTOS_ENTREGA, E.RETIRO_EN_LOCAL, NOTA_ESCALONAMENTO),
]


class ResolvedTransition(NamedTuple):
    target: EstadoEntrega
    escalated: bool
    system_note: Optional[str]


SHIPPING_FLOW = [E.PENDIENTE, E.PREPARANDO, E.EN_CAMINO, E.ENTREGADO]
PICKUP_FLOW = [E.PENDIENTE, E.PREPARANDO, E.RETIRO_EN_LOCAL, E.ENTREGADO]


def parse_estado(raw: Union[str, EstadoEntrega]) -> EstadoEntrega:
    if isinstance(raw, EstadoEntrega):
        return raw
    try:
        return EstadoEntrega(str(raw or "").strip().upper())
    except ValueError:
        raise ValidationError("Estado de entrega inválido", field="estadoEntrega")


def resolve_transition(order: Order, requested: EstadoEntrega) -> ResolvedTransition:
    """Aplica as regras de escalonamento ao estado pedido."""
    for rule in ESCALATIONS:
        if requested == rule.requested and (order.intentos_entrega or 0) >= rule.min_intentos:
            return ResolvedTransition(rule.substitute, True, rule.note)
    return ResolvedTransition(requested, False, None)


def is_final_status(estado: EstadoEntrega) -> bool:
    return estado in FINAL_STATUSES


def can_be_cancelled(estado: EstadoEntrega) -> bool:
    return E.CANCELADO in TRANSITIONS[estado]


def available_transitions(order: Order) -> List[str]:
    """Próximos estados que a equipe pode aplicar ao pedido."""
    current = EstadoEntrega(order.estado_entrega)
    if order.confirmo_recepcion:
        return [E.ENTREGADO.value] if E.ENTREGADO in TRANSITIONS[current] else []
    out = []
    for target in sorted(TRANSITIONS[current], key=lambda s: list(EstadoEntrega).index(s)):
        resolved = resolve_transition(order, target)
        if resolved.target.value not in out:
            out.append(resolved.target.value)
    return out


def calculate_progress(estado: EstadoEntrega, fulfillment_type: str) -> int:
    """Progresso percentual do pedido no fluxo esperado (envio ou retirada)."""
    if estado == E.ENTREGADO:
        return 100
    flow = PICKUP_FLOW if fulfillment_type == FulfillmentType.PICKUP.value else SHIPPING_FLOW
    if estado == E.VISITADO_NO_ENTREGADO:
        estado = E.EN_CAMINO
    if estado not in flow:
        return 0
    return round(flow.index(estado) / (len(flow) - 1) * 100)


def _load_order(order_id: int, usuario_id: Optional[str] = None) -> Order:
    q = Order.query.filter_by(id=order_id)
    if usuario_id is not None:
        q = q.filter_by(usuario_id=usuario_id)
    order = q.with_for_update().first()
    if not order:
        raise OrderNotFoundError("Orden no encontrada")
    return order


def _commit_transition(order: Order, anterior: str, nuevo: EstadoEntrega, cambiado_por: str, notas: Optional[str]):
    db.session.add(OrderStatusHistory(
        order_id=order.id,
        estado_anterior=anterior,
        estado_nuevo=nuevo.value,
        cambiado_por=str(cambiado_por),
        notas=notas,
    ))
    try:
        db.session.commit()
    except Exception:
        db.session.rollback()
        raise
    logger.info(f"Pedido {order.numero_orden}: {anterior} -> {nuevo.value} por {cambiado_por}")
    emit(order_status_changed, order, order=order, previous=anterior, status=nuevo.value, changed_by=cambiado_por)
    emit(orders_refresh, order, order_id=order.id)


def actualizar_estado_entrega(
    order_id: int,
    nuevo_estado: Union[str, EstadoEntrega],
    cambiado_por: str,
    notas: Optional[str] = None,
    motivo_no_entrega: Optional[str] = None,
    motivo_cancelacion: Optional[str] = None,
    tracking_number: Optional[str] = None,
    courier_name: Optional[str] = None,
) -> Order:
    """
    Transição de entrega disparada pela equipe.

    Args:
        order_id: ID do pedido
        nuevo_estado: Estado pedido (pode ser substituído pelo escalonamento)
        cambiado_por: ID do usuário que fez a mudança

    Returns:
        Order: Pedido atualizado

    Raises:
        ValidationError: estado inválido ou campo obrigatório ausente
        StateConflictError: transição proibida
    """
    requested = parse_estado(nuevo_estado)
    order = _load_order(order_id)
    current = EstadoEntrega(order.estado_entrega)

    if current == E.CANCELADO:
        db.session.rollback()
        raise StateConflictError("La orden está cancelada y no admite cambios de estado")

    if requested == E.ENTREGADO and current == E.ENTREGADO:
        # reafirmação idempotente
        db.session.rollback()
        return order

    if order.confirmo_recepcion and requested != E.ENTREGADO:
        db.session.rollback()
        raise StateConflictError("El cliente ya confirmó la recepción del pedido")

    if current == E.ENTREGADO:
        db.session.rollback()
        raise StateConflictError("La orden ya fue entregada")

    resolved = resolve_transition(order, requested)
    target = resolved.target
    # a tabela vale para o estado pedido, não para o substituto
    if requested not in TRANSITIONS[current]:
        db.session.rollback()
        raise StateConflictError(f"Transición no válida: {current.value} → {requested.value}")

    if target == E.CANCELADO and not (motivo_cancelacion or "").strip():
        db.session.rollback()
        raise ValidationError("Se requiere el motivo de cancelación", field="motivoCancelacion")

    now = utcnow()
    if resolved.escalated:
        logger.info(f"Pedido {order.numero_orden} escalonado para retirada no local após {order.intentos_entrega} tentativas")
    elif target == E.VISITADO_NO_ENTREGADO:
        order.intentos_entrega = (order.intentos_entrega or 0) + 1
        order.fecha_ultimo_intento = now
        if motivo_no_entrega:
            order.motivo_no_entrega = motivo_no_entrega

    if target == E.ENTREGADO:
        order.estado = EstadoOrden.ENTREGADO.value
        order.delivered_at = now
    elif target == E.CANCELADO:
        order.estado = EstadoOrden.CANCELADO.value
        order.motivo_cancelacion = motivo_cancelacion.strip()
    elif target == E.RETIRO_EN_LOCAL:
        order.fulfillment_type = FulfillmentType.PICKUP.value

    if tracking_number:
        order.tracking_number = tracking_number
    if courier_name:
        order.courier_name = courier_name

    anterior = order.estado_entrega
    order.estado_entrega = target.value
    nota = resolved.system_note if resolved.escalated else notas
    _commit_transition(order, anterior, target, cambiado_por, nota)
    return order


def confirmar_recepcion(order_id: int, usuario_id: str) -> Order:
    """
    Confirmação de recebimento pelo cliente dono do pedido.

    Após duas tentativas frustradas (ainda em VISITADO_NO_ENTREGADO) a
    confirmação resolve o pedido para retirada no local.
    """
    order = _load_order(order_id, usuario_id=usuario_id)

    if order.confirmo_recepcion:
        db.session.rollback()
        raise StateConflictError("Ya confirmaste la recepción de este pedido")
    if order.estado_entrega == E.CANCELADO.value:
        db.session.rollback()
        raise StateConflictError("No puedes confirmar una orden cancelada")

    now = utcnow()
    anterior = order.estado_entrega
    order.confirmo_recepcion = True
    order.fecha_confirmacion = now

    if (order.intentos_entrega or 0) >= MAX_INTENTOS_ENTREGA and anterior == E.VISITADO_NO_ENTREGADO.value:
        target = E.RETIRO_EN_LOCAL
        order.fulfillment_type = FulfillmentType.PICKUP.value
        nota = NOTA_CONFIRMACAO_RETIRO
    else:
        target = E.ENTREGADO
        order.estado = EstadoOrden.ENTREGADO.value
        order.delivered_at = order.delivered_at or now
        nota = NOTA_CONFIRMACAO

    order.estado_entrega = target.value
    _commit_transition(order, anterior, target, usuario_id, nota)
    return order


def serialize_history(h: OrderStatusHistory) -> Dict[str, Any]:
    return {
        'id': h.id,
        'estadoAnterior': h.estado_anterior,
        'estadoNuevo': h.estado_nuevo,
        'cambiadoPor': h.cambiado_por,
        'notas': h.notas,
        'createdAt': h.created_at.isoformat() if h.created_at else None,
    }


def _iso(dt: Optional[datetime]) -> Optional[str]:
    return dt.isoformat() if dt else None


def obtener_tracking(order_id: int, usuario_id: Optional[str] = None) -> Dict[str, Any]:
    """
    Dados de rastreamento do pedido (histórico mais recente primeiro).
    A factura só é exposta depois que o cliente confirma o recebimento.
    """
    q = Order.query.filter_by(id=order_id)
    if usuario_id is not None:
        q = q.filter_by(usuario_id=usuario_id)
    order = q.first()
    if not order:
        raise OrderNotFoundError("Orden no encontrada")

    estado_entrega = EstadoEntrega(order.estado_entrega)
    return {
        'id': order.id,
        'numeroOrden': order.numero_orden,
        'usuarioId': order.usuario_id,
        'total': order.total,
        'estado': order.estado,
        'estadoEntrega': order.estado_entrega,
        'intentosEntrega': order.intentos_entrega,
        'fechaUltimoIntento': _iso(order.fecha_ultimo_intento),
        'motivoNoEntrega': order.motivo_no_entrega,
        'confirmoRecepcion': order.confirmo_recepcion,
        'fechaConfirmacion': _iso(order.fecha_confirmacion),
        'motivoCancelacion': order.motivo_cancelacion,
        'fulfillmentType': order.fulfillment_type,
        'trackingNumber': order.tracking_number,
        'courierName': order.courier_name,
        'shippingNotes': order.shipping_notes,
        'direccionEnvio': order.direccion_envio,
        'paymentApprovedAt': _iso(order.payment_approved_at),
        'deliveredAt': _iso(order.delivered_at),
        'createdAt': _iso(order.created_at),
        'facturaUrl': order.factura_url if order.confirmo_recepcion else None,
        'progreso': calculate_progress(estado_entrega, order.fulfillment_type),
        'transicionesDisponibles': available_transitions(order),
        'items': [
            {
                'productId': it.product_id,
                'nombre': it.nombre,
                'cantidad': it.cantidad,
                'talle': it.talle,
                'color': it.color,
                'precioUnitario': it.precio_unitario,
            }
            for it in order.items
        ],
        'historialEstados': [serialize_history(h) for h in reversed(order.historial_estados)],
        'payments': [serialize_payment(p) for p in order.payments],
    }
