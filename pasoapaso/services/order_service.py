"""
Criação de pedidos a partir do carrinho do checkout.
"""

from typing import Any, Dict, List, Optional
import logging
import secrets
import time

from sqlalchemy.exc import IntegrityError

from pasoapaso.errors import ValidationError, StateConflictError
from pasoapaso.models import db, Order, OrderItem, FulfillmentType

logger = logging.getLogger(__name__)

MAX_ITEMS = 50
MAX_CANTIDAD = 20


def generar_numero_orden() -> str:
    # PAP-<epoch ms>-<sufixo> para não colidir entre requisições no mesmo ms
    return f"PAP-{int(time.time() * 1000)}-{secrets.token_hex(2).upper()}"


def _int(value: Any, field: str, minimum: int) -> int:
    if isinstance(value, bool):
        raise ValidationError(f"Valor inválido: {field}", field=field)
    try:
        number = int(value)
    except (TypeError, ValueError):
        raise ValidationError(f"Valor inválido: {field}", field=field)
    if number != value and not isinstance(value, str):
        # 1.5 unidades / centavos fracionados
        raise ValidationError(f"Valor inválido: {field}", field=field)
    if number < minimum:
        raise ValidationError(f"Valor fuera de rango: {field}", field=field)
    return number


def _parse_item(raw: Any, idx: int) -> Dict[str, Any]:
    if not isinstance(raw, dict):
        raise ValidationError(f"Item {idx} inválido", field="items")

    product_id = str(raw.get("productId") or "").strip()
    if not product_id:
        raise ValidationError(f"Item {idx}: falta productId", field="items")

    cantidad = _int(raw.get("cantidad"), "cantidad", 1)
    if cantidad > MAX_CANTIDAD:
        raise ValidationError(f"Item {idx}: cantidad máxima {MAX_CANTIDAD}", field="cantidad")
    precio = _int(raw.get("precioUnitario"), "precioUnitario", 0)
    talle = raw.get("talle")
    if talle is not None and talle != "":
        talle = _int(talle, "talle", 1)
    else:
        talle = None

    return {
        "product_id": product_id,
        "nombre": str(raw.get("nombre") or product_id).strip()[:255],
        "cantidad": cantidad,
        "talle": talle,
        "color": (str(raw["color"]).strip()[:40] or None) if raw.get("color") else None,
        "categoria_id": str(raw["categoriaId"]).strip() if raw.get("categoriaId") else None,
        "precio_unitario": precio,
    }


def crear_orden(
    usuario_id: str,
    items: List[Dict[str, Any]],
    fulfillment_type: Optional[str] = None,
    direccion_envio: Optional[Dict[str, Any]] = None,
    shipping_notes: Optional[str] = None,
) -> Order:
    """
    Cria o pedido e seus itens numa única transação.

    Args:
        usuario_id: Dono do pedido
        items: [{productId, nombre?, cantidad, talle?, color?, categoriaId?, precioUnitario}]
            com preços em centavos
        fulfillment_type: 'shipping' (padrão) ou 'pickup'
        direccion_envio: Obrigatória para envio

    Returns:
        Order: Pedido gravado, estado EN_PROCESO / PENDIENTE

    Raises:
        ValidationError: carrinho ou dados de envio inválidos
    """
    if not usuario_id:
        raise ValidationError("Usuario requerido", field="usuarioId")
    if not isinstance(items, list) or not items:
        raise ValidationError("El carrito está vacío", field="items")
    if len(items) > MAX_ITEMS:
        raise ValidationError(f"Máximo {MAX_ITEMS} items por orden", field="items")

    try:
        fulfillment = FulfillmentType(str(fulfillment_type or FulfillmentType.SHIPPING.value).strip().lower())
    except ValueError:
        raise ValidationError("Tipo de entrega inválido", field="fulfillmentType")

    if fulfillment == FulfillmentType.SHIPPING and not isinstance(direccion_envio, dict):
        raise ValidationError("Se requiere la dirección de envío", field="direccionEnvio")

    order_items = [_parse_item(raw, idx) for idx, raw in enumerate(items, start=1)]
    total = sum(i["precio_unitario"] * i["cantidad"] for i in order_items)

    for _ in range(3):
        order = Order(
            numero_orden=generar_numero_orden(),
            usuario_id=str(usuario_id),
            total=total,
            fulfillment_type=fulfillment.value,
            direccion_envio=direccion_envio if fulfillment == FulfillmentType.SHIPPING else None,
            shipping_notes=(shipping_notes or "").strip() or None,
        )
        order.items = [OrderItem(**i) for i in order_items]
        db.session.add(order)
        try:
            db.session.commit()
        except IntegrityError:
            db.session.rollback()
            logger.warning("Colisão de numero_orden; gerando outro")
            continue
        logger.info(
            f"Pedido {order.numero_orden} criado para {usuario_id}: "
            f"{len(order_items)} itens, total {total}"
        )
        return order

    raise StateConflictError("No se pudo generar el número de orden")
