import re

import pytest

from pasoapaso.errors import ValidationError
from pasoapaso.models import db, Order, Payment
from pasoapaso.services import order_service
from tests.conftest import BANK_CONFIG

ADDRESS = {"calle": "Av. Corrientes 1234", "ciudad": "CABA", "codigoPostal": "C1043"}

CART = [
    {"productId": "zap-1", "nombre": "Zapatilla Runner", "cantidad": 2, "talle": 40,
     "color": "negro", "categoriaId": "running", "precioUnitario": 150000},
    {"productId": "zap-2", "nombre": "Bota Cuero", "cantidad": 1, "precioUnitario": 320000},
]


def test_crear_orden_persists_order_and_items(app):
    order = order_service.crear_orden("cliente-1", CART, direccion_envio=ADDRESS, shipping_notes=" timbre 2 ")

    saved = db.session.get(Order, order.id)
    assert saved.numero_orden.startswith("PAP-")
    assert saved.total == 620000
    assert saved.estado == "EN_PROCESO"
    assert saved.estado_entrega == "PENDIENTE"
    assert saved.fulfillment_type == "shipping"
    assert saved.direccion_envio == ADDRESS
    assert saved.shipping_notes == "timbre 2"
    assert [(i.product_id, i.cantidad, i.talle, i.categoria_id) for i in saved.items] == [
        ("zap-1", 2, 40, "running"),
        ("zap-2", 1, None, None),
    ]


def test_pickup_order_needs_no_address(app):
    order = order_service.crear_orden("cliente-1", CART, fulfillment_type="PICKUP", direccion_envio=ADDRESS)
    assert order.fulfillment_type == "pickup"
    assert order.direccion_envio is None


def test_order_number_format():
    assert re.fullmatch(r"PAP-\d{13}-[0-9A-F]{4}", order_service.generar_numero_orden())


@pytest.mark.parametrize("usuario_id,items,kwargs,field", [
    ("", CART, {"direccion_envio": ADDRESS}, "usuarioId"),
    ("cliente-1", [], {"direccion_envio": ADDRESS}, "items"),
    ("cliente-1", "zap-1", {"direccion_envio": ADDRESS}, "items"),
    ("cliente-1", CART, {}, "direccionEnvio"),
    ("cliente-1", CART, {"fulfillment_type": "drone", "direccion_envio": ADDRESS}, "fulfillmentType"),
    ("cliente-1", [{"nombre": "Sin id", "cantidad": 1, "precioUnitario": 1}], {"direccion_envio": ADDRESS}, "items"),
    ("cliente-1", [{"productId": "z", "cantidad": 0, "precioUnitario": 1}], {"direccion_envio": ADDRESS}, "cantidad"),
    ("cliente-1", [{"productId": "z", "cantidad": 21, "precioUnitario": 1}], {"direccion_envio": ADDRESS}, "cantidad"),
    ("cliente-1", [{"productId": "z", "cantidad": 1.5, "precioUnitario": 1}], {"direccion_envio": ADDRESS}, "cantidad"),
    ("cliente-1", [{"productId": "z", "cantidad": True, "precioUnitario": 1}], {"direccion_envio": ADDRESS}, "cantidad"),
    ("cliente-1", [{"productId": "z", "cantidad": 1, "precioUnitario": -5}], {"direccion_envio": ADDRESS}, "precioUnitario"),
    ("cliente-1", [{"productId": "z", "cantidad": 1, "precioUnitario": 5, "talle": 0}], {"direccion_envio": ADDRESS}, "talle"),
])
def test_crear_orden_validation(app, usuario_id, items, kwargs, field):
    with pytest.raises(ValidationError) as exc:
        order_service.crear_orden(usuario_id, items, **kwargs)
    assert exc.value.field == field
    assert Order.query.count() == 0


def test_too_many_items(app):
    items = [{"productId": f"z-{n}", "cantidad": 1, "precioUnitario": 100} for n in range(51)]
    with pytest.raises(ValidationError):
        order_service.crear_orden("cliente-1", items, direccion_envio=ADDRESS)


def test_create_order_and_payment(payment_service, make_gateway):
    gateway = make_gateway("TRANSFERENCIA", BANK_CONFIG)

    result = payment_service.create_order_and_payment(
        gateway.id, "cliente-1", CART, direccion_envio=ADDRESS,
    )

    assert result['success'] is True
    assert result['order']['total'] == 620000
    assert result['orderNumber'] == result['order']['numeroOrden']
    payment = db.session.get(Payment, result['id'])
    assert payment.order.usuario_id == "cliente-1"
    assert payment.external_reference == result['order']['numeroOrden']


def test_create_order_and_payment_checks_gateway_before_saving(payment_service, make_gateway):
    gateway = make_gateway("TRANSFERENCIA", BANK_CONFIG, active=False)
    with pytest.raises(ValidationError):
        payment_service.create_order_and_payment(gateway.id, "cliente-1", CART, direccion_envio=ADDRESS)
    assert Order.query.count() == 0


def test_number_collision_retries(make_order, monkeypatch):
    make_order(numero_orden="PAP-1-AAAA")
    numbers = iter(["PAP-1-AAAA", "PAP-2-BBBB"])
    monkeypatch.setattr(order_service, "generar_numero_orden", lambda: next(numbers))

    order = order_service.crear_orden("cliente-1", CART, direccion_envio=ADDRESS)

    assert order.numero_orden == "PAP-2-BBBB"
    assert Order.query.count() == 2
