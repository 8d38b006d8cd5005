# pasoapaso/models/__init__.py
from datetime import datetime, timezone
from enum import Enum

from flask_sqlalchemy import SQLAlchemy

db = SQLAlchemy()


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class EstadoOrden(str, Enum):
    """Estado comercial (grosso) do pedido"""
    EN_PROCESO = "EN_PROCESO"
    ENTREGADO = "ENTREGADO"
    CANCELADO = "CANCELADO"


class EstadoEntrega(str, Enum):
    """Estado fino de entrega do pedido"""
    PENDIENTE = "PENDIENTE"
    PREPARANDO = "PREPARANDO"
    EN_CAMINO = "EN_CAMINO"
    VISITADO_NO_ENTREGADO = "VISITADO_NO_ENTREGADO"
    RETIRO_EN_LOCAL = "RETIRO_EN_LOCAL"
    ENTREGADO = "ENTREGADO"
    CANCELADO = "CANCELADO"


class FulfillmentType(str, Enum):
    SHIPPING = "shipping"
    PICKUP = "pickup"


class RuleScope(str, Enum):
    """Alcance de uma regra de preço da pasarela"""
    PRODUCT = "PRODUCT"
    CATEGORY = "CATEGORY"
    GLOBAL = "GLOBAL"


class RuleAction(str, Enum):
    DISCOUNT = "DISCOUNT"
    CHARGE = "CHARGE"


class Order(db.Model):
    __tablename__ = "orders"

    id = db.Column(db.Integer, primary_key=True)
    numero_orden = db.Column(db.String(64), unique=True, nullable=False)
    usuario_id = db.Column(db.String(64), nullable=False, index=True)
    # total em centavos
    total = db.Column(db.Integer, nullable=False, default=0)

    estado = db.Column(db.String(20), nullable=False, default=EstadoOrden.EN_PROCESO.value)
    estado_entrega = db.Column(db.String(32), nullable=False, default=EstadoEntrega.PENDIENTE.value)
    intentos_entrega = db.Column(db.Integer, nullable=False, default=0)
    fecha_ultimo_intento = db.Column(db.DateTime(timezone=True))
    motivo_no_entrega = db.Column(db.Text)
    confirmo_recepcion = db.Column(db.Boolean, nullable=False, default=False)
    fecha_confirmacion = db.Column(db.DateTime(timezone=True))
    motivo_cancelacion = db.Column(db.Text)

    fulfillment_type = db.Column(db.String(16), nullable=False, default=FulfillmentType.SHIPPING.value)
    tracking_number = db.Column(db.String(64))
    courier_name = db.Column(db.String(120))
    shipping_notes = db.Column(db.Text)
    direccion_envio = db.Column(db.JSON)
    factura_url = db.Column(db.String(500))

    payment_approved_at = db.Column(db.DateTime(timezone=True))
    delivered_at = db.Column(db.DateTime(timezone=True))
    created_at = db.Column(db.DateTime(timezone=True), server_default=db.func.now())
    updated_at = db.Column(db.DateTime(timezone=True), server_default=db.func.now(), onupdate=db.func.now())

    items = db.relationship("OrderItem", backref="order", cascade="all, delete-orphan", lazy=True)
    payments = db.relationship("Payment", backref="order", lazy=True, order_by="Payment.id")
    historial_estados = db.relationship(
        "OrderStatusHistory", backref="order", lazy=True, order_by="OrderStatusHistory.id"
    )

    def __repr__(self):
        return f"<Order id={self.id} numero={self.numero_orden!r} entrega={self.estado_entrega}>"


class OrderItem(db.Model):
    __tablename__ = "order_items"

    id = db.Column(db.Integer, primary_key=True)
    order_id = db.Column(db.Integer, db.ForeignKey("orders.id"), nullable=False)
    product_id = db.Column(db.String(64), nullable=False)
    nombre = db.Column(db.String(255), nullable=False)
    cantidad = db.Column(db.Integer, nullable=False, default=1)
    talle = db.Column(db.Integer)
    color = db.Column(db.String(40))
    categoria_id = db.Column(db.String(64))
    # preço unitário em centavos à época do pedido
    precio_unitario = db.Column(db.Integer, nullable=False)


class PaymentGateway(db.Model):
    """Pasarela configurada no CMS; `config` é o saco opaco de credenciais."""
    __tablename__ = "payment_gateways"

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(120), nullable=False)
    provider = db.Column(db.String(32), nullable=False, index=True)
    mode = db.Column(db.String(16), nullable=False, default="SANDBOX")
    config = db.Column(db.JSON, nullable=False, default=dict)
    fees_fixed = db.Column(db.Integer, nullable=False, default=0)
    fees_percent = db.Column(db.Float, nullable=False, default=0.0)
    active = db.Column(db.Boolean, nullable=False, default=True)
    priority = db.Column(db.Integer, nullable=False, default=0)
    created_at = db.Column(db.DateTime(timezone=True), server_default=db.func.now())

    payments = db.relationship("Payment", backref="gateway", lazy=True)
    rules = db.relationship(
        "PaymentGatewayRule", backref="gateway", cascade="all, delete-orphan", lazy=True,
        order_by="PaymentGatewayRule.priority.desc()",
    )


class PaymentGatewayRule(db.Model):
    """
    Regra de desconto/recargo aplicada antes das taxas da pasarela.
    `amount` (centavos) tem precedência sobre `percent`.
    """
    __tablename__ = "payment_gateway_rules"

    id = db.Column(db.Integer, primary_key=True)
    gateway_id = db.Column(db.Integer, db.ForeignKey("payment_gateways.id"), nullable=False, index=True)
    scope_type = db.Column(db.String(16), nullable=False, default=RuleScope.GLOBAL.value)
    scope_id = db.Column(db.String(64))
    action = db.Column(db.String(16), nullable=False)
    amount = db.Column(db.Integer)
    percent = db.Column(db.Float)
    priority = db.Column(db.Integer, nullable=False, default=0)
    description = db.Column(db.String(255))
    active = db.Column(db.Boolean, nullable=False, default=True)
    created_at = db.Column(db.DateTime(timezone=True), server_default=db.func.now())


class Payment(db.Model):
    __tablename__ = "payments"

    id = db.Column(db.Integer, primary_key=True)
    order_id = db.Column(db.Integer, db.ForeignKey("orders.id"), nullable=False, index=True)
    gateway_id = db.Column(db.Integer, db.ForeignKey("payment_gateways.id"), nullable=False)
    provider = db.Column(db.String(32), nullable=False)
    external_id = db.Column(db.String(120), index=True)
    external_reference = db.Column(db.String(120), index=True)
    # id do pagamento no provedor (uma preferência pode gerar várias tentativas)
    provider_payment_id = db.Column(db.String(120), index=True)
    amount = db.Column(db.Integer, nullable=False)
    currency = db.Column(db.String(8), nullable=False, default="ARS")
    status = db.Column(db.String(20), nullable=False, default="PENDING")
    # "metadata" é reservado pelo SQLAlchemy
    provider_metadata = db.Column("metadata", db.JSON, nullable=False, default=dict)
    error_message = db.Column(db.Text)
    checkout_url = db.Column(db.String(500))
    last_webhook_at = db.Column(db.DateTime(timezone=True))
    created_at = db.Column(db.DateTime(timezone=True), server_default=db.func.now())
    updated_at = db.Column(db.DateTime(timezone=True), server_default=db.func.now(), onupdate=db.func.now())

    def __repr__(self):
        return f"<Payment id={self.id} provider={self.provider} status={self.status}>"


class OrderStatusHistory(db.Model):
    """Trilha de auditoria das transições de entrega. Só recebe inserts."""
    __tablename__ = "order_status_history"

    id = db.Column(db.Integer, primary_key=True)
    order_id = db.Column(db.Integer, db.ForeignKey("orders.id"), nullable=False, index=True)
    estado_anterior = db.Column(db.String(32), nullable=False)
    estado_nuevo = db.Column(db.String(32), nullable=False)
    cambiado_por = db.Column(db.String(64), nullable=False)
    notas = db.Column(db.Text)
    created_at = db.Column(db.DateTime(timezone=True), server_default=db.func.now())


__all__ = [
    "db",
    "utcnow",
    "EstadoOrden",
    "EstadoEntrega",
    "FulfillmentType",
    "RuleScope",
    "RuleAction",
    "Order",
    "OrderItem",
    "PaymentGateway",
    "PaymentGatewayRule",
    "Payment",
    "OrderStatusHistory",
]
