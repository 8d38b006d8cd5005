"""
Serviço de orquestração de pagamentos: escolhe o adaptador pelo
registro, cria o Payment ligado ao pedido e aplica mudanças de status
respeitando o reticulado monotônico.
"""

from typing import Any, Dict, List, Optional
import logging

from pasoapaso import settings
from pasoapaso.errors import ValidationError, OrderNotFoundError, StateConflictError
from pasoapaso.models import (
    db, utcnow, Order, Payment, PaymentGateway, EstadoOrden, EstadoEntrega, RuleScope, RuleAction
)
from pasoapaso.models.gateway_base import (
    GatewayConfig, CreatePaymentData, PaymentItem, PaymentStatus, can_transition
)
from pasoapaso.models.gateway_registry import PaymentGatewayRegistry
from pasoapaso.services import order_service
from pasoapaso.signals import emit, payment_created, payment_status_changed, orders_refresh

logger = logging.getLogger(__name__)

CHECKOUT_FAILED_MESSAGE = "No se pudo iniciar el pago"


def _rule_matches(rule, product_id: Optional[str], category_id: Optional[str]) -> bool:
    if rule.scope_type == RuleScope.PRODUCT.value:
        return product_id is not None and rule.scope_id == str(product_id)
    if rule.scope_type == RuleScope.CATEGORY.value:
        return category_id is not None and rule.scope_id == str(category_id)
    return rule.scope_type == RuleScope.GLOBAL.value and not rule.scope_id


def calculate_final_price(
    base_price: int,
    gateway: PaymentGateway,
    product_id: Optional[str] = None,
    category_id: Optional[str] = None,
) -> Dict[str, Any]:
    """
    Calcula o preço final de um item em centavos para a pasarela.

    Regras ativas que casam com o produto/categoria (ou globais) são
    aplicadas em ordem de prioridade decrescente, cada uma sobre o preço
    corrente; depois entram as taxas da pasarela (fixa + percentual).

    Returns:
        Dict: preço base, final, regras aplicadas e detalhamento das taxas
    """
    current = int(base_price)
    applied = []
    rules = sorted(
        (r for r in gateway.rules if r.active and _rule_matches(r, product_id, category_id)),
        key=lambda r: (-(r.priority or 0), r.id or 0),
    )
    for rule in rules:
        if rule.amount:
            rule_amount = int(rule.amount)
            label = str(rule_amount)
        elif rule.percent:
            rule_amount = int(round(current * float(rule.percent) / 100))
            label = f"{float(rule.percent):g}%"
        else:
            continue
        if rule.action == RuleAction.DISCOUNT.value:
            current -= rule_amount
            applied.append({
                'id': rule.id,
                'description': rule.description or f"Descuento: {label}",
                'action': rule.action,
                'amount': -rule_amount,
            })
        elif rule.action == RuleAction.CHARGE.value:
            current += rule_amount
            applied.append({
                'id': rule.id,
                'description': rule.description or f"Cargo: {label}",
                'action': rule.action,
                'amount': rule_amount,
            })

    current = max(0, current)
    fees_fixed = int(gateway.fees_fixed or 0)
    fees_percent = float(gateway.fees_percent or 0)
    percent_amount = int(round(current * fees_percent / 100))
    total_fees = fees_fixed + percent_amount
    return {
        'base_price': int(base_price),
        'final_price': max(0, current + total_fees),
        'applied_rules': applied,
        'gateway_fees': {
            'fixed': fees_fixed,
            'percent': fees_percent,
            'total': total_fees,
        },
    }


def serialize_payment(p: Payment) -> Dict[str, Any]:
    return {
        'id': p.id,
        'orderId': p.order_id,
        'orderNumber': p.order.numero_orden if p.order else None,
        'gatewayId': p.gateway_id,
        'provider': p.provider,
        'status': p.status,
        'amount': p.amount,
        'currency': p.currency,
        'externalId': p.external_id,
        'externalReference': p.external_reference,
        'providerPaymentId': p.provider_payment_id,
        'checkoutUrl': p.checkout_url,
        'metadata': p.provider_metadata or {},
        'createdAt': p.created_at.isoformat() if p.created_at else None,
        'updatedAt': p.updated_at.isoformat() if p.updated_at else None,
    }


class PaymentService:
    """Orquestra pagamentos sobre o registro de adaptadores injetado."""

    def __init__(self, registry: PaymentGatewayRegistry):
        self.registry = registry

    def _get_gateway(self, gateway_id: int) -> PaymentGateway:
        gateway = db.session.get(PaymentGateway, gateway_id)
        if not gateway or not gateway.active:
            raise ValidationError("Pasarela de pago inexistente o inactiva", field="gatewayId")
        return gateway

    @staticmethod
    def _config(gateway: PaymentGateway) -> GatewayConfig:
        return GatewayConfig.from_dict(gateway.config, mode=gateway.mode)

    def create_checkout_payment(
        self,
        gateway_id: int,
        order_id: int,
        usuario_id: Optional[str] = None,
        customer_email: Optional[str] = None,
        customer_name: Optional[str] = None,
    ) -> Dict[str, Any]:
        """
        Inicia o pagamento de um pedido na pasarela escolhida.

        Args:
            gateway_id: Pasarela configurada
            order_id: Pedido a pagar
            usuario_id: Se informado, o pedido precisa pertencer a ele

        Returns:
            Dict: payment serializado + flag success
        """
        gateway = self._get_gateway(gateway_id)
        if not self.registry.has_adapter(gateway.provider):
            raise ValidationError(f"Proveedor de pago no soportado: {gateway.provider}", field="gatewayId")

        order = db.session.get(Order, order_id)
        if not order or (usuario_id is not None and order.usuario_id != usuario_id):
            raise OrderNotFoundError("Orden no encontrada")
        if order.estado_entrega == EstadoEntrega.CANCELADO.value:
            raise StateConflictError("No se puede pagar una orden cancelada")
        if not order.items:
            raise ValidationError("La orden no tiene items")

        existing = (
            Payment.query
            .filter(
                Payment.order_id == order.id,
                Payment.gateway_id == gateway.id,
                Payment.status.in_([PaymentStatus.PENDING.value, PaymentStatus.PROCESSING.value]),
            )
            .order_by(Payment.id.desc())
            .first()
        )
        if existing is not None:
            logger.info(f"Pedido {order.numero_orden} já tem pagamento {existing.id} em aberto; reutilizando")
            return {**serialize_payment(existing), 'success': True, 'reused': True}

        items: List[PaymentItem] = []
        total = 0
        for item in order.items:
            price = calculate_final_price(
                item.precio_unitario, gateway,
                product_id=item.product_id, category_id=item.categoria_id,
            )['final_price']
            total += price * item.cantidad
            items.append(PaymentItem(
                id=str(item.product_id),
                title=item.nombre,
                quantity=item.cantidad,
                unit_price=price,
            ))

        data = CreatePaymentData(
            amount=total,
            currency=settings.PAYMENT_CURRENCY,
            description=f"Orden #{order.numero_orden}",
            order_id=str(order.id),
            order_number=order.numero_orden,
            customer_email=customer_email,
            customer_name=customer_name,
            items=items,
            metadata={'orderNumber': order.numero_orden, 'itemsCount': len(items)},
        )

        adapter = self.registry.get_adapter(gateway.provider)
        result = adapter.create_payment(self._config(gateway), data)

        payment = Payment(
            order_id=order.id,
            gateway_id=gateway.id,
            provider=gateway.provider,
            external_id=result.external_id,
            external_reference=result.external_reference or order.numero_orden,
            amount=total,
            currency=data.currency,
            status=(PaymentStatus.PENDING if result.success else PaymentStatus.FAILED).value,
            provider_metadata=dict(result.metadata or {}),
            error_message=result.error_message,
            checkout_url=result.checkout_url,
        )
        db.session.add(payment)
        db.session.commit()

        if result.success:
            logger.info(f"Pagamento {payment.id} criado ({gateway.provider}) para o pedido {order.numero_orden}")
        else:
            logger.error(
                f"Falha ao iniciar pagamento do pedido {order.numero_orden} via {gateway.provider}: "
                f"{result.error_message}"
            )

        emit(payment_created, self, payment=payment)
        out = serialize_payment(payment)
        if not result.success:
            out['error'] = CHECKOUT_FAILED_MESSAGE
            out['retryable'] = result.retryable
        return {**out, 'success': result.success}

    def get_payment(self, payment_id: int, usuario_id: Optional[str] = None, refresh: bool = False) -> Payment:
        payment = db.session.get(Payment, payment_id)
        if not payment or (usuario_id is not None and payment.order.usuario_id != usuario_id):
            raise OrderNotFoundError("Pago no encontrado")

        if refresh and not PaymentStatus(payment.status).is_terminal:
            external_id = (
                payment.provider_payment_id
                or (payment.provider_metadata or {}).get('paymentId')
                or payment.external_id
            )
            if external_id:
                adapter = self.registry.get_adapter(payment.provider)
                result = adapter.query_payment(self._config(payment.gateway), external_id)
                if result.success:
                    self.apply_status(payment, result.status, metadata=result.metadata)
                else:
                    logger.warning(f"Consulta do pagamento {payment.id} falhou: {result.error_message}")
        return payment

    def apply_status(
        self,
        payment: Payment,
        new_status: PaymentStatus,
        metadata: Optional[Dict[str, Any]] = None,
        from_webhook: bool = False,
    ) -> bool:
        """
        Aplica um novo status ao pagamento se o reticulado permitir.

        Returns:
            bool: True se o status mudou
        """
        current = PaymentStatus(payment.status)
        if not can_transition(current, new_status):
            logger.warning(
                f"Transição de pagamento {payment.id} rejeitada: {current.value} -> {new_status.value}"
            )
            return False

        merged = dict(payment.provider_metadata or {})
        if metadata:
            merged.update(metadata)
        payment.provider_metadata = merged
        if not payment.provider_payment_id and merged.get('paymentId'):
            payment.provider_payment_id = str(merged['paymentId'])
        if from_webhook:
            payment.last_webhook_at = utcnow()

        changed = current != new_status
        if changed:
            payment.status = new_status.value
            if new_status == PaymentStatus.SUCCESS:
                order = payment.order
                order.payment_approved_at = utcnow()
                if order.estado != EstadoOrden.ENTREGADO.value:
                    order.estado = EstadoOrden.EN_PROCESO.value
        db.session.commit()

        if changed:
            logger.info(f"Pagamento {payment.id}: {current.value} -> {new_status.value}")
            emit(
                payment_status_changed, self,
                payment=payment, previous=current, status=new_status,
            )
            emit(orders_refresh, self, order_id=payment.order_id)
        return changed

    def test_gateway_connection(self, gateway_id: int) -> Dict[str, Any]:
        gateway = db.session.get(PaymentGateway, gateway_id)
        if not gateway:
            raise ValidationError("Pasarela de pago inexistente", field="gatewayId")
        adapter = self.registry.get_adapter(gateway.provider)
        result = adapter.test_connection(self._config(gateway))
        logger.info(f"Teste de conexão da pasarela {gateway.id} ({gateway.provider}): {result.success}")
        return {'success': result.success, 'message': result.message}

    def open_attempt(self, previous: Payment, provider_payment_id: str) -> Payment:
        """
        Registra uma nova tentativa de pagamento do mesmo checkout.

        O provedor pode gerar vários pagamentos para uma mesma preferência
        (ex.: cartão recusado e depois aprovado). Cada id do provedor tem
        sua própria linha, com o reticulado de status independente.
        """
        payment = Payment(
            order_id=previous.order_id,
            gateway_id=previous.gateway_id,
            provider=previous.provider,
            external_id=previous.external_id,
            external_reference=previous.external_reference,
            provider_payment_id=str(provider_payment_id),
            amount=previous.amount,
            currency=previous.currency,
            status=PaymentStatus.PENDING.value,
            provider_metadata={
                k: v for k, v in (previous.provider_metadata or {}).items()
                if k in ('preferenceId', 'initPoint', 'sandboxInitPoint')
            },
            checkout_url=previous.checkout_url,
        )
        db.session.add(payment)
        db.session.commit()
        logger.info(
            f"Nova tentativa {payment.id} (pagamento {provider_payment_id}) para o pedido "
            f"{previous.external_reference}; anterior {previous.id} em {previous.status}"
        )
        emit(payment_created, self, payment=payment)
        return payment

    def create_order_and_payment(
        self,
        gateway_id: int,
        usuario_id: str,
        items: List[Dict[str, Any]],
        fulfillment_type: Optional[str] = None,
        direccion_envio: Optional[Dict[str, Any]] = None,
        shipping_notes: Optional[str] = None,
        customer_email: Optional[str] = None,
        customer_name: Optional[str] = None,
    ) -> Dict[str, Any]:
        """
        Checkout completo: transforma o carrinho em Order e inicia o pagamento.

        A pasarela é validada antes de gravar o pedido, para não deixar
        pedidos órfãos por erro de configuração.
        """
        gateway = self._get_gateway(gateway_id)
        if not self.registry.has_adapter(gateway.provider):
            raise ValidationError(f"Proveedor de pago no soportado: {gateway.provider}", field="gatewayId")

        order = order_service.crear_orden(
            usuario_id=usuario_id,
            items=items,
            fulfillment_type=fulfillment_type,
            direccion_envio=direccion_envio,
            shipping_notes=shipping_notes,
        )
        result = self.create_checkout_payment(
            gateway_id=gateway.id,
            order_id=order.id,
            usuario_id=usuario_id,
            customer_email=customer_email,
            customer_name=customer_name,
        )
        result['order'] = {
            'id': order.id,
            'numeroOrden': order.numero_orden,
            'total': order.total,
            'fulfillmentType': order.fulfillment_type,
        }
        return result
