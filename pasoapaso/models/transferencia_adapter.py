"""
Adaptador para pagamentos por transferência bancária.
Não há integração externa: só gera as instruções para o cliente.
"""

from typing import Any
import logging

from pasoapaso.models.gateway_base import (
    BasePaymentAdapter, GatewayConfig, CreatePaymentData, CreatePaymentResult,
    PaymentQueryResult, PaymentStatus, WebhookResult, ConnectionTestResult
)
from pasoapaso.utils.money import cents_to_amount

logger = logging.getLogger(__name__)

REQUIRED_KEYS = ("cuentaBancaria", "cbu", "alias")


class TransferenciaAdapter(BasePaymentAdapter):
    """Transferência bancária: confirmação manual no CMS."""

    name = "transferencia"

    def test_connection(self, config: GatewayConfig) -> ConnectionTestResult:
        missing = [k for k in REQUIRED_KEYS if not config.get(k)]
        if not missing:
            return ConnectionTestResult(True, "Configuración de transferencia válida")
        return ConnectionTestResult(False, f"Faltan datos de cuenta bancaria: {', '.join(missing)}")

    def create_payment(self, config: GatewayConfig, data: CreatePaymentData) -> CreatePaymentResult:
        try:
            instructions = {
                'banco': config.get('banco') or 'Banco no especificado',
                'titular': config.get('titular') or 'Paso a Paso Shoes',
                'cuentaBancaria': config.get('cuentaBancaria'),
                'cbu': config.get('cbu'),
                'alias': config.get('alias'),
                'cuit': config.get('cuit'),
                'monto': cents_to_amount(data.amount),
                'moneda': data.currency,
                'referencia': data.order_number,
            }
            return CreatePaymentResult(
                success=True,
                external_reference=data.order_number,
                metadata={
                    'instructions': instructions,
                    'message': 'Pago pendiente - Esperando confirmación de transferencia',
                },
            )
        except Exception as e:
            logger.error(f"Erro ao gerar instruções de transferência do pedido {data.order_number}: {e}")
            return CreatePaymentResult(
                success=False,
                external_reference=data.order_number,
                error_message=f"Error generando instrucciones: {e}",
            )

    def query_payment(self, config: GatewayConfig, external_id: str) -> PaymentQueryResult:
        # o status da transferência é conferido manualmente no CMS
        return PaymentQueryResult(
            success=True,
            status=PaymentStatus.PENDING,
            external_id=external_id,
            metadata={'message': 'El estado de transferencia debe verificarse manualmente'},
        )

    def process_webhook(self, config: GatewayConfig, payload: Any) -> WebhookResult:
        return WebhookResult(success=False, message="Transferencia no tiene webhooks automáticos")
