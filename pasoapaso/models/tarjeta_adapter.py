"""
Adaptador genérico para cartões de crédito/débito.
Ainda sem processador real: devolve a página de pagamento da loja.
"""

from typing import Any
import logging

from pasoapaso.models.gateway_base import (
    BasePaymentAdapter, GatewayConfig, CreatePaymentData, CreatePaymentResult,
    PaymentQueryResult, PaymentStatus, WebhookResult, ConnectionTestResult
)

logger = logging.getLogger(__name__)


class TarjetaAdapter(BasePaymentAdapter):

    name = "tarjeta"

    def __init__(self, app_url: str, timeout: float = 15.0):
        super().__init__(timeout=timeout)
        self.app_url = app_url.rstrip("/")

    def test_connection(self, config: GatewayConfig) -> ConnectionTestResult:
        if config.api_key or config.public_key:
            return ConnectionTestResult(True, "Configuración de tarjeta válida")
        return ConnectionTestResult(False, "Faltan credenciales de API")

    def create_payment(self, config: GatewayConfig, data: CreatePaymentData) -> CreatePaymentResult:
        if not (config.api_key or config.public_key):
            return CreatePaymentResult(
                success=False,
                external_reference=data.order_number,
                error_message="Faltan credenciales de API del procesador de tarjetas",
            )
        return CreatePaymentResult(
            success=True,
            checkout_url=f"{self.app_url}/checkout/card-payment/{data.order_id}",
            external_reference=data.order_number,
            metadata={
                'message': 'Procesador de tarjeta - Requiere implementación específica',
                'amount': data.amount,
                'currency': data.currency,
            },
        )

    def query_payment(self, config: GatewayConfig, external_id: str) -> PaymentQueryResult:
        return PaymentQueryResult(
            success=True,
            status=PaymentStatus.PENDING,
            external_id=external_id,
            metadata={'message': 'Consulta de estado requiere implementación del procesador'},
        )

    def process_webhook(self, config: GatewayConfig, payload: Any) -> WebhookResult:
        return WebhookResult(success=False, message="Webhooks de tarjeta no implementados")
