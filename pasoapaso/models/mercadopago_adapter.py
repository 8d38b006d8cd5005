"""
Adaptador para o Mercado Pago (checkout hospedado via preferências).
Usa o SDK oficial; o webhook só serve de gatilho e o status real é
sempre reconsultado na API.
"""

from typing import Dict, Any, Optional
import logging

import mercadopago
from mercadopago.config import RequestOptions

from pasoapaso.errors import ExternalProviderError, WebhookParseError
from pasoapaso.models.gateway_base import (
    BasePaymentAdapter, GatewayConfig, CreatePaymentData, CreatePaymentResult,
    PaymentQueryResult, PaymentStatus, WebhookResult, ConnectionTestResult
)
from pasoapaso.utils.money import cents_to_amount, amount_to_cents

logger = logging.getLogger(__name__)

STATUS_MAP = {
    'pending': PaymentStatus.PENDING,
    'approved': PaymentStatus.SUCCESS,
    'authorized': PaymentStatus.SUCCESS,
    'in_process': PaymentStatus.PROCESSING,
    'in_mediation': PaymentStatus.PROCESSING,
    'rejected': PaymentStatus.FAILED,
    'cancelled': PaymentStatus.CANCELLED,
    'refunded': PaymentStatus.REFUNDED,
    'charged_back': PaymentStatus.REFUNDED,
}


class MercadoPagoAdapter(BasePaymentAdapter):

    name = "mercadopago"

    def __init__(self, app_url: str, api_url: str, timeout: float = 15.0):
        super().__init__(timeout=timeout)
        self.app_url = app_url.rstrip("/")
        self.api_url = api_url.rstrip("/")

    def _sdk(self, config: GatewayConfig):
        if not config.api_key:
            raise ExternalProviderError("Access token do Mercado Pago ausente")
        # sem retry interno: quem decide repetir é o cliente, refazendo o checkout
        options = RequestOptions(connection_timeout=self.timeout, max_retries=1)
        return mercadopago.SDK(config.api_key, request_options=options)

    @staticmethod
    def _unwrap(result: Optional[Dict[str, Any]], context: str) -> Dict[str, Any]:
        """Extrai `response` do retorno do SDK ou levanta erro em non-2xx."""
        result = result or {}
        status = int(result.get("status") or 0)
        body = result.get("response") or {}
        if not 200 <= status < 300:
            detail = body.get("message") if isinstance(body, dict) else body
            raise ExternalProviderError(
                f"{context}: HTTP {status} ({detail or 'sem detalhe'})",
                retryable=status >= 500 or status == 429,
            )
        return body

    def test_connection(self, config: GatewayConfig) -> ConnectionTestResult:
        try:
            self._unwrap(self._sdk(config).payment_methods().list_all(), "Teste de conexão")
            return ConnectionTestResult(True, "Conexión exitosa con MercadoPago")
        except Exception as e:
            err = self._provider_error(e, "Teste de conexão")
            logger.warning(f"Falha ao testar conexão com Mercado Pago: {err.message}")
            return ConnectionTestResult(False, f"Error de conexión: {err.message}")

    def _build_preference(self, data: CreatePaymentData) -> Dict[str, Any]:
        if data.items:
            items = [
                {
                    'id': item.id,
                    'title': item.title,
                    'quantity': item.quantity,
                    'unit_price': cents_to_amount(item.unit_price),
                    'currency_id': data.currency,
                }
                for item in data.items
            ]
        else:
            items = [{
                'title': data.description,
                'quantity': 1,
                'unit_price': cents_to_amount(data.amount),
                'currency_id': data.currency,
            }]

        return {
            'items': items,
            'payer': {
                'email': data.customer_email,
                'name': data.customer_name,
            },
            'back_urls': {
                'success': f"{self.app_url}/checkout/success",
                'failure': f"{self.app_url}/checkout/failure",
                'pending': f"{self.app_url}/checkout/pending",
            },
            'auto_return': 'approved',
            'external_reference': data.order_number,
            'notification_url': f"{self.api_url}/api/webhooks/mercadopago",
            'metadata': {**data.metadata, 'order_id': data.order_id},
        }

    def create_payment(self, config: GatewayConfig, data: CreatePaymentData) -> CreatePaymentResult:
        try:
            sdk = self._sdk(config)
            body = self._unwrap(
                sdk.preference().create(self._build_preference(data)),
                "Criação de preferência",
            )
            checkout_url = body.get('init_point')
            if not config.is_production and body.get('sandbox_init_point'):
                checkout_url = body['sandbox_init_point']
            if not checkout_url:
                raise ExternalProviderError("Resposta do Mercado Pago sem init_point")

            logger.info(f"Preferência {body.get('id')} criada para o pedido {data.order_number}")
            return CreatePaymentResult(
                success=True,
                checkout_url=checkout_url,
                external_id=str(body.get('id')) if body.get('id') is not None else None,
                external_reference=data.order_number,
                metadata={
                    'preferenceId': body.get('id'),
                    'initPoint': body.get('init_point'),
                    'sandboxInitPoint': body.get('sandbox_init_point'),
                },
            )
        except Exception as e:
            err = self._provider_error(e, "Error creando pago en MercadoPago")
            logger.error(f"Falha ao criar pagamento do pedido {data.order_number}: {err.message}")
            return CreatePaymentResult(
                success=False,
                external_reference=data.order_number,
                error_message=err.message,
                retryable=err.retryable,
            )

    def query_payment(self, config: GatewayConfig, external_id: str) -> PaymentQueryResult:
        try:
            body = self._unwrap(self._sdk(config).payment().get(external_id), "Consulta de pagamento")
            raw_status = str(body.get('status') or '').lower()
            status = STATUS_MAP.get(raw_status, PaymentStatus.PENDING)
            amount = body.get('transaction_amount')
            return PaymentQueryResult(
                success=True,
                status=status,
                external_id=str(body.get('id') or external_id),
                amount=amount_to_cents(amount) if amount is not None else None,
                metadata={
                    'paymentId': str(body.get('id') or external_id),
                    'externalReference': body.get('external_reference'),
                    'providerStatus': raw_status,
                    'statusDetail': body.get('status_detail'),
                },
            )
        except Exception as e:
            err = self._provider_error(e, "Error consultando pago")
            logger.warning(f"Falha ao consultar pagamento {external_id}: {err.message}")
            return PaymentQueryResult(
                success=False,
                status=PaymentStatus.FAILED,
                external_id=external_id,
                error_message=err.message,
                retryable=err.retryable,
            )

    @staticmethod
    def _parse_notification(payload: Any):
        """
        Extrai (tipo, id) dos formatos de notificação do Mercado Pago:
          {"type": "payment", "data": {"id": "123"}}
          {"topic": "payment", "id": "123"}
          {"topic": "payment", "resource": ".../v1/payments/123"}
          {"action": "payment.updated", "data": {"id": "123"}}
          ?type=payment&data.id=123   (query string, já mesclada no payload)
        """
        if not isinstance(payload, dict):
            raise WebhookParseError("Payload de webhook não é um objeto JSON")

        event_type = payload.get('type') or payload.get('topic')
        if not event_type and payload.get('action'):
            event_type = str(payload['action']).split('.', 1)[0]
        event_type = str(event_type or '').strip().lower()
        data = payload.get('data')
        payment_id = None
        if isinstance(data, dict) and data.get('id') is not None:
            payment_id = data.get('id')
        elif payload.get('data.id') is not None:
            payment_id = payload.get('data.id')
        elif payload.get('id') is not None:
            payment_id = payload.get('id')
        elif payload.get('resource'):
            payment_id = str(payload['resource']).rstrip('/').rsplit('/', 1)[-1]

        payment_id = str(payment_id).strip() if payment_id is not None else ''
        return event_type, payment_id

    def process_webhook(self, config: GatewayConfig, payload: Any) -> WebhookResult:
        try:
            event_type, payment_id = self._parse_notification(payload)
            if event_type != 'payment':
                return WebhookResult(success=False, message=f"Evento ignorado: {event_type or 'sem tipo'}")
            if not payment_id:
                return WebhookResult(success=False, message="Notificação sem id de pagamento")

            # não confiamos em valores do payload: reconsulta a API
            query = self.query_payment(config, payment_id)
            if not query.success:
                return WebhookResult(
                    success=False,
                    external_id=payment_id,
                    message=query.error_message,
                )
            return WebhookResult(
                success=True,
                external_id=payment_id,
                status=query.status,
                metadata=query.metadata,
            )
        except WebhookParseError as e:
            logger.warning(f"Webhook do Mercado Pago inválido: {e.message}")
            return WebhookResult(success=False, message=e.message)
        except Exception as e:
            logger.error(f"Erro ao processar webhook do Mercado Pago: {e}")
            return WebhookResult(success=False, message=str(e))
