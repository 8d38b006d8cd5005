"""
Ingestão de webhooks dos provedores de pagamento.

O webhook é tratado só como gatilho: o adaptador normaliza o payload
(reconsultando o provedor quando há API) e o status passa pelo mesmo
reticulado da orquestração. Nenhuma falha sobe para o transporte.
"""

from dataclasses import dataclass, asdict
from typing import Any, Dict, Optional
import logging

from pasoapaso.errors import WebhookParseError
from pasoapaso.models import db, Payment, PaymentGateway
from pasoapaso.models.gateway_base import GatewayConfig, GatewayProvider
from pasoapaso.models.gateway_registry import PaymentGatewayRegistry
from pasoapaso.services.payment_service import PaymentService

logger = logging.getLogger(__name__)


@dataclass
class WebhookOutcome:
    success: bool
    provider: Optional[str] = None
    external_id: Optional[str] = None
    status: Optional[str] = None
    payment_id: Optional[int] = None
    changed: bool = False
    message: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


class WebhookService:

    def __init__(self, registry: PaymentGatewayRegistry, payments: PaymentService):
        self.registry = registry
        self.payments = payments

    @staticmethod
    def _gateway_for(provider: GatewayProvider) -> Optional[PaymentGateway]:
        return (
            PaymentGateway.query
            .filter_by(provider=provider.value, active=True)
            .order_by(PaymentGateway.priority.desc(), PaymentGateway.id)
            .first()
        )

    @staticmethod
    def _find_payment(provider: GatewayProvider, external_id: Optional[str], metadata: Dict[str, Any]) -> Optional[Payment]:
        payment_ref = metadata.get('paymentId')
        if payment_ref:
            payment = Payment.query.filter_by(
                provider=provider.value, provider_payment_id=str(payment_ref)
            ).first()
            if payment is not None:
                return payment
        if external_id:
            payment = (
                Payment.query
                .filter_by(provider=provider.value, external_id=external_id)
                .order_by(Payment.id.desc())
                .first()
            )
            if payment is not None:
                return payment
        # a preferência do Mercado Pago tem id diferente do pagamento: cai na referência do pedido
        reference = metadata.get('externalReference')
        if reference:
            return (
                Payment.query
                .filter_by(provider=provider.value, external_reference=str(reference))
                .order_by(Payment.id.desc())
                .first()
            )
        return None

    def ingest(self, provider_segment: str, payload: Any) -> WebhookOutcome:
        """
        Processa uma notificação de provedor.

        Args:
            provider_segment: Segmento da URL ('mercadopago', 'tarjeta-credito', ...)
            payload: Corpo (já mesclado com a query string)

        Returns:
            WebhookOutcome: success=False em qualquer falha, sem mudar estado
        """
        try:
            return self._ingest(provider_segment, payload)
        except WebhookParseError as e:
            logger.warning(f"Webhook de {provider_segment} ignorado: {e.message}")
            return WebhookOutcome(success=False, provider=provider_segment, message=e.message)
        except Exception as e:
            db.session.rollback()
            logger.exception(f"Erro ao processar webhook de {provider_segment}: {e}")
            return WebhookOutcome(success=False, provider=provider_segment, message=str(e))

    def _ingest(self, provider_segment: str, payload: Any) -> WebhookOutcome:
        try:
            provider = GatewayProvider.from_path(provider_segment)
        except ValueError as e:
            raise WebhookParseError(str(e))

        if not self.registry.has_adapter(provider):
            raise WebhookParseError(f"Sem adaptador para {provider.value}")

        gateway = self._gateway_for(provider)
        if gateway is None:
            raise WebhookParseError(f"Nenhuma pasarela ativa para {provider.value}")

        adapter = self.registry.get_adapter(provider)
        config = GatewayConfig.from_dict(gateway.config, mode=gateway.mode)
        result = adapter.process_webhook(config, payload)
        if not result.success or result.status is None:
            logger.info(f"Webhook de {provider.value} sem efeito: {result.message}")
            return WebhookOutcome(
                success=False,
                provider=provider.value,
                external_id=result.external_id,
                message=result.message,
            )

        payment = self._find_payment(provider, result.external_id, result.metadata or {})
        if payment is None:
            logger.info(f"Pagamento não encontrado para {provider.value} externalId={result.external_id}")
            return WebhookOutcome(
                success=True,
                provider=provider.value,
                external_id=result.external_id,
                status=result.status.value,
                message="Pago no encontrado",
            )

        payment_ref = (result.metadata or {}).get('paymentId')
        if payment_ref and payment.provider_payment_id and payment.provider_payment_id != str(payment_ref):
            # outro pagamento da mesma preferência (ex.: recusado e depois aprovado)
            payment = self.payments.open_attempt(payment, str(payment_ref))

        changed = self.payments.apply_status(
            payment, result.status, metadata=result.metadata, from_webhook=True
        )
        return WebhookOutcome(
            success=True,
            provider=provider.value,
            external_id=result.external_id,
            status=result.status.value,
            payment_id=payment.id,
            changed=changed,
        )
