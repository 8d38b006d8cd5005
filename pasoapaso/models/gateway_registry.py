"""
Registro de adaptadores de pagamento.
Mapeia cada provedor para exatamente um adaptador; montado uma vez no
create_app e injetado nos serviços (não é estado global de módulo).
"""

from typing import Dict, List, Any, Union
import logging

from pasoapaso.errors import ConfigurationError
from pasoapaso.models.gateway_base import BasePaymentAdapter, GatewayProvider

logger = logging.getLogger(__name__)


class PaymentGatewayRegistry:
    """
    Registro provedor -> adaptador.

    Vários provedores podem apontar para a mesma instância (crédito e
    débito compartilham o adaptador de cartão). O registro é feito antes
    de o app aceitar requisições e não é protegido por lock.
    """

    def __init__(self):
        self.adapters: Dict[GatewayProvider, BasePaymentAdapter] = {}

    @staticmethod
    def _key(provider: Union[GatewayProvider, str]) -> GatewayProvider:
        if isinstance(provider, GatewayProvider):
            return provider
        try:
            return GatewayProvider(str(provider).upper())
        except ValueError:
            raise ConfigurationError(f"Provedor desconhecido: {provider}")

    def register(self, provider: Union[GatewayProvider, str], adapter: BasePaymentAdapter) -> None:
        """
        Registra (ou sobrescreve) o adaptador de um provedor.

        Args:
            provider: Identificador do provedor
            adapter: Instância do adaptador
        """
        key = self._key(provider)
        if key in self.adapters:
            logger.warning(f"Adaptador de {key.value} sobrescrito")
        self.adapters[key] = adapter
        logger.info(f"Adaptador {adapter.name} registrado para {key.value}")

    def get_adapter(self, provider: Union[GatewayProvider, str]) -> BasePaymentAdapter:
        """
        Obtém o adaptador de um provedor.

        Raises:
            ConfigurationError: se o provedor nunca foi registrado
        """
        key = self._key(provider)
        adapter = self.adapters.get(key)
        if adapter is None:
            logger.error(f"Nenhum adaptador registrado para {key.value}")
            raise ConfigurationError(f"No adapter registered for provider: {key.value}")
        return adapter

    def has_adapter(self, provider: Union[GatewayProvider, str]) -> bool:
        try:
            key = self._key(provider)
        except ConfigurationError:
            return False
        return key in self.adapters

    def list_adapters(self) -> List[Dict[str, Any]]:
        return [
            {
                'provider': provider.value,
                'info': adapter.get_adapter_info(),
            }
            for provider, adapter in self.adapters.items()
        ]


def build_default_registry(app_url: str, api_url: str, timeout: float = 15.0) -> PaymentGatewayRegistry:
    """Monta o registro com todos os adaptadores suportados."""
    from pasoapaso.models.mercadopago_adapter import MercadoPagoAdapter
    from pasoapaso.models.transferencia_adapter import TransferenciaAdapter
    from pasoapaso.models.tarjeta_adapter import TarjetaAdapter

    registry = PaymentGatewayRegistry()
    registry.register(
        GatewayProvider.MERCADOPAGO,
        MercadoPagoAdapter(app_url=app_url, api_url=api_url, timeout=timeout),
    )
    registry.register(GatewayProvider.TRANSFERENCIA, TransferenciaAdapter())

    # crédito e débito usam o mesmo adaptador por enquanto
    tarjeta = TarjetaAdapter(app_url=app_url)
    registry.register(GatewayProvider.TARJETA_CREDITO, tarjeta)
    registry.register(GatewayProvider.TARJETA_DEBITO, tarjeta)
    return registry
