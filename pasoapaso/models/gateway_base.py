"""
Classe base abstrata para adaptadores de pasarelas de pagamento.
Define o contrato comum (test_connection, create_payment, query_payment,
process_webhook) que todo provedor deve implementar.
"""

from abc import ABC, abstractmethod
from typing import Dict, List, Any, Optional
from dataclasses import dataclass, field, fields
from enum import Enum
import logging

import requests

from pasoapaso.errors import ExternalProviderError

logger = logging.getLogger(__name__)


class GatewayProvider(str, Enum):
    """Provedores conhecidos (enum fechado)"""
    MERCADOPAGO = "MERCADOPAGO"
    TRANSFERENCIA = "TRANSFERENCIA"
    TARJETA_CREDITO = "TARJETA_CREDITO"
    TARJETA_DEBITO = "TARJETA_DEBITO"
    PAYPAL = "PAYPAL"
    STRIPE = "STRIPE"
    OTRO = "OTRO"

    @classmethod
    def from_path(cls, raw: str) -> "GatewayProvider":
        """Converte segmento de URL ('tarjeta-credito', 'mercadopago') no enum."""
        key = (raw or "").strip().upper().replace("-", "_")
        try:
            return cls(key)
        except ValueError:
            raise ValueError(f"Provedor desconhecido: {raw!r}")


class PaymentStatus(str, Enum):
    """Vocabulário normalizado de status de pagamento"""
    PENDING = "PENDING"
    PROCESSING = "PROCESSING"
    SUCCESS = "SUCCESS"
    FAILED = "FAILED"
    CANCELLED = "CANCELLED"
    REFUNDED = "REFUNDED"

    @property
    def rank(self) -> int:
        return _STATUS_RANK[self]

    @property
    def is_terminal(self) -> bool:
        return self in TERMINAL_STATUSES


# Reticulado: PENDING < PROCESSING < {SUCCESS, FAILED, CANCELLED} < REFUNDED
_STATUS_RANK = {
    PaymentStatus.PENDING: 0,
    PaymentStatus.PROCESSING: 1,
    PaymentStatus.SUCCESS: 2,
    PaymentStatus.FAILED: 2,
    PaymentStatus.CANCELLED: 2,
    PaymentStatus.REFUNDED: 3,
}

TERMINAL_STATUSES = frozenset({
    PaymentStatus.SUCCESS,
    PaymentStatus.FAILED,
    PaymentStatus.CANCELLED,
    PaymentStatus.REFUNDED,
})


def can_transition(current: PaymentStatus, new: PaymentStatus) -> bool:
    """
    Diz se um pagamento pode sair de `current` para `new`.

    Status iguais contam como atualização idempotente. Estados terminais
    só aceitam o estorno SUCCESS -> REFUNDED.
    """
    if current == new:
        return True
    if current.is_terminal:
        return current == PaymentStatus.SUCCESS and new == PaymentStatus.REFUNDED
    return new.rank > current.rank


@dataclass
class GatewayConfig:
    """Credenciais/configuração de um provedor. Chaves extras ficam em `extra`."""
    api_key: Optional[str] = None
    public_key: Optional[str] = None
    client_id: Optional[str] = None
    client_secret: Optional[str] = None
    webhook_secret: Optional[str] = None
    mode: str = "SANDBOX"
    extra: Dict[str, Any] = field(default_factory=dict)

    _ALIASES = {
        "apiKey": "api_key",
        "publicKey": "public_key",
        "clientId": "client_id",
        "clientSecret": "client_secret",
        "webhookSecret": "webhook_secret",
    }

    @classmethod
    def from_dict(cls, raw: Optional[Dict[str, Any]], mode: Optional[str] = None) -> "GatewayConfig":
        raw = dict(raw or {})
        known = {f.name for f in fields(cls)} - {"extra"}
        kwargs: Dict[str, Any] = {}
        extra: Dict[str, Any] = {}
        for key, value in raw.items():
            name = cls._ALIASES.get(key, key)
            if name in known:
                kwargs[name] = value
            else:
                extra[key] = value
        if mode:
            kwargs["mode"] = mode
        return cls(extra=extra, **kwargs)

    def get(self, key: str, default: Any = None) -> Any:
        name = self._ALIASES.get(key, key)
        if name != "extra" and name in {f.name for f in fields(self)}:
            value = getattr(self, name)
            return default if value is None else value
        return self.extra.get(key, default)

    @property
    def is_production(self) -> bool:
        return (self.mode or "").upper() == "PRODUCTION"


@dataclass
class PaymentItem:
    id: str
    title: str
    quantity: int
    unit_price: int  # centavos


@dataclass
class CreatePaymentData:
    """Dados para criar um pagamento. Valores em centavos."""
    amount: int
    currency: str
    description: str
    order_id: str
    order_number: str
    customer_email: Optional[str] = None
    customer_name: Optional[str] = None
    items: List[PaymentItem] = field(default_factory=list)
    metadata: Dict[str, Any] = field(default_factory=dict)


@dataclass
class CreatePaymentResult:
    success: bool
    external_reference: Optional[str] = None
    checkout_url: Optional[str] = None
    external_id: Optional[str] = None
    error_message: Optional[str] = None
    retryable: bool = False
    metadata: Dict[str, Any] = field(default_factory=dict)


@dataclass
class PaymentQueryResult:
    success: bool
    status: PaymentStatus
    external_id: Optional[str] = None
    amount: Optional[int] = None
    error_message: Optional[str] = None
    retryable: bool = False
    metadata: Dict[str, Any] = field(default_factory=dict)


@dataclass
class WebhookResult:
    success: bool
    external_id: Optional[str] = None
    status: Optional[PaymentStatus] = None
    message: Optional[str] = None
    metadata: Dict[str, Any] = field(default_factory=dict)


@dataclass
class ConnectionTestResult:
    success: bool
    message: str


class BasePaymentAdapter(ABC):
    """
    Classe base abstrata para todos os adaptadores de pagamento.

    Nenhuma operação deve deixar exceção escapar: falhas do provedor
    são normalizadas no objeto de resultado.
    """

    name = "base"

    def __init__(self, timeout: float = 15.0):
        self.timeout = timeout

    @abstractmethod
    def test_connection(self, config: GatewayConfig) -> ConnectionTestResult:
        """
        Valida se a configuração está minimamente correta/alcançável.

        Returns:
            ConnectionTestResult: success=False em qualquer falha
        """
        pass

    @abstractmethod
    def create_payment(self, config: GatewayConfig, data: CreatePaymentData) -> CreatePaymentResult:
        """
        Cria um checkout/preferência (ou instruções locais) para o pedido.

        Args:
            config: Credenciais do provedor
            data: Valor, moeda, itens e cliente

        Returns:
            CreatePaymentResult: checkout_url ou metadata['instructions']
        """
        pass

    @abstractmethod
    def query_payment(self, config: GatewayConfig, external_id: str) -> PaymentQueryResult:
        """
        Consulta síncrona do status atual de um pagamento.

        Provedores sem API de consulta devolvem PENDING com uma mensagem
        explicativa em metadata.
        """
        pass

    @abstractmethod
    def process_webhook(self, config: GatewayConfig, payload: Any) -> WebhookResult:
        """
        Interpreta uma notificação assíncrona do provedor.

        Payload malformado ou inesperado -> success=False, nunca exceção.
        """
        pass

    @staticmethod
    def _provider_error(e: Exception, context: str) -> ExternalProviderError:
        """Classifica uma exceção de transporte como ExternalProviderError."""
        if isinstance(e, ExternalProviderError):
            return e
        if isinstance(e, requests.exceptions.Timeout):
            return ExternalProviderError(f"{context}: tempo esgotado", retryable=True)
        if isinstance(e, requests.exceptions.ConnectionError):
            return ExternalProviderError(f"{context}: falha de conexão ({e})", retryable=True)
        return ExternalProviderError(f"{context}: {e}")

    def get_adapter_info(self) -> Dict[str, Any]:
        return {
            'name': self.name,
            'timeout': self.timeout,
        }
