# pasoapaso/errors.py
"""
Taxonomia de erros do núcleo de pagamentos/entregas.

Erros de regra de negócio sobem até a fronteira HTTP e viram 4xx;
erros de provedor ficam dentro dos adaptadores (viram resultado com
success=False) e nunca atravessam a interface do adaptador.
"""

import logging
from typing import Any, Dict, Optional

from flask import jsonify

logger = logging.getLogger(__name__)


class PaymentCoreError(Exception):
    """Base de todos os erros do núcleo."""

    status_code = 500

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.message = message
        if status_code is not None:
            self.status_code = status_code

    def to_dict(self) -> Dict[str, Any]:
        return {"success": False, "error": self.message}


class ConfigurationError(PaymentCoreError):
    """Falha de implantação (ex.: provedor sem adaptador registrado)."""

    status_code = 500


class ValidationError(PaymentCoreError):
    status_code = 400

    def __init__(self, message: str, field: Optional[str] = None):
        super().__init__(message)
        self.field = field

    def to_dict(self) -> Dict[str, Any]:
        data = super().to_dict()
        if self.field:
            data["field"] = self.field
        return data


class StateConflictError(PaymentCoreError):
    """Transição proibida pelas regras de negócio."""

    status_code = 409


class OrderNotFoundError(StateConflictError):
    status_code = 404


class NotFoundError(PaymentCoreError):
    """Cadastro inexistente (pasarela, regra)."""

    status_code = 404


class ExternalProviderError(PaymentCoreError):
    """Falha de rede/timeout/non-2xx do provedor. Nunca sai do adaptador."""

    status_code = 502

    def __init__(self, message: str, retryable: bool = False):
        super().__init__(message)
        self.retryable = retryable


class WebhookParseError(PaymentCoreError):
    status_code = 400


def register_error_handlers(app):
    @app.errorhandler(PaymentCoreError)
    def _handle_core_error(err: PaymentCoreError):
        if err.status_code >= 500:
            logger.error(f"{type(err).__name__}: {err.message}")
        return jsonify(err.to_dict()), err.status_code
