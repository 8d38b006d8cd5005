# pasoapaso/signals.py
"""
Sinais consumidos pela camada em tempo real (WebSocket).
O núcleo só emite; a entrega aos clientes fica fora daqui.
"""

import logging

from blinker import Namespace

logger = logging.getLogger(__name__)

_signals = Namespace()

payment_created = _signals.signal("payment-created")
payment_status_changed = _signals.signal("payment-status-changed")
order_status_changed = _signals.signal("order-status-changed")
orders_refresh = _signals.signal("orders-refresh")


def emit(signal, sender, **kwargs):
    """Emite um sinal sem deixar um receptor com falha bloquear a operação."""
    try:
        signal.send(sender, **kwargs)
    except Exception as e:
        logger.warning(f"Evento {signal.name} não emitido: {e}")
