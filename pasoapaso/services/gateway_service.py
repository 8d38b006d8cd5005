"""
Cadastro de pasarelas de pagamento e das regras de preço de cada uma.

A config (credenciais) é gravada como veio e nunca volta nas respostas.
"""

from typing import Any, Dict, List, Optional
import logging

from pasoapaso.errors import ValidationError, StateConflictError, NotFoundError
from pasoapaso.models import db, PaymentGateway, PaymentGatewayRule, Payment, RuleScope, RuleAction
from pasoapaso.models.gateway_base import GatewayProvider

logger = logging.getLogger(__name__)

MODES = ("SANDBOX", "PRODUCTION")


def serialize_rule(r: PaymentGatewayRule) -> Dict[str, Any]:
    return {
        'id': r.id,
        'gatewayId': r.gateway_id,
        'scopeType': r.scope_type,
        'scopeId': r.scope_id,
        'action': r.action,
        'amount': r.amount,
        'percent': r.percent,
        'priority': r.priority,
        'description': r.description,
        'active': r.active,
    }


def serialize_gateway(g: PaymentGateway) -> Dict[str, Any]:
    return {
        'id': g.id,
        'name': g.name,
        'provider': g.provider,
        'mode': g.mode,
        'feesFixed': g.fees_fixed,
        'feesPercent': g.fees_percent,
        'active': g.active,
        'priority': g.priority,
        'configured': bool(g.config),
        'rules': [serialize_rule(r) for r in g.rules],
    }


def list_gateways(active_only: bool = False) -> List[Dict[str, Any]]:
    query = PaymentGateway.query
    if active_only:
        query = query.filter_by(active=True)
    rows = query.order_by(PaymentGateway.priority.desc(), PaymentGateway.id).all()
    return [serialize_gateway(g) for g in rows]


def _get(gateway_id: int) -> PaymentGateway:
    gateway = db.session.get(PaymentGateway, gateway_id)
    if not gateway:
        raise NotFoundError("Pasarela de pago no encontrada")
    return gateway


def _int(data: Dict[str, Any], key: str, default: int = 0, minimum: Optional[int] = None) -> int:
    value = data.get(key, default)
    if isinstance(value, bool):
        raise ValidationError(f"Valor inválido: {key}", field=key)
    try:
        number = int(value)
    except (TypeError, ValueError):
        raise ValidationError(f"Valor inválido: {key}", field=key)
    if minimum is not None and number < minimum:
        raise ValidationError(f"Valor fuera de rango: {key}", field=key)
    return number


def _percent(data: Dict[str, Any], key: str) -> float:
    value = data.get(key)
    if isinstance(value, bool):
        raise ValidationError(f"Valor inválido: {key}", field=key)
    try:
        number = float(value)
    except (TypeError, ValueError):
        raise ValidationError(f"Valor inválido: {key}", field=key)
    if not 0 <= number <= 100:
        raise ValidationError(f"Valor fuera de rango: {key}", field=key)
    return number


def _apply_gateway_fields(gateway: PaymentGateway, data: Dict[str, Any]) -> None:
    if 'name' in data:
        name = str(data.get('name') or '').strip()
        if not name:
            raise ValidationError("El nombre es obligatorio", field="name")
        gateway.name = name[:120]
    if 'provider' in data:
        try:
            gateway.provider = GatewayProvider(str(data.get('provider') or '').strip().upper()).value
        except ValueError:
            raise ValidationError("Proveedor de pago inválido", field="provider")
    if 'mode' in data:
        mode = str(data.get('mode') or '').strip().upper()
        if mode not in MODES:
            raise ValidationError("Modo inválido", field="mode")
        gateway.mode = mode
    if 'config' in data:
        if not isinstance(data['config'], dict):
            raise ValidationError("La configuración debe ser un objeto", field="config")
        gateway.config = dict(data['config'])
    if 'feesFixed' in data:
        gateway.fees_fixed = _int(data, 'feesFixed', minimum=0)
    if 'feesPercent' in data:
        gateway.fees_percent = _percent(data, 'feesPercent')
    if 'priority' in data:
        gateway.priority = _int(data, 'priority')
    if 'active' in data:
        gateway.active = bool(data['active'])


def create_gateway(data: Dict[str, Any]) -> PaymentGateway:
    if not data.get('name') or not data.get('provider'):
        raise ValidationError("Nombre y proveedor son obligatorios")
    gateway = PaymentGateway(config={}, mode="SANDBOX")
    _apply_gateway_fields(gateway, data)
    db.session.add(gateway)
    db.session.commit()
    logger.info(f"Pasarela {gateway.id} criada ({gateway.provider}, {gateway.mode})")
    return gateway


def update_gateway(gateway_id: int, data: Dict[str, Any]) -> PaymentGateway:
    gateway = _get(gateway_id)
    try:
        _apply_gateway_fields(gateway, data)
    except ValidationError:
        db.session.rollback()
        raise
    db.session.commit()
    logger.info(f"Pasarela {gateway.id} atualizada: {sorted(k for k in data if k != 'config')}")
    return gateway


def delete_gateway(gateway_id: int) -> None:
    """
    Remove a pasarela e suas regras. Se já houver pagamentos ligados a
    ela, a remoção é recusada: desative-a em vez disso.
    """
    gateway = _get(gateway_id)
    if Payment.query.filter_by(gateway_id=gateway.id).first() is not None:
        raise StateConflictError("La pasarela tiene pagos registrados; desactívela en su lugar")
    db.session.delete(gateway)
    db.session.commit()
    logger.info(f"Pasarela {gateway_id} removida")


def _apply_rule_fields(rule: PaymentGatewayRule, data: Dict[str, Any]) -> None:
    if 'action' in data:
        try:
            rule.action = RuleAction(str(data.get('action') or '').strip().upper()).value
        except ValueError:
            raise ValidationError("Acción inválida", field="action")
    if 'scopeType' in data:
        try:
            rule.scope_type = RuleScope(str(data.get('scopeType') or '').strip().upper()).value
        except ValueError:
            raise ValidationError("Alcance inválido", field="scopeType")
    if 'scopeId' in data:
        raw = data['scopeId']
        rule.scope_id = (str(raw).strip() or None) if raw is not None else None
    if 'amount' in data:
        rule.amount = None if data['amount'] is None else _int(data, 'amount', minimum=0)
    if 'percent' in data:
        rule.percent = None if data['percent'] is None else _percent(data, 'percent')
    if 'priority' in data:
        rule.priority = _int(data, 'priority')
    if 'description' in data:
        rule.description = (str(data['description'] or '').strip()[:255]) or None
    if 'active' in data:
        rule.active = bool(data['active'])

    if rule.scope_type == RuleScope.GLOBAL.value:
        rule.scope_id = None
    elif not rule.scope_id:
        raise ValidationError("El alcance requiere scopeId", field="scopeId")
    if not rule.amount and not rule.percent:
        raise ValidationError("La regla requiere amount o percent", field="amount")


def create_rule(gateway_id: int, data: Dict[str, Any]) -> PaymentGatewayRule:
    gateway = _get(gateway_id)
    if not data.get('action'):
        raise ValidationError("La acción es obligatoria", field="action")
    rule = PaymentGatewayRule(scope_type=RuleScope.GLOBAL.value, priority=0, active=True)
    _apply_rule_fields(rule, data)
    gateway.rules.append(rule)
    db.session.commit()
    logger.info(
        f"Regra {rule.id} criada na pasarela {gateway.id}: {rule.action} "
        f"{rule.scope_type}:{rule.scope_id or '*'}"
    )
    return rule


def _get_rule(rule_id: int) -> PaymentGatewayRule:
    rule = db.session.get(PaymentGatewayRule, rule_id)
    if not rule:
        raise NotFoundError("Regla no encontrada")
    return rule


def update_rule(rule_id: int, data: Dict[str, Any]) -> PaymentGatewayRule:
    rule = _get_rule(rule_id)
    try:
        _apply_rule_fields(rule, data)
    except ValidationError:
        db.session.rollback()
        raise
    db.session.commit()
    logger.info(f"Regra {rule.id} atualizada")
    return rule


def delete_rule(rule_id: int) -> None:
    rule = _get_rule(rule_id)
    db.session.delete(rule)
    db.session.commit()
    logger.info(f"Regra {rule_id} removida")
