import pytest

from pasoapaso.errors import ValidationError, StateConflictError, NotFoundError
from pasoapaso.models import db, PaymentGateway, PaymentGatewayRule
from pasoapaso.services import gateway_service
from pasoapaso.services.payment_service import calculate_final_price
from tests.conftest import BANK_CONFIG


def test_list_gateways_orders_by_priority(make_gateway):
    make_gateway("TRANSFERENCIA", BANK_CONFIG, name="Transfer", priority=1)
    make_gateway("MERCADOPAGO", {"apiKey": "t"}, name="MP", priority=5)
    make_gateway("TARJETA_CREDITO", {}, name="Off", active=False)

    names = [g['name'] for g in gateway_service.list_gateways(active_only=True)]
    assert names == ["MP", "Transfer"]
    assert len(gateway_service.list_gateways()) == 3


def test_serialized_gateway_hides_config(make_gateway):
    gateway = make_gateway("MERCADOPAGO", {"apiKey": "APP_USR-secreto"})
    data = gateway_service.serialize_gateway(gateway)
    assert "config" not in data
    assert data['configured'] is True
    assert "APP_USR-secreto" not in str(data)


# ---------- regras de preço ----------

def test_rules_apply_by_priority_on_running_price(make_gateway):
    gateway = make_gateway()
    gateway_service.create_rule(gateway.id, {"action": "DISCOUNT", "percent": 10, "priority": 1})
    gateway_service.create_rule(gateway.id, {
        "action": "CHARGE", "scopeType": "PRODUCT", "scopeId": "zap-1", "amount": 2000, "priority": 5,
    })

    price = calculate_final_price(100000, gateway, product_id="zap-1")

    # +2000 primeiro, depois 10% sobre 102000
    assert price['final_price'] == 91800
    assert [r['amount'] for r in price['applied_rules']] == [2000, -10200]
    assert [r['description'] for r in price['applied_rules']] == ["Cargo: 2000", "Descuento: 10%"]


def test_rule_amount_takes_precedence_over_percent(make_gateway):
    gateway = make_gateway()
    gateway_service.create_rule(gateway.id, {"action": "DISCOUNT", "amount": 500, "percent": 50})
    assert calculate_final_price(10000, gateway)['final_price'] == 9500


def test_rule_scopes(make_gateway):
    gateway = make_gateway()
    gateway_service.create_rule(gateway.id, {
        "action": "DISCOUNT", "scopeType": "CATEGORY", "scopeId": "botas", "percent": 5,
    })
    gateway_service.create_rule(gateway.id, {
        "action": "DISCOUNT", "scopeType": "PRODUCT", "scopeId": "zap-9", "amount": 1000,
    })

    assert calculate_final_price(10000, gateway, product_id="zap-1", category_id="botas")['final_price'] == 9500
    assert calculate_final_price(10000, gateway, product_id="zap-9")['final_price'] == 9000
    assert calculate_final_price(10000, gateway, product_id="zap-1")['final_price'] == 10000


def test_inactive_rule_is_ignored(make_gateway):
    gateway = make_gateway()
    rule = gateway_service.create_rule(gateway.id, {"action": "CHARGE", "percent": 20})
    gateway_service.update_rule(rule.id, {"active": False})
    price = calculate_final_price(10000, gateway)
    assert price['final_price'] == 10000
    assert price['applied_rules'] == []


def test_gateway_fees_apply_after_rules(make_gateway):
    gateway = make_gateway(fees_percent=10)
    gateway_service.create_rule(gateway.id, {"action": "DISCOUNT", "amount": 10000})
    price = calculate_final_price(100000, gateway)
    assert price['final_price'] == 99000
    assert price['gateway_fees']['total'] == 9000


def test_discount_larger_than_price_stops_at_zero(make_gateway):
    gateway = make_gateway(fees_percent=10)
    gateway_service.create_rule(gateway.id, {"action": "DISCOUNT", "amount": 50000})
    assert calculate_final_price(10000, gateway)['final_price'] == 0


def test_checkout_total_includes_rules(payment_service, make_order, make_gateway):
    gateway = make_gateway("TRANSFERENCIA", BANK_CONFIG)
    gateway_service.create_rule(gateway.id, {
        "action": "DISCOUNT", "scopeType": "PRODUCT", "scopeId": "zap-2", "amount": 20000,
    })
    order = make_order()

    result = payment_service.create_checkout_payment(gateway.id, order.id)

    # 2 x 150000 + 1 x (320000 - 20000)
    assert result['amount'] == 600000


@pytest.mark.parametrize("data,field", [
    ({"action": "REGALO", "percent": 5}, "action"),
    ({"action": "DISCOUNT", "scopeType": "MARCA", "percent": 5}, "scopeType"),
    ({"action": "DISCOUNT", "scopeType": "PRODUCT", "percent": 5}, "scopeId"),
    ({"action": "DISCOUNT"}, "amount"),
    ({"action": "DISCOUNT", "percent": 150}, "percent"),
    ({"action": "CHARGE", "amount": -1}, "amount"),
])
def test_invalid_rules_are_rejected(make_gateway, data, field):
    gateway = make_gateway()
    with pytest.raises(ValidationError) as exc:
        gateway_service.create_rule(gateway.id, data)
    assert exc.value.field == field
    assert PaymentGatewayRule.query.count() == 0


def test_global_rule_drops_scope_id(make_gateway):
    gateway = make_gateway()
    rule = gateway_service.create_rule(gateway.id, {"action": "CHARGE", "percent": 3, "scopeId": "zap-1"})
    assert rule.scope_type == "GLOBAL"
    assert rule.scope_id is None


def test_rule_update_and_delete(make_gateway):
    gateway = make_gateway()
    rule = gateway_service.create_rule(gateway.id, {"action": "CHARGE", "percent": 3})

    updated = gateway_service.update_rule(rule.id, {"percent": 4.5, "description": "Recargo cuotas"})
    assert updated.percent == 4.5
    assert calculate_final_price(10000, gateway)['applied_rules'][0]['description'] == "Recargo cuotas"

    with pytest.raises(ValidationError):
        gateway_service.update_rule(rule.id, {"percent": None})
    assert db.session.get(PaymentGatewayRule, rule.id).percent == 4.5

    gateway_service.delete_rule(rule.id)
    assert db.session.get(PaymentGatewayRule, rule.id) is None
    with pytest.raises(NotFoundError):
        gateway_service.delete_rule(rule.id)


# ---------- cadastro de pasarelas ----------

def test_create_gateway(app):
    gateway = gateway_service.create_gateway({
        "name": "Mercado Pago",
        "provider": "mercadopago",
        "mode": "production",
        "config": {"apiKey": "APP_USR-1"},
        "feesPercent": 4.99,
        "priority": 10,
    })
    assert gateway.provider == "MERCADOPAGO"
    assert gateway.mode == "PRODUCTION"
    assert gateway.fees_percent == 4.99
    assert gateway.active is True


@pytest.mark.parametrize("data,field", [
    ({"name": "X", "provider": "BITCOIN"}, "provider"),
    ({"name": "X", "provider": "STRIPE", "mode": "LIVE"}, "mode"),
    ({"name": "X", "provider": "STRIPE", "config": "apiKey=1"}, "config"),
    ({"name": "X", "provider": "STRIPE", "feesFixed": -1}, "feesFixed"),
])
def test_create_gateway_validation(app, data, field):
    with pytest.raises(ValidationError) as exc:
        gateway_service.create_gateway(data)
    assert exc.value.field == field
    assert PaymentGateway.query.count() == 0


def test_create_gateway_requires_name_and_provider(app):
    with pytest.raises(ValidationError):
        gateway_service.create_gateway({"provider": "STRIPE"})


def test_update_gateway_rolls_back_on_invalid_field(make_gateway):
    gateway = make_gateway(name="Transfer")
    with pytest.raises(ValidationError):
        gateway_service.update_gateway(gateway.id, {"name": "Nuevo", "mode": "LIVE"})
    assert db.session.get(PaymentGateway, gateway.id).name == "Transfer"

    gateway_service.update_gateway(gateway.id, {"active": False, "priority": 3})
    reloaded = db.session.get(PaymentGateway, gateway.id)
    assert reloaded.active is False
    assert reloaded.priority == 3


def test_delete_gateway_cascades_rules(make_gateway):
    gateway = make_gateway()
    gateway_service.create_rule(gateway.id, {"action": "CHARGE", "percent": 3})
    gateway_service.delete_gateway(gateway.id)
    assert PaymentGateway.query.count() == 0
    assert PaymentGatewayRule.query.count() == 0


def test_delete_gateway_with_payments_is_refused(payment_service, make_order, make_gateway):
    gateway = make_gateway("TRANSFERENCIA", BANK_CONFIG)
    payment_service.create_checkout_payment(gateway.id, make_order().id)
    with pytest.raises(StateConflictError):
        gateway_service.delete_gateway(gateway.id)
    assert db.session.get(PaymentGateway, gateway.id) is not None


def test_unknown_gateway_is_not_found(app):
    with pytest.raises(NotFoundError):
        gateway_service.update_gateway(999, {"active": False})
