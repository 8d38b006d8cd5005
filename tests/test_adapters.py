import pytest
import requests

from pasoapaso.models.gateway_base import (
    GatewayConfig, CreatePaymentData, PaymentItem, PaymentStatus
)
from pasoapaso.models.mercadopago_adapter import MercadoPagoAdapter
from pasoapaso.models.tarjeta_adapter import TarjetaAdapter
from pasoapaso.models.transferencia_adapter import TransferenciaAdapter
from tests.conftest import BANK_CONFIG


def _payment_data(**overrides):
    data = dict(
        amount=620000,
        currency="ARS",
        description="Orden #ORD-1",
        order_id="1",
        order_number="ORD-1",
        customer_email="cliente@example.com",
        customer_name="Ana Pérez",
        items=[PaymentItem(id="zap-1", title="Zapatilla Runner", quantity=2, unit_price=150000)],
    )
    data.update(overrides)
    return CreatePaymentData(**data)


@pytest.fixture
def mp_adapter():
    return MercadoPagoAdapter(app_url="https://tienda.test", api_url="https://api.tienda.test", timeout=12)


# ---------- transferencia ----------

def test_transfer_instructions_carry_bank_data():
    adapter = TransferenciaAdapter()
    config = GatewayConfig.from_dict(BANK_CONFIG)

    assert adapter.test_connection(config).success is True
    result = adapter.create_payment(config, _payment_data())

    assert result.success is True
    assert result.checkout_url is None
    assert result.external_reference == "ORD-1"
    instructions = result.metadata["instructions"]
    assert instructions["cbu"] == BANK_CONFIG["cbu"]
    assert instructions["alias"] == BANK_CONFIG["alias"]
    assert instructions["monto"] == 6200.0
    assert instructions["referencia"] == "ORD-1"


def test_transfer_missing_bank_data_fails_connection_test_but_not_create():
    adapter = TransferenciaAdapter()
    config = GatewayConfig.from_dict({"cbu": "0170"})

    check = adapter.test_connection(config)
    assert check.success is False
    assert "alias" in check.message

    result = adapter.create_payment(config, _payment_data())
    assert result.external_reference == "ORD-1"
    assert "instructions" in result.metadata


def test_transfer_query_and_webhook_are_manual():
    adapter = TransferenciaAdapter()
    config = GatewayConfig.from_dict(BANK_CONFIG)

    query = adapter.query_payment(config, "ORD-1")
    assert query.success is True
    assert query.status is PaymentStatus.PENDING
    assert "manualmente" in query.metadata["message"]
    assert adapter.process_webhook(config, {"anything": 1}).success is False


# ---------- tarjeta ----------

def test_card_adapter_returns_store_checkout_page():
    adapter = TarjetaAdapter(app_url="https://tienda.test/")
    config = GatewayConfig.from_dict({"publicKey": "pk_test"})

    assert adapter.test_connection(config).success is True
    result = adapter.create_payment(config, _payment_data())
    assert result.success is True
    assert result.checkout_url == "https://tienda.test/checkout/card-payment/1"


def test_card_adapter_without_credentials():
    adapter = TarjetaAdapter(app_url="https://tienda.test")
    config = GatewayConfig.from_dict({})

    assert adapter.test_connection(config).success is False
    result = adapter.create_payment(config, _payment_data())
    assert result.success is False
    assert result.error_message
    assert adapter.query_payment(config, "x").status is PaymentStatus.PENDING
    assert adapter.process_webhook(config, None).success is False


# ---------- mercadopago ----------

def test_mp_create_payment_builds_preference(fake_mp, mp_adapter):
    config = GatewayConfig.from_dict({"apiKey": "TEST-token"}, mode="SANDBOX")

    result = mp_adapter.create_payment(config, _payment_data())

    assert result.success is True
    assert result.external_id == "pref-123"
    assert result.checkout_url.startswith("https://sandbox.mercadopago.com.ar")
    assert fake_mp.tokens == ["TEST-token"]
    body = fake_mp.created[0]
    assert body["external_reference"] == "ORD-1"
    assert body["notification_url"] == "https://api.tienda.test/api/webhooks/mercadopago"
    assert body["items"][0]["unit_price"] == 1500.0
    assert body["metadata"]["order_id"] == "1"


def test_mp_production_uses_init_point(fake_mp, mp_adapter):
    config = GatewayConfig.from_dict({"apiKey": "APP-token"}, mode="PRODUCTION")
    result = mp_adapter.create_payment(config, _payment_data())
    assert result.checkout_url.startswith("https://www.mercadopago.com.ar")


def test_mp_without_token_returns_structured_failure(fake_mp, mp_adapter):
    config = GatewayConfig.from_dict({})

    assert mp_adapter.test_connection(config).success is False
    result = mp_adapter.create_payment(config, _payment_data())
    assert result.success is False
    assert "token" in result.error_message.lower()
    assert fake_mp.created == []


def test_mp_timeout_is_retryable_failure(fake_mp, mp_adapter):
    fake_mp.error = requests.exceptions.ReadTimeout("read timed out")
    config = GatewayConfig.from_dict({"apiKey": "TEST-token"})

    result = mp_adapter.create_payment(config, _payment_data())
    assert result.success is False
    assert result.retryable is True

    query = mp_adapter.query_payment(config, "123")
    assert query.success is False
    assert query.retryable is True


def test_mp_non_2xx_is_captured(fake_mp, mp_adapter):
    fake_mp.preference_response = {"status": 400, "response": {"message": "invalid items"}}
    config = GatewayConfig.from_dict({"apiKey": "TEST-token"})

    result = mp_adapter.create_payment(config, _payment_data())
    assert result.success is False
    assert "invalid items" in result.error_message
    assert result.retryable is False


@pytest.mark.parametrize("provider_status,expected", [
    ("approved", PaymentStatus.SUCCESS),
    ("in_process", PaymentStatus.PROCESSING),
    ("rejected", PaymentStatus.FAILED),
    ("cancelled", PaymentStatus.CANCELLED),
    ("charged_back", PaymentStatus.REFUNDED),
    ("something_new", PaymentStatus.PENDING),
])
def test_mp_query_maps_status(fake_mp, mp_adapter, provider_status, expected):
    fake_mp.payments["123"] = {
        "id": 123, "status": provider_status, "transaction_amount": 6200.5, "external_reference": "ORD-1",
    }
    result = mp_adapter.query_payment(GatewayConfig.from_dict({"apiKey": "t"}), "123")
    assert result.success is True
    assert result.status is expected
    assert result.amount == 620050
    assert result.metadata["externalReference"] == "ORD-1"


def test_mp_webhook_requeries_payment(fake_mp, mp_adapter):
    fake_mp.payments["123"] = {"id": 123, "status": "approved", "transaction_amount": 1}
    config = GatewayConfig.from_dict({"apiKey": "t"})

    result = mp_adapter.process_webhook(config, {"type": "payment", "data": {"id": "123"}, "amount": 999999})
    assert result.success is True
    assert result.external_id == "123"
    assert result.status is PaymentStatus.SUCCESS


def test_mp_webhook_accepts_legacy_topic_format(fake_mp, mp_adapter):
    fake_mp.payments["77"] = {"id": 77, "status": "pending"}
    config = GatewayConfig.from_dict({"apiKey": "t"})
    result = mp_adapter.process_webhook(config, {"topic": "payment", "resource": "https://api.mercadopago.com/v1/payments/77"})
    assert result.success is True
    assert result.status is PaymentStatus.PENDING


@pytest.mark.parametrize("payload", [
    None,
    "not-json",
    [],
    {},
    {"type": "merchant_order", "data": {"id": "1"}},
    {"type": "payment"},
    {"type": "payment", "data": {}},
])
def test_mp_webhook_tolerates_malformed_payloads(fake_mp, mp_adapter, payload):
    result = mp_adapter.process_webhook(GatewayConfig.from_dict({"apiKey": "t"}), payload)
    assert result.success is False


def test_mp_webhook_for_unknown_payment_fails_quietly(fake_mp, mp_adapter):
    result = mp_adapter.process_webhook(GatewayConfig.from_dict({"apiKey": "t"}), {"type": "payment", "data": {"id": "404"}})
    assert result.success is False
    assert result.external_id == "404"


def test_gateway_config_keeps_extra_keys():
    config = GatewayConfig.from_dict({"apiKey": "k", "cbu": "1", "alias": "a"}, mode="production")
    assert config.api_key == "k"
    assert config.get("apiKey") == "k"
    assert config.get("cbu") == "1"
    assert config.get("missing", "x") == "x"
    assert config.is_production is True
