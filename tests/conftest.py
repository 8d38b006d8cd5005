import pytest

from pasoapaso.main import create_app
from pasoapaso.models import db as _db, Order, OrderItem, PaymentGateway
from pasoapaso.models import mercadopago_adapter


@pytest.fixture
def app():
    app = create_app({
        "TESTING": True,
        "SQLALCHEMY_DATABASE_URI": "sqlite://",
    })
    with app.app_context():
        _db.create_all()
        yield app
        _db.session.remove()
        _db.drop_all()


@pytest.fixture
def client(app):
    return app.test_client()


@pytest.fixture
def registry(app):
    return app.extensions["payment_gateways"]


@pytest.fixture
def payment_service(app):
    return app.extensions["payment_service"]


@pytest.fixture
def webhook_service(app):
    return app.extensions["webhook_service"]


@pytest.fixture
def make_order(app):
    counter = {"n": 0}

    def _make(usuario_id="cliente-1", **fields):
        counter["n"] += 1
        items = fields.pop("items", None) or [
            {"product_id": "zap-1", "nombre": "Zapatilla Runner", "cantidad": 2, "talle": 40, "color": "negro", "precio_unitario": 150000},
            {"product_id": "zap-2", "nombre": "Bota Cuero", "cantidad": 1, "talle": 38, "precio_unitario": 320000},
        ]
        order = Order(
            numero_orden=fields.pop("numero_orden", f"ORD-{1000 + counter['n']}"),
            usuario_id=usuario_id,
            total=sum(i["cantidad"] * i["precio_unitario"] for i in items),
            **fields,
        )
        order.items = [OrderItem(**i) for i in items]
        _db.session.add(order)
        _db.session.commit()
        return order

    return _make


@pytest.fixture
def make_gateway(app):
    def _make(provider="TRANSFERENCIA", config=None, **fields):
        gateway = PaymentGateway(
            name=fields.pop("name", provider.title()),
            provider=provider,
            config=config if config is not None else {},
            **fields,
        )
        _db.session.add(gateway)
        _db.session.commit()
        return gateway

    return _make


BANK_CONFIG = {
    "cuentaBancaria": "123-456789/0",
    "cbu": "0170123400000012345678",
    "alias": "PASO.A.PASO.SHOES",
    "banco": "Banco Galicia",
    "cuit": "30-71234567-8",
}


class FakeMercadoPago:
    """Substitui mercadopago.SDK; respostas configuráveis por teste."""

    def __init__(self):
        self.preference_response = {
            "status": 201,
            "response": {
                "id": "pref-123",
                "init_point": "https://www.mercadopago.com.ar/checkout/v1/redirect?pref_id=pref-123",
                "sandbox_init_point": "https://sandbox.mercadopago.com.ar/checkout/v1/redirect?pref_id=pref-123",
            },
        }
        self.payments = {}
        self.methods_response = {"status": 200, "response": [{"id": "visa"}]}
        self.error = None
        self.created = []
        self.tokens = []

    def __call__(self, access_token, request_options=None):
        self.tokens.append(access_token)
        return self

    def _maybe_raise(self):
        if self.error is not None:
            raise self.error

    def preference(self):
        fake = self

        class _Preference:
            def create(self, body, request_options=None):
                fake._maybe_raise()
                fake.created.append(body)
                return fake.preference_response

        return _Preference()

    def payment(self):
        fake = self

        class _Payment:
            def get(self, payment_id, request_options=None):
                fake._maybe_raise()
                if payment_id not in fake.payments:
                    return {"status": 404, "response": {"message": "Payment not found"}}
                return {"status": 200, "response": fake.payments[payment_id]}

        return _Payment()

    def payment_methods(self):
        fake = self

        class _Methods:
            def list_all(self, request_options=None):
                fake._maybe_raise()
                return fake.methods_response

        return _Methods()


@pytest.fixture
def fake_mp(monkeypatch):
    fake = FakeMercadoPago()
    monkeypatch.setattr(mercadopago_adapter.mercadopago, "SDK", fake)
    return fake


def auth_headers(user_id="cliente-1", role="CLIENTE"):
    return {"X-User-Id": user_id, "X-User-Role": role}
