import pytest
from fastapi.testclient import TestClient

from galerium.config import Settings
from galerium.db import Database
from galerium.gateway import GatewayError
from galerium.main import create_app
from galerium.models import User


class FakeGateway:
    """Records what would have been sent to Mercado Pago."""

    def __init__(self):
        self.preferences = []
        self.created_payments = []
        self.fetched = []
        self.payments = {}
        self.fail = False

    def create_preference(self, data):
        if self.fail:
            raise GatewayError("Mercado Pago create_preference failed", status=500)
        self.preferences.append(data)
        return {
            "id": "pref-123",
            "init_point": "https://www.mercadopago.com.br/checkout/v1/redirect?pref_id=pref-123",
            "sandbox_init_point": "https://sandbox.mercadopago.com.br/checkout/v1/redirect?pref_id=pref-123",
        }

    def create_payment(self, data):
        if self.fail:
            raise GatewayError("Mercado Pago create_payment failed", status=500)
        self.created_payments.append(data)
        return {
            "id": 555,
            "status": "pending",
            "point_of_interaction": {
                "transaction_data": {
                    "qr_code": "00020126580014br.gov.bcb.pix",
                    "qr_code_base64": "iVBORw0KGgo=",
                    "ticket_url": "https://www.mercadopago.com.br/payments/555/ticket",
                }
            },
        }

    def get_payment(self, payment_id):
        self.fetched.append(payment_id)
        if self.fail:
            raise GatewayError("Mercado Pago get_payment failed", status=500)
        return self.payments[str(payment_id)]


@pytest.fixture
def settings():
    return Settings(
        env="test",
        database_url="sqlite://",
        jwt_secret="test-secret",
        backend_url="http://api.test",
    )


@pytest.fixture
def database(settings):
    db = Database(settings.database_url)
    db.init()
    yield db
    db.dispose()


@pytest.fixture
def gateway():
    return FakeGateway()


@pytest.fixture
def app(settings, database, gateway):
    return create_app(settings, database=database, gateway=gateway)


@pytest.fixture
def client(app):
    with TestClient(app) as c:
        yield c


@pytest.fixture
def session(database):
    s = database.SessionLocal()
    yield s
    s.close()


@pytest.fixture
def register(client):
    def _register(email="ana@example.com", password="secret123", name="Ana Souza"):
        resp = client.post("/api/auth/register", json={"email": email, "password": password, "name": name})
        assert resp.status_code == 201, resp.text
        return resp.json()

    return _register


@pytest.fixture
def auth_headers(register):
    body = register()
    return {"Authorization": f"Bearer {body['token']}"}


@pytest.fixture
def make_user(session):
    def _make_user(user_id, email=None, name="Webhook User"):
        user = User(id=user_id, email=email or f"{user_id.lower()}@example.com", password_hash="x", name=name)
        session.add(user)
        session.commit()
        return user

    return _make_user
