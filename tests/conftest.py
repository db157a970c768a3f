from datetime import datetime, timedelta

import pytest

from recupera_bot.core.db import create_schema, create_session_factory, dispose
from recupera_bot.core.settings import Settings
from recupera_bot.ports.interfaces import Answered, EntregaDTO
from recupera_bot.repo.repo import Store


T0 = datetime(2026, 3, 2, 10, 0, 0)

SHOP_ADDRESS = "whatsapp:+14155238886"
ALERT_ADDRESS = "whatsapp:+34600000001"
CUSTOMER_ADDRESS = "whatsapp:+34666111222"
API_KEY = "key-tienda-sol"


class FakeGateway:
    def __init__(self, fail_to=(), raise_to=()):
        self.sent = []
        self.fail_to = set(fail_to)
        self.raise_to = set(raise_to)

    def send(self, from_address, to_address, body):
        self.sent.append((from_address, to_address, body))
        if to_address in self.raise_to:
            raise RuntimeError("connection reset")
        if to_address in self.fail_to:
            return EntregaDTO(ok=False, error_code="21610", error_detail="blocked")
        return EntregaDTO(ok=True, provider_message_id=f"SM{len(self.sent)}")

    def sent_to(self, address):
        return [body for _, to, body in self.sent if to == address]


class FakeAnswers:
    def __init__(self, outcome=None):
        self.outcome = outcome or Answered(text="ok")
        self.calls = []

    def answer(self, query, faq_corpus):
        self.calls.append((query, faq_corpus))
        return self.outcome


class Clock:
    def __init__(self, now=T0):
        self.now = now

    def __call__(self):
        return self.now

    def advance(self, **kwargs):
        self.now = self.now + timedelta(**kwargs)
        return self.now


@pytest.fixture
def settings(tmp_path):
    return Settings(
        _env_file=None,
        database_url=f"sqlite:///{tmp_path / 'recupera.db'}",
        twilio_account_sid="ACtest",
        twilio_auth_token="twilio-token",
        litellm_base_url="http://litellm.test",
        scheduler_enabled=False,
        background_workers=2,
        dashboard_base_url="https://painel.test",
    )


@pytest.fixture
def session_factory(settings):
    factory = create_session_factory(settings.database_url)
    create_schema(factory)
    yield factory
    dispose(factory)


@pytest.fixture
def store(session_factory):
    return Store(session_factory)


@pytest.fixture
def tenant(store):
    return store.create_tenant(
        name="Tienda Sol",
        messaging_address=SHOP_ADDRESS,
        alert_address=ALERT_ADDRESS,
        faq_text="Shipping takes 3 days",
        api_key=API_KEY,
    )


@pytest.fixture
def clock():
    return Clock()


@pytest.fixture
def gateway():
    return FakeGateway()
