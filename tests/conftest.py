"""
Pytest configuration and shared fixtures.

Test environment variables are set here before any app import so the
cached settings pick them up. External services (Evolution API, OpenAI)
are replaced by recording fakes.
"""

import os

os.environ.setdefault("DATABASE_URL", "sqlite:///./test_whatsapp_vendas.db")
os.environ.setdefault("OPENAI_API_KEY", "test-openai-key")
os.environ.setdefault("EVOLUTION_API_URL", "http://evolution.test")
os.environ.setdefault("EVOLUTION_API_KEY", "test-evolution-key")
os.environ.setdefault("LOG_LEVEL", "WARNING")

from datetime import datetime
from decimal import Decimal
from types import SimpleNamespace

import pytest

# Clear settings cache before any app imports to ensure test env vars are used
from whatsapp_vendas.config import get_settings
get_settings.cache_clear()

from fastapi.testclient import TestClient

import whatsapp_vendas.models as models
from whatsapp_vendas.ai_engine import SalesAssistant
from whatsapp_vendas.gateway import SendResult
from whatsapp_vendas.main import app, get_assistant, get_gateway
from whatsapp_vendas.storage import Base, SessionLocal, engine
from whatsapp_vendas.utils import normalize_phone


ADMIN_PHONE = "5511988887777@s.whatsapp.net"
CUSTOMER_PHONE = "5511999998888@s.whatsapp.net"


class FakeGateway:
    """Records every outbound message instead of calling Evolution API."""

    def __init__(self):
        self.sent = []

    async def send_text(self, phone: str, text: str) -> SendResult:
        number = normalize_phone(phone)
        self.sent.append((number, text))
        return SendResult(ok=True, phone=number, status_code=201)

    async def aclose(self) -> None:
        pass


class FakeCompletions:
    """Stands in for `client.chat.completions` and records each request."""

    def __init__(self):
        self.calls = []
        self.responses = []
        self.error = None

    def queue_reply(self, content: str) -> None:
        self.responses.append(SimpleNamespace(content=content, tool_calls=None))

    def queue_tool_call(self, name: str, arguments: str) -> None:
        call = SimpleNamespace(
            id="call_1",
            type="function",
            function=SimpleNamespace(name=name, arguments=arguments),
        )
        self.responses.append(SimpleNamespace(content=None, tool_calls=[call]))

    async def create(self, **kwargs):
        self.calls.append(kwargs)
        if self.error is not None:
            raise self.error
        message = self.responses.pop(0) if self.responses else SimpleNamespace(
            content="Olá! Como posso ajudar? 😊", tool_calls=None
        )
        return SimpleNamespace(choices=[SimpleNamespace(message=message)])


class FakeOpenAI:
    def __init__(self):
        self.completions = FakeCompletions()
        self.chat = SimpleNamespace(completions=self.completions)


@pytest.fixture
def db():
    """Fresh tables and an open session for each test."""
    Base.metadata.create_all(bind=engine)
    session = SessionLocal()
    try:
        yield session
    finally:
        session.close()
        Base.metadata.drop_all(bind=engine)


@pytest.fixture
def fake_gateway():
    return FakeGateway()


@pytest.fixture
def fake_openai():
    return FakeOpenAI()


@pytest.fixture
def client(db, fake_gateway, fake_openai):
    """Test client with fake gateway and completion API."""
    with TestClient(app) as test_client:
        assistant = SalesAssistant(client=fake_openai, sessions=app.state.context.sessions)
        app.dependency_overrides[get_gateway] = lambda: fake_gateway
        app.dependency_overrides[get_assistant] = lambda: assistant
        try:
            yield test_client
        finally:
            app.dependency_overrides.clear()


# =============================================================================
# Seed helpers
# =============================================================================

def add_admin(db, phone: str = ADMIN_PHONE, active: bool = True):
    admin = models.Admin(phone=phone, active=active)
    db.add(admin)
    db.commit()
    return admin


def add_product(db, name: str, category: str, price: str, stock: int, **kwargs):
    product = models.Product(
        name=name,
        category=category,
        price=Decimal(price),
        stock=stock,
        active=kwargs.pop("active", True),
        updated_at=datetime.now(),
        **kwargs,
    )
    db.add(product)
    db.commit()
    db.refresh(product)
    return product


def add_order(db, number: str, total: str, status: str = models.ORDER_PENDING, items=(), created_at=None):
    order = models.Order(
        number=number,
        customer_name="Maria Silva",
        customer_phone="5511977776666",
        address="Rua A, 10",
        payment_method="PIX",
        subtotal=Decimal(total),
        delivery_fee=Decimal("0.00"),
        total=Decimal(total),
        status=status,
        created_at=created_at or datetime.now(),
    )
    for name, quantity, subtotal in items:
        order.items.append(
            models.OrderItem(
                product_name=name,
                quantity=quantity,
                unit_price=Decimal(subtotal) / quantity,
                subtotal=Decimal(subtotal),
            )
        )
    db.add(order)
    db.commit()
    return order


def add_config(db, key: str, value: str):
    db.add(models.ConfigEntry(key=key, value=value))
    db.commit()


def webhook_event(text: str = None, phone: str = CUSTOMER_PHONE, from_me: bool = False,
                  event: str = "messages.upsert", extended: bool = False) -> dict:
    message = {}
    if text is not None:
        if extended:
            message["extendedTextMessage"] = {"text": text}
        else:
            message["conversation"] = text
    return {
        "event": event,
        "data": {
            "key": {"remoteJid": phone, "fromMe": from_me},
            "message": message,
        },
    }
