"""
Tests for order finalization.
"""

from datetime import datetime
from decimal import Decimal

import pytest

from conftest import CUSTOMER_PHONE, add_product
from whatsapp_vendas.models import Order, OrderItem, Product
from whatsapp_vendas.orders import OrderError, create_order, format_confirmation, next_order_number


@pytest.fixture
def products(db):
    return [
        add_product(db, "Pizza Calabresa", "Pizzas", "45.90", 10),
        add_product(db, "Coca-Cola 2L", "Bebidas", "12.00", 1),
        add_product(db, "Pizza Antiga", "Pizzas", "30.00", 5, active=False),
    ]


def place(db, items, **kwargs):
    params = dict(
        phone=CUSTOMER_PHONE,
        customer_name="João Souza",
        address="Rua das Flores, 123 - Centro - 01000-000",
        payment_method="PIX",
        items=items,
        delivery_fee=Decimal("5.00"),
    )
    params.update(kwargs)
    return create_order(db, **params)


class TestCreateOrder:

    def test_creates_order_and_decrements_stock(self, db, products):
        order = place(db, [{"produto_id": 1, "quantidade": 2}, {"produto_id": 2, "quantidade": 1}])

        assert order.subtotal == Decimal("103.80")
        assert order.total == Decimal("108.80")
        assert order.status == "pendente"
        assert order.customer_phone == "5511999998888"
        assert [(i.product_name, i.quantity) for i in order.items] == [
            ("Pizza Calabresa", 2),
            ("Coca-Cola 2L", 1),
        ]
        db.expire_all()
        assert db.get(Product, 1).stock == 8
        assert db.get(Product, 2).stock == 0

    def test_order_number_daily_sequence(self, db, products):
        first = place(db, [{"produto_id": 1, "quantidade": 1}])
        second = place(db, [{"produto_id": 1, "quantidade": 1}])

        prefix = datetime.now().strftime("%Y%m%d")
        assert first.number == f"{prefix}-0001"
        assert second.number == f"{prefix}-0002"
        assert next_order_number(db, datetime.now()) == f"{prefix}-0003"

    def test_duplicate_items_are_merged(self, db, products):
        order = place(db, [{"produto_id": 1, "quantidade": 1}, {"produto_id": 1, "quantidade": 2}])
        assert len(order.items) == 1
        assert order.items[0].quantity == 3

    @pytest.mark.parametrize("items, fragment", [
        ([{"produto_id": 2, "quantidade": 2}], "Estoque insuficiente"),
        ([{"produto_id": 3, "quantidade": 1}], "não está disponível"),
        ([{"produto_id": 99, "quantidade": 1}], "não está disponível"),
        ([{"produto_id": 1, "quantidade": 0}], "maior que zero"),
        ([{"produto_id": "x", "quantidade": 1}], "Não consegui identificar"),
        ([1, 2], "Não consegui identificar"),
        ([{"produto_id": 1, "quantidade": 2**40}], "Não consegui identificar"),
        ([], "vazio"),
    ])
    def test_rejected_without_writes(self, db, products, items, fragment):
        with pytest.raises(OrderError) as excinfo:
            place(db, items)

        assert fragment in str(excinfo.value)
        assert db.query(Order).count() == 0
        assert db.query(OrderItem).count() == 0
        db.expire_all()
        assert db.get(Product, 2).stock == 1

    def test_requires_name_and_address(self, db, products):
        with pytest.raises(OrderError):
            place(db, [{"produto_id": 1, "quantidade": 1}], address="  ")

    @pytest.mark.parametrize("field", ["customer_name", "address", "payment_method"])
    def test_non_text_customer_data_rejected(self, db, products, field):
        with pytest.raises(OrderError) as excinfo:
            place(db, [{"produto_id": 1, "quantidade": 1}], **{field: 123})

        assert "Não consegui entender" in str(excinfo.value)
        assert db.query(Order).count() == 0


class TestConfirmation:

    def test_format(self, db, products):
        order = place(db, [{"produto_id": 1, "quantidade": 1}])

        text = format_confirmation(order, "40-50 min")

        assert text.startswith("✅ *PEDIDO CONFIRMADO!*")
        assert f"#{order.number}" in text
        assert "📦 Itens: 1x Pizza Calabresa" in text
        assert "💰 Subtotal: R$ 45.90" in text
        assert "🚚 Taxa de entrega: R$ 5.00" in text
        assert "💵 *Total: R$ 50.90*" in text
        assert "💳 Pagamento: PIX" in text
        assert "⏰ Previsão: 40-50 min" in text
