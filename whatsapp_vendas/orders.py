"""
Order finalization: turns a confirmed chat order into pedidos/itens_pedido
rows and decrements stock.
"""

import logging
from datetime import datetime
from decimal import Decimal
from typing import Iterable, Mapping

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from whatsapp_vendas.models import MAX_INTEGER, ORDER_PENDING, Order, OrderItem, Product
from whatsapp_vendas.utils import format_money, phone_digits

logger = logging.getLogger(__name__)


class OrderError(Exception):
    """Order cannot be placed; the message is safe to show the customer."""


UNREADABLE_ITEMS = "❌ Não consegui identificar os itens do pedido. Pode repetir?"
UNREADABLE_ORDER = "❌ Não consegui entender os dados do pedido. Pode repetir?"


def _merge_items(items: Iterable[Mapping]) -> dict:
    merged: dict = {}
    for entry in items:
        if not isinstance(entry, Mapping):
            raise OrderError(UNREADABLE_ITEMS)
        try:
            product_id = int(entry.get("produto_id"))
            quantity = int(entry.get("quantidade"))
        except (TypeError, ValueError):
            raise OrderError(UNREADABLE_ITEMS)
        if product_id > MAX_INTEGER or quantity > MAX_INTEGER:
            raise OrderError(UNREADABLE_ITEMS)
        if quantity <= 0:
            raise OrderError("❌ A quantidade de cada item precisa ser maior que zero.")
        merged[product_id] = merged.get(product_id, 0) + quantity
    if not merged:
        raise OrderError("❌ O pedido está vazio. Quais produtos você deseja?")
    return merged


def next_order_number(db: Session, now: datetime) -> str:
    """Daily sequence: YYYYMMDD-NNNN."""
    prefix = now.strftime("%Y%m%d")
    count = db.query(Order).filter(Order.number.like(f"{prefix}-%")).count()
    return f"{prefix}-{count + 1:04d}"


def create_order(
    db: Session,
    phone: str,
    customer_name: str,
    address: str,
    payment_method: str,
    items: Iterable[Mapping],
    delivery_fee: Decimal = Decimal("0.00"),
) -> Order:
    """
    Validate and persist an order in a single transaction.

    Args:
        db: Database session
        phone: Canonical customer phone
        customer_name: Customer full name
        address: Delivery address
        payment_method: PIX, Dinheiro or Cartão
        items: [{"produto_id": int, "quantidade": int}, ...]
        delivery_fee: Store delivery fee

    Raises:
        OrderError: unknown/inactive product, bad quantity or missing stock;
            nothing is written in that case
        SQLAlchemyError: store failure (transaction rolled back)
    """
    for value in (customer_name, address, payment_method):
        if value is not None and not isinstance(value, str):
            raise OrderError(UNREADABLE_ORDER)
    if not (customer_name or "").strip() or not (address or "").strip():
        raise OrderError("❌ Para finalizar preciso do seu nome completo e do endereço de entrega.")

    quantities = _merge_items(items)
    products = {
        product.id: product
        for product in db.query(Product).filter(Product.id.in_(list(quantities))).all()
    }

    for product_id, quantity in quantities.items():
        product = products.get(product_id)
        if product is None or not product.active:
            raise OrderError(f"❌ Produto ID {product_id} não está disponível no catálogo.")
        if product.stock < quantity:
            raise OrderError(
                f"❌ Estoque insuficiente para {product.name} (ID {product_id}). "
                f"Disponível: {product.stock} un."
            )

    now = datetime.now()
    try:
        order = Order(
            number=next_order_number(db, now),
            customer_name=customer_name.strip(),
            customer_phone=phone_digits(phone),
            address=address.strip(),
            payment_method=(payment_method or "").strip(),
            delivery_fee=delivery_fee,
            status=ORDER_PENDING,
            created_at=now,
        )
        subtotal = Decimal("0.00")
        for product_id, quantity in quantities.items():
            product = products[product_id]
            line_total = Decimal(product.price) * quantity
            subtotal += line_total
            order.items.append(
                OrderItem(
                    product_id=product.id,
                    product_name=product.name,
                    quantity=quantity,
                    unit_price=product.price,
                    subtotal=line_total,
                )
            )
            product.stock -= quantity
            product.updated_at = now

        order.subtotal = subtotal
        order.total = subtotal + delivery_fee
        db.add(order)
        db.commit()
        db.refresh(order)
    except SQLAlchemyError:
        db.rollback()
        raise

    logger.info(f"Order created: number={order.number}, total={order.total}, items={len(quantities)}")
    return order


def format_confirmation(order: Order, delivery_time: str) -> str:
    items = ", ".join(f"{item.quantity}x {item.product_name}" for item in order.items)
    return (
        "✅ *PEDIDO CONFIRMADO!*\n"
        f"🆔 Pedido: #{order.number}\n"
        f"📦 Itens: {items}\n"
        f"💰 Subtotal: R$ {format_money(order.subtotal)}\n"
        f"🚚 Taxa de entrega: R$ {format_money(order.delivery_fee)}\n"
        f"💵 *Total: R$ {format_money(order.total)}*\n"
        f"📍 Endereço: {order.address}\n"
        f"💳 Pagamento: {order.payment_method}\n"
        f"⏰ Previsão: {delivery_time}"
    )
