"""
SQLAlchemy ORM models for the store tables.

Column names follow the store's schema (Portuguese); attribute names are
what the Python code uses. For Pydantic request/response schemas, see
schemas.py.
"""

from datetime import datetime

from sqlalchemy import Boolean, Column, DateTime, ForeignKey, Integer, Numeric, String, Text
from sqlalchemy.orm import relationship

from whatsapp_vendas.storage import Base


# Order status values stored in pedidos.status
ORDER_PENDING = "pendente"
ORDER_COMPLETED = "concluido"
ORDER_CANCELLED = "cancelado"
ORDER_STATUSES = (ORDER_PENDING, ORDER_COMPLETED, ORDER_CANCELLED)

# Conversation record types stored in conversas.tipo
KIND_CUSTOMER = "cliente"
KIND_BOT = "bot"
KIND_ADMIN = "admin"

# Largest value an Integer column holds
MAX_INTEGER = 2**31 - 1


class Admin(Base):
    """
    Phones allowed to run slash-commands.

    Table: admins
    """
    __tablename__ = "admins"

    id = Column(Integer, primary_key=True)
    phone = Column("telefone", String, nullable=False, unique=True, index=True)
    active = Column("ativo", Boolean, nullable=False, default=True)


class Product(Base):
    """
    Catalog entry.

    Table: produtos
    """
    __tablename__ = "produtos"

    id = Column(Integer, primary_key=True)
    name = Column("nome", String, nullable=False)
    category = Column("categoria", String, nullable=False, index=True)
    price = Column("preco", Numeric(10, 2), nullable=False)
    stock = Column("estoque", Integer, nullable=False, default=0)
    active = Column("ativo", Boolean, nullable=False, default=True)
    description = Column("descricao", Text, nullable=True)
    updated_at = Column("atualizado_em", DateTime, nullable=False, default=datetime.now)


class Order(Base):
    """
    Finalized customer order.

    Table: pedidos
    """
    __tablename__ = "pedidos"

    id = Column(Integer, primary_key=True)
    number = Column("numero_pedido", String, nullable=False, unique=True, index=True)
    customer_name = Column("cliente_nome", String, nullable=False)
    customer_phone = Column("cliente_telefone", String, nullable=False, index=True)
    address = Column("endereco", Text, nullable=True)
    payment_method = Column("forma_pagamento", String, nullable=True)
    subtotal = Column(Numeric(10, 2), nullable=False, default=0)
    delivery_fee = Column("taxa_entrega", Numeric(10, 2), nullable=False, default=0)
    total = Column(Numeric(10, 2), nullable=False)
    status = Column(String, nullable=False, default=ORDER_PENDING)
    created_at = Column("data_pedido", DateTime, nullable=False, default=datetime.now, index=True)

    items = relationship(
        "OrderItem",
        back_populates="order",
        cascade="all, delete-orphan",
        order_by="OrderItem.id",
    )


class OrderItem(Base):
    """
    Order line item with a snapshot of the product name and price.

    Table: itens_pedido
    """
    __tablename__ = "itens_pedido"

    id = Column(Integer, primary_key=True)
    order_id = Column("pedido_id", Integer, ForeignKey("pedidos.id"), nullable=False, index=True)
    product_id = Column("produto_id", Integer, nullable=True)
    product_name = Column("produto_nome", String, nullable=False)
    quantity = Column("quantidade", Integer, nullable=False)
    unit_price = Column("preco_unitario", Numeric(10, 2), nullable=False)
    subtotal = Column(Numeric(10, 2), nullable=False)

    order = relationship("Order", back_populates="items")


class ConfigEntry(Base):
    """
    Free-form store setting (business hours, delivery fee, delivery time).

    Table: configuracoes
    """
    __tablename__ = "configuracoes"

    key = Column("chave", String, primary_key=True)
    value = Column("valor", Text, nullable=True)


class Conversation(Base):
    """
    Append-only log of exchanged messages.

    Table: conversas
    """
    __tablename__ = "conversas"

    id = Column(Integer, primary_key=True)
    phone = Column("telefone", String, nullable=False, index=True)
    message = Column("mensagem", Text, nullable=False)
    kind = Column("tipo", String, nullable=False)
    created_at = Column("criado_em", DateTime, nullable=False, default=datetime.now, index=True)
