"""
Slash-commands for store admins.

`AdminCommandProcessor.process` returns the reply text for a recognized
command, or None so the caller can answer with the usage hint. Argument
errors and missing records are answered with formatted messages; nothing
here raises for user input.
"""

import logging
from datetime import datetime
from decimal import Decimal
from typing import Optional

from sqlalchemy.orm import Session

from whatsapp_vendas.memory import PendingOperationTracker
from whatsapp_vendas.models import MAX_INTEGER, ORDER_COMPLETED, ORDER_PENDING, ORDER_STATUSES
from whatsapp_vendas.storage import (
    EDITABLE_PRODUCT_FIELDS,
    create_product,
    deactivate_product,
    list_active_products,
    list_orders_since,
    update_order_status,
    update_product_field,
    update_product_stock,
)
from whatsapp_vendas.utils import format_money, parse_money

logger = logging.getLogger(__name__)

COMMAND_PREFIX = "/"
SEPARATOR = "━━━━━━━━━━━━━━"

UNKNOWN_COMMAND = "❌ Comando não reconhecido. Use /ajuda para ver comandos disponíveis."
NO_PRODUCTS = "❌ Nenhum produto cadastrado ainda."
NO_ORDERS = "📭 Nenhum pedido hoje ainda."
STOCK_USAGE = "❌ Formato correto: /estoque [ID] [QUANTIDADE]\n\nExemplo: /estoque 5 100"
EDIT_USAGE = (
    "❌ Formato correto: /editar [ID] [CAMPO] [VALOR]\n\n"
    "Campos: nome, categoria, preco, descricao\n"
    "Exemplo: /editar 5 preco 19,90"
)
DEACTIVATE_USAGE = "❌ Formato correto: /desativar [ID]\n\nExemplo: /desativar 5"
STATUS_USAGE = (
    "❌ Formato correto: /status [NUMERO] [STATUS]\n\n"
    "Status: pendente, concluido, cancelado\n"
    "Exemplo: /status 20250115-0001 concluido"
)

HELP_FOOTER = (
    "\n💡 *Comandos disponíveis:*\n"
    "/adicionar - Cadastrar produto\n"
    "/editar [ID] [CAMPO] [VALOR] - Editar produto\n"
    "/estoque [ID] [QTD] - Atualizar estoque\n"
    "/desativar [ID] - Desativar produto\n"
    "/pedidos - Ver pedidos do dia\n"
    "/relatorio - Relatório de vendas"
)

HELP_TEXT = (
    "🤖 *COMANDOS ADMINISTRATIVOS*\n\n"
    "📋 /produtos - Lista todos produtos\n"
    "➕ /adicionar - Cadastrar produto\n"
    "✏️ /editar [ID] [CAMPO] [VALOR] - Editar produto\n"
    "📊 /estoque [ID] [QTD] - Atualizar estoque\n"
    "❌ /desativar [ID] - Desativar produto\n"
    "🛒 /pedidos - Pedidos de hoje\n"
    "🔄 /status [NUMERO] [STATUS] - Atualizar pedido\n"
    "📈 /relatorio - Relatório de vendas\n"
    "🚫 /cancelar - Cancelar cadastro em andamento\n"
    "❓ /ajuda - Ver comandos"
)

# Product wizard
WIZARD_ADD_PRODUCT = "adicionar_produto"
STEP_NAME = "nome"
STEP_CATEGORY = "categoria"
STEP_PRICE = "preco"
STEP_STOCK = "estoque"
STEP_DESCRIPTION = "descricao"
STEP_CONFIRM = "confirmar"

YES_ANSWERS = {"sim", "s"}
NO_ANSWERS = {"nao", "não", "n"}


def start_of_today(now: Optional[datetime] = None) -> datetime:
    """Server-local midnight."""
    now = now or datetime.now()
    return now.replace(hour=0, minute=0, second=0, microsecond=0)


def _parse_count(token: str) -> Optional[int]:
    """Non-negative ASCII integer that fits an Integer column, else None."""
    if not (token.isascii() and token.isdigit()):
        return None
    value = int(token)
    return value if value <= MAX_INTEGER else None


class AdminCommandProcessor:
    """
    Executes catalog and order commands for authorized phones.

    Args:
        pending: Tracker holding the product wizard state per admin phone
    """

    def __init__(self, pending: PendingOperationTracker):
        self.pending = pending
        self._commands = {
            "/produtos": self._list_products,
            "/lista": self._list_products,
            "/adicionar": self._start_add_product,
            "/add": self._start_add_product,
            "/estoque": self._update_stock,
            "/editar": self._edit_product,
            "/desativar": self._deactivate_product,
            "/pedidos": self._list_orders,
            "/status": self._update_order_status,
            "/relatorio": self._sales_report,
            "/vendas": self._sales_report,
            "/cancelar": self._cancel_wizard,
            "/ajuda": self._help,
            "/help": self._help,
            "/comandos": self._help,
        }

    @staticmethod
    def is_command(text: str) -> bool:
        return (text or "").strip().startswith(COMMAND_PREFIX)

    def has_pending(self, phone: str) -> bool:
        return self.pending.get(phone) is not None

    def process(self, db: Session, phone: str, text: str) -> Optional[str]:
        """
        Run a slash-command.

        Returns:
            Reply text, or None when the text is not a known command
        """
        args = text.strip().split()
        if not args:
            return None
        handler = self._commands.get(args[0].lower())
        if handler is None:
            logger.info(f"Unknown admin command from {phone}: {args[0]}")
            return None
        logger.info(f"Admin command from {phone}: {args[0].lower()}")
        return handler(db, phone, args[1:], text.strip())

    # -------------------------------------------------------------------------
    # Catalog
    # -------------------------------------------------------------------------

    def _list_products(self, db: Session, phone: str, args: list, raw: str) -> str:
        if args:
            return None
        products = list_active_products(db)
        if not products:
            return NO_PRODUCTS

        lines = ["📋 *PRODUTOS CADASTRADOS*\n"]
        current_category = None
        for p in products:
            if p.category != current_category:
                current_category = p.category
                lines.append(f"\n*{current_category.upper()}*")
            lines.append(
                f"\n🆔 ID: {p.id}\n"
                f"📦 {p.name}\n"
                f"💰 R$ {format_money(p.price)}\n"
                f"📊 Estoque: {p.stock} un\n"
                f"{SEPARATOR}"
            )
        lines.append(HELP_FOOTER)
        return "\n".join(lines)

    def _update_stock(self, db: Session, phone: str, args: list, raw: str) -> str:
        if len(args) != 2:
            return STOCK_USAGE
        product_id, quantity = _parse_count(args[0]), _parse_count(args[1])
        if product_id is None or quantity is None:
            return STOCK_USAGE

        product = update_product_stock(db, product_id, quantity)
        if product is None:
            return f"❌ Produto ID {product_id} não encontrado."

        return (
            "✅ *Estoque atualizado!*\n\n"
            f"📦 {product.name}\n"
            f"📊 Novo estoque: {quantity} unidades"
        )

    def _edit_product(self, db: Session, phone: str, args: list, raw: str) -> str:
        # Keep the value's original case and spacing
        parts = raw.split(maxsplit=3)
        if len(parts) != 4:
            return EDIT_USAGE
        product_id = _parse_count(parts[1])
        field = parts[2].lower()
        value = parts[3].strip()
        if product_id is None or field not in EDITABLE_PRODUCT_FIELDS:
            return EDIT_USAGE

        if field == "preco":
            price = parse_money(value)
            if price is None or price <= 0:
                return "❌ Preço inválido. Exemplo: /editar 5 preco 19,90"
            value = price
        elif field == "descricao" and value == "-":
            value = None

        product = update_product_field(db, product_id, field, value)
        if product is None:
            return f"❌ Produto ID {product_id} não encontrado."

        shown = f"R$ {format_money(value)}" if field == "preco" else (value or "(vazio)")
        return f"✅ *Produto atualizado!*\n\n📦 {product.name}\n✏️ {field}: {shown}"

    def _deactivate_product(self, db: Session, phone: str, args: list, raw: str) -> str:
        product_id = _parse_count(args[0]) if len(args) == 1 else None
        if product_id is None:
            return DEACTIVATE_USAGE

        product = deactivate_product(db, product_id)
        if product is None:
            return f"❌ Produto ID {product_id} não encontrado."
        return f"✅ *Produto desativado!*\n\n📦 {product.name}\n🆔 ID: {product.id}"

    # -------------------------------------------------------------------------
    # Orders
    # -------------------------------------------------------------------------

    def _list_orders(self, db: Session, phone: str, args: list, raw: str) -> str:
        if args:
            return None
        orders = list_orders_since(db, start_of_today())
        if not orders:
            return NO_ORDERS

        reply = f"📊 *PEDIDOS DE HOJE* ({len(orders)})\n\n"
        for order in orders:
            reply += f"🆔 #{order.number}\n"
            reply += f"👤 {order.customer_name}\n"
            reply += f"📞 {order.customer_phone}\n"
            for item in order.items:
                reply += f"   • {item.quantity}x {item.product_name} (R$ {format_money(item.subtotal)})\n"
            reply += f"💰 R$ {format_money(order.total)}\n"
            reply += f"📍 Status: {order.status.upper()}\n"
            reply += f"{SEPARATOR}\n\n"

        total = sum((Decimal(order.total) for order in orders), Decimal("0"))
        reply += f"💵 *Total do dia:* R$ {format_money(total)}"
        return reply

    def _update_order_status(self, db: Session, phone: str, args: list, raw: str) -> str:
        if len(args) != 2 or args[1].lower() not in ORDER_STATUSES:
            return STATUS_USAGE

        number, status = args[0].lstrip("#"), args[1].lower()
        order = update_order_status(db, number, status)
        if order is None:
            return f"❌ Pedido #{number} não encontrado."
        return f"✅ *Pedido atualizado!*\n\n🆔 #{order.number}\n📍 Status: {order.status.upper()}"

    def _sales_report(self, db: Session, phone: str, args: list, raw: str) -> str:
        if args:
            return None
        orders = list_orders_since(db, start_of_today())
        revenue = sum((Decimal(order.total) for order in orders), Decimal("0"))
        completed = sum(1 for order in orders if order.status == ORDER_COMPLETED)
        pending = sum(1 for order in orders if order.status == ORDER_PENDING)

        return (
            "📈 *RELATÓRIO DE HOJE*\n\n"
            f"📦 Total de pedidos: {len(orders)}\n"
            f"✅ Concluídos: {completed}\n"
            f"⏳ Pendentes: {pending}\n"
            f"💰 Faturamento: R$ {format_money(revenue)}"
        )

    def _help(self, db: Session, phone: str, args: list, raw: str) -> str:
        return HELP_TEXT

    # -------------------------------------------------------------------------
    # Product wizard
    # -------------------------------------------------------------------------

    def _start_add_product(self, db: Session, phone: str, args: list, raw: str) -> str:
        self.pending.start(phone, WIZARD_ADD_PRODUCT, STEP_NAME)
        return "➕ *CADASTRAR NOVO PRODUTO*\n\nEnvie o *nome* do produto:\n\n(/cancelar para desistir)"

    def _cancel_wizard(self, db: Session, phone: str, args: list, raw: str) -> str:
        if self.pending.clear(phone) is None:
            return "ℹ️ Nenhum cadastro em andamento."
        return "🚫 Cadastro cancelado."

    def continue_wizard(self, db: Session, phone: str, text: str) -> Optional[str]:
        """
        Feed a plain message into the admin's pending wizard.

        Returns:
            Prompt for the next step, or None when no wizard is pending
        """
        operation = self.pending.get(phone)
        if operation is None:
            return None

        value = text.strip()
        step = operation.step
        logger.debug(f"Wizard step for {phone}: {step}")

        if step == STEP_NAME:
            if not value:
                return "Envie o *nome* do produto:"
            self.pending.advance(phone, STEP_CATEGORY, name=value)
            return "📂 Agora envie a *categoria* do produto:"

        if step == STEP_CATEGORY:
            if not value:
                return "Envie a *categoria* do produto:"
            self.pending.advance(phone, STEP_PRICE, category=value)
            return "💰 Qual o *preço*? (ex: 19,90)"

        if step == STEP_PRICE:
            price = parse_money(value)
            if price is None or price <= 0:
                return "❌ Preço inválido. Envie um valor como 19,90"
            self.pending.advance(phone, STEP_STOCK, price=price)
            return "📊 Quantas unidades em *estoque*?"

        if step == STEP_STOCK:
            stock = _parse_count(value)
            if stock is None:
                return "❌ Estoque inválido. Envie um número inteiro, ex: 10"
            self.pending.advance(phone, STEP_DESCRIPTION, stock=stock)
            return "📝 Envie uma *descrição* (ou - para deixar em branco):"

        if step == STEP_DESCRIPTION:
            description = None if value in ("", "-") else value
            operation = self.pending.advance(phone, STEP_CONFIRM, description=description)
            data = operation.data
            return (
                "🔎 *CONFIRME O PRODUTO*\n\n"
                f"📦 {data['name']}\n"
                f"📂 {data['category']}\n"
                f"💰 R$ {format_money(data['price'])}\n"
                f"📊 Estoque: {data['stock']} un\n"
                f"📝 {data['description'] or '(sem descrição)'}\n\n"
                "Responda *sim* para salvar ou *não* para cancelar."
            )

        if step == STEP_CONFIRM:
            answer = value.lower()
            if answer in NO_ANSWERS:
                self.pending.clear(phone)
                return "🚫 Cadastro cancelado."
            if answer not in YES_ANSWERS:
                return "Responda *sim* para salvar ou *não* para cancelar."
            data = operation.data
            product = create_product(
                db,
                name=data["name"],
                category=data["category"],
                price=data["price"],
                stock=data["stock"],
                description=data["description"],
            )
            self.pending.clear(phone)
            return f"✅ *Produto cadastrado!*\n\n🆔 ID: {product.id}\n📦 {product.name}"

        logger.warning(f"Unknown wizard step for {phone}: {step}")
        self.pending.clear(phone)
        return None
