"""
AI sales conversation engine.

Builds a system prompt from the live catalog and store settings, sends it
with the phone's recent turns to the chat-completion API and returns the
generated reply. When the model calls the `finalizar_pedido` tool the order
is persisted and the reply is the rendered confirmation.
"""

import json
import logging
from decimal import Decimal
from typing import Optional

from openai import AsyncOpenAI
from pydantic import ValidationError
from sqlalchemy.orm import Session

from whatsapp_vendas.memory import ROLE_ASSISTANT, ROLE_USER, SessionMemory
from whatsapp_vendas.metrics import record_completion
from whatsapp_vendas.orders import UNREADABLE_ORDER, OrderError, create_order, format_confirmation
from whatsapp_vendas.schemas import FinalizeOrderArguments
from whatsapp_vendas.storage import get_config_map, list_active_products
from whatsapp_vendas.utils import format_money, parse_money

logger = logging.getLogger(__name__)

DEFAULT_BUSINESS_HOURS = "Consulte disponibilidade"
DEFAULT_DELIVERY_FEE = "0.00"
DEFAULT_TEMPLATE_DELIVERY_FEE = "5.00"
DEFAULT_DELIVERY_TIME = "30-40 minutos"
DEFAULT_TEMPLATE_DELIVERY_TIME = "40-50 min"

FINALIZE_ORDER_TOOL = {
    "type": "function",
    "function": {
        "name": "finalizar_pedido",
        "description": (
            "Registra o pedido do cliente. Use somente quando o cliente confirmar o pedido "
            "e já tiver informado nome completo, endereço e forma de pagamento."
        ),
        "parameters": {
            "type": "object",
            "properties": {
                "cliente_nome": {"type": "string", "description": "Nome completo do cliente"},
                "endereco": {"type": "string", "description": "Endereço com número, bairro e CEP"},
                "forma_pagamento": {"type": "string", "enum": ["PIX", "Dinheiro", "Cartão"]},
                "itens": {
                    "type": "array",
                    "items": {
                        "type": "object",
                        "properties": {
                            "produto_id": {"type": "integer"},
                            "quantidade": {"type": "integer", "minimum": 1},
                        },
                        "required": ["produto_id", "quantidade"],
                    },
                },
            },
            "required": ["cliente_nome", "endereco", "forma_pagamento", "itens"],
        },
    },
}


def build_catalog(products) -> str:
    """One line per product: id, name, price, stock and description."""
    return "\n".join(
        f"ID: {p.id} | {p.name} | R$ {format_money(p.price)} | Estoque: {p.stock} | {p.description or ''}"
        for p in products
    )


def build_system_prompt(catalog: str, config: dict) -> str:
    business_hours = config.get("horario_funcionamento") or DEFAULT_BUSINESS_HOURS
    delivery_fee = config.get("taxa_entrega") or DEFAULT_DELIVERY_FEE
    template_fee = config.get("taxa_entrega") or DEFAULT_TEMPLATE_DELIVERY_FEE
    delivery_time = config.get("tempo_entrega") or DEFAULT_DELIVERY_TIME
    template_time = config.get("tempo_entrega") or DEFAULT_TEMPLATE_DELIVERY_TIME

    return f"""Você é um assistente de vendas via WhatsApp super atencioso! 🛍️

**CATÁLOGO DE PRODUTOS:**
{catalog}

**INFORMAÇÕES DA LOJA:**
- Horário: {business_hours}
- Taxa de entrega: R$ {delivery_fee}
- Tempo de entrega: {delivery_time}

**SUAS FUNÇÕES:**
1. 🎯 Apresentar produtos de forma atrativa com emojis
2. 💬 Responder dúvidas sobre produtos, preços e disponibilidade
3. 🛒 Ajudar a montar pedidos
4. ✅ Coletar dados para finalizar: nome, endereço completo, forma de pagamento

**REGRAS IMPORTANTES:**
- SEMPRE mencione o ID do produto quando falar dele
- Verifique estoque (se = 0, produto indisponível)
- Seja simpático e use emojis relevantes
- Nunca invente produtos que não estão no catálogo
- Quando cliente quiser finalizar, peça: nome completo, endereço com número/bairro/CEP, forma de pagamento (PIX/Dinheiro/Cartão)
- Com todos os dados confirmados, chame a função finalizar_pedido

**FORMATO DE CONFIRMAÇÃO:**
"✅ *PEDIDO CONFIRMADO!*
📦 Itens: [lista]
💰 Subtotal: R$ [valor]
🚚 Taxa de entrega: R$ {template_fee}
💵 *Total: R$ [valor total]*
📍 Endereço: [endereço completo]
💳 Pagamento: [forma]
⏰ Previsão: {template_time}\""""


class SalesAssistant:
    """
    Generates customer replies grounded in the catalog.

    Args:
        client: AsyncOpenAI-compatible client (`chat.completions.create`)
        sessions: SessionMemory shared across requests
        model: Completion model name
        temperature: Sampling temperature
        max_tokens: Maximum output length
    """

    def __init__(
        self,
        client: AsyncOpenAI,
        sessions: SessionMemory,
        model: str = "gpt-4-turbo-preview",
        temperature: float = 0.8,
        max_tokens: int = 700,
    ):
        self.client = client
        self.sessions = sessions
        self.model = model
        self.temperature = temperature
        self.max_tokens = max_tokens

    async def reply(self, db: Session, phone: str, text: str) -> str:
        products = list_active_products(db)
        config = get_config_map(db)

        self.sessions.append(phone, ROLE_USER, text)

        system_prompt = build_system_prompt(build_catalog(products), config)
        messages = [{"role": "system", "content": system_prompt}, *self.sessions.window(phone)]

        try:
            completion = await self.client.chat.completions.create(
                model=self.model,
                messages=messages,
                temperature=self.temperature,
                max_tokens=self.max_tokens,
                tools=[FINALIZE_ORDER_TOOL],
            )
        except Exception:
            record_completion("error")
            raise
        message = completion.choices[0].message

        tool_call = self._finalize_call(message)
        if tool_call is not None:
            answer = self._finalize_order(db, phone, tool_call.function.arguments, config)
        else:
            answer = message.content or ""
            record_completion("reply")

        self.sessions.append(phone, ROLE_ASSISTANT, answer)
        return answer

    @staticmethod
    def _finalize_call(message):
        for call in getattr(message, "tool_calls", None) or []:
            if call.function.name == FINALIZE_ORDER_TOOL["function"]["name"]:
                return call
        return None

    def _finalize_order(self, db: Session, phone: str, arguments: Optional[str], config: dict) -> str:
        try:
            payload = json.loads(arguments or "{}")
        except json.JSONDecodeError:
            logger.warning(f"Invalid finalizar_pedido arguments from model: {arguments!r}")
            payload = {}
        if not isinstance(payload, dict):
            payload = {}
        try:
            order_args = FinalizeOrderArguments.model_validate(payload)
        except ValidationError as e:
            logger.warning(f"Rejected finalizar_pedido arguments for {phone}: {e.errors()}")
            record_completion("order_rejected")
            return UNREADABLE_ORDER

        delivery_fee = parse_money(config.get("taxa_entrega") or "") or Decimal("0.00")
        try:
            order = create_order(
                db,
                phone=phone,
                customer_name=order_args.cliente_nome,
                address=order_args.endereco,
                payment_method=order_args.forma_pagamento,
                items=[item.model_dump() for item in order_args.itens],
                delivery_fee=delivery_fee,
            )
        except OrderError as e:
            logger.info(f"Order rejected for {phone}: {e}")
            record_completion("order_rejected")
            return str(e)

        record_completion("order")
        delivery_time = config.get("tempo_entrega") or DEFAULT_TEMPLATE_DELIVERY_TIME
        return format_confirmation(order, delivery_time)
