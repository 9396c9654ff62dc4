"""
Pydantic schemas for request/response validation.

This module contains:
- The Evolution API webhook payload (only the fields the router reads)
- Response models for API responses
- Arguments of the order tool call
"""

from datetime import datetime
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field


# =============================================================================
# Webhook Payload Models
# =============================================================================

class MessageKey(BaseModel):
    remote_jid: Optional[str] = Field(None, alias="remoteJid", description="Sender WhatsApp id")
    from_me: bool = Field(False, alias="fromMe", description="True for the bot's own sends")

    model_config = ConfigDict(populate_by_name=True, extra="ignore")


class ExtendedTextMessage(BaseModel):
    text: Optional[str] = None

    model_config = ConfigDict(extra="ignore")


class MessageContent(BaseModel):
    """Plain text lives in `conversation`; replies and links in `extendedTextMessage`."""
    conversation: Optional[str] = None
    extended_text_message: Optional[ExtendedTextMessage] = Field(None, alias="extendedTextMessage")

    model_config = ConfigDict(populate_by_name=True, extra="ignore")


class MessageData(BaseModel):
    key: Optional[MessageKey] = None
    message: Optional[MessageContent] = None

    model_config = ConfigDict(extra="ignore")


class WebhookRequest(BaseModel):
    """
    Evolution API webhook event.

    Only `event` is required; everything else is checked by the router so
    that non-message events with other shapes are simply ignored.
    """
    event: str = Field(..., description="Event name, e.g. messages.upsert")
    data: Optional[MessageData] = None

    model_config = ConfigDict(
        extra="ignore",
        json_schema_extra={
            "examples": [
                {
                    "event": "messages.upsert",
                    "data": {
                        "key": {"remoteJid": "5511999998888@s.whatsapp.net", "fromMe": False},
                        "message": {"conversation": "Quanto custa o produto 3?"},
                    },
                }
            ]
        },
    )

    def sender(self) -> Optional[str]:
        if self.data is None or self.data.key is None:
            return None
        return self.data.key.remote_jid

    def from_me(self) -> bool:
        return bool(self.data and self.data.key and self.data.key.from_me)

    def text(self) -> str:
        """Message text from the plain or the extended field, '' when absent."""
        content = self.data.message if self.data else None
        if content is None:
            return ""
        if content.conversation:
            return content.conversation
        if content.extended_text_message and content.extended_text_message.text:
            return content.extended_text_message.text
        return ""


# =============================================================================
# Response Models
# =============================================================================

class WebhookResponse(BaseModel):
    """Response model for webhook processing (success or ignored)."""
    status: str = Field(..., description="success or ignored")


class ErrorResponse(BaseModel):
    """Response model for processing failures."""
    error: str = Field(..., description="Error description")


class StatusResponse(BaseModel):
    status: str = Field(..., description="Service status")
    message: str = Field(..., description="Service name")
    timestamp: str = Field(..., description="Server time (ISO-8601)")


class HealthResponse(BaseModel):
    """Response model for health check endpoints."""
    status: str = Field(..., description="Health status")
    reason: Optional[str] = Field(None, description="Reason if not ready")


class ConversationResponse(BaseModel):
    """One conversation log record."""
    id: int
    phone: str = Field(..., alias="telefone", serialization_alias="telefone")
    message: str = Field(..., alias="mensagem", serialization_alias="mensagem")
    kind: str = Field(..., alias="tipo", serialization_alias="tipo")
    created_at: datetime = Field(..., alias="criado_em", serialization_alias="criado_em")

    model_config = ConfigDict(populate_by_name=True)


class ConversationsListResponse(BaseModel):
    """Paginated conversation log."""
    data: list[ConversationResponse] = Field(default_factory=list)
    total: int = Field(..., ge=0, description="Records matching filters (ignoring limit/offset)")
    limit: int = Field(..., ge=1, le=100)
    offset: int = Field(..., ge=0)


# =============================================================================
# Tool Argument Models
# =============================================================================

class OrderItemArguments(BaseModel):
    produto_id: int
    quantidade: int

    model_config = ConfigDict(extra="ignore")


class FinalizeOrderArguments(BaseModel):
    """Arguments the model sends with a `finalizar_pedido` call."""
    cliente_nome: str = ""
    endereco: str = ""
    forma_pagamento: str = ""
    itens: list[OrderItemArguments] = Field(default_factory=list)

    model_config = ConfigDict(extra="ignore")
