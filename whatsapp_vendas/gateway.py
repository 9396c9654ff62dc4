"""
Evolution API client for outbound WhatsApp text messages.

Sending is best-effort: every outcome is reported as a SendResult and no
exception reaches the caller. There are no retries.
"""

import logging
from dataclasses import dataclass
from typing import Optional

import httpx

from whatsapp_vendas.metrics import record_gateway_send
from whatsapp_vendas.utils import normalize_phone

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class SendResult:
    """Outcome of one send attempt."""
    ok: bool
    phone: str
    status_code: Optional[int] = None
    error: Optional[str] = None


class EvolutionGateway:
    """
    Sends text messages through an Evolution API instance.

    Args:
        base_url: EVOLUTION_API_URL
        api_key: EVOLUTION_API_KEY, sent as the `apikey` header
        instance_name: Evolution instance that owns the WhatsApp session
        client: Optional httpx.AsyncClient (tests inject a mock transport)
    """

    def __init__(
        self,
        base_url: str,
        api_key: str,
        instance_name: str,
        client: Optional[httpx.AsyncClient] = None,
    ):
        self.base_url = base_url.rstrip("/")
        self.api_key = api_key
        self.instance_name = instance_name
        self._client = client
        self._owns_client = client is None

    @property
    def send_url(self) -> str:
        return f"{self.base_url}/message/sendText/{self.instance_name}"

    def _get_client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient()
        return self._client

    async def send_text(self, phone: str, text: str) -> SendResult:
        number = normalize_phone(phone)
        headers = {"apikey": self.api_key, "Content-Type": "application/json"}
        payload = {"number": number, "text": text}

        try:
            response = await self._get_client().post(self.send_url, headers=headers, json=payload)
        except httpx.HTTPError as e:
            logger.error(f"Failed to send message to {number}: {e}")
            record_gateway_send(False)
            return SendResult(ok=False, phone=number, error=str(e))

        if response.is_success:
            logger.info(f"Message sent to {number}")
            record_gateway_send(True)
            return SendResult(ok=True, phone=number, status_code=response.status_code)

        logger.error(
            f"Gateway rejected message to {number}: {response.status_code} {response.text}"
        )
        record_gateway_send(False)
        return SendResult(
            ok=False,
            phone=number,
            status_code=response.status_code,
            error=response.text,
        )

    async def aclose(self) -> None:
        if self._client is not None and self._owns_client:
            await self._client.aclose()
            self._client = None
