"""
Tests for the Evolution API gateway client.

Uses httpx.MockTransport so no request leaves the process.
"""

import asyncio
import json

import httpx

from whatsapp_vendas.gateway import EvolutionGateway


def make_gateway(handler) -> EvolutionGateway:
    client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    return EvolutionGateway(
        base_url="http://evolution.test/",
        api_key="secret-key",
        instance_name="vendas",
        client=client,
    )


class TestSendText:

    def test_posts_normalized_number(self):
        requests = []

        def handler(request: httpx.Request) -> httpx.Response:
            requests.append(request)
            return httpx.Response(201, json={"key": {"id": "ABC"}})

        result = asyncio.run(make_gateway(handler).send_text("(11) 99999-8888", "Olá!"))

        assert result.ok is True
        assert result.status_code == 201
        request = requests[0]
        assert request.method == "POST"
        assert str(request.url) == "http://evolution.test/message/sendText/vendas"
        assert request.headers["apikey"] == "secret-key"
        assert json.loads(request.content) == {
            "number": "5511999998888@s.whatsapp.net",
            "text": "Olá!",
        }

    def test_gateway_error_is_returned_not_raised(self):
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(400, text="instance not connected")

        result = asyncio.run(make_gateway(handler).send_text("5511999998888", "Olá!"))

        assert result.ok is False
        assert result.status_code == 400
        assert result.error == "instance not connected"

    def test_transport_error_is_returned_not_raised(self):
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("connection refused", request=request)

        result = asyncio.run(make_gateway(handler).send_text("5511999998888", "Olá!"))

        assert result.ok is False
        assert result.status_code is None
        assert "connection refused" in result.error
        assert result.phone == "5511999998888@s.whatsapp.net"
