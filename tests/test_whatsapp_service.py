import json
from unittest.mock import Mock

import httpx
import pytest

from edubot.schemas.outbound import Button, ListRow, ListSection
from edubot.services.whatsapp_service import (
    WhatsAppCloudSender,
    build_button_payload,
    build_list_payload,
    build_text_payload,
)

ADDRESS = "15551230001"


def _sender(handler, message_log=None, **kwargs):
    client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    return WhatsAppCloudSender(
        access_token="token-123",
        phone_number_id="1098765",
        message_log=message_log,
        client=client,
        **kwargs,
    )


class TestPayloads:
    def test_text_payload(self):
        assert build_text_payload(ADDRESS, "Hello") == {
            "messaging_product": "whatsapp",
            "to": ADDRESS,
            "type": "text",
            "text": {"body": "Hello"},
        }

    def test_buttons_are_capped_and_titles_truncated(self):
        buttons = [Button(id=f"b{i}", title=f"A very long button title {i}") for i in range(5)]

        payload = build_button_payload(ADDRESS, "Pick one", buttons, header="Head", footer="Foot")

        rendered = payload["interactive"]["action"]["buttons"]
        assert len(rendered) == 3
        assert all(len(b["reply"]["title"]) <= 20 for b in rendered)
        assert rendered[0]["reply"]["id"] == "b0"
        assert payload["interactive"]["header"] == {"type": "text", "text": "Head"}
        assert payload["interactive"]["footer"] == {"text": "Foot"}

    def test_button_payload_without_header(self):
        payload = build_button_payload(ADDRESS, "Pick one", [Button(id="b1", title="One")])
        assert "header" not in payload["interactive"]
        assert "footer" not in payload["interactive"]

    def test_list_rows_are_capped_and_truncated(self):
        rows = [ListRow(id=f"r{i}", title="T" * 40, description="D" * 100) for i in range(12)]
        sections = [ListSection(title="S" * 30, rows=rows)]

        payload = build_list_payload(ADDRESS, "Choose", "Options", sections)

        section = payload["interactive"]["action"]["sections"][0]
        assert len(section["title"]) == 24
        assert len(section["rows"]) == 10
        assert len(section["rows"][0]["title"]) == 24
        assert len(section["rows"][0]["description"]) == 72
        assert payload["interactive"]["action"]["button"] == "Options"

    def test_row_without_description(self):
        sections = [ListSection(title="S", rows=[ListRow(id="r1", title="One")])]
        payload = build_list_payload(ADDRESS, "Choose", "Options", sections)
        assert payload["interactive"]["action"]["sections"][0]["rows"][0] == {"id": "r1", "title": "One"}


class TestWhatsAppCloudSender:
    @pytest.mark.asyncio
    async def test_send_text_success(self):
        seen = {}

        def handler(request: httpx.Request) -> httpx.Response:
            seen["url"] = str(request.url)
            seen["auth"] = request.headers["Authorization"]
            seen["body"] = json.loads(request.content)
            return httpx.Response(200, json={"messages": [{"id": "wamid.OUT1"}]})

        message_log = Mock()
        sender = _sender(handler, message_log=message_log)

        result = await sender.send_text(ADDRESS, "Hello")

        assert result.success is True
        assert result.message_id == "wamid.OUT1"
        assert seen["url"] == "https://graph.facebook.com/v18.0/1098765/messages"
        assert seen["auth"] == "Bearer token-123"
        assert seen["body"]["text"] == {"body": "Hello"}
        message_log.record.assert_called_once()
        assert message_log.record.call_args.kwargs["status"] == "sent"
        assert sender.send_failures == 0

    @pytest.mark.asyncio
    async def test_api_error_is_counted_not_raised(self):
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(400, json={"error": {"message": "Recipient phone number not in allowed list"}})

        message_log = Mock()
        sender = _sender(handler, message_log=message_log)

        result = await sender.send_buttons(ADDRESS, "Pick", [Button(id="b1", title="One")])

        assert result.success is False
        assert result.error == "Recipient phone number not in allowed list"
        assert sender.send_failures == 1
        assert message_log.record.call_args.kwargs["status"] == "failed"

    @pytest.mark.asyncio
    async def test_network_error_is_counted(self):
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("connection refused", request=request)

        sender = _sender(handler)

        result = await sender.send_text(ADDRESS, "Hello")

        assert result.success is False
        assert "connection refused" in result.error
        assert sender.send_failures == 1

    @pytest.mark.asyncio
    async def test_not_configured_skips_send(self):
        sender = WhatsAppCloudSender(access_token="", phone_number_id="")

        result = await sender.send_text(ADDRESS, "Hello")

        assert result.success is False
        assert result.error == "whatsapp_not_configured"
        assert sender.send_failures == 0

    @pytest.mark.asyncio
    async def test_payment_link(self):
        bodies = []

        def handler(request: httpx.Request) -> httpx.Response:
            bodies.append(json.loads(request.content)["text"]["body"])
            return httpx.Response(200, json={"messages": [{"id": "wamid.OUT2"}]})

        sender = _sender(handler)

        await sender.send_payment_link(ADDRESS, "https://pay.example/abc", "$50.00", "Gift Voucher")

        assert "Gift Voucher" in bodies[0]
        assert "$50.00" in bodies[0]
        assert "https://pay.example/abc" in bodies[0]
