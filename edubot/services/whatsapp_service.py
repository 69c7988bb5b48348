import asyncio
from abc import ABC, abstractmethod
from typing import Any, Optional, Sequence

import httpx

from edubot.logging_config import get_logger
from edubot.schemas.outbound import (
    BUTTON_TITLE_LIMIT,
    MAX_BUTTONS,
    MAX_ROWS_PER_SECTION,
    ROW_DESCRIPTION_LIMIT,
    ROW_TITLE_LIMIT,
    SECTION_TITLE_LIMIT,
    Button,
    ListSection,
    SendResult,
)
from edubot.services.message_log_service import MessageLogService

logger = get_logger("whatsapp_service")

GRAPH_API_URL = "https://graph.facebook.com/{version}/{phone_number_id}/messages"


class SendError(Exception):
    def __init__(self, message: str, status_code: Optional[int] = None):
        self.status_code = status_code
        super().__init__(message)


class MessageSender(ABC):
    """Outbound message transport used by every flow handler."""

    @abstractmethod
    async def send_text(self, address: str, body: str) -> SendResult:
        pass

    @abstractmethod
    async def send_buttons(
        self,
        address: str,
        body: str,
        buttons: Sequence[Button],
        header: Optional[str] = None,
        footer: Optional[str] = None,
    ) -> SendResult:
        pass

    @abstractmethod
    async def send_list(
        self,
        address: str,
        body: str,
        button_label: str,
        sections: Sequence[ListSection],
        header: Optional[str] = None,
        footer: Optional[str] = None,
    ) -> SendResult:
        pass

    async def send_payment_link(self, address: str, payment_url: str, amount: str, item_name: str) -> SendResult:
        return await self.send_text(
            address,
            f"💳 Complete your payment for {item_name}\n\n"
            f"Amount: {amount}\n\n"
            f"Click the link below to pay securely:\n{payment_url}\n\n"
            "This link expires in 1 hour.",
        )


def build_text_payload(address: str, body: str) -> dict[str, Any]:
    return {
        "messaging_product": "whatsapp",
        "to": address,
        "type": "text",
        "text": {"body": body},
    }


def build_button_payload(
    address: str,
    body: str,
    buttons: Sequence[Button],
    header: Optional[str] = None,
    footer: Optional[str] = None,
) -> dict[str, Any]:
    interactive: dict[str, Any] = {
        "type": "button",
        "body": {"text": body},
        "action": {
            "buttons": [
                {"type": "reply", "reply": {"id": b.id, "title": b.title[:BUTTON_TITLE_LIMIT]}}
                for b in list(buttons)[:MAX_BUTTONS]
            ]
        },
    }
    if header:
        interactive["header"] = {"type": "text", "text": header}
    if footer:
        interactive["footer"] = {"text": footer}
    return {"messaging_product": "whatsapp", "to": address, "type": "interactive", "interactive": interactive}


def build_list_payload(
    address: str,
    body: str,
    button_label: str,
    sections: Sequence[ListSection],
    header: Optional[str] = None,
    footer: Optional[str] = None,
) -> dict[str, Any]:
    rendered_sections = []
    for section in sections:
        rows = []
        for row in section.rows[:MAX_ROWS_PER_SECTION]:
            rendered = {"id": row.id, "title": row.title[:ROW_TITLE_LIMIT]}
            if row.description:
                rendered["description"] = row.description[:ROW_DESCRIPTION_LIMIT]
            rows.append(rendered)
        rendered_sections.append({"title": section.title[:SECTION_TITLE_LIMIT], "rows": rows})

    interactive: dict[str, Any] = {
        "type": "list",
        "body": {"text": body},
        "action": {"button": button_label, "sections": rendered_sections},
    }
    if header:
        interactive["header"] = {"type": "text", "text": header}
    if footer:
        interactive["footer"] = {"text": footer}
    return {"messaging_product": "whatsapp", "to": address, "type": "interactive", "interactive": interactive}


class WhatsAppCloudSender(MessageSender):
    """Sender backed by the WhatsApp Cloud (Graph) API."""

    def __init__(
        self,
        access_token: str,
        phone_number_id: str,
        api_version: str = "v18.0",
        timeout_seconds: float = 10.0,
        message_log: Optional[MessageLogService] = None,
        client: Optional[httpx.AsyncClient] = None,
    ):
        self.access_token = access_token
        self.phone_number_id = phone_number_id
        self.url = GRAPH_API_URL.format(version=api_version, phone_number_id=phone_number_id)
        self.timeout_seconds = timeout_seconds
        self.message_log = message_log
        self._client = client
        self.send_failures = 0

    @property
    def is_configured(self) -> bool:
        return bool(self.access_token and self.phone_number_id)

    async def _post(self, payload: dict[str, Any]) -> httpx.Response:
        headers = {"Authorization": f"Bearer {self.access_token}", "Content-Type": "application/json"}
        if self._client is not None:
            return await self._client.post(self.url, json=payload, headers=headers, timeout=self.timeout_seconds)
        async with httpx.AsyncClient(timeout=self.timeout_seconds) as client:
            return await client.post(self.url, json=payload, headers=headers)

    async def _deliver(self, payload: dict[str, Any]) -> Optional[str]:
        try:
            response = await self._post(payload)
            response.raise_for_status()
        except httpx.HTTPStatusError as e:
            raise SendError(_graph_error(e.response), e.response.status_code) from e
        except httpx.HTTPError as e:
            raise SendError(str(e) or type(e).__name__) from e
        messages = response.json().get("messages") or [{}]
        return messages[0].get("id")

    async def _log(self, address: str, message_type: str, payload: dict, result: SendResult) -> None:
        if self.message_log is None:
            return
        await asyncio.to_thread(
            self.message_log.record,
            address,
            "outbound",
            message_type,
            payload,
            provider_message_id=result.message_id,
            status="sent" if result.success else "failed",
            error_message=result.error,
        )

    async def _send(self, address: str, message_type: str, payload: dict[str, Any]) -> SendResult:
        if not self.is_configured:
            logger.warning("WhatsApp is not configured, skipping send", extra={"context": {"address": address}})
            return SendResult(success=False, error="whatsapp_not_configured")

        try:
            message_id = await self._deliver(payload)
            result = SendResult(success=True, message_id=message_id)
        except SendError as e:
            logger.error(
                f"WhatsApp send failed: {e}",
                extra={"context": {"address": address, "status_code": e.status_code}},
            )
            self.send_failures += 1
            result = SendResult(success=False, error=str(e))

        await self._log(address, message_type, payload, result)
        return result

    async def send_text(self, address: str, body: str) -> SendResult:
        return await self._send(address, "text", build_text_payload(address, body))

    async def send_buttons(self, address, body, buttons, header=None, footer=None) -> SendResult:
        return await self._send(address, "interactive", build_button_payload(address, body, buttons, header, footer))

    async def send_list(self, address, body, button_label, sections, header=None, footer=None) -> SendResult:
        payload = build_list_payload(address, body, button_label, sections, header, footer)
        return await self._send(address, "interactive", payload)


def _graph_error(response: httpx.Response) -> str:
    try:
        return response.json().get("error", {}).get("message") or response.text
    except ValueError:
        return response.text or f"HTTP {response.status_code}"
