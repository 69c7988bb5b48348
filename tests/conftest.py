from datetime import datetime, timezone
from unittest.mock import AsyncMock, MagicMock

import pytest

from edubot.config import Settings
from edubot.models import Conversation
from edubot.schemas.events import EventKind, InboundEvent
from edubot.schemas.outbound import SendResult
from edubot.schemas.platform import PlatformUser
from edubot.services.conversation_service import load_flow_state
from edubot.services.flow_executor import FlowContext
from edubot.services.platform_client import PlatformGateway
from edubot.services.whatsapp_service import MessageSender

ADDRESS = "15551230001"
NOW = datetime(2025, 3, 10, 12, 0, tzinfo=timezone.utc)
ADMIN_SECRET = "open-sesame#2025"


class RecordingSender(MessageSender):
    """Sender that keeps every outbound message in memory."""

    def __init__(self):
        self.sent: list[dict] = []

    def _record(self, message: dict) -> SendResult:
        self.sent.append(message)
        return SendResult(success=True, message_id=f"wamid.out.{len(self.sent)}")

    async def send_text(self, address, body):
        return self._record({"type": "text", "to": address, "body": body})

    async def send_buttons(self, address, body, buttons, header=None, footer=None):
        return self._record(
            {"type": "buttons", "to": address, "body": body, "buttons": [b.id for b in buttons], "header": header}
        )

    async def send_list(self, address, body, button_label, sections, header=None, footer=None):
        rows = [row.id for section in sections for row in section.rows]
        return self._record({"type": "list", "to": address, "body": body, "rows": rows, "header": header})

    @property
    def last(self) -> dict:
        return self.sent[-1]

    def bodies(self) -> list[str]:
        return [m["body"] for m in self.sent]


@pytest.fixture
def db_session():
    """Mock database session."""
    return MagicMock()


@pytest.fixture
def mock_env(monkeypatch):
    """Set test environment variables."""
    monkeypatch.setenv("DATABASE_URL", "sqlite:///:memory:")
    monkeypatch.setenv("ADMIN_SECRET", ADMIN_SECRET)
    monkeypatch.setenv("WHATSAPP_APP_SECRET", "app-secret")
    monkeypatch.setenv("WHATSAPP_VERIFY_TOKEN", "verify-me")


@pytest.fixture
def test_settings():
    return Settings(
        _env_file=None,
        admin_secret=ADMIN_SECRET,
        whatsapp_app_secret="app-secret",
        whatsapp_verify_token="verify-me",
        public_base_url="https://edufiliova.test",
    )


@pytest.fixture
def sender():
    return RecordingSender()


@pytest.fixture
def platform():
    return AsyncMock(spec=PlatformGateway)


@pytest.fixture
def make_conversation():
    def _make(flow="idle", data=None, linked_user_id=None, last_activity=NOW, address=ADDRESS):
        return Conversation(
            channel_address=address,
            current_flow=flow,
            flow_data=data if data is not None else {},
            linked_user_id=linked_user_id,
            last_activity_at=last_activity,
            recent_message_ids=[],
            is_active=True,
        )

    return _make


@pytest.fixture
def text_event():
    def _make(text, message_id="wamid.in.1", address=ADDRESS):
        return InboundEvent(
            from_address=address, provider_message_id=message_id, kind=EventKind.TEXT, text=text, raw_type="text"
        )

    return _make


@pytest.fixture
def choice_event():
    def _make(choice_id, kind=EventKind.LIST, message_id="wamid.in.1", address=ADDRESS):
        return InboundEvent(
            from_address=address, provider_message_id=message_id, kind=kind, choice_id=choice_id, raw_type="interactive"
        )

    return _make


@pytest.fixture
def make_ctx(db_session, sender, platform, test_settings):
    def _make(conversation, event, now=NOW):
        return FlowContext(
            db=db_session,
            conversation=conversation,
            event=event,
            state=load_flow_state(conversation),
            sender=sender,
            platform=platform,
            settings=test_settings,
            clock=lambda: now,
        )

    return _make


@pytest.fixture
def student():
    return PlatformUser(id="user-stu-1", email="ada@example.com", name="Ada", role="student")


@pytest.fixture
def teacher():
    return PlatformUser(id="user-tch-1", email="tom@example.com", name="Tom", role="teacher")


@pytest.fixture
def freelancer():
    return PlatformUser(id="user-frl-1", email="fay@example.com", name="Fay", role="freelancer")


@pytest.fixture
def admin():
    return PlatformUser(id="user-adm-1", email="root@example.com", name="Root", role="admin")
