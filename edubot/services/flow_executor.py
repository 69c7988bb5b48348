"""Table-driven dispatch from flow name to handler.

Handlers register themselves with ``@registry.handles(FlowName.X)`` when
``edubot.services.handlers`` is imported; the table is then looked up once
per event.
"""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Awaitable, Callable, Optional, Sequence

from sqlalchemy.orm import Session

from edubot.config import Settings
from edubot.logging_config import ConversationLogger, conversation_logger
from edubot.models import Conversation
from edubot.schemas.drafts import Draft, DraftT
from edubot.schemas.events import InboundEvent
from edubot.schemas.outbound import Button, ListSection, SendResult
from edubot.schemas.platform import PlatformUser
from edubot.services import conversation_service
from edubot.services.conversation_service import FlowData
from edubot.services.platform_client import PlatformGateway
from edubot.services.state_machine import FlowName, FlowState
from edubot.services.whatsapp_service import MessageSender


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass
class FlowContext:
    """Everything a handler may touch while processing one inbound event."""

    db: Session
    conversation: Conversation
    event: InboundEvent
    state: FlowState
    sender: MessageSender
    platform: PlatformGateway
    settings: Settings
    clock: Callable[[], datetime] = utcnow
    _linked_user: Optional[PlatformUser] = field(default=None, repr=False)
    _linked_user_loaded: bool = field(default=False, repr=False)
    _log: Optional[ConversationLogger] = field(default=None, repr=False)

    @property
    def address(self) -> str:
        return self.conversation.channel_address

    @property
    def linked_user_id(self) -> Optional[str]:
        return self.conversation.linked_user_id

    @property
    def log(self) -> ConversationLogger:
        if self._log is None:
            self._log = conversation_logger("flow", self.address, flow=self.state.flow.value)
        return self._log

    def now(self) -> datetime:
        return self.clock()

    def draft(self, draft_cls: type[DraftT]) -> DraftT:
        return draft_cls.load(self.state.data)

    def update_flow(self, flow: FlowName, data: FlowData = None) -> FlowState:
        self.state = conversation_service.update_flow(self.db, self.conversation, flow, data, now=self.now())
        return self.state

    def reset(self) -> FlowState:
        return self.update_flow(FlowName.IDLE)

    def link_user(self, user: PlatformUser) -> None:
        conversation_service.link_user(self.db, self.conversation, user.id)
        self._linked_user = user
        self._linked_user_loaded = True

    def unlink_user(self) -> None:
        conversation_service.unlink_user(self.db, self.conversation)
        self.state = conversation_service.load_flow_state(self.conversation)
        self._linked_user = None
        self._linked_user_loaded = True

    async def linked_user(self) -> Optional[PlatformUser]:
        if not self._linked_user_loaded:
            user_id = self.linked_user_id
            self._linked_user = await self.platform.get_user(user_id) if user_id else None
            self._linked_user_loaded = True
        return self._linked_user

    async def send_text(self, body: str) -> SendResult:
        return await self.sender.send_text(self.address, body)

    async def send_buttons(
        self, body: str, buttons: Sequence[Button], header: Optional[str] = None, footer: Optional[str] = None
    ) -> SendResult:
        return await self.sender.send_buttons(self.address, body, buttons, header, footer)

    async def send_list(
        self,
        body: str,
        button_label: str,
        sections: Sequence[ListSection],
        header: Optional[str] = None,
        footer: Optional[str] = None,
    ) -> SendResult:
        return await self.sender.send_list(self.address, body, button_label, sections, header, footer)

    def site_url(self, path: str = "") -> str:
        return f"{self.settings.public_base_url.rstrip('/')}{path}"


Handler = Callable[[FlowContext], Awaitable[None]]


class DuplicateHandlerError(Exception):
    def __init__(self, flow: FlowName):
        self.flow = flow
        super().__init__(f"Handler already registered for flow {flow.value}")


class FlowRegistry:
    def __init__(self):
        self._handlers: dict[FlowName, Handler] = {}

    def register(self, flow: FlowName, handler: Handler) -> None:
        if flow in self._handlers:
            raise DuplicateHandlerError(flow)
        self._handlers[flow] = handler

    def handles(self, *flows: FlowName) -> Callable[[Handler], Handler]:
        def decorator(handler: Handler) -> Handler:
            for flow in flows:
                self.register(flow, handler)
            return handler

        return decorator

    def get(self, flow: FlowName) -> Optional[Handler]:
        return self._handlers.get(flow)

    def __contains__(self, flow: FlowName) -> bool:
        return flow in self._handlers

    def flows(self) -> set[FlowName]:
        return set(self._handlers)


registry = FlowRegistry()
