"""Background processing of one webhook delivery.

normalize -> per-address lock -> load or create conversation -> dedup ->
expiry check -> redacted inbound log -> route -> commit.
"""

import asyncio
from datetime import timedelta
from typing import Any, Callable, Optional

from sqlalchemy.orm import Session

from edubot.config import Settings
from edubot.database import SessionLocal
from edubot.logging_config import conversation_logger, get_logger
from edubot.models import Conversation
from edubot.schemas.events import InboundEvent
from edubot.services import conversation_service
from edubot.services.address_locks import AddressLocks
from edubot.services.command_router import CommandRouter, RouteOutcome
from edubot.services.conversation_service import InvalidAddressError
from edubot.services.flow_executor import FlowContext, registry
from edubot.services.handlers.menus import GENERIC_FAULT_TEXT
from edubot.services.message_log_service import MessageLogService
from edubot.services.message_normalizer import MalformedEventError, normalize
from edubot.services.platform_client import PlatformApiClient, PlatformGateway
from edubot.services.secret_guard import SecretGuard, looks_like_secret_attempt
from edubot.services.session_expiry import SessionExpiryMonitor
from edubot.services.state_machine import CREDENTIAL_FLOWS, coerce_flow
from edubot.services.whatsapp_service import MessageSender, WhatsAppCloudSender

logger = get_logger("inbound")

REDACTED = "[redacted]"


def loggable_event(event: InboundEvent, flow: Optional[str]) -> dict[str, Any]:
    """Audit copy of an event. Secret attempts and anything typed in a credential flow are blanked."""
    document = event.model_dump(mode="json")
    if event.text and (looks_like_secret_attempt(event.text) or coerce_flow(flow) in CREDENTIAL_FLOWS):
        document["text"] = REDACTED
    return document


class InboundProcessor:
    def __init__(
        self,
        session_factory: Callable[[], Session],
        sender: MessageSender,
        platform: PlatformGateway,
        router: CommandRouter,
        expiry: SessionExpiryMonitor,
        settings: Settings,
        message_log: Optional[MessageLogService] = None,
        locks: Optional[AddressLocks] = None,
    ):
        self.session_factory = session_factory
        self.sender = sender
        self.platform = platform
        self.router = router
        self.expiry = expiry
        self.settings = settings
        self.message_log = message_log
        self.locks = locks or AddressLocks()

    async def process_payload(self, payload: dict[str, Any]) -> Optional[RouteOutcome]:
        try:
            event = normalize(payload)
        except MalformedEventError as e:
            logger.warning(
                "Dropping malformed webhook event",
                extra={"context": {"reason": e.reason, "message_id": e.message_id}},
            )
            return None
        if event is None:
            return None

        try:
            address = conversation_service.normalize_address(event.from_address)
        except InvalidAddressError:
            logger.warning(
                "Dropping event without a usable sender",
                extra={"context": {"message_id": event.provider_message_id}},
            )
            return None

        async with self.locks.hold(address):
            return await self.process_event(address, event)

    async def process_event(self, address: str, event: InboundEvent) -> RouteOutcome:
        log = conversation_logger("inbound", address, message_id=event.provider_message_id, kind=event.kind.value)
        db = self.session_factory()
        try:
            conversation = conversation_service.get_or_create_conversation(db, address)
            window = self.settings.dedup_window_size
            if not conversation_service.remember_message_id(db, conversation, event.provider_message_id, window):
                db.rollback()
                log.info("Duplicate delivery ignored")
                return RouteOutcome.DUPLICATE

            flow_on_arrival = conversation.current_flow
            conversation, expired = self.expiry.enforce(db, conversation)
            db.commit()
            await self._log_inbound(conversation, event, flow_on_arrival)

            ctx = FlowContext(
                db=db,
                conversation=conversation,
                event=event,
                state=conversation_service.load_flow_state(conversation),
                sender=self.sender,
                platform=self.platform,
                settings=self.settings,
            )
            outcome = await self.router.route(ctx)
            db.commit()
            log.info("Event routed", context={"outcome": outcome.value, "flow": ctx.state.flow.value, "expired": expired})
            return outcome
        except Exception:
            db.rollback()
            log.error("Inbound processing failed", exc_info=True)
            self._force_idle(db, address)
            await self.sender.send_text(address, GENERIC_FAULT_TEXT)
            return RouteOutcome.HANDLER_FAULT
        finally:
            db.close()

    def _force_idle(self, db: Session, address: str) -> None:
        try:
            conversation = conversation_service.find_conversation(db, address)
            if conversation is not None:
                conversation_service.reset_to_idle(db, conversation)
                db.commit()
        except Exception:
            db.rollback()
            logger.error("Could not reset conversation to idle", extra={"context": {"address": address}}, exc_info=True)

    async def _log_inbound(self, conversation: Conversation, event: InboundEvent, flow: Optional[str]) -> None:
        if self.message_log is None:
            return
        await asyncio.to_thread(
            self.message_log.record,
            conversation.channel_address,
            "inbound",
            event.raw_type or event.kind.value,
            loggable_event(event, flow),
            provider_message_id=event.provider_message_id,
            status="received",
            conversation_id=conversation.id,
        )


def build_processor(settings: Settings, message_log: Optional[MessageLogService] = None) -> InboundProcessor:
    sender = WhatsAppCloudSender(
        access_token=settings.whatsapp_access_token,
        phone_number_id=settings.whatsapp_phone_number_id,
        api_version=settings.whatsapp_api_version,
        timeout_seconds=settings.send_timeout_seconds,
        message_log=message_log,
    )
    platform = PlatformApiClient(
        settings.platform_api_url,
        token=settings.platform_api_token,
        timeout_seconds=settings.platform_timeout_seconds,
    )
    guard = SecretGuard(
        settings.admin_secret,
        max_attempts=settings.lockout_max_attempts,
        window_seconds=settings.lockout_window_seconds,
    )
    return InboundProcessor(
        session_factory=SessionLocal,
        sender=sender,
        platform=platform,
        router=CommandRouter(guard, registry, handler_timeout=settings.handler_timeout_seconds),
        expiry=SessionExpiryMonitor(timeout=timedelta(minutes=settings.session_timeout_minutes)),
        settings=settings,
        message_log=message_log,
    )
