import re
from datetime import datetime, timezone
from typing import Any, Optional, Union
from uuid import UUID

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session
from sqlalchemy.orm.exc import StaleDataError

from edubot.logging_config import get_logger
from edubot.models import Conversation
from edubot.schemas.drafts import Draft
from edubot.services.state_machine import FlowName, FlowState, check_draft, coerce_flow

logger = get_logger("conversation_service")

_NON_DIGITS = re.compile(r"\D+")

FlowData = Union[Draft, dict[str, Any], None]


class InvalidAddressError(ValueError):
    pass


class StaleFlowStateError(Exception):
    """Another writer bumped the conversation row between our read and our flush."""

    def __init__(self, channel_address: str):
        self.channel_address = channel_address
        super().__init__(f"Flow state for {channel_address} changed concurrently")


def _now() -> datetime:
    return datetime.now(timezone.utc)


def normalize_address(raw: Optional[str]) -> str:
    """Canonical channel address: the digits of the phone number, nothing else."""
    digits = _NON_DIGITS.sub("", raw or "")
    if not digits:
        raise InvalidAddressError("channel address contains no digits")
    return digits


def get_conversation(db: Session, conversation_id: UUID) -> Optional[Conversation]:
    return db.query(Conversation).filter(Conversation.id == conversation_id).first()


def find_conversation(db: Session, channel_address: str) -> Optional[Conversation]:
    address = normalize_address(channel_address)
    return db.query(Conversation).filter(Conversation.channel_address == address).first()


def get_or_create_conversation(db: Session, channel_address: str) -> Conversation:
    """Find the conversation for an address or create it idle.

    Two workers racing on a brand-new address both try the insert; the loser
    hits the unique constraint and reads the winner's row.
    """
    address = normalize_address(channel_address)
    conversation = db.query(Conversation).filter(Conversation.channel_address == address).first()
    if conversation:
        return conversation

    conversation = Conversation(
        channel_address=address,
        current_flow=FlowName.IDLE.value,
        flow_data={},
        last_activity_at=_now(),
        recent_message_ids=[],
        is_active=True,
    )
    try:
        with db.begin_nested():
            db.add(conversation)
            db.flush()
    except IntegrityError:
        logger.info("Conversation created concurrently, reloading", extra={"context": {"address": address}})
        conversation = db.query(Conversation).filter(Conversation.channel_address == address).first()
        if conversation is None:
            raise
        return conversation

    logger.info("Conversation created", extra={"context": {"address": address}})
    return conversation


def load_flow_state(conversation: Conversation) -> FlowState:
    """Read the flow state, treating an unknown flow name as corruption."""
    flow = coerce_flow(conversation.current_flow)
    if flow is None:
        logger.warning(
            "Unknown flow on conversation, treating as idle",
            extra={"context": {"conversation_id": str(conversation.id), "flow": conversation.current_flow}},
        )
        return FlowState(flow=FlowName.IDLE, data={}, last_activity=conversation.last_activity_at, corrupted=True)

    data = conversation.flow_data if isinstance(conversation.flow_data, dict) else {}
    if flow == FlowName.IDLE:
        data = {}
    return FlowState(flow=flow, data=dict(data), last_activity=conversation.last_activity_at)


def update_flow(
    db: Session,
    conversation: Conversation,
    flow: FlowName,
    data: FlowData = None,
    now: Optional[datetime] = None,
) -> FlowState:
    """Replace the whole flow state document and stamp last activity.

    Idle never carries data, whatever the caller passes.
    """
    flow = FlowName(flow)
    if isinstance(data, Draft):
        check_draft(flow, data)
        document = data.dump()
    else:
        document = dict(data or {})
    if flow == FlowName.IDLE:
        document = {}

    stamp = now or _now()
    conversation.current_flow = flow.value
    conversation.flow_data = document
    conversation.last_activity_at = stamp
    try:
        db.flush()
    except StaleDataError as e:
        raise StaleFlowStateError(conversation.channel_address) from e
    return FlowState(flow=flow, data=dict(document), last_activity=stamp)


def reset_to_idle(db: Session, conversation: Conversation) -> FlowState:
    return update_flow(db, conversation, FlowName.IDLE)


def link_user(db: Session, conversation: Conversation, user_id: str) -> None:
    conversation.linked_user_id = str(user_id)
    db.flush()
    logger.info(
        "User linked to conversation",
        extra={"context": {"conversation_id": str(conversation.id), "user_id": str(user_id)}},
    )


def unlink_user(db: Session, conversation: Conversation) -> None:
    conversation.linked_user_id = None
    update_flow(db, conversation, FlowName.IDLE)


def remember_message_id(db: Session, conversation: Conversation, message_id: Optional[str], window: int = 20) -> bool:
    """Record a provider message id. Returns False when it was already seen."""
    if not message_id:
        return True
    seen = list(conversation.recent_message_ids or [])
    if message_id in seen:
        return False
    seen.append(message_id)
    conversation.recent_message_ids = seen[-window:]
    db.flush()
    return True


def list_active_addresses(db: Session) -> list[str]:
    rows = db.query(Conversation.channel_address).filter(Conversation.is_active.is_(True)).all()
    return [row[0] for row in rows]
