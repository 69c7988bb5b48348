"""Inline expiry checks, run on every inbound event rather than on a timer."""

from datetime import datetime, timedelta, timezone
from typing import Callable, Optional

from sqlalchemy.orm import Session

from edubot.logging_config import get_logger
from edubot.models import Conversation
from edubot.schemas.drafts import AdminDraft
from edubot.services.conversation_service import load_flow_state, update_flow
from edubot.services.state_machine import FlowName, FlowState

logger = get_logger("session_expiry")


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _aware(value: datetime) -> datetime:
    return value if value.tzinfo else value.replace(tzinfo=timezone.utc)


class SessionExpiryMonitor:
    def __init__(self, timeout: timedelta = timedelta(minutes=30), clock: Callable[[], datetime] = _utcnow):
        self.timeout = timeout
        self.clock = clock

    def is_stale(self, state: FlowState, now: Optional[datetime] = None) -> bool:
        if state.is_idle:
            return False
        idle_for = state.idle_for(now or self.clock())
        # A wizard with no recorded activity cannot prove it is fresh.
        return idle_for is None or idle_for > self.timeout

    def enforce(self, db: Session, conversation: Conversation) -> tuple[Conversation, bool]:
        """Reset a stale flow to idle and re-read the row. Returns (conversation, expired)."""
        now = self.clock()
        state = load_flow_state(conversation)
        if not self.is_stale(state, now):
            return conversation, False

        logger.info(
            "Session expired, resetting to idle",
            extra={
                "context": {
                    "address": conversation.channel_address,
                    "flow": state.flow.value,
                    "last_activity": state.last_activity,
                }
            },
        )
        update_flow(db, conversation, FlowName.IDLE, now=now)
        db.refresh(conversation)
        return conversation, True


def admin_session_expired(draft: AdminDraft, now: datetime, timeout: timedelta) -> bool:
    if draft.admin_session_start is None:
        return True
    return now - _aware(draft.admin_session_start) > timeout
