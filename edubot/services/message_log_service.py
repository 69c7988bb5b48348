"""Best-effort audit trail of inbound and outbound WhatsApp messages.

Writes go through their own session so a failed insert can never roll back
flow state. Failures are counted and exposed on /health instead of being
dropped silently.
"""

import threading
from typing import Any, Callable, Optional
from uuid import UUID

from sqlalchemy.orm import Session

from edubot.database import SessionLocal
from edubot.logging_config import get_logger
from edubot.models import MessageLog

logger = get_logger("message_log")


class MessageLogService:
    def __init__(self, session_factory: Callable[[], Session] = SessionLocal):
        self._session_factory = session_factory
        self._lock = threading.Lock()
        self.written = 0
        self.failures = 0
        self.last_error: Optional[str] = None

    def record(
        self,
        channel_address: str,
        direction: str,
        message_type: str,
        content: dict[str, Any],
        provider_message_id: Optional[str] = None,
        status: str = "sent",
        error_message: Optional[str] = None,
        conversation_id: Optional[UUID] = None,
    ) -> bool:
        db = self._session_factory()
        try:
            db.add(
                MessageLog(
                    conversation_id=conversation_id,
                    channel_address=channel_address,
                    direction=direction,
                    message_type=message_type,
                    content=content,
                    provider_message_id=provider_message_id,
                    status=status,
                    error_message=error_message,
                )
            )
            db.commit()
        except Exception as e:
            db.rollback()
            with self._lock:
                self.failures += 1
                self.last_error = str(e)
            logger.warning(
                "Message log write failed",
                extra={"context": {"address": channel_address, "direction": direction, "failures": self.failures}},
                exc_info=True,
            )
            return False
        finally:
            db.close()

        with self._lock:
            self.written += 1
        return True

    def stats(self) -> dict[str, Any]:
        with self._lock:
            return {"written": self.written, "failures": self.failures, "last_error": self.last_error}
