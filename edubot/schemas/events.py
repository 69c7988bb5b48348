from enum import Enum
from typing import Optional

from pydantic import BaseModel, Field


class EventKind(str, Enum):
    TEXT = "text"
    BUTTON = "button"
    LIST = "list"


class InboundEvent(BaseModel):
    """Transport-neutral view of one inbound message."""

    from_address: str
    provider_message_id: str
    kind: EventKind
    text: Optional[str] = None
    choice_id: Optional[str] = None
    raw_type: Optional[str] = Field(default=None, description="Provider message type, for logging")

    @property
    def normalized_text(self) -> str:
        return (self.text or "").strip().lower()

    @property
    def raw_text(self) -> str:
        return (self.text or "").strip()

    @property
    def selection(self) -> str:
        """Choice id when one was picked, otherwise the lowercased text."""
        return self.choice_id or self.normalized_text

    @property
    def is_choice(self) -> bool:
        return self.kind in (EventKind.BUTTON, EventKind.LIST)
