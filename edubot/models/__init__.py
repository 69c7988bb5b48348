from edubot.models.conversation import Conversation
from edubot.models.message_log import MessageLog

__all__ = [
    "Conversation",
    "MessageLog",
]
