import uuid

from sqlalchemy import Column, ForeignKey, Text
from sqlalchemy.dialects.postgresql import JSONB, TIMESTAMP, UUID
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func

from edubot.database import Base


class MessageLog(Base):
    __tablename__ = "whatsapp_message_logs"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    conversation_id = Column(UUID(as_uuid=True), ForeignKey("whatsapp_conversations.id"), nullable=True)
    channel_address = Column(Text, nullable=False)
    direction = Column(Text, nullable=False)  # inbound, outbound
    message_type = Column(Text, nullable=False)  # text, button, list, interactive
    content = Column(JSONB, nullable=False, default=dict)
    provider_message_id = Column(Text)
    status = Column(Text, nullable=False, default="sent")  # received, sent, failed
    error_message = Column(Text)
    created_at = Column(TIMESTAMP(timezone=True), nullable=False, server_default=func.now())

    conversation = relationship("Conversation", back_populates="message_logs")
