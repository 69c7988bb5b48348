import uuid

from sqlalchemy import Boolean, Column, Integer, Text
from sqlalchemy.dialects.postgresql import JSONB, TIMESTAMP, UUID
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func

from edubot.database import Base


class Conversation(Base):
    __tablename__ = "whatsapp_conversations"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    channel_address = Column(Text, nullable=False, unique=True, index=True)  # digits only
    linked_user_id = Column(Text)
    current_flow = Column(Text, nullable=False, default="idle")
    flow_data = Column(JSONB, nullable=False, default=dict)
    last_activity_at = Column(TIMESTAMP(timezone=True))
    flow_version = Column(Integer, nullable=False, default=1)
    recent_message_ids = Column(JSONB, nullable=False, default=list)
    is_active = Column(Boolean, nullable=False, default=True)
    created_at = Column(TIMESTAMP(timezone=True), nullable=False, server_default=func.now())
    updated_at = Column(TIMESTAMP(timezone=True), nullable=False, server_default=func.now(), onupdate=func.now())

    message_logs = relationship("MessageLog", back_populates="conversation")

    __mapper_args__ = {"version_id_col": flow_version}
