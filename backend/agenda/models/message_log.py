from sqlalchemy import Column, String, Text, JSON, ForeignKey, Uuid
import uuid
from agenda.core.database import Base, UTCDateTime, utcnow


class MessageLog(Base):
    __tablename__ = "message_log"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    tenant_id = Column(Uuid, ForeignKey("tenants.id"), nullable=True)

    direction = Column(String(8), nullable=False)  # inbound | outbound
    phone = Column(String, nullable=False)
    body = Column(Text, nullable=False)

    # Transport message id (Twilio MessageSid); unique so webhook retries dedupe
    external_id = Column(String, unique=True, nullable=True)
    meta = Column(JSON, default=dict)

    created_at = Column(UTCDateTime, default=utcnow)

    def __repr__(self):
        return f"<MessageLog(id={self.id}, direction={self.direction}, phone={self.phone})>"
