from sqlalchemy import Column, String, Boolean, ForeignKey, Uuid
from sqlalchemy.orm import relationship
import uuid
from agenda.core.database import Base, UTCDateTime, utcnow


class Tenant(Base):
    __tablename__ = "tenants"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    name = Column(String, nullable=False)

    # IANA zone every provider of this tenant works in
    timezone = Column(String, nullable=False, default="Europe/Lisbon")

    # Twilio
    twilio_number = Column(String, unique=True, nullable=True)

    created_at = Column(UTCDateTime, default=utcnow)

    def __repr__(self):
        return f"<Tenant(id={self.id}, name={self.name}, tz={self.timezone})>"


class Operator(Base):
    """Authenticated owner/staff user acting for one tenant."""

    __tablename__ = "operators"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    tenant_id = Column(Uuid, ForeignKey("tenants.id"), nullable=False, index=True)
    name = Column(String, nullable=False)

    # sha256 hex of the bearer token; the token itself is never stored
    token_hash = Column(String(64), unique=True, nullable=False)
    active = Column(Boolean, nullable=False, default=True)

    created_at = Column(UTCDateTime, default=utcnow)

    tenant = relationship("Tenant", backref="operators")

    def __repr__(self):
        return f"<Operator(id={self.id}, tenant={self.tenant_id})>"
