from sqlalchemy import Column, String, ForeignKey, Uuid, UniqueConstraint
from sqlalchemy.orm import relationship
import uuid
from agenda.core.database import Base, UTCDateTime, utcnow


class Customer(Base):
    __tablename__ = "customers"
    __table_args__ = (
        UniqueConstraint("tenant_id", "phone", name="uq_customers_tenant_phone"),
    )

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    tenant_id = Column(Uuid, ForeignKey("tenants.id"), nullable=False)

    # Digits only, no "+" or separators
    phone = Column(String, nullable=False, index=True)
    name = Column(String, nullable=True)

    created_at = Column(UTCDateTime, default=utcnow)

    tenant = relationship("Tenant", backref="customers")

    def __repr__(self):
        return f"<Customer(id={self.id}, phone={self.phone})>"
