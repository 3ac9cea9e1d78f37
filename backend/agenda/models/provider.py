from sqlalchemy import (
    Column,
    String,
    Boolean,
    ForeignKey,
    SmallInteger,
    Time,
    Uuid,
    UniqueConstraint,
    CheckConstraint,
)
from sqlalchemy.orm import relationship
import uuid
from agenda.core.database import Base, UTCDateTime, utcnow


class Provider(Base):
    __tablename__ = "providers"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    tenant_id = Column(Uuid, ForeignKey("tenants.id"), nullable=False, index=True)
    name = Column(String, nullable=False)
    active = Column(Boolean, nullable=False, default=True)

    created_at = Column(UTCDateTime, default=utcnow)

    tenant = relationship("Tenant", backref="providers")

    def __repr__(self):
        return f"<Provider(id={self.id}, name={self.name})>"


class WorkingHoursRule(Base):
    """Open/close wall-clock window for one weekday (0 = Monday)."""

    __tablename__ = "working_hours_rules"
    __table_args__ = (
        UniqueConstraint("provider_id", "day_of_week", name="uq_working_hours_provider_day"),
        CheckConstraint("day_of_week BETWEEN 0 AND 6", name="ck_working_hours_day_of_week"),
    )

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    provider_id = Column(Uuid, ForeignKey("providers.id"), nullable=False)
    day_of_week = Column(SmallInteger, nullable=False)

    open_time = Column(Time, nullable=False)
    close_time = Column(Time, nullable=False)
    active = Column(Boolean, nullable=False, default=True)

    provider = relationship("Provider", backref="working_hours")

    def __repr__(self):
        return (
            f"<WorkingHoursRule(provider={self.provider_id}, dow={self.day_of_week}, "
            f"{self.open_time}-{self.close_time}, active={self.active})>"
        )
