from sqlalchemy import (
    Column,
    String,
    Enum,
    ForeignKey,
    Uuid,
    Index,
    CheckConstraint,
    DDL,
    event,
)
from sqlalchemy.orm import relationship
import uuid
from agenda.core.database import Base, UTCDateTime, utcnow
from agenda.scheduling.state_machine import AppointmentStatus


class Appointment(Base):
    __tablename__ = "appointments"
    __table_args__ = (
        CheckConstraint("start_at < end_at", name="ck_appointments_interval"),
        Index("idx_appointments_provider_start", "provider_id", "start_at"),
        Index("idx_appointments_status_end", "status", "end_at"),
    )

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    tenant_id = Column(Uuid, ForeignKey("tenants.id"), nullable=False)
    provider_id = Column(Uuid, ForeignKey("providers.id"), nullable=False)
    customer_id = Column(Uuid, ForeignKey("customers.id"), nullable=False, index=True)

    # Half-open interval [start_at, end_at)
    start_at = Column(UTCDateTime, nullable=False)
    end_at = Column(UTCDateTime, nullable=False)

    status = Column(
        Enum(
            AppointmentStatus,
            name="appointment_status",
            native_enum=False,
            create_constraint=True,
            validate_strings=True,
            length=16,
        ),
        nullable=False,
        default=AppointmentStatus.BOOKED,
    )

    service = Column(String, nullable=True)
    customer_name_snapshot = Column(String, nullable=True)

    confirmed_at = Column(UTCDateTime, nullable=True)
    cancelled_at = Column(UTCDateTime, nullable=True)
    completed_at = Column(UTCDateTime, nullable=True)
    created_at = Column(UTCDateTime, default=utcnow)
    updated_at = Column(UTCDateTime, default=utcnow, onupdate=utcnow)

    provider = relationship("Provider", backref="appointments")
    customer = relationship("Customer", backref="appointments")

    def __repr__(self):
        return (
            f"<Appointment(id={self.id}, provider={self.provider_id}, "
            f"{self.start_at}-{self.end_at}, status={self.status})>"
        )


# Storage-level overlap guard: non-cancelled appointments of one provider never
# overlap. PostgreSQL uses an exclusion constraint; SQLite serialises writers,
# so a trigger check runs atomically with the write.
OVERLAP_CONSTRAINT = "ex_appointments_provider_no_overlap"

PG_BTREE_GIST = DDL("CREATE EXTENSION IF NOT EXISTS btree_gist")
PG_NO_OVERLAP = DDL(
    f"ALTER TABLE appointments ADD CONSTRAINT {OVERLAP_CONSTRAINT} "
    "EXCLUDE USING gist (provider_id WITH =, tstzrange(start_at, end_at, '[)') WITH &&) "
    "WHERE (status <> 'CANCELLED')"
)

SQLITE_NO_OVERLAP_INSERT = DDL(
    """
    CREATE TRIGGER IF NOT EXISTS trg_appointments_no_overlap_insert
    BEFORE INSERT ON appointments
    WHEN NEW.status <> 'CANCELLED'
    BEGIN
        SELECT RAISE(ABORT, 'ex_appointments_provider_no_overlap')
        WHERE EXISTS (
            SELECT 1 FROM appointments a
            WHERE a.provider_id = NEW.provider_id
              AND a.status <> 'CANCELLED'
              AND a.start_at < NEW.end_at
              AND a.end_at > NEW.start_at
        );
    END
    """
)
SQLITE_NO_OVERLAP_UPDATE = DDL(
    """
    CREATE TRIGGER IF NOT EXISTS trg_appointments_no_overlap_update
    BEFORE UPDATE OF start_at, end_at, status, provider_id ON appointments
    WHEN NEW.status <> 'CANCELLED'
    BEGIN
        SELECT RAISE(ABORT, 'ex_appointments_provider_no_overlap')
        WHERE EXISTS (
            SELECT 1 FROM appointments a
            WHERE a.provider_id = NEW.provider_id
              AND a.id <> NEW.id
              AND a.status <> 'CANCELLED'
              AND a.start_at < NEW.end_at
              AND a.end_at > NEW.start_at
        );
    END
    """
)

event.listen(Appointment.__table__, "before_create", PG_BTREE_GIST.execute_if(dialect="postgresql"))
event.listen(Appointment.__table__, "after_create", PG_NO_OVERLAP.execute_if(dialect="postgresql"))
event.listen(Appointment.__table__, "after_create", SQLITE_NO_OVERLAP_INSERT.execute_if(dialect="sqlite"))
event.listen(Appointment.__table__, "after_create", SQLITE_NO_OVERLAP_UPDATE.execute_if(dialect="sqlite"))
