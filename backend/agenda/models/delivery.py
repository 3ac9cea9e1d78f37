import enum
from sqlalchemy import Column, Enum, ForeignKey, Uuid
from agenda.core.database import Base, UTCDateTime, utcnow


class NotificationType(str, enum.Enum):
    BOOKING_CONFIRMATION_REQUEST = "BOOKING_CONFIRMATION_REQUEST"
    CONFIRM_REPLY = "CONFIRM_REPLY"
    CANCEL_REPLY = "CANCEL_REPLY"
    CANCELLED_BY_OPERATOR = "CANCELLED_BY_OPERATOR"
    REMINDER_24H = "REMINDER_24H"
    THANK_YOU = "THANK_YOU"
    REBOOK = "REBOOK"


class DeliveryRecord(Base):
    """Existence of a row means the notification was already claimed."""

    __tablename__ = "delivery_records"

    # The composite primary key is the uniqueness guarantee.
    appointment_id = Column(Uuid, ForeignKey("appointments.id"), primary_key=True)
    notification_type = Column(
        Enum(
            NotificationType,
            name="notification_type",
            native_enum=False,
            create_constraint=True,
            validate_strings=True,
            length=40,
        ),
        primary_key=True,
    )

    created_at = Column(UTCDateTime, default=utcnow, nullable=False)

    def __repr__(self):
        return f"<DeliveryRecord(appointment={self.appointment_id}, type={self.notification_type})>"
