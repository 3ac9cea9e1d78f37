from agenda.models.tenant import Tenant, Operator
from agenda.models.provider import Provider, WorkingHoursRule
from agenda.models.customer import Customer
from agenda.models.appointment import Appointment
from agenda.models.delivery import DeliveryRecord, NotificationType
from agenda.models.run_lock import RunLockEntry
from agenda.models.message_log import MessageLog

__all__ = [
    "Tenant",
    "Operator",
    "Provider",
    "WorkingHoursRule",
    "Customer",
    "Appointment",
    "DeliveryRecord",
    "NotificationType",
    "RunLockEntry",
    "MessageLog",
]
