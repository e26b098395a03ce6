from .core import (
    TimeStampedModel,
    StaffProfile,
    SerialSequence,
    Item,
    InstrumentGroup,
    GroupMembership,
    ForwardingRequest,
    StorageSlot,
)
from .audit_record import AuditRecord

__all__ = [
    "TimeStampedModel",
    "StaffProfile",
    "SerialSequence",
    "Item",
    "InstrumentGroup",
    "GroupMembership",
    "ForwardingRequest",
    "StorageSlot",
    "AuditRecord",
]
