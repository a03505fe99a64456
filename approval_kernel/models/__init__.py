"""ORM models for the approval kernel."""

from approval_kernel.models.audit_entry import AuditEntryModel, AuditMarker
from approval_kernel.models.notification import (
    NotificationModel,
    NotificationRecipientModel,
)
from approval_kernel.models.record import FinalOptionModel, WorkflowRecordModel
from approval_kernel.models.sequence import SequenceCounter

__all__ = [
    "AuditEntryModel",
    "AuditMarker",
    "FinalOptionModel",
    "NotificationModel",
    "NotificationRecipientModel",
    "SequenceCounter",
    "WorkflowRecordModel",
]
