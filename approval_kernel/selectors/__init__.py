"""Read-only selectors over records, audit trails and notifications."""

from approval_kernel.selectors.audit_selector import AuditSelector, RecordSelector
from approval_kernel.selectors.notification_selector import (
    InboxItem,
    NotificationSelector,
)

__all__ = ["AuditSelector", "InboxItem", "NotificationSelector", "RecordSelector"]
