"""
approval_services -- Package init and public API.

Responsibility:
    Stateful orchestration over the pure engines and the kernel.  This is
    the only layer that opens transactions, resolves identities and hands
    events to delivery channels.

Architecture position:
    Services -- top of the stack.

        approval_services/ -> approval_engines/, approval_config/, approval_kernel/
        approval_engines/  -> approval_kernel/domain only
        approval_kernel/   -> nothing above it
"""

from approval_services.bootstrap import build_engine
from approval_services.identity import IdentityProvider, StaticDirectory, UserDirectory
from approval_services.notification_dispatcher import (
    DeliveryChannel,
    InAppDeliveryChannel,
    LoggingDeliveryChannel,
    Notification,
    NotificationDispatcher,
    NotificationEvent,
)
from approval_services.workflow_engine import WorkflowEngine

__all__ = [
    "DeliveryChannel",
    "IdentityProvider",
    "InAppDeliveryChannel",
    "LoggingDeliveryChannel",
    "Notification",
    "NotificationDispatcher",
    "NotificationEvent",
    "StaticDirectory",
    "UserDirectory",
    "WorkflowEngine",
    "build_engine",
]
