"""
approval_services.notification_dispatcher -- Best-effort notification hand-off.

Responsibility:
    Turn a committed workflow event into a recipient set and a message
    (routing and wording come from ``approval_engines.notifications``),
    expand role cohorts through the ``UserDirectory`` and hand the result
    to one or more delivery channels.  Decides *who* and *what*, never
    *how*.

Architecture position:
    Services layer.  Called by the workflow engine strictly after the
    status change and audit entry have committed.

Invariants enforced:
    - The acting user is never a recipient.
    - A delivery failure never propagates: it is logged as
      NOTIFICATION_DELIVERY_FAILED and the committed state stands.
      No automatic retry.
    - With an executor configured, delivery runs off the caller's thread.

Failure modes:
    - None surfaced to callers.  Directory and channel errors are logged.
"""

from __future__ import annotations

from collections.abc import Sequence
from concurrent.futures import Executor
from dataclasses import dataclass
from typing import Any, Protocol, runtime_checkable

from approval_engines.notifications import (
    RecipientPlan,
    build_message,
    message_context,
    plan_recipients,
)
from approval_kernel.db.engine import Database
from approval_kernel.domain.clock import Clock, SystemClock
from approval_kernel.domain.records import Actor, WorkflowRecord
from approval_kernel.domain.workflow import (
    TransitionTable,
    WorkflowAction,
    WorkflowDefinition,
)
from approval_kernel.exceptions import NotificationDeliveryError
from approval_kernel.logging_config import get_logger
from approval_kernel.models.notification import (
    NotificationModel,
    NotificationRecipientModel,
)
from approval_services.identity import UserDirectory

logger = get_logger("services.notification_dispatcher")


@dataclass(frozen=True)
class NotificationEvent:
    """A committed workflow event, as seen by the dispatcher."""

    record: WorkflowRecord
    event_type: str
    actor: Actor
    action: WorkflowAction | None = None
    previous_status: str | None = None
    notify_roles: tuple[str, ...] = ()


@dataclass(frozen=True)
class Notification:
    """What will be handed to the delivery channels."""

    recipient_ids: frozenset[int]
    message: str
    entity_reference: str
    event_type: str


@runtime_checkable
class DeliveryChannel(Protocol):
    """External delivery collaborator (push, e-mail, in-app...)."""

    name: str

    def deliver(
        self, recipient_ids: frozenset[int], message: str, entity_reference: str,
    ) -> None:
        ...


# ---------------------------------------------------------------------------
# Channels
# ---------------------------------------------------------------------------


class LoggingDeliveryChannel:
    """Writes each notification to the structured log."""

    name = "log"

    def deliver(
        self, recipient_ids: frozenset[int], message: str, entity_reference: str,
    ) -> None:
        logger.info(
            "notification_logged",
            extra={
                "recipient_ids": sorted(recipient_ids),
                "notification_message": message,
                "entity_reference": entity_reference,
            },
        )


class InAppDeliveryChannel:
    """Persists notifications for the in-app inbox, in its own transaction."""

    name = "in_app"

    def __init__(self, database: Database, clock: Clock | None = None) -> None:
        self._database = database
        self._clock = clock or SystemClock()

    def deliver(
        self, recipient_ids: frozenset[int], message: str, entity_reference: str,
    ) -> None:
        with self._database.session_scope() as session:
            notification = NotificationModel(
                entity_reference=entity_reference,
                message=message,
                created_at=self._clock.now(),
            )
            notification.recipients = [
                NotificationRecipientModel(user_id=user_id)
                for user_id in sorted(recipient_ids)
            ]
            session.add(notification)


# ---------------------------------------------------------------------------
# Dispatcher
# ---------------------------------------------------------------------------


class NotificationDispatcher:
    """Resolves, renders and delivers workflow notifications."""

    def __init__(
        self,
        table: TransitionTable,
        directory: UserDirectory,
        channels: Sequence[DeliveryChannel] | DeliveryChannel = (),
        executor: Executor | None = None,
    ) -> None:
        self._table = table
        self._directory = directory
        if isinstance(channels, DeliveryChannel):
            channels = (channels,)
        self._channels: tuple[DeliveryChannel, ...] = tuple(channels)
        self._executor = executor

    @property
    def channels(self) -> tuple[DeliveryChannel, ...]:
        return self._channels

    @property
    def executor(self) -> Executor | None:
        return self._executor

    def close(self) -> None:
        """Wait for queued deliveries and release the executor."""
        if self._executor is not None:
            self._executor.shutdown(wait=True)

    def expand(self, plan: RecipientPlan, definition: WorkflowDefinition) -> frozenset[int]:
        """User ids for a plan: direct ids plus expanded cohorts, minus the actor.

        A cohort scoped to a department also reaches holders of a
        department-head role for that department, wherever they sit.
        """
        users: set[int] = set(plan.user_ids)
        for cohort in plan.cohorts:
            if (
                cohort.department_id is None
                or definition.headed_department(cohort.role) == cohort.department_id
            ):
                users |= self._directory.users_with_role(cohort.role)
            else:
                users |= self._directory.users_with_role(cohort.role, cohort.department_id)
        users.discard(plan.exclude_user_id)
        return frozenset(users)

    def resolve_recipients(
        self,
        record: WorkflowRecord,
        new_status: str,
        acting_user_id: int,
        *,
        action: WorkflowAction | str | None = None,
        previous_status: str | None = None,
        notify_roles: tuple[str, ...] = (),
    ) -> frozenset[int]:
        """Who should hear that ``record`` is now in ``new_status``."""
        definition = self._table.definition(record.workflow_type)
        plan = plan_recipients(
            definition,
            record,
            new_status,
            acting_user_id,
            action=action,
            previous_status=previous_status,
            notify_roles=notify_roles,
        )
        return self.expand(plan, definition)

    def build_message(self, event_type: str, context: dict[str, Any]) -> str:
        return build_message(event_type, context)

    def prepare(self, event: NotificationEvent) -> Notification:
        record = event.record
        definition = self._table.definition(record.workflow_type)
        recipients = self.resolve_recipients(
            record,
            record.status,
            event.actor.actor_id,
            action=event.action,
            previous_status=event.previous_status,
            notify_roles=event.notify_roles,
        )
        context = message_context(definition, record, actor_name=event.actor.name)
        return Notification(
            recipient_ids=recipients,
            message=build_message(event.event_type, context),
            entity_reference=record.code,
            event_type=event.event_type,
        )

    def dispatch(self, event: NotificationEvent) -> Notification | None:
        """Resolve and deliver; never raises.

        Returns the prepared notification, or None when there was nobody to
        notify or preparation itself failed.
        """
        try:
            notification = self.prepare(event)
        except Exception as exc:
            logger.warning(
                "notification_preparation_failed",
                extra={"entity_reference": event.record.code, "event_type": event.event_type},
                exc_info=exc,
            )
            return None

        if not notification.recipient_ids:
            logger.debug(
                "notification_skipped_no_recipients",
                extra={"entity_reference": notification.entity_reference},
            )
            return None

        if self._executor is not None:
            self._executor.submit(self._deliver_all, notification)
        else:
            self._deliver_all(notification)
        return notification

    def _deliver_all(self, notification: Notification) -> None:
        for channel in self._channels:
            self._deliver(channel, notification)

    def _deliver(self, channel: DeliveryChannel, notification: Notification) -> bool:
        channel_name = getattr(channel, "name", type(channel).__name__)
        try:
            channel.deliver(
                notification.recipient_ids,
                notification.message,
                notification.entity_reference,
            )
        except Exception as exc:
            failure = NotificationDeliveryError(
                channel_name, notification.entity_reference, str(exc),
            )
            failure.__cause__ = exc
            logger.warning(
                "notification_delivery_failed",
                extra={
                    "channel": channel_name,
                    "event_type": notification.event_type,
                    "recipient_count": len(notification.recipient_ids),
                },
                exc_info=failure,
            )
            return False

        logger.info(
            "notification_dispatched",
            extra={
                "channel": channel_name,
                "entity_reference": notification.entity_reference,
                "event_type": notification.event_type,
                "recipient_count": len(notification.recipient_ids),
            },
        )
        return True
