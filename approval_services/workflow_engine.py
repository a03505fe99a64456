"""
approval_services.workflow_engine -- The approval workflow orchestrator.

Responsibility:
    Runs every action on a requisition, cash voucher or mission order:
    load the record, ask the authorization evaluator for a verdict, apply
    the matched rule's effects, persist with an optimistic check, append
    the audit entry, commit, then hand the event to the notification
    dispatcher.  Also creates records and serves timeline reads.

Architecture position:
    Services layer.  Thin coordinator: authorization and side-effect
    logic live in ``approval_engines``; persistence in the kernel
    services; the table in ``approval_config``.

Invariants enforced:
    - Atomicity: status change and audit entry commit together inside one
      ``session_scope()``; any error before commit leaves no trace.
    - A denied action writes nothing and notifies nobody.
    - Every successful action appends exactly one audit entry whose
      event type is the resulting status (or the rule's marker for
      flag-only actions).
    - A creator holding a pre-approval role takes their own chain step on
      submission: the step gets its own audit entry in the same commit.
    - Per-record serialization: the write is conditional on the status and
      version the verdict was computed against; a lost race raises
      OptimisticLockError and is never retried here.
    - Notification happens after commit and can never undo it.

Failure modes:
    - RecordNotFoundError, UnauthorizedActionError, UnknownActorError,
      InvalidTransitionError (incl. ActorFieldAlreadySetError),
      ValidationError, OptimisticLockError -- all before commit.
"""

from __future__ import annotations

import time
from collections.abc import Mapping
from decimal import Decimal
from typing import Any

from approval_engines.authorization import allowed_actions, can_perform
from approval_engines.transitions import TransitionOutcome, apply_transition, require_reason
from approval_kernel.db.engine import Database
from approval_kernel.domain.clock import Clock, SystemClock
from approval_kernel.domain.records import (
    Actor,
    AuditEntry,
    AuthorizationVerdict,
    DenialKind,
    WorkflowRecord,
)
from approval_kernel.domain.workflow import (
    TransitionRule,
    TransitionTable,
    WorkflowAction,
    WorkflowType,
)
from approval_kernel.exceptions import (
    InvalidTransitionError,
    UnauthorizedActionError,
    ValidationError,
)
from approval_kernel.logging_config import LogContext, get_logger
from approval_kernel.selectors.audit_selector import AuditSelector
from approval_kernel.services.auditor_service import AuditorService
from approval_kernel.services.record_store import RecordStore
from approval_kernel.services.sequence_service import SequenceService
from approval_services.identity import IdentityProvider
from approval_services.notification_dispatcher import (
    NotificationDispatcher,
    NotificationEvent,
)

logger = get_logger("services.workflow_engine")


def _json_safe(payload: Mapping[str, Any]) -> dict[str, Any]:
    return {
        str(k): str(v) if isinstance(v, Decimal) else v
        for k, v in payload.items()
    }


class WorkflowEngine:
    """
    In-process call surface of the approval workflows.

    Usage:
        engine = WorkflowEngine(database, table, directory, dispatcher)
        record = engine.create(WorkflowType.REQUISITION, creator_id, title="Laptops")
        record = engine.approve(record.id, manager_id)
    """

    def __init__(
        self,
        database: Database,
        table: TransitionTable,
        identity: IdentityProvider,
        dispatcher: NotificationDispatcher | None = None,
        clock: Clock | None = None,
    ) -> None:
        self._database = database
        self._table = table
        self._identity = identity
        self._dispatcher = dispatcher
        self._clock = clock or SystemClock()

    @property
    def table(self) -> TransitionTable:
        return self._table

    @property
    def database(self) -> Database:
        return self._database

    @property
    def dispatcher(self) -> NotificationDispatcher | None:
        return self._dispatcher

    def close(self) -> None:
        """Drain pending notifications, then dispose of the connection pool."""
        if self._dispatcher is not None:
            self._dispatcher.close()
        self._database.dispose()
        logger.debug("engine_closed")

    def __enter__(self) -> WorkflowEngine:
        return self

    def __exit__(self, *exc: Any) -> None:
        self.close()

    # ------------------------------------------------------------------
    # Core operation
    # ------------------------------------------------------------------

    def evaluate(
        self, actor: Actor, record: WorkflowRecord, action: WorkflowAction,
    ) -> AuthorizationVerdict:
        return can_perform(self._table, actor, record, action)

    def apply(
        self,
        entity_id: int,
        actor: Actor,
        action: WorkflowAction | str,
        payload: Mapping[str, Any] | None = None,
    ) -> WorkflowRecord:
        """
        Apply ``action`` to record ``entity_id`` on behalf of ``actor``.

        Returns:
            The committed record snapshot.

        Raises:
            RecordNotFoundError, UnauthorizedActionError,
            InvalidTransitionError, ValidationError, OptimisticLockError.
        """
        try:
            action = WorkflowAction(action)
        except ValueError:
            raise ValidationError("action", f"unknown action '{action}'") from None
        payload = dict(payload or {})
        t0 = time.monotonic()

        with LogContext.bind(
            actor_id=str(actor.actor_id),
            entity_id=str(entity_id),
            action=action.value,
        ):
            logger.debug("workflow_action_started")

            with self._database.session_scope() as session:
                store = RecordStore(session, self._clock)
                record = store.load(entity_id)
                verdict = self.evaluate(actor, record, action)
                if not verdict.allowed:
                    self._deny(record, actor, action, verdict)

                rule = verdict.rule
                outcome: TransitionOutcome = apply_transition(
                    rule, record, actor, verdict.next_status, payload, self._clock.now(),
                )
                updated = store.save_if_current(
                    outcome.record,
                    expected_status=record.status,
                    expected_version=record.version,
                )
                if outcome.final_option is not None:
                    updated = store.add_final_option(updated.id, outcome.final_option)

                entry = AuditorService(session, self._clock).append(
                    entity_id=updated.id,
                    workflow_type=updated.workflow_type,
                    actor_id=actor.actor_id,
                    event_type=outcome.event_type,
                    details=outcome.details,
                    previous_status=record.status,
                    new_status=updated.status,
                )
                pre_approved = (
                    self._pre_approve(session, updated, actor)
                    if action is WorkflowAction.SUBMIT
                    else None
                )

            logger.info(
                "workflow_transition_applied",
                extra={
                    "workflow": updated.workflow_type.value,
                    "rule_id": rule.rule_id,
                    "from_status": record.status,
                    "to_status": updated.status,
                    "event_type": entry.event_type,
                    "version": updated.version,
                    "duration_ms": round((time.monotonic() - t0) * 1000, 3),
                },
            )

        if pre_approved is not None:
            return self._notify_pre_approved(updated, pre_approved, actor)
        self._notify(
            NotificationEvent(
                record=updated,
                event_type=outcome.event_type,
                actor=actor,
                action=action,
                previous_status=record.status,
                notify_roles=rule.notify_roles,
            )
        )
        return updated

    def _deny(
        self,
        record: WorkflowRecord,
        actor: Actor,
        action: WorkflowAction,
        verdict: AuthorizationVerdict,
    ) -> None:
        logger.warning(
            "workflow_action_denied",
            extra={
                "workflow": record.workflow_type.value,
                "status": record.status,
                "denial": verdict.denial,
                "reason": verdict.reason,
            },
        )
        if verdict.denial is DenialKind.INVALID_TRANSITION:
            raise InvalidTransitionError(action.value, record.id, record.status, verdict.reason)
        raise UnauthorizedActionError(
            actor.actor_id, action.value, record.id, record.status, verdict.reason,
        )

    def _pre_approve(
        self, session, record: WorkflowRecord, actor: Actor,
    ) -> tuple[WorkflowRecord, TransitionOutcome, TransitionRule] | None:
        """Take the creator's own chain step on a freshly submitted record.

        Runs inside the caller's session so the extra status change and
        its audit entry commit together with the submission.
        """
        definition = self._table.definition(record.workflow_type)
        pre_approval = definition.pre_approval_for(actor.roles)
        if pre_approval is None or actor.actor_id != record.creator_id:
            return None
        target = definition.rule(pre_approval.rule_id, record.status)
        if target is None:
            return None
        verdict = can_perform(self._table, actor, record, target.action)
        if not verdict.allowed or verdict.rule.rule_id != pre_approval.rule_id:
            return None

        outcome = apply_transition(
            verdict.rule, record, actor, verdict.next_status, {}, self._clock.now(),
        )
        updated = RecordStore(session, self._clock).save_if_current(
            outcome.record,
            expected_status=record.status,
            expected_version=record.version,
        )
        AuditorService(session, self._clock).append(
            entity_id=updated.id,
            workflow_type=updated.workflow_type,
            actor_id=actor.actor_id,
            event_type=outcome.event_type,
            details=dict(outcome.details, pre_approved=True),
            previous_status=record.status,
            new_status=updated.status,
        )
        logger.info(
            "record_pre_approved",
            extra={
                "record_id": updated.id,
                "rule_id": verdict.rule.rule_id,
                "from_status": record.status,
                "to_status": updated.status,
            },
        )
        return updated, outcome, verdict.rule

    def _notify(self, event: NotificationEvent) -> None:
        if self._dispatcher is None:
            return
        self._dispatcher.dispatch(event)

    # ------------------------------------------------------------------
    # Creation
    # ------------------------------------------------------------------

    def create(
        self,
        workflow_type: WorkflowType | str,
        actor_id: int,
        *,
        title: str = "",
        category: str | None = None,
        payload: Mapping[str, Any] | None = None,
        total_amount: Decimal | None = None,
        department_id: str | None = None,
        draft: bool = False,
    ) -> WorkflowRecord:
        """
        Create a record owned by the creator's department.

        The record starts in the workflow's initial status, or its draft
        status when ``draft`` is set; one audit entry is written with the
        starting status as event type.  A department head or director
        creator then takes their own step at once (see ``_pre_approve``).
        """
        workflow_type = WorkflowType(workflow_type)
        definition = self._table.definition(workflow_type)
        actor = self._identity.resolve(actor_id)
        if draft and definition.draft_status is None:
            raise ValidationError("draft", f"{definition.label} has no draft status")
        status = definition.draft_status if draft else definition.initial_status
        department = department_id or actor.department_id
        if department is None:
            raise ValidationError("department_id", "the record needs an owning department")

        with LogContext.bind(actor_id=str(actor_id), workflow=workflow_type.value):
            with self._database.session_scope() as session:
                now = self._clock.now()
                code = SequenceService(session, self._clock).next_record_code(
                    definition.code_prefix, now,
                )
                record = RecordStore(session, self._clock).insert(
                    WorkflowRecord(
                        id=None,
                        code=code,
                        workflow_type=workflow_type,
                        status=status,
                        department_id=department,
                        creator_id=actor.actor_id,
                        category=category,
                        title=title,
                        payload=_json_safe(payload or {}),
                        total_amount=total_amount,
                        created_at=now,
                        updated_at=now,
                    )
                )
                AuditorService(session, self._clock).append(
                    entity_id=record.id,
                    workflow_type=workflow_type,
                    actor_id=actor.actor_id,
                    event_type=status,
                    details={"code": code, "category": category},
                    new_status=status,
                )
                pre_approved = None if draft else self._pre_approve(session, record, actor)

            logger.info(
                "record_created",
                extra={"record_id": record.id, "code": code, "status": status},
            )

        if pre_approved is not None:
            return self._notify_pre_approved(record, pre_approved, actor)
        self._notify(NotificationEvent(record=record, event_type=status, actor=actor))
        return record

    def _notify_pre_approved(
        self,
        submitted: WorkflowRecord,
        pre_approved: tuple[WorkflowRecord, TransitionOutcome, TransitionRule],
        actor: Actor,
    ) -> WorkflowRecord:
        updated, outcome, rule = pre_approved
        self._notify(
            NotificationEvent(
                record=updated,
                event_type=outcome.event_type,
                actor=actor,
                action=rule.action,
                previous_status=submitted.status,
                notify_roles=rule.notify_roles,
            )
        )
        return updated

    # ------------------------------------------------------------------
    # Call surface
    # ------------------------------------------------------------------

    def _apply_as(
        self,
        entity_id: int,
        actor_id: int,
        action: WorkflowAction,
        payload: Mapping[str, Any] | None = None,
    ) -> WorkflowRecord:
        return self.apply(entity_id, self._identity.resolve(actor_id), action, payload)

    def submit(self, entity_id: int, actor_id: int) -> WorkflowRecord:
        return self._apply_as(entity_id, actor_id, WorkflowAction.SUBMIT)

    def approve(self, entity_id: int, actor_id: int) -> WorkflowRecord:
        return self._apply_as(entity_id, actor_id, WorkflowAction.APPROVE)

    def reject(self, entity_id: int, actor_id: int, reason: str) -> WorkflowRecord:
        # Empty reasons fail before the record is even loaded
        reason = require_reason({"reason": reason})
        return self._apply_as(entity_id, actor_id, WorkflowAction.REJECT, {"reason": reason})

    def escalate(self, entity_id: int, actor_id: int) -> WorkflowRecord:
        return self._apply_as(entity_id, actor_id, WorkflowAction.ESCALATE)

    def choose_final_option(
        self,
        entity_id: int,
        actor_id: int,
        option_id: str,
        *,
        label: str = "",
        amount: Decimal | None = None,
    ) -> WorkflowRecord:
        return self._apply_as(
            entity_id,
            actor_id,
            WorkflowAction.CHOOSE_FINAL_OPTION,
            {"option_id": option_id, "label": label, "amount": amount},
        )

    def finalize(self, entity_id: int, actor_id: int) -> WorkflowRecord:
        return self._apply_as(entity_id, actor_id, WorkflowAction.FINALIZE)

    def mark_complete(self, entity_id: int, actor_id: int) -> WorkflowRecord:
        return self._apply_as(entity_id, actor_id, WorkflowAction.MARK_COMPLETE)

    def delete(self, entity_id: int, actor_id: int) -> WorkflowRecord:
        return self._apply_as(entity_id, actor_id, WorkflowAction.DELETE)

    def record_attachment(
        self,
        entity_id: int,
        actor_id: int,
        attachment_name: str,
        attachment_id: str | None = None,
    ) -> WorkflowRecord:
        return self._apply_as(
            entity_id,
            actor_id,
            WorkflowAction.RECORD_ATTACHMENT,
            {"attachment_name": attachment_name, "attachment_id": attachment_id},
        )

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def get(self, entity_id: int) -> WorkflowRecord:
        with self._database.session_scope() as session:
            return RecordStore(session, self._clock).load(entity_id)

    def timeline(self, entity_id: int, *, descending: bool = False) -> list[AuditEntry]:
        with self._database.session_scope() as session:
            RecordStore(session, self._clock).load(entity_id)
            return AuditSelector(session).timeline(entity_id, descending=descending)

    def allowed_actions(self, entity_id: int, actor_id: int) -> list[WorkflowAction]:
        actor = self._identity.resolve(actor_id)
        return allowed_actions(self._table, actor, self.get(entity_id))

    def validate_chain(self, entity_id: int) -> bool:
        """Recompute the record's audit hash chain; raises AuditChainBrokenError."""
        with self._database.session_scope() as session:
            RecordStore(session, self._clock).load(entity_id)
            return AuditorService(session, self._clock).validate_chain(entity_id)
