"""
approval_engines.transitions -- Pure application of a matched rule.

Responsibility:
    Given an authorized rule, compute the record's next snapshot, the
    audit event type and details, and any subordinate final option, by
    running the rule's side effects in declaration order.

Architecture position:
    Engines -- pure evaluation layer.  The caller supplies ``now``; this
    module never reads the clock and never touches the database.

Invariants enforced:
    - Write-once actor stamps: stamping an already-populated field raises
      ActorFieldAlreadySetError instead of overwriting the first actor.
    - Rejection requires a non-empty reason, stored only on the record that
      enters the rejected status.
    - Escalation is flag-only: status unchanged, a second escalation is an
      invalid transition.
    - Finalization requires a recorded final option.

Failure modes:
    - ValidationError for missing payload (reason, option id, attachment).
    - InvalidTransitionError / ActorFieldAlreadySetError for structural
      problems.  All are raised before anything is persisted.
"""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal, InvalidOperation
from typing import Any

from approval_kernel.domain.records import Actor, FinalOption, WorkflowRecord
from approval_kernel.domain.workflow import SideEffectKind, TransitionRule
from approval_kernel.exceptions import (
    ActorFieldAlreadySetError,
    InvalidTransitionError,
    ValidationError,
)


@dataclass(frozen=True)
class TransitionOutcome:
    """Everything the workflow engine must persist for one action."""

    record: WorkflowRecord
    event_type: str
    details: Mapping[str, Any] = field(default_factory=dict)
    final_option: FinalOption | None = None


def require_reason(payload: Mapping[str, Any]) -> str:
    """Non-empty, stripped rejection reason from the payload."""
    reason = payload.get("reason")
    if not isinstance(reason, str) or not reason.strip():
        raise ValidationError("reason", "a non-empty rejection reason is required")
    return reason.strip()


def _parse_amount(raw: Any) -> Decimal | None:
    if raw is None or raw == "":
        return None
    try:
        return Decimal(str(raw))
    except InvalidOperation as exc:
        raise ValidationError("amount", f"not a decimal amount: {raw!r}") from exc


def apply_transition(
    rule: TransitionRule,
    record: WorkflowRecord,
    actor: Actor,
    next_status: str | None,
    payload: Mapping[str, Any],
    now: datetime,
) -> TransitionOutcome:
    """Run ``rule``'s side effects and return the resulting snapshot.

    ``next_status`` is the verdict's resolved status (None keeps the
    current status).
    """
    status = next_status or record.status
    stamps = dict(record.actor_stamps)
    changes: dict[str, Any] = {}
    details: dict[str, Any] = {"rule": rule.rule_id, "action": rule.action.value}
    final_option: FinalOption | None = None

    for effect in rule.side_effects:
        kind = effect.kind

        if kind is SideEffectKind.STAMP_ACTOR:
            existing = stamps.get(effect.field)
            if existing is not None:
                raise ActorFieldAlreadySetError(
                    rule.action.value, record.id, record.status, effect.field, existing,
                )
            stamps[effect.field] = actor.actor_id

        elif kind is SideEffectKind.REQUIRE_REASON:
            reason = require_reason(payload)
            changes["rejection_reason"] = reason
            details["reason"] = reason

        elif kind is SideEffectKind.SET_ESCALATED:
            if record.is_escalated:
                raise InvalidTransitionError(
                    rule.action.value, record.id, record.status,
                    "record is already escalated",
                )
            changes["is_escalated"] = True

        elif kind is SideEffectKind.RECORD_FINAL_OPTION:
            if record.final_option is not None:
                raise InvalidTransitionError(
                    rule.action.value, record.id, record.status,
                    "a final option has already been chosen",
                )
            option_id = payload.get("option_id")
            if option_id is None or not str(option_id).strip():
                raise ValidationError("option_id", "a final option must be specified")
            amount = _parse_amount(payload.get("amount"))
            final_option = FinalOption(
                option_id=str(option_id).strip(),
                label=str(payload.get("label") or ""),
                amount=amount,
                chosen_by_id=actor.actor_id,
                chosen_at=now,
            )
            details["option_id"] = final_option.option_id
            if amount is not None:
                details["amount"] = str(amount)

        elif kind is SideEffectKind.REQUIRE_FINAL_OPTION:
            if record.final_option is None:
                raise InvalidTransitionError(
                    rule.action.value, record.id, record.status,
                    "no final option has been chosen",
                )
            details["option_id"] = record.final_option.option_id

        elif kind is SideEffectKind.RECORD_ATTACHMENT:
            name = payload.get("attachment_name")
            if not isinstance(name, str) or not name.strip():
                raise ValidationError("attachment_name", "an attachment name is required")
            details["attachment_name"] = name.strip()
            if payload.get("attachment_id") is not None:
                details["attachment_id"] = str(payload["attachment_id"])

    if status != record.status:
        details["from_status"] = record.status
        details["to_status"] = status

    updated = record.with_changes(status=status, actor_stamps=stamps, **changes)
    return TransitionOutcome(
        record=updated,
        event_type=rule.event_type or status,
        details=details,
        final_option=final_option,
    )
