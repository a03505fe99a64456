"""
approval_engines.notifications -- Pure notification routing and messages.

Responsibility:
    Decide *who* should hear about a workflow event and *what* they are
    told.  Resolving role cohorts to user ids and delivering are left to
    ``approval_services.notification_dispatcher``.

Architecture position:
    Engines -- pure evaluation layer, zero I/O.

Routing rules:
    - The creator is notified, unless the creator is the actor.
    - When the action advances the chain, the role cohorts able to take
      the next chain step are notified (department-scoped where the next
      rule is, honouring category guards).  Override roles are only
      notified where a rule names them explicitly.
    - The rule's ``notify_roles`` are added.
    - On rejection only the creator is notified.
    - The actor never notifies themself.
"""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass
from typing import Any

from approval_kernel.domain.records import WorkflowRecord
from approval_kernel.domain.workflow import (
    CHAIN_ACTIONS,
    DepartmentScope,
    WorkflowAction,
    WorkflowDefinition,
)


@dataclass(frozen=True)
class RoleCohort:
    """Holders of ``role``, restricted to ``department_id`` when set."""

    role: str
    department_id: str | None = None


@dataclass(frozen=True)
class RecipientPlan:
    """Direct user ids plus role cohorts still to be expanded."""

    user_ids: frozenset[int] = frozenset()
    cohorts: frozenset[RoleCohort] = frozenset()
    exclude_user_id: int | None = None

    @property
    def is_empty(self) -> bool:
        return not self.user_ids and not self.cohorts


def next_step_cohorts(
    definition: WorkflowDefinition,
    record: WorkflowRecord,
    status: str,
) -> frozenset[RoleCohort]:
    """Role cohorts able to advance a record sitting in ``status``."""
    cohorts: set[RoleCohort] = set()
    for rule in definition.rules_from(status):
        if rule.action not in CHAIN_ACTIONS or rule.action is WorkflowAction.SUBMIT:
            continue
        if rule.creator_only or rule.department_scope is DepartmentScope.OVERRIDE_ONLY:
            continue
        if rule.category_guard is not None and not rule.category_guard.admits(record.category):
            continue
        department = (
            record.department_id
            if rule.department_scope is DepartmentScope.SAME_AS_RECORD
            else None
        )
        for role in rule.required_roles:
            cohorts.add(RoleCohort(role, department))
    return frozenset(cohorts)


def plan_recipients(
    definition: WorkflowDefinition,
    record: WorkflowRecord,
    new_status: str,
    acting_user_id: int,
    *,
    action: WorkflowAction | str | None = None,
    previous_status: str | None = None,
    notify_roles: tuple[str, ...] = (),
) -> RecipientPlan:
    """Recipients for an event that left ``record`` in ``new_status``.

    ``action`` None means the record was just created.
    """
    action = WorkflowAction(action) if action is not None else None
    users: set[int] = set()
    if record.creator_id != acting_user_id:
        users.add(record.creator_id)

    if action is WorkflowAction.REJECT:
        return RecipientPlan(frozenset(users), frozenset(), acting_user_id)

    cohorts: set[RoleCohort] = set()
    advanced = new_status != previous_status and (action is None or action in CHAIN_ACTIONS)
    if advanced and not definition.is_terminal(new_status):
        cohorts |= next_step_cohorts(definition, record, new_status)
    cohorts |= {RoleCohort(role) for role in notify_roles}

    return RecipientPlan(frozenset(users), frozenset(cohorts), acting_user_id)


# ---------------------------------------------------------------------------
# Messages
# ---------------------------------------------------------------------------

_DEFAULT_TEMPLATE = "{label} {code} was updated: now {status}."

MESSAGE_TEMPLATES: Mapping[str, str] = {
    "DRAFT": "{label} {code} was saved as a draft.",
    "SUBMITTED": "{label} {code} was submitted by {actor_name} and awaits approval.",
    "APPROVED_RESPONSABLE": "{label} {code} was approved by the department head.",
    "APPROVED_DIRECTEUR": "{label} {code} was approved by the director.",
    "AWAITING_IT_APPROVAL": "{label} {code} needs IT approval ({category}).",
    "IT_APPROVED": "{label} {code} was approved by IT.",
    "SUPPLIER_CHOSEN": "A supplier was chosen for {label} {code}.",
    "FINAL_APPROVAL": "{label} {code} received final approval.",
    "APPROVED_DAF": "{label} {code} was approved by finance and is ready to print.",
    "PRINTED": "{label} {code} was printed.",
    "AWAITING_DRH_APPROVAL": "{label} {code} awaits HR director approval.",
    "RH_PROCESSING": "{label} {code} is being processed by HR.",
    "AWAITING_DRH_VALIDATION": "{label} {code} awaits HR director validation.",
    "AWAITING_DOG_APPROVAL": "{label} {code} awaits operations director approval.",
    "READY_FOR_PRINT": "{label} {code} is approved and ready to print.",
    "COMPLETED": "{label} {code} is completed.",
    "REJECTED": "{label} {code} was rejected: {reason}",
    "DELETED": "{label} {code} was deleted.",
    "ESCALATED": "{label} {code} was escalated and expects general director sign-off.",
    "ATTACHMENT_ADDED": "A document was attached to {label} {code}.",
}


class _Defaults(dict):
    def __missing__(self, key: str) -> str:
        return "-"


def build_message(event_type: str, context: Mapping[str, Any]) -> str:
    """Human-readable message for ``event_type``.

    Unknown event types fall back to a generic update message; missing
    context keys render as "-".
    """
    template = MESSAGE_TEMPLATES.get(event_type, _DEFAULT_TEMPLATE)
    values = _Defaults({k: v for k, v in context.items() if v is not None})
    values.setdefault("status", event_type)
    return template.format_map(values)


def message_context(
    definition: WorkflowDefinition,
    record: WorkflowRecord,
    *,
    actor_name: str = "",
    reason: str | None = None,
) -> dict[str, Any]:
    return {
        "label": definition.label,
        "code": record.code,
        "status": record.status,
        "category": record.category,
        "actor_name": actor_name or None,
        "reason": reason or record.rejection_reason,
    }
