"""
approval_engines.authorization -- Pure authorization evaluator.

Responsibility:
    Answer "can this actor perform this action on this record now?" by
    consulting the record's workflow definition.  One evaluator serves all
    three workflows; each workflow only supplies table data.

Architecture position:
    Engines -- pure evaluation layer, zero I/O.
    May only import approval_kernel/domain types.

Invariants enforced:
    - Closed world: an action is allowed only if an explicit rule for
      ``(status, action)`` admits the actor.  No rule means denial.
    - Terminal statuses are never exited: every action on a terminal
      record is an invalid transition.
    - Override precedence: an actor holding a global-override role
      qualifies for every rule that allows overrides, whatever department
      roles it also holds.
    - Category guards bind everyone, override roles included: a record
      whose category requires an extra step cannot skip it.
    - Purity: no clock, no database, no logging beyond the engine trace.

Failure modes:
    - Never raises for well-formed input; denials are returned as
      ``AuthorizationVerdict(allowed=False)`` with a DenialKind and reason.
"""

from __future__ import annotations

from approval_engines.tracer import traced_engine
from approval_kernel.domain.records import (
    Actor,
    AuthorizationVerdict,
    DenialKind,
    WorkflowRecord,
)
from approval_kernel.domain.workflow import (
    DepartmentScope,
    TransitionRule,
    TransitionTable,
    WorkflowAction,
    WorkflowDefinition,
)


def _fmt_roles(roles: frozenset[str]) -> str:
    return ", ".join(sorted(roles)) or "(none)"


def department_matches(
    definition: WorkflowDefinition,
    actor: Actor,
    record: WorkflowRecord,
    eligible_roles: frozenset[str],
) -> bool:
    """Whether ``actor`` is responsible for the record's department.

    True when the actor sits in the record's department, or when one of
    ``eligible_roles`` held by the actor heads that department.
    """
    if record.department_id is None:
        return False
    if actor.department_id == record.department_id:
        return True
    return any(
        definition.headed_department(role) == record.department_id
        for role in actor.roles & eligible_roles
    )


def rule_admits(
    definition: WorkflowDefinition,
    rule: TransitionRule,
    actor: Actor,
    record: WorkflowRecord,
) -> tuple[bool, str]:
    """Evaluate one candidate rule.

    Returns:
        ``(True, "")`` when the actor qualifies, else ``(False, reason)``.
    """
    guard = rule.category_guard
    if guard is not None and not guard.admits(record.category):
        category = record.category or "(none)"
        if guard.matches(record.category):
            return False, (
                f"category '{category}' must first pass the "
                f"{guard.set_name or 'category'} approval step"
            )
        return False, (
            f"rule {rule.rule_id} applies only to "
            f"{guard.set_name or 'guarded'} categories, not '{category}'"
        )

    held_overrides = actor.roles & definition.override_roles

    if rule.department_scope is DepartmentScope.OVERRIDE_ONLY:
        eligible = held_overrides & rule.required_roles if rule.required_roles else held_overrides
        if eligible:
            return True, ""
        allowed = rule.required_roles or definition.override_roles
        return False, f"only {_fmt_roles(allowed)} may {rule.action.value} at this stage"

    if rule.allow_override and held_overrides:
        return True, ""

    if rule.creator_only:
        if actor.actor_id == record.creator_id:
            return True, ""
        return False, f"only the creator may {rule.action.value} at this stage"

    if rule.required_roles and not (actor.roles & rule.required_roles):
        return False, (
            f"role(s) {_fmt_roles(actor.roles)} cannot {rule.action.value}; "
            f"requires one of {_fmt_roles(rule.required_roles)}"
        )

    if rule.department_scope is DepartmentScope.SAME_AS_RECORD and not department_matches(
        definition, actor, record, rule.required_roles,
    ):
        return False, (
            f"actor department {actor.department_id or '(none)'} is not responsible "
            f"for record department {record.department_id or '(none)'}"
        )

    return True, ""


@traced_engine("authorization", "1.0", fingerprint_fields=("action",))
def evaluate(
    definition: WorkflowDefinition,
    actor: Actor,
    record: WorkflowRecord,
    action: WorkflowAction | str,
) -> AuthorizationVerdict:
    """Evaluate ``action`` against a single workflow definition.

    Candidates are tried in declaration order; the first rule the actor
    qualifies for wins.  Its next status is resolved against the record's
    category (REDIRECT guards).
    """
    try:
        action = WorkflowAction(action)
    except ValueError:
        return AuthorizationVerdict.deny(
            DenialKind.INVALID_TRANSITION, f"unknown action '{action}'",
        )

    if definition.is_terminal(record.status):
        return AuthorizationVerdict.deny(
            DenialKind.INVALID_TRANSITION,
            f"record is in terminal status {record.status}",
        )

    candidates = definition.candidates(record.status, action)
    if not candidates:
        return AuthorizationVerdict.deny(
            DenialKind.INVALID_TRANSITION,
            f"'{action.value}' is not applicable in status {record.status}",
        )

    reasons: list[str] = []
    for rule in candidates:
        admitted, reason = rule_admits(definition, rule, actor, record)
        if admitted:
            return AuthorizationVerdict.allow(
                rule, rule.resolve_next_status(record.category),
            )
        if reason not in reasons:
            reasons.append(reason)

    return AuthorizationVerdict.deny(DenialKind.UNAUTHORIZED, "; ".join(reasons))


def can_perform(
    table: TransitionTable,
    actor: Actor,
    record: WorkflowRecord,
    action: WorkflowAction | str,
) -> AuthorizationVerdict:
    """Can ``actor`` perform ``action`` on ``record`` now?

    Pure: looks up the record's workflow in ``table`` and evaluates.
    """
    return evaluate(table.definition(record.workflow_type), actor, record, action)


def allowed_actions(
    table: TransitionTable,
    actor: Actor,
    record: WorkflowRecord,
) -> list[WorkflowAction]:
    """Every action ``actor`` could perform on ``record`` right now."""
    definition = table.definition(record.workflow_type)
    return [
        action for action in WorkflowAction
        if evaluate(definition, actor, record, action).allowed
    ]
