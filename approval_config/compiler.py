"""
Workflow compiler (``approval_config.compiler``).

Responsibility
--------------
Validates a ``WorkflowConfigSet`` and compiles it into the kernel's frozen
``TransitionTable``: one ``WorkflowDefinition`` per workflow type, with
``"*"`` expanded to every non-terminal status and category-set names
resolved to their categories.

Invariants enforced
-------------------
* Every status a rule references exists in its workflow.
* No rule leaves a terminal status.
* Flag-only rules (no ``to``) name an ``event_type``.
* Stamp effects only target declared actor fields.
* Rule ids are unique within a workflow; each workflow type appears once.
* Creator pre-approvals name an approve rule leaving the initial status.

Failure modes
-------------
* ``WorkflowConfigError`` listing every problem found in a workflow.
"""

from __future__ import annotations

from approval_config.schema import (
    ANY_STATUS,
    OrganizationDef,
    TransitionDef,
    WorkflowConfigSet,
    WorkflowDef,
)
from approval_kernel.domain.workflow import (
    CategoryGuard,
    CategoryGuardMode,
    CreatorPreApproval,
    DepartmentScope,
    SideEffect,
    SideEffectKind,
    TransitionRule,
    TransitionTable,
    WorkflowAction,
    WorkflowDefinition,
    WorkflowType,
)
from approval_kernel.exceptions import WorkflowConfigError


def _enum_value(enum_cls, raw: str, what: str, errors: list[str]):
    try:
        return enum_cls(raw)
    except ValueError:
        errors.append(f"unknown {what} '{raw}'")
        return None


def _compile_rule(
    workflow: WorkflowDef,
    organization: OrganizationDef,
    tdef: TransitionDef,
    from_status: str,
    errors: list[str],
) -> TransitionRule | None:
    prefix = f"rule {tdef.rule_id}"
    statuses = set(workflow.statuses)
    local: list[str] = []

    action = _enum_value(WorkflowAction, tdef.action, f"{prefix} action", local)
    scope = _enum_value(DepartmentScope, tdef.department_scope, f"{prefix} department_scope", local)

    if tdef.to_status is not None and tdef.to_status not in statuses:
        local.append(f"{prefix}: unknown target status '{tdef.to_status}'")
    if tdef.to_status is None and not tdef.event_type:
        local.append(f"{prefix}: flag-only rule requires event_type")
    if not tdef.roles and not tdef.creator_only and tdef.department_scope != "override_only":
        local.append(f"{prefix}: no roles, not creator_only and not override_only")

    guard = None
    if tdef.category_guard is not None:
        gdef = tdef.category_guard
        categories = organization.category_set(gdef.category_set)
        mode = _enum_value(CategoryGuardMode, gdef.mode, f"{prefix} category guard mode", local)
        if categories is None:
            local.append(f"{prefix}: unknown category set '{gdef.category_set}'")
        if mode is CategoryGuardMode.REDIRECT and gdef.redirect_to not in statuses:
            local.append(f"{prefix}: redirect_to '{gdef.redirect_to}' is not a status")
        if categories is not None and mode is not None and not local:
            guard = CategoryGuard(
                categories=frozenset(categories),
                mode=mode,
                redirect_status=gdef.redirect_to,
                set_name=gdef.category_set,
            )

    effects: list[SideEffect] = []
    for edef in tdef.effects:
        kind = _enum_value(SideEffectKind, edef.kind, f"{prefix} effect", local)
        if kind is SideEffectKind.STAMP_ACTOR and edef.field not in workflow.actor_fields:
            local.append(f"{prefix}: stamp field '{edef.field}' is not a declared actor field")
        elif kind is not None:
            effects.append(SideEffect(kind=kind, field=edef.field))

    if local:
        errors.extend(local)
        return None

    return TransitionRule(
        rule_id=tdef.rule_id,
        action=action,
        from_status=from_status,
        next_status=tdef.to_status,
        required_roles=frozenset(tdef.roles),
        department_scope=scope,
        category_guard=guard,
        creator_only=tdef.creator_only,
        allow_override=tdef.allow_override,
        side_effects=tuple(effects),
        event_type=tdef.event_type,
        notify_roles=tdef.notify_roles,
    )


def compile_workflow(workflow: WorkflowDef, organization: OrganizationDef) -> WorkflowDefinition:
    """Compile one workflow; raises WorkflowConfigError with all problems."""
    errors: list[str] = []
    statuses = set(workflow.statuses)
    terminal = set(workflow.terminal_statuses)

    workflow_type = _enum_value(WorkflowType, workflow.workflow, "workflow type", errors)
    if len(statuses) != len(workflow.statuses):
        errors.append("duplicate statuses")
    if workflow.initial_status not in statuses:
        errors.append(f"initial_status '{workflow.initial_status}' is not a status")
    if workflow.draft_status is not None and workflow.draft_status not in statuses:
        errors.append(f"draft_status '{workflow.draft_status}' is not a status")
    for status in sorted(terminal - statuses):
        errors.append(f"terminal status '{status}' is not a status")
    if workflow.initial_status in terminal:
        errors.append("initial_status is terminal")

    open_statuses = tuple(s for s in workflow.statuses if s not in terminal)
    seen_ids: set[str] = set()
    rules: list[TransitionRule] = []
    for tdef in workflow.transitions:
        if tdef.rule_id in seen_ids:
            errors.append(f"duplicate rule id '{tdef.rule_id}'")
        seen_ids.add(tdef.rule_id)

        from_statuses = open_statuses if tdef.from_statuses == (ANY_STATUS,) else tdef.from_statuses
        for from_status in from_statuses:
            if from_status not in statuses:
                errors.append(f"rule {tdef.rule_id}: unknown source status '{from_status}'")
                continue
            if from_status in terminal:
                errors.append(f"rule {tdef.rule_id}: leaves terminal status '{from_status}'")
                continue
            rule = _compile_rule(workflow, organization, tdef, from_status, errors)
            if rule is not None:
                rules.append(rule)

    pre_approvals: list[CreatorPreApproval] = []
    for pdef in workflow.creator_pre_approvals:
        target = next(
            (
                r for r in rules
                if r.rule_id == pdef.rule_id and r.from_status == workflow.initial_status
            ),
            None,
        )
        if not pdef.roles:
            errors.append(f"pre-approval {pdef.rule_id}: no roles")
        if target is None or target.action is not WorkflowAction.APPROVE:
            errors.append(
                f"pre-approval {pdef.rule_id}: not an approve rule leaving "
                f"'{workflow.initial_status}'"
            )
        else:
            pre_approvals.append(CreatorPreApproval(frozenset(pdef.roles), pdef.rule_id))

    if errors:
        raise WorkflowConfigError(workflow.workflow, sorted(set(errors), key=errors.index))

    return WorkflowDefinition(
        workflow_type=workflow_type,
        label=workflow.label,
        code_prefix=workflow.code_prefix,
        statuses=workflow.statuses,
        initial_status=workflow.initial_status,
        terminal_statuses=frozenset(terminal),
        rules=tuple(rules),
        override_roles=frozenset(organization.override_roles),
        department_heads=dict(organization.department_heads),
        actor_fields=workflow.actor_fields,
        draft_status=workflow.draft_status,
        creator_pre_approvals=tuple(pre_approvals),
    )


def compile_transition_table(config_set: WorkflowConfigSet) -> TransitionTable:
    """Compile every workflow of the set into one TransitionTable."""
    definitions: dict[WorkflowType, WorkflowDefinition] = {}
    for workflow in config_set.workflows:
        definition = compile_workflow(workflow, config_set.organization)
        if definition.workflow_type in definitions:
            raise WorkflowConfigError(workflow.workflow, ["workflow defined twice"])
        definitions[definition.workflow_type] = definition
    return TransitionTable(definitions=definitions, checksum=config_set.checksum)
