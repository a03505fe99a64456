"""
Canonical workflow types (``approval_kernel.domain.workflow``).

Responsibility
--------------
Pure value objects describing the approval state machines: workflow
types, actions, declarative transition rules and the per-workflow
definition that groups them.  The three concrete workflows (requisition,
cash voucher, mission order) are *data* of these types, compiled from
YAML by ``approval_config``; no workflow has its own code path.

Architecture position
---------------------
**Kernel domain layer** -- pure value objects.  ZERO I/O.  No imports
from ``db/``, ``services/``, ``selectors/``, or outer layers.

Invariants enforced
-------------------
* A rule's ``from_status`` and ``next_status`` are members of the
  definition's statuses (checked by the config compiler).
* No rule leaves a terminal status.
* Rules for a ``(status, action)`` pair are kept in declaration order;
  the evaluator takes the first one the actor qualifies for.
"""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field
from enum import Enum
from types import MappingProxyType


class WorkflowType(str, Enum):
    """The three paperwork processes running an instance of the engine."""

    REQUISITION = "requisition"
    CASH_VOUCHER = "cash_voucher"
    MISSION_ORDER = "mission_order"


class WorkflowAction(str, Enum):
    """Actions an actor may request on a record."""

    SUBMIT = "submit"
    APPROVE = "approve"
    REJECT = "reject"
    ESCALATE = "escalate"
    CHOOSE_FINAL_OPTION = "choose_final_option"
    FINALIZE = "finalize"
    MARK_COMPLETE = "mark_complete"
    DELETE = "delete"
    RECORD_ATTACHMENT = "record_attachment"


# Actions that move the record forward along its approval chain.
CHAIN_ACTIONS: frozenset[WorkflowAction] = frozenset({
    WorkflowAction.SUBMIT,
    WorkflowAction.APPROVE,
    WorkflowAction.CHOOSE_FINAL_OPTION,
    WorkflowAction.FINALIZE,
    WorkflowAction.MARK_COMPLETE,
})


class DepartmentScope(str, Enum):
    """How the record's department restricts who may fire a rule.

    NONE            -- any department.
    SAME_AS_RECORD  -- actor belongs to the record's department, or holds
                       a required role that heads that department.
    OVERRIDE_ONLY   -- only global-override roles.
    """

    NONE = "none"
    SAME_AS_RECORD = "same_as_record"
    OVERRIDE_ONLY = "override_only"


class CategoryGuardMode(str, Enum):
    REQUIRE = "require"
    EXCLUDE = "exclude"
    REDIRECT = "redirect"


def normalize_category(category: str | None) -> str | None:
    """Case- and whitespace-insensitive form used for category matching."""
    if category is None:
        return None
    folded = " ".join(category.split()).casefold()
    return folded or None


@dataclass(frozen=True)
class CategoryGuard:
    """Predicate on the record's category.

    REQUIRE  -- the rule only applies when the category is in ``categories``.
    EXCLUDE  -- the rule only applies when it is not.
    REDIRECT -- the rule always applies; a matching category replaces the
                rule's next status with ``redirect_status``.
    """

    categories: frozenset[str]
    mode: CategoryGuardMode
    redirect_status: str | None = None
    set_name: str | None = None

    def __post_init__(self) -> None:
        normalized = frozenset(
            c for c in (normalize_category(x) for x in self.categories) if c
        )
        object.__setattr__(self, "categories", normalized)
        if self.mode is CategoryGuardMode.REDIRECT and not self.redirect_status:
            raise ValueError("REDIRECT category guard requires redirect_status")

    def matches(self, category: str | None) -> bool:
        normalized = normalize_category(category)
        return normalized is not None and normalized in self.categories

    def admits(self, category: str | None) -> bool:
        """Whether a record with this category may use the guarded rule."""
        if self.mode is CategoryGuardMode.REQUIRE:
            return self.matches(category)
        if self.mode is CategoryGuardMode.EXCLUDE:
            return not self.matches(category)
        return True


class SideEffectKind(str, Enum):
    STAMP_ACTOR = "stamp_actor"
    REQUIRE_REASON = "require_reason"
    SET_ESCALATED = "set_escalated"
    RECORD_FINAL_OPTION = "record_final_option"
    REQUIRE_FINAL_OPTION = "require_final_option"
    RECORD_ATTACHMENT = "record_attachment"


@dataclass(frozen=True)
class SideEffect:
    """One ordered effect of a transition. ``field`` is set for STAMP_ACTOR."""

    kind: SideEffectKind
    field: str | None = None

    def __post_init__(self) -> None:
        if self.kind is SideEffectKind.STAMP_ACTOR and not self.field:
            raise ValueError("STAMP_ACTOR side effect requires a field")


@dataclass(frozen=True)
class TransitionRule:
    """A single candidate transition for ``(from_status, action)``.

    ``next_status`` is None for flag-only rules (escalation, attachment):
    the status is left unchanged and ``event_type`` names the audit marker.
    """

    rule_id: str
    action: WorkflowAction
    from_status: str
    next_status: str | None
    required_roles: frozenset[str] = frozenset()
    department_scope: DepartmentScope = DepartmentScope.NONE
    category_guard: CategoryGuard | None = None
    creator_only: bool = False
    allow_override: bool = True
    side_effects: tuple[SideEffect, ...] = ()
    event_type: str | None = None
    notify_roles: tuple[str, ...] = ()

    @property
    def changes_status(self) -> bool:
        return self.next_status is not None

    def effect(self, kind: SideEffectKind) -> SideEffect | None:
        for effect in self.side_effects:
            if effect.kind is kind:
                return effect
        return None

    def resolve_next_status(self, category: str | None) -> str | None:
        """Next status after applying a REDIRECT category guard."""
        guard = self.category_guard
        if (
            guard is not None
            and guard.mode is CategoryGuardMode.REDIRECT
            and guard.matches(category)
        ):
            return guard.redirect_status
        return self.next_status


@dataclass(frozen=True)
class CreatorPreApproval:
    """Chain step a creator holding one of ``roles`` performs on submission.

    ``rule_id`` names an approval rule leaving the initial status.  The
    step is taken only when the evaluator would let the creator fire that
    rule on the fresh record.
    """

    roles: frozenset[str]
    rule_id: str


@dataclass(frozen=True)
class WorkflowDefinition:
    """A complete, validated state machine for one workflow type.

    Contract: frozen; built by the config compiler.
    Guarantees: ``initial_status`` and ``draft_status`` are members of
    ``statuses``; rules are indexed by ``(from_status, action)``.
    """

    workflow_type: WorkflowType
    label: str
    code_prefix: str
    statuses: tuple[str, ...]
    initial_status: str
    terminal_statuses: frozenset[str]
    rules: tuple[TransitionRule, ...]
    override_roles: frozenset[str] = frozenset()
    department_heads: Mapping[str, str] = field(default_factory=dict)
    actor_fields: tuple[str, ...] = ()
    draft_status: str | None = None
    creator_pre_approvals: tuple[CreatorPreApproval, ...] = ()
    _index: Mapping[tuple[str, WorkflowAction], tuple[TransitionRule, ...]] = field(
        init=False, repr=False, compare=False,
    )

    def __post_init__(self) -> None:
        index: dict[tuple[str, WorkflowAction], list[TransitionRule]] = {}
        for rule in self.rules:
            index.setdefault((rule.from_status, rule.action), []).append(rule)
        object.__setattr__(
            self,
            "_index",
            MappingProxyType({k: tuple(v) for k, v in index.items()}),
        )
        object.__setattr__(
            self, "department_heads", MappingProxyType(dict(self.department_heads)),
        )

    def is_terminal(self, status: str) -> bool:
        return status in self.terminal_statuses

    def candidates(
        self, status: str, action: WorkflowAction,
    ) -> tuple[TransitionRule, ...]:
        """Candidate rules for ``(status, action)`` in declaration order."""
        return self._index.get((status, action), ())

    def rules_from(self, status: str) -> tuple[TransitionRule, ...]:
        return tuple(r for r in self.rules if r.from_status == status)

    def rule(self, rule_id: str, from_status: str) -> TransitionRule | None:
        for rule in self.rules:
            if rule.rule_id == rule_id and rule.from_status == from_status:
                return rule
        return None

    def pre_approval_for(self, roles: frozenset[str]) -> CreatorPreApproval | None:
        """First creator pre-approval whose roles intersect ``roles``."""
        for pre_approval in self.creator_pre_approvals:
            if pre_approval.roles & roles:
                return pre_approval
        return None

    def headed_department(self, role: str) -> str | None:
        """Department a department-head role is responsible for."""
        return self.department_heads.get(role)


@dataclass(frozen=True)
class TransitionTable:
    """All workflow definitions, keyed by workflow type."""

    definitions: Mapping[WorkflowType, WorkflowDefinition]
    checksum: str = ""

    def __post_init__(self) -> None:
        object.__setattr__(
            self, "definitions", MappingProxyType(dict(self.definitions)),
        )

    def definition(self, workflow_type: WorkflowType | str) -> WorkflowDefinition:
        try:
            return self.definitions[WorkflowType(workflow_type)]
        except (KeyError, ValueError) as exc:
            raise KeyError(f"No workflow definition for {workflow_type!r}") from exc

    def __contains__(self, workflow_type: object) -> bool:
        return workflow_type in self.definitions
