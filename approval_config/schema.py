"""
Workflow configuration schema.

The human-authored, reviewable source artifact.  YAML files are parsed into
these types by the loader and compiled into the kernel's
``TransitionTable`` by the compiler.

Key distinction:
  WorkflowConfigSet = source artifact (human-authored, versioned)
  TransitionTable   = runtime artifact (validated, frozen, kernel types)
"""

from __future__ import annotations

from dataclasses import dataclass, field

ANY_STATUS = "*"


# ---------------------------------------------------------------------------
# Organization
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class OrganizationDef:
    """Override roles, department heads and named category sets."""

    override_roles: tuple[str, ...] = ()
    department_heads: tuple[tuple[str, str], ...] = ()  # (role, department)
    category_sets: tuple[tuple[str, tuple[str, ...]], ...] = ()  # (name, categories)

    def category_set(self, name: str) -> tuple[str, ...] | None:
        for set_name, categories in self.category_sets:
            if set_name == name:
                return categories
        return None


# ---------------------------------------------------------------------------
# Transitions (declarative data, no executable logic)
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class CategoryGuardDef:
    category_set: str
    mode: str  # require | exclude | redirect
    redirect_to: str | None = None


@dataclass(frozen=True)
class EffectDef:
    kind: str
    field: str | None = None


@dataclass(frozen=True)
class TransitionDef:
    """One YAML transition entry; ``from_statuses`` may be ``("*",)``."""

    rule_id: str
    action: str
    from_statuses: tuple[str, ...]
    to_status: str | None = None
    roles: tuple[str, ...] = ()
    department_scope: str = "none"
    category_guard: CategoryGuardDef | None = None
    creator_only: bool = False
    allow_override: bool = True
    effects: tuple[EffectDef, ...] = ()
    event_type: str | None = None
    notify_roles: tuple[str, ...] = ()


@dataclass(frozen=True)
class PreApprovalDef:
    """Creator roles that take rule ``rule_id`` themselves on submission."""

    roles: tuple[str, ...]
    rule_id: str


@dataclass(frozen=True)
class WorkflowDef:
    workflow: str
    label: str
    code_prefix: str
    statuses: tuple[str, ...]
    initial_status: str
    terminal_statuses: tuple[str, ...]
    transitions: tuple[TransitionDef, ...]
    actor_fields: tuple[str, ...] = ()
    draft_status: str | None = None
    creator_pre_approvals: tuple[PreApprovalDef, ...] = ()


# ---------------------------------------------------------------------------
# Configuration set
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class WorkflowConfigSet:
    organization: OrganizationDef
    workflows: tuple[WorkflowDef, ...]
    checksum: str = ""


@dataclass(frozen=True)
class EngineSettings:
    """Deployment settings for the engine process."""

    database_url: str = "sqlite:///approvals.db"
    echo: bool = False
    log_level: str = "INFO"
    async_notifications: bool = False
    notification_workers: int = 2
    extra: dict[str, str] = field(default_factory=dict)
