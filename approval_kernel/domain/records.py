"""
Record and verdict value objects (``approval_kernel.domain.records``).

Responsibility
--------------
Immutable snapshots that cross layer boundaries: the acting identity,
the workflow record, its subordinate final-option choice, audit entries
and authorization verdicts.  ORM models convert to and from these via
``to_dto()`` / ``from_dto()``; engines only ever see these.

Architecture position
---------------------
**Kernel domain layer** -- pure value objects.  ZERO I/O.
"""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field, replace
from datetime import datetime
from decimal import Decimal
from enum import Enum
from types import MappingProxyType
from typing import Any

from approval_kernel.domain.workflow import TransitionRule, WorkflowType


@dataclass(frozen=True)
class Actor:
    """The caller's identity as supplied by the identity provider.

    The engine trusts this tuple; it performs no authentication.
    """

    actor_id: int
    roles: frozenset[str]
    department_id: str | None = None
    name: str = ""

    def __post_init__(self) -> None:
        if isinstance(self.roles, str):
            object.__setattr__(self, "roles", frozenset({self.roles}))
        else:
            object.__setattr__(self, "roles", frozenset(self.roles))

    def holds(self, role: str) -> bool:
        return role in self.roles


@dataclass(frozen=True)
class FinalOption:
    """The final supplier/amount choice recorded on a requisition."""

    option_id: str
    chosen_by_id: int
    chosen_at: datetime
    label: str = ""
    amount: Decimal | None = None


@dataclass(frozen=True)
class WorkflowRecord:
    """Immutable snapshot of a requisition, voucher or mission order.

    ``actor_stamps`` maps write-once actor fields (``approver_id``,
    ``final_approver_id``...) to the actor id that set them.  ``payload``
    is opaque to the engine.
    """

    id: int | None
    code: str
    workflow_type: WorkflowType
    status: str
    department_id: str | None
    creator_id: int
    category: str | None = None
    title: str = ""
    payload: Mapping[str, Any] = field(default_factory=dict)
    total_amount: Decimal | None = None
    actor_stamps: Mapping[str, int] = field(default_factory=dict)
    rejection_reason: str | None = None
    is_escalated: bool = False
    final_option: FinalOption | None = None
    version: int = 1
    created_at: datetime | None = None
    updated_at: datetime | None = None

    def __post_init__(self) -> None:
        object.__setattr__(self, "payload", MappingProxyType(dict(self.payload)))
        object.__setattr__(
            self, "actor_stamps", MappingProxyType(dict(self.actor_stamps)),
        )

    def stamp(self, field_name: str) -> int | None:
        """Actor id stamped in ``field_name``, or None if still unset."""
        return self.actor_stamps.get(field_name)

    def with_changes(self, **changes: Any) -> WorkflowRecord:
        return replace(self, **changes)


@dataclass(frozen=True)
class AuditEntry:
    """One append-only entry of a record's history."""

    seq: int
    entity_id: int
    workflow_type: WorkflowType
    actor_id: int
    event_type: str
    occurred_at: datetime
    details: Mapping[str, Any] = field(default_factory=dict)
    previous_status: str | None = None
    new_status: str | None = None
    entry_hash: str = ""
    prev_hash: str | None = None


class DenialKind(str, Enum):
    """Why a verdict is negative.

    UNAUTHORIZED        -- rules exist for the action, the actor fits none.
    INVALID_TRANSITION  -- the action does not apply to the status at all.
    """

    UNAUTHORIZED = "unauthorized"
    INVALID_TRANSITION = "invalid_transition"


@dataclass(frozen=True)
class AuthorizationVerdict:
    """Outcome of ``can_perform``.

    When ``allowed`` the matched rule and the resolved next status (after
    any category redirect) are attached; otherwise ``denial`` and a
    human-readable ``reason``.
    """

    allowed: bool
    reason: str = ""
    denial: DenialKind | None = None
    rule: TransitionRule | None = None
    next_status: str | None = None

    @classmethod
    def allow(cls, rule: TransitionRule, next_status: str | None) -> AuthorizationVerdict:
        return cls(allowed=True, rule=rule, next_status=next_status)

    @classmethod
    def deny(cls, denial: DenialKind, reason: str) -> AuthorizationVerdict:
        return cls(allowed=False, reason=reason, denial=denial)

    def __bool__(self) -> bool:
        return self.allowed
