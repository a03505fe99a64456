"""
Pure domain layer.

Immutable value objects and enums with NO dependencies on the ORM, the
database, the clock or any I/O.
"""

from approval_kernel.domain.clock import (
    Clock,
    DeterministicClock,
    SequentialClock,
    SystemClock,
)
from approval_kernel.domain.records import (
    Actor,
    AuditEntry,
    AuthorizationVerdict,
    DenialKind,
    FinalOption,
    WorkflowRecord,
)
from approval_kernel.domain.workflow import (
    CHAIN_ACTIONS,
    CategoryGuard,
    CategoryGuardMode,
    DepartmentScope,
    SideEffect,
    SideEffectKind,
    TransitionRule,
    TransitionTable,
    WorkflowAction,
    WorkflowDefinition,
    WorkflowType,
    normalize_category,
)

__all__ = [
    "Actor",
    "AuditEntry",
    "AuthorizationVerdict",
    "CHAIN_ACTIONS",
    "CategoryGuard",
    "CategoryGuardMode",
    "Clock",
    "DenialKind",
    "DepartmentScope",
    "DeterministicClock",
    "FinalOption",
    "SequentialClock",
    "SideEffect",
    "SideEffectKind",
    "SystemClock",
    "TransitionRule",
    "TransitionTable",
    "WorkflowAction",
    "WorkflowDefinition",
    "WorkflowRecord",
    "WorkflowType",
    "normalize_category",
]
