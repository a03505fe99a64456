"""
Module: approval_engines
Responsibility:
    Re-exports the pure evaluation functions: authorization, transition
    effects, notification routing and messages.

Architecture position:
    Engines -- pure evaluation layer, zero I/O.
    May only import approval_kernel domain types and exceptions.
    MUST NOT import approval_services or approval_config.

Invariants enforced:
    - Purity: engines never read the clock; ``now`` is passed in.
    - Determinism: identical inputs produce identical verdicts.
"""

from approval_engines.authorization import (
    allowed_actions,
    can_perform,
    department_matches,
    evaluate,
    rule_admits,
)
from approval_engines.notifications import (
    MESSAGE_TEMPLATES,
    RecipientPlan,
    RoleCohort,
    build_message,
    message_context,
    next_step_cohorts,
    plan_recipients,
)
from approval_engines.tracer import compute_input_fingerprint, traced_engine
from approval_engines.transitions import (
    TransitionOutcome,
    apply_transition,
    require_reason,
)

__all__ = [
    "MESSAGE_TEMPLATES",
    "RecipientPlan",
    "RoleCohort",
    "TransitionOutcome",
    "allowed_actions",
    "apply_transition",
    "build_message",
    "can_perform",
    "compute_input_fingerprint",
    "department_matches",
    "evaluate",
    "message_context",
    "next_step_cohorts",
    "plan_recipients",
    "require_reason",
    "rule_admits",
    "traced_engine",
]
