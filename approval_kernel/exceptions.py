"""
Typed Exception Hierarchy for the Approval Kernel.

===============================================================================
WHY TYPED EXCEPTIONS
===============================================================================

Callers of the workflow engine (HTTP handlers, batch jobs, tests) must map
failures onto responses without parsing messages. Every error therefore:
  1. Has its own class (catch by type, not by message)
  2. Carries a CODE attribute (machine-readable, API-safe)
  3. Carries structured DATA (entity id, action, status, reason)

Example:
    try:
        engine.approve(record_id, actor_id)
    except UnauthorizedActionError as e:
        return {"code": e.code, "reason": e.reason}, 403
    except OptimisticLockError as e:
        return {"code": e.code}, 409      # caller reloads and retries

===============================================================================
EXCEPTION HIERARCHY
===============================================================================

All exceptions inherit from ApprovalKernelError:

    ApprovalKernelError (base)
    |
    +-- RecordError
    |   +-- RecordNotFoundError
    |
    +-- AuthorizationError
    |   +-- UnauthorizedActionError
    |   +-- UnknownActorError
    |
    +-- TransitionError
    |   +-- InvalidTransitionError
    |       +-- ActorFieldAlreadySetError
    |
    +-- ValidationError
    |
    +-- ConcurrencyError
    |   +-- OptimisticLockError
    |
    +-- AuditError
    |   +-- AuditChainBrokenError
    |
    +-- ImmutabilityError
    |   +-- ImmutabilityViolationError
    |
    +-- NotificationError
    |   +-- NotificationDeliveryError
    |
    +-- ConfigurationError
        +-- WorkflowConfigError

===============================================================================
ERROR CODES - QUICK REFERENCE
===============================================================================

Category        | Code                          | When Raised
----------------|-------------------------------|-----------------------------------
Record          | RECORD_NOT_FOUND              | Entity id doesn't exist
----------------|-------------------------------|-----------------------------------
Authorization   | UNAUTHORIZED                  | Rules exist, actor qualifies for none
                | UNKNOWN_ACTOR                 | Identity provider has no such actor
----------------|-------------------------------|-----------------------------------
Transition      | INVALID_TRANSITION            | Action inapplicable to current status
                | ACTOR_FIELD_ALREADY_SET       | Write-once actor stamp already set
----------------|-------------------------------|-----------------------------------
Validation      | VALIDATION_ERROR              | Missing/empty required payload
----------------|-------------------------------|-----------------------------------
Concurrency     | CONFLICT                      | Status/version changed under us
----------------|-------------------------------|-----------------------------------
Audit           | AUDIT_CHAIN_BROKEN            | Hash chain validation failed
                | IMMUTABILITY_VIOLATION        | Audit entry update/delete attempted
----------------|-------------------------------|-----------------------------------
Notification    | NOTIFICATION_DELIVERY_FAILED  | Channel raised; logged, never raised
----------------|-------------------------------|-----------------------------------
Configuration   | WORKFLOW_CONFIG_INVALID       | YAML workflow definition rejected

Only NotificationDeliveryError is tolerated after commit: the dispatcher
logs it and the already-committed status change and audit entry stand.
"""


class ApprovalKernelError(Exception):
    """Base exception for all approval kernel errors."""

    code: str = "APPROVAL_KERNEL_ERROR"


# Record-related exceptions


class RecordError(ApprovalKernelError):
    """Base exception for record-related errors."""

    code: str = "RECORD_ERROR"


class RecordNotFoundError(RecordError):
    """Referenced workflow record does not exist."""

    code: str = "RECORD_NOT_FOUND"

    def __init__(self, entity_id: int | str):
        self.entity_id = entity_id
        super().__init__(f"Workflow record not found: {entity_id}")


# Authorization-related exceptions


class AuthorizationError(ApprovalKernelError):
    """Base exception for authorization errors."""

    code: str = "AUTHORIZATION_ERROR"


class UnauthorizedActionError(AuthorizationError):
    """
    Actor lacks the role, department or category qualification for the
    requested action in the record's current status.

    Raised before any mutation: no status change, no audit entry, no
    notification.
    """

    code: str = "UNAUTHORIZED"

    def __init__(
        self,
        actor_id: int,
        action: str,
        entity_id: int | str,
        status: str,
        reason: str,
    ):
        self.actor_id = actor_id
        self.action = action
        self.entity_id = entity_id
        self.status = status
        self.reason = reason
        super().__init__(
            f"Actor {actor_id} may not {action} record {entity_id} "
            f"in status {status}: {reason}"
        )


class UnknownActorError(AuthorizationError):
    """The identity provider does not know this actor."""

    code: str = "UNKNOWN_ACTOR"

    def __init__(self, actor_id: int):
        self.actor_id = actor_id
        super().__init__(f"Unknown actor: {actor_id}")


# Transition-related exceptions


class TransitionError(ApprovalKernelError):
    """Base exception for transition errors."""

    code: str = "TRANSITION_ERROR"


class InvalidTransitionError(TransitionError):
    """Action is structurally inapplicable to the record's current status."""

    code: str = "INVALID_TRANSITION"

    def __init__(
        self,
        action: str,
        entity_id: int | str,
        status: str,
        reason: str,
    ):
        self.action = action
        self.entity_id = entity_id
        self.status = status
        self.reason = reason
        super().__init__(
            f"Cannot {action} record {entity_id} in status {status}: {reason}"
        )


class ActorFieldAlreadySetError(InvalidTransitionError):
    """A write-once actor stamp is already populated."""

    code: str = "ACTOR_FIELD_ALREADY_SET"

    def __init__(
        self,
        action: str,
        entity_id: int | str,
        status: str,
        field_name: str,
        existing_actor_id: int,
    ):
        self.field_name = field_name
        self.existing_actor_id = existing_actor_id
        super().__init__(
            action,
            entity_id,
            status,
            f"{field_name} already stamped by actor {existing_actor_id}",
        )


# Validation exceptions


class ValidationError(ApprovalKernelError):
    """Missing or malformed action payload. Raised before any mutation."""

    code: str = "VALIDATION_ERROR"

    def __init__(self, field_name: str, message: str):
        self.field_name = field_name
        super().__init__(f"{field_name}: {message}")


# Concurrency-related exceptions


class ConcurrencyError(ApprovalKernelError):
    """Base exception for concurrency-related errors."""

    code: str = "CONCURRENCY_ERROR"


class OptimisticLockError(ConcurrencyError):
    """
    The record changed between the authorization decision and the write.

    Never retried internally: the caller reloads and decides again.
    """

    code: str = "CONFLICT"

    def __init__(
        self,
        entity_id: int | str,
        expected_status: str,
        expected_version: int,
    ):
        self.entity_id = entity_id
        self.expected_status = expected_status
        self.expected_version = expected_version
        super().__init__(
            f"Conflict on record {entity_id}: expected status "
            f"{expected_status} at version {expected_version}, "
            "record was modified by another transaction"
        )


# Audit-related exceptions


class AuditError(ApprovalKernelError):
    """Base exception for audit-related errors."""

    code: str = "AUDIT_ERROR"


class AuditChainBrokenError(AuditError):
    """Audit hash chain validation failed."""

    code: str = "AUDIT_CHAIN_BROKEN"

    def __init__(self, entry_seq: int, expected_hash: str, actual_hash: str):
        self.entry_seq = entry_seq
        self.expected_hash = expected_hash
        self.actual_hash = actual_hash
        super().__init__(
            f"Audit chain broken at entry {entry_seq}: "
            f"expected {expected_hash}, found {actual_hash}"
        )


# Immutability-related exceptions


class ImmutabilityError(ApprovalKernelError):
    """Base exception for immutability-related errors."""

    code: str = "IMMUTABILITY_ERROR"


class ImmutabilityViolationError(ImmutabilityError):
    """Attempted to modify or delete an append-only row."""

    code: str = "IMMUTABILITY_VIOLATION"

    def __init__(self, entity_type: str, entity_id: str, reason: str):
        self.entity_type = entity_type
        self.entity_id = entity_id
        self.reason = reason
        super().__init__(
            f"Immutability violation on {entity_type} {entity_id}: {reason}"
        )


# Notification-related exceptions


class NotificationError(ApprovalKernelError):
    """Base exception for notification errors."""

    code: str = "NOTIFICATION_ERROR"


class NotificationDeliveryError(NotificationError):
    """
    A delivery channel failed.

    Logged by the dispatcher; never propagated to the workflow caller.
    """

    code: str = "NOTIFICATION_DELIVERY_FAILED"

    def __init__(self, channel: str, entity_reference: str, cause: str):
        self.channel = channel
        self.entity_reference = entity_reference
        self.cause = cause
        super().__init__(
            f"Notification delivery via {channel} failed for "
            f"{entity_reference}: {cause}"
        )


# Configuration-related exceptions


class ConfigurationError(ApprovalKernelError):
    """Base exception for configuration errors."""

    code: str = "CONFIGURATION_ERROR"


class WorkflowConfigError(ConfigurationError):
    """A workflow definition failed validation."""

    code: str = "WORKFLOW_CONFIG_INVALID"

    def __init__(self, workflow: str, errors: list[str]):
        self.workflow = workflow
        self.errors = list(errors)
        super().__init__(
            f"Invalid workflow configuration '{workflow}': " + "; ".join(errors)
        )
