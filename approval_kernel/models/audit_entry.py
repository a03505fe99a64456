"""
Module: approval_kernel.models.audit_entry
Responsibility: ORM persistence for the per-record audit trail.
Architecture position: Kernel > Models.  May import from db/base.py and
    domain/ only.

Invariants enforced:
    - Append-only: ORM ``before_update`` / ``before_delete`` listeners raise
      ImmutabilityViolationError.
    - Hash chain: entry_hash = H(entity_id | actor_id | event_type |
      occurred_at | details | prev_hash), prev_hash being the previous entry
      of the same record.  Validated by AuditorService.validate_chain().

Audit relevance:
    Every status change writes exactly one entry whose event_type is the new
    status.  Non-transition markers: ESCALATED, ATTACHMENT_ADDED.  Creation
    writes one entry whose event_type is the initial status.
"""

from datetime import datetime
from enum import Enum
from typing import Any

from sqlalchemy import JSON, ForeignKey, Index, Integer, String, event
from sqlalchemy.orm import Mapped, mapped_column

from approval_kernel.db.base import Base, as_utc
from approval_kernel.domain.records import AuditEntry
from approval_kernel.domain.workflow import WorkflowType
from approval_kernel.exceptions import ImmutabilityViolationError


class AuditMarker(str, Enum):
    """Audit event types that are not statuses."""

    ESCALATED = "ESCALATED"
    ATTACHMENT_ADDED = "ATTACHMENT_ADDED"


class AuditEntryModel(Base):
    """One immutable entry in a record's history."""

    __tablename__ = "audit_entries"
    __table_args__ = (
        Index("idx_audit_entries_record_time", "record_id", "occurred_at", "id"),
    )

    record_id: Mapped[int] = mapped_column(
        ForeignKey("workflow_records.id"), nullable=False,
    )
    workflow_type: Mapped[str] = mapped_column(String(30), nullable=False)
    actor_id: Mapped[int] = mapped_column(Integer, nullable=False)
    event_type: Mapped[str] = mapped_column(String(50), nullable=False)
    occurred_at: Mapped[datetime] = mapped_column(nullable=False)
    details: Mapped[dict[str, Any]] = mapped_column(JSON, nullable=False, default=dict)
    previous_status: Mapped[str | None] = mapped_column(String(50), nullable=True)
    new_status: Mapped[str | None] = mapped_column(String(50), nullable=True)
    entry_hash: Mapped[str] = mapped_column(String(64), nullable=False)
    prev_hash: Mapped[str | None] = mapped_column(String(64), nullable=True)

    def to_dto(self) -> AuditEntry:
        return AuditEntry(
            seq=self.id,
            entity_id=self.record_id,
            workflow_type=WorkflowType(self.workflow_type),
            actor_id=self.actor_id,
            event_type=self.event_type,
            occurred_at=as_utc(self.occurred_at),
            details=dict(self.details or {}),
            previous_status=self.previous_status,
            new_status=self.new_status,
            entry_hash=self.entry_hash,
            prev_hash=self.prev_hash,
        )

    def __repr__(self) -> str:
        return f"<AuditEntry #{self.id} record={self.record_id} {self.event_type}>"


@event.listens_for(AuditEntryModel, "before_update")
def prevent_audit_entry_update(mapper, connection, target):
    """Prevent updates to audit entries."""
    raise ImmutabilityViolationError(
        entity_type="AuditEntry",
        entity_id=str(target.id),
        reason="Audit entries are append-only -- cannot modify",
    )


@event.listens_for(AuditEntryModel, "before_delete")
def prevent_audit_entry_delete(mapper, connection, target):
    """Prevent deletion of audit entries."""
    raise ImmutabilityViolationError(
        entity_type="AuditEntry",
        entity_id=str(target.id),
        reason="Audit entries are append-only -- cannot delete",
    )
