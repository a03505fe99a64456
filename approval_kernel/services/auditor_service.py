"""
AuditorService -- append-only, hash-chained audit trail per record.

Responsibility:
    Writes one ``AuditEntryModel`` per status change (and per
    non-transition marker such as ESCALATED or ATTACHMENT_ADDED) inside
    the caller's transaction, chaining each entry's hash to the previous
    entry of the same record.  Validates that chain on demand.

Architecture position:
    Kernel > Services.  Called by the workflow engine between the record
    update and the commit, so the status change and its entry are
    persisted together or not at all.

Invariants enforced:
    - Append-only: entries are only ever inserted; the model's listeners
      refuse UPDATE and DELETE.
    - entry_hash = H(entity_id, actor_id, event_type, occurred_at,
      details, prev_hash).

Failure modes:
    - AuditChainBrokenError from ``validate_chain`` on any mismatch.

Audit relevance:
    This IS the audit trail.  The timeline shown to users is read back
    through ``approval_kernel.selectors.audit_selector``.
"""

from __future__ import annotations

from collections.abc import Mapping
from typing import Any

from sqlalchemy import select

from approval_kernel.domain.records import AuditEntry
from approval_kernel.domain.workflow import WorkflowType
from approval_kernel.exceptions import AuditChainBrokenError
from approval_kernel.logging_config import get_logger
from approval_kernel.models.audit_entry import AuditEntryModel
from approval_kernel.services.base import BaseService
from approval_kernel.utils.hashing import hash_audit_entry

logger = get_logger("services.auditor")


class AuditorService(BaseService):
    """
    Creates and validates audit entries.

    Non-goals:
        - Does NOT commit; the caller owns the transaction.
        - Does NOT decide which events are audited; the workflow engine does.
    """

    def _last_hash(self, entity_id: int) -> str | None:
        last = self.session.execute(
            select(AuditEntryModel.entry_hash)
            .where(AuditEntryModel.record_id == entity_id)
            .order_by(AuditEntryModel.id.desc())
            .limit(1)
        ).scalar_one_or_none()
        return last

    def append(
        self,
        *,
        entity_id: int,
        workflow_type: WorkflowType,
        actor_id: int,
        event_type: str,
        details: Mapping[str, Any] | None = None,
        previous_status: str | None = None,
        new_status: str | None = None,
    ) -> AuditEntry:
        """
        Append one entry to the record's trail and flush.

        ``details`` must be JSON-serializable (amounts as strings).
        """
        occurred_at = self._clock.now()
        details_data = dict(details or {})
        prev_hash = self._last_hash(entity_id)
        entry_hash = hash_audit_entry(
            entity_id=entity_id,
            actor_id=actor_id,
            event_type=event_type,
            occurred_at=occurred_at,
            details=details_data,
            prev_hash=prev_hash,
        )

        model = AuditEntryModel(
            record_id=entity_id,
            workflow_type=WorkflowType(workflow_type).value,
            actor_id=actor_id,
            event_type=event_type,
            occurred_at=occurred_at,
            details=details_data,
            previous_status=previous_status,
            new_status=new_status,
            entry_hash=entry_hash,
            prev_hash=prev_hash,
        )
        self.session.add(model)
        self.session.flush()

        logger.info(
            "audit_entry_appended",
            extra={
                "record_id": entity_id,
                "event_type": event_type,
                "seq": model.id,
                "previous_status": previous_status,
                "new_status": new_status,
            },
        )
        return model.to_dto()

    def validate_chain(self, entity_id: int) -> bool:
        """
        Recompute every hash of the record's trail in insertion order.

        Raises:
            AuditChainBrokenError: at the first entry whose stored hash or
                prev_hash link does not match.
        """
        entries = self.session.execute(
            select(AuditEntryModel)
            .where(AuditEntryModel.record_id == entity_id)
            .order_by(AuditEntryModel.id)
        ).scalars().all()

        previous: str | None = None
        for entry in entries:
            if entry.prev_hash != previous:
                logger.critical(
                    "audit_chain_broken",
                    extra={"record_id": entity_id, "seq": entry.id},
                )
                raise AuditChainBrokenError(entry.id, previous or "None", entry.prev_hash or "None")

            expected = hash_audit_entry(
                entity_id=entry.record_id,
                actor_id=entry.actor_id,
                event_type=entry.event_type,
                occurred_at=entry.occurred_at,
                details=dict(entry.details or {}),
                prev_hash=entry.prev_hash,
            )
            if entry.entry_hash != expected:
                logger.critical(
                    "audit_chain_broken",
                    extra={"record_id": entity_id, "seq": entry.id},
                )
                raise AuditChainBrokenError(entry.id, expected, entry.entry_hash)
            previous = entry.entry_hash

        logger.info(
            "audit_chain_valid",
            extra={"record_id": entity_id, "entry_count": len(entries)},
        )
        return True
