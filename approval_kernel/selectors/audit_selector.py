"""
Module: approval_kernel.selectors.audit_selector
Responsibility: Timeline reads over the audit trail and simple record
    listings for work queues.
Architecture position: Kernel > Selectors.

Ordering: entries are ordered by ``occurred_at`` and then by insertion
order, so entries written within the same clock instant keep the order
in which they were appended.
"""

from __future__ import annotations

from collections.abc import Iterable

from sqlalchemy import func, select

from approval_kernel.domain.records import AuditEntry, WorkflowRecord
from approval_kernel.domain.workflow import WorkflowType
from approval_kernel.models.audit_entry import AuditEntryModel
from approval_kernel.models.record import WorkflowRecordModel
from approval_kernel.selectors.base import BaseSelector


class AuditSelector(BaseSelector):
    """Query a record's audit trail."""

    def timeline(self, entity_id: int, *, descending: bool = False) -> list[AuditEntry]:
        if descending:
            order = (AuditEntryModel.occurred_at.desc(), AuditEntryModel.id.desc())
        else:
            order = (AuditEntryModel.occurred_at.asc(), AuditEntryModel.id.asc())
        rows = self.session.execute(
            select(AuditEntryModel)
            .where(AuditEntryModel.record_id == entity_id)
            .order_by(*order)
        ).scalars().all()
        return [row.to_dto() for row in rows]

    def count(self, entity_id: int) -> int:
        return self.session.execute(
            select(func.count(AuditEntryModel.id))
            .where(AuditEntryModel.record_id == entity_id)
        ).scalar_one()

    def latest(self, entity_id: int) -> AuditEntry | None:
        entries = self.timeline(entity_id, descending=True)
        return entries[0] if entries else None


class RecordSelector(BaseSelector):
    """List records for work queues and dashboards."""

    def by_status(
        self,
        workflow_type: WorkflowType,
        statuses: Iterable[str],
        *,
        department_id: str | None = None,
    ) -> list[WorkflowRecord]:
        stmt = (
            select(WorkflowRecordModel)
            .where(
                WorkflowRecordModel.workflow_type == WorkflowType(workflow_type).value,
                WorkflowRecordModel.status.in_(list(statuses)),
            )
            .order_by(WorkflowRecordModel.id)
        )
        if department_id is not None:
            stmt = stmt.where(WorkflowRecordModel.department_id == department_id)
        return [row.to_dto() for row in self.session.execute(stmt).scalars().all()]

    def created_by(self, creator_id: int) -> list[WorkflowRecord]:
        rows = self.session.execute(
            select(WorkflowRecordModel)
            .where(WorkflowRecordModel.creator_id == creator_id)
            .order_by(WorkflowRecordModel.id.desc())
        ).scalars().all()
        return [row.to_dto() for row in rows]
