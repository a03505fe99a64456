"""
RecordStore -- persistence of workflow records with optimistic locking.

Responsibility:
    Load, insert and conditionally update ``WorkflowRecordModel`` rows,
    returning immutable ``WorkflowRecord`` snapshots.  The conditional
    update is the engine's per-record serialization point.

Architecture position:
    Kernel > Services.  The only writer of ``workflow_records.status``;
    only the workflow engine calls ``save_if_current``.

Invariants enforced:
    - A write lands only if the row still has the status and version the
      authorization decision was computed against
      (``UPDATE ... WHERE id = ? AND status = ? AND version = ?``).
      Otherwise OptimisticLockError and nothing is written.
    - ``version`` increases by exactly one per successful write.
    - ``code`` and ``creator_id`` are never part of an update.

Failure modes:
    - RecordNotFoundError when the id does not exist.
    - OptimisticLockError when another transaction won the race.
"""

from __future__ import annotations

from sqlalchemy import select, update

from approval_kernel.domain.records import FinalOption, WorkflowRecord
from approval_kernel.exceptions import OptimisticLockError, RecordNotFoundError
from approval_kernel.logging_config import get_logger
from approval_kernel.models.record import FinalOptionModel, WorkflowRecordModel
from approval_kernel.services.base import BaseService

logger = get_logger("services.record_store")


class RecordStore(BaseService):
    """SQLAlchemy-backed record persistence."""

    def _get_model(self, entity_id: int) -> WorkflowRecordModel:
        model = self.session.execute(
            select(WorkflowRecordModel)
            .where(WorkflowRecordModel.id == entity_id)
            .execution_options(populate_existing=True)
        ).scalar_one_or_none()
        if model is None:
            raise RecordNotFoundError(entity_id)
        return model

    def load(self, entity_id: int) -> WorkflowRecord:
        """Current snapshot of the record.

        Raises:
            RecordNotFoundError: if no such record exists.
        """
        return self._get_model(entity_id).to_dto()

    def exists(self, entity_id: int) -> bool:
        return self.session.execute(
            select(WorkflowRecordModel.id).where(WorkflowRecordModel.id == entity_id)
        ).first() is not None

    def insert(self, record: WorkflowRecord) -> WorkflowRecord:
        """Persist a new record; timestamps default to the clock."""
        now = self._clock.now()
        model = WorkflowRecordModel.from_dto(
            record.with_changes(
                version=1,
                created_at=record.created_at or now,
                updated_at=record.updated_at or now,
            )
        )
        self.session.add(model)
        self.session.flush()
        logger.debug(
            "record_inserted",
            extra={"record_id": model.id, "code": model.code, "status": model.status},
        )
        return model.to_dto()

    def save_if_current(
        self,
        record: WorkflowRecord,
        *,
        expected_status: str,
        expected_version: int,
    ) -> WorkflowRecord:
        """
        Write the mutable fields of ``record`` if nobody changed it first.

        Raises:
            OptimisticLockError: if the row's status or version no longer
                match.  The caller must reload and decide again.
        """
        result = self.session.execute(
            update(WorkflowRecordModel)
            .where(
                WorkflowRecordModel.id == record.id,
                WorkflowRecordModel.status == expected_status,
                WorkflowRecordModel.version == expected_version,
            )
            .values(
                status=record.status,
                actor_stamps=dict(record.actor_stamps),
                rejection_reason=record.rejection_reason,
                is_escalated=record.is_escalated,
                version=expected_version + 1,
                updated_at=self._clock.now(),
            )
            .execution_options(synchronize_session=False)
        )
        if result.rowcount != 1:
            logger.warning(
                "record_update_conflict",
                extra={
                    "record_id": record.id,
                    "expected_status": expected_status,
                    "expected_version": expected_version,
                },
            )
            raise OptimisticLockError(record.id, expected_status, expected_version)

        # The bulk UPDATE bypassed the identity map
        self.session.expire_all()
        return self.load(record.id)

    def add_final_option(self, entity_id: int, option: FinalOption) -> WorkflowRecord:
        """Attach the subordinate final-option row (at most one per record)."""
        self.session.add(
            FinalOptionModel(
                record_id=entity_id,
                option_id=option.option_id,
                label=option.label,
                amount=option.amount,
                chosen_by_id=option.chosen_by_id,
                chosen_at=option.chosen_at,
            )
        )
        self.session.flush()
        self.session.expire_all()
        return self.load(entity_id)
