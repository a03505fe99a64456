"""
Module: approval_kernel.models.record
Responsibility: ORM persistence for workflow records (requisitions, cash
    vouchers, mission orders) and their subordinate final-option choice.
Architecture position: Kernel > Models.  May import from db/base.py and
    domain/ only.

Invariants enforced:
    - ``code`` is unique and never updated after insert.
    - ``version`` increments on every committed transition; the record store
      updates with ``WHERE status = ? AND version = ?`` so a stale decision
      never overwrites a newer state.
    - At most one FinalOption per record (unique record_id).

Failure modes:
    - IntegrityError on duplicate code or second final option.
"""

from datetime import datetime
from decimal import Decimal
from typing import Any

from sqlalchemy import JSON, Boolean, ForeignKey, Index, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column, relationship

from approval_kernel.db.base import Base, TimestampedBase, as_utc
from approval_kernel.domain.records import FinalOption, WorkflowRecord
from approval_kernel.domain.workflow import WorkflowType


class WorkflowRecordModel(TimestampedBase):
    """One requisition, voucher or mission order and its current status."""

    __tablename__ = "workflow_records"
    __table_args__ = (
        Index("idx_workflow_records_type_status", "workflow_type", "status"),
        Index("idx_workflow_records_department", "department_id"),
    )

    code: Mapped[str] = mapped_column(String(40), unique=True, nullable=False)
    workflow_type: Mapped[str] = mapped_column(String(30), nullable=False)
    status: Mapped[str] = mapped_column(String(50), nullable=False)
    department_id: Mapped[str | None] = mapped_column(String(50), nullable=True)
    creator_id: Mapped[int] = mapped_column(Integer, nullable=False)
    category: Mapped[str | None] = mapped_column(String(100), nullable=True)
    title: Mapped[str] = mapped_column(String(255), nullable=False, default="")
    payload: Mapped[dict[str, Any]] = mapped_column(JSON, nullable=False, default=dict)
    total_amount: Mapped[Decimal | None] = mapped_column(nullable=True)
    actor_stamps: Mapped[dict[str, Any]] = mapped_column(
        JSON, nullable=False, default=dict,
    )
    rejection_reason: Mapped[str | None] = mapped_column(Text, nullable=True)
    is_escalated: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    version: Mapped[int] = mapped_column(Integer, nullable=False, default=1)

    final_option: Mapped["FinalOptionModel | None"] = relationship(
        back_populates="record",
        uselist=False,
        lazy="selectin",
    )

    def to_dto(self) -> WorkflowRecord:
        return WorkflowRecord(
            id=self.id,
            code=self.code,
            workflow_type=WorkflowType(self.workflow_type),
            status=self.status,
            department_id=self.department_id,
            creator_id=self.creator_id,
            category=self.category,
            title=self.title,
            payload=dict(self.payload or {}),
            total_amount=self.total_amount,
            actor_stamps={k: int(v) for k, v in (self.actor_stamps or {}).items()},
            rejection_reason=self.rejection_reason,
            is_escalated=self.is_escalated,
            final_option=self.final_option.to_dto() if self.final_option else None,
            version=self.version,
            created_at=as_utc(self.created_at),
            updated_at=as_utc(self.updated_at),
        )

    @classmethod
    def from_dto(cls, record: WorkflowRecord) -> "WorkflowRecordModel":
        """Build a new row from a snapshot. ``record.id`` is ignored."""
        return cls(
            code=record.code,
            workflow_type=record.workflow_type.value,
            status=record.status,
            department_id=record.department_id,
            creator_id=record.creator_id,
            category=record.category,
            title=record.title,
            payload=dict(record.payload),
            total_amount=record.total_amount,
            actor_stamps=dict(record.actor_stamps),
            rejection_reason=record.rejection_reason,
            is_escalated=record.is_escalated,
            version=record.version,
            created_at=record.created_at,
            updated_at=record.updated_at or record.created_at,
        )

    def __repr__(self) -> str:
        return f"<WorkflowRecord {self.code} [{self.status}] v{self.version}>"


class FinalOptionModel(Base):
    """The supplier/amount choice that unlocks final approval."""

    __tablename__ = "final_options"

    record_id: Mapped[int] = mapped_column(
        ForeignKey("workflow_records.id"), unique=True, nullable=False,
    )
    option_id: Mapped[str] = mapped_column(String(100), nullable=False)
    label: Mapped[str] = mapped_column(String(255), nullable=False, default="")
    amount: Mapped[Decimal | None] = mapped_column(nullable=True)
    chosen_by_id: Mapped[int] = mapped_column(Integer, nullable=False)
    chosen_at: Mapped[datetime] = mapped_column(nullable=False)

    record: Mapped[WorkflowRecordModel] = relationship(back_populates="final_option")

    def to_dto(self) -> FinalOption:
        return FinalOption(
            option_id=self.option_id,
            label=self.label,
            amount=self.amount,
            chosen_by_id=self.chosen_by_id,
            chosen_at=as_utc(self.chosen_at),
        )
