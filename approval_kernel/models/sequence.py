"""
Module: approval_kernel.models.sequence
Responsibility: Named monotonic counters backing human-readable record codes.
Architecture position: Kernel > Models.

Invariants enforced:
    - One row per counter name (unique); values only increase.
"""

from sqlalchemy import BigInteger, String
from sqlalchemy.orm import Mapped, mapped_column

from approval_kernel.db.base import Base


class SequenceCounter(Base):
    """Counter row, e.g. name ``EDB-20240521`` -> last issued value."""

    __tablename__ = "sequence_counters"

    name: Mapped[str] = mapped_column(String(50), unique=True, nullable=False)
    current_value: Mapped[int] = mapped_column(BigInteger, nullable=False, default=0)

    def __repr__(self) -> str:
        return f"<SequenceCounter {self.name}={self.current_value}>"
