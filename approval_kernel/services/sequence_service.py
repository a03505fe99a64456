"""
SequenceService -- monotonic counters and human-readable record codes.

Responsibility:
    Allocates strictly increasing values from named counter rows and
    formats record codes such as ``EDB-20240521-0007`` (prefix, creation
    date, per-prefix-per-day counter).

Architecture position:
    Kernel > Services.  Called by the workflow engine when a record is
    created, inside the creation transaction.

Invariants enforced:
    - The locked counter row is the sole source of the next value; the
      aggregate-max-plus-one pattern is never used.
    - Transactional: an allocation is only visible once the caller
      commits; a rolled-back creation does not consume a code.

Failure modes:
    - IntegrityError when two transactions create the same counter row
      at once (first allocation of a day).  Propagated; the caller's
      creation fails and may be retried.
"""

from datetime import datetime

from sqlalchemy import select

from approval_kernel.logging_config import get_logger
from approval_kernel.models.sequence import SequenceCounter
from approval_kernel.services.base import BaseService

logger = get_logger("services.sequence")

CODE_WIDTH = 4


class SequenceService(BaseService):
    """Named counters backed by ``sequence_counters`` rows."""

    def next_value(self, sequence_name: str) -> int:
        """Increment and return the counter (first value is 1)."""
        counter = self.session.execute(
            select(SequenceCounter)
            .where(SequenceCounter.name == sequence_name)
            .with_for_update()
            .execution_options(populate_existing=True)
        ).scalar_one_or_none()

        if counter is None:
            counter = SequenceCounter(name=sequence_name, current_value=0)
            self.session.add(counter)

        counter.current_value += 1
        self.session.flush()
        logger.debug(
            "sequence_allocated",
            extra={"sequence_name": sequence_name, "value": counter.current_value},
        )
        return counter.current_value

    def current_value(self, sequence_name: str) -> int | None:
        counter = self.session.execute(
            select(SequenceCounter).where(SequenceCounter.name == sequence_name)
        ).scalar_one_or_none()
        return counter.current_value if counter else None

    def next_record_code(self, prefix: str, when: datetime | None = None) -> str:
        """Allocate the next code for ``prefix`` on ``when``'s date."""
        day = (when or self._clock.now()).strftime("%Y%m%d")
        value = self.next_value(f"{prefix}-{day}")
        return f"{prefix}-{day}-{value:0{CODE_WIDTH}d}"
