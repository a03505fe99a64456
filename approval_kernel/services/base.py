"""
BaseService -- abstract base for all kernel services.

Responsibility:
    Common constructor and session contract.  Services receive a
    SQLAlchemy ``Session`` and use ``session.flush()`` -- never
    ``session.commit()``.  The workflow engine's ``session_scope()``
    owns commit/rollback, which is what makes a status change and its
    audit entry one atomic unit.
"""

from abc import ABC

from sqlalchemy.orm import Session

from approval_kernel.domain.clock import Clock, SystemClock


class BaseService(ABC):
    """
    Abstract base class for kernel services.

    Guarantees:
        The service never calls ``session.commit()`` or
        ``session.rollback()``.
    """

    def __init__(self, session: Session, clock: Clock | None = None):
        self.session = session
        self._clock = clock or SystemClock()
