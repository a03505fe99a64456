"""Database infrastructure: declarative base and the injected Database."""

from approval_kernel.db.base import Base, TimestampedBase, as_utc
from approval_kernel.db.engine import Database

__all__ = ["Base", "Database", "TimestampedBase", "as_utc"]
