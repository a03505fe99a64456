"""Kernel services: flush-only writers running inside the caller's transaction."""

from approval_kernel.services.auditor_service import AuditorService
from approval_kernel.services.record_store import RecordStore
from approval_kernel.services.sequence_service import SequenceService

__all__ = ["AuditorService", "RecordStore", "SequenceService"]
