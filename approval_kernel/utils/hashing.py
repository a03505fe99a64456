"""
Deterministic hashing utilities.

Audit entries are chained per record: each entry's hash covers its own
canonical content plus the previous entry's hash, so any edit or removal
inside a record's history is detectable.
"""

import hashlib
import json
from datetime import date, datetime, timezone
from decimal import Decimal
from enum import Enum
from typing import Any


def _json_serializer(obj: Any) -> Any:
    if isinstance(obj, Decimal):
        # Trailing zeros must not change the hash
        return str(obj.normalize())
    if isinstance(obj, (datetime, date)):
        return obj.isoformat()
    if isinstance(obj, Enum):
        return obj.value
    if isinstance(obj, (set, frozenset)):
        return sorted(obj, key=str)
    raise TypeError(f"Object of type {type(obj).__name__} is not JSON serializable")


def canonicalize_json(data: Any) -> str:
    """Sorted keys, no whitespace, stable rendering of Decimal/datetime/Enum."""
    return json.dumps(
        data,
        sort_keys=True,
        separators=(",", ":"),
        default=_json_serializer,
    )


def hash_payload(payload: dict) -> str:
    """Hex-encoded SHA-256 of the canonical JSON form."""
    return hashlib.sha256(canonicalize_json(payload).encode("utf-8")).hexdigest()


def hash_audit_entry(
    *,
    entity_id: int,
    actor_id: int,
    event_type: str,
    occurred_at: datetime,
    details: dict,
    prev_hash: str | None,
) -> str:
    """Chained hash of one audit entry.

    ``occurred_at`` is normalized to a naive UTC ISO string so the hash
    survives databases that drop timezone information.
    """
    if occurred_at.tzinfo is not None:
        occurred_at = occurred_at.astimezone(timezone.utc).replace(tzinfo=None)
    return hash_payload({
        "entity_id": entity_id,
        "actor_id": actor_id,
        "event_type": event_type,
        "occurred_at": occurred_at.isoformat(),
        "details": details,
        "prev_hash": prev_hash or "",
    })
