"""Hash chain primitives.

Canonical serialization, event hashing and chain verification. Shared by
the logger (which builds the chain) and every store (which verifies it).
"""

import hashlib
import json
import logging
from typing import Any, Dict, Iterable, List, Optional, Union

from codewarden.common.constants import AuditConstants
from codewarden.governance.schemas import AuditEvent, IntegrityReport


logger = logging.getLogger(__name__)


def canonical_json(data: Dict[str, Any]) -> str:
    """Deterministic JSON: sorted keys, no whitespace, UTF-8 kept as is."""
    return json.dumps(data, sort_keys=True, separators=(",", ":"), ensure_ascii=False)


def compute_hash(content: str, algorithm: str = AuditConstants.HASH_ALGORITHM) -> str:
    """Hex digest of content using the configured algorithm."""
    hasher = hashlib.new(algorithm)
    hasher.update(content.encode("utf-8"))
    return hasher.hexdigest()


def compute_event_hash(
    event: Union[AuditEvent, Dict[str, Any]],
    algorithm: str = AuditConstants.HASH_ALGORITHM,
) -> str:
    """Hash of an event's canonical content, excluding its own hash field.

    ``previous_hash`` is part of the content, which is what links the chain.
    """
    if isinstance(event, AuditEvent):
        content = event.hashable_content()
    else:
        content = {k: v for k, v in event.items() if k != "hash"}
    return compute_hash(canonical_json(content), algorithm)


# Stand-in for a record that could not be parsed back into an event
class UnreadableRecord:
    def __init__(self, index: int, error: str):
        self.index = index
        self.error = error


ChainItem = Union[AuditEvent, UnreadableRecord]


def verify_chain(
    events: Iterable[ChainItem],
    algorithm: str = AuditConstants.HASH_ALGORITHM,
) -> IntegrityReport:
    """Walk events in insertion order and confirm every link.

    For each event i the expected predecessor hash is "" for i == 0 and the
    recomputed hash of event i-1 otherwise. The stored previous_hash must
    equal it, and must equal the predecessor's stored hash. The first
    mismatch is reported and the walk stops. When every link holds, the
    tail's stored hash is checked against its recomputed hash, since no
    successor covers it.

    Nothing is repaired or reordered.
    """
    items: List[ChainItem] = list(events)
    total = len(items)
    previous: Optional[AuditEvent] = None

    for index, item in enumerate(items):
        if isinstance(item, UnreadableRecord):
            return _broken(total, index, f"Record {index} is unreadable: {item.error}")

        if previous is None:
            expected = AuditConstants.GENESIS_PREVIOUS_HASH
            if item.previous_hash != expected:
                return _broken(
                    total, index,
                    f"First event must have an empty previous_hash, "
                    f"got '{item.previous_hash}'"
                )
        else:
            expected = compute_event_hash(previous, algorithm)
            if item.previous_hash != expected:
                return _broken(
                    total, index,
                    f"Hash chain broken at event {index}: previous_hash does not "
                    f"match the recomputed hash of event {index - 1}"
                )
            if item.previous_hash != previous.hash:
                return _broken(
                    total, index,
                    f"Hash chain broken at event {index}: previous_hash does not "
                    f"match the stored hash of event {index - 1}"
                )

        previous = item

    if previous is not None:
        recomputed = compute_event_hash(previous, algorithm)
        if recomputed != previous.hash:
            return _broken(
                total, total - 1,
                f"Tail event {total - 1} hash mismatch; event may have been tampered with"
            )

    return IntegrityReport(
        valid=True,
        total_events=total,
        broken_at=None,
        message=f"Hash chain intact ({total} events)",
    )


def _broken(total: int, index: int, message: str) -> IntegrityReport:
    logger.error(f"AUDIT_TAMPER_SIGNAL: {message}")
    return IntegrityReport(valid=False, total_events=total, broken_at=index, message=message)
