"""Audit Store - Abstraction for audit log persistence.

Stores hold already-chained events. They never compute or alter hashes;
the AuditLogger builds the chain and every store can verify it.

Design principles:
- Append-only, insertion order is chain order
- Thread-safe operations
- Readers never observe a partially written event
"""

from abc import ABC, abstractmethod
from pathlib import Path
from typing import Iterator, List, Optional, Union
import fcntl
import json
import logging
import os
import threading

from pydantic import ValidationError

from codewarden.common.constants import AuditConstants
from codewarden.governance.audit.chain import ChainItem, UnreadableRecord, verify_chain
from codewarden.governance.audit.query import AuditFilter
from codewarden.governance.schemas import AuditEvent, IntegrityReport


logger = logging.getLogger(__name__)


class AuditStore(ABC):
    """Abstract base class for audit log storage backends.

    Implementations must provide thread-safe, append-only storage that
    returns events in the order they were appended.
    """

    hash_algorithm: str = AuditConstants.HASH_ALGORITHM

    @abstractmethod
    def append(self, event: AuditEvent) -> None:
        """Persist a chained event.

        Raises:
            IOError: If the write fails. Nothing is persisted in that case.
        """

    @abstractmethod
    def events(self) -> Iterator[AuditEvent]:
        """Yield readable events in insertion order."""

    @abstractmethod
    def last_event(self) -> Optional[AuditEvent]:
        """Most recently appended event, or None if the store is empty."""

    def records(self) -> Iterator[ChainItem]:
        """Yield every persisted record, including unreadable ones.

        Backends that can hold corrupt records override this so that
        verification sees them at their position.
        """
        return self.events()

    def count(self) -> int:
        return sum(1 for _ in self.records())

    def query(self, audit_filter: Optional[AuditFilter] = None) -> List[AuditEvent]:
        """Filter stored events. Results are ordered per the filter."""
        return (audit_filter or AuditFilter()).apply(self.events())

    def verify_integrity(self) -> IntegrityReport:
        """Verify the hash chain over every stored record."""
        return verify_chain(self.records(), self.hash_algorithm)

    def close(self) -> None:
        """Release backend resources."""


class InMemoryAuditStore(AuditStore):
    """Process-local store. Used for tests and development."""

    def __init__(self, hash_algorithm: str = AuditConstants.HASH_ALGORITHM):
        self.hash_algorithm = hash_algorithm
        self._lock = threading.RLock()
        self._events: List[AuditEvent] = []

    def append(self, event: AuditEvent) -> None:
        with self._lock:
            self._events.append(event)

    def _snapshot(self) -> List[AuditEvent]:
        with self._lock:
            return list(self._events)

    def events(self) -> Iterator[AuditEvent]:
        return iter(self._snapshot())

    def last_event(self) -> Optional[AuditEvent]:
        with self._lock:
            return self._events[-1] if self._events else None

    def count(self) -> int:
        with self._lock:
            return len(self._events)


class FileAuditStore(AuditStore):
    """File-based audit store with a single append-only JSONL file.

    Features:
    - One file for the whole chain
    - Atomic appends with file locking
    - Restrictive permissions on the log directory and file
    - Only newline-terminated lines are read, so a torn write is invisible
    """

    DEFAULT_LOG_DIR = Path(__file__).parent.parent.parent.parent.parent / "logs" / "audit"

    def __init__(
        self,
        log_dir: Optional[Union[str, Path]] = None,
        log_filename: str = AuditConstants.LOG_FILENAME,
        hash_algorithm: str = AuditConstants.HASH_ALGORITHM,
        fsync_on_write: bool = False,
    ):
        """Initialize file audit store.

        Args:
            log_dir: Directory for the audit log. Uses default if not provided.
            log_filename: Name of the JSONL file inside log_dir.
            hash_algorithm: Algorithm the chain was built with.
            fsync_on_write: Whether to fsync after each write (slower but safer).
        """
        self.log_dir = Path(log_dir) if log_dir else self.DEFAULT_LOG_DIR
        self.log_path = self.log_dir / log_filename
        self.hash_algorithm = hash_algorithm
        self.fsync_on_write = fsync_on_write

        self._lock = threading.Lock()
        self._last_event: Optional[AuditEvent] = None

        self.log_dir.mkdir(parents=True, exist_ok=True)
        try:
            os.chmod(self.log_dir, 0o700)
        except OSError as e:
            logger.warning(f"Could not restrict permissions on {self.log_dir}: {e}")

        self._last_event = self._scan_last_event()

    def _scan_last_event(self) -> Optional[AuditEvent]:
        last = None
        for item in self.records():
            if isinstance(item, AuditEvent):
                last = item
        return last

    def append(self, event: AuditEvent) -> None:
        """Append event with an exclusive lock for cross-process safety.

        A failed write or sync truncates the file back to its previous
        length before the lock is released, so a retry never duplicates
        the line.
        """
        line = (event.to_jsonl() + "\n").encode("utf-8")

        with self._lock:
            fd = os.open(
                str(self.log_path),
                os.O_WRONLY | os.O_CREAT | os.O_APPEND,
                0o600,
            )
            try:
                fcntl.flock(fd, fcntl.LOCK_EX)
                try:
                    offset = os.fstat(fd).st_size
                    try:
                        written = os.write(fd, line)
                        if written != len(line):
                            raise OSError(f"Short write: {written} of {len(line)} bytes")
                        if self.fsync_on_write:
                            os.fsync(fd)
                    except OSError:
                        os.ftruncate(fd, offset)
                        raise
                finally:
                    fcntl.flock(fd, fcntl.LOCK_UN)
            finally:
                os.close(fd)

            self._last_event = event

        logger.debug(f"Appended audit event {event.id} to {self.log_path}")

    def records(self) -> Iterator[ChainItem]:
        if not self.log_path.exists():
            return

        with open(self.log_path, "rb") as f:
            index = 0
            for raw in f:
                if not raw.endswith(b"\n"):
                    # Write still in progress
                    break
                line = raw.strip()
                if not line:
                    continue
                try:
                    yield AuditEvent.from_jsonl(line.decode("utf-8"))
                except (UnicodeDecodeError, json.JSONDecodeError, ValidationError) as e:
                    yield UnreadableRecord(index, str(e))
                index += 1

    def events(self) -> Iterator[AuditEvent]:
        for item in self.records():
            if isinstance(item, UnreadableRecord):
                logger.warning(
                    f"Skipped malformed audit record {item.index}: {item.error}"
                )
                continue
            yield item

    def last_event(self) -> Optional[AuditEvent]:
        with self._lock:
            return self._last_event
