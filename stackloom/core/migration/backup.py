"""Backup Manager and backup transactions.

Snapshots of original file contents are kept in memory, one per job id,
so a migration can be rolled back.  The store is shared between jobs and
every access goes through a single lock; operations on different job ids
never interfere.

Usage::

    with create_backup_transaction(manager, job_id) as tx:
        tx.begin(files, {"source_framework": "React", "target_framework": "Next.js"})
        write_results()          # an exception here rolls the job back
"""

import logging
import threading
from collections import OrderedDict
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Callable, Dict, Iterable, List, Mapping, Optional, Union

from ..constants import MAX_BACKUPS
from .errors import BackupError, TransactionError, log_migration_event
from .models import FileRecord

logger = logging.getLogger(__name__)

FileInput = Union[Mapping[str, str], Iterable[FileRecord], Iterable[Mapping[str, Any]]]


@dataclass
class BackupEntry:
    file_path: str
    original_content: str
    timestamp: datetime


@dataclass
class BackupSnapshot:
    """All original contents of one job."""

    job_id: str
    timestamp: datetime
    files: Dict[str, BackupEntry] = field(default_factory=dict)
    metadata: Dict[str, Any] = field(default_factory=dict)
    sequence: int = 0  # Creation order; breaks timestamp ties

    def info(self) -> Dict[str, Any]:
        return {
            "job_id": self.job_id,
            "timestamp": self.timestamp,
            "file_count": len(self.files),
            "metadata": dict(self.metadata),
        }


def _iter_files(files: FileInput):
    """Yield (path, content) pairs from any supported file collection."""
    if isinstance(files, Mapping):
        yield from files.items()
        return
    for item in files:
        if isinstance(item, FileRecord):
            yield item.path, item.content or ""
        else:
            yield item["path"], item.get("content") or ""


class BackupManager:
    """In-memory snapshot store.

    Args:
        max_backups: Snapshots kept before the oldest are evicted
        clock: Returns the current time; injectable for tests
    """

    def __init__(
        self,
        max_backups: int = MAX_BACKUPS,
        clock: Callable[[], datetime] = lambda: datetime.now(timezone.utc),
    ):
        self.max_backups = max_backups
        self._clock = clock
        self._backups: "OrderedDict[str, BackupSnapshot]" = OrderedDict()
        self._lock = threading.Lock()
        self._sequence = 0

    def create_backup(
        self,
        job_id: str,
        files: FileInput,
        metadata: Optional[Mapping[str, Any]] = None,
    ) -> str:
        """Snapshot original contents for a job.

        Returns:
            The backup id (the job id)

        Raises:
            BackupError: If a snapshot already exists for ``job_id``
        """
        now = self._clock()
        entries = {
            path: BackupEntry(file_path=path, original_content=content, timestamp=now)
            for path, content in _iter_files(files)
        }
        meta = dict(metadata or {})
        meta["total_files"] = len(entries)

        with self._lock:
            if job_id in self._backups:
                log_migration_event(
                    "backup:create:failed",
                    {"job_id": job_id, "error": "duplicate"},
                    level=logging.WARNING,
                )
                raise BackupError(f"Backup already exists for job {job_id}", "create")
            self._sequence += 1
            self._backups[job_id] = BackupSnapshot(
                job_id=job_id,
                timestamp=now,
                files=entries,
                metadata=meta,
                sequence=self._sequence,
            )
            evicted = self._evict_locked()

        for old_id in evicted:
            log_migration_event("backup:auto-cleanup", {"job_id": old_id, "reason": "max-backups-exceeded"})
        log_migration_event("backup:create:complete", {
            "job_id": job_id,
            "file_count": len(entries),
            "backup_size": sum(len(e.original_content) for e in entries.values()),
        })
        return job_id

    def _evict_locked(self) -> List[str]:
        if len(self._backups) <= self.max_backups:
            return []
        ordered = sorted(self._backups.values(), key=lambda s: (s.timestamp, s.sequence))
        doomed = [s.job_id for s in ordered[: len(self._backups) - self.max_backups]]
        for job_id in doomed:
            del self._backups[job_id]
        return doomed

    def restore_backup(self, job_id: str) -> Dict[str, str]:
        """Original contents of every file in the job's snapshot.

        Raises:
            BackupError: If no snapshot exists
        """
        with self._lock:
            snapshot = self._backups.get(job_id)
            if snapshot is None:
                raise BackupError(f"No backup found for job {job_id}", "restore")
            restored = {path: e.original_content for path, e in snapshot.files.items()}
        log_migration_event("backup:restore:complete", {"job_id": job_id, "file_count": len(restored)})
        return restored

    def restore_file(self, job_id: str, file_path: str) -> str:
        with self._lock:
            snapshot = self._backups.get(job_id)
            if snapshot is None:
                raise BackupError(f"No backup found for job {job_id}", "restore")
            entry = snapshot.files.get(file_path)
            if entry is None:
                raise BackupError(f"File {file_path} not found in backup {job_id}", "restore")
            return entry.original_content

    def cleanup_backup(self, job_id: str) -> None:
        """Drop a job's snapshot.  Missing snapshots are not an error."""
        with self._lock:
            snapshot = self._backups.pop(job_id, None)
        if snapshot is None:
            log_migration_event("backup:cleanup:not-found", {"job_id": job_id})
            return
        log_migration_event("backup:cleanup:complete", {"job_id": job_id, "file_count": len(snapshot.files)})

    def has_backup(self, job_id: str) -> bool:
        with self._lock:
            return job_id in self._backups

    def get_backup_info(self, job_id: str) -> Optional[Dict[str, Any]]:
        with self._lock:
            snapshot = self._backups.get(job_id)
            return snapshot.info() if snapshot is not None else None

    def list_backups(self) -> List[Dict[str, Any]]:
        """Info for every snapshot, newest first."""
        with self._lock:
            snapshots = sorted(
                self._backups.values(), key=lambda s: (s.timestamp, s.sequence), reverse=True
            )
            return [s.info() for s in snapshots]

    def clear_all_backups(self) -> None:
        with self._lock:
            count = len(self._backups)
            self._backups.clear()
        log_migration_event("backup:clear-all", {"count": count})


class BackupTransaction:
    """Commit-or-rollback wrapper around one job's snapshot.

    ``commit`` and ``rollback`` may each happen once and exclude each
    other.  As a context manager, an exception inside the block rolls back
    (when a snapshot was taken) and a clean exit commits; the restored
    contents are kept on ``restored``.
    """

    def __init__(self, manager: BackupManager, job_id: str):
        self.manager = manager
        self.job_id = job_id
        self._committed = False
        self._rolled_back = False
        self.restored: Optional[Dict[str, str]] = None

    @property
    def is_complete(self) -> bool:
        return self._committed or self._rolled_back

    def begin(self, files: FileInput, metadata: Optional[Mapping[str, Any]] = None) -> None:
        self.manager.create_backup(self.job_id, files, metadata)

    def commit(self) -> None:
        if self._committed:
            raise TransactionError("Transaction already committed")
        if self._rolled_back:
            raise TransactionError("Cannot commit after rollback")
        self.manager.cleanup_backup(self.job_id)
        self._committed = True

    def rollback(self) -> Dict[str, str]:
        if self._committed:
            raise TransactionError("Cannot rollback after commit")
        if self._rolled_back:
            raise TransactionError("Transaction already rolled back")
        self.restored = self.manager.restore_backup(self.job_id)
        self._rolled_back = True
        return self.restored

    def __enter__(self) -> "BackupTransaction":
        return self

    def __exit__(self, exc_type, exc, tb) -> bool:
        if self.is_complete:
            return False
        if exc_type is not None:
            if self.manager.has_backup(self.job_id):
                logger.warning(f"Rolling back job {self.job_id} after {exc_type.__name__}: {exc}")
                self.rollback()
        else:
            self.commit()
        return False


def create_backup_transaction(manager: BackupManager, job_id: str) -> BackupTransaction:
    return BackupTransaction(manager, job_id)
