"""Tests for the Backup Manager and backup transactions."""

import threading
from datetime import datetime, timedelta, timezone

import pytest
from stackloom.core.migration.backup import BackupManager, BackupTransaction, create_backup_transaction
from stackloom.core.migration.errors import BackupError, TransactionError
from stackloom.core.migration.models import FileRecord


FILES = {"src/App.jsx": "export default function App() {}", "src/index.css": "body {}"}


class _Clock:
    """Deterministic clock advancing one second per call."""

    def __init__(self):
        self.now = datetime(2024, 1, 1, tzinfo=timezone.utc)

    def __call__(self):
        self.now += timedelta(seconds=1)
        return self.now


@pytest.fixture
def manager():
    return BackupManager(max_backups=3, clock=_Clock())


class TestBackupManager:
    def test_create_and_restore(self, manager):
        assert manager.create_backup("job-1", FILES, {"source_framework": "React"}) == "job-1"
        assert manager.restore_backup("job-1") == FILES
        info = manager.get_backup_info("job-1")
        assert info["file_count"] == 2
        assert info["metadata"]["total_files"] == 2
        assert info["metadata"]["source_framework"] == "React"

    def test_accepts_file_records_and_dicts(self, manager):
        manager.create_backup("records", [FileRecord(path="a.js", content="a")])
        manager.create_backup("dicts", [{"path": "b.js", "content": "b"}])
        assert manager.restore_backup("records") == {"a.js": "a"}
        assert manager.restore_file("dicts", "b.js") == "b"

    def test_duplicate_job_is_rejected(self, manager):
        manager.create_backup("job-1", FILES)
        with pytest.raises(BackupError, match="Backup already exists for job job-1") as exc:
            manager.create_backup("job-1", FILES)
        assert exc.value.operation == "create"
        assert not exc.value.recoverable

    def test_restore_missing(self, manager):
        with pytest.raises(BackupError, match="No backup found for job ghost"):
            manager.restore_backup("ghost")

    def test_restore_missing_file(self, manager):
        manager.create_backup("job-1", FILES)
        with pytest.raises(BackupError, match="File src/nope.js not found in backup job-1"):
            manager.restore_file("job-1", "src/nope.js")

    def test_cleanup_is_idempotent(self, manager):
        manager.create_backup("job-1", FILES)
        manager.cleanup_backup("job-1")
        manager.cleanup_backup("job-1")
        assert not manager.has_backup("job-1")
        assert manager.get_backup_info("job-1") is None

    def test_oldest_backups_are_evicted(self, manager):
        for i in range(5):
            manager.create_backup(f"job-{i}", FILES)
        assert [b["job_id"] for b in manager.list_backups()] == ["job-4", "job-3", "job-2"]
        assert not manager.has_backup("job-0")

    def test_eviction_ties_break_by_creation_order(self):
        fixed = datetime(2024, 1, 1, tzinfo=timezone.utc)
        manager = BackupManager(max_backups=1, clock=lambda: fixed)
        manager.create_backup("first", FILES)
        manager.create_backup("second", FILES)
        assert [b["job_id"] for b in manager.list_backups()] == ["second"]

    def test_clear_all(self, manager):
        manager.create_backup("job-1", FILES)
        manager.create_backup("job-2", FILES)
        manager.clear_all_backups()
        assert manager.list_backups() == []

    def test_concurrent_jobs_do_not_interfere(self):
        manager = BackupManager(max_backups=100)

        def worker(i):
            manager.create_backup(f"job-{i}", {f"f{i}.js": str(i)})

        threads = [threading.Thread(target=worker, args=(i,)) for i in range(20)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()
        assert len(manager.list_backups()) == 20
        assert manager.restore_backup("job-7") == {"f7.js": "7"}


class TestBackupTransaction:
    def test_commit_drops_snapshot(self, manager):
        tx = BackupTransaction(manager, "job-1")
        tx.begin(FILES)
        tx.commit()
        assert not manager.has_backup("job-1")
        with pytest.raises(TransactionError, match="Transaction already committed"):
            tx.commit()
        with pytest.raises(TransactionError, match="Cannot rollback after commit"):
            tx.rollback()

    def test_rollback_returns_originals(self, manager):
        tx = create_backup_transaction(manager, "job-1")
        tx.begin(FILES)
        assert tx.rollback() == FILES
        with pytest.raises(TransactionError, match="Transaction already rolled back"):
            tx.rollback()
        with pytest.raises(TransactionError, match="Cannot commit after rollback"):
            tx.commit()

    def test_context_manager_rolls_back_on_error(self, manager):
        tx = BackupTransaction(manager, "job-1")
        with pytest.raises(OSError):
            with tx:
                tx.begin(FILES)
                raise OSError("disk full")
        assert tx.restored == FILES
        assert tx.is_complete

    def test_context_manager_commits_on_success(self, manager):
        with BackupTransaction(manager, "job-1") as tx:
            tx.begin(FILES)
        assert tx.is_complete
        assert not manager.has_backup("job-1")

    def test_error_before_begin_propagates_without_rollback(self, manager):
        tx = BackupTransaction(manager, "job-1")
        with pytest.raises(ValueError):
            with tx:
                raise ValueError("early")
        assert tx.restored is None
        assert not tx.is_complete
