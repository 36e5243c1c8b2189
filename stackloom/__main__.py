import argparse
import asyncio
import logging
import os
import sys
import uuid
from pathlib import Path
from typing import Dict, List

from .core.migration.backup import BackupManager, BackupTransaction
from .core.migration.engine import HybridTransformationEngine
from .core.migration.errors import MigrationError, handle_migration_error
from .core.migration.events import LoggingEventSink
from .core.migration.lanes import create_default_registry
from .core.migration.models import BatchResult, FileRecord, MigrationSpecification
from .core.migration.semantic_pass import create_semantic_transformer
from .setting import load_settings

# Directories never read from a source tree
SKIPPED_DIRS = {".git", "node_modules", ".next", "build", "dist", "coverage", "__pycache__"}


def setup_logging(log_level: str = "INFO") -> None:
    """Configure application logging."""
    logging.basicConfig(
        level=getattr(logging, log_level.upper()),
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        handlers=[
            logging.StreamHandler(sys.stdout)
        ]
    )
    # Reduce noise from third-party libraries
    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("httpcore").setLevel(logging.WARNING)
    logging.getLogger("openai").setLevel(logging.WARNING)


logger = logging.getLogger(__name__)


def collect_files(root: Path) -> List[FileRecord]:
    """Read every text file below ``root`` as a FileRecord with a relative path."""
    records: List[FileRecord] = []
    for dirpath, dirnames, filenames in os.walk(root):
        dirnames[:] = sorted(d for d in dirnames if d not in SKIPPED_DIRS)
        for name in sorted(filenames):
            path = Path(dirpath) / name
            try:
                content = path.read_text(encoding="utf-8")
            except UnicodeDecodeError:
                logger.debug(f"Skipping binary file {path}")
                continue
            records.append(FileRecord(path=path.relative_to(root).as_posix(), content=content))
    return records


def write_results(root: Path, batch: BatchResult, written: List[Path]) -> None:
    """Write every result under ``root``, appending each new file to ``written``."""
    for rel_path, result in batch.results.items():
        target = root / rel_path
        if not target.exists():
            written.append(target)
        target.parent.mkdir(parents=True, exist_ok=True)
        target.write_text(result.code, encoding="utf-8")


def remove_relocated(root: Path, batch: BatchResult, originals: Dict[str, str]) -> None:
    """Delete source files that moved elsewhere or were planned for deletion."""
    for rel_path in originals:
        if rel_path in batch.results:
            continue
        path = root / rel_path
        if path.exists():
            path.unlink()


def restore(root: Path, contents: Dict[str, str], written: List[Path]) -> None:
    for path in written:
        if path.exists():
            path.unlink()
    for rel_path, content in contents.items():
        target = root / rel_path
        target.parent.mkdir(parents=True, exist_ok=True)
        target.write_text(content, encoding="utf-8")


def main():
    """Main entry point for Stackloom."""
    parser = argparse.ArgumentParser(description="Stackloom - migrate a repository to another web stack")
    parser.add_argument("source", type=Path, help="Repository root to migrate")
    parser.add_argument("--spec", type=Path, required=True, help="Migration specification (YAML or JSON)")
    output = parser.add_mutually_exclusive_group()
    output.add_argument("--output", type=Path, help="Directory that receives the migrated files")
    output.add_argument("--in-place", action="store_true", help="Rewrite the source tree (rolled back on failure)")
    parser.add_argument("--job-id", type=str, default=None, help="Job identifier for logs and backups")
    parser.add_argument("--report", type=Path, default=None, help="Write the batch result as JSON")
    parser.add_argument("--config", type=Path, default=None, help="Path to stackloom.yaml")
    parser.add_argument(
        "--log-level",
        type=str,
        default=None,
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        help="Logging level"
    )
    args = parser.parse_args()

    settings = load_settings(args.config)
    setup_logging(args.log_level or settings.log_level)

    try:
        spec = MigrationSpecification.from_file(args.spec)
    except (OSError, MigrationError) as e:
        details = handle_migration_error(e)
        logger.error(f"Cannot load migration specification: {details.message}")
        return 2

    root = args.source.resolve()
    if not root.is_dir():
        logger.error(f"Source directory not found: {root}")
        return 2

    job_id = args.job_id or uuid.uuid4().hex[:12]
    registry = create_default_registry()
    engine = HybridTransformationEngine(
        lane_registry=registry,
        semantic_transformer=create_semantic_transformer(settings.semantic, registry),
        backup_manager=BackupManager(max_backups=settings.backup.max_backups),
        event_sink=LoggingEventSink(),
        settings=settings,
    )

    files = collect_files(root)
    logger.info(
        f"Job {job_id}: migrating {len(files)} file(s) from "
        f"{spec.source.framework} to {spec.target.framework}"
    )

    def on_progress(stage: str, current: int, total: int, message: str) -> None:
        logger.debug(f"[{stage}] {current}/{total} {message}")

    try:
        batch = asyncio.run(engine.transform_batch(files, spec, on_progress=on_progress, job_id=job_id))
    except MigrationError as e:
        logger.error(f"Migration aborted: {handle_migration_error(e).message}")
        return 1

    if args.in_place:
        originals = {f.path: f.content for f in files}
        written: List[Path] = []
        transaction = BackupTransaction(engine.backup_manager, job_id)
        transaction.begin(files, {
            "source_framework": spec.source.framework,
            "target_framework": spec.target.framework,
        })
        try:
            with transaction:
                write_results(root, batch, written)
                remove_relocated(root, batch, originals)
        except OSError as e:
            logger.error(f"Writing results failed, restoring {len(originals)} file(s): {e}")
            restore(root, transaction.restored or originals, written)
            return 1
    elif args.output:
        args.output.mkdir(parents=True, exist_ok=True)
        write_results(args.output.resolve(), batch, [])

    if args.report:
        args.report.write_text(batch.to_json(), encoding="utf-8")

    stats = batch.statistics
    logger.info(
        f"Job {job_id}: {stats.total_files} result(s), {stats.successful_transformations} confident, "
        f"{stats.requires_review} need review, average confidence {stats.average_confidence}"
    )
    return 0


if __name__ == "__main__":
    sys.exit(main())
