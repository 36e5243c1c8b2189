# Stackloom migration pipeline
# Per file: AST pass -> semantic pass -> validation -> scoring
# Per batch: structure planning, grouped transforms, style merge, scaffolds

from .backup import BackupManager, BackupTransaction, create_backup_transaction
from .engine import HybridTransformationEngine
from .equivalence import SemanticEquivalenceChecker
from .errors import MigrationError
from .models import BatchResult, FileRecord, MigrationSpecification, TransformResult
from .recovery import RecoveryManager, create_default_recovery_manager
from .rule_engine import RuleEngine

__all__ = [
    "HybridTransformationEngine",
    "RuleEngine",
    "SemanticEquivalenceChecker",
    "RecoveryManager",
    "create_default_recovery_manager",
    "BackupManager",
    "BackupTransaction",
    "create_backup_transaction",
    "MigrationError",
    "MigrationSpecification",
    "FileRecord",
    "TransformResult",
    "BatchResult",
]
