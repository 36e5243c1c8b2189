# Lazy imports to avoid triggering the full dependency chain.
# This allows targeted imports like `from stackloom.core.ast_parser import parse_source`
# without pulling in llama_index, backoff, etc.

__all__ = [
    # Syntax layer
    "parse_source",
    "detect_language",
    "register_grammar",
    # Migration pipeline
    "HybridTransformationEngine",
    "MigrationSpecification",
    "FileRecord",
    "TransformResult",
    "BatchResult",
    "BackupManager",
    "BackupTransaction",
    "RecoveryManager",
    "LaneRegistry",
    "create_default_registry",
]

_IMPORT_MAP = {
    "parse_source": ".ast_parser",
    "detect_language": ".ast_parser",
    "register_grammar": ".ast_parser",
    "HybridTransformationEngine": ".migration.engine",
    "MigrationSpecification": ".migration.models",
    "FileRecord": ".migration.models",
    "TransformResult": ".migration.models",
    "BatchResult": ".migration.models",
    "BackupManager": ".migration.backup",
    "BackupTransaction": ".migration.backup",
    "RecoveryManager": ".migration.recovery",
    "LaneRegistry": ".migration.lanes",
    "create_default_registry": ".migration.lanes",
}


def __getattr__(name):
    if name in _IMPORT_MAP:
        import importlib
        module = importlib.import_module(_IMPORT_MAP[name], __package__)
        return getattr(module, name)
    raise AttributeError(f"module 'stackloom.core' has no attribute {name}")
