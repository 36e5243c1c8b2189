"""Shared constants for Stackloom.

Defaults used when no configuration overrides them.  The confidence
thresholds are contractual: downstream consumers of transform results
depend on the exact values.
"""

# =============================================================================
# Confidence & Review
# =============================================================================

# Results below this confidence always require manual review
REVIEW_THRESHOLD = 70

# Batch statistics: "successful" is strictly above, "error" strictly below
SUCCESS_THRESHOLD = 70
ERROR_THRESHOLD = 50

# Validation score weights (out of 100)
SYNTAX_WEIGHT = 30
SEMANTIC_WEIGHT = 30
IMPORT_RESOLUTION_WEIGHT = 20
OLD_FRAMEWORK_WEIGHT = 10
CLEAN_VALIDATION_BONUS = 10

# Penalties
VIOLATION_PENALTY = 10
VIOLATION_PENALTY_CAP = 30
WARNING_PENALTY = 2
WARNING_PENALTY_CAP = 10
INVALID_PENALTY = 20
AST_ERROR_PENALTY = 5

# Blend of validation score and semantic-pass confidence
VALIDATION_BLEND = 0.6
SEMANTIC_BLEND = 0.4

# Semantic-pass confidence when the pass is not needed or not configured
SEMANTIC_SKIPPED_CONFIDENCE = 80

# Final confidence when the semantic pass fails and cannot be recovered
SEMANTIC_FAILED_CONFIDENCE = 40

# =============================================================================
# Semantic Equivalence
# =============================================================================

CONTROL_FLOW_TOLERANCE = 0.2
CONTROL_FLOW_MIN_DELTA = 1
UI_ELEMENT_TOLERANCE = 0.3
UI_ELEMENT_MIN_DELTA = 2

# =============================================================================
# Recovery
# =============================================================================

RETRY_MAX_ATTEMPTS = 3
RETRY_INITIAL_BACKOFF_MS = 1000
RETRY_MAX_BACKOFF_MS = 30000
RETRY_BACKOFF_MULTIPLIER = 2

# =============================================================================
# Batch & Backup
# =============================================================================

BATCH_SIZE = 5
MAX_BACKUPS = 10

# =============================================================================
# File classification
# =============================================================================

AST_EXTENSIONS = (".js", ".jsx", ".ts", ".tsx", ".mjs", ".cjs")
STYLE_EXTENSIONS = (".css", ".scss", ".sass")
PACKAGE_MANIFEST = "package.json"

# Identifiers whose presence calls for the semantic pass
LIFECYCLE_IDENTIFIERS = (
    "componentDidMount",
    "componentWillUnmount",
    "componentDidUpdate",
)
