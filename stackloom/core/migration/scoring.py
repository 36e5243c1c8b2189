"""Confidence and review scoring.

Pure functions.  The review threshold (70) and the batch statistics
thresholds (70 / 50) are part of the result contract.
"""

from decimal import ROUND_HALF_UP, Decimal
from typing import Iterable, List, Optional

from ..constants import (
    AST_ERROR_PENALTY,
    CLEAN_VALIDATION_BONUS,
    ERROR_THRESHOLD,
    IMPORT_RESOLUTION_WEIGHT,
    INVALID_PENALTY,
    OLD_FRAMEWORK_WEIGHT,
    REVIEW_THRESHOLD,
    SEMANTIC_BLEND,
    SEMANTIC_WEIGHT,
    SUCCESS_THRESHOLD,
    SYNTAX_WEIGHT,
    VALIDATION_BLEND,
    VIOLATION_PENALTY,
    VIOLATION_PENALTY_CAP,
    WARNING_PENALTY,
    WARNING_PENALTY_CAP,
)
from .models import BatchStatistics, TransformResult, Violation


def _clamp(value: float) -> int:
    return int(max(0, min(100, value)))


def round_half_up(value: float) -> int:
    """Round .5 away from zero (``round()`` would use banker's rounding)."""
    return int(Decimal(str(value)).quantize(Decimal("1"), rounding=ROUND_HALF_UP))


def calculate_validation_confidence(
    syntax_valid: bool,
    semantic_equivalent: bool,
    imports_resolved: bool,
    old_framework_removed: bool,
    rule_violations: int,
    warnings: int,
    error_violations: Optional[int] = None,
) -> int:
    """Score validation outcomes on a 0-100 scale.

    Args:
        syntax_valid: The transformed code parses
        semantic_equivalent: The equivalence checker accepted the rewrite
        imports_resolved: Every import is valid for the target framework
        old_framework_removed: No reference to the source framework remains
        rule_violations: Number of rule violations (any severity); only
            decides the clean-validation bonus
        warnings: Number of validation warnings
        error_violations: Number of error-severity violations, the ones
            penalized; defaults to ``rule_violations``

    Returns:
        Integer score in [0, 100]
    """
    score = 0
    if syntax_valid:
        score += SYNTAX_WEIGHT
    if semantic_equivalent:
        score += SEMANTIC_WEIGHT
    if imports_resolved:
        score += IMPORT_RESOLUTION_WEIGHT
    if old_framework_removed:
        score += OLD_FRAMEWORK_WEIGHT
    if rule_violations == 0 and warnings == 0:
        score += CLEAN_VALIDATION_BONUS

    if error_violations is None:
        error_violations = rule_violations
    score -= min(VIOLATION_PENALTY_CAP, VIOLATION_PENALTY * error_violations)
    score -= min(WARNING_PENALTY_CAP, WARNING_PENALTY * warnings)
    return _clamp(score)


def calculate_confidence(
    validation_score: int,
    valid: bool,
    semantic_confidence: int,
    ast_error_count: int = 0,
) -> int:
    """Blend the validation score with the semantic-pass confidence."""
    base = validation_score
    if not valid:
        base -= INVALID_PENALTY
    base -= AST_ERROR_PENALTY * ast_error_count
    blended = VALIDATION_BLEND * base + SEMANTIC_BLEND * semantic_confidence
    return _clamp(round_half_up(blended))


def requires_manual_review(
    confidence: int,
    valid: bool,
    semantic_review: bool,
    violations: Iterable[Violation] = (),
    threshold: int = REVIEW_THRESHOLD,
) -> bool:
    if confidence < threshold or not valid or semantic_review:
        return True
    return any(v.severity == "error" for v in violations)


def risk_score(confidence: int) -> int:
    return 100 - confidence


def get_transformation_statistics(results: Iterable[TransformResult]) -> BatchStatistics:
    """Aggregate per-file results into batch statistics."""
    results: List[TransformResult] = list(results)
    total = len(results)
    if total == 0:
        return BatchStatistics()

    confidences = [r.confidence for r in results]
    return BatchStatistics(
        total_files=total,
        successful_transformations=sum(1 for c in confidences if c > SUCCESS_THRESHOLD),
        requires_review=sum(1 for r in results if r.requires_review),
        average_confidence=round_half_up(sum(confidences) / total),
        total_warnings=sum(len(r.warnings) for r in results),
        files_with_errors=sum(1 for c in confidences if c < ERROR_THRESHOLD),
    )
