"""Hybrid transformation engine: the per-file and batch orchestrator.

Per file::

    context -> AST pass (recovery on failure) -> semantic pass if needed
    (recovery on failure) -> validation -> diff -> new path -> metadata
    -> confidence & review

Per batch: structure planning once, groups of ``batch.size`` files run
concurrently with ``asyncio.gather``, then style-sheet merging, scaffold
generation and the aggregate style config.  A batch always completes;
files that fail become error results that keep their original content.
"""

import asyncio
import difflib
import logging
import re
from typing import Awaitable, Callable, Dict, List, Optional, Sequence, Tuple

from ...setting import StackloomSettings, get_settings
from ..ast_parser import ParseResult, parse_source
from ..constants import (
    AST_EXTENSIONS,
    LIFECYCLE_IDENTIFIERS,
    PACKAGE_MANIFEST,
    STYLE_EXTENSIONS,
)
from . import scoring
from .ast_pass import AstTransformationPass, summarize_audit
from .backup import BackupManager
from .context_builder import build_context, extract_imports, package_name
from .equivalence import SemanticEquivalenceChecker
from .errors import (
    MigrationError,
    OrchestrationError,
    TransformationError,
    handle_migration_error,
    log_migration_event,
)
from .events import EventSink, complete_event, error_event, progress_event
from .lanes import LaneRegistry, create_default_registry, route_segment
from .models import (
    AstPassResult,
    BatchResult,
    BatchStatistics,
    FileRecord,
    FileStructureChange,
    MigrationSpecification,
    SemanticPassResult,
    TransformationContext,
    TransformMetadata,
    TransformResult,
    ValidationOutcome,
)
from .recovery import RecoveryContext, RecoveryManager, create_default_recovery_manager
from .rule_engine import RuleEngine, RuleSet
from .semantic_pass import SemanticTransformer
from .structure import DefaultStructurePlanner, StructurePlanner, merge_style_sheets

logger = logging.getLogger(__name__)

ContentFetcher = Callable[[str], Awaitable[str]]
ProgressCallback = Callable[[str, int, int, str], None]

SEMANTIC_UNAVAILABLE_WARNING = "AI transformations skipped: No semantic transformer configured"
SYNTAX_INVALID_WARNING = "Syntax validation failed for target language"

# Build dependencies introduced by the generated style configuration
STYLE_TOOLCHAIN_DEPENDENCIES = ("tailwindcss", "autoprefixer", "postcss")

_WORD_SPLIT_RE = re.compile(r"[-_\s]+")
_CAMEL_BOUNDARY_RE = re.compile(r"([a-z0-9])([A-Z])")


# ── Path helpers ─────────────────────────────────────────────────────


def is_ast_capable(file_path: str) -> bool:
    return file_path.lower().endswith(AST_EXTENSIONS)


def is_style_sheet(file_path: str) -> bool:
    return file_path.lower().endswith(STYLE_EXTENSIONS)


def to_pascal_case(name: str) -> str:
    """``"user-profile"`` -> ``"UserProfile"``; inner casing is kept."""
    return "".join(word[:1].upper() + word[1:] for word in _WORD_SPLIT_RE.split(name) if word)


def to_camel_case(name: str) -> str:
    pascal = to_pascal_case(name)
    return pascal[:1].lower() + pascal[1:]


def to_kebab_case(name: str) -> str:
    return _WORD_SPLIT_RE.sub("-", _CAMEL_BOUNDARY_RE.sub(r"\1-\2", name)).lower()


_NAMING_CONVENTIONS = {
    "PascalCase": to_pascal_case,
    "camelCase": to_camel_case,
    "kebab-case": to_kebab_case,
}


def determine_new_file_path(original_path: str, spec: MigrationSpecification) -> str:
    """Target path of a file when no structure plan provides one.

    Script files are placed by directory role and renamed according to
    the target naming convention and extension.  Anything else keeps its
    path.
    """
    if not is_ast_capable(original_path):
        return original_path

    structure = spec.target.file_structure
    conventions = spec.target.component_conventions
    directory, _, file_name = original_path.rpartition("/")
    stem = file_name.rsplit(".", 1)[0]
    marked = "/" + original_path

    if "/pages/" in marked or "/routes/" in marked:
        directory = structure.pages
    elif "/components/" in marked:
        directory = structure.components
    elif "/layouts/" in marked:
        directory = structure.layouts
    elif "/api/" in marked:
        directory = structure.api

    convert = _NAMING_CONVENTIONS.get(conventions.naming_convention)
    new_name = (convert(stem) if convert else stem) + conventions.file_extension
    return f"{directory}/{new_name}" if directory else new_name


def generate_diff(original: str, transformed: str) -> str:
    return "".join(
        difflib.unified_diff(
            original.splitlines(keepends=True),
            transformed.splitlines(keepends=True),
            fromfile="original",
            tofile="transformed",
        )
    )


def count_diff_lines(diff: str) -> Tuple[int, int]:
    """(added, removed) line counts of a unified diff."""
    added = removed = 0
    for line in diff.splitlines():
        if line.startswith("+") and not line.startswith("+++"):
            added += 1
        elif line.startswith("-") and not line.startswith("---"):
            removed += 1
    return added, removed


def needs_semantic_pass(code: str, context: TransformationContext) -> bool:
    """Manifests, components, pages and lifecycle-heavy code go to the semantic pass."""
    if context.file_path.endswith(PACKAGE_MANIFEST):
        return True
    if context.file_type in ("component", "page"):
        return True
    return any(identifier in code for identifier in LIFECYCLE_IDENTIFIERS)


def _package_names(code: str) -> List[str]:
    names: List[str] = []
    for specifier in extract_imports(code):
        name = package_name(specifier)
        if name and name not in names:
            names.append(name)
    return names


# ── Engine ───────────────────────────────────────────────────────────


class HybridTransformationEngine:
    """Orchestrates deterministic and semantic passes for files and batches.

    Every collaborator is injectable; omitted ones are built from
    ``settings`` and a shared lane registry.

    Args:
        ast_pass: Deterministic tree rewriter
        rule_engine: Rule validation
        recovery_manager: Failure recovery for both passes
        backup_manager: Snapshot store used by callers around a batch
        equivalence_checker: Control-flow comparison
        semantic_transformer: Optional LLM-assisted pass
        structure_planner: Batch-level file structure planning
        lane_registry: Framework lanes and profiles
        content_fetcher: ``async (path) -> str`` for records without content
        event_sink: Receives progress/complete/error events per job
        settings: Stackloom settings; defaults to the process settings
    """

    def __init__(
        self,
        ast_pass: Optional[AstTransformationPass] = None,
        rule_engine: Optional[RuleEngine] = None,
        recovery_manager: Optional[RecoveryManager] = None,
        backup_manager: Optional[BackupManager] = None,
        equivalence_checker: Optional[SemanticEquivalenceChecker] = None,
        semantic_transformer: Optional[SemanticTransformer] = None,
        structure_planner: Optional[StructurePlanner] = None,
        lane_registry: Optional[LaneRegistry] = None,
        content_fetcher: Optional[ContentFetcher] = None,
        event_sink: Optional[EventSink] = None,
        settings: Optional[StackloomSettings] = None,
    ):
        self.settings = settings or get_settings()
        self.lane_registry = lane_registry or create_default_registry()
        self.ast_pass = ast_pass or AstTransformationPass(self.lane_registry)
        self.rule_engine = rule_engine or RuleEngine(self.lane_registry)
        self.recovery_manager = recovery_manager or create_default_recovery_manager(self.settings.recovery)
        self.backup_manager = backup_manager or BackupManager(max_backups=self.settings.backup.max_backups)
        self.equivalence_checker = equivalence_checker or SemanticEquivalenceChecker.from_settings(
            self.settings.equivalence
        )
        self.semantic_transformer = semantic_transformer
        self.structure_planner = structure_planner or DefaultStructurePlanner(self.lane_registry)
        self.content_fetcher = content_fetcher
        self.event_sink = event_sink

    # ── Single file ───────────────────────────────────────────────

    async def transform(
        self,
        file: FileRecord,
        spec: MigrationSpecification,
        new_file_path: Optional[str] = None,
        job_id: Optional[str] = None,
    ) -> TransformResult:
        """Transform one file.  Never raises; failures become error results."""
        rule_set = self.rule_engine.compile_rules(spec)
        return await self._transform_file(file, spec, new_file_path, job_id, rule_set)

    async def _transform_file(
        self,
        file: FileRecord,
        spec: MigrationSpecification,
        new_file_path: Optional[str],
        job_id: Optional[str],
        rule_set: RuleSet,
    ) -> TransformResult:
        original = file.content or ""
        try:
            original = await self._content_of(file)
            log_migration_event("transformation:start", {
                "file_path": file.path,
                "source_framework": spec.source.framework,
                "target_framework": spec.target.framework,
            })

            ast_capable = is_ast_capable(file.path)
            context = build_context(file.path, original, spec.source.language)
            recovery_context = RecoveryContext(
                operation="transform",
                job_id=job_id,
                file_path=file.path,
                metadata={"spec_version": spec.metadata.version},
            )

            if ast_capable:
                ast_result = await self._run_ast_pass(original, spec, context, recovery_context)
            else:
                ast_result = AstPassResult(code=original)

            semantic_result, semantic_failed = await self._run_semantic_pass(
                ast_result.code, spec, context, recovery_context, ast_capable
            )
            transformed = semantic_result.code

            target_path = new_file_path or determine_new_file_path(file.path, spec)
            validation = self.validate_transformation(
                original, transformed, spec, file.path, target_path, ast_capable, rule_set
            )
            diff = generate_diff(original, transformed)

            if semantic_failed:
                confidence = self.settings.scoring.semantic_failed_confidence
            else:
                confidence = scoring.calculate_confidence(
                    validation.confidence_score,
                    validation.valid,
                    semantic_result.confidence,
                    len(ast_result.errors),
                )
            review = semantic_failed or scoring.requires_manual_review(
                confidence,
                validation.valid,
                semantic_result.requires_review,
                validation.violations,
                threshold=self.settings.scoring.review_threshold,
            )

            metadata = self._build_metadata(
                file.path, original, transformed, target_path, spec, context,
                ast_result.errors, semantic_result.warnings, diff,
            )
            metadata.confidence_score = confidence
            metadata.risk_score = scoring.risk_score(confidence)
            metadata.requires_manual_review = review

            warnings = ast_result.errors + semantic_result.warnings + validation.warnings
            log_migration_event("transformation:complete", {
                "file_path": file.path,
                "confidence": confidence,
                "requires_review": review,
                "warning_count": len(warnings),
            })
            return TransformResult(
                code=transformed,
                original_code=original,
                file_path=file.path,
                new_file_path=target_path,
                diff=diff,
                metadata=metadata,
                warnings=warnings,
                success=True,
            )
        except Exception as e:
            log_migration_event("transformation:failed", {
                "file_path": file.path,
                "error": str(e),
            }, level=logging.ERROR)
            details = handle_migration_error(e)
            return self._error_result(
                file.path,
                original,
                spec,
                note=f"Transformation failed: {details.message}",
                warning=f"Critical error: {details.message}",
            )

    async def _content_of(self, file: FileRecord) -> str:
        if file.content is not None:
            return file.content
        if self.content_fetcher is None:
            raise OrchestrationError(
                f"No content for {file.path} and no content fetcher configured", phase="fetch"
            )
        return await self.content_fetcher(file.path)

    async def _run_ast_pass(
        self,
        code: str,
        spec: MigrationSpecification,
        context: TransformationContext,
        recovery_context: RecoveryContext,
    ) -> AstPassResult:
        try:
            return self.ast_pass.transform(code, spec, context)
        except Exception as e:
            error = e if isinstance(e, MigrationError) else TransformationError(
                f"AST transformation failed: {e}", file_path=context.file_path
            )
            log_migration_event("transformation:ast:error", {
                "file_path": context.file_path,
                "error": str(e),
            }, level=logging.WARNING)

            result = await self.recovery_manager.recover(
                error,
                RecoveryContext(
                    operation="ast-transform",
                    job_id=recovery_context.job_id,
                    file_path=context.file_path,
                    metadata=dict(recovery_context.metadata),
                ),
                lambda: self.ast_pass.transform(code, spec, context),
            )
            if result.success and isinstance(result.data, AstPassResult):
                log_migration_event("transformation:ast:recovered", {
                    "file_path": context.file_path,
                    "strategy": result.strategy,
                    "attempts": result.attempts,
                })
                return result.data

            if result.success:
                return AstPassResult(code=code, errors=[f"AST transformation skipped: {error.message}"])
            return AstPassResult(
                code=code,
                errors=[f"AST transformation failed and recovery unsuccessful: {error.message}"],
            )

    async def _run_semantic_pass(
        self,
        code: str,
        spec: MigrationSpecification,
        context: TransformationContext,
        recovery_context: RecoveryContext,
        ast_capable: bool,
    ) -> Tuple[SemanticPassResult, bool]:
        """Run the semantic pass when applicable.

        Returns:
            ``(result, failed)``; ``failed`` is True when the pass raised and
            recovery could not produce a result
        """
        skipped = self.settings.scoring.semantic_skipped_confidence
        transformer = self.semantic_transformer
        available = transformer is not None and transformer.is_available()
        if not available:
            return SemanticPassResult(code=code, confidence=skipped, warnings=[SEMANTIC_UNAVAILABLE_WARNING]), False

        is_manifest = context.file_path.endswith(PACKAGE_MANIFEST)
        if not (ast_capable or is_manifest) or not needs_semantic_pass(code, context):
            return SemanticPassResult(code=code, confidence=skipped), False

        try:
            return await transformer.transform(code, spec, context), False
        except Exception as e:
            log_migration_event("transformation:semantic:error", {
                "file_path": context.file_path,
                "error": str(e),
            }, level=logging.WARNING)
            result = await self.recovery_manager.recover(
                e,
                RecoveryContext(
                    operation="semantic-transform",
                    job_id=recovery_context.job_id,
                    file_path=context.file_path,
                    metadata=dict(recovery_context.metadata),
                ),
                lambda: transformer.transform(code, spec, context),
            )
            if result.success and isinstance(result.data, SemanticPassResult):
                log_migration_event("transformation:semantic:recovered", {
                    "file_path": context.file_path,
                    "strategy": result.strategy,
                    "attempts": result.attempts,
                })
                return result.data, False

            message = e.message if isinstance(e, MigrationError) else str(e)
            logger.warning(f"Semantic pass failed for {context.file_path}; keeping the AST result")
            return SemanticPassResult(
                code=code,
                confidence=self.settings.scoring.semantic_failed_confidence,
                warnings=[f"AI transformation failed: {message}. Using AST-only result."],
                requires_review=True,
            ), True

    # ── Validation ────────────────────────────────────────────────

    def validate_transformation(
        self,
        original: str,
        transformed: str,
        spec: MigrationSpecification,
        file_path: str,
        new_file_path: Optional[str] = None,
        ast_capable: Optional[bool] = None,
        rule_set: Optional[RuleSet] = None,
    ) -> ValidationOutcome:
        """Validate a rewrite.

        Rule, syntax, equivalence and import checks apply to script files
        only; the old-framework reference check applies to every file.
        Problems are returned as data, never raised.
        """
        if ast_capable is None:
            ast_capable = is_ast_capable(file_path)
        target_path = new_file_path if new_file_path and is_ast_capable(new_file_path) else file_path
        outcome = ValidationOutcome(valid=True)

        rules_valid = True
        unresolved: List[str] = []
        if ast_capable:
            if rule_set is None:
                rule_set = self.rule_engine.compile_rules(spec)
            rule_result = self.rule_engine.validate_against_rules(transformed, target_path, rule_set)
            rules_valid = rule_result.valid
            outcome.violations.extend(rule_result.violations)
            outcome.warnings.extend(rule_result.warnings)

            parsed, parse_message = self._parse_target(transformed, spec, target_path)
            outcome.syntax_valid = parse_message is None
            if not outcome.syntax_valid:
                outcome.warnings.append(SYNTAX_INVALID_WARNING)

            equivalence = self.equivalence_checker.compare(
                original,
                transformed,
                spec.source.language,
                spec.target.language,
                file_path,
                target_path,
            )
            outcome.semantic_equivalence = equivalence.equivalent
            if not equivalence.equivalent:
                outcome.warnings.append(
                    f"Semantic equivalence check: {equivalence.reason or 'Control flow differs'}"
                )

            if parsed is None:
                unresolved = [f"Import check failed: {parse_message}"]
            else:
                unresolved = self.check_imports_resolved(parsed, spec)
            outcome.imports_resolved = not unresolved
            if unresolved:
                outcome.warnings.append(f"Import resolution issues: {', '.join(unresolved)}")

        references = self.check_old_framework_references(transformed, spec)
        outcome.old_framework_references_removed = not references
        if references:
            outcome.warnings.append(f"Old framework references found: {', '.join(references)}")

        outcome.confidence_score = scoring.calculate_validation_confidence(
            syntax_valid=outcome.syntax_valid,
            semantic_equivalent=outcome.semantic_equivalence,
            imports_resolved=outcome.imports_resolved,
            old_framework_removed=outcome.old_framework_references_removed,
            rule_violations=len(outcome.violations),
            warnings=len(outcome.warnings),
            error_violations=sum(1 for v in outcome.violations if v.severity == "error"),
        )
        outcome.valid = (
            rules_valid
            and outcome.syntax_valid
            and not any(v.severity == "error" for v in outcome.violations)
        )

        if not outcome.valid or outcome.warnings:
            logger.warning(
                f"Validation for {file_path}: valid={outcome.valid}, "
                f"violations={len(outcome.violations)}, warnings={len(outcome.warnings)}, "
                f"score={outcome.confidence_score}"
            )
        return outcome

    @staticmethod
    def _parse_target(
        code: str, spec: MigrationSpecification, file_path: str
    ) -> Tuple[Optional[ParseResult], Optional[str]]:
        try:
            parsed = parse_source(code, file_path, spec.target.language)
        except ValueError as e:
            return None, str(e)
        for error in parsed.errors:
            if error.severity == "error":
                return None, f"line {error.line}: {error.message}"
        return parsed, None

    def check_imports_resolved(self, parsed: ParseResult, spec: MigrationSpecification) -> List[str]:
        """Imports that survived from the source framework or are foreign to the target."""
        source_profile = self.lane_registry.get_profile(spec.source.framework)
        target_profile = self.lane_registry.get_profile(spec.target.framework)
        alias_prefixes = ("@/",) + tuple(target_profile.path_aliases.values())

        unresolved: List[str] = []
        for decl in parsed.imports:
            if decl.kind not in ("static", "reexport"):
                continue
            source = decl.source
            if source.startswith(source_profile.legacy_packages):
                unresolved.append(f"{source} (old framework import not transformed)")
            if source.startswith(".") or source.startswith(alias_prefixes):
                continue
            prefixes = target_profile.valid_import_prefixes
            if prefixes and not source.startswith(prefixes):
                unresolved.append(f"{source} (invalid for target framework)")
        return unresolved

    def check_old_framework_references(self, code: str, spec: MigrationSpecification) -> List[str]:
        """Leftover source-framework patterns and ``must_remove`` items found in ``code``."""
        references: List[str] = []
        for pattern in self.lane_registry.get_profile(spec.source.framework).reference_patterns:
            matches = re.findall(pattern, code)
            if matches:
                references.append(f"{pattern} (found {len(matches)} occurrence(s))")
        for item in spec.rules.must_remove:
            if item and item in code:
                references.append(f"{item} (should have been removed)")
        return references

    # ── Metadata ──────────────────────────────────────────────────

    def _build_metadata(
        self,
        file_path: str,
        original: str,
        transformed: str,
        new_file_path: str,
        spec: MigrationSpecification,
        context: TransformationContext,
        ast_errors: List[str],
        semantic_warnings: List[str],
        diff: str,
    ) -> TransformMetadata:
        before = _package_names(original)
        after = _package_names(transformed)
        added = [dep for dep in after if dep not in before]
        removed = [dep for dep in before if dep not in after]

        notes: List[str] = []
        if ast_errors:
            notes.append(f"AST transformations applied with {len(ast_errors)} warnings")
        else:
            notes.append("AST transformations applied successfully")
        if semantic_warnings:
            notes.append(f"AI transformations applied with {len(semantic_warnings)} warnings")
        if file_path != new_file_path:
            notes.append(f"File relocated from {file_path} to {new_file_path}")
        if added:
            notes.append(f"Added {len(added)} new dependencies")
        if removed:
            notes.append(f"Removed {len(removed)} old dependencies")
        if spec.source.framework != spec.target.framework:
            notes.append(f"Migrated from {spec.source.framework} to {spec.target.framework}")

        structure_change = None
        if file_path != new_file_path:
            marked = "/" + file_path
            is_route = "/pages/" in marked or "/app/" in marked
            structure_change = {
                "action": "move",
                "original_path": file_path,
                "is_route_file": is_route,
                "route_segment": route_segment(file_path) if is_route else None,
            }

        import_changes, rewrites = summarize_audit(context)
        lines_added, lines_removed = count_diff_lines(diff)
        return TransformMetadata(
            files_modified=1 if transformed != original else 0,
            lines_added=lines_added,
            lines_removed=lines_removed,
            transformations_applied=import_changes + rewrites,
            notes=notes,
            new_file_path=new_file_path,
            file_type=context.file_type,
            language=spec.target.language,
            framework=spec.target.framework,
            dependencies_added=added,
            dependencies_removed=removed,
            structure_change=structure_change,
        )

    @staticmethod
    def _error_result(
        file_path: str,
        original: str,
        spec: MigrationSpecification,
        note: str,
        warning: str,
    ) -> TransformResult:
        return TransformResult(
            code=original,
            original_code=original,
            file_path=file_path,
            new_file_path=file_path,
            diff="",
            metadata=TransformMetadata(
                files_modified=0,
                confidence_score=0,
                risk_score=100,
                requires_manual_review=True,
                notes=[note],
                new_file_path=file_path,
                file_type="module",
                language=spec.source.language,
                framework=spec.source.framework,
            ),
            warnings=[warning],
            success=False,
        )

    @staticmethod
    def _generated_result(
        path: str,
        code: str,
        spec: MigrationSpecification,
        file_type: str,
        notes: List[str],
        original_code: str = "",
        dependencies_added: Sequence[str] = (),
        structure_change: Optional[Dict] = None,
        language: Optional[str] = None,
    ) -> TransformResult:
        return TransformResult(
            code=code,
            original_code=original_code,
            file_path=path,
            new_file_path=path,
            diff="",
            metadata=TransformMetadata(
                files_modified=1,
                confidence_score=100,
                risk_score=0,
                requires_manual_review=False,
                notes=notes,
                new_file_path=path,
                file_type=file_type,
                language=language or spec.target.language,
                framework=spec.target.framework,
                dependencies_added=list(dependencies_added),
                structure_change=structure_change,
            ),
            warnings=[],
            success=True,
        )

    # ── Batch ─────────────────────────────────────────────────────

    async def transform_batch(
        self,
        files: Sequence[FileRecord],
        spec: MigrationSpecification,
        on_progress: Optional[ProgressCallback] = None,
        job_id: Optional[str] = None,
    ) -> BatchResult:
        """Transform a repository's files.

        Args:
            files: Files to migrate; records without content are fetched
            spec: Migration specification
            on_progress: ``(stage, current, total, message)`` callback
            job_id: Job identifier for recovery context and events

        Returns:
            BatchResult keyed by final file path

        Raises:
            RuleSetError: If the migration rules are malformed
        """
        results: Dict[str, TransformResult] = {}

        def report(stage: str, current: int, total: int, message: str) -> None:
            if on_progress is not None:
                try:
                    on_progress(stage, current, total, message)
                except Exception as e:
                    logger.warning(f"Progress callback failed: {e}")
            self._emit(job_id, progress_event(
                job_id or "", message, stage=stage, current=current, total=total,
            ))

        def store(result: TransformResult, original_path: str) -> None:
            key = result.new_file_path or original_path
            if key in results:
                logger.warning(f"Result path collision on {key}; keeping {original_path} under its own path")
                key = original_path
            results[key] = result

        rule_set = self.rule_engine.compile_rules(spec)

        contents: Dict[str, str] = {}
        for file in files:
            try:
                contents[file.path] = await self._content_of(file)
            except Exception as e:
                details = handle_migration_error(e)
                store(self._error_result(
                    file.path, "", spec,
                    note=f"Batch transformation failed: {details.message}",
                    warning=f"Critical error in batch: {details.message}",
                ), file.path)

        report("planning", 0, len(contents), f"Planning structure for {len(contents)} file(s)")
        changes = self.structure_planner.plan_structure_changes(contents, spec)
        path_mapping = {c.original_path: c.new_path for c in changes if c.original_path and c.new_path}
        deleted = {c.original_path for c in changes if c.action == "delete"}

        queue = [
            FileRecord(path=path, content=content)
            for path, content in contents.items()
            if not is_style_sheet(path) and path not in deleted
        ]
        total = len(queue)
        processed = 0
        batch_size = self.settings.batch.size

        for start in range(0, total, batch_size):
            group = queue[start:start + batch_size]
            report("transforming", processed, total, f"Transforming {', '.join(f.path for f in group)}")
            outcomes = await asyncio.gather(
                *(self._transform_file(f, spec, path_mapping.get(f.path), job_id, rule_set) for f in group),
                return_exceptions=True,
            )
            for file, outcome in zip(group, outcomes):
                processed += 1
                if isinstance(outcome, BaseException):
                    details = handle_migration_error(outcome)
                    outcome = self._error_result(
                        file.path, file.content or "", spec,
                        note=f"Batch transformation failed: {details.message}",
                        warning=f"Critical error in batch: {details.message}",
                    )
                    self._emit(job_id, error_event(job_id or "", details.message, file_path=file.path))
                store(outcome, file.path)
                report("transforming", processed, total, f"Transformed {file.path}")

        report("post-processing", processed, total, "Merging style sheets and generating scaffolds")
        merged = self._merge_style_sheets(changes, contents, spec, results)
        self._pass_through_style_sheets(contents, changes, deleted, spec, results)
        self._create_scaffolds(changes, spec, results)
        self._create_aggregate_config(merged, spec, results)

        statistics = self.get_transformation_statistics(results.values())
        report("complete", total, total, f"Transformed {total} file(s)")
        self._emit(job_id, complete_event(
            job_id or "",
            f"Batch complete: {statistics.total_files} result(s)",
            average_confidence=statistics.average_confidence,
            requires_review=statistics.requires_review,
        ))
        return BatchResult(results=results, statistics=statistics)

    def _merge_style_sheets(
        self,
        changes: List[FileStructureChange],
        contents: Dict[str, str],
        spec: MigrationSpecification,
        results: Dict[str, TransformResult],
    ) -> List[str]:
        """Merge style sheets moved onto the same path; returns the source paths merged."""
        targets: Dict[str, List[str]] = {}
        for change in changes:
            if change.file_type == "style" and change.action == "move" and change.original_path in contents:
                targets.setdefault(change.new_path, []).append(change.original_path)

        lane = self.lane_registry.detect_lane(spec.source.framework, spec.target.framework)
        merged_paths: List[str] = []
        for target, sources in targets.items():
            sheets = [(path, contents[path]) for path in sources]
            prelude = ""
            if lane is not None:
                scaffold = FileStructureChange(original_path="", new_path=target, action="create", file_type="style")
                prelude = lane.generate_scaffold(scaffold, spec) or ""

            notes = [f"Merged from: {', '.join(sources)}"]
            if "@tailwind" in prelude:
                notes.append("Added Tailwind directives")
            results[target] = self._generated_result(
                target,
                merge_style_sheets(sheets, prelude),
                spec,
                file_type="style",
                notes=notes,
                original_code="\n\n".join(f"/* From {path} */\n{content}" for path, content in sheets),
                language="css",
            )
            merged_paths.extend(sources)
            logger.info(f"Merged {len(sources)} style sheet(s) into {target}")
        return merged_paths

    def _pass_through_style_sheets(
        self,
        contents: Dict[str, str],
        changes: List[FileStructureChange],
        deleted: set,
        spec: MigrationSpecification,
        results: Dict[str, TransformResult],
    ) -> None:
        handled = {c.original_path for c in changes if c.file_type == "style"}
        for path, content in contents.items():
            if is_style_sheet(path) and path not in handled and path not in deleted and path not in results:
                results[path] = self._generated_result(
                    path, content, spec, file_type="style",
                    notes=["Style sheet kept unchanged"], original_code=content, language="css",
                )

    def _create_scaffolds(
        self,
        changes: List[FileStructureChange],
        spec: MigrationSpecification,
        results: Dict[str, TransformResult],
    ) -> None:
        for change in changes:
            if change.action != "create" or change.new_path in results:
                continue
            if not change.content:
                logger.debug(f"No scaffold content for {change.new_path}")
                continue
            notes = [f"Generated {change.file_type} file", f"Action: {change.action}"]
            if change.route_segment:
                notes.append(f"Route: {change.route_segment}")
            summary = change.summary()
            summary["original_path"] = change.new_path
            results[change.new_path] = self._generated_result(
                change.new_path, change.content, spec,
                file_type=change.file_type, notes=notes, structure_change=summary,
            )

    def _create_aggregate_config(
        self,
        merged_styles: List[str],
        spec: MigrationSpecification,
        results: Dict[str, TransformResult],
    ) -> None:
        lane = self.lane_registry.detect_lane(spec.source.framework, spec.target.framework)
        if lane is None or not merged_styles:
            return
        config = lane.generate_aggregate_config(merged_styles, spec)
        if config is None:
            return
        path, content = config
        results[path] = self._generated_result(
            path, content, spec,
            file_type="config",
            notes=[
                f"Generated {path}",
                f"Built from {len(merged_styles)} merged style sheet(s)",
            ],
            dependencies_added=STYLE_TOOLCHAIN_DEPENDENCIES,
            structure_change={
                "action": "create",
                "original_path": path,
                "is_route_file": False,
                "route_segment": None,
            },
        )

    def _emit(self, job_id: Optional[str], event) -> None:
        if self.event_sink is None or not job_id:
            return
        try:
            self.event_sink.emit(job_id, event)
        except Exception as e:
            logger.warning(f"Event sink failed for job {job_id}: {e}")

    @staticmethod
    def get_transformation_statistics(results) -> BatchStatistics:
        return scoring.get_transformation_statistics(results)
