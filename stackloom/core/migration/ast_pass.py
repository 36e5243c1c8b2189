"""AST Transformation Pass.

Deterministic, tree-driven rewriting of one source file.  Phases run in a
fixed order and the file is re-parsed after every step, so each rewrite
rule always sees a tree that matches the current text:

1. import-source remapping, path-alias inference and duplicate removal
2. lane ``syntax`` rules
3. lane ``routing`` rules, then renames from the migration specification's
   routing and component mappings

The rewritten file is parsed once more; if it no longer parses, the
original code is returned together with the reason.
"""

import logging
import posixpath
import re
from typing import Dict, List, Optional, Tuple

from ..ast_parser import ParseResult, iter_nodes, parse_source
from .errors import MigrationError, TransformationError
from .lanes import LaneRegistry, RewriteContext, RewriteRule, SourceEdit, create_default_registry
from .models import AstPassResult, MigrationSpecification, TransformationContext

logger = logging.getLogger(__name__)

_IDENTIFIER_RE = re.compile(r"^[A-Za-z_$][\w$]*$")
_JSX_NAME_RE = re.compile(r"^[A-Za-z_$][\w$]*(\.[A-Za-z_$][\w$]*)*$")
_JSX_TAGS = ("jsx_opening_element", "jsx_closing_element", "jsx_self_closing_element")


# ── Edit application ─────────────────────────────────────────────────


def apply_edits(source: bytes, edits: List[SourceEdit]) -> str:
    """Apply non-overlapping edits to the UTF-8 source and decode it.

    Edits are applied back to front so earlier offsets stay valid.  An
    edit overlapping one already applied is dropped.
    """
    result = source
    boundary = len(source) + 1
    for edit in sorted(edits, key=lambda e: (e.start_byte, e.end_byte), reverse=True):
        if edit.end_byte > boundary:
            logger.debug(f"Dropping overlapping edit at byte {edit.start_byte}")
            continue
        result = result[:edit.start_byte] + edit.replacement.encode("utf-8") + result[edit.end_byte:]
        boundary = edit.start_byte
    return result.decode("utf-8")


def _first_error(parsed: ParseResult) -> str:
    for error in parsed.errors:
        if error.severity == "error":
            return error.message
    return "unknown syntax error"


# ── Import helpers ───────────────────────────────────────────────────


def map_import_source(source: str, mappings: Dict[str, str]) -> Optional[str]:
    """Target specifier for ``source``, or ``None`` when no mapping applies.

    An exact key wins; otherwise the longest key matching at a path
    boundary (``"lodash"`` maps ``"lodash/fp"`` but not ``"lodash-es"``).
    """
    if source in mappings:
        return mappings[source]
    for key in sorted(mappings, key=len, reverse=True):
        stem = key.rstrip("/")
        if not stem:
            continue
        if source.startswith(stem + "/"):
            return mappings[key].rstrip("/") + source[len(stem):]
    return None


def infer_path_alias(source: str, file_path: str, aliases: Dict[str, str]) -> Optional[str]:
    """``"./components/Button"`` from ``src/App.jsx`` -> ``"@components/Button"``."""
    if not aliases or not source.startswith(("./", "../")):
        return None
    resolved = posixpath.normpath(
        posixpath.join(posixpath.dirname(file_path.replace("\\", "/")), source)
    )
    if resolved.startswith(".."):
        return None
    if resolved.startswith("src/"):
        resolved = resolved[len("src/"):]
    head, _, rest = resolved.partition("/")
    alias = aliases.get(head)
    if alias is None:
        return None
    return f"{alias}/{rest}" if rest else alias


# ── Mapping-driven rules ─────────────────────────────────────────────


def identifier_rename_rule(old: str, new: str) -> RewriteRule:
    """Rename calls of ``old()`` and its import specifier to ``new``."""

    def rewrite(ctx: RewriteContext) -> List[SourceEdit]:
        edits: List[SourceEdit] = []
        already_bound = any(
            spec.local == new for decl in ctx.parse.imports for spec in decl.specifiers
        )
        for node in iter_nodes(ctx.parse.root):
            if node.type == "call_expression":
                function = node.child_by_field_name("function")
                if function is not None and function.type == "identifier" and ctx.text(function) == old:
                    edits.append(SourceEdit(function.start_byte, function.end_byte, new))
            elif node.type == "import_specifier" and not already_bound:
                name = node.child_by_field_name("name")
                if (
                    name is not None
                    and node.child_by_field_name("alias") is None
                    and ctx.text(name) == old
                ):
                    edits.append(SourceEdit(name.start_byte, name.end_byte, new))
        if edits:
            ctx.audit(f"Renamed {old} to {new}")
        return edits

    return RewriteRule(
        name=f"rename_{old}",
        phase="routing",
        rewrite=rewrite,
        description=f"Routing API rename {old} -> {new}",
    )


def jsx_rename_rule(old: str, new: str) -> RewriteRule:
    """Rename JSX elements named ``old`` (opening, closing and self-closing)."""

    def rewrite(ctx: RewriteContext) -> List[SourceEdit]:
        edits: List[SourceEdit] = []
        for node in iter_nodes(ctx.parse.root):
            if node.type not in _JSX_TAGS:
                continue
            name = node.child_by_field_name("name")
            if name is not None and ctx.text(name) == old:
                edits.append(SourceEdit(name.start_byte, name.end_byte, new))
        if edits:
            ctx.audit(f"Renamed <{old}> to <{new}>")
        return edits

    return RewriteRule(
        name=f"jsx_{old}",
        phase="routing",
        rewrite=rewrite,
        description=f"Component rename <{old}> -> <{new}>",
    )


def mapping_rules(spec: MigrationSpecification) -> List[RewriteRule]:
    """Generic routing rules built from the migration specification's symbol tables.

    Entries whose key or value is not a plain identifier (prose such as
    ``"Route": "app directory structure"``) are not rewritable and are
    skipped.
    """
    rules: List[RewriteRule] = []
    for old, new in spec.mappings.routing.items():
        if old != new and _IDENTIFIER_RE.match(old) and _IDENTIFIER_RE.match(str(new)):
            rules.append(identifier_rename_rule(old, str(new)))
    for old, new in spec.mappings.components.items():
        if old != new and _JSX_NAME_RE.match(old) and _JSX_NAME_RE.match(str(new)):
            rules.append(jsx_rename_rule(old, str(new)))
    return rules


# ── Pass ─────────────────────────────────────────────────────────────


class AstTransformationPass:
    """Tree-driven syntax and routing rewrites for one file.

    Args:
        lane_registry: Source of the lane rewrite rules and framework
            profiles. Defaults to the built-in registry.
    """

    def __init__(self, lane_registry: Optional[LaneRegistry] = None):
        self._lanes = lane_registry or create_default_registry()

    def transform(
        self,
        code: str,
        spec: MigrationSpecification,
        context: TransformationContext,
    ) -> AstPassResult:
        """Rewrite ``code`` for the target stack.

        Returns:
            AstPassResult with the rewritten code and no errors, or the
            original code and a single error describing why it was kept.

        Raises:
            TransformationError: If a rewrite rule fails unexpectedly
        """
        language = spec.source.language
        file_path = context.file_path

        try:
            parsed = parse_source(code, file_path, language)
        except ValueError as e:
            return AstPassResult(code=code, errors=[f"Parse failed: {e}"])
        if parsed.has_error:
            return AstPassResult(code=code, errors=[f"Parse failed: {_first_error(parsed)}"])

        current = self._rewrite_imports(parsed, spec, context)
        parsed = parse_source(current, file_path, language)
        current = self._remove_duplicate_imports(parsed)

        lane_rules = self._lanes.rules_for(spec.source.framework, spec.target.framework)
        syntax_rules = [r for r in lane_rules if r.phase == "syntax"]
        routing_rules = [r for r in lane_rules if r.phase == "routing"] + mapping_rules(spec)

        for rule in syntax_rules + routing_rules:
            current = self._apply_rule(rule, current, spec, context, language)

        final = parse_source(current, file_path, language)
        if final.has_error:
            logger.warning(f"AST validation failed for {file_path}: {_first_error(final)}")
            return AstPassResult(code=code, errors=[f"AST validation failed: {_first_error(final)}"])

        return AstPassResult(code=current, errors=[])

    # ── Phases ────────────────────────────────────────────────────

    def _rewrite_imports(
        self,
        parsed: ParseResult,
        spec: MigrationSpecification,
        context: TransformationContext,
    ) -> str:
        mappings = spec.mappings.imports
        aliases = self._lanes.get_profile(spec.target.framework).path_aliases
        edits: List[SourceEdit] = []

        for decl in parsed.imports:
            mapped = map_import_source(decl.source, mappings)
            if mapped is not None and mapped != decl.source:
                if decl.kind == "dynamic":
                    context.imports.append(f"dynamic: {decl.source} -> {mapped}")
                else:
                    context.imports.append(f"{decl.source} -> {mapped}")
                edits.append(SourceEdit(decl.source_start_byte, decl.source_end_byte, mapped))
                continue

            aliased = infer_path_alias(decl.source, context.file_path, aliases)
            if aliased is not None:
                context.imports.append(f"{decl.source} -> {aliased} (path alias)")
                edits.append(SourceEdit(decl.source_start_byte, decl.source_end_byte, aliased))

        if not edits:
            return parsed.source.decode("utf-8")
        return apply_edits(parsed.source, edits)

    def _remove_duplicate_imports(self, parsed: ParseResult) -> str:
        """Drop repeated static imports of the same bindings, keeping the first."""
        seen = set()
        edits: List[SourceEdit] = []
        for decl in parsed.imports:
            if decl.kind != "static":
                continue
            if decl.dedupe_key not in seen:
                seen.add(decl.dedupe_key)
                continue
            end = decl.end_byte
            if parsed.source[end:end + 1] == b"\n":
                end += 1
            edits.append(SourceEdit(decl.start_byte, end, ""))
            logger.debug(f"Removing duplicate import of {decl.source} at line {decl.line}")

        if not edits:
            return parsed.source.decode("utf-8")
        return apply_edits(parsed.source, edits)

    def _apply_rule(
        self,
        rule: RewriteRule,
        code: str,
        spec: MigrationSpecification,
        context: TransformationContext,
        language: Optional[str],
    ) -> str:
        parsed = parse_source(code, context.file_path, language)
        ctx = RewriteContext(parse=parsed, spec=spec, context=context)
        try:
            edits = rule.rewrite(ctx)
        except MigrationError:
            raise
        except Exception as e:
            raise TransformationError(
                f"Rewrite rule '{rule.name}' failed: {e}",
                file_path=context.file_path,
            ) from e

        if not edits:
            return code
        logger.debug(f"Rule {rule.name} produced {len(edits)} edit(s) in {context.file_path}")
        return apply_edits(parsed.source, edits)


def summarize_audit(context: TransformationContext) -> Tuple[List[str], List[str]]:
    """Split a context's audit trail into (import rewrites, other rewrites)."""
    import_changes = [entry for entry in context.imports if " -> " in entry]
    return import_changes, list(context.related_files)
