"""Rule Engine.

Validates transformed code against the declarative rules of a migration
specification and produces typed :class:`Violation` records.  Validation
problems are data: nothing here raises for bad *code*.  Only a malformed
rule set is fatal (:class:`RuleSetError`), and that is detected when the
rules are loaded.
"""

import logging
import re
from collections import Counter
from dataclasses import dataclass
from typing import Any, Dict, Iterable, List, Mapping, Optional, Set, Tuple, Union

from ..ast_parser import ParseResult, iter_nodes, parse_source
from .lanes import FrameworkProfile, LaneRegistry, create_default_registry
from .models import (
    BreakingChange,
    Deprecation,
    MigrationRules,
    MigrationSpecification,
    RuleValidationResult,
    Violation,
    validate_rule_shape,
)

logger = logging.getLogger(__name__)

# Package prefixes a must-remove rule can name
REMOVAL_KEYWORDS = (
    "react-router",
    "react-helmet",
    "redux",
    "webpack",
    "babel",
    "jquery",
    "enzyme",
    "moment",
)

# Identifier nodes whose parent makes them a declaration, not a use
_DECLARATION_PARENTS = frozenset({
    "function_declaration",
    "generator_function_declaration",
    "class_declaration",
    "method_definition",
    "variable_declarator",
    "formal_parameters",
    "import_specifier",
    "import_clause",
    "namespace_import",
})

_FUNCTION_TYPES = frozenset({
    "function_declaration",
    "generator_function_declaration",
    "function_expression",
    "function",
    "arrow_function",
    "method_definition",
})


@dataclass(frozen=True)
class RuleSet:
    """Rules, source profile and grammar resolved from one specification."""

    rules: MigrationRules
    source_profile: FrameworkProfile
    language: Optional[str] = None


def _mentions(rules: Iterable[str], *keywords: str) -> bool:
    text = " ".join(rules).lower()
    return any(keyword in text for keyword in keywords)


class RuleEngine:
    """Validate code against a migration specification's rules.

    Args:
        lane_registry: Supplies framework profiles (legacy packages and
            routing components). Defaults to the built-in registry.
    """

    def __init__(self, lane_registry: Optional[LaneRegistry] = None):
        self._lanes = lane_registry or create_default_registry()
        self._loaded = RuleSet(rules=MigrationRules(), source_profile=self._lanes.get_profile(""))

    # ── Loading ───────────────────────────────────────────────────

    def compile_rules(self, spec: Union[MigrationSpecification, Mapping[str, Any]]) -> RuleSet:
        """Resolve a specification (model or raw mapping) into a RuleSet.

        The engine's loaded rules are left untouched, so a RuleSet can be
        held by one transformation while another loads different rules.

        Raises:
            RuleSetError: If any of the six rule fields is not a list
        """
        if not isinstance(spec, MigrationSpecification):
            validate_rule_shape(spec.get("rules") if isinstance(spec, Mapping) else None)
            spec = MigrationSpecification.from_dict(spec)
        return RuleSet(
            rules=spec.rules,
            source_profile=self._lanes.get_profile(spec.source.framework),
            language=spec.source.language,
        )

    def load_rules(self, spec: Union[MigrationSpecification, Mapping[str, Any]]) -> RuleSet:
        """Compile rules and make them the default for later validations."""
        self._loaded = self.compile_rules(spec)
        logger.debug(
            "Loaded rules: %d breaking changes, %d deprecations",
            len(self._loaded.rules.breaking_changes),
            len(self._loaded.rules.deprecations),
        )
        return self._loaded

    @property
    def rules(self) -> MigrationRules:
        return self._loaded.rules

    # ── Validation ────────────────────────────────────────────────

    def validate_against_rules(
        self, code: str, file_path: str = "", rule_set: Optional[RuleSet] = None
    ) -> RuleValidationResult:
        """Validate code against a rule set (the loaded rules by default).

        Args:
            code: Transformed source
            file_path: Path attached to every violation
            rule_set: Rules compiled for this call, see :meth:`compile_rules`

        Returns:
            RuleValidationResult; ``valid`` is False iff any violation has
            error severity
        """
        rule_set = rule_set or self._loaded
        try:
            parsed = parse_source(code, file_path, rule_set.language)
        except ValueError as e:
            parsed = None
            parse_message = str(e)
        else:
            parse_message = self._parse_error_message(parsed)

        if parsed is None or parsed.has_error:
            violation = Violation(
                id="syntax-error",
                type="incompatibility",
                severity="error",
                line=1,
                column=1,
                message=f"Syntax error: {parse_message}",
                suggestion="Fix syntax errors before migration",
                auto_fixable=False,
                file_path=file_path,
            )
            return RuleValidationResult(valid=False, violations=[violation], warnings=[])

        rules = rule_set.rules
        violations: List[Violation] = []
        warnings: List[str] = []

        warnings.extend(self._check_must_preserve(parsed, rules))
        violations.extend(self._check_must_transform(parsed, rules, rule_set.source_profile, file_path))
        violations.extend(self._check_must_remove(parsed, rules, file_path))
        violations.extend(self._check_breaking_changes(parsed, code, rules.breaking_changes, file_path))
        violations.extend(self._check_deprecations(parsed, code, rules.deprecations, file_path))

        violations = self._dedupe(violations)
        valid = not any(v.severity == "error" for v in violations)
        return RuleValidationResult(valid=valid, violations=violations, warnings=warnings)

    @staticmethod
    def _parse_error_message(parsed: ParseResult) -> str:
        for error in parsed.errors:
            if error.severity == "error":
                return error.message
        return ""

    @staticmethod
    def _dedupe(violations: List[Violation]) -> List[Violation]:
        seen: Set[Tuple[int, int, str]] = set()
        unique: List[Violation] = []
        for v in violations:
            key = (v.line, v.column, v.id)
            if key in seen:
                continue
            seen.add(key)
            unique.append(v)
        return unique

    # ── Rule categories ───────────────────────────────────────────

    def _check_must_preserve(self, parsed: ParseResult, rules: MigrationRules) -> List[str]:
        warnings: List[str] = []
        node_types = {node.type for node in iter_nodes(parsed.root)}
        if _mentions(rules.must_preserve, "business logic") and node_types & _FUNCTION_TYPES:
            warnings.append(
                "Business logic detected - ensure behavior is preserved after transformation"
            )
        if _mentions(rules.must_preserve, "error handling") and "try_statement" in node_types:
            warnings.append("Error handling detected - verify error handling logic is preserved")
        return warnings

    def _check_must_transform(
        self, parsed: ParseResult, rules: MigrationRules, profile: FrameworkProfile, file_path: str
    ) -> List[Violation]:
        violations: List[Violation] = []

        if _mentions(rules.must_transform, "import") and profile.legacy_packages:
            for decl in parsed.imports:
                if decl.source.startswith(profile.legacy_packages):
                    violations.append(Violation(
                        id=f"untransformed-import-{decl.source}",
                        type="incompatibility",
                        severity="error",
                        line=decl.line,
                        column=decl.column + 1,
                        message=f"Import from '{decl.source}' must be transformed for the target framework",
                        suggestion="Replace with the equivalent target framework import",
                        auto_fixable=True,
                        file_path=file_path,
                    ))

        if _mentions(rules.must_transform, "routing", "route") and profile.legacy_components:
            legacy = set(profile.legacy_components)
            for node in iter_nodes(parsed.root):
                if node.type not in ("jsx_opening_element", "jsx_self_closing_element"):
                    continue
                name_node = node.child_by_field_name("name")
                name = parsed.text(name_node) if name_node is not None else ""
                if name in legacy:
                    violations.append(Violation(
                        id=f"untransformed-routing-{name}",
                        type="incompatibility",
                        severity="error",
                        line=node.start_point[0] + 1,
                        column=node.start_point[1] + 1,
                        message=f"Routing component <{name}> must be migrated",
                        suggestion="Use the target framework's file-based routing",
                        auto_fixable=False,
                        file_path=file_path,
                    ))
        return violations

    def _check_must_remove(
        self, parsed: ParseResult, rules: MigrationRules, file_path: str
    ) -> List[Violation]:
        text = " ".join(rules.must_remove).lower()
        keywords = [k for k in REMOVAL_KEYWORDS if k in text]
        violations: List[Violation] = []
        for decl in parsed.imports:
            if any(decl.source == k or decl.source.startswith(k) for k in keywords):
                violations.append(Violation(
                    id=f"should-remove-{decl.source}",
                    type="incompatibility",
                    severity="warning",
                    line=decl.line,
                    column=decl.column + 1,
                    message=f"Import from '{decl.source}' should be removed",
                    suggestion=f"Remove '{decl.source}' and its usages",
                    auto_fixable=True,
                    file_path=file_path,
                ))
        return violations

    # ── API usage channels ────────────────────────────────────────

    @staticmethod
    def _api_occurrences(parsed: ParseResult) -> Dict[str, List[Tuple[int, int]]]:
        """Names used in the tree -> 1-based (line, column) positions.

        Covers call callees (including ``a.b`` member callees), identifier
        uses that are not declaration names, and import sources.
        """
        found: Dict[str, List[Tuple[int, int]]] = {}

        def add(name: str, node) -> None:
            found.setdefault(name, []).append((node.start_point[0] + 1, node.start_point[1] + 1))

        for node in iter_nodes(parsed.root):
            if node.type == "call_expression":
                function = node.child_by_field_name("function")
                if function is not None and function.type in ("identifier", "member_expression"):
                    add(parsed.text(function), function)
            elif node.type in ("identifier", "type_identifier"):
                parent = node.parent
                if parent is None or parent.type == "call_expression":
                    continue
                if parent.type == "variable_declarator":
                    if parent.child_by_field_name("name") == node:
                        continue
                elif parent.type in _DECLARATION_PARENTS:
                    continue
                add(parsed.text(node), node)

        for decl in parsed.imports:
            found.setdefault(decl.source, []).append((decl.line, decl.column + 1))
        return found

    @staticmethod
    def _text_occurrences(code: str, api: str) -> List[Tuple[int, int]]:
        pattern = re.compile(rf"(?<![\w$]){re.escape(api)}(?![\w$])")
        positions: List[Tuple[int, int]] = []
        for lineno, line in enumerate(code.splitlines(), start=1):
            for match in pattern.finditer(line):
                positions.append((lineno, match.start() + 1))
        return positions

    def _positions(self, code: str, api: str, cache) -> List[Tuple[int, int]]:
        positions = list(cache.get(api, []))
        positions.extend(p for p in self._text_occurrences(code, api) if p not in positions)
        return positions

    def _check_breaking_changes(
        self,
        parsed: ParseResult,
        code: str,
        changes: List[BreakingChange],
        file_path: str,
    ) -> List[Violation]:
        if not changes:
            return []
        occurrences = self._api_occurrences(parsed)
        violations: List[Violation] = []
        for change in changes:
            for api in change.affected_apis:
                for line, column in self._positions(code, api, occurrences):
                    violations.append(Violation(
                        id=change.id,
                        type="breaking-change",
                        severity="error",
                        line=line,
                        column=column,
                        message=f"Breaking change: {change.description}",
                        suggestion=change.migration_path,
                        auto_fixable=change.auto_fixable,
                        file_path=file_path,
                    ))
        return violations

    def _check_deprecations(
        self,
        parsed: ParseResult,
        code: str,
        deprecations: List[Deprecation],
        file_path: str,
    ) -> List[Violation]:
        if not deprecations:
            return []
        occurrences = self._api_occurrences(parsed)
        violations: List[Violation] = []
        for dep in deprecations:
            suggestion = f"Replace with '{dep.replacement}'"
            if dep.removal_version:
                suggestion += f" (will be removed in {dep.removal_version})"
            for line, column in self._positions(code, dep.deprecated, occurrences):
                violations.append(Violation(
                    id=dep.id,
                    type="deprecation",
                    severity="warning",
                    line=line,
                    column=column,
                    message=f"Deprecated: '{dep.deprecated}' is deprecated in version {dep.version}",
                    suggestion=suggestion,
                    auto_fixable=bool(dep.replacement),
                    file_path=file_path,
                ))
        return violations

    # ── Reporting ─────────────────────────────────────────────────

    @staticmethod
    def generate_violation_report(violations: List[Violation]) -> Dict[str, Any]:
        """Summarize violations. Pure: same input, same report."""
        by_file = Counter(v.file_path or "unknown" for v in violations)
        by_type = Counter(v.type for v in violations)
        return {
            "total": len(violations),
            "errors": sum(1 for v in violations if v.severity == "error"),
            "warnings": sum(1 for v in violations if v.severity == "warning"),
            "by_file": dict(by_file),
            "by_type": dict(by_type),
            "auto_fixable": sum(1 for v in violations if v.auto_fixable),
            "manual_review": sum(1 for v in violations if not v.auto_fixable),
        }
