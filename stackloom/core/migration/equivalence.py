"""Semantic Equivalence Checker.

Compares coarse control-flow fingerprints of the original and the
transformed code.  This is a structural guard against rewrites that
silently drop functions, branches, loops, returns or UI elements; it is
NOT a behavioural proof.  Two programs with matching fingerprints can
still behave differently, and a legitimate refactor can trip it.
"""

import logging
from dataclasses import dataclass, field
from typing import List, Optional

from ..ast_parser import iter_nodes, parse_source
from ..constants import (
    CONTROL_FLOW_MIN_DELTA,
    CONTROL_FLOW_TOLERANCE,
    UI_ELEMENT_MIN_DELTA,
    UI_ELEMENT_TOLERANCE,
)

logger = logging.getLogger(__name__)

_NAMED_FUNCTIONS = ("function_declaration", "generator_function_declaration", "method_definition")
_ANONYMOUS_FUNCTIONS = ("function_expression", "function", "generator_function")
_CONDITIONALS = ("if_statement", "ternary_expression", "switch_statement")
_LOOPS = ("for_statement", "for_in_statement", "for_of_statement", "while_statement", "do_statement")
_UI_ELEMENTS = ("jsx_element", "jsx_self_closing_element")


@dataclass
class ControlFlowFingerprint:
    """Structural summary of one source file."""

    functions: List[str] = field(default_factory=list)
    conditionals: int = 0
    loops: int = 0
    returns: int = 0
    calls: List[str] = field(default_factory=list)
    ui_elements: int = 0


@dataclass
class EquivalenceResult:
    equivalent: bool
    reason: Optional[str] = None


def _function_name(node, parsed) -> str:
    if node.type == "arrow_function":
        return "(arrow)"
    name = node.child_by_field_name("name")
    if name is not None:
        return parsed.text(name)
    return "(anonymous)"


def _allowed_delta(count: int, ratio: float, floor: int) -> float:
    return max(floor, count * ratio)


class SemanticEquivalenceChecker:
    """Fingerprint-based equivalence guard.

    Args:
        control_flow_tolerance: Allowed relative change of functions,
            conditionals, loops and returns
        control_flow_min_delta: Allowed absolute change regardless of size
        ui_element_tolerance: Allowed relative change of JSX elements
        ui_element_min_delta: Allowed absolute change of JSX elements
    """

    def __init__(
        self,
        control_flow_tolerance: float = CONTROL_FLOW_TOLERANCE,
        control_flow_min_delta: int = CONTROL_FLOW_MIN_DELTA,
        ui_element_tolerance: float = UI_ELEMENT_TOLERANCE,
        ui_element_min_delta: int = UI_ELEMENT_MIN_DELTA,
    ):
        self.control_flow_tolerance = control_flow_tolerance
        self.control_flow_min_delta = control_flow_min_delta
        self.ui_element_tolerance = ui_element_tolerance
        self.ui_element_min_delta = ui_element_min_delta

    @classmethod
    def from_settings(cls, settings) -> "SemanticEquivalenceChecker":
        """Build from an ``EquivalenceSettings`` section."""
        return cls(
            control_flow_tolerance=settings.control_flow_tolerance,
            control_flow_min_delta=settings.control_flow_min_delta,
            ui_element_tolerance=settings.ui_element_tolerance,
            ui_element_min_delta=settings.ui_element_min_delta,
        )

    def fingerprint(self, code: str, language: Optional[str] = None, file_path: str = "") -> ControlFlowFingerprint:
        """Fingerprint a source string.

        Raises:
            ValueError: If the code does not parse
        """
        parsed = parse_source(code, file_path, language)
        if parsed.has_error:
            message = next(e.message for e in parsed.errors if e.severity == "error")
            raise ValueError(message)

        fp = ControlFlowFingerprint()
        for node in iter_nodes(parsed.root):
            if not node.is_named:
                continue
            kind = node.type
            if kind in _NAMED_FUNCTIONS or kind in _ANONYMOUS_FUNCTIONS or kind == "arrow_function":
                fp.functions.append(_function_name(node, parsed))
            elif kind in _CONDITIONALS:
                fp.conditionals += 1
            elif kind in _LOOPS:
                fp.loops += 1
            elif kind == "return_statement":
                fp.returns += 1
            elif kind == "call_expression":
                function = node.child_by_field_name("function")
                if function is not None:
                    fp.calls.append(parsed.text(function))
            elif kind in _UI_ELEMENTS:
                fp.ui_elements += 1
        return fp

    def compare(
        self,
        original: str,
        transformed: str,
        source_language: Optional[str] = None,
        target_language: Optional[str] = None,
        original_path: str = "",
        transformed_path: str = "",
    ) -> EquivalenceResult:
        """Decide whether ``transformed`` keeps the structure of ``original``."""
        try:
            before = self.fingerprint(original, source_language, original_path)
            after = self.fingerprint(transformed, target_language, transformed_path)
        except ValueError as e:
            return EquivalenceResult(equivalent=False, reason=f"Semantic check failed: {e}")

        checks = (
            ("Function count", len(before.functions), len(after.functions)),
            ("Conditional count", before.conditionals, after.conditionals),
            ("Loop count", before.loops, after.loops),
            ("Return statement count", before.returns, after.returns),
        )
        for label, a, b in checks:
            allowed = _allowed_delta(a, self.control_flow_tolerance, self.control_flow_min_delta)
            if abs(a - b) > allowed:
                return EquivalenceResult(
                    equivalent=False,
                    reason=f"{label} differs significantly: {a} vs {b}",
                )

        allowed = _allowed_delta(before.ui_elements, self.ui_element_tolerance, self.ui_element_min_delta)
        if abs(before.ui_elements - after.ui_elements) > allowed:
            return EquivalenceResult(
                equivalent=False,
                reason=(
                    "JSX element count differs significantly: "
                    f"{before.ui_elements} vs {after.ui_elements}"
                ),
            )

        return EquivalenceResult(equivalent=True)
