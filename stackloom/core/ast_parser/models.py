"""AST Parser data models.

Defines the core data structures for parsed source representation.
These are pure data containers with no parsing logic.
"""

from dataclasses import dataclass, field
from typing import Any, List, Optional


@dataclass
class ImportSpecifier:
    """A single binding introduced by an import declaration."""

    kind: str  # "default" | "namespace" | "named"
    local: str  # Local binding name
    imported: Optional[str] = None  # For named imports: exported name

    @property
    def key(self) -> str:
        """Stable identity used when comparing import declarations."""
        if self.kind == "named":
            return f"named:{self.imported or self.local}:{self.local}"
        return f"{self.kind}:{self.local}"


@dataclass
class ImportDeclaration:
    """A module reference found in source code.

    Covers static ``import`` statements, ``export ... from`` re-exports,
    dynamic ``import("x")`` calls and CommonJS ``require("x")`` calls.
    Byte offsets point into the UTF-8 encoded source.
    """

    source: str  # Module specifier without quotes: "react-router-dom"
    kind: str  # "static" | "reexport" | "dynamic" | "require"
    line: int  # 1-based line of the declaration
    column: int  # 0-based column of the declaration
    start_byte: int
    end_byte: int
    source_start_byte: int  # Start of the string literal (inside quotes)
    source_end_byte: int  # End of the string literal (inside quotes)
    specifiers: List[ImportSpecifier] = field(default_factory=list)
    text: str = ""

    @property
    def dedupe_key(self) -> str:
        """Source plus the order-independent specifier set."""
        keys = sorted(spec.key for spec in self.specifiers)
        return f"{self.source}::{','.join(keys)}"


@dataclass
class ParseError:
    """An error encountered during parsing."""

    file_path: str
    line: int
    message: str
    severity: str = "warning"  # "warning" | "error"
    column: int = 0


@dataclass
class ParseResult:
    """Complete parse output for a single source string.

    Holds the tree-sitter tree alongside the extracted import and export
    surface, so downstream passes can walk the tree without re-parsing.
    """

    file_path: str
    language: str
    source: bytes
    tree: Any = field(repr=False, default=None)
    imports: List[ImportDeclaration] = field(default_factory=list)
    exports: List[str] = field(default_factory=list)
    line_count: int = 0
    errors: List[ParseError] = field(default_factory=list)

    @property
    def root(self) -> Any:
        return self.tree.root_node if self.tree is not None else None

    @property
    def has_error(self) -> bool:
        return any(e.severity == "error" for e in self.errors)

    def text(self, node: Any) -> str:
        """Decode the source text covered by a node."""
        return self.source[node.start_byte:node.end_byte].decode("utf-8", errors="replace")
