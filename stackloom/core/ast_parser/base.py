"""Base interface for grammar-specific AST parsers.

Defines the Strategy pattern base class that all grammar parsers implement.
Shared parsing logic lives here; grammar-specific extraction is delegated.
"""

import logging
from abc import ABC, abstractmethod
from typing import List, Optional

import tree_sitter

from .models import ImportDeclaration, ParseError, ParseResult

logger = logging.getLogger(__name__)


class BaseLanguageParser(ABC):
    """Abstract base for tree-sitter parsers used by the migration passes.

    Subclasses implement:
    - get_language(): returns language name string
    - get_tree_sitter_language(): returns tree-sitter Language object
    - extract_imports(): walks the tree and returns module references
    - extract_exports(): returns the exported binding names
    """

    @abstractmethod
    def get_language(self) -> str:
        """Return the language identifier (e.g., 'javascript')."""
        ...

    @abstractmethod
    def get_tree_sitter_language(self) -> tree_sitter.Language:
        """Return the tree-sitter Language object for this grammar."""
        ...

    @abstractmethod
    def extract_imports(self, tree: tree_sitter.Tree, source: bytes) -> List[ImportDeclaration]:
        """Extract module references from the AST.

        Args:
            tree: Parsed tree-sitter tree
            source: Raw source bytes

        Returns:
            List of ImportDeclaration objects in source order
        """
        ...

    @abstractmethod
    def extract_exports(self, tree: tree_sitter.Tree, source: bytes) -> List[str]:
        """Extract exported binding names from the AST."""
        ...

    def parse_source(self, source_text: str, file_path: str = "") -> ParseResult:
        """Parse source code string into a ParseResult.

        Syntax errors never raise: they are reported as ``severity="error"``
        entries in ``ParseResult.errors`` with the location of the first
        offending node.

        Args:
            source_text: Source code as string
            file_path: Relative file path (for metadata)

        Returns:
            ParseResult with the tree and the extracted import/export surface
        """
        errors: List[ParseError] = []
        source_bytes = source_text.encode("utf-8")
        line_count = source_text.count("\n") + (1 if source_text and not source_text.endswith("\n") else 0)

        parser = tree_sitter.Parser(self.get_tree_sitter_language())
        tree = parser.parse(source_bytes)

        if tree.root_node.has_error:
            bad = _first_error_node(tree.root_node)
            line = bad.start_point[0] + 1 if bad is not None else 1
            column = bad.start_point[1] if bad is not None else 0
            what = "missing token" if bad is not None and bad.is_missing else "unexpected token"
            errors.append(
                ParseError(
                    file_path=file_path,
                    line=line,
                    column=column,
                    message=f"{what} at line {line}, column {column + 1}",
                    severity="error",
                )
            )

        try:
            imports = self.extract_imports(tree, source_bytes)
        except Exception as e:
            logger.warning(f"Failed to extract imports from {file_path}: {e}")
            imports = []
            errors.append(ParseError(file_path=file_path, line=0, message=f"Import extraction failed: {e}"))

        try:
            exports = self.extract_exports(tree, source_bytes)
        except Exception as e:
            logger.warning(f"Failed to extract exports from {file_path}: {e}")
            exports = []
            errors.append(ParseError(file_path=file_path, line=0, message=f"Export extraction failed: {e}"))

        return ParseResult(
            file_path=file_path,
            language=self.get_language(),
            source=source_bytes,
            tree=tree,
            imports=imports,
            exports=exports,
            line_count=line_count,
            errors=errors,
        )


def _first_error_node(root: tree_sitter.Node) -> Optional[tree_sitter.Node]:
    """Return the first ERROR or MISSING node in document order."""
    stack = [root]
    while stack:
        node = stack.pop()
        if node.type == "ERROR" or node.is_missing:
            return node
        if node.has_error:
            stack.extend(reversed(node.children))
    return None
