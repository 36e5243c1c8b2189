"""TypeScript AST parsers using tree-sitter.

``.ts`` files use the plain TypeScript grammar, which accepts
angle-bracket casts (``<string>x``) and generic arrows that the TSX
dialect reads as markup. ``.tsx`` files use the TSX grammar. Import and
export node shapes match the JavaScript grammar, so extraction is shared.
"""

import tree_sitter
import tree_sitter_typescript

from .javascript_parser import JavaScriptParser

_TS_LANGUAGE = tree_sitter.Language(tree_sitter_typescript.language_typescript())
_TSX_LANGUAGE = tree_sitter.Language(tree_sitter_typescript.language_tsx())


class TypeScriptParser(JavaScriptParser):
    """tree-sitter based TypeScript parser."""

    def get_language(self) -> str:
        return "typescript"

    def get_tree_sitter_language(self) -> tree_sitter.Language:
        return _TS_LANGUAGE


class TSXParser(TypeScriptParser):
    """tree-sitter based TSX parser (TypeScript with JSX markup)."""

    def get_language(self) -> str:
        return "tsx"

    def get_tree_sitter_language(self) -> tree_sitter.Language:
        return _TSX_LANGUAGE
