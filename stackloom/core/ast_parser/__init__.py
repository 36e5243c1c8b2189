"""Stackloom AST Parser: tree-sitter based source parsing.

Public API:
    parse_source(source, file_path, language) -> ParseResult
    detect_language(file_path) -> str | None
    register_grammar(language, extensions, factory) -> GrammarProfile
"""

from .models import ImportDeclaration, ImportSpecifier, ParseError, ParseResult
from .utils import (
    GrammarProfile,
    detect_language,
    get_parser,
    is_supported_file,
    iter_nodes,
    list_grammars,
    normalize_language,
    register_grammar,
    resolve_language,
    string_literal_range,
)

__all__ = [
    "parse_source",
    "detect_language",
    "get_parser",
    "is_supported_file",
    "iter_nodes",
    "list_grammars",
    "normalize_language",
    "register_grammar",
    "resolve_language",
    "string_literal_range",
    "GrammarProfile",
    "ImportDeclaration",
    "ImportSpecifier",
    "ParseError",
    "ParseResult",
]


def parse_source(source_text: str, file_path: str = "", language: str | None = None) -> ParseResult:
    """Parse source code string into a ParseResult.

    Args:
        source_text: Source code as string
        file_path: Relative file path (for metadata and grammar selection)
        language: Declared language. The file extension takes precedence
            when it maps to a registered grammar.

    Returns:
        ParseResult holding the tree and extracted imports/exports
    """
    parser = get_parser(resolve_language(language, file_path))
    return parser.parse_source(source_text, file_path)
